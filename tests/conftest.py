"""
Pytest configuration and shared fixtures for Mizan tests.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

import pytest

from mizan.fraud.dataset import AnalysisDataset, InMemoryDatasetSource, trailing_window_start
from mizan.fraud.engine import FraudPatternEngine
from mizan.fraud.alerting import InMemoryAlertSink
from mizan.fraud.models import CompanyProfile, Invoice, Transaction

# Monday 2026-06-15, midday UTC
NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)

TENANT_ID = "tenant-1"
COMPANY_ID = "company-1"
COMPANY_TAX_NUMBER = "1234567890"


def business_dates(count: int, hour: int = 10) -> list[datetime]:
    """Weekday timestamps in early June 2026, clear of weekends and month end."""
    days = [1, 2, 3, 4, 5, 8, 9, 10, 11, 12]
    dates = []
    for i in range(count):
        day = days[i % len(days)]
        dates.append(datetime(2026, 6, day, hour + (i // len(days)), 0, tzinfo=timezone.utc))
    return dates


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def company() -> CompanyProfile:
    """The company under analysis."""
    return CompanyProfile(id=COMPANY_ID, tax_number=COMPANY_TAX_NUMBER, name="Test A.Ş.")


@pytest.fixture
def make_dataset(company) -> Callable[..., AnalysisDataset]:
    """Factory for analysis datasets anchored at NOW."""

    def _make(
        transactions: tuple = (),
        invoices: tuple = (),
        profile: Optional[CompanyProfile] = None,
    ) -> AnalysisDataset:
        return AnalysisDataset(
            company=profile or company,
            transactions=tuple(transactions),
            invoices=tuple(invoices),
            window_start=trailing_window_start(NOW),
            window_end=NOW,
        )

    return _make


@pytest.fixture
def make_transactions() -> Callable[..., list[Transaction]]:
    """Factory for counterparty-less transactions on business days at 10:00."""

    def _make(amounts: list) -> list[Transaction]:
        dates = business_dates(len(amounts))
        return [
            Transaction(id=f"txn-{i}", date=dates[i], amount=Decimal(str(amount)))
            for i, amount in enumerate(amounts)
        ]

    return _make


@pytest.fixture
def make_invoice() -> Callable[..., Invoice]:
    """Factory for invoices with sensible defaults."""
    counter = {"n": 0}

    def _make(
        invoice_number: Optional[str] = None,
        issue_date: Optional[datetime] = None,
        total: str = "118.59",
        tax: str = "18.09",
        due_date: Optional[datetime] = None,
        counterparty_tax_number: Optional[str] = None,
        counterparty_name: Optional[str] = None,
    ) -> Invoice:
        counter["n"] += 1
        n = counter["n"]
        return Invoice(
            id=f"inv-{n}",
            invoice_number=invoice_number or f"INV-{n:03d}",
            issue_date=issue_date or NOW - timedelta(days=30 - n % 30),
            due_date=due_date,
            total_amount=Decimal(total),
            tax_amount=Decimal(tax),
            counterparty_tax_number=counterparty_tax_number,
            counterparty_name=counterparty_name,
        )

    return _make


@pytest.fixture
def source(company) -> InMemoryDatasetSource:
    """In-memory source with the test company registered."""
    src = InMemoryDatasetSource()
    src.add_company(TENANT_ID, company)
    return src


@pytest.fixture
def alert_sink() -> InMemoryAlertSink:
    return InMemoryAlertSink(clock=lambda: NOW)


@pytest.fixture
def engine(source, alert_sink) -> FraudPatternEngine:
    """Engine with a fixed clock."""
    return FraudPatternEngine(source, alert_sink=alert_sink, clock=lambda: NOW)
