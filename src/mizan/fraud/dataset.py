"""
The analysis window and the collaborators that supply it.

The relational store lives outside the engine. It is reached through the
DatasetSource protocol; InMemoryDatasetSource is the reference
implementation used by tests and embedding services.
"""

import asyncio
import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Protocol

from mizan.fraud.models import CompanyProfile, Invoice, Transaction, as_utc

logger = logging.getLogger(__name__)

ANALYSIS_WINDOW_MONTHS = 12


class NotFoundError(LookupError):
    """The company does not exist or does not belong to the tenant."""


class DatasetFetchError(Exception):
    """The analysis window could not be fetched in time."""


class DatasetSource(Protocol):
    """Read-only access to one company's accounting records."""

    async def get_company_profile(
        self, tenant_id: str, company_id: str
    ) -> Optional[CompanyProfile]:
        """Return the company profile, or raise NotFoundError or return None."""
        ...

    async def fetch_transaction_window(
        self,
        tenant_id: str,
        company_id: str,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> list[Transaction]:
        ...

    async def fetch_invoice_window(
        self,
        tenant_id: str,
        company_id: str,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> list[Invoice]:
        ...


@dataclass(frozen=True)
class AnalysisDataset:
    """Immutable snapshot of one company's trailing analysis window."""

    company: CompanyProfile
    transactions: tuple[Transaction, ...]
    invoices: tuple[Invoice, ...]
    window_start: datetime
    # Invocation time; the reference point for future-date checks
    window_end: datetime

    @property
    def is_empty(self) -> bool:
        return not self.transactions and not self.invoices


def trailing_window_start(
    now: datetime,
    months: int = ANALYSIS_WINDOW_MONTHS,
) -> datetime:
    """
    Go back a number of calendar months from now.

    The day is clamped to the length of the target month, so 31 March
    minus one month is 28 (or 29) February.
    """
    index = now.year * 12 + (now.month - 1) - months
    year, month_index = divmod(index, 12)
    month = month_index + 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


async def load_dataset(
    source: DatasetSource,
    tenant_id: str,
    company_id: str,
    now: datetime,
    timeout: Optional[float] = None,
) -> AnalysisDataset:
    """
    Fetch the trailing analysis window for a company.

    The window has no upper bound so that future-dated records reach the
    date checks. The timeout covers the whole fetch.

    Raises:
        NotFoundError: If the company is unknown for the tenant
        DatasetFetchError: If the fetch exceeds the timeout
    """
    window_start = trailing_window_start(now)

    async def fetch() -> AnalysisDataset:
        company = await source.get_company_profile(tenant_id, company_id)
        if company is None:
            raise NotFoundError(f"Client company {company_id} not found")

        fetches = [
            asyncio.ensure_future(
                source.fetch_transaction_window(tenant_id, company_id, window_start)
            ),
            asyncio.ensure_future(
                source.fetch_invoice_window(tenant_id, company_id, window_start)
            ),
        ]
        try:
            transactions, invoices = await asyncio.gather(*fetches)
        except Exception:
            # gather leaves the sibling fetch running when one of them fails
            for task in fetches:
                task.cancel()
            await asyncio.gather(*fetches, return_exceptions=True)
            raise

        return AnalysisDataset(
            company=company,
            transactions=tuple(transactions),
            invoices=tuple(invoices),
            window_start=window_start,
            window_end=now,
        )

    try:
        dataset = await asyncio.wait_for(fetch(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise DatasetFetchError(
            f"Fetching analysis window for company {company_id} timed out after {timeout}s"
        ) from e

    logger.debug(
        f"Loaded {len(dataset.transactions)} transactions and "
        f"{len(dataset.invoices)} invoices for company {company_id}"
    )
    return dataset


def _in_window(
    moment: Optional[datetime],
    start: datetime,
    end: Optional[datetime],
) -> bool:
    # Undated records are passed through; the detectors skip them
    if moment is None:
        return True
    moment = as_utc(moment)
    if moment < as_utc(start):
        return False
    return end is None or moment <= as_utc(end)


@dataclass
class InMemoryDatasetSource:
    """
    DatasetSource backed by plain dictionaries.

    Usage:
        source = InMemoryDatasetSource()
        source.add_company("tenant-1", CompanyProfile(id="c1", tax_number="1234567890"))
        source.add_transactions("tenant-1", "c1", transactions)
    """

    _companies: dict[tuple[str, str], CompanyProfile] = field(default_factory=dict)
    _transactions: dict[tuple[str, str], list[Transaction]] = field(default_factory=dict)
    _invoices: dict[tuple[str, str], list[Invoice]] = field(default_factory=dict)

    def add_company(self, tenant_id: str, company: CompanyProfile) -> None:
        self._companies[(tenant_id, company.id)] = company

    def add_transactions(
        self, tenant_id: str, company_id: str, transactions: Iterable[Transaction]
    ) -> None:
        self._transactions.setdefault((tenant_id, company_id), []).extend(transactions)

    def add_invoices(
        self, tenant_id: str, company_id: str, invoices: Iterable[Invoice]
    ) -> None:
        self._invoices.setdefault((tenant_id, company_id), []).extend(invoices)

    async def get_company_profile(
        self, tenant_id: str, company_id: str
    ) -> CompanyProfile:
        company = self._companies.get((tenant_id, company_id))
        if company is None:
            raise NotFoundError(f"Client company {company_id} not found")
        return company

    async def fetch_transaction_window(
        self,
        tenant_id: str,
        company_id: str,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> list[Transaction]:
        return [
            t
            for t in self._transactions.get((tenant_id, company_id), [])
            if _in_window(t.date, start, end)
        ]

    async def fetch_invoice_window(
        self,
        tenant_id: str,
        company_id: str,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> list[Invoice]:
        return [
            i
            for i in self._invoices.get((tenant_id, company_id), [])
            if _in_window(i.issue_date, start, end)
        ]
