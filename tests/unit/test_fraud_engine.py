"""
Tests for the fraud pattern engine public API.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from mizan.fraud.alerting import FRAUD_PATTERN_ALERT_TYPE, AlertStatus
from mizan.fraud.dataset import DatasetFetchError, InMemoryDatasetSource, NotFoundError
from mizan.fraud.engine import FraudPatternEngine
from mizan.fraud.models import (
    FraudPatternResult,
    Pattern,
    PatternSeverity,
    PatternType,
    Transaction,
)
from mizan.fraud.patterns import FraudDetector, RoundNumberDetector, default_detectors

from conftest import COMPANY_ID, NOW, TENANT_ID


class ExplodingDetector(FraudDetector):
    """Detector that always fails."""

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.OTHER

    @property
    def description(self) -> str:
        return "Always fails"

    def detect(self, dataset):
        raise ZeroDivisionError("boom")


class SlowSource(InMemoryDatasetSource):
    """Source whose profile lookup never finishes in time."""

    async def get_company_profile(self, tenant_id, company_id):
        await asyncio.sleep(1)
        return await super().get_company_profile(tenant_id, company_id)


class ProfilelessSource(InMemoryDatasetSource):
    """Source that reports a missing company as None."""

    async def get_company_profile(self, tenant_id, company_id):
        return None


def _circular_pair() -> list[Transaction]:
    return [
        Transaction(
            id="out",
            date=datetime(2026, 6, 1, 10, tzinfo=timezone.utc),
            amount=Decimal("1000.40"),
            counterparty_id="A",
        ),
        Transaction(
            id="back",
            date=datetime(2026, 6, 4, 10, tzinfo=timezone.utc),
            amount=Decimal("995.20"),
            counterparty_id="B",
        ),
    ]


class TestDetectFraudPatterns:
    """Tests for detect_fraud_patterns."""

    @pytest.mark.asyncio
    async def test_empty_window_is_all_clear(self, engine):
        result = await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert result == FraudPatternResult()
        assert result.to_dict() == {
            "benfordsLawViolation": False,
            "roundNumberSuspicious": False,
            "unusualTiming": False,
            "patterns": [],
        }

    @pytest.mark.asyncio
    async def test_unknown_company(self, engine):
        with pytest.raises(NotFoundError):
            await engine.detect_fraud_patterns(TENANT_ID, "no-such-company")

    @pytest.mark.asyncio
    async def test_company_of_other_tenant(self, engine):
        with pytest.raises(NotFoundError):
            await engine.detect_fraud_patterns("tenant-2", COMPANY_ID)

    @pytest.mark.asyncio
    async def test_source_without_profile(self, company):
        source = ProfilelessSource()
        source.add_company(TENANT_ID, company)
        engine = FraudPatternEngine(source, clock=lambda: NOW)

        with pytest.raises(NotFoundError):
            await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)

    @pytest.mark.asyncio
    async def test_benford_violation_flag(self, engine, source, make_transactions):
        source.add_transactions(
            TENANT_ID, COMPANY_ID, make_transactions([f"9{i:02d}.15" for i in range(20)])
        )

        result = await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert result.benfords_law_violation
        assert not result.round_number_suspicious
        assert not result.unusual_timing
        assert [p.type for p in result.patterns] == [PatternType.BENFORDS_LAW]
        assert result.patterns[0].value > 25

    @pytest.mark.asyncio
    async def test_round_number_flag(self, engine, source, make_transactions):
        source.add_transactions(
            TENANT_ID, COMPANY_ID, make_transactions([1000 * i for i in range(1, 11)])
        )

        result = await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert result.round_number_suspicious
        assert not result.benfords_law_violation
        assert result.overall_severity == PatternSeverity.HIGH

    @pytest.mark.asyncio
    async def test_derived_signals(self, engine, source, make_invoice):
        source.add_transactions(TENANT_ID, COMPANY_ID, _circular_pair())
        source.add_invoices(
            TENANT_ID, COMPANY_ID, [make_invoice(issue_date=NOW + timedelta(days=1))]
        )

        result = await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert result.has_circular_transactions
        assert result.has_date_manipulation
        assert not result.has_unusual_vat_patterns
        assert [p.type for p in result.patterns] == [
            PatternType.CIRCULAR_TRANSACTION,
            PatternType.DATE_MANIPULATION,
        ]

    @pytest.mark.asyncio
    async def test_idempotent(self, engine, source, make_transactions, make_invoice):
        source.add_transactions(
            TENANT_ID, COMPANY_ID, make_transactions([1000 * i for i in range(1, 11)])
        )
        source.add_transactions(TENANT_ID, COMPANY_ID, _circular_pair())
        source.add_invoices(TENANT_ID, COMPANY_ID, [make_invoice("INV-001"), make_invoice("INV-001")])

        first = await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)
        second = await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert first == second
        assert first.to_dict() == second.to_dict()
        assert first.pattern_count > 0

    @pytest.mark.asyncio
    async def test_records_outside_window_excluded(self, engine, source):
        source.add_transactions(
            TENANT_ID,
            COMPANY_ID,
            [
                Transaction(
                    id=f"old-{i}",
                    date=NOW - timedelta(days=800),
                    amount=Decimal(1000 * (i + 1)),
                )
                for i in range(10)
            ],
        )

        result = await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert result == FraudPatternResult()

    @pytest.mark.asyncio
    async def test_fetch_timeout(self, company):
        source = SlowSource()
        source.add_company(TENANT_ID, company)
        engine = FraudPatternEngine(source, clock=lambda: NOW, fetch_timeout=0.01)

        with pytest.raises(DatasetFetchError):
            await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)


class TestDetectorIsolation:
    """A failing detector must not abort the analysis."""

    def test_failure_becomes_diagnostic(self, source, make_dataset, make_transactions):
        engine = FraudPatternEngine(
            source,
            detectors=[ExplodingDetector(), RoundNumberDetector()],
            clock=lambda: NOW,
        )
        dataset = make_dataset(make_transactions([1000 * i for i in range(1, 11)]))

        result = engine.analyze(dataset)

        assert [p.type for p in result.patterns] == [PatternType.OTHER, PatternType.ROUND_NUMBER]
        assert result.patterns[0].severity == PatternSeverity.LOW
        assert "ExplodingDetector" in result.patterns[0].description
        assert result.round_number_suspicious

    def test_default_detectors_used(self, source):
        engine = FraudPatternEngine(source)
        assert [type(d) for d in engine.detectors] == [type(d) for d in default_detectors()]

    def test_empty_detector_list_kept(self, source, make_dataset, make_transactions):
        engine = FraudPatternEngine(source, detectors=[], clock=lambda: NOW)
        dataset = make_dataset(make_transactions([1000 * i for i in range(1, 11)]))

        assert engine.detectors == []
        assert engine.analyze(dataset) == FraudPatternResult()


class TestCheckAndAlert:
    """Tests for check_and_alert_fraud_patterns."""

    @pytest.mark.asyncio
    async def test_alert_created(self, engine, source, alert_sink):
        source.add_transactions(TENANT_ID, COMPANY_ID, _circular_pair())

        alert = await engine.check_and_alert_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert alert is not None
        assert alert.type == FRAUD_PATTERN_ALERT_TYPE
        assert alert.severity == PatternSeverity.HIGH
        assert alert.status == AlertStatus.OPEN
        assert "Potential circular flow" in alert.message
        assert alert_sink.get_alerts(tenant_id=TENANT_ID) == [alert]

    @pytest.mark.asyncio
    async def test_medium_when_no_high_patterns(self, engine, source, make_transactions):
        amounts = [5000, 6000, 7000, 8000] + ["1234.56"] * 6
        source.add_transactions(TENANT_ID, COMPANY_ID, make_transactions(amounts))

        alert = await engine.check_and_alert_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert alert.severity == PatternSeverity.MEDIUM

    @pytest.mark.asyncio
    async def test_message_joins_descriptions(self, engine, source, make_invoice):
        source.add_transactions(TENANT_ID, COMPANY_ID, _circular_pair())
        source.add_invoices(
            TENANT_ID, COMPANY_ID, [make_invoice(issue_date=NOW + timedelta(days=1))]
        )

        result = await engine.detect_fraud_patterns(TENANT_ID, COMPANY_ID)
        alert = await engine.check_and_alert_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert alert.message.endswith("; ".join(p.description for p in result.patterns))

    @pytest.mark.asyncio
    async def test_no_alert_without_patterns(self, engine, alert_sink):
        alert = await engine.check_and_alert_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert alert is None
        assert alert_sink.get_alerts() == []

    @pytest.mark.asyncio
    async def test_repeat_run_updates_open_alert(self, engine, source, alert_sink):
        source.add_transactions(TENANT_ID, COMPANY_ID, _circular_pair())

        first = await engine.check_and_alert_fraud_patterns(TENANT_ID, COMPANY_ID)
        second = await engine.check_and_alert_fraud_patterns(TENANT_ID, COMPANY_ID)

        assert first.id == second.id
        assert len(alert_sink.get_alerts()) == 1

    @pytest.mark.asyncio
    async def test_requires_sink(self, source):
        engine = FraudPatternEngine(source, clock=lambda: NOW)

        with pytest.raises(RuntimeError):
            await engine.check_and_alert_fraud_patterns(TENANT_ID, COMPANY_ID)

    @pytest.mark.asyncio
    async def test_not_found_propagates(self, engine, alert_sink):
        with pytest.raises(NotFoundError):
            await engine.check_and_alert_fraud_patterns("tenant-2", COMPANY_ID)
        assert alert_sink.get_alerts() == []
