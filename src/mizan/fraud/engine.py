"""
Fraud pattern analysis for a client company.

Loads the trailing 12-month window through a DatasetSource, runs every
detector in a fixed order and aggregates their findings. A second entry
point forwards non-empty results to an AlertSink.

Usage:
    engine = FraudPatternEngine(source, alert_sink=sink)
    result = await engine.detect_fraud_patterns(tenant_id, company_id)
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from mizan.config import settings
from mizan.fraud.alerting import FRAUD_PATTERN_ALERT_TYPE, AlertInput, AlertSink, RiskAlert
from mizan.fraud.dataset import AnalysisDataset, DatasetSource, load_dataset
from mizan.fraud.models import FraudPatternResult, Pattern, PatternSeverity, PatternType
from mizan.fraud.patterns import FraudDetector, default_detectors

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FraudPatternEngine:
    """
    Orchestrates the fraud pattern detectors for one company at a time.

    The engine holds no per-analysis state, so a single instance can serve
    concurrent analyses of different companies.
    """

    def __init__(
        self,
        source: DatasetSource,
        alert_sink: Optional[AlertSink] = None,
        detectors: Optional[list[FraudDetector]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        fetch_timeout: Optional[float] = None,
        alert_title: Optional[str] = None,
    ):
        """
        Initialize the engine.

        Args:
            source: Supplies company profile, transactions and invoices
            alert_sink: Receives alerts from check_and_alert_fraud_patterns
            detectors: Detectors in emission order (uses defaults if None)
            clock: Returns the invocation time (UTC now if None)
            fetch_timeout: Seconds allowed for the dataset fetch
            alert_title: Title of emitted alerts
        """
        self.source = source
        self.alert_sink = alert_sink
        self.detectors = detectors if detectors is not None else default_detectors()
        self.clock = clock or _utcnow
        self.fetch_timeout = (
            fetch_timeout
            if fetch_timeout is not None
            else settings.dataset_fetch_timeout_seconds
        )
        self.alert_title = alert_title or settings.fraud_alert_title

    async def detect_fraud_patterns(
        self,
        tenant_id: str,
        company_id: str,
    ) -> FraudPatternResult:
        """
        Analyze a company's trailing 12-month window.

        Returns:
            The aggregated result; all flags false and no patterns when the
            window holds no transactions or invoices

        Raises:
            NotFoundError: If the company does not belong to the tenant
            DatasetFetchError: If the fetch exceeds the timeout
        """
        dataset = await load_dataset(
            self.source,
            tenant_id,
            company_id,
            now=self.clock(),
            timeout=self.fetch_timeout,
        )

        if dataset.is_empty:
            logger.info(f"No records in analysis window for company {company_id}")
            return FraudPatternResult()

        result = self.analyze(dataset)
        logger.info(
            f"Fraud analysis for company {company_id}: {result.pattern_count} patterns"
        )
        return result

    def analyze(self, dataset: AnalysisDataset) -> FraudPatternResult:
        """Run all detectors over an already loaded dataset."""
        return FraudPatternResult.from_patterns(self.run_detectors(dataset))

    def run_detectors(self, dataset: AnalysisDataset) -> list[Pattern]:
        """
        Run each detector in order and concatenate their patterns.

        A failing detector contributes a low-severity diagnostic instead
        of aborting the analysis.
        """
        all_patterns: list[Pattern] = []

        for detector in self.detectors:
            name = type(detector).__name__
            try:
                patterns = detector.detect(dataset)
            except Exception as e:
                logger.error(f"Error in {name}: {e}", exc_info=True)
                all_patterns.append(
                    Pattern(
                        type=PatternType.OTHER,
                        severity=PatternSeverity.LOW,
                        description=f"{name} failed ({type(e).__name__}); its checks were skipped",
                    )
                )
                continue

            logger.debug(f"{detector.pattern_type.value}: found {len(patterns)} patterns")
            all_patterns.extend(patterns)

        return all_patterns

    async def check_and_alert_fraud_patterns(
        self,
        tenant_id: str,
        company_id: str,
    ) -> Optional[RiskAlert]:
        """
        Analyze a company and raise one alert if anything was found.

        Returns:
            The alert returned by the sink, or None when nothing was found
        """
        if self.alert_sink is None:
            raise RuntimeError("FraudPatternEngine has no alert sink configured")

        result = await self.detect_fraud_patterns(tenant_id, company_id)
        if not result.patterns:
            return None

        severity = (
            PatternSeverity.HIGH
            if result.overall_severity == PatternSeverity.HIGH
            else PatternSeverity.MEDIUM
        )
        descriptions = "; ".join(p.description for p in result.patterns)

        alert = await self.alert_sink.create_alert(
            AlertInput(
                tenant_id=tenant_id,
                company_id=company_id,
                type=FRAUD_PATTERN_ALERT_TYPE,
                title=self.alert_title,
                message=f"Suspicious transaction patterns detected: {descriptions}",
                severity=severity,
            )
        )
        logger.info(
            f"Forwarded {severity.value} fraud alert for company {company_id} "
            f"({result.pattern_count} patterns)"
        )
        return alert
