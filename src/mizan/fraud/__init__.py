"""
Fraud and anomaly pattern detection for accounting records.

Provides:
- Record types for transactions, invoices and findings
- Statistical primitives (Benford, round numbers, timing)
- Nine stateless pattern detectors
- The analysis engine and its dataset/alert collaborators
"""

from mizan.fraud.alerting import (
    AlertInput,
    AlertSink,
    AlertStatus,
    InMemoryAlertSink,
    RiskAlert,
)
from mizan.fraud.dataset import (
    AnalysisDataset,
    DatasetFetchError,
    DatasetSource,
    InMemoryDatasetSource,
    NotFoundError,
)
from mizan.fraud.engine import FraudPatternEngine
from mizan.fraud.models import (
    CompanyProfile,
    FraudPatternResult,
    Invoice,
    Pattern,
    PatternSeverity,
    PatternType,
    Transaction,
    TransactionLine,
)
from mizan.fraud.patterns import FraudDetector, default_detectors

__all__ = [
    "AlertInput",
    "AlertSink",
    "AlertStatus",
    "InMemoryAlertSink",
    "RiskAlert",
    "AnalysisDataset",
    "DatasetFetchError",
    "DatasetSource",
    "InMemoryDatasetSource",
    "NotFoundError",
    "FraudPatternEngine",
    "CompanyProfile",
    "FraudPatternResult",
    "Invoice",
    "Pattern",
    "PatternSeverity",
    "PatternType",
    "Transaction",
    "TransactionLine",
    "FraudDetector",
    "default_detectors",
]
