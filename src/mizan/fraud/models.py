"""
Records analyzed by the fraud pattern detectors and the findings they emit.

Source rows arrive from connectors with loosely typed fields. The tolerant
parsers here turn anything malformed into None so that only the detector
that needs a field has to skip the record.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

_SERIAL_SUFFIX = re.compile(r"(\d+)$")


class PatternType(str, Enum):
    """Closed set of finding tags."""

    BENFORDS_LAW = "benfords_law"
    ROUND_NUMBER = "round_number"
    UNUSUAL_TIMING = "unusual_timing"
    CIRCULAR_TRANSACTION = "circular_transaction"
    VAT_PATTERN = "vat_pattern"
    INVOICE_ANOMALY = "invoice_anomaly"
    DATE_MANIPULATION = "date_manipulation"
    RELATED_PARTY = "related_party"
    CROSS_COMPANY = "cross_company"
    # Diagnostic emitted when a detector fails
    OTHER = "other"


class PatternSeverity(str, Enum):
    """Severity levels for findings."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ----------------------------------------------------------------------------
# Tolerant field parsing
# ----------------------------------------------------------------------------

def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse a monetary value, returning None when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp.

    Accepts datetime, date (midnight) and ISO-8601 strings, including a
    trailing 'Z'. Anything else yields None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def parse_invoice_serial(invoice_number: Optional[str]) -> Optional[int]:
    """Extract the trailing numeric serial from an invoice number."""
    if not invoice_number:
        return None
    match = _SERIAL_SUFFIX.search(invoice_number.strip())
    if not match:
        return None
    return int(match.group(1))


def as_utc(value: datetime) -> datetime:
    """Make a timestamp comparable; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _pick(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ----------------------------------------------------------------------------
# Source records
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class TransactionLine:
    """A single journal line of a transaction."""

    debit_amount: Decimal = Decimal("0")
    credit_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class Transaction:
    """Transaction for fraud analysis."""

    id: str
    date: Optional[datetime]
    amount: Optional[Decimal]
    counterparty_id: Optional[str] = None
    counterparty_tax_number: Optional[str] = None

    @classmethod
    def from_lines(
        cls,
        id: str,
        date: Optional[datetime],
        lines: Iterable[TransactionLine],
        counterparty_id: Optional[str] = None,
        counterparty_tax_number: Optional[str] = None,
    ) -> "Transaction":
        """Build a transaction whose amount is the sum of its line magnitudes."""
        amount = sum(
            (abs(line.debit_amount) + abs(line.credit_amount) for line in lines),
            Decimal("0"),
        )
        return cls(
            id=id,
            date=date,
            amount=amount,
            counterparty_id=counterparty_id,
            counterparty_tax_number=counterparty_tax_number,
        )

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "Transaction":
        """
        Build a transaction from a loosely typed row.

        Either an 'amount' or a 'lines' list of debit/credit mappings may be
        given. A malformed line makes the whole amount unknown.
        """
        raw_lines = row.get("lines")
        if raw_lines is not None:
            amount: Optional[Decimal] = Decimal("0")
            for line in raw_lines:
                debit = parse_amount(_pick(line, "debitAmount", "debit_amount") or 0)
                credit = parse_amount(_pick(line, "creditAmount", "credit_amount") or 0)
                if debit is None or credit is None:
                    amount = None
                    break
                amount += abs(debit) + abs(credit)
        else:
            amount = parse_amount(row.get("amount"))

        txn_date = parse_instant(row.get("date"))
        if txn_date is None or amount is None:
            logger.debug(f"Transaction {row.get('id')} has malformed fields")

        return cls(
            id=str(row.get("id", "")),
            date=txn_date,
            amount=amount,
            counterparty_id=_optional_str(_pick(row, "counterpartyId", "counterparty_id")),
            counterparty_tax_number=_optional_str(
                _pick(row, "counterpartyTaxNumber", "counterparty_tax_number")
            ),
        )


@dataclass(frozen=True)
class Invoice:
    """Invoice for fraud analysis."""

    id: str
    invoice_number: str
    issue_date: Optional[datetime]
    due_date: Optional[datetime] = None
    total_amount: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    counterparty_tax_number: Optional[str] = None
    counterparty_name: Optional[str] = None

    @property
    def serial(self) -> Optional[int]:
        """Numeric serial embedded at the end of the invoice number."""
        return parse_invoice_serial(self.invoice_number)

    @property
    def net_amount(self) -> Optional[Decimal]:
        """Total minus tax, or None when either side is unknown."""
        if self.total_amount is None or self.tax_amount is None:
            return None
        return self.total_amount - self.tax_amount

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "Invoice":
        """Build an invoice from a loosely typed row."""
        return cls(
            id=str(row.get("id", "")),
            invoice_number=str(_pick(row, "invoiceNumber", "invoice_number") or ""),
            issue_date=parse_instant(_pick(row, "issueDate", "issue_date")),
            due_date=parse_instant(_pick(row, "dueDate", "due_date")),
            total_amount=parse_amount(_pick(row, "totalAmount", "total_amount")),
            tax_amount=parse_amount(_pick(row, "taxAmount", "tax_amount")),
            counterparty_tax_number=_optional_str(
                _pick(row, "counterpartyTaxNumber", "counterparty_tax_number")
            ),
            counterparty_name=_optional_str(
                _pick(row, "counterpartyName", "counterparty_name")
            ),
        )


@dataclass(frozen=True)
class CompanyProfile:
    """The client company under analysis."""

    id: str
    tax_number: Optional[str] = None
    name: Optional[str] = None


# ----------------------------------------------------------------------------
# Findings
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class Pattern:
    """A flagged fraud pattern."""

    type: PatternType
    severity: PatternSeverity
    description: str
    value: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage/API."""
        result: dict[str, Any] = {
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
        }
        if self.value is not None:
            result["value"] = self.value
        return result


@dataclass
class FraudPatternResult:
    """Outcome of one fraud pattern analysis."""

    benfords_law_violation: bool = False
    round_number_suspicious: bool = False
    unusual_timing: bool = False
    patterns: list[Pattern] = field(default_factory=list)

    @classmethod
    def from_patterns(cls, patterns: list[Pattern]) -> "FraudPatternResult":
        """Derive the summary flags from the emitted patterns."""
        types = {p.type for p in patterns}
        return cls(
            benfords_law_violation=PatternType.BENFORDS_LAW in types,
            round_number_suspicious=PatternType.ROUND_NUMBER in types,
            unusual_timing=PatternType.UNUSUAL_TIMING in types,
            patterns=list(patterns),
        )

    def _has(self, pattern_type: PatternType) -> bool:
        return any(p.type == pattern_type for p in self.patterns)

    @property
    def has_circular_transactions(self) -> bool:
        return self._has(PatternType.CIRCULAR_TRANSACTION)

    @property
    def has_unusual_vat_patterns(self) -> bool:
        return self._has(PatternType.VAT_PATTERN)

    @property
    def has_date_manipulation(self) -> bool:
        return self._has(PatternType.DATE_MANIPULATION)

    @property
    def pattern_count(self) -> int:
        return len(self.patterns)

    @property
    def overall_severity(self) -> Optional[PatternSeverity]:
        """High if any pattern is high, medium if any pattern exists."""
        if not self.patterns:
            return None
        if any(p.severity == PatternSeverity.HIGH for p in self.patterns):
            return PatternSeverity.HIGH
        return PatternSeverity.MEDIUM

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage/API."""
        return {
            "benfordsLawViolation": self.benfords_law_violation,
            "roundNumberSuspicious": self.round_number_suspicious,
            "unusualTiming": self.unusual_timing,
            "patterns": [p.to_dict() for p in self.patterns],
        }
