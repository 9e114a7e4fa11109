"""
Fraud pattern detectors for accounting data.

Implements detection for common bookkeeping manipulation signals:
- Benford's Law deviation in transaction amounts
- Suspiciously round amounts
- Unusual timing (odd hours, weekends, month end)
- Circular (round-trip) flows between counterparties
- VAT rates outside the legal Turkish set
- Invoice serial gaps and duplicate invoice numbers
- Future-dated, backdated and inverted invoice dates
- Related parties inferred from tax number prefixes
- Repetitive invoicing to a single counterparty

Each detector is stateless and reads an AnalysisDataset without modifying it.
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from mizan.fraud.dataset import AnalysisDataset
from mizan.fraud.models import (
    Invoice,
    Pattern,
    PatternSeverity,
    PatternType,
    Transaction,
    as_utc,
)
from mizan.fraud.statistics import (
    analyze_benfords_law,
    analyze_timing_patterns,
    detect_round_numbers,
)
from mizan.turkish.vergi_no import normalize_tax_number, share_registration_prefix

logger = logging.getLogger(__name__)


def _amounts(transactions: tuple[Transaction, ...]) -> list[Decimal]:
    return [abs(t.amount) for t in transactions if t.amount is not None]


def _ratio_exceeds(count: int, total: int, share: float) -> bool:
    return total > 0 and count > total * share


class FraudDetector(ABC):
    """Base class for fraud pattern detectors."""

    @property
    @abstractmethod
    def pattern_type(self) -> PatternType:
        """Tag carried by every pattern this detector emits."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of the pattern."""
        pass

    @abstractmethod
    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        """
        Detect the pattern in a dataset.

        Args:
            dataset: Transactions and invoices of one company's window

        Returns:
            Patterns in emission order (possibly empty)
        """
        pass

    def _pattern(
        self,
        severity: PatternSeverity,
        description: str,
        value: Optional[float] = None,
    ) -> Pattern:
        return Pattern(
            type=self.pattern_type,
            severity=severity,
            description=description,
            value=value,
        )


class BenfordsLawDetector(FraudDetector):
    """
    Test transaction amounts against Benford's Law.

    Fabricated figures rarely follow the natural leading-digit
    distribution. A chi-square above 25 is a strong deviation.
    """

    HIGH_CHI_SQUARE = 25.0

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.BENFORDS_LAW

    @property
    def description(self) -> str:
        return "Leading digits deviate from Benford's Law"

    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        analysis = analyze_benfords_law(_amounts(dataset.transactions))
        if not analysis.violation:
            return []

        severity = (
            PatternSeverity.HIGH
            if analysis.chi_square > self.HIGH_CHI_SQUARE
            else PatternSeverity.MEDIUM
        )
        return [
            self._pattern(
                severity,
                f"Benford's Law violation detected (chi-square: {analysis.chi_square:.2f})",
                analysis.chi_square,
            )
        ]


class RoundNumberDetector(FraudDetector):
    """Flag datasets where round amounts are over-represented."""

    SUSPICIOUS_SHARE = 0.3
    HIGH_SHARE = 0.5

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.ROUND_NUMBER

    @property
    def description(self) -> str:
        return "Suspiciously many round amounts"

    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        amounts = _amounts(dataset.transactions)
        total = len(amounts)
        round_numbers = detect_round_numbers(amounts)
        count = len(round_numbers)

        if not _ratio_exceeds(count, total, self.SUSPICIOUS_SHARE):
            return []

        severity = (
            PatternSeverity.HIGH
            if _ratio_exceeds(count, total, self.HIGH_SHARE)
            else PatternSeverity.MEDIUM
        )
        return [
            self._pattern(
                severity,
                f"{count} suspiciously round amounts detected ({count / total * 100:.1f}%)",
                float(count),
            )
        ]


class TimingPatternDetector(FraudDetector):
    """Flag transactions clustered outside normal business timing."""

    LABELS = {
        "odd_hours": "Outside business hours",
        "weekend": "Weekend",
        "end_of_month": "Month-end",
    }

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.UNUSUAL_TIMING

    @property
    def description(self) -> str:
        return "Transactions at unusual times"

    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        dates = [t.date for t in dataset.transactions if t.date is not None]
        analysis = analyze_timing_patterns(dates)

        return [
            self._pattern(
                self._calculate_severity(timing.percentage),
                f"{self.LABELS[timing.kind]} transactions: {timing.count} ({timing.percentage:.1f}%)",
                timing.percentage,
            )
            for timing in analysis.patterns
        ]

    def _calculate_severity(self, percentage: float) -> PatternSeverity:
        if percentage > 50:
            return PatternSeverity.HIGH
        elif percentage > 30:
            return PatternSeverity.MEDIUM
        return PatternSeverity.LOW


class CircularTransactionDetector(FraudDetector):
    """
    Detect round-trip flows between two counterparties.

    Money sent to one counterparty and a similar sum moving with another
    shortly after suggests funds cycling back. Every transaction of each
    counterparty is compared with every transaction of every other one,
    which is quadratic in the window size.
    """

    MAX_DAYS_APART = timedelta(days=7)
    MAX_AMOUNT_DIFFERENCE = Decimal("0.1")

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.CIRCULAR_TRANSACTION

    @property
    def description(self) -> str:
        return "Funds returning through another counterparty"

    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        matches = []

        by_counterparty: dict[str, list[Transaction]] = {}
        for txn in dataset.transactions:
            if txn.counterparty_id and txn.date is not None and txn.amount is not None:
                by_counterparty.setdefault(txn.counterparty_id, []).append(txn)

        counterparties = list(by_counterparty)
        for i, first in enumerate(counterparties):
            for second in counterparties[i + 1 :]:
                for txn_a in by_counterparty[first]:
                    for txn_b in by_counterparty[second]:
                        if self._is_round_trip(txn_a, txn_b):
                            days = abs(as_utc(txn_a.date) - as_utc(txn_b.date)).days
                            matches.append(
                                self._pattern(
                                    PatternSeverity.HIGH,
                                    f"Potential circular flow: {txn_a.amount:,.2f} with "
                                    f"{first} and {txn_b.amount:,.2f} with {second} "
                                    f"within {days} days",
                                    float(txn_a.amount),
                                )
                            )

        return matches

    def _is_round_trip(self, txn_a: Transaction, txn_b: Transaction) -> bool:
        if abs(as_utc(txn_a.date) - as_utc(txn_b.date)) > self.MAX_DAYS_APART:
            return False
        return abs(txn_a.amount - txn_b.amount) < self.MAX_AMOUNT_DIFFERENCE * txn_a.amount


class VatRateDetector(FraudDetector):
    """
    Detect VAT amounts inconsistent with legal Turkish rates.

    Legal rates are 0%, 1%, 10% and 18% (20% since July 2023), as a
    fraction of the net amount.
    """

    LEGAL_RATES = (
        Decimal("0"),
        Decimal("0.01"),
        Decimal("0.10"),
        Decimal("0.18"),
        Decimal("0.20"),
    )
    TOLERANCE = Decimal("0.005")

    FLAGGED_SHARE = 0.1
    HIGH_FLAGGED_SHARE = 0.2
    INTEGRAL_TOTAL_SHARE = 0.4

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.VAT_PATTERN

    @property
    def description(self) -> str:
        return "VAT amounts outside legal rates"

    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        matches = []
        total = len(dataset.invoices)

        flagged = sum(1 for inv in dataset.invoices if self._has_illegal_rate(inv))
        if _ratio_exceeds(flagged, total, self.FLAGGED_SHARE):
            severity = (
                PatternSeverity.HIGH
                if _ratio_exceeds(flagged, total, self.HIGH_FLAGGED_SHARE)
                else PatternSeverity.MEDIUM
            )
            matches.append(
                self._pattern(
                    severity,
                    f"{flagged} invoices with VAT rates outside legal rates "
                    f"({flagged / total * 100:.1f}%)",
                    float(flagged),
                )
            )

        integral = sum(
            1
            for inv in dataset.invoices
            if inv.total_amount is not None
            and inv.total_amount == inv.total_amount.to_integral_value()
        )
        if _ratio_exceeds(integral, total, self.INTEGRAL_TOTAL_SHARE):
            percentage = integral / total * 100
            matches.append(
                self._pattern(
                    PatternSeverity.MEDIUM,
                    f"Unusually high share of invoices with whole-number totals: "
                    f"{integral} ({percentage:.1f}%)",
                    percentage,
                )
            )

        return matches

    def implied_rate(self, invoice: Invoice) -> Optional[Decimal]:
        """Tax divided by net amount, or None when net is not positive."""
        net = invoice.net_amount
        if net is None or net <= 0:
            return None
        return invoice.tax_amount / net

    def _has_illegal_rate(self, invoice: Invoice) -> bool:
        rate = self.implied_rate(invoice)
        if rate is None:
            return False
        return all(abs(rate - legal) > self.TOLERANCE for legal in self.LEGAL_RATES)


class InvoiceSequenceDetector(FraudDetector):
    """
    Detect gaps in invoice serials and reused invoice numbers.

    Large jumps between consecutive serials point to missing (unrecorded)
    invoices; duplicates point to double booking.
    """

    MAX_SERIAL_GAP = 10
    GAP_SHARE = 0.1

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.INVOICE_ANOMALY

    @property
    def description(self) -> str:
        return "Invoice numbering irregularities"

    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        matches = []

        large_gaps, pairs = self._count_large_gaps(dataset.invoices)
        if _ratio_exceeds(large_gaps, pairs, self.GAP_SHARE):
            matches.append(
                self._pattern(
                    PatternSeverity.MEDIUM,
                    f"{large_gaps} large gaps in invoice numbering "
                    f"(more than {self.MAX_SERIAL_GAP} between consecutive invoices)",
                    float(large_gaps),
                )
            )

        counts = Counter(inv.invoice_number for inv in dataset.invoices if inv.invoice_number)
        duplicates = [number for number, count in counts.items() if count > 1]
        if duplicates:
            matches.append(
                self._pattern(
                    PatternSeverity.HIGH,
                    f"{len(duplicates)} duplicate invoice numbers: {', '.join(duplicates)}",
                    float(len(duplicates)),
                )
            )

        return matches

    def _count_large_gaps(self, invoices: tuple[Invoice, ...]) -> tuple[int, int]:
        """Return (large gap count, consecutive pair count) in issue-date order."""
        serialized = [
            (inv, inv.serial)
            for inv in invoices
            if inv.serial is not None and inv.issue_date is not None
        ]
        serialized.sort(key=lambda item: as_utc(item[0].issue_date))

        serials = [serial for _, serial in serialized]
        gaps = [abs(b - a) for a, b in zip(serials, serials[1:])]
        return sum(1 for gap in gaps if gap > self.MAX_SERIAL_GAP), len(gaps)


class DateManipulationDetector(FraudDetector):
    """Detect future-dated invoices, backdated transactions and inverted due dates."""

    BACKDATE_AGE = timedelta(days=365)
    BACKDATED_SHARE = 0.1

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.DATE_MANIPULATION

    @property
    def description(self) -> str:
        return "Implausible record dates"

    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        matches = []
        now = as_utc(dataset.window_end)

        future = sum(
            1
            for inv in dataset.invoices
            if inv.issue_date is not None and as_utc(inv.issue_date) > now
        )
        if future:
            matches.append(
                self._pattern(
                    PatternSeverity.HIGH,
                    f"{future} invoices issued in the future",
                    float(future),
                )
            )

        dated = [t for t in dataset.transactions if t.date is not None]
        cutoff = now - self.BACKDATE_AGE
        backdated = sum(1 for t in dated if as_utc(t.date) < cutoff)
        if _ratio_exceeds(backdated, len(dated), self.BACKDATED_SHARE):
            matches.append(
                self._pattern(
                    PatternSeverity.MEDIUM,
                    f"{backdated} transactions dated more than a year ago "
                    f"({backdated / len(dated) * 100:.1f}%), possible backdating",
                    float(backdated),
                )
            )

        inverted = sum(
            1
            for inv in dataset.invoices
            if inv.issue_date is not None
            and inv.due_date is not None
            and as_utc(inv.due_date) < as_utc(inv.issue_date)
        )
        if inverted:
            matches.append(
                self._pattern(
                    PatternSeverity.HIGH,
                    f"{inverted} invoices due before their issue date",
                    float(inverted),
                )
            )

        return matches


class RelatedPartyDetector(FraudDetector):
    """
    Detect counterparties registered close to the company itself.

    Tax numbers sharing the first six digits with the company's own are
    treated as a proxy for common ownership or registration.
    """

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.RELATED_PARTY

    @property
    def description(self) -> str:
        return "Counterparties with tax numbers close to the company's own"

    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        own = normalize_tax_number(dataset.company.tax_number)
        if not own:
            return []

        # Ordered set of distinct counterparty tax numbers
        candidates: dict[str, None] = {}
        for txn in dataset.transactions:
            number = normalize_tax_number(txn.counterparty_tax_number)
            if number:
                candidates.setdefault(number)
        for inv in dataset.invoices:
            number = normalize_tax_number(inv.counterparty_tax_number)
            if number:
                candidates.setdefault(number)

        related = [c for c in candidates if share_registration_prefix(own, c)]
        if not related:
            return []

        return [
            self._pattern(
                PatternSeverity.MEDIUM,
                f"{len(related)} counterparties share the company's tax number prefix",
                float(len(related)),
            )
        ]


class CrossCompanyDetector(FraudDetector):
    """
    Detect repetitive invoicing to the same counterparty.

    Identical or always-whole amounts billed repeatedly to one party are
    typical of fictitious invoices.
    """

    MIN_INVOICES = 3
    MIN_IDENTICAL = 5
    MIN_INTEGRAL = 10

    @property
    def pattern_type(self) -> PatternType:
        return PatternType.CROSS_COMPANY

    @property
    def description(self) -> str:
        return "Repetitive invoice amounts to a single counterparty"

    def detect(self, dataset: AnalysisDataset) -> list[Pattern]:
        matches = []

        by_counterparty: dict[str, list[Decimal]] = {}
        for inv in dataset.invoices:
            key = self._counterparty_key(inv)
            if key and inv.total_amount is not None:
                by_counterparty.setdefault(key, []).append(inv.total_amount)

        for counterparty, amounts in by_counterparty.items():
            count = len(amounts)
            if count < self.MIN_INVOICES:
                continue

            if count >= self.MIN_IDENTICAL and len(set(amounts)) == 1:
                matches.append(
                    self._pattern(
                        PatternSeverity.HIGH,
                        f"{count} invoices to {counterparty} with identical amount "
                        f"{amounts[0]:,.2f}",
                        float(count),
                    )
                )

            if count >= self.MIN_INTEGRAL and all(
                a == a.to_integral_value() for a in amounts
            ):
                matches.append(
                    self._pattern(
                        PatternSeverity.MEDIUM,
                        f"{count} invoices to {counterparty} all with whole-number amounts",
                        float(count),
                    )
                )

        return matches

    def _counterparty_key(self, invoice: Invoice) -> Optional[str]:
        return normalize_tax_number(invoice.counterparty_tax_number) or invoice.counterparty_name


def default_detectors() -> list[FraudDetector]:
    """All detectors in their fixed emission order."""
    return [
        BenfordsLawDetector(),
        RoundNumberDetector(),
        TimingPatternDetector(),
        CircularTransactionDetector(),
        VatRateDetector(),
        InvoiceSequenceDetector(),
        DateManipulationDetector(),
        RelatedPartyDetector(),
        CrossCompanyDetector(),
    ]
