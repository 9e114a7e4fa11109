"""
Mizan - Accounting Fraud Pattern Analysis

A read-only advisory analyzer for Turkish bookkeeping data that:
- Tests transaction amounts against Benford's Law
- Flags round-number, timing, VAT and invoice-sequence anomalies
- Detects circular flows, related parties and cross-company repetition
- Forwards findings to an alerting subsystem
"""

__version__ = "0.1.0"
