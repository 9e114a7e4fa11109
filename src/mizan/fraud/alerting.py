"""
Alert emission boundary for fraud pattern findings.

The engine hands one alert per analysis to an AlertSink. Deduplication is
the sink's job: an alert of the same (tenant, company, type) that is still
open or in progress and younger than 24 hours is updated, not duplicated.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional, Protocol
from uuid import UUID, uuid4

from mizan.fraud.models import PatternSeverity

logger = logging.getLogger(__name__)

FRAUD_PATTERN_ALERT_TYPE = "FRAUD_PATTERN"

DEDUP_WINDOW = timedelta(hours=24)


class AlertStatus(str, Enum):
    """Lifecycle of a risk alert."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


ACTIVE_STATUSES = (AlertStatus.OPEN, AlertStatus.IN_PROGRESS)


@dataclass(frozen=True)
class AlertInput:
    """Request to create a risk alert."""

    tenant_id: str
    company_id: str
    type: str
    title: str
    message: str
    severity: PatternSeverity
    status: AlertStatus = AlertStatus.OPEN


@dataclass
class RiskAlert:
    """A stored risk alert."""

    id: UUID
    tenant_id: str
    company_id: str
    type: str
    title: str
    message: str
    severity: PatternSeverity
    status: AlertStatus
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "tenantId": self.tenant_id,
            "companyId": self.company_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "severity": self.severity.value,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


class AlertSink(Protocol):
    """Receives alerts produced by the engine."""

    async def create_alert(self, alert: AlertInput) -> RiskAlert:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InMemoryAlertSink:
    """
    AlertSink that keeps alerts in memory and applies the 24-hour dedup rule.

    Usage:
        sink = InMemoryAlertSink()
        alert = await sink.create_alert(alert_input)
    """

    clock: Callable[[], datetime] = _utcnow
    _alerts: dict[UUID, RiskAlert] = field(default_factory=dict)

    async def create_alert(self, alert: AlertInput) -> RiskAlert:
        now = self.clock()

        existing = self._find_active_duplicate(alert, now)
        if existing:
            existing.message = alert.message
            existing.severity = alert.severity
            existing.updated_at = now
            logger.debug(f"Updated existing {alert.type} alert {existing.id}")
            return existing

        created = RiskAlert(
            id=uuid4(),
            tenant_id=alert.tenant_id,
            company_id=alert.company_id,
            type=alert.type,
            title=alert.title,
            message=alert.message,
            severity=alert.severity,
            status=alert.status,
            created_at=now,
            updated_at=now,
        )
        self._alerts[created.id] = created

        logger.info(
            f"Created {created.severity.value} {created.type} alert for company {created.company_id}"
        )
        return created

    def _find_active_duplicate(
        self, alert: AlertInput, now: datetime
    ) -> Optional[RiskAlert]:
        for existing in self._alerts.values():
            if (
                existing.tenant_id == alert.tenant_id
                and existing.company_id == alert.company_id
                and existing.type == alert.type
                and existing.status in ACTIVE_STATUSES
                and existing.created_at >= now - DEDUP_WINDOW
            ):
                return existing
        return None

    def get_alert(self, alert_id: UUID) -> Optional[RiskAlert]:
        """Get an alert by ID."""
        return self._alerts.get(alert_id)

    def get_alerts(
        self,
        tenant_id: Optional[str] = None,
        company_id: Optional[str] = None,
        status: Optional[AlertStatus] = None,
    ) -> list[RiskAlert]:
        """Get alerts with optional filtering, newest first."""
        alerts = list(self._alerts.values())

        if tenant_id:
            alerts = [a for a in alerts if a.tenant_id == tenant_id]

        if company_id:
            alerts = [a for a in alerts if a.company_id == company_id]

        if status:
            alerts = [a for a in alerts if a.status == status]

        alerts.sort(key=lambda a: a.created_at, reverse=True)
        return alerts

    def update_status(self, alert_id: UUID, status: AlertStatus) -> Optional[RiskAlert]:
        """Move an alert to a new status."""
        alert = self._alerts.get(alert_id)
        if alert:
            alert.status = status
            alert.updated_at = self.clock()
            logger.info(f"Alert {alert_id} moved to {status.value}")
        return alert
