"""Notification intents emitted by the payroll run.

The engine never delivers mail itself. It hands intents to a dispatcher;
delivery failures are reported back as exceptions, which callers log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, Union, runtime_checkable
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayslipReleasedIntent:
    """Tell an employee their payslip for a period is available."""

    employee_id: UUID
    email: str
    full_name: str
    period: str
    payslip_id: UUID
    payslip_kind: str = "regular"

    @property
    def intent_type(self) -> str:
        return "payslip_released"


@dataclass(frozen=True)
class AnomalyAlertIntent:
    """Ask admins and payroll managers to review a blocked payslip."""

    recipients: tuple[str, ...]
    period: str
    employee_id: UUID
    employee_name: str
    payslip_id: UUID
    anomaly_count: int
    severity: str = "high"
    messages: tuple[str, ...] = field(default_factory=tuple)

    @property
    def intent_type(self) -> str:
        return "anomaly_alert"


NotificationIntent = Union[PayslipReleasedIntent, AnomalyAlertIntent]


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Receives notification intents. Raising signals a failed delivery."""

    async def dispatch(self, intent: NotificationIntent) -> None:
        ...


class LoggingNotificationDispatcher:
    """Default dispatcher: records intents in the log and nothing else."""

    async def dispatch(self, intent: NotificationIntent) -> None:
        if isinstance(intent, PayslipReleasedIntent):
            logger.info(
                "Payslip %s released for %s (%s), period %s",
                intent.payslip_id,
                intent.full_name,
                intent.email,
                intent.period,
            )
        else:
            logger.info(
                "Anomaly alert for %s, period %s: %d finding(s), notifying %s",
                intent.employee_name,
                intent.period,
                intent.anomaly_count,
                ", ".join(intent.recipients),
            )
