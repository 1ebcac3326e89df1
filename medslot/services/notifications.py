"""Patient notification interface.

Delivery (push, email) lives outside this service; the scheduling workflows
only hand over who should hear about what.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatientNotice:
    patient_id: int
    appointment_id: int
    kind: str  # running_late/cancelled
    message: str


class NotificationDispatcher(Protocol):
    """Interface for notification delivery."""

    def dispatch(self, notices: list[PatientNotice]) -> None:
        ...


class LoggingNotificationDispatcher:
    """Records notices in the application log instead of delivering them."""

    def dispatch(self, notices: list[PatientNotice]) -> None:
        for notice in notices:
            logger.info(
                'Notify patient %s about appointment %s (%s): %s',
                notice.patient_id,
                notice.appointment_id,
                notice.kind,
                notice.message,
            )


class RecordingNotificationDispatcher:
    """Keeps notices in memory; handy for tests and local runs."""

    def __init__(self) -> None:
        self.sent: list[PatientNotice] = []

    def dispatch(self, notices: list[PatientNotice]) -> None:
        self.sent.extend(notices)
