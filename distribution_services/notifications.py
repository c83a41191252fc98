"""
distribution_services.notifications -- post-commit history fan-out.

Responsibility:
    Delivers committed history records to every registered ``AuditSink``
    and derives the user-facing notification type for each action
    (``distribution_created``, ``distribution_sent``, ...).  A receipt
    verified with discrepancies becomes ``distribution_discrepancy``
    carrying the missing and damaged counts.

Architecture position:
    Services layer.  Called by ``DistributionPortal`` after the
    transaction has committed.

Invariants:
    - Delivery is best effort: a failing sink is logged at ERROR as
      ``notification_delivery_failed`` and never re-raised, and never
      stops delivery to the other sinks.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from distribution_config.schema import NotificationConfig
from distribution_kernel.domain.dtos import HistoryRecord
from distribution_kernel.domain.ports import AuditSink
from distribution_kernel.logging_config import get_logger
from distribution_kernel.models.history import HistoryAction

logger = get_logger("services.notifications")

NOTIFICATION_TYPES: dict[str, str] = {
    HistoryAction.CREATED.value: "distribution_created",
    HistoryAction.SENT.value: "distribution_sent",
    HistoryAction.RECEIVED.value: "distribution_received",
    HistoryAction.COMPLETED.value: "distribution_completed",
}

DISCREPANCY_NOTIFICATION = "distribution_discrepancy"


@dataclass(frozen=True)
class Notification:
    type: str
    distribution_id: UUID
    actor_id: UUID
    seq: int
    detail: dict[str, Any]


def notification_for(record: HistoryRecord) -> Notification | None:
    """The notification a history record raises, if any."""
    if record.action == HistoryAction.RECEIVER_VERIFIED.value:
        if not record.detail.get("has_discrepancies"):
            return None
        return Notification(
            type=DISCREPANCY_NOTIFICATION,
            distribution_id=record.distribution_id,
            actor_id=record.actor_id,
            seq=record.seq,
            detail={
                "missing_count": record.detail.get("missing_count", 0),
                "damaged_count": record.detail.get("damaged_count", 0),
                "discrepant": record.detail.get("discrepant", []),
            },
        )

    notification_type = NOTIFICATION_TYPES.get(record.action)
    if notification_type is None:
        return None
    return Notification(
        type=notification_type,
        distribution_id=record.distribution_id,
        actor_id=record.actor_id,
        seq=record.seq,
        detail=dict(record.detail),
    )


class NotificationDispatcher:
    """Fans committed history records out to audit sinks."""

    def __init__(
        self,
        sinks: Iterable[AuditSink] = (),
        config: NotificationConfig | None = None,
    ):
        self._sinks = list(sinks)
        self._config = config or NotificationConfig(
            actions=frozenset(action.value for action in HistoryAction),
        )

    def add_sink(self, sink: AuditSink) -> None:
        self._sinks.append(sink)

    def dispatch(self, records: Iterable[HistoryRecord]) -> int:
        """Deliver records; returns the number of successful deliveries."""
        if not self._config.enabled:
            return 0

        delivered = 0
        for record in records:
            if record.action not in self._config.actions:
                continue
            for sink in self._sinks:
                try:
                    sink.deliver(record)
                except Exception as exc:
                    logger.error(
                        "notification_delivery_failed",
                        extra={
                            "distribution_id": str(record.distribution_id),
                            "seq": record.seq,
                            "action": record.action,
                            "sink": type(sink).__name__,
                            "error": str(exc),
                        },
                    )
                    continue
                delivered += 1
        return delivered
