"""
HistoryService -- append-only, hash-chained distribution history.

Responsibility:
    Writes one HistoryEntry per transition and per verification call, links
    each entry to its predecessor by hash, validates the chain on demand,
    and queues new records for delivery to the notification/audit sink
    once the caller commits.

Architecture position:
    Kernel > Services -- imperative shell, called by DistributionService
    and VerificationLedgerService.

Invariants enforced:
    - Append-only: entries are never modified or deleted (ORM listeners on
      HistoryEntry).
    - Per-distribution ordering: ``seq`` is taken from
      ``Distribution.history_seq`` on the row the caller already holds
      locked, so no two entries of one distribution share a seq.
    - Chain: ``hash = H(distribution_id | seq | action | payload_hash |
      prev_hash)``; prev_hash is None only for seq 1.

Failure modes:
    - HistoryChainBrokenError from validate_chain().
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from distribution_kernel.domain.clock import Clock, SystemClock
from distribution_kernel.domain.dtos import HistoryRecord
from distribution_kernel.exceptions import HistoryChainBrokenError
from distribution_kernel.logging_config import get_logger
from distribution_kernel.models.distribution import Distribution
from distribution_kernel.models.history import HistoryAction, HistoryEntry
from distribution_kernel.services.base import BaseService
from distribution_kernel.utils.hashing import (
    hash_history_entry,
    hash_payload,
    to_json_safe,
)

logger = get_logger("services.history")


class HistoryService(BaseService[HistoryEntry]):
    """
    Records and validates the distribution history trail.

    Contract:
        ``record()`` must be called with a distribution row loaded by the
        current transaction (normally locked with ``FOR UPDATE``).

    Non-goals:
        - Does NOT deliver records to sinks; it only queues them.  The
          caller drains the queue after commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._pending: list[HistoryRecord] = []

    def _last_hash(self, distribution_id: UUID) -> str | None:
        return self.session.execute(
            select(HistoryEntry.hash)
            .where(HistoryEntry.distribution_id == distribution_id)
            .order_by(HistoryEntry.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def record(
        self,
        distribution: Distribution,
        action: HistoryAction,
        actor_id: UUID,
        detail: dict[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> HistoryRecord:
        """
        Append one entry to the distribution's history.

        Postconditions:
            - ``distribution.history_seq`` is advanced by one and equals the
              new entry's seq.
            - The entry is flushed and queued for post-commit delivery.
        """
        seq = (distribution.history_seq or 0) + 1
        distribution.history_seq = seq

        prev_hash = self._last_hash(distribution.id)
        payload = to_json_safe(detail or {})
        payload_hash = hash_payload(payload)
        entry_hash = hash_history_entry(
            distribution_id=str(distribution.id),
            seq=seq,
            action=action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        entry = HistoryEntry(
            distribution_id=distribution.id,
            seq=seq,
            action=action.value,
            actor_id=actor_id,
            occurred_at=occurred_at or self._clock.now(),
            detail=payload,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=entry_hash,
        )
        self.session.add(entry)
        self._flush("Distribution", distribution.id)

        record = HistoryRecord.from_model(entry)
        self._pending.append(record)

        logger.info(
            "history_recorded",
            extra={
                "distribution_id": str(distribution.id),
                "action": action.value,
                "seq": seq,
            },
        )
        return record

    def drain_pending(self) -> tuple[HistoryRecord, ...]:
        """Return and forget the records queued since the last drain."""
        pending, self._pending = tuple(self._pending), []
        return pending

    def discard_pending(self) -> None:
        self._pending.clear()

    def entries_for(self, distribution_id: UUID) -> tuple[HistoryRecord, ...]:
        """History of one distribution, oldest first."""
        entries = self.session.execute(
            select(HistoryEntry)
            .where(HistoryEntry.distribution_id == distribution_id)
            .order_by(HistoryEntry.seq)
        ).scalars().all()
        return tuple(HistoryRecord.from_model(e) for e in entries)

    def validate_chain(self, distribution_id: UUID) -> bool:
        """
        Validate one distribution's hash chain.

        Postconditions:
            - Returns True only if every entry's stored hash matches the
              recomputed value and links to its predecessor's hash.

        Raises:
            HistoryChainBrokenError: at the first entry that does not verify.
        """
        entries = self.session.execute(
            select(HistoryEntry)
            .where(HistoryEntry.distribution_id == distribution_id)
            .order_by(HistoryEntry.seq)
        ).scalars().all()

        previous: HistoryEntry | None = None
        for entry in entries:
            expected_prev = previous.hash if previous is not None else None
            if entry.prev_hash != expected_prev:
                logger.critical(
                    "history_chain_broken",
                    extra={"distribution_id": str(distribution_id), "seq": entry.seq},
                )
                raise HistoryChainBrokenError(
                    str(distribution_id),
                    entry.seq,
                    expected_prev or "None",
                    entry.prev_hash or "None",
                )

            expected_payload_hash = hash_payload(entry.detail or {})
            expected_hash = hash_history_entry(
                distribution_id=str(entry.distribution_id),
                seq=entry.seq,
                action=entry.action,
                payload_hash=expected_payload_hash,
                prev_hash=entry.prev_hash,
            )
            if entry.hash != expected_hash:
                logger.critical(
                    "history_chain_broken",
                    extra={"distribution_id": str(distribution_id), "seq": entry.seq},
                )
                raise HistoryChainBrokenError(
                    str(distribution_id),
                    entry.seq,
                    expected_hash,
                    entry.hash,
                )
            previous = entry

        logger.info(
            "history_chain_valid",
            extra={"distribution_id": str(distribution_id), "entry_count": len(entries)},
        )
        return True
