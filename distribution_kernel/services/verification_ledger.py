"""
VerificationLedgerService -- per-document sender/receiver verification.

Responsibility:
    Owns every write to ``verification_entries``: creating an entry when a
    document is attached, invalidating it on detach, and merging sender or
    receiver verifications (last write wins per document).  Exposes the
    ledger-only operations ``record_sender_verification``,
    ``record_receiver_verification`` and ``get_entries``.

Architecture position:
    Kernel > Services -- imperative shell.  Called by DistributionService
    for the verify_sender / verify_receiver transitions and directly by
    the portal for partial verification calls.

Invariants enforced:
    - Sender side is written only while the distribution is ``draft``;
      receiver side only while it is ``received``.
    - Every ref in a call must be currently attached; the whole call is
      rejected otherwise, before anything is written.
    - One history entry per call (not per document).
    - Within one call a repeated ref is merged: the last item wins.

Failure modes:
    - InvalidStateError when the distribution is in the wrong status.
    - UnknownDocumentError when a ref is not attached.
    - ForbiddenError when the actor does not belong to the right side.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from distribution_kernel.domain.clock import Clock, SystemClock
from distribution_kernel.domain.documents import DocumentRef
from distribution_kernel.domain.ports import AccessPolicy
from distribution_kernel.domain.verification import (
    VerificationEntryView,
    VerificationInput,
    VerificationSide,
    VerificationSummary,
)
from distribution_kernel.domain.workflow import DepartmentSide, DistributionStatus
from distribution_kernel.exceptions import InvalidStateError, UnknownDocumentError
from distribution_kernel.logging_config import LogContext, get_logger
from distribution_kernel.models.distribution import Distribution
from distribution_kernel.models.history import HistoryAction
from distribution_kernel.models.verification import VerificationEntry
from distribution_kernel.services.base import (
    BaseService,
    authorize,
    department_for,
    load_distribution,
    next_timestamp,
)
from distribution_kernel.services.history_service import HistoryService

logger = get_logger("services.verification_ledger")

# Status in which each side may write, and the side of the hand-off it belongs to
_SIDE_RULES: dict[VerificationSide, tuple[DistributionStatus, DepartmentSide, HistoryAction]] = {
    VerificationSide.SENDER: (
        DistributionStatus.DRAFT,
        DepartmentSide.ORIGIN,
        HistoryAction.SENDER_VERIFICATION_RECORDED,
    ),
    VerificationSide.RECEIVER: (
        DistributionStatus.RECEIVED,
        DepartmentSide.DESTINATION,
        HistoryAction.RECEIVER_VERIFICATION_RECORDED,
    ),
}


def to_input(value: VerificationInput | Mapping[str, Any]) -> VerificationInput:
    if isinstance(value, VerificationInput):
        return value
    return VerificationInput.from_dict(value)


class VerificationLedgerService(BaseService[VerificationEntry]):
    """
    The Verification Ledger.

    Contract:
        Low-level methods (``ensure_entry``, ``invalidate``, ``apply``,
        ``views``) operate on a distribution row the caller already holds.
        Public ``record_*`` methods load and lock the row themselves.
    """

    def __init__(
        self,
        session: Session,
        history: HistoryService,
        access_policy: AccessPolicy,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._history = history
        self._access = access_policy
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Attachment bookkeeping
    # ------------------------------------------------------------------

    def ensure_entry(
        self,
        distribution: Distribution,
        ref: DocumentRef,
        position: int,
        at: datetime,
    ) -> VerificationEntry:
        """Create the entry for a newly attached ref, or reset an invalidated one."""
        for entry in distribution.entries:
            if entry.ref == ref:
                entry.reset(position)
                return entry
        entry = VerificationEntry(
            document_kind=ref.kind.value,
            document_id=ref.id,
            position=position,
            sender_verified=False,
            receiver_verified=False,
            created_at=at,
        )
        distribution.entries.append(entry)
        return entry

    def invalidate(self, distribution: Distribution, ref: DocumentRef, at: datetime) -> None:
        for entry in distribution.entries:
            if entry.ref == ref and entry.is_active:
                entry.invalidated_at = at

    # ------------------------------------------------------------------
    # Ledger writes
    # ------------------------------------------------------------------

    def _active_entries(self, distribution: Distribution) -> dict[DocumentRef, VerificationEntry]:
        return {e.ref: e for e in distribution.entries if e.is_active}

    def apply(
        self,
        distribution: Distribution,
        side: VerificationSide,
        items: Iterable[VerificationInput | Mapping[str, Any]],
        actor_id: UUID,
        at: datetime,
    ) -> tuple[DocumentRef, ...]:
        """
        Merge verifications for one side.

        Preconditions:
            - The caller has checked status and authorization.

        Returns:
            The refs recorded, in first-seen order.
        """
        inputs = [to_input(item) for item in items]
        active = self._active_entries(distribution)

        for item in inputs:
            if item.document_ref not in active:
                raise UnknownDocumentError(str(distribution.id), str(item.document_ref))

        merged: dict[DocumentRef, VerificationInput] = {}
        for item in inputs:
            merged[item.document_ref] = item

        for ref, item in merged.items():
            active[ref].record(side, item.status, item.notes, at, actor_id)

        return tuple(merged)

    def _record(
        self,
        side: VerificationSide,
        distribution_id: UUID,
        items: Iterable[VerificationInput | Mapping[str, Any]],
        actor_id: UUID,
        verification_notes: str | None,
    ) -> VerificationSummary:
        required_status, dept_side, action = _SIDE_RULES[side]
        operation = f"record_{side.value}_verification"

        with LogContext.bind(
            distribution_id=distribution_id,
            actor_id=actor_id,
            operation=operation,
        ):
            distribution = load_distribution(self.session, distribution_id)
            authorize(
                self._access,
                actor_id,
                department_for(distribution, dept_side),
                operation,
            )
            if distribution.current_status != required_status:
                logger.warning(
                    "verification_rejected",
                    extra={
                        "side": side.value,
                        "current_status": distribution.status,
                        "required_status": required_status.value,
                    },
                )
                raise InvalidStateError(
                    str(distribution.id),
                    operation,
                    distribution.status,
                    required_status.value,
                )

            at = next_timestamp(self._clock, distribution)
            recorded = self.record_call(
                distribution, side, items, actor_id, at, verification_notes,
            )
            return self.summary(distribution, side, recorded)

    def record_call(
        self,
        distribution: Distribution,
        side: VerificationSide,
        items: Iterable[VerificationInput | Mapping[str, Any]],
        actor_id: UUID,
        at: datetime,
        verification_notes: str | None = None,
    ) -> tuple[DocumentRef, ...]:
        """Apply one verification call and write its single history entry."""
        _, _, action = _SIDE_RULES[side]
        recorded = self.apply(distribution, side, items, actor_id, at)
        self._flush("Distribution", distribution.id)

        entries = {e.ref: e for e in distribution.entries}
        self._history.record(
            distribution,
            action,
            actor_id,
            detail={
                "documents": [
                    {
                        **ref.to_dict(),
                        "status": getattr(entries[ref], f"{side.value}_status"),
                    }
                    for ref in recorded
                ],
                "verification_notes": verification_notes,
            },
            occurred_at=at,
        )
        logger.info(
            f"{side.value}_verification_recorded",
            extra={
                "distribution_id": str(distribution.id),
                "document_count": len(recorded),
            },
        )
        return recorded

    def record_sender_verification(
        self,
        distribution_id: UUID,
        items: Iterable[VerificationInput | Mapping[str, Any]],
        actor_id: UUID,
        verification_notes: str | None = None,
    ) -> VerificationSummary:
        """Record sender verifications on a draft distribution (partial lists allowed)."""
        return self._record(
            VerificationSide.SENDER, distribution_id, items, actor_id, verification_notes,
        )

    def record_receiver_verification(
        self,
        distribution_id: UUID,
        items: Iterable[VerificationInput | Mapping[str, Any]],
        actor_id: UUID,
        verification_notes: str | None = None,
    ) -> VerificationSummary:
        """Record receiver verifications on a received distribution."""
        return self._record(
            VerificationSide.RECEIVER, distribution_id, items, actor_id, verification_notes,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def views(self, distribution: Distribution) -> tuple[VerificationEntryView, ...]:
        """Entries of currently attached documents, in attach order."""
        active = [e for e in distribution.entries if e.is_active]
        active.sort(key=lambda e: e.position)
        return tuple(e.to_view() for e in active)

    def summary(
        self,
        distribution: Distribution,
        side: VerificationSide,
        recorded: tuple[DocumentRef, ...] = (),
    ) -> VerificationSummary:
        return VerificationSummary(
            distribution_id=distribution.id,
            side=side,
            entries=self.views(distribution),
            recorded=recorded,
        )

    def unverified(
        self,
        distribution: Distribution,
        side: VerificationSide,
    ) -> tuple[DocumentRef, ...]:
        return tuple(
            view.document_ref
            for view in self.views(distribution)
            if not view.side(side).verified
        )

    def get_entries(self, distribution_id: UUID) -> tuple[VerificationEntryView, ...]:
        distribution = load_distribution(self.session, distribution_id, for_update=False)
        return self.views(distribution)
