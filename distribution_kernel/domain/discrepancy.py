"""
Discrepancy engine (``distribution_kernel.domain.discrepancy``).

Responsibility
--------------
Pure function over a distribution's verification entries deciding which
documents were not received the way they were sent.

Rules, applied per document in this order:

1. Receiver never verified and receipt is closed (status at or past
   ``verified_receiver``) -> discrepant (unverified on receipt).
2. Receiver status is not ``ok`` -> discrepant, whatever the sender said.
3. Sender status differs from receiver status -> discrepant.

Documents attached after dispatch, or dispatched and no longer attached,
are discrepant as well when the dispatched set is supplied.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.  Safe to run
concurrently with reads; evaluating twice gives the same answer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Sequence

from distribution_kernel.domain.documents import DocumentRef
from distribution_kernel.domain.verification import (
    VerificationEntryView,
    VerificationStatus,
)


class DiscrepancyReason(str, Enum):
    UNVERIFIED_ON_RECEIPT = "unverified_on_receipt"
    RECEIVER_REPORTED = "receiver_reported"
    STATUS_MISMATCH = "status_mismatch"
    ADDED_AFTER_DISPATCH = "added_after_dispatch"
    REMOVED_AFTER_DISPATCH = "removed_after_dispatch"


@dataclass(frozen=True)
class DiscrepancyFinding:
    """Why one document is discrepant."""

    document_ref: DocumentRef
    reason: DiscrepancyReason
    sender_status: VerificationStatus | None = None
    receiver_status: VerificationStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_ref": self.document_ref.to_dict(),
            "reason": self.reason.value,
            "sender_status": self.sender_status.value if self.sender_status else None,
            "receiver_status": self.receiver_status.value if self.receiver_status else None,
        }


@dataclass(frozen=True)
class DiscrepancyResult:
    """Aggregate outcome of evaluating a distribution's ledger."""

    has_discrepancies: bool
    discrepant: tuple[DocumentRef, ...]
    findings: tuple[DiscrepancyFinding, ...]
    missing_count: int = 0
    damaged_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_discrepancies": self.has_discrepancies,
            "discrepant": [ref.to_dict() for ref in self.discrepant],
            "findings": [f.to_dict() for f in self.findings],
            "missing_count": self.missing_count,
            "damaged_count": self.damaged_count,
        }


def _classify(
    entry: VerificationEntryView,
    receipt_closed: bool,
) -> DiscrepancyFinding | None:
    sender_status = entry.sender.status if entry.sender.verified else None
    receiver = entry.receiver

    if not receiver.verified:
        if receipt_closed:
            return DiscrepancyFinding(
                entry.document_ref,
                DiscrepancyReason.UNVERIFIED_ON_RECEIPT,
                sender_status,
                None,
            )
        return None

    if receiver.status != VerificationStatus.OK:
        return DiscrepancyFinding(
            entry.document_ref,
            DiscrepancyReason.RECEIVER_REPORTED,
            sender_status,
            receiver.status,
        )

    if sender_status != receiver.status:
        return DiscrepancyFinding(
            entry.document_ref,
            DiscrepancyReason.STATUS_MISMATCH,
            sender_status,
            receiver.status,
        )

    return None


def evaluate(
    entries: Sequence[VerificationEntryView],
    *,
    receipt_closed: bool = False,
    dispatched: Iterable[DocumentRef] | None = None,
) -> DiscrepancyResult:
    """
    Evaluate a ledger.

    Args:
        entries: Ledger entries in attach order.
        receipt_closed: True once the distribution is at or past
            ``verified_receiver``; unverified documents then count as
            discrepant.
        dispatched: Document set captured at send time.  When given,
            documents added or removed since then are discrepant.

    Returns:
        DiscrepancyResult with discrepant refs in attach order, followed by
        any refs removed after dispatch.
    """
    findings: list[DiscrepancyFinding] = []
    missing = damaged = 0

    dispatched_refs = tuple(dispatched) if dispatched is not None else None
    dispatched_set = set(dispatched_refs) if dispatched_refs is not None else None

    for entry in entries:
        if dispatched_set is not None and entry.document_ref not in dispatched_set:
            findings.append(
                DiscrepancyFinding(
                    entry.document_ref,
                    DiscrepancyReason.ADDED_AFTER_DISPATCH,
                    entry.sender.status if entry.sender.verified else None,
                    entry.receiver.status if entry.receiver.verified else None,
                )
            )
            continue

        finding = _classify(entry, receipt_closed)
        if finding is not None:
            findings.append(finding)

        if entry.receiver.verified:
            if entry.receiver.status == VerificationStatus.MISSING:
                missing += 1
            elif entry.receiver.status == VerificationStatus.DAMAGED:
                damaged += 1

    if dispatched_refs is not None:
        attached = {e.document_ref for e in entries}
        for ref in dispatched_refs:
            if ref not in attached:
                findings.append(
                    DiscrepancyFinding(ref, DiscrepancyReason.REMOVED_AFTER_DISPATCH)
                )
                missing += 1

    discrepant = tuple(f.document_ref for f in findings)
    return DiscrepancyResult(
        has_discrepancies=bool(findings),
        discrepant=discrepant,
        findings=tuple(findings),
        missing_count=missing,
        damaged_count=damaged,
    )
