"""
CustodyService -- append-only document custody log.

Responsibility:
    Records a DocumentMovement from the origin to the destination location
    for every document the receiver did not report missing, when receipt is
    verified.  Lists a document's movements in order.

Architecture position:
    Kernel > Services.  Called by DistributionService.verify_receiver().

Invariants enforced:
    - Movements are append-only (ORM listeners).
    - Ordering uses the ``document_movement`` sequence, not timestamps.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from distribution_kernel.domain.documents import DocumentRef
from distribution_kernel.domain.dtos import CustodyMovement
from distribution_kernel.domain.verification import VerificationEntryView, VerificationStatus
from distribution_kernel.logging_config import get_logger
from distribution_kernel.models.custody import DocumentMovement
from distribution_kernel.services.base import BaseService
from distribution_kernel.services.sequence_service import SequenceService

logger = get_logger("services.custody")


class CustodyService(BaseService[DocumentMovement]):
    def __init__(self, session: Session):
        super().__init__(session)
        self._sequences = SequenceService(session)

    def record_receipt(
        self,
        distribution_id: UUID,
        distribution_number: str,
        entries: Iterable[VerificationEntryView],
        from_location: str,
        to_location: str,
        actor_id: UUID,
        at: datetime,
    ) -> tuple[CustodyMovement, ...]:
        movements = []
        for entry in entries:
            if entry.receiver.status == VerificationStatus.MISSING:
                continue
            movement = DocumentMovement(
                seq=self._sequences.next_value(SequenceService.DOCUMENT_MOVEMENT),
                document_kind=entry.document_ref.kind.value,
                document_id=entry.document_ref.id,
                from_location=from_location,
                to_location=to_location,
                distribution_id=distribution_id,
                moved_by=actor_id,
                moved_at=at,
                reason=f"Received via distribution {distribution_number}",
            )
            self.session.add(movement)
            movements.append(movement)

        self._flush("DocumentMovement", distribution_id)
        logger.info(
            "custody_recorded",
            extra={
                "distribution_id": str(distribution_id),
                "movement_count": len(movements),
                "to_location": to_location,
            },
        )
        return tuple(CustodyMovement.from_model(m) for m in movements)

    def custody_history(self, ref: DocumentRef) -> tuple[CustodyMovement, ...]:
        """Movements of one document, oldest first."""
        movements = self.session.execute(
            select(DocumentMovement)
            .where(
                DocumentMovement.document_kind == ref.kind.value,
                DocumentMovement.document_id == ref.id,
            )
            .order_by(DocumentMovement.seq)
        ).scalars().all()
        return tuple(CustodyMovement.from_model(m) for m in movements)
