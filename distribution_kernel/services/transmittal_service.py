"""
TransmittalService -- the send-time transmittal advice.

Responsibility:
    Builds the advice projection (distribution header, both departments,
    every attached document with its sender status and store details),
    persists it once at ``send`` with a content hash, and serves the
    stored copy afterwards.  Also renders a non-persisted preview for
    draft distributions.

Architecture position:
    Kernel > Services.  Called by DistributionService.send() and by the
    portal's advice operations.

Invariants enforced:
    - One advice per distribution, written at send; never rewritten.
    - ``get_advice`` returns the stored snapshot, never live data, so the
      advice matches what was handed over even after receiver amendments.
    - ``content_hash == hash_advice(payload)``; ``verify_advice`` recomputes.

Failure modes:
    - InvalidStateError when asking for the advice of an unsent distribution.
    - DepartmentNotFoundError when a department has vanished from the
      directory at send time.
    - AdviceIntegrityError when a stored payload no longer matches its hash.
"""

from dataclasses import replace
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from distribution_kernel.domain.clock import Clock, SystemClock
from distribution_kernel.domain.dtos import AdviceDocument, AdviceParty, TransmittalAdvice
from distribution_kernel.domain.ports import DepartmentDirectory, DocumentStore
from distribution_kernel.domain.verification import VerificationSide
from distribution_kernel.domain.workflow import DistributionStatus
from distribution_kernel.exceptions import (
    AdviceIntegrityError,
    DepartmentNotFoundError,
    InvalidStateError,
)
from distribution_kernel.logging_config import get_logger
from distribution_kernel.models.distribution import Distribution
from distribution_kernel.models.transmittal import TransmittalAdviceRecord
from distribution_kernel.services.base import BaseService, load_distribution
from distribution_kernel.utils.hashing import hash_advice, to_json_safe

logger = get_logger("services.transmittal")

QR_HASH_PREFIX = 16


def qr_code_data(distribution_number: str, content_hash: str) -> str:
    return f"{distribution_number}|{content_hash[:QR_HASH_PREFIX]}"


class TransmittalService(BaseService[TransmittalAdviceRecord]):
    """Generates and serves transmittal advices."""

    def __init__(
        self,
        session: Session,
        departments: DepartmentDirectory,
        documents: DocumentStore,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._departments = departments
        self._documents = documents
        self._clock = clock or SystemClock()

    def _party(self, department_id: UUID) -> AdviceParty:
        department = self._departments.get(department_id)
        if department is None:
            raise DepartmentNotFoundError(str(department_id))
        return AdviceParty(
            id=department.id,
            name=department.name,
            location_code=department.location_code,
            project=department.project,
        )

    def build(self, distribution: Distribution, generated_at: datetime) -> TransmittalAdvice:
        """Project the live distribution into an advice (no persistence)."""
        entries = {e.ref: e.to_view() for e in distribution.entries if e.is_active}
        documents = []
        for attached in distribution.documents:
            ref = attached.ref
            view = entries.get(ref)
            sender = view.side(VerificationSide.SENDER) if view is not None else None
            info = self._documents.resolve(ref.kind, ref.id)
            documents.append(
                AdviceDocument(
                    ref=ref,
                    sender_status=sender.status if sender is not None and sender.verified else None,
                    number=info.number if info else None,
                    description=info.description if info else None,
                    document_date=info.document_date if info else None,
                    amount=info.amount if info else None,
                    currency=info.currency if info else None,
                )
            )

        dist_type = distribution.distribution_type
        return TransmittalAdvice(
            distribution_id=distribution.id,
            distribution_number=distribution.distribution_number,
            distribution_date=distribution.created_at,
            type_code=dist_type.code,
            type_name=dist_type.name,
            type_color=dist_type.color,
            origin=self._party(distribution.origin_department_id),
            destination=self._party(distribution.destination_department_id),
            creator=distribution.created_by,
            documents=tuple(documents),
            notes=distribution.notes,
            generated_at=generated_at,
        )

    def generate(
        self,
        distribution: Distribution,
        actor_id: UUID,
        generated_at: datetime,
    ) -> TransmittalAdvice:
        """
        Snapshot the distribution at send time and persist it.

        Preconditions:
            - Called inside the ``send`` transition, on the locked row.
        """
        advice = self.build(distribution, generated_at)
        payload = to_json_safe(advice.to_content_dict())
        content_hash = hash_advice(payload)
        qr = qr_code_data(advice.distribution_number, content_hash)

        record = TransmittalAdviceRecord(
            distribution_id=distribution.id,
            distribution_number=distribution.distribution_number,
            payload=payload,
            content_hash=content_hash,
            qr_code_data=qr,
            generated_at=generated_at,
            generated_by=actor_id,
        )
        self.session.add(record)
        self._flush("TransmittalAdvice", distribution.id)

        logger.info(
            "transmittal_advice_generated",
            extra={
                "distribution_id": str(distribution.id),
                "content_hash": content_hash,
                "total_documents": advice.total_documents,
            },
        )
        return TransmittalAdvice.from_content_dict(payload, content_hash, qr)

    def _stored(self, distribution_id: UUID) -> TransmittalAdviceRecord:
        record = self.session.execute(
            select(TransmittalAdviceRecord)
            .where(TransmittalAdviceRecord.distribution_id == distribution_id)
        ).scalar_one_or_none()
        if record is None:
            distribution = load_distribution(self.session, distribution_id, for_update=False)
            raise InvalidStateError(
                str(distribution_id),
                "generate_advice",
                distribution.status,
                DistributionStatus.SENT.value,
            )
        return record

    def get_advice(self, distribution_id: UUID) -> TransmittalAdvice:
        """The advice as generated at send time."""
        record = self._stored(distribution_id)
        return TransmittalAdvice.from_content_dict(
            record.payload, record.content_hash, record.qr_code_data,
        )

    def verify_advice(self, distribution_id: UUID) -> bool:
        """Recompute the stored advice's hash; raise if it does not match."""
        record = self._stored(distribution_id)
        actual = hash_advice(record.payload)
        if actual != record.content_hash:
            logger.critical(
                "transmittal_advice_tampered",
                extra={"distribution_id": str(distribution_id)},
            )
            raise AdviceIntegrityError(str(distribution_id), record.content_hash, actual)
        return True

    def preview_advice(self, distribution_id: UUID) -> TransmittalAdvice:
        """Render the advice for the current state without persisting it."""
        distribution = load_distribution(self.session, distribution_id, for_update=False)
        advice = self.build(distribution, self._clock.now())
        payload = to_json_safe(advice.to_content_dict())
        content_hash = hash_advice(payload)
        preview = TransmittalAdvice.from_content_dict(
            payload, content_hash, qr_code_data(advice.distribution_number, content_hash),
        )
        return replace(preview, is_preview=True)
