"""
DistributionService -- the distribution state machine.

Responsibility:
    Owns ``Distribution.status``.  Creates distributions, applies every
    named transition of ``DISTRIBUTION_WORKFLOW``, and triggers the
    Verification Ledger, Discrepancy Engine, Transmittal Advice and custody
    log as side effects.  Every operation returns the updated aggregate.

Architecture position:
    Kernel > Services -- imperative shell.  Uses HistoryService,
    VerificationLedgerService, DiscrepancyService, TransmittalService,
    CustodyService and NumberingService.  Never commits.

Invariants enforced:
    - Every transition requires the current status to equal the edge's
      ``from_state`` exactly; anything else is InvalidTransitionError.
      There is no path that skips a state and no transition is accepted
      twice.
    - The distribution row is locked (``FOR UPDATE``) and version-checked
      for the whole transition, so concurrent transitions serialize and the
      loser sees InvalidTransitionError or ConflictingUpdateError.
    - Each lifecycle timestamp is set exactly once by its transition, and
      timestamps are non-decreasing in lifecycle order.
    - ``complete`` without ``force`` never succeeds while
      ``has_discrepancies`` is true.
    - Every transition writes exactly one history entry for its action.

Failure modes:
    - InvalidTransitionError / DiscrepanciesPresentError
    - IncompleteVerificationError, UnknownDocumentError, DuplicateDocumentError
    - SameDepartmentError, DepartmentNotFoundError,
      DistributionTypeNotFoundError, DocumentNotFoundError,
      DistributionNotFoundError
    - ForbiddenError, ConflictingUpdateError
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from distribution_kernel.domain.clock import Clock, SystemClock
from distribution_kernel.domain.discrepancy import DiscrepancyResult
from distribution_kernel.domain.documents import DocumentRef
from distribution_kernel.domain.dtos import (
    DeletedDistribution,
    DistributionTypeInfo,
    DistributionView,
    DistributionWarning,
)
from distribution_kernel.domain.ports import (
    AccessPolicy,
    Department,
    DepartmentDirectory,
    DocumentStore,
)
from distribution_kernel.domain.verification import VerificationInput, VerificationSide
from distribution_kernel.domain.workflow import (
    DISTRIBUTION_WORKFLOW,
    DistributionStatus,
    Transition,
)
from distribution_kernel.exceptions import (
    DepartmentNotFoundError,
    DiscrepanciesPresentError,
    DistributionTypeNotFoundError,
    ForbiddenError,
    IncompleteVerificationError,
    InvalidDistributionTypeError,
    InvalidTransitionError,
    SameDepartmentError,
    UnknownDocumentError,
)
from distribution_kernel.logging_config import LogContext, get_logger
from distribution_kernel.models.distribution import (
    Distribution,
    DistributionDocument,
    DistributionType,
)
from distribution_kernel.models.history import DistributionArchive, HistoryAction
from distribution_kernel.services.base import (
    BaseService,
    authorize,
    department_for,
    load_distribution,
    next_timestamp,
)
from distribution_kernel.services.custody_service import CustodyService
from distribution_kernel.services.discrepancy_service import DiscrepancyService
from distribution_kernel.services.document_resolver import DocumentResolver, RefLike, to_ref
from distribution_kernel.services.history_service import HistoryService
from distribution_kernel.services.numbering_service import NumberingService
from distribution_kernel.services.transmittal_service import TransmittalService
from distribution_kernel.services.verification_ledger import VerificationLedgerService
from distribution_kernel.utils.hashing import hash_payload, to_json_safe

logger = get_logger("services.distribution")

VerificationItems = Iterable[VerificationInput | Mapping[str, Any]]


class DistributionService(BaseService[Distribution]):
    """
    The distribution state machine.

    Contract:
        One public method per transition.  Each loads and locks the row,
        authorizes the actor for the side that owns the transition, checks
        the status, applies side effects, writes history and flushes.
        The caller commits.
    """

    def __init__(
        self,
        session: Session,
        documents: DocumentStore,
        departments: DepartmentDirectory,
        access_policy: AccessPolicy,
        clock: Clock | None = None,
        numbering: NumberingService | None = None,
        history: HistoryService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._departments = departments
        self._access = access_policy
        self._resolver = DocumentResolver(documents)
        self._numbering = numbering or NumberingService(session)
        self._history = history or HistoryService(session, self._clock)
        self._ledger = VerificationLedgerService(
            session, self._history, access_policy, self._clock,
        )
        self._discrepancies = DiscrepancyService(session)
        self._transmittal = TransmittalService(session, departments, documents, self._clock)
        self._custody = CustodyService(session)
        self._workflow = DISTRIBUTION_WORKFLOW

    @property
    def history(self) -> HistoryService:
        return self._history

    @property
    def ledger(self) -> VerificationLedgerService:
        return self._ledger

    @property
    def discrepancies(self) -> DiscrepancyService:
        return self._discrepancies

    @property
    def transmittal(self) -> TransmittalService:
        return self._transmittal

    @property
    def custody(self) -> CustodyService:
        return self._custody

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _department(self, department_id: UUID) -> Department:
        department = self._departments.get(department_id)
        if department is None:
            raise DepartmentNotFoundError(str(department_id))
        return department

    def _begin(
        self,
        distribution_id: UUID,
        action: str,
        actor_id: UUID,
    ) -> tuple[Distribution, Transition]:
        """Lock the row, authorize the actor and check the transition's from-state."""
        transition = self._workflow.transition_for(action)
        distribution = load_distribution(self.session, distribution_id)
        authorize(
            self._access,
            actor_id,
            department_for(distribution, transition.performed_by),
            action,
        )
        if distribution.current_status != transition.from_state:
            logger.warning(
                "transition_rejected",
                extra={
                    "action": action,
                    "current_status": distribution.status,
                    "expected_status": transition.from_state.value,
                },
            )
            raise InvalidTransitionError(
                str(distribution.id),
                action,
                distribution.status,
                transition.from_state.value,
            )
        return distribution, transition

    def _apply(self, distribution: Distribution, transition: Transition) -> datetime:
        """Move to the edge's to-state and stamp its timestamp."""
        at = next_timestamp(self._clock, distribution)
        from_status = distribution.status
        distribution.status = transition.to_state.value
        if transition.stamps is not None:
            setattr(distribution, transition.stamps, at)
        logger.info(
            "transition_applied",
            extra={
                "action": transition.action,
                "from_status": from_status,
                "to_status": transition.to_state.value,
            },
        )
        return at

    def _view(
        self,
        distribution: Distribution,
        warnings: tuple[DistributionWarning, ...] = (),
    ) -> DistributionView:
        self._flush("Distribution", distribution.id)
        return DistributionView.from_model(distribution, warnings)

    def _require_complete(self, distribution: Distribution, side: VerificationSide) -> None:
        pending = self._ledger.unverified(distribution, side)
        if pending or not distribution.documents:
            raise IncompleteVerificationError(
                str(distribution.id),
                side.value,
                tuple(str(ref) for ref in pending),
            )

    # ------------------------------------------------------------------
    # create / attach / detach / update
    # ------------------------------------------------------------------

    def create(
        self,
        type_id: UUID,
        origin_department_id: UUID,
        destination_department_id: UUID,
        actor_id: UUID,
        documents: Iterable[RefLike] = (),
        notes: str | None = None,
    ) -> DistributionView:
        """
        Create a draft distribution.

        Postconditions:
            - status is ``draft``; ``distribution_number`` is unique.
            - One ledger entry per attached document.
            - One ``created`` history entry.
            - Location-mismatch warnings are returned, not raised.
        """
        with LogContext.bind(actor_id=actor_id, operation="create"):
            if origin_department_id == destination_department_id:
                raise SameDepartmentError(str(origin_department_id))

            origin = self._department(origin_department_id)
            self._department(destination_department_id)

            dist_type = self.session.get(DistributionType, type_id)
            if dist_type is None:
                raise DistributionTypeNotFoundError(str(type_id))

            authorize(self._access, actor_id, origin_department_id, "create")

            infos = self._resolver.resolve_new(documents)
            warnings = self._resolver.location_warnings(infos, origin.location_code)

            at = self._clock.now()
            number = self._numbering.next_number(dist_type.code, origin.location_code, at)

            distribution = Distribution(
                distribution_number=number,
                type_id=dist_type.id,
                distribution_type=dist_type,
                origin_department_id=origin_department_id,
                destination_department_id=destination_department_id,
                status=DistributionStatus.DRAFT.value,
                has_discrepancies=False,
                created_by=actor_id,
                notes=notes,
                created_at=at,
                history_seq=0,
                attach_seq=0,
            )
            self.session.add(distribution)
            self._attach(distribution, [info.ref for info in infos], actor_id, at)
            self._flush("Distribution", distribution.id)

            self._history.record(
                distribution,
                HistoryAction.CREATED,
                actor_id,
                detail={
                    "distribution_number": number,
                    "type_code": dist_type.code,
                    "origin_department_id": origin_department_id,
                    "destination_department_id": destination_department_id,
                    "documents": [info.ref.to_dict() for info in infos],
                    "notes": notes,
                },
                occurred_at=at,
            )
            logger.info(
                "distribution_created",
                extra={
                    "distribution_id": str(distribution.id),
                    "distribution_number": number,
                    "document_count": len(infos),
                    "warning_count": len(warnings),
                },
            )
            return self._view(distribution, warnings)

    def _attach(
        self,
        distribution: Distribution,
        refs: list[DocumentRef],
        actor_id: UUID,
        at,
    ) -> None:
        for ref in refs:
            distribution.attach_seq = (distribution.attach_seq or 0) + 1
            position = distribution.attach_seq
            distribution.documents.append(
                DistributionDocument(
                    document_kind=ref.kind.value,
                    document_id=ref.id,
                    position=position,
                    attached_at=at,
                    attached_by=actor_id,
                )
            )
            self._ledger.ensure_entry(distribution, ref, position, at)

    def attach_documents(
        self,
        distribution_id: UUID,
        documents: Iterable[RefLike],
        actor_id: UUID,
    ) -> DistributionView:
        """Attach documents to a draft distribution."""
        with LogContext.bind(
            distribution_id=distribution_id, actor_id=actor_id, operation="attach_documents",
        ):
            distribution, _ = self._begin(distribution_id, "attach_documents", actor_id)
            infos = self._resolver.resolve_new(
                documents, distribution.document_refs, str(distribution.id),
            )
            if not infos:
                return self._view(distribution)

            origin = self._department(distribution.origin_department_id)
            warnings = self._resolver.location_warnings(infos, origin.location_code)

            at = next_timestamp(self._clock, distribution)
            self._attach(distribution, [info.ref for info in infos], actor_id, at)
            self._flush("Distribution", distribution.id)
            self._history.record(
                distribution,
                HistoryAction.DOCUMENTS_ATTACHED,
                actor_id,
                detail={"documents": [info.ref.to_dict() for info in infos]},
                occurred_at=at,
            )
            return self._view(distribution, warnings)

    def detach_document(
        self,
        distribution_id: UUID,
        document: RefLike,
        actor_id: UUID,
    ) -> DistributionView:
        """Detach one document from a draft; its ledger entry is invalidated."""
        ref = to_ref(document)
        with LogContext.bind(
            distribution_id=distribution_id, actor_id=actor_id, operation="detach_document",
        ):
            distribution, _ = self._begin(distribution_id, "detach_document", actor_id)
            attached = distribution.find_document(ref)
            if attached is None:
                raise UnknownDocumentError(str(distribution.id), str(ref))

            at = next_timestamp(self._clock, distribution)
            distribution.documents.remove(attached)
            self._ledger.invalidate(distribution, ref, at)
            self._flush("Distribution", distribution.id)
            self._history.record(
                distribution,
                HistoryAction.DOCUMENT_DETACHED,
                actor_id,
                detail={"document": ref.to_dict()},
                occurred_at=at,
            )
            return self._view(distribution)

    def update(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        destination_department_id: UUID | None = None,
        notes: str | None = None,
    ) -> DistributionView:
        """
        Change the destination or notes of a draft.

        The type cannot change: its code is part of the distribution number.
        """
        with LogContext.bind(
            distribution_id=distribution_id, actor_id=actor_id, operation="update",
        ):
            distribution, _ = self._begin(distribution_id, "update", actor_id)
            changes: dict[str, dict[str, Any]] = {}

            if (
                destination_department_id is not None
                and destination_department_id != distribution.destination_department_id
            ):
                if destination_department_id == distribution.origin_department_id:
                    raise SameDepartmentError(str(destination_department_id))
                self._department(destination_department_id)
                changes["destination_department_id"] = {
                    "from": distribution.destination_department_id,
                    "to": destination_department_id,
                }
                distribution.destination_department_id = destination_department_id

            if notes is not None and notes != distribution.notes:
                changes["notes"] = {"from": distribution.notes, "to": notes}
                distribution.notes = notes

            if not changes:
                return self._view(distribution)

            at = next_timestamp(self._clock, distribution)
            self._flush("Distribution", distribution.id)
            self._history.record(
                distribution,
                HistoryAction.UPDATED,
                actor_id,
                detail={"changes": changes},
                occurred_at=at,
            )
            return self._view(distribution)

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def verify_sender(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        verifications: VerificationItems = (),
        verification_notes: str | None = None,
    ) -> DistributionView:
        """
        draft -> verified_sender.

        ``verifications`` (optional) are merged into the ledger first.
        Every attached document must then carry a sender verification.
        """
        with LogContext.bind(
            distribution_id=distribution_id, actor_id=actor_id, operation="verify_sender",
        ):
            distribution, transition = self._begin(distribution_id, "verify_sender", actor_id)
            verifications = list(verifications)
            if verifications:
                at = next_timestamp(self._clock, distribution)
                self._ledger.record_call(
                    distribution,
                    VerificationSide.SENDER,
                    verifications,
                    actor_id,
                    at,
                    verification_notes,
                )

            self._require_complete(distribution, VerificationSide.SENDER)

            at = self._apply(distribution, transition)
            distribution.sender_verified_by = actor_id
            summary = self._ledger.summary(distribution, VerificationSide.SENDER)
            self._flush("Distribution", distribution.id)
            self._history.record(
                distribution,
                HistoryAction.SENDER_VERIFIED,
                actor_id,
                detail={
                    "status_counts": summary.status_counts,
                    "verification_notes": verification_notes,
                },
                occurred_at=at,
            )
            return self._view(distribution)

    def send(self, distribution_id: UUID, actor_id: UUID) -> DistributionView:
        """verified_sender -> sent; snapshots the transmittal advice."""
        with LogContext.bind(
            distribution_id=distribution_id, actor_id=actor_id, operation="send",
        ):
            distribution, transition = self._begin(distribution_id, "send", actor_id)
            at = self._apply(distribution, transition)
            advice = self._transmittal.generate(distribution, actor_id, at)
            self._history.record(
                distribution,
                HistoryAction.SENT,
                actor_id,
                detail={
                    "advice_hash": advice.content_hash,
                    "total_documents": advice.total_documents,
                    "destination_department_id": distribution.destination_department_id,
                },
                occurred_at=at,
            )
            return self._view(distribution)

    def receive(self, distribution_id: UUID, actor_id: UUID) -> DistributionView:
        """sent -> received."""
        with LogContext.bind(
            distribution_id=distribution_id, actor_id=actor_id, operation="receive",
        ):
            distribution, transition = self._begin(distribution_id, "receive", actor_id)
            at = self._apply(distribution, transition)
            self._flush("Distribution", distribution.id)
            self._history.record(
                distribution,
                HistoryAction.RECEIVED,
                actor_id,
                detail={"origin_department_id": distribution.origin_department_id},
                occurred_at=at,
            )
            return self._view(distribution)

    def verify_receiver(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        verifications: VerificationItems = (),
        verification_notes: str | None = None,
    ) -> DistributionView:
        """
        received -> verified_receiver.

        Runs the discrepancy engine, caches ``has_discrepancies`` and writes
        custody movements for every document not reported missing.
        """
        with LogContext.bind(
            distribution_id=distribution_id, actor_id=actor_id, operation="verify_receiver",
        ):
            distribution, transition = self._begin(distribution_id, "verify_receiver", actor_id)
            verifications = list(verifications)
            if verifications:
                at = next_timestamp(self._clock, distribution)
                self._ledger.record_call(
                    distribution,
                    VerificationSide.RECEIVER,
                    verifications,
                    actor_id,
                    at,
                    verification_notes,
                )

            self._require_complete(distribution, VerificationSide.RECEIVER)

            at = self._apply(distribution, transition)
            distribution.receiver_verified_by = actor_id
            result = self._discrepancies.evaluate_model(distribution)
            distribution.has_discrepancies = result.has_discrepancies
            logger.info(
                "discrepancy_evaluated",
                extra={
                    "distribution_id": str(distribution.id),
                    "has_discrepancies": result.has_discrepancies,
                    "discrepant_count": len(result.discrepant),
                },
            )

            origin = self._department(distribution.origin_department_id)
            destination = self._department(distribution.destination_department_id)
            self._custody.record_receipt(
                distribution.id,
                distribution.distribution_number,
                self._ledger.views(distribution),
                origin.location_code,
                destination.location_code,
                actor_id,
                at,
            )

            self._history.record(
                distribution,
                HistoryAction.RECEIVER_VERIFIED,
                actor_id,
                detail={
                    "has_discrepancies": result.has_discrepancies,
                    "discrepant": [ref.to_dict() for ref in result.discrepant],
                    "missing_count": result.missing_count,
                    "damaged_count": result.damaged_count,
                    "verification_notes": verification_notes,
                },
                occurred_at=at,
            )
            return self._view(distribution)

    def complete(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        force: bool = False,
    ) -> DistributionView:
        """
        verified_receiver -> completed.

        Blocked with DiscrepanciesPresentError (carrying the discrepant
        refs) while discrepancies exist, unless ``force`` is set by an actor
        the access policy allows to force completion.
        """
        with LogContext.bind(
            distribution_id=distribution_id, actor_id=actor_id, operation="complete",
        ):
            distribution, transition = self._begin(distribution_id, "complete", actor_id)

            detail: dict[str, Any] = {"forced": False}
            if distribution.has_discrepancies:
                result: DiscrepancyResult = self._discrepancies.evaluate_model(distribution)
                discrepant = tuple(str(ref) for ref in result.discrepant)
                if not force:
                    logger.warning(
                        "transition_rejected",
                        extra={"action": "complete", "discrepant": list(discrepant)},
                    )
                    raise DiscrepanciesPresentError(str(distribution.id), discrepant)

                allowed, reason = self._access.can_force_complete(actor_id)
                if not allowed:
                    logger.warning(
                        "authorization_denied",
                        extra={"operation": "force_complete", "reason": reason},
                    )
                    raise ForbiddenError(str(actor_id), "force_complete", reason)

                detail = {
                    "forced": True,
                    "discrepant": [ref.to_dict() for ref in result.discrepant],
                }
                logger.warning(
                    "forced_completion",
                    extra={"discrepant_count": len(discrepant)},
                )

            at = self._apply(distribution, transition)
            self._flush("Distribution", distribution.id)
            self._history.record(
                distribution,
                HistoryAction.COMPLETED,
                actor_id,
                detail=detail,
                occurred_at=at,
            )
            return self._view(distribution)

    def delete(self, distribution_id: UUID, actor_id: UUID) -> DeletedDistribution:
        """
        Hard-delete a draft.

        A ``deleted`` history entry and a DistributionArchive snapshot are
        written first; the distribution, its attachments and its ledger are
        then removed.  History rows are retained.
        """
        with LogContext.bind(
            distribution_id=distribution_id, actor_id=actor_id, operation="delete",
        ):
            distribution, _ = self._begin(distribution_id, "delete", actor_id)
            at = next_timestamp(self._clock, distribution)
            number = distribution.distribution_number

            self._history.record(
                distribution,
                HistoryAction.DELETED,
                actor_id,
                detail={"distribution_number": number},
                occurred_at=at,
            )

            snapshot = to_json_safe(self._snapshot(distribution))
            archive = DistributionArchive(
                distribution_id=distribution.id,
                distribution_number=number,
                snapshot=snapshot,
                snapshot_hash=hash_payload(snapshot),
                archived_at=at,
                archived_by=actor_id,
                reason="deleted",
            )
            self.session.add(archive)
            self.session.delete(distribution)
            self._flush("Distribution", distribution_id)

            logger.info(
                "distribution_deleted",
                extra={"distribution_number": number, "archive_id": str(archive.id)},
            )
            return DeletedDistribution(
                distribution_id=distribution_id,
                distribution_number=number,
                archive_id=archive.id,
                deleted_at=at,
                deleted_by=actor_id,
            )

    def _snapshot(self, distribution: Distribution) -> dict[str, Any]:
        view = DistributionView.from_model(distribution)
        return {
            "distribution": {
                "id": view.id,
                "distribution_number": view.distribution_number,
                "type_code": view.type.code,
                "origin_department_id": view.origin_department_id,
                "destination_department_id": view.destination_department_id,
                "status": view.status.value,
                "created_by": view.created_by,
                "created_at": view.created_at,
                "notes": view.notes,
            },
            "documents": [ref.to_dict() for ref in view.documents],
            "ledger": [e.to_view().to_dict() for e in distribution.entries],
            "history": [
                {
                    "seq": record.seq,
                    "action": record.action,
                    "actor_id": record.actor_id,
                    "occurred_at": record.occurred_at,
                    "detail": record.detail,
                    "hash": record.hash,
                }
                for record in self._history.entries_for(distribution.id)
            ],
        }

    # ------------------------------------------------------------------
    # Distribution types and plain reads
    # ------------------------------------------------------------------

    def create_type(
        self,
        code: str,
        name: str,
        priority: int = 5,
        color: str = "#6c757d",
        description: str | None = None,
        actor_id: UUID | None = None,
    ) -> DistributionTypeInfo:
        """Register a distribution type; ``code`` becomes part of every number."""
        dist_type = DistributionType(
            code=code,
            name=name,
            priority=priority,
            color=color,
            description=description,
            created_by_id=actor_id,
        )
        if self.type_by_code(dist_type.code) is not None:
            logger.warning("distribution_type_rejected", extra={"code": dist_type.code})
            raise InvalidDistributionTypeError("code", dist_type.code, "already exists")
        self.session.add(dist_type)
        self._flush("DistributionType", code)
        logger.info(
            "distribution_type_created",
            extra={"type_id": str(dist_type.id), "code": dist_type.code},
        )
        return DistributionTypeInfo.from_model(dist_type)

    def get(self, distribution_id: UUID) -> DistributionView:
        distribution = load_distribution(self.session, distribution_id, for_update=False)
        return DistributionView.from_model(distribution)

    def type_by_code(self, code: str) -> DistributionType | None:
        return self.session.execute(
            select(DistributionType).where(DistributionType.code == code.upper())
        ).scalar_one_or_none()
