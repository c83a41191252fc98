"""
distribution_services.portal -- transactional facade over the kernel.

Responsibility:
    The one place that commits.  Each public method opens a session scope,
    wires the kernel services for that transaction, runs exactly one kernel
    operation, commits, and only then hands the history records written by
    that operation to the notification dispatcher.

Architecture position:
    Services -- the outermost layer callers (a web view, a CLI, a test)
    talk to.  Constructs every kernel service per transaction, so no
    session outlives its operation.

Invariants enforced:
    - One operation, one transaction: a transition, its ledger writes, its
      advice snapshot and its history entry commit or roll back together.
    - Notifications are attempted only after a successful commit; records
      of a rolled-back operation are never delivered.

Failure modes:
    - Every kernel error propagates unchanged after rollback.

Usage:
    portal = DistributionPortal(
        session_factory=get_session_factory(),
        documents=store,
        departments=directory,
        identities=identities,
        config=get_active_config(),
        sinks=[RecordingSink()],
    )
    view = portal.create(type_id, origin_id, destination_id, actor_id, documents=[...])
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from distribution_config.schema import DistributionConfig
from distribution_kernel.db.engine import session_scope
from distribution_kernel.domain.clock import Clock, SystemClock
from distribution_kernel.domain.discrepancy import DiscrepancyResult
from distribution_kernel.domain.documents import DocumentRef
from distribution_kernel.domain.dtos import (
    CustodyMovement,
    DeletedDistribution,
    DistributionFilters,
    DistributionReport,
    DistributionTypeInfo,
    DistributionView,
    HistoryRecord,
    Page,
    TransmittalAdvice,
)
from distribution_kernel.domain.ports import (
    AuditSink,
    DepartmentDirectory,
    DocumentStore,
    IdentityProvider,
)
from distribution_kernel.domain.verification import VerificationEntryView, VerificationSummary
from distribution_kernel.logging_config import LogContext, get_logger
from distribution_kernel.selectors.distribution_selector import DistributionSelector
from distribution_kernel.services.distribution_service import (
    DistributionService,
    VerificationItems,
)
from distribution_kernel.services.document_resolver import RefLike, to_ref
from distribution_kernel.services.history_service import HistoryService
from distribution_kernel.services.numbering_service import NumberingService
from distribution_services.authorization import RoleBasedAccessPolicy
from distribution_services.export import export_distributions, export_report
from distribution_services.notifications import NotificationDispatcher

logger = get_logger("services.portal")


class DistributionPortal:
    """Request-scoped facade: one kernel operation per transaction."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        documents: DocumentStore,
        departments: DepartmentDirectory,
        identities: IdentityProvider,
        config: DistributionConfig,
        clock: Clock | None = None,
        sinks: Iterable[AuditSink] = (),
    ) -> None:
        self._factory = session_factory
        self._documents = documents
        self._departments = departments
        self._config = config
        self._clock = clock or SystemClock()
        self._access = RoleBasedAccessPolicy(identities, config.authorization)
        self._dispatcher = NotificationDispatcher(sinks, config.notifications)

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    def _service(self, session: Session) -> DistributionService:
        return DistributionService(
            session,
            documents=self._documents,
            departments=self._departments,
            access_policy=self._access,
            clock=self._clock,
            numbering=NumberingService(
                session,
                template=self._config.numbering.template,
                period_format=self._config.numbering.period_format,
            ),
            history=HistoryService(session, self._clock),
        )

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[DistributionService]:
        with LogContext.bind(correlation_id=str(uuid4()), operation=operation):
            with session_scope(self._factory) as session:
                service = self._service(session)
                yield service
            records = service.history.drain_pending()
            if records:
                self._dispatcher.dispatch(records)

    @contextmanager
    def _read(self) -> Iterator[Session]:
        session = self._factory()
        try:
            yield session
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Distribution types
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
        with self._transaction("create_type") as service:
            return service.create_type(code, name, priority, color, description, actor_id)

    # ------------------------------------------------------------------
    # Transitions
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
        with self._transaction("create") as service:
            return service.create(
                type_id,
                origin_department_id,
                destination_department_id,
                actor_id,
                documents=documents,
                notes=notes,
            )

    def attach_documents(
        self, distribution_id: UUID, documents: Iterable[RefLike], actor_id: UUID,
    ) -> DistributionView:
        with self._transaction("attach_documents") as service:
            return service.attach_documents(distribution_id, documents, actor_id)

    def detach_document(
        self, distribution_id: UUID, document: RefLike, actor_id: UUID,
    ) -> DistributionView:
        with self._transaction("detach_document") as service:
            return service.detach_document(distribution_id, document, actor_id)

    def update(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        destination_department_id: UUID | None = None,
        notes: str | None = None,
    ) -> DistributionView:
        with self._transaction("update") as service:
            return service.update(
                distribution_id,
                actor_id,
                destination_department_id=destination_department_id,
                notes=notes,
            )

    def verify_sender(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        verifications: VerificationItems = (),
        verification_notes: str | None = None,
    ) -> DistributionView:
        with self._transaction("verify_sender") as service:
            return service.verify_sender(
                distribution_id, actor_id, verifications, verification_notes,
            )

    def send(self, distribution_id: UUID, actor_id: UUID) -> DistributionView:
        with self._transaction("send") as service:
            return service.send(distribution_id, actor_id)

    def receive(self, distribution_id: UUID, actor_id: UUID) -> DistributionView:
        with self._transaction("receive") as service:
            return service.receive(distribution_id, actor_id)

    def verify_receiver(
        self,
        distribution_id: UUID,
        actor_id: UUID,
        verifications: VerificationItems = (),
        verification_notes: str | None = None,
    ) -> DistributionView:
        with self._transaction("verify_receiver") as service:
            return service.verify_receiver(
                distribution_id, actor_id, verifications, verification_notes,
            )

    def complete(
        self, distribution_id: UUID, actor_id: UUID, force: bool = False,
    ) -> DistributionView:
        with self._transaction("complete") as service:
            return service.complete(distribution_id, actor_id, force=force)

    def delete(self, distribution_id: UUID, actor_id: UUID) -> DeletedDistribution:
        with self._transaction("delete") as service:
            return service.delete(distribution_id, actor_id)

    # ------------------------------------------------------------------
    # Verification ledger
    # ------------------------------------------------------------------

    def record_sender_verification(
        self,
        distribution_id: UUID,
        items: VerificationItems,
        actor_id: UUID,
        verification_notes: str | None = None,
    ) -> VerificationSummary:
        with self._transaction("record_sender_verification") as service:
            return service.ledger.record_sender_verification(
                distribution_id, items, actor_id, verification_notes,
            )

    def record_receiver_verification(
        self,
        distribution_id: UUID,
        items: VerificationItems,
        actor_id: UUID,
        verification_notes: str | None = None,
    ) -> VerificationSummary:
        with self._transaction("record_receiver_verification") as service:
            return service.ledger.record_receiver_verification(
                distribution_id, items, actor_id, verification_notes,
            )

    def get_entries(self, distribution_id: UUID) -> tuple[VerificationEntryView, ...]:
        with self._read() as session:
            return self._service(session).ledger.get_entries(distribution_id)

    # ------------------------------------------------------------------
    # Discrepancies
    # ------------------------------------------------------------------

    def evaluate(self, distribution_id: UUID) -> DiscrepancyResult:
        with self._read() as session:
            return self._service(session).discrepancies.evaluate(distribution_id)

    def recompute(self, distribution_id: UUID) -> DiscrepancyResult:
        with self._transaction("recompute") as service:
            return service.discrepancies.recompute(distribution_id)

    # ------------------------------------------------------------------
    # Transmittal advice
    # ------------------------------------------------------------------

    def generate_advice(self, distribution_id: UUID) -> TransmittalAdvice:
        """The advice snapshotted at send time."""
        with self._read() as session:
            return self._service(session).transmittal.get_advice(distribution_id)

    def verify_advice(self, distribution_id: UUID) -> bool:
        with self._read() as session:
            return self._service(session).transmittal.verify_advice(distribution_id)

    def preview_advice(self, distribution_id: UUID) -> TransmittalAdvice:
        with self._read() as session:
            return self._service(session).transmittal.preview_advice(distribution_id)

    # ------------------------------------------------------------------
    # History and read side
    # ------------------------------------------------------------------

    def history(self, distribution_id: UUID) -> tuple[HistoryRecord, ...]:
        with self._read() as session:
            return DistributionSelector(session).history(distribution_id)

    def validate_chain(self, distribution_id: UUID) -> bool:
        with self._read() as session:
            return HistoryService(session, self._clock).validate_chain(distribution_id)

    def get(self, distribution_id: UUID) -> DistributionView:
        with self._read() as session:
            return DistributionSelector(session).get(distribution_id)

    def list(self, filters: DistributionFilters | None = None) -> Page[DistributionView]:
        with self._read() as session:
            return DistributionSelector(session).list(filters)

    def by_department(
        self, department_id: UUID, page: int = 1, per_page: int = 15,
    ) -> Page[DistributionView]:
        with self._read() as session:
            return DistributionSelector(session).by_department(department_id, page, per_page)

    def report(self, distribution_id: UUID) -> DistributionReport:
        with self._read() as session:
            return DistributionSelector(session).report(distribution_id)

    def custody_history(self, document: RefLike) -> tuple[CustodyMovement, ...]:
        ref: DocumentRef = to_ref(document)
        with self._read() as session:
            return DistributionSelector(session).custody_history(ref)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_report(self, distribution_id: UUID, path: Path | str) -> Path:
        return export_report(self.report(distribution_id), path)

    def export_list(
        self, path: Path | str, filters: DistributionFilters | None = None,
    ) -> Path:
        """Export every page matching ``filters`` to one sheet."""
        filters = filters or DistributionFilters(per_page=100)
        views: list[DistributionView] = []
        with self._read() as session:
            selector = DistributionSelector(session)
            page = selector.list(filters)
            views.extend(page.items)
            while page.has_next:
                filters = replace(filters, page=filters.page + 1)
                page = selector.list(filters)
                views.extend(page.items)
        return export_distributions(views, path)
