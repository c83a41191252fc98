"""
Module: distribution_kernel.selectors.distribution_selector
Responsibility: Read-only queries over distributions: lookup, filtered and
    paginated listing, per-department/status/user helpers, the report
    projection, history and custody trails.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: no mutations performed on any queried data.
    - Listing order is newest first (``created_at`` desc, then number) so
      pages are stable.
    - ``history`` is ordered by ``seq``; ``custody_history`` by the
      movement sequence.

Failure modes:
    - DistributionNotFoundError from ``get``/``report``.
    - ValueError from DistributionFilters on bad paging input.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from distribution_kernel.domain.documents import DocumentKind, DocumentRef
from distribution_kernel.domain.dtos import (
    CustodyMovement,
    DistributionFilters,
    DistributionReport,
    DistributionView,
    DocumentSummary,
    HistoryRecord,
    Page,
    TimelineSummary,
)
from distribution_kernel.domain.workflow import DistributionStatus
from distribution_kernel.exceptions import DistributionNotFoundError
from distribution_kernel.models.custody import DocumentMovement
from distribution_kernel.models.distribution import Distribution
from distribution_kernel.models.history import HistoryEntry
from distribution_kernel.selectors.base import BaseSelector


class DistributionSelector(BaseSelector[Distribution]):
    """
    Selector for distribution queries.

    Guarantees:
        - Every public method returns DTOs.
        - Attachments are loaded eagerly by the mapping (selectin), so a
          page of N distributions costs a constant number of queries.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _load(self, distribution_id: UUID) -> Distribution:
        distribution = self.session.execute(
            select(Distribution).where(Distribution.id == distribution_id)
        ).unique().scalar_one_or_none()
        if distribution is None:
            raise DistributionNotFoundError(str(distribution_id))
        return distribution

    def _page(self, conditions: Sequence, filters: DistributionFilters) -> Page[DistributionView]:
        total = self.session.execute(
            select(func.count(Distribution.id)).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(Distribution)
            .where(*conditions)
            .order_by(Distribution.created_at.desc(), Distribution.distribution_number.desc())
            .offset((filters.page - 1) * filters.per_page)
            .limit(filters.per_page)
        ).unique().scalars().all()
        return Page(
            items=tuple(DistributionView.from_model(d) for d in rows),
            total=total,
            page=filters.page,
            per_page=filters.per_page,
        )

    def get(self, distribution_id: UUID) -> DistributionView:
        return DistributionView.from_model(self._load(distribution_id))

    def find_by_number(self, distribution_number: str) -> DistributionView | None:
        distribution = self.session.execute(
            select(Distribution).where(Distribution.distribution_number == distribution_number)
        ).unique().scalar_one_or_none()
        if distribution is None:
            return None
        return DistributionView.from_model(distribution)

    def list(self, filters: DistributionFilters | None = None) -> Page[DistributionView]:
        """
        Filtered, paginated listing.

        ``search`` matches the distribution number or notes
        (case-insensitive substring).  ``date_from``/``date_to`` bound
        ``created_at`` inclusively.
        """
        filters = filters or DistributionFilters()
        conditions = []
        if filters.status is not None:
            conditions.append(Distribution.status == filters.status.value)
        if filters.type_id is not None:
            conditions.append(Distribution.type_id == filters.type_id)
        if filters.origin_department_id is not None:
            conditions.append(Distribution.origin_department_id == filters.origin_department_id)
        if filters.destination_department_id is not None:
            conditions.append(
                Distribution.destination_department_id == filters.destination_department_id
            )
        if filters.created_by is not None:
            conditions.append(Distribution.created_by == filters.created_by)
        if filters.date_from is not None:
            conditions.append(Distribution.created_at >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(Distribution.created_at <= filters.date_to)
        if filters.search:
            pattern = f"%{filters.search.lower()}%"
            conditions.append(
                or_(
                    func.lower(Distribution.distribution_number).like(pattern),
                    func.lower(Distribution.notes).like(pattern),
                )
            )

        return self._page(conditions, filters)

    def by_department(
        self,
        department_id: UUID,
        page: int = 1,
        per_page: int = 15,
    ) -> Page[DistributionView]:
        """Distributions where the department is origin or destination."""
        condition = or_(
            Distribution.origin_department_id == department_id,
            Distribution.destination_department_id == department_id,
        )
        return self._page([condition], DistributionFilters(page=page, per_page=per_page))

    def by_status(
        self,
        status: DistributionStatus,
        page: int = 1,
        per_page: int = 15,
    ) -> Page[DistributionView]:
        return self.list(DistributionFilters(status=status, page=page, per_page=per_page))

    def by_user(
        self,
        user_id: UUID,
        page: int = 1,
        per_page: int = 15,
    ) -> Page[DistributionView]:
        return self.list(DistributionFilters(created_by=user_id, page=page, per_page=per_page))

    def history(self, distribution_id: UUID) -> tuple[HistoryRecord, ...]:
        """History of one distribution, oldest first; survives deletion."""
        entries = self.session.execute(
            select(HistoryEntry)
            .where(HistoryEntry.distribution_id == distribution_id)
            .order_by(HistoryEntry.seq)
        ).scalars().all()
        return tuple(HistoryRecord.from_model(e) for e in entries)

    def custody_history(self, ref: DocumentRef) -> tuple[CustodyMovement, ...]:
        movements = self.session.execute(
            select(DocumentMovement)
            .where(
                DocumentMovement.document_kind == ref.kind.value,
                DocumentMovement.document_id == ref.id,
            )
            .order_by(DocumentMovement.seq)
        ).scalars().all()
        return tuple(CustodyMovement.from_model(m) for m in movements)

    def report(self, distribution_id: UUID) -> DistributionReport:
        """Aggregate, timeline summary, document summary and full history."""
        view = self.get(distribution_id)
        history = self.history(distribution_id)

        invoices = sum(1 for ref in view.documents if ref.kind == DocumentKind.INVOICE)
        additional = sum(
            1 for ref in view.documents if ref.kind == DocumentKind.ADDITIONAL_DOCUMENT
        )

        return DistributionReport(
            distribution=view,
            timeline_summary=TimelineSummary(
                total_actions=len(history),
                current_status=view.status,
                created_at=view.created_at,
                last_action_at=history[-1].occurred_at if history else None,
                is_complete=view.status == DistributionStatus.COMPLETED,
                has_discrepancies=view.has_discrepancies,
            ),
            document_summary=DocumentSummary(
                total_invoices=invoices,
                total_additional_documents=additional,
                total_documents=len(view.documents),
            ),
            history=history,
        )
