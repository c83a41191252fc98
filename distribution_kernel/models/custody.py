"""
Module: distribution_kernel.models.custody
Responsibility: ORM persistence for the document custody log.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value objects only.

Invariants enforced:
    - Append-only (db/immutability.py).
    - ``seq`` is globally monotonic (SequenceService ``document_movement``),
      giving a total order per document even when timestamps tie.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from distribution_kernel.db.base import Base, UTCDateTime, UUIDString
from distribution_kernel.domain.documents import DocumentKind, DocumentRef


class DocumentMovement(Base):
    """One change of a document's physical location."""

    __tablename__ = "document_movements"

    __table_args__ = (
        Index("idx_document_movements_ref", "document_kind", "document_id", "seq"),
        Index("idx_document_movements_distribution", "distribution_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    document_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    document_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    from_location: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_location: Mapped[str] = mapped_column(String(50), nullable=False)
    distribution_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    moved_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    moved_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    reason: Mapped[str] = mapped_column(String(200), nullable=False)

    @property
    def ref(self) -> DocumentRef:
        return DocumentRef(DocumentKind(self.document_kind), self.document_id)

    def __repr__(self) -> str:
        return f"<DocumentMovement {self.ref} {self.from_location}->{self.to_location}>"
