"""
Module: distribution_kernel.models.distribution
Responsibility: ORM persistence for distribution types, distributions and
    their ordered attachment sets.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value objects only.

Invariants enforced:
    - distribution_number is unique.
    - origin_department_id != destination_department_id (CHECK constraint;
      the service raises SameDepartmentError before reaching the database).
    - (distribution_id, document_kind, document_id) is unique: no document is
      attached twice to the same distribution.
    - DistributionType.code is exactly one character and unique; priority
      is within 1..10; color is a ``#RRGGBB`` hex string.
    - ``version`` is the optimistic version column; an UPDATE against a
      stale version raises StaleDataError, surfaced by services as
      ConflictingUpdateError.

Failure modes:
    - InvalidDistributionTypeError from the attribute validators.
    - IntegrityError on duplicate number / attachment.
    - ImmutabilityViolationError when a type in use is edited or deleted
      (see db/immutability.py).
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from distribution_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from distribution_kernel.domain.documents import DocumentKind, DocumentRef
from distribution_kernel.domain.workflow import DistributionStatus
from distribution_kernel.exceptions import InvalidDistributionTypeError

if TYPE_CHECKING:
    from distribution_kernel.models.verification import VerificationEntry

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in DistributionStatus)


class DistributionType(TrackedBase):
    """
    Reference data: the kind of distribution (e.g. "U" for urgent).

    Contract:
        ``code`` is the one-character prefix used in distribution numbers.
        Once any non-draft distribution references the type it may no
        longer be edited or deleted.
    """

    __tablename__ = "distribution_types"

    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 10", name="ck_distribution_types_priority"),
        CheckConstraint("length(code) = 1", name="ck_distribution_types_code_length"),
    )

    code: Mapped[str] = mapped_column(String(1), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#6c757d")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    @validates("code")
    def _validate_code(self, key: str, value: str) -> str:
        if value is None or len(value) != 1 or not value.strip():
            raise InvalidDistributionTypeError("code", str(value), "must be exactly one character")
        return value.upper()

    @validates("priority")
    def _validate_priority(self, key: str, value: int) -> int:
        if value is None or not 1 <= int(value) <= 10:
            raise InvalidDistributionTypeError("priority", str(value), "must be between 1 and 10")
        return int(value)

    @validates("color")
    def _validate_color(self, key: str, value: str) -> str:
        if value is None or not _HEX_COLOR.match(value):
            raise InvalidDistributionTypeError("color", str(value), "must be a #RRGGBB hex colour")
        return value.lower()

    def __repr__(self) -> str:
        return f"<DistributionType {self.code} {self.name!r}>"


class Distribution(Base):
    """
    A hand-off of a document bundle from one department to another.

    Contract:
        ``status`` changes only through DistributionService transitions.
        Each lifecycle timestamp is set exactly once, by the matching
        transition, and never cleared.

    Guarantees:
        - ``history_seq`` is the per-distribution counter for history
          entries; it is advanced on the (locked) distribution row.
        - ``attach_seq`` orders attachments and ledger entries.
        - ``version`` increments on every UPDATE of the row.
    """

    __tablename__ = "distributions"

    __table_args__ = (
        CheckConstraint(
            "origin_department_id <> destination_department_id",
            name="ck_distributions_distinct_departments",
        ),
        CheckConstraint(
            f"status IN ({_STATUS_VALUES})",
            name="ck_distributions_valid_status",
        ),
        Index("idx_distributions_status", "status"),
        Index("idx_distributions_origin", "origin_department_id", "status"),
        Index("idx_distributions_destination", "destination_department_id", "status"),
        Index("idx_distributions_created", "created_at"),
    )

    distribution_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    type_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("distribution_types.id"),
        nullable=False,
    )

    origin_department_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    destination_department_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=DistributionStatus.DRAFT.value,
    )

    # Derived; written at verify_receiver and by recompute()
    has_discrepancies: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    sender_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    receiver_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    sender_verified_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    receiver_verified_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    history_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    attach_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    distribution_type: Mapped[DistributionType] = relationship(
        "DistributionType",
        lazy="joined",
        innerjoin=True,
    )

    documents: Mapped[list[DistributionDocument]] = relationship(
        "DistributionDocument",
        back_populates="distribution",
        order_by="DistributionDocument.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    entries: Mapped[list[VerificationEntry]] = relationship(
        "VerificationEntry",
        back_populates="distribution",
        order_by="VerificationEntry.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Distribution {self.distribution_number} status={self.status}>"

    @property
    def current_status(self) -> DistributionStatus:
        return DistributionStatus(self.status)

    @property
    def document_refs(self) -> tuple[DocumentRef, ...]:
        return tuple(doc.ref for doc in self.documents)

    def find_document(self, ref: DocumentRef) -> DistributionDocument | None:
        for doc in self.documents:
            if doc.ref == ref:
                return doc
        return None


class DistributionDocument(Base):
    """One attached document, in attach order."""

    __tablename__ = "distribution_documents"

    __table_args__ = (
        UniqueConstraint(
            "distribution_id", "document_kind", "document_id",
            name="uq_distribution_documents_ref",
        ),
        Index("idx_distribution_documents_ref", "document_kind", "document_id"),
    )

    distribution_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("distributions.id", ondelete="CASCADE"),
        nullable=False,
    )
    document_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    document_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    position: Mapped[int] = mapped_column(BigInteger, nullable=False)
    attached_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    attached_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    distribution: Mapped[Distribution] = relationship(
        "Distribution",
        back_populates="documents",
    )

    @property
    def ref(self) -> DocumentRef:
        return DocumentRef(DocumentKind(self.document_kind), self.document_id)

    def __repr__(self) -> str:
        return f"<DistributionDocument {self.ref} pos={self.position}>"
