"""
Module: distribution_kernel.models.verification
Responsibility: ORM persistence for the Verification Ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value objects only.

Invariants enforced:
    - One entry per (distribution_id, document_kind, document_id).
    - Sender columns are written only while the distribution is draft;
      receiver columns only while it is received (enforced by
      VerificationLedgerService, which owns all writes).
    - Entries are never deleted while the distribution exists.  Detaching
      a document stamps ``invalidated_at`` instead; re-attaching resets it.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from distribution_kernel.db.base import Base, UTCDateTime, UUIDString
from distribution_kernel.domain.documents import DocumentKind, DocumentRef
from distribution_kernel.domain.verification import (
    SideRecord,
    VerificationEntryView,
    VerificationSide,
    VerificationStatus,
)

if TYPE_CHECKING:
    from distribution_kernel.models.distribution import Distribution

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in VerificationStatus)


class VerificationEntry(Base):
    """
    Ledger entry for one document of one distribution.

    The two sides are independent column groups; each is written by its
    own party only.
    """

    __tablename__ = "verification_entries"

    __table_args__ = (
        UniqueConstraint(
            "distribution_id", "document_kind", "document_id",
            name="uq_verification_entries_ref",
        ),
        CheckConstraint(
            f"sender_status IS NULL OR sender_status IN ({_STATUS_VALUES})",
            name="ck_verification_entries_sender_status",
        ),
        CheckConstraint(
            f"receiver_status IS NULL OR receiver_status IN ({_STATUS_VALUES})",
            name="ck_verification_entries_receiver_status",
        ),
    )

    distribution_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("distributions.id", ondelete="CASCADE"),
        nullable=False,
    )
    document_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    document_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    position: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Sender side
    sender_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sender_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sender_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    sender_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    sender_verified_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Receiver side
    receiver_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    receiver_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    receiver_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    receiver_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    receiver_verified_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    invalidated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    distribution: Mapped[Distribution] = relationship(
        "Distribution",
        back_populates="entries",
    )

    def __repr__(self) -> str:
        return (
            f"<VerificationEntry {self.ref} "
            f"sender={self.sender_status} receiver={self.receiver_status}>"
        )

    @property
    def ref(self) -> DocumentRef:
        return DocumentRef(DocumentKind(self.document_kind), self.document_id)

    @property
    def is_active(self) -> bool:
        return self.invalidated_at is None

    def record(
        self,
        side: VerificationSide,
        status: VerificationStatus,
        notes: str | None,
        verified_at: datetime,
        verified_by: UUID,
    ) -> None:
        """Overwrite one side's sub-record (last write wins)."""
        prefix = side.value
        setattr(self, f"{prefix}_verified", True)
        setattr(self, f"{prefix}_status", status.value)
        setattr(self, f"{prefix}_notes", notes)
        setattr(self, f"{prefix}_verified_at", verified_at)
        setattr(self, f"{prefix}_verified_by", verified_by)

    def reset(self, position: int) -> None:
        """Clear both sides; used when a detached document is attached again."""
        for prefix in ("sender", "receiver"):
            setattr(self, f"{prefix}_verified", False)
            setattr(self, f"{prefix}_status", None)
            setattr(self, f"{prefix}_notes", None)
            setattr(self, f"{prefix}_verified_at", None)
            setattr(self, f"{prefix}_verified_by", None)
        self.position = position
        self.invalidated_at = None

    def _side(self, prefix: str) -> SideRecord:
        status = getattr(self, f"{prefix}_status")
        return SideRecord(
            verified=bool(getattr(self, f"{prefix}_verified")),
            status=VerificationStatus(status) if status else None,
            notes=getattr(self, f"{prefix}_notes"),
            verified_at=getattr(self, f"{prefix}_verified_at"),
            verified_by=getattr(self, f"{prefix}_verified_by"),
        )

    def to_view(self) -> VerificationEntryView:
        """Convert ORM model to frozen domain view."""
        return VerificationEntryView(
            document_ref=self.ref,
            position=self.position,
            sender=self._side("sender"),
            receiver=self._side("receiver"),
        )
