"""
Module: distribution_kernel.models.transmittal
Responsibility: ORM persistence for the send-time transmittal advice.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one advice per distribution, written at ``send``.
    - The row is immutable after INSERT (db/immutability.py); later ledger
      changes never alter it.
    - content_hash = hash_advice(payload).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from distribution_kernel.db.base import Base, UTCDateTime, UUIDString


class TransmittalAdviceRecord(Base):
    """Stored transmittal advice snapshot."""

    __tablename__ = "transmittal_advices"

    distribution_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("distributions.id"),
        nullable=False,
        unique=True,
    )
    distribution_number: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    qr_code_data: Mapped[str] = mapped_column(String(100), nullable=False)
    generated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    generated_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<TransmittalAdvice {self.distribution_number} {self.content_hash[:12]}>"
