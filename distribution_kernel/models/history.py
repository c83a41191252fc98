"""
Module: distribution_kernel.models.history
Responsibility: ORM persistence for the distribution history trail and the
    archive copy written before a hard delete.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - History rows are append-only; no UPDATE or DELETE (ORM listeners in
      db/immutability.py).
    - (distribution_id, seq) is unique; seq is allocated from the locked
      distribution row, so entries of one distribution are totally ordered.
    - hash = H(distribution_id | seq | action | payload_hash | prev_hash).
      Validated by HistoryService.validate_chain().
    - distribution_id is deliberately not a foreign key: history outlives a
      deleted distribution.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - HistoryChainBrokenError when chain validation detects a mismatch.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from distribution_kernel.db.base import Base, UTCDateTime, UUIDString


class HistoryAction(str, Enum):
    """Actions recorded on the history trail.

    Contract: every transition and every verification call produces exactly
    one entry with one of these actions.
    """

    CREATED = "created"
    UPDATED = "updated"
    DOCUMENTS_ATTACHED = "documents_attached"
    DOCUMENT_DETACHED = "document_detached"

    SENDER_VERIFICATION_RECORDED = "sender_verification_recorded"
    SENDER_VERIFIED = "sender_verified"
    SENT = "sent"
    RECEIVED = "received"
    RECEIVER_VERIFICATION_RECORDED = "receiver_verification_recorded"
    RECEIVER_VERIFIED = "receiver_verified"
    COMPLETED = "completed"

    DELETED = "deleted"


class HistoryEntry(Base):
    """
    One entry of a distribution's append-only history.

    Guarantees:
        - prev_hash is None only for the first entry of a distribution.
    """

    __tablename__ = "distribution_history"

    __table_args__ = (
        UniqueConstraint("distribution_id", "seq", name="uq_distribution_history_seq"),
        Index("idx_distribution_history_action", "action"),
        Index("idx_distribution_history_occurred", "occurred_at"),
    )

    distribution_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<HistoryEntry {self.distribution_id}#{self.seq} {self.action}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None


class DistributionArchive(Base):
    """
    Snapshot of a distribution written immediately before a hard delete.

    Holds the distribution row, its attachments, its ledger and its
    history as JSON.  Append-only.
    """

    __tablename__ = "distribution_archives"

    __table_args__ = (
        Index("idx_distribution_archives_distribution", "distribution_id"),
    )

    distribution_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    distribution_number: Mapped[str] = mapped_column(String(50), nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
    snapshot_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    archived_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    archived_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    reason: Mapped[str] = mapped_column(String(200), nullable=False, default="deleted")

    def __repr__(self) -> str:
        return f"<DistributionArchive {self.distribution_number}>"
