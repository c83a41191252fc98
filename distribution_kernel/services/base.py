"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer, plus the shared steps every
    distribution command performs: load-and-lock the distribution row,
    authorize the actor for one side of the hand-off, pick a monotonic
    timestamp, and flush with optimistic-version conflict translation.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (DistributionPortal or a test harness) owns commit/rollback.
    - Transitions on the same distribution are serialized: the row is
      read with ``SELECT ... FOR UPDATE`` (PostgreSQL) and written with the
      ``version`` check (all backends).

Failure modes:
    - DistributionNotFoundError when the distribution does not exist.
    - ForbiddenError when the access policy denies the actor.
    - ConflictingUpdateError when the version check loses a race.
"""

from abc import ABC
from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from distribution_kernel.db.base import Base
from distribution_kernel.domain.clock import Clock
from distribution_kernel.domain.ports import AccessPolicy
from distribution_kernel.domain.workflow import TIMESTAMP_FIELDS, DepartmentSide
from distribution_kernel.exceptions import (
    ConflictingUpdateError,
    DistributionNotFoundError,
    ForbiddenError,
)
from distribution_kernel.logging_config import get_logger
from distribution_kernel.models.distribution import Distribution

logger = get_logger("services.base")

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``distribution_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _flush(self, entity_type: str = "Distribution", entity_id: object = None) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "optimistic_version_conflict",
                extra={"entity_type": entity_type, "entity_id": str(entity_id)},
            )
            raise ConflictingUpdateError(entity_type, str(entity_id)) from exc


def load_distribution(
    session: Session,
    distribution_id: UUID,
    *,
    for_update: bool = True,
) -> Distribution:
    """
    Load a distribution, locking its row when ``for_update``.

    ``populate_existing`` refreshes any copy already in the identity map so
    status checks always see the committed state.
    """
    stmt = select(Distribution).where(Distribution.id == distribution_id)
    if for_update:
        stmt = stmt.with_for_update(of=Distribution)
    distribution = session.execute(
        stmt.execution_options(populate_existing=True)
    ).unique().scalar_one_or_none()
    if distribution is None:
        raise DistributionNotFoundError(str(distribution_id))
    return distribution


def department_for(distribution: Distribution, side: DepartmentSide) -> UUID:
    match side:
        case DepartmentSide.ORIGIN:
            return distribution.origin_department_id
        case DepartmentSide.DESTINATION:
            return distribution.destination_department_id


def authorize(
    policy: AccessPolicy,
    actor_id: UUID,
    department_id: UUID,
    operation: str,
) -> None:
    """Raise ForbiddenError unless ``actor_id`` may act for ``department_id``."""
    allowed, reason = policy.can_act_for_department(actor_id, department_id, operation)
    if not allowed:
        logger.warning(
            "authorization_denied",
            extra={
                "actor_id": str(actor_id),
                "department_id": str(department_id),
                "operation": operation,
                "reason": reason,
            },
        )
        raise ForbiddenError(str(actor_id), operation, reason)


def next_timestamp(clock: Clock, distribution: Distribution) -> datetime:
    """Current time, never earlier than any lifecycle timestamp already set."""
    now = clock.now()
    stamped = [
        value
        for value in (getattr(distribution, name) for name in TIMESTAMP_FIELDS)
        if value is not None
    ]
    if stamped:
        return max(now, max(stamped))
    return now
