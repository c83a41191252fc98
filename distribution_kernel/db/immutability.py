"""
ORM-Level Immutability Enforcement.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
The listeners registered here intercept those events and reject changes to
records that must never change:

    session.flush()
         |
         v
    [before_flush]  --> _check_type_deletion_before_flush() ---+
    [before_update] --> _check_*_immutability() ---------------+--> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() ---------------------+
         |
         v
    SQL sent to database (only if checks pass)

Protected entities
------------------

Entity                   | When immutable                         | Fields
-------------------------|----------------------------------------|---------------------------
HistoryEntry             | Always                                 | All
DistributionArchive      | Always                                 | All
TransmittalAdviceRecord  | Always                                 | All
DocumentMovement         | Always                                 | All
DistributionType         | Referenced by a non-draft distribution | All except updated_at
Distribution             | Always                                 | number, type, origin, creator,
                         | Once set                               | lifecycle timestamps

Usage
-----

Called once at startup (and by the test fixtures):

    from distribution_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect, text
from sqlalchemy.orm import Session

from distribution_kernel.exceptions import ImmutabilityViolationError
from distribution_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TYPE_METADATA_FIELDS = frozenset({"updated_at"})

_DISTRIBUTION_FROZEN_FIELDS = (
    "distribution_number",
    "type_id",
    "origin_department_id",
    "created_by",
    "created_at",
)

_DISTRIBUTION_SET_ONCE_FIELDS = (
    "sender_verified_at",
    "sent_at",
    "received_at",
    "receiver_verified_at",
    "completed_at",
)


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


# ---------------------------------------------------------------------------
# Append-only records
# ---------------------------------------------------------------------------


def _append_only_update(mapper, connection, target):
    entity_type = type(target).__name__
    raise _blocked(
        entity_type,
        str(target.id),
        "UPDATE",
        f"{entity_type} records are append-only and cannot be modified",
    )


def _append_only_delete(mapper, connection, target):
    entity_type = type(target).__name__
    raise _blocked(
        entity_type,
        str(target.id),
        "DELETE",
        f"{entity_type} records are append-only and cannot be deleted",
    )


# ---------------------------------------------------------------------------
# DistributionType
# ---------------------------------------------------------------------------


def _type_in_use(connection, type_id) -> bool:
    result = connection.execute(
        text(
            "SELECT 1 FROM distributions "
            "WHERE type_id = :type_id AND status <> 'draft' LIMIT 1"
        ),
        {"type_id": str(type_id)},
    )
    return result.first() is not None


def _changed_fields(target) -> set[str]:
    state = inspect(target)
    changed = set()
    for attr in state.mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            changed.add(attr.key)
    return changed


def _check_distribution_type_immutability(mapper, connection, target):
    """Reject edits of a type referenced by a non-draft distribution."""
    changed = _changed_fields(target) - _TYPE_METADATA_FIELDS
    if not changed:
        return
    if _type_in_use(connection, target.id):
        raise _blocked(
            "DistributionType",
            str(target.id),
            "UPDATE",
            f"Type {target.code!r} is referenced by a non-draft distribution; "
            f"cannot change {sorted(changed)}",
        )


def _check_type_deletion_before_flush(session, flush_context, instances):
    """
    Reject deletion of a type referenced by a non-draft distribution.

    Runs in before_flush so the check happens before the flush plan is
    fixed.
    """
    from distribution_kernel.models.distribution import DistributionType

    for obj in list(session.deleted):
        if not isinstance(obj, DistributionType):
            continue
        with session.no_autoflush:
            in_use = _type_in_use(session.connection(), obj.id)
        if in_use:
            raise _blocked(
                "DistributionType",
                str(obj.id),
                "DELETE",
                f"Type {obj.code!r} is referenced by a non-draft distribution",
            )


# ---------------------------------------------------------------------------
# Distribution
# ---------------------------------------------------------------------------


def _check_distribution_immutability(mapper, connection, target):
    """Identity fields never change; lifecycle timestamps are set once."""
    state = inspect(target)

    for field in _DISTRIBUTION_FROZEN_FIELDS:
        history = state.attrs[field].history
        if history.deleted and history.deleted[0] is not None and history.has_changes():
            raise _blocked(
                "Distribution",
                str(target.id),
                "UPDATE",
                f"{field} cannot change after creation",
            )

    for field in _DISTRIBUTION_SET_ONCE_FIELDS:
        history = state.attrs[field].history
        if history.deleted and history.deleted[0] is not None and history.has_changes():
            raise _blocked(
                "Distribution",
                str(target.id),
                "UPDATE",
                f"{field} is already set and cannot be changed or cleared",
            )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _append_only_models():
    from distribution_kernel.models.custody import DocumentMovement
    from distribution_kernel.models.history import DistributionArchive, HistoryEntry
    from distribution_kernel.models.transmittal import TransmittalAdviceRecord

    return (HistoryEntry, DistributionArchive, TransmittalAdviceRecord, DocumentMovement)


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent.  Call after all models are imported but before any database
    operations begin.
    """
    from distribution_kernel.models.distribution import Distribution, DistributionType

    for model in _append_only_models():
        if not event.contains(model, "before_update", _append_only_update):
            event.listen(model, "before_update", _append_only_update)
            event.listen(model, "before_delete", _append_only_delete)

    if not event.contains(Session, "before_flush", _check_type_deletion_before_flush):
        event.listen(Session, "before_flush", _check_type_deletion_before_flush)
        event.listen(DistributionType, "before_update", _check_distribution_type_immutability)
        event.listen(Distribution, "before_update", _check_distribution_immutability)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate immutability on
    purpose (e.g. to prove tamper detection).
    """
    from distribution_kernel.models.distribution import Distribution, DistributionType

    for model in _append_only_models():
        _safe_remove_listener(model, "before_update", _append_only_update)
        _safe_remove_listener(model, "before_delete", _append_only_delete)

    _safe_remove_listener(Session, "before_flush", _check_type_deletion_before_flush)
    _safe_remove_listener(DistributionType, "before_update", _check_distribution_type_immutability)
    _safe_remove_listener(Distribution, "before_update", _check_distribution_immutability)
