"""
ORM-Level Append-Only Enforcement for the Status History Ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

The status history is the audit trail of every purchase order and invoice
status change.  Rows are written once, as a side effect of a committed
status mutation, and never edited or removed afterwards.  Correcting a
mistake means a new transition, which leaves its own visible entry.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
Listeners registered here intercept them:

    session.flush()
         |
         v
    [before_update event] --> _check_history_entry_update() --> ImmutabilityViolationError
         |                                                              ^
         v                                                              |
    [before_delete event] --> _check_history_entry_delete() -----------+

    session.execute(update(StatusHistoryEntry)...)
         |
         v
    [do_orm_execute event] --> _check_history_bulk_statement() --> ImmutabilityViolationError

If a check fails the flush (or statement) is aborted and the database is
never touched.  Raw SQL on a Connection bypasses these listeners.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable         | Why
--------------------|------------------------|-------------------------------
StatusHistoryEntry  | ALWAYS (from creation) | Audit trail is append-only

===============================================================================
USAGE
===============================================================================

    from invoicing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent

To temporarily disable (TESTS ONLY):

    from invoicing_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session

from invoicing_kernel.exceptions import ImmutabilityViolationError
from invoicing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_id: str, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StatusHistoryEntry",
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StatusHistoryEntry",
        entity_id=entity_id,
        reason=reason,
    )


def _check_history_entry_update(mapper, connection, target):
    """Prevent any updates to StatusHistoryEntry records."""
    from invoicing_kernel.models.status_history import StatusHistoryEntry

    if not isinstance(target, StatusHistoryEntry):
        return

    _block(
        str(target.id),
        "UPDATE",
        "Status history entries are immutable and cannot be modified",
    )


def _check_history_entry_delete(mapper, connection, target):
    """Prevent deletion of StatusHistoryEntry records."""
    from invoicing_kernel.models.status_history import StatusHistoryEntry

    if not isinstance(target, StatusHistoryEntry):
        return

    _block(
        str(target.id),
        "DELETE",
        "Status history entries are immutable and cannot be deleted",
    )


def _check_history_bulk_statement(orm_execute_state: ORMExecuteState):
    """
    Reject ORM-enabled bulk UPDATE/DELETE statements against the ledger.

    Mapper events do not fire for ``session.execute(update(...))``, so the
    session-level hook inspects the statement's target table instead.
    """
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return

    from invoicing_kernel.models.status_history import StatusHistoryEntry

    mapper = orm_execute_state.bind_mapper
    target_table = getattr(orm_execute_state.statement, "table", None)
    targets_ledger = (mapper is not None and mapper.class_ is StatusHistoryEntry) or (
        getattr(target_table, "name", None) == StatusHistoryEntry.__tablename__
    )
    if not targets_ledger:
        return

    operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
    _block(
        "*",
        f"BULK_{operation}",
        f"Bulk {operation} on status history is not permitted",
    )


def register_immutability_listeners():
    """
    Register append-only enforcement listeners (idempotent).

    Call after models are importable and before any history rows are
    written.  The status ledger calls this on construction.
    """
    from invoicing_kernel.models.status_history import StatusHistoryEntry

    if not event.contains(StatusHistoryEntry, "before_update", _check_history_entry_update):
        event.listen(StatusHistoryEntry, "before_update", _check_history_entry_update)
    if not event.contains(StatusHistoryEntry, "before_delete", _check_history_entry_delete):
        event.listen(StatusHistoryEntry, "before_delete", _check_history_entry_delete)
    if not event.contains(Session, "do_orm_execute", _check_history_bulk_statement):
        event.listen(Session, "do_orm_execute", _check_history_bulk_statement)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove append-only enforcement listeners.

    WARNING: Only use this in tests that must tamper with history rows to
    verify chain verification detects it.
    """
    from invoicing_kernel.models.status_history import StatusHistoryEntry

    _safe_remove_listener(StatusHistoryEntry, "before_update", _check_history_entry_update)
    _safe_remove_listener(StatusHistoryEntry, "before_delete", _check_history_entry_delete)
    _safe_remove_listener(Session, "do_orm_execute", _check_history_bulk_statement)
