"""
Typed Exception Hierarchy for the Invoicing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Route handlers translate workflow failures into user-facing messages and
HTTP responses.  They must never parse message strings to do so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        change_status(...)
    except Exception as e:
        if "not permitted" in str(e):  # FRAGILE - message might change
            return forbidden()

Example - RIGHT way (what this module enables):
    except IllegalTransitionError as e:
        return {"error": e.code, "from": e.from_status, "to": e.to_status}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InvoicingKernelError:

    InvoicingKernelError (base)
    |
    +-- WorkflowError
    |   +-- EntityNotFoundError
    |   +-- InvalidStatusError
    |   +-- IllegalTransitionError
    |   +-- InvalidRequestError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- PersistenceFailureError
    |
    +-- AuditError
    |   +-- HistoryChainBrokenError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- PolicyDefinitionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | HTTP | When Raised
-------------|--------------------------|------|------------------------------------
Workflow     | NOT_FOUND                | 404  | Entity ID doesn't exist
             | INVALID_STATUS           | 400  | Status not in the kind's vocabulary
             | ILLEGAL_TRANSITION       | 403  | No rule, or role not allowed
             | INVALID_REQUEST          | 400  | Malformed kind/role/payload
-------------|--------------------------|------|------------------------------------
Concurrency  | CONCURRENT_MODIFICATION  | 409  | Status changed since it was read
-------------|--------------------------|------|------------------------------------
Persistence  | PERSISTENCE_FAILURE      | 500  | Store unavailable / timeout / error
-------------|--------------------------|------|------------------------------------
Audit        | HISTORY_CHAIN_BROKEN     |  -   | Status history has a gap
-------------|--------------------------|------|------------------------------------
Immutability | IMMUTABILITY_VIOLATION   |  -   | Updating/deleting a history row
-------------|--------------------------|------|------------------------------------
Policy       | POLICY_DEFINITION_ERROR  |  -   | Rule table is malformed

===============================================================================
HANDLING PATTERNS
===============================================================================

The status mutation service never lets the workflow, concurrency or
persistence errors escape: it returns them inside a TransitionOutcome.
Callers pattern-match on ``outcome.failure.kind`` or on the exception
type stored in ``outcome.failure.error``.

    outcome = service.transition(request)
    if not outcome.success:
        if isinstance(outcome.failure.error, ConcurrentModificationError):
            ...  # re-read and retry (bounded, at the caller layer)
        return outcome.failure.http_status, outcome.to_payload()

PersistenceFailureError must never be retried silently inside the core:
a blind retry could double-append history.
"""

from __future__ import annotations

from collections.abc import Iterable


class InvoicingKernelError(Exception):
    """
    Base exception for all invoicing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVOICING_KERNEL_ERROR"
    http_status: int = 500

    def details(self) -> dict:
        """Structured fields for API payloads (empty by default)."""
        return {}


# Workflow-related exceptions


class WorkflowError(InvoicingKernelError):
    """Base exception for status workflow errors."""

    code: str = "WORKFLOW_ERROR"
    http_status: int = 400


class EntityNotFoundError(WorkflowError):
    """Entity with given ID was not found."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")

    def details(self) -> dict:
        return {"entityType": self.entity_type, "entityId": self.entity_id}


class InvalidStatusError(WorkflowError):
    """Status value is not part of the vocabulary for the entity kind."""

    code: str = "INVALID_STATUS"
    http_status: int = 400

    def __init__(self, entity_type: str, status: object):
        self.entity_type = entity_type
        self.status = status
        super().__init__(f"Invalid status for {entity_type}: {status!r}")

    def details(self) -> dict:
        return {"entityType": self.entity_type, "status": str(self.status)}


class IllegalTransitionError(WorkflowError):
    """
    The requested status change is not permitted.

    Either no rule exists for (from_status, to_status), or the acting role
    is not among the roles the rule allows.  ``required_roles`` is empty
    when the transition itself is undefined.
    """

    code: str = "ILLEGAL_TRANSITION"
    http_status: int = 403

    def __init__(
        self,
        entity_type: str,
        from_status: str,
        to_status: str,
        role: str,
        required_roles: Iterable[str] = (),
    ):
        self.entity_type = entity_type
        self.from_status = from_status
        self.to_status = to_status
        self.role = role
        self.required_roles = tuple(sorted(required_roles))
        if self.required_roles:
            reason = (
                f"role {role} is not permitted "
                f"(requires one of: {', '.join(self.required_roles)})"
            )
        else:
            reason = "no such transition is defined"
        super().__init__(
            f"Transition {from_status} -> {to_status} on {entity_type} "
            f"is not allowed: {reason}"
        )

    def details(self) -> dict:
        return {
            "from": self.from_status,
            "to": self.to_status,
            "role": self.role,
            "requiredRoles": list(self.required_roles),
        }


class InvalidRequestError(WorkflowError):
    """The status change request itself is malformed (kind, role, fields)."""

    code: str = "INVALID_REQUEST"
    http_status: int = 400

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid request field '{field}': {reason}")

    def details(self) -> dict:
        return {"field": self.field, "reason": self.reason}


# Concurrency-related exceptions


class ConcurrencyError(InvoicingKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    http_status: int = 409


class ConcurrentModificationError(ConcurrencyError):
    """
    The entity's status changed between read and write.

    The compare-and-swap precondition on the status column matched no row:
    another mutation committed first.  Callers re-read, re-validate and
    retry.
    """

    code: str = "CONCURRENT_MODIFICATION"
    http_status: int = 409

    def __init__(self, entity_type: str, entity_id: str, expected_status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_status = expected_status
        super().__init__(
            f"Concurrent modification on {entity_type} {entity_id}: "
            f"status is no longer {expected_status}"
        )

    def details(self) -> dict:
        return {
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "expectedStatus": self.expected_status,
        }


# Persistence-related exceptions


class PersistenceFailureError(InvoicingKernelError):
    """The underlying store failed (unavailable, timeout, constraint)."""

    code: str = "PERSISTENCE_FAILURE"
    http_status: int = 500

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")

    def details(self) -> dict:
        return {"operation": self.operation}


# Audit-related exceptions


class AuditError(InvoicingKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class HistoryChainBrokenError(AuditError):
    """
    Status history is not sequentially consistent.

    Entry ``position`` has a ``from_status`` that does not match the
    preceding ``to_status`` (or the initial status for the first entry,
    or the entity's current status after the last entry).
    """

    code: str = "HISTORY_CHAIN_BROKEN"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        position: int,
        expected: str,
        actual: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.position = position
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Status history broken for {entity_type} {entity_id} "
            f"at entry {position}: expected {expected}, found {actual}"
        )


# Immutability-related exceptions


class ImmutabilityError(InvoicingKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Policy definition exceptions


class PolicyDefinitionError(InvoicingKernelError):
    """A transition rule table is malformed."""

    code: str = "POLICY_DEFINITION_ERROR"

    def __init__(self, entity_type: str, reason: str):
        self.entity_type = entity_type
        self.reason = reason
        super().__init__(f"Invalid transition policy for {entity_type}: {reason}")
