"""
Pytest fixtures for the invoicing kernel test suite.

Provides:
- A file-backed SQLite database per test (tmp_path), so worker threads
  in concurrency tests get their own connections to the same data
- Session factory, deterministic clock, default policy, publisher
- Document creation and inspection helpers
- Structured log capture
"""

import json
import logging
from io import StringIO

import pytest

from invoicing_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from invoicing_kernel.db.immutability import register_immutability_listeners
from invoicing_kernel.domain.clock import DeterministicClock
from invoicing_kernel.domain.dtos import ActingUser, StatusChangeRequest
from invoicing_kernel.domain.statuses import EntityKind, Role
from invoicing_kernel.domain.transitions import default_policy
from invoicing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from invoicing_kernel.selectors.status_history_selector import StatusHistorySelector
from invoicing_kernel.services.entity_store import EntityStore
from invoicing_kernel.services.notifications import StatusChangePublisher
from invoicing_kernel.services.status_mutation_service import StatusMutationService


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture invoicing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, mutation_service):
            mutation_service.transition(...)
            logs = captured_logs()
            assert any(r["message"] == "status_transition_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("invoicing_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite file database with all tables created."""
    eng = init_engine_from_url(f"sqlite:///{tmp_path / 'invoicing_test.db'}")
    register_immutability_listeners()
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Kernel wiring
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def policy():
    return default_policy()


@pytest.fixture
def publisher():
    return StatusChangePublisher()


@pytest.fixture
def mutation_service(session_factory, policy, deterministic_clock, publisher):
    return StatusMutationService(
        session_factory,
        policy,
        clock=deterministic_clock,
        publisher=publisher,
    )


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def acting_user():
    """Build an ActingUser for a role: ``acting_user(Role.MANAGER)``."""

    def _make(role: Role, user_id: str | None = None) -> ActingUser:
        return ActingUser(id=user_id or f"user-{role.value.lower()}", role=role)

    return _make


@pytest.fixture
def create_entity(session_factory):
    """Create and commit a document in DRAFT: ``create_entity(kind, "po-1")``."""

    def _create(kind: EntityKind, entity_id: str | None = None, **fields):
        with session_scope(session_factory) as s:
            return EntityStore(s).create(
                kind,
                created_by_id=fields.pop("created_by_id", "user-creator"),
                entity_id=entity_id,
                **fields,
            )

    return _create


@pytest.fixture
def current_status(session_factory):
    """Read a document's committed status from a fresh session."""

    def _get(kind: EntityKind, entity_id: str):
        with session_factory() as s:
            snapshot = EntityStore(s).find_by_id(kind, entity_id)
            return snapshot.status if snapshot else None

    return _get


@pytest.fixture
def history(session_factory):
    """Committed history of a document, oldest first."""

    def _get(kind: EntityKind, entity_id: str):
        with session_factory() as s:
            return StatusHistorySelector(s).for_audit(kind, entity_id)

    return _get


@pytest.fixture
def request_for(acting_user):
    """Build a StatusChangeRequest: ``request_for(kind, id, to, Role.X)``."""

    def _make(kind, entity_id, to_status, role, comment=None, user_id=None):
        return StatusChangeRequest(
            kind=kind,
            entity_id=entity_id,
            to_status=to_status,
            acting_user=acting_user(role, user_id),
            comment=comment,
        )

    return _make
