"""
Tests for StatusMutationService.

Covers the happy path, every failure tag, atomicity under an injected
ledger fault, the wire-payload entry point, bulk transitions, and the
post-commit notification.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from invoicing_kernel.domain.dtos import (
    ActingUser,
    FailureKind,
    MutationState,
    StatusChange,
    StatusChangeRequest,
)
from invoicing_kernel.domain.statuses import (
    EntityKind,
    InvoiceStatus,
    PurchaseOrderStatus,
    Role,
)
from invoicing_kernel.exceptions import IllegalTransitionError
from invoicing_kernel.services.entity_store import EntityStore
from invoicing_kernel.services.sequence_service import SequenceService
from invoicing_kernel.services.status_ledger import StatusLedger
from invoicing_kernel.services.status_mutation_service import StatusMutationService

PO = EntityKind.PURCHASE_ORDER
INV = EntityKind.INVOICE


def _messages(records):
    return [r["message"] for r in records]


# ---------------------------------------------------------------------------
# Purchase order walkthrough
# ---------------------------------------------------------------------------


class TestPurchaseOrderScenario:
    """Creator submits, a plain user then tries to send."""

    def test_submit_then_unauthorized_send(
        self, mutation_service, create_entity, request_for, current_status, history
    ):
        create_entity(PO, "po-1")

        outcome = mutation_service.transition(
            request_for(PO, "po-1", "PENDING", Role.CREATOR)
        )
        assert outcome.success
        assert outcome.to_payload() == {"previousStatus": "DRAFT", "newStatus": "PENDING"}
        assert len(history(PO, "po-1")) == 1

        outcome = mutation_service.transition(request_for(PO, "po-1", "SENT", Role.USER))
        assert not outcome.success
        assert outcome.state is MutationState.REJECTED_INVALID_TRANSITION
        assert outcome.failure.kind is FailureKind.ILLEGAL_TRANSITION
        assert outcome.failure.http_status == 403
        assert outcome.failure.details["requiredRoles"] == ["ADMIN", "MANAGER"]
        with pytest.raises(IllegalTransitionError):
            outcome.unwrap()

        assert len(history(PO, "po-1")) == 1
        assert current_status(PO, "po-1") == PurchaseOrderStatus.PENDING


class TestCommittedTransitions:

    def test_each_transition_appends_one_entry_from_prior_status(
        self, mutation_service, create_entity, request_for, current_status, history
    ):
        create_entity(PO, "po-2")
        path = [
            ("PENDING", Role.CREATOR),
            ("REJECTED", Role.MANAGER),
            ("DRAFT", Role.CREATOR),
            ("PENDING", Role.MANAGER),
            ("SENT", Role.ADMIN),
            ("COMPLETED", Role.MANAGER),
        ]
        for n, (target, role) in enumerate(path, start=1):
            before = current_status(PO, "po-2")
            outcome = mutation_service.transition(request_for(PO, "po-2", target, role))
            assert outcome.success, outcome.failure

            entries = history(PO, "po-2")
            assert len(entries) == n
            assert entries[-1].from_status == before
            assert entries[-1].to_status.value == target
            assert outcome.change == StatusChange(before, entries[-1].to_status)

    def test_history_replays_as_a_chain(
        self, mutation_service, create_entity, request_for, history
    ):
        create_entity(INV, "inv-1")
        for target, role in [("SENT", Role.CREATOR), ("PAID", Role.MANAGER), ("CANCELLED", Role.ADMIN)]:
            assert mutation_service.transition(request_for(INV, "inv-1", target, role)).success

        entries = history(INV, "inv-1")
        assert [e.to_status for e in entries] == [
            InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.CANCELLED,
        ]
        assert entries[0].from_status is InvoiceStatus.DRAFT
        for earlier, later in zip(entries, entries[1:]):
            assert earlier.to_status == later.from_status
            assert earlier.seq < later.seq

    def test_entry_records_user_comment_and_clock_time(
        self, mutation_service, deterministic_clock, create_entity, request_for, history
    ):
        create_entity(INV, "inv-2")
        deterministic_clock.advance(90)
        outcome = mutation_service.transition(
            request_for(INV, "inv-2", "SENT", Role.CREATOR, comment="月末締め", user_id="u-77")
        )

        entry = history(INV, "inv-2")[0]
        assert entry.user_id == "u-77"
        assert entry.comment == "月末締め"
        assert entry.created_at == deterministic_clock.now()
        assert entry.created_at.tzinfo is not None
        assert outcome.history_entry.id == entry.id

    def test_raw_string_kind_and_role_accepted(
        self, mutation_service, create_entity, current_status
    ):
        create_entity(INV, "inv-3")
        outcome = mutation_service.transition(
            StatusChangeRequest(
                kind="INVOICE",
                entity_id="inv-3",
                to_status="SENT",
                acting_user=ActingUser(id="u-1", role="ADMIN"),
            )
        )
        assert outcome.success
        assert current_status(INV, "inv-3") == InvoiceStatus.SENT


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


class TestRejections:
    """Rejected requests never write."""

    def test_not_found(self, mutation_service, request_for, history):
        outcome = mutation_service.transition(request_for(PO, "po-missing", "PENDING", Role.ADMIN))
        assert outcome.state is MutationState.REJECTED_NOT_FOUND
        assert outcome.failure.kind is FailureKind.NOT_FOUND
        assert outcome.failure.http_status == 404
        assert history(PO, "po-missing") == []

    def test_kind_scopes_lookup(self, mutation_service, create_entity, request_for):
        create_entity(PO, "doc-1")
        outcome = mutation_service.transition(request_for(INV, "doc-1", "SENT", Role.ADMIN))
        assert outcome.failure.kind is FailureKind.NOT_FOUND

    @pytest.mark.parametrize("to_status", ["PAID", "SHIPPED", "pending", ""])
    def test_invalid_status(
        self, mutation_service, create_entity, request_for, current_status, history, to_status
    ):
        create_entity(PO, "po-3")
        outcome = mutation_service.transition(request_for(PO, "po-3", to_status, Role.ADMIN))
        assert outcome.state is MutationState.REJECTED_INVALID_TRANSITION
        assert outcome.failure.kind is FailureKind.INVALID_STATUS
        assert outcome.failure.http_status == 400
        assert current_status(PO, "po-3") == PurchaseOrderStatus.DRAFT
        assert history(PO, "po-3") == []

    def test_other_kinds_status_member_is_invalid(
        self, mutation_service, create_entity, request_for
    ):
        create_entity(PO, "po-4")
        outcome = mutation_service.transition(
            request_for(PO, "po-4", InvoiceStatus.SENT, Role.ADMIN)
        )
        assert outcome.failure.kind is FailureKind.INVALID_STATUS

    def test_undefined_transition(self, mutation_service, create_entity, request_for, history):
        create_entity(PO, "po-5")
        outcome = mutation_service.transition(request_for(PO, "po-5", "COMPLETED", Role.ADMIN))
        assert outcome.failure.kind is FailureKind.ILLEGAL_TRANSITION
        assert outcome.failure.details["requiredRoles"] == []
        assert history(PO, "po-5") == []

    def test_identity_transition(self, mutation_service, create_entity, request_for):
        create_entity(INV, "inv-4")
        outcome = mutation_service.transition(request_for(INV, "inv-4", "DRAFT", Role.ADMIN))
        assert outcome.failure.kind is FailureKind.ILLEGAL_TRANSITION

    def test_overdue_cannot_be_requested(self, mutation_service, create_entity, request_for):
        create_entity(INV, "inv-5")
        assert mutation_service.transition(request_for(INV, "inv-5", "SENT", Role.ADMIN)).success
        outcome = mutation_service.transition(request_for(INV, "inv-5", "OVERDUE", Role.ADMIN))
        assert outcome.failure.kind is FailureKind.ILLEGAL_TRANSITION

    def test_unknown_role(self, mutation_service, create_entity, current_status):
        create_entity(INV, "inv-6")
        outcome = mutation_service.transition(
            StatusChangeRequest(
                kind=INV,
                entity_id="inv-6",
                to_status="SENT",
                acting_user=ActingUser(id="u-1", role="GUEST"),
            )
        )
        assert outcome.state is MutationState.REJECTED_INVALID_TRANSITION
        assert outcome.failure.kind is FailureKind.INVALID_REQUEST
        assert outcome.failure.details["field"] == "actingUser.role"
        assert current_status(INV, "inv-6") == InvoiceStatus.DRAFT


# ---------------------------------------------------------------------------
# Persistence failures
# ---------------------------------------------------------------------------


class _BrokenSequenceService(SequenceService):
    def next_value(self, sequence_name):
        raise OperationalError("UPDATE sequence_counters", {}, Exception("disk I/O error"))


class _ExplodingLedger(StatusLedger):
    def append(self, entry):
        raise SQLAlchemyError("ledger unavailable")


class _UnreachableStore(EntityStore):
    def find_by_id(self, kind, entity_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


class TestAtomicity:
    """A failed history append leaves the document untouched."""

    @pytest.mark.parametrize(
        "ledger_factory",
        [
            lambda s: StatusLedger(s, sequence_service=_BrokenSequenceService(s)),
            _ExplodingLedger,
        ],
        ids=["sequence_failure", "append_failure"],
    )
    def test_ledger_failure_rolls_back_status(
        self,
        session_factory,
        policy,
        deterministic_clock,
        create_entity,
        request_for,
        current_status,
        history,
        ledger_factory,
    ):
        create_entity(PO, "po-6")
        service = StatusMutationService(
            session_factory, policy, clock=deterministic_clock, ledger_factory=ledger_factory
        )

        outcome = service.transition(request_for(PO, "po-6", "PENDING", Role.CREATOR))

        assert outcome.state is MutationState.FAILED_PERSISTENCE
        assert outcome.failure.kind is FailureKind.PERSISTENCE_FAILURE
        assert outcome.failure.http_status == 500
        assert current_status(PO, "po-6") == PurchaseOrderStatus.DRAFT
        assert history(PO, "po-6") == []

    def test_retry_after_failure_succeeds(
        self, session_factory, policy, mutation_service, create_entity, request_for, history
    ):
        create_entity(PO, "po-7")
        broken = StatusMutationService(session_factory, policy, ledger_factory=_ExplodingLedger)
        assert not broken.transition(request_for(PO, "po-7", "PENDING", Role.CREATOR)).success

        assert mutation_service.transition(request_for(PO, "po-7", "PENDING", Role.CREATOR)).success
        assert len(history(PO, "po-7")) == 1

    def test_lookup_failure(self, session_factory, policy, create_entity, request_for):
        create_entity(PO, "po-8")
        service = StatusMutationService(
            session_factory, policy, entity_store_factory=_UnreachableStore
        )
        outcome = service.transition(request_for(PO, "po-8", "PENDING", Role.CREATOR))
        assert outcome.state is MutationState.FAILED_PERSISTENCE
        assert outcome.failure.details == {"operation": "entity_lookup"}


# ---------------------------------------------------------------------------
# Payload entry point and bulk
# ---------------------------------------------------------------------------


class TestTransitionPayload:

    def test_success(self, mutation_service, create_entity):
        create_entity(INV, "inv-7")
        outcome = mutation_service.transition_payload(
            {
                "kind": "INVOICE",
                "entityId": "inv-7",
                "toStatus": "SENT",
                "actingUser": {"id": "u-1", "role": "CREATOR"},
                "comment": "送付しました",
            }
        )
        assert outcome.to_payload() == {"previousStatus": "DRAFT", "newStatus": "SENT"}

    def test_malformed_payload(self, mutation_service):
        outcome = mutation_service.transition_payload({"kind": "INVOICE"})
        assert outcome.failure.kind is FailureKind.INVALID_REQUEST
        assert outcome.to_payload()["kind"] == "INVALID_REQUEST"

    def test_unknown_status_in_payload(self, mutation_service, create_entity):
        create_entity(INV, "inv-8")
        outcome = mutation_service.transition_payload(
            {
                "kind": "INVOICE",
                "entityId": "inv-8",
                "toStatus": "ARCHIVED",
                "actingUser": {"id": "u-1", "role": "ADMIN"},
            }
        )
        assert outcome.to_payload() == {
            "kind": "INVALID_STATUS",
            "message": "Invalid status for INVOICE: 'ARCHIVED'",
            "details": {"entityType": "INVOICE", "status": "ARCHIVED"},
        }


class TestTransitionMany:

    def test_each_entity_independent(
        self, mutation_service, create_entity, acting_user, current_status
    ):
        create_entity(INV, "inv-a")
        create_entity(INV, "inv-b")
        mutation_service.transition(
            StatusChangeRequest(INV, "inv-b", "CANCELLED", acting_user(Role.ADMIN))
        )

        results = mutation_service.transition_many(
            INV, ["inv-a", "inv-b", "inv-zz", "inv-a"], "SENT", acting_user(Role.MANAGER)
        )

        assert list(results) == ["inv-a", "inv-b", "inv-zz"]
        assert results["inv-a"].success
        assert results["inv-b"].failure.kind is FailureKind.ILLEGAL_TRANSITION
        assert results["inv-zz"].failure.kind is FailureKind.NOT_FOUND
        assert current_status(INV, "inv-a") == InvoiceStatus.SENT
        assert current_status(INV, "inv-b") == InvoiceStatus.CANCELLED


# ---------------------------------------------------------------------------
# Notifications and logging
# ---------------------------------------------------------------------------


class TestNotifications:

    def test_event_published_after_commit(
        self, mutation_service, publisher, deterministic_clock, create_entity, request_for,
        current_status,
    ):
        create_entity(PO, "po-9")
        seen = []

        def _on_change(event):
            # committed before subscribers run
            seen.append((event, current_status(PO, "po-9")))

        publisher.subscribe(_on_change)
        mutation_service.transition(request_for(PO, "po-9", "PENDING", Role.CREATOR, user_id="u-5"))

        assert len(seen) == 1
        event, status_at_publish = seen[0]
        assert status_at_publish == PurchaseOrderStatus.PENDING
        assert event.to_payload() == {
            "kind": "PURCHASE_ORDER",
            "entityId": "po-9",
            "previousStatus": "DRAFT",
            "newStatus": "PENDING",
            "actingUserId": "u-5",
            "timestamp": deterministic_clock.now().isoformat(),
        }

    def test_no_event_for_rejection(self, mutation_service, publisher, request_for):
        seen = []
        publisher.subscribe(seen.append)
        mutation_service.transition(request_for(PO, "po-none", "PENDING", Role.CREATOR))
        assert seen == []

    def test_failing_subscriber_does_not_undo_commit(
        self, mutation_service, publisher, create_entity, request_for, current_status,
        captured_logs,
    ):
        create_entity(INV, "inv-9")
        seen = []

        def _broken(event):
            raise RuntimeError("smtp down")

        publisher.subscribe(_broken)
        publisher.subscribe(seen.append)

        outcome = mutation_service.transition(request_for(INV, "inv-9", "SENT", Role.CREATOR))

        assert outcome.success
        assert len(seen) == 1
        assert current_status(INV, "inv-9") == InvoiceStatus.SENT
        failures = [r for r in captured_logs() if r["message"] == "status_change_subscriber_failed"]
        assert failures and failures[0]["error"] == "smtp down"

    def test_unsubscribe(self, publisher):
        unsubscribe = publisher.subscribe(lambda e: None)
        assert publisher.subscriber_count == 1
        unsubscribe()
        unsubscribe()
        assert publisher.subscriber_count == 0


class TestLogging:

    def test_commit_logged_with_context(
        self, mutation_service, create_entity, request_for, captured_logs
    ):
        create_entity(PO, "po-10")
        mutation_service.transition(request_for(PO, "po-10", "PENDING", Role.CREATOR, user_id="u-9"))

        records = captured_logs()
        committed = next(r for r in records if r["message"] == "status_transition_committed")
        assert committed["entity_type"] == "PURCHASE_ORDER"
        assert committed["entity_id"] == "po-10"
        assert committed["actor_id"] == "u-9"
        assert committed["from_status"] == "DRAFT"
        assert committed["to_status"] == "PENDING"
        assert "status_history_appended" in _messages(records)
        assert "status_transition_finished" in _messages(records)

    def test_rejection_logged(self, mutation_service, request_for, captured_logs):
        mutation_service.transition(request_for(INV, "inv-missing", "SENT", Role.ADMIN))
        rejected = next(
            r for r in captured_logs() if r["message"] == "status_transition_rejected"
        )
        assert rejected["error_code"] == "NOT_FOUND"
        assert rejected["state"] == "rejected_not_found"

    def test_context_cleared_after_call(self, mutation_service, request_for):
        from invoicing_kernel.logging_config import LogContext

        mutation_service.transition(request_for(INV, "inv-x", "SENT", Role.ADMIN))
        assert LogContext.get_all() == {}


def test_history_timestamps_follow_clock(
    mutation_service, deterministic_clock, create_entity, request_for, history
):
    create_entity(INV, "inv-10")
    start = deterministic_clock.now()
    mutation_service.transition(request_for(INV, "inv-10", "SENT", Role.CREATOR))
    deterministic_clock.advance(3600)
    mutation_service.transition(request_for(INV, "inv-10", "PAID", Role.MANAGER))

    first, second = history(INV, "inv-10")
    assert second.created_at - first.created_at == timedelta(hours=1)
    assert first.created_at == start


def test_committed_entry_matches_stored_history(
    mutation_service, create_entity, request_for, history
):
    create_entity(INV, "inv-11")
    outcome = mutation_service.transition(request_for(INV, "inv-11", "SENT", Role.CREATOR))

    (stored,) = history(INV, "inv-11")
    assert stored.to_payload() == outcome.history_entry.to_payload()
    assert stored.created_at == outcome.history_entry.created_at


def test_local_clock_stamped_in_utc(
    mutation_service, deterministic_clock, create_entity, request_for, history, publisher
):
    received = []
    publisher.subscribe(received.append)
    create_entity(INV, "inv-12")
    jst = timezone(timedelta(hours=9))
    deterministic_clock.set_time(datetime(2024, 4, 1, 18, 0, tzinfo=jst))

    mutation_service.transition(request_for(INV, "inv-12", "SENT", Role.CREATOR))
    after = deterministic_clock.tick()
    mutation_service.transition(request_for(INV, "inv-12", "PAID", Role.MANAGER))

    first, second = history(INV, "inv-12")
    assert first.created_at.isoformat() == "2024-04-01T09:00:00+00:00"
    assert second.created_at == after
    assert [e.timestamp.utcoffset() for e in received] == [timedelta(0), timedelta(0)]
