"""Tests for request parsing and outcome payloads."""

from datetime import UTC, datetime

import pytest

from invoicing_kernel.domain.dtos import (
    ActingUser,
    FailureKind,
    MutationState,
    StatusChange,
    StatusChangedEvent,
    StatusChangeRequest,
    TransitionFailure,
    TransitionOutcome,
)
from invoicing_kernel.domain.statuses import (
    EntityKind,
    InvoiceStatus,
    PurchaseOrderStatus,
    Role,
)
from invoicing_kernel.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    HistoryChainBrokenError,
    IllegalTransitionError,
    InvalidRequestError,
)


def _payload(**overrides):
    payload = {
        "kind": "PURCHASE_ORDER",
        "entityId": "po-1",
        "toStatus": "PENDING",
        "actingUser": {"id": "u-1", "role": "CREATOR"},
    }
    payload.update(overrides)
    return payload


class TestStatusChangeRequestFromPayload:

    def test_parses_well_formed_payload(self):
        request = StatusChangeRequest.from_payload(_payload(comment="ready"))
        assert request == StatusChangeRequest(
            kind=EntityKind.PURCHASE_ORDER,
            entity_id="po-1",
            to_status="PENDING",
            acting_user=ActingUser(id="u-1", role=Role.CREATOR),
            comment="ready",
        )

    def test_to_status_kept_raw(self):
        """Unknown statuses are left for the service to report as INVALID_STATUS."""
        request = StatusChangeRequest.from_payload(_payload(toStatus="SHIPPED"))
        assert request.to_status == "SHIPPED"

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"kind": "RECEIPT"}, "kind"),
            ({"kind": None}, "kind"),
            ({"entityId": ""}, "entityId"),
            ({"entityId": 7}, "entityId"),
            ({"toStatus": "  "}, "toStatus"),
            ({"actingUser": "u-1"}, "actingUser"),
            ({"actingUser": {"role": "ADMIN"}}, "actingUser.id"),
            ({"actingUser": {"id": "u-1", "role": "GUEST"}}, "actingUser.role"),
            ({"comment": 12}, "comment"),
        ],
    )
    def test_malformed_fields(self, overrides, field):
        with pytest.raises(InvalidRequestError) as exc_info:
            StatusChangeRequest.from_payload(_payload(**overrides))
        assert exc_info.value.field == field
        assert exc_info.value.code == "INVALID_REQUEST"

    def test_missing_field(self):
        payload = _payload()
        del payload["entityId"]
        with pytest.raises(InvalidRequestError):
            StatusChangeRequest.from_payload(payload)

    def test_non_mapping_payload(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            StatusChangeRequest.from_payload(["PURCHASE_ORDER"])
        assert exc_info.value.field == "payload"


class TestTransitionFailure:

    @pytest.mark.parametrize(
        "error, kind, http_status",
        [
            (EntityNotFoundError("INVOICE", "inv-1"), FailureKind.NOT_FOUND, 404),
            (
                IllegalTransitionError("INVOICE", "DRAFT", "PAID", "ADMIN"),
                FailureKind.ILLEGAL_TRANSITION,
                403,
            ),
            (
                ConcurrentModificationError("INVOICE", "inv-1", "DRAFT"),
                FailureKind.CONCURRENT_MODIFICATION,
                409,
            ),
            (InvalidRequestError("kind", "unknown"), FailureKind.INVALID_REQUEST, 400),
        ],
    )
    def test_from_error(self, error, kind, http_status):
        failure = TransitionFailure.from_error(error)
        assert failure.kind is kind
        assert failure.http_status == http_status
        assert failure.error is error
        assert failure.message == str(error)

    def test_payload_includes_details(self):
        failure = TransitionFailure.from_error(EntityNotFoundError("INVOICE", "inv-9"))
        assert failure.to_payload() == {
            "kind": "NOT_FOUND",
            "message": "INVOICE not found: inv-9",
            "details": {"entityType": "INVOICE", "entityId": "inv-9"},
        }

    def test_error_without_failure_tag(self):
        with pytest.raises(ValueError):
            TransitionFailure.from_error(
                HistoryChainBrokenError("INVOICE", "inv-1", 0, "DRAFT", "SENT")
            )


class TestTransitionOutcome:

    def test_committed(self):
        change = StatusChange(InvoiceStatus.DRAFT, InvoiceStatus.SENT)
        outcome = TransitionOutcome.committed(change)
        assert outcome.success
        assert outcome.state is MutationState.COMMITTED
        assert outcome.unwrap() is change
        assert outcome.to_payload() == {"previousStatus": "DRAFT", "newStatus": "SENT"}

    def test_failed_unwrap_reraises(self):
        error = EntityNotFoundError("PURCHASE_ORDER", "po-x")
        outcome = TransitionOutcome.failed(MutationState.REJECTED_NOT_FOUND, error)
        assert not outcome.success
        with pytest.raises(EntityNotFoundError):
            outcome.unwrap()

    def test_needs_exactly_one_of_change_or_failure(self):
        with pytest.raises(ValueError):
            TransitionOutcome(state=MutationState.COMMITTED)
        with pytest.raises(ValueError):
            TransitionOutcome(
                state=MutationState.COMMITTED,
                change=StatusChange(InvoiceStatus.DRAFT, InvoiceStatus.SENT),
                failure=TransitionFailure.from_error(EntityNotFoundError("INVOICE", "x")),
            )


def test_status_changed_event_payload():
    event = StatusChangedEvent(
        kind=EntityKind.PURCHASE_ORDER,
        entity_id="po-1",
        previous_status=PurchaseOrderStatus.SENT,
        new_status=PurchaseOrderStatus.COMPLETED,
        acting_user_id="u-2",
        timestamp=datetime(2024, 4, 1, 9, 0, tzinfo=UTC),
    )
    assert event.to_payload() == {
        "kind": "PURCHASE_ORDER",
        "entityId": "po-1",
        "previousStatus": "SENT",
        "newStatus": "COMPLETED",
        "actingUserId": "u-2",
        "timestamp": "2024-04-01T09:00:00+00:00",
    }
