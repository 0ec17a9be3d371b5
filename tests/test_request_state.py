"""Unit tests for service request state transitions (State Pattern)."""

import pytest

from mobility.domain.details import parse_details
from mobility.domain.entities import ServiceRequest
from mobility.domain.enums import RequestState, ServiceType
from mobility.domain.errors import InvalidStateTransition


def _request(state: RequestState = RequestState.PENDING, provider_id=None) -> ServiceRequest:
    return ServiceRequest(
        id="req-1",
        service_type=ServiceType.CARPOOL,
        requester_id="user-1",
        details=parse_details(ServiceType.CARPOOL, {"seats": 1}),
        state=state,
        provider_id=provider_id,
    )


class TestServiceRequestStateMachine:
    def test_initial_state_is_pending(self):
        assert _request().state == RequestState.PENDING

    # ── Valid transitions ─────────────────────────────────────────

    @pytest.mark.parametrize(
        "start, target",
        [
            (RequestState.PENDING, RequestState.ASSIGNED),
            (RequestState.ASSIGNED, RequestState.CONFIRMED),
            (RequestState.CONFIRMED, RequestState.ACTIVE),
            (RequestState.ACTIVE, RequestState.COMPLETED),
            (RequestState.PENDING, RequestState.CANCELLED),
            (RequestState.ASSIGNED, RequestState.CANCELLED),
            (RequestState.CONFIRMED, RequestState.CANCELLED),
        ],
    )
    def test_allowed(self, start, target):
        request = _request(start)
        request.transition_to(target)
        assert request.state == target

    # ── Invalid transitions ───────────────────────────────────────

    @pytest.mark.parametrize(
        "start, target",
        [
            (RequestState.PENDING, RequestState.CONFIRMED),
            (RequestState.PENDING, RequestState.ACTIVE),
            (RequestState.PENDING, RequestState.COMPLETED),
            (RequestState.ASSIGNED, RequestState.ACTIVE),
            (RequestState.ACTIVE, RequestState.CANCELLED),
            (RequestState.ASSIGNED, RequestState.ASSIGNED),
        ],
    )
    def test_rejected(self, start, target):
        request = _request(start)
        with pytest.raises(InvalidStateTransition) as exc_info:
            request.transition_to(target)
        assert request.state == start
        assert exc_info.value.request_id == "req-1"

    @pytest.mark.parametrize("terminal", [RequestState.COMPLETED, RequestState.CANCELLED])
    def test_terminal_states_are_final(self, terminal):
        request = _request(terminal)
        assert request.is_terminal
        for target in RequestState:
            assert not request.can_transition_to(target)

    def test_cancel_releases_provider(self):
        request = _request(RequestState.ASSIGNED, provider_id="drv-1")
        request.transition_to(RequestState.CANCELLED)
        assert request.provider_id is None

    def test_provider_kept_through_completion(self):
        request = _request(RequestState.ACTIVE, provider_id="drv-1")
        request.transition_to(RequestState.COMPLETED)
        assert request.provider_id == "drv-1"
