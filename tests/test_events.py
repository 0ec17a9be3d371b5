"""Tests for the realtime transition feed (mocked Redis)."""

from datetime import datetime, timezone
import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from mobility.domain.entities import Location
from mobility.domain.enums import RequestState, ServiceType
from mobility.domain.pricing import PricingEngine
from mobility.infrastructure.events import RedisEventPublisher, TransitionEvent
from mobility.services.directory import ProviderDirectory
from mobility.services.lifecycle import RequestLifecycleController


def _event(**overrides) -> TransitionEvent:
    data = dict(
        request_id="req-1",
        service_type="carpool",
        from_state="pending",
        to_state="assigned",
        provider_id="drv-1",
        occurred_at=datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return TransitionEvent(**data)


class TestRedisEventPublisher:
    @pytest.mark.asyncio
    async def test_publishes_on_service_type_channel(self):
        mock_redis = AsyncMock()
        mock_redis.publish = AsyncMock(return_value=1)

        publisher = RedisEventPublisher(mock_redis, channel_prefix="service-requests")
        await publisher.publish(_event())

        channel, payload = mock_redis.publish.call_args.args
        assert channel == "service-requests:carpool"
        body = json.loads(payload)
        assert body["to_state"] == "assigned"
        assert body["occurred_at"] == "2026-03-02T08:00:00+00:00"

    @pytest.mark.asyncio
    async def test_redis_failure_is_swallowed(self):
        mock_redis = AsyncMock()
        mock_redis.publish = AsyncMock(side_effect=RedisConnectionError("down"))

        publisher = RedisEventPublisher(mock_redis)
        await publisher.publish(_event())

        mock_redis.publish.assert_awaited_once()


class TestControllerFeed:
    @pytest.mark.asyncio
    async def test_failed_publish_does_not_fail_transition(self, session_factory, clock):
        mock_redis = AsyncMock()
        mock_redis.publish = AsyncMock(side_effect=RedisConnectionError("down"))
        controller = RequestLifecycleController(
            session_factory,
            PricingEngine(),
            ProviderDirectory(session_factory),
            clock=clock,
            events=RedisEventPublisher(mock_redis),
        )

        request = await controller.create(
            ServiceType.SCOOTER, "user-1", {"scooterId": "sct-1"},
            origin=Location(25.20, 55.27),
        )
        assigned = await controller.assign(request.id, "sct-1")

        assert assigned.state == RequestState.ASSIGNED
        assert mock_redis.publish.await_count == 2
