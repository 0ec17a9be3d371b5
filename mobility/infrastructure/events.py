"""
Realtime transition feed over Redis pub/sub.

After a lifecycle transition has been committed, the controller hands a
``TransitionEvent`` to the publisher, which fans it out on the channel
``<prefix>:<service_type>`` (tracking screens, provider apps, a future
recommendation service).  The feed is best-effort: the database row is the
source of truth, so a publish failure is logged and never rolls back or
fails the transition that produced it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionEvent:
    request_id: str
    service_type: str
    from_state: Optional[str]
    to_state: str
    provider_id: Optional[str]
    occurred_at: datetime

    def to_json(self) -> str:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        return json.dumps(data)


class EventPublisher(Protocol):
    async def publish(self, event: TransitionEvent) -> None: ...


class RedisEventPublisher:
    def __init__(self, client: aioredis.Redis, channel_prefix: str = "service-requests"):
        self.redis = client
        self.channel_prefix = channel_prefix

    def channel_for(self, event: TransitionEvent) -> str:
        return f"{self.channel_prefix}:{event.service_type}"

    async def publish(self, event: TransitionEvent) -> None:
        channel = self.channel_for(event)
        try:
            receivers = await self.redis.publish(channel, event.to_json())
        except (RedisError, OSError):
            logger.warning(
                "Could not publish %s -> %s for request %s",
                event.from_state,
                event.to_state,
                event.request_id,
                exc_info=True,
            )
            return
        logger.debug("Published %s to %s (%d receivers)", event.to_state, channel, receivers)
