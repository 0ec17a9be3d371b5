"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mobility.config import settings
from mobility.infrastructure.database import async_session_factory
from mobility.infrastructure.events import EventPublisher, RedisEventPublisher
from mobility.infrastructure.redis_client import get_redis
from mobility.services.lifecycle import Clock, RequestLifecycleController, utc_now


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


def get_clock() -> Clock:
    return utc_now


async def get_event_publisher() -> Optional[EventPublisher]:
    return RedisEventPublisher(await get_redis(), settings.events_channel_prefix)


def get_controller(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    events: Optional[EventPublisher] = Depends(get_event_publisher),
) -> RequestLifecycleController:
    """Controllers are stateless; one per request keeps overrides simple."""
    return RequestLifecycleController.from_settings(
        session_factory, settings, clock=clock, events=events
    )
