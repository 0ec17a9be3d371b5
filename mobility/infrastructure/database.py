"""
Async SQLAlchemy engine and session factory.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.  The
lifecycle controller and the provider directory receive the session
factory explicitly; nothing below reaches for a global client.
"""

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from mobility.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=20,
    max_overflow=10,
    pool_pre_ping=True,
)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async_session_factory = make_session_factory(engine)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


# Driver/pool failures that mean "the store could not be reached", as
# opposed to constraint violations or programming errors.
UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, OSError)
