"""
SQLAlchemy ORM models  (PostgreSQL in production, SQLite in tests).

Tables
------
* ``service_requests`` -- one row per logical request, mutated in place by
  every lifecycle transition and never deleted
* ``providers``        -- read model of drivers, scooters, partners and
  captains, binned into H3 cells for radius search

Indexes
-------
* **B-Tree** on ``state``, ``requester_id``, ``service_type``,
  ``provider_id``, ``idempotency_key`` for the controller and admin queries.
* **B-Tree** on ``(service_type, h3_cell)`` and ``(latitude, longitude)``
  for the directory's cell and bounding-box prefilters.
"""

from datetime import timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Time,
    TypeDecorator,
    func,
)

from .database import Base
from mobility.domain.enums import RequestState, ServiceType


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns timezone-aware UTC on every backend."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ServiceRequestModel(Base):
    __tablename__ = "service_requests"

    id = Column(String(32), primary_key=True)
    service_type = Column(
        Enum(ServiceType, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
    )
    requester_id = Column(String(64), nullable=False)

    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)
    origin_address = Column(String(255), nullable=True)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)
    destination_address = Column(String(255), nullable=True)

    scheduled_date = Column(Date, nullable=True)
    scheduled_time = Column(Time, nullable=True)

    details = Column(JSON, nullable=False)
    state = Column(
        Enum(RequestState, values_callable=_enum_values, native_enum=False, length=20),
        default=RequestState.PENDING,
        nullable=False,
    )
    provider_id = Column(String(64), nullable=True)
    price_breakdown = Column(JSON, nullable=True)
    tracking_code = Column(String(32), unique=True, nullable=False)
    idempotency_key = Column(String(64), unique=True, nullable=True)
    payment = Column(JSON, nullable=True)
    settlement = Column(JSON, nullable=True)
    cancellation = Column(JSON, nullable=True)

    created_at = Column(UTCDateTime, nullable=False)
    assigned_at = Column(UTCDateTime, nullable=True)
    confirmed_at = Column(UTCDateTime, nullable=True)
    started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    # Optimistic concurrency token, bumped on every write
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_requests_state", "state"),
        Index("idx_requests_requester", "requester_id"),
        Index("idx_requests_service_type", "service_type"),
        Index("idx_requests_provider", "provider_id"),
        Index("idx_requests_idempotency", "idempotency_key"),
    )


class ProviderModel(Base):
    __tablename__ = "providers"

    id = Column(String(64), primary_key=True)
    service_type = Column(
        Enum(ServiceType, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
    )
    name = Column(String(120), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    h3_cell = Column(String(20), nullable=True)
    rating = Column(Float, default=5.0, nullable=False)
    capacity = Column(Integer, default=1, nullable=False)
    vehicle_type = Column(String(32), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    attributes = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_providers_type_cell", "service_type", "h3_cell"),
        Index("idx_providers_type_latlng", "service_type", "latitude", "longitude"),
        Index("idx_providers_available", "is_available"),
    )
