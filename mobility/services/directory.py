"""
Provider Directory
==================

Read-only lookup of the drivers, scooters, partners and captains that can
fulfil a request.  One ``DirectoryAdapter`` per service type, registered in
a lookup table; adding a service type means registering one adapter.

Adapters
--------
* ``LocationDirectoryAdapter`` -- location-bound services.  Needs a point
  and ``radius_km``.  SQL prefilter on H3 cells (or a bounding box for
  large radii), then exact haversine filtering, nearest first.
  Supported filters: ``min_rating``, ``min_capacity``, ``vehicle_type``.
* ``CatalogDirectoryAdapter`` -- services offered from a catalogue
  (school routes, hospitality).  Location is ignored; supported filters:
  ``min_rating``, ``min_capacity``.  Highest rated first.

Unknown filter keys are accepted and ignored by every adapter.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mobility.domain.entities import Provider
from mobility.domain.enums import ServiceType
from mobility.domain.errors import (
    DirectoryUnavailable,
    InvalidParameters,
    UnsupportedServiceType,
)
from mobility.domain.spatial import bounding_box, covering_cells, haversine_km
from mobility.infrastructure.database import UNAVAILABLE_ERRORS
from mobility.infrastructure.repositories import ProviderRepository, provider_from_model

logger = logging.getLogger(__name__)


class SearchFilter(BaseModel):
    """Directory query.  Accepts ``{"location": {...}, "radiusKm": ...}``
    as well as flat ``latitude``/``longitude`` (or ``lat``/``lng``) keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
        extra="ignore",
    )

    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    radius_km: Optional[float] = Field(None, gt=0, le=500)
    min_rating: Optional[float] = Field(None, ge=0, le=5)
    min_capacity: Optional[int] = Field(None, ge=1)
    vehicle_type: Optional[str] = None
    limit: int = Field(50, ge=1, le=500)

    @model_validator(mode="before")
    @classmethod
    def _flatten_location(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        location = data.pop("location", None)
        if isinstance(location, dict):
            data.setdefault("latitude", location.get("latitude", location.get("lat")))
            data.setdefault("longitude", location.get("longitude", location.get("lng")))
        if "lat" in data:
            data.setdefault("latitude", data.pop("lat"))
        if "lng" in data:
            data.setdefault("longitude", data.pop("lng"))
        if "radius" in data:
            data.setdefault("radius_km", data.pop("radius"))
        return data

    @property
    def has_point(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def parse_filter(criteria: Union[SearchFilter, Mapping[str, Any], None]) -> SearchFilter:
    if isinstance(criteria, SearchFilter):
        return criteria
    try:
        return SearchFilter.model_validate(dict(criteria or {}))
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ValidationError):
            detail = "; ".join(
                f"{'.'.join(str(p) for p in e['loc']) or 'filter'}: {e['msg']}"
                for e in exc.errors()
            )
        else:
            detail = "filter must be an object"
        raise InvalidParameters(detail) from exc


# ── Adapters ──────────────────────────────────────────────────────────


class DirectoryAdapter(ABC):
    @abstractmethod
    async def search(
        self,
        repo: ProviderRepository,
        service_type: ServiceType,
        criteria: SearchFilter,
    ) -> list[Provider]: ...


class LocationDirectoryAdapter(DirectoryAdapter):
    def __init__(self, resolution: int = 7, max_ring: int = 12):
        self.resolution = resolution
        self.max_ring = max_ring

    async def search(self, repo, service_type, criteria):
        if not criteria.has_point or criteria.radius_km is None:
            raise InvalidParameters(
                f"{service_type.value} search needs a location and radius_km"
            )
        lat, lng, radius = criteria.latitude, criteria.longitude, criteria.radius_km

        cells = covering_cells(lat, lng, radius, self.resolution, self.max_ring)
        rows = await repo.search(
            service_type,
            cells=cells,
            bbox=bounding_box(lat, lng, radius) if cells is None else None,
            min_rating=criteria.min_rating,
            min_capacity=criteria.min_capacity,
            vehicle_type=criteria.vehicle_type,
        )

        ranked = []
        for row in rows:
            if row.latitude is None or row.longitude is None:
                continue
            distance = haversine_km(lat, lng, row.latitude, row.longitude)
            if distance <= radius:
                ranked.append((distance, -row.rating, row.id, row))
        ranked.sort(key=lambda item: item[:3])
        return [
            provider_from_model(row, round(distance, 3))
            for distance, _, _, row in ranked[: criteria.limit]
        ]


class CatalogDirectoryAdapter(DirectoryAdapter):
    async def search(self, repo, service_type, criteria):
        rows = await repo.search(
            service_type,
            min_rating=criteria.min_rating,
            min_capacity=criteria.min_capacity,
        )
        rows.sort(key=lambda row: (-row.rating, row.name, row.id))
        return [provider_from_model(row) for row in rows[: criteria.limit]]


def default_adapters(resolution: int = 7, max_ring: int = 12) -> dict[ServiceType, DirectoryAdapter]:
    located = LocationDirectoryAdapter(resolution, max_ring)
    catalog = CatalogDirectoryAdapter()
    adapters: dict[ServiceType, DirectoryAdapter] = {t: located for t in ServiceType}
    adapters[ServiceType.SCHOOL] = catalog
    adapters[ServiceType.HOSPITALITY] = catalog
    return adapters


# ── Facade ────────────────────────────────────────────────────────────


class ProviderDirectory:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        adapters: Optional[Mapping[ServiceType, DirectoryAdapter]] = None,
    ):
        self._session_factory = session_factory
        self.adapters = dict(adapters if adapters is not None else default_adapters())

    @classmethod
    def from_settings(cls, session_factory, settings) -> "ProviderDirectory":
        return cls(
            session_factory,
            default_adapters(settings.h3_resolution, settings.directory_max_ring),
        )

    async def discover(
        self,
        service_type: ServiceType,
        criteria: Union[SearchFilter, Mapping[str, Any], None] = None,
    ) -> list[Provider]:
        """Candidate providers for *service_type*; an empty list is success."""
        adapter = self.adapters.get(service_type)
        if adapter is None:
            raise UnsupportedServiceType(f"No directory adapter for {service_type.value}")
        parsed = parse_filter(criteria)
        try:
            async with self._session_factory() as session:
                providers = await adapter.search(
                    ProviderRepository(session), service_type, parsed
                )
        except UNAVAILABLE_ERRORS as exc:
            logger.warning("Provider directory unreachable: %s", exc)
            raise DirectoryUnavailable("Provider directory is unavailable") from exc
        logger.debug("Directory %s: %d candidates", service_type.value, len(providers))
        return providers
