"""Integration tests for the provider directory against SQLite."""

import pytest
import pytest_asyncio

from mobility.domain.enums import ServiceType
from mobility.domain.errors import (
    DirectoryUnavailable,
    InvalidParameters,
    UnsupportedServiceType,
)
from mobility.infrastructure.database import make_session_factory
from mobility.services.directory import ProviderDirectory, parse_filter
from tests.conftest import make_test_engine

CENTRE = {"latitude": 25.20, "longitude": 55.27}


@pytest.fixture
def directory(session_factory):
    return ProviderDirectory(session_factory)


@pytest_asyncio.fixture
async def drivers(add_providers):
    await add_providers(
        {"id": "drv-near", "service_type": ServiceType.CARPOOL, "name": "Near",
         "latitude": 25.201, "longitude": 55.271, "rating": 4.2, "vehicle_type": "sedan"},
        {"id": "drv-mid", "service_type": ServiceType.CARPOOL, "name": "Mid",
         "latitude": 25.22, "longitude": 55.29, "rating": 4.9, "capacity": 6,
         "vehicle_type": "suv"},
        {"id": "drv-far", "service_type": ServiceType.CARPOOL, "name": "Far",
         "latitude": 25.30, "longitude": 55.40, "rating": 5.0},
        {"id": "drv-off", "service_type": ServiceType.CARPOOL, "name": "Off duty",
         "latitude": 25.2005, "longitude": 55.2705, "is_available": False},
        {"id": "pet-1", "service_type": ServiceType.PET, "name": "Paws",
         "latitude": 25.2002, "longitude": 55.2702},
    )


class TestFilterParsing:
    def test_nested_location(self):
        criteria = parse_filter({"location": {"lat": 25.2, "lng": 55.27}, "radiusKm": 3})
        assert (criteria.latitude, criteria.longitude, criteria.radius_km) == (25.2, 55.27, 3)

    def test_unknown_keys_ignored(self):
        assert parse_filter({"colour": "red"}).has_point is False

    def test_negative_radius_rejected(self):
        with pytest.raises(InvalidParameters):
            parse_filter({**CENTRE, "radius_km": -1})


class TestLocationSearch:
    @pytest.mark.asyncio
    async def test_within_radius_nearest_first(self, directory, drivers):
        found = await directory.discover(ServiceType.CARPOOL, {**CENTRE, "radius_km": 5})
        assert [p.id for p in found] == ["drv-near", "drv-mid"]
        assert found[0].distance_km < found[1].distance_km <= 5

    @pytest.mark.asyncio
    async def test_large_radius_uses_bounding_box(self, directory, drivers):
        found = await directory.discover(ServiceType.CARPOOL, {**CENTRE, "radius_km": 200})
        assert [p.id for p in found] == ["drv-near", "drv-mid", "drv-far"]

    @pytest.mark.asyncio
    async def test_filters(self, directory, drivers):
        found = await directory.discover(
            ServiceType.CARPOOL, {**CENTRE, "radius_km": 50, "min_rating": 4.5}
        )
        assert [p.id for p in found] == ["drv-mid", "drv-far"]

        found = await directory.discover(
            ServiceType.CARPOOL, {**CENTRE, "radius_km": 50, "minCapacity": 5}
        )
        assert [p.id for p in found] == ["drv-mid"]

        found = await directory.discover(
            ServiceType.CARPOOL, {**CENTRE, "radius_km": 50, "vehicleType": "sedan"}
        )
        assert [p.id for p in found] == ["drv-near"]

    @pytest.mark.asyncio
    async def test_rating_breaks_distance_ties(self, directory, add_providers):
        await add_providers(
            {"id": "a", "service_type": ServiceType.LUXURY, "name": "A",
             "latitude": 25.21, "longitude": 55.28, "rating": 4.0},
            {"id": "b", "service_type": ServiceType.LUXURY, "name": "B",
             "latitude": 25.21, "longitude": 55.28, "rating": 4.8},
        )
        found = await directory.discover(ServiceType.LUXURY, {**CENTRE, "radius_km": 5})
        assert [p.id for p in found] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_only_requested_service_type(self, directory, drivers):
        found = await directory.discover(ServiceType.PET, {**CENTRE, "radius_km": 1})
        assert [p.id for p in found] == ["pet-1"]

    @pytest.mark.asyncio
    async def test_no_match_is_empty(self, directory, drivers):
        assert await directory.discover(ServiceType.FREIGHT, {**CENTRE, "radius_km": 5}) == []

    @pytest.mark.asyncio
    async def test_location_required(self, directory):
        with pytest.raises(InvalidParameters):
            await directory.discover(ServiceType.CARPOOL, {"radius_km": 5})


class TestCatalogSearch:
    @pytest.mark.asyncio
    async def test_ignores_location_and_ranks_by_rating(self, directory, add_providers):
        await add_providers(
            {"id": "sch-1", "service_type": ServiceType.SCHOOL, "name": "Route 1", "rating": 4.1},
            {"id": "sch-2", "service_type": ServiceType.SCHOOL, "name": "Route 2", "rating": 4.9},
        )
        found = await directory.discover(ServiceType.SCHOOL)
        assert [p.id for p in found] == ["sch-2", "sch-1"]
        assert found[0].location is None


class TestFailures:
    @pytest.mark.asyncio
    async def test_unregistered_service_type(self, session_factory):
        directory = ProviderDirectory(session_factory, adapters={})
        with pytest.raises(UnsupportedServiceType):
            await directory.discover(ServiceType.CARPOOL, {**CENTRE, "radius_km": 5})

    @pytest.mark.asyncio
    async def test_unreachable_store(self, tmp_path):
        engine = make_test_engine(tmp_path / "missing" / "nowhere.db")
        directory = ProviderDirectory(make_session_factory(engine))
        with pytest.raises(DirectoryUnavailable) as exc_info:
            await directory.discover(ServiceType.CARPOOL, {**CENTRE, "radius_km": 5})
        assert exc_info.value.retryable
        await engine.dispose()
