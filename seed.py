"""
Seed script -- populates the provider directory with sample data for reviewers.

Run after migrations:
    python seed.py

Creates providers around Dubai for every service type:
  - drivers for carpool, medical, pet, luxury, freight and shuttle
  - scooters, couriers, rental desks and laundry partners
  - catalogue entries for school routes and hospitality
"""

import asyncio

from sqlalchemy import func, select

from mobility.config import settings
from mobility.domain.enums import ServiceType
from mobility.domain.spatial import h3_cell
from mobility.infrastructure.database import async_session_factory, engine
from mobility.infrastructure.models import ProviderModel

PROVIDERS = [
    # Carpool drivers
    {"id": "drv-001", "type": ServiceType.CARPOOL, "name": "Omar Haddad", "lat": 25.2050, "lng": 55.2710, "rating": 4.9, "capacity": 4, "vehicle": "sedan"},
    {"id": "drv-002", "type": ServiceType.CARPOOL, "name": "Fatima Noor", "lat": 25.2105, "lng": 55.2802, "rating": 4.7, "capacity": 6, "vehicle": "suv", "attrs": {"female_driver": True}},
    {"id": "drv-003", "type": ServiceType.CARPOOL, "name": "Ravi Menon", "lat": 25.1972, "lng": 55.2744, "rating": 4.5, "capacity": 4, "vehicle": "sedan"},
    # Scooters (capacity 1, identified by dock)
    {"id": "sct-101", "type": ServiceType.SCOOTER, "name": "Scooter 101", "lat": 25.2040, "lng": 55.2700, "rating": 4.6, "capacity": 1, "vehicle": "e-scooter"},
    {"id": "sct-102", "type": ServiceType.SCOOTER, "name": "Scooter 102", "lat": 25.1995, "lng": 55.2650, "rating": 4.8, "capacity": 1, "vehicle": "e-scooter"},
    # Couriers
    {"id": "cour-201", "type": ServiceType.PACKAGE, "name": "Swift Courier", "lat": 25.2150, "lng": 55.2820, "rating": 4.4, "capacity": 10, "vehicle": "van"},
    {"id": "cour-202", "type": ServiceType.PACKAGE, "name": "Desert Express", "lat": 25.1890, "lng": 55.2600, "rating": 4.7, "capacity": 4, "vehicle": "bike"},
    # Laundry partners
    {"id": "lnd-301", "type": ServiceType.LAUNDRY, "name": "Fresh Fold Laundry", "lat": 25.2070, "lng": 55.2750, "rating": 4.8, "capacity": 50, "attrs": {"fee_per_kg": 2.0}},
    {"id": "lnd-302", "type": ServiceType.LAUNDRY, "name": "Marina Wash", "lat": 25.0800, "lng": 55.1400, "rating": 4.6, "capacity": 80, "attrs": {"fee_per_kg": 1.5}},
    # Specialised rides
    {"id": "med-401", "type": ServiceType.MEDICAL, "name": "CareRide 1", "lat": 25.2300, "lng": 55.3000, "rating": 4.9, "capacity": 2, "vehicle": "wheelchair-van"},
    {"id": "pet-501", "type": ServiceType.PET, "name": "Paws Taxi", "lat": 25.2010, "lng": 55.2690, "rating": 4.7, "capacity": 3, "vehicle": "suv"},
    {"id": "lux-601", "type": ServiceType.LUXURY, "name": "Gold Class Limo", "lat": 25.1972, "lng": 55.2796, "rating": 5.0, "capacity": 4, "vehicle": "limousine"},
    {"id": "frt-701", "type": ServiceType.FREIGHT, "name": "Gulf Haulage", "lat": 25.0100, "lng": 55.1100, "rating": 4.3, "capacity": 3000, "vehicle": "truck"},
    {"id": "sht-801", "type": ServiceType.SHUTTLE, "name": "Airport Shuttle A", "lat": 25.2532, "lng": 55.3657, "rating": 4.5, "capacity": 14, "vehicle": "minibus"},
    {"id": "rnt-901", "type": ServiceType.CAR_RENTAL, "name": "City Rentals DXB", "lat": 25.2100, "lng": 55.2750, "rating": 4.4, "capacity": 20, "vehicle": "economy"},
    # Catalogue services (no live location)
    {"id": "sch-001", "type": ServiceType.SCHOOL, "name": "Al Noor School Route", "rating": 4.8, "capacity": 30, "vehicle": "bus"},
    {"id": "sch-002", "type": ServiceType.SCHOOL, "name": "Jumeirah Academy Route", "rating": 4.6, "capacity": 24, "vehicle": "bus"},
    {"id": "hos-001", "type": ServiceType.HOSPITALITY, "name": "Palm Concierge", "rating": 4.9, "capacity": 10},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(select(func.count()).select_from(ProviderModel))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Providers ─────────────────────────────────────────────────
        for p in PROVIDERS:
            lat, lng = p.get("lat"), p.get("lng")
            session.add(
                ProviderModel(
                    id=p["id"],
                    service_type=p["type"],
                    name=p["name"],
                    latitude=lat,
                    longitude=lng,
                    h3_cell=(
                        h3_cell(lat, lng, settings.h3_resolution)
                        if lat is not None
                        else None
                    ),
                    rating=p["rating"],
                    capacity=p["capacity"],
                    vehicle_type=p.get("vehicle"),
                    is_available=True,
                    attributes=p.get("attrs", {}),
                )
            )
        await session.flush()
        print(f"  Created {len(PROVIDERS)} providers")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
