"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 6 customer profiles
  - 8 drivers with live positions around Berlin Mitte
  - 5 sample rides (pending, accepted, completed, cancelled)
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from ridehail.domain.distance import estimate_eta_minutes, haversine_km
from ridehail.domain.entities import utcnow
from ridehail.domain.enums import RideStatus
from ridehail.infrastructure.database import async_session_factory, engine
from ridehail.infrastructure.models import (
    DriverLocationModel,
    DriverModel,
    ProfileModel,
    RideModel,
)
from ridehail.services.rides import default_pricing_engine, loyalty_points_for


CUSTOMERS = [
    {"user_id": "c0000000-0000-0000-0000-000000000001", "full_name": "Lena Wagner"},
    {"user_id": "c0000000-0000-0000-0000-000000000002", "full_name": "Jonas Becker"},
    {"user_id": "c0000000-0000-0000-0000-000000000003", "full_name": "Mia Schulz"},
    {"user_id": "c0000000-0000-0000-0000-000000000004", "full_name": "Paul Hoffmann"},
    {"user_id": "c0000000-0000-0000-0000-000000000005", "full_name": "Emma Koch"},
    {"user_id": "c0000000-0000-0000-0000-000000000006", "full_name": "Felix Richter"},
]

DRIVERS = [
    {"vehicle": "VW Passat", "plate": "B-RH 101", "lat": 52.5210, "lng": 13.4070, "online": True},
    {"vehicle": "Toyota Prius", "plate": "B-RH 102", "lat": 52.5185, "lng": 13.4010, "online": True},
    {"vehicle": "Skoda Octavia", "plate": "B-RH 103", "lat": 52.5250, "lng": 13.3950, "online": True},
    {"vehicle": "Mercedes E", "plate": "B-RH 104", "lat": 52.5070, "lng": 13.3900, "online": True},
    {"vehicle": "Tesla Model 3", "plate": "B-RH 105", "lat": 52.4950, "lng": 13.4200, "online": True},
    {"vehicle": "Hyundai Ioniq", "plate": "B-RH 106", "lat": 52.5400, "lng": 13.4300, "online": False},
    # Outer districts, only reachable via the widened search radius
    {"vehicle": "Kia Niro", "plate": "B-RH 107", "lat": 52.4300, "lng": 13.5300, "online": True},
    {"vehicle": "Opel Insignia", "plate": "B-RH 108", "lat": 52.6000, "lng": 13.2800, "online": True},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM drivers"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = utcnow()
        engine_ = default_pricing_engine()

        # ── Customers ─────────────────────────────────────────────────
        for c in CUSTOMERS:
            session.add(ProfileModel(user_id=c["user_id"], full_name=c["full_name"]))
        await session.flush()
        print(f"  Created {len(CUSTOMERS)} customer profiles")

        # ── Drivers + positions ───────────────────────────────────────
        driver_models = []
        for i, d in enumerate(DRIVERS, start=1):
            m = DriverModel(
                user_id=f"d0000000-0000-0000-0000-{i:012d}",
                vehicle_model=d["vehicle"],
                vehicle_plate=d["plate"],
                is_online=d["online"],
            )
            session.add(m)
            driver_models.append(m)
        await session.flush()
        for m, d in zip(driver_models, DRIVERS):
            session.add(
                DriverLocationModel(
                    driver_id=m.id, latitude=d["lat"], longitude=d["lng"], updated_at=now
                )
            )
        await session.flush()
        print(f"  Created {len(driver_models)} drivers")

        # ── Rides ─────────────────────────────────────────────────────
        rides_data = [
            {
                "customer": 0,
                "pickup": (52.5163, 13.3777),  # Brandenburger Tor
                "dropoff": (52.5251, 13.3694),  # Hauptbahnhof
                "status": RideStatus.PENDING,
                "driver": None,
            },
            {
                "customer": 1,
                "pickup": (52.5219, 13.4132),  # Alexanderplatz
                "dropoff": (52.4996, 13.4184),  # Kreuzberg
                "status": RideStatus.PENDING,
                "driver": None,
            },
            {
                "customer": 2,
                "pickup": (52.5076, 13.3904),  # Checkpoint Charlie
                "dropoff": (52.5200, 13.4050),
                "status": RideStatus.ACCEPTED,
                "driver": 3,
            },
            {
                "customer": 3,
                "pickup": (52.5200, 13.4050),
                "dropoff": (52.3667, 13.5033),  # BER airport
                "status": RideStatus.COMPLETED,
                "driver": 0,
            },
            {
                "customer": 4,
                "pickup": (52.5309, 13.3847),
                "dropoff": (52.5450, 13.3550),
                "status": RideStatus.CANCELLED,
                "driver": None,
            },
        ]

        for r in rides_data:
            distance = round(haversine_km(*r["pickup"], *r["dropoff"]), 2)
            price = engine_.local_quote(distance).price
            driver = driver_models[r["driver"]] if r["driver"] is not None else None
            ride = RideModel(
                customer_id=CUSTOMERS[r["customer"]]["user_id"],
                driver_id=driver.id if driver else None,
                pickup_lat=r["pickup"][0],
                pickup_lng=r["pickup"][1],
                dropoff_lat=r["dropoff"][0],
                dropoff_lng=r["dropoff"][1],
                status=r["status"],
                price=price,
                distance_km=distance,
                duration_minutes=estimate_eta_minutes(distance),
                updated_at=now,
            )
            if r["status"] == RideStatus.ACCEPTED:
                ride.accepted_at = now
            elif r["status"] == RideStatus.COMPLETED:
                ride.accepted_at = now - timedelta(minutes=50)
                ride.started_at = now - timedelta(minutes=45)
                ride.completed_at = now - timedelta(minutes=5)
                ride.loyalty_points_earned = loyalty_points_for(price)
            elif r["status"] == RideStatus.CANCELLED:
                ride.cancelled_at = now
                ride.cancellation_fee = 0.0
            session.add(ride)
        await session.flush()
        print(f"  Created {len(rides_data)} rides")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
