"""Pytest configuration and shared fixtures."""
import os
import shutil
import tempfile
from datetime import date
from pathlib import Path

import pytest

# Settings are read at import time, so the environment is set up before any app import
_TMP_DIR = Path(tempfile.mkdtemp(prefix="trip-ledger-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR / 'test.db'}"
os.environ["UPLOADS_DIR"] = str(_TMP_DIR / "uploads")
os.environ["ENVIRONMENT"] = "test"

import httpx  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import Base, async_session_factory, engine, import_models  # noqa: E402
from app.main import app  # noqa: E402
from app.models.master import (  # noqa: E402
    Customer, Driver, Project, Vehicle, VehicleAssignment, Vendor,
)


@pytest.fixture
async def schema():
    """Fresh tables (and an empty attachment store) for each test."""
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled aiosqlite connections belong to this test's event loop
    await engine.dispose()
    shutil.rmtree(settings.UPLOADS_DIR, ignore_errors=True)


@pytest.fixture
async def masters(schema):
    """
    Master data.

    Trips use customer 1, project 1, vendor 1, vehicles 5 and 7 and drivers 3
    and 4. Customer 2, vendor 2, vehicles 8 and 9, drivers 2 and 6 and the
    project placements exist for the intake form lookups.
    """
    async with async_session_factory() as session:
        session.add_all([
            Customer(customer_id=1, name="Acme Retail", code="ACME", gst_no="27AAACA1234A1Z5",
                     location="Pune", customer_site="Hinjewadi DC"),
            Customer(customer_id=2, name="Zen Foods", location="Nashik"),
            Vendor(vendor_id=1, name="Speedy Logistics", code="V001", mobile_no="9876500000"),
            Vendor(vendor_id=2, name="Metro Carriers", code="V002"),
        ])
        await session.flush()
        session.add_all([
            Project(project_id=1, name="Last Mile West", code="LMW", location="Pune", customer_id=1),
            Project(project_id=2, name="Cold Chain", code="CC", location="Nashik", customer_id=2),
            Vehicle(vehicle_id=5, registration_no="MH12AB1234", vehicle_type="Tata Ace", vendor_id=1),
            Vehicle(vehicle_id=7, registration_no="MH12CD5678", vehicle_type="Eicher 14ft", vendor_id=1),
            Vehicle(vehicle_id=8, registration_no="MH15EF9012", vehicle_type="Tata 407", vendor_id=2),
            Vehicle(vehicle_id=9, registration_no="MH12GH3456", vendor_id=1, status="Inactive"),
            Driver(driver_id=3, name="Ravi Kumar", mobile_no="9123456780", vendor_id=1),
            Driver(driver_id=4, name="Suresh Patil", mobile_no="9123456781", vendor_id=1,
                   licence_no="MH1220190001234"),
            Driver(driver_id=2, name="Amit Joshi", vendor_id=1, status="Inactive"),
            Driver(driver_id=6, name="Anil Deshmukh", vendor_id=2),
        ])
        await session.flush()
        session.add_all([
            VehicleAssignment(vehicle_id=7, project_id=1, customer_id=1,
                              placement_type="Standby", assigned_date=date(2026, 2, 1)),
            VehicleAssignment(vehicle_id=5, project_id=1, customer_id=1,
                              placement_type="Dedicated", assigned_date=date(2026, 1, 5)),
            VehicleAssignment(vehicle_id=9, project_id=1, customer_id=1,
                              placement_type="Dedicated", assigned_date=date(2026, 1, 5)),
            VehicleAssignment(vehicle_id=5, project_id=2, customer_id=2,
                              placement_type="Replacement", assigned_date=date(2025, 12, 1)),
            VehicleAssignment(vehicle_id=8, project_id=2, customer_id=2,
                              placement_type="Dedicated", assigned_date=date(2026, 3, 1),
                              status="Released"),
        ])
        await session.commit()
    yield


@pytest.fixture
async def db(masters):
    """Database session with master data in place."""
    async with async_session_factory() as session:
        yield session


@pytest.fixture
async def client(masters):
    """HTTP client bound to the FastAPI app."""
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fixed_payload():
    """Factory for a valid Fixed trip payload."""
    def build(**overrides):
        payload = {
            "trip_type": "Fixed",
            "transaction_date": "2026-03-10",
            "customer_id": 1,
            "project_id": 1,
            "vendor_id": 1,
            "vehicle_ids": [5, 7],
            "driver_ids": [3],
            "opening_km": 100,
            "closing_km": 150,
            "v_freight_fix": 2500,
            "toll_expenses": 150,
            "parking_charges": 50,
            "vehicle_reporting_at_hub": "07:30",
            "vehicle_out_from_hub_for_delivery": "08:15 AM",
            "vehicle_return_at_hub": "06:45 PM",
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def adhoc_payload():
    """Factory for a valid Adhoc trip payload."""
    def build(**overrides):
        payload = {
            "trip_type": "Adhoc",
            "transaction_date": "2026-03-11",
            "customer_id": 1,
            "vehicle_number": "KA01XY9999",
            "vehicle_type": "Tata 407",
            "vendor_name": "City Movers",
            "vendor_number": "9988776655",
            "driver_name": "Imran Shaikh",
            "driver_number": "9876543210",
            "opening_km": 2000,
            "closing_km": 2080,
            "v_freight_fix": 3000,
        }
        payload.update(overrides)
        return payload
    return build
