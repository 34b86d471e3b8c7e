"""
Master data lookups for the trip intake form.

The form picks a customer (and copies its GST number, location and site
onto the trip), then a vehicle placed on one of that customer's projects,
then one of the drivers employed by the vehicle's vendor. Everything here is
read-only; master records are maintained elsewhere.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound
from app.models.master import (
    ACTIVE, Customer, Driver, Project, Vehicle, VehicleAssignment, Vendor,
)


logger = logging.getLogger(__name__)


def customer_option(customer: Customer) -> Dict[str, Any]:
    return {
        "customer_id": customer.customer_id,
        "customer_name": customer.name,
        "customer_code": customer.code,
        "display_name": customer.display_name,
        "gst_number": customer.gst_no,
        "location": customer.location,
        "customer_site": customer.customer_site,
    }


def vehicle_details(vehicle: Vehicle) -> Dict[str, Any]:
    vendor = vehicle.vendor
    return {
        "vehicle_id": vehicle.vehicle_id,
        "vehicle_number": vehicle.registration_no,
        "vehicle_type": vehicle.vehicle_type,
        "body_type": vehicle.body_type,
        "vendor_id": vendor.vendor_id if vendor else None,
        "vendor_name": vendor.name if vendor else None,
        "vendor_code": vendor.code if vendor else None,
    }


class MasterLookupService:
    """Customer, vehicle, driver and project lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_customer(self, customer_id: int) -> Customer:
        customer = await self.db.get(Customer, customer_id)
        if customer is None:
            raise NotFound(f"Customer {customer_id} not found")
        return customer

    async def _get_vehicle(self, vehicle_id: int) -> Vehicle:
        vehicle = await self.db.get(Vehicle, vehicle_id)
        if vehicle is None:
            raise NotFound(f"Vehicle {vehicle_id} not found")
        return vehicle

    # ==================== CUSTOMERS ====================

    async def list_customers(self) -> List[Dict[str, Any]]:
        """All customers by name, labelled "Name (CODE)"."""
        result = await self.db.execute(select(Customer).order_by(Customer.name))
        return [customer_option(c) for c in result.scalars().all()]

    async def get_customer(self, customer_id: int) -> Dict[str, Any]:
        return customer_option(await self._get_customer(customer_id))

    async def customer_vehicles(self, customer_id: int) -> List[Dict[str, Any]]:
        """
        Active vehicles with an active placement on one of the customer's projects.

        Ordered by vendor name, then registration number. A vehicle placed on
        two projects appears once per project.
        """
        await self._get_customer(customer_id)

        stmt = (
            select(VehicleAssignment)
            .join(Vehicle, VehicleAssignment.vehicle_id == Vehicle.vehicle_id)
            .join(Project, VehicleAssignment.project_id == Project.project_id)
            .outerjoin(Vendor, Vehicle.vendor_id == Vendor.vendor_id)
            .where(
                VehicleAssignment.customer_id == customer_id,
                VehicleAssignment.status == ACTIVE,
                Vehicle.status == ACTIVE,
                Project.status == ACTIVE,
            )
            .order_by(Vendor.name, Vehicle.registration_no, VehicleAssignment.assignment_id)
        )
        result = await self.db.execute(stmt)

        options: List[Dict[str, Any]] = []
        seen = set()
        for assignment in result.scalars().all():
            key = (assignment.vehicle_id, assignment.project_id)
            if key in seen:
                continue
            seen.add(key)
            options.append({
                **vehicle_details(assignment.vehicle),
                "project_id": assignment.project.project_id,
                "project_name": assignment.project.name,
                "project_code": assignment.project.code,
                "placement_type": assignment.placement_type,
            })
        return options

    # ==================== VEHICLES ====================

    async def get_vehicle(self, vehicle_id: int) -> Dict[str, Any]:
        return vehicle_details(await self._get_vehicle(vehicle_id))

    async def vehicle_drivers(self, vehicle_id: int) -> List[Dict[str, Any]]:
        """Active drivers of the vehicle's vendor, by name."""
        vehicle = await self._get_vehicle(vehicle_id)
        if vehicle.vendor_id is None:
            return []

        result = await self.db.execute(
            select(Driver)
            .where(Driver.vendor_id == vehicle.vendor_id, Driver.status == ACTIVE)
            .order_by(Driver.name)
        )
        return [
            {
                "driver_id": d.driver_id,
                "driver_name": d.name,
                "licence_number": d.licence_no,
                "phone": d.mobile_no,
            }
            for d in result.scalars().all()
        ]

    async def vehicle_project(
        self, vehicle_id: int, customer_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Latest active project placement of a vehicle.

        Args:
            vehicle_id: Vehicle master id
            customer_id: Only consider placements with this customer

        Raises:
            NotFound: unknown vehicle, or no active placement
        """
        await self._get_vehicle(vehicle_id)

        stmt = select(VehicleAssignment).where(
            VehicleAssignment.vehicle_id == vehicle_id,
            VehicleAssignment.status == ACTIVE,
        )
        if customer_id is not None:
            stmt = stmt.where(VehicleAssignment.customer_id == customer_id)
        stmt = stmt.order_by(
            VehicleAssignment.assigned_date.desc().nulls_last(),
            VehicleAssignment.assignment_id.desc(),
        ).limit(1)

        assignment = (await self.db.execute(stmt)).scalars().first()
        if assignment is None:
            raise NotFound(f"No active project assignment found for vehicle {vehicle_id}")

        project = assignment.project
        return {
            "project_id": project.project_id,
            "project_name": project.name,
            "project_code": project.code,
            "location": project.location,
            "customer_id": assignment.customer_id,
            "placement_type": assignment.placement_type,
            "assigned_date": assignment.assigned_date,
            "assignment_notes": assignment.assignment_notes,
        }
