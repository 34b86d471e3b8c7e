"""Read-only master data shapes served to the trip intake form."""
from datetime import date
from typing import Optional

from app.schemas.base import BaseResponseSchema


class CustomerOption(BaseResponseSchema):
    """Customer dropdown entry with the snapshot copied onto a trip."""
    customer_id: int
    customer_name: str
    customer_code: Optional[str] = None
    display_name: str
    gst_number: Optional[str] = None
    location: Optional[str] = None
    customer_site: Optional[str] = None


class VehicleDetails(BaseResponseSchema):
    """Vehicle with its owning vendor."""
    vehicle_id: int
    vehicle_number: str
    vehicle_type: Optional[str] = None
    body_type: Optional[str] = None
    vendor_id: Optional[int] = None
    vendor_name: Optional[str] = None
    vendor_code: Optional[str] = None


class CustomerVehicleOption(VehicleDetails):
    """Vehicle placed on one of the customer's projects."""
    project_id: int
    project_name: str
    project_code: Optional[str] = None
    placement_type: Optional[str] = None


class DriverOption(BaseResponseSchema):
    driver_id: int
    driver_name: str
    licence_number: Optional[str] = None
    phone: Optional[str] = None


class VehicleProjectDetails(BaseResponseSchema):
    """Current project placement of a vehicle."""
    project_id: int
    project_name: str
    project_code: Optional[str] = None
    location: Optional[str] = None
    customer_id: int
    placement_type: Optional[str] = None
    assigned_date: Optional[date] = None
    assignment_notes: Optional[str] = None
