"""Pydantic schemas for daily vehicle transactions."""
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import (
    BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator,
)

from app.models.transaction import HUB_CHECKPOINT_FIELDS, TransactionStatus, TripType
from app.schemas.base import (
    BaseCreateSchema, BaseResponseSchema, DecimalAsFloat, ListResponse, OptionalDecimal,
)
from app.services.reference_resolver import normalize_ids


TIME_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p", "%I:%M:%S %p")

TRUE_VALUES = {"true", "1", "yes", "y", "on"}
FALSE_VALUES = {"false", "0", "no", "n", "off"}

def parse_checkpoint(value: Any) -> Optional[time]:
    """Accept a time, "HH:MM" (24h) or "hh:mm AM/PM"."""
    if value is None or isinstance(value, time):
        return value
    if isinstance(value, datetime):
        return value.time()
    text = str(value).strip().upper()
    if not text:
        return None
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError("Time must be HH:MM or hh:mm AM/PM")


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES or text == "":
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def digits(value: Any, length: int) -> Optional[str]:
    if value is None:
        return None
    text = re.sub(r"\s+", "", str(value))
    if not text:
        return None
    if not re.fullmatch(rf"\d{{{length}}}", text):
        raise ValueError(f"Must be exactly {length} digits")
    return text


# ==================== INPUT SCHEMAS ====================

class TripEnvelopeCreate(BaseCreateSchema):
    """Fields shared by every trip type."""
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True, use_enum_values=True)

    trip_type: TripType
    transaction_date: date
    trip_no: Optional[str] = Field(None, max_length=50)
    shift: Optional[str] = Field(None, max_length=20)

    customer_id: int = Field(..., gt=0)
    project_id: Optional[int] = Field(None, gt=0)

    # Hub checkpoints
    vehicle_reporting_at_hub: Optional[time] = None
    vehicle_entry_in_hub: Optional[time] = None
    vehicle_out_from_hub_for_delivery: Optional[time] = None
    vehicle_return_at_hub: Optional[time] = None
    vehicle_entered_at_hub_return: Optional[time] = None
    vehicle_out_from_hub_final: Optional[time] = None

    # Odometer
    opening_km: Decimal = Field(..., ge=0)
    closing_km: Optional[Decimal] = Field(None, ge=0)
    total_duty_hours: Optional[Decimal] = Field(None, ge=0)

    # Charges
    v_freight_fix: Optional[Decimal] = Field(None, ge=0)
    toll_expenses: Optional[Decimal] = Field(None, ge=0)
    parking_charges: Optional[Decimal] = Field(None, ge=0)
    loading_charges: Optional[Decimal] = Field(None, ge=0)
    unloading_charges: Optional[Decimal] = Field(None, ge=0)
    handling_charges: Optional[Decimal] = Field(None, ge=0)
    other_charges: Optional[Decimal] = Field(None, ge=0)
    other_charges_remarks: Optional[str] = None

    remarks: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING.value
    trip_close: bool = False

    @model_validator(mode="before")
    @classmethod
    def blank_to_none(cls, data: Any) -> Any:
        # Multipart forms send empty inputs as ""
        if isinstance(data, dict):
            return {
                key: (None if isinstance(value, str) and not value.strip() else value)
                for key, value in data.items()
            }
        return data

    @field_validator(*HUB_CHECKPOINT_FIELDS, mode="before")
    @classmethod
    def parse_checkpoints(cls, v):
        return parse_checkpoint(v)

    @field_validator(*HUB_CHECKPOINT_FIELDS)
    @classmethod
    def check_sequence(cls, v, info: ValidationInfo):
        # Compare against the closest earlier checkpoint that is filled in
        if v is None:
            return v
        index = HUB_CHECKPOINT_FIELDS.index(info.field_name)
        for earlier in reversed(HUB_CHECKPOINT_FIELDS[:index]):
            previous = info.data.get(earlier)
            if previous is not None:
                if v < previous:
                    raise ValueError(f"Cannot be earlier than {earlier}")
                break
        return v

    @field_validator("closing_km")
    @classmethod
    def closing_after_opening(cls, v, info: ValidationInfo):
        opening = info.data.get("opening_km")
        if v is not None and opening is not None and v < opening:
            raise ValueError("Cannot be less than opening_km")
        return v

    @field_validator("trip_close", mode="before")
    @classmethod
    def parse_trip_close(cls, v):
        return parse_flag(v)


class FixedTripCreate(TripEnvelopeCreate):
    """
    Fixed trip input.

    Also used to re-validate the merged record on update.
    """
    trip_type: TripType = TripType.FIXED

    vehicle_ids: List[int]
    driver_ids: List[int]
    vendor_id: Optional[int] = Field(None, gt=0)

    replacement_driver_name: Optional[str] = Field(None, max_length=200)
    replacement_driver_no: Optional[str] = Field(None, validate_default=True)

    # Delivery counters
    total_deliveries: Optional[int] = Field(None, ge=0)
    total_deliveries_attempted: Optional[int] = Field(None, ge=0)
    total_deliveries_done: Optional[int] = Field(None, ge=0)

    # Customer snapshot
    company_name: Optional[str] = Field(None, max_length=200)
    gst_no: Optional[str] = Field(None, max_length=20)
    location: Optional[str] = Field(None, max_length=200)
    customer_site: Optional[str] = Field(None, max_length=200)

    @field_validator("trip_type")
    @classmethod
    def must_be_fixed(cls, v):
        if v != TripType.FIXED:
            raise ValueError("Fixed trip schema only accepts trip_type 'Fixed'")
        return v

    @field_validator("vehicle_ids", "driver_ids", mode="before")
    @classmethod
    def normalize_refs(cls, v):
        return normalize_ids(v)

    @field_validator("vehicle_ids")
    @classmethod
    def require_vehicle(cls, v):
        if not v:
            raise ValueError("At least one vehicle is required")
        return v

    @field_validator("driver_ids")
    @classmethod
    def require_driver(cls, v):
        if not v:
            raise ValueError("At least one driver is required")
        return v

    @field_validator("replacement_driver_no", mode="before")
    @classmethod
    def replacement_number(cls, v):
        return digits(v, 10)

    @field_validator("replacement_driver_no")
    @classmethod
    def replacement_pair(cls, v, info: ValidationInfo):
        name = info.data.get("replacement_driver_name")
        if name and name.upper() != "NA" and not v:
            raise ValueError("Required when replacement_driver_name is given")
        return v

    def record_fields(self) -> dict:
        """Column values for the header row (references are written separately)."""
        return self.model_dump(exclude={"vehicle_ids", "driver_ids"})


class AdhocTripCreate(TripEnvelopeCreate):
    """Adhoc or Replacement trip input; vendor, vehicle and driver are free text."""
    trip_type: TripType = TripType.ADHOC

    vehicle_number: str = Field(..., min_length=1, max_length=20)
    vehicle_type: Optional[str] = Field(None, max_length=50)
    vendor_name: str = Field(..., min_length=1, max_length=200)
    vendor_number: Optional[str] = None
    driver_name: str = Field(..., min_length=1, max_length=200)
    driver_number: str
    driver_aadhar_number: Optional[str] = None
    driver_licence_number: Optional[str] = Field(None, max_length=30)

    # Shipment counters
    total_shipments_for_deliveries: Optional[int] = Field(None, ge=0)
    total_shipment_deliveries_attempted: Optional[int] = Field(None, ge=0)
    total_shipment_deliveries_done: Optional[int] = Field(None, ge=0)

    # Variable freight
    fix_km: Optional[Decimal] = Field(None, ge=0)
    v_freight_variable: Optional[Decimal] = Field(None, ge=0)

    # Advance payment
    advance_request_no: Optional[str] = Field(None, max_length=50)
    advance_to_paid: Optional[Decimal] = Field(None, ge=0)
    advance_approved_amount: Optional[Decimal] = Field(None, ge=0)
    advance_approved_by: Optional[str] = Field(None, max_length=100)
    advance_paid_amount: Optional[Decimal] = Field(None, ge=0)
    advance_paid_mode: Optional[str] = Field(None, max_length=30)
    advance_paid_date: Optional[date] = None
    advance_paid_by: Optional[str] = Field(None, max_length=100)
    employee_details_advance: Optional[str] = None

    # Balance payment
    balance_paid_amount: Optional[Decimal] = Field(None, ge=0)
    balance_paid_date: Optional[date] = None
    balance_paid_by: Optional[str] = Field(None, max_length=100)
    employee_details_balance: Optional[str] = None

    revenue: Optional[Decimal] = Field(None, ge=0)

    @field_validator("trip_type")
    @classmethod
    def must_be_adhoc(cls, v):
        if v == TripType.FIXED:
            raise ValueError("Adhoc trip schema accepts trip_type 'Adhoc' or 'Replacement'")
        return v

    @field_validator("driver_number", "vendor_number", mode="before")
    @classmethod
    def phone_number(cls, v):
        return digits(v, 10)

    @field_validator("driver_aadhar_number", mode="before")
    @classmethod
    def aadhar_number(cls, v):
        return digits(v, 12)

    def record_fields(self) -> dict:
        return self.model_dump()


TRIP_INPUT_SCHEMAS = {
    TripType.FIXED: FixedTripCreate,
    TripType.ADHOC: AdhocTripCreate,
    TripType.REPLACEMENT: AdhocTripCreate,
}


class BulkDeleteRequest(BaseModel):
    """Bulk delete request; ids are looked up in both stores, repeats included."""
    ids: List[int] = Field(..., min_length=1)

    @field_validator("ids", mode="before")
    @classmethod
    def normalize(cls, v):
        return normalize_ids(v, unique=False)


# ==================== RESPONSE SCHEMAS ====================

class TripEnvelopeResponse(BaseResponseSchema):
    """Fields shared by every trip response."""
    transaction_id: int
    trip_type: TripType
    transaction_date: date
    trip_no: Optional[str] = None
    shift: Optional[str] = None

    customer_id: int
    customer_name: Optional[str] = None
    project_id: Optional[int] = None
    project_name: Optional[str] = None

    vehicle_reporting_at_hub: Optional[time] = None
    vehicle_entry_in_hub: Optional[time] = None
    vehicle_out_from_hub_for_delivery: Optional[time] = None
    vehicle_return_at_hub: Optional[time] = None
    vehicle_entered_at_hub_return: Optional[time] = None
    vehicle_out_from_hub_final: Optional[time] = None

    opening_km: DecimalAsFloat
    closing_km: OptionalDecimal = None
    total_km: OptionalDecimal = None
    total_duty_hours: OptionalDecimal = None

    v_freight_fix: OptionalDecimal = None
    toll_expenses: OptionalDecimal = None
    parking_charges: OptionalDecimal = None
    loading_charges: OptionalDecimal = None
    unloading_charges: OptionalDecimal = None
    handling_charges: OptionalDecimal = None
    other_charges: OptionalDecimal = None
    other_charges_remarks: Optional[str] = None
    total_freight: DecimalAsFloat

    # Attachments
    driver_aadhar_doc: Optional[str] = None
    driver_licence_doc: Optional[str] = None
    toll_expenses_doc: Optional[str] = None
    parking_charges_doc: Optional[str] = None
    opening_km_image: Optional[str] = None
    closing_km_image: Optional[str] = None
    driver_aadhar_doc_url: Optional[str] = None
    driver_licence_doc_url: Optional[str] = None
    toll_expenses_doc_url: Optional[str] = None
    parking_charges_doc_url: Optional[str] = None
    opening_km_image_url: Optional[str] = None
    closing_km_image_url: Optional[str] = None

    remarks: Optional[str] = None
    status: str
    trip_close: bool
    created_at: datetime
    updated_at: datetime

    # "requested", "single_match" or "most_recent" on single-record reads
    resolved_by: Optional[str] = None


class FixedTripResponse(TripEnvelopeResponse):
    """Fixed trip with resolved vehicle and driver references."""
    vehicle_ids: List[int] = []
    driver_ids: List[int] = []
    vehicle_numbers: List[str] = []
    driver_names: List[str] = []
    display_vehicle: Optional[str] = None
    display_driver: Optional[str] = None

    vendor_id: Optional[int] = None
    vendor_name: Optional[str] = None
    vendor_code: Optional[str] = None
    replacement_driver_name: Optional[str] = None
    replacement_driver_no: Optional[str] = None

    total_deliveries: Optional[int] = None
    total_deliveries_attempted: Optional[int] = None
    total_deliveries_done: Optional[int] = None

    company_name: Optional[str] = None
    gst_no: Optional[str] = None
    location: Optional[str] = None
    customer_site: Optional[str] = None


class AdhocTripResponse(TripEnvelopeResponse):
    """Adhoc/Replacement trip with payment tracking and derived figures."""
    vehicle_number: str
    vehicle_type: Optional[str] = None
    vendor_name: str
    vendor_number: Optional[str] = None
    driver_name: str
    driver_number: str
    driver_aadhar_number: Optional[str] = None
    driver_licence_number: Optional[str] = None

    total_shipments_for_deliveries: Optional[int] = None
    total_shipment_deliveries_attempted: Optional[int] = None
    total_shipment_deliveries_done: Optional[int] = None

    fix_km: OptionalDecimal = None
    v_freight_variable: OptionalDecimal = None

    advance_request_no: Optional[str] = None
    advance_to_paid: OptionalDecimal = None
    advance_approved_amount: OptionalDecimal = None
    advance_approved_by: Optional[str] = None
    advance_paid_amount: OptionalDecimal = None
    advance_paid_mode: Optional[str] = None
    advance_paid_date: Optional[date] = None
    advance_paid_by: Optional[str] = None
    employee_details_advance: Optional[str] = None

    balance_paid_amount: OptionalDecimal = None
    balance_paid_date: Optional[date] = None
    balance_paid_by: Optional[str] = None
    employee_details_balance: Optional[str] = None

    revenue: OptionalDecimal = None
    balance_to_be_paid: DecimalAsFloat
    variance: DecimalAsFloat
    margin: DecimalAsFloat
    margin_percentage: DecimalAsFloat


class TransactionSummary(BaseResponseSchema):
    """One row of the merged transaction feed."""
    serial_number: int
    transaction_id: int
    trip_type: TripType
    transaction_date: date
    customer_name: Optional[str] = None
    project_name: Optional[str] = None
    display_vehicle: Optional[str] = None
    display_driver: Optional[str] = None
    vendor_name: Optional[str] = None
    opening_km: DecimalAsFloat
    closing_km: OptionalDecimal = None
    total_km: OptionalDecimal = None
    total_freight: DecimalAsFloat
    status: str
    trip_close: bool
    created_at: datetime
    updated_at: datetime


class TransactionListResponse(ListResponse):
    """Paginated merged transaction feed."""
    items: List[TransactionSummary]


class TripTypeStats(BaseModel):
    trip_type: TripType
    count: int
    closed_count: int
    total_km: DecimalAsFloat
    total_freight: DecimalAsFloat


class TransactionStatsResponse(BaseModel):
    """Totals over both stores for a date window."""
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    total_count: int
    total_km: DecimalAsFloat
    total_freight: DecimalAsFloat
    by_trip_type: List[TripTypeStats]


class DeleteResponse(BaseModel):
    transaction_id: int
    trip_type: TripType
    message: str


class BulkDeleteItem(BaseModel):
    id: int
    trip_type: Optional[TripType] = None
    status: str  # "deleted" or "not_found"


class BulkDeleteResponse(BaseModel):
    deleted_count: int
    not_found_count: int
    total_requested: int
    results: List[BulkDeleteItem]
