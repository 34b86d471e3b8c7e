"""
Spreadsheet export of transactions.

Column headers are fixed per sheet; cells with no value carry the
EXPORT_MISSING_LABEL placeholder so every column is always present.
Derived figures come from the financial deriver, vehicle and driver
columns from the reference resolver.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from io import BytesIO
from typing import Any, Callable, List, Optional, Sequence, Tuple

from openpyxl import Workbook
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ValidationError
from app.models.transaction import TripType
from app.services.financials import FinancialSummary, derive_financials
from app.services.reference_resolver import ReferenceResolver, ResolvedReferences
from app.services.transaction_query import TransactionQueryService
from app.services.transaction_service import Transaction


logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class ExportRow:
    """Everything a column needs to render one record."""
    record: Transaction
    financials: FinancialSummary
    vehicles: Optional[ResolvedReferences] = None
    drivers: Optional[ResolvedReferences] = None
    driver_numbers: Optional[List[str]] = None

    @property
    def customer_name(self):
        return self.record.customer.name if self.record.customer else None

    @property
    def project_name(self):
        return self.record.project.name if self.record.project else None


@dataclass
class ExportFile:
    filename: str
    content: bytes
    media_type: str = XLSX_MEDIA_TYPE


Column = Tuple[str, Callable[[ExportRow], Any]]


def field(name: str) -> Callable[[ExportRow], Any]:
    return lambda row: getattr(row.record, name)


def derived(name: str) -> Callable[[ExportRow], Any]:
    return lambda row: getattr(row.financials, name)


def _joined(values: Optional[Sequence[str]]) -> Optional[str]:
    return ", ".join(values) if values else None


def _customer_attr(row: ExportRow, name: str) -> Any:
    return getattr(row.record.customer, name) if row.record.customer else None


def _primary_vehicle_type(row: ExportRow) -> Optional[str]:
    links = row.record.vehicle_links
    if links and links[0].vehicle is not None:
        return links[0].vehicle.vehicle_type
    return None


def _margin_percent(row: ExportRow) -> Decimal:
    return (row.financials.margin_percentage * 100).quantize(Decimal("0.01"))


FIXED_COLUMNS: List[Column] = [
    ("Customer", lambda row: row.customer_name),
    ("GST No", lambda row: row.record.gst_no or _customer_attr(row, "gst_no")),
    ("Project", lambda row: row.project_name),
    ("Location", lambda row: row.record.location or _customer_attr(row, "location")),
    ("Cust Site", lambda row: row.record.customer_site or _customer_attr(row, "customer_site")),
    ("Type of Vehicle Placement", lambda row: "Fix"),
    ("Vehicle Type", _primary_vehicle_type),
    ("Vehicle No.", lambda row: _joined(row.vehicles.labels)),
    ("Display Vehicle", lambda row: row.vehicles.display_summary),
    ("Vendor Name", lambda row: row.record.vendor.name if row.record.vendor else None),
    ("Vendor Code", lambda row: row.record.vendor.code if row.record.vendor else None),
    ("Driver Name", lambda row: _joined(row.drivers.labels)),
    ("Driver No.", lambda row: _joined(row.driver_numbers)),
    ("Display Driver", lambda row: row.drivers.display_summary),
    ("Replacement Driver Name", field("replacement_driver_name")),
    ("Replacement Driver No.", field("replacement_driver_no")),
    ("Date", field("transaction_date")),
    ("Arrival Time at Hub", field("vehicle_reporting_at_hub")),
    ("In Time by Cust", field("vehicle_entry_in_hub")),
    ("Opening KM", field("opening_km")),
    ("Out Time from Hub", field("vehicle_out_from_hub_for_delivery")),
    ("Total Deliveries", field("total_deliveries")),
    ("Total Deliveries Attempted", field("total_deliveries_attempted")),
    ("Total Deliveries Done", field("total_deliveries_done")),
    ("Return Reporting Time", field("vehicle_return_at_hub")),
    ("Entered at Hub (Return)", field("vehicle_entered_at_hub_return")),
    ("Closing KM", field("closing_km")),
    ("TOTAL KM", derived("total_km")),
    ("V. FREIGHT (FIX)", field("v_freight_fix")),
    ("Toll Expenses", field("toll_expenses")),
    ("Parking Charges", field("parking_charges")),
    ("Loading Charges", field("loading_charges")),
    ("Unloading Charges", field("unloading_charges")),
    ("Handling Charges", field("handling_charges")),
    ("Other Charges", field("other_charges")),
    ("Total Freight", derived("total_freight")),
    ("Out Time From HUB", field("vehicle_out_from_hub_final")),
    ("Total Duty Hours", field("total_duty_hours")),
    ("Remarks", field("remarks")),
    ("Status", field("status")),
    ("Trip Close", field("trip_close")),
]

ADHOC_COLUMNS: List[Column] = [
    ("Customer", lambda row: row.customer_name),
    ("Company Name", lambda row: row.customer_name),
    ("GST No", lambda row: _customer_attr(row, "gst_no")),
    ("Project", lambda row: row.project_name),
    ("Location", lambda row: (
        row.record.project.location if row.record.project and row.record.project.location
        else _customer_attr(row, "location")
    )),
    ("Cust Site", lambda row: _customer_attr(row, "customer_site")),
    ("Type of Vehicle Placement", field("trip_type")),
    ("Vehicle Type", field("vehicle_type")),
    ("Date", field("transaction_date")),
    ("Trip No.", field("trip_no")),
    ("Vehicle No.", field("vehicle_number")),
    ("Vendor Name", field("vendor_name")),
    ("Vendor Contact No.", field("vendor_number")),
    ("Driver Name", field("driver_name")),
    ("Driver No.", field("driver_number")),
    ("Driver Aadhar No.", field("driver_aadhar_number")),
    ("Driver Licence No.", field("driver_licence_number")),
    ("Vehicle Reporting at Hub", field("vehicle_reporting_at_hub")),
    ("Vehicle Entry in Hub", field("vehicle_entry_in_hub")),
    ("Opening KM", field("opening_km")),
    ("Vehicle Out from Hub for Delivery", field("vehicle_out_from_hub_for_delivery")),
    ("Total Shipments for Deliveries", field("total_shipments_for_deliveries")),
    ("Total Shipment Deliveries Attempted", field("total_shipment_deliveries_attempted")),
    ("Total Shipment Deliveries Done", field("total_shipment_deliveries_done")),
    ("Vehicle Return at Hub", field("vehicle_return_at_hub")),
    ("Vehicle Entered at Hub (Return)", field("vehicle_entered_at_hub_return")),
    ("Closing KM", field("closing_km")),
    ("TOTAL KM", derived("total_km")),
    ("V. FREIGHT (FIX)", field("v_freight_fix")),
    ("Fix KM If Any", field("fix_km")),
    ("V. Freight (Variable - Per KM)", field("v_freight_variable")),
    ("Toll Charges", field("toll_expenses")),
    ("Parking Charges", field("parking_charges")),
    ("Loading Charges", field("loading_charges")),
    ("Unloading Charges", field("unloading_charges")),
    ("Other Charges If any", field("other_charges")),
    ("Other Charges Remarks", field("other_charges_remarks")),
    ("Out Time From HUB", field("vehicle_out_from_hub_final")),
    ("Total Duty Hours", field("total_duty_hours")),
    ("Total Freight", derived("total_freight")),
    ("Advance request No.", field("advance_request_no")),
    ("Advance To be paid", field("advance_to_paid")),
    ("Advance Approved Amount", field("advance_approved_amount")),
    ("Advance Approved by", field("advance_approved_by")),
    ("Advance paid", field("advance_paid_amount")),
    ("Advance Paid Mode (UPI/ Bank Transfer)", field("advance_paid_mode")),
    ("Advance Paid Date", field("advance_paid_date")),
    ("Advance paid by", field("advance_paid_by")),
    ("Employee Details if Advance paid by Employee", field("employee_details_advance")),
    ("Balance to be paid", derived("balance_to_be_paid")),
    ("Balance Paid Amt", field("balance_paid_amount")),
    ("Variance, if any", derived("variance")),
    ("Balance Paid Date", field("balance_paid_date")),
    ("Balance paid by", field("balance_paid_by")),
    ("Employee Details if Balance paid by Employee", field("employee_details_balance")),
    ("Remarks", field("remarks")),
    ("Revenue", field("revenue")),
    ("Margin", derived("margin")),
    ("Margin %Age", _margin_percent),
    ("Status", field("status")),
    ("Trip Close", field("trip_close")),
]

# scope -> (filename, [(sheet title, trip types, columns)])
EXPORT_SCOPES = {
    "fixed": (
        "fixed-transactions.xlsx",
        [("Fixed Transactions", (TripType.FIXED,), FIXED_COLUMNS)],
    ),
    "adhoc": (
        "adhoc-replacement-transactions.xlsx",
        [("Adhoc Transactions", (TripType.ADHOC, TripType.REPLACEMENT), ADHOC_COLUMNS)],
    ),
    "all": (
        "all-transactions.xlsx",
        [
            ("Fixed", (TripType.FIXED,), FIXED_COLUMNS),
            ("Adhoc", (TripType.ADHOC,), ADHOC_COLUMNS),
            ("Replacement", (TripType.REPLACEMENT,), ADHOC_COLUMNS),
        ],
    ),
}

SCOPE_ALIASES = {
    "adhocreplacement": "adhoc",
    "adhoc-replacement": "adhoc",
}


def cell_value(value: Any) -> Any:
    """Render one value for a worksheet cell."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return settings.EXPORT_MISSING_LABEL
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value


def build_row(record: Transaction) -> ExportRow:
    row = ExportRow(record=record, financials=derive_financials(record, record.variant))
    if record.variant.is_fixed:
        row.vehicles = ReferenceResolver.describe_vehicles(record)
        row.drivers = ReferenceResolver.describe_drivers(record)
        row.driver_numbers = ReferenceResolver.driver_numbers(record)
    return row


def render_rows(records: Sequence[Transaction], columns: Sequence[Column]) -> List[List[Any]]:
    rows = []
    for record in records:
        row = build_row(record)
        rows.append([cell_value(extract(row)) for _, extract in columns])
    return rows


def normalize_scope(scope: str) -> str:
    key = scope.strip().lower()
    key = SCOPE_ALIASES.get(key, key)
    if key not in EXPORT_SCOPES:
        raise ValidationError.single(
            "scope", f"Must be one of: {', '.join(EXPORT_SCOPES)}"
        )
    return key


class TransactionExportService:
    """Builds xlsx workbooks from the transaction stores."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.query = TransactionQueryService(db)

    async def export(self, scope: str) -> ExportFile:
        """
        Export one scope as a workbook.

        Args:
            scope: "fixed", "adhoc" or "all"

        Returns:
            ExportFile with filename, bytes and MIME type
        """
        key = normalize_scope(scope)
        filename, sheets = EXPORT_SCOPES[key]

        workbook = Workbook(write_only=True)
        row_count = 0
        for title, trip_types, columns in sheets:
            records = await self.query.fetch_sorted(trip_types=trip_types)
            sheet = workbook.create_sheet(title=title)
            sheet.append([header for header, _ in columns])
            for values in render_rows(records, columns):
                sheet.append(values)
            row_count += len(records)

        buffer = BytesIO()
        workbook.save(buffer)
        logger.info("Exported %d transactions (%s)", row_count, key)
        return ExportFile(filename=filename, content=buffer.getvalue())
