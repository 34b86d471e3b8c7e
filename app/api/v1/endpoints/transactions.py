"""Daily vehicle transaction API endpoints."""
import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Query, Request, Response, status
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile

from app.api.deps import DB
from app.core.exceptions import NotFound, ValidationError
from app.core.storage import StorageClient
from app.schemas.master import (
    CustomerOption,
    CustomerVehicleOption,
    DriverOption,
    VehicleDetails,
    VehicleProjectDetails,
)
from app.schemas.transaction import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    DeleteResponse,
    TransactionListResponse,
    TransactionStatsResponse,
    TransactionSummary,
)
from app.services.attachment_service import ENTITY_TYPE, AttachmentService, IncomingFile
from app.services.master_lookup import MasterLookupService
from app.services.transaction_export import TransactionExportService
from app.services.transaction_query import TransactionQueryService
from app.services.transaction_service import (
    TransactionService, build_response, parse_trip_type,
)


logger = logging.getLogger(__name__)

router = APIRouter()


async def read_payload(request: Request) -> Tuple[Dict[str, Any], List[IncomingFile]]:
    """
    Read a create/update request body.

    JSON bodies carry fields only; multipart bodies carry fields plus
    attachment files. Repeated form keys (vehicle_ids=5&vehicle_ids=7)
    become lists.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except json.JSONDecodeError:
            raise ValidationError.single("body", "Malformed JSON")
        if not isinstance(body, dict):
            raise ValidationError.single("body", "Expected a JSON object")
        return body, []

    form = await request.form()
    payload: Dict[str, Any] = {}
    uploads: List[IncomingFile] = []
    for key in dict.fromkeys(form.keys()):
        values = form.getlist(key)
        files = [v for v in values if isinstance(v, UploadFile)]
        if files:
            for upload in files:
                # Browsers send an empty part for untouched file inputs
                if not upload.filename:
                    continue
                uploads.append(IncomingFile(
                    field=key,
                    filename=upload.filename,
                    content_type=upload.content_type,
                    content=await upload.read(),
                ))
            continue
        payload[key] = values[0] if len(values) == 1 else list(values)
    return payload, uploads


# ==================== LIST & REPORTS ====================

@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    db: DB,
    page: int = Query(1, ge=1),
    size: Optional[int] = Query(None, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    from_date_alias: Optional[date] = Query(None, alias="fromDate"),
    to_date_alias: Optional[date] = Query(None, alias="toDate"),
):
    """
    Get the merged, paginated list of Fixed, Adhoc and Replacement transactions.

    Newest changes first; the date range is inclusive on transaction_date.
    """
    result = await TransactionQueryService(db).list_transactions(
        date_from=from_date or from_date_alias,
        date_to=to_date or to_date_alias,
        page=page,
        size=size or page_size,
    )
    return TransactionListResponse(
        items=[TransactionSummary(**item) for item in result.items],
        total=result.total,
        page=result.page,
        size=result.size,
        pages=result.pages,
    )


@router.get("/stats/summary", response_model=TransactionStatsResponse)
async def transaction_stats(
    db: DB,
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
):
    """Counts and freight/KM totals per trip type."""
    stats = await TransactionQueryService(db).summary(date_from=from_date, date_to=to_date)
    return TransactionStatsResponse(**stats)


@router.get("/export/{scope}")
async def export_transactions(scope: str, db: DB):
    """
    Download transactions as an xlsx workbook.

    Scopes: fixed, adhoc (Adhoc and Replacement), all (one sheet per trip type).
    """
    export = await TransactionExportService(db).export(scope)
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f"attachment; filename={export.filename}"}
    )


# ==================== INTAKE FORM LOOKUPS ====================

@router.get("/form-data/customers", response_model=List[CustomerOption])
async def list_form_customers(db: DB):
    """Customers for the intake dropdown, with GST number, location and site."""
    return await MasterLookupService(db).list_customers()


@router.get("/form-data/customer/{customer_id}", response_model=CustomerOption)
async def get_form_customer(customer_id: int, db: DB):
    """Customer snapshot copied onto a new trip."""
    return await MasterLookupService(db).get_customer(customer_id)


@router.get("/form-data/customer/{customer_id}/vehicles", response_model=List[CustomerVehicleOption])
async def list_form_customer_vehicles(customer_id: int, db: DB):
    """Vehicles placed on the customer's active projects."""
    return await MasterLookupService(db).customer_vehicles(customer_id)


@router.get("/form-data/vehicle/{vehicle_id}/details", response_model=VehicleDetails)
async def get_form_vehicle(vehicle_id: int, db: DB):
    """Vehicle with its vendor."""
    return await MasterLookupService(db).get_vehicle(vehicle_id)


@router.get("/form-data/vehicle/{vehicle_id}/drivers", response_model=List[DriverOption])
async def list_form_vehicle_drivers(vehicle_id: int, db: DB):
    """Drivers employed by the vehicle's vendor."""
    return await MasterLookupService(db).vehicle_drivers(vehicle_id)


@router.get("/form-data/vehicle/{vehicle_id}/project-details", response_model=VehicleProjectDetails)
async def get_form_vehicle_project(
    vehicle_id: int,
    db: DB,
    customer_id: Optional[int] = Query(None),
    customer_id_alias: Optional[int] = Query(None, alias="customerId"),
):
    """Latest active project placement of the vehicle, optionally for one customer."""
    return await MasterLookupService(db).vehicle_project(
        vehicle_id, customer_id=customer_id or customer_id_alias
    )


# ==================== ATTACHMENT FILES ====================

@router.get("/files/{filename}")
async def get_attachment_file(filename: str):
    """Stream a stored attachment."""
    if "/" in filename or "\\" in filename or filename in (".", ".."):
        raise ValidationError.single("filename", "Invalid file name")

    path = StorageClient.get_full_path(StorageClient.get_relative_path(ENTITY_TYPE, filename))
    if path is None:
        raise ValidationError.single("filename", "Invalid file name")
    if not path.is_file():
        raise NotFound(f"File {filename} not found")

    return FileResponse(path, filename=filename, headers={"Cache-Control": "no-cache"})


# ==================== TRANSACTION CRUD ====================

@router.delete("/bulk", response_model=BulkDeleteResponse)
async def bulk_delete_transactions(data: BulkDeleteRequest, db: DB):
    """
    Delete several transactions.

    Each id is looked up in the Fixed store first, then the Adhoc store;
    ids found nowhere are reported as not_found.
    """
    result = await TransactionService(db).bulk_delete(data.ids)
    return BulkDeleteResponse(**result)


@router.get("/{transaction_id}", response_model=None)
async def get_transaction(
    transaction_id: int,
    db: DB,
    trip_type: Optional[str] = Query(None, alias="type"),
):
    """
    Get one transaction.

    Without `type` both stores are searched; `resolved_by` tells how the
    record was picked when the id exists in both.
    """
    variant = parse_trip_type(trip_type, required=False)
    record, _, resolved_by = await TransactionService(db).get_by_id(transaction_id, variant)
    return build_response(record, resolved_by=resolved_by)


@router.post("", response_model=None, status_code=status.HTTP_201_CREATED)
async def create_transaction(request: Request, db: DB):
    """
    Create a transaction.

    Accepts multipart/form-data (fields plus attachment files) or JSON.
    `trip_type` selects the variant: Fixed, Adhoc or Replacement.
    """
    payload, uploads = await read_payload(request)
    AttachmentService.validate_all(uploads)

    variant = parse_trip_type(payload.get("trip_type"))
    record = await TransactionService(db).create(variant, payload, uploads)
    return build_response(record)


@router.put("/{transaction_id}", response_model=None)
async def update_transaction(transaction_id: int, request: Request, db: DB):
    """
    Update a transaction.

    Only the fields sent are changed; attachments without a new file keep
    their current file. `trip_type` is required and must match the stored one.
    """
    payload, uploads = await read_payload(request)
    AttachmentService.validate_all(uploads)

    variant = parse_trip_type(payload.get("trip_type"))
    record = await TransactionService(db).update(variant, transaction_id, payload, uploads)
    return build_response(record)


@router.delete("/{transaction_id}", response_model=DeleteResponse)
async def delete_transaction(
    transaction_id: int,
    db: DB,
    trip_type: Optional[str] = Query(None, alias="type"),
):
    """Delete one transaction; without `type` the Fixed store is tried first."""
    variant = parse_trip_type(trip_type, required=False)
    deleted = await TransactionService(db).delete(transaction_id, variant)
    return DeleteResponse(
        transaction_id=transaction_id,
        trip_type=deleted,
        message=f"{deleted.value} transaction {transaction_id} deleted",
    )


@router.delete("/{transaction_id}/files/{field}", response_model=None)
async def delete_transaction_attachment(
    transaction_id: int,
    field: str,
    db: DB,
    trip_type: Optional[str] = Query(None, alias="type"),
):
    """Remove one attachment from a transaction; without `type` the Fixed store is tried first."""
    variant = parse_trip_type(trip_type, required=False)
    record = await TransactionService(db).delete_attachment(transaction_id, variant, field)
    return build_response(record)
