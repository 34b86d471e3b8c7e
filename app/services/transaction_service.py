"""
Transaction store over the fixed and adhoc tables.

One interface for both trip variants; the variant tag picks the table.
Header rows and their vehicle/driver link rows are written in the same
session and committed once.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound, ValidationError, translate_integrity_error
from app.models.transaction import (
    ATTACHMENT_FIELDS,
    TRANSACTION_MODELS,
    AdhocTransaction,
    FixedTransaction,
    FixedTransactionDriver,
    FixedTransactionVehicle,
    TripType,
    utcnow,
)
from app.schemas.transaction import (
    TRIP_INPUT_SCHEMAS,
    AdhocTripResponse,
    FixedTripCreate,
    FixedTripResponse,
    TripEnvelopeCreate,
)
from app.services.attachment_service import (
    AttachmentService, IncomingFile, attachment_url, canonical_field,
)
from app.services.financials import apply_financials, derive_financials
from app.services.reference_resolver import ReferenceResolver


logger = logging.getLogger(__name__)

Transaction = Union[FixedTransaction, AdhocTransaction]

# How get_by_id picked its record
RESOLVED_REQUESTED = "requested"
RESOLVED_SINGLE_MATCH = "single_match"
RESOLVED_MOST_RECENT = "most_recent"

# Search order when the caller does not say which store
SEARCH_ORDER = (TripType.FIXED, TripType.ADHOC)


def parse_trip_type(value: Any, required: bool = True) -> Optional[TripType]:
    """Parse a trip type tag; raises ValidationError on unknown values."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError.single("trip_type", "Field required")
        return None
    if isinstance(value, TripType):
        return value
    text = str(value).strip()
    for member in TripType:
        if member.value.lower() == text.lower():
            return member
    raise ValidationError.single(
        "trip_type", f"Must be one of: {', '.join(t.value for t in TripType)}"
    )


def validate_input(variant: TripType, payload: Dict[str, Any]) -> TripEnvelopeCreate:
    """Run the variant's input schema; pydantic failures become a per-field ValidationError."""
    schema = TRIP_INPUT_SCHEMAS[variant]
    try:
        return schema.model_validate({**payload, "trip_type": variant.value})
    except PydanticValidationError as exc:
        raise ValidationError.from_errors(exc.errors())


def build_response(record: Transaction, resolved_by: Optional[str] = None):
    """Response schema of a loaded transaction with derived and display fields."""
    variant = record.variant
    summary = derive_financials(record, variant)

    data: Dict[str, Any] = {
        column.key: getattr(record, column.key) for column in record.__table__.columns
    }
    data["customer_name"] = record.customer.name if record.customer else None
    data["project_name"] = record.project.name if record.project else None
    data["total_km"] = summary.total_km
    data["total_freight"] = summary.total_freight
    data["resolved_by"] = resolved_by
    for field in ATTACHMENT_FIELDS:
        data[f"{field}_url"] = attachment_url(getattr(record, field))

    if variant.is_fixed:
        vehicles = ReferenceResolver.describe_vehicles(record)
        drivers = ReferenceResolver.describe_drivers(record)
        data.update({
            "vehicle_ids": vehicles.ids,
            "driver_ids": drivers.ids,
            "vehicle_numbers": vehicles.labels,
            "driver_names": drivers.labels,
            "display_vehicle": vehicles.display_summary,
            "display_driver": drivers.display_summary,
            "vendor_name": record.vendor.name if record.vendor else None,
            "vendor_code": record.vendor.code if record.vendor else None,
        })
        return FixedTripResponse.model_validate(data)

    data.update({
        "balance_to_be_paid": summary.balance_to_be_paid,
        "variance": summary.variance,
        "margin": summary.margin,
        "margin_percentage": summary.margin_percentage,
    })
    return AdhocTripResponse.model_validate(data)


class TransactionService:
    """Create, update, read and delete transactions of either variant."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.resolver = ReferenceResolver(db)

    @staticmethod
    def model_for(variant: TripType) -> Type[Transaction]:
        return TRANSACTION_MODELS[variant]

    async def _fetch(self, model: Type[Transaction], transaction_id: int) -> Optional[Transaction]:
        stmt = (
            select(model)
            .where(model.transaction_id == transaction_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.unique().scalar_one_or_none()

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            logger.warning("Integrity error on commit: %s", exc.orig)
            raise translate_integrity_error(exc)

    async def _check_references(self, data: TripEnvelopeCreate) -> None:
        await self.resolver.ensure_exists("customer", data.customer_id)
        await self.resolver.ensure_exists("project", data.project_id)
        if isinstance(data, FixedTripCreate):
            await self.resolver.ensure_exists("vendor", data.vendor_id)
            await self.resolver.resolve_vehicles(data.vehicle_ids)
            await self.resolver.resolve_drivers(data.driver_ids)

    @staticmethod
    def _link_rows(data: FixedTripCreate) -> Tuple[list, list]:
        vehicles = [
            FixedTransactionVehicle(position=position, vehicle_id=vehicle_id)
            for position, vehicle_id in enumerate(data.vehicle_ids)
        ]
        drivers = [
            FixedTransactionDriver(position=position, driver_id=driver_id)
            for position, driver_id in enumerate(data.driver_ids)
        ]
        return vehicles, drivers

    # ==================== CREATE ====================

    async def create(
        self,
        variant: TripType,
        payload: Dict[str, Any],
        uploads: Sequence[IncomingFile] = (),
    ) -> Transaction:
        """
        Create a transaction of the given variant.

        Args:
            variant: Trip type selecting the store
            payload: Raw field values (form or JSON)
            uploads: Attachment files, already validated

        Returns:
            The stored transaction, reloaded with its relations
        """
        data = validate_input(variant, payload)
        await self._check_references(data)

        model = self.model_for(variant)
        stored = AttachmentService.store(uploads)
        try:
            record = model(**data.record_fields(), **stored)
            if isinstance(data, FixedTripCreate):
                record.vehicle_links, record.driver_links = self._link_rows(data)
            apply_financials(record)

            self.db.add(record)
            await self._commit()
        except Exception:
            AttachmentService.discard(stored.values())
            raise

        logger.info("Created %s transaction %s", variant.value, record.transaction_id)
        return await self._fetch(model, record.transaction_id)

    # ==================== UPDATE ====================

    @staticmethod
    def _current_values(record: Transaction) -> Dict[str, Any]:
        values = {column.key: getattr(record, column.key) for column in record.__table__.columns}
        if isinstance(record, FixedTransaction):
            values["vehicle_ids"] = record.vehicle_ids
            values["driver_ids"] = record.driver_ids
        return values

    async def update(
        self,
        variant: TripType,
        transaction_id: int,
        payload: Dict[str, Any],
        uploads: Sequence[IncomingFile] = (),
    ) -> Transaction:
        """
        Partially update a transaction.

        Fields missing from the payload keep their stored values, and so do
        attachments for which no new file is sent. The merged record goes
        through the same validation as a create.
        """
        model = self.model_for(variant)
        record = await self._fetch(model, transaction_id)
        if record is None:
            raise NotFound(f"{variant.value} transaction {transaction_id} not found")
        if record.variant != variant:
            raise ValidationError.single(
                "trip_type",
                f"Transaction {transaction_id} is a {record.trip_type} trip; trip type cannot change",
            )

        merged = self._current_values(record)
        merged.update({key: value for key, value in payload.items() if key != "trip_type"})
        data = validate_input(variant, merged)
        await self._check_references(data)

        stored = AttachmentService.store(uploads)
        superseded: List[str] = []
        try:
            for key, value in data.record_fields().items():
                setattr(record, key, value)

            if isinstance(data, FixedTripCreate):
                await self._replace_links(record, data)

            for field, path in stored.items():
                previous = getattr(record, field)
                if previous and previous != path:
                    superseded.append(previous)
                setattr(record, field, path)

            # Every update moves the row to the top of the feed, link-only edits included
            record.updated_at = utcnow()
            apply_financials(record)
            await self._commit()
        except Exception:
            AttachmentService.discard(stored.values())
            raise

        # Old files go only once the new paths are committed
        AttachmentService.discard(superseded)
        logger.info("Updated %s transaction %s", variant.value, transaction_id)
        return await self._fetch(model, transaction_id)

    async def _replace_links(self, record: FixedTransaction, data: FixedTripCreate) -> None:
        if record.vehicle_ids == data.vehicle_ids and record.driver_ids == data.driver_ids:
            return
        vehicles, drivers = self._link_rows(data)
        # Flush the removals first so (transaction, position) and
        # (transaction, vehicle) keys are free for the new rows
        record.vehicle_links.clear()
        record.driver_links.clear()
        await self.db.flush()
        record.vehicle_links.extend(vehicles)
        record.driver_links.extend(drivers)

    # ==================== READ ====================

    async def get_by_id(
        self,
        transaction_id: int,
        variant: Optional[TripType] = None,
    ) -> Tuple[Transaction, TripType, str]:
        """
        Get a transaction by id.

        With a variant only that store is searched. Without one both stores
        are searched; when the id exists in both, the most recently created
        record wins and the choice is reported.

        Returns:
            (record, variant of the record, how it was resolved)
        """
        if variant is not None:
            record = await self._fetch(self.model_for(variant), transaction_id)
            if record is None:
                raise NotFound(f"{variant.value} transaction {transaction_id} not found")
            return record, record.variant, RESOLVED_REQUESTED

        matches = []
        for candidate in SEARCH_ORDER:
            record = await self._fetch(self.model_for(candidate), transaction_id)
            if record is not None:
                matches.append(record)

        if not matches:
            raise NotFound(f"Transaction {transaction_id} not found")
        if len(matches) == 1:
            return matches[0], matches[0].variant, RESOLVED_SINGLE_MATCH

        chosen = max(matches, key=lambda r: r.created_at)
        logger.warning(
            "Transaction id %s exists in both stores; returning the %s record (most recent)",
            transaction_id, chosen.trip_type,
        )
        return chosen, chosen.variant, RESOLVED_MOST_RECENT

    # ==================== DELETE ====================

    async def _find_for_delete(
        self, transaction_id: int, variant: Optional[TripType]
    ) -> Optional[Transaction]:
        candidates = (variant,) if variant is not None else SEARCH_ORDER
        for candidate in candidates:
            record = await self._fetch(self.model_for(candidate), transaction_id)
            if record is not None:
                return record
        return None

    @staticmethod
    def _attachment_paths(record: Transaction) -> List[str]:
        return [getattr(record, field) for field in ATTACHMENT_FIELDS if getattr(record, field)]

    async def delete(self, transaction_id: int, variant: Optional[TripType] = None) -> TripType:
        """
        Delete one transaction.

        Without a variant the fixed store is searched first, then the adhoc store.

        Returns:
            Variant of the deleted record
        """
        record = await self._find_for_delete(transaction_id, variant)
        if record is None:
            label = f"{variant.value} transaction" if variant else "Transaction"
            raise NotFound(f"{label} {transaction_id} not found")

        deleted_variant = record.variant
        paths = self._attachment_paths(record)
        await self.db.delete(record)
        await self._commit()

        AttachmentService.discard(paths)
        logger.info("Deleted %s transaction %s", deleted_variant.value, transaction_id)
        return deleted_variant

    async def bulk_delete(self, ids: Iterable[int]) -> Dict[str, Any]:
        """
        Delete several transactions; each id is looked up in both stores.

        Missing ids are reported, not raised.
        """
        results = []
        paths: List[str] = []
        deleted = 0
        not_found = 0

        for transaction_id in ids:
            record = await self._find_for_delete(transaction_id, None)
            if record is None:
                not_found += 1
                logger.warning("Bulk delete: transaction %s not found", transaction_id)
                results.append({"id": transaction_id, "trip_type": None, "status": "not_found"})
                continue

            paths.extend(self._attachment_paths(record))
            results.append({"id": transaction_id, "trip_type": record.variant, "status": "deleted"})
            await self.db.delete(record)
            await self.db.flush()
            deleted += 1

        await self._commit()
        AttachmentService.discard(paths)
        logger.info("Bulk delete: %d deleted, %d not found", deleted, not_found)

        return {
            "deleted_count": deleted,
            "not_found_count": not_found,
            "total_requested": len(results),
            "results": results,
        }

    # ==================== ATTACHMENTS ====================

    async def delete_attachment(
        self, transaction_id: int, variant: Optional[TripType], field: str
    ) -> Transaction:
        """
        Clear one attachment field and remove its file.

        Without a variant the fixed store is searched first, then the adhoc store.
        """
        field = canonical_field(field)
        if field not in ATTACHMENT_FIELDS:
            raise ValidationError.single(
                "field", f"Must be one of: {', '.join(ATTACHMENT_FIELDS)}"
            )

        record = await self._find_for_delete(transaction_id, variant)
        if record is None:
            label = f"{variant.value} transaction" if variant else "Transaction"
            raise NotFound(f"{label} {transaction_id} not found")

        model = type(record)
        path = getattr(record, field)
        if not path:
            raise NotFound(f"Transaction {transaction_id} has no {field} attachment")

        setattr(record, field, None)
        await self._commit()
        AttachmentService.discard([path])
        logger.info("Removed %s from %s transaction %s", field, record.trip_type, transaction_id)
        return await self._fetch(model, transaction_id)
