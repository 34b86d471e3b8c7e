"""
Unified query engine: one feed over the fixed and adhoc stores.

Both stores are read for the date window, merged, sorted by
(updated_at, transaction_date, transaction_id) descending, and only then
paginated. Pages are offsets into the merged order, never per store.
"""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from math import ceil
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ValidationError
from app.models.transaction import AdhocTransaction, FixedTransaction, TripType
from app.services.financials import ZERO, derive_financials
from app.services.reference_resolver import ReferenceResolver
from app.services.transaction_service import Transaction


logger = logging.getLogger(__name__)


def sort_key(record: Transaction):
    return (record.updated_at, record.transaction_date, record.transaction_id)


def merge_sorted(*groups: Iterable[Transaction]) -> List[Transaction]:
    """Merge rows of several stores into the feed order (newest first)."""
    merged: List[Transaction] = []
    for group in groups:
        merged.extend(group)
    # sorted() is stable, so full ties keep store order (fixed first)
    return sorted(merged, key=sort_key, reverse=True)


def check_date_window(date_from: Optional[date], date_to: Optional[date]) -> None:
    if date_from and date_to and date_from > date_to:
        raise ValidationError.single("from_date", "from_date cannot be after to_date")


def summarize(record: Transaction, serial_number: int) -> Dict[str, Any]:
    """Uniform feed row for either variant."""
    financials = derive_financials(record, record.variant)

    if isinstance(record, FixedTransaction):
        display_vehicle = ReferenceResolver.describe_vehicles(record).display_summary
        display_driver = ReferenceResolver.describe_drivers(record).display_summary
        vendor_name = record.vendor.name if record.vendor else None
    else:
        display_vehicle = record.vehicle_number
        display_driver = record.driver_name
        vendor_name = record.vendor_name

    return {
        "serial_number": serial_number,
        "transaction_id": record.transaction_id,
        "trip_type": record.trip_type,
        "transaction_date": record.transaction_date,
        "customer_name": record.customer.name if record.customer else None,
        "project_name": record.project.name if record.project else None,
        "display_vehicle": display_vehicle,
        "display_driver": display_driver,
        "vendor_name": vendor_name,
        "opening_km": record.opening_km,
        "closing_km": record.closing_km,
        "total_km": financials.total_km,
        "total_freight": financials.total_freight,
        "status": record.status,
        "trip_close": record.trip_close,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


@dataclass
class TransactionPage:
    """One page of the merged feed."""
    items: List[Dict[str, Any]]
    total: int
    page: int
    size: int
    pages: int


class TransactionQueryService:
    """Read-only queries across both transaction stores."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(
        self,
        model,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        trip_types: Optional[Iterable[TripType]] = None,
    ) -> List[Transaction]:
        filters = []
        if date_from:
            filters.append(model.transaction_date >= date_from)
        if date_to:
            filters.append(model.transaction_date <= date_to)
        if trip_types is not None:
            filters.append(model.trip_type.in_([t.value for t in trip_types]))

        stmt = select(model)
        if filters:
            stmt = stmt.where(and_(*filters))
        result = await self.db.execute(stmt)
        return list(result.unique().scalars().all())

    async def fetch_sorted(
        self,
        trip_types: Iterable[TripType] = tuple(TripType),
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Transaction]:
        """All rows of the given trip types in feed order."""
        wanted = set(trip_types)
        groups = []
        if TripType.FIXED in wanted:
            groups.append(await self._load(FixedTransaction, date_from, date_to))
        adhoc_types = [t for t in TripType if not t.is_fixed and t in wanted]
        if adhoc_types:
            groups.append(await self._load(AdhocTransaction, date_from, date_to, adhoc_types))
        return merge_sorted(*groups)

    async def list_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        size: Optional[int] = None,
    ) -> TransactionPage:
        """
        Page through the merged feed.

        Args:
            date_from: Inclusive lower bound on transaction_date
            date_to: Inclusive upper bound on transaction_date
            page: 1-based page number
            size: Page size (defaults to DEFAULT_PAGE_SIZE)

        Returns:
            TransactionPage; total counts both stores
        """
        check_date_window(date_from, date_to)
        if size is None:
            size = settings.DEFAULT_PAGE_SIZE
        if page < 1:
            raise ValidationError.single("page", "Must be 1 or greater")
        if size < 1 or size > settings.MAX_PAGE_SIZE:
            raise ValidationError.single("size", f"Must be between 1 and {settings.MAX_PAGE_SIZE}")

        records = await self.fetch_sorted(date_from=date_from, date_to=date_to)
        total = len(records)
        offset = (page - 1) * size
        window = records[offset:offset + size]

        return TransactionPage(
            items=[summarize(record, offset + i + 1) for i, record in enumerate(window)],
            total=total,
            page=page,
            size=size,
            pages=ceil(total / size) if total > 0 else 1,
        )

    async def summary(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Counts and freight/KM totals per trip type for a date window."""
        check_date_window(date_from, date_to)
        records = await self.fetch_sorted(date_from=date_from, date_to=date_to)

        buckets = {
            trip_type: {
                "trip_type": trip_type,
                "count": 0,
                "closed_count": 0,
                "total_km": ZERO,
                "total_freight": ZERO,
            }
            for trip_type in TripType
        }
        for record in records:
            bucket = buckets[record.variant]
            financials = derive_financials(record, record.variant)
            bucket["count"] += 1
            if record.trip_close:
                bucket["closed_count"] += 1
            if financials.total_km is not None:
                bucket["total_km"] += financials.total_km
            bucket["total_freight"] += financials.total_freight

        by_type = list(buckets.values())
        return {
            "from_date": date_from,
            "to_date": date_to,
            "total_count": len(records),
            "total_km": sum((b["total_km"] for b in by_type), Decimal("0")),
            "total_freight": sum((b["total_freight"] for b in by_type), Decimal("0")),
            "by_trip_type": by_type,
        }
