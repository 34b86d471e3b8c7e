"""
Reference resolution for fixed trips.

Callers send vehicle and driver identifiers in whatever shape their client
produced (a list, a JSON string, "5,7", a lone scalar, the legacy "N/A").
``normalize_ids`` turns all of them into one ordered list of positive ints;
``ReferenceResolver`` checks them against the master tables and builds the
display labels shown in listings and exports.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ReferenceNotFound, ValidationError
from app.models.master import Customer, Driver, Project, Vehicle, Vendor


logger = logging.getLogger(__name__)

# Values older clients send for "no references"
EMPTY_SENTINELS = {"", "N/A", '"N/A"', "null", "[]"}


def _parse_one(value: Any) -> List[Any]:
    """Flatten one raw element into a list of candidate identifiers."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items: List[Any] = []
        for element in value:
            items.extend(_parse_one(element))
        return items
    if isinstance(value, str):
        text = value.strip()
        if text in EMPTY_SENTINELS:
            return []
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                raise ValueError(f"Malformed identifier list: {value!r}")
            return _parse_one(decoded)
        if "," in text:
            return [part.strip() for part in text.split(",") if part.strip()]
        return [text]
    return [value]


def _to_positive_int(candidate: Any) -> int:
    if isinstance(candidate, bool):
        raise ValueError(f"Invalid identifier: {candidate!r}")
    if isinstance(candidate, int):
        number = candidate
    elif isinstance(candidate, float) and candidate.is_integer():
        number = int(candidate)
    elif isinstance(candidate, str) and candidate.strip().isdigit():
        number = int(candidate.strip())
    else:
        raise ValueError(f"Invalid identifier: {candidate!r}")
    if number <= 0:
        raise ValueError(f"Identifiers must be positive integers, got {number}")
    return number


def normalize_ids(raw: Any, unique: bool = True) -> List[int]:
    """
    Normalize a raw reference payload to an ordered list of positive ints.

    Accepts a list (including repeated multipart values), a JSON list string,
    a comma-separated string, a single scalar, or an empty sentinel.

    Args:
        raw: Reference payload as sent by the client
        unique: Reject repeated ids

    Raises:
        ValueError: element is not a positive integer, or an id repeats
    """
    ids: List[int] = []
    for candidate in _parse_one(raw):
        number = _to_positive_int(candidate)
        if unique and number in ids:
            raise ValueError(f"Duplicate identifier: {number}")
        ids.append(number)
    return ids


@dataclass
class ResolvedReferences:
    """Ordered references with their display labels."""
    ids: List[int] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)

    @property
    def primary_id(self) -> Optional[int]:
        return self.ids[0] if self.ids else None

    @property
    def primary_label(self) -> Optional[str]:
        return self.labels[0] if self.labels else None

    @property
    def display_summary(self) -> Optional[str]:
        """Primary label, plus ``(+N more)`` when further references exist."""
        if not self.labels:
            return None
        extra = len(self.labels) - 1
        if extra > 0:
            return f"{self.labels[0]} (+{extra} more)"
        return self.labels[0]

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[Tuple[int, Optional[str]]],
        placeholder: Optional[str] = None,
    ) -> "ResolvedReferences":
        """Build from (id, label) pairs; unresolved labels use the placeholder."""
        if placeholder is None:
            placeholder = settings.EXPORT_MISSING_LABEL
        ids: List[int] = []
        labels: List[str] = []
        for ref_id, label in pairs:
            ids.append(ref_id)
            labels.append(label if label else placeholder)
        return cls(ids=ids, labels=labels)


class ReferenceResolver:
    """Validates and labels master-data references."""

    MASTER_MODELS = {
        "customer": (Customer, Customer.customer_id),
        "project": (Project, Project.project_id),
        "vendor": (Vendor, Vendor.vendor_id),
        "vehicle": (Vehicle, Vehicle.vehicle_id),
        "driver": (Driver, Driver.driver_id),
    }

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def normalize_ids(raw: Any, field_name: str = "ids") -> List[int]:
        """normalize_ids() that reports failures as a per-field ValidationError."""
        try:
            return normalize_ids(raw)
        except ValueError as exc:
            raise ValidationError.single(field_name, str(exc))

    async def _load(self, kind: str, ids: Sequence[int]) -> Dict[int, Any]:
        model, pk = self.MASTER_MODELS[kind]
        if not ids:
            return {}
        result = await self.db.execute(select(model).where(pk.in_(list(ids))))
        rows = result.unique().scalars().all()
        return {getattr(row, pk.key): row for row in rows}

    async def ensure_exists(self, kind: str, ref_id: Optional[int]) -> None:
        """Raise ReferenceNotFound when a single optional reference is dangling."""
        if ref_id is None:
            return
        found = await self._load(kind, [ref_id])
        if ref_id not in found:
            raise ReferenceNotFound(kind, ref_id)

    async def _resolve_strict(
        self, kind: str, ids: Sequence[int], label_attr: str
    ) -> ResolvedReferences:
        found = await self._load(kind, ids)
        for ref_id in ids:
            if ref_id not in found:
                raise ReferenceNotFound(kind, ref_id)
        return ResolvedReferences.from_pairs(
            (ref_id, getattr(found[ref_id], label_attr)) for ref_id in ids
        )

    async def resolve_vehicles(self, ids: Sequence[int]) -> ResolvedReferences:
        """Resolve vehicle ids in caller order; labels are registration numbers."""
        return await self._resolve_strict("vehicle", ids, "registration_no")

    async def resolve_drivers(self, ids: Sequence[int]) -> ResolvedReferences:
        """Resolve driver ids in caller order; labels are driver names."""
        return await self._resolve_strict("driver", ids, "name")

    # ==================== DISPLAY ====================

    @staticmethod
    def describe_vehicles(transaction: Any) -> ResolvedReferences:
        """Display references of a loaded fixed trip; tolerates missing masters."""
        return ResolvedReferences.from_pairs(
            (link.vehicle_id, link.vehicle.registration_no if link.vehicle else None)
            for link in transaction.vehicle_links
        )

    @staticmethod
    def describe_drivers(transaction: Any) -> ResolvedReferences:
        return ResolvedReferences.from_pairs(
            (link.driver_id, link.driver.name if link.driver else None)
            for link in transaction.driver_links
        )

    @staticmethod
    def driver_numbers(transaction: Any) -> List[str]:
        placeholder = settings.EXPORT_MISSING_LABEL
        return [
            (link.driver.mobile_no if link.driver and link.driver.mobile_no else placeholder)
            for link in transaction.driver_links
        ]
