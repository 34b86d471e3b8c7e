"""
Error taxonomy for the trip ledger.

Every exception carries the HTTP status it maps to and a short user-facing
category. The handlers in app.main turn them into JSON bodies of the form
``{"error": category, "detail": message, ...extra}``.
"""
from typing import Any, Dict, Iterable, Optional

from fastapi import status
from sqlalchemy.exc import IntegrityError


class TripLedgerError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    category: str = "Request failed"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.category, "detail": self.message}


class ValidationError(TripLedgerError):
    """Missing or malformed input, reported per field."""

    category = "Validation failed"

    def __init__(self, fields: Dict[str, str], message: Optional[str] = None):
        self.fields = dict(fields)
        if message is None:
            message = "; ".join(f"{name}: {msg}" for name, msg in self.fields.items())
        super().__init__(message)

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls({field: message})

    @classmethod
    def from_errors(cls, errors: Iterable[Dict[str, Any]]) -> "ValidationError":
        """Build from pydantic's ``errors()`` list; the first message per field wins."""
        fields: Dict[str, str] = {}
        for error in errors:
            loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
            name = ".".join(loc) or "request"
            message = error.get("msg", "Invalid value")
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            fields.setdefault(name, message)
        return cls(fields)

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["fields"] = self.fields
        return body


class ReferenceNotFound(TripLedgerError):
    """An identifier has no master record (vehicle, driver, customer, ...)."""

    category = "Reference not found"

    def __init__(self, kind: str, ref_id: Any):
        self.kind = kind
        self.ref_id = ref_id
        super().__init__(f"{kind.capitalize()} with ID {ref_id} not found")

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["reference"] = {"kind": self.kind, "id": self.ref_id}
        return body


class NotFound(TripLedgerError):
    """Unknown transaction, master record or attachment."""

    status_code = status.HTTP_404_NOT_FOUND
    category = "Not found"


class ConflictError(TripLedgerError):
    """Duplicate key."""

    status_code = status.HTTP_409_CONFLICT
    category = "Duplicate record"


class DependencyError(TripLedgerError):
    """Row is referenced elsewhere and cannot be removed or changed."""

    status_code = status.HTTP_409_CONFLICT
    category = "Record in use"


class AttachmentError(TripLedgerError):
    """Uploaded file rejected before any business logic runs."""

    category = "File Upload Error"

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        field: Optional[str] = None,
        accepted_formats: Iterable[str] = (),
        max_size_mb: Optional[int] = None,
    ):
        super().__init__(message)
        self.file_name = file_name
        self.field = field
        self.accepted_formats = list(accepted_formats)
        self.max_size_mb = max_size_mb

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update({
            "file": self.file_name,
            "field": self.field,
            "accepted_formats": self.accepted_formats,
            "max_size_mb": self.max_size_mb,
        })
        return body


class StorageError(TripLedgerError):
    """Attachment could not be written to or verified in the store."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    category = "File upload failed"


def translate_integrity_error(exc: IntegrityError) -> TripLedgerError:
    """Map a driver-level integrity error onto a user-facing category."""
    text = str(getattr(exc, "orig", exc)).lower()
    if "foreign key" in text or "violates foreign" in text:
        return DependencyError("The record is referenced by other data and cannot be changed")
    if "unique" in text or "duplicate" in text:
        return ConflictError("A record with the same key already exists")
    return ConflictError("The change conflicts with existing data")
