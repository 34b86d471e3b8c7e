"""Attachment validation and storage for transaction documents and KM images."""
import io
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from PIL import Image

from app.config import settings
from app.core.exceptions import AttachmentError, StorageError
from app.core.storage import StorageClient
from app.models.transaction import ATTACHMENT_FIELDS


logger = logging.getLogger(__name__)

ENTITY_TYPE = "transactions"
FILES_URL_PREFIX = "/api/v1/transactions/files"

# Allowed MIME types
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
}

ALLOWED_DOCUMENT_TYPES = {
    "application/pdf": ".pdf",
}

EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".pdf": "application/pdf",
}

ACCEPTED_FORMATS = ("JPEG", "PNG", "PDF")

# Form field names older clients use for the KM images of adhoc trips
FIELD_ALIASES = {
    "opening_km_image_adhoc": "opening_km_image",
    "closing_km_image_adhoc": "closing_km_image",
}

UPLOAD_FIELDS = tuple(ATTACHMENT_FIELDS) + tuple(FIELD_ALIASES)


@dataclass
class IncomingFile:
    """A file read from a multipart request, not yet stored."""
    field: str
    filename: str
    content_type: Optional[str]
    content: bytes


def canonical_field(name: str) -> str:
    return FIELD_ALIASES.get(name, name)


def attachment_url(relative_path: Optional[str]) -> Optional[str]:
    """Public download URL of a stored attachment."""
    if not relative_path:
        return None
    filename = relative_path.replace("\\", "/").rsplit("/", 1)[-1]
    return f"{FILES_URL_PREFIX}/{filename}"


class AttachmentService:
    """Validates uploaded files and writes them to the attachment store."""

    @staticmethod
    def max_size_bytes() -> int:
        return settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    @classmethod
    def _error(cls, message: str, upload: IncomingFile) -> AttachmentError:
        return AttachmentError(
            message,
            file_name=upload.filename,
            field=upload.field,
            accepted_formats=ACCEPTED_FORMATS,
            max_size_mb=settings.MAX_UPLOAD_SIZE_MB,
        )

    @classmethod
    def detect_type(cls, upload: IncomingFile) -> Optional[str]:
        """MIME type from the declared content type, falling back to the extension."""
        declared = (upload.content_type or "").lower()
        if declared == "image/jpg":
            declared = "image/jpeg"
        if declared in ALLOWED_IMAGE_TYPES or declared in ALLOWED_DOCUMENT_TYPES:
            return declared
        if "." in upload.filename:
            ext = "." + upload.filename.rsplit(".", 1)[1].lower()
            return EXTENSION_TYPES.get(ext)
        return None

    @classmethod
    def validate(cls, upload: IncomingFile) -> str:
        """
        Validate one uploaded file.

        Returns:
            The detected MIME type

        Raises:
            AttachmentError: unknown field, wrong format, too large or corrupted
        """
        if upload.field not in UPLOAD_FIELDS:
            raise cls._error(f"Unexpected file field: {upload.field}", upload)

        content_type = cls.detect_type(upload)
        if content_type is None:
            raise cls._error(
                f"Invalid file type for {upload.filename}. Allowed: {', '.join(ACCEPTED_FORMATS)}",
                upload,
            )

        if len(upload.content) > cls.max_size_bytes():
            actual_mb = len(upload.content) / (1024 * 1024)
            raise cls._error(
                f"File too large: {actual_mb:.1f}MB. Maximum: {settings.MAX_UPLOAD_SIZE_MB}MB",
                upload,
            )

        if content_type in ALLOWED_IMAGE_TYPES:
            try:
                img = Image.open(io.BytesIO(upload.content))
                img.verify()
            except Exception:
                raise cls._error("Invalid or corrupted image file", upload)
        elif not upload.content.startswith(b"%PDF"):
            raise cls._error("Invalid PDF file", upload)

        return content_type

    @classmethod
    def validate_all(cls, uploads: Iterable[IncomingFile]) -> None:
        for upload in uploads:
            cls.validate(upload)

    @classmethod
    def store(cls, uploads: Iterable[IncomingFile]) -> Dict[str, str]:
        """
        Write validated uploads to the store.

        Returns:
            Mapping of attachment field -> relative path

        Raises:
            StorageError: a file could not be written or is missing afterwards;
                files already written by this call are removed again
        """
        stored: Dict[str, str] = {}
        try:
            for upload in uploads:
                field = canonical_field(upload.field)
                filename = StorageClient.generate_unique_filename(upload.filename, field)
                path = StorageClient.save(upload.content, ENTITY_TYPE, filename)
                if not StorageClient.exists(path):
                    raise StorageError(f"Stored file {filename} could not be verified")
                if field in stored:
                    # Alias and canonical name both sent; keep the last one
                    StorageClient.delete(stored[field])
                stored[field] = path
        except OSError as exc:
            cls.discard(stored.values())
            raise StorageError(f"Failed to store attachment: {exc}")
        except StorageError:
            cls.discard(stored.values())
            raise
        return stored

    @classmethod
    def discard(cls, paths: Iterable[Optional[str]]) -> List[str]:
        """Remove stored files; returns the paths actually deleted."""
        removed = []
        for path in paths:
            if path and StorageClient.delete(path):
                removed.append(path)
        return removed
