"""Local disk storage client for transaction attachments."""
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from app.config import settings


logger = logging.getLogger(__name__)


class StorageClient:
    """
    Client for the attachment store.

    Files live below ``UPLOADS_DIR/<entity>/`` and are referenced everywhere
    else by their relative path, e.g. ``transactions/opening_km_image-3f2a9c1b7d4e.png``.
    The store never decides where it lives; the base directory comes from settings.
    """

    ENTITY_TYPES = ("transactions",)

    @classmethod
    def base_dir(cls) -> Path:
        return Path(settings.UPLOADS_DIR).resolve()

    @classmethod
    def ensure_entity_directory(cls, entity_type: str) -> Path:
        """Create (if needed) and return the upload directory of an entity type."""
        if entity_type not in cls.ENTITY_TYPES:
            raise ValueError(
                f"Invalid entity type: {entity_type}. Valid types: {', '.join(cls.ENTITY_TYPES)}"
            )
        path = cls.base_dir() / entity_type
        path.mkdir(parents=True, exist_ok=True)
        return path

    @classmethod
    def get_relative_path(cls, entity_type: str, filename: str) -> str:
        return f"{entity_type}/{filename}"

    @classmethod
    def get_full_path(cls, relative_path: str) -> Optional[Path]:
        """
        Resolve a relative path inside the store.

        Returns None when the path would escape the base directory.
        """
        base = cls.base_dir()
        full = (base / relative_path).resolve()
        if full != base and base not in full.parents:
            return None
        return full

    @classmethod
    def exists(cls, relative_path: str) -> bool:
        full = cls.get_full_path(relative_path)
        return full is not None and full.is_file()

    @classmethod
    def save(cls, content: bytes, entity_type: str, filename: str) -> str:
        """
        Write file content to the store.

        Args:
            content: File content as bytes
            entity_type: Entity subdirectory (e.g., "transactions")
            filename: Target file name, already unique

        Returns:
            Relative path of the stored file
        """
        directory = cls.ensure_entity_directory(entity_type)
        target = directory / filename
        with open(target, "wb") as fh:
            fh.write(content)
        return cls.get_relative_path(entity_type, filename)

    @classmethod
    def delete(cls, relative_path: str) -> bool:
        """
        Delete a file from the store.

        Returns:
            True if a file was removed
        """
        full = cls.get_full_path(relative_path)
        if full is None or not full.is_file():
            return False
        os.remove(full)
        logger.info("Deleted attachment %s", relative_path)
        return True

    @classmethod
    def generate_unique_filename(cls, original_filename: str, prefix: str = "") -> str:
        """
        Generate a unique filename to prevent collisions.

        Args:
            original_filename: Original file name
            prefix: Optional prefix, usually the form field name

        Returns:
            Unique filename (no directory part)
        """
        ext = ""
        if "." in original_filename:
            ext = "." + original_filename.rsplit(".", 1)[1].lower()

        unique_id = uuid.uuid4().hex[:12]

        if prefix:
            return f"{prefix}-{unique_id}{ext}"
        return f"{unique_id}{ext}"
