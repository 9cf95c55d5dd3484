"""Firebase Storage service for course thumbnails.

Uploads are validated (size, declared type, magic bytes) before anything is
sent to the bucket, and the public URL of the stored blob is returned.
"""

import asyncio
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote

import structlog

from coursehub.config.settings import Settings
from coursehub.core.exceptions import MediaUploadError
from coursehub.utils.magic_bytes import validate_content_type


if TYPE_CHECKING:
    from google.cloud.storage import Bucket


logger = structlog.get_logger(__name__)


class StorageNotConfiguredError(MediaUploadError):
    """Firebase Storage is not configured."""

    def __init__(self, message: str = "Media storage is not configured") -> None:
        super().__init__(message, "storage_not_configured")


class StorageValidationError(MediaUploadError):
    """Uploaded file was rejected before upload."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "invalid_upload")


class FileTooLargeError(StorageValidationError):
    def __init__(self, size: int, max_size: int) -> None:
        super().__init__(
            f"File size ({size / 1024 / 1024:.2f} MB) exceeds "
            f"maximum allowed ({max_size / 1024 / 1024:.2f} MB)"
        )


_firebase_app = None
_storage_bucket: "Bucket | None" = None


def _init_firebase(settings: Settings) -> "Bucket":
    """Initialize Firebase Admin SDK once and return the storage bucket."""
    global _firebase_app, _storage_bucket  # noqa: PLW0603

    if _storage_bucket is not None:
        return _storage_bucket

    if not settings.firebase_configured:
        raise StorageNotConfiguredError

    # Lazy import to avoid loading Firebase SDK unless needed
    import firebase_admin  # noqa: PLC0415
    from firebase_admin import credentials, storage  # noqa: PLC0415

    creds_path = settings.firebase_credentials_path
    if not creds_path or not Path(creds_path).exists():
        raise StorageNotConfiguredError(
            f"Firebase credentials file not found: {creds_path}"
        )

    try:
        if _firebase_app is None:
            _firebase_app = firebase_admin.initialize_app(
                credentials.Certificate(creds_path),
                {
                    "storageBucket": settings.firebase_storage_bucket,
                    "projectId": settings.firebase_project_id,
                },
            )
            logger.info(
                "firebase_initialized",
                project_id=settings.firebase_project_id,
                bucket=settings.firebase_storage_bucket,
            )
        _storage_bucket = storage.bucket()
        return _storage_bucket
    except Exception as e:
        logger.exception("firebase_init_failed", error=str(e))
        raise StorageNotConfiguredError(f"Failed to initialize Firebase: {e}") from e


class FirebaseStorageService:
    """Uploads images to Firebase Storage and returns their public URL."""

    EXTENSION_MAP: dict[str, str] = {
        "image/jpeg": ".jpg",
        "image/png": ".png",
        "image/webp": ".webp",
        "image/gif": ".gif",
    }

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._bucket: Bucket | None = None

    @property
    def is_configured(self) -> bool:
        return self.settings.firebase_configured

    @property
    def max_file_size(self) -> int:
        """Maximum file size in bytes."""
        return self.settings.upload_max_file_size_mb * 1024 * 1024

    @property
    def allowed_types(self) -> list[str]:
        return self.settings.upload_allowed_image_types

    def _get_bucket(self) -> "Bucket":
        if self._bucket is None:
            self._bucket = _init_firebase(self.settings)
        return self._bucket

    def build_storage_path(
        self,
        folder: str,
        entity_id: str,
        content_type: str,
        original_filename: str | None = None,
    ) -> str:
        """Storage path ``coursehub/{folder}/{entity_id}_{timestamp}{ext}``."""
        timestamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
        ext = self.EXTENSION_MAP.get(content_type, "")
        if not ext and original_filename:
            ext = Path(original_filename).suffix.lower()
        return f"coursehub/{folder}/{entity_id}_{timestamp}{ext}"

    def public_url(self, storage_path: str) -> str:
        encoded_path = "/".join(
            quote(part, safe="") for part in storage_path.split("/")
        )
        return (
            f"https://storage.googleapis.com/"
            f"{self.settings.firebase_storage_bucket}/{encoded_path}"
        )

    def validate_image(self, content: bytes, content_type: str | None) -> str:
        """Check size, declared type and magic bytes; return the real type.

        Raises:
            FileTooLargeError: If the file exceeds the size limit.
            StorageValidationError: If type checks fail.
        """
        if not content:
            raise StorageValidationError("Empty file")

        if len(content) > self.max_file_size:
            raise FileTooLargeError(len(content), self.max_file_size)

        if content_type not in self.allowed_types:
            raise StorageValidationError(
                f"Content type '{content_type}' is not allowed. "
                f"Allowed: {', '.join(self.allowed_types)}"
            )

        is_valid, detected_type, error_msg = validate_content_type(
            content[:64],
            content_type,
            allowed_types=frozenset(self.allowed_types),
        )
        if not is_valid:
            logger.warning(
                "magic_bytes_validation_failed",
                declared_type=content_type,
                detected_type=detected_type,
                error=error_msg,
            )
            raise StorageValidationError(error_msg or "Invalid file content")

        return detected_type or content_type

    async def upload_image(
        self,
        content: bytes,
        content_type: str | None,
        folder: str,
        entity_id: str,
        filename: str | None = None,
    ) -> str:
        """Upload an image and return its public URL.

        Raises:
            StorageNotConfiguredError: If Firebase is not configured.
            StorageValidationError: If the file is rejected.
            MediaUploadError: If the upload itself fails.
        """
        if not self.is_configured:
            raise StorageNotConfiguredError

        actual_type = self.validate_image(content, content_type)
        storage_path = self.build_storage_path(
            folder, entity_id, actual_type, original_filename=filename
        )

        try:
            bucket = self._get_bucket()
            blob = bucket.blob(storage_path)
            blob.cache_control = "public, max-age=31536000, immutable"
            await asyncio.to_thread(
                blob.upload_from_string, content, content_type=actual_type
            )
            await asyncio.to_thread(blob.make_public)
        except MediaUploadError:
            raise
        except Exception as e:
            logger.exception("image_upload_failed", storage_path=storage_path)
            raise MediaUploadError(f"Failed to upload image: {e}") from e

        logger.info(
            "image_uploaded",
            storage_path=storage_path,
            content_type=actual_type,
            file_size=len(content),
            folder=folder,
            entity_id=entity_id,
        )
        return self.public_url(storage_path)
