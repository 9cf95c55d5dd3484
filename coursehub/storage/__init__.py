"""Storage module for image uploads to Firebase Storage."""

from coursehub.storage.service import (
    FileTooLargeError,
    FirebaseStorageService,
    StorageNotConfiguredError,
    StorageValidationError,
)


__all__ = [
    "FileTooLargeError",
    "FirebaseStorageService",
    "StorageNotConfiguredError",
    "StorageValidationError",
]
