"""Magic bytes detection for uploaded images.

The declared Content-Type of an upload is not trusted; the leading bytes
of the file decide what it actually is.
"""

from typing import NamedTuple


MIN_BYTES_FOR_DETECTION = 4
WEBP_HEADER_LENGTH = 12


class MagicSignature(NamedTuple):
    bytes_pattern: bytes
    mime_type: str


# Reference: https://en.wikipedia.org/wiki/List_of_file_signatures
MAGIC_SIGNATURES: list[MagicSignature] = [
    MagicSignature(b"\xff\xd8\xff", "image/jpeg"),
    MagicSignature(b"\x89PNG\r\n\x1a\n", "image/png"),
    MagicSignature(b"GIF87a", "image/gif"),
    MagicSignature(b"GIF89a", "image/gif"),
]


def detect_content_type(data: bytes) -> str | None:
    """Detect image type from the first bytes of a file, None if unknown."""
    if len(data) < MIN_BYTES_FOR_DETECTION:
        return None

    # RIFF container with WEBP fourcc at offset 8
    if (
        data[:4] == b"RIFF"
        and len(data) >= WEBP_HEADER_LENGTH
        and data[8:12] == b"WEBP"
    ):
        return "image/webp"

    for sig in MAGIC_SIGNATURES:
        if data.startswith(sig.bytes_pattern):
            return sig.mime_type

    return None


def validate_content_type(
    data: bytes,
    declared_type: str | None,
    *,
    allowed_types: frozenset[str] | None = None,
) -> tuple[bool, str | None, str | None]:
    """Validate file content against its declared Content-Type.

    Any detected image type is accepted for a declared ``image/*`` type, as
    long as it is in ``allowed_types``.

    Returns:
        Tuple of (is_valid, detected_type, error_message).
    """
    detected_type = detect_content_type(data)

    if detected_type is None:
        return (False, None, "Unable to detect file type from content")

    if allowed_types is not None and detected_type not in allowed_types:
        return (
            False,
            detected_type,
            f"File type '{detected_type}' is not allowed. "
            f"Allowed: {', '.join(sorted(allowed_types))}",
        )

    if not declared_type:
        return (True, detected_type, None)

    declared_class = declared_type.split(";")[0].strip().lower().split("/")[0]
    if declared_class != detected_type.split("/")[0]:
        return (
            False,
            detected_type,
            f"Media class mismatch: declared '{declared_class}', detected image",
        )

    return (True, detected_type, None)
