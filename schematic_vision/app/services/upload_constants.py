from pathlib import PurePosixPath
from typing import Optional

MIME_LOOKUP = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}

EXT_LOOKUP_BY_MIME = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/tiff": "tiff",
}

SUPPORTED_MIME_TYPES = tuple(EXT_LOOKUP_BY_MIME.keys())

GENERIC_MIME = "application/octet-stream"

DETAIL_LEVELS = ("low", "high", "auto")
DEFAULT_DETAIL = "high"


def deduce_mime_from_name(filename: Optional[str]) -> Optional[str]:
    if not isinstance(filename, str) or not filename:
        return None
    return MIME_LOOKUP.get(PurePosixPath(filename).suffix.lower())


def extension_for(mime_type: Optional[str], filename: Optional[str] = None) -> str:
    """Object-key extension: MIME table first, then the filename suffix, then ``bin``."""
    if mime_type and mime_type in EXT_LOOKUP_BY_MIME:
        return EXT_LOOKUP_BY_MIME[mime_type]
    if filename:
        suffix = PurePosixPath(filename).suffix.lstrip(".").lower()
        if suffix:
            return suffix
    return "bin"


def normalize_detail(value: Optional[str]) -> str:
    if isinstance(value, str) and value.strip().lower() in DETAIL_LEVELS:
        return value.strip().lower()
    return DEFAULT_DETAIL


def trim_slashes(value: Optional[str]) -> str:
    return (value or "").strip("/")
