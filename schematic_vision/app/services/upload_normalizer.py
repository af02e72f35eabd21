"""
Normalization of client-supplied upload descriptors.

Every descriptor resolves to exactly one payload source, picked in priority
order: in-memory buffer, base64 data URL, remote URL, storage object key.
Validation failures reject the whole request; no I/O happens here.
"""
import base64
import binascii
import logging
import re
from typing import Annotated, Any, Iterable, List, Literal, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError

from schematic_vision.app.schemas.uploads import RawUpload
from schematic_vision.app.services.upload_constants import (
    GENERIC_MIME,
    deduce_mime_from_name,
    normalize_detail,
)

logger = logging.getLogger(__name__)

DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.+)$", re.IGNORECASE | re.DOTALL)


class UploadValidationError(ValueError):
    """Raised when an upload descriptor cannot be accepted; fails the request."""


class BufferSource(BaseModel):
    kind: Literal["buffer"] = "buffer"
    data: Optional[bytes] = None


class DataUrlSource(BaseModel):
    kind: Literal["data_url"] = "data_url"
    data_url: Optional[str] = None
    data: Optional[bytes] = None


class RemoteUrlSource(BaseModel):
    kind: Literal["remote_url"] = "remote_url"
    url: str
    blob_pathname: Optional[str] = None


class StorageKeySource(BaseModel):
    kind: Literal["storage_key"] = "storage_key"
    key: str


PayloadSource = Annotated[
    Union[BufferSource, DataUrlSource, RemoteUrlSource, StorageKeySource],
    Field(discriminator="kind"),
]


class NormalizedUpload(BaseModel):
    id: str
    name: str
    detail: str
    source: PayloadSource
    byte_size: Optional[int] = None
    mime_type: Optional[str] = None
    # References kept even when bytes took priority as the payload source
    remote_url: Optional[str] = None
    storage_key: Optional[str] = None
    blob_pathname: Optional[str] = None

    def buffer(self) -> Optional[bytes]:
        if isinstance(self.source, (BufferSource, DataUrlSource)):
            return self.source.data
        return None

    def release_buffer(self) -> None:
        """Drop in-memory bytes so they can be reclaimed before the model call."""
        if isinstance(self.source, DataUrlSource):
            self.source.data = None
            self.source.data_url = None
        elif isinstance(self.source, BufferSource):
            self.source.data = None


def encode_data_url(mime_type: str, data: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(value: str) -> Tuple[str, bytes]:
    """Split a ``data:<mime>;base64,<payload>`` value into (mime, bytes)."""
    match = DATA_URL_RE.match((value or "").strip())
    if not match or not match.group("data").strip():
        raise ValueError("not a base64 data URL")
    payload = re.sub(r"\s+", "", match.group("data"))
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid base64 payload: {exc}") from exc
    return match.group("mime").strip().lower(), data


def _coerce_buffer(value) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, list) and all(isinstance(item, int) and 0 <= item < 256 for item in value):
        return bytes(value)
    return None


def _non_empty(value: Optional[str]) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _remote_url(value: Optional[str]) -> Optional[str]:
    url = _non_empty(value)
    if url is None:
        return None
    parsed = urlparse(url)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        return None
    return url


def _infer_mime(explicit: Optional[str], name: Optional[str], embedded: Optional[str] = None) -> str:
    return _non_empty(explicit) or embedded or deduce_mime_from_name(name) or GENERIC_MIME


def _limit_message(name: str, max_bytes: int) -> str:
    limit_mb = max_bytes / (1024 * 1024)
    limit_text = f"{limit_mb:g}"
    return f'Uploaded image "{name}" exceeds the {limit_text}MB limit.'


def normalize_upload(raw: RawUpload, index: int, max_bytes: int) -> NormalizedUpload:
    position = index + 1
    raw_name = _non_empty(raw.name)
    label = raw_name or f"#{position}"

    buffer = _coerce_buffer(raw.buffer)
    data_url = _non_empty(raw.data_url)
    url = _remote_url(raw.url)
    blob_pathname = _non_empty(raw.blob_pathname)
    key = _non_empty(raw.key) or blob_pathname

    if raw.size is not None and raw.size > max_bytes:
        raise UploadValidationError(_limit_message(label, max_bytes))

    if buffer is not None:
        source = BufferSource(data=buffer)
        size = len(buffer)
        mime = _infer_mime(raw.mime_type, raw_name)
    elif data_url is not None:
        try:
            embedded_mime, data = decode_data_url(data_url)
        except ValueError as exc:
            raise UploadValidationError(f"Uploaded image #{position} is missing a valid base64 data URL.") from exc
        source = DataUrlSource(data_url=data_url, data=data)
        size = len(data)
        mime = _infer_mime(raw.mime_type, raw_name, embedded_mime)
    elif url is not None or key is not None:
        # Bytes are not in hand: size and MIME are advisory metadata only
        if url is not None:
            source = RemoteUrlSource(url=url, blob_pathname=blob_pathname)
        else:
            source = StorageKeySource(key=key)
        size = raw.size if raw.size is not None and raw.size >= 0 else None
        mime = _non_empty(raw.mime_type) or deduce_mime_from_name(raw_name)
    else:
        raise UploadValidationError(f'Uploaded image "{label}" has no image data, URL, or storage key.')

    if size is not None and size > max_bytes:
        raise UploadValidationError(_limit_message(label, max_bytes))

    return NormalizedUpload(
        id=f"upload-{position}",
        name=raw_name or f"Uploaded image {position}",
        detail=normalize_detail(raw.detail),
        source=source,
        byte_size=size,
        mime_type=mime,
        remote_url=url,
        storage_key=key,
        blob_pathname=blob_pathname,
    )


def _as_raw_upload(item: Any, index: int) -> RawUpload:
    if isinstance(item, RawUpload):
        return item
    try:
        return RawUpload.model_validate(item)
    except ValidationError as exc:
        raise UploadValidationError(f"Uploaded image #{index + 1} is not a valid upload descriptor.") from exc


def normalize_uploads(raw_uploads: Optional[Iterable[Any]], max_bytes: int, max_count: int) -> List[NormalizedUpload]:
    """
    Validate and classify uploads, preserving input order.

    Inputs beyond ``max_count`` are dropped silently, before they are
    inspected at all, while a single oversized or malformed upload rejects
    the whole request. Items may be ``RawUpload`` instances or plain mappings.
    """
    if not raw_uploads:
        return []
    raw_list = list(raw_uploads)
    if len(raw_list) > max_count:
        logger.info("Dropping %d uploads beyond the limit of %d", len(raw_list) - max_count, max_count)
    return [
        normalize_upload(_as_raw_upload(item, index), index, max_bytes)
        for index, item in enumerate(raw_list[:max_count])
    ]
