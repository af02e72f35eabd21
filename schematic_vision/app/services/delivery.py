"""
Delivery strategy selection for normalized uploads.

Strategies are tried in order and the first one returning a result wins:

1. remote URL passthrough (never re-uploaded)
2. signing a caller-supplied storage key (failure aborts the request)
3. best-effort offload of in-memory bytes to object storage
4. inline base64 data URL
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from pydantic import BaseModel

from schematic_vision.app.schemas.analyze import UploadSummary
from schematic_vision.app.services.upload_constants import GENERIC_MIME, extension_for
from schematic_vision.app.services.upload_normalizer import (
    DataUrlSource,
    NormalizedUpload,
    encode_data_url,
)
from schematic_vision.app.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

STRATEGY_BLOB_URL = "blob-url"
STRATEGY_REMOTE_URL = "remote-url"
STRATEGY_SIGNED_KEY = "s3-signed-key"
STRATEGY_UPLOAD = "s3-upload"
STRATEGY_INLINE = "inline"


class DeliveryError(RuntimeError):
    """An upload has no usable image reference; fails the request."""


class DeliveryResult(BaseModel):
    strategy: str
    image_url: str
    summary: UploadSummary


class DeliveryContext:
    def __init__(
        self,
        store: Optional[ObjectStore] = None,
        storage_url_markers: Sequence[str] = (),
        presign_ttl_seconds: int = 3600,
        timeout_seconds: Optional[float] = None,
    ):
        self.store = store
        self.storage_url_markers = [marker.lower() for marker in storage_url_markers]
        self.presign_ttl_seconds = presign_ttl_seconds
        self.timeout_seconds = timeout_seconds

    async def call_store(self, func, *args):
        """Run a blocking storage call off the event loop, bounded by the per-upload timeout."""
        loop = asyncio.get_running_loop()
        # The wait is cancelled on timeout; the client's own socket timeouts stop the thread
        return await asyncio.wait_for(loop.run_in_executor(None, func, *args), timeout=self.timeout_seconds)


def _summary(upload: NormalizedUpload, strategy: str, key: Optional[str] = None, url: Optional[str] = None) -> UploadSummary:
    return UploadSummary(
        id=upload.id,
        name=upload.name,
        bytes=upload.byte_size,
        mime_type=upload.mime_type,
        strategy=strategy,
        key=key,
        url=url,
    )


def is_storage_url(url: str, markers: Sequence[str]) -> bool:
    lowered = url.lower()
    return any(marker in lowered for marker in markers)


async def remote_url_passthrough(upload: NormalizedUpload, ctx: DeliveryContext) -> Optional[DeliveryResult]:
    if not upload.remote_url:
        return None
    # Classification only changes the reported strategy, never the routing
    strategy = STRATEGY_BLOB_URL if is_storage_url(upload.remote_url, ctx.storage_url_markers) else STRATEGY_REMOTE_URL
    return DeliveryResult(
        strategy=strategy,
        image_url=upload.remote_url,
        summary=_summary(upload, strategy, key=upload.blob_pathname, url=upload.remote_url),
    )


async def sign_storage_key(upload: NormalizedUpload, ctx: DeliveryContext) -> Optional[DeliveryResult]:
    if not upload.storage_key or ctx.store is None:
        return None
    try:
        signed_url = await ctx.call_store(ctx.store.presign_get, upload.storage_key, ctx.presign_ttl_seconds)
    except asyncio.TimeoutError as exc:
        raise DeliveryError(f'Timed out signing storage key for uploaded image "{upload.name}".') from exc
    except Exception as exc:  # noqa: BLE001
        raise DeliveryError(f'Unable to sign storage key for uploaded image "{upload.name}": {exc}') from exc
    return DeliveryResult(
        strategy=STRATEGY_SIGNED_KEY,
        image_url=signed_url,
        summary=_summary(upload, STRATEGY_SIGNED_KEY, key=upload.storage_key, url=signed_url),
    )


async def offload_buffer(upload: NormalizedUpload, ctx: DeliveryContext) -> Optional[DeliveryResult]:
    data = upload.buffer()
    if data is None or ctx.store is None:
        return None
    mime_type = upload.mime_type or GENERIC_MIME
    key = ctx.store.new_key(extension_for(mime_type, upload.name))
    try:
        await ctx.call_store(ctx.store.put_bytes, key, mime_type, data)
        signed_url = await ctx.call_store(ctx.store.presign_get, key, ctx.presign_ttl_seconds, False)
    except Exception:  # noqa: BLE001
        logger.exception(
            "Offload failed, falling back to inline delivery",
            extra={"upload_id": upload.id, "upload_name": upload.name, "key": key},
        )
        return None
    return DeliveryResult(
        strategy=STRATEGY_UPLOAD,
        image_url=signed_url,
        summary=_summary(upload, STRATEGY_UPLOAD, key=key, url=signed_url),
    )


async def inline(upload: NormalizedUpload, ctx: DeliveryContext) -> Optional[DeliveryResult]:
    source = upload.source
    if isinstance(source, DataUrlSource) and source.data_url:
        data_url = source.data_url
    elif upload.buffer() is not None:
        data_url = encode_data_url(upload.mime_type or GENERIC_MIME, upload.buffer())
    elif upload.storage_key:
        raise DeliveryError(
            f'Uploaded image "{upload.name}" references storage key "{upload.storage_key}" '
            "but object storage is not configured."
        )
    else:
        raise DeliveryError(f'Unable to determine an image reference for uploaded image "{upload.name}".')
    return DeliveryResult(strategy=STRATEGY_INLINE, image_url=data_url, summary=_summary(upload, STRATEGY_INLINE))


Strategy = Callable[[NormalizedUpload, DeliveryContext], Awaitable[Optional[DeliveryResult]]]

STRATEGIES: List[Strategy] = [remote_url_passthrough, sign_storage_key, offload_buffer, inline]


async def deliver(upload: NormalizedUpload, ctx: DeliveryContext) -> DeliveryResult:
    try:
        for strategy in STRATEGIES:
            result = await strategy(upload, ctx)
            if result is not None:
                logger.info(
                    "Delivering %s via %s",
                    upload.id,
                    result.strategy,
                    extra={"upload_name": upload.name, "bytes": upload.byte_size},
                )
                return result
        raise DeliveryError(f'Unable to determine an image reference for uploaded image "{upload.name}".')
    finally:
        upload.release_buffer()


async def deliver_all(uploads: Sequence[NormalizedUpload], ctx: DeliveryContext) -> List[DeliveryResult]:
    """Deliver uploads one after another; results keep the upload order."""
    results = []
    for upload in uploads:
        results.append(await deliver(upload, ctx))
    return results
