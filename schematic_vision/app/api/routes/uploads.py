import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from schematic_vision.app.api.deps import get_object_store
from schematic_vision.app.api.errors import ApiError, InvalidRequestError
from schematic_vision.app.core.config import ConfigurationError, Settings, get_settings
from schematic_vision.app.schemas.uploads import UploadTokenRequest, UploadTokenResponse
from schematic_vision.app.services.upload_constants import (
    GENERIC_MIME,
    SUPPORTED_MIME_TYPES,
    deduce_mime_from_name,
    extension_for,
)
from schematic_vision.app.storage.object_store import ObjectStore, ObjectStoreError

router = APIRouter(tags=["uploads"])
logger = logging.getLogger(__name__)


@router.post("/api/uploads", response_model=UploadTokenResponse)
async def create_upload_token(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: Optional[ObjectStore] = Depends(get_object_store),
):
    """Presign a direct-to-storage upload; the returned key is later sent to /api/analyze."""
    if store is None:
        raise ConfigurationError("Object storage is not configured on the server.")

    try:
        body = await request.json()
        payload = UploadTokenRequest.model_validate(body)
    except (ValueError, ValidationError):
        raise InvalidRequestError("Invalid JSON payload.") from None

    filename = (payload.filename or "").strip()
    if not filename:
        raise InvalidRequestError("filename is required.")
    if payload.size and payload.size > settings.upload_max_bytes:
        raise InvalidRequestError(f"File exceeds the {settings.upload_max_megabytes}MB limit.")

    content_type = (payload.content_type or "").strip()
    inferred_mime = content_type or deduce_mime_from_name(filename) or GENERIC_MIME
    if inferred_mime not in SUPPORTED_MIME_TYPES:
        raise InvalidRequestError(
            f'Unsupported content type "{inferred_mime}". Allowed: {", ".join(SUPPORTED_MIME_TYPES)}.'
        )

    key = store.new_key(extension_for(inferred_mime, filename))
    loop = asyncio.get_running_loop()
    try:
        presigned = await loop.run_in_executor(
            None,
            store.presign_upload,
            key,
            inferred_mime,
            settings.upload_max_bytes,
            settings.s3_presign_ttl_seconds,
        )
    except ObjectStoreError as exc:
        logger.exception("Failed to generate upload token", extra={"key": key})
        raise ApiError("Failed to generate upload token.", details=str(exc)) from exc

    return UploadTokenResponse(
        url=presigned["url"],
        fields=presigned["fields"],
        key=key,
        content_type=inferred_mime,
        max_bytes=settings.upload_max_bytes,
    )
