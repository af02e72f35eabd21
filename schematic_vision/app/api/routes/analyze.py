import json
import logging
from typing import Any, List, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from schematic_vision.app.api.deps import get_object_store, get_profile, get_vision_client
from schematic_vision.app.api.errors import InvalidRequestError
from schematic_vision.app.core.config import Settings, get_settings
from schematic_vision.app.core.schematic import SchematicProfile
from schematic_vision.app.schemas.analyze import AnalyzeRequest, AnalyzeResponse
from schematic_vision.app.schemas.uploads import RawUpload
from schematic_vision.app.services import analysis_service
from schematic_vision.app.services.upload_constants import GENERIC_MIME
from schematic_vision.app.services.vision_client import VisionClient
from schematic_vision.app.storage.object_store import ObjectStore

router = APIRouter(tags=["analyze"])
logger = logging.getLogger(__name__)


async def _parse_json(request: Request) -> Tuple[str, Optional[List[Any]]]:
    try:
        body = await request.json()
    except ValueError:
        raise InvalidRequestError("Invalid JSON payload.") from None
    if not isinstance(body, dict):
        raise InvalidRequestError("Invalid JSON payload.")
    try:
        payload = AnalyzeRequest.model_validate(body)
    except ValidationError as exc:
        raise InvalidRequestError("Invalid request payload.", details=str(exc)) from None
    return payload.question_text(), payload.uploads


def _parse_uploads_meta(raw: Optional[str]) -> dict:
    if not raw:
        return {}
    try:
        meta = json.loads(raw)
    except ValueError:
        raise InvalidRequestError("uploadsMeta must be valid JSON.") from None
    if not isinstance(meta, dict):
        raise InvalidRequestError("uploadsMeta must be a JSON object keyed by field name or filename.")
    return meta


async def _parse_multipart(request: Request, max_count: int) -> Tuple[str, List[RawUpload]]:
    try:
        form = await request.form()
    except Exception as exc:  # noqa: BLE001
        raise InvalidRequestError("Invalid multipart payload.", details=str(exc)) from None

    question = str(form.get("prompt") or form.get("question") or "").strip()
    default_detail = form.get("detail") if isinstance(form.get("detail"), str) else None
    meta_raw = form.get("uploadsMeta")
    meta = _parse_uploads_meta(meta_raw if isinstance(meta_raw, str) else None)

    files = [(field, value) for field, value in form.multi_items() if isinstance(value, UploadFile)]
    uploads: List[RawUpload] = []
    # Files past the limit are never read
    for field, file in files[:max_count]:
        file_meta = meta.get(field) or meta.get(file.filename or "") or {}
        if not isinstance(file_meta, dict):
            file_meta = {}
        content_type = file.content_type if file.content_type and file.content_type != GENERIC_MIME else None
        data = await file.read()
        try:
            upload = RawUpload(
                name=file_meta.get("name") or file.filename,
                detail=file_meta.get("detail") or default_detail,
                buffer=data,
                mime_type=file_meta.get("mimeType") or content_type,
            )
        except ValidationError as exc:
            raise InvalidRequestError("Invalid multipart payload.", details=str(exc)) from None
        uploads.append(upload)
    if len(files) > max_count:
        logger.info("Ignoring %d multipart files beyond the limit of %d", len(files) - max_count, max_count)
    return question, uploads


@router.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze_schematic(
    request: Request,
    vision_client: VisionClient = Depends(get_vision_client),
    settings: Settings = Depends(get_settings),
    profile: SchematicProfile = Depends(get_profile),
    store: Optional[ObjectStore] = Depends(get_object_store),
):
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        question, uploads = await _parse_multipart(request, settings.upload_max_count)
    else:
        question, uploads = await _parse_json(request)

    if not question:
        raise InvalidRequestError("Prompt is required.")

    result = await analysis_service.analyze(
        question=question,
        raw_uploads=uploads,
        settings=settings,
        profile=profile,
        vision_client=vision_client,
        store=store,
    )
    logger.info(
        "analyze request completed",
        extra={"model": result.model, "uploads_attached": result.uploads_attached},
    )
    return result
