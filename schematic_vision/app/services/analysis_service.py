import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from schematic_vision.app.core.config import ConfigurationError, Settings
from schematic_vision.app.core.schematic import ReferenceImage, SchematicProfile
from schematic_vision.app.schemas.analyze import AnalyzeResponse, CostEstimate
from schematic_vision.app.services.delivery import DeliveryContext, DeliveryResult, deliver_all
from schematic_vision.app.services.upload_constants import deduce_mime_from_name
from schematic_vision.app.services.upload_normalizer import encode_data_url, normalize_uploads
from schematic_vision.app.services.vision_client import VisionClient
from schematic_vision.app.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


def reference_image_url(image: ReferenceImage, static_root: Path) -> str:
    path = static_root / image.path.lstrip("/")
    mime_type = deduce_mime_from_name(path.name)
    if not mime_type:
        raise ConfigurationError(
            f'Unsupported schematic image extension "{path.suffix}". Update MIME_LOOKUP to continue.'
        )
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"Reference schematic {image.id} could not be read: {exc}") from exc
    return encode_data_url(mime_type, data)


def build_reference_inputs(reference_images: Sequence[ReferenceImage], static_root: Path) -> List[Dict[str, Any]]:
    contents: List[Dict[str, Any]] = []
    for image in reference_images:
        label = f"Reference {image.id}: {image.label}"
        if image.caption:
            label = f"{label} - {image.caption}"
        contents.append({"type": "input_text", "text": label})
        contents.append(
            {"type": "input_image", "image_url": reference_image_url(image, static_root), "detail": image.detail}
        )
    return contents


def build_image_inputs(
    reference_inputs: Sequence[Dict[str, Any]],
    deliveries: Sequence[DeliveryResult],
    details: Sequence[str],
) -> List[Dict[str, Any]]:
    """Label and image blocks: static references first, then uploads in order."""
    contents: List[Dict[str, Any]] = list(reference_inputs)
    for delivery, detail in zip(deliveries, details):
        contents.append({"type": "input_text", "text": f"Uploaded {delivery.summary.id}: {delivery.summary.name}"})
        contents.append({"type": "input_image", "image_url": delivery.image_url, "detail": detail})
    return contents


def build_question_text(profile: SchematicProfile, question: str) -> str:
    return "\n".join([*profile.user_instructions, "", f"Question: {question}"])


def estimate_cost(usage: Optional[Dict[str, Any]], pricing: Optional[Dict[str, float]]) -> Optional[CostEstimate]:
    """Linear cost from reported token counts; None when either side is unknown."""
    if not usage or not pricing:
        return None
    input_tokens = usage.get("input_tokens")
    output_tokens = usage.get("output_tokens")
    if not isinstance(input_tokens, (int, float)) or not isinstance(output_tokens, (int, float)):
        return None
    input_usd = input_tokens / 1_000_000 * float(pricing["input"])
    output_usd = output_tokens / 1_000_000 * float(pricing["output"])
    return CostEstimate(input_usd=input_usd, output_usd=output_usd, total_usd=input_usd + output_usd)


async def analyze(
    question: str,
    raw_uploads: Optional[Sequence[Any]],
    settings: Settings,
    profile: SchematicProfile,
    vision_client: VisionClient,
    store: Optional[ObjectStore] = None,
) -> AnalyzeResponse:
    # Validation runs to completion before any network I/O
    uploads = normalize_uploads(raw_uploads, settings.upload_max_bytes, settings.upload_max_count)
    details = [upload.detail for upload in uploads]
    reference_inputs = build_reference_inputs(profile.images, settings.static_root)

    ctx = DeliveryContext(
        store=store,
        storage_url_markers=settings.storage_url_marker_list,
        presign_ttl_seconds=settings.s3_presign_ttl_seconds,
        timeout_seconds=settings.upload_timeout_seconds,
    )
    deliveries = await deliver_all(uploads, ctx)
    image_inputs = build_image_inputs(reference_inputs, deliveries, details)

    model = settings.vision_model_name or profile.model.name
    user_content = [{"type": "input_text", "text": build_question_text(profile, question)}, *image_inputs]
    logger.info(
        "Submitting vision request: model=%s references=%d uploads=%d",
        model,
        len(profile.images),
        len(deliveries),
    )
    response = await vision_client.create_response(
        model=model,
        system_prompt=profile.system_prompt,
        user_content=user_content,
        max_output_tokens=profile.model.max_output_tokens,
    )

    pricing = settings.pricing_override() or profile.model.pricing_usd_per_mtok
    return AnalyzeResponse(
        output=response.output_text,
        usage=response.usage,
        cost_estimate=estimate_cost(response.usage, pricing),
        model=model,
        uploads_attached=sum(1 for item in image_inputs if item["type"] == "input_image"),
        upload_summaries=[delivery.summary for delivery in deliveries],
    )
