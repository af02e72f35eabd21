from fastapi import APIRouter, Depends

from schematic_vision.app.api.deps import get_profile
from schematic_vision.app.core.config import Settings, get_settings
from schematic_vision.app.core.schematic import SchematicProfile
from schematic_vision.app.schemas.analyze import SchematicInfo

router = APIRouter(tags=["schematic"])


@router.get("/api/schematic", response_model=SchematicInfo)
def get_schematic_info(
    settings: Settings = Depends(get_settings),
    profile: SchematicProfile = Depends(get_profile),
):
    return SchematicInfo(
        display_name=profile.display_name,
        model=settings.vision_model_name or profile.model.name,
        example_questions=profile.example_questions,
        pricing_usd_per_mtok=settings.pricing_override() or profile.model.pricing_usd_per_mtok,
        reference_images=len(profile.images),
        max_upload_bytes=settings.upload_max_bytes,
        max_upload_count=settings.upload_max_count,
    )
