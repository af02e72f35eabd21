from functools import lru_cache
from typing import Optional

from fastapi import Depends

from schematic_vision.app.core.config import ConfigurationError, Settings, get_settings
from schematic_vision.app.core.schematic import SchematicProfile, get_schematic_profile
from schematic_vision.app.services.vision_client import VisionClient
from schematic_vision.app.storage.object_store import ObjectStore, object_store_from_settings


@lru_cache
def _process_object_store() -> Optional[ObjectStore]:
    return object_store_from_settings(get_settings())


def get_object_store() -> Optional[ObjectStore]:
    return _process_object_store()


def get_vision_client(settings: Settings = Depends(get_settings)) -> VisionClient:
    if not settings.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY is not configured on the server.")
    return VisionClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.vision_timeout_seconds,
    )


def get_profile() -> SchematicProfile:
    return get_schematic_profile()
