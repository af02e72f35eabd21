import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field("https://api.openai.com", alias="OPENAI_BASE_URL")
    vision_model_name: str | None = Field(None, alias="OPENAI_VISION_MODEL")
    vision_timeout_seconds: float = Field(120.0, alias="VISION_TIMEOUT_SECONDS")
    vision_input_usd_per_mtok: float | None = Field(None, alias="VISION_INPUT_USD_PER_MTOK")
    vision_output_usd_per_mtok: float | None = Field(None, alias="VISION_OUTPUT_USD_PER_MTOK")
    static_root: Path = Field(Path(__file__).resolve().parents[2] / "static", alias="SCHEMATIC_STATIC_ROOT")
    upload_max_bytes: int = Field(45 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")
    upload_max_count: int = Field(6, alias="MAX_UPLOAD_COUNT")
    # Bounds each storage put/presign during delivery
    upload_timeout_seconds: float = Field(30.0, alias="UPLOAD_TIMEOUT_SECONDS")
    s3_bucket: str | None = Field(None, alias="AWS_S3_BUCKET")
    s3_region: str | None = Field(None, alias="AWS_REGION")
    s3_endpoint_url: str | None = Field(None, alias="S3_ENDPOINT_URL")
    s3_force_path_style: bool = Field(False, alias="S3_FORCE_PATH_STYLE")
    s3_prefix: str = Field("vision-uploads", alias="AWS_VISION_PREFIX")
    s3_folder: str = Field("schematics", alias="AWS_SCHEMATICS_FOLDER")
    s3_presign_ttl_seconds: int = Field(3600, alias="AWS_PRESIGN_TTL_SECONDS")
    aws_access_key_id: str | None = Field(None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str | None = Field(None, alias="AWS_SECRET_ACCESS_KEY")
    aws_session_token: str | None = Field(None, alias="AWS_SESSION_TOKEN")
    storage_url_markers: str = Field("blob.vercel-storage.com,amazonaws.com", alias="STORAGE_URL_MARKERS")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _sanitize_strings(cls, value):
        # Env files often carry quoted values ("bucket" or 'bucket')
        if isinstance(value, str):
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
                value = value[1:-1].strip()
        return value

    @property
    def storage_enabled(self) -> bool:
        """Offload and signing need the bucket and both credential halves."""
        return bool(self.s3_bucket and self.aws_access_key_id and self.aws_secret_access_key)

    @property
    def storage_url_marker_list(self) -> List[str]:
        return [marker.strip() for marker in (self.storage_url_markers or "").split(",") if marker.strip()]

    @property
    def upload_max_megabytes(self) -> int:
        return self.upload_max_bytes // (1024 * 1024)

    def pricing_override(self) -> Optional[dict]:
        if self.vision_input_usd_per_mtok is None or self.vision_output_usd_per_mtok is None:
            return None
        return {"input": self.vision_input_usd_per_mtok, "output": self.vision_output_usd_per_mtok}


logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()
    except PermissionError:
        logger.warning("Unable to read .env; continuing with environment variables only")
        settings = Settings(_env_file=None)
    return settings


class ConfigurationError(RuntimeError):
    """Server-side configuration is missing or invalid."""
