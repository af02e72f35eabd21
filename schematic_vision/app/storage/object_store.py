"""
Object store abstraction for S3-compatible storage (AWS S3 and MinIO).

The store is constructed once from settings and handed to the delivery
pipeline, so tests can substitute an in-memory fake with the same methods.
"""
import logging
import uuid
from typing import Optional

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from schematic_vision.app.core.config import Settings
from schematic_vision.app.services.upload_constants import trim_slashes

logger = logging.getLogger(__name__)


class ObjectStoreError(RuntimeError):
    """Raised when a storage call fails."""


def build_s3_client(settings: Settings) -> BaseClient:
    """
    Create a boto3 S3 client for AWS S3 or MinIO.

    - S3_ENDPOINT_URL: custom S3-compatible endpoint (MinIO)
    - S3_FORCE_PATH_STYLE: path-style addressing, required for MinIO
    - AWS_REGION: region (default: us-east-1)
    - UPLOAD_TIMEOUT_SECONDS: socket timeouts, so a call abandoned by the
      per-upload wait also stops in its worker thread
    """
    config_kwargs = {
        "signature_version": "s3v4",
        "connect_timeout": settings.upload_timeout_seconds,
        "read_timeout": settings.upload_timeout_seconds,
        "retries": {"max_attempts": 1},
    }
    if settings.s3_force_path_style:
        config_kwargs["s3"] = {"addressing_style": "path"}
    client_kwargs = {"config": Config(**config_kwargs)}
    if settings.s3_endpoint_url:
        client_kwargs["endpoint_url"] = settings.s3_endpoint_url
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        client_kwargs["aws_access_key_id"] = settings.aws_access_key_id
        client_kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    if settings.aws_session_token:
        client_kwargs["aws_session_token"] = settings.aws_session_token
    region = settings.s3_region or "us-east-1"
    return boto3.client("s3", region_name=region, **client_kwargs)


def build_object_key(prefix: Optional[str], folder: Optional[str], extension: str) -> str:
    segments = [trim_slashes(prefix), trim_slashes(folder), f"{uuid.uuid4()}.{extension}"]
    return "/".join(segment for segment in segments if segment)


class ObjectStore:
    def __init__(self, client: BaseClient, bucket: str, prefix: str = "", folder: str = ""):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix
        self.folder = folder

    def new_key(self, extension: str) -> str:
        return build_object_key(self.prefix, self.folder, extension)

    def uri_for(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    def put_bytes(self, key: str, content_type: str, data: bytes) -> str:
        """
        Upload bytes and return the ``s3://bucket/key`` URI.

        Raises:
            ObjectStoreError: If upload fails
        """
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Failed to upload object to s3://%s/%s", self.bucket, key)
            raise ObjectStoreError(f"S3 upload failed: {exc}") from exc
        uri = self.uri_for(key)
        logger.debug("Uploaded object to %s", uri)
        return uri

    def presign_get(self, key: str, expires_in: int = 3600, verify_exists: bool = True) -> str:
        """Return a time-limited GET URL for ``key``."""
        try:
            # presigning alone never checks that the key exists
            if verify_exists:
                self.client.head_object(Bucket=self.bucket, Key=key)
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise ObjectStoreError(f"S3 signing failed for {key}: {exc}") from exc

    def presign_upload(self, key: str, content_type: str, max_bytes: int, expires_in: int = 3600) -> dict:
        """Presigned POST letting a browser upload straight to the bucket."""
        try:
            return self.client.generate_presigned_post(
                Bucket=self.bucket,
                Key=key,
                Fields={"Content-Type": content_type},
                Conditions=[
                    {"Content-Type": content_type},
                    ["content-length-range", 1, max_bytes],
                ],
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise ObjectStoreError(f"S3 upload presign failed for {key}: {exc}") from exc


def object_store_from_settings(settings: Settings) -> Optional[ObjectStore]:
    if not settings.storage_enabled:
        return None
    return ObjectStore(
        build_s3_client(settings),
        bucket=settings.s3_bucket,
        prefix=settings.s3_prefix,
        folder=settings.s3_folder,
    )
