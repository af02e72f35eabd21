import re
from urllib.parse import parse_qs, urlparse

import boto3
import pytest
from botocore.config import Config
from botocore.stub import Stubber

from conftest import make_settings
from schematic_vision.app.storage.object_store import (
    ObjectStore,
    ObjectStoreError,
    build_object_key,
    build_s3_client,
    object_store_from_settings,
)

UUID_RE = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"


def _client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="AKIATEST",
        aws_secret_access_key="secret",
        config=Config(signature_version="s3v4"),
    )


def _store(client=None):
    return ObjectStore(client or _client(), bucket="schematics-bucket", prefix="/vision-uploads/", folder="schematics/")


def test_build_object_key_trims_and_skips_empty_segments():
    assert re.fullmatch(rf"vision-uploads/schematics/{UUID_RE}\.png", build_object_key("/vision-uploads/", "schematics/", "png"))
    assert re.fullmatch(rf"{UUID_RE}\.bin", build_object_key("", None, "bin"))


def test_object_keys_are_unique():
    store = _store()
    assert store.new_key("png") != store.new_key("png")


def test_put_bytes_returns_uri():
    client = _client()
    store = _store(client)
    with Stubber(client) as stubber:
        stubber.add_response(
            "put_object",
            {},
            {"Bucket": "schematics-bucket", "Key": "k/plan.png", "Body": b"png", "ContentType": "image/png"},
        )
        assert store.put_bytes("k/plan.png", "image/png", b"png") == "s3://schematics-bucket/k/plan.png"
        stubber.assert_no_pending_responses()


def test_put_bytes_wraps_client_errors():
    client = _client()
    store = _store(client)
    with Stubber(client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(ObjectStoreError):
            store.put_bytes("k/plan.png", "image/png", b"png")


def test_presign_get_for_missing_key_raises():
    client = _client()
    store = _store(client)
    with Stubber(client) as stubber:
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        with pytest.raises(ObjectStoreError):
            store.presign_get("missing.png")


def test_presign_get_without_verification():
    url = _store().presign_get("vision-uploads/schematics/plan.png", expires_in=3600, verify_exists=False)
    parsed = urlparse(url)
    assert parsed.path.endswith("vision-uploads/schematics/plan.png")
    assert parse_qs(parsed.query)["X-Amz-Expires"] == ["3600"]


def test_presign_upload_returns_post_fields():
    presigned = _store().presign_upload("vision-uploads/plan.png", "image/png", max_bytes=1024, expires_in=600)
    assert presigned["fields"]["key"] == "vision-uploads/plan.png"
    assert presigned["fields"]["Content-Type"] == "image/png"
    assert "schematics-bucket" in presigned["url"]


def test_object_store_requires_bucket_and_both_credentials():
    assert object_store_from_settings(make_settings()) is None
    assert (
        object_store_from_settings(
            make_settings(AWS_S3_BUCKET="bucket", AWS_ACCESS_KEY_ID="AKIATEST", AWS_SECRET_ACCESS_KEY="")
        )
        is None
    )
    store = object_store_from_settings(
        make_settings(AWS_S3_BUCKET="bucket", AWS_ACCESS_KEY_ID="AKIATEST", AWS_SECRET_ACCESS_KEY="secret")
    )
    assert store is not None
    assert store.bucket == "bucket"
    assert store.prefix == "vision-uploads"
    assert store.folder == "schematics"


def test_client_socket_timeouts_follow_upload_timeout():
    client = build_s3_client(
        make_settings(
            AWS_S3_BUCKET="bucket",
            AWS_ACCESS_KEY_ID="AKIATEST",
            AWS_SECRET_ACCESS_KEY="secret",
            UPLOAD_TIMEOUT_SECONDS=5,
            S3_FORCE_PATH_STYLE=True,
        )
    )
    config = client.meta.config
    assert config.connect_timeout == 5
    assert config.read_timeout == 5
    assert config.s3["addressing_style"] == "path"
