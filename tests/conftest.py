import pytest
from fastapi.testclient import TestClient

from schematic_vision.app.api.deps import get_object_store, get_vision_client
from schematic_vision.app.core.config import Settings, get_settings
from schematic_vision.app.main import create_app
from schematic_vision.app.services.vision_client import VisionClientError, VisionResponse
from schematic_vision.app.storage.object_store import ObjectStoreError


class FakeObjectStore:
    """In-memory stand-in for ObjectStore."""

    def __init__(self, bucket: str = "test-bucket", fail_put: bool = False, missing_keys=()):
        self.bucket = bucket
        self.fail_put = fail_put
        self.missing_keys = set(missing_keys)
        self.objects = {}
        self.signed = []
        self._counter = 0

    def new_key(self, extension: str) -> str:
        self._counter += 1
        return f"vision-uploads/schematics/obj-{self._counter}.{extension}"

    def put_bytes(self, key: str, content_type: str, data: bytes) -> str:
        if self.fail_put:
            raise ObjectStoreError("S3 upload failed: simulated")
        self.objects[key] = (content_type, data)
        return f"s3://{self.bucket}/{key}"

    def presign_get(self, key: str, expires_in: int = 3600, verify_exists: bool = True) -> str:
        if key in self.missing_keys:
            raise ObjectStoreError(f"S3 signing failed for {key}: NoSuchKey")
        self.signed.append((key, expires_in))
        return f"https://{self.bucket}.s3.amazonaws.com/{key}?X-Amz-Expires={expires_in}"

    def presign_upload(self, key: str, content_type: str, max_bytes: int, expires_in: int = 3600) -> dict:
        return {
            "url": f"https://{self.bucket}.s3.amazonaws.com/",
            "fields": {"key": key, "Content-Type": content_type},
        }


class FakeVisionClient:
    def __init__(self, output_text: str = "Take the east corridor past Stair 6.", usage=None, error: str = None):
        self.output_text = output_text
        self.usage = usage if usage is not None else {"input_tokens": 1000, "output_tokens": 500, "total_tokens": 1500}
        self.error = error
        self.calls = []

    async def create_response(self, model, system_prompt, user_content, max_output_tokens):
        self.calls.append(
            {
                "model": model,
                "system_prompt": system_prompt,
                "user_content": user_content,
                "max_output_tokens": max_output_tokens,
            }
        )
        if self.error:
            raise VisionClientError(self.error)
        return VisionResponse(output_text=self.output_text, usage=self.usage)


def make_settings(**overrides) -> Settings:
    values = {"OPENAI_API_KEY": "test-key"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def vision_client():
    return FakeVisionClient()


@pytest.fixture
def object_store():
    return None


@pytest.fixture
def app(settings, vision_client, object_store):
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_vision_client] = lambda: vision_client
    app.dependency_overrides[get_object_store] = lambda: object_store
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
