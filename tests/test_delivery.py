import asyncio
import time

import pytest

from conftest import FakeObjectStore
from schematic_vision.app.schemas.uploads import RawUpload
from schematic_vision.app.services import delivery
from schematic_vision.app.services.delivery import DeliveryContext, DeliveryError, deliver, deliver_all
from schematic_vision.app.services.upload_normalizer import normalize_uploads

MARKERS = ["blob.vercel-storage.com", "amazonaws.com"]


def _uploads(*items):
    return normalize_uploads([RawUpload.model_validate(item) for item in items], 45 * 1024 * 1024, 6)


def _ctx(store=None, timeout_seconds=5.0):
    return DeliveryContext(store=store, storage_url_markers=MARKERS, presign_ttl_seconds=3600, timeout_seconds=timeout_seconds)


@pytest.mark.asyncio
async def test_remote_url_passthrough_even_with_buffer():
    store = FakeObjectStore()
    (upload,) = _uploads({"name": "plan.png", "buffer": b"png-bytes", "url": "https://cdn.example.com/plan.png"})
    result = await deliver(upload, _ctx(store))
    assert result.strategy == "remote-url"
    assert result.image_url == "https://cdn.example.com/plan.png"
    assert store.objects == {}
    assert upload.buffer() is None


@pytest.mark.asyncio
async def test_storage_domain_url_is_classified_as_blob():
    (upload,) = _uploads(
        {
            "name": "plan.png",
            "url": "https://abc.public.blob.vercel-storage.com/vision-uploads/plan.png",
            "blobPathname": "vision-uploads/plan.png",
            "size": 1234,
            "mimeType": "image/png",
        }
    )
    result = await deliver(upload, _ctx())
    assert result.strategy == "blob-url"
    summary = result.summary.model_dump(by_alias=True)
    assert summary["key"] == "vision-uploads/plan.png"
    assert summary["url"] == upload.remote_url
    assert summary["bytes"] == 1234
    assert summary["mimeType"] == "image/png"


@pytest.mark.asyncio
async def test_storage_key_is_signed_for_one_hour():
    store = FakeObjectStore()
    (upload,) = _uploads({"name": "plan.png", "key": "vision-uploads/schematics/abc.png"})
    result = await deliver(upload, _ctx(store))
    assert result.strategy == "s3-signed-key"
    assert store.signed == [("vision-uploads/schematics/abc.png", 3600)]
    assert result.summary.key == "vision-uploads/schematics/abc.png"
    assert result.summary.url == result.image_url


@pytest.mark.asyncio
async def test_storage_key_signing_failure_aborts():
    store = FakeObjectStore(missing_keys={"missing.png"})
    (upload,) = _uploads({"name": "plan.png", "key": "missing.png"})
    with pytest.raises(DeliveryError) as excinfo:
        await deliver(upload, _ctx(store))
    assert "plan.png" in str(excinfo.value)


@pytest.mark.asyncio
async def test_storage_key_without_storage_fails_naming_upload():
    (upload,) = _uploads({"name": "plan.png", "key": "vision-uploads/abc.png"})
    with pytest.raises(DeliveryError) as excinfo:
        await deliver(upload, _ctx(None))
    assert "plan.png" in str(excinfo.value)


@pytest.mark.asyncio
async def test_buffer_is_offloaded_when_storage_configured():
    store = FakeObjectStore()
    (upload,) = _uploads({"name": "plan.jpeg", "buffer": b"jpeg-bytes"})
    result = await deliver(upload, _ctx(store))
    assert result.strategy == "s3-upload"
    assert result.summary.key.endswith(".jpg")
    assert store.objects[result.summary.key] == ("image/jpeg", b"jpeg-bytes")
    assert upload.buffer() is None


@pytest.mark.asyncio
async def test_data_url_is_offloaded_when_storage_configured():
    store = FakeObjectStore()
    (upload,) = _uploads({"name": "plan.png", "dataUrl": "data:image/png;base64,AAAA"})
    result = await deliver(upload, _ctx(store))
    assert result.strategy == "s3-upload"
    assert store.objects[result.summary.key] == ("image/png", b"\x00\x00\x00")


@pytest.mark.asyncio
async def test_offload_failure_falls_back_to_inline():
    store = FakeObjectStore(fail_put=True)
    (upload,) = _uploads({"name": "plan.png", "buffer": b"png-bytes"})
    result = await deliver(upload, _ctx(store))
    assert result.strategy == "inline"
    assert result.image_url.startswith("data:image/png;base64,")
    assert result.summary.key is None and result.summary.url is None


@pytest.mark.asyncio
async def test_offload_timeout_falls_back_to_inline(monkeypatch):
    store = FakeObjectStore()

    def slow_put(key, content_type, data):
        time.sleep(0.5)
        return f"s3://{store.bucket}/{key}"

    monkeypatch.setattr(store, "put_bytes", slow_put)
    (upload,) = _uploads({"name": "plan.png", "buffer": b"png-bytes"})
    result = await deliver(upload, _ctx(store, timeout_seconds=0.05))
    assert result.strategy == "inline"


@pytest.mark.asyncio
async def test_without_storage_everything_in_memory_goes_inline():
    uploads = _uploads(
        {"name": "a.png", "buffer": b"a"},
        {"name": "b.png", "dataUrl": "data:image/png;base64,AAAA"},
        {"name": "c.png", "buffer": b"c", "key": "vision-uploads/c.png"},
    )
    results = await deliver_all(uploads, _ctx(None))
    assert [r.strategy for r in results] == ["inline", "inline", "inline"]
    assert results[1].image_url == "data:image/png;base64,AAAA"


@pytest.mark.asyncio
async def test_deliver_all_preserves_order_across_strategies():
    store = FakeObjectStore()
    uploads = _uploads(
        {"name": "A", "url": "https://example.com/a.png"},
        {"name": "B", "buffer": b"b", "mimeType": "image/png"},
        {"name": "C", "key": "vision-uploads/c.png"},
    )
    results = await deliver_all(uploads, _ctx(store))
    assert [r.summary.name for r in results] == ["A", "B", "C"]
    assert [r.strategy for r in results] == ["remote-url", "s3-upload", "s3-signed-key"]


@pytest.mark.asyncio
async def test_inline_without_bytes_raises():
    (upload,) = _uploads({"name": "plan.png", "dataUrl": "data:image/png;base64,AAAA"})
    upload.release_buffer()
    with pytest.raises(DeliveryError):
        await delivery.inline(upload, _ctx())


def test_is_storage_url_is_case_insensitive():
    assert delivery.is_storage_url("https://BUCKET.S3.AMAZONAWS.COM/key", MARKERS)
    assert not delivery.is_storage_url("https://example.com/key", MARKERS)


def test_strategy_order():
    assert delivery.STRATEGIES == [
        delivery.remote_url_passthrough,
        delivery.sign_storage_key,
        delivery.offload_buffer,
        delivery.inline,
    ]


def test_call_store_runs_in_executor():
    ctx = _ctx(timeout_seconds=1.0)
    assert asyncio.run(ctx.call_store(lambda value: value * 2, 21)) == 42
