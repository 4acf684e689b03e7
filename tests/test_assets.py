from __future__ import annotations

import base64

import pytest

from hookline.assets import AssetScope, AssetStore, decode
from hookline.envelope import classify
from hookline.errors import AssetDecodeError
from hookline.ingest import RawResponse
from hookline.records import AssetSourceKind, GeneratedAssetRecord

pytestmark = pytest.mark.unit

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(32))


def _data_uri(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode()}"


def test_image_content_type_becomes_binary_blob(store) -> None:
    raw = RawResponse(status_code=200, body=PNG_BYTES, content_type="image/jpeg")
    record = decode(raw, store=store)
    assert record.source_kind is AssetSourceKind.BINARY_BLOB
    assert record.mime_type == "image/jpeg"
    assert record.remote_url is None
    assert store.read(record.local_handle) == PNG_BYTES
    assert record.url == record.local_handle.url


def test_binary_envelope_is_decoded_like_the_response(store) -> None:
    env = classify(RawResponse(status_code=200, body=PNG_BYTES, content_type="image/png"))
    record = decode(env, store=store)
    assert record.source_kind is AssetSourceKind.BINARY_BLOB


@pytest.mark.parametrize(
    "payload",
    [
        {"imageUrl": "https://cdn.example.com/a.png"},
        {"data": {"imageUrl": "https://cdn.example.com/a.png"}},
    ],
)
def test_direct_url_fields_become_remote_url(store, payload) -> None:
    record = decode(payload, store=store)
    assert record.source_kind is AssetSourceKind.REMOTE_URL
    assert record.remote_url == "https://cdn.example.com/a.png"
    assert record.local_handle is None
    assert len(store) == 0


@pytest.mark.parametrize(
    "wrapped",
    [
        {"json": {"imageUrl": "https://cdn.example.com/x.png"}},
        [{"json": {"imageUrl": "https://cdn.example.com/x.png"}}],
        [{"imageUrl": "https://cdn.example.com/x.png"}],
        [[{"json": {"imageUrl": "https://cdn.example.com/x.png"}}]],
    ],
)
def test_wrapped_envelopes_decode_like_flat_payloads(store, wrapped) -> None:
    record = decode(wrapped, store=store)
    assert record.source_kind is AssetSourceKind.REMOTE_URL
    assert record.remote_url == "https://cdn.example.com/x.png"


def test_url_takes_priority_over_embedded_data(store) -> None:
    payload = {"imageUrl": "https://cdn.example.com/a.png", "data": {"data": _data_uri(PNG_BYTES)}}
    assert decode(payload, store=store).source_kind is AssetSourceKind.REMOTE_URL


def test_base64_data_uri_decodes_with_declared_mime_type(store) -> None:
    payload = {
        "data": {"data": _data_uri(PNG_BYTES, "image/webp"), "mimeType": "image/webp", "fileName": "out.webp"},
        "requestId": "req-123",
        "processingTime": 2500,
    }
    record = decode(payload, store=store)
    assert record.source_kind is AssetSourceKind.DATA_URI
    assert record.mime_type == "image/webp"
    assert record.original_file_name == "out.webp"
    assert record.request_id == "req-123"
    assert record.processing_time == 2500.0
    assert store.read(record.local_handle) == PNG_BYTES
    assert record.local_handle.mime_type == "image/webp"


def test_data_uri_mime_type_is_used_when_none_is_declared(store) -> None:
    record = decode({"data": {"data": _data_uri(PNG_BYTES, "image/jpeg")}}, store=store)
    assert record.mime_type == "image/jpeg"


@pytest.mark.parametrize(
    "corrupt",
    [
        "data:image/png;base64,iVBORw0KGgo===x",
        "data:image/png;base64,not*valid*base64",
        "data:image/png;base64,abc",
        "data:image/png;base64,",
    ],
)
def test_corrupt_base64_fails_without_creating_a_handle(store, corrupt) -> None:
    with pytest.raises(AssetDecodeError):
        decode({"data": {"data": corrupt}}, store=store)
    assert len(store) == 0


def test_byte_list_is_wrapped_directly(store) -> None:
    record = decode({"data": {"data": list(PNG_BYTES), "mimeType": "image/png"}}, store=store)
    assert record.source_kind is AssetSourceKind.BINARY_BLOB
    assert store.read(record.local_handle) == PNG_BYTES


def test_raw_bytes_are_wrapped_directly(store) -> None:
    record = decode(PNG_BYTES, store=store, content_type="image/gif")
    assert record.source_kind is AssetSourceKind.BINARY_BLOB
    assert record.mime_type == "image/gif"


def test_metadata_only_array_fails_with_metadata_and_record(store) -> None:
    payload = [{"fileName": "generated.png", "mimeType": "image/png", "fileSize": "1.2 MB"}]
    with pytest.raises(AssetDecodeError) as exc:
        decode(payload, store=store)
    err = exc.value
    assert err.metadata == {"fileName": "generated.png", "mimeType": "image/png", "fileSize": "1.2 MB"}
    assert err.record is not None
    assert err.record.source_kind is AssetSourceKind.METADATA_ONLY
    assert err.record.local_handle is None
    assert err.record.remote_url is None
    assert "generated.png" in err.record.diagnostic
    assert err.hint


def test_metadata_only_json_response(store) -> None:
    raw = RawResponse(
        status_code=200,
        body=b'[{"json": {"fileName": "x.png", "mimeType": "image/png"}}]',
        content_type="application/json",
    )
    with pytest.raises(AssetDecodeError) as exc:
        decode(raw, store=store)
    assert exc.value.record.original_file_name == "x.png"


def test_response_without_image_reports_upstream_error_message(store) -> None:
    with pytest.raises(AssetDecodeError, match="quota exceeded"):
        decode({"errorMessage": "quota exceeded"}, store=store)


def test_non_json_text_response_is_an_asset_error(store) -> None:
    raw = RawResponse(status_code=200, body=b"<html>oops</html>", content_type="text/html")
    with pytest.raises(AssetDecodeError):
        decode(raw, store=store)


def test_store_release_and_context_manager() -> None:
    with AssetStore() as store:
        first = store.create(b"one", "image/png")
        second = store.create(b"two", "image/png")
        assert first in store
        assert store.release(first) is True
        assert store.release(first) is False
        assert first not in store
        with pytest.raises(KeyError):
            store.read(first)
        assert second in store
    assert len(store) == 0


def test_scope_releases_superseded_and_remaining_handles(store) -> None:
    def _record(data: bytes) -> GeneratedAssetRecord:
        return GeneratedAssetRecord(
            source_kind=AssetSourceKind.BINARY_BLOB,
            mime_type="image/png",
            local_handle=store.create(data, "image/png"),
        )

    first, second = _record(b"1"), _record(b"2")
    with AssetScope(store) as scope:
        scope.replace(first)
        scope.replace(second)
        assert first.local_handle not in store
        assert second.local_handle in store
    assert second.local_handle not in store
    assert scope.current is None


def test_record_invariants_are_enforced() -> None:
    with pytest.raises(ValueError):
        GeneratedAssetRecord(source_kind=AssetSourceKind.REMOTE_URL, mime_type="image/png")
    with pytest.raises(ValueError):
        GeneratedAssetRecord(source_kind=AssetSourceKind.METADATA_ONLY, mime_type="image/png")
    with pytest.raises(ValueError):
        GeneratedAssetRecord(
            source_kind=AssetSourceKind.METADATA_ONLY,
            mime_type="image/png",
            remote_url="https://x",
            diagnostic="no data",
        )
