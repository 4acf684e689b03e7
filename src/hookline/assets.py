"""AssetDecoder: turn image-pipeline responses into usable local resources.

Decoded bytes are held by an ``AssetStore`` and exposed through
``LocalHandle`` references (``blob:hookline/<id>`` URLs). Handles are the one
resource with manual lifecycle in hookline: release them through the store,
or let an ``AssetScope`` release superseded handles automatically.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from dataclasses import dataclass, field
import json
import logging
import re
from typing import TYPE_CHECKING, Any
import uuid

from hookline.envelope import Envelope, parse_json, unwrap
from hookline.errors import AssetDecodeError, ParseError
from hookline.records import AssetSourceKind, GeneratedAssetRecord

if TYPE_CHECKING:
    from types import TracebackType

    from hookline.ingest import RawResponse

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"
BLOB_URL_PREFIX = "blob:hookline/"
_METADATA_KEYS = ("fileName", "mimeType", "fileSize")
_DATA_URI_MIME_RE = re.compile(r"^\s*data:([\w.+-]+/[\w.+-]+)")


@dataclass(frozen=True)
class LocalHandle:
    """Reference to bytes held by an ``AssetStore``."""

    url: str
    mime_type: str
    size: int


@dataclass
class AssetStore:
    """Registry of decoded asset bytes keyed by handle URL.

    Usable as a context manager; every outstanding handle is released on exit.
    """

    _blobs: dict[str, bytes] = field(default_factory=dict)

    def create(self, data: bytes, mime_type: str) -> LocalHandle:
        """Store *data* and return a new handle for it."""
        handle = LocalHandle(
            url=f"{BLOB_URL_PREFIX}{uuid.uuid4()}",
            mime_type=mime_type,
            size=len(data),
        )
        self._blobs[handle.url] = bytes(data)
        return handle

    def read(self, handle: LocalHandle) -> bytes:
        """Return the bytes behind *handle*.

        Raises:
            KeyError: If the handle was released or never issued here.
        """
        try:
            return self._blobs[handle.url]
        except KeyError:
            raise KeyError(f"asset handle {handle.url} is not live") from None

    def release(self, handle: LocalHandle | None) -> bool:
        """Release *handle*; returns False when it was not live."""
        if handle is None:
            return False
        return self._blobs.pop(handle.url, None) is not None

    def release_all(self) -> int:
        count = len(self._blobs)
        self._blobs.clear()
        if count:
            logger.debug("Released %d asset handle(s)", count)
        return count

    def __contains__(self, handle: object) -> bool:
        return isinstance(handle, LocalHandle) and handle.url in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)

    def __enter__(self) -> AssetStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release_all()


class AssetScope:
    """Holds the current asset of one owner and releases what it supersedes.

    Example:
        with AssetScope(store) as scope:
            scope.replace(first)
            scope.replace(second)  # first's handle is released here
    """

    def __init__(self, store: AssetStore) -> None:
        self.store = store
        self.current: GeneratedAssetRecord | None = None

    def replace(self, record: GeneratedAssetRecord | None) -> GeneratedAssetRecord | None:
        previous = self.current
        self.current = record
        if previous is not None and previous is not record:
            if record is None or previous.local_handle != record.local_handle:
                self.store.release(previous.local_handle)
        return record

    def close(self) -> None:
        if self.current is not None:
            self.store.release(self.current.local_handle)
            self.current = None

    def __enter__(self) -> AssetScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _processing_time(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _response_fields(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "request_id": _str_or_none(payload.get("requestId")),
        "processing_time": _processing_time(payload.get("processingTime")),
        "error_message": _str_or_none(payload.get("errorMessage")),
    }


def _file_metadata(item: Mapping[str, Any]) -> dict[str, Any]:
    return {key: item[key] for key in _METADATA_KEYS if key in item}


def _is_byte_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value)
    )


def _decode_data_uri(text: str) -> bytes:
    _, _, encoded = text.partition(",")
    if not encoded.strip():
        raise AssetDecodeError("Data URI carries no base64 payload")
    try:
        return base64.b64decode("".join(encoded.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise AssetDecodeError(
            f"Corrupt base64 image data: {e}",
            hint="The workflow must return a complete base64 data URI.",
        ) from e


def _parse_source(source: Any) -> tuple[Any, str]:
    """Reduce *source* to a parsed JSON value (or bytes) plus its content type."""
    if isinstance(source, Envelope):
        if source.is_binary:
            return source.body or b"", source.content_type
        return source.payload, source.content_type
    if hasattr(source, "is_binary") and hasattr(source, "body"):
        raw: RawResponse = source
        if raw.is_binary:
            return raw.body, raw.content_type
        try:
            return parse_json(raw.text), raw.content_type
        except ParseError as e:
            raise AssetDecodeError(
                "Image response is neither an image nor JSON",
                hint="Check the workflow's 'Respond to Webhook' node.",
            ) from e
    if isinstance(source, str):
        try:
            return parse_json(source), ""
        except ParseError as e:
            raise AssetDecodeError("Image response is not valid JSON") from e
    return source, ""


def _metadata_only(item: Mapping[str, Any]) -> AssetDecodeError:
    metadata = _file_metadata(item)
    diagnostic = (
        "Image generated but file data not available: "
        f"{json.dumps(metadata, default=str, sort_keys=True)}"
    )
    logger.warning("Metadata-only asset response for %s", metadata.get("fileName"))
    record = GeneratedAssetRecord(
        source_kind=AssetSourceKind.METADATA_ONLY,
        mime_type=str(metadata.get("mimeType") or DEFAULT_MIME_TYPE),
        original_file_name=_str_or_none(metadata.get("fileName")),
        diagnostic=diagnostic,
        **_response_fields(item),
    )
    return AssetDecodeError(
        diagnostic,
        hint="Make the workflow return the binary image data, not just file metadata.",
        metadata=metadata,
        record=record,
    )


def decode(
    source: RawResponse | Envelope | Mapping[str, Any] | list[Any] | bytes | str,
    *,
    store: AssetStore,
    content_type: str | None = None,
) -> GeneratedAssetRecord:
    """Produce a ``GeneratedAssetRecord`` from an image-pipeline response.

    Cases, in priority order: ``image/*`` body, direct URL field
    (``imageUrl``/``data.imageUrl``), base64 data URI in ``data.data``, raw
    bytes (``bytes`` or a JSON list of byte values), metadata-only. JSON
    payloads go through ``unwrap()`` first, so item arrays and
    ``{"json": ...}`` wrappers are accepted like any other response.

    Raises:
        AssetDecodeError: For corrupt base64, metadata-only responses and
            responses carrying no image at all. For metadata-only responses
            the error's ``record`` holds the ``metadataOnly`` record.
    """
    value, detected_type = _parse_source(source)
    ctype = (content_type or detected_type or "").lower()

    if isinstance(value, bytes | bytearray | memoryview):
        data = bytes(value)
        if not data:
            raise AssetDecodeError("Image response body is empty")
        mime = ctype if ctype.startswith("image/") else DEFAULT_MIME_TYPE
        logger.debug("Decoded binary image body (%s, %d bytes)", mime, len(data))
        return GeneratedAssetRecord(
            source_kind=AssetSourceKind.BINARY_BLOB,
            mime_type=mime,
            local_handle=store.create(data, mime),
        )

    if _is_byte_list(value):
        data = bytes(value)
        return GeneratedAssetRecord(
            source_kind=AssetSourceKind.BINARY_BLOB,
            mime_type=DEFAULT_MIME_TYPE,
            local_handle=store.create(data, DEFAULT_MIME_TYPE),
        )
    if isinstance(value, list | Mapping):
        value = unwrap(value)

    if not isinstance(value, Mapping):
        raise AssetDecodeError(
            f"Unsupported image response of type {type(value).__name__}"
        )

    payload: Mapping[str, Any] = value
    extras = _response_fields(payload)
    nested = payload.get("data")
    nested = nested if isinstance(nested, Mapping) else {}

    url = _str_or_none(payload.get("imageUrl")) or _str_or_none(nested.get("imageUrl"))
    if url is not None:
        logger.debug("Image delivered as remote URL")
        return GeneratedAssetRecord(
            source_kind=AssetSourceKind.REMOTE_URL,
            mime_type=str(nested.get("mimeType") or payload.get("mimeType") or DEFAULT_MIME_TYPE),
            remote_url=url,
            original_file_name=_str_or_none(nested.get("fileName")),
            **extras,
        )

    file_data = nested.get("data")
    mime = str(nested.get("mimeType") or DEFAULT_MIME_TYPE)
    file_name = _str_or_none(nested.get("fileName"))
    if isinstance(file_data, str) and "base64," in file_data:
        data = _decode_data_uri(file_data)
        if not nested.get("mimeType"):
            declared = _DATA_URI_MIME_RE.match(file_data)
            mime = declared.group(1).lower() if declared else mime
        logger.debug("Decoded base64 data URI (%s, %d bytes)", mime, len(data))
        return GeneratedAssetRecord(
            source_kind=AssetSourceKind.DATA_URI,
            mime_type=mime,
            local_handle=store.create(data, mime),
            original_file_name=file_name,
            **extras,
        )
    if isinstance(file_data, bytes | bytearray) or _is_byte_list(file_data):
        data = bytes(file_data)
        return GeneratedAssetRecord(
            source_kind=AssetSourceKind.BINARY_BLOB,
            mime_type=mime,
            local_handle=store.create(data, mime),
            original_file_name=file_name,
            **extras,
        )

    for candidate in (nested, payload):
        if candidate.get("mimeType") and candidate.get("fileName"):
            raise _metadata_only({**payload, **candidate})

    message = extras["error_message"] or "Response does not contain generated image data"
    raise AssetDecodeError(
        message,
        hint="Check the image workflow configuration.",
        metadata=_file_metadata(payload) or None,
    )
