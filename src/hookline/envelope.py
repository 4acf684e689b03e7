"""Envelope detection and unwrapping for webhook response bodies.

Workflow-automation services wrap the payload of interest in a handful of
shapes. The shape is determined once, here, and recorded as an
``EnvelopeKind`` so that consumers never sniff arrays themselves:

- ``ARRAY_WRAPPED``: ``[{"json": {...}}]`` or ``[{...}]``
- ``OBJECT_WRAPPED``: ``{"json": {...}}`` with no platform keys beside it
- ``FLAT``: the payload object itself
- ``DEGRADED``: text that is not JSON; kept as ``{"content": ..., "parseFailed": true}``
- ``BINARY_BLOB``: an ``image/*`` body; there is no JSON payload

``unwrap()`` is idempotent: it unwraps to a fixed point, so running it on its
own output returns an equal object.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import enum
import json
import logging
import re
from typing import TYPE_CHECKING, Any

from hookline.errors import ParseError

if TYPE_CHECKING:
    from hookline.ingest import RawResponse

logger = logging.getLogger(__name__)

# Top-level keys that mark an object as a payload rather than an envelope.
PLATFORM_KEYS: frozenset[str] = frozenset(
    {
        "single_tweet",
        "thread",
        "quick_publish",
        "linkedin_post",
        "instagram_post",
        "facebook_post",
        "hashtag_strategy",
        "hashtags",
        "content",
        "post",
    }
)

_MAX_UNWRAP_DEPTH = 8
_LEADING_FENCE_RE = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_TRAILING_FENCE_RE = re.compile(r"\r?\n?[ \t]*```\s*$")


class EnvelopeKind(enum.Enum):
    ARRAY_WRAPPED = "array_wrapped"
    OBJECT_WRAPPED = "object_wrapped"
    FLAT = "flat"
    DEGRADED = "degraded"
    BINARY_BLOB = "binary_blob"


@dataclass(frozen=True)
class Envelope:
    """A classified response body.

    Attributes:
        kind: Outermost envelope shape that was removed.
        payload: The single payload object (empty for ``BINARY_BLOB``).
        raw_text: Body text after fence stripping (empty for binary bodies).
        body: Raw bytes for ``BINARY_BLOB`` envelopes.
        content_type: Media type reported by the response, if known.
    """

    kind: EnvelopeKind
    payload: dict[str, Any] = field(default_factory=dict)
    raw_text: str = ""
    body: bytes | None = field(default=None, repr=False)
    content_type: str = ""

    @property
    def parse_failed(self) -> bool:
        return self.kind is EnvelopeKind.DEGRADED

    @property
    def is_binary(self) -> bool:
        return self.kind is EnvelopeKind.BINARY_BLOB


def strip_fence(text: str) -> str:
    """Remove a leading/trailing markdown code fence (```` ```json ... ``` ````).

    Text without a leading fence is returned stripped but otherwise untouched.
    """
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    inner = _LEADING_FENCE_RE.sub("", stripped, count=1)
    inner = _TRAILING_FENCE_RE.sub("", inner, count=1)
    return inner.strip()


def parse_json(text: str) -> Any:
    """Parse fence-stripped *text* as JSON.

    Raises:
        ParseError: If the text is not valid JSON.
    """
    cleaned = strip_fence(text)
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, ValueError) as e:
        raise ParseError(f"Invalid JSON: {e}", raw_text=cleaned) from e


def degraded(text: str) -> dict[str, Any]:
    """Build the reduced-availability record used when JSON parsing fails."""
    return {"content": text, "parseFailed": True}


def _is_envelope_object(value: Mapping[str, Any]) -> bool:
    return "json" in value and not any(key in value for key in PLATFORM_KEYS)


def _as_payload(value: Any) -> dict[str, Any]:
    """Coerce a fully-unwrapped value into a payload object."""
    if isinstance(value, Mapping):
        return dict(value)
    if value is None:
        return {}
    if isinstance(value, str):
        return {"content": value}
    return {"value": value}


def _unwrap_value(value: Any) -> tuple[EnvelopeKind, Any]:
    """Remove envelopes until none remain; return the outermost kind removed."""
    outer: EnvelopeKind | None = None
    for _ in range(_MAX_UNWRAP_DEPTH):
        if isinstance(value, list | tuple) and value:
            first = value[0]
            if isinstance(first, Mapping) and "json" in first:
                value = first["json"]
            else:
                value = first
            outer = outer or EnvelopeKind.ARRAY_WRAPPED
            continue
        if isinstance(value, Mapping) and _is_envelope_object(value):
            value = value["json"]
            outer = outer or EnvelopeKind.OBJECT_WRAPPED
            continue
        break
    else:
        logger.warning("Envelope nesting exceeds %d levels; stopping", _MAX_UNWRAP_DEPTH)
    if isinstance(value, list | tuple) and not value:
        value = None
    return outer or EnvelopeKind.FLAT, value


def classify(raw: RawResponse | str | bytes | Mapping[str, Any] | list[Any]) -> Envelope:
    """Determine the envelope shape of *raw* and extract its payload.

    Accepts a ``RawResponse`` from the ingestor, raw body text/bytes, or an
    already-parsed JSON value.
    """
    content_type = ""
    if hasattr(raw, "is_binary") and hasattr(raw, "body"):
        content_type = raw.content_type
        if raw.is_binary:
            logger.debug("Binary body classified (%s)", content_type or "unknown")
            return Envelope(
                kind=EnvelopeKind.BINARY_BLOB,
                body=raw.body,
                content_type=content_type,
            )
        raw = raw.text

    if isinstance(raw, bytes | bytearray):
        raw = bytes(raw).decode("utf-8", errors="replace")

    if isinstance(raw, str):
        text = strip_fence(raw)
        try:
            value = parse_json(text)
        except ParseError as e:
            logger.warning("Response is not JSON; using raw content (%s)", e)
            return Envelope(
                kind=EnvelopeKind.DEGRADED,
                payload=degraded(text),
                raw_text=text,
                content_type=content_type,
            )
    else:
        text = ""
        value = raw

    kind, unwrapped = _unwrap_value(value)
    payload = _as_payload(unwrapped)
    logger.debug("Envelope %s -> keys %s", kind.value, sorted(payload)[:12])
    return Envelope(kind=kind, payload=payload, raw_text=text, content_type=content_type)


def unwrap(raw: RawResponse | str | bytes | Mapping[str, Any] | list[Any]) -> dict[str, Any]:
    """Return the single payload object carried by *raw*.

    Never raises for malformed JSON: the result is then
    ``{"content": <text>, "parseFailed": True}``.
    """
    return classify(raw).payload
