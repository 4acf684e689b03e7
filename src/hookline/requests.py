"""Outbound webhook requests: body builders and pre-flight validation.

Everything here runs before any I/O and raises ``RequestValidationError``
with a hint on bad input.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
import json
import mimetypes
from pathlib import Path
import secrets
import string
from typing import Any

from hookline._http import is_http_url
from hookline.errors import RequestValidationError
from hookline.records import Platform

REQUEST_SOURCE = "hookline"
REQUEST_VERSION = "1.0"

MAX_PROMPT_LENGTH = 1000
MAX_IMAGE_BYTES = 10 * 1024 * 1024
IMAGE_MIME_TYPES: frozenset[str] = frozenset({"image/jpeg", "image/png", "image/webp"})
INVOICE_MIME_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/tiff",
        "image/bmp",
    }
)

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")
_BATCH_ALPHABET = string.ascii_lowercase + string.digits


def _timestamp() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def validate_prompt(prompt: str, max_length: int = MAX_PROMPT_LENGTH) -> str:
    """Return the stripped prompt or raise ``RequestValidationError``."""
    text = prompt.strip() if isinstance(prompt, str) else ""
    if not text:
        raise RequestValidationError("Prompt cannot be empty")
    if len(text) > max_length:
        raise RequestValidationError(
            f"Prompt is {len(text)} characters; the limit is {max_length}",
            hint="Shorten the prompt.",
        )
    return text


def validate_webhook_url(url: str) -> str:
    if not isinstance(url, str) or not is_http_url(url.strip()):
        raise RequestValidationError(
            f"Invalid webhook URL: {url!r}",
            hint="Use an absolute http:// or https:// URL.",
        )
    return url.strip()


def _mime_of(path: Path) -> str:
    return mimetypes.guess_type(str(path))[0] or "application/octet-stream"


def _check_file(
    path: str | Path, *, allowed: frozenset[str], max_bytes: int, kind: str
) -> tuple[Path, str]:
    p = Path(path)
    if not p.is_file():
        raise RequestValidationError(f"{kind} file not found: {p}")
    mime = _mime_of(p)
    if mime not in allowed:
        raise RequestValidationError(
            f"Unsupported {kind.lower()} format: {mime}",
            hint=f"Supported formats: {', '.join(sorted(allowed))}",
        )
    size = p.stat().st_size
    if size > max_bytes:
        raise RequestValidationError(
            f"{kind} file {p.name} is {format_file_size(size)}; "
            f"the limit is {format_file_size(max_bytes)}"
        )
    return p, mime


def validate_image_file(path: str | Path) -> tuple[Path, str]:
    """Check an image to edit; returns the path and its media type."""
    return _check_file(path, allowed=IMAGE_MIME_TYPES, max_bytes=MAX_IMAGE_BYTES, kind="Image")


def validate_invoice_file(path: str | Path, max_size_mb: float = 10) -> tuple[Path, str]:
    """Check an invoice document; returns the path and its media type."""
    return _check_file(
        path,
        allowed=INVOICE_MIME_TYPES,
        max_bytes=int(max_size_mb * 1024 * 1024),
        kind="Invoice",
    )


def format_file_size(num_bytes: int) -> str:
    """Render a byte count as ``"1.5 KB"``; two decimals at most."""
    if num_bytes <= 0:
        return "0 Bytes"
    exp = 0
    while num_bytes >= 1024 ** (exp + 1) and exp < len(_SIZE_UNITS) - 1:
        exp += 1
    value = round(num_bytes / 1024**exp, 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[exp]}"


def generate_batch_name(prefix: str = "batch") -> str:
    """Return ``<prefix>-<timestamp>-<6 random chars>`` for an upload batch."""
    stamp = _timestamp().replace(":", "-").replace(".", "-")
    suffix = "".join(secrets.choice(_BATCH_ALPHABET) for _ in range(6))
    return f"{prefix}-{stamp}-{suffix}"


@dataclass(frozen=True)
class ContentRequest:
    """Parameters for one social content-generation call."""

    platform: Platform
    input_content: str
    content_type: str = ""
    tone: str = ""
    writing_technique: str = ""
    success_factor: str = ""
    target_audience: str | None = None
    keywords: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "platform", Platform(self.platform))
        except ValueError:
            raise RequestValidationError(
                f"Unknown platform: {self.platform!r}",
                hint=f"Supported platforms: {', '.join(p.value for p in Platform)}",
            ) from None
        if not isinstance(self.input_content, str) or not self.input_content.strip():
            raise RequestValidationError(
                "input_content cannot be empty",
                hint="Describe the topic or paste the source text to post about.",
            )
        object.__setattr__(
            self, "keywords", tuple(k.strip() for k in self.keywords if k and k.strip())
        )

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON body the content webhooks expect."""
        payload: dict[str, Any] = {
            "platform": self.platform.value,
            "inputContent": self.input_content.strip(),
            "contentType": self.content_type,
            "tone": self.tone,
            "writingTechnique": self.writing_technique,
            "successFactor": self.success_factor,
        }
        if self.target_audience and self.target_audience.strip():
            payload["targetAudience"] = self.target_audience.strip()
        if self.keywords:
            payload["keywords"] = list(self.keywords)
        return payload


@dataclass(frozen=True)
class InvoiceUpload:
    """A batch of invoice documents for the OCR workflow."""

    files: Sequence[str | Path]
    workflow_id: str
    batch_name: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.files:
            raise RequestValidationError("No files to upload")
        if not self.workflow_id or not self.workflow_id.strip():
            raise RequestValidationError("workflow_id cannot be empty")
        object.__setattr__(self, "files", tuple(Path(f) for f in self.files))

    def to_multipart(self) -> tuple[list[tuple[str, tuple[str, bytes, str]]], dict[str, str]]:
        """Return ``(files, data)`` ready for ``httpx`` multipart encoding.

        Raises:
            RequestValidationError: If any file fails validation.
        """
        parts: list[tuple[str, tuple[str, bytes, str]]] = []
        for path in self.files:
            p, mime = validate_invoice_file(path)
            parts.append(("files", (p.name, p.read_bytes(), mime)))
        data = {
            "workflowId": self.workflow_id,
            "metadata": json.dumps(dict(self.metadata), default=str),
            "timestamp": _timestamp(),
            "source": REQUEST_SOURCE,
            "version": REQUEST_VERSION,
        }
        if self.batch_name:
            data["batchName"] = self.batch_name
        return parts, data


def image_payload(prompt: str) -> dict[str, Any]:
    """JSON body for a text-to-image call."""
    return {
        "prompt": validate_prompt(prompt),
        "mode": "text-to-image",
        "timestamp": _timestamp(),
        "source": REQUEST_SOURCE,
        "version": REQUEST_VERSION,
    }


def image_edit_multipart(
    path: str | Path, prompt: str
) -> tuple[list[tuple[str, tuple[str, bytes, str]]], dict[str, str]]:
    """Multipart ``(files, data)`` for an image-edit call."""
    text = validate_prompt(prompt)
    p, mime = validate_image_file(path)
    files = [("image", (p.name, p.read_bytes(), mime))]
    data = {
        "prompt": text,
        "mode": "image-edit",
        "timestamp": _timestamp(),
        "source": REQUEST_SOURCE,
        "version": REQUEST_VERSION,
    }
    return files, data
