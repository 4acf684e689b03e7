"""Exception hierarchy for hookline.

Format-level ambiguity never reaches the caller: ``ParseError`` and
``MissingDataError`` are raised only by the strict helpers and are
recovered inside ``unwrap()`` and ``extract()``. What propagates is the
unrecoverable set: network failures, timeouts, and undecodable assets.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from hookline.records import GeneratedAssetRecord


class HooklineError(Exception):
    """Base exception for all hookline errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(HooklineError):
    """Configuration validation or resolution failed."""


class RequestValidationError(HooklineError):
    """Outbound request rejected before any I/O happened."""


class NetworkError(HooklineError):
    """Webhook call failed: unreachable host, DNS failure, abort or timeout.

    Fatal for the current action. The library never retries; callers decide.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.url = url
        self.status_code = status_code


class WebhookTimeoutError(NetworkError):
    """The hard per-pipeline deadline expired before a response arrived."""


class HttpStatusError(NetworkError):
    """Non-2xx status whose body carried no recognizable payload."""


class ParseError(HooklineError):
    """Response text is not valid JSON after fence stripping."""

    def __init__(
        self, message: str, *, hint: str | None = None, raw_text: str = ""
    ) -> None:
        super().__init__(message, hint=hint)
        self.raw_text = raw_text


class MissingDataError(HooklineError):
    """No lookup path in a fallback chain produced usable data."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        field: str | None = None,
        attempted: Sequence[str] = (),
    ) -> None:
        super().__init__(message, hint=hint)
        self.field = field
        self.attempted = tuple(attempted)


class AssetDecodeError(HooklineError):
    """No usable asset could be produced from the response.

    ``metadata`` carries whatever file description the upstream workflow
    sent (``fileName``, ``mimeType``, ``fileSize``) for diagnostics. For the
    metadata-only case ``record`` holds the ``metadataOnly`` asset record.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        metadata: dict[str, Any] | None = None,
        record: GeneratedAssetRecord | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.metadata = metadata
        self.record = record
