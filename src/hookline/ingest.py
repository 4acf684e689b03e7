"""ResponseIngestor: issue webhook calls and capture raw responses.

Every call is single-shot with a hard deadline. The response is captured as
a ``RawResponse`` and classified by content type only; JSON validity is
decided later by ``hookline.envelope``. A non-2xx status does not raise here:
upstream automation services return usable payloads alongside error statuses,
so the decision is deferred to ``ensure_payload()`` after parsing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
import re
from typing import TYPE_CHECKING, Any

import httpx

from hookline._http import (
    HEALTH_TIMEOUT_S,
    content_type_of,
    host_of,
    is_image_content_type,
    is_success,
)
from hookline.errors import HttpStatusError, NetworkError, WebhookTimeoutError

if TYPE_CHECKING:
    from hookline.envelope import Envelope

logger = logging.getLogger(__name__)

_WEBHOOK_SUFFIX_RE = re.compile(r"/webhook.*$")


@dataclass(frozen=True)
class RawResponse:
    """A webhook response as received, before any parsing.

    Attributes:
        status_code: HTTP status code.
        headers: Response headers (lower-cased keys).
        body: Raw body bytes.
        content_type: Media type without parameters, lower-cased.
        url: Requested URL.
    """

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict, repr=False)
    body: bytes = field(default=b"", repr=False)
    content_type: str = ""
    url: str = ""

    @property
    def is_binary(self) -> bool:
        return is_image_content_type(self.content_type)

    @property
    def ok(self) -> bool:
        return is_success(self.status_code)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @classmethod
    def from_httpx(cls, response: httpx.Response, *, url: str = "") -> RawResponse:
        headers = {k.lower(): v for k, v in response.headers.items()}
        return cls(
            status_code=response.status_code,
            headers=headers,
            body=response.content,
            content_type=content_type_of(headers),
            url=url or str(response.request.url),
        )


def _wrap_transport_error(exc: BaseException, *, url: str) -> NetworkError:
    """Map an httpx/asyncio failure to the hookline network taxonomy."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc
    host = host_of(url)
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return WebhookTimeoutError(
            f"Webhook call to {host} timed out",
            hint="The workflow may still be running; try again later.",
            url=url,
        )
    if isinstance(exc, httpx.ConnectError):
        return NetworkError(
            f"Could not connect to {host}: {exc}",
            hint="Check the webhook URL and that the workflow is active.",
            url=url,
        )
    return NetworkError(f"Webhook call to {host} failed: {exc}", url=url)


async def invoke(
    url: str,
    payload: Any = None,
    *,
    timeout_s: float,
    files: Any = None,
    data: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
) -> RawResponse:
    """POST to a webhook and return the raw response.

    Args:
        url: Webhook URL.
        payload: JSON body; ignored when *files* or *data* is given.
        timeout_s: Hard deadline for the whole call, in seconds.
        files: Multipart file parts, in any form httpx accepts.
        data: Multipart/form fields.
        headers: Extra request headers.
        client: Client to use; a short-lived one is created when omitted.

    Raises:
        WebhookTimeoutError: If *timeout_s* elapses first.
        NetworkError: If the host is unreachable or the transfer fails.
    """
    kwargs: dict[str, Any] = {"headers": dict(headers or {})}
    if files is not None or data is not None:
        kwargs["files"] = files
        kwargs["data"] = data
    elif payload is not None:
        kwargs["json"] = payload

    logger.debug("POST %s (timeout=%.0fs)", host_of(url), timeout_s)
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_s)) as owned:
                response = await asyncio.wait_for(
                    owned.post(url, **kwargs), timeout=timeout_s
                )
        else:
            response = await asyncio.wait_for(
                client.post(url, timeout=httpx.Timeout(timeout_s), **kwargs),
                timeout=timeout_s,
            )
    except asyncio.CancelledError:
        raise
    except (httpx.HTTPError, asyncio.TimeoutError) as e:
        raise _wrap_transport_error(e, url=url) from e

    raw = RawResponse.from_httpx(response, url=url)
    logger.debug(
        "Response %d from %s (%s, %d bytes)",
        raw.status_code,
        host_of(url),
        raw.content_type or "no content-type",
        len(raw.body),
    )
    return raw


def ensure_payload(raw: RawResponse, envelope: Envelope) -> Envelope:
    """Decide whether a response is usable after parsing.

    2xx responses always pass. A non-2xx response passes only when it parsed
    to a JSON payload with at least one key (or carried an image body);
    otherwise ``HttpStatusError`` is raised.
    """
    if raw.ok:
        return envelope
    usable = envelope.is_binary or (bool(envelope.payload) and not envelope.parse_failed)
    if usable:
        logger.warning(
            "Webhook %s returned %d but carried a payload; continuing",
            host_of(raw.url),
            raw.status_code,
        )
        return envelope
    raise HttpStatusError(
        f"Webhook {host_of(raw.url)} returned HTTP {raw.status_code} without a payload",
        hint="Check the workflow execution log for the failing node.",
        url=raw.url,
        status_code=raw.status_code,
    )


def health_url(url: str) -> str:
    """Replace the ``/webhook...`` suffix of *url* with ``/health``."""
    if _WEBHOOK_SUFFIX_RE.search(url):
        return _WEBHOOK_SUFFIX_RE.sub("/health", url, count=1)
    return url.rstrip("/") + "/health"


async def check_webhook(
    url: str,
    *,
    timeout_s: float = HEALTH_TIMEOUT_S,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """Return True when the webhook host answers its health URL below 500."""
    target = health_url(url)
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_s)) as owned:
                response = await asyncio.wait_for(owned.get(target), timeout=timeout_s)
        else:
            response = await asyncio.wait_for(
                client.get(target, timeout=httpx.Timeout(timeout_s)), timeout=timeout_s
            )
    except asyncio.CancelledError:
        raise
    except (httpx.HTTPError, asyncio.TimeoutError) as e:
        logger.debug("Health check for %s failed: %s", host_of(url), e)
        return False
    return response.status_code < 500
