"""Hookline: normalize workflow-automation webhook responses into typed records.

Public API:
    - generate_content(): Social post generation for one platform
    - process_invoices(): Invoice OCR upload with enhanced-result aggregation
    - generate_image() / edit_image(): Image pipelines ending in an asset record
    - unwrap() / extract() / decode() / aggregate(): The normalization stages
    - Config: Configuration dataclass
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from hookline.assets import AssetScope, AssetStore, LocalHandle, decode
from hookline.config import VERSION, Config
from hookline.envelope import Envelope, EnvelopeKind, classify, strip_fence, unwrap
from hookline.errors import (
    AssetDecodeError,
    ConfigurationError,
    HooklineError,
    HttpStatusError,
    MissingDataError,
    NetworkError,
    ParseError,
    RequestValidationError,
    WebhookTimeoutError,
)
from hookline.extract import extract, normalize_hashtags
from hookline.ingest import RawResponse, check_webhook, ensure_payload, invoke
from hookline.ocr import (
    OCRProcessingSummary,
    OCRUploadResult,
    ProcessingStats,
    aggregate,
    build_upload_result,
    extract_processing_stats,
    is_enhanced_response,
    parse_currency,
)
from hookline.records import (
    AssetSourceKind,
    GeneratedAssetRecord,
    GeneratedContentRecord,
    Platform,
    Sentinel,
    VisualStrategy,
)
from hookline.requests import (
    ContentRequest,
    InvoiceUpload,
    image_edit_multipart,
    image_payload,
)
from hookline.rules import DEFAULT_RULES, RuleTable
from hookline.sequencing import RequestSequencer, RequestToken

if TYPE_CHECKING:
    import httpx

__version__ = VERSION

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("hookline").addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)


def _headers(config: Config) -> dict[str, str]:
    return {"User-Agent": config.user_agent}


async def generate_content(
    request: ContentRequest,
    *,
    config: Config,
    client: httpx.AsyncClient | None = None,
    rules: RuleTable | None = None,
) -> GeneratedContentRecord:
    """Call the platform's content webhook and normalize the response.

    Args:
        request: What to generate and for which platform.
        config: Webhook URLs and deadlines.
        client: Optional shared ``httpx.AsyncClient``.
        rules: Alternative extraction rule table.

    Returns:
        A record whose ``ready_to_post_text`` is real content or
        ``Sentinel.GENERATING``.

    Raises:
        WebhookTimeoutError: The content deadline (180 s by default) expired.
        NetworkError: The webhook could not be reached.
        HttpStatusError: Non-2xx status with no recognizable payload.

    Example:
        record = await generate_content(
            ContentRequest(platform="linkedin", input_content="Launch notes"),
            config=Config(),
        )
        print(record.display_text())
    """
    url = config.webhook_for(request.platform)
    raw = await invoke(
        url,
        request.to_payload(),
        timeout_s=config.content_timeout_s,
        headers=_headers(config),
        client=client,
    )
    envelope = ensure_payload(raw, classify(raw))
    record = extract(envelope.payload, request.platform, rules=rules)
    logger.debug(
        "%s content via %s (%s envelope)",
        request.platform.value,
        record.matched_path or "no path",
        envelope.kind.value,
    )
    return record


async def process_invoices(
    upload: InvoiceUpload,
    *,
    config: Config,
    client: httpx.AsyncClient | None = None,
) -> OCRUploadResult:
    """Upload invoices to the OCR workflow and aggregate its report.

    ``OCRUploadResult.summary`` is ``None`` when the workflow returned only
    the basic completion payload.
    """
    url = config.require_ocr_webhook()
    files, data = upload.to_multipart()
    raw = await invoke(
        url,
        files=files,
        data=data,
        timeout_s=config.ocr_timeout_s,
        headers=_headers(config),
        client=client,
    )
    envelope = ensure_payload(raw, classify(raw))
    return build_upload_result(envelope.payload, workflow_id=upload.workflow_id)


def _decode_image(
    raw: RawResponse, *, store: AssetStore
) -> GeneratedAssetRecord:
    if not raw.ok:
        ensure_payload(raw, classify(raw))
    return decode(raw, store=store)


async def generate_image(
    prompt: str,
    *,
    config: Config,
    store: AssetStore,
    client: httpx.AsyncClient | None = None,
) -> GeneratedAssetRecord:
    """Run the text-to-image webhook and decode the returned asset.

    Raises:
        AssetDecodeError: The response carried no usable image.
    """
    payload = image_payload(prompt)
    raw = await invoke(
        config.require_image_webhook(),
        payload,
        timeout_s=config.image_timeout_s,
        headers=_headers(config),
        client=client,
    )
    return _decode_image(raw, store=store)


async def edit_image(
    path: str | Path,
    prompt: str,
    *,
    config: Config,
    store: AssetStore,
    client: httpx.AsyncClient | None = None,
) -> GeneratedAssetRecord:
    """Upload an image with an edit prompt and decode the returned asset."""
    files, data = image_edit_multipart(path, prompt)
    raw = await invoke(
        config.require_image_webhook(),
        files=files,
        data=data,
        timeout_s=config.image_timeout_s,
        headers=_headers(config),
        client=client,
    )
    return _decode_image(raw, store=store)


__all__ = [
    "DEFAULT_RULES",
    "AssetDecodeError",
    "AssetScope",
    "AssetSourceKind",
    "AssetStore",
    "Config",
    "ConfigurationError",
    "ContentRequest",
    "Envelope",
    "EnvelopeKind",
    "GeneratedAssetRecord",
    "GeneratedContentRecord",
    "HooklineError",
    "HttpStatusError",
    "InvoiceUpload",
    "LocalHandle",
    "MissingDataError",
    "NetworkError",
    "OCRProcessingSummary",
    "OCRUploadResult",
    "ParseError",
    "Platform",
    "ProcessingStats",
    "RawResponse",
    "RequestSequencer",
    "RequestToken",
    "RequestValidationError",
    "RuleTable",
    "Sentinel",
    "VisualStrategy",
    "WebhookTimeoutError",
    "aggregate",
    "check_webhook",
    "classify",
    "decode",
    "edit_image",
    "extract",
    "extract_processing_stats",
    "generate_content",
    "generate_image",
    "invoke",
    "is_enhanced_response",
    "normalize_hashtags",
    "parse_currency",
    "process_invoices",
    "strip_fence",
    "unwrap",
]
