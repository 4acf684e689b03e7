"""EnhancedResultAggregator for the invoice-OCR pipeline.

The OCR workflow reports its result in one of two shapes:

- legacy: ``{"results": [{"summary", "financialSummary", "processingDetails",
  "qualityMetrics", "recommendations"}]}``
- current: the same keys flattened onto the top-level object

``aggregate()`` accepts either (after envelope unwrapping) and returns
``None`` when neither is present, so callers fall back to the basic
completion payload. Counts are taken as reported; a mismatch between
``financialSummary.count`` and the number of successful invoices is kept.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
import logging
import math
import re
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from hookline.envelope import unwrap
from hookline.paths import MISSING, first_match, paths

logger = logging.getLogger(__name__)

ENHANCED_KEYS: tuple[str, ...] = (
    "summary",
    "financialSummary",
    "processingDetails",
    "qualityMetrics",
)

_NON_NUMERIC_RE = re.compile(r"[^0-9.-]")
_ZERO = Decimal(0)

_SHEETS_URL_CHAIN = paths(
    "googleSheetsUrl",
    "data.googleSheetsUrl",
    "sheetsUrl",
    "data.sheetsUrl",
    "url",
    "data.url",
)


def parse_currency(value: Any) -> Decimal:
    """Parse a currency-formatted amount such as ``"$1,234.56"``.

    Every character except digits, ``.`` and ``-`` is dropped. Anything that
    still does not parse as a finite number becomes ``Decimal(0)``.
    """
    if value is None or isinstance(value, bool):
        return _ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else _ZERO
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if math.isfinite(value) else _ZERO
    cleaned = _NON_NUMERIC_RE.sub("", str(value))
    if not cleaned:
        return _ZERO
    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return _ZERO
    return number if number.is_finite() else _ZERO


def parse_percent(value: Any) -> float | None:
    """Parse ``"95.5%"``-style values; ``None`` when absent."""
    if value is None or value == "":
        return None
    return float(parse_currency(value))


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    return int(parse_currency(value))


def _index_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _text_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


class _Record(BaseModel):
    model_config = {"frozen": True, "extra": "allow", "populate_by_name": True}


class _Item(_Record):
    """Base for per-invoice entries; a bad index never drops the entry."""

    index: int | None = None

    @field_validator("index", mode="before")
    @classmethod
    def _index(cls, v: Any) -> int | None:
        return _index_or_none(v)


class InvoiceRecord(_Item):
    """One successfully extracted invoice."""

    invoice_number: str | None = Field(default=None, alias="invoiceNumber")
    vendor_name: str | None = Field(default=None, alias="vendorName")
    total_amount: Decimal = Field(default=_ZERO, alias="totalAmount")

    @field_validator("total_amount", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> Decimal:
        return parse_currency(v)

    @field_validator("invoice_number", "vendor_name", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return _text_or_none(v)


class FailureRecord(_Item):
    error: str = ""

    @field_validator("error", mode="before")
    @classmethod
    def _error(cls, v: Any) -> str:
        return "" if v is None else str(v)


class QualityRecord(_Item):
    invoice_number: str | None = Field(default=None, alias="invoiceNumber")
    is_valid: bool = Field(default=False, alias="isValid")
    issues: list[str] = Field(default_factory=list)

    @field_validator("invoice_number", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return _text_or_none(v)

    @field_validator("is_valid", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in {"true", "yes", "1"}
        return bool(v) if isinstance(v, bool | int | float) else False

    @field_validator("issues", mode="before")
    @classmethod
    def _issues(cls, v: Any) -> list[str]:
        if v is None or isinstance(v, Mapping):
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list | tuple | set | frozenset):
            return [str(i) for i in v if i is not None]
        return [str(v)]


class DuplicateRecord(_Item):
    invoice_number: str | None = Field(default=None, alias="invoiceNumber")

    @field_validator("invoice_number", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return _text_or_none(v)


class FinancialSummary(_Record):
    """Amount statistics over the successful invoices, as reported upstream."""

    total_amount: Decimal = Field(default=_ZERO, alias="totalAmount")
    average_amount: Decimal = Field(default=_ZERO, alias="averageAmount")
    min_amount: Decimal = Field(default=_ZERO, alias="minAmount")
    max_amount: Decimal = Field(default=_ZERO, alias="maxAmount")
    median_amount: Decimal = Field(default=_ZERO, alias="medianAmount")
    count: int = 0

    @field_validator(
        "total_amount",
        "average_amount",
        "min_amount",
        "max_amount",
        "median_amount",
        mode="before",
    )
    @classmethod
    def _amount(cls, v: Any) -> Decimal:
        return parse_currency(v)

    @field_validator("count", mode="before")
    @classmethod
    def _count(cls, v: Any) -> int:
        return _as_int(v)


class QualityMetrics(_Record):
    """Percentages reported by the workflow, parsed to floats."""

    data_completeness: float | None = Field(default=None, alias="dataCompleteness")
    duplicate_rate: float | None = Field(default=None, alias="duplicateRate")
    error_rate: float | None = Field(default=None, alias="errorRate")

    @field_validator("data_completeness", "duplicate_rate", "error_rate", mode="before")
    @classmethod
    def _percent(cls, v: Any) -> float | None:
        return parse_percent(v)


class OCRProcessingSummary(BaseModel):
    """Aggregated view of one enhanced OCR response."""

    model_config = {"frozen": True}

    total_items: int = 0
    successful_extractions: list[InvoiceRecord] = Field(default_factory=list)
    failed_extractions: list[FailureRecord] = Field(default_factory=list)
    quality_issues: list[QualityRecord] = Field(default_factory=list)
    duplicates: list[DuplicateRecord] = Field(default_factory=list)
    financial_summary: FinancialSummary = Field(default_factory=FinancialSummary)
    quality_metrics: QualityMetrics = Field(default_factory=QualityMetrics)
    recommendations: list[str] = Field(default_factory=list)
    total_amount: Decimal = _ZERO
    success_rate: float | None = None
    processing_timestamp: str | None = None
    google_sheets_url: str | None = None
    counts: dict[str, int] = Field(default_factory=dict)


class ProcessingStats(BaseModel):
    """Headline numbers for the upload result banner."""

    model_config = {"frozen": True}

    total_files: int = 0
    processed_files: int = 0
    successful_files: int = 0
    failed_files: int = 0
    total_amount: float = 0.0
    average_processing_time: float = 0.0


def _enhanced_section(payload: Mapping[str, Any]) -> Mapping[str, Any] | None:
    """Return the mapping carrying the enhanced keys, whichever shape is used."""
    results = payload.get("results")
    if isinstance(results, list) and results and isinstance(results[0], Mapping):
        first = results[0]
        if any(key in first for key in ENHANCED_KEYS):
            return first
    if "summary" in payload or "financialSummary" in payload:
        return payload
    return None


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _records(model: type[_Record], items: Any) -> list[Any]:
    if not isinstance(items, list):
        return []
    out = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        try:
            out.append(model.model_validate(dict(item)))
        except ValidationError as e:
            logger.debug("Skipping malformed %s: %s", model.__name__, e)
    return out


def _model(model: type[_Record], value: Any) -> Any:
    try:
        return model.model_validate(dict(_mapping(value)))
    except ValidationError as e:
        logger.warning("Malformed %s in OCR response; using defaults (%s)", model.__name__, e)
        return model()


def _counts(summary: Mapping[str, Any]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for key, value in summary.items():
        if isinstance(value, int | float) and not isinstance(value, bool):
            counts[key] = int(value) if math.isfinite(value) else 0
    return counts


def google_sheets_url(payload: Any) -> str | None:
    """Find the spreadsheet link the workflow wrote results to, if any."""
    data = unwrap(payload)
    res = first_match(
        data,
        _SHEETS_URL_CHAIN,
        lambda v: v.strip() if isinstance(v, str) and v.strip() else MISSING,
    )
    return res.value if res.found else None


def aggregate(payload: Any) -> OCRProcessingSummary | None:
    """Build an ``OCRProcessingSummary`` from an enhanced OCR response.

    Returns:
        The summary, or ``None`` when the payload carries neither the legacy
        nor the flattened enhanced shape.
    """
    data = unwrap(payload)
    section = _enhanced_section(data)
    if section is None:
        logger.debug("No enhanced OCR data; keys %s", sorted(data)[:12])
        return None

    summary = _mapping(section.get("summary"))
    details = _mapping(section.get("processingDetails"))
    financial = _model(FinancialSummary, section.get("financialSummary"))
    successful = _records(InvoiceRecord, details.get("successfulInvoices"))
    failed = _records(FailureRecord, details.get("failedExtractions"))
    recommendations = section.get("recommendations")

    total_items = summary.get("totalItems")
    return OCRProcessingSummary(
        total_items=(
            _as_int(total_items) if total_items is not None else len(successful) + len(failed)
        ),
        successful_extractions=successful,
        failed_extractions=failed,
        quality_issues=_records(QualityRecord, details.get("qualityIssues")),
        duplicates=_records(DuplicateRecord, details.get("duplicates")),
        financial_summary=financial,
        quality_metrics=_model(QualityMetrics, section.get("qualityMetrics")),
        recommendations=(
            [str(r) for r in recommendations if r is not None]
            if isinstance(recommendations, list)
            else []
        ),
        total_amount=financial.total_amount,
        success_rate=parse_percent(summary.get("successRate")),
        processing_timestamp=(
            str(section["processingTimestamp"]) if section.get("processingTimestamp") else None
        ),
        google_sheets_url=google_sheets_url(data),
        counts=_counts(summary),
    )


def is_enhanced_response(payload: Any) -> bool:
    """Strictly validate the legacy ``results[0]`` enhanced shape."""
    if not isinstance(payload, Mapping):
        return False
    results = payload.get("results")
    if not isinstance(results, list) or not results or not isinstance(results[0], Mapping):
        return False
    first = results[0]
    return all(first.get(key) for key in ENHANCED_KEYS) and isinstance(
        first.get("recommendations"), list
    )


def extract_processing_stats(payload: Any) -> ProcessingStats:
    """Return headline counts; all zeros when no enhanced shape matches."""
    data = unwrap(payload)
    section = _enhanced_section(data)
    if section is None or not (
        isinstance(section.get("summary"), Mapping)
        and isinstance(section.get("financialSummary"), Mapping)
    ):
        return ProcessingStats()
    summary = section["summary"]
    return ProcessingStats(
        total_files=_as_int(summary.get("totalItems")),
        processed_files=_as_int(summary.get("ocrDocuments")),
        successful_files=_as_int(summary.get("successfulExtractions")),
        failed_files=_as_int(summary.get("failedExtractions")),
        total_amount=float(parse_currency(section["financialSummary"].get("totalAmount"))),
    )


class OCRUploadResult(BaseModel):
    """Outcome of one invoice upload: basic completion fields plus any enhanced data."""

    model_config = {"frozen": True}

    message: str = "Files uploaded successfully"
    execution_id: str | None = None
    workflow_id: str | None = None
    google_sheets_url: str | None = None
    summary: OCRProcessingSummary | None = None
    stats: ProcessingStats = Field(default_factory=ProcessingStats)
    raw_payload: dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def is_enhanced(self) -> bool:
        return self.summary is not None


def build_upload_result(payload: Any, *, workflow_id: str | None = None) -> OCRUploadResult:
    """Combine the basic completion payload with ``aggregate()``'s view of it."""
    data = unwrap(payload)
    message = data.get("message")
    return OCRUploadResult(
        message=str(message) if message else "Files uploaded successfully",
        execution_id=str(data["executionId"]) if data.get("executionId") else None,
        workflow_id=str(data.get("workflowId") or workflow_id or "") or None,
        google_sheets_url=google_sheets_url(data),
        summary=aggregate(data),
        stats=extract_processing_stats(data),
        raw_payload=data,
    )
