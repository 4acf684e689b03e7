from __future__ import annotations

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from hookline.ocr import (
    aggregate,
    build_upload_result,
    extract_processing_stats,
    google_sheets_url,
    is_enhanced_response,
    parse_currency,
    parse_percent,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("$1,234.56", Decimal("1234.56")),
        ("-$12.50", Decimal("-12.50")),
        ("USD 99", Decimal("99")),
        ("N/A", Decimal(0)),
        ("--", Decimal(0)),
        ("1.2.3", Decimal(0)),
        ("", Decimal(0)),
        (None, Decimal(0)),
        (42, Decimal(42)),
        (19.99, Decimal("19.99")),
        (float("nan"), Decimal(0)),
        (float("inf"), Decimal(0)),
    ],
)
def test_parse_currency(value, expected) -> None:
    assert parse_currency(value) == expected


@given(st.one_of(st.text(), st.floats(), st.integers(), st.none()))
@settings(max_examples=200, deadline=None, derandomize=True)
def test_parse_currency_never_yields_nan(value) -> None:
    result = parse_currency(value)
    assert isinstance(result, Decimal)
    assert result.is_finite()


def test_parse_percent() -> None:
    assert parse_percent("95.5%") == 95.5
    assert parse_percent(None) is None
    assert parse_percent("") is None


def test_aggregate_legacy_shape(enhanced_ocr_result) -> None:
    summary = aggregate({"results": [enhanced_ocr_result], "googleSheetsUrl": "https://docs.google.com/s/1"})
    assert summary is not None
    assert summary.total_items == 3
    assert [i.invoice_number for i in summary.successful_extractions] == ["INV-001", "INV-002"]
    assert summary.successful_extractions[1].total_amount == Decimal("234.56")
    assert summary.failed_extractions[0].error == "Unreadable scan"
    assert summary.quality_issues[0].issues == ["Missing tax ID"]
    assert summary.duplicates == []
    assert summary.financial_summary.total_amount == Decimal("1234.56")
    assert summary.financial_summary.min_amount == Decimal("234.56")
    assert summary.financial_summary.max_amount == Decimal("1000.00")
    assert summary.financial_summary.count == 2
    assert summary.total_amount == Decimal("1234.56")
    assert summary.success_rate == pytest.approx(66.67)
    assert summary.quality_metrics.data_completeness == 95.5
    assert summary.quality_metrics.error_rate == pytest.approx(33.33)
    assert summary.recommendations == ["Rescan document 3 at higher resolution"]
    assert summary.google_sheets_url == "https://docs.google.com/s/1"
    assert summary.counts["ocrDocuments"] == 3


def test_flattened_and_legacy_shapes_agree(enhanced_ocr_result) -> None:
    assert aggregate(enhanced_ocr_result) == aggregate({"results": [enhanced_ocr_result]})


def test_aggregate_unwraps_envelopes(enhanced_ocr_result) -> None:
    assert aggregate([{"json": enhanced_ocr_result}]) == aggregate(enhanced_ocr_result)


@pytest.mark.parametrize(
    "payload",
    [{}, {"message": "Workflow was started"}, {"results": []}, {"results": [{"status": "ok"}]}, "not json"],
)
def test_aggregate_returns_none_without_enhanced_shape(payload) -> None:
    assert aggregate(payload) is None


def test_count_mismatch_is_preserved(enhanced_ocr_result) -> None:
    enhanced_ocr_result["financialSummary"]["count"] = 5
    summary = aggregate(enhanced_ocr_result)
    assert summary.financial_summary.count == 5
    assert len(summary.successful_extractions) == 2


def test_malformed_sub_records_do_not_break_aggregation(enhanced_ocr_result) -> None:
    enhanced_ocr_result["processingDetails"]["successfulInvoices"].append("garbage")
    enhanced_ocr_result["financialSummary"]["averageAmount"] = "n/a"
    enhanced_ocr_result["qualityMetrics"] = None
    summary = aggregate(enhanced_ocr_result)
    assert len(summary.successful_extractions) == 2
    assert summary.financial_summary.average_amount == Decimal(0)
    assert summary.quality_metrics.data_completeness is None


@pytest.mark.parametrize(
    ("issues", "expected"),
    [
        (3, ["3"]),
        ("Missing tax ID", ["Missing tax ID"]),
        ({"field": "taxId"}, []),
        (["a", None, 2], ["a", "2"]),
        (None, []),
    ],
)
def test_quality_issue_shapes_never_break_aggregation(enhanced_ocr_result, issues, expected) -> None:
    enhanced_ocr_result["processingDetails"]["qualityIssues"] = [
        {"index": 1, "invoiceNumber": "INV-002", "isValid": False, "issues": issues}
    ]
    summary = aggregate(enhanced_ocr_result)
    assert len(summary.quality_issues) == 1
    assert summary.quality_issues[0].issues == expected


def test_numeric_invoice_numbers_are_kept_as_text(enhanced_ocr_result) -> None:
    details = enhanced_ocr_result["processingDetails"]
    details["duplicates"] = [{"invoiceNumber": 1001, "index": 2}]
    details["qualityIssues"][0]["invoiceNumber"] = 1002
    summary = aggregate(enhanced_ocr_result)
    assert [d.invoice_number for d in summary.duplicates] == ["1001"]
    assert summary.quality_issues[0].invoice_number == "1002"


@pytest.mark.parametrize(("index", "expected"), [("first", None), ("2", 2), (3.0, 3), (1.5, None), ([1], None)])
def test_unparseable_index_keeps_the_record(enhanced_ocr_result, index, expected) -> None:
    enhanced_ocr_result["processingDetails"]["successfulInvoices"][0]["index"] = index
    summary = aggregate(enhanced_ocr_result)
    assert len(summary.successful_extractions) == summary.financial_summary.count == 2
    assert summary.successful_extractions[0].index == expected
    assert summary.successful_extractions[0].invoice_number == "INV-001"


def test_is_enhanced_response_is_strict(enhanced_ocr_result) -> None:
    assert is_enhanced_response({"results": [enhanced_ocr_result]})
    assert not is_enhanced_response(enhanced_ocr_result)
    del enhanced_ocr_result["recommendations"]
    assert not is_enhanced_response({"results": [enhanced_ocr_result]})
    assert not is_enhanced_response(None)


def test_extract_processing_stats(enhanced_ocr_result) -> None:
    stats = extract_processing_stats(enhanced_ocr_result)
    assert stats.total_files == 3
    assert stats.processed_files == 3
    assert stats.successful_files == 2
    assert stats.failed_files == 1
    assert stats.total_amount == pytest.approx(1234.56)
    assert stats.average_processing_time == 0.0


def test_extract_processing_stats_defaults_to_zero() -> None:
    stats = extract_processing_stats({"message": "done"})
    assert stats.total_files == 0
    assert stats.total_amount == 0.0


@pytest.mark.parametrize(
    ("payload", "url"),
    [
        ({"googleSheetsUrl": "https://a"}, "https://a"),
        ({"data": {"sheetsUrl": "https://b"}}, "https://b"),
        ({"url": "https://c", "data": {"googleSheetsUrl": "https://d"}}, "https://d"),
        ({"message": "no link"}, None),
    ],
)
def test_google_sheets_url_chain(payload, url) -> None:
    assert google_sheets_url(payload) == url


def test_basic_completion_payload_falls_back_without_summary() -> None:
    result = build_upload_result(
        {"message": "Workflow was started", "executionId": "42"}, workflow_id="wf-1"
    )
    assert not result.is_enhanced
    assert result.summary is None
    assert result.message == "Workflow was started"
    assert result.execution_id == "42"
    assert result.workflow_id == "wf-1"
    assert result.stats.total_files == 0


def test_enhanced_upload_result(enhanced_ocr_result) -> None:
    result = build_upload_result({**enhanced_ocr_result, "googleSheetsUrl": "https://s"})
    assert result.is_enhanced
    assert result.google_sheets_url == "https://s"
    assert result.stats.successful_files == 2
