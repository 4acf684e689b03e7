"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration and shared webhook
fixtures. Isolation fixtures are autouse.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os
from typing import Any

import pytest

from hookline.assets import AssetStore
from hookline.config import Config
from tests.helpers import CONTENT_URL, IMAGE_URL, OCR_URL

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_webhook_env(request, monkeypatch):
    """Clear HOOKLINE_* env vars so configured webhooks never leak into tests.

    Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("HOOKLINE_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def config() -> Config:
    return Config(
        content_webhooks={
            p: f"{CONTENT_URL}-{p}" for p in ("twitter", "linkedin", "instagram", "facebook")
        },
        ocr_webhook=OCR_URL,
        image_webhook=IMAGE_URL,
    )


@pytest.fixture
def store():
    with AssetStore() as s:
        yield s


@pytest.fixture
def enhanced_ocr_result() -> dict[str, Any]:
    """One enhanced OCR result object as the workflow reports it."""
    return {
        "processingTimestamp": "2025-01-15T10:30:00.000Z",
        "summary": {
            "totalItems": 3,
            "ocrDocuments": 3,
            "extractedRecords": 2,
            "googleSheetsRecords": 2,
            "successfulExtractions": 2,
            "failedExtractions": 1,
            "duplicateRecords": 0,
            "qualityIssues": 1,
            "successRate": "66.67%",
            "uniqueInvoices": 2,
        },
        "financialSummary": {
            "totalAmount": "$1,234.56",
            "averageAmount": "$617.28",
            "minAmount": "$234.56",
            "maxAmount": "$1,000.00",
            "medianAmount": "$617.28",
            "count": 2,
        },
        "processingDetails": {
            "successfulInvoices": [
                {"invoiceNumber": "INV-001", "vendorName": "Acme", "totalAmount": 1000, "index": 0},
                {"invoiceNumber": "INV-002", "vendorName": "Globex", "totalAmount": "234.56", "index": 1},
            ],
            "failedExtractions": [{"index": 2, "error": "Unreadable scan"}],
            "qualityIssues": [
                {"index": 1, "invoiceNumber": "INV-002", "isValid": False, "issues": ["Missing tax ID"]}
            ],
            "duplicates": [],
        },
        "qualityMetrics": {
            "dataCompleteness": "95.5%",
            "duplicateRate": "0%",
            "errorRate": "33.33%",
        },
        "recommendations": ["Rescan document 3 at higher resolution"],
    }
