"""Small HTTP-related constants and helpers shared across hookline.

Kept free of hookline imports; every other module may import it.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlparse

# Hard deadlines per pipeline, in seconds.
CONTENT_TIMEOUT_S: float = 180.0
OCR_TIMEOUT_S: float = 120.0
IMAGE_TIMEOUT_S: float = 60.0
HEALTH_TIMEOUT_S: float = 5.0

ALLOWED_SCHEMES: frozenset[str] = frozenset({"http", "https"})


def is_success(status_code: int) -> bool:
    """Return True for 2xx statuses."""
    return 200 <= status_code < 300


def content_type_of(headers: Mapping[str, str]) -> str:
    """Return the lower-cased media type without parameters, or ``""``."""
    raw = ""
    for key, value in headers.items():
        if key.lower() == "content-type":
            raw = value
            break
    return raw.split(";", 1)[0].strip().lower()


def is_image_content_type(content_type: str) -> bool:
    """Return True when *content_type* names an ``image/*`` media type."""
    return content_type.lower().startswith("image/")


def is_http_url(url: str) -> bool:
    """Return True for absolute http/https URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ALLOWED_SCHEMES and bool(parsed.netloc)


def host_of(url: str) -> str:
    """Return the network location of *url* for redacted display."""
    try:
        return urlparse(url).netloc or "<invalid>"
    except ValueError:
        return "<invalid>"
