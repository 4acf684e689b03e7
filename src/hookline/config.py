"""Configuration: frozen Config holding webhook URLs and pipeline deadlines."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version
import os

from dotenv import load_dotenv

from hookline._http import (
    CONTENT_TIMEOUT_S,
    HEALTH_TIMEOUT_S,
    IMAGE_TIMEOUT_S,
    OCR_TIMEOUT_S,
    host_of,
    is_http_url,
)
from hookline.errors import ConfigurationError
from hookline.records import Platform

load_dotenv()

try:
    VERSION = version("hookline")
except PackageNotFoundError:
    VERSION = "0.0.0+unknown"

DEFAULT_USER_AGENT = f"hookline/{VERSION}"

_PLATFORM_ENV_VARS: dict[Platform, str] = {
    p: f"HOOKLINE_{p.value.upper()}_WEBHOOK" for p in Platform
}
OCR_ENV_VAR = "HOOKLINE_OCR_WEBHOOK"
IMAGE_ENV_VAR = "HOOKLINE_IMAGE_WEBHOOK"


def _env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _check_url(url: str, label: str, env_var: str) -> None:
    if not is_http_url(url):
        raise ConfigurationError(
            f"{label} webhook URL is not an absolute http(s) URL: {host_of(url)}",
            hint=f"Fix the value passed in or set in {env_var}.",
        )


@dataclass(frozen=True)
class Config:
    """Immutable webhook configuration.

    URLs not passed explicitly are resolved from ``HOOKLINE_*_WEBHOOK``
    environment variables (a ``.env`` file is loaded on import).

    Example:
        config = Config(content_webhooks={"twitter": "https://n8n.example/webhook/tw"})
        url = config.webhook_for("twitter")
    """

    content_webhooks: Mapping[Platform, str] = field(default_factory=dict)
    ocr_webhook: str | None = None
    image_webhook: str | None = None
    content_timeout_s: float = CONTENT_TIMEOUT_S
    ocr_timeout_s: float = OCR_TIMEOUT_S
    image_timeout_s: float = IMAGE_TIMEOUT_S
    health_timeout_s: float = HEALTH_TIMEOUT_S
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        """Resolve URLs from the environment and validate everything."""
        webhooks: dict[Platform, str] = {}
        for key, url in dict(self.content_webhooks).items():
            try:
                platform = Platform(key)
            except ValueError:
                raise ConfigurationError(
                    f"Unknown platform in content_webhooks: {key!r}",
                    hint=f"Supported platforms: {', '.join(p.value for p in Platform)}",
                ) from None
            webhooks[platform] = url.strip()
        for platform, env_var in _PLATFORM_ENV_VARS.items():
            if platform not in webhooks and (resolved := _env(env_var)):
                webhooks[platform] = resolved
        for platform, url in webhooks.items():
            _check_url(url, platform.display_name, _PLATFORM_ENV_VARS[platform])
        object.__setattr__(self, "content_webhooks", webhooks)

        for attr, env_var, label in (
            ("ocr_webhook", OCR_ENV_VAR, "OCR"),
            ("image_webhook", IMAGE_ENV_VAR, "Image"),
        ):
            value = getattr(self, attr)
            value = value.strip() if value else _env(env_var)
            if value is not None:
                _check_url(value, label, env_var)
            object.__setattr__(self, attr, value)

        for attr in ("content_timeout_s", "ocr_timeout_s", "image_timeout_s", "health_timeout_s"):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
                raise ConfigurationError(
                    f"{attr} must be > 0, got {value!r}",
                    hint="Timeouts are hard deadlines in seconds.",
                )

    def webhook_for(self, platform: Platform | str) -> str:
        """Return the content webhook URL for *platform*.

        Raises:
            ConfigurationError: If no URL is configured.
        """
        p = Platform(platform)
        url = self.content_webhooks.get(p)
        if not url:
            raise ConfigurationError(
                f"No content webhook configured for {p.display_name}",
                hint=f"Set {_PLATFORM_ENV_VARS[p]} or pass content_webhooks=...",
            )
        return url

    def require_ocr_webhook(self) -> str:
        if not self.ocr_webhook:
            raise ConfigurationError(
                "No OCR webhook configured",
                hint=f"Set {OCR_ENV_VAR} or pass ocr_webhook=...",
            )
        return self.ocr_webhook

    def require_image_webhook(self) -> str:
        if not self.image_webhook:
            raise ConfigurationError(
                "No image webhook configured",
                hint=f"Set {IMAGE_ENV_VAR} or pass image_webhook=...",
            )
        return self.image_webhook

    def __str__(self) -> str:
        """Return a representation showing webhook hosts only."""
        hosts = {p.value: host_of(u) for p, u in self.content_webhooks.items()}
        return (
            f"Config(content_webhooks={hosts!r}, "
            f"ocr_webhook={host_of(self.ocr_webhook) if self.ocr_webhook else None!r}, "
            f"image_webhook={host_of(self.image_webhook) if self.image_webhook else None!r})"
        )

    __repr__ = __str__
