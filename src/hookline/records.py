"""Canonical records handed to the UI layer.

All records are created per webhook call and are immutable. The only
resource with a manual lifecycle is ``GeneratedAssetRecord.local_handle``,
which must be released through the ``AssetStore`` that issued it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, field_validator

if TYPE_CHECKING:
    from hookline.assets import LocalHandle


class Platform(enum.StrEnum):
    """Social platforms with a content-generation webhook."""

    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"

    @property
    def display_name(self) -> str:
        return "Twitter" if self is Platform.TWITTER else self.value.capitalize()


class Sentinel(enum.Enum):
    """Well-known placeholder used instead of ``None``/``""``.

    ``GENERATING`` signals that no ready-to-post text is available yet; the UI
    renders it as "content generating" rather than a blank field.
    """

    GENERATING = "generating"

    def __str__(self) -> str:
        return "Content generating... Please wait for the webhook response to complete."


class AssetSourceKind(enum.StrEnum):
    """How the asset bytes reached us."""

    REMOTE_URL = "remoteUrl"
    DATA_URI = "dataUri"
    BINARY_BLOB = "binaryBlob"
    METADATA_ONLY = "metadataOnly"


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list | tuple):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [str(value)]


class VisualStrategy(BaseModel):
    """Image guidance that accompanies a generated post.

    Upstream workflows send these fields as either lists or single strings;
    list-valued fields are normalized to lists.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    image_concept: list[str] = []
    color_palette: list[str] = []
    composition_tips: list[str] = []
    filter_style: str | None = None
    text_overlay: str | None = None

    @field_validator("image_concept", "color_palette", "composition_tips", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        return _as_str_list(value)

    @field_validator("filter_style", "text_overlay", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, list | tuple):
            return ", ".join(str(v) for v in value) or None
        return str(value) or None

    def is_empty(self) -> bool:
        return not (
            self.image_concept
            or self.color_palette
            or self.composition_tips
            or self.filter_style
            or self.text_overlay
        )


@dataclass(frozen=True)
class GeneratedContentRecord:
    """Normalized output of one content-generation webhook call.

    Attributes:
        platform: Platform the content was generated for.
        ready_to_post_text: Non-empty content, or ``Sentinel.GENERATING``.
        hashtags: Normalized, de-duplicated tags in first-seen order.
        extraction_trace: Lookup paths attempted, in order; the last entry
            prefixed with ``"matched:"`` names the path that won.
        raw_payload: The unwrapped payload the record was built from.
    """

    platform: Platform
    ready_to_post_text: str | Sentinel
    hashtags: tuple[str, ...] = ()
    engagement_score: float | None = None
    optimal_time: str | None = None
    visual_strategy: VisualStrategy | None = None
    extraction_trace: tuple[str, ...] = ()
    raw_payload: Any = field(default=None, compare=True, repr=False)
    title: str = ""
    thread: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        text = self.ready_to_post_text
        if text is None or (isinstance(text, str) and not text.strip()):
            raise ValueError(
                "ready_to_post_text must be non-empty text or Sentinel.GENERATING"
            )

    @property
    def is_generating(self) -> bool:
        return self.ready_to_post_text is Sentinel.GENERATING

    @property
    def matched_path(self) -> str | None:
        """Return the lookup path that produced the text, if any."""
        for entry in reversed(self.extraction_trace):
            if entry.startswith("matched:"):
                return entry.removeprefix("matched:")
        return None

    def display_text(self) -> str:
        """Return text suitable for rendering, including the sentinel message."""
        return str(self.ready_to_post_text)


@dataclass(frozen=True)
class GeneratedAssetRecord:
    """A decoded (or undecodable) asset from an image pipeline.

    Exactly one of ``local_handle``/``remote_url`` is set unless
    ``source_kind`` is ``METADATA_ONLY``, in which case both are absent and
    ``diagnostic`` explains why.
    """

    source_kind: AssetSourceKind
    mime_type: str
    local_handle: LocalHandle | None = None
    remote_url: str | None = None
    original_file_name: str | None = None
    diagnostic: str | None = None
    request_id: str | None = None
    processing_time: float | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        has_handle = self.local_handle is not None
        has_url = self.remote_url is not None
        if self.source_kind is AssetSourceKind.METADATA_ONLY:
            if has_handle or has_url:
                raise ValueError("metadata-only assets carry no handle or URL")
            if not self.diagnostic:
                raise ValueError("metadata-only assets require a diagnostic message")
            return
        if has_handle == has_url:
            raise ValueError(
                "exactly one of local_handle/remote_url must be set for "
                f"{self.source_kind.value} assets"
            )

    @property
    def url(self) -> str | None:
        """Return a displayable URL: the remote URL or the handle's blob URL."""
        if self.remote_url is not None:
            return self.remote_url
        if self.local_handle is not None:
            return self.local_handle.url
        return None
