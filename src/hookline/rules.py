"""Declarative fallback chains per ``(platform, field)``.

Each chain lists lookup paths in priority order. The order tracks the field
names observed across upstream payload versions: the pre-formatted
quick-publish variant first, then the platform post object, then generic
``content``/``post`` fields. Changing extraction behavior means editing these
tables, not the resolver.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from hookline.paths import LookupPath, paths
from hookline.records import Platform

TEXT = "ready_to_post_text"
HASHTAGS = "hashtags"
EXPLICIT_TAGS = "explicit_tags"
ENGAGEMENT = "engagement_score"
OPTIMAL_TIME = "optimal_time"
VISUAL = "visual_strategy"
TITLE = "title"
THREAD = "thread"

FIELDS: tuple[str, ...] = (
    TEXT,
    HASHTAGS,
    EXPLICIT_TAGS,
    ENGAGEMENT,
    OPTIMAL_TIME,
    VISUAL,
    TITLE,
    THREAD,
)

_GENERIC_TEXT = ("content", "post")

_TEXT_CHAINS: dict[Platform, tuple[str, ...]] = {
    Platform.TWITTER: (
        "quick_publish.single_tweet_ready",
        "single_tweet.ready_to_post",
        "single_tweet.content",
        "quick_publish.thread_ready[0]",
        "quick_publish.thread_ready",
        "thread.ready_to_post[0]",
        "thread.tweets[0]",
        *_GENERIC_TEXT,
    ),
    Platform.LINKEDIN: (
        "quick_publish.post_ready",
        "linkedin_post.ready_to_post",
        "linkedin_post.content",
        *_GENERIC_TEXT,
    ),
    Platform.INSTAGRAM: (
        "quick_publish.full_post_ready",
        "quick_publish.caption_ready",
        "instagram_post.ready_to_post",
        "instagram_post.full_caption",
        *_GENERIC_TEXT,
    ),
    Platform.FACEBOOK: (
        "quick_publish.post_ready",
        "facebook_post.ready_to_post",
        "facebook_post.content",
        "alternative_versions[0].content",
        "alternative_versions[0].post",
        "alternative_versions[0].text",
        *_GENERIC_TEXT,
    ),
}

_HASHTAG_HEAD = ("hashtag_strategy.all_tags_string", "hashtags.all_hashtags_formatted")
_HASHTAG_TAIL = (
    "hashtag_strategy.industry_tags",
    "hashtag_strategy.content_tags",
    "hashtags",
)

_HASHTAG_CHAINS: dict[Platform, tuple[str, ...]] = {
    Platform.TWITTER: (
        *_HASHTAG_HEAD,
        "single_tweet.hashtags",
        "quick_publish.hashtags_ready",
        *_HASHTAG_TAIL,
    ),
    Platform.LINKEDIN: (
        *_HASHTAG_HEAD,
        "linkedin_post.hashtags",
        "quick_publish.hashtags_ready",
        *_HASHTAG_TAIL,
    ),
    Platform.INSTAGRAM: (
        *_HASHTAG_HEAD,
        "instagram_post.hashtags",
        "hashtags.all_tags_string",
        "hashtags.large",
        "hashtags.medium",
        "hashtags.small",
        "quick_publish.hashtags_ready",
        *_HASHTAG_TAIL,
    ),
    Platform.FACEBOOK: (
        *_HASHTAG_HEAD,
        "facebook_post.hashtags",
        "quick_publish.hashtags_ready",
        "hashtag_strategy.industry_tags",
        "hashtag_strategy.content_tags",
        "hashtag_strategy.tags",
        "hashtags",
    ),
}

# Same for every platform.
_SHARED_CHAINS: dict[str, tuple[str, ...]] = {
    EXPLICIT_TAGS: (
        "hashtag_strategy.brand",
        "hashtag_strategy.brand_tag",
        "hashtag_strategy.industry",
        "hashtag_strategy.industry_tags",
    ),
    ENGAGEMENT: (
        "quick_publish.engagement_score",
        "performance.engagement_potential",
        "raw_output.performance_prediction.engagement_potential",
        "performance_prediction.engagement_potential",
    ),
    OPTIMAL_TIME: (
        "quick_publish.optimal_time",
        "performance.optimal_time",
        "raw_output.performance_prediction.optimal_time",
        "performance_prediction.optimal_time",
    ),
    VISUAL: ("visual_strategy", "raw_output.visual_strategy"),
    TITLE: ("title",),
}

_THREAD_CHAIN = ("quick_publish.thread_ready", "thread.ready_to_post", "thread.tweets")


@dataclass(frozen=True)
class RuleTable:
    """Immutable mapping of ``(platform, field)`` to an ordered chain."""

    chains: Mapping[tuple[Platform, str], tuple[LookupPath, ...]] = field(
        default_factory=dict
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "chains", MappingProxyType(dict(self.chains)))

    def chain(self, platform: Platform, field_name: str) -> tuple[LookupPath, ...]:
        """Return the chain for *platform*/*field_name*; empty when undefined."""
        return self.chains.get((Platform(platform), field_name), ())

    def with_chain(
        self, platform: Platform, field_name: str, *exprs: str
    ) -> RuleTable:
        """Return a copy with the chain for *platform*/*field_name* replaced."""
        updated = dict(self.chains)
        updated[(Platform(platform), field_name)] = paths(*exprs)
        return RuleTable(updated)

    def __iter__(self) -> Iterator[tuple[Platform, str]]:
        return iter(self.chains)

    def __len__(self) -> int:
        return len(self.chains)


def default_rules() -> RuleTable:
    """Build the default rule table covering every platform and field."""
    chains: dict[tuple[Platform, str], tuple[LookupPath, ...]] = {}
    for platform in Platform:
        chains[(platform, TEXT)] = paths(*_TEXT_CHAINS[platform])
        chains[(platform, HASHTAGS)] = paths(*_HASHTAG_CHAINS[platform])
        for name, exprs in _SHARED_CHAINS.items():
            chains[(platform, name)] = paths(*exprs)
    chains[(Platform.TWITTER, THREAD)] = paths(*_THREAD_CHAIN)
    return RuleTable(chains)


DEFAULT_RULES: RuleTable = default_rules()
