"""Platform field extraction: unwrapped payload -> ``GeneratedContentRecord``.

Every field is resolved by walking its chain from ``hookline.rules`` with the
generic resolver in ``hookline.paths``. Absence of ready-to-post text is an
expected transient state and yields ``Sentinel.GENERATING``; it never raises.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
import math
import re
from typing import Any

from pydantic import ValidationError

from hookline import rules as r
from hookline.envelope import unwrap
from hookline.errors import MissingDataError
from hookline.paths import MISSING, first_match, require
from hookline.records import GeneratedContentRecord, Platform, Sentinel, VisualStrategy

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 5
PLACEHOLDER_MARKERS: tuple[str, ...] = ("content generating",)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_TOKEN_STRIP = ",;"


def is_usable_text(value: Any) -> Any:
    """Return stripped text when it is real content, else ``MISSING``.

    Real content is a string longer than ``MIN_TEXT_LENGTH`` characters that
    is not an upstream placeholder such as "Content generating...".
    """
    if not isinstance(value, str):
        return MISSING
    text = value.strip()
    if len(text) <= MIN_TEXT_LENGTH:
        return MISSING
    lowered = text.lower()
    if any(marker in lowered for marker in PLACEHOLDER_MARKERS):
        return MISSING
    return text


def _split_tag_string(text: str) -> list[str]:
    # "##n8n##AutomationTips" is sent without separators by some workflows.
    if "##" in text and " ##" not in text:
        return [f"#{part.strip()}" for part in text.split("##") if part.strip()]
    return text.split()


def _iter_tokens(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        yield from _split_tag_string(value)
    elif isinstance(value, list | tuple):
        for item in value:
            if isinstance(item, str):
                yield from _split_tag_string(item)


def normalize_hashtags(
    value: Any, explicit: Iterable[str] = ()
) -> tuple[str, ...]:
    """Split, de-duplicate and filter tag tokens.

    Tokens are kept when they look like tags (``#`` plus at least one
    character) or when they appear in *explicit* brand/industry tokens.
    Order of first appearance is preserved.
    """
    allowed = {t.strip() for t in explicit if isinstance(t, str) and t.strip()}
    seen: set[str] = set()
    out: list[str] = []
    for raw in _iter_tokens(value):
        token = raw.strip().strip(_TOKEN_STRIP)
        if not token or token in seen:
            continue
        if (token.startswith("#") and len(token) > 1) or token in allowed:
            seen.add(token)
            out.append(token)
    return tuple(out)


def _explicit_tokens(
    payload: Mapping[str, Any], platform: Platform, table: r.RuleTable
) -> list[str]:
    tokens: list[str] = []
    for path in table.chain(platform, r.EXPLICIT_TAGS):
        value = path.resolve(payload)
        if isinstance(value, str):
            tokens.append(value)
        elif isinstance(value, list | tuple):
            tokens.extend(v for v in value if isinstance(v, str))
    return tokens


def _coerce_score(value: Any) -> Any:
    if isinstance(value, bool):
        return MISSING
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if not match:
            return MISSING
        number = float(match.group(0))
    else:
        return MISSING
    return MISSING if math.isnan(number) else number


def _coerce_time(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or MISSING
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return MISSING


def _coerce_label(value: Any) -> Any:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return MISSING


def _coerce_visual(value: Any) -> Any:
    if not isinstance(value, Mapping):
        return MISSING
    try:
        strategy = VisualStrategy.model_validate(dict(value))
    except ValidationError as e:
        logger.debug("Ignoring malformed visual strategy: %s", e)
        return MISSING
    return MISSING if strategy.is_empty() else strategy


def _coerce_thread(value: Any) -> Any:
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else MISSING
    if isinstance(value, list | tuple):
        tweets = tuple(t.strip() for t in value if isinstance(t, str) and t.strip())
        return tweets or MISSING
    return MISSING


def extract(
    payload: Any,
    platform: Platform | str,
    *,
    rules: r.RuleTable | None = None,
) -> GeneratedContentRecord:
    """Build a canonical content record from a webhook payload.

    *payload* is normally the output of ``unwrap()``; wrapped shapes are
    unwrapped here as well, so wrapped and flat inputs produce equal records.

    Args:
        payload: Unwrapped (or wrapped) webhook payload.
        platform: Target platform; selects the rule chains.
        rules: Alternative rule table, defaults to ``DEFAULT_RULES``.

    Returns:
        A record whose ``ready_to_post_text`` is real content or
        ``Sentinel.GENERATING``.
    """
    table = rules or r.DEFAULT_RULES
    platform = Platform(platform)
    data = unwrap(payload)

    ready: str | Sentinel
    try:
        text_res = require(
            data, table.chain(platform, r.TEXT), is_usable_text, field_name=r.TEXT
        )
    except MissingDataError as e:
        logger.debug(
            "%s text unavailable after %d paths; content still generating",
            platform.value,
            len(e.attempted),
        )
        ready = Sentinel.GENERATING
        trace = list(e.attempted)
    else:
        logger.debug("%s text matched %s", platform.value, text_res.matched)
        ready = text_res.value
        trace = list(text_res.trace())

    explicit = _explicit_tokens(data, platform, table)
    tag_res = first_match(
        data,
        table.chain(platform, r.HASHTAGS),
        lambda v: normalize_hashtags(v, explicit) or MISSING,
    )

    optional = {
        r.ENGAGEMENT: first_match(data, table.chain(platform, r.ENGAGEMENT), _coerce_score),
        r.OPTIMAL_TIME: first_match(data, table.chain(platform, r.OPTIMAL_TIME), _coerce_time),
        r.VISUAL: first_match(data, table.chain(platform, r.VISUAL), _coerce_visual),
        r.TITLE: first_match(data, table.chain(platform, r.TITLE), _coerce_label),
        r.THREAD: first_match(data, table.chain(platform, r.THREAD), _coerce_thread),
    }
    for name, res in ((r.HASHTAGS, tag_res), *optional.items()):
        if res.found:
            trace.append(f"{name}<-{res.matched}")

    def _value(name: str) -> Any:
        res = optional[name]
        return res.value if res.found else None

    return GeneratedContentRecord(
        platform=platform,
        ready_to_post_text=ready,
        hashtags=tag_res.value if tag_res.found else (),
        engagement_score=_value(r.ENGAGEMENT),
        optimal_time=_value(r.OPTIMAL_TIME),
        visual_strategy=_value(r.VISUAL),
        extraction_trace=tuple(trace),
        raw_payload=data,
        title=_value(r.TITLE) or f"Generated {platform.display_name} Post",
        thread=_value(r.THREAD) or (),
    )
