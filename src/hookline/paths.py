"""Path expressions and the generic resolver behind every fallback chain.

A path expression is a dotted list of keys with optional ``[n]`` index
suffixes, e.g. ``quick_publish.thread_ready[0]`` or
``alternative_versions[0].content``. Paths are parsed once, at table
definition time, and evaluated against plain JSON values.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
import re
from typing import Any, Final

from hookline.errors import MissingDataError


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing()

_SEGMENT_RE = re.compile(r"([^.\[\]]+)|\[(-?\d+)\]")


def parse_path(expr: str) -> tuple[str | int, ...]:
    """Split a path expression into key and index segments.

    Raises:
        ValueError: If *expr* is empty or malformed.
    """
    if not expr or not expr.strip():
        raise ValueError("path expression cannot be empty")
    segments: list[str | int] = []
    pos = 0
    for match in _SEGMENT_RE.finditer(expr):
        gap = expr[pos : match.start()]
        if gap not in ("", "."):
            raise ValueError(f"malformed path expression: {expr!r}")
        key, index = match.groups()
        segments.append(int(index) if index is not None else key)
        pos = match.end()
    if pos != len(expr):
        raise ValueError(f"malformed path expression: {expr!r}")
    return tuple(segments)


@dataclass(frozen=True)
class LookupPath:
    """One entry of a fallback chain.

    Attributes:
        expr: Path expression, also used as the label in extraction traces.
        segments: Parsed form of ``expr``.
    """

    expr: str
    segments: tuple[str | int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", parse_path(self.expr))

    def __str__(self) -> str:
        return self.expr

    def resolve(self, payload: Any) -> Any:
        """Return the value at this path, or ``MISSING``."""
        return resolve(payload, self.segments)


def paths(*exprs: str) -> tuple[LookupPath, ...]:
    """Build an ordered fallback chain from path expressions."""
    return tuple(LookupPath(e) for e in exprs)


def resolve(payload: Any, segments: Sequence[str | int]) -> Any:
    """Walk *segments* through nested mappings and sequences.

    Missing keys, out-of-range indexes and type mismatches all yield
    ``MISSING``; ``None`` values are treated as missing as well.
    """
    cur = payload
    for seg in segments:
        if isinstance(seg, int):
            if not isinstance(cur, list | tuple):
                return MISSING
            try:
                cur = cur[seg]
            except IndexError:
                return MISSING
        else:
            if not isinstance(cur, Mapping) or seg not in cur:
                return MISSING
            cur = cur[seg]
        if cur is None:
            return MISSING
    return cur


@dataclass(frozen=True)
class Resolution:
    """Result of walking a fallback chain.

    Attributes:
        value: Accepted value, or ``MISSING`` when no path matched.
        matched: The winning path, if any.
        attempted: Every path evaluated, in order, including the winner.
    """

    value: Any
    matched: LookupPath | None
    attempted: tuple[LookupPath, ...]

    @property
    def found(self) -> bool:
        return self.matched is not None

    def trace(self) -> tuple[str, ...]:
        """Render attempted paths for an extraction trace."""
        entries = [
            p.expr for p in self.attempted if self.matched is None or p != self.matched
        ]
        if self.matched is not None:
            entries.append(f"matched:{self.matched.expr}")
        return tuple(entries)


def first_match(
    payload: Any,
    chain: Sequence[LookupPath],
    accept: Callable[[Any], Any] = lambda v: v,
) -> Resolution:
    """Evaluate *chain* in order; return the first value *accept* keeps.

    *accept* maps a raw value to the value to keep, or ``MISSING``/``None``
    to reject it and continue with the next path.
    """
    attempted: list[LookupPath] = []
    for path in chain:
        attempted.append(path)
        raw = path.resolve(payload)
        if raw is MISSING:
            continue
        kept = accept(raw)
        if kept is MISSING or kept is None:
            continue
        return Resolution(value=kept, matched=path, attempted=tuple(attempted))
    return Resolution(value=MISSING, matched=None, attempted=tuple(attempted))


def require(
    payload: Any,
    chain: Sequence[LookupPath],
    accept: Callable[[Any], Any] = lambda v: v,
    *,
    field_name: str = "value",
) -> Resolution:
    """Like ``first_match`` but raise when nothing matched.

    Raises:
        MissingDataError: If no path in *chain* produced an accepted value.
    """
    resolution = first_match(payload, chain, accept)
    if not resolution.found:
        raise MissingDataError(
            f"No fallback path produced {field_name}",
            field=field_name,
            attempted=[p.expr for p in resolution.attempted],
        )
    return resolution
