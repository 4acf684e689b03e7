"""Request-scoped generation tokens.

Each user action that issues a webhook call takes a fresh token from a
``RequestSequencer``; issuing a token invalidates every older one. A response
is applied only if its token is still current when it arrives, so a slow
earlier response can never overwrite a newer result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import logging
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, order=True)
class RequestToken:
    generation: int
    label: str = field(default="", compare=False)


@dataclass
class RequestSequencer:
    """Issues monotonically increasing tokens and tracks the current one.

    ``cancel()`` invalidates every outstanding token and cancels the task
    registered through ``run()``, if any.
    """

    _generation: int = 0
    _current: RequestToken | None = None
    _task: asyncio.Task[Any] | None = field(default=None, repr=False)

    def begin(self, label: str = "") -> RequestToken:
        """Start a new request; every previously issued token becomes stale."""
        self._generation += 1
        self._current = RequestToken(self._generation, label)
        return self._current

    def is_current(self, token: RequestToken) -> bool:
        return self._current is not None and token == self._current

    @property
    def current(self) -> RequestToken | None:
        return self._current

    def commit(self, token: RequestToken, apply: Callable[[], T]) -> T | None:
        """Call *apply* only if *token* is still current.

        Returns:
            ``apply()``'s result, or ``None`` when the response is stale.
        """
        if not self.is_current(token):
            logger.debug(
                "Discarding stale response for generation %d (current %s)",
                token.generation,
                self._current.generation if self._current else None,
            )
            return None
        return apply()

    async def run(
        self,
        token: RequestToken,
        awaitable: Awaitable[T],
        apply: Callable[[T], Any] | None = None,
    ) -> T | None:
        """Await *awaitable* and return its result only if *token* is current.

        The awaitable runs as a task that ``cancel()`` can cancel. When *apply*
        is given it is called with the result for a current token.
        """
        task = asyncio.ensure_future(awaitable)
        self._task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if task.cancelled() and not self.is_current(token):
                logger.debug("Request generation %d cancelled", token.generation)
                return None
            raise
        finally:
            if self._task is task:
                self._task = None
        if apply is None:
            return result if self.is_current(token) else None
        return self.commit(token, lambda: apply(result))

    def cancel(self) -> bool:
        """Invalidate outstanding tokens; cancel the in-flight task if any.

        Returns:
            True when an in-flight task was cancelled.
        """
        self._generation += 1
        self._current = None
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            return True
        return False
