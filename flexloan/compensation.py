"""All-or-nothing execution of multi-step external effects."""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from types import TracebackType

from .errors import EngineError, ExternalFailure

logger = logging.getLogger(__name__)

Undo = Callable[[], Awaitable[None]]


class Compensation:
    """Collects undo steps for applied effects and runs them on failure.

    Usage::

        async with Compensation("repay") as comp:
            await treasury.transfer(...)
            comp.push("refund fee", lambda: treasury.transfer(...))
            await handler.repay(...)

    On an exception the pushed steps run in reverse order and the error
    propagates; capability errors that are not ``EngineError`` surface as
    ``ExternalFailure``.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self._steps: list[tuple[str, Undo]] = []

    def push(self, description: str, undo: Undo) -> None:
        self._steps.append((description, undo))

    async def unwind(self) -> None:
        while self._steps:
            description, undo = self._steps.pop()
            try:
                await undo()
                logger.info("%s: compensated (%s)", self.operation, description)
            except Exception as e:
                logger.error(
                    "%s: compensation '%s' failed: %s",
                    self.operation, description, e,
                )

    async def __aenter__(self) -> Compensation:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None:
            self._steps.clear()
            return False
        logger.error("%s failed, rolling back: %s", self.operation, exc)
        await self.unwind()
        if isinstance(exc, Exception) and not isinstance(exc, EngineError):
            raise ExternalFailure(f"{self.operation}: {exc}") from exc
        return False
