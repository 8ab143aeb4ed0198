"""
Call policy applied to every collaborator call.

A CallPolicy bundles what used to be scattered per call site:
- an explicit timeout for each attempt
- a small number of retries for a chosen set of exception types
- an optional fallback value when the call ultimately fails

Usage:
    policy = CallPolicy(timeout=30.0, retries=2, retry_on=(ValidationError,))

    # Raise on failure (timeouts surface as TimeoutError)
    result = await policy.call(lambda: llm.ainvoke(prompt))

    # Never raise: get a CallOutcome with either the value or the fallback
    outcome = await policy.call_or_fallback(lambda: llm.ainvoke(prompt), fallback=None)
    if not outcome.ok:
        ...
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class CallOutcome(Generic[T]):
    """Result of a policy-wrapped call that never raises."""

    value: T
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CallPolicy:
    """Timeout + retry + fallback for one kind of collaborator call."""

    timeout: float
    retries: int = 0
    backoff: float = 0.5
    retry_on: tuple[type[BaseException], ...] = field(default=())

    async def call(self, factory: Callable[[], Awaitable[T]]) -> T:
        """
        Run the call produced by factory under this policy.

        factory is invoked once per attempt, so it must create a fresh
        awaitable each time (a lambda or a bound coroutine function).

        Raises:
            TimeoutError: If the last attempt exceeded the timeout
            Exception: Whatever the last attempt raised
        """
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(factory(), timeout=self.timeout)
            except self.retry_on as e:
                if attempt >= self.retries:
                    raise
                attempt += 1
                logger.warning(
                    "Retrying call",
                    attempt=attempt,
                    error_type=type(e).__name__,
                    error=str(e)[:100],
                )
                await asyncio.sleep(self.backoff * attempt)

    async def call_or_fallback(
        self,
        factory: Callable[[], Awaitable[T]],
        fallback: T,
    ) -> CallOutcome[T]:
        """Like call(), but failures turn into a CallOutcome carrying the fallback."""
        try:
            return CallOutcome(value=await self.call(factory))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return CallOutcome(value=fallback, error=e)
