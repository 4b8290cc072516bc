"""Retry-then-fallback wrapper for arbitrary async operations."""
from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional, TypeVar

from ..models.errors import ErrorKind, ErrorRecord
from ..normalizer import ErrorNormalizer
from .collaborators import ClipboardWriter, DomQuery
from .strategies import looser_selectors

logger = logging.getLogger(__name__)

AsyncF = TypeVar("AsyncF", bound=Callable[..., Awaitable[Any]])

MISSING: Any = object()

FORMATTING_PLACEHOLDER = "Content unavailable due to formatting error"


@dataclass
class FallbackStrategy:
    """Substitute behaviour used once an operation has exhausted its retries.

    ``handler`` receives the normalized record, the original function and the
    original call arguments. Raising from it means "not applicable after all".
    """

    name: str
    priority: int
    condition: Callable[[ErrorRecord], bool]
    handler: Callable[..., Awaitable[Any]]


class FallbackRegistry:
    def __init__(self, strategies: Iterable[FallbackStrategy] = ()) -> None:
        self._strategies: List[FallbackStrategy] = []
        for strategy in strategies:
            self.add(strategy)

    def add(self, strategy: FallbackStrategy) -> None:
        self._strategies.append(strategy)
        self._strategies = sorted(self._strategies, key=lambda s: -s.priority)

    def __iter__(self):
        return iter(list(self._strategies))

    def __len__(self) -> int:
        return len(self._strategies)

    async def run(self, record: ErrorRecord, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Invoke matching strategies in priority order until one returns.

        Returns:
            The first strategy result, or ``MISSING`` if none applied
        """
        for strategy in self._strategies:
            if not strategy.condition(record):
                continue
            logger.info(f"Using {strategy.name} for {record.kind.value} error")
            try:
                return await strategy.handler(record, fn, *args, **kwargs)
            except Exception as e:
                logger.warning(f"Fallback strategy {strategy.name} failed: {e}")
        return MISSING


def clipboard_fallback(writer: ClipboardWriter) -> FallbackStrategy:
    """Copy the first string argument through the legacy clipboard writer."""

    async def handler(record: ErrorRecord, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if args and isinstance(args[0], str):
            await writer.write_text(args[0])
            return {"success": True, "method": "legacy"}
        raise ErrorRecord("All clipboard methods failed", ErrorKind.CLIPBOARD)

    return FallbackStrategy("clipboard-fallback", 10, lambda r: r.kind is ErrorKind.CLIPBOARD, handler)


def dom_fallback(dom: DomQuery) -> FallbackStrategy:
    """Retry the query with looser variants of the first argument's selector."""

    async def handler(record: ErrorRecord, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if args and isinstance(args[0], str):
            for selector in looser_selectors(args[0]):
                try:
                    elements = dom.query_all(selector)
                except Exception as e:
                    logger.debug(f"Fallback selector {selector} failed: {e}")
                    continue
                if elements:
                    return elements
        raise ErrorRecord("All DOM query methods failed", ErrorKind.DOM)

    return FallbackStrategy("dom-fallback", 8, lambda r: r.kind is ErrorKind.DOM, handler)


def formatting_fallback() -> FallbackStrategy:
    """Return the raw content of the first argument instead of the formatted one."""

    async def handler(record: ErrorRecord, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if args:
            first = args[0]
            content = first.get("content") if isinstance(first, dict) else getattr(first, "content", None)
            if content:
                return content
        return FORMATTING_PLACEHOLDER

    return FallbackStrategy("formatting-fallback", 5, lambda r: r.kind is ErrorKind.FORMATTING, handler)


def with_fallback(
    fn: AsyncF,
    registry: FallbackRegistry,
    normalizer: ErrorNormalizer,
    *,
    retries: int = 2,
    retry_delay: float = 1.0,
    fallback_value: Any = MISSING,
    name: Optional[str] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> AsyncF:
    """Wrap an async callable with linear-backoff retries and fallback strategies.

    Args:
        fn: Operation to protect (a coroutine function or a function returning an awaitable)
        registry: Fallback strategies consulted after the final failure
        normalizer: Converts the final exception into an ErrorRecord
        retries: Extra attempts after the first one
        retry_delay: Seconds slept before retry ``n`` is ``retry_delay * n``
        fallback_value: Returned when no fallback strategy succeeds
        name: Name used in log messages (defaults to the function name)
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        Async wrapper with the same signature as ``fn``

    Raises:
        ValueError: If retries is negative
        ErrorRecord: From the wrapper, when every attempt and fallback failed and
            no fallback_value was given
    """
    if retries < 0:
        raise ValueError(f"retries must be >= 0, got {retries}")
    func_name = name or getattr(fn, "__name__", "operation")
    max_attempts = retries + 1

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        for attempt in range(max_attempts):
            try:
                result = fn(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if attempt < max_attempts - 1:
                    delay = retry_delay * (attempt + 1)
                    logger.warning(
                        f"Attempt {attempt + 1}/{max_attempts} failed for {func_name}: {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    if delay > 0:
                        await sleep(delay)
                    continue

                record = normalizer.normalize(e, context={"operation": func_name})
                logger.error(f"All {max_attempts} attempts failed for {func_name}: {e}")
                outcome = await registry.run(record, fn, *args, **kwargs)
                if outcome is not MISSING:
                    return outcome
                if fallback_value is not MISSING:
                    return fallback_value
                if record is e:
                    raise
                raise record from e

    return wrapper  # type: ignore[return-value]
