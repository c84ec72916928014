"""Retry with exponential backoff and error classification for async calls."""
import asyncio
import errno
import logging
import random
import socket
from collections.abc import Awaitable, Callable, Iterable
from functools import wraps
from typing import Any, Optional, TypeVar

import aiohttp

from .exceptions import AuctionInvoiceError, ErrorKind
from .models import RetryOutcome

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY = 0.3

AUTH_STATUS_CODES = frozenset({401, 403})
RATE_LIMIT_STATUS_CODES = frozenset({429})
INVALID_INPUT_STATUS_CODES = frozenset({415})
UNAVAILABLE_STATUS_CODES = frozenset({503})

AUTH_CODES = frozenset({"UNAUTHENTICATED", "PERMISSION_DENIED"})
RATE_LIMIT_CODES = frozenset({"RESOURCE_EXHAUSTED"})
NETWORK_CODES = frozenset({"ECONNRESET", "ETIMEDOUT", "ECONNABORTED", "EAI_AGAIN", "ENOTFOUND", "ECONNREFUSED"})
UNAVAILABLE_CODES = frozenset({"UNAVAILABLE"})

AUTH_HINTS = ("unauthorized", "unauthenticated", "invalid api key", "api key not valid", "authentication", "invalid credentials")
RATE_LIMIT_HINTS = ("rate limit", "quota", "too many requests")
NETWORK_HINTS = ("timed out", "timeout", "connection reset", "connection aborted", "getaddrinfo", "name or service not known")
INVALID_INPUT_HINTS = ("unsupported file", "unsupported media", "unsupported image", "unsupported mime")
POLICY_HINTS = ("safety", "blocked", "content policy", "prohibited content")
UNAVAILABLE_HINTS = ("unavailable", "overloaded")

NETWORK_EXCEPTIONS = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    socket.gaierror,
    aiohttp.ClientConnectionError,
    aiohttp.ServerTimeoutError,
)


def _status_code(exc: BaseException) -> Optional[int]:
    """Find an HTTP status code on an exception or its response."""
    candidates = [
        getattr(exc, "status", None),
        getattr(exc, "status_code", None),
        getattr(exc, "code", None),
    ]
    response = getattr(exc, "response", None)
    if response is not None:
        candidates.append(getattr(response, "status", None))
        candidates.append(getattr(response, "status_code", None))

    for candidate in candidates:
        if isinstance(candidate, bool):
            continue
        if isinstance(candidate, int):
            return candidate
        if isinstance(candidate, str) and candidate.isdigit():
            return int(candidate)
    return None


def _code_strings(exc: BaseException) -> set[str]:
    codes = set()
    for attr in ("code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, str) and not value.isdigit():
            codes.add(value.upper())
    err_no = getattr(exc, "errno", None)
    if isinstance(err_no, int) and err_no in errno.errorcode:
        codes.add(errno.errorcode[err_no])
    return codes


def classify_error(exc: BaseException, transient_status_codes: Iterable[int] = ()) -> ErrorKind:
    """Classify a failure, checking status code, code string, then message text.

    Args:
        exc: The exception raised by the operation
        transient_status_codes: Extra HTTP status codes to treat as unavailable

    Returns:
        The first matching ``ErrorKind``, ``ErrorKind.UNKNOWN`` if none match
    """
    pinned = getattr(exc, "error_kind", None)
    if isinstance(exc, AuctionInvoiceError) and pinned is not None:
        return pinned

    status = _status_code(exc)
    codes = _code_strings(exc)
    message = str(exc).lower()
    extra_codes = frozenset(transient_status_codes)

    if status in AUTH_STATUS_CODES or codes & AUTH_CODES or any(h in message for h in AUTH_HINTS):
        return ErrorKind.AUTHENTICATION
    if status in RATE_LIMIT_STATUS_CODES or codes & RATE_LIMIT_CODES or any(h in message for h in RATE_LIMIT_HINTS):
        return ErrorKind.RATE_LIMIT
    if isinstance(exc, NETWORK_EXCEPTIONS) or codes & NETWORK_CODES or any(h in message for h in NETWORK_HINTS):
        return ErrorKind.NETWORK
    if status in INVALID_INPUT_STATUS_CODES or any(h in message for h in INVALID_INPUT_HINTS):
        return ErrorKind.INVALID_INPUT
    if any(h in message for h in POLICY_HINTS):
        return ErrorKind.POLICY_REJECTION
    if (
        status in UNAVAILABLE_STATUS_CODES
        or status in extra_codes
        or codes & UNAVAILABLE_CODES
        or any(h in message for h in UNAVAILABLE_HINTS)
    ):
        return ErrorKind.SERVICE_UNAVAILABLE
    return ErrorKind.UNKNOWN


def retry_after_seconds(exc: BaseException) -> Optional[float]:
    """Read a numeric ``Retry-After`` header from a failed call, if any."""
    header_sources = [getattr(exc, "headers", None)]
    response = getattr(exc, "response", None)
    if response is not None:
        header_sources.append(getattr(response, "headers", None))

    for headers in header_sources:
        if not headers:
            continue
        try:
            items = headers.items()
        except AttributeError:
            continue
        for name, value in items:
            if str(name).lower() != "retry-after":
                continue
            try:
                return max(0.0, float(str(value).strip()))
            except ValueError:
                return None
    return None


def backoff_delay(attempt_index: int, base_delay: float, retry_after: Optional[float] = None) -> float:
    """Exponential backoff with full jitter on top, floored by ``Retry-After``."""
    exponential = base_delay * (2 ** attempt_index)
    delay = exponential + random.uniform(0, exponential)
    if retry_after is not None:
        return max(delay, retry_after)
    return delay


def _attach_outcome(exc: BaseException, outcome: RetryOutcome, logger: logging.Logger) -> None:
    try:
        exc.attempts = outcome.attempts
        exc.error_kind = outcome.error_kind
        exc.retry_outcome = outcome
    except AttributeError:
        logger.debug(f"[RETRY] Could not attach diagnostics to {type(exc).__name__}")


async def invoke_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    transient_status_codes: Iterable[int] = (),
    operation_name: str | None = None,
    logger: logging.Logger | None = None
) -> T:
    """Execute an async operation, retrying transient failures with backoff.

    Attempts run strictly one after another. A terminal failure, or a
    transient one on the last attempt, re-raises the original exception with
    ``attempts``, ``error_kind`` and ``retry_outcome`` attached.

    Args:
        operation: Async function to execute
        max_attempts: Total attempts including the first (default: 5)
        base_delay: Base delay in seconds for exponential backoff (default: 0.3)
        transient_status_codes: Extra HTTP status codes treated as transient
        operation_name: Name for logging purposes (optional)
        logger: Logger instance to use (optional, defaults to module logger)

    Returns:
        Result of the first successful attempt
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    operation_desc = operation_name or "operation"
    extra_codes = tuple(transient_status_codes)
    delays: list[float] = []

    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as exc:
            kind = classify_error(exc, extra_codes)
            attempts_made = attempt + 1

            if kind.is_transient and attempts_made < max_attempts:
                delay = backoff_delay(attempt, base_delay, retry_after_seconds(exc))
                delays.append(delay)
                logger.warning(
                    f"[RETRY] {operation_desc} - Attempt {attempts_made}/{max_attempts} failed "
                    f"({kind.value}): {str(exc)[:100]}. Retrying in {delay:.2f}s..."
                )
                await asyncio.sleep(delay)
                continue

            if kind.is_transient:
                logger.error(
                    f"[RETRY] {operation_desc} - Exhausted retries ({max_attempts}): {str(exc)[:150]}"
                )
            else:
                logger.error(
                    f"[RETRY] {operation_desc} - Non-retryable {kind.value} error: {str(exc)[:150]}"
                )

            _attach_outcome(
                exc,
                RetryOutcome(
                    operation_name=operation_desc,
                    attempts=attempts_made,
                    last_error=f"{type(exc).__name__}: {exc}",
                    error_kind=kind,
                    transient=kind.is_transient,
                    delays=delays,
                ),
                logger,
            )
            raise

    # range(max_attempts) always returns or raises
    raise AssertionError("unreachable")


def with_retry(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    transient_status_codes: Iterable[int] = (),
    operation_name: str | None = None
):
    """Decorator to apply retry logic to async functions."""
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            async def operation():
                return await func(*args, **kwargs)

            return await invoke_with_retry(
                operation=operation,
                max_attempts=max_attempts,
                base_delay=base_delay,
                transient_status_codes=transient_status_codes,
                operation_name=operation_name or func.__name__
            )
        return wrapper
    return decorator


class ResilientInvoker:
    """Holds a retry policy and applies it to outbound calls."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        transient_status_codes: Iterable[int] = ()
    ):
        """Initialize the invoker.

        Args:
            max_attempts: Total attempts per operation, first try included
            base_delay: Base delay in seconds for exponential backoff
            transient_status_codes: Extra HTTP status codes treated as transient
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.transient_status_codes = tuple(transient_status_codes)
        self._logger = logging.getLogger(__name__)

    async def invoke(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str | None = None
    ) -> T:
        """Execute ``operation`` under this invoker's retry policy."""
        return await invoke_with_retry(
            operation=operation,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            transient_status_codes=self.transient_status_codes,
            operation_name=operation_name,
            logger=self._logger
        )

    def classify(self, exc: BaseException) -> ErrorKind:
        return classify_error(exc, self.transient_status_codes)

    @classmethod
    def from_settings(cls, settings: Any) -> "ResilientInvoker":
        """Create an invoker from ``Settings`` retry tuning."""
        return cls(**settings.retry_kwargs)
