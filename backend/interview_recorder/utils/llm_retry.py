"""
Scoring Call Resilience

Gemini calls made while grading answers go through here: provider errors are
mapped onto a small set of retryable types and retried by tenacity.
"""

import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from interview_recorder.core.errors import ScoringError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCORING_CALL_ATTEMPTS = 3
SCORING_BACKOFF_MIN_SECONDS = 2
SCORING_BACKOFF_MAX_SECONDS = 10


class LLMRateLimitError(ScoringError):
    """Gemini quota exhausted (HTTP 429 / RESOURCE_EXHAUSTED)"""
    pass


class LLMTimeoutError(ScoringError):
    """Scoring call exceeded its deadline"""
    pass


class LLMAPIError(ScoringError):
    """Any other provider failure"""
    pass


RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    LLMRateLimitError,
    LLMTimeoutError,
    LLMAPIError,
    ConnectionError,
)

# Checked in order; first match wins
_ERROR_MARKERS = (
    (("429", "rate limit", "resource exhausted", "quota"), LLMRateLimitError, "rate limited"),
    (("timeout", "timed out", "deadline"), LLMTimeoutError, "timed out"),
    (("connection", "network", "unavailable", "503"), ConnectionError, "unreachable"),
)


def classify_llm_error(error: Exception, func_name: str = "llm_call") -> Exception:
    """
    Translate a provider exception into one of the retryable types.

    Returns:
        LLMRateLimitError, LLMTimeoutError, ConnectionError or LLMAPIError
    """
    text = str(error).lower()
    for markers, error_type, label in _ERROR_MARKERS:
        if any(marker in text for marker in markers):
            logger.warning(f"Scoring call {func_name} {label}: {error}")
            return error_type(f"{func_name} {label}: {error}")
    logger.error(f"Scoring call {func_name} failed: {error}")
    return LLMAPIError(f"{func_name} failed: {error}")


def async_retry_llm_call(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """
    Retry an async scoring call on classified provider errors.

    Example:
        @async_retry_llm_call
        async def evaluate(messages):
            return await structured_llm.ainvoke(messages)
    """
    @retry(
        stop=stop_after_attempt(SCORING_CALL_ATTEMPTS),
        wait=wait_exponential(min=SCORING_BACKOFF_MIN_SECONDS, max=SCORING_BACKOFF_MAX_SECONDS),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except RETRYABLE_ERRORS:
            raise
        except Exception as e:
            raise classify_llm_error(e, func.__name__) from e

    return wrapper


async def call_llm_with_timeout(
    llm_call: Callable[..., Awaitable[Any]],
    timeout_seconds: float,
    *args,
    **kwargs
) -> Any:
    """
    Await a scoring call, converting a deadline overrun into LLMTimeoutError.
    """
    try:
        return await asyncio.wait_for(llm_call(*args, **kwargs), timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise LLMTimeoutError(f"Scoring call exceeded {timeout_seconds}s") from e
