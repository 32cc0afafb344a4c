"""
dubline/retry.py
=================
Provider Retry Utility — Dubline

Thin wrapper that re-invokes a provider call on transient network failures
with exponential back-off. Every other failure is re-raised immediately so
the caller (reconciler / batch engine) can classify it and fall back to the
next provider. Quota errors in particular are NOT retried here: burning
more quota on the same provider is exactly what fallback avoids.

Usage::

    from dubline.retry import call_with_retry

    result = call_with_retry(openai_client.recognize, audio_bytes, label="openai-whisper")

This module does NOT:
    - Create provider clients
    - Decide on provider fallback
"""

import logging
import time
from typing import Any, Callable

from dubline import config
from dubline.errors import ErrorCode, classify

logger = logging.getLogger("dubline.retry")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

BASE_DELAY: float = 1.0       # seconds, first back-off delay
MAX_DELAY: float = 30.0       # cap so we don't wait forever
BACKOFF_FACTOR: float = 2.0   # exponential multiplier


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def call_with_retry(
    func: Callable[..., Any],
    *args: Any,
    label: str = "provider",
    max_retries: int | None = None,
    **kwargs: Any,
) -> Any:
    """
    Call ``func(*args, **kwargs)`` retrying only on NETWORK_ERROR.

    Args:
        func:        The provider adapter function to call.
        label:       Provider name used in log lines.
        max_retries: Extra attempts after the first (defaults to
                     ``config.PROVIDER_MAX_RETRIES``).

    Returns:
        Whatever ``func`` returns.

    Raises:
        The original exception when it is not a network error, or the last
        exception once retries are exhausted.
    """
    retries = config.PROVIDER_MAX_RETRIES if max_retries is None else max(0, max_retries)
    last_exc: Exception | None = None
    delay = BASE_DELAY

    for attempt in range(retries + 1):
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            last_exc = exc

            if classify(exc).code is not ErrorCode.NETWORK_ERROR:
                raise

            if attempt < retries:
                logger.warning(
                    "%s call failed (attempt %d/%d): %s; retrying in %.1fs",
                    label,
                    attempt + 1,
                    retries + 1,
                    exc,
                    delay,
                )
                time.sleep(delay)
                delay = min(delay * BACKOFF_FACTOR, MAX_DELAY)
            else:
                logger.error(
                    "%s call failed after %d attempts: %s",
                    label,
                    retries + 1,
                    exc,
                )

    raise last_exc  # type: ignore[misc]
