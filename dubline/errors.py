"""
dubline/errors.py
==================
Error Taxonomy & Classifier — Dubline

Responsibility:
    - Define the closed error taxonomy surfaced to users and job records
    - Classify any provider / media / persistence failure into that taxonomy
    - Carry a retryability flag that drives provider fallback and manual retry
    - Define the exception types raised at the adapter and pipeline boundaries

Classification order (first match wins):
    0. Typed media errors    → FILE_NOT_FOUND / UNSUPPORTED_FORMAT, by type only
    1. DATABASE_CONSTRAINT   → retryable
    2. API_QUOTA_EXCEEDED    → retryable (triggers provider fallback)
    3. UNSUPPORTED_FORMAT    → NOT retryable (user must re-encode)
    4. FILE_NOT_FOUND        → NOT retryable
    5. NETWORK_ERROR         → retryable
    6. UNKNOWN_ERROR         → retryable

This module does NOT:
    - Retry anything (see dubline.retry)
    - Call providers or touch persistence
    - Log on behalf of callers
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------


class ErrorCode(str, Enum):
    """Closed set of failure codes attached to failed jobs."""

    DATABASE_CONSTRAINT = "DATABASE_CONSTRAINT"
    API_QUOTA_EXCEEDED = "API_QUOTA_EXCEEDED"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    # Pipeline-specific
    NOT_CONFIRMED = "NOT_CONFIRMED"
    ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"
    JOB_TIMEOUT = "JOB_TIMEOUT"


@dataclass(frozen=True)
class ErrorClassification:
    """A classified failure, safe to show to the end user."""

    code: ErrorCode
    message: str
    retryable: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ProviderError(Exception):
    """Raised by a provider adapter when a provider call fails."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        body: Any = None,
    ):
        self.provider = provider
        self.message = message
        self.status_code = status_code
        self.body = body
        if status_code is not None:
            text = f"{provider}: {message} (HTTP {status_code})"
        else:
            text = f"{provider}: {message}"
        super().__init__(text)


class PipelineError(Exception):
    """Raised when a pipeline stage fails with an already-known classification."""

    def __init__(self, classification: ErrorClassification):
        self.classification = classification
        super().__init__(classification.message)


class NotConfirmedError(PipelineError):
    """Raised when translation is requested before the source is confirmed."""

    def __init__(self, video_id: int):
        self.video_id = video_id
        super().__init__(
            ErrorClassification(
                code=ErrorCode.NOT_CONFIRMED,
                message=(
                    "Bengali transcription not confirmed. "
                    "Please confirm the Bengali text first."
                ),
                retryable=False,
            )
        )


class AllProvidersFailedError(PipelineError):
    """Raised when every provider in a fallback chain failed."""

    def __init__(
        self,
        classification: ErrorClassification,
        failures: list[tuple[str, ErrorClassification]],
    ):
        self.failures = failures
        super().__init__(classification)


class MediaNotFoundError(FileNotFoundError):
    """Raised when the source media file does not exist."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class UnsupportedMediaError(Exception):
    """Raised when the source media cannot be decoded (unsupported format/codec)."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.DATABASE_CONSTRAINT: (
        "A database constraint rejected the write. The operation can be retried."
    ),
    ErrorCode.API_QUOTA_EXCEEDED: (
        "API quota exceeded or rate limited. Please check your provider "
        "billing or try again later."
    ),
    ErrorCode.UNSUPPORTED_FORMAT: (
        "The media format is not supported. Please re-encode the video "
        "(for example H.264/AAC MP4) and upload it again."
    ),
    ErrorCode.FILE_NOT_FOUND: (
        "The source media file could not be found. Please upload the video again."
    ),
    ErrorCode.NETWORK_ERROR: (
        "A network error occurred while contacting the provider. Please retry."
    ),
}

_RETRYABLE: dict[ErrorCode, bool] = {
    ErrorCode.DATABASE_CONSTRAINT: True,
    ErrorCode.API_QUOTA_EXCEEDED: True,
    ErrorCode.UNSUPPORTED_FORMAT: False,
    ErrorCode.FILE_NOT_FOUND: False,
    ErrorCode.NETWORK_ERROR: True,
    ErrorCode.UNKNOWN_ERROR: True,
}

_UNKNOWN_DETAIL_LIMIT = 200


# ---------------------------------------------------------------------------
# Matchers, in priority order
# ---------------------------------------------------------------------------

_DATABASE_PATTERN = re.compile(
    r"not[- ]null|violates .*constraint|unique constraint|integrityerror"
    r"|constraint ?violation|constraint failed|duplicate key",
    re.IGNORECASE,
)

_QUOTA_PATTERN = re.compile(
    r"\b429\b|quota|rate[ _-]?limit|too many requests|resource[ _]exhausted",
    re.IGNORECASE,
)

_FORMAT_PATTERN = re.compile(
    r"unsupported (?:file |media |audio |video )?(?:format|type)|invalid (?:file |audio )?format"
    r"|codec|could ?n[o']?t decode|decod(?:e|ing) (?:error|failed)"
    r"|invalid data found",
    re.IGNORECASE,
)

_FILE_PATTERN = re.compile(
    r"no such file|enoent|file not found|(?:video|audio|media|source) (?:file )?not found"
    r"|does not exist",
    re.IGNORECASE,
)

_NETWORK_PATTERN = re.compile(
    r"network|connection|timed? ?out|timeout|econnreset|econnrefused"
    r"|name resolution|temporarily unavailable|\b50[234]\b",
    re.IGNORECASE,
)

_NETWORK_TYPE_NAMES = {
    "ConnectionError",
    "Timeout",
    "ReadTimeout",
    "ConnectTimeout",
    "APIConnectionError",
    "APITimeoutError",
}


def _haystack(error: BaseException | str) -> str:
    """Flatten an error into one searchable string (type, status, message)."""
    if isinstance(error, str):
        return error

    parts = [type(error).__name__, str(error)]
    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if value is not None:
            parts.append(str(value))
    cause = error.__cause__
    if cause is not None:
        parts.append(type(cause).__name__)
        parts.append(str(cause))
    return " | ".join(parts)


def _make(code: ErrorCode, detail: str = "") -> ErrorClassification:
    if code is ErrorCode.UNKNOWN_ERROR:
        detail = detail.strip() or "no details available"
        message = f"Processing failed: {detail[:_UNKNOWN_DETAIL_LIMIT]}"
    else:
        message = _MESSAGES[code]
    return ErrorClassification(code=code, message=message, retryable=_RETRYABLE[code])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def classify(error: BaseException | str) -> ErrorClassification:
    """
    Map any failure into the closed error taxonomy.

    Deterministic: the same error (same type, status and message) always
    yields the same classification.

    Args:
        error: An exception, or a raw error message string.

    Returns:
        ErrorClassification with code, user-facing message and retryable flag.
    """
    if isinstance(error, PipelineError):
        return error.classification

    # Typed boundary errors carry user file names; never match text on them.
    if isinstance(error, UnsupportedMediaError):
        return _make(ErrorCode.UNSUPPORTED_FORMAT)
    if isinstance(error, FileNotFoundError):
        return _make(ErrorCode.FILE_NOT_FOUND)

    text = _haystack(error)

    if _DATABASE_PATTERN.search(text):
        return _make(ErrorCode.DATABASE_CONSTRAINT)

    status_code = getattr(error, "status_code", None)
    if status_code == 429 or type(error).__name__ == "RateLimitError" or _QUOTA_PATTERN.search(text):
        return _make(ErrorCode.API_QUOTA_EXCEEDED)

    if _FORMAT_PATTERN.search(text):
        return _make(ErrorCode.UNSUPPORTED_FORMAT)

    if _FILE_PATTERN.search(text):
        return _make(ErrorCode.FILE_NOT_FOUND)

    if (
        isinstance(error, (ConnectionError, TimeoutError))
        or type(error).__name__ in _NETWORK_TYPE_NAMES
        or _NETWORK_PATTERN.search(text)
    ):
        return _make(ErrorCode.NETWORK_ERROR)

    return _make(ErrorCode.UNKNOWN_ERROR, str(error))
