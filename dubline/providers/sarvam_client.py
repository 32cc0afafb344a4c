"""
dubline/providers/sarvam_client.py
===================================
Sarvam AI STT Client — Dubline

Responsibility:
    - Transcribe Bengali audio using Sarvam AI API (saarika model, bn-IN)
    - Return time-aligned text segments in the strict provider types

This module does NOT:
    - Retry (see dubline.retry) or fall back to other providers
    - Validate subtitle standards or compute confidence
"""

import io
import logging
import os

import requests
from dotenv import load_dotenv

from dubline import config
from dubline.errors import ProviderError
from dubline.providers.base import (
    RecognitionResult,
    RecognizedSegment,
    group_words_into_segments,
    require_audio,
)

load_dotenv()

logger = logging.getLogger("dubline.providers.sarvam_client")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

PROVIDER_NAME = "sarvam-stt"

SARVAM_API_BASE = "https://api.sarvam.ai"
SARVAM_STT_ENDPOINT = f"{SARVAM_API_BASE}/speech-to-text"
SARVAM_LANGUAGE_CODE = "bn-IN"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def recognize(audio_bytes: bytes) -> RecognitionResult:
    """
    Transcribe Bengali audio using the Sarvam AI STT API.

    Args:
        audio_bytes: Normalized audio (mono 16 kHz WAV bytes).

    Returns:
        RecognitionResult with word timestamps grouped into segments.

    Raises:
        ValueError:    If ``audio_bytes`` is empty.
        ProviderError: If the API key is missing or the request fails.
    """
    require_audio(audio_bytes)

    api_key = os.environ.get("SARVAM_API_KEY")
    if not api_key:
        raise ProviderError(PROVIDER_NAME, "SARVAM_API_KEY environment variable is not set.")

    headers = {
        "api-subscription-key": api_key,
    }

    files = {
        "file": ("audio.wav", io.BytesIO(audio_bytes), "audio/wav"),
    }

    data = {
        "language_code": SARVAM_LANGUAGE_CODE,
        "model": config.SARVAM_STT_MODEL,
        "with_timestamps": "true",
    }

    try:
        resp = requests.post(
            SARVAM_STT_ENDPOINT,
            headers=headers,
            files=files,
            data=data,
            timeout=config.HTTP_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise ProviderError(
            PROVIDER_NAME, f"Request failed: {type(exc).__name__}: {exc}"
        ) from exc

    if not resp.ok:
        raise ProviderError(
            PROVIDER_NAME,
            f"API error: {resp.text[:300]}",
            status_code=resp.status_code,
            body=resp.text,
        )

    result = parse_response(resp.json())
    logger.info("Sarvam returned %d segment(s).", len(result.segments))
    return result


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def parse_response(body: dict) -> RecognitionResult:
    """
    Parse Sarvam API response into a RecognitionResult.

    Handles both word-level timestamp shapes Sarvam returns (a list of word
    dicts, or parallel ``words`` / ``start_time_seconds`` /
    ``end_time_seconds`` arrays) and a plain transcript fallback with no
    segments.
    """
    transcript = (body.get("transcript") or "").strip()
    timestamps = body.get("timestamps") or {}
    words = _normalize_words(timestamps)

    segments = group_words_into_segments(words) if words else []
    return RecognitionResult(
        provider_name=PROVIDER_NAME,
        text=transcript or " ".join(s.text for s in segments),
        segments=segments,
    )


def _normalize_words(timestamps: dict) -> list[dict]:
    words = timestamps.get("words") or []
    if words and isinstance(words[0], dict):
        return words

    starts = timestamps.get("start_time_seconds") or []
    ends = timestamps.get("end_time_seconds") or []
    return [
        {"word": word, "start": float(start), "end": float(end)}
        for word, start, end in zip(words, starts, ends)
    ]
