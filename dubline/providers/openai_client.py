"""
dubline/providers/openai_client.py
===================================
OpenAI Client — Dubline

Responsibility:
    - Transcribe Bengali audio using the OpenAI Whisper API (openai-whisper)
    - Translate a batch prompt using OpenAI chat completions (openai-gpt)
    - Return results in the strict provider types

This module does NOT:
    - Retry (see dubline.retry) or fall back to other providers
    - Validate subtitle standards or compute confidence
"""

import io
import logging
import math
import os

from dotenv import load_dotenv
from openai import OpenAI

from dubline import config
from dubline.errors import ProviderError
from dubline.providers.base import (
    RecognitionResult,
    RecognizedSegment,
    get_field,
    require_audio,
    require_text,
)

load_dotenv()

logger = logging.getLogger("dubline.providers.openai_client")

STT_PROVIDER_NAME = "openai-whisper"
TRANSLATION_PROVIDER_NAME = "openai-gpt"

_TRANSLATION_SYSTEM_PROMPT = (
    "You are a professional subtitle translator. Follow the output format "
    "exactly and return nothing else."
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def recognize(audio_bytes: bytes) -> RecognitionResult:
    """
    Transcribe Bengali audio using OpenAI Whisper.

    Segment confidence is ``exp(avg_logprob)`` when Whisper reports it.

    Args:
        audio_bytes: Normalized audio (mono 16 kHz WAV bytes).

    Returns:
        RecognitionResult with segment-level timestamps.

    Raises:
        ValueError:    If ``audio_bytes`` is empty.
        ProviderError: If the API key is missing or the API call fails.
    """
    require_audio(audio_bytes)
    client = _client(STT_PROVIDER_NAME)

    try:
        audio_file = io.BytesIO(audio_bytes)
        audio_file.name = "audio.wav"

        response = client.audio.transcriptions.create(
            model=config.OPENAI_STT_MODEL,
            file=audio_file,
            language=config.SOURCE_LANGUAGE,
            response_format="verbose_json",
            timestamp_granularities=["segment"],
        )
    except Exception as exc:
        raise _wrap(STT_PROVIDER_NAME, "Whisper transcription failed", exc) from exc

    segments: list[RecognizedSegment] = []
    for seg in get_field(response, "segments", None) or []:
        text = (get_field(seg, "text", "") or "").strip()
        if not text:
            continue
        segments.append(
            RecognizedSegment(
                text=text,
                start_time=float(get_field(seg, "start", 0.0) or 0.0),
                end_time=float(get_field(seg, "end", 0.0) or 0.0),
                raw_confidence=_logprob_confidence(get_field(seg, "avg_logprob", None)),
            )
        )

    full_text = (get_field(response, "text", "") or "").strip()
    logger.info("Whisper returned %d segment(s).", len(segments))
    return RecognitionResult(
        provider_name=STT_PROVIDER_NAME,
        text=full_text or " ".join(s.text for s in segments),
        segments=segments,
        raw_confidence=_mean([s.raw_confidence for s in segments]),
    )


def translate(prompt: str, target_language: str) -> str:
    """
    Run a translation prompt through OpenAI chat completions.

    Args:
        prompt:          The full batch prompt (markers included).
        target_language: Target language code, used only for logging.

    Returns:
        Raw model output text.

    Raises:
        ValueError:    If ``prompt`` is empty.
        ProviderError: If the API key is missing or the API call fails.
    """
    require_text(prompt)
    client = _client(TRANSLATION_PROVIDER_NAME)

    try:
        response = client.chat.completions.create(
            model=config.OPENAI_TRANSLATION_MODEL,
            messages=[
                {"role": "system", "content": _TRANSLATION_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.3,
        )
    except Exception as exc:
        raise _wrap(TRANSLATION_PROVIDER_NAME, "Chat completion failed", exc) from exc

    content = response.choices[0].message.content if response.choices else None
    if not content or not content.strip():
        raise ProviderError(TRANSLATION_PROVIDER_NAME, "Empty translation response")

    logger.info("OpenAI translation to '%s' returned %d chars.", target_language, len(content))
    return content.strip()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _client(provider_name: str) -> OpenAI:
    api_key = os.environ.get("OPENAI_API_KEY")
    if not api_key:
        raise ProviderError(provider_name, "OPENAI_API_KEY environment variable is not set.")
    # Retries are owned by dubline.retry, not the SDK
    return OpenAI(api_key=api_key, max_retries=0, timeout=config.HTTP_TIMEOUT_SECONDS)


def _wrap(provider_name: str, message: str, exc: Exception) -> ProviderError:
    status_code = getattr(exc, "status_code", None)
    return ProviderError(
        provider_name,
        f"{message}: {type(exc).__name__}: {exc}",
        status_code=status_code,
        body=getattr(exc, "body", None),
    )


def _logprob_confidence(avg_logprob) -> float | None:
    if avg_logprob is None:
        return None
    try:
        return max(0.0, min(1.0, math.exp(float(avg_logprob))))
    except (TypeError, ValueError, OverflowError):
        return None


def _mean(values: list[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)
