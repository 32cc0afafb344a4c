"""
dubline/providers/gemini_client.py
===================================
Google Gemini Client — Dubline

Responsibility:
    - Transcribe Bengali audio with Gemini (gemini-2.5-pro), JSON output
    - Translate a batch prompt with Gemini, plain-text output
    - Identify the spoken language of an audio sample
    - Return results in the strict provider types

Gemini gives no token-level confidence; segments carry a fixed
estimate of 0.85.

This module does NOT:
    - Retry (see dubline.retry) or fall back to other providers
    - Validate subtitle standards or compute confidence
"""

import json
import logging
import os
import re
from typing import Any

from dotenv import load_dotenv
from google import genai
from google.genai import types

from dubline import config
from dubline.errors import ProviderError
from dubline.providers.base import (
    LanguageGuess,
    RecognitionResult,
    RecognizedSegment,
    get_field,
    require_audio,
    require_text,
)

load_dotenv()

logger = logging.getLogger("dubline.providers.gemini_client")

PROVIDER_NAME = "gemini-2.5-pro"
GEMINI_CONFIDENCE_ESTIMATE = 0.85

_TRANSCRIBE_PROMPT = """Please transcribe this Bengali audio accurately.
Return the transcription in the following JSON format:
{
  "text": "full transcription text",
  "segments": [
    {"text": "segment text", "start": start_time_in_seconds, "end": end_time_in_seconds}
  ]
}

Important:
- Transcribe in Bengali (বাংলা) language
- Be very accurate with the transcription
- Use natural pauses or sentence breaks to create segments
- If unable to segment, return the full text as a single segment"""

_DETECT_LANGUAGE_PROMPT = """Analyze this audio and identify the primary spoken language.
Supported languages: {supported}.

Respond with only JSON:
{{
  "language": "language_code",
  "confidence": 0.85,
  "languageName": "Language Name"
}}"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def recognize(audio_bytes: bytes) -> RecognitionResult:
    """
    Transcribe Bengali audio using Gemini.

    Args:
        audio_bytes: Normalized audio (mono 16 kHz WAV bytes).

    Returns:
        RecognitionResult parsed from Gemini's JSON response.

    Raises:
        ValueError:    If ``audio_bytes`` is empty.
        ProviderError: If the key is missing, the call fails, or the
                       response is not valid JSON.
    """
    require_audio(audio_bytes)
    client = _client()

    try:
        response = client.models.generate_content(
            model=config.GEMINI_MODEL,
            contents=[
                types.Part.from_bytes(data=audio_bytes, mime_type="audio/wav"),
                _TRANSCRIBE_PROMPT,
            ],
            config=types.GenerateContentConfig(response_mime_type="application/json"),
        )
    except Exception as exc:
        raise _wrap("Gemini transcription failed", exc) from exc

    result = parse_transcription_json(response.text or "")
    logger.info("Gemini returned %d segment(s).", len(result.segments))
    return result


def translate(prompt: str, target_language: str) -> str:
    """
    Run a translation prompt through Gemini.

    Raises:
        ValueError:    If ``prompt`` is empty.
        ProviderError: If the key is missing, the call fails, or the
                       response is empty.
    """
    require_text(prompt)
    client = _client()

    try:
        response = client.models.generate_content(
            model=config.GEMINI_MODEL,
            contents=prompt,
        )
    except Exception as exc:
        raise _wrap("Gemini translation failed", exc) from exc

    text = (response.text or "").strip()
    if not text:
        raise ProviderError(PROVIDER_NAME, "Empty translation response")

    logger.info("Gemini translation to '%s' returned %d chars.", target_language, len(text))
    return text


def detect_language(audio_bytes: bytes) -> LanguageGuess:
    """
    Ask Gemini which language is spoken in an audio sample.

    The answer is returned as-is; checking it against the supported
    languages is the caller's job.

    Raises:
        ValueError:    If ``audio_bytes`` is empty.
        ProviderError: If the key is missing, the call fails, or the
                       response is not a JSON object with a language code.
    """
    require_audio(audio_bytes)
    client = _client()

    supported = ", ".join(f"{name} ({code})" for code, name in config.DETECTABLE_LANGUAGES.items())
    try:
        response = client.models.generate_content(
            model=config.GEMINI_MODEL,
            contents=[
                _DETECT_LANGUAGE_PROMPT.format(supported=supported),
                types.Part.from_bytes(data=audio_bytes, mime_type="audio/wav"),
            ],
            config=types.GenerateContentConfig(response_mime_type="application/json"),
        )
    except Exception as exc:
        raise _wrap("Gemini language detection failed", exc) from exc

    guess = parse_language_json(response.text or "")
    logger.info("Gemini detected language '%s' (confidence %s).", guess.language_code, guess.confidence)
    return guess


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def parse_transcription_json(raw: str) -> RecognitionResult:
    """
    Parse Gemini's transcription JSON into a RecognitionResult.

    Accepts an object ``{"text", "segments"}`` or a bare segment array.
    """
    cleaned = _FENCE_RE.sub("", raw.strip())
    try:
        body: Any = json.loads(cleaned or "{}")
    except json.JSONDecodeError as exc:
        raise ProviderError(PROVIDER_NAME, f"Invalid JSON response: {exc}") from exc

    if isinstance(body, list):
        body = {"segments": body}
    if not isinstance(body, dict):
        raise ProviderError(PROVIDER_NAME, "Unexpected JSON response shape")

    segments: list[RecognizedSegment] = []
    for seg in body.get("segments") or []:
        text = str(get_field(seg, "text", "") or "").strip()
        if not text:
            continue
        try:
            start = float(get_field(seg, "start", 0.0) or 0.0)
            end = float(get_field(seg, "end", 0.0) or 0.0)
        except (TypeError, ValueError):
            start, end = 0.0, 0.0
        segments.append(
            RecognizedSegment(
                text=text,
                start_time=start,
                end_time=end,
                raw_confidence=GEMINI_CONFIDENCE_ESTIMATE,
            )
        )

    full_text = str(body.get("text") or "").strip()
    return RecognitionResult(
        provider_name=PROVIDER_NAME,
        text=full_text or " ".join(s.text for s in segments),
        segments=segments,
        raw_confidence=GEMINI_CONFIDENCE_ESTIMATE,
    )


def parse_language_json(raw: str) -> LanguageGuess:
    """Parse ``{"language", "confidence", "languageName"}`` into a LanguageGuess."""
    cleaned = _FENCE_RE.sub("", raw.strip())
    try:
        body: Any = json.loads(cleaned or "{}")
    except json.JSONDecodeError as exc:
        raise ProviderError(PROVIDER_NAME, f"Invalid JSON response: {exc}") from exc

    if not isinstance(body, dict):
        raise ProviderError(PROVIDER_NAME, "Unexpected JSON response shape")

    code = str(body.get("language") or "").strip().lower()
    if not code:
        raise ProviderError(PROVIDER_NAME, "No language code in detection response")

    try:
        confidence = float(body["confidence"]) if body.get("confidence") is not None else None
    except (TypeError, ValueError):
        confidence = None

    name = str(body.get("languageName") or body.get("language_name") or "").strip() or None
    return LanguageGuess(
        provider_name=PROVIDER_NAME,
        language_code=code,
        confidence=confidence,
        language_name=name,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _client() -> genai.Client:
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        raise ProviderError(PROVIDER_NAME, "GEMINI_API_KEY environment variable is not set.")
    return genai.Client(api_key=api_key)


def _wrap(message: str, exc: Exception) -> ProviderError:
    # google-genai APIError exposes the HTTP status as ``code``
    status_code = getattr(exc, "code", None)
    if not isinstance(status_code, int):
        status_code = None
    return ProviderError(
        PROVIDER_NAME,
        f"{message}: {type(exc).__name__}: {exc}",
        status_code=status_code,
    )
