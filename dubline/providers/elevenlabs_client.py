"""
dubline/providers/elevenlabs_client.py
=======================================
ElevenLabs Client — Dubline

Responsibility:
    - Transcribe Bengali audio using the ElevenLabs speech-to-text API
    - Synthesize dubbing speech using the ElevenLabs text-to-speech API
    - Return results in the strict provider types

This module does NOT:
    - Retry (see dubline.retry) or fall back to other providers
    - Assemble or store dubbing audio (see dubline.dubbing)
"""

import io
import logging
import os
import re

import requests
from dotenv import load_dotenv

from dubline import config
from dubline.errors import ProviderError
from dubline.providers.base import (
    RecognitionResult,
    RecognizedSegment,
    group_words_into_segments,
    require_audio,
    require_text,
)

load_dotenv()

logger = logging.getLogger("dubline.providers.elevenlabs_client")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

PROVIDER_NAME = "elevenlabs-stt"
TTS_PROVIDER_NAME = "elevenlabs-tts"

ELEVENLABS_API_BASE = "https://api.elevenlabs.io/v1"
ELEVENLABS_STT_ENDPOINT = f"{ELEVENLABS_API_BASE}/speech-to-text"
ELEVENLABS_TTS_ENDPOINT = f"{ELEVENLABS_API_BASE}/text-to-speech"

_BENGALI_SCRIPT_RE = re.compile(r"[\u0980-\u09FF]")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def recognize(audio_bytes: bytes) -> RecognitionResult:
    """
    Transcribe Bengali audio using ElevenLabs speech-to-text.

    Word timestamps are grouped into segments on pauses and sentence
    terminators. ElevenLabs reports no confidence, so one is estimated
    from the text (see ``estimate_confidence``).

    Raises:
        ValueError:    If ``audio_bytes`` is empty.
        ProviderError: If the API key is missing or the request fails.
    """
    require_audio(audio_bytes)
    api_key = _api_key(PROVIDER_NAME)

    files = {
        "file": ("audio.wav", io.BytesIO(audio_bytes), "audio/wav"),
    }
    data = {
        "model_id": config.ELEVENLABS_STT_MODEL,
        "language_code": "ben",
        "timestamps_granularity": "word",
    }

    body = _post(
        PROVIDER_NAME,
        ELEVENLABS_STT_ENDPOINT,
        headers={"xi-api-key": api_key},
        files=files,
        data=data,
    ).json()

    text = (body.get("text") or "").strip()
    words = [w for w in body.get("words") or [] if w.get("type", "word") == "word"]
    confidence = estimate_confidence(text)

    segments = [
        RecognizedSegment(
            text=s.text,
            start_time=s.start_time,
            end_time=s.end_time,
            raw_confidence=confidence,
            speaker_id=s.speaker_id,
        )
        for s in group_words_into_segments(words)
    ]

    logger.info("ElevenLabs returned %d word(s) → %d segment(s).", len(words), len(segments))
    return RecognitionResult(
        provider_name=PROVIDER_NAME,
        text=text,
        segments=segments,
        raw_confidence=confidence,
    )


def synthesize_speech(text: str, voice_id: str) -> bytes:
    """
    Render ``text`` as speech with the given ElevenLabs voice.

    Returns:
        MP3 audio bytes.

    Raises:
        ValueError:    If ``text`` is empty.
        ProviderError: If the API key is missing or the request fails.
    """
    require_text(text)
    api_key = _api_key(TTS_PROVIDER_NAME)

    resp = _post(
        TTS_PROVIDER_NAME,
        f"{ELEVENLABS_TTS_ENDPOINT}/{voice_id}",
        headers={
            "xi-api-key": api_key,
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
        },
        json={
            "text": text,
            "model_id": config.ELEVENLABS_TTS_MODEL,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
        },
    )
    return resp.content


def estimate_confidence(text: str) -> float:
    """
    Heuristic confidence for a provider that reports none.

    Base 0.75; +0.05 above 5 words and again above 10; +0.1 when Bengali
    script is present; +0.05 for a danda. Capped at 0.9.
    """
    clean = (text or "").strip()
    if not clean:
        return 0.1

    confidence = 0.75
    word_count = len(clean.split())
    if word_count > 5:
        confidence += 0.05
    if word_count > 10:
        confidence += 0.05
    if _BENGALI_SCRIPT_RE.search(clean):
        confidence += 0.1
    if "।" in clean:
        confidence += 0.05
    return min(confidence, 0.9)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _api_key(provider_name: str) -> str:
    api_key = os.environ.get("ELEVENLABS_API_KEY")
    if not api_key:
        raise ProviderError(provider_name, "ELEVENLABS_API_KEY environment variable is not set.")
    return api_key


def _post(provider_name: str, url: str, **kwargs) -> requests.Response:
    try:
        resp = requests.post(url, timeout=config.HTTP_TIMEOUT_SECONDS, **kwargs)
    except requests.RequestException as exc:
        raise ProviderError(
            provider_name, f"Request failed: {type(exc).__name__}: {exc}"
        ) from exc

    if not resp.ok:
        raise ProviderError(
            provider_name,
            f"API error: {resp.text[:300]}",
            status_code=resp.status_code,
            body=resp.text,
        )
    return resp
