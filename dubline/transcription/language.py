"""
dubline/transcription/language.py
==================================
Language Detection — Dubline

Responsibility:
    - Detect the spoken language of a video's normalized audio
    - Send only the first LANGUAGE_DETECTION_SAMPLE_SECONDS to the detector
    - Fall back to Bengali when the detector fails or answers outside
      the supported languages
    - List the languages the detector may report

Detection runs before transcription. Its result is recorded on the
video; it does not change which providers transcribe or the source
language they are asked for.

This module does NOT:
    - Transcribe or translate
    - Retry detector calls
"""

import io
import logging
import wave
from dataclasses import dataclass
from typing import Callable

from dubline import config
from dubline.errors import ProviderError, classify
from dubline.providers import gemini_client
from dubline.providers.base import LanguageGuess

logger = logging.getLogger("dubline.transcription.language")

# Confidence recorded when the detector's answer is not usable
UNSUPPORTED_ANSWER_CONFIDENCE: float = 0.7
# Confidence recorded when the detector call itself failed
DETECTOR_FAILED_CONFIDENCE: float = 0.5
# Confidence assumed when the detector omits one
MISSING_CONFIDENCE_DEFAULT: float = 0.8


@dataclass(frozen=True)
class LanguageDetectionResult:
    """Detected spoken language of a video."""

    language_code: str        # ISO 639-1, one of config.DETECTABLE_LANGUAGES
    language_name: str
    confidence: float         # [0, 1]
    provider_name: str | None = None  # None when the default was used
    was_trimmed: bool = False

    @property
    def is_default(self) -> bool:
        return self.provider_name is None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_supported_languages() -> list[dict[str, str]]:
    """Languages the detector may report, as ``{"code", "name"}`` items."""
    return [{"code": code, "name": name} for code, name in config.DETECTABLE_LANGUAGES.items()]


def detect_language(
    audio_bytes: bytes,
    detector: Callable[[bytes], LanguageGuess] | None = None,
    sample_seconds: float = config.LANGUAGE_DETECTION_SAMPLE_SECONDS,
) -> LanguageDetectionResult:
    """
    Detect the spoken language of normalized WAV audio.

    Args:
        audio_bytes:    Normalized audio (mono 16 kHz WAV bytes).
        detector:       Callable returning a LanguageGuess; defaults to Gemini.
        sample_seconds: Length of the leading sample sent to the detector.

    Returns:
        LanguageDetectionResult. Never raises for detector failures:
        a failed call yields Bengali at 0.5, an unsupported answer
        Bengali at 0.7.
    """
    sample, was_trimmed = trim_for_detection(audio_bytes, sample_seconds)
    detect = detector or gemini_client.detect_language

    try:
        guess = detect(sample)
    except ProviderError as exc:
        classification = classify(exc)
        logger.warning(
            "Language detection failed [%s]: %s; defaulting to %s.",
            classification.code.value, exc, config.SOURCE_LANGUAGE,
        )
        return _default(DETECTOR_FAILED_CONFIDENCE, was_trimmed)

    code = guess.language_code.strip().lower()
    if code not in config.DETECTABLE_LANGUAGES:
        logger.info(
            "Detector %s answered unsupported language '%s'; defaulting to %s.",
            guess.provider_name, guess.language_code, config.SOURCE_LANGUAGE,
        )
        return _default(UNSUPPORTED_ANSWER_CONFIDENCE, was_trimmed)

    confidence = MISSING_CONFIDENCE_DEFAULT if guess.confidence is None else guess.confidence
    result = LanguageDetectionResult(
        language_code=code,
        language_name=guess.language_name or config.DETECTABLE_LANGUAGES[code],
        confidence=max(0.0, min(1.0, confidence)),
        provider_name=guess.provider_name,
        was_trimmed=was_trimmed,
    )
    logger.info(
        "Language detected: %s (%s), confidence %.2f.",
        result.language_name, result.language_code, result.confidence,
    )
    return result


def trim_for_detection(audio_bytes: bytes, sample_seconds: float) -> tuple[bytes, bool]:
    """
    Return the first ``sample_seconds`` of WAV audio.

    Audio that is already short enough, or whose WAV header cannot be
    read, is returned unchanged.

    Returns:
        Tuple of (possibly-trimmed WAV bytes, was_trimmed: bool).
    """
    buf = io.BytesIO(audio_bytes)
    try:
        with wave.open(buf, "rb") as wf:
            n_channels = wf.getnchannels()
            sampwidth = wf.getsampwidth()
            sample_rate = wf.getframerate()
            n_frames = wf.getnframes()
            clip_frames = int(sample_seconds * sample_rate)
            if n_frames <= clip_frames:
                return audio_bytes, False
            raw_frames = wf.readframes(clip_frames)
    except (wave.Error, EOFError):
        return audio_bytes, False

    out = io.BytesIO()
    with wave.open(out, "wb") as wf_out:
        wf_out.setnchannels(n_channels)
        wf_out.setsampwidth(sampwidth)
        wf_out.setframerate(sample_rate)
        wf_out.writeframes(raw_frames)

    logger.info(
        "Audio is %.0fs; sending the first %.0fs for language detection.",
        n_frames / sample_rate, sample_seconds,
    )
    return out.getvalue(), True


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _default(confidence: float, was_trimmed: bool) -> LanguageDetectionResult:
    return LanguageDetectionResult(
        language_code=config.SOURCE_LANGUAGE,
        language_name=config.DETECTABLE_LANGUAGES[config.SOURCE_LANGUAGE],
        confidence=confidence,
        was_trimmed=was_trimmed,
    )
