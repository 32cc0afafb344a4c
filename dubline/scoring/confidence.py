"""
dubline/scoring/confidence.py
==============================
Deterministic Confidence Scorer — Dubline

Responsibility:
    - Combine a provider's raw confidence, its reliability weight, the
      subtitle-standards quality score and segment-structural heuristics
      into one confidence value in [0, 1]
    - Score translations with extra structural checks (length ratio,
      error markers, echoed source, punctuation, residual source script)

Scoring philosophy:
    - Reliability multiplies the raw confidence (unknown providers: 0.8)
    - The result is blended 70/30 with quality_score / 100
    - Small additive adjustments reward display-friendly segments and
      penalize fragments
    - The final value is clamped to [0, 1]

This module does NOT:
    - Call any provider
    - Validate subtitle standards (see dubline.subtitles.standards)
"""

import logging
import re

from dubline.subtitles.standards import BROADCAST_STANDARDS

logger = logging.getLogger("dubline.scoring.confidence")


# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------

PROVIDER_RELIABILITY: dict[str, float] = {
    "openai-whisper": 1.0,
    "google-speech": 0.95,
    "elevenlabs-stt": 0.90,
    "gemini-2.5-pro": 0.85,
}
DEFAULT_RELIABILITY: float = 0.8

RAW_WEIGHT: float = 0.7
QUALITY_WEIGHT: float = 0.3

DURATION_BONUS: float = 0.05
LENGTH_BONUS: float = 0.03
LENGTH_BONUS_MIN_CHARS: int = 10
SHORT_TEXT_PENALTY: float = 0.10
SHORT_TEXT_CHARS: int = 5

# Raw confidence assumed when a provider reports none
DEFAULT_RAW_CONFIDENCE: float = 0.85
BATCH_TRANSLATION_RAW_CONFIDENCE: float = 0.95

# Translation structural checks
LENGTH_RATIO_RANGE: tuple[float, float] = (0.5, 2.0)
LENGTH_RATIO_PENALTY: float = 0.10
ERROR_MARKER_PENALTY: float = 0.30
ECHO_PENALTY: float = 0.30
PUNCTUATION_PENALTY: float = 0.05
SOURCE_SCRIPT_PENALTY: float = 0.20

_ERROR_MARKER_RE = re.compile(r"\[|\bUnable\b")
_TERMINAL_PUNCT = (".", "!", "?", "।", "…")
_BENGALI_SCRIPT_RE = re.compile(r"[\u0980-\u09FF]")


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def reliability(provider_name: str) -> float:
    return PROVIDER_RELIABILITY.get(provider_name, DEFAULT_RELIABILITY)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def score(
    raw_confidence: float | None,
    provider_name: str,
    quality_score: float,
    text_length: int,
    duration: float,
) -> float:
    """
    Compute segment confidence in [0, 1].

    Args:
        raw_confidence: Provider-reported confidence (None → 0.85).
        provider_name:  Canonical provider name for the reliability weight.
        quality_score:  Standards quality score in [0, 100].
        text_length:    Character count of the segment text.
        duration:       Segment duration in seconds.
    """
    raw = DEFAULT_RAW_CONFIDENCE if raw_confidence is None else _clamp(raw_confidence)

    value = raw * reliability(provider_name)
    value = value * RAW_WEIGHT + (quality_score / 100.0) * QUALITY_WEIGHT

    if BROADCAST_STANDARDS.min_duration <= duration <= BROADCAST_STANDARDS.max_duration:
        value += DURATION_BONUS
    if LENGTH_BONUS_MIN_CHARS <= text_length <= BROADCAST_STANDARDS.max_chars_per_line:
        value += LENGTH_BONUS
    if text_length < SHORT_TEXT_CHARS:
        value -= SHORT_TEXT_PENALTY

    return _clamp(value)


def score_translation(
    raw_confidence: float | None,
    provider_name: str,
    quality_score: float,
    source_text: str,
    translated_text: str,
    duration: float,
    target_language: str,
) -> float:
    """
    Compute translation confidence in [0, 1].

    Starts from ``score`` on the translated text and then applies the
    structural penalties listed in the module docstring.
    """
    source = source_text.strip()
    target = translated_text.strip()

    value = score(raw_confidence, provider_name, quality_score, len(target), duration)
    applied: list[str] = []

    if source:
        ratio = len(target) / len(source)
        low, high = LENGTH_RATIO_RANGE
        if not low <= ratio <= high:
            value -= LENGTH_RATIO_PENALTY
            applied.append("length_ratio")

    if _ERROR_MARKER_RE.search(target):
        value -= ERROR_MARKER_PENALTY
        applied.append("error_marker")

    if target_language != "bn" and target and target == source:
        value -= ECHO_PENALTY
        applied.append("echo")

    if source.endswith(_TERMINAL_PUNCT) and not target.endswith(_TERMINAL_PUNCT):
        value -= PUNCTUATION_PENALTY
        applied.append("punctuation")

    if target_language != "bn" and _BENGALI_SCRIPT_RE.search(target):
        value -= SOURCE_SCRIPT_PENALTY
        applied.append("source_script")

    if applied:
        logger.debug("Translation penalties applied: %s", ", ".join(applied))
    return _clamp(value)
