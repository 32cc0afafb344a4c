"""
dubline/providers/base.py
==========================
Provider Result Types — Dubline

Responsibility:
    - Define the strict result types every STT adapter returns
    - Group word-level timestamps into sentence-like segments
    - Read fields from SDK objects or plain dicts uniformly

This module does NOT:
    - Call any provider
    - Validate subtitle standards or compute confidence
"""

import re
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecognizedSegment:
    """One time-aligned utterance as recognized by a provider."""

    text: str
    start_time: float
    end_time: float
    raw_confidence: float | None = None
    speaker_id: str | None = None


@dataclass(frozen=True)
class RecognitionResult:
    """Normalized output of a speech-to-text call."""

    provider_name: str
    text: str
    segments: list[RecognizedSegment] = field(default_factory=list)
    raw_confidence: float | None = None


@dataclass(frozen=True)
class LanguageGuess:
    """A provider's answer to "which language is spoken?"."""

    provider_name: str
    language_code: str
    confidence: float | None = None
    language_name: str | None = None


# ---------------------------------------------------------------------------
# Word grouping
# ---------------------------------------------------------------------------

# Bengali danda and Latin sentence terminators close a segment
_TERMINATOR_RE = re.compile(r"[.!?।]$")


def group_words_into_segments(
    words: list[Any],
    pause_threshold: float = 1.0,
    max_words: int = 20,
) -> list[RecognizedSegment]:
    """
    Group word-level timestamps into sentence-like segments.

    A new segment starts when the silence gap exceeds ``pause_threshold``
    seconds, after a word ending in a sentence terminator, or once
    ``max_words`` words have accumulated.

    Args:
        words:           Items exposing word/text, start, end (dicts or objects).
        pause_threshold: Max silence gap (seconds) before splitting.
        max_words:       Hard cap on words per segment.

    Returns:
        List of RecognizedSegment.
    """
    segments: list[RecognizedSegment] = []
    current_words: list[str] = []
    current_speaker: str | None = None
    seg_start = 0.0
    prev_end = 0.0

    def flush() -> None:
        if current_words:
            segments.append(
                RecognizedSegment(
                    text=" ".join(current_words),
                    start_time=seg_start,
                    end_time=prev_end,
                    speaker_id=current_speaker,
                )
            )

    for w in words:
        w_text = str(get_field(w, "word", None) or get_field(w, "text", "") or "").strip()
        if not w_text:
            continue
        w_start = float(get_field(w, "start", prev_end) or prev_end)
        w_end = float(get_field(w, "end", w_start) or w_start)

        if current_words and (w_start - prev_end) > pause_threshold:
            flush()
            current_words = []

        if not current_words:
            seg_start = w_start
            current_speaker = get_field(w, "speaker_id", None)

        current_words.append(w_text)
        prev_end = max(w_end, w_start)

        if _TERMINATOR_RE.search(w_text) or len(current_words) >= max_words:
            flush()
            current_words = []

    flush()
    return segments


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Handle both dict and object attribute access patterns."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def require_audio(audio_bytes: bytes) -> None:
    """Raise ValueError for empty audio input."""
    if not audio_bytes:
        raise ValueError("audio_bytes must be non-empty")


def require_text(text: str) -> None:
    """Raise ValueError for empty text input."""
    if not text or not text.strip():
        raise ValueError("text must be non-empty")
