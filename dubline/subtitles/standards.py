"""
dubline/subtitles/standards.py
===============================
Subtitle Standards Engine — Dubline

Responsibility:
    - Hold the broadcast subtitle constants (duration, line length, line
      count, reading speed, inter-subtitle gap)
    - Break text into display lines
    - Validate a text + time span and compute a 0–100 quality score
    - Split over-long segments on sentence (or word) boundaries
    - Detect adjacent subtitles closer than the minimum gap

Scoring (from 100, clamped to [0, 100]):
    duration too short   −15      reading speed in [150, 200] wpm   +5
    duration too long    −10      single line ≤ 40 chars             +3
    line too long        −20
    too many lines       −25
    reading speed fast   −15

This module does NOT:
    - Compute confidence (see dubline.scoring.confidence)
    - Persist anything
"""

import math
import re
from dataclasses import dataclass, field, replace
from typing import Any, Sequence


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SubtitleStandards:
    min_duration: float = 5 / 6          # seconds (20 frames at 24 fps)
    max_duration: float = 7.0            # seconds
    max_chars_per_line: int = 47
    max_lines: int = 2
    min_gap: float = 2 / 24              # seconds (2 frames at 24 fps)
    max_reading_speed: int = 250         # words per minute
    frame_rate: int = 24


BROADCAST_STANDARDS = SubtitleStandards()
YOUTH_STANDARDS = replace(BROADCAST_STANDARDS, max_reading_speed=180)

PENALTY_TOO_SHORT = 15
PENALTY_TOO_LONG = 10
PENALTY_LINE_TOO_LONG = 20
PENALTY_TOO_MANY_LINES = 25
PENALTY_READING_SPEED = 15

BONUS_OPTIMAL_SPEED = 5
OPTIMAL_SPEED_RANGE = (150, 200)
BONUS_SINGLE_LINE = 3
SINGLE_LINE_BONUS_CHARS = 40

# Recommendations fire near the limits
NEAR_SPEED_RATIO = 0.9
NEAR_LINE_RATIO = 0.9
SHORT_DISPLAY_RATIO = 1.2

RECOMMEND_SIMPLIFY = "Consider simplifying language for better readability"
RECOMMEND_SHORTER = "Consider breaking into shorter segments"
RECOMMEND_EXTEND = "Consider extending display time for better readability"

# Sentence boundary: a terminator followed by whitespace ("3.5" and "..." stay whole)
_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?।])\s+")


def standards_for(is_youth: bool = False) -> SubtitleStandards:
    return YOUTH_STANDARDS if is_youth else BROADCAST_STANDARDS


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineBreak:
    """Display lines (capped) and the max line length of the uncapped packing."""

    lines: list[str]
    max_line_length: int


@dataclass(frozen=True)
class StandardsReport:
    is_valid: bool
    violations: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    quality_score: int = 100
    line_count: int = 0
    max_line_length: int = 0
    reading_speed: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "violations": list(self.violations),
            "recommendations": list(self.recommendations),
            "quality_score": self.quality_score,
            "line_count": self.line_count,
            "max_line_length": self.max_line_length,
            "reading_speed": self.reading_speed,
        }


@dataclass(frozen=True)
class TimedText:
    text: str
    start_time: float
    end_time: float


@dataclass(frozen=True)
class GapViolation:
    """Two adjacent subtitles (by position) closer than the minimum gap."""

    previous_index: int
    next_index: int
    gap: float


# ---------------------------------------------------------------------------
# Line breaking / reading speed
# ---------------------------------------------------------------------------


def _pack(words: list[str], limit: int, hard_split: bool) -> list[str]:
    """Greedy packing of ``words`` into lines of at most ``limit`` chars."""
    lines: list[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= limit:
            current = candidate
            continue
        if current:
            lines.append(current)
        current = word
        if hard_split:
            while len(current) > limit:
                lines.append(current[:limit])
                current = current[limit:]
    if current:
        lines.append(current)
    return lines


def line_break(text: str, standards: SubtitleStandards = BROADCAST_STANDARDS) -> LineBreak:
    """
    Break ``text`` into at most ``max_lines`` display lines.

    A single word longer than the line limit is hard-split so every returned
    line fits. ``max_line_length`` is measured on the packing without
    hard-splitting or capping, so an over-long word still shows up there.
    """
    words = text.split()
    if not words:
        return LineBreak(lines=[], max_line_length=0)

    display = _pack(words, standards.max_chars_per_line, hard_split=True)
    natural = _pack(words, standards.max_chars_per_line, hard_split=False)
    return LineBreak(
        lines=display[: standards.max_lines],
        max_line_length=max(len(line) for line in natural),
    )


def reading_speed(text: str, duration: float) -> float:
    """
    Words per minute, rounded to a whole number.

    A zero or negative duration yields 0 for empty text and infinity
    otherwise.
    """
    word_count = len(text.split())
    if word_count == 0:
        return 0.0
    if duration <= 0:
        return math.inf
    return float(round(word_count / (duration / 60)))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate(
    text: str,
    start_time: float,
    end_time: float,
    is_youth: bool = False,
) -> StandardsReport:
    """
    Validate a subtitle against the broadcast standards.

    ``is_valid`` is True iff there are no violations.
    """
    standards = standards_for(is_youth)
    duration = end_time - start_time
    natural = _pack(text.split(), standards.max_chars_per_line, hard_split=False)
    line_count = len(natural)
    max_line_length = max((len(line) for line in natural), default=0)
    speed = reading_speed(text, duration)

    violations: list[str] = []
    recommendations: list[str] = []
    score = 100

    if duration < standards.min_duration:
        violations.append(
            f"Duration too short: {duration:.2f}s (min: {standards.min_duration:.2f}s)"
        )
        score -= PENALTY_TOO_SHORT

    if duration > standards.max_duration:
        violations.append(
            f"Duration too long: {duration:.2f}s (max: {standards.max_duration:g}s)"
        )
        score -= PENALTY_TOO_LONG

    if max_line_length > standards.max_chars_per_line:
        violations.append(
            f"Line too long: {max_line_length} chars (max: {standards.max_chars_per_line})"
        )
        score -= PENALTY_LINE_TOO_LONG

    if line_count > standards.max_lines:
        violations.append(f"Too many lines: {line_count} (max: {standards.max_lines})")
        score -= PENALTY_TOO_MANY_LINES

    if speed > standards.max_reading_speed:
        shown = "∞" if math.isinf(speed) else f"{speed:.0f}"
        violations.append(
            f"Reading speed too fast: {shown} WPM (max: {standards.max_reading_speed})"
        )
        score -= PENALTY_READING_SPEED

    if speed > standards.max_reading_speed * NEAR_SPEED_RATIO:
        recommendations.append(RECOMMEND_SIMPLIFY)
    if max_line_length > standards.max_chars_per_line * NEAR_LINE_RATIO:
        recommendations.append(RECOMMEND_SHORTER)
    if duration < standards.min_duration * SHORT_DISPLAY_RATIO:
        recommendations.append(RECOMMEND_EXTEND)

    low, high = OPTIMAL_SPEED_RANGE
    if low <= speed <= high:
        score += BONUS_OPTIMAL_SPEED
    if line_count == 1 and max_line_length <= SINGLE_LINE_BONUS_CHARS:
        score += BONUS_SINGLE_LINE

    return StandardsReport(
        is_valid=not violations,
        violations=violations,
        recommendations=recommendations,
        quality_score=max(0, min(100, score)),
        line_count=line_count,
        max_line_length=max_line_length,
        reading_speed=speed,
    )


# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------


def split_long_segment(
    text: str,
    start_time: float,
    end_time: float,
    max_duration: float = BROADCAST_STANDARDS.max_duration,
) -> list[TimedText]:
    """
    Split a segment longer than ``max_duration`` into shorter pieces.

    Splits on sentence terminators (``. ! ? ।``) first, allotting time in
    proportion to word count; any piece still too long is split on words.
    Pieces are contiguous: the first starts at ``start_time`` and the last
    ends exactly at ``end_time``.
    """
    total = end_time - start_time
    words = text.split()
    if total <= max_duration or len(words) <= 1:
        return [TimedText(text=text, start_time=start_time, end_time=end_time)]

    sentences = [s for s in _SENTENCE_BOUNDARY_RE.split(text.strip()) if s]
    if len(sentences) <= 1:
        return _split_by_words(words, start_time, end_time, max_duration)

    pieces: list[TimedText] = []
    total_words = sum(len(s.split()) for s in sentences)
    consumed = 0
    for i, sentence in enumerate(sentences):
        seg_start = start_time + total * consumed / total_words
        consumed += len(sentence.split())
        seg_end = end_time if i == len(sentences) - 1 else start_time + total * consumed / total_words
        if seg_end - seg_start > max_duration:
            pieces.extend(_split_by_words(sentence.split(), seg_start, seg_end, max_duration))
        else:
            pieces.append(TimedText(text=sentence, start_time=seg_start, end_time=seg_end))
    return pieces


def _split_by_words(
    words: list[str],
    start_time: float,
    end_time: float,
    max_duration: float,
) -> list[TimedText]:
    total = end_time - start_time
    if len(words) <= 1:
        return [TimedText(text=" ".join(words), start_time=start_time, end_time=end_time)]

    # Largest word count whose proportional share still fits max_duration
    per_chunk = max(1, math.floor(len(words) * max_duration / total))

    pieces: list[TimedText] = []
    for i in range(0, len(words), per_chunk):
        chunk = words[i:i + per_chunk]
        seg_start = start_time + total * i / len(words)
        last = i + per_chunk >= len(words)
        seg_end = end_time if last else start_time + total * (i + len(chunk)) / len(words)
        pieces.append(TimedText(text=" ".join(chunk), start_time=seg_start, end_time=seg_end))
    return pieces


# ---------------------------------------------------------------------------
# Gaps
# ---------------------------------------------------------------------------


def find_gap_violations(
    segments: Sequence[Any],
    standards: SubtitleStandards = BROADCAST_STANDARDS,
) -> list[GapViolation]:
    """
    List adjacent subtitles whose gap is below ``min_gap``.

    ``segments`` are items with ``start_time`` / ``end_time`` in time order.
    Overlaps show up as negative gaps.
    """
    violations: list[GapViolation] = []
    for i in range(1, len(segments)):
        gap = segments[i].start_time - segments[i - 1].end_time
        # Tolerance for float error on exact 2-frame gaps
        if gap < standards.min_gap - 1e-9:
            violations.append(GapViolation(previous_index=i - 1, next_index=i, gap=gap))
    return violations
