"""
dubline/subtitles/srt.py
=========================
SRT Export — Dubline

Renders time-ordered subtitle entries as an SRT document. Text is wrapped
with the standards engine's line breaker, so every cue shows at most two
lines of at most 47 characters.
"""

import logging
from typing import Iterable

from dubline.subtitles.standards import TimedText, line_break

logger = logging.getLogger("dubline.subtitles.srt")


def format_timestamp(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS,mmm``."""
    total_ms = int(round(max(0.0, seconds) * 1000))
    h, rem = divmod(total_ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return f"{h:02}:{m:02}:{s:02},{ms:03}"


def render_srt(entries: Iterable[TimedText]) -> str:
    """Render entries as SRT text. Entries with empty text are skipped."""
    blocks: list[str] = []
    for entry in entries:
        lines = line_break(entry.text).lines
        if not lines:
            continue
        blocks.append(
            f"{len(blocks) + 1}\n"
            f"{format_timestamp(entry.start_time)} --> {format_timestamp(entry.end_time)}\n"
            + "\n".join(lines)
            + "\n"
        )
    logger.debug("Rendered %d SRT cue(s).", len(blocks))
    return "\n".join(blocks)


def write_srt(entries: Iterable[TimedText], path: str) -> None:
    """Write entries to an SRT file (UTF-8)."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(render_srt(entries))
