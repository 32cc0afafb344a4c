# dubline/subtitles/__init__.py
# ==============================
# Subtitle Layer — Dubline
#
#   standards.py → broadcast constants, line breaking, validation, splitting
#   srt.py       → SRT rendering of a transcript or a translation

from dubline.subtitles.standards import (  # noqa: F401
    StandardsReport,
    line_break,
    reading_speed,
    split_long_segment,
    validate,
)

__all__ = [
    "StandardsReport",
    "line_break",
    "reading_speed",
    "split_long_segment",
    "validate",
]
