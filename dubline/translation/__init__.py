# dubline/translation/__init__.py
# ================================
# Translation Layer — Dubline
#
#   batch.py → SEGMENT_<i> batch prompt, primary/fallback providers,
#              response parsing, per-segment scoring

from dubline.translation.batch import (  # noqa: F401
    PARTIAL_TRANSLATION,
    BatchTranslationResult,
    BatchTranslator,
    SegmentTranslation,
)

__all__ = [
    "PARTIAL_TRANSLATION",
    "BatchTranslationResult",
    "BatchTranslator",
    "SegmentTranslation",
]
