# dubline/transcription/__init__.py
# ==================================
# Transcription Layer — Dubline
#
#   language.py   → spoken-language detection on a leading audio sample
#   reconciler.py → multi-provider STT with fallback, overlap-aligned
#                   alternatives, splitting, validation and scoring

from dubline.transcription.language import (  # noqa: F401
    LanguageDetectionResult,
    detect_language,
    get_supported_languages,
)
from dubline.transcription.reconciler import (  # noqa: F401
    ReconcileState,
    ReconciledSegment,
    ReconciliationResult,
    TranscriptionReconciler,
)

__all__ = [
    "LanguageDetectionResult",
    "ReconcileState",
    "ReconciledSegment",
    "ReconciliationResult",
    "TranscriptionReconciler",
    "detect_language",
    "get_supported_languages",
]
