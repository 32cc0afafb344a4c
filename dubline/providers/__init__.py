# dubline/providers/__init__.py
# ==============================
# Provider Adapters — Dubline
#
# One module per external provider, each exposing plain functions:
#   recognize(audio_bytes) → RecognitionResult     (STT providers)
#   translate(prompt, target_language) → str       (translation providers)
#   detect_language(audio_bytes) → LanguageGuess   (gemini_client only)
#
# Provider-specific response fields never leave the adapter module.
# Name → module resolution lives in registry.py.

from dubline.providers.base import LanguageGuess, RecognitionResult, RecognizedSegment  # noqa: F401

__all__ = [
    "LanguageGuess",
    "RecognitionResult",
    "RecognizedSegment",
]
