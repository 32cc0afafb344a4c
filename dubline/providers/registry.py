"""
dubline/providers/registry.py
==============================
Provider Registry — Dubline

Responsibility:
    - Map provider names (and short aliases) to adapter modules
    - Resolve recognize / translate callables by provider name

Adapter functions are looked up on their module at call time, so
``unittest.mock.patch("dubline.providers.openai_client.recognize")``
affects the registry too.

This module does NOT:
    - Call providers or handle their errors
"""

from types import ModuleType
from typing import Callable

from dubline.providers import (
    elevenlabs_client,
    gemini_client,
    openai_client,
    sarvam_client,
)
from dubline.providers.base import RecognitionResult

RecognizeFn = Callable[[bytes], RecognitionResult]
TranslateFn = Callable[[str, str], str]


_STT_MODULES: dict[str, ModuleType] = {
    openai_client.STT_PROVIDER_NAME: openai_client,
    gemini_client.PROVIDER_NAME: gemini_client,
    elevenlabs_client.PROVIDER_NAME: elevenlabs_client,
    sarvam_client.PROVIDER_NAME: sarvam_client,
}

_TRANSLATION_MODULES: dict[str, ModuleType] = {
    openai_client.TRANSLATION_PROVIDER_NAME: openai_client,
    gemini_client.PROVIDER_NAME: gemini_client,
}

_STT_ALIASES: dict[str, str] = {
    "openai": openai_client.STT_PROVIDER_NAME,
    "whisper": openai_client.STT_PROVIDER_NAME,
    "gemini": gemini_client.PROVIDER_NAME,
    "elevenlabs": elevenlabs_client.PROVIDER_NAME,
    "sarvam": sarvam_client.PROVIDER_NAME,
}

_TRANSLATION_ALIASES: dict[str, str] = {
    "openai": openai_client.TRANSLATION_PROVIDER_NAME,
    "gpt": openai_client.TRANSLATION_PROVIDER_NAME,
    "gemini": gemini_client.PROVIDER_NAME,
}


class UnknownProviderError(KeyError):
    """Raised when a provider name is not registered."""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def stt_provider_names() -> list[str]:
    return list(_STT_MODULES)


def translation_provider_names() -> list[str]:
    return list(_TRANSLATION_MODULES)


def canonical_stt_name(name: str) -> str:
    key = name.strip().lower()
    key = _STT_ALIASES.get(key, key)
    if key not in _STT_MODULES:
        raise UnknownProviderError(f"Unknown STT provider: {name!r}")
    return key


def canonical_translation_name(name: str) -> str:
    key = name.strip().lower()
    key = _TRANSLATION_ALIASES.get(key, key)
    if key not in _TRANSLATION_MODULES:
        raise UnknownProviderError(f"Unknown translation provider: {name!r}")
    return key


def get_recognizer(name: str) -> RecognizeFn:
    """Return a callable that runs the named provider's ``recognize``."""
    module = _STT_MODULES[canonical_stt_name(name)]
    return lambda audio_bytes: module.recognize(audio_bytes)


def get_translator(name: str) -> TranslateFn:
    """Return a callable that runs the named provider's ``translate``."""
    module = _TRANSLATION_MODULES[canonical_translation_name(name)]
    return lambda prompt, target_language: module.translate(prompt, target_language)
