"""
dubline/config.py
==================
Runtime Configuration — Dubline

All tunables are read once from the environment (``.env`` is loaded via
python-dotenv). API keys are NOT cached here: provider adapters read them
at call time so a missing key surfaces as a provider failure, not an
import-time crash.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


# ---------------------------------------------------------------------------
# Languages
# ---------------------------------------------------------------------------

SOURCE_LANGUAGE: str = "bn"

# Target languages offered for translation / dubbing (ISO 639-1 → name)
TARGET_LANGUAGES: dict[str, str] = {
    "en": "English",
    "hi": "Hindi",
    "ta": "Tamil",
    "te": "Telugu",
    "ml": "Malayalam",
}

# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------

# Priority order; the first successful provider is authoritative
DEFAULT_STT_PROVIDERS: list[str] = _env_list(
    "DUBLINE_STT_PROVIDERS", "openai-whisper,gemini-2.5-pro"
)
TRANSLATION_PRIMARY: str = os.environ.get("DUBLINE_TRANSLATION_PRIMARY", "gemini-2.5-pro")
TRANSLATION_FALLBACK: str = os.environ.get("DUBLINE_TRANSLATION_FALLBACK", "openai-gpt")

# ---------------------------------------------------------------------------
# Provider models
# ---------------------------------------------------------------------------

OPENAI_STT_MODEL: str = os.environ.get("DUBLINE_OPENAI_STT_MODEL", "whisper-1")
OPENAI_TRANSLATION_MODEL: str = os.environ.get("DUBLINE_OPENAI_TRANSLATION_MODEL", "gpt-4o")
GEMINI_MODEL: str = os.environ.get("DUBLINE_GEMINI_MODEL", "gemini-2.5-pro")
ELEVENLABS_STT_MODEL: str = os.environ.get("DUBLINE_ELEVENLABS_STT_MODEL", "scribe_v1")
ELEVENLABS_TTS_MODEL: str = os.environ.get("DUBLINE_ELEVENLABS_TTS_MODEL", "eleven_multilingual_v2")
SARVAM_STT_MODEL: str = os.environ.get("DUBLINE_SARVAM_STT_MODEL", "saarika:v2")

# Per-request HTTP timeout for requests-based adapters (seconds)
HTTP_TIMEOUT_SECONDS: float = _env_float("DUBLINE_HTTP_TIMEOUT", 120.0)

# ---------------------------------------------------------------------------
# Retry / timeouts
# ---------------------------------------------------------------------------

# Same-provider retries for transient network errors (0 disables)
PROVIDER_MAX_RETRIES: int = _env_int("DUBLINE_PROVIDER_MAX_RETRIES", 2)

TRANSCRIPTION_TIMEOUT_SECONDS: float = _env_float("DUBLINE_TRANSCRIPTION_TIMEOUT", 600.0)
TRANSLATION_TIMEOUT_SECONDS: float = _env_float("DUBLINE_TRANSLATION_TIMEOUT", 300.0)
DUBBING_TIMEOUT_SECONDS: float = _env_float("DUBLINE_DUBBING_TIMEOUT", 600.0)

# ---------------------------------------------------------------------------
# Subtitle standards / dubbing
# ---------------------------------------------------------------------------

# Youth content uses the stricter 180 wpm reading-speed cap
YOUTH_CONTENT: bool = _env_bool("DUBLINE_YOUTH_CONTENT", False)

DEFAULT_VOICE_ID: str = os.environ.get("DUBLINE_DEFAULT_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")
DUBBING_OUTPUT_DIR: str = os.environ.get("DUBLINE_DUBBING_OUTPUT_DIR", "output/dubbing")

# ---------------------------------------------------------------------------
# Language detection
# ---------------------------------------------------------------------------

# Languages the detector may report (ISO 639-1 → name); anything else
# falls back to the source language
DETECTABLE_LANGUAGES: dict[str, str] = {"bn": "Bengali", **TARGET_LANGUAGES}

LANGUAGE_DETECTION_ENABLED: bool = _env_bool("DUBLINE_DETECT_LANGUAGE", True)
LANGUAGE_DETECTION_SAMPLE_SECONDS: float = _env_float("DUBLINE_LANGUAGE_SAMPLE_SECONDS", 30.0)
