"""
dubline/dubbing.py
===================
Dubbing Invoker — Dubline

Responsibility:
    - Join one language's translated segments into a single TTS script
    - Invoke the TTS provider with the voice id carried on the dubbing job
    - Write the rendered audio under the dubbing output directory

Synthesis and file output are separate steps so a caller can synthesize
off the event loop and write only once the stage finished in time.

This module does NOT:
    - Time-align or mix audio against the video
    - Choose voices (the caller passes the job's voice id)
"""

import logging
import os
from typing import Callable, Sequence

from dubline import config
from dubline.providers import elevenlabs_client
from dubline.retry import call_with_retry

logger = logging.getLogger("dubline.dubbing")

# Pause marker between segments in the TTS script
SEGMENT_JOINER = " ... "


def build_script(texts: Sequence[str]) -> str:
    return SEGMENT_JOINER.join(t.strip() for t in texts if t and t.strip())


def synthesize_dubbing(
    texts: Sequence[str],
    voice_id: str,
    synthesize: Callable[[str, str], bytes] | None = None,
) -> bytes:
    """
    Synthesize translated ``texts`` into one audio clip.

    Args:
        texts:      Translated segment texts in time order.
        voice_id:   TTS voice id from the dubbing job.
        synthesize: TTS callable (text, voice_id) → audio bytes; defaults to
                    ElevenLabs text-to-speech.

    Returns:
        Encoded audio bytes (MP3 for ElevenLabs).

    Raises:
        ValueError:    No non-empty text to dub.
        ProviderError: The TTS call failed.
    """
    script = build_script(texts)
    if not script:
        raise ValueError("No translated text to dub.")

    tts = synthesize or elevenlabs_client.synthesize_speech
    logger.info("Synthesizing %d chars with voice %s.", len(script), voice_id)
    return call_with_retry(tts, script, voice_id, label="tts")


def write_audio(audio: bytes, output_path: str) -> str:
    """Write ``audio`` to ``output_path``, creating parent directories."""
    parent = os.path.dirname(output_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(output_path, "wb") as f:
        f.write(audio)

    logger.info("Dubbing audio written to %s (%d bytes).", output_path, len(audio))
    return output_path


def render_dubbing(
    texts: Sequence[str],
    voice_id: str,
    output_path: str,
    synthesize: Callable[[str, str], bytes] | None = None,
) -> str:
    """Synthesize ``texts`` and write the audio to ``output_path``; returns the path."""
    audio = synthesize_dubbing(texts, voice_id, synthesize=synthesize)
    return write_audio(audio, output_path)


def output_path_for(dubbing_job_id: int, language: str, output_dir: str | None = None) -> str:
    return os.path.join(output_dir or config.DUBBING_OUTPUT_DIR, f"dubbed_{dubbing_job_id}_{language}.mp3")
