"""
dubline/media.py
=================
Audio Extraction — Dubline

Responsibility:
    - Validate that the source video/audio file exists and is non-empty
    - Decode the media with pydub (ffmpeg) and extract its audio track
    - Convert audio to mono channel, 16 kHz, 16-bit PCM
    - Return normalized audio as WAV bytes plus its duration in seconds

This module does NOT:
    - Upload, download or store media
    - Call any STT provider
"""

import io
import logging
import os

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from dubline.errors import MediaNotFoundError, UnsupportedMediaError


logger = logging.getLogger("dubline.media")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TARGET_SAMPLE_RATE = 16000  # Hz
TARGET_CHANNELS = 1  # mono
TARGET_SAMPLE_WIDTH = 2  # bytes → 16-bit PCM
OUTPUT_FORMAT = "wav"


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_audio(source_path: str) -> tuple[bytes, float]:
    """
    Extract a normalized audio track from a video or audio file.

    Steps:
        1. Validate the file exists and is non-empty
        2. Decode media (ffmpeg picks the container from the extension)
        3. Convert to mono, 16 kHz, 16-bit
        4. Export as WAV bytes

    Args:
        source_path: Path to the uploaded video (or audio) file.

    Returns:
        (wav_bytes, duration_seconds)

    Raises:
        MediaNotFoundError:    File is missing.
        UnsupportedMediaError: File is empty, undecodable, or has no audio.
    """
    # 1. Existence / empty checks
    if not source_path or not os.path.isfile(source_path):
        raise MediaNotFoundError(f"Source file not found: {source_path}", path=source_path)
    if os.path.getsize(source_path) == 0:
        raise UnsupportedMediaError(f"Unsupported format: {source_path} is empty", path=source_path)

    # 2. Decode
    fmt = _extract_extension(source_path).lstrip(".") or None
    try:
        audio = AudioSegment.from_file(source_path, format=fmt)
    except CouldntDecodeError as exc:
        raise UnsupportedMediaError(
            f"Unsupported format: could not decode {source_path}", path=source_path,
        ) from exc
    except FileNotFoundError as exc:
        # pydub raises this when ffmpeg/ffprobe itself is missing
        raise UnsupportedMediaError(
            f"Unsupported format: decoder unavailable ({exc})", path=source_path,
        ) from exc

    duration_seconds = len(audio) / 1000.0
    if duration_seconds == 0:
        raise UnsupportedMediaError(f"Unsupported format: {source_path} has no audio", path=source_path)

    # 3. Normalize
    audio = normalize_segment(audio)

    # 4. Export as WAV bytes
    buffer = io.BytesIO()
    audio.export(buffer, format=OUTPUT_FORMAT)
    wav_bytes = buffer.getvalue()

    logger.info(
        "Extracted audio from %s: %.1fs, %d bytes.",
        os.path.basename(source_path), duration_seconds, len(wav_bytes),
    )
    return wav_bytes, duration_seconds


def normalize_segment(audio: AudioSegment) -> AudioSegment:
    """Return ``audio`` as mono 16 kHz 16-bit."""
    if audio.channels != TARGET_CHANNELS:
        audio = audio.set_channels(TARGET_CHANNELS)
    if audio.frame_rate != TARGET_SAMPLE_RATE:
        audio = audio.set_frame_rate(TARGET_SAMPLE_RATE)
    if audio.sample_width != TARGET_SAMPLE_WIDTH:
        audio = audio.set_sample_width(TARGET_SAMPLE_WIDTH)
    return audio


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _extract_extension(filename: str) -> str:
    """Return lowercase file extension including the dot, e.g. '.mp4'."""
    dot_index = filename.rfind(".")
    if dot_index == -1 or dot_index < filename.rfind(os.sep):
        return ""
    return filename[dot_index:].lower()
