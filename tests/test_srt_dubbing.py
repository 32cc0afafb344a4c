"""
tests/test_srt_dubbing.py
==========================
SRT Export & Dubbing Invoker Tests

Test categories:
    1. Timestamp formatting
    2. SRT rendering and file output
    3. Dubbing script assembly and rendering

All tests are offline — TTS is a fake callable, files go to a temp dir.
"""

import os
import sys
import tempfile
import unittest
from unittest.mock import MagicMock

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dubline.dubbing import (
    SEGMENT_JOINER,
    build_script,
    output_path_for,
    render_dubbing,
    synthesize_dubbing,
    write_audio,
)
from dubline.errors import ProviderError
from dubline.subtitles.srt import format_timestamp, render_srt, write_srt
from dubline.subtitles.standards import TimedText


# ===================================================================
# 1. Timestamps
# ===================================================================


class TestFormatTimestamp(unittest.TestCase):

    def test_zero(self):
        self.assertEqual(format_timestamp(0.0), "00:00:00,000")

    def test_hours_minutes_seconds(self):
        self.assertEqual(format_timestamp(3661.5), "01:01:01,500")

    def test_millisecond_carry(self):
        self.assertEqual(format_timestamp(59.9999), "00:01:00,000")

    def test_negative_clamped(self):
        self.assertEqual(format_timestamp(-2.0), "00:00:00,000")


# ===================================================================
# 2. SRT
# ===================================================================


class TestRenderSrt(unittest.TestCase):

    def test_numbered_cues(self):
        srt = render_srt([
            TimedText("আমি ভাত খাই।", 0.0, 2.0),
            TimedText("তুমি কি খাবে?", 2.5, 4.25),
        ])
        self.assertEqual(
            srt,
            "1\n00:00:00,000 --> 00:00:02,000\nআমি ভাত খাই।\n"
            "\n"
            "2\n00:00:02,500 --> 00:00:04,250\nতুমি কি খাবে?\n",
        )

    def test_blank_entries_skipped_and_numbering_continuous(self):
        srt = render_srt([
            TimedText("one", 0.0, 1.0),
            TimedText("   ", 1.0, 2.0),
            TimedText("two", 2.0, 3.0),
        ])
        self.assertIn("2\n00:00:02,000 --> 00:00:03,000\ntwo", srt)
        self.assertNotIn("3\n", srt)

    def test_long_text_wrapped_to_two_lines(self):
        text = " ".join(["subtitle"] * 10)
        cue = render_srt([TimedText(text, 0.0, 5.0)])
        body = cue.strip().split("\n")[2:]
        self.assertEqual(len(body), 2)
        self.assertTrue(all(len(line) <= 47 for line in body))

    def test_empty(self):
        self.assertEqual(render_srt([]), "")

    def test_write_srt(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "out.srt")
            write_srt([TimedText("হ্যালো", 0.0, 1.0)], path)
            with open(path, encoding="utf-8") as f:
                self.assertIn("হ্যালো", f.read())


# ===================================================================
# 3. Dubbing
# ===================================================================


class TestDubbing(unittest.TestCase):

    def test_build_script(self):
        self.assertEqual(build_script(["Hello.", "  ", "World. "]), "Hello." + SEGMENT_JOINER + "World.")

    def test_render_writes_audio(self):
        synthesize = MagicMock(return_value=b"mp3-bytes")
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "dub.mp3")
            result = render_dubbing(["Hello.", "World."], "voice-9", path, synthesize=synthesize)

            self.assertEqual(result, path)
            with open(path, "rb") as f:
                self.assertEqual(f.read(), b"mp3-bytes")
        synthesize.assert_called_once_with("Hello. ... World.", "voice-9")

    def test_synthesize_returns_bytes(self):
        synthesize = MagicMock(return_value=b"mp3-bytes")
        self.assertEqual(synthesize_dubbing(["Hello.", "World."], "voice-9", synthesize=synthesize), b"mp3-bytes")
        synthesize.assert_called_once_with("Hello. ... World.", "voice-9")

    def test_write_audio_creates_parents(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "a", "b", "dub.mp3")
            self.assertEqual(write_audio(b"abc", path), path)
            with open(path, "rb") as f:
                self.assertEqual(f.read(), b"abc")

    def test_render_requires_text(self):
        with self.assertRaises(ValueError):
            render_dubbing(["", "  "], "voice-9", "unused.mp3", synthesize=MagicMock())

    def test_provider_error_propagates(self):
        synthesize = MagicMock(side_effect=ProviderError("elevenlabs-tts", "quota", status_code=429))
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ProviderError):
                render_dubbing(["Hello."], "voice-9", os.path.join(tmp, "x.mp3"), synthesize=synthesize)
            self.assertFalse(os.path.exists(os.path.join(tmp, "x.mp3")))

    def test_output_path(self):
        self.assertEqual(
            output_path_for(7, "en", "out"),
            os.path.join("out", "dubbed_7_en.mp3"),
        )


if __name__ == "__main__":
    unittest.main()
