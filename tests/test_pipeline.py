"""
tests/test_pipeline.py
=======================
Pipeline Service Tests

Test categories:
    1. Transcription jobs (success, failure, video status, confirmation reset,
       detected language)
    2. Confirmation gate and translation jobs (partial warnings, upsert)
    3. Segment edits (switch alternative, user edit, delete cascade)
    4. Timeouts (no late output) and manual retry
    5. Dubbing jobs (per-job voice)
    6. SRT export and concurrent videos

All tests are offline — audio extraction, recognizers, translators and
TTS are injected fakes. Async triggers are driven with asyncio.run.
"""

import asyncio
import os
import sys
import tempfile
import time
import unittest
from unittest.mock import MagicMock

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dubline.errors import ErrorCode, ProviderError
from dubline.media import UnsupportedMediaError, extract_audio
from dubline.models import JobStage, JobStatus, VideoStatus
from dubline.pipeline import PipelineService
from dubline.providers.base import RecognitionResult, RecognizedSegment
from dubline.storage import InMemoryRepository
from dubline.transcription import LanguageDetectionResult, ReconcileState, TranscriptionReconciler
from dubline.translation import BatchTranslator


# ===================================================================
# Fixtures
# ===================================================================

WHISPER = "openai-whisper"
GEMINI_STT = "gemini-2.5-pro"
GEMINI = "gemini-2.5-pro"
GPT = "openai-gpt"

FULL_RESPONSE = "SEGMENT_0: I eat rice.\nSEGMENT_1: What will you eat?\nSEGMENT_2: Let's go."


def _whisper_result() -> RecognitionResult:
    return RecognitionResult(
        provider_name=WHISPER,
        text="আমি ভাত খাই। তুমি কি খাবে? চলো যাই।",
        segments=[
            RecognizedSegment("আমি ভাত খাই।", 0.0, 2.0, raw_confidence=0.9),
            RecognizedSegment("তুমি কি খাবে?", 2.5, 4.0, raw_confidence=0.9),
            RecognizedSegment("চলো যাই।", 4.5, 6.0, raw_confidence=0.9),
        ],
    )


def _gemini_stt_result() -> RecognitionResult:
    return RecognitionResult(
        provider_name=GEMINI_STT,
        text="আমি ভাত খাই",
        segments=[RecognizedSegment("আমি ভাত খাই", 0.1, 1.9, raw_confidence=0.85)],
        raw_confidence=0.85,
    )


def _detected(code: str, confidence: float) -> LanguageDetectionResult:
    names = {"bn": "Bengali", "hi": "Hindi", "en": "English"}
    return LanguageDetectionResult(code, names[code], confidence, provider_name=GEMINI)


def _translate_response(prompt: str, target_language: str) -> str:
    if "SEGMENT_2" in prompt:
        return FULL_RESPONSE
    return "SEGMENT_0: Let us go now."


class _Harness:
    """Builds a PipelineService wired to fakes."""

    def __init__(self, recognizers=None, translate=None, extractor=None, synthesize=None, detector=None, **kwargs):
        self.tmp = tempfile.TemporaryDirectory()
        self.recognizers = recognizers or {
            WHISPER: MagicMock(return_value=_whisper_result()),
            GEMINI_STT: MagicMock(return_value=_gemini_stt_result()),
        }
        self.primary = translate or MagicMock(side_effect=_translate_response)
        self.fallback = MagicMock(side_effect=ProviderError(GPT, "quota", status_code=429))
        self.synthesize = synthesize or MagicMock(return_value=b"mp3-bytes")
        self.extractor = extractor or MagicMock(return_value=(b"wav", 6.0))
        self.detector = detector or MagicMock(return_value=_detected("bn", 0.9))
        self.repository = InMemoryRepository()
        self.service = PipelineService(
            repository=self.repository,
            reconciler=TranscriptionReconciler(self.recognizers, max_retries=0),
            translator=BatchTranslator(
                {GEMINI: self.primary, GPT: self.fallback},
                primary=GEMINI,
                fallback=GPT,
                max_retries=0,
            ),
            audio_extractor=self.extractor,
            synthesize=self.synthesize,
            language_detector=self.detector,
            dubbing_output_dir=self.tmp.name,
            **kwargs,
        )

    def cleanup(self) -> None:
        self.tmp.cleanup()

    def transcribed_video(self, providers=None, confirm: bool = False) -> int:
        video = self.service.register_video("clip.mp4", providers or [WHISPER, GEMINI_STT])
        job = asyncio.run(self.service.start_transcription(video.id))
        assert job.status is JobStatus.COMPLETED, job.error
        if confirm:
            self.service.confirm_source(video.id)
        return video.id


class _PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self.h = _Harness()
        self.service = self.h.service

    def tearDown(self):
        self.h.cleanup()


# ===================================================================
# 1. Transcription
# ===================================================================


class TestTranscription(_PipelineTestCase):

    def test_success_stores_segments(self):
        video = self.service.register_video("clip.mp4", [WHISPER, GEMINI_STT])

        job = asyncio.run(self.service.start_transcription(video.id))

        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.stage, JobStage.TRANSCRIPTION)
        self.assertEqual(job.attempts, 1)
        self.assertIsNotNone(job.finished_at)
        segments = self.service.segments(video.id)
        self.assertEqual([s.text for s in segments], ["আমি ভাত খাই।", "তুমি কি খাবে?", "চলো যাই।"])
        self.assertTrue(all(s.source_job_id == job.id for s in segments))
        self.assertEqual(segments[0].alternative_text, "আমি ভাত খাই")
        self.assertIsNone(segments[1].alternative_text)

        stored = self.h.repository.get_video(video.id)
        self.assertEqual(stored.status, VideoStatus.COMPLETED)
        self.assertEqual(stored.duration, 6.0)
        self.assertFalse(stored.source_confirmed)
        self.h.extractor.assert_called_once_with("clip.mp4")

    def test_explicit_providers_override_video_selection(self):
        video = self.service.register_video("clip.mp4", [WHISPER, GEMINI_STT])
        job = asyncio.run(self.service.start_transcription(video.id, [GEMINI_STT]))

        self.assertEqual(job.providers, [GEMINI_STT])
        self.h.recognizers[WHISPER].assert_not_called()
        self.assertEqual(self.service.segments(video.id)[0].provider_name, GEMINI_STT)

    def test_failure_marks_video_failed(self):
        self.h.recognizers[WHISPER].side_effect = ProviderError(WHISPER, "busy", status_code=429)
        self.h.recognizers[GEMINI_STT].side_effect = ProviderError(GEMINI_STT, "busy", status_code=429)
        video = self.service.register_video("clip.mp4", [WHISPER, GEMINI_STT])

        job = asyncio.run(self.service.start_transcription(video.id))

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error.code, ErrorCode.ALL_PROVIDERS_FAILED)
        stored = self.h.repository.get_video(video.id)
        self.assertEqual(stored.status, VideoStatus.FAILED)
        self.assertEqual(stored.error, job.error)
        self.assertEqual(self.service.segments(video.id), [])

    def test_bad_media_not_retryable(self):
        self.h.extractor.side_effect = UnsupportedMediaError("Unsupported format: could not decode clip.xyz")
        video = self.service.register_video("clip.xyz", [WHISPER])

        job = asyncio.run(self.service.start_transcription(video.id))

        self.assertEqual(job.error.code, ErrorCode.UNSUPPORTED_FORMAT)
        self.assertFalse(job.error.retryable)
        self.h.recognizers[WHISPER].assert_not_called()

    def test_retranscription_resets_confirmation(self):
        video_id = self.h.transcribed_video(confirm=True)
        self.assertTrue(self.h.repository.get_video(video_id).source_confirmed)

        asyncio.run(self.service.start_transcription(video_id))

        self.assertFalse(self.h.repository.get_video(video_id).source_confirmed)
        self.assertEqual(len(self.service.segments(video_id)), 3)

    def test_gap_warning(self):
        self.h.recognizers[WHISPER].return_value = RecognitionResult(
            WHISPER,
            "এক দুই",
            [RecognizedSegment("এক", 0.0, 1.0), RecognizedSegment("দুই", 1.02, 2.0)],
        )
        video = self.service.register_video("clip.mp4", [WHISPER])
        job = asyncio.run(self.service.start_transcription(video.id))
        self.assertIn("1 subtitle gap(s) shorter than two frames", job.warnings)

    def test_job_to_dict(self):
        video = self.service.register_video("clip.mp4", [WHISPER])
        data = asyncio.run(self.service.start_transcription(video.id)).to_dict()
        self.assertEqual(data["status"], "completed")
        self.assertIsNone(data["error"])

    def test_reconciled_run_reported_as_completed(self):
        video = self.service.register_video("clip.mp4", [WHISPER])
        result = self.service.reconciler.reconcile(b"wav", [WHISPER], 6.0)
        job = asyncio.run(self.service.start_transcription(video.id))
        self.assertIs(result.state, ReconcileState.RECONCILED)
        self.assertIs(job.status, JobStatus.COMPLETED)


class TestLanguageDetection(_PipelineTestCase):

    def test_detected_language_recorded(self):
        video_id = self.h.transcribed_video()

        video = self.h.repository.get_video(video_id)
        self.assertEqual(video.detected_language, "bn")
        self.assertEqual(video.language_confidence, 0.9)
        self.h.detector.assert_called_once_with(b"wav")

    def test_other_language_warns_but_transcribes(self):
        self.h.detector.return_value = _detected("hi", 0.88)
        video = self.service.register_video("clip.mp4", [WHISPER])

        job = asyncio.run(self.service.start_transcription(video.id))

        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertIn(
            "LANGUAGE_MISMATCH: detected Hindi (hi, confidence 0.88); transcribing as Bengali",
            job.warnings,
        )
        self.assertEqual(self.h.repository.get_video(video.id).detected_language, "hi")
        self.assertEqual(len(self.service.segments(video.id)), 3)

    def test_detection_runs_before_recognizers(self):
        calls = []
        self.h.detector.side_effect = lambda audio: calls.append("detect") or _detected("bn", 0.9)
        self.h.recognizers[WHISPER].side_effect = lambda audio: calls.append("recognize") or _whisper_result()
        video = self.service.register_video("clip.mp4", [WHISPER])

        asyncio.run(self.service.start_transcription(video.id))

        self.assertEqual(calls, ["detect", "recognize"])

    def test_detection_disabled(self):
        repository = InMemoryRepository()
        service = PipelineService(
            repository=repository,
            reconciler=TranscriptionReconciler(
                {WHISPER: MagicMock(return_value=_whisper_result())}, max_retries=0,
            ),
            audio_extractor=MagicMock(return_value=(b"wav", 6.0)),
            detect_language=False,
        )
        video = service.register_video("clip.mp4", [WHISPER])

        job = asyncio.run(service.start_transcription(video.id))

        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertIsNone(repository.get_video(video.id).detected_language)


# ===================================================================
# 2. Confirmation and translation
# ===================================================================


class TestTranslation(_PipelineTestCase):

    def test_translation_before_confirmation_fails(self):
        video_id = self.h.transcribed_video()

        job = asyncio.run(self.service.translate(video_id, "en"))

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error.code, ErrorCode.NOT_CONFIRMED)
        self.assertFalse(job.error.retryable)
        self.h.primary.assert_not_called()
        self.assertEqual(self.service.translations(video_id, "en"), [])

    def test_confirm_requires_segments(self):
        video = self.service.register_video("clip.mp4")
        with self.assertRaises(ValueError):
            self.service.confirm_source(video.id)

    def test_unconfirm(self):
        video_id = self.h.transcribed_video(confirm=True)
        self.service.unconfirm_source(video_id)
        job = asyncio.run(self.service.translate(video_id, "en"))
        self.assertEqual(job.error.code, ErrorCode.NOT_CONFIRMED)

    def test_translation_stored(self):
        video_id = self.h.transcribed_video(confirm=True)

        job = asyncio.run(self.service.translate(video_id, "en"))

        self.assertEqual(job.status, JobStatus.COMPLETED)
        translations = self.service.translations(video_id, "en")
        self.assertEqual([t.text for t in translations], ["I eat rice.", "What will you eat?", "Let's go."])
        self.assertTrue(all(t.provider_name == GEMINI for t in translations))

    def test_partial_translation_warning(self):
        self.h.primary.side_effect = None
        self.h.primary.return_value = "SEGMENT_0: I eat rice.\nSEGMENT_2: Let's go."
        video_id = self.h.transcribed_video(confirm=True)

        job = asyncio.run(self.service.translate(video_id, "en"))

        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(len(self.service.translations(video_id, "en")), 2)
        self.assertTrue(job.warnings[0].startswith("PARTIAL_TRANSLATION: 1 of 3"))

    def test_translating_twice_upserts(self):
        video_id = self.h.transcribed_video(confirm=True)
        asyncio.run(self.service.translate(video_id, "en"))
        asyncio.run(self.service.translate(video_id, "en"))

        for segment in self.service.segments(video_id):
            self.assertEqual(len(self.h.repository.list_translations(segment.id)), 1)

    def test_retranslate_single_segment(self):
        video_id = self.h.transcribed_video(confirm=True)
        asyncio.run(self.service.translate(video_id, "en"))
        last = self.service.segments(video_id)[-1]

        job = asyncio.run(self.service.retranslate(last.id, "en"))

        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.segment_id, last.id)
        self.assertEqual(self.h.repository.get_translation(last.id, "en").text, "Let us go now.")
        self.assertEqual(len(self.h.repository.list_translations(last.id)), 1)
        self.assertEqual(len(self.service.translations(video_id, "en")), 3)

    def test_all_translation_providers_failed(self):
        self.h.primary.side_effect = ProviderError(GEMINI, "quota", status_code=429)
        video_id = self.h.transcribed_video(confirm=True)

        job = asyncio.run(self.service.translate(video_id, "en"))

        self.assertEqual(job.error.code, ErrorCode.ALL_PROVIDERS_FAILED)
        self.assertTrue(job.error.retryable)
        # Translation failures leave the video itself completed
        self.assertEqual(self.h.repository.get_video(video_id).status, VideoStatus.COMPLETED)


# ===================================================================
# 3. Segment edits
# ===================================================================


class TestSegmentEdits(_PipelineTestCase):

    def test_switch_alternative_toggles(self):
        video_id = self.h.transcribed_video()
        first = self.service.segments(video_id)[0]

        switched = self.service.switch_alternative(first.id)
        self.assertEqual(switched.text, "আমি ভাত খাই")
        self.assertEqual(switched.alternative_text, "আমি ভাত খাই।")
        self.assertEqual(switched.provider_name, GEMINI_STT)
        self.assertTrue(switched.is_alternative_selected)

        back = self.service.switch_alternative(first.id)
        self.assertEqual(back.text, "আমি ভাত খাই।")
        self.assertEqual(back.provider_name, WHISPER)
        self.assertFalse(back.is_alternative_selected)

    def test_switch_without_alternative(self):
        video_id = self.h.transcribed_video()
        second = self.service.segments(video_id)[1]
        with self.assertRaises(ValueError):
            self.service.switch_alternative(second.id)

    def test_update_text_rescored(self):
        video_id = self.h.transcribed_video()
        segment = self.service.segments(video_id)[1]

        updated = self.service.update_segment_text(segment.id, "  তুমি  কী খাবে?  ")

        self.assertEqual(updated.text, "তুমি কী খাবে?")
        self.assertGreaterEqual(updated.confidence, 0.0)
        self.assertLessEqual(updated.confidence, 1.0)

    def test_update_rejects_empty_text(self):
        video_id = self.h.transcribed_video()
        segment = self.service.segments(video_id)[0]
        with self.assertRaises(ValueError):
            self.service.update_segment_text(segment.id, "   ")

    def test_delete_cascades_translations(self):
        video_id = self.h.transcribed_video(confirm=True)
        asyncio.run(self.service.translate(video_id, "en"))
        first = self.service.segments(video_id)[0]

        self.service.delete_segment(first.id)

        self.assertEqual(len(self.service.segments(video_id)), 2)
        self.assertEqual(self.h.repository.list_translations(first.id), [])


# ===================================================================
# 4. Timeouts and retry
# ===================================================================


class TestTimeoutAndRetry(unittest.TestCase):

    def test_timeout_marks_job_and_discards_output(self):
        def slow_extract(path):
            time.sleep(0.3)
            return b"wav", 6.0

        h = _Harness(extractor=MagicMock(side_effect=slow_extract), transcription_timeout=0.05)
        try:
            video = h.service.register_video("clip.mp4", [WHISPER])
            job = asyncio.run(h.service.start_transcription(video.id))

            self.assertEqual(job.status, JobStatus.FAILED)
            self.assertEqual(job.error.code, ErrorCode.JOB_TIMEOUT)
            self.assertTrue(job.error.retryable)
            self.assertEqual(h.service.segments(video.id), [])
            self.assertEqual(h.repository.get_video(video.id).status, VideoStatus.FAILED)
        finally:
            h.cleanup()

    def test_dubbing_timeout_writes_no_audio(self):
        def slow_tts(text, voice_id):
            time.sleep(0.3)
            return b"late-mp3"

        h = _Harness(synthesize=MagicMock(side_effect=slow_tts), dubbing_timeout=0.05)
        try:
            video_id = h.transcribed_video(confirm=True)
            asyncio.run(h.service.translate(video_id, "en"))

            # asyncio.run joins the worker thread before returning
            dubbing_job = asyncio.run(h.service.start_dubbing(video_id, "en", "voice-123"))

            self.assertEqual(dubbing_job.status, JobStatus.FAILED)
            self.assertEqual(dubbing_job.error.code, ErrorCode.JOB_TIMEOUT)
            self.assertIsNone(dubbing_job.audio_path)
            h.synthesize.assert_called_once()
            self.assertEqual(os.listdir(h.tmp.name), [])
        finally:
            h.cleanup()

    def test_missing_media_named_like_quota_not_retried(self):
        h = _Harness(extractor=extract_audio)
        try:
            video = h.service.register_video("/uploads/quota-talk.mp4", [WHISPER])
            job = asyncio.run(h.service.start_transcription(video.id))

            self.assertEqual(job.error.code, ErrorCode.FILE_NOT_FOUND)
            self.assertFalse(job.error.retryable)
            with self.assertRaises(ValueError):
                asyncio.run(h.service.retry(job.id))
            h.recognizers[WHISPER].assert_not_called()
        finally:
            h.cleanup()

    def test_retry_failed_transcription(self):
        h = _Harness()
        try:
            h.recognizers[WHISPER].side_effect = ProviderError(WHISPER, "busy", status_code=429)
            video = h.service.register_video("clip.mp4", [WHISPER])
            job = asyncio.run(h.service.start_transcription(video.id))
            self.assertEqual(job.status, JobStatus.FAILED)

            h.recognizers[WHISPER].side_effect = None
            retried = asyncio.run(h.service.retry(job.id))

            self.assertIs(retried, job)
            self.assertEqual(retried.status, JobStatus.COMPLETED)
            self.assertEqual(retried.attempts, 2)
            self.assertIsNone(retried.error)
            self.assertEqual(len(h.service.segments(video.id)), 3)
            self.assertEqual(h.repository.get_video(video.id).status, VideoStatus.COMPLETED)
        finally:
            h.cleanup()

    def test_retry_completed_job_rejected(self):
        h = _Harness()
        try:
            video = h.service.register_video("clip.mp4", [WHISPER])
            job = asyncio.run(h.service.start_transcription(video.id))
            with self.assertRaises(ValueError):
                asyncio.run(h.service.retry(job.id))
        finally:
            h.cleanup()

    def test_retry_non_retryable_rejected(self):
        h = _Harness(extractor=MagicMock(side_effect=UnsupportedMediaError("Unsupported format: x")))
        try:
            video = h.service.register_video("clip.xyz", [WHISPER])
            job = asyncio.run(h.service.start_transcription(video.id))
            with self.assertRaises(ValueError):
                asyncio.run(h.service.retry(job.id))
        finally:
            h.cleanup()

    def test_not_confirmed_retry_after_confirmation(self):
        h = _Harness()
        try:
            video_id = h.transcribed_video()
            job = asyncio.run(h.service.translate(video_id, "en"))
            with self.assertRaises(ValueError):
                asyncio.run(h.service.retry(job.id))

            h.service.confirm_source(video_id)
            retried = asyncio.run(h.service.retry(job.id))

            self.assertEqual(retried.status, JobStatus.COMPLETED)
            self.assertEqual(len(h.service.translations(video_id, "en")), 3)
        finally:
            h.cleanup()


# ===================================================================
# 5. Dubbing
# ===================================================================


class TestDubbing(_PipelineTestCase):

    def test_dubbing_uses_job_voice(self):
        video_id = self.h.transcribed_video(confirm=True)
        asyncio.run(self.service.translate(video_id, "en"))

        dubbing_job = asyncio.run(self.service.start_dubbing(video_id, "en", "voice-123"))

        self.assertEqual(dubbing_job.status, JobStatus.COMPLETED)
        self.assertEqual(dubbing_job.voice_id, "voice-123")
        self.assertTrue(os.path.isfile(dubbing_job.audio_path))
        script, voice = self.h.synthesize.call_args.args
        self.assertEqual(voice, "voice-123")
        self.assertEqual(script, "I eat rice. ... What will you eat? ... Let's go.")

    def test_two_jobs_keep_their_own_voice(self):
        video_id = self.h.transcribed_video(confirm=True)
        asyncio.run(self.service.translate(video_id, "en"))

        asyncio.run(self.service.start_dubbing(video_id, "en", "voice-a"))
        asyncio.run(self.service.start_dubbing(video_id, "en", "voice-b"))

        voices = [c.args[1] for c in self.h.synthesize.call_args_list]
        self.assertEqual(voices, ["voice-a", "voice-b"])

    def test_dubbing_without_translations_fails(self):
        video_id = self.h.transcribed_video()

        dubbing_job = asyncio.run(self.service.start_dubbing(video_id, "hi", "voice-123"))

        self.assertEqual(dubbing_job.status, JobStatus.FAILED)
        self.assertIsNotNone(dubbing_job.error)
        self.assertIsNone(dubbing_job.audio_path)
        self.h.synthesize.assert_not_called()


# ===================================================================
# 6. SRT export and concurrency
# ===================================================================


class TestExportAndConcurrency(_PipelineTestCase):

    def test_bengali_srt(self):
        video_id = self.h.transcribed_video()
        srt = self.service.export_srt(video_id)
        self.assertTrue(srt.startswith("1\n00:00:00,000 --> 00:00:02,000\nআমি ভাত খাই।\n"))
        self.assertIn("\n3\n00:00:04,500 --> 00:00:06,000\nচলো যাই।\n", srt)

    def test_translated_srt_falls_back_to_bengali(self):
        self.h.primary.side_effect = None
        self.h.primary.return_value = "SEGMENT_0: I eat rice.\nSEGMENT_2: Let's go."
        video_id = self.h.transcribed_video(confirm=True)
        asyncio.run(self.service.translate(video_id, "en"))

        srt = self.service.export_srt(video_id, "en")

        self.assertIn("I eat rice.", srt)
        self.assertIn("তুমি কি খাবে?", srt)
        self.assertIn("Let's go.", srt)

    def test_export_without_segments(self):
        video = self.service.register_video("clip.mp4")
        with self.assertRaises(ValueError):
            self.service.export_srt(video.id)

    def test_videos_processed_concurrently(self):
        first = self.service.register_video("a.mp4", [WHISPER])
        second = self.service.register_video("b.mp4", [WHISPER])

        async def run_both():
            return await asyncio.gather(
                self.service.start_transcription(first.id),
                self.service.start_transcription(second.id),
            )

        jobs = asyncio.run(run_both())

        self.assertTrue(all(j.status is JobStatus.COMPLETED for j in jobs))
        self.assertEqual(len(self.service.segments(first.id)), 3)
        self.assertEqual(len(self.service.segments(second.id)), 3)


if __name__ == "__main__":
    unittest.main()
