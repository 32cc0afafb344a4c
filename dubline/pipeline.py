"""
dubline/pipeline.py
====================
Pipeline Service — Dubline Job Runner

Responsibility:
    - Expose the job trigger points (transcribe, confirm, translate,
      retranslate, switch alternative, edit, retry, dub, export SRT)
    - Run each stage off the event loop (asyncio.to_thread) under a
      stage timeout (asyncio.wait_for)
    - Persist stage output only after the stage finished in time
    - Record a classified error on every failed job
    - Record the detected spoken language on the video before transcribing

Stage execution:
    compute  → runs in a worker thread (media, providers, scoring)
    commit   → runs on the event loop once compute returned in time
               (records, dubbing audio files)

A timed-out stage is marked JOB_TIMEOUT; its worker thread is not
interrupted, but its output is never committed.

This module does NOT:
    - Talk to providers directly (see dubline.transcription / dubline.translation)
    - Serve HTTP
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from dubline import config
from dubline import dubbing as dubbing_mod
from dubline.errors import (
    ErrorClassification,
    ErrorCode,
    PipelineError,
    classify,
)
from dubline.media import extract_audio
from dubline.models import (
    DubbingJob,
    JobStage,
    JobStatus,
    PipelineJob,
    TranscriptionSegment,
    Translation,
    Video,
    VideoStatus,
)
from dubline.scoring import confidence
from dubline.storage import InMemoryRepository, Repository
from dubline.subtitles import standards
from dubline.subtitles.srt import render_srt
from dubline.subtitles.standards import TimedText
from dubline.transcription import language as language_mod
from dubline.transcription.language import LanguageDetectionResult
from dubline.transcription.reconciler import (
    ReconcileState,
    ReconciliationResult,
    TranscriptionReconciler,
)
from dubline.translation.batch import BatchTranslationResult, BatchTranslator

logger = logging.getLogger("dubline.pipeline")

# Raw confidence given to text typed in by a user
USER_EDIT_RAW_CONFIDENCE: float = 1.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timeout_classification(stage: JobStage, seconds: float) -> ErrorClassification:
    return ErrorClassification(
        code=ErrorCode.JOB_TIMEOUT,
        message=f"The {stage.value} stage did not finish within {seconds:.0f} seconds. Please retry.",
        retryable=True,
    )


class PipelineService:
    """
    Per-video pipeline: transcribe → confirm → translate → dub.

    Every ``async`` trigger returns the job in a terminal state. Run several
    videos concurrently by scheduling triggers with ``asyncio.create_task``.
    """

    def __init__(
        self,
        repository: Repository | None = None,
        reconciler: TranscriptionReconciler | None = None,
        translator: BatchTranslator | None = None,
        audio_extractor: Callable[[str], tuple[bytes, float]] | None = None,
        synthesize: Callable[[str, str], bytes] | None = None,
        language_detector: Callable[[bytes], LanguageDetectionResult] | None = None,
        detect_language: bool = config.LANGUAGE_DETECTION_ENABLED,
        transcription_timeout: float = config.TRANSCRIPTION_TIMEOUT_SECONDS,
        translation_timeout: float = config.TRANSLATION_TIMEOUT_SECONDS,
        dubbing_timeout: float = config.DUBBING_TIMEOUT_SECONDS,
        dubbing_output_dir: str = config.DUBBING_OUTPUT_DIR,
        is_youth: bool = config.YOUTH_CONTENT,
    ):
        self.repository = repository or InMemoryRepository()
        self.reconciler = reconciler or TranscriptionReconciler(is_youth=is_youth)
        self.translator = translator or BatchTranslator(is_youth=is_youth)
        self._extract_audio = audio_extractor or extract_audio
        self._synthesize = synthesize
        self._detect_language = language_detector or (language_mod.detect_language if detect_language else None)
        self._timeouts = {
            JobStage.TRANSCRIPTION: transcription_timeout,
            JobStage.TRANSLATION: translation_timeout,
            JobStage.DUBBING: dubbing_timeout,
        }
        self._dubbing_output_dir = dubbing_output_dir
        self._is_youth = is_youth

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------

    def register_video(self, source_path: str, providers: list[str] | None = None) -> Video:
        video = self.repository.create_video(source_path, providers or list(config.DEFAULT_STT_PROVIDERS))
        logger.info("Registered video %d: %s", video.id, source_path)
        return video

    def segments(self, video_id: int) -> list[TranscriptionSegment]:
        return self.repository.list_segments(video_id)

    def translations(self, video_id: int, target_language: str) -> list[Translation]:
        out: list[Translation] = []
        for segment in self.repository.list_segments(video_id):
            translation = self.repository.get_translation(segment.id, target_language)
            if translation is not None:
                out.append(translation)
        return out

    # ------------------------------------------------------------------
    # Stage runner
    # ------------------------------------------------------------------

    async def _run_stage(
        self,
        job: PipelineJob,
        compute: Callable[[], Any],
        commit: Callable[[Any], None],
    ) -> PipelineJob:
        timeout = self._timeouts[job.stage]
        job.status = JobStatus.RUNNING
        job.error = None
        job.warnings = []
        job.attempts += 1
        job.finished_at = None
        self.repository.save_job(job)
        logger.info("Job %d (%s, video %d) running, attempt %d.", job.id, job.stage.value, job.video_id, job.attempts)

        try:
            output = await asyncio.wait_for(asyncio.to_thread(compute), timeout=timeout)
            commit(output)
        except asyncio.TimeoutError:
            job.status = JobStatus.FAILED
            job.error = _timeout_classification(job.stage, timeout)
        except Exception as exc:
            job.status = JobStatus.FAILED
            job.error = classify(exc)
            if not isinstance(exc, PipelineError):
                logger.debug("Job %d raised %s", job.id, type(exc).__name__, exc_info=True)
        else:
            job.status = JobStatus.COMPLETED

        job.finished_at = _utcnow()
        self.repository.save_job(job)

        if job.status is JobStatus.FAILED:
            logger.error(
                "Job %d (%s) failed [%s, retryable=%s]: %s",
                job.id, job.stage.value, job.error.code.value, job.error.retryable, job.error.message,
            )
        else:
            logger.info("Job %d (%s) completed.", job.id, job.stage.value)
        return job

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    async def start_transcription(self, video_id: int, providers: list[str] | None = None) -> PipelineJob:
        """Transcribe the video's audio with the given providers (priority order)."""
        video = self.repository.get_video(video_id)
        selected = list(providers or video.selected_providers or config.DEFAULT_STT_PROVIDERS)
        video.selected_providers = selected
        self.repository.save_video(video)

        job = self.repository.create_job(video_id, JobStage.TRANSCRIPTION, providers=selected)
        return await self._run_transcription(job)

    async def _run_transcription(self, job: PipelineJob) -> PipelineJob:
        video = self.repository.get_video(job.video_id)
        video.status = VideoStatus.PROCESSING
        video.error = None
        self.repository.save_video(video)

        def compute() -> tuple[float, LanguageDetectionResult | None, ReconciliationResult]:
            audio_bytes, duration = self._extract_audio(video.source_path)
            detection = self._detect_language(audio_bytes) if self._detect_language else None
            return duration, detection, self.reconciler.reconcile(audio_bytes, job.providers, duration)

        def commit(output: tuple[float, LanguageDetectionResult | None, ReconciliationResult]) -> None:
            duration, detection, result = output
            video.duration = duration
            if detection is not None:
                self._record_language(video, job, detection)
            if result.state is ReconcileState.FAILED:
                raise PipelineError(result.error)
            self._store_segments(video, job, result)

        await self._run_stage(job, compute, commit)

        video = self.repository.get_video(job.video_id)
        if job.status is JobStatus.COMPLETED:
            video.status = VideoStatus.COMPLETED
            video.error = None
        else:
            video.status = VideoStatus.FAILED
            video.error = job.error
        self.repository.save_video(video)
        return job

    @staticmethod
    def _record_language(video: Video, job: PipelineJob, detection: LanguageDetectionResult) -> None:
        video.detected_language = detection.language_code
        video.language_confidence = detection.confidence
        if detection.language_code != config.SOURCE_LANGUAGE:
            # Providers are still asked for Bengali
            job.warnings.append(
                f"LANGUAGE_MISMATCH: detected {detection.language_name} ({detection.language_code}, "
                f"confidence {detection.confidence:.2f}); transcribing as Bengali"
            )

    def _store_segments(self, video: Video, job: PipelineJob, result: ReconciliationResult) -> None:
        records = [
            TranscriptionSegment(
                id=0,
                video_id=video.id,
                source_job_id=job.id,
                text=seg.text,
                start_time=seg.start_time,
                end_time=seg.end_time,
                confidence=seg.confidence,
                provider_name=seg.provider_name,
                alternative_text=seg.alternative_text,
                alternative_provider_name=seg.alternative_provider_name,
                speaker_id=seg.speaker_id,
                language=config.SOURCE_LANGUAGE,
            )
            for seg in result.segments
        ]
        stored = self.repository.replace_segments(video.id, records)

        # A new transcript must be confirmed again before translation
        video.source_confirmed = False
        self.repository.save_video(video)

        gaps = standards.find_gap_violations(stored)
        if gaps:
            job.warnings.append(f"{len(gaps)} subtitle gap(s) shorter than two frames")
        invalid = sum(1 for seg in result.segments if not seg.report.is_valid)
        if invalid:
            job.warnings.append(f"{invalid} segment(s) violate subtitle standards")
        logger.info("Stored %d segment(s) for video %d.", len(stored), video.id)

    # ------------------------------------------------------------------
    # Confirmation / edits
    # ------------------------------------------------------------------

    def confirm_source(self, video_id: int) -> Video:
        """Mark the Bengali transcript as confirmed, unlocking translation."""
        video = self.repository.get_video(video_id)
        if not self.repository.list_segments(video_id):
            raise ValueError(f"Video {video_id} has no transcription to confirm")
        video.source_confirmed = True
        self.repository.save_video(video)
        logger.info("Bengali transcript confirmed for video %d.", video_id)
        return video

    def unconfirm_source(self, video_id: int) -> Video:
        video = self.repository.get_video(video_id)
        video.source_confirmed = False
        self.repository.save_video(video)
        logger.info("Bengali transcript unconfirmed for video %d.", video_id)
        return video

    def switch_alternative(self, segment_id: int) -> TranscriptionSegment:
        """
        Swap a segment's text with its alternative and toggle the flag.

        The swapped-in text is not re-validated; confidence stays as scored
        for the authoritative provider.
        """
        segment = self.repository.get_segment(segment_id)
        if segment.alternative_text is None:
            raise ValueError(f"Transcription segment {segment_id} has no alternative text")

        segment.text, segment.alternative_text = segment.alternative_text, segment.text
        segment.provider_name, segment.alternative_provider_name = (
            segment.alternative_provider_name or segment.provider_name,
            segment.provider_name,
        )
        segment.is_alternative_selected = not segment.is_alternative_selected
        self.repository.save_segment(segment)
        return segment

    def update_segment_text(self, segment_id: int, text: str) -> TranscriptionSegment:
        """Replace a segment's text with a user edit and re-score it."""
        cleaned = " ".join((text or "").split())
        if not cleaned:
            raise ValueError("Segment text must be non-empty")

        segment = self.repository.get_segment(segment_id)
        report = standards.validate(cleaned, segment.start_time, segment.end_time, self._is_youth)
        segment.text = cleaned
        segment.confidence = confidence.score(
            USER_EDIT_RAW_CONFIDENCE,
            segment.provider_name,
            report.quality_score,
            len(cleaned),
            segment.duration,
        )
        self.repository.save_segment(segment)
        return segment

    def delete_segment(self, segment_id: int) -> None:
        """Delete a segment; its translations are deleted with it."""
        self.repository.delete_segment(segment_id)

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    async def translate(self, video_id: int, target_language: str) -> PipelineJob:
        """Batch-translate all confirmed segments of a video."""
        self.repository.get_video(video_id)
        job = self.repository.create_job(video_id, JobStage.TRANSLATION, target_language=target_language)
        return await self._run_translation(job)

    async def retranslate(self, segment_id: int, target_language: str) -> PipelineJob:
        """Re-translate one segment, overwriting its existing translation."""
        segment = self.repository.get_segment(segment_id)
        job = self.repository.create_job(segment.video_id, JobStage.TRANSLATION, target_language=target_language)
        job.segment_id = segment_id
        self.repository.save_job(job)
        return await self._run_translation(job)

    async def _run_translation(self, job: PipelineJob) -> PipelineJob:
        language = job.target_language

        def compute() -> BatchTranslationResult:
            video = self.repository.get_video(job.video_id)
            if job.segment_id is not None:
                segments = [self.repository.get_segment(job.segment_id)]
            else:
                segments = self.repository.list_segments(job.video_id)
            return self.translator.translate(video, segments, language)

        def commit(result: BatchTranslationResult) -> None:
            for item in result.translations:
                self.repository.upsert_translation(
                    item.segment_id, language, item.text, item.confidence, item.provider_name,
                )
            job.warnings.extend(result.warnings)

        return await self._run_stage(job, compute, commit)

    # ------------------------------------------------------------------
    # Dubbing
    # ------------------------------------------------------------------

    async def start_dubbing(self, video_id: int, language: str, voice_id: str | None = None) -> DubbingJob:
        """Render dubbing audio for one translated language with the given voice."""
        self.repository.get_video(video_id)
        dubbing_job = self.repository.create_dubbing_job(video_id, language, voice_id or config.DEFAULT_VOICE_ID)
        job = self.repository.create_job(video_id, JobStage.DUBBING, target_language=language)
        job.dubbing_job_id = dubbing_job.id
        self.repository.save_job(job)
        await self._run_dubbing(job)
        return self.repository.get_dubbing_job(dubbing_job.id)

    async def _run_dubbing(self, job: PipelineJob) -> PipelineJob:
        dubbing_job = self.repository.get_dubbing_job(job.dubbing_job_id)
        dubbing_job.status = JobStatus.RUNNING
        dubbing_job.error = None
        self.repository.save_dubbing_job(dubbing_job)

        def compute() -> bytes:
            texts = [t.text for t in self.translations(job.video_id, dubbing_job.language)]
            if not texts:
                raise ValueError(f"No translations found for language: {dubbing_job.language}")
            return dubbing_mod.synthesize_dubbing(texts, dubbing_job.voice_id, synthesize=self._synthesize)

        def commit(audio: bytes) -> None:
            output_path = dubbing_mod.output_path_for(dubbing_job.id, dubbing_job.language, self._dubbing_output_dir)
            dubbing_job.audio_path = dubbing_mod.write_audio(audio, output_path)

        await self._run_stage(job, compute, commit)

        dubbing_job.status = job.status
        dubbing_job.error = job.error
        self.repository.save_dubbing_job(dubbing_job)
        return job

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    async def retry(self, job_id: int) -> PipelineJob:
        """
        Re-run a failed job's stage with its original parameters.

        Raises:
            ValueError: The job is not failed, or its failure is not retryable.
        """
        job = self.repository.get_job(job_id)
        if job.status is not JobStatus.FAILED or job.error is None:
            raise ValueError(f"Job {job_id} is {job.status.value}; only failed jobs can be retried")

        retryable = job.error.retryable
        if job.error.code is ErrorCode.NOT_CONFIRMED:
            retryable = self.repository.get_video(job.video_id).source_confirmed
        if not retryable:
            raise ValueError(f"Job {job_id} failed with non-retryable error {job.error.code.value}")

        logger.info("Retrying job %d (%s).", job.id, job.stage.value)
        job.status = JobStatus.PENDING
        self.repository.save_job(job)

        if job.stage is JobStage.TRANSCRIPTION:
            return await self._run_transcription(job)
        if job.stage is JobStage.TRANSLATION:
            return await self._run_translation(job)
        return await self._run_dubbing(job)

    # ------------------------------------------------------------------
    # SRT export
    # ------------------------------------------------------------------

    def export_srt(self, video_id: int, language: str = config.SOURCE_LANGUAGE) -> str:
        """
        Render the transcript (``bn``) or a translation as SRT.

        Segments without a translation in ``language`` fall back to their
        Bengali text.
        """
        self.repository.get_video(video_id)
        segments = self.repository.list_segments(video_id)
        if not segments:
            raise ValueError(f"No transcription segments found for video {video_id}")

        entries: list[TimedText] = []
        untranslated = 0
        for segment in segments:
            text = segment.text
            if language != config.SOURCE_LANGUAGE:
                translation = self.repository.get_translation(segment.id, language)
                if translation is None:
                    untranslated += 1
                else:
                    text = translation.text
            entries.append(TimedText(text, segment.start_time, segment.end_time))

        if untranslated:
            logger.warning(
                "SRT export for video %d (%s): %d segment(s) untranslated, using Bengali text.",
                video_id, language, untranslated,
            )
        return render_srt(entries)
