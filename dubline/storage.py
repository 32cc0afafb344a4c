"""
dubline/storage.py
===================
Persistence Contract & In-Memory Repository — Dubline

Responsibility:
    - Define the persistence contract the pipeline depends on
    - Provide a thread-safe in-memory implementation of that contract
    - Enforce uniqueness of Translation on (segment_id, target_language)
      via upsert semantics so concurrent retries never duplicate rows
    - Cascade-delete a segment's translations when the segment is deleted

A relational backend only needs to implement ``Repository``; the pipeline
never touches storage internals.

This module does NOT:
    - Validate subtitle standards or compute confidence
    - Call providers
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod

from dubline.models import (
    DubbingJob,
    JobStage,
    PipelineJob,
    TranscriptionSegment,
    Translation,
    Video,
)

logger = logging.getLogger("dubline.storage")


class RecordNotFoundError(LookupError):
    """Raised when a requested record does not exist."""


class ConstraintViolationError(Exception):
    """Raised when a write would break a storage constraint."""


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class Repository(ABC):
    """Contract for pipeline persistence."""

    # Videos
    @abstractmethod
    def create_video(self, source_path: str, selected_providers: list[str] | None = None) -> Video: ...

    @abstractmethod
    def get_video(self, video_id: int) -> Video: ...

    @abstractmethod
    def save_video(self, video: Video) -> None: ...

    # Segments
    @abstractmethod
    def replace_segments(self, video_id: int, segments: list[TranscriptionSegment]) -> list[TranscriptionSegment]:
        """Drop the video's segments (and their translations) and insert new ones."""

    @abstractmethod
    def get_segment(self, segment_id: int) -> TranscriptionSegment: ...

    @abstractmethod
    def list_segments(self, video_id: int) -> list[TranscriptionSegment]:
        """Return the video's segments in time order."""

    @abstractmethod
    def save_segment(self, segment: TranscriptionSegment) -> None: ...

    @abstractmethod
    def delete_segment(self, segment_id: int) -> None: ...

    # Translations
    @abstractmethod
    def upsert_translation(
        self,
        segment_id: int,
        target_language: str,
        text: str,
        confidence: float,
        provider_name: str,
    ) -> Translation: ...

    @abstractmethod
    def get_translation(self, segment_id: int, target_language: str) -> Translation | None: ...

    @abstractmethod
    def list_translations(self, segment_id: int) -> list[Translation]: ...

    # Jobs
    @abstractmethod
    def create_job(
        self,
        video_id: int,
        stage: JobStage,
        providers: list[str] | None = None,
        target_language: str | None = None,
    ) -> PipelineJob: ...

    @abstractmethod
    def get_job(self, job_id: int) -> PipelineJob: ...

    @abstractmethod
    def save_job(self, job: PipelineJob) -> None: ...

    @abstractmethod
    def list_jobs(self, video_id: int) -> list[PipelineJob]: ...

    @abstractmethod
    def create_dubbing_job(self, video_id: int, language: str, voice_id: str) -> DubbingJob: ...

    @abstractmethod
    def get_dubbing_job(self, dubbing_job_id: int) -> DubbingJob: ...

    @abstractmethod
    def save_dubbing_job(self, job: DubbingJob) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryRepository(Repository):
    """Dict-backed repository guarded by one re-entrant lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._videos: dict[int, Video] = {}
        self._segments: dict[int, TranscriptionSegment] = {}
        self._translations: dict[tuple[int, str], Translation] = {}
        self._jobs: dict[int, PipelineJob] = {}
        self._dubbing_jobs: dict[int, DubbingJob] = {}

        self._video_ids = itertools.count(1)
        self._segment_ids = itertools.count(1)
        self._translation_ids = itertools.count(1)
        self._job_ids = itertools.count(1)
        self._dubbing_ids = itertools.count(1)

    # -- videos -------------------------------------------------------------

    def create_video(self, source_path: str, selected_providers: list[str] | None = None) -> Video:
        with self._lock:
            video = Video(
                id=next(self._video_ids),
                source_path=source_path,
                selected_providers=list(selected_providers or []),
            )
            self._videos[video.id] = video
            return video

    def get_video(self, video_id: int) -> Video:
        with self._lock:
            try:
                return self._videos[video_id]
            except KeyError:
                raise RecordNotFoundError(f"Video {video_id} not found") from None

    def save_video(self, video: Video) -> None:
        with self._lock:
            self._videos[video.id] = video

    # -- segments -----------------------------------------------------------

    def replace_segments(self, video_id: int, segments: list[TranscriptionSegment]) -> list[TranscriptionSegment]:
        with self._lock:
            for segment in segments:
                if not segment.text or not segment.text.strip():
                    raise ConstraintViolationError(
                        'null value in column "text" violates not-null constraint'
                    )

            stale = [s.id for s in self._segments.values() if s.video_id == video_id]
            for segment_id in stale:
                self._delete_segment_locked(segment_id)
            if stale:
                logger.info("Replaced %d existing segment(s) for video %d.", len(stale), video_id)

            stored: list[TranscriptionSegment] = []
            for segment in sorted(segments, key=lambda s: (s.start_time, s.end_time)):
                segment.id = next(self._segment_ids)
                segment.video_id = video_id
                self._segments[segment.id] = segment
                stored.append(segment)
            return stored

    def get_segment(self, segment_id: int) -> TranscriptionSegment:
        with self._lock:
            try:
                return self._segments[segment_id]
            except KeyError:
                raise RecordNotFoundError(f"Transcription segment {segment_id} not found") from None

    def list_segments(self, video_id: int) -> list[TranscriptionSegment]:
        with self._lock:
            return sorted(
                (s for s in self._segments.values() if s.video_id == video_id),
                key=lambda s: (s.start_time, s.end_time, s.id),
            )

    def save_segment(self, segment: TranscriptionSegment) -> None:
        with self._lock:
            if segment.id not in self._segments:
                raise RecordNotFoundError(f"Transcription segment {segment.id} not found")
            if not segment.text or not segment.text.strip():
                raise ConstraintViolationError(
                    'null value in column "text" violates not-null constraint'
                )
            self._segments[segment.id] = segment

    def delete_segment(self, segment_id: int) -> None:
        with self._lock:
            if segment_id not in self._segments:
                raise RecordNotFoundError(f"Transcription segment {segment_id} not found")
            self._delete_segment_locked(segment_id)

    def _delete_segment_locked(self, segment_id: int) -> None:
        del self._segments[segment_id]
        for key in [k for k in self._translations if k[0] == segment_id]:
            del self._translations[key]

    # -- translations -------------------------------------------------------

    def upsert_translation(
        self,
        segment_id: int,
        target_language: str,
        text: str,
        confidence: float,
        provider_name: str,
    ) -> Translation:
        with self._lock:
            if segment_id not in self._segments:
                raise ConstraintViolationError(
                    f"insert on translations violates foreign key constraint: "
                    f"segment {segment_id} does not exist"
                )
            key = (segment_id, target_language)
            existing = self._translations.get(key)
            if existing is not None:
                existing.text = text
                existing.confidence = confidence
                existing.provider_name = provider_name
                return existing

            translation = Translation(
                id=next(self._translation_ids),
                segment_id=segment_id,
                target_language=target_language,
                text=text,
                confidence=confidence,
                provider_name=provider_name,
            )
            self._translations[key] = translation
            return translation

    def get_translation(self, segment_id: int, target_language: str) -> Translation | None:
        with self._lock:
            return self._translations.get((segment_id, target_language))

    def list_translations(self, segment_id: int) -> list[Translation]:
        with self._lock:
            return sorted(
                (t for (sid, _), t in self._translations.items() if sid == segment_id),
                key=lambda t: t.target_language,
            )

    # -- jobs ---------------------------------------------------------------

    def create_job(
        self,
        video_id: int,
        stage: JobStage,
        providers: list[str] | None = None,
        target_language: str | None = None,
    ) -> PipelineJob:
        with self._lock:
            job = PipelineJob(
                id=next(self._job_ids),
                video_id=video_id,
                stage=stage,
                providers=list(providers or []),
                target_language=target_language,
            )
            self._jobs[job.id] = job
            return job

    def get_job(self, job_id: int) -> PipelineJob:
        with self._lock:
            try:
                return self._jobs[job_id]
            except KeyError:
                raise RecordNotFoundError(f"Job {job_id} not found") from None

    def save_job(self, job: PipelineJob) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def list_jobs(self, video_id: int) -> list[PipelineJob]:
        with self._lock:
            return sorted(
                (j for j in self._jobs.values() if j.video_id == video_id),
                key=lambda j: j.id,
            )

    def create_dubbing_job(self, video_id: int, language: str, voice_id: str) -> DubbingJob:
        with self._lock:
            job = DubbingJob(
                id=next(self._dubbing_ids),
                video_id=video_id,
                language=language,
                voice_id=voice_id,
            )
            self._dubbing_jobs[job.id] = job
            return job

    def get_dubbing_job(self, dubbing_job_id: int) -> DubbingJob:
        with self._lock:
            try:
                return self._dubbing_jobs[dubbing_job_id]
            except KeyError:
                raise RecordNotFoundError(f"Dubbing job {dubbing_job_id} not found") from None

    def save_dubbing_job(self, job: DubbingJob) -> None:
        with self._lock:
            self._dubbing_jobs[job.id] = job
