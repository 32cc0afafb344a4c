"""
dubline/models.py
==================
Pipeline Records — Dubline

Records emitted by the pipeline and stored through the repository
contract (dubline.storage). Segments are owned by their video/job;
translations are owned by their segment.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from dubline.errors import ErrorClassification


class VideoStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStage(str, Enum):
    TRANSCRIPTION = "transcription"
    TRANSLATION = "translation"
    DUBBING = "dubbing"


class JobStatus(str, Enum):
    """
    Stored job lifecycle.

    The reconciler's own RECONCILED state is internal to a transcription
    run; a job whose reconciliation succeeded and was persisted is
    reported here as COMPLETED.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TranscriptionSegment:
    """One recognized utterance with its time span and provenance."""

    id: int
    video_id: int
    source_job_id: int
    text: str
    start_time: float
    end_time: float
    confidence: float
    provider_name: str
    alternative_text: str | None = None
    alternative_provider_name: str | None = None
    is_alternative_selected: bool = False
    speaker_id: str | None = None
    speaker_name: str | None = None
    language: str = "bn"

    def __post_init__(self) -> None:
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Segment end_time ({self.end_time}) must be greater than "
                f"start_time ({self.start_time})"
            )
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Segment confidence {self.confidence} outside [0, 1]")

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Translation:
    """Translated text for one (segment, target language) pair."""

    id: int
    segment_id: int
    target_language: str
    text: str
    confidence: float
    provider_name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Video:
    id: int
    source_path: str
    duration: float | None = None
    status: VideoStatus = VideoStatus.UPLOADED
    source_confirmed: bool = False
    selected_providers: list[str] = field(default_factory=list)
    error: ErrorClassification | None = None
    detected_language: str | None = None
    language_confidence: float | None = None


@dataclass
class PipelineJob:
    """One stage run for one video. Failed jobs carry their classification."""

    id: int
    video_id: int
    stage: JobStage
    status: JobStatus = JobStatus.PENDING
    providers: list[str] = field(default_factory=list)
    target_language: str | None = None
    error: ErrorClassification | None = None
    warnings: list[str] = field(default_factory=list)
    segment_id: int | None = None
    dubbing_job_id: int | None = None
    attempts: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "video_id": self.video_id,
            "stage": self.stage.value,
            "status": self.status.value,
            "providers": list(self.providers),
            "target_language": self.target_language,
            "error": self.error.to_dict() if self.error else None,
            "warnings": list(self.warnings),
            "attempts": self.attempts,
        }


@dataclass
class DubbingJob:
    """A dubbing render request. The voice is chosen per job, not globally."""

    id: int
    video_id: int
    language: str
    voice_id: str
    status: JobStatus = JobStatus.PENDING
    audio_path: str | None = None
    error: ErrorClassification | None = None
