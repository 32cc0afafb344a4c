"""
dubline/transcription/reconciler.py
====================================
Transcription Reconciler — Dubline

Responsibility:
    - Run the selected STT providers sequentially in priority order
    - Classify each failure and decide between fallback and stopping
    - Select the authoritative result (first success by priority) and
      attach other successes as per-segment alternatives, aligned by
      time overlap
    - Split over-long segments, then validate and score every segment

Provider outcome handling:
    success            → kept; later providers still run for alternatives
    retryable failure  → next provider
    non-retryable      → stop (e.g. the media itself is bad)

Network errors are retried on the same provider (dubline.retry) before
they count as a failure.

This module does NOT:
    - Extract audio (see dubline.media)
    - Persist segments or manage job records (see dubline.pipeline)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping

from dubline import config
from dubline.errors import ErrorClassification, ErrorCode, ProviderError, classify
from dubline.providers import registry
from dubline.providers.base import RecognitionResult
from dubline.retry import call_with_retry
from dubline.scoring import confidence
from dubline.subtitles import standards
from dubline.subtitles.standards import StandardsReport

logger = logging.getLogger("dubline.transcription.reconciler")

# Span used when neither the provider nor the media reports a duration
FALLBACK_DURATION_SECONDS: float = 10.0


class ReconcileState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    RECONCILED = "reconciled"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderAttempt:
    provider_name: str
    succeeded: bool
    error: ErrorClassification | None = None


@dataclass(frozen=True)
class ReconciledSegment:
    """A validated, scored segment ready to persist."""

    text: str
    start_time: float
    end_time: float
    confidence: float
    provider_name: str
    report: StandardsReport
    raw_confidence: float | None = None
    alternative_text: str | None = None
    alternative_provider_name: str | None = None
    speaker_id: str | None = None


@dataclass
class ReconciliationResult:
    state: ReconcileState = ReconcileState.PENDING
    segments: list[ReconciledSegment] = field(default_factory=list)
    attempts: list[ProviderAttempt] = field(default_factory=list)
    error: ErrorClassification | None = None
    primary_provider: str | None = None


@dataclass(frozen=True)
class _Span:
    text: str
    start_time: float
    end_time: float
    raw_confidence: float | None = None
    speaker_id: str | None = None


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class TranscriptionReconciler:
    """
    Merge multi-provider speech-to-text output into one segment set.

    Args:
        recognizers: Optional name → callable map. Names not in the map are
                     resolved through the provider registry.
        is_youth:    Apply the youth reading-speed cap.
        max_retries: Same-provider network retries (default from config).
    """

    def __init__(
        self,
        recognizers: Mapping[str, Callable[[bytes], RecognitionResult]] | None = None,
        is_youth: bool = config.YOUTH_CONTENT,
        max_retries: int | None = None,
    ):
        self._recognizers = dict(recognizers or {})
        self._is_youth = is_youth
        self._max_retries = max_retries

    # -- provider resolution ------------------------------------------------

    def _resolve(self, name: str) -> tuple[str, Callable[[bytes], RecognitionResult]]:
        if name in self._recognizers:
            return name, self._recognizers[name]
        canonical = registry.canonical_stt_name(name)
        if canonical in self._recognizers:
            return canonical, self._recognizers[canonical]
        return canonical, registry.get_recognizer(canonical)

    # -- main entry ---------------------------------------------------------

    def reconcile(
        self,
        audio_bytes: bytes,
        providers: list[str] | None = None,
        audio_duration: float | None = None,
    ) -> ReconciliationResult:
        """
        Run providers and reconcile their output.

        Args:
            audio_bytes:    Normalized audio (mono 16 kHz WAV bytes).
            providers:      Provider names in priority order (default from config).
            audio_duration: Media duration, used when a provider returns no segments.

        Returns:
            ReconciliationResult in state RECONCILED or FAILED.
        """
        names = list(dict.fromkeys(providers or config.DEFAULT_STT_PROVIDERS))
        result = ReconciliationResult(state=ReconcileState.RUNNING)
        successes: list[tuple[RecognitionResult, list[_Span]]] = []
        failures: list[tuple[str, ErrorClassification]] = []

        logger.info("Reconciling transcription with providers: %s", ", ".join(names))

        for index, name in enumerate(names):
            try:
                provider_name, recognizer = self._resolve(name)
                recognized = call_with_retry(
                    recognizer,
                    audio_bytes,
                    label=provider_name,
                    max_retries=self._max_retries,
                )
                spans = _normalize_spans(recognized, audio_duration)
                if not spans:
                    raise ProviderError(provider_name, "Empty transcription returned")
            except Exception as exc:
                classification = classify(exc)
                failures.append((name, classification))
                result.attempts.append(ProviderAttempt(name, False, classification))
                remaining = len(names) - index - 1
                logger.warning(
                    "Provider %s failed [%s, retryable=%s]: %s",
                    name, classification.code.value, classification.retryable, exc,
                )
                if not classification.retryable:
                    if remaining:
                        logger.warning(
                            "Non-retryable failure, skipping %d remaining provider(s).",
                            remaining,
                        )
                    break
                continue

            result.attempts.append(ProviderAttempt(provider_name, True))
            successes.append((recognized, spans))
            logger.info("Provider %s succeeded with %d span(s).", provider_name, len(spans))

        if not successes:
            result.state = ReconcileState.FAILED
            result.error = _failure_classification(failures)
            logger.error("Transcription failed: %s", result.error.message)
            return result

        primary, primary_spans = successes[0]
        result.primary_provider = primary.provider_name
        result.segments = self._build_segments(primary, primary_spans, successes[1:])
        result.state = ReconcileState.RECONCILED

        logger.info(
            "Transcription reconciled: %d segment(s) from %s (%d alternative source(s)).",
            len(result.segments), primary.provider_name, len(successes) - 1,
        )
        return result

    # -- merging ------------------------------------------------------------

    def _build_segments(
        self,
        primary: RecognitionResult,
        primary_spans: list[_Span],
        alternatives: list[tuple[RecognitionResult, list[_Span]]],
    ) -> list[ReconciledSegment]:
        pieces: list[_Span] = []
        for span in primary_spans:
            for part in standards.split_long_segment(span.text, span.start_time, span.end_time):
                pieces.append(
                    _Span(
                        text=part.text,
                        start_time=part.start_time,
                        end_time=part.end_time,
                        raw_confidence=span.raw_confidence,
                        speaker_id=span.speaker_id,
                    )
                )

        alt_text: list[str | None] = [None] * len(pieces)
        alt_provider: list[str | None] = [None] * len(pieces)
        for alt_result, alt_spans in alternatives:
            aligned = align_by_overlap(pieces, alt_spans)
            for i, text in enumerate(aligned):
                if text and alt_text[i] is None:
                    alt_text[i] = text
                    alt_provider[i] = alt_result.provider_name

        segments: list[ReconciledSegment] = []
        for i, piece in enumerate(pieces):
            report = standards.validate(piece.text, piece.start_time, piece.end_time, self._is_youth)
            segments.append(
                ReconciledSegment(
                    text=piece.text,
                    start_time=piece.start_time,
                    end_time=piece.end_time,
                    confidence=confidence.score(
                        piece.raw_confidence,
                        primary.provider_name,
                        report.quality_score,
                        len(piece.text),
                        piece.end_time - piece.start_time,
                    ),
                    provider_name=primary.provider_name,
                    report=report,
                    raw_confidence=piece.raw_confidence,
                    alternative_text=alt_text[i],
                    alternative_provider_name=alt_provider[i],
                    speaker_id=piece.speaker_id,
                )
            )
        segments.sort(key=lambda s: (s.start_time, s.end_time))
        return segments


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def align_by_overlap(primary: list, alternatives: list) -> list[str | None]:
    """
    Pair every alternative span with the primary span it overlaps most.

    Both lists hold items with ``text`` / ``start_time`` / ``end_time``.
    Texts paired to the same primary span are joined in time order.
    Alternatives with no overlap are dropped.

    Returns:
        One joined alternative text (or None) per primary span.
    """
    buckets: list[list] = [[] for _ in primary]
    dropped = 0
    for alt in alternatives:
        best_index = -1
        best_overlap = 0.0
        for i, span in enumerate(primary):
            overlap = min(span.end_time, alt.end_time) - max(span.start_time, alt.start_time)
            if overlap > best_overlap:
                best_index, best_overlap = i, overlap
        if best_index < 0:
            dropped += 1
            continue
        buckets[best_index].append(alt)

    if dropped:
        logger.info("Dropped %d alternative span(s) with no time overlap.", dropped)

    return [
        " ".join(a.text for a in sorted(bucket, key=lambda a: a.start_time)) or None
        for bucket in buckets
    ]


def _normalize_spans(result: RecognitionResult, audio_duration: float | None) -> list[_Span]:
    """Turn provider segments into non-empty, positive-length spans in time order."""
    min_duration = standards.BROADCAST_STANDARDS.min_duration

    if not result.segments:
        text = (result.text or "").strip()
        if not text:
            return []
        end = audio_duration if audio_duration and audio_duration > 0 else FALLBACK_DURATION_SECONDS
        return [_Span(text=text, start_time=0.0, end_time=end, raw_confidence=result.raw_confidence)]

    spans: list[_Span] = []
    for seg in result.segments:
        text = " ".join(seg.text.split())
        if not text:
            continue
        start = max(0.0, seg.start_time)
        end = seg.end_time if seg.end_time > start else start + min_duration
        raw = seg.raw_confidence if seg.raw_confidence is not None else result.raw_confidence
        spans.append(
            _Span(text=text, start_time=start, end_time=end, raw_confidence=raw, speaker_id=seg.speaker_id)
        )
    spans.sort(key=lambda s: (s.start_time, s.end_time))
    return spans


def _failure_classification(failures: list[tuple[str, ErrorClassification]]) -> ErrorClassification:
    """Classification for a run with zero successes."""
    if not failures:
        return ErrorClassification(
            code=ErrorCode.ALL_PROVIDERS_FAILED,
            message="No transcription providers were selected.",
            retryable=False,
        )

    last = failures[-1][1]
    if len(failures) == 1 or not last.retryable:
        return last

    summary = "; ".join(f"{name}: {c.code.value}" for name, c in failures)
    return ErrorClassification(
        code=ErrorCode.ALL_PROVIDERS_FAILED,
        message=f"All transcription providers failed ({summary}). {last.message}",
        retryable=last.retryable,
    )
