"""
dubline/translation/batch.py
=============================
Batch Translation Engine — Dubline

Responsibility:
    - Refuse to translate until the Bengali source is confirmed
    - Pack all segments into one marked-up prompt (``SEGMENT_<i>: text``)
    - Call the primary translation provider, then the fallback provider
    - Parse the response back into per-segment translations
    - Validate and score every translation
    - Report missing segments as a PARTIAL_TRANSLATION warning

Response formats accepted:
    SEGMENT_0: text            one line per segment (non-matching lines dropped)
    [{"index": 0, "text": …}]  JSON array of objects
    bare text                  only when a single segment was sent

This module does NOT:
    - Persist translations (see dubline.pipeline)
    - Call STT providers
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from dubline import config
from dubline.errors import (
    AllProvidersFailedError,
    ErrorClassification,
    ErrorCode,
    NotConfirmedError,
    ProviderError,
    classify,
)
from dubline.models import TranscriptionSegment, Video
from dubline.providers import registry
from dubline.retry import call_with_retry
from dubline.scoring import confidence
from dubline.subtitles import standards
from dubline.subtitles.standards import StandardsReport

logger = logging.getLogger("dubline.translation.batch")

PARTIAL_TRANSLATION = "PARTIAL_TRANSLATION"

_SEGMENT_LINE_RE = re.compile(r"^SEGMENT_(\d+):\s*(.+)$")
_SEGMENT_MARKER_RE = re.compile(r"SEGMENT_\d+", re.IGNORECASE)
_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SegmentTranslation:
    index: int
    segment_id: int
    text: str
    confidence: float
    provider_name: str
    report: StandardsReport


@dataclass
class BatchTranslationResult:
    target_language: str
    provider_name: str
    translations: list[SegmentTranslation] = field(default_factory=list)
    missing_indices: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.missing_indices)


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------


def language_name(code: str) -> str:
    """Display name for a target language code; unknown codes pass through."""
    return config.TARGET_LANGUAGES.get(code, code)


def serialize_segments(texts: Sequence[str]) -> str:
    """One ``SEGMENT_<index>: <text>`` line per segment, in order."""
    return "\n".join(
        f"SEGMENT_{i}: {' '.join(text.split())}" for i, text in enumerate(texts)
    )


def build_prompt(batch_text: str, target_language: str) -> str:
    name = language_name(target_language)
    return (
        f"You are a professional subtitle translator specializing in Bengali to {name} "
        "translation.\n\n"
        f"Translate the following Bengali text segments to {name}. Each segment is marked "
        "with SEGMENT_X: followed by the Bengali text.\n\n"
        "IMPORTANT INSTRUCTIONS:\n"
        "1. Maintain the exact same format with SEGMENT_X: markers, one segment per line\n"
        "2. Translate only the text after the colon; keep the segment markers unchanged\n"
        "3. Maintain the same number of segments in your response\n"
        f"4. Adapt idioms, honorifics and pronouns (আপনি / তুমি / তুই) to natural {name} "
        "usage rather than translating them literally\n"
        "5. Keep speaker names and technical terms appropriate for the target audience\n"
        "6. Keep each line short enough to read as a subtitle (about 47 characters per "
        "line, at most two lines)\n"
        "7. Return ONLY the translated segments, no commentary\n\n"
        f"Bengali text to translate:\n{batch_text}\n\n"
        f"Translate to {name}:"
    )


# ---------------------------------------------------------------------------
# Response parser
# ---------------------------------------------------------------------------


def parse_batch_response(raw: str, expected_count: int) -> dict[int, str]:
    """
    Parse a batch response into ``{index: translated_text}``.

    Indices outside ``[0, expected_count)`` are ignored; for a repeated
    index the first occurrence wins.
    """
    cleaned = _FENCE_RE.sub("", (raw or "").strip())
    results: dict[int, str] = {}

    if cleaned.startswith("["):
        results = _parse_json_array(cleaned, expected_count)
        if results:
            return results

    for line in cleaned.splitlines():
        match = _SEGMENT_LINE_RE.match(line.strip())
        if not match:
            continue
        idx = int(match.group(1))
        text = match.group(2).strip()
        if idx < expected_count and text and idx not in results:
            results[idx] = text

    if not results and expected_count == 1:
        lines = [line.strip() for line in cleaned.splitlines() if line.strip()]
        if len(lines) == 1 and not _SEGMENT_MARKER_RE.search(lines[0]):
            results[0] = lines[0]

    return results


def _parse_json_array(cleaned: str, expected_count: int) -> dict[int, str]:
    try:
        items: Any = json.loads(cleaned)
    except json.JSONDecodeError:
        return {}
    if not isinstance(items, list):
        return {}

    results: dict[int, str] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        raw_index = item.get("index", item.get("segment"))
        text = str(item.get("text") or item.get("translation") or "").strip()
        if isinstance(raw_index, str):
            digits = re.search(r"\d+", raw_index)
            raw_index = int(digits.group(0)) if digits else None
        if not isinstance(raw_index, int) or isinstance(raw_index, bool):
            continue
        if 0 <= raw_index < expected_count and text and raw_index not in results:
            results[raw_index] = text
    return results


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class BatchTranslator:
    """
    Translate a video's segments in one provider call with fallback.

    Args:
        translators: Optional name → callable(prompt, language) map. Names
                     not in the map are resolved through the provider registry.
        primary:     Primary translation provider name.
        fallback:    Fallback translation provider name.
        is_youth:    Apply the youth reading-speed cap when validating.
        max_retries: Same-provider network retries (default from config).
    """

    def __init__(
        self,
        translators: Mapping[str, Callable[[str, str], str]] | None = None,
        primary: str = config.TRANSLATION_PRIMARY,
        fallback: str | None = config.TRANSLATION_FALLBACK,
        is_youth: bool = config.YOUTH_CONTENT,
        max_retries: int | None = None,
    ):
        self._translators = dict(translators or {})
        self._chain = [primary] + ([fallback] if fallback and fallback != primary else [])
        self._is_youth = is_youth
        self._max_retries = max_retries

    def _resolve(self, name: str) -> tuple[str, Callable[[str, str], str]]:
        if name in self._translators:
            return name, self._translators[name]
        canonical = registry.canonical_translation_name(name)
        if canonical in self._translators:
            return canonical, self._translators[canonical]
        return canonical, registry.get_translator(canonical)

    def translate(
        self,
        video: Video,
        segments: Sequence[TranscriptionSegment],
        target_language: str,
    ) -> BatchTranslationResult:
        """
        Translate ``segments`` of ``video`` into ``target_language``.

        Raises:
            NotConfirmedError:       The Bengali source is not confirmed.
            ValueError:              No segments to translate.
            AllProvidersFailedError: Primary and fallback both failed.
        """
        if not video.source_confirmed:
            raise NotConfirmedError(video.id)
        if not segments:
            raise ValueError(f"No transcription segments found for video {video.id}")

        ordered = sorted(segments, key=lambda s: (s.start_time, s.end_time))
        prompt = build_prompt(serialize_segments([s.text for s in ordered]), target_language)

        logger.info(
            "Translating %d segment(s) of video %d to %s.",
            len(ordered), video.id, language_name(target_language),
        )
        provider_name, parsed = self._call_with_fallback(prompt, target_language, len(ordered))

        result = BatchTranslationResult(target_language=target_language, provider_name=provider_name)
        for index, segment in enumerate(ordered):
            text = parsed.get(index)
            if text is None:
                result.missing_indices.append(index)
                continue
            report = standards.validate(text, segment.start_time, segment.end_time, self._is_youth)
            result.translations.append(
                SegmentTranslation(
                    index=index,
                    segment_id=segment.id,
                    text=text,
                    confidence=confidence.score_translation(
                        confidence.BATCH_TRANSLATION_RAW_CONFIDENCE,
                        provider_name,
                        report.quality_score,
                        segment.text,
                        text,
                        segment.duration,
                        target_language,
                    ),
                    provider_name=provider_name,
                    report=report,
                )
            )

        if result.missing_indices:
            missing = ", ".join(f"SEGMENT_{i}" for i in result.missing_indices)
            result.warnings.append(
                f"{PARTIAL_TRANSLATION}: {len(result.missing_indices)} of {len(ordered)} "
                f"segment(s) untranslated ({missing})"
            )
            logger.warning(
                "Partial translation to %s: missing %s", target_language, missing,
            )

        logger.info(
            "Translation to %s complete: %d/%d segment(s) via %s.",
            target_language, len(result.translations), len(ordered), provider_name,
        )
        return result

    def _call_with_fallback(
        self,
        prompt: str,
        target_language: str,
        expected_count: int,
    ) -> tuple[str, dict[int, str]]:
        failures: list[tuple[str, ErrorClassification]] = []

        for name in self._chain:
            try:
                provider_name, translator = self._resolve(name)
                raw = call_with_retry(
                    translator,
                    prompt,
                    target_language,
                    label=provider_name,
                    max_retries=self._max_retries,
                )
                parsed = parse_batch_response(raw, expected_count)
                if not parsed:
                    raise ProviderError(provider_name, "Response contained no SEGMENT lines")
                return provider_name, parsed
            except Exception as exc:
                classification = classify(exc)
                failures.append((name, classification))
                logger.warning(
                    "Translation provider %s failed [%s]: %s",
                    name, classification.code.value, exc,
                )

        reasons = "; ".join(f"{name}: {c.message}" for name, c in failures)
        raise AllProvidersFailedError(
            ErrorClassification(
                code=ErrorCode.ALL_PROVIDERS_FAILED,
                message=f"All translation providers failed. {reasons}",
                retryable=failures[-1][1].retryable,
            ),
            failures,
        )
