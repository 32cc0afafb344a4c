"""
main.py
========
Central entry point for the Dubline pipeline.

Run with:
    python main.py VIDEO [--providers openai gemini] [--confirm]
                         [--translate en hi] [--srt en] [--dub en --voice ID]
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

load_dotenv()  # Load .env before any module reads env vars

# Configure logging for the entire application
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Suppress SDK internal HTTP/transport logs so only pipeline logs are shown
for _sdk_logger_name in (
    "openai",
    "openai._base_client",
    "httpx",
    "httpcore",
    "google_genai",
    "urllib3",
):
    logging.getLogger(_sdk_logger_name).setLevel(logging.WARNING)

from dubline import config  # noqa: E402
from dubline.models import JobStatus  # noqa: E402
from dubline.pipeline import PipelineService  # noqa: E402

logger = logging.getLogger("dubline.main")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dubline",
        description="Transcribe a Bengali video, translate it and export subtitles.",
    )
    parser.add_argument("video", help="Path to the source video or audio file")
    parser.add_argument(
        "--providers",
        nargs="+",
        default=None,
        help="STT providers in priority order (default: %s)" % ",".join(config.DEFAULT_STT_PROVIDERS),
    )
    parser.add_argument(
        "--confirm",
        action="store_true",
        help="Confirm the Bengali transcript without review (required for translation)",
    )
    parser.add_argument(
        "--translate",
        nargs="+",
        default=[],
        metavar="LANG",
        help="Target languages: %s" % ", ".join(config.TARGET_LANGUAGES),
    )
    parser.add_argument("--srt", metavar="LANG", help="Print the SRT for this language (bn for source)")
    parser.add_argument("--dub", metavar="LANG", help="Render dubbing audio for this language")
    parser.add_argument("--voice", default=config.DEFAULT_VOICE_ID, help="TTS voice id for --dub")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    service = PipelineService()
    video = service.register_video(args.video, args.providers)

    job = await service.start_transcription(video.id, args.providers)
    print(json.dumps(job.to_dict(), indent=2, ensure_ascii=False))
    if job.status is JobStatus.FAILED:
        return 1

    video = service.repository.get_video(video.id)
    if video.detected_language:
        logger.info("Detected language: %s (confidence %.2f)", video.detected_language, video.language_confidence)

    for segment in service.segments(video.id):
        print(f"[{segment.start_time:7.2f} → {segment.end_time:7.2f}] ({segment.confidence:.2f}) {segment.text}")

    if args.confirm:
        service.confirm_source(video.id)

    exit_code = 0
    for language in args.translate:
        job = await service.translate(video.id, language)
        print(json.dumps(job.to_dict(), indent=2, ensure_ascii=False))
        if job.status is JobStatus.FAILED:
            exit_code = 1

    if args.dub:
        dubbing_job = await service.start_dubbing(video.id, args.dub, args.voice)
        if dubbing_job.status is JobStatus.FAILED:
            logger.error("Dubbing failed: %s", dubbing_job.error.message if dubbing_job.error else "unknown")
            exit_code = 1
        else:
            logger.info("Dubbing audio: %s", dubbing_job.audio_path)

    if args.srt:
        print(service.export_srt(video.id, args.srt))

    return exit_code


if __name__ == "__main__":
    sys.exit(asyncio.run(run(_parse_args())))
