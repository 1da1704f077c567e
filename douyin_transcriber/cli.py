"""Command-line interface for the Douyin transcriber.

WHY: Users need to go from a pasted share text (or a local media file) to
a transcript from the terminal, and occasionally to run a single step on
its own (parse a share, download a URL) when something goes wrong.

HOW: argparse with four subcommands: parse, download, transcribe, share.
Each runs its async flow via asyncio.run(). Status messages go to stderr;
machine-readable output (JSON or the bare transcript) goes to stdout.

RULES:
- transcribe prints the result JSON to stdout on success, stderr on error
- --out writes the result JSON, --text-out writes only the transcript text
- share prints only the transcript text
- Exit codes: 0 success, 1 error, 2 usage, 130 cancelled
- Status output goes to stderr (not stdout)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from douyin_transcriber import __version__
from douyin_transcriber.asr.models import TranscriptionResult
from douyin_transcriber.asr.payloads import MODE_CHOICES
from douyin_transcriber.config import (
    DEFAULT_DOWNLOAD_DIR,
    DEFAULT_MODE,
    DEFAULT_MODEL_NAME,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_TIMEOUT_MS,
    DEFAULT_RESOURCE_ID,
    SHARE_MODE,
    SHARE_RESOURCE_ID,
)
from douyin_transcriber.download import download_file
from douyin_transcriber.errors import DownloadError, InputError, ShareParseError
from douyin_transcriber.pipeline import (
    TranscriptionFailedError,
    share_to_text,
    transcribe_file,
)
from douyin_transcriber.share import resolve_share

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def _dump(data: Dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def _print_error(message: str) -> None:
    print(_dump({"status": "error", "error": message}), file=sys.stderr)


def write_result_json(result: TranscriptionResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_dump(result.to_dict()), encoding="utf-8")
    return path


def write_result_text(result: TranscriptionResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(result.result_text or "", encoding="utf-8")
    return path


def _asr_options(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "mode": args.mode,
        "resource_id": args.resource_id,
        "model_name": args.model,
        "app_key": args.app_key,
        "access_key": args.access_key,
        "poll_interval_ms": args.poll_interval_ms,
        "poll_timeout_ms": args.poll_timeout_ms,
    }


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


async def _cmd_parse(args: argparse.Namespace) -> int:
    info = await resolve_share(" ".join(args.share_text))
    print(_dump(info.to_dict()))
    return EXIT_OK


async def _cmd_download(args: argparse.Namespace) -> int:
    _status("Downloading: {}".format(args.url))
    _status("Saving to: {}".format(args.output))
    path = await download_file(
        args.url,
        args.output,
        on_progress=lambda pct: _status("  Download progress: {}%".format(pct)),
    )
    _status("Download complete: {}".format(path))
    print(_dump({"status": "success", "path": str(path)}))
    return EXIT_OK


async def _cmd_transcribe(args: argparse.Namespace) -> int:
    result = await transcribe_file(args.input_file, on_status=_status, **_asr_options(args))

    if args.out:
        saved = write_result_json(result, Path(args.out))
        _status("Saved result: {}".format(saved))
    if args.text_out:
        saved = write_result_text(result, Path(args.text_out))
        _status("Saved text: {}".format(saved))

    if not result.succeeded:
        print(_dump(result.to_dict()), file=sys.stderr)
        return EXIT_ERROR

    print(_dump(result.to_dict()))
    return EXIT_OK


async def _cmd_share(args: argparse.Namespace) -> int:
    transcript = await share_to_text(
        args.share_text,
        output_dir=args.output_dir,
        on_status=_status,
        **_asr_options(args),
    )
    print(transcript.text)
    return EXIT_OK


async def _run(args: argparse.Namespace) -> int:
    """Run one subcommand and map its failures to exit codes.

    RULES:
    - InputError, ShareParseError, DownloadError → exit 1 with a JSON error
    - TranscriptionFailedError → exit 1 with the result JSON
    - Other exceptions are logged with traceback and exit 1
    """
    try:
        return await args.handler(args)
    except (InputError, ShareParseError, DownloadError) as e:
        _print_error(str(e))
        return EXIT_ERROR
    except TranscriptionFailedError as e:
        _status("Error: {}".format(e))
        print(_dump(e.result.to_dict()), file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:
        logger.exception("Unexpected failure")
        _print_error(str(e) or e.__class__.__name__)
        return EXIT_ERROR


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_asr_arguments(
    parser: argparse.ArgumentParser,
    mode: str = DEFAULT_MODE,
    resource_id: str = DEFAULT_RESOURCE_ID,
) -> None:
    parser.add_argument(
        "--mode",
        choices=MODE_CHOICES,
        default=mode,
        help="Recognition protocol; auto picks standard for the sentence-level "
             "resource id (default: %(default)s).",
    )
    parser.add_argument(
        "--app-key",
        default=None,
        help="Volcengine app key (default: VOLC_APP_KEY).",
    )
    parser.add_argument(
        "--access-key",
        default=None,
        help="Volcengine access key, flash mode only (default: VOLC_ACCESS_KEY).",
    )
    parser.add_argument(
        "--resource-id",
        default=resource_id,
        help="Resource identifier (default: %(default)s).",
    )
    parser.add_argument(
        "--model",
        default=DEFAULT_MODEL_NAME,
        help="Model name (default: %(default)s).",
    )
    parser.add_argument(
        "--poll-interval-ms",
        type=int,
        default=DEFAULT_POLL_INTERVAL_MS,
        help="Wait between standard-mode queries (default: %(default)s).",
    )
    parser.add_argument(
        "--poll-timeout-ms",
        type=int,
        default=DEFAULT_POLL_TIMEOUT_MS,
        help="Total standard-mode polling budget (default: %(default)s).",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    RULES:
    - Subcommands: parse, download, transcribe, share
    - transcribe and share accept the same ASR options
    - share defaults to standard mode on the sentence-level resource
    """
    parser = argparse.ArgumentParser(
        prog="douyin_transcriber",
        description="Transcribe Douyin share videos or local audio with "
                    "Volcengine bigmodel speech recognition.",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_parse = sub.add_parser("parse", help="Resolve share text to a media URL and title.")
    p_parse.add_argument("share_text", nargs="+", help="Share text or link.")
    p_parse.set_defaults(handler=_cmd_parse)

    p_download = sub.add_parser("download", help="Download a media URL to a file.")
    p_download.add_argument("url", help="Media URL.")
    p_download.add_argument("output", help="Output file path.")
    p_download.set_defaults(handler=_cmd_download)

    p_transcribe = sub.add_parser("transcribe", help="Transcribe a local audio/video file.")
    p_transcribe.add_argument("input_file", help="Audio/video file (max 100 MB).")
    p_transcribe.add_argument("--out", default=None, help="Write the result JSON here.")
    p_transcribe.add_argument("--text-out", default=None, help="Write only the text here.")
    _add_asr_arguments(p_transcribe)
    p_transcribe.set_defaults(handler=_cmd_transcribe)

    p_share = sub.add_parser("share", help="Download a shared video and print its transcript.")
    p_share.add_argument("share_text", help="Share text or link.")
    p_share.add_argument(
        "--output-dir",
        default=DEFAULT_DOWNLOAD_DIR,
        help="Directory for the downloaded video (default: %(default)s).",
    )
    _add_asr_arguments(p_share, mode=SHARE_MODE, resource_id=SHARE_RESOURCE_ID)
    p_share.set_defaults(handler=_cmd_share)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Returns the exit code; __main__ passes it to sys.exit
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        return asyncio.run(_run(args))
    except (KeyboardInterrupt, asyncio.CancelledError):
        _status("\nCancelled by user.")
        return EXIT_CANCELLED


if __name__ == "__main__":
    sys.exit(main())
