import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from pydantic import SecretStr, ValidationError

from asr_stream.config import AsrStreamConfig
from asr_stream.domain.errors import ConfigurationError, SessionError
from asr_stream.log_format import build_stderr_handler

logger = logging.getLogger("asr_stream")

ENV_FILE_PATH = Path.home() / ".config" / "asr-stream" / "env"

EXIT_OK = 0
EXIT_SESSION_FAILED = 1
EXIT_BAD_CONFIG = 2

USAGE_EXAMPLES = """\
Input audio: raw PCM s16le (16-bit signed little-endian), mono, on stdin.
Output: one JSON event per line on stdout. Logs go to stderr.

Usage examples (ffmpeg -> stdin):
  macOS (AVFoundation):
    ffmpeg -f avfoundation -i ":0" -f s16le -ar 16000 -ac 1 - 2>/dev/null | asr-stream

  Linux (ALSA):
    ffmpeg -f alsa -i default -f s16le -ar 16000 -ac 1 - 2>/dev/null | asr-stream

  Windows (DirectShow):
    ffmpeg -f dshow -i audio="Microphone" -f s16le -ar 16000 -ac 1 - 2>/dev/null | asr-stream

Environment:
  DASHSCOPE_API_KEY (or ASR_STREAM_API_KEY) supplies the API key; any setting
  can be given as ASR_STREAM_<NAME>, e.g. ASR_STREAM_DRAIN_TIMEOUT=3.
"""


def _load_env_file() -> None:
    if not ENV_FILE_PATH.exists():
        return
    with open(ENV_FILE_PATH) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            value = value.strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="asr-stream",
        description="Realtime speech transcription: PCM audio on stdin, JSON events on stdout",
        epilog=USAGE_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--api-key", help="Service API key (default: $DASHSCOPE_API_KEY)")
    parser.add_argument("--model", "-m", help="ASR model identifier")
    parser.add_argument("--base-url", help="Realtime WebSocket endpoint")
    parser.add_argument("--sample-rate", "-s", type=int, help="Input sample rate in Hz")
    parser.add_argument("--language", "-l", help="Transcription language code")
    parser.add_argument("--vad-threshold", type=float, help="Server VAD threshold in [0, 1]")
    parser.add_argument("--vad-silence-ms", type=int, help="Server VAD silence duration in ms")
    parser.add_argument("--chunk-size", type=int, help="Audio bytes per outbound message")
    parser.add_argument(
        "--keep", "-k",
        action="store_true",
        default=None,
        help="Keep the session open after input ends until stopped",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def apply_overrides(config: AsrStreamConfig, args: argparse.Namespace) -> AsrStreamConfig:
    if args.api_key:
        config.api_key = SecretStr(args.api_key)
    if args.model is not None:
        config.model = args.model
    if args.base_url is not None:
        config.base_url = args.base_url
    if args.sample_rate is not None:
        config.sample_rate = args.sample_rate
    if args.language is not None:
        config.language = args.language
    if args.vad_threshold is not None:
        config.vad_threshold = args.vad_threshold
    if args.vad_silence_ms is not None:
        config.vad_silence_ms = args.vad_silence_ms
    if args.chunk_size is not None:
        config.chunk_size = args.chunk_size
    if args.keep:
        config.keep_open = True
    return config


def configure_logging(verbose: bool) -> None:
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(build_stderr_handler(sys.stderr, colored=sys.stderr.isatty()))
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger("websockets").setLevel(logging.INFO)


def main() -> None:
    _load_env_file()
    parser = build_parser()
    args = parser.parse_args()

    if sys.stdin.isatty():
        parser.print_help()
        sys.exit(EXIT_OK)

    configure_logging(args.verbose)

    try:
        config = apply_overrides(AsrStreamConfig(), args)
        config.check()
    except ValidationError as exc:
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "settings"
            logger.error("Invalid configuration: %s: %s", field, error["msg"])
        sys.exit(EXIT_BAD_CONFIG)
    except ConfigurationError as exc:
        for problem in exc.problems:
            logger.error("Invalid configuration: %s", problem)
        sys.exit(EXIT_BAD_CONFIG)

    sys.exit(asyncio.run(_run_session(config)))


async def _run_session(config: AsrStreamConfig) -> int:
    from asr_stream.factory import create_session, create_sink

    sink = create_sink()
    session = create_session(config, sink=sink)

    signals_seen = 0

    def handle_signal() -> None:
        nonlocal signals_seen
        signals_seen += 1
        if signals_seen > 1:
            logger.warning("Forced stop")
            session.request_stop(force=True)
            return
        logger.info("Stopping, draining session...")
        session.request_stop()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    try:
        await session.run()
    except SessionError as exc:
        logger.error("Session ended with %s: %s", exc.code, exc.message)
        sink.report_failure(exc)
        return EXIT_SESSION_FAILED
    except BrokenPipeError:
        logger.error("Output closed by the reader")
        return EXIT_SESSION_FAILED
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
    return EXIT_OK
