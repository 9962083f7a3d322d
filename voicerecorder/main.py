"""Main application entry point for VoiceRecorder."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path

from rich.console import Console

from . import __version__
from .auto_mode import run_auto_record, run_playback
from .config import VoiceRecorderConfig
from .storage.file_manager import FileManager
from .ui.recorder_screen import RecorderScreen
from .ui.status_view import KEY_HELP
from .utils import format_timer

logger = logging.getLogger(__name__)


FILE_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
CONSOLE_LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s: %(message)s'


def _file_handler(log_file_path: str) -> logging.Handler:
    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file_path)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
    return handler


def _console_handler() -> logging.Handler:
    # stderr only gets problems; the live view owns stdout
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter(CONSOLE_LOG_FORMAT))
    return handler


def setup_logging(config: VoiceRecorderConfig, level: str = "INFO") -> None:
    """Route log records to the configured file and, optionally, stderr."""
    log_file_path = config.get('logging.file_path', 'logs/voicerecorder.log')

    handlers = [_file_handler(log_file_path)]
    if config.get('logging.console_output', True):
        handlers.append(_console_handler())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(level.upper())
    for handler in handlers:
        root.addHandler(handler)

    logger.info(f"VoiceRecorder starting, logging {level.upper()} to {log_file_path}")


def list_recordings(config: VoiceRecorderConfig, console: Console) -> None:
    file_manager = FileManager(
        root=config.get_storage_root(),
        directory_name=config.get('storage.directory_name', 'VoiceRecorder'),
    )
    voices = file_manager.list_voices()
    if not voices:
        console.print(f"No recordings in {file_manager.recordings_dir}", style="yellow")
        return
    for voice in voices:
        console.print(f"{voice.title}  {voice.path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voicerecorder",
        description="Record voice notes from the microphone and play them back",
        epilog=f"Interactive keys: {KEY_HELP}",
    )
    parser.add_argument("--config", metavar="PATH",
                        help="YAML settings file overlaid on the built-in defaults")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Root log level (default: logging.level from config)")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--auto", action="store_true",
                      help="Record for --duration seconds without the interactive screen")
    mode.add_argument("--list", action="store_true",
                      help="Print saved recordings, newest first")
    mode.add_argument("--play", metavar="PATH",
                      help="Play one recording to the end, then exit")

    parser.add_argument("--duration", type=float, default=10.0,
                        help="Seconds to record with --auto (default: 10)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main() -> None:
    """Console entry point."""
    args = build_parser().parse_args()
    console = Console()

    try:
        config = VoiceRecorderConfig(args.config)
        setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

        if args.list:
            list_recordings(config, console)
        elif args.play:
            final = asyncio.run(run_playback(config, args.play, console))
            console.print(f"Playback finished ({final.lifecycle_state.value})")
        elif args.auto:
            completed = asyncio.run(run_auto_record(config, args.duration))
            if completed is None:
                console.print("❌ Recording could not start, see the log for details", style="red")
                sys.exit(1)
            console.print(f"✅ Saved {completed.output_file_path} ({format_timer(completed.elapsed_millis)})",
                          style="green")
        else:
            asyncio.run(RecorderScreen(config).run())
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Startup failed: {e}")
        console.print(f"❌ Error: {e}", style="red")
        sys.exit(1)


if __name__ == "__main__":
    main()
