#!/usr/bin/env python3
"""Headless voice memo watcher.

Watches a folder and turns each new recording into a note until interrupted.
Recordings already in the folder when the watcher starts are ignored.

Usage:
    python scripts/voice_memo_watcher.py --folder ~/VoiceMemos
    python scripts/voice_memo_watcher.py            # uses the saved folder
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from loguru import logger

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.utils.config import get_settings
from app.utils.logging_setup import configure_logging
from domains.voice_memos.errors import InstanceLockedError, WatchSetupError
from domains.voice_memos.service import build_service


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Transcribe new voice memos from a watched folder into notes.",
    )
    parser.add_argument(
        "--folder",
        type=Path,
        default=None,
        help="Folder to watch; saved as the new watch folder (default: the saved folder).",
    )
    parser.add_argument(
        "--template",
        default=None,
        help="Note template to save before starting.",
    )
    parser.add_argument(
        "--poll",
        type=float,
        default=1.0,
        help="How often the main loop checks for shutdown (seconds).",
    )
    parser.add_argument(
        "--show-results",
        type=int,
        default=0,
        metavar="N",
        help="Log the N most recent results on shutdown.",
    )

    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    try:
        service = build_service(settings)
    except InstanceLockedError as e:
        logger.error(f"Cannot start: {e}")
        return 1

    if args.folder is not None:
        service.select_folder(args.folder)
    if args.template is not None:
        service.preferences.set_template(args.template)

    try:
        service.start()
    except WatchSetupError as e:
        logger.error(f"Cannot start watching: {e}")
        service.close()
        return 1

    exit_code = 0
    stop_event = threading.Event()

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        stop_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        while not stop_event.is_set():
            stop_event.wait(args.poll)
            for alert in service.alerts.drain():
                logger.warning(f"ALERT: {alert.message}")
            if not service.watching:
                logger.error("Watch session ended, exiting.")
                exit_code = 1
                break
    finally:
        if args.show_results:
            for record in service.recent_results(args.show_results):
                logger.info(f"  {record.status.value:<7} {record.path or record.fingerprint[:12]}")
        service.close()

    logger.info("Voice memo watcher stopped.")
    return exit_code


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
