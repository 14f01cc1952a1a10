"""
Loguru sink configuration.

The stdout sink keeps the format used by the API process; the file sink
writes ``app.log`` under the configured log directory.
"""

import sys

from loguru import logger

from app.utils.config import Settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "[{time:YYYY-MM-DDTHH:mm:ssZZ}] [{level}] {extra[component]}: {message}"


def configure_logging(settings: Settings, console: bool = True) -> None:
    """
    Install stdout and file sinks.

    Args:
        settings: Application settings (log level and directory)
        console: Whether to add the coloured stdout sink
    """
    logger.remove()
    logger.configure(extra={"component": "app"})

    if console:
        logger.add(sys.stdout, format=CONSOLE_FORMAT, level=settings.log_level)

    log_dir = settings.log_dir.expanduser()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Cannot create log directory {log_dir}: {e}")
        return

    logger.add(
        log_dir / "app.log",
        format=FILE_FORMAT,
        level=settings.log_level,
        rotation="5 MB",
        retention=5,
        enqueue=True,
    )
