import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

def setup_logging(debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for scanimg.

    Warnings (unreadable corpus files, failed pool slots) always reach stderr
    through a RichHandler so they render cleanly above the progress spinner.
    When log_path is given, a full INFO (or DEBUG) log is written there too.
    Returns configured logger instance.

    Args:
        debug: If True, enable DEBUG level logging with per-phase probe details
        log_path: Optional path to log file
    """
    level = logging.DEBUG if debug else logging.INFO

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    handlers: list[logging.Handler] = [console_handler]

    log_file = Path(log_path) if log_path else None
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format='%(message)s',
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    # urllib3 logs every connection at DEBUG; keep it out of debug runs
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if log_file is not None:
        logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
