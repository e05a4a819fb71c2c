import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path


def get_log_dir() -> Path:
    """Resolve the log directory without importing config to avoid circular imports."""
    log_dir = os.getenv("PARLEY_LOG_DIR")
    if log_dir:
        return Path(log_dir)
    return Path.home() / ".parley" / "logs"


def setup_logger(
    log_file: str = "parley.log", log_level: int = logging.INFO
) -> logging.Logger:
    """Attach a rotating file handler to the package logger.

    Every module logs through ``logging.getLogger(__name__)``, so configuring
    the ``parley`` logger here captures the whole package.
    """
    logger = logging.getLogger("parley")
    logger.setLevel(log_level)

    # Remove any existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_dir / log_file,
        maxBytes=1024 * 1024,  # 1 MB
        backupCount=5,
    )
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    # Keep log lines out of the terminal chat
    logger.propagate = False
    return logger
