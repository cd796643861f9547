"""Logging setup for fundadmin.

Every module logs through ``logging.getLogger(__name__)``, so attaching
handlers to the ``fundadmin`` logger once at startup covers the service,
the stores, the audit sinks and the workers.
"""

import logging
import logging.handlers
import os

from fundadmin.core.config import Settings

ROOT_LOGGER = "fundadmin"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_level(level: str) -> int:
    """Map a level name such as ``"info"`` to its logging constant."""
    name = (level or "").strip().upper()
    if name not in LEVELS:
        raise ValueError(
            f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}"
        )
    return getattr(logging, name)


def configure_logging(
    settings: Settings,
    name: str = ROOT_LOGGER,
    console: bool = True,
) -> logging.Logger:
    """Attach handlers to the application logger.

    Calling it again only updates the level; handlers are added once.

    Args:
        settings: Application settings (``log_level``, ``file_logging``,
            ``log_dir``, ``log_max_bytes``, ``log_backup_count``)
        name: Logger to configure; child loggers inherit its handlers
        console: Also log to stderr

    Returns:
        The configured logger

    Raises:
        ValueError: If ``settings.log_level`` is not a standard level name
    """
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(settings.log_level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if settings.file_logging:
        os.makedirs(settings.log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, f"{name}.log"),
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
