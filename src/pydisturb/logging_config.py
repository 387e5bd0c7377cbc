"""
Logging configuration for pydisturb.

The library only creates named loggers; handlers are attached by
``setup_logging`` when an application asks for them.
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Union

__all__ = [
    'LOG_FORMAT',
    'setup_logging',
    'get_logger',
    'log_stage_summary',
    'log_exclusion',
]

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PACKAGE_LOGGER = 'pydisturb'

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


def setup_logging(level: Union[int, str] = logging.INFO,
                  log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """Attach console (and optionally file) handlers to the package logger.

    Calling this more than once replaces the handlers installed by the
    previous call.

    Args:
        level: Logging level name or number
        log_file: Optional path of a log file to write in addition to stderr

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the package namespace.

    Args:
        name: Usually ``__name__`` of the calling module

    Returns:
        Logger instance
    """
    if not name.startswith(PACKAGE_LOGGER):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def log_stage_summary(logger: logging.Logger, stage: str, n_in: int, n_out: int,
                      unit: str = "rows") -> None:
    """Log the input/output size of a pipeline stage."""
    logger.info(f"{stage}: {n_in} {unit} in, {n_out} {unit} out")


def log_exclusion(logger: logging.Logger, what: str, identifiers, reason: str) -> None:
    """Log units silently dropped by sampling policy."""
    identifiers = list(identifiers)
    if not identifiers:
        return
    shown = ", ".join(str(i) for i in identifiers[:10])
    if len(identifiers) > 10:
        shown += ", ..."
    logger.debug(f"Excluded {len(identifiers)} {what} ({reason}): {shown}")
