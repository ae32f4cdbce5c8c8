"""
Logging Setup

Root logger configuration for the faceoverlay CLI and for applications
embedding the pipeline. Pipeline modules only create module loggers; the
handlers are installed here.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}

# Third-party loggers that flood DEBUG output during image decoding
QUIET_LIBRARIES = ('PIL', 'cv2', 'matplotlib')

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _console_handler(level: int, enable_colors: bool, format_string: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if enable_colors:
        handler.setFormatter(colorlog.ColoredFormatter(
            '%(log_color)s' + format_string,
            datefmt=DATE_FORMAT,
            log_colors=LOG_COLORS
        ))
    else:
        handler.setFormatter(logging.Formatter(format_string, datefmt=DATE_FORMAT))

    return handler


def _file_handler(log_file: str, level: int, format_string: str) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    enable_colors: bool = True,
    format_string: Optional[str] = None
) -> None:
    """
    Install console (and optionally rotating file) handlers on the root logger.

    Existing root handlers are replaced, so calling this again reconfigures
    logging rather than duplicating output.

    Args:
        level: Logging level for the root logger and its handlers
        log_file: Optional path of a rotating log file (10 MB x 5)
        enable_colors: Use colorlog on the console
        format_string: Record format, without color codes
    """
    format_string = format_string or LOG_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    root_logger.addHandler(_console_handler(level, enable_colors, format_string))
    if log_file:
        root_logger.addHandler(_file_handler(log_file, level, format_string))

    configure_module_logging()


def configure_module_logging() -> None:
    """Raise third-party loggers to WARNING."""
    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def setup_cli_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_file: Optional[str] = None,
    default_level: Union[int, str] = logging.INFO
) -> int:
    """
    Map CLI flags to a logging setup.

    ``--quiet`` wins over ``--verbose``; quiet output is uncolored so it
    stays readable when redirected.

    Args:
        verbose: DEBUG level
        quiet: ERROR level
        log_file: Optional log file path
        default_level: Level (number or name) when neither flag is set

    Returns:
        The logging level that was configured
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    elif isinstance(default_level, str):
        level = logging.getLevelName(default_level.upper())
    else:
        level = default_level

    setup_logging(level=level, log_file=log_file, enable_colors=not quiet)
    return level


class LoggingContext:
    """
    Temporarily change a logger's level.

    Example:
        with LoggingContext(logging.DEBUG, 'faceoverlay.face_overlay.normalization'):
            pipeline.swap(jersey, selfie)
    """

    def __init__(self, level: int, logger_name: Optional[str] = None):
        self.level = level
        self.logger_name = logger_name
        self.original_level = None
        self.logger = None

    def __enter__(self) -> logging.Logger:
        self.logger = logging.getLogger(self.logger_name)
        self.original_level = self.logger.level
        self.logger.setLevel(self.level)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.logger.setLevel(self.original_level)
