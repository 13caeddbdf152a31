"""
Logging configuration for the ZX Spectrum +3 Disk Image Utility.

One package logger with per-area child loggers ('disk', 'alloc', 'dir', ...).
The CLI picks the level from its -q/-v flags.
"""

import logging
import sys
from typing import TextIO

# Log levels for the application
QUIET = logging.WARNING
NORMAL = logging.INFO
VERBOSE = logging.DEBUG

logger = logging.getLogger('plus3_image_util')


class ColorFormatter(logging.Formatter):
    """
    Formatter that colours the level for terminal output.

    Colours are only used when the target stream is a TTY.
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str | None = None, use_colors: bool = True,
                 stream: TextIO | None = None):
        super().__init__(fmt)
        self.use_colors = use_colors and _is_tty(stream or sys.stderr)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelname)
        if self.use_colors and color:
            return f"{color}{message}{self.RESET}"
        return message


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


class ImageLogAdapter(logging.LoggerAdapter):
    """Prefix every message with the disk image it concerns."""

    def process(self, msg, kwargs):
        return f"[{self.extra['image']}] {msg}", kwargs


def setup_logging(
    level: int = NORMAL,
    stream: TextIO | None = None,
    use_colors: bool = True,
    format_string: str | None = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (QUIET, NORMAL, or VERBOSE)
        stream: Output stream (defaults to stderr)
        use_colors: Whether to use colored output
        format_string: Custom format string (optional)
    """
    if stream is None:
        stream = sys.stderr

    if format_string is None:
        if level <= logging.DEBUG:
            format_string = '%(levelname)s: %(name)s: %(message)s'
        else:
            format_string = '%(message)s'

    logger.handlers.clear()

    handler = logging.StreamHandler(stream)
    handler.setFormatter(ColorFormatter(format_string, use_colors, stream))

    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def level_from_flags(verbose: bool = False, quiet: bool = False) -> int:
    """Map the CLI -v/-q flags to a logging level. Quiet wins."""
    if quiet:
        return QUIET
    if verbose:
        return VERBOSE
    return NORMAL


def set_level(level: int) -> None:
    """Change the logging level."""
    logger.setLevel(level)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a logger for a specific area of the package.

    Args:
        name: Area name (optional, uses package logger if not specified)

    Returns:
        Logger instance
    """
    if name is None:
        return logger
    return logger.getChild(name)


def image_logger(name: str, image: str) -> ImageLogAdapter:
    """Get an area logger whose messages name the image file."""
    return ImageLogAdapter(get_logger(name), {'image': image})


setup_logging()
