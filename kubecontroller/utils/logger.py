import logging
import os
import sys

# Default log level
DEFAULT_LOG_LEVEL = "INFO"

# Get log level from environment variable or use default
log_level_name = os.environ.get(
    "KUBECONTROLLER_LOG_LEVEL", DEFAULT_LOG_LEVEL
).upper()
log_level = getattr(logging, log_level_name, logging.INFO)

# Configure logging format
log_format = "%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s"
date_format = "%Y-%m-%d %H:%M:%S"

# Single package-level logger, shared by every module
logger = logging.getLogger(__name__.split(".")[0])  # Should resolve to 'kubecontroller'
logger.setLevel(log_level)

handler = logging.StreamHandler(sys.stderr)
handler.setLevel(log_level)

formatter = logging.Formatter(log_format, datefmt=date_format)
handler.setFormatter(formatter)

# Importing this module more than once must not stack handlers
if not logger.hasHandlers():
    logger.addHandler(handler)

logger.propagate = False


def set_log_level(level_name: str) -> None:
    """
    Change the level of the package logger and its handlers at runtime.

    Args:
        level_name: Name of a standard logging level, e.g. "DEBUG"
    """
    level = getattr(logging, level_name.upper(), logging.INFO)
    logger.setLevel(level)
    for h in logger.handlers:
        h.setLevel(level)
