"""Logging setup for the CLI: a single loguru sink on stderr"""

import sys

from loguru import logger


LOG_FORMAT = "<level>{level: <8}</level> {message}"
DEBUG_FORMAT = "<green>{time:HH:mm:ss.SSS}</green> <level>{level: <8}</level> <cyan>{name}</cyan>:{line} {message}"


def log_level(quiet: bool = False, verbose: int = 0, debug: bool = False) -> str | None:
    """Sink level for the global flags; None means no output at all."""
    if quiet:
        return None
    if debug or verbose >= 2:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return "WARNING"


def setup_logging(quiet: bool = False, verbose: int = 0, debug: bool = False) -> None:
    """Replace loguru's default sink with one sized to the CLI verbosity flags."""
    logger.remove()
    level = log_level(quiet, verbose, debug)
    if level is None:
        return
    fmt = DEBUG_FORMAT if level == "DEBUG" else LOG_FORMAT
    logger.add(sys.stderr, level=level, format=fmt, colorize=None, backtrace=debug, diagnose=False)
