# Logging_Config.py
# Description: Configuration for logging
#
# Imports
import logging
import sys
from pathlib import Path
from typing import List, Optional, Union
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from practice_sync.config import get_cli_setting
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Chatty third-party loggers routed through loguru at this level
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


class InterceptHandler(logging.Handler):
    """Forwards stdlib logging records (httpx, httpcore, ...) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside the logging module so loguru reports the right origin
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: Optional[str] = None,
                      log_file: Optional[Union[str, Path]] = None) -> List[int]:
    """
    Sets up loguru sinks for the sync core.

    Removes loguru's default sink, adds stderr (and optionally a rotating file),
    and intercepts the stdlib loggers used by httpx. Level and file default to
    the [logging] section of the config. Returns the ids of the added sinks.
    """
    level = (level or get_cli_setting("logging", "level", "INFO") or "INFO").upper()
    if log_file is None:
        log_file = get_cli_setting("logging", "log_file", "") or None

    logger.remove()
    sink_ids = [logger.add(sys.stderr, level=level, format=LOG_FORMAT)]

    if log_file:
        log_path = Path(log_file).expanduser()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            sink_ids.append(
                logger.add(str(log_path), level=level, format=LOG_FORMAT,
                           rotation="5 MB", retention=3, encoding="utf-8")
            )
        except OSError as e:
            logger.error(f"Could not open log file {log_path}: {e}. Logging to stderr only.")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging configured at level {level} with {len(sink_ids)} sink(s).")
    return sink_ids

#
# End of Logging_Config.py
########################################################################################################################
