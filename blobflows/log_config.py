import logging
import os
from typing import Optional

import structlog
from structlog_sentry import SentryProcessor

# `console` or `json`
LOG_FORMAT_ENV = "BLOBFLOWS_LOG_FORMAT"
LOG_LEVEL_ENV = "BLOBFLOWS_LOG_LEVEL"

_configured = False


def _level_from_env(default: int) -> int:
    name = os.environ.get(LOG_LEVEL_ENV)
    if not name:
        return default
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level in {LOG_LEVEL_ENV}: {name}")
    return level


def configure_logging(
    pretty: Optional[bool] = None,
    additional_processors=None,
    level: Optional[int] = None,
):
    """
    Set up structlog for the library.

    Unset arguments fall back to `BLOBFLOWS_LOG_FORMAT` (console output unless `json`)
    and `BLOBFLOWS_LOG_LEVEL` (INFO).
    """
    if pretty is None:
        pretty = os.environ.get(LOG_FORMAT_ENV, "console").lower() != "json"
    if level is None:
        level = _level_from_env(logging.INFO)
    if additional_processors is None:
        additional_processors = []

    logging.basicConfig(level=level)
    # per-request client logs drown out the upload events
    logging.getLogger("aiohttp").setLevel(max(level, logging.WARNING))
    logging.getLogger("asyncio").setLevel(max(level, logging.WARNING))

    processors = additional_processors + [
        structlog.stdlib.add_log_level,
    ]
    if "SENTRY_DSN" in os.environ:
        # failed uploads are captured explicitly, this forwards error logs as well
        processors.append(SentryProcessor(event_level=logging.ERROR))

    if pretty:
        processors += [
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors += [
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    global _configured
    _configured = True


def get_logger(*args, **kwargs) -> structlog.stdlib.BoundLogger:
    # configure on first use so library callers get sane defaults
    if not _configured:
        configure_logging()
    return structlog.get_logger(*args, **kwargs)
