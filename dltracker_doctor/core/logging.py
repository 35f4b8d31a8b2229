"""Logging for the doctor CLI: structlog events rendered through stdlib handlers on stderr."""

from __future__ import annotations

import logging
import logging.config

import structlog

from dltracker_doctor.core.config import Settings, load_settings


def setup_logging(settings: Settings | None = None, *, level: str | None = None) -> None:
    """Route ``dltracker_doctor.*`` events to stderr.

    The report and menu own stdout, so every log record, including records
    from other libraries, goes to a single stderr handler rendered as console
    text or JSON (``DLTDOCTOR_LOG_FORMAT``). *level* wins over
    ``DLTDOCTOR_LOG_LEVEL``; the CLI passes ``DEBUG`` for ``-v``. Safe to call
    more than once, the last call replaces the handlers.
    """
    settings = settings or load_settings()
    log_level = (level or settings.log_level).upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    # --- structlog configure ---
    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # --- stdlib logging configure ---
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": log_level,
            },
            "loggers": {
                "dltracker_doctor": {"level": log_level},
            },
        }
    )
