from __future__ import annotations
import logging, sys
import structlog
import structlog.stdlib
from crown.config import settings

def configure_logging(level: str | None = None):
    level_no = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(level_no, int):
        level_no = logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
    ]
    if settings.environment == "dev":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        processors.append(structlog.processors.EventRenamer("message"))
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        cache_logger_on_first_use=True,
    )
    # stdlib loggers (uvicorn, sqlalchemy, httpx) go to the same stream
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processors=[
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        renderer,
    ]))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level_no)
    logging.getLogger("httpx").setLevel(max(level_no, logging.WARNING))
