import logging
import sys

import structlog
from structlog.stdlib import ProcessorFormatter

# Request-scoped fields bound by the logging and auth middleware
REQUEST_CONTEXT_FIELDS = ("request_id", "ip_address", "method", "path", "user_id")

NOISY_LOGGERS = ("redis", "asyncio")


def add_request_info(
    logger: structlog.BoundLogger, method_name: str, event_dict: dict
) -> dict:
    context_vars = structlog.contextvars.get_contextvars()
    for key in REQUEST_CONTEXT_FIELDS:
        value = context_vars.get(key)
        if value is not None and key not in event_dict:
            event_dict[key] = value
    return event_dict


def add_service_name(service_name: str):
    def processor(
        logger: structlog.BoundLogger, method_name: str, event_dict: dict
    ) -> dict:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def _renderer(is_production: bool):
    if is_production:
        return structlog.processors.JSONRenderer(sort_keys=False)
    return structlog.dev.ConsoleRenderer(colors=True, pad_event=8)


def setup_logging(
    is_production: bool = False,
    debug: bool = False,
    service_name: str | None = None,
) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Production emits one JSON object per line; development uses the
    coloured console renderer.
    """
    log_level = logging.DEBUG if debug else logging.INFO

    shared_processors: list = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_request_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if service_name:
        shared_processors.append(add_service_name(service_name))

    structlog.configure(
        processors=[
            *shared_processors,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        ProcessorFormatter(
            processor=_renderer(is_production),
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # uvicorn installs its own handlers; let records reach the root one
    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).handlers = []

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance with optional name."""
    return structlog.get_logger(name)
