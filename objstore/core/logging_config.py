"""
Structlog logging for objstore.

Importing objstore never touches logging configuration. Modules only call
``get_logger``; an application that wants objstore's events rendered through
structlog calls ``configure_logging`` once at startup.
"""
import json
import logging
from typing import Any, List, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter, add_logger_name

# Loggers of the HTTP/signing stack that are chatty at INFO/DEBUG
NOISY_LOGGERS = ("httpx", "httpcore", "botocore")


def get_renderer(debug: bool) -> Any:
    """Console output while debugging, one JSON object per line otherwise."""
    if debug:
        return ConsoleRenderer(colors=True)

    # structlog hands default/sort_keys to the serializer
    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)

    return JSONRenderer(serializer=_dumps)


def configure_logging(
    debug: bool = False,
    level: Optional[int] = None,
    logger_name: Optional[str] = None,
) -> None:
    """Route structlog and stdlib records (tenacity retries included) to one handler.

    Args:
        debug: Console renderer and DEBUG level instead of JSON at INFO
        level: Explicit level, overrides the one implied by ``debug``
        logger_name: Attach the handler to this logger (e.g. ``"objstore"``)
            instead of the root logger
    """
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        add_logger_name,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=shared_pre_chain,
            processors=[ProcessorFormatter.remove_processors_meta, get_renderer(debug)],
        )
    )

    target = logging.getLogger(logger_name)
    target.handlers.clear()
    target.addHandler(handler)
    target.setLevel(level if level is not None else (logging.DEBUG if debug else logging.INFO))
    if logger_name:
        target.propagate = False

    if not debug:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
