import logging

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

# event keys whose values must never reach the output
SECRET_KEYS = frozenset({"api_key", "authorization", "secret", "token"})
REDACTED = "***"


def redact_secrets(
    logger: "WrappedLogger", method_name: "str", event_dict: "EventDict"
) -> "EventDict":
    """
    masks the value of any secret-bearing key in the event.
    """
    for key in event_dict:
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging(level: "str", fmt: "str" = "console") -> "None":
    """
    maps string log level to logging module levels and configures
    structlog with secret redaction, timestamping and either a
    console or a JSON renderer.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
    )

    processors: "list[Processor]" = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]
    if fmt == "json":
        # JSON output needs tracebacks rendered into the event
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
