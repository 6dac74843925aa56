"""
Structured logging for the matchmaking engine.

Every entry is a JSON object carrying the service name, environment and any
request-scoped values (request id, client ip) bound by the request middleware.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "matchmaking-engine"

# Libraries whose INFO output is per-connection or per-request chatter
_QUIET_LOGGERS = ("psycopg.pool", "uvicorn.access")


def setup_logging(log_level: str = "INFO", json_logs: bool = True, environment: str = "") -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        log_level: Stdlib level name
        json_logs: JSON lines when True, coloured console output otherwise
        environment: Stamped on every entry next to the service name
    """
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _service_stamp(environment),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _service_stamp(environment: str):
    def stamp(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", SERVICE_NAME)
        if environment:
            event_dict.setdefault("environment", environment)
        return event_dict

    return stamp


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_dependency_check(
    dependency: str, healthy: bool, latency_ms: float, error: str | None = None
) -> None:
    """One entry per backing store checked by the health route."""
    logger = get_logger("health")
    fields: dict[str, Any] = {"dependency": dependency, "healthy": healthy, "latency_ms": latency_ms}
    if error:
        fields["error"] = error
    if healthy:
        logger.info("Dependency healthy", **fields)
    else:
        logger.error("Dependency unhealthy", **fields)


def log_request(method: str, route: str, status_code: int, duration_ms: float) -> None:
    """
    Access log keyed on the route template.

    ``route`` is e.g. ``/matchmaking/matches/{actor_id}`` so per-attendee
    paths collapse into one series. 5xx logs as error, 4xx as warning.
    """
    logger = get_logger("http")
    fields = {"method": method, "route": route, "status_code": status_code, "duration_ms": duration_ms}
    if status_code >= 500:
        logger.error("Request failed", **fields)
    elif status_code >= 400:
        logger.warning("Request rejected", **fields)
    else:
        logger.info("Request handled", **fields)
