import pytest
from structlog.testing import capture_logs

from app.infrastructure.observability.logging import log_dependency_check, log_request


@pytest.mark.parametrize(
    "status_code, level, event",
    [
        (200, "info", "Request handled"),
        (409, "warning", "Request rejected"),
        (503, "error", "Request failed"),
    ],
)
def test_request_log_level_follows_status_class(status_code, level, event):
    with capture_logs() as logs:
        log_request("GET", "/matchmaking/matches/{actor_id}", status_code, 1.5)

    assert logs == [
        {
            "event": event,
            "log_level": level,
            "method": "GET",
            "route": "/matchmaking/matches/{actor_id}",
            "status_code": status_code,
            "duration_ms": 1.5,
        }
    ]


def test_unhealthy_dependency_logs_error_with_reason():
    with capture_logs() as logs:
        log_dependency_check("redis", False, 12.0, error="connection refused")

    assert logs[0]["log_level"] == "error"
    assert logs[0]["dependency"] == "redis"
    assert logs[0]["error"] == "connection refused"


def test_healthy_dependency_omits_error():
    with capture_logs() as logs:
        log_dependency_check("database", True, 3.2)

    assert logs[0]["log_level"] == "info"
    assert "error" not in logs[0]
