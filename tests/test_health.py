# tests/test_health.py
from typing import Any

from fastapi.testclient import TestClient

from retro_messenger.services.presence import QueueChannel


def test_health_responds(client: Any) -> None:
    """The health endpoint answers without authentication."""
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_unknown_route_is_404(client: Any) -> None:
    r = client.get("/")
    assert r.status_code == 404


def test_shutdown_closes_push_channels(app: Any, core: Any) -> None:
    channel = QueueChannel()
    with TestClient(app):
        core.presence.attach("u1", channel)

    assert channel.closed is True
    assert core.presence.total_connections() == 0
