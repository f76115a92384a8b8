from __future__ import annotations

import base64
import logging
from pathlib import Path

from fastapi.testclient import TestClient

from snapqueue import main as app_main
from snapqueue.capture_queue import PREVIEW_PREFIX, CaptureQueueManager, Partition


class StubProvider:
    def __init__(self, payload: bytes | None = b"\x89PNG-demo") -> None:
        self.payload = payload

    async def capture(self) -> bytes | None:
        return self.payload


def _build_manager(tmp_path: Path, provider: StubProvider | None = None) -> CaptureQueueManager:
    directories = {
        Partition.PRIMARY: tmp_path / "screenshots",
        Partition.SECONDARY: tmp_path / "extra_screenshots",
    }
    for directory in directories.values():
        directory.mkdir(parents=True, exist_ok=True)
    return CaptureQueueManager(
        directories=directories,
        provider=provider or StubProvider(),
        capacity=2,
        settle_seconds=0,
    )


def get_client(monkeypatch, manager: CaptureQueueManager) -> TestClient:
    monkeypatch.setattr(app_main, "QUEUE_MANAGER", manager)
    return TestClient(app_main.app)


def test_capture_then_list_with_previews(monkeypatch, tmp_path: Path):
    manager = _build_manager(tmp_path)
    client = get_client(monkeypatch, manager)

    created = client.post("/captures")

    assert created.status_code == 201
    body = created.json()
    assert body["partition"] == "primary"
    assert body["preview"].startswith(PREVIEW_PREFIX)
    assert Path(body["path"]).exists()

    listing = client.get("/queues/primary", params={"previews": "true"})
    assert listing.status_code == 200
    payload = listing.json()
    assert payload["active"] is True
    assert payload["capacity"] == 2
    assert [item["path"] for item in payload["items"]] == [body["path"]]
    encoded = payload["items"][0]["preview"][len(PREVIEW_PREFIX):]
    assert base64.b64decode(encoded) == b"\x89PNG-demo"


def test_listing_respects_capacity(monkeypatch, tmp_path: Path):
    manager = _build_manager(tmp_path)
    client = get_client(monkeypatch, manager)

    paths = [client.post("/captures", params={"preview": "false"}).json()["path"] for _ in range(3)]

    listing = client.get("/queues/primary").json()
    assert [item["path"] for item in listing["items"]] == paths[1:]
    assert all(item["preview"] is None for item in listing["items"])


def test_capture_failure_maps_to_500(monkeypatch, tmp_path: Path):
    manager = _build_manager(tmp_path, StubProvider(payload=None))
    client = get_client(monkeypatch, manager)

    response = client.post("/captures")

    assert response.status_code == 500
    assert "returned no data" in response.json()["detail"]
    assert manager.list_partition(Partition.PRIMARY) == []


def test_switch_partition_routes_captures(monkeypatch, tmp_path: Path):
    manager = _build_manager(tmp_path)
    client = get_client(monkeypatch, manager)

    switched = client.put("/partition", json={"partition": "secondary"})
    assert switched.status_code == 200
    assert client.get("/partition").json() == {"partition": "secondary"}

    created = client.post("/captures").json()
    assert created["partition"] == "secondary"
    assert manager.list_partition(Partition.SECONDARY) == [created["path"]]
    assert client.get("/queues/primary").json()["active"] is False


def test_unknown_partition_rejected(monkeypatch, tmp_path: Path):
    client = get_client(monkeypatch, _build_manager(tmp_path))

    assert client.put("/partition", json={"partition": "solutions"}).status_code == 422
    assert client.get("/queues/solutions").status_code == 422


def test_delete_capture_success_and_failure(monkeypatch, tmp_path: Path):
    manager = _build_manager(tmp_path)
    client = get_client(monkeypatch, manager)
    path = client.post("/captures").json()["path"]

    deleted = client.request("DELETE", "/captures", json={"path": path})
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "error": None}
    assert manager.list_partition(Partition.PRIMARY) == []

    again = client.request("DELETE", "/captures", json={"path": path})
    assert again.status_code == 200
    assert again.json()["success"] is False
    assert again.json()["error"]


def test_delete_capture_requires_path(monkeypatch, tmp_path: Path):
    client = get_client(monkeypatch, _build_manager(tmp_path))

    response = client.request("DELETE", "/captures", json={"path": "  "})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert any("Provide a capture path" in entry.get("msg", "") for entry in detail)


def test_preview_endpoint(monkeypatch, tmp_path: Path):
    manager = _build_manager(tmp_path)
    client = get_client(monkeypatch, manager)
    path = client.post("/captures").json()["path"]

    found = client.get("/preview", params={"path": path})
    missing = client.get("/preview", params={"path": str(tmp_path / "nope.png")})

    assert found.status_code == 200
    assert found.json()["preview"].startswith(PREVIEW_PREFIX)
    assert missing.status_code == 404


def test_reset_clears_both_queues(monkeypatch, tmp_path: Path):
    manager = _build_manager(tmp_path)
    client = get_client(monkeypatch, manager)
    first = client.post("/captures").json()["path"]
    client.put("/partition", json={"partition": "secondary"})
    second = client.post("/captures").json()["path"]

    response = client.post("/queues/reset")

    assert response.json() == {"cleared": True}
    assert manager.list_partition(Partition.PRIMARY) == []
    assert manager.list_partition(Partition.SECONDARY) == []
    assert not Path(first).exists()
    assert not Path(second).exists()


def test_health(monkeypatch, tmp_path: Path):
    client = get_client(monkeypatch, _build_manager(tmp_path))

    assert client.get("/health").json() == {"status": "ok"}


def test_delete_and_preview_refuse_paths_outside_capture_directories(monkeypatch, tmp_path: Path):
    manager = _build_manager(tmp_path)
    client = get_client(monkeypatch, manager)
    outsider = tmp_path / "precious.txt"
    outsider.write_bytes(b"keep me")

    previewed = client.get("/preview", params={"path": str(outsider)})
    deleted = client.request("DELETE", "/captures", json={"path": str(outsider)})
    escaped = client.request(
        "DELETE", "/captures", json={"path": str(tmp_path / "screenshots" / ".." / "precious.txt")}
    )

    assert previewed.status_code == 404
    assert deleted.json() == {"success": False, "error": "Path is outside the capture directories"}
    assert escaped.json()["success"] is False
    assert outsider.read_bytes() == b"keep me"


def test_capture_reports_partition_it_landed_in(monkeypatch, tmp_path: Path):
    manager = _build_manager(tmp_path)
    client = get_client(monkeypatch, manager)

    def switch_while_hidden() -> None:
        manager.set_active_partition(Partition.SECONDARY)

    monkeypatch.setattr(app_main, "_hide_host_surface", switch_while_hidden)

    body = client.post("/captures", params={"preview": "false"}).json()

    assert body["partition"] == "secondary"
    assert Path(body["path"]).parent == tmp_path / "extra_screenshots"
    assert manager.list_partition(Partition.SECONDARY) == [body["path"]]


def test_configure_logging_attaches_single_handler(monkeypatch):
    package_logger = logging.getLogger("snapqueue")
    previous_level = package_logger.level
    monkeypatch.setattr(app_main.settings.logging, "level", "DEBUG")
    try:
        app_main._configure_logging()
        app_main._configure_logging()

        named = [h for h in package_logger.handlers if h.get_name() == app_main._LOG_HANDLER_NAME]
        assert package_logger.level == logging.DEBUG
        assert len(named) == 1
    finally:
        for handler in list(package_logger.handlers):
            if handler.get_name() == app_main._LOG_HANDLER_NAME:
                package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)
