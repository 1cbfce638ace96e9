"""
Tests for the template, printer and preview endpoints.

The service uses a real BadgeRenderer on a temp templates directory; `lpstat`
is never executed, subprocess.check_output is mocked.
"""

import importlib
import json
import subprocess
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.api._queue_state import set_queue_service
from src.badges.renderer import BadgeRenderer
from src.infra.settings import QueueSettings
from src.print_queue import PrintQueueService
from src.printing.printer import LpPrinter, SpoolPrinter


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def load_app():
    import src.api.dependencies.auth as auth_module
    import src.api.main as main_module

    importlib.reload(auth_module)
    importlib.reload(main_module)
    return main_module.app


def fake_lpstat(cmd, **kwargs):
    """Two CUPS printers: Badge is idle, Office is disabled."""
    if cmd == ["lpstat", "-a"]:
        return (
            "Badge accepting requests since Mon 01 Jan 2024\n"
            "Office accepting requests since Mon 01 Jan 2024\n"
        )
    if cmd == ["lpstat", "-p", "Badge"]:
        return "printer Badge is idle.  enabled since Mon 01 Jan 2024\n"
    if cmd == ["lpstat", "-p", "Office"]:
        return "printer Office disabled since Mon 01 Jan 2024 -\n\tPaused\n"
    raise subprocess.CalledProcessError(1, cmd)


@pytest.fixture
def templates_dir(tmp_path):
    root = tmp_path / "templates"
    (root / "default").mkdir(parents=True)
    (root / "vip").mkdir()
    (root / "vip" / "template.json").write_text(json.dumps({"text_fields": [
        {"name": "uid", "x1": 10, "y1": 20, "x2": 110, "y2": 70},
        {"name": "badgeName", "x1": 50, "y1": 100, "x2": 650, "y2": 220},
    ]}))
    return root


@pytest.fixture
def build_client(tmp_path, templates_dir):
    """Factory: TestClient over a service printing to `printer` (spool by default)."""
    services = []

    def _build(printer=None):
        settings = QueueSettings(
            db_path=tmp_path / "print_queue.db",
            work_dir=tmp_path / "temp",
            templates_dir=templates_dir,
            spool_dir=tmp_path / "spool",
            autostart=False,
        )
        service = PrintQueueService.create(
            settings,
            renderer=BadgeRenderer(templates_dir),
            printer=printer or SpoolPrinter(tmp_path / "spool"),
        )
        services.append(service)
        set_queue_service(service)
        return TestClient(load_app())

    yield _build

    for service in services:
        service.stop(timeout=5)
    set_queue_service(None)


@pytest.fixture
def client(build_client):
    return build_client()


# =============================================================================
# /api/templates
# =============================================================================


class TestTemplates:
    def test_list(self, client):
        response = client.get("/api/templates")

        assert response.status_code == 200
        assert response.json() == {"templates": ["default", "vip"], "count": 2}

    def test_get_configured_template(self, client):
        response = client.get("/api/templates/vip")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "vip"
        assert data["has_background"] is False
        assert data["uid_box"] == {"x1": 10, "y1": 20, "x2": 110, "y2": 70}
        assert data["badge_name_box"] == {"x1": 50, "y1": 100, "x2": 650, "y2": 220}

    def test_unknown_template_returns_404(self, client):
        response = client.get("/api/templates/conference")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "Template not found"

    def test_invalid_config_returns_400(self, client, templates_dir):
        (templates_dir / "default" / "template.json").write_text("{not json")

        assert client.get("/api/templates/default").status_code == 400


# =============================================================================
# POST /api/badges/preview
# =============================================================================


class TestPreview:
    def test_returns_png_without_queueing(self, client):
        response = client.post(
            "/api/badges/preview",
            json={"templateId": "default", "uid": "A1", "badgeName": "Ada Lovelace"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == "no-cache"
        assert response.content.startswith(PNG_SIGNATURE)

        assert client.get("/api/queue").json()["counts"]["total"] == 0

    def test_unknown_template_returns_404(self, client):
        response = client.post(
            "/api/badges/preview",
            json={"template_id": "conference", "uid": "A1", "badge_name": "Ada"},
        )

        assert response.status_code == 404

    def test_invalid_payload_returns_422(self, client):
        response = client.post(
            "/api/badges/preview",
            json={"template_id": "default", "uid": "bad uid!", "badge_name": "Ada"},
        )

        assert response.status_code == 422


# =============================================================================
# /api/printers
# =============================================================================


class TestPrinters:
    def test_discovery(self, client):
        with patch("src.printing.printer.subprocess.check_output", side_effect=fake_lpstat):
            response = client.get("/api/printers")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        badge, office = data["printers"]
        assert badge == {"printer_id": "Badge", "connected": True, "status": "Ready", "backend": "cups"}
        assert office["connected"] is False
        assert office["status"] == "Offline"

    def test_discovery_without_cups(self, client):
        with patch(
            "src.printing.printer.subprocess.check_output",
            side_effect=FileNotFoundError("lpstat"),
        ):
            response = client.get("/api/printers")

        assert response.json() == {"printers": [], "count": 0}

    def test_status_of_spool_printer(self, client):
        response = client.get("/api/printers/status")

        assert response.status_code == 200
        assert response.json()["backend"] == "spool"
        assert response.json()["connected"] is True

    def test_status_of_cups_printer(self, build_client):
        client = build_client(printer=LpPrinter("Badge"))

        with patch("src.printing.printer.subprocess.check_output", side_effect=fake_lpstat):
            response = client.get("/api/printers/status")

        assert response.json()["printer_id"] == "Badge"
        assert response.json()["status"] == "Ready"

    def test_presets(self, client):
        response = client.get("/api/printers/presets")

        assert response.status_code == 200
        presets = {p["id"]: p for p in response.json()["presets"]}
        assert set(presets) == {"default", "high-quality", "fast"}
        assert presets["high-quality"]["options"]["print-quality"] == "5"

    def test_connectivity_check(self, client):
        response = client.post("/api/printers/test")

        assert response.status_code == 200
        data = response.json()
        assert data["printer"]["connected"] is True
        assert data["timestamp"].endswith("Z")

    def test_connectivity_check_offline_returns_503(self, build_client):
        client = build_client(printer=LpPrinter("Office"))

        with patch("src.printing.printer.subprocess.check_output", side_effect=fake_lpstat):
            response = client.post("/api/printers/test")

        assert response.status_code == 503
        assert "Office" in response.json()["detail"]["message"]
