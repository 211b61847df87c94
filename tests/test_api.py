import os
import sys

import pytest
from fastapi.testclient import TestClient

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import BROKEN_SCREEN, PassthroughCompiler
from livescreen import main
from livescreen.engine import PreviewEngine
from livescreen.modules.config import ConfigModule


@pytest.fixture
def engine(tmp_path):
    config = ConfigModule()
    config.set("sessions_dir", str(tmp_path / "sessions"))
    return PreviewEngine(config=config, compiler=PassthroughCompiler())


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr(main, "engine", engine)
    with TestClient(main.app) as test_client:
        yield test_client


@pytest.fixture
def session_id(client, home_workspace):
    response = client.post("/sessions", json={"source_path": str(home_workspace), "watch": False})
    assert response.status_code == 201
    return response.json()["session_id"]


# Health


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_health_reports_engine_status(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["redis"] == "not configured"
    assert body["sessions"] == 0


def test_health_without_engine(monkeypatch):
    monkeypatch.setattr(main, "engine", None)

    response = TestClient(main.app).get("/health")

    assert response.status_code == 503


# Sessions


def test_create_session(client, home_workspace, engine):
    response = client.post("/sessions", json={"source_path": str(home_workspace), "watch": False})

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "ready"
    assert body["source_path"] == str(home_workspace.resolve())
    assert body["workspace_path"].startswith(engine.config.get("sessions_dir"))


def test_create_session_rejects_two_sources(client, home_workspace):
    response = client.post(
        "/sessions", json={"source_path": str(home_workspace), "workspace_root": str(home_workspace)}
    )

    assert response.status_code == 422


def test_unknown_session_is_404(client):
    response = client.get("/sessions/missing")

    assert response.status_code == 404
    assert response.json()["error"] == "session_not_found"
    assert client.get("/sessions/missing/manifest").status_code == 404
    assert client.get("/sessions/missing/events").status_code == 404


def test_delete_session(client, session_id):
    assert client.delete(f"/sessions/{session_id}").status_code == 204
    assert client.get(f"/sessions/{session_id}").status_code == 404
    assert client.delete(f"/sessions/{session_id}").status_code == 404


def test_cleanup(client, session_id):
    response = client.post("/sessions/cleanup")

    assert response.json() == {"removed": [session_id]}
    assert client.get("/sessions").json() == {"sessions": []}


# Manifest and modules


def test_manifest_etag_round_trip(client, session_id):
    """Test a client holding the current fingerprint gets 304."""
    response = client.get(f"/sessions/{session_id}/manifest")

    assert response.status_code == 200
    etag = response.headers["etag"]
    assert response.headers["cache-control"].startswith("no-cache")
    assert "x-build-time" in response.headers
    body = response.json()
    assert [s["module_id"] for s in body["screens"]] == ["CartScreen", "Home"]
    assert body["endpoints"]["events"] == f"/sessions/{session_id}/events"
    assert body["cache_ttl"] == {"module": 30.0, "manifest": 60.0}

    cached = client.get(f"/sessions/{session_id}/manifest", headers={"If-None-Match": etag})

    assert cached.status_code == 304
    assert cached.headers["x-cache"] == "HIT"


def test_get_module(client, session_id):
    response = client.get(f"/sessions/{session_id}/modules/Home")

    assert response.status_code == 200
    # Warmed at session creation
    assert response.headers["x-cache"] == "HIT"
    body = response.json()
    assert body["registry_key"] == "home-screen"
    assert body["dependencies"] == ["analytics-lib"]
    assert response.headers["etag"] == body["fingerprint"]


def test_unknown_module_is_404(client, session_id):
    response = client.get(f"/sessions/{session_id}/modules/Ghost")

    assert response.status_code == 404
    assert response.json()["error"] == "module_not_found"


def test_list_modules(client, session_id):
    modules = client.get(f"/sessions/{session_id}/modules").json()["modules"]

    assert {m["module_id"]: m["registry_key"] for m in modules} == {
        "CartScreen": "cart-screen",
        "Home": "home-screen",
    }


def test_file_update_rebuilds_module(client, session_id):
    response = client.put(
        f"/sessions/{session_id}/modules/Home/files/Home.tsx",
        json={"content": "export default function Home() { return 'edited'; }\n"},
    )
    assert response.status_code == 200

    module = client.get(f"/sessions/{session_id}/modules/Home")

    assert module.headers["x-cache"] == "MISS"
    assert "'edited'" in module.json()["code"]
    raw = client.get(f"/sessions/{session_id}/modules/Home/files/Home.tsx").json()
    assert "'edited'" in raw["content"]


def test_broken_module_returns_placeholder(client, session_id):
    client.put(f"/sessions/{session_id}/modules/CartScreen/files/CartScreen.tsx", json={"content": BROKEN_SCREEN})

    response = client.get(f"/sessions/{session_id}/modules/CartScreen")

    assert response.status_code == 200
    assert response.json()["error"]
    assert "LivescreenErrorPlaceholder" in response.json()["code"]


def test_undecodable_module_returns_placeholder(client, session_id, engine):
    session = engine.store.require(session_id)
    (session.src_root / "screens/CartScreen.tsx").write_bytes(b"\xff\xfe")
    client.delete(f"/sessions/{session_id}/cache")

    response = client.get(f"/sessions/{session_id}/modules/CartScreen")

    assert response.status_code == 200
    assert "not valid UTF-8" in response.json()["error"]
    assert "LivescreenErrorPlaceholder" in response.json()["code"]


def test_clear_cache(client, session_id):
    response = client.delete(f"/sessions/{session_id}/cache")

    assert response.status_code == 200
    assert response.json()["evicted"] >= 3


# Hot swap


def test_hot_reload_now(client, session_id):
    response = client.post(f"/sessions/{session_id}/hot-reload", json={"module_id": "Home"})

    assert response.status_code == 200
    body = response.json()
    assert body["applied"] is True
    assert body["registry_key"] == "home-screen"

    registry = client.get(f"/sessions/{session_id}/registry").json()
    assert [c["registry_key"] for c in registry["components"]] == ["home-screen"]
    assert "code" not in registry["components"][0]


def test_hot_reload_rejects_bad_module_id(client, session_id):
    response = client.post(f"/sessions/{session_id}/hot-reload", json={"module_id": "../etc"})

    assert response.status_code == 422


def test_hot_reload_debounced_is_accepted(client, session_id):
    response = client.post(f"/sessions/{session_id}/hot-reload", json={"module_id": "Home", "debounce": True})

    assert response.status_code == 202
    assert response.json()["scheduled"] is True


def test_changed_modules_and_apply(client, session_id):
    assert client.get(f"/sessions/{session_id}/changed-modules").json()["changed"] == []

    response = client.post(f"/sessions/{session_id}/apply-changes")

    assert response.json() == {"session_id": session_id, "results": []}


def test_inject(client, session_id):
    response = client.post(
        f"/sessions/{session_id}/inject",
        json={"module_id": "PromoBanner", "code": "export default function PromoBanner() { return null; }\n"},
    )

    assert response.status_code == 200
    assert response.json()["registry_key"] == "promo-banner-screen"


def test_inject_broken_code_is_422(client, session_id):
    response = client.post(f"/sessions/{session_id}/inject", json={"module_id": "Broken", "code": BROKEN_SCREEN})

    assert response.status_code == 422
    assert response.json()["error"] == "transform_failed"


def test_inject_rejects_bad_registry_key(client, session_id):
    response = client.post(
        f"/sessions/{session_id}/inject",
        json={"module_id": "X", "code": "export default () => null;", "registry_key": "Not Kebab"},
    )

    assert response.status_code == 422


def test_navigation_update(client, session_id):
    response = client.post(f"/sessions/{session_id}/navigation", json={"config": {"initial": "home-screen"}})

    assert response.json()["type"] == "navigation-update"
    registry = client.get(f"/sessions/{session_id}/registry").json()
    assert registry["navigation"] == {"initial": "home-screen"}
