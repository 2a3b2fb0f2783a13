import io
import threading

import pytest
from PIL import Image

from conftest import FakeClient
from heroverse import server
from heroverse.orchestrator import PageOrchestrator
from heroverse.server import RunState, create_app


def png_bytes(size=(64, 64), color=(200, 30, 30, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def state():
    state = RunState(client=FakeClient())
    yield state
    state.loop.call_soon_threadsafe(state.loop.stop)


@pytest.fixture
def http(state):
    app = create_app(state)
    app.config["TESTING"] = True
    return app.test_client()


def test_options(http):
    data = http.get("/api/options").get_json()

    assert "Custom" in data["genres"]
    assert len(data["tones"]) == 6
    assert {"code": "en-US", "name": "English (US)"} in data["languages"]


def test_settings_roundtrip(http, state):
    res = http.post("/api/settings", json={"genre": "High Fantasy", "ref_strength": 3})

    assert res.status_code == 200
    assert state.session.settings.genre == "High Fantasy"
    assert http.get("/api/settings").get_json()["ref_strength"] == 3


def test_invalid_settings_rejected(http, state):
    res = http.post("/api/settings", json={"ref_strength": 7})

    assert res.status_code == 400
    assert state.session.settings.ref_strength == 2


def test_upload_hero(http, state):
    res = http.post("/api/upload/hero", data={"file": (io.BytesIO(png_bytes()), "hero.png")},
                    content_type="multipart/form-data")

    assert res.status_code == 200
    assert state.session.hero.mime_type == "image/jpeg"
    assert state.session.hero.desc == "The Main Hero"
    assert any("Hero identity confirmed." in line for line in state.session.feed)


def test_upload_rejects_unknown_role(http):
    res = http.post("/api/upload/villain", data={"file": (io.BytesIO(png_bytes()), "v.png")},
                    content_type="multipart/form-data")

    assert res.status_code == 404


def test_launch_without_hero(http, state):
    res = http.post("/api/launch")

    assert res.status_code == 400
    assert "hero" in res.get_json()["error"].lower()
    assert state.session.client.calls == []


def test_pages_snapshot(http):
    data = http.get("/api/pages").get_json()

    assert data["issue"] == 1
    assert data["pages"] == []
    assert data["launching"] is False
    assert data["gate_ready"] is False


def test_connection_endpoint(http):
    assert http.post("/api/test_connection").get_json() == {"success": True}


def test_choice_requires_fields(http):
    assert http.post("/api/choice", json={"page": 3}).status_code == 400


def test_pages_are_read_on_the_loop_thread(http, state, monkeypatch):
    threads = []
    real_snapshot = server.snapshot

    def recording_snapshot(session):
        threads.append(threading.current_thread())
        return real_snapshot(session)

    monkeypatch.setattr(server, "snapshot", recording_snapshot)
    state.call(PageOrchestrator(state.session).add_faces, [0, 1, 2])

    data = http.get("/api/pages").get_json()

    assert threads == [state.thread]
    assert [p["page_index"] for p in data["pages"]] == [0, 1, 2]
    assert data["gate_ready"] is False
