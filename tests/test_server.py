"""Tests for the Timer Tracker host service."""

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.testclient import TestClient as StarletteTestClient

from timer_tracker.codec import encode_timers
from timer_tracker.models import Timer
from timer_tracker.persistence import MemoryKeyValueStore
from timer_tracker.server import create_app

# ============================================================
# FIXTURES
# ============================================================


@pytest.fixture
def app(gateway):
    return create_app(gateway=gateway)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _create(client, name="Focus", duration=300, category="Work", **extra):
    resp = await client.post(
        "/timers", json={"name": name, "duration": duration, "category": category, **extra}
    )
    assert resp.status_code == 201
    return resp.json()


async def _control(client, timer_id, action):
    return await client.post(f"/timers/{timer_id}/control", json={"action": action})


async def _complete(app, client, duration=1, **kwargs):
    timer = await _create(client, duration=duration, **kwargs)
    await _control(client, timer["id"], "start")
    for _ in range(duration + 1):
        await app.state.scheduler.tick()
    return timer


# ============================================================
# HEALTH
# ============================================================


class TestHealthCheck:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["timers"] == 0
        assert data["running"] == 0
        assert data["scheduler_running"] is False

    async def test_health_with_timers(self, client):
        timer = await _create(client)
        await _create(client)
        await _control(client, timer["id"], "start")
        data = (await client.get("/health")).json()
        assert data["timers"] == 2
        assert data["running"] == 1


# ============================================================
# TIMERS
# ============================================================


class TestCreateTimerAPI:
    async def test_create_timer(self, client):
        data = await _create(client, name="Tea", duration=300, category="Kitchen")
        assert data["id"].startswith("timer_")
        assert data["name"] == "Tea"
        assert data["category"] == "Kitchen"
        assert data["status"] == "Paused"
        assert data["duration"] == 300
        assert data["remaining"] == 300
        assert data["elapsed"] == 0
        assert data["progress"] == 0.0
        assert data["halfway_alert"] is False
        assert data["halfway_threshold"] == 150

    async def test_create_with_halfway_alert(self, client):
        data = await _create(client, halfway_alert=True)
        assert data["halfway_alert"] is True

    async def test_create_persists(self, client, gateway):
        await _create(client)
        assert "timers" in gateway.data

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "Focus", "duration": 0, "category": "Work"},
            {"name": "Focus", "duration": -3, "category": "Work"},
            {"name": "Focus", "duration": 100000, "category": "Work"},
            {"name": "", "duration": 300, "category": "Work"},
            {"name": "Focus", "duration": 300, "category": ""},
            {"name": "Focus", "duration": 300},
            {"name": "A" * 201, "duration": 300, "category": "Work"},
        ],
    )
    async def test_invalid_payload(self, client, payload):
        resp = await client.post("/timers", json=payload)
        assert resp.status_code == 422

    async def test_blank_name_rejected_by_store(self, client, app):
        resp = await client.post(
            "/timers", json={"name": "   ", "duration": 300, "category": "Work"}
        )
        assert resp.status_code == 422
        assert "name" in resp.json()["detail"]
        assert len(app.state.store) == 0


class TestListTimersAPI:
    async def test_list_empty(self, client):
        resp = await client.get("/timers")
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_list_timers(self, client):
        await _create(client, name="A")
        await _create(client, name="B")
        resp = await client.get("/timers")
        assert [t["name"] for t in resp.json()] == ["A", "B"]

    async def test_filter_by_status_and_category(self, client):
        a = await _create(client, name="A", category="Work")
        await _create(client, name="B", category="Home")
        await _control(client, a["id"], "start")

        running = (await client.get("/timers?status=Running")).json()
        assert [t["id"] for t in running] == [a["id"]]

        home = (await client.get("/timers?category=Home")).json()
        assert [t["name"] for t in home] == ["B"]

    async def test_invalid_status_filter(self, client):
        resp = await client.get("/timers?status=running")
        assert resp.status_code == 422


class TestGetTimerAPI:
    async def test_get_timer(self, client):
        timer = await _create(client)
        resp = await client.get(f"/timers/{timer['id']}")
        assert resp.status_code == 200
        assert resp.json()["id"] == timer["id"]

    async def test_get_nonexistent(self, client):
        resp = await client.get("/timers/nonexistent")
        assert resp.status_code == 404


class TestControlTimerAPI:
    async def test_start_timer(self, client):
        timer = await _create(client)
        resp = await _control(client, timer["id"], "start")
        assert resp.status_code == 200
        assert resp.json()["status"] == "Running"

    async def test_pause_timer(self, client):
        timer = await _create(client)
        await _control(client, timer["id"], "start")
        resp = await _control(client, timer["id"], "pause")
        assert resp.status_code == 200
        assert resp.json()["status"] == "Paused"

    async def test_reset_timer(self, app, client):
        timer = await _create(client, duration=10)
        await _control(client, timer["id"], "start")
        await app.state.scheduler.tick()
        resp = await _control(client, timer["id"], "reset")
        assert resp.status_code == 200
        assert resp.json()["remaining"] == 10
        assert resp.json()["status"] == "Paused"

    async def test_invalid_state_transition(self, client):
        timer = await _create(client)
        resp = await _control(client, timer["id"], "pause")
        assert resp.status_code == 400
        assert "Valid actions" in resp.json()["detail"]

    async def test_start_completed_timer_rejected(self, app, client):
        timer = await _complete(app, client)
        resp = await _control(client, timer["id"], "start")
        assert resp.status_code == 400
        assert "Valid actions: [reset]" in resp.json()["detail"]
        assert (await client.get(f"/timers/{timer['id']}")).json()["status"] == "Completed"

    async def test_reset_completed_timer(self, app, client):
        timer = await _complete(app, client, duration=2)
        resp = await _control(client, timer["id"], "reset")
        assert resp.json()["status"] == "Paused"
        assert resp.json()["remaining"] == 2

    async def test_invalid_action(self, client):
        timer = await _create(client)
        resp = await _control(client, timer["id"], "extend")
        assert resp.status_code == 422

    async def test_control_nonexistent(self, client):
        resp = await _control(client, "nonexistent", "start")
        assert resp.status_code == 404


class TestHalfwayAlertAPI:
    async def test_toggle(self, client):
        timer = await _create(client)
        url = f"/timers/{timer['id']}/halfway-alert"
        resp = await client.put(url, json={"enabled": True})
        assert resp.status_code == 200
        assert resp.json()["halfway_alert"] is True
        resp = await client.put(url, json={"enabled": False})
        assert resp.json()["halfway_alert"] is False

    async def test_auto_disabled_after_firing(self, app, client):
        timer = await _create(client, duration=4, halfway_alert=True)
        await _control(client, timer["id"], "start")
        for _ in range(3):
            await app.state.scheduler.tick()
        data = (await client.get(f"/timers/{timer['id']}")).json()
        assert data["halfway_alert"] is False
        assert data["remaining"] == 1

    async def test_toggle_nonexistent(self, client):
        resp = await client.put("/timers/nonexistent/halfway-alert", json={"enabled": True})
        assert resp.status_code == 404


class TestHistoryAPI:
    async def test_history_lists_completed(self, app, client):
        done = await _complete(app, client, name="Done")
        await _create(client, name="Open")
        resp = await client.get("/timers/history")
        assert resp.status_code == 200
        assert [t["id"] for t in resp.json()] == [done["id"]]
        assert resp.json()[0]["progress"] == 1.0

    async def test_history_empty(self, client):
        assert (await client.get("/timers/history")).json() == []


# ============================================================
# CATEGORIES
# ============================================================


class TestCategoriesAPI:
    async def test_list_categories(self, app, client):
        await _create(client, name="A", category="Work")
        await _create(client, name="B", category="Home")
        await _complete(app, client, name="C", category="Work")

        resp = await client.get("/categories")
        assert resp.status_code == 200
        data = resp.json()
        assert [c["category"] for c in data] == ["Work", "Home"]
        assert data[0]["total"] == 2
        assert data[0]["completed"] == 1
        assert data[0]["paused"] == 1
        assert [t["name"] for t in data[0]["timers"]] == ["A", "C"]

    async def test_start_category(self, app, client):
        a = await _create(client, name="A", category="Work")
        done = await _complete(app, client, name="Done", category="Work")
        other = await _create(client, name="Other", category="Home")

        resp = await client.post("/categories/Work/start")
        assert resp.status_code == 200
        results = {r["timer_id"]: r for r in resp.json()}
        assert results[a["id"]]["success"] is True
        assert results[a["id"]]["status"] == "started"
        assert results[done["id"]]["success"] is False
        assert results[done["id"]]["status"] == "skipped (status: Completed)"
        assert other["id"] not in results

    async def test_pause_category(self, client):
        a = await _create(client, name="A", category="Work")
        b = await _create(client, name="B", category="Work")
        await _control(client, a["id"], "start")

        resp = await client.post("/categories/Work/pause")
        results = {r["timer_id"]: r for r in resp.json()}
        assert results[a["id"]]["status"] == "paused"
        assert results[b["id"]]["success"] is False
        assert (await client.get(f"/timers/{a['id']}")).json()["status"] == "Paused"

    async def test_unknown_category(self, client):
        resp = await client.post("/categories/Nope/start")
        assert resp.status_code == 404


# ============================================================
# LIFESPAN AND WEBSOCKET TESTS
# ============================================================


class TestLifespan:
    def test_loads_stored_timers(self):
        stored = Timer.new("Saved", 60, "Work")
        gateway = MemoryKeyValueStore({"timers": encode_timers([stored])})
        app = create_app(gateway=gateway)
        with StarletteTestClient(app) as tc:
            data = tc.get("/timers").json()
            assert [t["id"] for t in data] == [stored.id]
            assert tc.get("/health").json()["scheduler_running"] is True
        assert app.state.scheduler.running is False
        assert app.state.store.is_open is False

    def test_corrupt_storage_starts_empty(self):
        app = create_app(gateway=MemoryKeyValueStore({"timers": "garbage"}))
        with StarletteTestClient(app) as tc:
            assert tc.get("/timers").json() == []


class TestWebSocket:
    """Tests for the WebSocket endpoint."""

    @pytest.fixture
    def ws_app(self):
        return create_app(gateway=MemoryKeyValueStore(), interval=0.05)

    def test_connect_receives_snapshot(self, ws_app):
        with StarletteTestClient(ws_app) as tc:
            timer = tc.post(
                "/timers", json={"name": "WS Test", "duration": 300, "category": "Work"}
            ).json()
            with tc.websocket_connect("/ws") as ws:
                data = ws.receive_json()
                assert data["type"] == "connected"
                assert data["timers"][0]["id"] == timer["id"]
                assert data["timers"][0]["name"] == "WS Test"

    def test_ping_pong(self, ws_app):
        with StarletteTestClient(ws_app) as tc, tc.websocket_connect("/ws") as ws:
            ws.receive_json()  # connected
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

    def test_sync_request(self, ws_app):
        with StarletteTestClient(ws_app) as tc, tc.websocket_connect("/ws") as ws:
            ws.receive_json()  # connected
            ws.send_json({"type": "sync"})
            data = ws.receive_json()
            assert data["type"] == "sync_response"
            assert data["timers"] == []

    def test_unknown_message_type(self, ws_app):
        with StarletteTestClient(ws_app) as tc, tc.websocket_connect("/ws") as ws:
            ws.receive_json()  # connected
            ws.send_json({"type": "banana"})
            data = ws.receive_json()
            assert data["type"] == "error"
            assert "Unknown message type: banana" in data["message"]

    def test_halfway_and_completion_broadcast(self, ws_app):
        with StarletteTestClient(ws_app) as tc, tc.websocket_connect("/ws") as ws:
            ws.receive_json()  # connected
            timer = tc.post(
                "/timers",
                json={"name": "Eggs", "duration": 2, "category": "Kitchen", "halfway_alert": True},
            ).json()
            tc.post(f"/timers/{timer['id']}/control", json={"action": "start"})

            halfway = ws.receive_json()
            assert halfway["type"] == "timer_halfway"
            assert halfway["timer"]["id"] == timer["id"]
            assert halfway["message"] == "Eggs has reached halfway (1 seconds)."

            completed = ws.receive_json()
            assert completed["type"] == "timer_completed"
            assert completed["timer"]["status"] == "Completed"
            assert completed["message"] == "Congratulations! Eggs completed!"

    def test_client_tracked_on_connect(self, ws_app):
        with StarletteTestClient(ws_app) as tc, tc.websocket_connect("/ws") as ws:
            ws.receive_json()  # connected
            assert len(ws_app.state.broadcaster.clients) == 1
