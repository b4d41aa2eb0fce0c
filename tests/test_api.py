import time

from fastapi.testclient import TestClient

from trendwindow.config import settings
from trendwindow.database import get_db
from trendwindow.main import app

DAY = 86_400


def _seed_daily(db_path, subject, start, days, value=50.0):
    with get_db(db_path) as conn:
        conn.executemany(
            "INSERT INTO trend_points (subject, time, value) VALUES (?, ?, ?)",
            [(subject, start + i * DAY, value + i) for i in range(days)],
        )
        conn.commit()


def _receive_series(ws):
    points = []
    while True:
        msg = ws.receive_json()
        if msg["type"] == "series_end":
            return msg, points
        assert msg["type"] == "series"
        points.extend(msg["points"])


def test_root():
    client = TestClient(app)
    r = client.get("/")
    assert r.status_code == 200
    assert "running" in r.json()["message"]
    assert app.title == settings.APP_NAME
    assert app.debug is settings.DEBUG


def test_data_endpoint(db_path):
    start = 1_767_225_600  # 2026-01-01
    _seed_daily(db_path, "alice", start, 10)
    client = TestClient(app)

    r = client.get("/data", params={"start": start, "end": start + 4 * DAY, "granularity": "day", "subject": "alice"})
    assert r.status_code == 200
    body = r.json()
    assert body["granularity"] == "day"
    assert [p["time"] for p in body["data"]] == [start + i * DAY for i in range(5)]

    # Granularity picked from the span when omitted
    r = client.get("/data", params={"start": start, "end": start + 9 * DAY, "subject": "alice"})
    assert r.json()["granularity"] == "day"
    r = client.get("/data", params={"start": start, "end": start + DAY, "subject": "alice"})
    assert r.json()["granularity"] == "hour"


def test_data_endpoint_rejects_bad_input(db_path):
    client = TestClient(app)
    assert client.get("/data", params={"start": 10, "end": 20, "granularity": "decade"}).status_code == 400
    assert client.get("/data", params={"start": 20, "end": 10}).status_code == 400


def test_stats(db_path):
    client = TestClient(app)
    assert client.get("/stats").json() == {"count": 0}
    _seed_daily(db_path, "alice", 1_767_225_600, 3)
    _seed_daily(db_path, "bob", 1_767_225_600, 2, value=10.0)
    stats = client.get("/stats").json()
    assert stats["count"] == 5
    assert stats["subjects"] == 2
    assert stats["min_value"] == 10.0
    assert stats["max_value"] == 52.0


def test_websocket_window_session(db_path):
    today = int(time.time()) // DAY * DAY
    _seed_daily(db_path, "alice", today - 40 * DAY, 80)
    start, end = today - 10 * DAY, today

    client = TestClient(app)
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"action": "set_range", "start": start, "end": end, "granularity": "day", "subject": "alice"})
        done, points = _receive_series(ws)
        assert done["granularity"] == "day"
        assert done["range"] == {"start": start, "end": end, "granularity": "day"}
        assert done["count"] == 11
        assert [p["time"] for p in points] == [start + i * DAY for i in range(11)]

        ws.send_json({"action": "extend", "direction": "after"})
        done, points = _receive_series(ws)
        assert done["range"]["end"] == end + 15 * DAY
        assert done["count"] == 26
        times = [p["time"] for p in points]
        assert times == sorted(set(times))

        ws.send_json({"action": "point_click", "time": start})
        msg = ws.receive_json()
        assert msg["type"] == "point"
        assert msg["point"]["time"] == start

        ws.send_json({"action": "point_click", "time": start + 1})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"action": "extend", "direction": "sideways"})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"action": "extend", "direction": "reload"})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"action": "warp"})
        msg = ws.receive_json()
        assert msg == {"type": "error", "error": "Unknown action: warp"}


def test_websocket_rejects_bad_range(db_path):
    client = TestClient(app)
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"action": "set_range", "start": 20, "end": 10, "granularity": "day"})
        assert ws.receive_json()["type"] == "error"
        ws.send_json({"action": "set_range", "start": 10, "end": 20, "granularity": "decade"})
        assert ws.receive_json()["type"] == "error"


def test_websocket_visible_range_extends_before(db_path):
    today = int(time.time()) // DAY * DAY
    _seed_daily(db_path, "alice", today - 40 * DAY, 41)
    start, end = today - 10 * DAY, today

    client = TestClient(app)
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"action": "set_range", "start": start, "end": end, "granularity": "day", "subject": "alice"})
        done, _ = _receive_series(ws)
        assert done["count"] == 11

        ws.send_json({"action": "visible_range", "from_index": 1, "to_index": 8})
        assert ws.receive_json()["type"] == "error"

        # Let the cooldown after the reload run out
        time.sleep(settings.RESET_COOLDOWN_MS / 1000.0 + 0.1)
        ws.send_json({"action": "visible_range", "from_index": 1, "to_index": 8, "data_length": 11})
        done, points = _receive_series(ws)
        assert done["range"]["start"] == start - 15 * DAY
        assert done["range"]["end"] == end
        assert done["count"] == 26
        assert points[0]["time"] == start - 15 * DAY
