import importlib
import time

import requests

promtail = importlib.import_module("pagestatus.exporter.promtail")
events = importlib.import_module("pagestatus.monitoring.events")


class _Resp:
    def __init__(self, status=204):
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"status {self.status}")


def _event(key="CANDLES:BTC:1h"):
    return events.LogEvent(1.5, "CANDLES", key, "LOAD_STARTED", "Loading BTC/1h...")


def test_parse_labels_formats():
    assert promtail._parse_labels("job=a, env='prod'") == {"job": "a", "env": "prod"}
    assert promtail._parse_labels('{job="a"}') == {"job": "a"}
    assert promtail._parse_labels({"n": 1}) == {"n": "1"}
    assert promtail._parse_labels(None) == {}


def test_build_payload():
    payload = promtail.build_payload(_event(), labels="job=t")
    stream = payload["streams"][0]
    assert stream["stream"] == {"job": "t", "category": "CANDLES", "kind": "LOAD_STARTED"}
    assert stream["values"] == [["1500000000", "CANDLES:BTC:1h Loading BTC/1h..."]]


def test_send_event_success(monkeypatch):
    captured = {}

    def _post(url, json=None, headers=None, timeout=None):
        captured.update(url=url, json=json, headers=headers, timeout=timeout)
        return _Resp()

    monkeypatch.setattr(promtail.requests, "post", _post)
    assert promtail.send_event_to_loki(_event(), url="http://loki/push", labels="job=t") is True
    assert captured["url"] == "http://loki/push"
    assert captured["headers"]["Content-Type"] == "application/json"


def test_send_event_http_error(monkeypatch):
    monkeypatch.setattr(promtail.requests, "post", lambda *a, **k: _Resp(500))
    assert promtail.send_event_to_loki(_event(), url="http://loki/push") is False


def test_send_event_connection_error(monkeypatch):
    def _post(*a, **k):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(promtail.requests, "post", _post)
    assert promtail.send_event_to_loki(_event(), url="http://loki/push") is False


def test_forwarder_sends_in_background(monkeypatch):
    """Eventos anexados ao store são enviados pelo thread do forwarder."""
    sent = []
    monkeypatch.setattr(promtail.requests, "post", lambda url, json=None, **k: sent.append(json) or _Resp())
    store = events.EventLogStore()
    fwd = promtail.attach_loki_forwarder(store, url="http://loki/push", labels="job=t")
    try:
        store.append(_event("a"))
        store.append(_event("b"))
        deadline = time.monotonic() + 2
        while len(sent) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        fwd.stop()
    lines = [p["streams"][0]["values"][0][1].split()[0] for p in sent]
    assert lines == ["a", "b"]


def test_forwarder_drops_when_queue_full():
    fwd = promtail.LokiForwarder(maxsize=1)
    fwd(_event("a"))
    fwd(_event("b"))
    assert fwd.dropped == 1
