import importlib

sources = importlib.import_module("pagestatus.monitoring.sources")
events = importlib.import_module("pagestatus.monitoring.events")


def test_in_memory_source_satisfies_protocol():
    assert isinstance(sources.InMemoryPageSource("CANDLES"), sources.PageStateSource)


def test_lifecycle_logs_events_in_order():
    store = events.EventLogStore()
    src = sources.InMemoryPageSource("CANDLES", store=store)
    key = src.track("BTCUSDT", "1h", consumer="chart")
    assert key == "CANDLES:BTCUSDT:1h"
    assert src.mark_loading(key)
    assert src.mark_ready(key, record_count=500)
    assert src.mark_updating(key)
    assert src.mark_ready(key, record_count=501)
    assert src.release(key, consumer="chart")
    kinds = [e.kind for e in store.snapshot()]
    assert kinds == [
        "PAGE_CREATED",
        "LISTENER_ADDED",
        "LOAD_STARTED",
        "LOAD_COMPLETED",
        "UPDATE_STARTED",
        "UPDATE_COMPLETED",
        "LISTENER_REMOVED",
        "PAGE_RELEASED",
    ]
    assert len(src) == 0


def test_shared_page_released_only_after_last_consumer():
    src = sources.InMemoryPageSource("CANDLES")
    key = src.track("BTCUSDT", "1h", consumer="a")
    assert src.track("BTCUSDT", "1h", consumer="b") == key
    assert src.get_active_pages()[0].listener_count == 2
    assert not src.release(key, consumer="a")
    assert len(src) == 1
    assert src.release(key, consumer="b")
    assert src.get_active_pages() == []


def test_error_state_and_detail():
    src = sources.InMemoryPageSource("FUNDING")
    key = src.track("ETHUSDT")
    src.mark_loading(key)
    src.mark_error(key, "HTTP 500")
    page = src.get_active_pages()[0]
    assert page.state == "ERROR"
    assert page.error_detail == "HTTP 500"
    assert page.last_updated is not None


def test_progress_is_clamped():
    src = sources.InMemoryPageSource("CANDLES")
    key = src.track("BTCUSDT", "1m")
    src.mark_loading(key)
    src.set_progress(key, 150)
    assert src.get_active_pages()[0].load_progress == 100
    src.set_progress(key, -5)
    assert src.get_active_pages()[0].load_progress == 0


def test_unknown_key_operations_return_false():
    src = sources.InMemoryPageSource("CANDLES")
    for op in (src.mark_loading, src.mark_updating, src.release):
        assert op("nope") is False
    assert src.mark_ready("nope") is False
    assert src.mark_error("nope", "x") is False
    assert src.set_progress("nope", 10) is False


def test_get_active_pages_returns_copies():
    src = sources.InMemoryPageSource("CANDLES")
    key = src.track("BTCUSDT", "1h")
    before = src.get_active_pages()
    src.mark_loading(key)
    assert before[0].state == "IDLE"
    assert src.get_active_pages()[0].state == "LOADING"
