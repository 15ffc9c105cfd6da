import importlib
import json
from datetime import date, datetime

logs = importlib.import_module("pagestatus.system.logs")
log_helpers = importlib.import_module("pagestatus.system.log_helpers")
events = importlib.import_module("pagestatus.monitoring.events")


def _read_jsonl(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_get_log_paths_creates_dirs(tmp_path):
    """Teste para criação dos diretórios de log."""
    root, json_dir, debug_dir = logs.get_log_paths(tmp_path / "logs")
    assert root.is_dir()
    assert json_dir == root / "json" and json_dir.is_dir()
    assert debug_dir.is_dir()


def test_log_root_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PAGESTATUS_LOG_ROOT", str(tmp_path / "envlogs"))
    assert logs.get_log_paths().root == tmp_path / "envlogs"


def test_ensure_log_dirs_recreates(tmp_path):
    root = tmp_path / "r"
    logs.ensure_log_dirs_exist(root)
    assert (root / "debug").is_dir()
    (root / "debug").rmdir()
    logs.ensure_log_dirs_exist(root)
    assert (root / "debug").is_dir()


def test_debug_file_path_has_date(tmp_path):
    p = logs.get_debug_file_path(tmp_path)
    assert p.parent == tmp_path / "debug"
    assert date.today().isoformat() in p.name


def test_journal_event_writes_jsonl(tmp_path):
    ev = events.LogEvent(0.0, "CANDLES", "CANDLES:BTC:1h", "ERROR", "Error: boom", {"errorMessage": "boom"})
    logs.journal_event(ev, tmp_path)
    rows = _read_jsonl(logs.get_events_journal_path(tmp_path))
    assert rows == [
        {
            "ts": "1970-01-01T00:00:00+00:00",
            "level": "ERROR",
            "msg": "Error: boom",
            "kind": "ERROR",
            "category": "CANDLES",
            "page_key": "CANDLES:BTC:1h",
            "meta": {"errorMessage": "boom"},
        }
    ]


def test_attach_journal_follows_store(tmp_path):
    """Cada evento anexado ao store vira uma linha no journal, em ordem."""
    store = events.EventLogStore()
    listener = logs.attach_journal(store, tmp_path)
    store.log_load_started("k", "CANDLES", "BTC", "1h")
    store.log_page_released("k", "CANDLES")
    store.unsubscribe(listener)
    store.log_page_released("k2", "CANDLES")
    rows = _read_jsonl(logs.get_events_journal_path(tmp_path))
    assert [r["kind"] for r in rows] == ["LOAD_STARTED", "PAGE_RELEASED"]
    assert all(r["level"] == "INFO" for r in rows)
    assert "meta" not in rows[0]


def test_write_text_appends(tmp_path):
    p = tmp_path / "sub" / "f.txt"
    log_helpers.write_text(p, "a\n")
    log_helpers.write_text(p, "b\n")
    assert p.read_text(encoding="utf-8") == "a\nb\n"


def test_write_json_fallback_to_str(tmp_path):
    p = tmp_path / "f.jsonl"
    log_helpers.write_json(p, {"obj": object()})
    row = _read_jsonl(p)[0]
    assert row["obj"].startswith("<object object")


def test_write_text_without_fsync(monkeypatch, tmp_path):
    monkeypatch.setattr(log_helpers, "DURABLE_WRITES", False)
    p = tmp_path / "f.txt"
    log_helpers.write_text(p, "x")
    assert p.read_text(encoding="utf-8") == "x"


def test_sanitize_log_name():
    assert log_helpers.sanitize_log_name("../../etc/pass wd") == "pass_wd"
    assert log_helpers.sanitize_log_name("") == "debug_log"
    assert len(log_helpers.sanitize_log_name("a" * 500)) == 200


def test_build_json_entry_prefixes_conflicts():
    entry = log_helpers.build_json_entry("t", "INFO", "m", {"ts": "x", "k": 1})
    assert entry == {"ts": "t", "level": "INFO", "msg": "m", "extra_ts": "x", "k": 1}
    assert log_helpers.build_json_entry("t", "INFO", "m", ["a"])["meta"] == ["a"]


def test_format_date_for_log():
    assert log_helpers.format_date_for_log(datetime(2024, 1, 2, 3, 4)) == "2024-01-02"
    assert log_helpers.format_date_for_log(date(2024, 5, 6)) == "2024-05-06"
    assert log_helpers.format_date_for_log(None) == date.today().isoformat()


def test_ensure_dir_writable(tmp_path):
    target = tmp_path / "a" / "b"
    assert log_helpers.ensure_dir_writable(target) is True
    assert list(target.iterdir()) == []
