import importlib
import json
import logging
import sys
from types import SimpleNamespace

import pytest

main_mod = importlib.import_module("pagestatus.main")
_real_setup_debug_file_handler = main_mod._setup_debug_file_handler


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PAGESTATUS_ENV_FILE", str(tmp_path / "missing.env"))
    monkeypatch.setenv("PAGESTATUS_LOG_ROOT", str(tmp_path))
    for var in (
        "PAGESTATUS_HTTP_ENABLE",
        "PAGESTATUS_EXPORTER_ENABLE",
        "PAGESTATUS_JOURNAL_ENABLE",
        "PAGESTATUS_LOKI_ENABLE",
        "PAGESTATUS_REFRESH_INTERVAL_MS",
        "PAGESTATUS_LOG_LEVEL",
        "PAGESTATUS_CYCLES",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(main_mod, "_setup_debug_file_handler", lambda root=None: None)


def test_main_wires_sources_and_runs_loop(monkeypatch):
    """main deve montar uma fonte por categoria e chamar run_loop com o intervalo em segundos."""
    calls = {}

    def _fake_run_loop(monitor, interval, cycles, verbose_level):
        calls.update(monitor=monitor, interval=interval, cycles=cycles, verbose=verbose_level)

    monkeypatch.setattr(main_mod, "run_loop", _fake_run_loop)
    main_mod.main(["-i", "500", "-c", "1", "-v"])
    assert calls["interval"] == 0.5
    assert calls["cycles"] == 1
    assert calls["verbose"] == 1
    assert calls["monitor"].aggregator.labels == list(main_mod.DEFAULT_CATEGORY_ORDER)
    assert calls["monitor"].scheduler.period == 0.5


def test_main_applies_env_file_interval_and_log_level(monkeypatch, tmp_path):
    """Intervalo e nível de log do .env valem quando a CLI não os informa."""
    env_file = tmp_path / "custom.env"
    env_file.write_text("PAGESTATUS_REFRESH_INTERVAL_MS=1000\nPAGESTATUS_LOG_LEVEL=debug\n", encoding="utf-8")
    monkeypatch.setenv("PAGESTATUS_ENV_FILE", str(env_file))
    calls = {}

    def _fake_run_loop(monitor, interval, cycles, verbose_level):
        calls.update(monitor=monitor, interval=interval)

    monkeypatch.setattr(main_mod, "run_loop", _fake_run_loop)
    monkeypatch.setattr(main_mod._logging, "basicConfig", lambda **kw: calls.update(level=kw.get("level")))
    main_mod.main(["-c", "1"])
    assert calls["interval"] == 1.0
    assert calls["monitor"].scheduler.period == 1.0
    assert calls["level"] == logging.DEBUG


def test_main_cli_overrides_env_file(monkeypatch, tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text("PAGESTATUS_REFRESH_INTERVAL_MS=1000\nPAGESTATUS_LOG_LEVEL=DEBUG\n", encoding="utf-8")
    monkeypatch.setenv("PAGESTATUS_ENV_FILE", str(env_file))
    calls = {}
    monkeypatch.setattr(main_mod, "run_loop", lambda monitor, interval, cycles, verbose_level: calls.update(interval=interval))
    monkeypatch.setattr(main_mod._logging, "basicConfig", lambda **kw: calls.update(level=kw.get("level")))
    main_mod.main(["-i", "200", "-c", "1", "--log-level", "error"])
    assert calls["interval"] == 0.2
    assert calls["level"] == logging.ERROR


def test_main_runs_and_stops_simulator(monkeypatch):
    started = []

    class _FakeSim:
        def __init__(self, sources, pages_per_category):
            started.append(("init", len(sources), pages_per_category))

        def start(self):
            started.append("start")

        def stop(self):
            started.append("stop")

    monkeypatch.setattr(main_mod, "PageSimulator", _FakeSim)
    monkeypatch.setattr(main_mod, "run_loop", lambda *a, **k: None)
    main_mod.main(["-c", "1", "--simulate", "2"])
    assert started == [("init", len(main_mod.DEFAULT_CATEGORY_ORDER), 2), "start", "stop"]


def test_main_invalid_args():
    with pytest.raises(ValueError):
        main_mod.main(["-i", "0"])


def test_start_integrations_all_enabled(monkeypatch, tmp_path):
    """Journal, Loki, exporter e HTTP são ligados conforme as configurações."""
    seen = {}
    promtail = importlib.import_module("pagestatus.exporter.promtail")
    exporter = importlib.import_module("pagestatus.exporter.exporter")
    main_http = importlib.import_module("pagestatus.exporter.main_http")

    fwd = SimpleNamespace(stop=lambda: seen.setdefault("fwd_stopped", True))
    monkeypatch.setattr(promtail, "attach_loki_forwarder", lambda store, url=None, labels=None: seen.update(loki=url) or fwd)
    monkeypatch.setattr(exporter, "SnapshotGauges", lambda: "gauges")
    monkeypatch.setattr(exporter, "start_exporter", lambda: seen.update(exporter=True))
    monkeypatch.setattr(main_http, "run_http_server", lambda monitor, addr, port: seen.update(http=(addr, port)))
    monkeypatch.setattr(main_mod, "attach_journal", lambda store, root: seen.update(journal=root))

    monitor = SimpleNamespace(store=object(), subscribe=lambda cb: seen.update(subscribed=cb))
    settings = {
        "journal_enable": True,
        "loki_enable": True,
        "loki_url": "http://loki/push",
        "loki_labels": "job=x",
        "exporter_enable": True,
        "http_enable": True,
        "http_addr": "127.0.0.1",
        "http_port": 8123,
    }
    stoppables = main_mod._start_integrations(monitor, settings, tmp_path)
    for item in stoppables:
        item.stop()
    # thread HTTP é daemon; aguarda a chamada registrar
    for t in list(main_mod.threading.enumerate()):
        if t.name == "pagestatus-http":
            t.join(2)
    assert seen["journal"] == tmp_path
    assert seen["loki"] == "http://loki/push"
    assert seen["subscribed"] == "gauges"
    assert seen["exporter"] is True
    assert seen["http"] == ("127.0.0.1", 8123)
    assert seen["fwd_stopped"] is True


def test_start_integrations_none_enabled():
    assert main_mod._start_integrations(SimpleNamespace(store=None), {}) == []


def test_setup_debug_file_handler_sets_handlers_and_hook(monkeypatch, tmp_path):
    """_setup_debug_file_handler deve adicionar FileHandlers e configurar o hook global de exceções."""
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)

    _real_setup_debug_file_handler(tmp_path)
    _real_setup_debug_file_handler(tmp_path)
    file_handlers = [h for h in root.handlers if isinstance(h, logging.FileHandler)]
    try:
        assert len(file_handlers) == 2
        assert sys.excepthook.__name__ == "_exc_hook"
        logging.getLogger("pagestatus.test").warning("olá %s", "mundo")
        for h in file_handlers:
            h.flush()
        jsonl = [h for h in file_handlers if h.baseFilename.endswith(".jsonl")][0]
        with open(jsonl.baseFilename, encoding="utf-8") as fh:
            row = json.loads(fh.readline())
        assert row["msg"] == "olá mundo"
        assert row["level"] == "WARNING"
    finally:
        for h in file_handlers:
            h.close()


def test_json_formatter_includes_exception():
    fmt = main_mod._get_json_formatter()
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.getLogger("x").makeRecord("x", logging.ERROR, __file__, 1, "falhou", (), sys.exc_info())
    obj = json.loads(fmt.format(record))
    assert obj["msg"] == "falhou"
    assert "RuntimeError: boom" in obj["exc"]


def test_wrap_emit_safe_suppresses_errors(caplog):
    class _Broken(logging.Handler):
        def emit(self, record):
            raise OSError("disk full")

    h = _Broken()
    main_mod._wrap_emit_safe(h)
    with caplog.at_level("WARNING"):
        h.emit(logging.makeLogRecord({"msg": "x"}))
    assert any("emit failed" in r.getMessage() for r in caplog.records)
