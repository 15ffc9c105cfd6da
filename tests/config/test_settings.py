import importlib

import pytest

settings = importlib.import_module("pagestatus.config.settings")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    for key in list(settings._ENV_KEYS):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PAGESTATUS_ENV_FILE", str(tmp_path / "missing.env"))


def test_load_settings_defaults():
    """Sem .env nem ambiente, os padrões são usados."""
    cfg = settings.load_settings()
    assert cfg["refresh_interval_ms"] == 250
    assert cfg["in_flight_states"] == ["LOADING", "UPDATING"]
    assert cfg["failed_states"] == ["ERROR"]
    assert cfg["http_enable"] is False


def test_env_file_then_process_env(monkeypatch, tmp_path):
    env = tmp_path / ".env"
    env.write_text(
        "# comentário\nPAGESTATUS_REFRESH_INTERVAL_MS=500\nPAGESTATUS_HTTP_ENABLE=yes\nLOKI_LABELS='job=x'\nlixo\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("PAGESTATUS_ENV_FILE", str(env))
    monkeypatch.setenv("PAGESTATUS_REFRESH_INTERVAL_MS", "1000")
    cfg = settings.load_settings()
    assert cfg["refresh_interval_ms"] == 1000
    assert cfg["http_enable"] is True
    assert cfg["loki_labels"] == "job=x"


def test_invalid_env_value_ignored(monkeypatch):
    monkeypatch.setenv("PAGESTATUS_HTTP_PORT", "abc")
    assert settings.load_settings()["http_port"] == 8000


def test_state_lists_from_env(monkeypatch):
    monkeypatch.setenv("PAGESTATUS_IN_FLIGHT_STATES", "loading, fetching")
    cfg = settings.validate_settings(settings.load_settings())
    assert cfg["in_flight_states"] == frozenset({"LOADING", "FETCHING"})


def test_validate_settings_normalizes():
    cfg = settings.validate_settings({"refresh_interval_ms": "100", "log_level": "debug", "failed_states": "error"})
    assert cfg["refresh_interval_ms"] == 100
    assert cfg["log_level"] == "DEBUG"
    assert cfg["failed_states"] == frozenset({"ERROR"})
    assert cfg["http_port"] == 8000


@pytest.mark.parametrize(
    "bad",
    [
        {"refresh_interval_ms": 0},
        {"refresh_interval_ms": "x"},
        {"http_port": 70000},
        {"in_flight_states": ["ERROR"], "failed_states": ["ERROR"]},
        {"failed_states": []},
    ],
)
def test_validate_settings_rejects(bad):
    with pytest.raises(ValueError):
        settings.validate_settings(bad)


def test_validate_settings_type_errors():
    with pytest.raises(TypeError):
        settings.validate_settings([])
    with pytest.raises(TypeError):
        settings.validate_settings({"failed_states": 3})


def test_get_valid_settings_falls_back(caplog):
    with caplog.at_level("WARNING"):
        cfg = settings.get_valid_settings({"refresh_interval_ms": -1})
    assert cfg["refresh_interval_ms"] == 250
    assert any("DEFAULT_SETTINGS" in r.getMessage() for r in caplog.records)


def test_get_refresh_period():
    assert settings.get_refresh_period({"refresh_interval_ms": 500}) == 0.5
