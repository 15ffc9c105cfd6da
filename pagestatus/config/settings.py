"""Configurações do monitor de status de páginas.

Este módulo centraliza o intervalo de atualização, a classificação dos
estados (em voo / falha), o nível de logs e as integrações opcionais
(HTTP, exporter Prometheus, journal de eventos, Loki). Carrega valores a
partir de ``DEFAULT_SETTINGS`` e permite overrides via arquivo ``.env`` ou
variáveis de ambiente (prefixo ``PAGESTATUS_*``).

As funções públicas principais são:

- ``load_settings()`` -> dicionário com as configurações efetivas.
- ``validate_settings()`` -> normaliza e valida (levanta ValueError/TypeError).
- ``get_valid_settings()`` -> configurações validadas ou padrão em caso de erro.
"""

import os
from pathlib import Path

from ..monitoring.pages import DEFAULT_FAILED_STATES, DEFAULT_IN_FLIGHT_STATES, normalize_state

# ========================
# Constantes e padrões globais
# ========================

DEFAULT_REFRESH_INTERVAL_MS = 250

DEFAULT_SETTINGS = {
    "refresh_interval_ms": DEFAULT_REFRESH_INTERVAL_MS,
    "in_flight_states": sorted(DEFAULT_IN_FLIGHT_STATES),
    "failed_states": sorted(DEFAULT_FAILED_STATES),
    "log_level": "INFO",
    "http_enable": False,
    "http_addr": "127.0.0.1",
    "http_port": 8000,
    "exporter_enable": False,
    "journal_enable": False,
    "loki_enable": False,
    "loki_url": "http://loki:3100/loki/api/v1/push",
    "loki_labels": "job=pagestatus",
}

_TRUE_VALUES = ("1", "true", "yes", "on")

# chave de ambiente -> (chave de settings, conversor)
_ENV_KEYS = {
    "PAGESTATUS_REFRESH_INTERVAL_MS": ("refresh_interval_ms", "int"),
    "PAGESTATUS_IN_FLIGHT_STATES": ("in_flight_states", "list"),
    "PAGESTATUS_FAILED_STATES": ("failed_states", "list"),
    "PAGESTATUS_LOG_LEVEL": ("log_level", "str"),
    "PAGESTATUS_HTTP_ENABLE": ("http_enable", "bool"),
    "PAGESTATUS_HTTP_ADDR": ("http_addr", "str"),
    "PAGESTATUS_HTTP_PORT": ("http_port", "int"),
    "PAGESTATUS_EXPORTER_ENABLE": ("exporter_enable", "bool"),
    "PAGESTATUS_JOURNAL_ENABLE": ("journal_enable", "bool"),
    "PAGESTATUS_LOKI_ENABLE": ("loki_enable", "bool"),
    "LOKI_URL": ("loki_url", "str"),
    "LOKI_LABELS": ("loki_labels", "str"),
}


# ========================
# 1. Carregamento das configurações
# ========================


# Função principal do módulo; carrega todas as configurações do ambiente
def load_settings() -> dict:
    """Carrega configurações combinando DEFAULTS + .env + ambiente.

    As variáveis em ambiente sobrescrevem valores do arquivo `.env`. Valores
    que não podem ser convertidos são ignorados com warning.
    """
    import logging

    logger = logging.getLogger(__name__)

    settings = {k: (list(v) if isinstance(v, list) else v) for k, v in DEFAULT_SETTINGS.items()}

    project_root = Path(__file__).resolve().parents[2]
    env_path = Path(os.getenv("PAGESTATUS_ENV_FILE", project_root / ".env"))

    env_items = _merge_env_items(env_path, logger)
    _apply_env_overrides(env_items, settings, logger)
    return settings


# ========================
# 2. Funções auxiliares para ambiente e overrides
# ========================


# Auxilia load_settings; criado para centralizar leitura do .env
def _read_env_file(path: Path | str) -> dict:
    """Lê um arquivo `.env` e devolve um dicionário chave->valor.

    Linhas vazias e comentários (começando com '#') são ignorados.
    """
    import logging

    logger = logging.getLogger(__name__)
    result: dict[str, str] = {}
    p = Path(path)
    if not p.exists():
        return result
    try:
        with p.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                result[key.strip()] = val.strip().strip('"').strip("'")
    except OSError as exc:
        logger.debug("Falha ao ler .env em %s: %s", p, exc)
        return {}
    return result


# Auxilia load_settings; criado para unir variáveis do ambiente e .env
def _merge_env_items(env_path: Path, logger) -> dict:
    """Retorna um mapeamento combinado de `.env` e env vars do processo.

    As variáveis do processo sobrescrevem o arquivo `.env`.
    """
    env_items = _read_env_file(env_path)
    if env_items == {} and env_path.exists():
        logger.warning("Erro ou ficheiro .env vazio em %s", env_path)
    env_items.update(os.environ)
    return env_items


def _convert(raw, kind: str):
    if kind == "int":
        return int(float(raw))
    if kind == "bool":
        return str(raw).strip().lower() in _TRUE_VALUES
    if kind == "list":
        return [p.strip() for p in str(raw).split(",") if p.strip()]
    return str(raw)


# Auxilia load_settings; aplica overrides reconhecidos em ``settings``
def _apply_env_overrides(env_items: dict, settings: dict, logger) -> None:
    """Aplica overrides de ``env_items`` para as chaves conhecidas em ``_ENV_KEYS``."""
    for env_key, (setting_key, kind) in _ENV_KEYS.items():
        if env_key not in env_items:
            continue
        raw = env_items[env_key]
        try:
            settings[setting_key] = _convert(raw, kind)
        except (TypeError, ValueError):
            logger.warning("Valor inválido para %s: %s", env_key, raw)


# ========================
# 3. Validação e normalização
# ========================


def _coerce_states(name: str, raw) -> frozenset:
    if isinstance(raw, str):
        raw = [p for p in raw.split(",")]
    if not isinstance(raw, (list, tuple, set, frozenset)):
        raise TypeError(f"{name} deve ser uma lista de estados")
    states = frozenset(normalize_state(s) for s in raw if str(s).strip())
    if not states:
        raise ValueError(f"{name} não pode ser vazio")
    return states


# Função principal de validação; normaliza e valida configurações
def validate_settings(settings: dict) -> dict:
    """Normaliza e valida o dicionário de configurações.

    Garante intervalo positivo, porta válida e conjuntos de estados
    disjuntos. Chaves ausentes recebem o valor padrão.
    """
    import logging

    logger = logging.getLogger(__name__)
    if not isinstance(settings, dict):
        raise TypeError("settings deve ser um dict")

    for key, default in DEFAULT_SETTINGS.items():
        settings.setdefault(key, list(default) if isinstance(default, list) else default)

    try:
        interval = int(settings["refresh_interval_ms"])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"refresh_interval_ms deve ser inteiro: {settings['refresh_interval_ms']!r}") from exc
    if interval <= 0:
        raise ValueError("refresh_interval_ms deve ser > 0")
    settings["refresh_interval_ms"] = interval

    in_flight = _coerce_states("in_flight_states", settings["in_flight_states"])
    failed = _coerce_states("failed_states", settings["failed_states"])
    overlap = in_flight & failed
    if overlap:
        raise ValueError(f"estados em voo e de falha devem ser disjuntos: {sorted(overlap)}")
    settings["in_flight_states"] = in_flight
    settings["failed_states"] = failed

    try:
        port = int(settings["http_port"])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"http_port inválida: {settings['http_port']!r}") from exc
    if not 0 < port < 65536:
        raise ValueError(f"http_port fora do intervalo: {port}")
    settings["http_port"] = port

    settings["log_level"] = str(settings.get("log_level") or "INFO").upper()
    logger.debug("Configurações validadas e normalizadas")
    return settings


# Auxilia outros módulos; retorna configurações validadas ou padrão em caso de erro
def get_valid_settings(settings: dict | None = None) -> dict:
    """Retorna configurações validadas.

    Em caso de erro, retorna os padrões validados e registra aviso.
    """
    import logging

    logger = logging.getLogger(__name__)
    try:
        if settings is None:
            settings = load_settings()
        return validate_settings(settings)
    except (TypeError, ValueError, OSError) as exc:
        logger.warning("Falha ao validar settings; serão usados DEFAULT_SETTINGS: %s", exc)
        return validate_settings({})


def get_refresh_period(settings: dict | None = None) -> float:
    """Intervalo de atualização em segundos a partir das configurações validadas."""
    cfg = get_valid_settings(settings)
    return cfg["refresh_interval_ms"] / 1000.0
