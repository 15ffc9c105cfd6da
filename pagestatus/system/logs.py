"""Subsistema de logs: diretórios, arquivo de debug e journal de eventos.

Resolve a raiz de logs (``PAGESTATUS_LOG_ROOT``), garante os diretórios e
grava o journal JSONL dos eventos do ``EventLogStore``. O journal registra
apenas eventos brutos; o snapshot agregado nunca é persistido.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from .log_helpers import build_json_entry, ensure_dir_writable, format_date_for_log, sanitize_log_name, write_json

logger = logging.getLogger(__name__)

# ========================
# 0. Configuração padrão
# ========================

LOG_ROOT = (os.getenv("PAGESTATUS_LOG_ROOT", "logs") or "logs").strip() or "logs"

DEBUG_LOG_FILENAME = "debug_log"
EVENTS_LOG_NAME = "events"


# ========================
# 1. Diretórios e Paths
# ========================


@dataclass(frozen=True)
# Representa os diretórios usados pelo subsistema de logs
class LogPaths:
    """Agrupa caminhos usados pelo subsistema de logging."""

    root: Path
    json_dir: Path
    debug_dir: Path

    def __iter__(self):
        return iter((self.root, self.json_dir, self.debug_dir))


def _resolve_root(root: str | Path | None) -> Path:
    env_root = os.getenv("PAGESTATUS_LOG_ROOT")
    candidate = root if root else (env_root if env_root else LOG_ROOT)
    return Path(candidate)


def get_log_paths(root: str | Path | None = None) -> LogPaths:
    """Resolve raiz de logs e garante diretórios criados e graváveis."""
    log_root = _resolve_root(root)
    json_dir = log_root / "json"
    debug_dir = log_root / "debug"
    for p in (log_root, json_dir, debug_dir):
        ensure_dir_writable(p)
    return LogPaths(log_root, json_dir, debug_dir)


# Retorna o caminho do arquivo de debug do dia; usado pelos handlers de main
def get_debug_file_path(root: str | Path | None = None) -> Path:
    """Retorna caminho do arquivo de debug diário."""
    date_str = format_date_for_log(None)
    return get_log_paths(root).debug_dir / f"{DEBUG_LOG_FILENAME}-{date_str}.txt"


def ensure_log_dirs_exist(root: str | Path | None = None) -> None:
    """Garante existência dos diretórios de logs e recria se faltarem.

    Faz checagens leves (Path.exists()) e só escala para a criação completa
    quando um caminho estiver ausente.
    """
    log_root = _resolve_root(root)
    for p in (log_root, log_root / "json", log_root / "debug"):
        if not p.exists():
            get_log_paths(root)
            break


# ========================
# 2. Journal de eventos
# ========================


def get_events_journal_path(root: str | Path | None = None) -> Path:
    name = sanitize_log_name(EVENTS_LOG_NAME, EVENTS_LOG_NAME)
    return get_log_paths(root).json_dir / f"{name}-{format_date_for_log(None)}.jsonl"


def journal_event(event, root: str | Path | None = None) -> None:
    """Anexe um ``LogEvent`` ao journal JSONL do dia.

    O nível é ERROR para eventos de erro e INFO para os demais.
    """
    ts = datetime.fromtimestamp(event.timestamp, timezone.utc).isoformat()
    level = "ERROR" if event.is_error else "INFO"
    extra = {
        "kind": event.kind,
        "category": event.category,
        "page_key": event.page_key,
    }
    if event.meta:
        extra["meta"] = dict(event.meta)
    write_json(get_events_journal_path(root), build_json_entry(ts, level, event.message, extra))


def attach_journal(store, root: str | Path | None = None) -> Callable:
    """Assine o journal no ``store``; retorna o listener (para ``unsubscribe``)."""

    def _listener(event) -> None:
        journal_event(event, root)

    store.subscribe(_listener)
    logger.info("journal de eventos ativo em %s", get_log_paths(root).json_dir)
    return _listener
