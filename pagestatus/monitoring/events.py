"""Histórico de eventos do ciclo de vida das páginas (EventLogStore).

O store é append-only até um ``clear()`` explícito. A ordem de inserção é a
ordem cronológica. Cada instância é independente; ``get_default_store()``
fornece a instância compartilhada do processo para produtores que não
recebem o store por injeção.

Não há remoção automática de eventos antigos: o crescimento é ilimitado.
"""

import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

# ========================
# 0. Tipos de evento
# ========================

EVENT_PAGE_CREATED = "PAGE_CREATED"
EVENT_LOAD_STARTED = "LOAD_STARTED"
EVENT_LOAD_COMPLETED = "LOAD_COMPLETED"
EVENT_UPDATE_STARTED = "UPDATE_STARTED"
EVENT_UPDATE_COMPLETED = "UPDATE_COMPLETED"
EVENT_ERROR = "ERROR"
EVENT_PAGE_RELEASED = "PAGE_RELEASED"
EVENT_LISTENER_ADDED = "LISTENER_ADDED"
EVENT_LISTENER_REMOVED = "LISTENER_REMOVED"

EVENT_DISPLAY_NAMES = {
    EVENT_PAGE_CREATED: "Created",
    EVENT_LOAD_STARTED: "Load started",
    EVENT_LOAD_COMPLETED: "Loaded",
    EVENT_UPDATE_STARTED: "Update started",
    EVENT_UPDATE_COMPLETED: "Updated",
    EVENT_ERROR: "Error",
    EVENT_PAGE_RELEASED: "Released",
    EVENT_LISTENER_ADDED: "Listener +",
    EVENT_LISTENER_REMOVED: "Listener -",
}

_RECENT_WINDOW_SECONDS = 5 * 60


@dataclass(frozen=True)
# Registro imutável de um evento; produzido por fontes/produtores, lido pela visão de log
class LogEvent:
    """Evento discreto do ciclo de vida de uma página."""

    timestamp: float
    category: Optional[str]
    page_key: str
    kind: str
    message: str = ""
    meta: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta or {})))

    @classmethod
    def of(cls, page_key: str, category: Optional[str], kind: str, message: str = "", meta: dict | None = None):
        """Crie um evento com timestamp atual (epoch em segundos)."""
        return cls(time.time(), category, page_key, kind, message, meta or {})

    @property
    def is_error(self) -> bool:
        return self.kind == EVENT_ERROR

    @property
    def duration_ms(self) -> Optional[int]:
        value = self.meta.get("durationMs")
        return int(value) if value is not None else None

    @property
    def record_count(self) -> Optional[int]:
        value = self.meta.get("recordCount")
        return int(value) if value is not None else None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "category": self.category,
            "page_key": self.page_key,
            "kind": self.kind,
            "message": self.message,
            "meta": dict(self.meta),
        }


# ========================
# 1. Store
# ========================


class EventLogStore:
    """Store append-only de ``LogEvent`` em ordem de inserção.

    - ``append`` é O(1) e sempre tem sucesso;
    - ``snapshot`` devolve uma cópia pontual (tupla) em ordem de inserção;
    - ``clear`` esvazia o store atomicamente.

    Listeners registrados via ``subscribe`` são chamados após cada ``append``,
    fora do lock; falhas de listener são registradas e ignoradas.
    """

    def __init__(self) -> None:
        self._events: list[LogEvent] = []
        self._lock = Lock()
        self._listeners: list[Callable[[LogEvent], Any]] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def append(self, event: LogEvent) -> None:
        """Anexe ``event`` ao final do histórico e notifique listeners."""
        with self._lock:
            self._events.append(event)
            listeners = tuple(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.warning("listener de eventos falhou para %s: %s", event.page_key, exc, exc_info=True)

    def snapshot(self) -> tuple[LogEvent, ...]:
        """Retorne todos os eventos em ordem de inserção (cópia pontual)."""
        with self._lock:
            return tuple(self._events)

    def clear(self) -> None:
        """Descarte todo o histórico de uma só vez."""
        with self._lock:
            self._events = []
        logger.debug("EventLogStore limpo")

    def clear_page(self, page_key: str) -> int:
        """Descarte de uma só vez os eventos de ``page_key``; retorna quantos saíram."""
        with self._lock:
            kept = [e for e in self._events if e.page_key != page_key]
            removed = len(self._events) - len(kept)
            self._events = kept
        logger.debug("EventLogStore: %d evento(s) de %s descartado(s)", removed, page_key)
        return removed

    # ------------------------
    # listeners
    # ------------------------

    def subscribe(self, listener: Callable[[LogEvent], Any]) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[LogEvent], Any]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ------------------------
    # consultas
    # ------------------------

    def events_for_page(self, page_key: str) -> list[LogEvent]:
        """Eventos de uma página específica, em ordem de inserção."""
        return [e for e in self.snapshot() if e.page_key == page_key]

    def tracked_page_keys(self) -> list[str]:
        """Chaves com pelo menos um evento, na ordem do primeiro evento de cada uma."""
        return list(dict.fromkeys(e.page_key for e in self.snapshot()))

    def query(
        self,
        since: float | None = None,
        category: str | None = None,
        kind: str | None = None,
        page_key: str | None = None,
        limit: int | None = None,
    ) -> list[LogEvent]:
        """Consulte o histórico combinando filtros opcionais.

        ``page_key`` é comparado por substring. ``limit`` mantém os eventos
        mais recentes, preservando a ordem cronológica no resultado.
        """
        out = []
        for e in self.snapshot():
            if since is not None and e.timestamp < since:
                continue
            if category is not None and e.category != category:
                continue
            if kind is not None and e.kind != kind:
                continue
            if page_key and page_key not in e.page_key:
                continue
            out.append(e)
        if limit is not None:
            if limit <= 0:
                return []
            out = out[-limit:]
        return out

    def errors(self, limit: int | None = None) -> list[LogEvent]:
        return self.query(kind=EVENT_ERROR, limit=limit)

    def statistics(self, active_pages: int = 0, total_records: int = 0, now: float | None = None) -> dict:
        """Resuma a atividade registrada.

        Retorna totais, eventos/erros nos últimos 5 minutos, contagens por
        categoria e por tipo e a duração média de carga (ms).
        """
        now = time.time() if now is None else now
        cutoff = now - _RECENT_WINDOW_SECONDS
        events = self.snapshot()

        by_category: dict[str, int] = {}
        by_kind: dict[str, int] = {}
        recent = 0
        recent_errors = 0
        load_total = 0
        load_count = 0
        for e in events:
            cat = e.category or "UNKNOWN"
            by_category[cat] = by_category.get(cat, 0) + 1
            by_kind[e.kind] = by_kind.get(e.kind, 0) + 1
            if e.timestamp >= cutoff:
                recent += 1
                if e.is_error:
                    recent_errors += 1
            if e.kind in (EVENT_LOAD_COMPLETED, EVENT_UPDATE_COMPLETED):
                duration = e.duration_ms
                if duration is not None:
                    load_total += duration
                    load_count += 1

        return {
            "total_events": len(events),
            "events_last_5_minutes": recent,
            "errors_last_5_minutes": recent_errors,
            "by_category": by_category,
            "by_kind": by_kind,
            "avg_load_time_ms": (load_total / load_count) if load_count else 0.0,
            "active_pages": int(active_pages),
            "total_records": int(total_records),
        }

    # ------------------------
    # produtores de conveniência
    # ------------------------

    def log_page_created(self, page_key: str, category: str | None, symbol: str, timeframe: str | None = None) -> None:
        label = f"{symbol}/{timeframe}" if timeframe else symbol
        meta: dict[str, Any] = {"symbol": symbol}
        if timeframe:
            meta["timeframe"] = timeframe
        self.append(LogEvent.of(page_key, category, EVENT_PAGE_CREATED, f"Page created: {label}", meta))

    def log_load_started(self, page_key: str, category: str | None, symbol: str, timeframe: str | None = None) -> None:
        label = f"{symbol}/{timeframe}" if timeframe else symbol
        self.append(LogEvent.of(page_key, category, EVENT_LOAD_STARTED, f"Loading {label}..."))

    def log_load_completed(self, page_key: str, category: str | None, record_count: int, duration_ms: int) -> None:
        meta = {"recordCount": int(record_count), "durationMs": int(duration_ms)}
        msg = f"Loaded {int(record_count)} records in {int(duration_ms)}ms"
        self.append(LogEvent.of(page_key, category, EVENT_LOAD_COMPLETED, msg, meta))

    def log_update_started(self, page_key: str, category: str | None) -> None:
        self.append(LogEvent.of(page_key, category, EVENT_UPDATE_STARTED, "Background update started"))

    def log_update_completed(self, page_key: str, category: str | None, record_count: int, duration_ms: int) -> None:
        meta = {"recordCount": int(record_count), "durationMs": int(duration_ms)}
        msg = f"Updated to {int(record_count)} records in {int(duration_ms)}ms"
        self.append(LogEvent.of(page_key, category, EVENT_UPDATE_COMPLETED, msg, meta))

    def log_error(self, page_key: str, category: str | None, error_message: str) -> None:
        meta = {"errorMessage": error_message}
        self.append(LogEvent.of(page_key, category, EVENT_ERROR, f"Error: {error_message}", meta))

    def log_page_released(self, page_key: str, category: str | None) -> None:
        self.append(LogEvent.of(page_key, category, EVENT_PAGE_RELEASED, "Page released (ref count = 0)"))

    def log_listener_added(self, page_key: str, category: str | None, consumer_name: str) -> None:
        meta = {"consumerName": consumer_name}
        self.append(LogEvent.of(page_key, category, EVENT_LISTENER_ADDED, f"Listener added: {consumer_name}", meta))

    def log_listener_removed(self, page_key: str, category: str | None, consumer_name: str) -> None:
        meta = {"consumerName": consumer_name}
        msg = f"Listener removed: {consumer_name}"
        self.append(LogEvent.of(page_key, category, EVENT_LISTENER_REMOVED, msg, meta))


# ========================
# 2. Instância padrão do processo
# ========================

_default_store: Optional[EventLogStore] = None
_default_lock = Lock()


def get_default_store() -> EventLogStore:
    """Retorne o store compartilhado do processo, criando-o na primeira chamada."""
    global _default_store
    with _default_lock:
        if _default_store is None:
            _default_store = EventLogStore()
        return _default_store
