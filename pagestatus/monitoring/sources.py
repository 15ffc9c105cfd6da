"""Fontes de estado de páginas.

``PageStateSource`` é o contrato consumido pelo agregador: uma leitura
pontual, sem estado parcialmente atualizado, das páginas ativas de uma
categoria. ``InMemoryPageSource`` é uma implementação em processo, protegida
por lock, para produtores que não possuem um gerenciador de páginas próprio
(usada também pelo simulador e pelos testes).
"""

import logging
import time
from threading import Lock
from typing import Optional, Protocol, Sequence, runtime_checkable

from .events import EventLogStore
from .pages import (
    STATE_ERROR,
    STATE_IDLE,
    STATE_LOADING,
    STATE_READY,
    STATE_UPDATING,
    PageEntity,
    make_page_key,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class PageStateSource(Protocol):
    """Contrato de leitura de uma fonte de estado (uma por categoria)."""

    def get_active_pages(self) -> Sequence[PageEntity]:
        """Retorne uma cópia pontual e consistente das páginas ativas."""
        ...


# Estado mutável interno de uma página; nunca exposto fora do lock
class _PageRecord:
    __slots__ = (
        "key",
        "symbol",
        "timeframe",
        "state",
        "consumers",
        "record_count",
        "error_detail",
        "last_updated",
        "load_progress",
        "started_at",
    )

    def __init__(self, key: str, symbol: str, timeframe: Optional[str]):
        self.key = key
        self.symbol = symbol
        self.timeframe = timeframe
        self.state = STATE_IDLE
        self.consumers: list[str] = []
        self.record_count = 0
        self.error_detail: Optional[str] = None
        self.last_updated: Optional[float] = None
        self.load_progress = 0
        self.started_at = 0.0


class InMemoryPageSource:
    """Fonte de estado em memória para uma categoria.

    Todas as transições ocorrem sob ``self._lock``; ``get_active_pages``
    copia o estado sob o mesmo lock, garantindo leituras sem "rasgos".
    Quando ``store`` é informado, cada transição registra o ``LogEvent``
    correspondente (fora do lock).
    """

    def __init__(self, category: str, store: EventLogStore | None = None):
        self.category = category
        self.store = store
        self._pages: dict[str, _PageRecord] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pages)

    # ========================
    # 0. Leitura (contrato PageStateSource)
    # ========================

    def get_active_pages(self) -> list[PageEntity]:
        """Cópia pontual das páginas, na ordem em que foram criadas."""
        with self._lock:
            return [self._to_entity(rec) for rec in self._pages.values()]

    def _to_entity(self, rec: _PageRecord) -> PageEntity:
        return PageEntity(
            key=rec.key,
            category=self.category,
            state=rec.state,
            last_updated=rec.last_updated,
            error_detail=rec.error_detail,
            symbol=rec.symbol,
            timeframe=rec.timeframe,
            listener_count=len(rec.consumers),
            record_count=rec.record_count,
            consumers=tuple(rec.consumers),
            load_progress=rec.load_progress,
        )

    # ========================
    # 1. Ciclo de vida (produtores)
    # ========================

    def track(self, symbol: str, timeframe: str | None = None, consumer: str | None = None) -> str:
        """Crie a página (se necessário) e registre ``consumer``.

        Retorna a chave da página. Páginas com a mesma identidade são
        compartilhadas entre consumidores.
        """
        key = make_page_key(self.category, symbol, timeframe)
        created = False
        added = False
        with self._lock:
            rec = self._pages.get(key)
            if rec is None:
                rec = _PageRecord(key, symbol, timeframe)
                self._pages[key] = rec
                created = True
            if consumer is not None:
                rec.consumers.append(consumer)
                added = True
        if self.store is not None:
            if created:
                self.store.log_page_created(key, self.category, symbol, timeframe)
            if added:
                self.store.log_listener_added(key, self.category, str(consumer))
        return key

    def mark_loading(self, key: str) -> bool:
        """Marque a página como LOADING (carga inicial)."""
        with self._lock:
            rec = self._pages.get(key)
            if rec is None:
                return False
            rec.state = STATE_LOADING
            rec.error_detail = None
            rec.load_progress = 0
            rec.started_at = time.monotonic()
            symbol, timeframe = rec.symbol, rec.timeframe
        if self.store is not None:
            self.store.log_load_started(key, self.category, symbol, timeframe)
        return True

    def mark_updating(self, key: str) -> bool:
        """Marque a página como UPDATING (atualização em segundo plano)."""
        with self._lock:
            rec = self._pages.get(key)
            if rec is None:
                return False
            rec.state = STATE_UPDATING
            rec.load_progress = 0
            rec.started_at = time.monotonic()
        if self.store is not None:
            self.store.log_update_started(key, self.category)
        return True

    def set_progress(self, key: str, percent: int) -> bool:
        with self._lock:
            rec = self._pages.get(key)
            if rec is None:
                return False
            rec.load_progress = max(0, min(100, int(percent)))
        return True

    def mark_ready(self, key: str, record_count: int = 0) -> bool:
        """Conclua a carga/atualização, registrando a duração em ms."""
        with self._lock:
            rec = self._pages.get(key)
            if rec is None:
                return False
            previous = rec.state
            duration_ms = int((time.monotonic() - rec.started_at) * 1000) if rec.started_at else 0
            rec.state = STATE_READY
            rec.record_count = int(record_count)
            rec.error_detail = None
            rec.load_progress = 100
            rec.last_updated = time.time()
        if self.store is not None:
            if previous == STATE_UPDATING:
                self.store.log_update_completed(key, self.category, record_count, duration_ms)
            else:
                self.store.log_load_completed(key, self.category, record_count, duration_ms)
        return True

    def mark_error(self, key: str, detail: str) -> bool:
        with self._lock:
            rec = self._pages.get(key)
            if rec is None:
                return False
            rec.state = STATE_ERROR
            rec.error_detail = detail
            rec.last_updated = time.time()
        if self.store is not None:
            self.store.log_error(key, self.category, detail)
        return True

    def release(self, key: str, consumer: str | None = None) -> bool:
        """Remova ``consumer`` da página; sem consumidores a página é liberada.

        Retorna True quando a página deixou de ser rastreada.
        """
        removed_consumer = False
        released = False
        with self._lock:
            rec = self._pages.get(key)
            if rec is None:
                return False
            if consumer is not None and consumer in rec.consumers:
                rec.consumers.remove(consumer)
                removed_consumer = True
            if not rec.consumers:
                del self._pages[key]
                released = True
        if self.store is not None:
            if removed_consumer:
                self.store.log_listener_removed(key, self.category, str(consumer))
            if released:
                self.store.log_page_released(key, self.category)
        if released:
            logger.debug("página liberada: %s", key)
        return released
