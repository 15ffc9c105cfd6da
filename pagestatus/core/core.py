"""Core do monitor de status de páginas.

Pipeline de cada tick: coleta de todas as fontes, re-resolução da seleção,
derivação do resumo e publicação para os assinantes da camada de
apresentação. O histórico de eventos é lido de forma independente.
"""

import logging
import threading
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Iterable, Optional

from .emitter import emit_update as _emit_update
from .scheduler import DEFAULT_PERIOD_SECONDS, RefreshScheduler
from ..monitoring.aggregator import EMPTY_SNAPSHOT, AggregatedSnapshot, Aggregator, status_text
from ..monitoring.events import EventLogStore, LogEvent, get_default_store
from ..monitoring.pages import DEFAULT_FAILED_STATES, DEFAULT_IN_FLIGHT_STATES
from ..monitoring.selection import IDLE_RESULT, SelectionCoordinator, SelectionResult
from ..monitoring.sources import PageStateSource

logger = logging.getLogger(__name__)

# granularidade da espera do loop de console (permite KeyboardInterrupt)
_WAIT_SLICE = 0.2


@dataclass(frozen=True)
# Valor publicado a cada tick para a camada de apresentação
class TickUpdate:
    """Snapshot agregado, seleção resolvida, linha de status e feed de eventos."""

    snapshot: AggregatedSnapshot
    selection: SelectionResult
    status: str
    events: tuple = ()

    def to_dict(self) -> dict:
        sel = self.selection
        return {
            "status": self.status,
            "snapshot": self.snapshot.to_dict(),
            "selection": {
                "page_key": sel.selection.page_key if sel.selection else None,
                "category": sel.selection.category if sel.selection else None,
                "stale": sel.stale,
                "entity": sel.entity.to_dict() if sel.entity else None,
                "last_known": sel.last_known.to_dict() if sel.last_known else None,
            },
            "event_count": len(self.events),
        }


EMPTY_UPDATE = TickUpdate(EMPTY_SNAPSHOT, IDLE_RESULT, status_text(EMPTY_SNAPSHOT.counts))


class StatusMonitor:
    """Orquestra agregador, seleção, histórico de eventos e agendador.

    - ``sources``: pares ``(rótulo, fonte-ou-None)`` em ordem de registro;
    - ``store``: EventLogStore injetado (padrão: store do processo);
    - ``period``: intervalo entre ticks em segundos.

    Use como context manager para garantir que nenhum tick ocorra após a
    saída do bloco.
    """

    def __init__(
        self,
        sources: Iterable[tuple[str, Optional[PageStateSource]]] | None = None,
        *,
        store: EventLogStore | None = None,
        period: float = DEFAULT_PERIOD_SECONDS,
        in_flight_states: Iterable[str] = DEFAULT_IN_FLIGHT_STATES,
        failed_states: Iterable[str] = DEFAULT_FAILED_STATES,
    ):
        self.aggregator = Aggregator(sources, in_flight_states=in_flight_states, failed_states=failed_states)
        self.selection = SelectionCoordinator()
        self.store = store if store is not None else get_default_store()
        self.scheduler = RefreshScheduler(self.tick, period=period)
        self._latest = EMPTY_UPDATE
        self._latest_lock = Lock()
        self._subscribers: list[Callable[[TickUpdate], Any]] = []

    # ========================
    # 0. Ciclo de vida
    # ========================

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    # ========================
    # 1. Tick
    # ========================

    def tick(self) -> TickUpdate:
        """Execute o pipeline completo uma vez e publique o resultado."""
        snapshot = self.aggregator.collect()
        selection = self.selection.resolve_result(snapshot)
        status = status_text(snapshot.counts)
        events = self.store.snapshot()
        update = TickUpdate(snapshot, selection, status, events)
        with self._latest_lock:
            self._latest = update
            subscribers = tuple(self._subscribers)
        for callback in subscribers:
            try:
                callback(update)
            except Exception as exc:
                logger.warning("assinante do tick falhou: %s", exc, exc_info=True)
        return update

    def trigger_immediate_refresh(self) -> bool:
        """Execute um tick fora da cadência (mesma regra de descarte)."""
        return self.scheduler.trigger_now()

    # ========================
    # 2. API de apresentação
    # ========================

    def latest_snapshot(self) -> AggregatedSnapshot:
        with self._latest_lock:
            return self._latest.snapshot

    def latest_update(self) -> TickUpdate:
        with self._latest_lock:
            return self._latest

    def subscribe(self, callback: Callable[[TickUpdate], Any]) -> None:
        with self._latest_lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[TickUpdate], Any]) -> None:
        with self._latest_lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def set_selection(self, key: str, category: str) -> None:
        self.selection.select(key, category)

    def clear_selection(self) -> None:
        self.selection.clear()

    def events(self) -> tuple[LogEvent, ...]:
        return self.store.snapshot()

    def clear_events(self) -> None:
        self.store.clear()


# ========================
# 3. Loop de console
# ========================


def run_loop(monitor: StatusMonitor, interval: float, cycles: int, verbose_level: int) -> int:
    """Loop de console: o agendador do monitor dispara os ticks e cada
    atualização é impressa pelo emitter.

    Parâmetros:
        monitor: monitor já configurado com as fontes.
        interval: intervalo entre ticks em segundos (float, > 0).
        cycles: número de ticks a executar (0 = infinito).
        verbose_level: controla o nível de saída humana (0 = silencioso).

    Retorna o número de atualizações impressas.
    """
    if interval > 0.0 and not monitor.scheduler.running:
        monitor.scheduler.period = float(interval)

    done = threading.Event()
    executed = 0

    def _on_update(update: TickUpdate) -> None:
        nonlocal executed
        if done.is_set():
            return
        _emit_update(update, verbose_level)
        executed += 1
        if cycles != 0 and executed >= cycles:
            done.set()

    monitor.subscribe(_on_update)
    try:
        with monitor:
            while not done.wait(_WAIT_SLICE):
                pass
    except KeyboardInterrupt:
        logger.info("Recebido KeyboardInterrupt, saindo...")
    finally:
        monitor.unsubscribe(_on_update)
    return executed
