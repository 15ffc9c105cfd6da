"""Coordenação da página selecionada (visão de detalhe).

A seleção ``(page_key, category)`` persiste entre ticks e é re-validada a
cada snapshot entregue. Uma resolução vazia significa "seleção obsoleta":
a visão de detalhe mantém os últimos valores conhecidos ou mostra
"não encontrada"; nunca é erro.
"""

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Optional

from .aggregator import AggregatedSnapshot
from .pages import PageEntity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    page_key: str
    category: str


@dataclass(frozen=True)
# Valor emitido a cada snapshot entregue para os assinantes da seleção
class SelectionResult:
    """Resultado da resolução da seleção contra um snapshot.

    - ``selection`` é ``None`` no estado ocioso (nenhuma página escolhida);
    - ``entity`` é a página resolvida ou ``None`` quando obsoleta;
    - ``last_known`` guarda a última resolução bem-sucedida da mesma seleção.
    """

    selection: Optional[Selection] = None
    entity: Optional[PageEntity] = None
    last_known: Optional[PageEntity] = None
    sequence: int = 0

    @property
    def idle(self) -> bool:
        return self.selection is None

    @property
    def stale(self) -> bool:
        return self.selection is not None and self.entity is None


IDLE_RESULT = SelectionResult()


class SelectionCoordinator:
    """Mantém a seleção atual e a resolve contra cada novo snapshot."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._selection: Optional[Selection] = None
        self._last_known: Optional[PageEntity] = None
        # snapshots com sequence <= este valor já tinham sido entregues quando a seleção mudou
        self._selected_after_seq = 0
        self._last_delivered_seq = 0
        self._subscribers: list[Callable[[SelectionResult], Any]] = []

    @property
    def selection(self) -> Optional[Selection]:
        with self._lock:
            return self._selection

    def select(self, key: str, category: str) -> None:
        """Registre o interesse em ``(key, category)``, substituindo o anterior.

        A nova seleção só é resolvida contra o próximo snapshot entregue.
        """
        with self._lock:
            new = Selection(key, category)
            if new != self._selection:
                self._last_known = None
            self._selection = new
            self._selected_after_seq = self._last_delivered_seq
        logger.debug("seleção alterada para %s/%s", category, key)

    def clear(self) -> None:
        """Volte ao estado ocioso; suprime a atualização do detalhe."""
        with self._lock:
            self._selection = None
            self._last_known = None

    def resolve(self, snapshot: AggregatedSnapshot) -> Optional[PageEntity]:
        """Procure a seleção em ``snapshot`` por igualdade exata de ``(key, category)``.

        Retorna ``None`` quando não há seleção, quando a página não existe no
        snapshot ou quando o snapshot é anterior à seleção atual.
        """
        with self._lock:
            selection = self._selection
            after_seq = self._selected_after_seq
        if selection is None:
            return None
        if snapshot.sequence and snapshot.sequence <= after_seq:
            return None
        return snapshot.find(selection.page_key, selection.category)

    def resolve_result(self, snapshot: AggregatedSnapshot) -> SelectionResult:
        """Resolva e entregue o resultado a todos os assinantes.

        Chamado uma vez por snapshot entregue; os assinantes são notificados
        fora do lock.
        """
        entity = self.resolve(snapshot)
        with self._lock:
            if snapshot.sequence > self._last_delivered_seq:
                self._last_delivered_seq = snapshot.sequence
            selection = self._selection
            if selection is None:
                result = SelectionResult(sequence=snapshot.sequence)
            else:
                if entity is not None and entity.identity == (selection.page_key, selection.category):
                    self._last_known = entity
                result = SelectionResult(selection, entity, self._last_known, snapshot.sequence)
            subscribers = tuple(self._subscribers)

        for callback in subscribers:
            try:
                callback(result)
            except Exception as exc:
                logger.warning("assinante da seleção falhou: %s", exc, exc_info=True)
        return result

    def subscribe(self, callback: Callable[[SelectionResult], Any]) -> None:
        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[SelectionResult], Any]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
