"""Agregação das fontes de estado em um snapshot único.

A cada tick o ``Aggregator`` lê todas as fontes registradas (na ordem de
registro), concatena as páginas e calcula os contadores de resumo
``{total, in_flight, failed}``. Fontes ausentes (``None``) não contribuem e
não são erro; uma fonte que lança exceção contribui com nada naquele tick.
"""

import itertools
import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Iterable, Optional, Sequence

from .pages import (
    DEFAULT_FAILED_STATES,
    DEFAULT_IN_FLIGHT_STATES,
    STATE_ERROR,
    STATE_IDLE,
    STATE_LOADING,
    STATE_READY,
    STATE_UPDATING,
    PageEntity,
    normalize_state,
)
from .sources import PageStateSource

logger = logging.getLogger(__name__)


# ========================
# 0. Tipos do snapshot
# ========================


@dataclass(frozen=True)
class SummaryCounts:
    """Contadores derivados de um snapshot."""

    total: int = 0
    in_flight: int = 0
    failed: int = 0

    @property
    def settled(self) -> int:
        """Páginas fora de voo e sem falha (IDLE, READY ou estados desconhecidos)."""
        return self.total - self.in_flight - self.failed

    def to_dict(self) -> dict:
        return {"total": self.total, "in_flight": self.in_flight, "failed": self.failed}


@dataclass(frozen=True)
class AggregatedSnapshot:
    """Snapshot efêmero de todas as fontes, recalculado a cada tick.

    ``pages`` segue a ordem de registro das fontes e, dentro de cada fonte,
    a ordem interna dela; não há ordenação global.
    """

    pages: tuple = ()
    counts: SummaryCounts = SummaryCounts()
    taken_at: float = 0.0
    sequence: int = 0

    def __len__(self) -> int:
        return len(self.pages)

    def __iter__(self):
        return iter(self.pages)

    def find(self, key: str, category: str) -> Optional[PageEntity]:
        """Busca exata por ``(key, category)``."""
        for page in self.pages:
            if page.key == key and page.category == category:
                return page
        return None

    def by_category(self) -> dict[str, list[PageEntity]]:
        """Agrupa as páginas por categoria preservando a ordem de aparição."""
        groups: dict[str, list[PageEntity]] = {}
        for page in self.pages:
            groups.setdefault(page.category, []).append(page)
        return groups

    @property
    def total_records(self) -> int:
        return sum(p.record_count for p in self.pages)

    @property
    def total_consumers(self) -> int:
        return sum(p.listener_count for p in self.pages)

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "taken_at": self.taken_at,
            "counts": self.counts.to_dict(),
            "pages": [p.to_dict() for p in self.pages],
        }


EMPTY_SNAPSHOT = AggregatedSnapshot()


# ========================
# 1. Funções de resumo
# ========================


def compute_counts(
    pages: Sequence[PageEntity],
    in_flight_states: Iterable[str] = DEFAULT_IN_FLIGHT_STATES,
    failed_states: Iterable[str] = DEFAULT_FAILED_STATES,
) -> SummaryCounts:
    """Calcule ``total``, ``in_flight`` e ``failed`` para ``pages``."""
    in_flight_set = frozenset(in_flight_states)
    failed_set = frozenset(failed_states)
    in_flight = 0
    failed = 0
    for page in pages:
        if page.state in in_flight_set:
            in_flight += 1
        elif page.state in failed_set:
            failed += 1
    return SummaryCounts(total=len(pages), in_flight=in_flight, failed=failed)


def overall_state(pages: Sequence[PageEntity]) -> str:
    """Estado agregado de um grupo de páginas (cabeçalho por categoria).

    Precedência: LOADING > ERROR > UPDATING > READY (todas prontas) > IDLE.
    """
    any_loading = any_error = any_updating = False
    all_ready = True
    for page in pages:
        if page.state == STATE_LOADING:
            any_loading = True
            all_ready = False
        elif page.state == STATE_UPDATING:
            any_updating = True
        elif page.state == STATE_ERROR:
            any_error = True
            all_ready = False
        elif page.state != STATE_READY:
            all_ready = False
    if any_loading:
        return STATE_LOADING
    if any_error:
        return STATE_ERROR
    if any_updating:
        return STATE_UPDATING
    if all_ready and pages:
        return STATE_READY
    return STATE_IDLE


def status_text(counts: SummaryCounts) -> str:
    """Linha de status curta: prioriza páginas em voo, depois erros."""
    noun = "page" if counts.total == 1 else "pages"
    if counts.in_flight > 0:
        return f"{counts.total} {noun}, {counts.in_flight} loading"
    if counts.failed > 0:
        suffix = "error" if counts.failed == 1 else "errors"
        return f"{counts.total} {noun}, {counts.failed} {suffix}"
    return f"{counts.total} {noun}"


# ========================
# 2. Agregador
# ========================


class Aggregator:
    """Lê as fontes registradas e produz ``AggregatedSnapshot``.

    O agregador não faz locking entre chamadas das fontes: cada fonte é
    responsável por devolver uma cópia consistente. O lock interno protege
    apenas a lista de registros.
    """

    def __init__(
        self,
        sources: Iterable[tuple[str, Optional[PageStateSource]]] | None = None,
        *,
        in_flight_states: Iterable[str] = DEFAULT_IN_FLIGHT_STATES,
        failed_states: Iterable[str] = DEFAULT_FAILED_STATES,
    ):
        self.in_flight_states = frozenset(normalize_state(s) for s in in_flight_states)
        self.failed_states = frozenset(normalize_state(s) for s in failed_states)
        if self.in_flight_states & self.failed_states:
            raise ValueError("estados em voo e de falha devem ser disjuntos")
        self._registrations: list[tuple[str, Optional[PageStateSource]]] = []
        self._lock = Lock()
        self._sequence = itertools.count(1)
        for label, source in sources or ():
            self.register(source, label)

    def register(self, source: Optional[PageStateSource], label: str) -> None:
        """Registre (ou substitua, mantendo a posição) a fonte ``label``."""
        with self._lock:
            for idx, (existing, _src) in enumerate(self._registrations):
                if existing == label:
                    self._registrations[idx] = (label, source)
                    return
            self._registrations.append((label, source))

    def unregister(self, label: str) -> None:
        with self._lock:
            self._registrations = [(lb, s) for lb, s in self._registrations if lb != label]

    @property
    def labels(self) -> list[str]:
        with self._lock:
            return [label for label, _src in self._registrations]

    def collect(self) -> AggregatedSnapshot:
        """Leia todas as fontes presentes e devolva o snapshot do tick."""
        with self._lock:
            registrations = list(self._registrations)

        pages: list[PageEntity] = []
        for label, source in registrations:
            if source is None:
                continue
            try:
                batch = list(source.get_active_pages() or ())
            except Exception as exc:
                logger.warning("fonte %s falhou ao listar páginas: %s", label, exc, exc_info=True)
                continue
            pages.extend(batch)

        counts = compute_counts(pages, self.in_flight_states, self.failed_states)
        return AggregatedSnapshot(
            pages=tuple(pages),
            counts=counts,
            taken_at=time.time(),
            sequence=next(self._sequence),
        )


__all__ = [
    "AggregatedSnapshot",
    "Aggregator",
    "EMPTY_SNAPSHOT",
    "SummaryCounts",
    "compute_counts",
    "overall_state",
    "status_text",
]
