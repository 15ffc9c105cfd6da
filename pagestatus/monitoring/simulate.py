"""Produtor simulado para o modo de demonstração (``--simulate N``).

Conduz páginas de ``InMemoryPageSource`` pelo ciclo
LOADING -> READY -> UPDATING -> READY, com falhas ocasionais (ERROR) que se
recuperam numa nova carga. Cada passo avança uma página por vez.
"""

import logging
import random
import threading
from typing import Iterable, Optional

from .pages import CATEGORY_CANDLES, STATE_ERROR, STATE_IDLE, STATE_LOADING, STATE_READY, STATE_UPDATING
from .sources import InMemoryPageSource

logger = logging.getLogger(__name__)

DEFAULT_SYMBOLS = ("BTCUSDT", "ETHUSDT", "SOLUSDT", "BNBUSDT", "XRPUSDT", "ADAUSDT", "DOGEUSDT", "AVAXUSDT")
DEFAULT_TIMEFRAMES = ("1m", "5m", "15m", "1h", "4h", "1d")
SIMULATOR_CONSUMER = "simulator"


class PageSimulator:
    """Thread de fundo que altera o estado das páginas simuladas.

    ``error_rate`` é a probabilidade de uma carga/atualização terminar em
    ERROR. ``rng`` pode ser injetado para execuções determinísticas.
    """

    def __init__(
        self,
        sources: Iterable[InMemoryPageSource],
        pages_per_category: int = 2,
        period: float = 0.5,
        error_rate: float = 0.05,
        rng: Optional[random.Random] = None,
    ):
        if period <= 0:
            raise ValueError("period deve ser > 0")
        self.sources = list(sources)
        self.pages_per_category = max(0, int(pages_per_category))
        self.period = float(period)
        self.error_rate = float(error_rate)
        self._rng = rng or random.Random()
        self._keys: list[tuple[InMemoryPageSource, str]] = []
        self._states: dict[str, str] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def keys(self) -> list[str]:
        return [key for _, key in self._keys]

    def populate(self) -> None:
        """Registre as páginas simuladas (idempotente)."""
        if self._keys:
            return
        for source in self.sources:
            for symbol, timeframe in _identities(source.category, self.pages_per_category):
                key = source.track(symbol, timeframe, consumer=SIMULATOR_CONSUMER)
                self._keys.append((source, key))
                self._states[key] = STATE_IDLE

    def step(self) -> Optional[str]:
        """Avance uma página escolhida ao acaso; retorna a chave alterada."""
        if not self._keys:
            return None
        source, key = self._rng.choice(self._keys)
        state = self._states.get(key, STATE_IDLE)
        if state in (STATE_IDLE, STATE_ERROR):
            source.mark_loading(key)
            nxt = STATE_LOADING
        elif state == STATE_READY:
            source.mark_updating(key)
            nxt = STATE_UPDATING
        elif self._rng.random() < self.error_rate:
            source.mark_error(key, "simulated fetch failure")
            nxt = STATE_ERROR
        else:
            source.mark_ready(key, record_count=self._rng.randint(100, 5000))
            nxt = STATE_READY
        self._states[key] = nxt
        return key

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self.populate()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="pagestatus-simulator", daemon=True)
        self._thread.start()
        logger.info("simulador iniciado com %d páginas", len(self._keys))

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self.period):
            try:
                self.step()
            except Exception as exc:
                logger.error("falha no passo do simulador: %s", exc, exc_info=True)


def _identities(category: str, count: int) -> list[tuple[str, Optional[str]]]:
    """Gere ``count`` pares (símbolo, timeframe) distintos para a categoria.

    Acabados os símbolos padrão, os seguintes são sintéticos (``SIM9USDT``).
    """
    out: list[tuple[str, Optional[str]]] = []
    i = 0
    while len(out) < count:
        symbol = DEFAULT_SYMBOLS[i] if i < len(DEFAULT_SYMBOLS) else f"SIM{i}USDT"
        if category == CATEGORY_CANDLES:
            timeframe = DEFAULT_TIMEFRAMES[i % len(DEFAULT_TIMEFRAMES)]
        else:
            timeframe = None
        out.append((symbol, timeframe))
        i += 1
    return out
