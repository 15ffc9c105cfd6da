"""Modelo de dados das páginas monitoradas.

Define as constantes de estado e de categoria e a entidade imutável
``PageEntity`` entregue pelas fontes de estado (``PageStateSource``).

O conjunto de estados é aberto: qualquer string é aceita como estado. A
classificação para os contadores de resumo usa os conjuntos configuráveis
``DEFAULT_IN_FLIGHT_STATES`` e ``DEFAULT_FAILED_STATES``.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

# ========================
# 0. Estados e categorias
# ========================

STATE_IDLE = "IDLE"
STATE_LOADING = "LOADING"
STATE_UPDATING = "UPDATING"
STATE_READY = "READY"
STATE_ERROR = "ERROR"

# alias herdado: páginas recém-criadas eram reportadas como EMPTY
STATE_EMPTY_ALIAS = "EMPTY"

KNOWN_STATES = (STATE_IDLE, STATE_LOADING, STATE_UPDATING, STATE_READY, STATE_ERROR)

DEFAULT_IN_FLIGHT_STATES = frozenset({STATE_LOADING, STATE_UPDATING})
DEFAULT_FAILED_STATES = frozenset({STATE_ERROR})

CATEGORY_CANDLES = "CANDLES"
CATEGORY_FUNDING = "FUNDING"
CATEGORY_OPEN_INTEREST = "OPEN_INTEREST"
CATEGORY_AGG_TRADES = "AGG_TRADES"
CATEGORY_PREMIUM_INDEX = "PREMIUM_INDEX"

CATEGORY_DISPLAY_NAMES = {
    CATEGORY_CANDLES: "Candles",
    CATEGORY_FUNDING: "Funding",
    CATEGORY_OPEN_INTEREST: "Open Interest",
    CATEGORY_AGG_TRADES: "AggTrades",
    CATEGORY_PREMIUM_INDEX: "Premium Index",
}

# ordem de registro usada quando nenhuma ordem explícita é fornecida
DEFAULT_CATEGORY_ORDER = (
    CATEGORY_CANDLES,
    CATEGORY_FUNDING,
    CATEGORY_OPEN_INTEREST,
    CATEGORY_AGG_TRADES,
    CATEGORY_PREMIUM_INDEX,
)


def normalize_state(state) -> str:
    """Normalize um estado arbitrário para string maiúscula.

    ``None`` e strings vazias viram ``IDLE``; o alias ``EMPTY`` também.
    """
    if state is None:
        return STATE_IDLE
    s = str(getattr(state, "name", state)).strip().upper()
    if not s or s == STATE_EMPTY_ALIAS:
        return STATE_IDLE
    return s


def category_display_name(category: str) -> str:
    """Retorne o nome de exibição da categoria (ou o próprio nome se desconhecida)."""
    return CATEGORY_DISPLAY_NAMES.get(category, str(category))


def make_page_key(category: str, symbol: str, timeframe: Optional[str] = None) -> str:
    """Componha a chave da página: ``CATEGORIA:SIMBOLO[:TIMEFRAME]``."""
    parts = [str(category), str(symbol)]
    if timeframe:
        parts.append(str(timeframe))
    return ":".join(parts)


# ========================
# 1. Entidade
# ========================


@dataclass(frozen=True)
# Cópia somente-leitura de uma página; produzida pelas fontes e consumida pelo agregador
class PageEntity:
    """Uma página de dados buscados, identificada por ``(key, category)``.

    Os campos ``last_updated`` e ``error_detail`` e os campos informativos
    (símbolo, consumidores, registros, progresso) são consumidos apenas pela
    visão de detalhe e pelo apresentador de console.
    """

    key: str
    category: str
    state: str = STATE_IDLE
    last_updated: Optional[float] = None
    error_detail: Optional[str] = None
    symbol: Optional[str] = None
    timeframe: Optional[str] = None
    listener_count: int = 0
    record_count: int = 0
    consumers: tuple = field(default_factory=tuple)
    load_progress: int = 0

    def __post_init__(self):
        """Normaliza estado e consumidores sem quebrar a imutabilidade."""
        object.__setattr__(self, "state", normalize_state(self.state))
        if not isinstance(self.consumers, tuple):
            object.__setattr__(self, "consumers", tuple(self.consumers or ()))

    @property
    def identity(self) -> tuple[str, str]:
        return (self.key, self.category)

    @property
    def label(self) -> str:
        """Rótulo curto: ``SIMBOLO/TIMEFRAME`` quando disponível, senão a chave."""
        if not self.symbol:
            return self.key
        return f"{self.symbol}/{self.timeframe}" if self.timeframe else self.symbol

    def is_in_flight(self, in_flight_states: Iterable[str] = DEFAULT_IN_FLIGHT_STATES) -> bool:
        return self.state in in_flight_states

    def has_error(self, failed_states: Iterable[str] = DEFAULT_FAILED_STATES) -> bool:
        return self.state in failed_states

    def to_dict(self) -> dict:
        """Representação serializável (usada pelo endpoint /status)."""
        return {
            "key": self.key,
            "category": self.category,
            "state": self.state,
            "last_updated": self.last_updated,
            "error_detail": self.error_detail,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "listener_count": self.listener_count,
            "record_count": self.record_count,
            "consumers": list(self.consumers),
            "load_progress": self.load_progress,
        }
