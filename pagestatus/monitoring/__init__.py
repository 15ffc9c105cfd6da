"""Pacote monitoring: páginas, fontes de estado, agregação, seleção e eventos."""

from .aggregator import AggregatedSnapshot, Aggregator, SummaryCounts
from .events import EventLogStore, LogEvent, get_default_store
from .pages import PageEntity
from .selection import SelectionCoordinator, SelectionResult
from .sources import InMemoryPageSource, PageStateSource

__all__ = [
    "AggregatedSnapshot",
    "Aggregator",
    "SummaryCounts",
    "EventLogStore",
    "LogEvent",
    "get_default_store",
    "PageEntity",
    "SelectionCoordinator",
    "SelectionResult",
    "InMemoryPageSource",
    "PageStateSource",
]
