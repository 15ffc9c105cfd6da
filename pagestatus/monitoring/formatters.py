"""Formatação de snapshots e eventos para exibição humana.

Normaliza o snapshot agregado e gera resumos curtos e detalhados para o
console, linhas da visão de detalhe e linhas do log de eventos.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from .aggregator import AggregatedSnapshot, overall_state, status_text
from .events import EVENT_DISPLAY_NAMES, LogEvent
from .pages import (
    STATE_ERROR,
    STATE_IDLE,
    STATE_LOADING,
    STATE_READY,
    STATE_UPDATING,
    PageEntity,
    category_display_name,
)

logger = logging.getLogger(__name__)

_NO_PAGES_STR = "No active data pages"

_STATUS_TEXT = {
    STATE_IDLE: "Empty",
    STATE_LOADING: "Loading...",
    STATE_READY: "Ready",
    STATE_UPDATING: "Updating...",
    STATE_ERROR: "Error",
}

_STATUS_DOT = {
    STATE_IDLE: "○",
    STATE_LOADING: "◎",
    STATE_READY: "●",
    STATE_UPDATING: "◔",
    STATE_ERROR: "✗",
}


# ========================
# 0. Função principal de normalização (API pública)
# ========================


def normalize_for_display(snapshot: Optional[AggregatedSnapshot]) -> Dict[str, Any]:
    """Normaliza o snapshot em estrutura pronta para exibição.

    Retorna dict com 'summary_short', 'summary_long' e 'counts'.
    """
    if snapshot is None:
        return {"summary_short": _NO_PAGES_STR, "summary_long": [_NO_PAGES_STR], "counts": {}}
    return {
        "summary_short": status_text(snapshot.counts),
        "summary_long": _build_long_from_snapshot(snapshot),
        "counts": snapshot.counts.to_dict(),
    }


# ========================
# 1. Utilitários
# ========================


def format_number(n: int) -> str:
    """Formata contagens grandes: 1.2K, 3.4M."""
    try:
        n = int(n)
    except (TypeError, ValueError):
        return "0"
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return str(n)


def status_label(state: str) -> str:
    return _STATUS_TEXT.get(state, str(state).capitalize())


def status_dot(state: str) -> str:
    return _STATUS_DOT.get(state, "?")


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


# ========================
# 2. Resumos
# ========================


# Auxilia: normalize_for_display; um cabeçalho por categoria e uma linha por página
def _build_long_from_snapshot(snapshot: AggregatedSnapshot) -> list[str]:
    groups = snapshot.by_category()
    if not groups:
        return [_NO_PAGES_STR]

    lines: list[str] = []
    for category, pages in groups.items():
        state = overall_state(pages)
        consumers = sum(p.listener_count for p in pages)
        records = sum(p.record_count for p in pages)
        header = f"{category_display_name(category)} ({_plural(len(pages), 'page')})"
        extras = []
        if consumers > 0:
            extras.append(_plural(consumers, "consumer"))
        if records > 0:
            extras.append(f"{format_number(records)} records")
        extras.append(status_label(state))
        lines.append(f"{header} - {' | '.join(extras)}")
        for page in pages:
            lines.append("  " + format_page_row(page))
    return lines


def format_page_row(page: PageEntity) -> str:
    """Linha compacta de uma página: rótulo, consumidores, registros e estado."""
    parts = [page.label]
    if page.state in (STATE_LOADING, STATE_UPDATING):
        parts.append(f"[{page.load_progress:3d}%]")
    if page.listener_count > 0:
        parts.append(_plural(page.listener_count, "listener"))
    if page.record_count > 0:
        parts.append(format_number(page.record_count))
    parts.append(status_dot(page.state))
    return " ".join(parts)


def format_detail_lines(page: Optional[PageEntity], stale: bool = False) -> list[str]:
    r"""Linhas da visão de detalhe da página selecionada.

    Quando ``page`` é None retorna a mensagem de "não encontrada". Quando
    ``stale`` é True os valores são os últimos conhecidos.
    """
    if page is None:
        return ["Page not found"]
    lines = [
        f"Key: {page.key}",
        f"Category: {category_display_name(page.category)}",
        f"State: {page.state}" + (" (last known)" if stale else ""),
        f"Records: {format_number(page.record_count)}",
        f"Last update: {_format_ts(page.last_updated)}",
    ]
    if page.state in (STATE_LOADING, STATE_UPDATING):
        lines.append(f"Progress: {page.load_progress}%")
    if page.error_detail:
        lines.append(f"Error: {page.error_detail}")
    if page.consumers:
        lines.append("Consumers: " + ", ".join(page.consumers))
    return lines


def format_event_line(event: LogEvent) -> str:
    """``[HH:MM:SS] <tipo> - <mensagem>``."""
    name = EVENT_DISPLAY_NAMES.get(event.kind, event.kind)
    return f"[{_format_ts(event.timestamp, '%H:%M:%S')}] {name} - {event.message}"


def _format_ts(ts: Optional[float], fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    if not ts:
        return "-"
    try:
        return datetime.fromtimestamp(float(ts)).strftime(fmt)
    except (OverflowError, OSError, ValueError, TypeError) as exc:
        logger.debug("timestamp inválido %r: %s", ts, exc)
        return "-"
