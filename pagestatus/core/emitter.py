"""Emissor de atualizações para o console.

Contém a formatação da mensagem humana e a impressão curta/longa de cada
``TickUpdate``. Mantido em módulo separado para reduzir responsabilidades do
``core`` e facilitar testes.
"""

import logging

# ruff: noqa: D401
from ..monitoring.formatters import format_detail_lines, format_event_line, normalize_for_display

_NO_DATA_STR = "Sem dados"
_EVENT_TAIL = 5


def _format_human_msg(update) -> str:  # noqa: D401
    """Formate uma mensagem curta a partir do update.

    Em caso de erro retorna uma representação mínima.
    """
    try:
        return normalize_for_display(update.snapshot)["summary_short"]
    except Exception:
        return f"status={getattr(update, 'status', None)}"


def _print_update_short(update) -> None:  # noqa: D401
    """Imprima a linha de status do update no stdout."""
    if update is None:
        print(_NO_DATA_STR)
        return
    print(_format_human_msg(update))


def _print_update_long(update) -> None:  # noqa: D401
    """Imprima o snapshot por categoria, o detalhe selecionado e os últimos eventos."""
    if update is None:
        print("SNAPSHOT: Sem dados")
        return

    nf = normalize_for_display(update.snapshot)
    print(nf["summary_short"])
    for line in nf["summary_long"]:
        print(line)

    sel = update.selection
    if sel is not None and not sel.idle:
        print("-- detail --")
        entity = sel.entity if sel.entity is not None else sel.last_known
        for line in format_detail_lines(entity, stale=sel.stale):
            print(line)

    events = update.events or ()
    if events:
        print("-- events --")
        for event in events[-_EVENT_TAIL:]:
            print(format_event_line(event))


def emit_update(update, verbose_level: int) -> None:  # noqa: D401
    """Emita um update para o logger e opcionalmente para stdout.

    - registra a linha de status em DEBUG
    - se verbose_level > 0, imprime saída humana (curta/longa)
    """
    logger = logging.getLogger(__name__)
    try:
        logger.debug("tick: %s", _format_human_msg(update))
    except Exception:
        logger.info("Falha ao construir/emitir update", exc_info=True)

    if not verbose_level:
        return

    if verbose_level == 1:
        _print_update_short(update)
    else:
        _print_update_long(update)
