"""Pacote core: orquestração principal do programa.

Contém o agendador de ticks, o pipeline do monitor, o parsing de argumentos
e a saída de console.
"""

from .core import StatusMonitor, TickUpdate, run_loop
from .emitter import emit_update
from .scheduler import RefreshScheduler

__all__ = ["StatusMonitor", "TickUpdate", "run_loop", "emit_update", "RefreshScheduler"]
