"""Pacote exporter: integrações com Prometheus, HTTP e Loki.

Re-exports para ``from pagestatus.exporter import start_exporter``.
"""

from .exporter import SnapshotGauges, start_exporter  # re-export

__all__ = ["SnapshotGauges", "start_exporter"]
