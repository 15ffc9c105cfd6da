"""pagestatus: agregação e monitoramento do status de páginas de dados ao vivo.

Subpacotes:
- ``monitoring``: modelo de páginas, fontes, agregador, seleção e eventos
- ``core``: agendador, pipeline de tick, console e CLI
- ``config``: configurações (.env + ambiente)
- ``system``: logs e journal de eventos
- ``exporter``: Prometheus, HTTP e Loki
"""

__version__ = "0.1.0"
