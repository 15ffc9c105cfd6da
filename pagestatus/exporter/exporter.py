"""Utilitários para exportação dos contadores no padrão Prometheus.

Expõe os contadores de resumo de cada tick como Gauges do
``prometheus_client``: totais globais e valores por categoria.
"""

import logging
import os

from prometheus_client import REGISTRY, CollectorRegistry, Gauge, start_http_server

logger = logging.getLogger(__name__)

_server_started = False


def _sanitize_metric_name(name: str) -> str:
    """Sanitiza o nome da métrica para o padrão Prometheus, substituindo caracteres inválidos por underline."""
    out = []
    for i, ch in enumerate(name):
        if i == 0:
            out.append(ch if (ch.isalpha() or ch in ("_", ":")) else "_")
        else:
            out.append(ch if (ch.isalnum() or ch in ("_", ":")) else "_")
    return "".join(out)


class SnapshotGauges:
    """Gauges atualizados a partir de cada ``AggregatedSnapshot``.

    Pode ser assinado diretamente no ``StatusMonitor`` (recebe ``TickUpdate``).
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY, prefix: str = "pagestatus"):
        p = _sanitize_metric_name(prefix)
        self.total = Gauge(f"{p}_pages_total", "Páginas ativas em todas as fontes", registry=registry)
        self.in_flight = Gauge(f"{p}_pages_in_flight", "Páginas em LOADING/UPDATING", registry=registry)
        self.failed = Gauge(f"{p}_pages_failed", "Páginas em ERROR", registry=registry)
        self.by_category = Gauge(
            f"{p}_category_pages", "Páginas por categoria e estado", ["category", "state"], registry=registry
        )
        self._seen_labels: set[tuple[str, str]] = set()

    def update(self, snapshot) -> None:
        """Atualiza os gauges com os contadores de ``snapshot``."""
        counts = snapshot.counts
        self.total.set(counts.total)
        self.in_flight.set(counts.in_flight)
        self.failed.set(counts.failed)

        current: dict[tuple[str, str], int] = {}
        for page in snapshot.pages:
            label = (str(page.category), str(page.state))
            current[label] = current.get(label, 0) + 1
        # zera combinações que sumiram do snapshot
        for label in self._seen_labels - set(current):
            self.by_category.labels(*label).set(0)
        for label, value in current.items():
            self.by_category.labels(*label).set(value)
        self._seen_labels |= set(current)

    def __call__(self, update) -> None:
        try:
            self.update(update.snapshot)
        except Exception as exc:
            logger.debug("Falha ao atualizar gauges: %s", exc, exc_info=True)


def start_exporter(port: int | None = None, addr: str = "127.0.0.1") -> bool:
    """Inicia o servidor HTTP do Prometheus Exporter no endereço e porta informados.

    A porta pode ser definida pela variável ``PAGESTATUS_EXPORTER_PORT`` se
    `port` for None. Retorna True se o servidor foi (ou já estava) iniciado.
    """
    global _server_started
    if _server_started:
        logger.debug("prometheus exporter already started")
        return True

    if port is None:
        try:
            port = int(os.getenv("PAGESTATUS_EXPORTER_PORT", "9100"))
        except ValueError:
            port = 9100

    try:
        start_http_server(port, addr)
        _server_started = True
        logger.info("Prometheus exporter iniciado em %s:%d", addr, port)
    except OSError as exc:
        logger.exception("Falha ao iniciar Prometheus exporter: %s", exc)
    return _server_started
