"""Entrypoint HTTP: expõe /health, /status, /events e /metrics.

O servidor é opcional e iniciado por `pagestatus.main` em thread daemon
quando ``PAGESTATUS_HTTP_ENABLE`` está ativo. O padrão de endereço é seguro
(localhost); exponha externamente só com firewall ou rede controlada.
"""

import json
import logging
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

import psutil
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

logger = logging.getLogger(__name__)

_DEFAULT_EVENTS_LIMIT = 100


def _first(params: dict, name: str):
    values = params.get(name)
    if not values:
        return None
    value = values[0].strip()
    return value or None


def parse_events_query(query: str) -> dict:
    """Converte a query string de /events nos argumentos de ``EventLogStore.query``.

    ``limit`` inválido cai no padrão; ``page`` é o filtro por substring da chave.
    """
    params = parse_qs(query or "")
    limit_raw = _first(params, "limit")
    try:
        limit = int(limit_raw) if limit_raw is not None else _DEFAULT_EVENTS_LIMIT
    except ValueError:
        limit = _DEFAULT_EVENTS_LIMIT
    since_raw = _first(params, "since")
    try:
        since = float(since_raw) if since_raw is not None else None
    except ValueError:
        since = None
    return {
        "since": since,
        "category": _first(params, "category"),
        "kind": _first(params, "kind"),
        "page_key": _first(params, "page"),
        "limit": limit,
    }


def get_process_metrics(prefix: str = "process_") -> dict:
    """Coleta métricas do processo em tempo real via psutil."""
    proc = psutil.Process()
    metrics = {
        f"{prefix}cpu_percent": proc.cpu_percent(interval=0.0),
        f"{prefix}memory_percent": proc.memory_percent(),
        f"{prefix}memory_rss_bytes": getattr(proc.memory_info(), "rss", 0),
        f"{prefix}uptime_seconds": float(max(0, (time.time() - proc.create_time()))),
        f"{prefix}num_threads": proc.num_threads(),
    }
    num_fds_fn = getattr(proc, "num_fds", None)
    if callable(num_fds_fn):
        try:
            fds = num_fds_fn()
            if isinstance(fds, int):
                metrics[f"{prefix}num_fds"] = fds
        except psutil.Error as exc:
            logger.debug("Falha ao obter número de descritores de arquivos: %s", exc, exc_info=True)
    return metrics


class HealthHandler(BaseHTTPRequestHandler):
    """HTTP handler ligado a um ``StatusMonitor`` (atributo de classe ``monitor``)."""

    monitor = None
    registry = REGISTRY

    def do_GET(self):
        parts = urlsplit(self.path)
        route = parts.path.rstrip("/") or "/"
        if route == "/health":
            self._send_json(200, self._health_payload())
        elif route == "/status":
            if self.monitor is None:
                self._send_json(503, {"error": "monitor indisponível"})
                return
            self._send_json(200, self.monitor.latest_update().to_dict())
        elif route == "/events":
            if self.monitor is None:
                self._send_json(503, {"error": "monitor indisponível"})
                return
            kwargs = parse_events_query(parts.query)
            events = self.monitor.store.query(**kwargs)
            self._send_json(200, {"count": len(events), "events": [e.to_dict() for e in events]})
        elif route == "/metrics":
            body = generate_latest(self.registry)
            self.send_response(200)
            self.send_header("Content-type", CONTENT_TYPE_LATEST)
            self.end_headers()
            self.wfile.write(body)
        else:
            self.send_response(404)
            self.end_headers()

    def _health_payload(self) -> dict:
        status = {"status": "ok"}
        try:
            status["process"] = get_process_metrics()
        except psutil.Error as exc:
            logger.warning("Falha ao coletar métricas do processo: %s", exc)
            status["process"] = {}
        if self.monitor is not None:
            counts = self.monitor.latest_snapshot().counts
            status["pages"] = counts.to_dict()
            status["scheduler"] = self.monitor.scheduler.state
        return status

    def _send_json(self, code: int, payload) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        """Silencia logs de requisições HTTP no console."""
        logger.debug("http: " + format, *args)


def make_handler(monitor, registry=REGISTRY) -> type:
    """Cria uma subclasse de ``HealthHandler`` ligada a ``monitor``."""
    return type("BoundHealthHandler", (HealthHandler,), {"monitor": monitor, "registry": registry})


def build_server(monitor, addr: str = "127.0.0.1", port: int = 8000, registry=REGISTRY) -> ThreadingHTTPServer:
    return ThreadingHTTPServer((addr, port), make_handler(monitor, registry))


def run_http_server(monitor, addr: str = "127.0.0.1", port: int = 8000) -> None:
    """Inicia o servidor HTTP (bloqueante); falhas são registradas, não propagadas."""
    try:
        server = build_server(monitor, addr, port)
    except OSError as exc:
        logger.error("[HTTP] Erro ao iniciar servidor em %s:%d: %s", addr, port, exc)
        return
    logger.info("[HTTP] Servindo em http://%s:%d (/health, /status, /events, /metrics)", addr, port)
    try:
        server.serve_forever()
    finally:
        server.server_close()
