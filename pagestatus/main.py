"""Ponto de entrada do monitor de status de páginas.

Este módulo realiza a inicialização da aplicação: parsing de argumentos CLI,
configuração de logging, instalação de handlers de debug, montagem das
fontes e integrações opcionais (journal, Loki, Prometheus, HTTP) e
inicialização do loop de console. A lógica de runtime fica em `core` para
facilitar testes e reutilização.
"""

import json as _json
import logging as _logging
import sys
import threading
import traceback as _tb
import types as _types

from .config.settings import get_refresh_period, get_valid_settings
from .core.args import get_log_config, parse_args
from .core.core import StatusMonitor, run_loop
from .monitoring.events import get_default_store
from .monitoring.pages import DEFAULT_CATEGORY_ORDER
from .monitoring.simulate import PageSimulator
from .monitoring.sources import InMemoryPageSource
from .system.logs import attach_journal, get_debug_file_path

logger = _logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Inicializa a aplicação e inicia o loop principal.

    Args:
        argv: Lista de argumentos (usada em testes). Quando ``None`` a função
            utiliza os argumentos de linha de comando do processo.
    """
    args = parse_args(argv)
    settings = get_valid_settings()
    log_conf = get_log_config(args, settings)

    level = getattr(_logging, log_conf.get("level", "WARNING"), _logging.WARNING)
    _logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        _setup_debug_file_handler(log_conf.get("root"))
    except OSError as exc:
        logger.debug("falha ao configurar debug file handler: %s", exc, exc_info=True)

    # -i (ou PAGESTATUS_REFRESH_INTERVAL_MS no ambiente) prevalece sobre .env/padrão
    period = args.interval / 1000.0 if args.interval is not None else get_refresh_period(settings)
    store = get_default_store()
    sources = [InMemoryPageSource(category, store=store) for category in DEFAULT_CATEGORY_ORDER]

    monitor = StatusMonitor(
        [(src.category, src) for src in sources],
        store=store,
        period=period,
        in_flight_states=settings["in_flight_states"],
        failed_states=settings["failed_states"],
    )

    stoppables = _start_integrations(monitor, settings, log_conf.get("root"))

    simulator = None
    if args.simulate:
        simulator = PageSimulator(sources, pages_per_category=args.simulate)
        simulator.start()

    try:
        run_loop(
            monitor,
            interval=period,
            cycles=args.cycles,
            verbose_level=getattr(args, "verbose", 0) or 0,
        )
    finally:
        if simulator is not None:
            simulator.stop()
        for item in stoppables:
            item.stop()


def _start_integrations(monitor: StatusMonitor, settings: dict, log_root=None) -> list:
    """Liga as integrações habilitadas nas configurações; retorna os que exigem ``stop``."""
    stoppables = []

    if settings.get("journal_enable"):
        try:
            attach_journal(monitor.store, log_root)
        except OSError:
            logger.warning("falha ao ativar journal de eventos", exc_info=True)

    if settings.get("loki_enable"):
        from .exporter.promtail import attach_loki_forwarder

        stoppables.append(
            attach_loki_forwarder(monitor.store, url=settings.get("loki_url"), labels=settings.get("loki_labels"))
        )

    if settings.get("exporter_enable"):
        from .exporter.exporter import SnapshotGauges, start_exporter

        try:
            monitor.subscribe(SnapshotGauges())
            start_exporter()
        except ValueError:
            # métricas já registradas no REGISTRY global (main chamado duas vezes)
            logger.debug("falha ao iniciar exporter Prometheus", exc_info=True)

    if settings.get("http_enable"):
        from .exporter.main_http import run_http_server

        http_thread = threading.Thread(
            target=run_http_server,
            kwargs={"monitor": monitor, "addr": settings["http_addr"], "port": settings["http_port"]},
            name="pagestatus-http",
            daemon=True,
        )
        http_thread.start()

    return stoppables


def _setup_debug_file_handler(log_root=None) -> None:
    """Instala handlers de ficheiro para debug e hook global de exceções.

    Adiciona dois handlers ao logger root: um human-readable (texto) e um
    JSONL (uma linha de JSON por evento). Ambos são "best-effort": falhas de
    escrita do handler são capturadas e não derrubam a aplicação. Também
    instala um ``sys.excepthook`` que envia exceções não tratadas ao logger
    root. Não duplica handlers que já apontem para os mesmos caminhos.
    """
    debug_path = get_debug_file_path(log_root)

    fh = _logging.FileHandler(str(debug_path), encoding="utf-8")
    fh.setLevel(_logging.INFO)
    fh.setFormatter(_logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    jpath = debug_path.with_suffix(".jsonl")
    jfh = _logging.FileHandler(str(jpath), encoding="utf-8")
    jfh.setLevel(_logging.INFO)
    jfh.setFormatter(_get_json_formatter())

    root = _logging.getLogger()
    if _has_existing_file_handler(root, fh, jfh):
        fh.close()
        jfh.close()
    else:
        _wrap_emit_safe(fh)
        _wrap_emit_safe(jfh)
        root.addHandler(fh)
        root.addHandler(jfh)

    def _exc_hook(exc_type, exc_value, exc_tb):
        try:
            root.error("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))
        except Exception:
            sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = _exc_hook


def _get_json_formatter():
    class _JSONFormatter(_logging.Formatter):
        def format(self, record):
            obj = {
                "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
                "level": record.levelname,
                "name": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info:
                obj["exc"] = "".join(_tb.format_exception(*record.exc_info))
            return _json.dumps(obj, ensure_ascii=False, default=str)

    return _JSONFormatter()


def _has_existing_file_handler(root, fh, jfh) -> bool:
    bases = (getattr(fh, "baseFilename", None), getattr(jfh, "baseFilename", None))
    for h in root.handlers:
        if isinstance(h, _logging.FileHandler) and getattr(h, "baseFilename", None) in bases:
            return True
    return False


def _wrap_emit_safe(handler):
    orig = handler.emit

    def _emit_safe(self, record):
        try:
            return orig(record)
        except Exception:
            _logging.getLogger(__name__).warning("debug handler emit failed", exc_info=True)

    handler.emit = _types.MethodType(_emit_safe, handler)  # type: ignore[assignment]


if __name__ == "__main__":
    main()
