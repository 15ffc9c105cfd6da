"""Integração com Loki para envio dos eventos de páginas via HTTP.

Funções principais:
- send_event_to_loki: envia um ``LogEvent`` para o endpoint do Loki
- LokiForwarder: listener do ``EventLogStore`` que envia em segundo plano

Os produtores de eventos nunca esperam pela rede: o listener apenas
enfileira e um thread daemon faz o envio.

Configuração via variáveis de ambiente ``LOKI_URL`` e ``LOKI_LABELS``.
"""

import logging
import os
import queue
import threading

import requests  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

LOKI_URL = os.getenv("LOKI_URL", "http://loki:3100/loki/api/v1/push")
LOKI_LABELS = os.getenv("LOKI_LABELS", "job=pagestatus")

_QUEUE_MAX = 10_000


def _parse_labels(labels):
    """Converta rótulos em formato string 'k=v,k2=v2' ou dict para dict com valores string.

    Aceita também strings já no formato '{k="v"}' e retorna um dict {k: v}.
    """
    if labels is None:
        return {}
    if isinstance(labels, dict):
        return {str(k): str(v) for k, v in labels.items()}
    s = str(labels).strip()
    if s.startswith("{") and s.endswith("}"):
        s = s[1:-1].strip()
    out = {}
    for p in (p.strip() for p in s.split(",")):
        if not p or "=" not in p:
            continue
        k, v = p.split("=", 1)
        v = v.strip()
        if (v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'")):
            v = v[1:-1]
        out[k.strip()] = v
    return out


def build_payload(event, labels=None) -> dict:
    """Monta o payload do endpoint `/loki/api/v1/push` para um evento.

    {"streams": [{"stream": {"k": "v"}, "values": [["<unix_nano>", "linha"]]}]}

    Categoria e tipo do evento entram como rótulos do stream.
    """
    stream = _parse_labels(labels if labels is not None else LOKI_LABELS)
    if event.category:
        stream["category"] = str(event.category)
    stream["kind"] = str(event.kind)
    ts_ns = str(int(event.timestamp * 1_000_000_000))
    line = f"{event.page_key} {event.message}"
    return {"streams": [{"stream": stream, "values": [[ts_ns, line]]}]}


def send_event_to_loki(event, url: str | None = None, labels=None, timeout: float = 5.0) -> bool:
    """Envia um evento para o Loki. Retorna True em sucesso.

    Falhas de rede são registradas e não propagadas.
    """
    target = url or os.getenv("LOKI_URL", LOKI_URL)
    payload = build_payload(event, labels)
    logger.debug("Loki payload: %s", payload)
    try:
        resp = requests.post(target, json=payload, headers={"Content-Type": "application/json"}, timeout=timeout)
        resp.raise_for_status()
        return True
    except requests.RequestException as exc:
        logger.warning("Falha ao enviar evento para Loki: %s", exc)
        return False


class LokiForwarder:
    """Listener de ``EventLogStore`` que envia eventos ao Loki em segundo plano.

    Quando a fila enche, eventos novos são descartados (com debug log) em vez
    de bloquear o produtor.
    """

    def __init__(self, url: str | None = None, labels=None, maxsize: int = _QUEUE_MAX):
        self.url = url
        self.labels = labels
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.dropped = 0

    def __call__(self, event) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.dropped += 1
            logger.debug("fila do Loki cheia; evento %s descartado", event.page_key)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._drain, name="pagestatus-loki", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None:
            thread.join(timeout)

    def _drain(self) -> None:
        while not self._stop.is_set():
            try:
                event = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue
            send_event_to_loki(event, url=self.url, labels=self.labels)


def attach_loki_forwarder(store, url: str | None = None, labels=None) -> LokiForwarder:
    """Cria, inicia e assina um ``LokiForwarder`` no ``store``."""
    forwarder = LokiForwarder(url=url, labels=labels)
    forwarder.start()
    store.subscribe(forwarder)
    return forwarder
