"""Agendador periódico do pipeline de atualização (RefreshScheduler).

Máquina de estados ``STOPPED -> RUNNING -> STOPPED``. Um único thread
daemon dispara o handler a cada ``period`` segundos. O handler nunca se
sobrepõe a si mesmo: um tick que vence enquanto o anterior ainda está em
execução é descartado (drop-if-busy), não enfileirado.

``stop()`` é idempotente e garante que nenhum tick dispara depois que
retorna.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

STATE_STOPPED = "STOPPED"
STATE_RUNNING = "RUNNING"

DEFAULT_PERIOD_SECONDS = 0.25


class RefreshScheduler:
    """Dispara ``handler`` em cadência fixa, sem sobreposição.

    Parâmetros:
        handler: callable sem argumentos executado a cada tick.
        period: intervalo entre ticks em segundos (> 0).
        name: nome do thread de trabalho (diagnóstico).
    """

    def __init__(self, handler: Callable[[], Any], period: float = DEFAULT_PERIOD_SECONDS, name: str = "pagestatus-refresh"):
        try:
            period = float(period)
        except (TypeError, ValueError) as exc:
            raise ValueError("period deve ser numérico") from exc
        if period <= 0.0:
            raise ValueError("period deve ser > 0")
        self.handler = handler
        self.period = period
        self.name = name

        self._state_lock = threading.Lock()
        # lock não-bloqueante do handler: quem não consegue adquirir descarta o tick
        self._busy = threading.Lock()
        self._busy_owner: Optional[int] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state = STATE_STOPPED

        self.tick_count = 0
        self.dropped_ticks = 0

    # ========================
    # 0. Estado
    # ========================

    @property
    def state(self) -> str:
        with self._state_lock:
            return self._state

    @property
    def running(self) -> bool:
        return self.state == STATE_RUNNING

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    # ========================
    # 1. Ciclo de vida
    # ========================

    def start(self) -> None:
        """Inicie os ticks periódicos; no-op se já estiver rodando."""
        with self._state_lock:
            if self._state == STATE_RUNNING:
                logger.debug("start() ignorado: agendador já em execução")
                return
            stop_event = threading.Event()
            self._stop_event = stop_event
            thread = threading.Thread(target=self._run, args=(stop_event,), name=self.name, daemon=True)
            self._thread = thread
            self._state = STATE_RUNNING
        thread.start()
        logger.info("agendador iniciado (período %.3fs)", self.period)

    def stop(self, timeout: float | None = None) -> None:
        """Cancele os ticks futuros e aguarde o tick em andamento.

        Idempotente: chamar em um agendador parado não tem efeito. Pode ser
        chamado de dentro do próprio handler sem deadlock.
        """
        with self._state_lock:
            if self._state == STATE_STOPPED:
                return
            self._state = STATE_STOPPED
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        current = threading.current_thread()
        if thread is not None and thread is not current:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("thread do agendador não terminou em %ss", timeout)

        # aguarda um tick manual (trigger_now) em outro thread, se houver
        if self._busy_owner != threading.get_ident():
            acquired = self._busy.acquire(timeout=-1 if timeout is None else timeout)
            if acquired:
                self._busy.release()
        logger.info("agendador parado (ticks=%d, descartados=%d)", self.tick_count, self.dropped_ticks)

    def trigger_now(self) -> bool:
        """Execute um tick imediato no thread chamador.

        Sujeito à mesma regra de descarte: retorna False se o handler estiver
        ocupado ou se o agendador não estiver rodando.
        """
        with self._state_lock:
            if self._state != STATE_RUNNING:
                return False
            stop_event = self._stop_event
        return self._fire(stop_event)

    # ========================
    # 2. Execução
    # ========================

    def _run(self, stop_event: threading.Event) -> None:
        period = self.period
        next_due = time.monotonic() + period
        while True:
            delay = next_due - time.monotonic()
            if stop_event.wait(max(0.0, delay)):
                break
            self._fire(stop_event)
            next_due += period
            now = time.monotonic()
            if now >= next_due:
                # ticks vencidos durante um handler lento são descartados
                missed = int((now - next_due) // period) + 1
                with self._state_lock:
                    self.dropped_ticks += missed
                next_due += missed * period
                logger.debug("%d tick(s) descartado(s): handler mais lento que o período", missed)

    def _fire(self, stop_event: threading.Event) -> bool:
        if not self._busy.acquire(blocking=False):
            with self._state_lock:
                self.dropped_ticks += 1
            logger.debug("tick descartado: handler ainda em execução")
            return False
        try:
            if stop_event.is_set():
                return False
            self._busy_owner = threading.get_ident()
            self.tick_count += 1
            try:
                self.handler()
            except Exception as exc:
                logger.error("falha no handler do tick: %s", exc, exc_info=True)
            return True
        finally:
            self._busy_owner = None
            self._busy.release()
