# ==============================================================================
# FEEDS DE CAMBIOS - Suscripciones en tiempo real
# ==============================================================================
# Una sola interfaz (Subscription) para los dos modos:
#   - Nube: eventos empujados por Firestore (on_snapshot)
#   - Local: sondeo cada N segundos del almacenamiento local
#
# Tras cancelar una suscripción NO se entrega ningún callback más: la
# cancelación espera a que termine la entrega en curso.
# ==============================================================================

import logging
import threading
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class Subscription:
    """
    Handle de una suscripción activa.

    Uso:
        sub = service.subscribe_products(render)
        ...
        sub()              # o sub.unsubscribe()
    """

    def __init__(self, cancel: Callable[[], None], name: str = ''):
        self._cancel = cancel
        self._active = True
        self._lock = threading.Lock()
        self.name = name

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._cancel()
        logger.debug("[FEED] Suscripción '%s' cancelada", self.name)

    def __call__(self) -> None:
        self.unsubscribe()


class PollingFeed:
    """
    Feed por sondeo: entrega la instantánea actual de inmediato y vuelve a
    entregarla en cada tick, cambie o no (el consumidor decide si compara).
    """

    def __init__(
        self,
        fetch: Callable[[], Any],
        callback: Callable[[Any], None],
        interval: float,
        on_error: Optional[Callable[[Exception], None]] = None,
        name: str = 'feed'
    ):
        """
        Args:
            fetch: Lee la instantánea actual
            callback: Recibe la instantánea completa
            interval: Segundos entre entregas
            on_error: Recibe los errores de lectura o del callback
            name: Nombre para logs
        """
        self._fetch = fetch
        self._callback = callback
        self._interval = interval
        self._on_error = on_error
        self._name = name
        self._stopped = threading.Event()
        self._lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> Subscription:
        """Entrega síncrona inicial y arranca el hilo de sondeo."""
        self._deliver()
        self._thread = threading.Thread(
            target=self._run, name=f'poll-{self._name}', daemon=True
        )
        self._thread.start()
        return Subscription(self.stop, self._name)

    def stop(self) -> None:
        self._stopped.set()
        # Espera a que termine una entrega en curso
        with self._lock:
            pass

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            self._deliver()

    def _deliver(self) -> None:
        with self._lock:
            if self._stopped.is_set():
                return
            try:
                self._callback(self._fetch())
            except Exception as e:
                # Un error no termina la suscripción
                self._report(e)

    def _report(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)
        else:
            logger.exception("[FEED] Error en '%s': %s", self._name, error)
