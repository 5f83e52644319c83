# ==============================================================================
# SERVICIO DE SUSCRIPCIONES
# ==============================================================================
# Punto único para escuchar cambios de productos, pedidos y mesas, sin
# importar el modo activo. Lleva registro de las suscripciones vivas para
# poder cancelarlas todas al borrar la configuración.
# ==============================================================================

import logging
import threading
from typing import Callable, Dict, List

from comanda.exceptions import BackendPermissionError
from comanda.models import Order, Product, TableSession
from comanda.repositories.feeds import Subscription
from comanda.services.alert_service import AlertService
from comanda.services.connection_service import ConnectionService


logger = logging.getLogger(__name__)


class SubscriptionService:
    """Suscripciones en tiempo real sobre el backend activo."""

    def __init__(self, connection: ConnectionService, alert_service: AlertService = None):
        """
        Args:
            connection: Servicio de conexión (provee el backend activo)
            alert_service: Servicio de alertas (opcional)
        """
        self.connection = connection
        self.alert_service = alert_service
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()
        connection.add_reset_listener(self.cancel_all)

    def _error_handler(self, collection: str) -> Callable[[Exception], None]:
        def handle(error: Exception) -> None:
            logger.error("[FEED] Error al escuchar %s: %s", collection, error)
            if isinstance(error, BackendPermissionError) and self.alert_service:
                self.alert_service.permission_denied()
        return handle

    def _track(self, subscription: Subscription) -> Subscription:
        with self._lock:
            self._subscriptions = [s for s in self._subscriptions if s.active]
            self._subscriptions.append(subscription)
        return subscription

    # =========================================================================
    # SUSCRIPCIONES
    # =========================================================================

    def subscribe_products(self, callback: Callable[[List[Product]], None]) -> Subscription:
        """Catálogo completo en cada cambio (siembra el catálogo inicial en modo local)."""
        backend = self.connection.backend
        return self._track(backend.subscribe_products(callback, self._error_handler('produtos')))

    def subscribe_orders(self, callback: Callable[[List[Order]], None]) -> Subscription:
        """Pedidos, del más reciente al más antiguo en la nube."""
        backend = self.connection.backend
        return self._track(backend.subscribe_orders(callback, self._error_handler('pedidos')))

    def subscribe_tables(self, callback: Callable[[Dict[str, TableSession]], None]) -> Subscription:
        backend = self.connection.backend
        return self._track(backend.subscribe_tables(callback, self._error_handler('mesas')))

    # =========================================================================
    # CANCELACIÓN
    # =========================================================================

    @property
    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._subscriptions if s.active)

    def cancel_all(self) -> int:
        """Cancela todas las suscripciones vivas. Retorna cuántas se cancelaron."""
        with self._lock:
            subscriptions, self._subscriptions = self._subscriptions, []
        cancelled = 0
        for subscription in subscriptions:
            if subscription.active:
                subscription.unsubscribe()
                cancelled += 1
        if cancelled:
            logger.info("[FEED] %d suscripciones canceladas", cancelled)
        return cancelled
