# ==============================================================================
# SERVICIO DE MESAS
# ==============================================================================
# Ciclo de cierre de una mesa:
#   1. El cliente pide la cuenta → sesión CLOSING_REQUESTED con método de pago
#   2. El caja cierra la mesa   → se borra la sesión y los pedidos activos
#                                 pasan a PAID (todos juntos)
# ==============================================================================

import logging
from typing import Dict, Union

from comanda.exceptions import ComandaError
from comanda.models import TERMINAL_STATUSES, TableSession, TableStatus, normalize_table_id
from comanda.performance_logger import profile_function
from comanda.services.alert_service import AlertService
from comanda.services.connection_service import ConnectionService


logger = logging.getLogger(__name__)


class TableService:
    """Servicio para sesiones de mesa."""

    def __init__(self, connection: ConnectionService, alert_service: AlertService = None):
        self.connection = connection
        self.alert_service = alert_service

    def _fail(self, action: str, error: ComandaError) -> None:
        logger.error("[MESAS] Operación '%s' fallida: %s", action, error)
        if self.alert_service:
            self.alert_service.report_error(action, error)

    def list_tables(self) -> Dict[str, TableSession]:
        return self.connection.backend.list_tables()

    @profile_function(name="Pedir la cuenta")
    def request_table_close(self, table_id: Union[int, str], payment_method: str) -> TableSession:
        """
        Marca la mesa como pendiente de cierre.

        Raises:
            ValueError: Si la mesa o el método de pago no son válidos
        """
        table = normalize_table_id(table_id)
        if not isinstance(payment_method, str) or not payment_method.strip():
            raise ValueError('Método de pago requerido')

        session = TableSession(TableStatus.CLOSING_REQUESTED, payment_method.strip())
        try:
            self.connection.backend.merge_table(table, session.to_dict())
        except ComandaError as e:
            self._fail('solicitar fechamento', e)
            raise
        logger.info("[MESAS] Mesa %d pidió la cuenta (%s)", table, session.payment_method)
        return session

    @profile_function(name="Cerrar mesa")
    def finalize_table(self, table_id: Union[int, str]) -> int:
        """
        Cierra la mesa y archiva sus pedidos activos.

        Repetir el cierre no cambia nada (idempotente).

        Returns:
            Cantidad de pedidos pasados a PAID
        """
        table = normalize_table_id(table_id)
        backend = self.connection.backend
        try:
            backend.delete_table(table)

            # Deduplicar por ID: la búsqueda cubre mesa como número y como string
            pending = {}
            for order in backend.find_orders_by_table(table):
                if order.status not in TERMINAL_STATUSES:
                    pending.setdefault(order.id, order)

            archived = backend.mark_orders_paid(list(pending)) if pending else 0
        except ComandaError as e:
            self._fail('finalizar mesa', e)
            raise

        logger.info("[MESAS] Mesa %d finalizada. %d pedidos archivados.", table, archived)
        return archived
