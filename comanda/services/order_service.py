# ==============================================================================
# SERVICIO DE PEDIDOS
# ==============================================================================
# Creación de pedidos y cambios de estado.
#
# REGLAS:
#   - El total se calcula UNA vez al crear (precio × cantidad de cada línea)
#   - Crear un pedido descuenta stock; cancelarlo lo devuelve (una sola vez)
#   - En modo local el stock nunca baja de cero
# ==============================================================================

import logging
import time
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Tuple, Union

from comanda.exceptions import ComandaError
from comanda.models import Order, OrderItem, OrderStatus, Product, normalize_table_id
from comanda.performance_logger import profile_function
from comanda.services.alert_service import AlertService
from comanda.services.connection_service import ConnectionService


logger = logging.getLogger(__name__)


def _stock_deltas(items: Iterable[OrderItem], sign: int) -> Dict[str, int]:
    """Agrupa cantidades por producto: {product_id: sign * cantidad}."""
    deltas: Dict[str, int] = OrderedDict()
    for item in items:
        if item.product_id and item.quantity:
            deltas[item.product_id] = deltas.get(item.product_id, 0) + sign * item.quantity
    return deltas


class OrderService:
    """
    Servicio para gestión de pedidos.

    Responsabilidades:
    - Crear pedidos con líneas desnormalizadas y total fijo
    - Ajustar stock al crear y al cancelar
    - Lectura puntual para reportes
    """

    def __init__(self, connection: ConnectionService, alert_service: AlertService = None):
        self.connection = connection
        self.alert_service = alert_service

    def _fail(self, action: str, error: ComandaError) -> None:
        logger.error("[PEDIDOS] Operación '%s' fallida: %s", action, error)
        if self.alert_service:
            self.alert_service.report_error(action, error)

    # =========================================================================
    # CREACIÓN
    # =========================================================================

    @staticmethod
    def build_order(
        table_id: Union[int, str],
        items: List[Tuple[Product, int]],
        observation: Optional[str] = None
    ) -> Order:
        """
        Arma el pedido (sin persistir).

        Raises:
            ValueError: Si la mesa o alguna cantidad no son válidas
        """
        table = normalize_table_id(table_id)
        lines = []
        for product, quantity in items:
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise ValueError(f'Cantidad inválida para {product.name}: {quantity!r}')
            lines.append(OrderItem(
                product_id=product.id,
                name=product.name,
                price=product.price,
                quantity=quantity,
            ))
        return Order(
            table_id=table,
            items=lines,
            status=OrderStatus.PENDING,
            timestamp=int(time.time() * 1000),
            total=round(sum(line.line_total for line in lines), 2),
            observation=observation or '',
        )

    @profile_function(name="Crear pedido")
    def create_order(
        self,
        table_id: Union[int, str],
        items: List[Tuple[Product, int]],
        observation: Optional[str] = None
    ) -> Order:
        """
        Crea un pedido y descuenta el stock.

        Args:
            table_id: Número de mesa
            items: Pares (producto, cantidad)
            observation: Nota para la cocina

        Returns:
            Pedido creado (con ID)

        Raises:
            ValueError: Si el pedido no es válido
            ComandaError: Si el pedido no se pudo guardar (ya alertado)
        """
        order = self.build_order(table_id, items, observation)
        backend = self.connection.backend

        try:
            saved = backend.create_order(order)
        except ComandaError as e:
            self._fail('criar pedido', e)
            raise

        # El pedido ya existe: un fallo de stock se informa pero no lo anula
        deltas = _stock_deltas(saved.items, -1)
        try:
            failures = backend.apply_stock_deltas(deltas)
        except ComandaError as e:
            self._fail('atualizar estoque', e)
            failures = {}
        for pid, error in failures.items():
            logger.error("[PEDIDOS] Stock del producto %s sin actualizar: %s", pid, error)
            if self.alert_service:
                self.alert_service.report_error(f'atualizar estoque do produto {pid}', error)

        logger.info("[PEDIDOS] Pedido %s creado para mesa %d (total %.2f)",
                    saved.id, saved.table_id, saved.total)
        return saved

    # =========================================================================
    # ESTADOS
    # =========================================================================

    @profile_function(name="Cambiar estado pedido")
    def update_order_status(self, order_id: str, status: Union[OrderStatus, str]) -> bool:
        """
        Cambia el estado de un pedido.

        Pasar a CANCELED desde otro estado devuelve al stock las cantidades
        del pedido. Cancelar dos veces (aunque sea en paralelo) no devuelve
        dos veces: el backend decide contra el estado que lee al escribir.

        Returns:
            True si el pedido existía y se actualizó

        Raises:
            ValueError: Si el estado no existe
            ComandaError: Si el backend rechazó el cambio (ya alertado)
        """
        status = OrderStatus(status)
        backend = self.connection.backend
        try:
            order = backend.get_order(order_id)
            previous = None
            if order is not None:
                # Las líneas no cambian después de crear el pedido
                restock = _stock_deltas(order.items, +1) if status == OrderStatus.CANCELED else None
                previous = backend.set_order_status(order_id, status, restock)
        except ComandaError as e:
            self._fail('atualizar pedido', e)
            raise

        if previous is None:
            logger.warning("[PEDIDOS] Pedido %s no encontrado", order_id)
            return False

        logger.info("[PEDIDOS] Pedido %s: %s → %s", order_id, previous.value, status.value)
        return True

    # =========================================================================
    # LECTURA
    # =========================================================================

    def get_orders_once(self) -> List[Order]:
        """Lectura puntual de todos los pedidos (reportes)."""
        return self.connection.backend.list_orders()
