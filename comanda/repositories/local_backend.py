# ==============================================================================
# BACKEND LOCAL (OFFLINE)
# ==============================================================================
# Encapsula todo el acceso a las colecciones guardadas en SafeStorage.
#
# Formato de datos:
#   beach_app_products → [{"id": "1", "name": ..., "stock": 48, ...}, ...]
#   beach_app_orders   → [{"id": "1718000000000", "tableId": 5, ...}, ...]
#   beach_app_tables   → {"5": {"status": "CLOSING_REQUESTED", ...}}
#
# Cada operación lee la colección completa, la modifica y la reescribe en una
# sola escritura. El lock evita carreras entre hilos del mismo proceso; entre
# procesos distintos NO hay coordinación (limitación aceptada del modo local).
# ==============================================================================

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from comanda.config import STORAGE_KEYS, POLL_INTERVAL_SECONDS
from comanda.exceptions import StorageFullError
from comanda.models import (
    INITIAL_PRODUCTS,
    Order,
    OrderStatus,
    Product,
    TableSession,
    normalize_table_id,
)
from comanda.repositories.feeds import PollingFeed, Subscription
from comanda.repositories.safe_storage import SafeStorage, StorageResult


logger = logging.getLogger(__name__)

# IDs más cortos que esto se consideran temporales y se regeneran
MIN_ID_LENGTH = 5


class LocalBackend:
    """
    Backend sobre el almacenamiento local del dispositivo.

    Siempre disponible: es el modo por defecto cuando no hay nube.
    """

    mode = 'local'

    _lock = threading.RLock()

    def __init__(self, storage: SafeStorage, poll_interval: float = POLL_INTERVAL_SECONDS):
        """
        Args:
            storage: Almacenamiento clave-valor con sombra en memoria
            poll_interval: Segundos entre entregas de las suscripciones
        """
        self.storage = storage
        self.poll_interval = poll_interval
        self._last_id = 0

    # =========================================================================
    # LECTURA / ESCRITURA CRUDA
    # =========================================================================

    def _read(self, key: str, empty: Any) -> Any:
        raw = self.storage.get(key)
        if raw is None:
            return empty
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, ValueError):
            logger.error("[LOCAL] Contenido inválido en '%s', se ignora", key)
            return empty
        return data if isinstance(data, type(empty)) else empty

    def _write(self, key: str, data: Any) -> None:
        """
        Reescribe una colección completa.

        Raises:
            StorageFullError: Si el medio se quedó sin espacio (se restaura
                el valor anterior en memoria)
        """
        previous = self.storage.get(key)
        result = self.storage.set(key, json.dumps(data, ensure_ascii=False))
        if result.degraded and result.reason == StorageResult.REASON_QUOTA:
            self._restore(key, previous)
            raise StorageFullError(f"Sin espacio para guardar '{key}'")

    def _restore(self, key: str, previous: Optional[str]) -> None:
        """Vuelve una clave al valor crudo que tenía antes de escribirla."""
        if previous is None:
            self.storage.remove(key)
        else:
            self.storage.set(key, previous)

    def _new_id(self) -> str:
        """ID basado en el reloj, único dentro del proceso."""
        with self._lock:
            now = int(time.time() * 1000)
            self._last_id = max(now, self._last_id + 1)
            return str(self._last_id)

    @staticmethod
    def _parse_all(records: List[Any], parse: Callable[[Any], Any], kind: str) -> List[Any]:
        result = []
        for record in records:
            try:
                result.append(parse(record))
            except (ValueError, TypeError) as e:
                logger.warning("[LOCAL] %s inválido descartado: %s", kind, e)
        return result

    # =========================================================================
    # SUSCRIPCIONES (sondeo)
    # =========================================================================

    def _products_snapshot(self) -> List[Product]:
        with self._lock:
            if self.storage.get(STORAGE_KEYS['PRODUCTS']) is None:
                # Primera ejecución: catálogo inicial
                seed = [p.to_dict() for p in INITIAL_PRODUCTS]
                self._write(STORAGE_KEYS['PRODUCTS'], seed)
                logger.info("[LOCAL] Catálogo inicial creado (%d productos)", len(seed))
            return self.list_products()

    def subscribe_products(self, callback, on_error=None) -> Subscription:
        return PollingFeed(self._products_snapshot, callback, self.poll_interval,
                           on_error, name='products').start()

    def subscribe_orders(self, callback, on_error=None) -> Subscription:
        return PollingFeed(self.list_orders, callback, self.poll_interval,
                           on_error, name='orders').start()

    def subscribe_tables(self, callback, on_error=None) -> Subscription:
        return PollingFeed(self.list_tables, callback, self.poll_interval,
                           on_error, name='tables').start()

    # =========================================================================
    # PRODUCTOS
    # =========================================================================

    def list_products(self) -> List[Product]:
        records = self._read(STORAGE_KEYS['PRODUCTS'], [])
        return self._parse_all(records, Product.from_dict, 'Producto')

    def find_product_by_name(self, name: str) -> Optional[Product]:
        for product in self.list_products():
            if product.name == name:
                return product
        return None

    def create_product(self, product: Product) -> Product:
        with self._lock:
            pid = product.id
            if not pid or len(pid) < MIN_ID_LENGTH:
                pid = 'local_' + self._new_id()
            record = product.to_dict(include_id=False)
            record = {'id': pid, **record}
            products = self._read(STORAGE_KEYS['PRODUCTS'], [])
            products.append(record)
            self._write(STORAGE_KEYS['PRODUCTS'], products)
            return Product.from_dict(record)

    def update_product(self, pid: str, fields: Dict[str, Any]) -> bool:
        with self._lock:
            products = self._read(STORAGE_KEYS['PRODUCTS'], [])
            for record in products:
                if record.get('id') == pid:
                    record.update({k: v for k, v in fields.items() if k != 'id'})
                    self._write(STORAGE_KEYS['PRODUCTS'], products)
                    return True
            return False

    def delete_product(self, pid: str) -> None:
        with self._lock:
            products = self._read(STORAGE_KEYS['PRODUCTS'], [])
            remaining = [p for p in products if p.get('id') != pid]
            if len(remaining) != len(products):
                self._write(STORAGE_KEYS['PRODUCTS'], remaining)

    def apply_stock_deltas(self, deltas: Dict[str, int]) -> Dict[str, Exception]:
        """Ajusta contra el catálogo completo, con piso en cero, y reescribe una vez."""
        if not deltas:
            return {}
        with self._lock:
            products = self._read(STORAGE_KEYS['PRODUCTS'], [])
            self._adjust(products, deltas)
            self._write(STORAGE_KEYS['PRODUCTS'], products)
        return {}

    @staticmethod
    def _adjust(products: List[Dict[str, Any]], deltas: Dict[str, int]) -> None:
        for record in products:
            delta = deltas.get(record.get('id'))
            if delta:
                current = int(record.get('stock') or 0)
                record['stock'] = max(0, current + delta)

    # =========================================================================
    # PEDIDOS
    # =========================================================================

    def list_orders(self) -> List[Order]:
        records = self._read(STORAGE_KEYS['ORDERS'], [])
        return self._parse_all(records, Order.from_dict, 'Pedido')

    def get_order(self, order_id: str) -> Optional[Order]:
        for order in self.list_orders():
            if order.id == order_id:
                return order
        return None

    def create_order(self, order: Order) -> Order:
        with self._lock:
            record = order.to_dict(include_id=False)
            record = {'id': self._new_id(), **record}
            orders = self._read(STORAGE_KEYS['ORDERS'], [])
            orders.append(record)
            self._write(STORAGE_KEYS['ORDERS'], orders)
            return Order.from_dict(record)

    def set_order_status(self, order_id: str, status: OrderStatus,
                         restock: Optional[Dict[str, int]] = None) -> Optional[OrderStatus]:
        """
        Cambia el estado de un pedido.

        La devolución de stock se decide aquí, bajo el lock, contra el estado
        recién leído: solo se aplica al pasar a CANCELED desde otro estado.
        El pedido se guarda antes que el catálogo; si el catálogo no cabe, el
        pedido vuelve a su valor anterior.

        Returns:
            Estado anterior, o None si el pedido no existe
        """
        with self._lock:
            previous_raw = self.storage.get(STORAGE_KEYS['ORDERS'])
            orders = self._read(STORAGE_KEYS['ORDERS'], [])
            target = next((o for o in orders if o.get('id') == order_id), None)
            if target is None:
                return None
            previous = OrderStatus(target.get('status', OrderStatus.PENDING.value))
            target['status'] = status.value
            self._write(STORAGE_KEYS['ORDERS'], orders)

            if restock and status == OrderStatus.CANCELED and previous != OrderStatus.CANCELED:
                products = self._read(STORAGE_KEYS['PRODUCTS'], [])
                self._adjust(products, restock)
                try:
                    self._write(STORAGE_KEYS['PRODUCTS'], products)
                except StorageFullError:
                    self._restore(STORAGE_KEYS['ORDERS'], previous_raw)
                    raise
            return previous

    def find_orders_by_table(self, table_id: int) -> List[Order]:
        wanted = normalize_table_id(table_id)
        return [o for o in self.list_orders() if o.table_id == wanted]

    def mark_orders_paid(self, order_ids: List[str]) -> int:
        ids = set(order_ids)
        if not ids:
            return 0
        with self._lock:
            orders = self._read(STORAGE_KEYS['ORDERS'], [])
            updated = 0
            for record in orders:
                if record.get('id') in ids:
                    record['status'] = OrderStatus.PAID.value
                    updated += 1
            if updated:
                self._write(STORAGE_KEYS['ORDERS'], orders)
            return updated

    # =========================================================================
    # MESAS
    # =========================================================================

    def list_tables(self) -> Dict[str, TableSession]:
        raw = self._read(STORAGE_KEYS['TABLES'], {})
        tables = {}
        for key, data in raw.items():
            try:
                tables[str(key)] = TableSession.from_dict(data)
            except (ValueError, TypeError) as e:
                logger.warning("[LOCAL] Mesa %s inválida descartada: %s", key, e)
        return tables

    def merge_table(self, table_id: int, fields: Dict[str, Any]) -> None:
        key = str(normalize_table_id(table_id))
        with self._lock:
            tables = self._read(STORAGE_KEYS['TABLES'], {})
            current = tables.get(key)
            tables[key] = {**(current if isinstance(current, dict) else {}), **fields}
            self._write(STORAGE_KEYS['TABLES'], tables)

    def delete_table(self, table_id: int) -> None:
        key = str(normalize_table_id(table_id))
        with self._lock:
            tables = self._read(STORAGE_KEYS['TABLES'], {})
            if tables.pop(key, None) is not None:
                self._write(STORAGE_KEYS['TABLES'], tables)

    # =========================================================================
    # DIAGNÓSTICO
    # =========================================================================

    def probe(self) -> bool:
        """Escribe, lee y borra una clave descartable."""
        key = f'test_diag_{self._new_id()}'
        self.storage.set(key, 'ok')
        value = self.storage.get(key)
        self.storage.remove(key)
        return value == 'ok'
