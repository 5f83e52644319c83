# ==============================================================================
# BACKEND FIRESTORE (NUBE)
# ==============================================================================
# Colecciones:
#   products → ordenada por name
#   orders   → ordenada por timestamp descendente
#   tables   → un documento por mesa (ID = número de mesa como string)
#
# Los errores de google-api-core se traducen a comanda.exceptions para que
# los servicios no dependan del SDK.
#
# STOCK: siempre con Increment (ajuste relativo atómico), nunca leer-sumar-
# escribir, para no perder actualizaciones con pedidos concurrentes.
# ==============================================================================

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, List, Optional

import firebase_admin
from firebase_admin import credentials
from firebase_admin import firestore as firebase_firestore
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from comanda.config import DatabaseConfig
from comanda.exceptions import (
    BackendError,
    BackendPermissionError,
    BackendQuotaError,
    DuplicateConnectionError,
)
from comanda.models import Order, OrderStatus, Product, TableSession, normalize_table_id
from comanda.repositories.feeds import Subscription


logger = logging.getLogger(__name__)

PRODUCTS = 'products'
ORDERS = 'orders'
TABLES = 'tables'

# Límite de escrituras por batch en Firestore
MAX_BATCH_WRITES = 500

# Segundos entre revisiones de un listener
WATCH_CHECK_SECONDS = 5.0


def translate_error(error: Exception) -> Exception:
    """Convierte un error del SDK en la jerarquía de comanda."""
    if isinstance(error, BackendError):
        return error
    message = getattr(error, 'message', None) or str(error)
    if isinstance(error, (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated)):
        return BackendPermissionError(message)
    if isinstance(error, google_exceptions.ResourceExhausted):
        return BackendQuotaError(message)
    if isinstance(error, google_exceptions.InvalidArgument) and 'size' in message.lower():
        # Documento por encima de 1 MiB (imagen embebida)
        return BackendQuotaError(message)
    return BackendError(message)


@contextmanager
def _google_errors() -> Iterator[None]:
    try:
        yield
    except google_exceptions.GoogleAPIError as e:
        raise translate_error(e) from e


# ==============================================================================
# LISTENERS SUPERVISADOS
# ==============================================================================
# El Watch del SDK no tiene callback de error: si el servidor corta el stream
# (permiso revocado, cuota, red) el watch queda inactivo en silencio. Un hilo
# revisa is_active, informa la causa y vuelve a registrar el listener.
# ==============================================================================

class SupervisedWatch:
    """on_snapshot que se re-registra cuando el servidor lo cierra."""

    def __init__(self, query, on_snapshot, on_error: Callable[[Exception], None],
                 name: str, interval: float = WATCH_CHECK_SECONDS):
        """
        Args:
            query: Consulta o colección a escuchar
            on_snapshot: Callback del SDK (docs, changes, read_time)
            on_error: Recibe la causa ya traducida de cada corte
            name: Nombre para logs
            interval: Segundos entre revisiones

        Raises:
            GoogleAPIError: Si el primer registro falla
        """
        self._query = query
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._name = name
        self._interval = interval
        self._stopped = threading.Event()
        self._lock = threading.RLock()
        self._watch = query.on_snapshot(on_snapshot)
        self._thread: Optional[threading.Thread] = None

    def start(self) -> 'SupervisedWatch':
        self._thread = threading.Thread(
            target=self._run, name=f'watch-{self._name}', daemon=True
        )
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stopped.set()
        # Espera a un re-registro en curso para cancelar el watch vigente
        with self._lock:
            watch, self._watch = self._watch, None
        if watch is not None:
            watch.unsubscribe()

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            self.check()

    def check(self) -> bool:
        """
        Revisa el watch y lo re-registra si murió.

        Returns:
            True si hubo que re-registrarlo
        """
        with self._lock:
            if self._stopped.is_set():
                return False
            if self._watch is not None and self._watch.is_active:
                return False

            logger.warning("[FIREBASE] Listener de %s cerrado por el servidor", self._name)
            self._on_error(self._closure_reason())
            if self._stopped.is_set():
                # El handler de error canceló la suscripción
                return False
            try:
                self._watch = self._query.on_snapshot(self._on_snapshot)
            except google_exceptions.GoogleAPIError as e:
                # Se reintenta en la próxima revisión
                self._watch = None
                self._on_error(translate_error(e))
            return True

    def _closure_reason(self) -> Exception:
        """Una lectura mínima de la misma consulta revela la causa del corte."""
        try:
            with _google_errors():
                list(self._query.limit(1).stream())
        except BackendError as e:
            return e
        return BackendError(f"Listener de '{self._name}' cerrado por el servidor")


class FirestoreBackend:
    """Backend sobre un cliente de Firestore ya autenticado."""

    mode = 'cloud'

    def __init__(self, client: Any, watch_interval: float = WATCH_CHECK_SECONDS):
        """
        Args:
            client: Cliente de google.cloud.firestore
            watch_interval: Segundos entre revisiones de los listeners
        """
        self.client = client
        self.watch_interval = watch_interval

    def _collection(self, name: str):
        return self.client.collection(name)

    @staticmethod
    def _parse_docs(docs, parse: Callable[[Dict[str, Any], str], Any], kind: str) -> List[Any]:
        result = []
        for doc in docs:
            try:
                result.append(parse(doc.to_dict() or {}, doc.id))
            except (ValueError, TypeError) as e:
                logger.warning("[FIREBASE] %s %s inválido descartado: %s", kind, doc.id, e)
        return result

    def _parse_products(self, docs) -> List[Product]:
        return self._parse_docs(docs, lambda data, pid: Product.from_dict(data, pid), 'Producto')

    def _parse_orders(self, docs) -> List[Order]:
        return self._parse_docs(docs, lambda data, oid: Order.from_dict(data, oid), 'Pedido')

    def _parse_tables(self, docs) -> Dict[str, TableSession]:
        tables = {}
        for doc in docs:
            try:
                tables[doc.id] = TableSession.from_dict(doc.to_dict() or {})
            except (ValueError, TypeError) as e:
                logger.warning("[FIREBASE] Mesa %s inválida descartada: %s", doc.id, e)
        return tables

    # =========================================================================
    # SUSCRIPCIONES (on_snapshot)
    # =========================================================================

    def _watch(self, query, parse, callback, on_error, name: str) -> Subscription:
        subscription = None

        def report(error: Exception) -> None:
            if on_error is not None:
                on_error(error)
            else:
                logger.error("[FIREBASE] Error en el listener de %s: %s", name, error)

        def on_snapshot(docs, changes, read_time):
            if subscription is not None and not subscription.active:
                return
            try:
                callback(parse(docs))
            except Exception as e:
                # Un error no termina la suscripción
                report(translate_error(e))

        try:
            supervisor = SupervisedWatch(query, on_snapshot, report, name, self.watch_interval)
        except google_exceptions.GoogleAPIError as e:
            error = translate_error(e)
            if on_error is None:
                raise error from e
            on_error(error)
            subscription = Subscription(lambda: None, name)
            subscription.unsubscribe()
            return subscription

        subscription = Subscription(supervisor.stop, name)
        supervisor.start()
        return subscription

    def subscribe_products(self, callback, on_error=None) -> Subscription:
        query = self._collection(PRODUCTS).order_by('name')
        return self._watch(query, self._parse_products, callback, on_error, PRODUCTS)

    def subscribe_orders(self, callback, on_error=None) -> Subscription:
        query = self._collection(ORDERS).order_by('timestamp', direction=firestore.Query.DESCENDING)
        return self._watch(query, self._parse_orders, callback, on_error, ORDERS)

    def subscribe_tables(self, callback, on_error=None) -> Subscription:
        return self._watch(self._collection(TABLES), self._parse_tables, callback, on_error, TABLES)

    # =========================================================================
    # PRODUCTOS
    # =========================================================================

    def list_products(self) -> List[Product]:
        with _google_errors():
            return self._parse_products(self._collection(PRODUCTS).order_by('name').stream())

    def find_product_by_name(self, name: str) -> Optional[Product]:
        query = (self._collection(PRODUCTS)
                 .where(filter=firestore.FieldFilter('name', '==', name))
                 .limit(1))
        with _google_errors():
            found = self._parse_products(query.stream())
        return found[0] if found else None

    def create_product(self, product: Product) -> Product:
        # Firestore genera el ID
        with _google_errors():
            _, ref = self._collection(PRODUCTS).add(product.to_dict(include_id=False))
        return replace(product, id=ref.id)

    def update_product(self, pid: str, fields: Dict[str, Any]) -> bool:
        data = {k: v for k, v in fields.items() if k != 'id'}
        with _google_errors():
            self._collection(PRODUCTS).document(pid).update(data)
        return True

    def delete_product(self, pid: str) -> None:
        with _google_errors():
            self._collection(PRODUCTS).document(pid).delete()

    def apply_stock_deltas(self, deltas: Dict[str, int]) -> Dict[str, Exception]:
        """Un Increment independiente por producto: un fallo no frena a los demás."""
        failures = {}
        for pid, delta in deltas.items():
            try:
                self._collection(PRODUCTS).document(pid).update({'stock': firestore.Increment(delta)})
            except google_exceptions.GoogleAPIError as e:
                failures[pid] = translate_error(e)
        return failures

    # =========================================================================
    # PEDIDOS
    # =========================================================================

    def list_orders(self) -> List[Order]:
        query = self._collection(ORDERS).order_by('timestamp', direction=firestore.Query.DESCENDING)
        with _google_errors():
            return self._parse_orders(query.stream())

    def get_order(self, order_id: str) -> Optional[Order]:
        with _google_errors():
            snapshot = self._collection(ORDERS).document(order_id).get()
        if not snapshot.exists:
            return None
        return Order.from_dict(snapshot.to_dict() or {}, snapshot.id)

    def create_order(self, order: Order) -> Order:
        with _google_errors():
            _, ref = self._collection(ORDERS).add(order.to_dict(include_id=False))
        return replace(order, id=ref.id)

    def set_order_status(self, order_id: str, status: OrderStatus,
                         restock: Optional[Dict[str, int]] = None) -> Optional[OrderStatus]:
        """
        Estado y devolución de stock en una transacción.

        La transacción relee el estado del pedido: si otra cancelación ganó,
        Firestore reintenta y esta ve CANCELED, sin devolver stock de nuevo.
        """
        order_ref = self._collection(ORDERS).document(order_id)

        @firestore.transactional
        def change(transaction) -> Optional[OrderStatus]:
            snapshot = order_ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            previous = Order.from_dict(snapshot.to_dict() or {}, snapshot.id).status

            increments = {}
            if restock and status == OrderStatus.CANCELED and previous != OrderStatus.CANCELED:
                refs = [self._collection(PRODUCTS).document(pid) for pid in restock]
                existing = {snap.id for snap in self.client.get_all(refs, transaction=transaction)
                            if snap.exists}
                for pid, delta in restock.items():
                    if pid in existing:
                        increments[pid] = delta
                    else:
                        logger.warning("[FIREBASE] Producto %s ya no existe, stock no devuelto", pid)

            # Todas las lecturas antes de la primera escritura
            transaction.update(order_ref, {'status': status.value})
            for pid, delta in increments.items():
                transaction.update(self._collection(PRODUCTS).document(pid),
                                   {'stock': firestore.Increment(delta)})
            return previous

        with _google_errors():
            return change(self.client.transaction())

    def find_orders_by_table(self, table_id: int) -> List[Order]:
        # Hay pedidos con la mesa como número y otros como string
        number = normalize_table_id(table_id)
        found: Dict[str, Order] = {}
        with _google_errors():
            for value in (number, str(number)):
                query = self._collection(ORDERS).where(filter=firestore.FieldFilter('tableId', '==', value))
                for order in self._parse_orders(query.stream()):
                    found.setdefault(order.id, order)
        return list(found.values())

    def mark_orders_paid(self, order_ids: List[str]) -> int:
        ids = list(dict.fromkeys(order_ids))
        with _google_errors():
            for start in range(0, len(ids), MAX_BATCH_WRITES):
                batch = self.client.batch()
                for oid in ids[start:start + MAX_BATCH_WRITES]:
                    batch.update(self._collection(ORDERS).document(oid), {'status': OrderStatus.PAID.value})
                batch.commit()
        return len(ids)

    # =========================================================================
    # MESAS
    # =========================================================================

    def list_tables(self) -> Dict[str, TableSession]:
        with _google_errors():
            return self._parse_tables(self._collection(TABLES).stream())

    def merge_table(self, table_id: int, fields: Dict[str, Any]) -> None:
        key = str(normalize_table_id(table_id))
        with _google_errors():
            self._collection(TABLES).document(key).set(fields, merge=True)

    def delete_table(self, table_id: int) -> None:
        key = str(normalize_table_id(table_id))
        with _google_errors():
            self._collection(TABLES).document(key).delete()

    # =========================================================================
    # DIAGNÓSTICO
    # =========================================================================

    def probe(self) -> bool:
        """Lee como máximo un producto para validar acceso."""
        with _google_errors():
            list(self._collection(PRODUCTS).limit(1).stream())
        return True


# ==============================================================================
# CONECTOR (app de Firebase única por proceso)
# ==============================================================================

class FirestoreConnector:
    """Crea, reutiliza y libera la app por defecto de firebase_admin."""

    def existing(self) -> Optional[FirestoreBackend]:
        try:
            app = firebase_admin.get_app()
        except ValueError:
            return None
        return FirestoreBackend(firebase_firestore.client(app))

    def connect(self, config: DatabaseConfig) -> FirestoreBackend:
        if config.credentials_path:
            cred = credentials.Certificate(config.credentials_path)
        else:
            cred = credentials.ApplicationDefault()
        options = {'projectId': config.project_id}
        if config.storage_bucket:
            options['storageBucket'] = config.storage_bucket

        try:
            app = firebase_admin.initialize_app(cred, options)
        except ValueError as e:
            if 'already exists' in str(e):
                raise DuplicateConnectionError(str(e)) from e
            raise

        try:
            client = firebase_firestore.client(app)
        except Exception:
            # No dejar registrada una app sin cliente utilizable
            firebase_admin.delete_app(app)
            raise
        return FirestoreBackend(client)

    def disconnect(self) -> None:
        try:
            app = firebase_admin.get_app()
        except ValueError:
            return
        firebase_admin.delete_app(app)
