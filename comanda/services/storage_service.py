# ==============================================================================
# FACHADA DE ALMACENAMIENTO
# ==============================================================================
# Una sola interfaz para quien consume los datos (UI, API HTTP). Delega en
# los servicios especializados; quien llama nunca sabe si está en la nube o
# en modo local.
# ==============================================================================

from typing import Dict, List, Optional, Tuple, Union

from comanda.config import DatabaseConfig
from comanda.models import Order, OrderStatus, Product, TableSession
from comanda.repositories.feeds import Subscription
from comanda.services.catalog_service import CatalogService
from comanda.services.connection_service import ConnectionService
from comanda.services.diagnostics_service import DiagnosticReport, DiagnosticsService
from comanda.services.order_service import OrderService
from comanda.services.subscription_service import SubscriptionService
from comanda.services.table_service import TableService


class StorageService:
    """
    Fachada de la capa de datos.

    Uso:
        storage = container.storage_service
        storage.initialize()
        unsubscribe = storage.subscribe_orders(render)
        storage.create_order(5, [(cerveja, 2)])
    """

    def __init__(
        self,
        connection: ConnectionService,
        subscriptions: SubscriptionService,
        catalog: CatalogService,
        orders: OrderService,
        tables: TableService,
        diagnostics: DiagnosticsService
    ):
        self.connection = connection
        self.subscriptions = subscriptions
        self.catalog = catalog
        self.orders = orders
        self.tables = tables
        self.diagnostics = diagnostics

    # --- Conexión ---------------------------------------------------------------

    def initialize(self, config: Optional[DatabaseConfig] = None) -> bool:
        return self.connection.initialize(config)

    def save_config(self, config: DatabaseConfig) -> bool:
        return self.connection.save_config(config)

    def clear_config(self) -> None:
        self.connection.clear_config()

    def is_using_cloud(self) -> bool:
        return self.connection.is_using_cloud

    # --- Suscripciones ----------------------------------------------------------

    def subscribe_products(self, callback) -> Subscription:
        return self.subscriptions.subscribe_products(callback)

    def subscribe_orders(self, callback) -> Subscription:
        return self.subscriptions.subscribe_orders(callback)

    def subscribe_tables(self, callback) -> Subscription:
        return self.subscriptions.subscribe_tables(callback)

    # --- Productos --------------------------------------------------------------

    def list_products(self) -> List[Product]:
        return self.catalog.list_products()

    def save_product(self, product: Product) -> Product:
        return self.catalog.save_product(product)

    def delete_product(self, pid: str) -> None:
        self.catalog.delete_product(pid)

    # --- Pedidos ----------------------------------------------------------------

    def create_order(self, table_id: Union[int, str], items: List[Tuple[Product, int]],
                     observation: Optional[str] = None) -> Order:
        return self.orders.create_order(table_id, items, observation)

    def update_order_status(self, order_id: str, status: Union[OrderStatus, str]) -> bool:
        return self.orders.update_order_status(order_id, status)

    def get_orders_once(self) -> List[Order]:
        return self.orders.get_orders_once()

    # --- Mesas ------------------------------------------------------------------

    def list_tables(self) -> Dict[str, TableSession]:
        return self.tables.list_tables()

    def request_table_close(self, table_id: Union[int, str], payment_method: str) -> TableSession:
        return self.tables.request_table_close(table_id, payment_method)

    def finalize_table(self, table_id: Union[int, str]) -> int:
        return self.tables.finalize_table(table_id)

    # --- Diagnóstico ------------------------------------------------------------

    def run_diagnostics(self) -> DiagnosticReport:
        return self.diagnostics.run_diagnostics()
