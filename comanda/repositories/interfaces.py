# ==============================================================================
# INTERFACES DE REPOSITORIOS - BACKEND INTERCAMBIABLE
# ==============================================================================
#
# Este archivo define los contratos (protocolos) que cumplen los backends.
# Esto permite:
#
# 1. INDEPENDENCIA DE ALMACENAMIENTO
#    - Los servicios dependen de IDataBackend, NO de Firestore ni de archivos
#    - LocalBackend (offline) y FirestoreBackend (nube) son intercambiables
#
# 2. TESTING
#    - Los tests usan un backend "nube" falso en memoria
#    - El conector también se inyecta, nunca se toca Firebase real
#
# 3. DOCUMENTACIÓN
#    - Contratos claros de qué hace cada backend
#
# ==============================================================================

from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from comanda.config import DatabaseConfig
from comanda.models import Order, OrderStatus, Product, TableSession


ErrorHandler = Callable[[Exception], None]


# ==============================================================================
# MEDIO PERSISTENTE (archivos, navegador, etc.)
# ==============================================================================

@runtime_checkable
class IStorageMedium(Protocol):
    """
    Medio clave-valor persistente. Puede fallar en cualquier momento
    (lanza OSError); SafeStorage se encarga de absorber esos fallos.
    """

    def get(self, key: str) -> Optional[str]:
        """Retorna el valor o None si la clave no existe."""
        ...

    def set(self, key: str, value: str) -> None:
        """Guarda el valor."""
        ...

    def remove(self, key: str) -> None:
        """Elimina la clave (no falla si no existe)."""
        ...


# ==============================================================================
# BACKEND DE DATOS
# ==============================================================================

@runtime_checkable
class IDataBackend(Protocol):
    """
    Primitivas de persistencia de productos, pedidos y mesas.

    La lógica de negocio (deduplicación, totales, compensaciones) vive en los
    servicios; aquí solo se lee y escribe.
    """

    mode: str  # 'cloud' | 'local'

    # --- Suscripciones -------------------------------------------------------

    def subscribe_products(self, callback: Callable[[List[Product]], None],
                           on_error: Optional[ErrorHandler] = None) -> Any:
        """Entrega el catálogo completo en cada cambio. Retorna Subscription."""
        ...

    def subscribe_orders(self, callback: Callable[[List[Order]], None],
                         on_error: Optional[ErrorHandler] = None) -> Any:
        """Entrega todos los pedidos en cada cambio. Retorna Subscription."""
        ...

    def subscribe_tables(self, callback: Callable[[Dict[str, TableSession]], None],
                         on_error: Optional[ErrorHandler] = None) -> Any:
        """Entrega el mapa de mesas en cada cambio. Retorna Subscription."""
        ...

    # --- Productos -----------------------------------------------------------

    def list_products(self) -> List[Product]:
        ...

    def find_product_by_name(self, name: str) -> Optional[Product]:
        ...

    def create_product(self, product: Product) -> Product:
        """Crea el producto y lo retorna con su ID definitivo."""
        ...

    def update_product(self, pid: str, fields: Dict[str, Any]) -> bool:
        """Mezcla campos sobre un producto existente. False si no existe."""
        ...

    def delete_product(self, pid: str) -> None:
        ...

    def apply_stock_deltas(self, deltas: Dict[str, int]) -> Dict[str, Exception]:
        """
        Ajusta el stock de varios productos.

        Returns:
            Fallos por producto ({pid: error}); vacío si todo salió bien
        """
        ...

    # --- Pedidos -------------------------------------------------------------

    def list_orders(self) -> List[Order]:
        ...

    def get_order(self, order_id: str) -> Optional[Order]:
        ...

    def create_order(self, order: Order) -> Order:
        """Persiste el pedido y lo retorna con su ID definitivo."""
        ...

    def set_order_status(self, order_id: str, status: OrderStatus,
                         restock: Optional[Dict[str, int]] = None) -> Optional[OrderStatus]:
        """
        Cambia el estado de forma atómica.

        `restock` se aplica solo si el pedido pasa a CANCELED desde otro
        estado, decidido contra el estado leído en la misma operación.

        Returns:
            Estado anterior, o None si el pedido no existe
        """
        ...

    def find_orders_by_table(self, table_id: int) -> List[Order]:
        """Pedidos de una mesa, guardada como número o como string."""
        ...

    def mark_orders_paid(self, order_ids: List[str]) -> int:
        """Marca todos como PAID juntos. Retorna cuántos se actualizaron."""
        ...

    # --- Mesas ---------------------------------------------------------------

    def list_tables(self) -> Dict[str, TableSession]:
        ...

    def merge_table(self, table_id: int, fields: Dict[str, Any]) -> None:
        ...

    def delete_table(self, table_id: int) -> None:
        ...

    # --- Diagnóstico ---------------------------------------------------------

    def probe(self) -> bool:
        """Prueba mínima de lectura/escritura contra el backend."""
        ...


@runtime_checkable
class IBackendConnector(Protocol):
    """
    Fábrica de conexiones a la nube.

    La conexión es única por proceso: si ya existe una, se reutiliza.
    """

    def existing(self) -> Optional[IDataBackend]:
        """Backend sobre la conexión ya registrada, o None."""
        ...

    def connect(self, config: DatabaseConfig) -> IDataBackend:
        """
        Abre la conexión.

        Raises:
            DuplicateConnectionError: Si otra inicialización ganó la carrera
        """
        ...

    def disconnect(self) -> None:
        """Libera la conexión registrada en el proceso."""
        ...
