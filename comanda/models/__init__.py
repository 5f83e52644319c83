# ==============================================================================
# CAPA DE MODELOS - Estructuras de datos del sistema
# ==============================================================================
# Entidades del dominio como dataclasses. Los payloads crudos de cualquier
# backend se validan aquí (from_dict) antes de llegar a los servicios.
# ==============================================================================

from .entities import (
    # Catálogo
    Product,
    Category,
    INITIAL_PRODUCTS,

    # Pedidos
    Order,
    OrderItem,
    OrderStatus,
    TERMINAL_STATUSES,

    # Mesas
    TableSession,
    TableStatus,
    normalize_table_id,
)

__all__ = [
    'Product',
    'Category',
    'INITIAL_PRODUCTS',
    'Order',
    'OrderItem',
    'OrderStatus',
    'TERMINAL_STATUSES',
    'TableSession',
    'TableStatus',
    'normalize_table_id',
]
