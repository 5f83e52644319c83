# ==============================================================================
# ENTIDADES DEL DOMINIO - Definiciones de dataclasses
# ==============================================================================
# Cada entidad representa un concepto del negocio.
# Diseñadas para ser independientes del backend (Firestore o local).
#
# Los nombres de campo persistidos (camelCase) se mantienen iguales en ambos
# backends para que los datos se puedan mover de uno a otro sin migración.
# ==============================================================================

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum


# ==============================================================================
# ENUMERACIONES - Estados y tipos válidos
# ==============================================================================

class Category(str, Enum):
    """Categorías del cardápio."""
    BEBIDAS = "Bebidas"
    TIRA_GOSTO = "Tira-Gosto"
    PRATOS = "Pratos"
    SOBREMESAS = "Sobremesas"
    OUTROS = "Outros"


class OrderStatus(str, Enum):
    """Estados posibles de un pedido."""
    PENDING = "PENDING"        # Recién creado
    PREPARING = "PREPARING"    # En cocina
    READY = "READY"            # Listo para llevar
    DELIVERED = "DELIVERED"    # Entregado en la mesa
    PAID = "PAID"              # Archivado al cerrar la mesa
    CANCELED = "CANCELED"      # Anulado (devuelve stock)


class TableStatus(str, Enum):
    """Estados de una mesa con sesión abierta."""
    CLOSING_REQUESTED = "CLOSING_REQUESTED"


# Estados que ya no se archivan al cerrar la mesa
TERMINAL_STATUSES = frozenset([OrderStatus.PAID, OrderStatus.CANCELED])


def normalize_table_id(value: Any) -> int:
    """
    Unifica el ID de mesa a entero.

    Hay registros antiguos con el número guardado como string ("5").

    Raises:
        ValueError: Si el valor no representa un número de mesa
    """
    if isinstance(value, bool):
        raise ValueError(f'ID de mesa inválido: {value!r}')
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError(f'ID de mesa inválido: {value!r}')


def _parse_category(value: Any) -> Category:
    if isinstance(value, Category):
        return value
    try:
        return Category(value)
    except ValueError:
        try:
            return Category[str(value)]
        except KeyError:
            return Category.OUTROS


def _parse_status(value: Any) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    return OrderStatus(value)


# ==============================================================================
# ENTIDADES DE CATÁLOGO
# ==============================================================================

@dataclass
class Product:
    """
    Producto del cardápio.

    Attributes:
        id: Identificador ("" = todavía no persistido)
        name: Nombre, clave de negocio única dentro del catálogo
        description: Descripción corta
        price: Precio de venta
        category: Categoría
        stock: Cantidad disponible (nunca negativa)
        image_url: URL o data URI de la imagen
    """
    id: str = ''
    name: str = ''
    description: str = ''
    price: float = 0.0
    category: Category = Category.OUTROS
    stock: int = 0
    image_url: str = ''

    def to_dict(self, include_id: bool = True) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        d = {
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'category': self.category.value if isinstance(self.category, Enum) else self.category,
            'stock': self.stock,
            'imageUrl': self.image_url,
        }
        if include_id:
            d = {'id': self.id, **d}
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any], pid: Optional[str] = None) -> 'Product':
        """
        Crea instancia desde diccionario.

        Args:
            data: Datos persistidos
            pid: ID del documento (Firestore guarda el ID fuera de los datos)

        Raises:
            ValueError: Si el registro no tiene la forma esperada
        """
        if not isinstance(data, dict):
            raise ValueError('Producto inválido')
        return cls(
            id=str(pid if pid is not None else data.get('id') or ''),
            name=str(data.get('name', '')),
            description=str(data.get('description') or ''),
            price=float(data.get('price') or 0),
            category=_parse_category(data.get('category', Category.OUTROS.value)),
            stock=int(data.get('stock') or 0),
            image_url=str(data.get('imageUrl') or ''),
        )


# ==============================================================================
# ENTIDADES DE PEDIDO
# ==============================================================================

@dataclass
class OrderItem:
    """
    Línea de pedido. Copia nombre y precio del producto al momento del
    pedido: el histórico no cambia si luego cambia el catálogo.
    """
    product_id: str
    name: str
    price: float
    quantity: int

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            'productId': self.product_id,
            'name': self.name,
            'price': self.price,
            'quantity': self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrderItem':
        if not isinstance(data, dict):
            raise ValueError('Ítem de pedido inválido')
        return cls(
            product_id=str(data.get('productId', '')),
            name=str(data.get('name', '')),
            price=float(data.get('price') or 0),
            quantity=int(data.get('quantity') or 0),
        )


@dataclass
class Order:
    """
    Pedido de una mesa.

    El total se calcula UNA vez al crear el pedido y nunca se recalcula.
    El único cambio permitido después es el estado.

    Attributes:
        id: Identificador del pedido
        table_id: Número de mesa
        status: Estado actual
        timestamp: Milisegundos desde epoch
        items: Líneas del pedido
        total: Suma de precio × cantidad al momento de crear
        observation: Texto libre para la cocina
    """
    table_id: int
    items: List[OrderItem] = field(default_factory=list)
    status: OrderStatus = OrderStatus.PENDING
    timestamp: int = 0
    total: float = 0.0
    observation: str = ''
    id: str = ''

    def to_dict(self, include_id: bool = True) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        d = {
            'tableId': self.table_id,
            'status': self.status.value if isinstance(self.status, Enum) else self.status,
            'timestamp': self.timestamp,
            'items': [i.to_dict() for i in self.items],
            'total': self.total,
            'observation': self.observation,
        }
        if include_id:
            d = {'id': self.id, **d}
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any], oid: Optional[str] = None) -> 'Order':
        """
        Crea instancia desde diccionario.

        Raises:
            ValueError: Si el registro no tiene la forma esperada
        """
        if not isinstance(data, dict):
            raise ValueError('Pedido inválido')
        return cls(
            id=str(oid if oid is not None else data.get('id') or ''),
            table_id=normalize_table_id(data.get('tableId')),
            status=_parse_status(data.get('status', OrderStatus.PENDING.value)),
            timestamp=int(data.get('timestamp') or 0),
            items=[OrderItem.from_dict(i) for i in data.get('items') or []],
            total=float(data.get('total') or 0),
            observation=str(data.get('observation') or ''),
        )


# ==============================================================================
# ENTIDADES DE MESA
# ==============================================================================

@dataclass
class TableSession:
    """Sesión efímera de una mesa: existe entre el pedido de cierre y el cierre."""
    status: TableStatus = TableStatus.CLOSING_REQUESTED
    payment_method: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value if isinstance(self.status, Enum) else self.status,
            'paymentMethod': self.payment_method,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TableSession':
        if not isinstance(data, dict):
            raise ValueError('Mesa inválida')
        return cls(
            status=TableStatus(data.get('status', TableStatus.CLOSING_REQUESTED.value)),
            payment_method=str(data.get('paymentMethod') or ''),
        )


# ==============================================================================
# CATÁLOGO INICIAL
# ==============================================================================
# Solo se usa la primera vez que el almacenamiento local no tiene productos.

INITIAL_PRODUCTS = [
    Product(id='1', name='Cerveja Gelada 600ml', description='Estupidamente gelada',
            price=15.00, category=Category.BEBIDAS, stock=48,
            image_url='https://picsum.photos/200/200?random=1'),
    Product(id='2', name='Água de Coco', description='Natural da fruta',
            price=8.00, category=Category.BEBIDAS, stock=20,
            image_url='https://picsum.photos/200/200?random=2'),
    Product(id='3', name='Isca de Peixe', description='Acompanha molho tártaro',
            price=45.00, category=Category.TIRA_GOSTO, stock=10,
            image_url='https://picsum.photos/200/200?random=3'),
    Product(id='4', name='Batata Frita', description='Porção generosa',
            price=25.00, category=Category.TIRA_GOSTO, stock=15,
            image_url='https://picsum.photos/200/200?random=4'),
]
