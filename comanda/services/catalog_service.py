# ==============================================================================
# SERVICIO DE CATÁLOGO
# ==============================================================================
# Alta, edición y baja de productos.
#
# REGLA DE NEGOCIO - DEDUPLICACIÓN POR NOMBRE:
#   Un producto nuevo (sin ID) cuyo nombre ya existe NO se duplica: se suma
#   su stock al existente y se actualizan precio, descripción e imagen
#   (si el nuevo no trae imagen, se conserva la anterior).
# ==============================================================================

import logging
from dataclasses import replace
from typing import List

from comanda.exceptions import ComandaError
from comanda.models import Product
from comanda.performance_logger import profile_function
from comanda.services.alert_service import AlertService
from comanda.services.connection_service import ConnectionService


logger = logging.getLogger(__name__)


class CatalogService:
    """
    Servicio para gestión del cardápio.

    Responsabilidades:
    - Validar y normalizar productos
    - Deduplicar por nombre (reposición de stock)
    - Traducir errores del backend en alertas para el usuario
    """

    def __init__(self, connection: ConnectionService, alert_service: AlertService = None):
        """
        Args:
            connection: Servicio de conexión (provee el backend activo)
            alert_service: Servicio de alertas (opcional)
        """
        self.connection = connection
        self.alert_service = alert_service

    # =========================================================================
    # VALIDACIÓN
    # =========================================================================

    @staticmethod
    def validate(product: Product) -> Product:
        """
        Normaliza un producto antes de guardarlo.

        Raises:
            ValueError: Si falta el nombre o hay precio/stock negativos
        """
        name = (product.name or '').strip()
        if not name:
            raise ValueError('El producto necesita un nombre')
        if product.price < 0:
            raise ValueError('El precio no puede ser negativo')
        if product.stock < 0:
            raise ValueError('El stock no puede ser negativo')
        return replace(product, name=name, price=round(float(product.price), 2), stock=int(product.stock))

    # =========================================================================
    # OPERACIONES
    # =========================================================================

    def list_products(self) -> List[Product]:
        return self.connection.backend.list_products()

    @profile_function(name="Guardar producto")
    def save_product(self, product: Product) -> Product:
        """
        Crea, actualiza o repone un producto.

        Args:
            product: Producto a guardar (id vacío = nuevo)

        Returns:
            El producto tal como quedó guardado

        Raises:
            ValueError: Si el producto no es válido
            ComandaError: Si el backend rechazó la operación (ya alertado)
        """
        product = self.validate(product)
        backend = self.connection.backend
        try:
            if product.id:
                fields = product.to_dict(include_id=False)
                if backend.update_product(product.id, fields):
                    logger.info("[%s] Producto %s actualizado", backend.mode.upper(), product.id)
                    return product
                # Modo local: ID desconocido, se trata como nuevo

            existing = backend.find_product_by_name(product.name)
            if existing is not None and existing.id != product.id:
                return self._restock(backend, existing, product)

            created = backend.create_product(product)
            logger.info("[%s] Producto nuevo creado: %s", backend.mode.upper(), created.id)
            return created
        except ComandaError as e:
            logger.error("[%s] Error al guardar producto '%s': %s", backend.mode.upper(), product.name, e)
            if self.alert_service:
                self.alert_service.report_error('salvar', e)
            raise

    def _restock(self, backend, existing: Product, incoming: Product) -> Product:
        merged = replace(
            existing,
            stock=existing.stock + incoming.stock,
            price=incoming.price,
            description=incoming.description,
            image_url=incoming.image_url or existing.image_url,
        )
        backend.update_product(existing.id, {
            'stock': merged.stock,
            'price': merged.price,
            'description': merged.description,
            'imageUrl': merged.image_url,
        })
        logger.info("[%s] Stock sumado a %s (+%d)",
                    backend.mode.upper(), existing.name, incoming.stock)
        return merged

    @profile_function(name="Eliminar producto")
    def delete_product(self, pid: str) -> None:
        """Elimina un producto. No falla si no existe."""
        backend = self.connection.backend
        try:
            backend.delete_product(pid)
        except ComandaError as e:
            logger.error("[%s] Error al eliminar producto %s: %s", backend.mode.upper(), pid, e)
            if self.alert_service:
                self.alert_service.report_error('excluir produto', e)
            raise
