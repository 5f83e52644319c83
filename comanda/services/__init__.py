# ==============================================================================
# CAPA DE SERVICIOS - Lógica de negocio
# ==============================================================================
# Esta capa contiene TODA la lógica de negocio de la capa de datos.
#
# PRINCIPIOS:
# 1. Los servicios piden el backend activo a ConnectionService en cada llamada
# 2. Aplican reglas de negocio (deduplicación, totales, devolución de stock)
# 3. La API HTTP solo llama a StorageService
# 4. Los servicios NO conocen Firestore ni los archivos locales
#
# ESTRUCTURA:
# ├── alert_service.py        → Alertas para el usuario
# ├── connection_service.py   → Selección de backend (nube / local)
# ├── subscription_service.py → Suscripciones en tiempo real
# ├── catalog_service.py      → Productos y reposición de stock
# ├── order_service.py        → Pedidos, estados y stock
# ├── table_service.py        → Cierre de mesas
# ├── diagnostics_service.py  → Chequeo del backend
# └── storage_service.py      → Fachada única
# ==============================================================================

from comanda.services.alert_service import Alert, AlertService
from comanda.services.connection_service import ConnectionService
from comanda.services.subscription_service import SubscriptionService
from comanda.services.catalog_service import CatalogService
from comanda.services.order_service import OrderService
from comanda.services.table_service import TableService
from comanda.services.diagnostics_service import DiagnosticReport, DiagnosticsService
from comanda.services.storage_service import StorageService

__all__ = [
    'Alert',
    'AlertService',
    'ConnectionService',
    'SubscriptionService',
    'CatalogService',
    'OrderService',
    'TableService',
    'DiagnosticReport',
    'DiagnosticsService',
    'StorageService',
]
