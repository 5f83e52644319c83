# ==============================================================================
# COMANDA - Capa de datos del POS de la barraca
# ==============================================================================
# Una sola interfaz para productos, pedidos y mesas. Por debajo decide si usa
# Firestore (nube, sincronizado) o el almacenamiento local (offline).
#
# ESTRUCTURA:
# ├── config.py             → Variables de entorno y DatabaseConfig
# ├── exceptions.py         → Jerarquía de errores del backend
# ├── app_container.py      → Contenedor de dependencias
# ├── performance_logger.py → Profiling de operaciones y rutas
# ├── api.py                → Superficie HTTP (Flask)
# ├── models/               → Entidades (dataclasses)
# ├── repositories/         → Persistencia (local y Firestore)
# └── services/             → Lógica de negocio
# ==============================================================================

__version__ = '1.0.0'
