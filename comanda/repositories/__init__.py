# ==============================================================================
# CAPA DE REPOSITORIOS - Acceso a datos
# ==============================================================================
# Esta capa encapsula todo el acceso a la persistencia. Los servicios nunca
# saben si los datos viven en Firestore o en el almacenamiento local.
#
# ESTRUCTURA:
# ├── interfaces.py        → Protocolos (IStorageMedium, IDataBackend, IBackendConnector)
# ├── safe_storage.py      → Clave-valor con sombra en memoria (SafeStorage)
# ├── feeds.py             → Subscription y PollingFeed
# ├── local_backend.py     → Backend offline sobre SafeStorage
# └── firestore_backend.py → Backend en la nube + conector de firebase_admin
#
# firestore_backend NO se importa aquí: solo lo carga el contenedor cuando
# hace falta, así el modo local funciona sin tocar el SDK de Google.
# ==============================================================================

from .interfaces import IStorageMedium, IDataBackend, IBackendConnector
from .safe_storage import SafeStorage, JsonFileMedium, StorageResult, QuotaExceededError
from .feeds import Subscription, PollingFeed
from .local_backend import LocalBackend

__all__ = [
    # Interfaces
    'IStorageMedium',
    'IDataBackend',
    'IBackendConnector',

    # Almacenamiento local
    'SafeStorage',
    'JsonFileMedium',
    'StorageResult',
    'QuotaExceededError',

    # Suscripciones
    'Subscription',
    'PollingFeed',

    # Backends
    'LocalBackend',
]
