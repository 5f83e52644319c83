# ==============================================================================
# SERVICIO DE CONEXIÓN - Selección de backend
# ==============================================================================
# Decide qué backend atiende las operaciones:
#
#   1. Si ya hay una conexión a la nube en el proceso → reutilizarla
#   2. Si la configuración fija es válida → usarla SIEMPRE
#   3. Si no se pasó configuración → cargar la guardada localmente
#   4. Con configuración → conectar (si otro hilo ganó la carrera, reutilizar)
#   5. Sin configuración → modo local (estado válido, no es un error)
#
# Cualquier fallo al conectar deja la app en modo local.
# ==============================================================================

import json
import logging
import threading
from typing import Callable, List, Optional

from comanda.config import STORAGE_KEYS, DatabaseConfig
from comanda.exceptions import DuplicateConnectionError
from comanda.repositories.interfaces import IBackendConnector, IDataBackend
from comanda.repositories.local_backend import LocalBackend
from comanda.repositories.safe_storage import SafeStorage
from comanda.services.alert_service import AlertService


logger = logging.getLogger(__name__)


class ConnectionService:
    """
    Dueño del backend activo.

    Uso:
        connection = ConnectionService(storage, local, FirestoreConnector(), get_builtin_config())
        connection.initialize()
        connection.backend.list_products()
    """

    def __init__(
        self,
        storage: SafeStorage,
        local_backend: LocalBackend,
        connector: Optional[IBackendConnector] = None,
        builtin_config: Optional[DatabaseConfig] = None,
        alert_service: Optional[AlertService] = None
    ):
        """
        Args:
            storage: Almacenamiento local (guarda la configuración)
            local_backend: Backend de respaldo
            connector: Fábrica de conexiones a la nube (None = solo local)
            builtin_config: Configuración fija del despliegue
            alert_service: Servicio de alertas (opcional)
        """
        self.storage = storage
        self.local_backend = local_backend
        self.connector = connector
        self.builtin_config = builtin_config
        self.alert_service = alert_service
        self._cloud: Optional[IDataBackend] = None
        self._reset_listeners: List[Callable[[], None]] = []
        self._lock = threading.RLock()

    # =========================================================================
    # ESTADO
    # =========================================================================

    @property
    def backend(self) -> IDataBackend:
        """Backend activo: la nube si hay conexión, si no el local."""
        cloud = self._cloud
        return cloud if cloud is not None else self.local_backend

    @property
    def is_using_cloud(self) -> bool:
        return self._cloud is not None

    @property
    def mode(self) -> str:
        return self.backend.mode

    # =========================================================================
    # INICIALIZACIÓN
    # =========================================================================

    def initialize(self, config: Optional[DatabaseConfig] = None) -> bool:
        """
        Intenta activar la nube.

        Args:
            config: Configuración explícita (ej. recién ingresada por el usuario)

        Returns:
            True si quedó conectado a la nube, False si queda en modo local
        """
        with self._lock:
            if self.connector is None:
                logger.warning("[FIREBASE] Sin conector configurado. Modo OFFLINE (local).")
                return False

            # 0. Conexión ya registrada en el proceso
            existing = self.connector.existing()
            if existing is not None:
                logger.info("[FIREBASE] Ya inicializado. Reutilizando conexión.")
                self._cloud = existing
                return True

            # 1. Prioridad absoluta: configuración fija
            if self.builtin_config is not None and self.builtin_config.is_valid():
                logger.info("[FIREBASE] Inicializando con credenciales fijas.")
                config = self.builtin_config
            # 2. Configuración guardada (solo si no se pasó una)
            elif config is None:
                config = self.load_saved_config()

            if config is None or not config.api_key:
                logger.warning("[FIREBASE] Ninguna configuración válida. Modo OFFLINE (local).")
                return False

            try:
                self._cloud = self.connector.connect(config)
            except DuplicateConnectionError:
                # Otra inicialización ganó la carrera: recuperar esa instancia
                self._cloud = self.connector.existing()
                if self._cloud is None:
                    logger.error("[FIREBASE] Conexión duplicada pero no recuperable")
                    return False
            except Exception as e:
                logger.error("[FIREBASE] Falla al conectar: %s", e)
                self._cloud = None
                if self.alert_service:
                    self.alert_service.notify(
                        AlertService.TYPE_CONEXION,
                        f"Falha ao conectar ao Firebase ({e}). Usando armazenamento local."
                    )
                return False

            logger.info("[FIREBASE] Conectado con éxito (proyecto %s)", config.project_id)
            return True

    def load_saved_config(self) -> Optional[DatabaseConfig]:
        """Configuración guardada localmente, o None si no hay o es inválida."""
        stored = self.storage.get(STORAGE_KEYS['DB_CONFIG'])
        if not stored:
            return None
        try:
            return DatabaseConfig.from_dict(json.loads(stored))
        except (ValueError, TypeError) as e:
            logger.error("[FIREBASE] Configuración guardada inválida: %s", e)
            return None

    # =========================================================================
    # CONFIGURACIÓN DEL USUARIO
    # =========================================================================

    def save_config(self, config: DatabaseConfig) -> bool:
        """Guarda la configuración y reintenta conectar con ella."""
        self.storage.set(STORAGE_KEYS['DB_CONFIG'], json.dumps(config.to_dict()))
        return self.initialize(config)

    def clear_config(self) -> None:
        """
        Borra la configuración guardada y vuelve a modo local.

        Las suscripciones vivas se cancelan vía los listeners de reset.
        """
        with self._lock:
            self.storage.remove(STORAGE_KEYS['DB_CONFIG'])
            had_cloud = self._cloud is not None
            self._cloud = None
            if had_cloud and self.connector is not None:
                try:
                    self.connector.disconnect()
                except Exception as e:
                    logger.warning("[FIREBASE] Error al liberar la conexión: %s", e)
            logger.info("[FIREBASE] Configuración borrada. Modo OFFLINE (local).")

        for listener in list(self._reset_listeners):
            listener()

    def add_reset_listener(self, listener: Callable[[], None]) -> None:
        """Registra una función a llamar después de clear_config()."""
        self._reset_listeners.append(listener)
