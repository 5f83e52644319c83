# ==============================================================================
# CONTENEDOR DE DEPENDENCIAS - Inyección de servicios
# ==============================================================================
# Este módulo proporciona una forma centralizada de obtener instancias
# del almacenamiento, los backends y los servicios. Facilita:
#   - Inyección de dependencias
#   - Testing (se inyecta un conector de nube falso)
#   - Cambiar de backend sin tocar servicios
#
# El conector de Firestore se crea solo si no se inyectó otro: así los tests
# y el modo local nunca tocan el SDK de Google.
# ==============================================================================

from typing import Optional

from comanda.config import DATA_DIR, POLL_INTERVAL_SECONDS, STORAGE_QUOTA_BYTES, DatabaseConfig, get_builtin_config
from comanda.repositories import (
    IBackendConnector,
    JsonFileMedium,
    LocalBackend,
    SafeStorage,
)
from comanda.services import (
    AlertService,
    CatalogService,
    ConnectionService,
    DiagnosticsService,
    OrderService,
    StorageService,
    SubscriptionService,
    TableService,
)


class AppContainer:
    """
    Contenedor de dependencias de la aplicación.

    Implementa el patrón Singleton para asegurar una única instancia
    de cada repositorio y servicio.

    Uso:
        container = AppContainer(data_dir='/path/to/data')
        storage = container.storage_service
    """

    _instance: Optional['AppContainer'] = None

    def __new__(cls, *args, **kwargs):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(
        self,
        data_dir: str = None,
        connector: Optional[IBackendConnector] = None,
        builtin_config: Optional[DatabaseConfig] = None,
        poll_interval: float = None,
        storage_quota: int = None
    ):
        """
        Inicializa el contenedor.

        Args:
            data_dir: Carpeta de los archivos JSON locales
            connector: Conector de nube (None = FirestoreConnector)
            builtin_config: Configuración fija (None = leída del entorno)
            poll_interval: Segundos entre sondeos en modo local
            storage_quota: Cuota en bytes por clave (0 = sin límite)
        """
        if self._initialized:
            return

        self._data_dir = data_dir or DATA_DIR
        self._connector_override = connector
        self._builtin_config = builtin_config
        self._poll_interval = POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self._storage_quota = STORAGE_QUOTA_BYTES if storage_quota is None else storage_quota

        self.reset()
        self._initialized = True

    # =========================================================================
    # ALMACENAMIENTO Y BACKENDS
    # =========================================================================

    @property
    def safe_storage(self) -> SafeStorage:
        """Clave-valor local con sombra en memoria (singleton)."""
        if self._safe_storage is None:
            medium = JsonFileMedium(self._data_dir, self._storage_quota)
            self._safe_storage = SafeStorage(medium)
        return self._safe_storage

    @property
    def local_backend(self) -> LocalBackend:
        """Backend offline (singleton)."""
        if self._local_backend is None:
            self._local_backend = LocalBackend(self.safe_storage, self._poll_interval)
        return self._local_backend

    @property
    def connector(self) -> IBackendConnector:
        """Conector de nube (singleton)."""
        if self._connector is None:
            if self._connector_override is not None:
                self._connector = self._connector_override
            else:
                from comanda.repositories.firestore_backend import FirestoreConnector
                self._connector = FirestoreConnector()
        return self._connector

    # =========================================================================
    # SERVICIOS
    # =========================================================================

    @property
    def alert_service(self) -> AlertService:
        """Servicio de alertas (singleton)."""
        if self._alert_service is None:
            self._alert_service = AlertService()
        return self._alert_service

    @property
    def connection_service(self) -> ConnectionService:
        """Servicio de conexión (singleton)."""
        if self._connection_service is None:
            self._connection_service = ConnectionService(
                self.safe_storage,
                self.local_backend,
                self.connector,
                self._builtin_config or get_builtin_config(),
                self.alert_service
            )
        return self._connection_service

    @property
    def subscription_service(self) -> SubscriptionService:
        if self._subscription_service is None:
            self._subscription_service = SubscriptionService(self.connection_service, self.alert_service)
        return self._subscription_service

    @property
    def catalog_service(self) -> CatalogService:
        if self._catalog_service is None:
            self._catalog_service = CatalogService(self.connection_service, self.alert_service)
        return self._catalog_service

    @property
    def order_service(self) -> OrderService:
        if self._order_service is None:
            self._order_service = OrderService(self.connection_service, self.alert_service)
        return self._order_service

    @property
    def table_service(self) -> TableService:
        if self._table_service is None:
            self._table_service = TableService(self.connection_service, self.alert_service)
        return self._table_service

    @property
    def diagnostics_service(self) -> DiagnosticsService:
        if self._diagnostics_service is None:
            self._diagnostics_service = DiagnosticsService(self.connection_service, self.alert_service)
        return self._diagnostics_service

    @property
    def storage_service(self) -> StorageService:
        """Fachada de la capa de datos (singleton)."""
        if self._storage_service is None:
            self._storage_service = StorageService(
                self.connection_service,
                self.subscription_service,
                self.catalog_service,
                self.order_service,
                self.table_service,
                self.diagnostics_service
            )
        return self._storage_service

    # =========================================================================
    # UTILIDADES
    # =========================================================================

    def reset(self) -> None:
        """
        Reinicia todas las instancias.
        Las suscripciones vivas se cancelan antes de soltar los servicios.
        """
        if getattr(self, '_subscription_service', None) is not None:
            self._subscription_service.cancel_all()

        self._safe_storage: Optional[SafeStorage] = None
        self._local_backend: Optional[LocalBackend] = None
        self._connector: Optional[IBackendConnector] = None

        self._alert_service: Optional[AlertService] = None
        self._connection_service: Optional[ConnectionService] = None
        self._subscription_service: Optional[SubscriptionService] = None
        self._catalog_service: Optional[CatalogService] = None
        self._order_service: Optional[OrderService] = None
        self._table_service: Optional[TableService] = None
        self._diagnostics_service: Optional[DiagnosticsService] = None
        self._storage_service: Optional[StorageService] = None

    @classmethod
    def get_instance(cls, **kwargs) -> 'AppContainer':
        """
        Obtiene la instancia singleton del contenedor.

        Los argumentos solo se usan en la primera llamada.
        """
        if cls._instance is None:
            return cls(**kwargs)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Elimina la instancia singleton (útil para tests)."""
        if cls._instance is not None:
            cls._instance.reset()
            cls._instance = None


# Función helper para obtener el contenedor global
def get_container(**kwargs) -> AppContainer:
    """
    Obtiene el contenedor de dependencias global.

    Returns:
        Instancia del contenedor
    """
    return AppContainer.get_instance(**kwargs)
