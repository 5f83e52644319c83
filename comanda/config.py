# ==============================================================================
# CONFIGURACIÓN
# ==============================================================================
# Único lugar donde se leen variables de entorno.
#
# FIREBASE:
#   La configuración "fija" (equivalente a las credenciales compiladas en la
#   app) tiene PRIORIDAD ABSOLUTA sobre cualquier configuración guardada.
#   Mientras la API key siga con el marcador COLAR_ se considera inválida y
#   se usa la configuración guardada en el almacenamiento local (si existe).
#
# Variables:
#   COMANDA_DATA_DIR            → Carpeta de los archivos JSON locales
#   COMANDA_FIREBASE_API_KEY    → apiKey (y el resto de COMANDA_FIREBASE_*)
#   COMANDA_GOOGLE_CREDENTIALS  → Ruta al JSON de la cuenta de servicio
#   COMANDA_POLL_INTERVAL       → Segundos entre sondeos en modo local
#   COMANDA_STORAGE_QUOTA       → Cuota en bytes por clave (0 = sin límite)
#   COMANDA_PROFILING           → '0' desactiva el profiling
#   COMANDA_LOGS_DIR            → Carpeta de los logs de rendimiento
# ==============================================================================

import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


BASE = os.path.dirname(os.path.abspath(__file__))

DATA_DIR = os.environ.get('COMANDA_DATA_DIR') or os.path.join(BASE, 'data')

# Marcador que deja la plantilla de credenciales sin completar
PLACEHOLDER_MARKER = 'COLAR_'

POLL_INTERVAL_SECONDS = float(os.environ.get('COMANDA_POLL_INTERVAL', '2'))

STORAGE_QUOTA_BYTES = int(os.environ.get('COMANDA_STORAGE_QUOTA', '0'))

PROFILING_ENABLED = os.environ.get('COMANDA_PROFILING', '1') != '0'

LOGS_DIR = os.environ.get('COMANDA_LOGS_DIR') or os.path.join(BASE, 'logs')

# Claves fijas del almacenamiento local
STORAGE_KEYS = {
    'PRODUCTS': 'beach_app_products',
    'ORDERS': 'beach_app_orders',
    'TABLES': 'beach_app_tables',
    'DB_CONFIG': 'beach_app_db_config',
}


@dataclass
class DatabaseConfig:
    """
    Credenciales de conexión a Firebase.

    Attributes:
        api_key: API key del proyecto (obligatoria)
        auth_domain: Dominio de autenticación
        project_id: ID del proyecto de Firestore
        storage_bucket: Bucket de Storage
        messaging_sender_id: ID de remitente
        app_id: ID de la app
        credentials_path: Ruta opcional a una cuenta de servicio
    """
    api_key: str = ''
    auth_domain: str = ''
    project_id: str = ''
    storage_bucket: str = ''
    messaging_sender_id: str = ''
    app_id: str = ''
    credentials_path: Optional[str] = None

    def is_valid(self) -> bool:
        """Válida solo si hay API key y no es el marcador de la plantilla."""
        return bool(self.api_key) and PLACEHOLDER_MARKER not in self.api_key

    def to_dict(self) -> Dict[str, Any]:
        """Convierte al formato de configuración web de Firebase."""
        d = {
            'apiKey': self.api_key,
            'authDomain': self.auth_domain,
            'projectId': self.project_id,
            'storageBucket': self.storage_bucket,
            'messagingSenderId': self.messaging_sender_id,
            'appId': self.app_id,
        }
        if self.credentials_path:
            d['credentialsPath'] = self.credentials_path
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DatabaseConfig':
        """Acepta tanto claves camelCase (Firebase) como snake_case."""
        if not isinstance(data, dict):
            raise ValueError('La configuración debe ser un objeto')
        known = asdict(cls())
        values = {}
        for key in known:
            camel = _to_camel(key)
            if camel in data:
                values[key] = data[camel]
            elif key in data:
                values[key] = data[key]
        return cls(**values)


def _to_camel(name: str) -> str:
    head, *tail = name.split('_')
    return head + ''.join(part.capitalize() for part in tail)


def get_builtin_config() -> DatabaseConfig:
    """
    Configuración fija del despliegue.

    Returns:
        DatabaseConfig leída del entorno (con marcadores si no se definió)
    """
    return DatabaseConfig(
        api_key=os.environ.get('COMANDA_FIREBASE_API_KEY', 'COLAR_SUA_API_KEY_AQUI'),
        auth_domain=os.environ.get('COMANDA_FIREBASE_AUTH_DOMAIN', 'COLAR_SEU_PROJETO.firebaseapp.com'),
        project_id=os.environ.get('COMANDA_FIREBASE_PROJECT_ID', 'COLAR_SEU_PROJETO'),
        storage_bucket=os.environ.get('COMANDA_FIREBASE_STORAGE_BUCKET', 'COLAR_SEU_PROJETO.appspot.com'),
        messaging_sender_id=os.environ.get('COMANDA_FIREBASE_SENDER_ID', ''),
        app_id=os.environ.get('COMANDA_FIREBASE_APP_ID', ''),
        credentials_path=os.environ.get('COMANDA_GOOGLE_CREDENTIALS') or None,
    )
