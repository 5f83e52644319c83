# ==============================================================================
# ALMACENAMIENTO LOCAL ROBUSTO
# ==============================================================================
# Clave-valor con sombra en memoria. El medio persistente puede fallar o
# quedar bloqueado en cualquier momento (permisos, disco lleno, cuota):
# en ese caso la app sigue funcionando con la copia en memoria.
#
# REGLA: ninguna excepción del medio sale de este módulo. El resultado de
# cada escritura (StorageResult) indica si quedó persistida o degradada.
# ==============================================================================

import errno
import os
import re
import threading
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set

from comanda.repositories.interfaces import IStorageMedium


logger = logging.getLogger(__name__)


class QuotaExceededError(OSError):
    """El valor supera la cuota configurada del medio."""
    pass


# ==============================================================================
# RESULTADO DE ESCRITURA
# ==============================================================================

@dataclass(frozen=True)
class StorageResult:
    """
    Resultado de una escritura en SafeStorage.

    Attributes:
        status: 'ok' (persistido) o 'degraded' (solo en memoria)
        reason: Motivo de la degradación ('io_error' o 'quota_exceeded')
    """
    status: str = 'ok'
    reason: Optional[str] = None

    STATUS_OK = 'ok'
    STATUS_DEGRADED = 'degraded'
    REASON_IO = 'io_error'
    REASON_QUOTA = 'quota_exceeded'

    @property
    def ok(self) -> bool:
        return self.status == self.STATUS_OK

    @property
    def degraded(self) -> bool:
        return self.status == self.STATUS_DEGRADED

    @classmethod
    def success(cls) -> 'StorageResult':
        return cls(cls.STATUS_OK)

    @classmethod
    def degraded_by(cls, reason: str) -> 'StorageResult':
        return cls(cls.STATUS_DEGRADED, reason)


# ==============================================================================
# MEDIO: ARCHIVOS JSON
# ==============================================================================

class JsonFileMedium:
    """
    Medio persistente en disco: un archivo por clave.

    Formato: <base_path>/<clave>.json con el valor serializado tal cual.
    Escribe a un archivo temporal y luego reemplaza (atómico en la mayoría
    de sistemas).
    """

    _file_lock = threading.RLock()
    _SAFE_KEY = re.compile(r'[^A-Za-z0-9_.-]')

    def __init__(self, base_path: str, quota_bytes: int = 0):
        """
        Args:
            base_path: Carpeta de datos
            quota_bytes: Tamaño máximo por valor (0 = sin límite)
        """
        self.base_path = base_path
        self.quota_bytes = quota_bytes

    def _path(self, key: str) -> str:
        return os.path.join(self.base_path, self._SAFE_KEY.sub('_', key) + '.json')

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        with self._file_lock:
            if not os.path.exists(path):
                return None
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes and len(value.encode('utf-8')) > self.quota_bytes:
            raise QuotaExceededError(errno.ENOSPC, f'Cuota de {self.quota_bytes} bytes superada', key)
        path = self._path(key)
        with self._file_lock:
            os.makedirs(self.base_path, exist_ok=True)
            temp_path = path + '.tmp'
            try:
                with open(temp_path, 'w', encoding='utf-8') as f:
                    f.write(value)
                os.replace(temp_path, path)
            except OSError:
                # Limpiar archivo temporal si algo falla
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                raise

    def remove(self, key: str) -> None:
        path = self._path(key)
        with self._file_lock:
            if os.path.exists(path):
                os.remove(path)


# ==============================================================================
# SAFE STORAGE
# ==============================================================================

class SafeStorage:
    """
    Clave-valor que nunca falla.

    - set: memoria SIEMPRE, después el medio (best effort)
    - get: prefiere el medio; si no tiene el valor, usa la memoria
    - Las claves cuya última escritura no llegó al medio se leen de memoria,
      así una copia vieja en disco no oculta el valor más reciente
    """

    def __init__(self, medium: IStorageMedium):
        self._medium = medium
        self._memory: Dict[str, str] = {}
        self._unpersisted: Set[str] = set()
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            if key in self._unpersisted:
                return self._memory.get(key)
            try:
                item = self._medium.get(key)
            except (OSError, ValueError) as e:
                # Acceso bloqueado, usa memoria volátil
                logger.debug("[LOCAL] Lectura de '%s' falló (%s), usando memoria", key, e)
                return self._memory.get(key)
            if item is None and key in self._memory:
                return self._memory[key]
            return item

    def set(self, key: str, value: str) -> StorageResult:
        with self._lock:
            self._memory[key] = value
            try:
                self._medium.set(key, value)
            except QuotaExceededError as e:
                return self._degrade(key, StorageResult.REASON_QUOTA, e)
            except OSError as e:
                reason = (StorageResult.REASON_QUOTA if e.errno in (errno.ENOSPC, errno.EDQUOT)
                          else StorageResult.REASON_IO)
                return self._degrade(key, reason, e)
            self._unpersisted.discard(key)
            return StorageResult.success()

    def remove(self, key: str) -> StorageResult:
        with self._lock:
            self._memory.pop(key, None)
            try:
                self._medium.remove(key)
            except OSError as e:
                return self._degrade(key, StorageResult.REASON_IO, e)
            self._unpersisted.discard(key)
            return StorageResult.success()

    def _degrade(self, key: str, reason: str, error: Exception) -> StorageResult:
        self._unpersisted.add(key)
        logger.warning("[LOCAL] '%s' quedó solo en memoria (%s): %s", key, reason, error)
        return StorageResult.degraded_by(reason)
