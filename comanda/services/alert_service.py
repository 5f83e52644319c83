# ==============================================================================
# SERVICIO DE ALERTAS
# ==============================================================================
# Mensajes para el usuario final (lo que en el navegador era alert()).
# Se acumulan hasta que la UI los retira con drain() y, opcionalmente, se
# reenvían a un handler (notificación push, websocket, etc.).
# ==============================================================================

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, asdict
from typing import Any, Callable, Deque, Dict, List, Optional

from comanda.exceptions import BackendPermissionError, BackendQuotaError, StorageFullError


logger = logging.getLogger(__name__)


@dataclass
class Alert:
    """
    Alerta para el usuario.

    Attributes:
        kind: Categoría (PERMISO, CUOTA, ...)
        message: Texto legible
        ts: Milisegundos desde epoch
    """
    kind: str
    message: str
    ts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AlertService:
    """Cola de alertas humanizadas."""

    # Tipos de alerta
    TYPE_PERMISO = 'PERMISO'
    TYPE_CUOTA = 'CUOTA'
    TYPE_ALMACENAMIENTO = 'ALMACENAMIENTO'
    TYPE_CONEXION = 'CONEXION'
    TYPE_DIAGNOSTICO = 'DIAGNOSTICO'
    TYPE_GENERAL = 'GENERAL'

    # Mensajes fijos
    MSG_PERMISSION = ("ERRO DE PERMISSÃO: o Firestore recusou o acesso. "
                      "Peça ao administrador para liberar as regras do banco de dados.")
    MSG_QUOTA = ("ERRO: a imagem é muito grande ou a cota foi excedida. "
                 "Use uma URL de imagem em vez de enviar o arquivo.")
    MSG_STORAGE_FULL = ("ERRO: armazenamento local cheio. "
                        "Use URLs de imagem ou remova produtos antigos.")

    # Alertas sin retirar que se conservan (las más viejas se descartan)
    MAX_PENDING = 100

    def __init__(self, handler: Optional[Callable[[Alert], None]] = None, max_pending: int = MAX_PENDING):
        """
        Args:
            handler: Recibe cada alerta al publicarse (opcional)
            max_pending: Tope de la cola de alertas sin retirar
        """
        self.handler = handler
        self._pending: Deque[Alert] = deque(maxlen=max_pending)
        self._lock = threading.Lock()

    # =========================================================================
    # PUBLICACIÓN
    # =========================================================================

    def notify(self, kind: str, message: str) -> Alert:
        alert = Alert(kind=kind, message=message, ts=int(time.time() * 1000))
        with self._lock:
            self._pending.append(alert)
        logger.info("[ALERTA] %s: %s", kind, message)
        if self.handler is not None:
            try:
                self.handler(alert)
            except Exception:
                # Un handler roto no puede tumbar la operación que alertó
                logger.exception("[ALERTA] Error en el handler de alertas")
        return alert

    def permission_denied(self) -> Alert:
        return self.notify(self.TYPE_PERMISO, self.MSG_PERMISSION)

    def quota_exceeded(self) -> Alert:
        return self.notify(self.TYPE_CUOTA, self.MSG_QUOTA)

    def storage_full(self) -> Alert:
        return self.notify(self.TYPE_ALMACENAMIENTO, self.MSG_STORAGE_FULL)

    def generic_error(self, action: str, error: Exception) -> Alert:
        return self.notify(self.TYPE_GENERAL, f"Erro ao {action}: {error}")

    def report_error(self, action: str, error: Exception) -> Alert:
        """
        Alerta adecuada para un error del backend.

        Args:
            action: Qué se intentaba hacer ("salvar", "criar pedido"...)
            error: Error ya traducido a comanda.exceptions
        """
        if isinstance(error, BackendPermissionError):
            return self.permission_denied()
        if isinstance(error, BackendQuotaError):
            return self.quota_exceeded()
        if isinstance(error, StorageFullError):
            return self.storage_full()
        return self.generic_error(action, error)

    # =========================================================================
    # CONSUMO
    # =========================================================================

    @property
    def pending(self) -> List[Alert]:
        """Copia de las alertas sin retirar."""
        with self._lock:
            return list(self._pending)

    def drain(self) -> List[Alert]:
        """Retorna y limpia las alertas pendientes."""
        with self._lock:
            alerts = list(self._pending)
            self._pending.clear()
        return alerts
