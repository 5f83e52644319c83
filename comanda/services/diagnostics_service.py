# ==============================================================================
# SERVICIO DE DIAGNÓSTICO
# ==============================================================================
# Prueba rápida del backend activo:
#   - Nube: leer como máximo un producto
#   - Local: escribir, leer y borrar una clave descartable
# ==============================================================================

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict

from comanda.exceptions import BackendPermissionError, ComandaError
from comanda.services.alert_service import AlertService
from comanda.services.connection_service import ConnectionService


logger = logging.getLogger(__name__)


@dataclass
class DiagnosticReport:
    ok: bool
    mode: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DiagnosticsService:
    """Chequeo de salud del backend activo."""

    MSG_CLOUD_OK = "Conexão com Banco de Dados (Firebase) está OK!"
    MSG_CLOUD_DENIED = ("ERRO CRÍTICO: Permissão negada. "
                        "Verifique as 'Regras' do Firestore no console do Google.")
    MSG_LOCAL_OK = "Armazenamento Local está funcionando."
    MSG_LOCAL_BLOCKED = "Alerta: Armazenamento Local parece estar bloqueado."

    def __init__(self, connection: ConnectionService, alert_service: AlertService = None):
        self.connection = connection
        self.alert_service = alert_service

    def run_diagnostics(self) -> DiagnosticReport:
        backend = self.connection.backend
        logger.info("--- Diagnóstico iniciado (%s) ---", backend.mode)
        if backend.mode == 'cloud':
            report = self._check_cloud(backend)
        else:
            report = self._check_local(backend)

        if report.ok:
            logger.info("[DIAGNÓSTICO] Backend %s correcto", backend.mode)
        else:
            logger.error("[DIAGNÓSTICO] Backend %s con fallas", backend.mode)
        if self.alert_service:
            self.alert_service.notify(AlertService.TYPE_DIAGNOSTICO, report.message)
        return report

    def _check_cloud(self, backend) -> DiagnosticReport:
        try:
            backend.probe()
        except BackendPermissionError:
            return DiagnosticReport(False, backend.mode, self.MSG_CLOUD_DENIED)
        except ComandaError as e:
            return DiagnosticReport(False, backend.mode, f"Erro ao conectar com Firebase: {e}")
        return DiagnosticReport(True, backend.mode, self.MSG_CLOUD_OK)

    def _check_local(self, backend) -> DiagnosticReport:
        try:
            ok = backend.probe()
        except (ComandaError, OSError) as e:
            return DiagnosticReport(False, backend.mode, f"Erro no Armazenamento Local: {e}")
        message = self.MSG_LOCAL_OK if ok else self.MSG_LOCAL_BLOCKED
        return DiagnosticReport(ok, backend.mode, message)
