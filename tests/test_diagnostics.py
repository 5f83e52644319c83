import os

from conftest import FlakyMedium
from comanda.exceptions import BackendError, BackendPermissionError
from comanda.repositories import LocalBackend, SafeStorage
from comanda.services import AlertService, ConnectionService, DiagnosticsService


def test_local_diagnostics_ok_and_cleans_up(container, data_dir):
    report = container.storage_service.run_diagnostics()

    assert report.ok is True
    assert report.mode == 'local'
    leftovers = [f for f in os.listdir(data_dir) if f.startswith('test_diag_')] if os.path.isdir(data_dir) else []
    assert leftovers == []
    alerts = container.alert_service.drain()
    assert [a.kind for a in alerts] == [AlertService.TYPE_DIAGNOSTICO]


def test_local_diagnostics_with_blocked_disk_uses_memory():
    medium = FlakyMedium()
    medium.fail_reads = True
    medium.fail_writes = True
    connection = ConnectionService(SafeStorage(medium), LocalBackend(SafeStorage(medium)))

    report = DiagnosticsService(connection).run_diagnostics()

    # La sombra en memoria mantiene la app funcionando
    assert report.ok is True


def test_cloud_diagnostics_ok(cloud_container):
    report = cloud_container.storage_service.run_diagnostics()
    assert report.ok is True
    assert report.mode == 'cloud'
    assert 'OK' in report.message


def test_cloud_diagnostics_permission_denied(cloud_container, fake_cloud):
    fake_cloud.errors['probe'] = BackendPermissionError('Missing or insufficient permissions.')

    report = cloud_container.storage_service.run_diagnostics()

    assert report.ok is False
    assert 'Regras' in report.message


def test_cloud_diagnostics_generic_error(cloud_container, fake_cloud):
    fake_cloud.errors['probe'] = BackendError('deadline exceeded')

    report = cloud_container.storage_service.run_diagnostics()

    assert report.ok is False
    assert 'deadline exceeded' in report.message
    assert cloud_container.alert_service.pending[-1].message == report.message


def test_undrained_alerts_are_bounded():
    alerts = AlertService(max_pending=3)

    for i in range(5):
        alerts.notify(AlertService.TYPE_DIAGNOSTICO, f'rodada {i}')

    assert [a.message for a in alerts.pending] == ['rodada 2', 'rodada 3', 'rodada 4']
    assert len(alerts.drain()) == 3
    assert alerts.pending == []
