import time
from unittest import mock

import firebase_admin
import pytest
from firebase_admin import credentials
from firebase_admin import firestore as firebase_firestore
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from comanda.config import DatabaseConfig
from comanda.exceptions import (
    BackendError,
    BackendPermissionError,
    BackendQuotaError,
    DuplicateConnectionError,
)
from comanda.models import OrderStatus
from comanda.repositories.firestore_backend import (
    MAX_BATCH_WRITES,
    FirestoreBackend,
    FirestoreConnector,
    translate_error,
)


def _doc(doc_id, data, exists=True):
    doc = mock.MagicMock()
    doc.id = doc_id
    doc.exists = exists
    doc.to_dict.return_value = data
    return doc


def _order_data(table_id, status='PENDING'):
    return {'tableId': table_id, 'status': status, 'timestamp': 1, 'items': [], 'total': 0, 'observation': ''}


@pytest.mark.parametrize('error, expected', [
    (google_exceptions.PermissionDenied('Missing or insufficient permissions.'), BackendPermissionError),
    (google_exceptions.Unauthenticated('no token'), BackendPermissionError),
    (google_exceptions.ResourceExhausted('Quota exceeded.'), BackendQuotaError),
    (google_exceptions.InvalidArgument('Document exceeds the maximum allowed size'), BackendQuotaError),
    (google_exceptions.InvalidArgument('bad field path'), BackendError),
    (google_exceptions.ServiceUnavailable('unavailable'), BackendError),
])
def test_translate_error(error, expected):
    assert type(translate_error(error)) is expected


def test_sdk_errors_are_translated_on_read():
    client = mock.MagicMock()
    client.collection.return_value.order_by.return_value.stream.side_effect = \
        google_exceptions.PermissionDenied('denied')

    with pytest.raises(BackendPermissionError):
        FirestoreBackend(client).list_products()


def test_invalid_documents_are_skipped():
    client = mock.MagicMock()
    client.collection.return_value.order_by.return_value.stream.return_value = [
        _doc('a', _order_data(3)),
        _doc('b', _order_data('mesa')),
    ]

    orders = FirestoreBackend(client).list_orders()

    assert [o.id for o in orders] == ['a']


def test_find_orders_by_table_queries_both_forms_and_dedups():
    client = mock.MagicMock()
    shared = _doc('o1', _order_data(5))
    client.collection.return_value.where.return_value.stream.side_effect = [
        [shared],
        [shared, _doc('o2', _order_data('5'))],
    ]

    orders = FirestoreBackend(client).find_orders_by_table(5)

    assert sorted(o.id for o in orders) == ['o1', 'o2']
    assert client.collection.return_value.where.call_count == 2


def test_mark_orders_paid_chunks_batches():
    client = mock.MagicMock()
    ids = [f'o{i}' for i in range(MAX_BATCH_WRITES + 1)]

    assert FirestoreBackend(client).mark_orders_paid(ids + ['o0']) == len(ids)

    assert client.batch.call_count == 2
    assert client.batch.return_value.commit.call_count == 2
    assert client.batch.return_value.update.call_count == len(ids)


def test_watch_stops_delivering_after_unsubscribe():
    client = mock.MagicMock()
    query = client.collection.return_value.order_by.return_value
    received = []

    sub = FirestoreBackend(client).subscribe_products(received.append)
    on_snapshot = query.on_snapshot.call_args[0][0]

    on_snapshot([_doc('p1', {'name': 'Cerveja', 'stock': 3})], [], None)
    sub()
    on_snapshot([_doc('p1', {'name': 'Cerveja', 'stock': 2})], [], None)

    assert len(received) == 1
    assert received[0][0].stock == 3
    query.on_snapshot.return_value.unsubscribe.assert_called_once()


def _wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not condition():
        assert time.monotonic() < deadline, 'condición no alcanzada'
        time.sleep(0.01)


def test_dead_watch_is_reported_and_registered_again():
    client = mock.MagicMock()
    query = client.collection.return_value.order_by.return_value
    dead = mock.MagicMock(is_active=False)
    live = mock.MagicMock(is_active=True)
    query.on_snapshot.side_effect = [dead, live]
    # La lectura de la misma consulta revela por qué se cortó el stream
    query.limit.return_value.stream.side_effect = \
        google_exceptions.PermissionDenied('Missing or insufficient permissions.')
    errors = []

    sub = FirestoreBackend(client, watch_interval=0.01).subscribe_orders(lambda orders: None, errors.append)
    _wait_for(lambda: query.on_snapshot.call_count == 2)
    sub()

    assert [type(e) for e in errors] == [BackendPermissionError]
    live.unsubscribe.assert_called_once()
    dead.unsubscribe.assert_not_called()


def test_failed_registration_is_retried():
    client = mock.MagicMock()
    query = client.collection.return_value
    dead = mock.MagicMock(is_active=False)
    live = mock.MagicMock(is_active=True)
    query.on_snapshot.side_effect = [dead, google_exceptions.ServiceUnavailable('unavailable'), live]
    query.limit.return_value.stream.return_value = []
    errors = []

    sub = FirestoreBackend(client, watch_interval=0.01).subscribe_tables(lambda tables: None, errors.append)
    _wait_for(lambda: query.on_snapshot.call_count == 3)
    sub()

    # Corte, registro fallido, corte (sin watch) y registro correcto
    assert len(errors) == 3
    assert all(type(e) is BackendError for e in errors)
    live.unsubscribe.assert_called_once()


# ==============================================================================
# STOCK Y ESTADOS
# ==============================================================================

def test_stock_deltas_increment_each_product_independently():
    client = mock.MagicMock()
    refs = {pid: mock.MagicMock() for pid in ('p1', 'p2', 'p3')}
    client.collection.return_value.document.side_effect = refs.__getitem__
    refs['p2'].update.side_effect = google_exceptions.PermissionDenied('denied')

    failures = FirestoreBackend(client).apply_stock_deltas({'p1': -2, 'p2': -1, 'p3': -5})

    assert list(failures) == ['p2']
    assert isinstance(failures['p2'], BackendPermissionError)
    refs['p1'].update.assert_called_once_with({'stock': firestore.Increment(-2)})
    refs['p3'].update.assert_called_once_with({'stock': firestore.Increment(-5)})


@pytest.fixture
def plain_transactions():
    """El cuerpo transaccional corre una vez, sin el reintento del SDK."""
    with mock.patch.object(firestore, 'transactional', lambda fn: fn):
        yield


def _client_with_order(order):
    client = mock.MagicMock()
    client.collection.return_value.document.return_value.get.return_value = order
    return client


def test_cancel_transaction_skips_missing_products(plain_transactions):
    client = _client_with_order(_doc('o1', _order_data(1)))
    client.get_all.return_value = [_doc('p1', {}), _doc('p2', None, exists=False)]

    previous = FirestoreBackend(client).set_order_status('o1', OrderStatus.CANCELED, {'p1': 2, 'p2': 1})

    assert previous == OrderStatus.PENDING
    transaction = client.transaction.return_value
    # Estado del pedido + solo el producto que existe
    assert transaction.update.call_count == 2
    assert client.get_all.call_args.kwargs['transaction'] is transaction


def test_cancel_transaction_sees_previous_cancel(plain_transactions):
    client = _client_with_order(_doc('o1', _order_data(1, status='CANCELED')))

    previous = FirestoreBackend(client).set_order_status('o1', OrderStatus.CANCELED, {'p1': 2})

    assert previous == OrderStatus.CANCELED
    client.get_all.assert_not_called()
    client.transaction.return_value.update.assert_called_once()


def test_status_of_missing_order_is_none(plain_transactions):
    client = _client_with_order(_doc('o1', None, exists=False))

    assert FirestoreBackend(client).set_order_status('o1', OrderStatus.READY) is None
    client.transaction.return_value.update.assert_not_called()


# ==============================================================================
# CONECTOR
# ==============================================================================

CONFIG = DatabaseConfig(api_key='AIza-test', project_id='barraca-test')


@pytest.fixture
def sdk(monkeypatch):
    """Reemplaza las funciones de firebase_admin que usa el conector."""
    fakes = mock.MagicMock()
    monkeypatch.setattr(firebase_admin, 'initialize_app', fakes.initialize_app)
    monkeypatch.setattr(firebase_admin, 'get_app', fakes.get_app)
    monkeypatch.setattr(firebase_admin, 'delete_app', fakes.delete_app)
    monkeypatch.setattr(firebase_firestore, 'client', fakes.client)
    monkeypatch.setattr(credentials, 'ApplicationDefault', fakes.ApplicationDefault)
    monkeypatch.setattr(credentials, 'Certificate', fakes.Certificate)
    return fakes


def test_connect_builds_backend_on_new_app(sdk):
    backend = FirestoreConnector().connect(CONFIG)

    assert backend.client is sdk.client.return_value
    cred, options = sdk.initialize_app.call_args[0]
    assert cred is sdk.ApplicationDefault.return_value
    assert options == {'projectId': 'barraca-test'}


def test_connect_uses_service_account_when_given(sdk):
    config = DatabaseConfig(api_key='k', project_id='p', storage_bucket='b', credentials_path='/tmp/sa.json')

    FirestoreConnector().connect(config)

    sdk.Certificate.assert_called_once_with('/tmp/sa.json')
    assert sdk.initialize_app.call_args[0][1] == {'projectId': 'p', 'storageBucket': 'b'}


def test_connect_maps_existing_app_to_duplicate(sdk):
    sdk.initialize_app.side_effect = ValueError(
        'The default Firebase app already exists. This means you called initialize_app() more than once')

    with pytest.raises(DuplicateConnectionError):
        FirestoreConnector().connect(CONFIG)


def test_connect_propagates_other_value_errors(sdk):
    sdk.initialize_app.side_effect = ValueError('Illegal Firebase credential provided.')

    with pytest.raises(ValueError) as info:
        FirestoreConnector().connect(CONFIG)

    assert not isinstance(info.value, DuplicateConnectionError)


def test_connect_releases_app_when_client_fails(sdk):
    sdk.client.side_effect = RuntimeError('project id required')

    with pytest.raises(RuntimeError):
        FirestoreConnector().connect(CONFIG)

    sdk.delete_app.assert_called_once_with(sdk.initialize_app.return_value)


def test_existing_and_disconnect_follow_default_app(sdk):
    connector = FirestoreConnector()
    sdk.get_app.side_effect = ValueError('The default Firebase app does not exist.')

    assert connector.existing() is None
    connector.disconnect()
    sdk.delete_app.assert_not_called()

    sdk.get_app.side_effect = None
    backend = connector.existing()
    assert backend.client is sdk.client.return_value

    connector.disconnect()
    sdk.delete_app.assert_called_once_with(sdk.get_app.return_value)
