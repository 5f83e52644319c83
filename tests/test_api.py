from comanda.exceptions import BackendPermissionError, BackendQuotaError
from comanda.performance_logger import reset_stats


def _create_beer(client, stock=10):
    r = client.post('/api/products', json={
        'id': '', 'name': 'Cerveja Gelada 600ml', 'description': 'Gelada',
        'price': 15, 'category': 'Bebidas', 'stock': stock, 'imageUrl': '',
    })
    assert r.status_code == 200
    return r.get_json()['product']


def test_status_reports_local_mode(client):
    r = client.get('/api/status')
    assert r.status_code == 200
    body = r.get_json()
    assert body['ok'] is True
    assert body['mode'] == 'local'
    assert body['cloud'] is False


def test_status_counts_profiled_operations(client):
    reset_stats()
    beer = _create_beer(client)
    client.post('/api/orders', json={'tableId': 2, 'items': [{'productId': beer['id'], 'quantity': 1}]})

    operations = client.get('/api/status').get_json()['operations']

    assert operations['Crear pedido']['calls'] == 1
    assert operations['Crear pedido']['max_time'] >= 0


def test_product_crud(client):
    beer = _create_beer(client)
    assert beer['id'].startswith('local_')
    assert beer['category'] == 'Bebidas'

    # Mismo nombre sin ID → reposición
    again = _create_beer(client, stock=5)
    assert again['id'] == beer['id']
    assert again['stock'] == 15

    products = client.get('/api/products').get_json()['products']
    assert len(products) == 1

    assert client.delete(f"/api/products/{beer['id']}").status_code == 200
    assert client.get('/api/products').get_json()['products'] == []


def test_order_flow(client):
    beer = _create_beer(client)

    r = client.post('/api/orders', json={
        'tableId': 5, 'items': [{'productId': beer['id'], 'quantity': 2}], 'observation': 'copo',
    })
    assert r.status_code == 201
    order = r.get_json()['order']
    assert order['total'] == 30
    assert order['status'] == 'PENDING'

    r = client.patch(f"/api/orders/{order['id']}/status", json={'status': 'CANCELED'})
    assert r.status_code == 200

    orders = client.get('/api/orders').get_json()['orders']
    assert orders[0]['status'] == 'CANCELED'
    stock = client.get('/api/products').get_json()['products'][0]['stock']
    assert stock == 10


def test_order_validation_errors(client):
    assert client.post('/api/orders', data='nada', content_type='text/plain').status_code == 400
    assert client.post('/api/orders', json={'tableId': 1, 'items': []}).status_code == 400

    r = client.post('/api/orders', json={'tableId': 1, 'items': [{'productId': 'ghost', 'quantity': 1}]})
    assert r.status_code == 400
    assert r.get_json()['ok'] is False


def test_unknown_order_status_is_404(client):
    r = client.patch('/api/orders/nope/status', json={'status': 'READY'})
    assert r.status_code == 404


def test_invalid_status_is_400(client):
    r = client.patch('/api/orders/nope/status', json={'status': 'EATEN'})
    assert r.status_code == 400


def test_table_close_and_finalize(client):
    beer = _create_beer(client)
    client.post('/api/orders', json={'tableId': 5, 'items': [{'productId': beer['id'], 'quantity': 1}]})

    r = client.post('/api/tables/5/close-request', json={'paymentMethod': 'card'})
    assert r.status_code == 200
    tables = client.get('/api/tables').get_json()['tables']
    assert tables == {'5': {'status': 'CLOSING_REQUESTED', 'paymentMethod': 'card'}}

    r = client.post('/api/tables/5/finalize')
    assert r.get_json()['archived'] == 1
    assert client.get('/api/tables').get_json()['tables'] == {}
    assert client.get('/api/orders').get_json()['orders'][0]['status'] == 'PAID'


def test_config_lifecycle(client, connector):
    assert client.get('/api/config').get_json()['config'] is None

    r = client.put('/api/config', json={'apiKey': 'AIza-x', 'projectId': 'barraca'})
    assert r.get_json()['cloud'] is True
    assert client.get('/api/status').get_json()['mode'] == 'cloud'
    assert client.get('/api/config').get_json()['config']['projectId'] == 'barraca'

    r = client.delete('/api/config')
    assert r.get_json() == {'ok': True, 'reload': True}
    assert client.get('/api/status').get_json()['mode'] == 'local'
    assert connector.disconnects == 1


def test_config_requires_api_key(client):
    assert client.put('/api/config', json={'projectId': 'x'}).status_code == 400


def test_diagnostics_endpoint(client):
    r = client.get('/api/diagnostics')
    assert r.status_code == 200
    assert r.get_json()['report']['mode'] == 'local'


def test_alerts_are_drained(cloud_client, fake_cloud):
    fake_cloud.errors['create_product'] = BackendPermissionError('denied')

    r = _post_product(cloud_client)
    assert r.status_code == 403

    alerts = cloud_client.get('/api/alerts').get_json()['alerts']
    assert [a['kind'] for a in alerts] == ['PERMISO']
    assert cloud_client.get('/api/alerts').get_json()['alerts'] == []


def test_quota_error_is_413(cloud_client, fake_cloud):
    fake_cloud.errors['create_product'] = BackendQuotaError('too big')
    assert _post_product(cloud_client).status_code == 413


def test_backend_error_is_502(cloud_client, fake_cloud):
    from comanda.exceptions import BackendError
    fake_cloud.errors['create_product'] = BackendError('unavailable')
    r = _post_product(cloud_client)
    assert r.status_code == 502
    assert r.get_json() == {'ok': False, 'error': 'unavailable'}


def _post_product(client):
    return client.post('/api/products', json={'name': 'Isca de Peixe', 'price': 45, 'stock': 1})
