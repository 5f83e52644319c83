import errno
import os
import sys
import tempfile

import pytest

# Logs de rendimiento fuera del paquete durante los tests
os.environ.setdefault('COMANDA_LOGS_DIR', tempfile.mkdtemp(prefix='comanda-logs-'))

# ensure project root is on sys.path when running from tests/ folder
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from comanda.api import create_app
from comanda.app_container import AppContainer
from comanda.config import DatabaseConfig
from comanda.exceptions import BackendError, DuplicateConnectionError
from comanda.models import Order, OrderStatus, Product, TableSession, normalize_table_id
from comanda.repositories import JsonFileMedium, LocalBackend, SafeStorage, Subscription


POLL = 0.05

VALID_CONFIG = DatabaseConfig(api_key='AIza-test', project_id='barraca-test')
PLACEHOLDER_CONFIG = DatabaseConfig(api_key='COLAR_SUA_API_KEY_AQUI', project_id='COLAR_SEU_PROJETO')


# ==============================================================================
# MEDIOS DE ALMACENAMIENTO DE PRUEBA
# ==============================================================================

class FlakyMedium:
    """Medio en memoria que puede empezar a fallar en cualquier momento."""

    def __init__(self):
        self.data = {}
        self.fail_reads = False
        self.fail_writes = False
        self.fail_keys = set()      # claves cuya escritura falla siempre
        self.write_errno = errno.EACCES

    def get(self, key):
        if self.fail_reads:
            raise OSError(errno.EACCES, 'lectura bloqueada')
        return self.data.get(key)

    def set(self, key, value):
        if self.fail_writes or key in self.fail_keys:
            raise OSError(self.write_errno, 'escritura bloqueada')
        self.data[key] = value

    def remove(self, key):
        if self.fail_writes:
            raise OSError(self.write_errno, 'escritura bloqueada')
        self.data.pop(key, None)


# ==============================================================================
# NUBE FALSA
# ==============================================================================

class FakeCloudBackend:
    """
    Backend 'cloud' en memoria con la misma semántica que Firestore:
    IDs generados, Increment sin piso, get_all que salta faltantes.
    """

    mode = 'cloud'

    def __init__(self):
        self.products = {}
        self.orders = {}
        self.tables = {}
        self.errors = {}            # nombre de método → excepción
        self.stock_errors = {}      # pid → excepción en apply_stock_deltas
        self.batches = []
        self._listeners = {'products': [], 'orders': [], 'tables': []}
        self._counter = 0

    def _next_id(self, prefix):
        self._counter += 1
        return f'{prefix}{self._counter:04d}'

    def _check(self, name):
        if name in self.errors:
            raise self.errors[name]

    # --- Suscripciones ---

    def _subscribe(self, kind, snapshot, callback, on_error):
        entry = (snapshot, callback, on_error)
        self._listeners[kind].append(entry)
        callback(snapshot())

        def cancel():
            self._listeners[kind].remove(entry)
        return Subscription(cancel, kind)

    def subscribe_products(self, callback, on_error=None):
        return self._subscribe('products', self.list_products, callback, on_error)

    def subscribe_orders(self, callback, on_error=None):
        return self._subscribe('orders', self.list_orders, callback, on_error)

    def subscribe_tables(self, callback, on_error=None):
        return self._subscribe('tables', self.list_tables, callback, on_error)

    def emit(self, kind):
        for snapshot, callback, _ in list(self._listeners[kind]):
            callback(snapshot())

    def emit_error(self, kind, error):
        for _, _, on_error in list(self._listeners[kind]):
            if on_error is not None:
                on_error(error)

    # --- Productos ---

    def add_product(self, product):
        data = product.to_dict(include_id=False)
        pid = product.id or self._next_id('prod')
        self.products[pid] = data
        return pid

    def list_products(self):
        self._check('list_products')
        items = [Product.from_dict(d, pid) for pid, d in self.products.items()]
        return sorted(items, key=lambda p: p.name)

    def find_product_by_name(self, name):
        self._check('find_product_by_name')
        for product in self.list_products():
            if product.name == name:
                return product
        return None

    def create_product(self, product):
        self._check('create_product')
        pid = self._next_id('prod')
        self.products[pid] = product.to_dict(include_id=False)
        return Product.from_dict(self.products[pid], pid)

    def update_product(self, pid, fields):
        self._check('update_product')
        if pid not in self.products:
            raise BackendError(f'No document to update: products/{pid}')
        self.products[pid].update({k: v for k, v in fields.items() if k != 'id'})
        return True

    def delete_product(self, pid):
        self._check('delete_product')
        self.products.pop(pid, None)

    def apply_stock_deltas(self, deltas):
        failures = {}
        for pid, delta in deltas.items():
            if pid in self.stock_errors:
                failures[pid] = self.stock_errors[pid]
            elif pid not in self.products:
                failures[pid] = BackendError(f'No document to update: products/{pid}')
            else:
                self.products[pid]['stock'] = self.products[pid].get('stock', 0) + delta
        return failures

    # --- Pedidos ---

    def add_raw_order(self, data, oid=None):
        oid = oid or self._next_id('order')
        self.orders[oid] = dict(data)
        return oid

    def list_orders(self):
        self._check('list_orders')
        items = [Order.from_dict(d, oid) for oid, d in self.orders.items()]
        return sorted(items, key=lambda o: o.timestamp, reverse=True)

    def get_order(self, order_id):
        self._check('get_order')
        data = self.orders.get(order_id)
        return Order.from_dict(data, order_id) if data is not None else None

    def create_order(self, order):
        self._check('create_order')
        oid = self._next_id('order')
        self.orders[oid] = order.to_dict(include_id=False)
        return Order.from_dict(self.orders[oid], oid)

    def set_order_status(self, order_id, status, restock=None):
        self._check('set_order_status')
        if order_id not in self.orders:
            return None
        previous = OrderStatus(self.orders[order_id].get('status', 'PENDING'))
        self.orders[order_id]['status'] = status.value
        if status == OrderStatus.CANCELED and previous != OrderStatus.CANCELED:
            for pid, delta in (restock or {}).items():
                if pid in self.products:
                    self.products[pid]['stock'] = self.products[pid].get('stock', 0) + delta
        self.batches.append(('status', order_id))
        return previous

    def find_orders_by_table(self, table_id):
        self._check('find_orders_by_table')
        number = normalize_table_id(table_id)
        return [Order.from_dict(d, oid) for oid, d in self.orders.items()
                if d.get('tableId') in (number, str(number))]

    def mark_orders_paid(self, order_ids):
        self._check('mark_orders_paid')
        ids = list(dict.fromkeys(order_ids))
        for oid in ids:
            self.orders[oid]['status'] = OrderStatus.PAID.value
        self.batches.append(('paid', tuple(ids)))
        return len(ids)

    # --- Mesas ---

    def list_tables(self):
        self._check('list_tables')
        return {k: TableSession.from_dict(v) for k, v in self.tables.items()}

    def merge_table(self, table_id, fields):
        self._check('merge_table')
        key = str(normalize_table_id(table_id))
        self.tables[key] = {**self.tables.get(key, {}), **fields}

    def delete_table(self, table_id):
        self._check('delete_table')
        self.tables.pop(str(normalize_table_id(table_id)), None)

    def probe(self):
        self._check('probe')
        return True


class FakeConnector:
    """Conector que entrega siempre el mismo FakeCloudBackend."""

    def __init__(self, backend=None):
        self.backend = backend or FakeCloudBackend()
        self.connected = False
        self.connect_error = None
        self.duplicate = False
        self.configs = []
        self.disconnects = 0

    def existing(self):
        return self.backend if self.connected else None

    def connect(self, config):
        self.configs.append(config)
        if self.connect_error is not None:
            raise self.connect_error
        if self.duplicate:
            # Otra inicialización registró la app justo antes
            self.connected = True
            raise DuplicateConnectionError('The default Firebase app already exists.')
        self.connected = True
        return self.backend

    def disconnect(self):
        self.connected = False
        self.disconnects += 1


# ==============================================================================
# FIXTURES
# ==============================================================================

@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path / 'data')


@pytest.fixture
def storage(data_dir):
    return SafeStorage(JsonFileMedium(data_dir))


@pytest.fixture
def local_backend(storage):
    return LocalBackend(storage, poll_interval=POLL)


@pytest.fixture
def fake_cloud():
    return FakeCloudBackend()


@pytest.fixture
def connector(fake_cloud):
    return FakeConnector(fake_cloud)


def _make_container(data_dir, connector, builtin_config, storage_quota=0):
    AppContainer.reset_instance()
    return AppContainer(
        data_dir=data_dir,
        connector=connector,
        builtin_config=builtin_config,
        poll_interval=POLL,
        storage_quota=storage_quota,
    )


@pytest.fixture
def container(data_dir, connector):
    """Contenedor en modo local (configuración fija sin completar)."""
    c = _make_container(data_dir, connector, PLACEHOLDER_CONFIG)
    c.storage_service.initialize()
    yield c
    AppContainer.reset_instance()


@pytest.fixture
def cloud_container(data_dir, connector):
    """Contenedor conectado a la nube falsa."""
    c = _make_container(data_dir, connector, VALID_CONFIG)
    assert c.storage_service.initialize() is True
    yield c
    AppContainer.reset_instance()


@pytest.fixture
def make_container(data_dir, connector):
    """Fábrica para contenedores con opciones especiales."""
    def factory(builtin_config=PLACEHOLDER_CONFIG, storage_quota=0):
        return _make_container(data_dir, connector, builtin_config, storage_quota)
    yield factory
    AppContainer.reset_instance()


@pytest.fixture
def client(container):
    app = create_app(container)
    app.config['TESTING'] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def cloud_client(cloud_container):
    app = create_app(cloud_container)
    app.config['TESTING'] = True
    with app.test_client() as c:
        yield c
