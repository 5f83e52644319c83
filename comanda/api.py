# ==============================================================================
# API HTTP (Flask)
# ==============================================================================
# Superficie JSON mínima sobre StorageService para la UI del POS.
# Siempre retorna JSON: {"ok": true, ...} o {"ok": false, "error": "..."}
#
# Errores del backend → código HTTP:
#   BackendPermissionError          → 403
#   BackendQuotaError / StorageFull → 413
#   Otro error del backend          → 502
#   Datos inválidos                 → 400
# ==============================================================================

import logging

from flask import Blueprint, Flask, current_app, request
from werkzeug.exceptions import BadRequest, HTTPException, NotFound

from comanda.app_container import AppContainer, get_container
from comanda.config import DatabaseConfig
from comanda.exceptions import (
    BackendPermissionError,
    BackendQuotaError,
    ComandaError,
    StorageFullError,
)
from comanda.models import Product
from comanda.performance_logger import get_function_stats, init_profiling


logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')


def _container() -> AppContainer:
    return current_app.config['COMANDA_CONTAINER']


def _storage():
    return _container().storage_service


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('Datos no recibidos o formato inválido')
    return data


# ==============================================================================
# ESTADO
# ==============================================================================

@api.route('/status', methods=['GET'])
def status():
    storage = _storage()
    return {
        'ok': True,
        'mode': storage.connection.mode,
        'cloud': storage.is_using_cloud(),
        'operations': get_function_stats(),
    }


@api.route('/diagnostics', methods=['GET'])
def diagnostics():
    report = _storage().run_diagnostics()
    return {'ok': report.ok, 'report': report.to_dict()}, (200 if report.ok else 503)


@api.route('/alerts', methods=['GET'])
def alerts():
    drained = _container().alert_service.drain()
    return {'ok': True, 'alerts': [a.to_dict() for a in drained]}


# ==============================================================================
# PRODUCTOS
# ==============================================================================

@api.route('/products', methods=['GET'])
def list_products():
    products = _storage().list_products()
    return {'ok': True, 'products': [p.to_dict() for p in products]}


@api.route('/products', methods=['POST'])
def save_product():
    """
    Crear, editar o reponer un producto.
    Espera JSON con: id (vacío = nuevo), name, description, price, category,
    stock, imageUrl
    """
    data = _json_body()
    product = Product.from_dict(data)
    saved = _storage().save_product(product)
    return {'ok': True, 'product': saved.to_dict()}


@api.route('/products/<pid>', methods=['DELETE'])
def delete_product(pid):
    _storage().delete_product(pid)
    return {'ok': True}


# ==============================================================================
# PEDIDOS
# ==============================================================================

@api.route('/orders', methods=['GET'])
def list_orders():
    orders = _storage().get_orders_once()
    return {'ok': True, 'orders': [o.to_dict() for o in orders]}


@api.route('/orders', methods=['POST'])
def create_order():
    """
    Crear un pedido.
    Espera JSON con: tableId, items [{productId, quantity}], observation
    """
    data = _json_body()
    raw_items = data.get('items')
    if not isinstance(raw_items, list) or not raw_items:
        raise BadRequest('El pedido no tiene ítems')

    storage = _storage()
    catalog = {p.id: p for p in storage.list_products()}
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise BadRequest('Ítem de pedido inválido')
        product = catalog.get(str(raw.get('productId', '')))
        if product is None:
            raise BadRequest(f"Producto {raw.get('productId')!r} no encontrado")
        items.append((product, raw.get('quantity')))

    order = storage.create_order(data.get('tableId'), items, data.get('observation'))
    return {'ok': True, 'order': order.to_dict()}, 201


@api.route('/orders/<order_id>/status', methods=['PATCH'])
def update_order_status(order_id):
    data = _json_body()
    if not _storage().update_order_status(order_id, data.get('status')):
        raise NotFound(f'Pedido {order_id} no encontrado')
    return {'ok': True}


# ==============================================================================
# MESAS
# ==============================================================================

@api.route('/tables', methods=['GET'])
def list_tables():
    tables = _storage().list_tables()
    return {'ok': True, 'tables': {k: v.to_dict() for k, v in tables.items()}}


@api.route('/tables/<table_id>/close-request', methods=['POST'])
def request_table_close(table_id):
    data = _json_body()
    session = _storage().request_table_close(table_id, data.get('paymentMethod'))
    return {'ok': True, 'table': session.to_dict()}


@api.route('/tables/<table_id>/finalize', methods=['POST'])
def finalize_table(table_id):
    archived = _storage().finalize_table(table_id)
    return {'ok': True, 'archived': archived}


# ==============================================================================
# CONFIGURACIÓN
# ==============================================================================

@api.route('/config', methods=['GET'])
def get_config():
    storage = _storage()
    saved = storage.connection.load_saved_config()
    return {
        'ok': True,
        'cloud': storage.is_using_cloud(),
        'config': saved.to_dict() if saved else None,
    }


@api.route('/config', methods=['PUT'])
def save_config():
    config = DatabaseConfig.from_dict(_json_body())
    if not config.api_key:
        raise BadRequest('apiKey requerida')
    connected = _storage().save_config(config)
    return {'ok': True, 'cloud': connected}


@api.route('/config', methods=['DELETE'])
def clear_config():
    _storage().clear_config()
    # El cliente debe recargar: sus suscripciones ya no existen
    return {'ok': True, 'reload': True}


# ==============================================================================
# MANEJO DE ERRORES
# ==============================================================================

@api.errorhandler(ValueError)
def _handle_value_error(error):
    return {'ok': False, 'error': str(error)}, 400


@api.errorhandler(HTTPException)
def _handle_http_error(error):
    return {'ok': False, 'error': error.description}, error.code


@api.errorhandler(ComandaError)
def _handle_backend_error(error):
    if isinstance(error, BackendPermissionError):
        code = 403
    elif isinstance(error, (BackendQuotaError, StorageFullError)):
        code = 413
    else:
        code = 502
    logger.error("[API] %s %s → %d: %s", request.method, request.path, code, error)
    return {'ok': False, 'error': str(error)}, code


# ==============================================================================
# FÁBRICA DE LA APP
# ==============================================================================

def create_app(container: AppContainer = None) -> Flask:
    """
    Crea la app Flask.

    Args:
        container: Contenedor a usar (None = contenedor global)
    """
    app = Flask(__name__)
    container = container or get_container()
    app.config['COMANDA_CONTAINER'] = container

    container.storage_service.initialize()

    app.register_blueprint(api)
    init_profiling(app)
    return app
