# ==============================================================================
# EXCEPCIONES DEL DOMINIO
# ==============================================================================
# Los servicios NO conocen las excepciones de google-api-core. Cada backend
# traduce sus errores a esta jerarquía.
# ==============================================================================


class ComandaError(Exception):
    """Error base de la capa de datos."""
    pass


class BackendError(ComandaError):
    """Fallo genérico del backend activo."""
    pass


class BackendPermissionError(BackendError):
    """El backend rechazó la operación por sus reglas de acceso."""
    pass


class BackendQuotaError(BackendError):
    """Cuota agotada o documento demasiado grande."""
    pass


class DuplicateConnectionError(ComandaError):
    """Ya existe una conexión registrada en el proceso."""
    pass


class StorageFullError(ComandaError):
    """El almacenamiento local no pudo persistir por falta de espacio."""
    pass
