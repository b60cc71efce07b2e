# Archivo: app/core/exceptions.py
# Este archivo define las excepciones personalizadas para una gestión de errores limpia y centralizada.
# Cada excepción lleva un código estable y el status HTTP con el que se publica.

class AppBaseException(Exception):
    """Clase base para todas las excepciones de la aplicación."""
    code = "APP_ERROR"
    status_code = 500

    def __init__(self, detail: str = "Ocurrió un error inesperado en la aplicación."):
        self.detail = detail
        super().__init__(self.detail)

# Excepciones de la Capa de Base de Datos (DB)
class DBServiceException(AppBaseException):
    """Excepción para errores de base de datos o transacciones."""
    code = "DB_ERROR"

class NotFoundException(DBServiceException):
    """Excepción lanzada cuando un recurso no es encontrado (HTTP 404)."""
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource_name: str = "Recurso"):
        super().__init__(detail=f"{resource_name} no encontrado(a).")

class DuplicateEntryException(DBServiceException):
    """Excepción lanzada cuando se intenta crear un registro duplicado."""
    code = "DUPLICATE_ENTRY"
    status_code = 409

# Excepciones de la Capa de Servicio/Lógica de Negocio (Caja)
class CajaServiceException(AppBaseException):
    """Base de los errores del flujo de caja (sesiones, movimientos, arqueo)."""
    code = "CAJA_ERROR"

class SessionNotFoundException(NotFoundException):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id=None):
        nombre = f"Sesión de caja #{session_id}" if session_id is not None else "Sesión de caja"
        super().__init__(nombre)
        self.session_id = session_id

class CashPointNotFoundException(NotFoundException):
    code = "CASH_POINT_NOT_FOUND"

    def __init__(self, cash_point_id=None):
        nombre = f"Punto de caja #{cash_point_id}" if cash_point_id is not None else "Punto de caja"
        super().__init__(nombre)
        self.cash_point_id = cash_point_id

class SessionAlreadyOpenException(CajaServiceException):
    """Ya existe una sesión abierta para el mismo (operador, punto de caja)."""
    code = "SESSION_ALREADY_OPEN"
    status_code = 409

    def __init__(self, operator_id, cash_point_id, session_id=None):
        super().__init__(
            f"El operador '{operator_id}' ya tiene una sesión abierta en el punto de caja #{cash_point_id}."
        )
        self.operator_id = operator_id
        self.cash_point_id = cash_point_id
        self.session_id = session_id

class SessionNotOpenException(CajaServiceException):
    """La sesión existe pero no está en estado OPEN."""
    code = "SESSION_NOT_OPEN"
    status_code = 409

    def __init__(self, session_id, state=None):
        estado = f" (estado actual: {state})" if state is not None else ""
        super().__init__(f"La sesión de caja #{session_id} no está abierta{estado}.")
        self.session_id = session_id
        self.state = state

class SessionNotClosedException(CajaServiceException):
    """Se pidió el arqueo de una sesión que todavía no se cerró."""
    code = "SESSION_NOT_CLOSED"
    status_code = 409

    def __init__(self, session_id, state=None):
        super().__init__(f"La sesión de caja #{session_id} aún no tiene arqueo de cierre (estado: {state}).")
        self.session_id = session_id
        self.state = state

class InvalidAmountException(CajaServiceException):
    code = "INVALID_AMOUNT"
    status_code = 422

class ValidationException(CajaServiceException):
    code = "VALIDATION_ERROR"
    status_code = 422

class ConcurrencyConflictException(CajaServiceException):
    """Dos operaciones chocaron en el mismo punto de atomicidad."""
    code = "CONCURRENCY_CONFLICT"
    status_code = 409

class ImmutableRecordException(CajaServiceException):
    """Intento de modificar un movimiento o una sesión ya cerrada."""
    code = "IMMUTABLE_RECORD"
    status_code = 409
