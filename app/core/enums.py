# Archivo: app/core/enums.py
import enum

from app.core.exceptions import ValidationException


class CashSessionState(str, enum.Enum):
    OPEN = "OPEN"
    CLOSING = "CLOSING"  # Transitorio: solo existe mientras dura el cierre
    CLOSED = "CLOSED"


class MovementDirection(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    OTHER = "OTHER"


# Códigos finos que usa el panel de la clínica -> método reconocido por el arqueo
PAYMENT_METHOD_CODES = {
    "CASH": PaymentMethod.CASH,
    "CARD": PaymentMethod.CARD,
    "CREDIT_CARD": PaymentMethod.CARD,
    "DEBIT_CARD": PaymentMethod.CARD,
    "TRANSFER": PaymentMethod.TRANSFER,
    "BANK_TRANSFER": PaymentMethod.TRANSFER,
    "OTHER": PaymentMethod.OTHER,
    "MOBILE_PAYMENT": PaymentMethod.OTHER,
    "MERCADO_PAGO": PaymentMethod.OTHER,
    "PE": PaymentMethod.OTHER,
}


def normalize_payment_method(code) -> PaymentMethod:
    """
    Convierte un código de medio de pago (propio o del panel) en PaymentMethod.
    Sin distinción de mayúsculas. Un código desconocido es un error, nunca CASH por defecto.
    """
    if isinstance(code, PaymentMethod):
        return code
    if code is None or not str(code).strip():
        raise ValidationException("El medio de pago es obligatorio.")

    normalizado = str(code).strip().upper()
    try:
        return PAYMENT_METHOD_CODES[normalizado]
    except KeyError:
        raise ValidationException(f"Medio de pago no reconocido: '{code}'.") from None


def normalize_direction(value) -> MovementDirection:
    if isinstance(value, MovementDirection):
        return value
    try:
        return MovementDirection(str(value).strip().upper())
    except (ValueError, AttributeError):
        raise ValidationException(f"Tipo de movimiento no reconocido: '{value}'. Use INCOME o EXPENSE.") from None
