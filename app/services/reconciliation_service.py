# Archivo: app/services/reconciliation_service.py
"""
Motor de arqueo de caja.

Funciones puras: reciben el monto de apertura, los movimientos de la sesión y lo
declarado por el cajero, y devuelven lo calculado y el descuadre por medio de pago.
Sin base de datos, sin efectos secundarios.

    calculado(CASH) = apertura + ingresos(CASH) - egresos(CASH)
    calculado(m)    = ingresos(m)                 para m != CASH
    descuadre(m)    = declarado(m) - calculado(m) (+ sobrante / - faltante)
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, Mapping, NamedTuple, Optional

from app.core.enums import (
    MovementDirection, PaymentMethod, normalize_direction, normalize_payment_method,
)
from app.core.exceptions import InvalidAmountException, ValidationException

logger = logging.getLogger(__name__)

CENTAVOS = Decimal("0.01")
CERO = Decimal("0.00")
# Tope de las columnas Numeric(12, 2)
MAX_MONTO = Decimal("9999999999.99")


def to_money(value, campo: str = "monto") -> Decimal:
    """
    Convierte a Decimal con 2 decimales. Nunca pasa por float.
    Rechaza fracciones de centavo y montos que no caben en la base.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountException(f"El {campo} debe ser un número.")
    try:
        monto = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmountException(f"El {campo} '{value}' no es un número válido.") from None
    if not monto.is_finite():
        raise InvalidAmountException(f"El {campo} debe ser un número finito.")
    if abs(monto) > MAX_MONTO:
        raise InvalidAmountException(f"El {campo} supera el máximo permitido ({MAX_MONTO}).")
    redondeado = monto.quantize(CENTAVOS, rounding=ROUND_HALF_UP)
    if redondeado != monto:
        raise InvalidAmountException(f"El {campo} '{value}' tiene más de 2 decimales.")
    return redondeado


class MovementEntry(NamedTuple):
    """Forma mínima de un movimiento para el motor (los modelos ORM también sirven)."""
    direction: MovementDirection
    payment_method: PaymentMethod
    amount: Decimal


@dataclass(frozen=True)
class ReconciliationResult:
    incomes: Dict[PaymentMethod, Decimal]
    expenses: Dict[PaymentMethod, Decimal]
    calculated: Dict[PaymentMethod, Decimal]
    # Vacío cuando no hay montos declarados (resumen de una sesión abierta)
    discrepancy: Dict[PaymentMethod, Decimal] = field(default_factory=dict)

    @property
    def balanced(self) -> bool:
        return bool(self.discrepancy) and all(v == CERO for v in self.discrepancy.values())


def normalize_declared(declared: Optional[Mapping]) -> Dict[PaymentMethod, Decimal]:
    """
    Valida los montos declarados: uno no negativo por cada medio reconocido,
    sin claves repetidas ni desconocidas.
    """
    if not declared:
        raise ValidationException("Debe declarar los montos de cierre para todos los medios de pago.")

    resultado: Dict[PaymentMethod, Decimal] = {}
    for clave, valor in declared.items():
        metodo = normalize_payment_method(clave)
        if metodo in resultado:
            raise ValidationException(f"El medio de pago {metodo.value} fue declarado más de una vez.")
        if valor is None:
            continue
        try:
            monto = to_money(valor, campo=f"monto declarado ({metodo.value})")
        except InvalidAmountException as e:
            raise ValidationException(e.detail) from None
        if monto < CERO:
            raise ValidationException(f"El monto declarado para {metodo.value} no puede ser negativo.")
        resultado[metodo] = monto

    faltantes = [m.value for m in PaymentMethod if m not in resultado]
    if faltantes:
        raise ValidationException(f"Faltan montos declarados para: {', '.join(faltantes)}.")
    return resultado


def reconcile(
    opening_cash_amount,
    movements: Iterable,
    declared: Optional[Mapping] = None,
) -> ReconciliationResult:
    """Calcula lo esperado por medio de pago y, si hay declarado, el descuadre."""
    apertura = to_money(opening_cash_amount, campo="monto de apertura")

    incomes = {m: Decimal("0") for m in PaymentMethod}
    expenses = {m: Decimal("0") for m in PaymentMethod}

    for mov in movements:
        direccion = normalize_direction(mov.direction)
        metodo = normalize_payment_method(mov.payment_method)
        monto = to_money(mov.amount)
        if direccion is MovementDirection.INCOME:
            incomes[metodo] += monto
        else:
            expenses[metodo] += monto

    calculated = {}
    for metodo in PaymentMethod:
        if metodo is PaymentMethod.CASH:
            calculated[metodo] = apertura + incomes[metodo] - expenses[metodo]
        else:
            # Los egresos se asumen solo en efectivo
            if expenses[metodo]:
                logger.warning(
                    "Egresos en %s ignorados en el calculado", metodo.value,
                    extra={"context": {"payment_method": metodo.value, "expenses": str(expenses[metodo])}},
                )
            calculated[metodo] = incomes[metodo]

    calculated = {m: v.quantize(CENTAVOS) for m, v in calculated.items()}
    incomes = {m: v.quantize(CENTAVOS) for m, v in incomes.items()}
    expenses = {m: v.quantize(CENTAVOS) for m, v in expenses.items()}

    discrepancy = {}
    if declared is not None:
        declarado = normalize_declared(declared)
        discrepancy = {m: (declarado[m] - calculated[m]).quantize(CENTAVOS) for m in PaymentMethod}

    return ReconciliationResult(
        incomes=incomes,
        expenses=expenses,
        calculated=calculated,
        discrepancy=discrepancy,
    )


def count_denominations(details: Optional[Mapping]) -> Decimal:
    """
    Total de un conteo de billetes/monedas: suma de denominación x cantidad.
    Ej: {"1000": 2, "50": 3} -> 2150.00
    """
    if not details:
        return CERO

    total = Decimal("0")
    for denominacion, cantidad in details.items():
        try:
            valor = Decimal(str(denominacion))
        except (InvalidOperation, ValueError):
            raise ValidationException(f"Denominación inválida: '{denominacion}'.") from None
        if not valor.is_finite() or valor <= 0:
            raise ValidationException(f"La denominación '{denominacion}' debe ser positiva.")
        if isinstance(cantidad, bool) or not isinstance(cantidad, int) or cantidad < 0:
            raise ValidationException(
                f"La cantidad para la denominación '{denominacion}' debe ser un entero no negativo."
            )
        total += valor * cantidad
    return total.quantize(CENTAVOS, rounding=ROUND_HALF_UP)
