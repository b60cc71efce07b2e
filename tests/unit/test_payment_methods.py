import pytest

from app.core.enums import (
    MovementDirection, PaymentMethod, normalize_direction, normalize_payment_method,
)
from app.core.exceptions import ValidationException


@pytest.mark.parametrize("codigo, esperado", [
    ("CASH", PaymentMethod.CASH),
    ("cash", PaymentMethod.CASH),
    (" Card ", PaymentMethod.CARD),
    ("CREDIT_CARD", PaymentMethod.CARD),
    ("debit_card", PaymentMethod.CARD),
    ("BANK_TRANSFER", PaymentMethod.TRANSFER),
    ("transfer", PaymentMethod.TRANSFER),
    ("MOBILE_PAYMENT", PaymentMethod.OTHER),
    ("MERCADO_PAGO", PaymentMethod.OTHER),
    ("PE", PaymentMethod.OTHER),
    (PaymentMethod.OTHER, PaymentMethod.OTHER),
])
def test_known_codes(codigo, esperado):
    assert normalize_payment_method(codigo) is esperado


@pytest.mark.parametrize("codigo", [None, "", "   ", "CHEQUE", "BITCOIN"])
def test_unknown_codes_never_default_to_cash(codigo):
    with pytest.raises(ValidationException):
        normalize_payment_method(codigo)


def test_direction():
    assert normalize_direction("income") is MovementDirection.INCOME
    assert normalize_direction(MovementDirection.EXPENSE) is MovementDirection.EXPENSE
    with pytest.raises(ValidationException):
        normalize_direction("REFUND")
