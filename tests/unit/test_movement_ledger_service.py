from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.enums import CashSessionState, MovementDirection, PaymentMethod
from app.core.exceptions import (
    ImmutableRecordException, InvalidAmountException, SessionNotFoundException,
    SessionNotOpenException, ValidationException,
)
from app.db import models
from app.services.movement_ledger_service import MovementLedgerService


def test_record_income(ledger, open_session):
    movimiento = ledger.record_movement(
        open_session.id, "INCOME", "CREDIT_CARD", "150", "Consulta", recorded_by="cajero-1"
    )

    assert movimiento.id is not None
    assert movimiento.sequence == 1
    assert movimiento.direction is MovementDirection.INCOME
    assert movimiento.payment_method is PaymentMethod.CARD
    assert movimiento.amount == Decimal("150.00")
    assert movimiento.recorded_by == "cajero-1"
    assert movimiento.recorded_at >= open_session.opened_at


@pytest.mark.parametrize("monto", ["0", "-5", 0])
def test_non_positive_amount_is_rejected(ledger, open_session, db_session, monto):
    with pytest.raises(InvalidAmountException):
        ledger.record_movement(open_session.id, "INCOME", "CASH", monto, "Venta")

    db_session.refresh(open_session)
    assert open_session.state is CashSessionState.OPEN
    assert open_session.movement_count == 0
    assert ledger.list_movements(open_session.id) == []


@pytest.mark.parametrize("descripcion", ["", "   ", "x" * 201])
def test_invalid_description(ledger, open_session, descripcion):
    with pytest.raises(ValidationException):
        ledger.record_movement(open_session.id, "INCOME", "CASH", "10", descripcion)


def test_unknown_payment_method(ledger, open_session):
    with pytest.raises(ValidationException):
        ledger.record_movement(open_session.id, "INCOME", "CHEQUE", "10", "Venta")


def test_non_cash_expense_rejected_by_default(ledger, open_session):
    with pytest.raises(ValidationException):
        ledger.record_movement(open_session.id, "EXPENSE", "TRANSFER", "10", "Pago proveedor")


def test_non_cash_expense_when_allowed(db_session, guard, open_session):
    libro = MovementLedgerService(db_session, guard=guard, allow_non_cash_expenses=True)
    libro.record_movement(open_session.id, "EXPENSE", "TRANSFER", "10", "Pago proveedor")

    resumen = libro.summarize(open_session.id)
    transfer = next(t for t in resumen.by_method if t.payment_method == "TRANSFER")
    assert transfer.expenses == Decimal("10.00")
    assert transfer.calculated == Decimal("0.00")


def test_unknown_session(ledger):
    with pytest.raises(SessionNotFoundException):
        ledger.record_movement(9999, "INCOME", "CASH", "10", "Venta")


def test_closed_session_rejects_movements(ledger, session_service, open_session, db_session):
    session_service.close_session(
        open_session.id, {"cash": "100", "card": "0", "transfer": "0", "other": "0"}
    )

    with pytest.raises(SessionNotOpenException):
        ledger.record_movement(open_session.id, "INCOME", "CASH", "10", "Venta tardía")

    assert ledger.list_movements(open_session.id) == []


def test_closing_session_rejects_movements(ledger, guard, open_session, db_session):
    assert guard.transition(db_session, open_session.id, CashSessionState.OPEN, CashSessionState.CLOSING)
    db_session.commit()

    with pytest.raises(SessionNotOpenException):
        ledger.record_movement(open_session.id, "INCOME", "CASH", "10", "Venta")


def test_list_is_chronological_then_by_sequence(ledger, open_session, db_session):
    primero = ledger.record_movement(open_session.id, "INCOME", "CASH", "1", "Uno")
    segundo = ledger.record_movement(open_session.id, "INCOME", "CASH", "2", "Dos")
    tercero = ledger.record_movement(open_session.id, "EXPENSE", "CASH", "1", "Tres")

    ids = [m.id for m in ledger.list_movements(open_session.id)]
    assert ids == [primero.id, segundo.id, tercero.id]
    assert [m.sequence for m in ledger.list_movements(open_session.id)] == [1, 2, 3]


def test_summary_matches_reconciliation(ledger, open_session):
    ledger.record_movement(open_session.id, "INCOME", "CASH", "250", "Venta")
    ledger.record_movement(open_session.id, "INCOME", "CARD", "150", "Venta tarjeta")
    ledger.record_movement(open_session.id, "EXPENSE", "CASH", "50", "Compra insumos")

    resumen = ledger.summarize(open_session.id)
    por_medio = {t.payment_method: t for t in resumen.by_method}

    assert resumen.state == "OPEN"
    assert resumen.movement_count == 3
    assert resumen.total_income == Decimal("400.00")
    assert resumen.total_expense == Decimal("50.00")
    assert por_medio["CASH"].calculated == Decimal("300.00")
    assert por_medio["CARD"].calculated == Decimal("150.00")


def test_movements_are_immutable(ledger, open_session, db_session):
    movimiento = ledger.record_movement(open_session.id, "INCOME", "CASH", "10", "Venta")

    movimiento.amount = Decimal("99")
    with pytest.raises(ImmutableRecordException):
        db_session.commit()
    db_session.rollback()

    db_session.delete(movimiento)
    with pytest.raises(ImmutableRecordException):
        db_session.commit()
    db_session.rollback()

    db_session.refresh(movimiento)
    assert movimiento.amount == Decimal("10.00")


def test_recorded_at_is_never_before_opening(ledger, open_session, db_session):
    # Reloj del servidor atrasado respecto de la apertura
    open_session.opened_at = models.utcnow() + timedelta(minutes=5)
    db_session.commit()

    movimiento = ledger.record_movement(open_session.id, "INCOME", "CASH", "10", "Venta")
    assert movimiento.recorded_at >= open_session.opened_at


def test_amount_above_column_precision_is_rejected(ledger, open_session, db_session):
    with pytest.raises(InvalidAmountException):
        ledger.record_movement(open_session.id, "INCOME", "CASH", "123456789012345678.91", "Venta")
    with pytest.raises(InvalidAmountException):
        ledger.record_movement(open_session.id, "INCOME", "CASH", "10000000000.00", "Venta")

    db_session.refresh(open_session)
    assert open_session.movement_count == 0

    maximo = ledger.record_movement(open_session.id, "INCOME", "CASH", "9999999999.99", "Venta máxima")
    db_session.refresh(maximo)
    assert maximo.amount == Decimal("9999999999.99")


def test_fraction_of_a_cent_is_rejected(ledger, open_session):
    with pytest.raises(InvalidAmountException):
        ledger.record_movement(open_session.id, "INCOME", "CASH", "10.005", "Venta")
    assert ledger.list_movements(open_session.id) == []
