# Archivo: app/services/movement_ledger_service.py
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.enums import MovementDirection, PaymentMethod, normalize_direction, normalize_payment_method
from app.core.exceptions import (
    CajaServiceException, ConcurrencyConflictException, InvalidAmountException,
    SessionNotFoundException, SessionNotOpenException, ValidationException,
)
from app.db import models
from app.schemas import caja_schema
from app.services.active_session_guard import ActiveSessionGuard, guard as default_guard
from app.services.reconciliation_service import CERO, reconcile, to_money

logger = logging.getLogger(__name__)

MAX_DESCRIPCION = 200

class MovementLedgerService:
    """
    Libro de movimientos de una sesión de caja. Solo agrega; nunca edita ni borra.
    """

    def __init__(self, db: Session, guard: ActiveSessionGuard = default_guard,
                 allow_non_cash_expenses: Optional[bool] = None):
        self.db = db
        self.guard = guard
        if allow_non_cash_expenses is None:
            allow_non_cash_expenses = settings.ALLOW_NON_CASH_EXPENSES
        self.allow_non_cash_expenses = allow_non_cash_expenses

    def _get_session(self, session_id: int) -> models.CashSession:
        sesion = self.db.get(models.CashSession, session_id)
        if sesion is None:
            raise SessionNotFoundException(session_id)
        return sesion

    # -------------------------------------------------------------------------
    # 1. REGISTRAR MOVIMIENTO
    # -------------------------------------------------------------------------
    def record_movement(
        self,
        session_id: int,
        direction,
        payment_method,
        amount,
        description: str,
        recorded_by: Optional[str] = None,
    ) -> models.CashMovement:
        # A. VALIDACIONES (antes de tocar cualquier estado)
        monto = to_money(amount)
        if monto <= CERO:
            raise InvalidAmountException("El monto del movimiento debe ser mayor a 0.")

        descripcion = (description or "").strip()
        if not descripcion:
            raise ValidationException("La descripción del movimiento es obligatoria.")
        if len(descripcion) > MAX_DESCRIPCION:
            raise ValidationException(f"La descripción no puede superar {MAX_DESCRIPCION} caracteres.")

        direccion = normalize_direction(direction)
        metodo = normalize_payment_method(payment_method)

        if (direccion is MovementDirection.EXPENSE and metodo is not PaymentMethod.CASH
                and not self.allow_non_cash_expenses):
            raise ValidationException("Los egresos solo pueden registrarse en efectivo (CASH).")

        # B. LA SESIÓN DEBE EXISTIR
        sesion = self._get_session(session_id)

        # C. AGREGAR BAJO EL PUNTO DE SERIALIZACIÓN DE LA SESIÓN
        try:
            with self.guard.session_lock(session_id):
                secuencia = self.guard.reserve_sequence(self.db, session_id)
                if secuencia is None:
                    self.db.rollback()
                    logger.warning(
                        "Movimiento rechazado: sesión no abierta",
                        extra={"context": {"session_id": session_id, "state": sesion.state.value}},
                    )
                    raise SessionNotOpenException(session_id, sesion.state.value)

                # recorded_at nunca queda antes de la apertura
                recorded_at = max(models.utcnow(), sesion.opened_at)

                movimiento = models.CashMovement(
                    session_id=session_id,
                    sequence=secuencia,
                    direction=direccion,
                    payment_method=metodo,
                    amount=monto,
                    description=descripcion,
                    recorded_at=recorded_at,
                    recorded_by=recorded_by,
                )
                self.db.add(movimiento)
                self.db.commit()
                self.db.refresh(movimiento)

        except CajaServiceException:
            raise
        except OperationalError as e:
            self.db.rollback()
            raise ConcurrencyConflictException(
                f"No se pudo registrar el movimiento por contención en la base de datos: {e.orig}"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Error al registrar movimiento", extra={"context": {"session_id": session_id}})
            raise CajaServiceException(f"Error al registrar movimiento: {str(e)}") from e

        logger.info(
            "Movimiento registrado",
            extra={"context": {
                "session_id": session_id, "movement_id": movimiento.id, "sequence": secuencia,
                "direction": direccion.value, "payment_method": metodo.value, "amount": str(monto),
            }},
        )
        return movimiento

    # -------------------------------------------------------------------------
    # 2. LISTAR MOVIMIENTOS (LECTURA PURA)
    # -------------------------------------------------------------------------
    def list_movements(self, session_id: int) -> List[models.CashMovement]:
        self._get_session(session_id)
        return list(self.db.execute(
            select(models.CashMovement)
            .where(models.CashMovement.session_id == session_id)
            .order_by(models.CashMovement.recorded_at, models.CashMovement.sequence)
        ).scalars().all())

    # -------------------------------------------------------------------------
    # 3. RESUMEN EN VIVO (TOTALES DE LA SESIÓN)
    # -------------------------------------------------------------------------
    def summarize(self, session_id: int) -> caja_schema.SessionSummary:
        """Ingresos, egresos y calculado por medio de pago, sin montos declarados."""
        sesion = self._get_session(session_id)
        movimientos = self.list_movements(session_id)
        resultado = reconcile(sesion.opening_cash_amount, movimientos)

        por_medio = [
            caja_schema.MethodTotals(
                payment_method=metodo.value,
                incomes=resultado.incomes[metodo],
                expenses=resultado.expenses[metodo],
                calculated=resultado.calculated[metodo],
            )
            for metodo in PaymentMethod
        ]

        return caja_schema.SessionSummary(
            session_id=sesion.id,
            state=sesion.state.value,
            opening_cash_amount=sesion.opening_cash_amount,
            movement_count=len(movimientos),
            total_income=sum(resultado.incomes.values(), CERO),
            total_expense=sum(resultado.expenses.values(), CERO),
            by_method=por_medio,
            generated_at=models.utcnow(),
        )
