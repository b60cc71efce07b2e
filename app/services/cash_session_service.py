# Archivo: app/services/cash_session_service.py
import logging
from typing import Dict, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.enums import CashSessionState, PaymentMethod
from app.core.exceptions import (
    CajaServiceException, ConcurrencyConflictException, InvalidAmountException,
    SessionNotClosedException, SessionNotFoundException, SessionNotOpenException, ValidationException,
)
from app.db import models
from app.schemas import caja_schema
from app.services.active_session_guard import ActiveSessionGuard, guard as default_guard
from app.services.cash_point_service import CashPointService
from app.services.movement_ledger_service import MovementLedgerService
from app.services.reconciliation_service import (
    CERO, MAX_MONTO, count_denominations, normalize_declared, reconcile, to_money,
)

logger = logging.getLogger(__name__)


class CashSessionService:
    """
    Ciclo de vida de la sesión de caja: OPEN -> CLOSING -> CLOSED.
    El arqueo se calcula una sola vez, sobre los movimientos congelados.
    """

    def __init__(self, db: Session, guard: ActiveSessionGuard = default_guard):
        self.db = db
        self.guard = guard
        self.ledger = MovementLedgerService(db, guard=guard)
        self.cash_points = CashPointService(db, guard=guard)

    # =========================================================================
    # 1. APERTURA
    # =========================================================================
    def open_session(
        self,
        operator_id: str,
        cash_point_id: int,
        opening_cash_amount,
        opening_details: Optional[Mapping] = None,
    ) -> models.CashSession:
        # A. VALIDACIONES (nada se escribe si fallan)
        operador = str(operator_id).strip() if operator_id is not None else ""
        if not operador:
            raise ValidationException("El operador es obligatorio para abrir caja.")

        monto = to_money(opening_cash_amount, campo="monto de apertura")
        if monto < CERO:
            raise InvalidAmountException("El monto de apertura no puede ser negativo.")

        detalle = None
        if opening_details:
            total = count_denominations(opening_details)
            if total != monto:
                raise ValidationException(
                    f"El conteo de billetes ({total}) no coincide con el monto de apertura ({monto})."
                )
            detalle = {str(k): v for k, v in opening_details.items()}

        punto = self.cash_points.get_by_id(cash_point_id)
        if not punto.is_active:
            raise ValidationException(f"El punto de caja '{punto.name}' está desactivado.")

        # B. CHEQUEO + CREACIÓN EN UNA SOLA SECCIÓN CRÍTICA
        try:
            with self.guard.cash_point_lock(cash_point_id), self.guard.claim(self.db, operador, cash_point_id):
                # Pudo desactivarse mientras esperábamos el candado
                if not self.guard.cash_point_is_active(self.db, cash_point_id):
                    raise ValidationException(f"El punto de caja '{punto.name}' está desactivado.")
                sesion = models.CashSession(
                    operator_id=operador,
                    cash_point_id=cash_point_id,
                    state=CashSessionState.OPEN,
                    opened_at=models.utcnow(),
                    opening_cash_amount=monto,
                    opening_details=detalle,
                    movement_count=0,
                )
                self.db.add(sesion)
                self.db.commit()
                self.db.refresh(sesion)
        except CajaServiceException:
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Error al abrir sesión", extra={"context": {"operator_id": operador}})
            raise CajaServiceException(f"Error al abrir la sesión de caja: {str(e)}") from e

        logger.info(
            "Sesión de caja abierta",
            extra={"context": {
                "session_id": sesion.id, "operator_id": operador,
                "cash_point_id": cash_point_id, "opening_cash_amount": str(monto),
            }},
        )
        return sesion

    # =========================================================================
    # 2. CIERRE Y ARQUEO
    # =========================================================================
    def close_session(
        self,
        session_id: int,
        declared: Mapping,
        notes: Optional[str] = None,
        closing_details: Optional[Mapping] = None,
        closed_by: Optional[str] = None,
    ) -> caja_schema.CloseSessionReport:
        # A. VALIDACIONES QUE NO DEPENDEN DEL ESTADO
        declarado = normalize_declared(declared)

        detalle = None
        if closing_details:
            total = count_denominations(closing_details)
            if total != declarado[PaymentMethod.CASH]:
                raise ValidationException(
                    f"El conteo de billetes ({total}) no coincide con el efectivo declarado "
                    f"({declarado[PaymentMethod.CASH]})."
                )
            detalle = {str(k): v for k, v in closing_details.items()}

        notas = notes.strip() if notes and notes.strip() else None

        # B. ESTADO ACTUAL (reintento idempotente o cierre en curso)
        sesion = self._get_fresh(session_id)
        if sesion.state is CashSessionState.CLOSED:
            return self._replay_close(sesion, declarado)
        if sesion.state is CashSessionState.CLOSING:
            raise ConcurrencyConflictException(f"La sesión de caja #{session_id} se está cerrando en este momento.")

        # C. OPEN -> CLOSING (congela el libro de movimientos)
        try:
            with self.guard.session_lock(session_id):
                if not self.guard.transition(self.db, session_id, CashSessionState.OPEN, CashSessionState.CLOSING):
                    self.db.rollback()
                    sesion = self._get_fresh(session_id)
                    if sesion.state is CashSessionState.CLOSED:
                        return self._replay_close(sesion, declarado)
                    raise ConcurrencyConflictException(
                        f"La sesión de caja #{session_id} cambió de estado durante el cierre ({sesion.state.value})."
                    )
                self.db.commit()
        except OperationalError as e:
            self.db.rollback()
            raise ConcurrencyConflictException(
                f"No se pudo iniciar el cierre por contención en la base de datos: {e.orig}"
            ) from e

        # D. ARQUEO SOBRE LA FOTO CONGELADA Y CIERRE DEFINITIVO
        try:
            sesion = self._get_fresh(session_id)
            movimientos = self.ledger.list_movements(session_id)
            resultado = reconcile(sesion.opening_cash_amount, movimientos, declarado)
            for metodo in PaymentMethod:
                if max(abs(resultado.calculated[metodo]), abs(resultado.discrepancy[metodo])) > MAX_MONTO:
                    raise InvalidAmountException(
                        f"El arqueo de {metodo.value} supera el máximo que se puede registrar ({MAX_MONTO})."
                    )

            for metodo in PaymentMethod:
                self.db.add(models.CashSessionLine(
                    session_id=session_id,
                    payment_method=metodo,
                    declared=declarado[metodo],
                    calculated=resultado.calculated[metodo],
                    discrepancy=resultado.discrepancy[metodo],
                ))

            sesion.state = CashSessionState.CLOSED
            sesion.closed_at = max(models.utcnow(), sesion.opened_at)
            sesion.closed_by = closed_by
            sesion.notes = notas
            sesion.closing_details = detalle

            self.db.commit()
            self.db.refresh(sesion)
        except Exception as e:
            # Un cierre fallido nunca deja la sesión en CLOSING
            self.db.rollback()
            self._revert_closing(session_id)
            if isinstance(e, CajaServiceException):
                raise
            logger.exception("Error durante el cierre", extra={"context": {"session_id": session_id}})
            raise CajaServiceException(f"Error al cerrar la sesión de caja: {str(e)}") from e

        reporte = self._build_report(sesion)
        logger.info(
            "Sesión de caja cerrada",
            extra={"context": {
                "session_id": session_id,
                "balanced": reporte.balanced,
                "discrepancy": reporte.discrepancy.model_dump(mode="json"),
            }},
        )
        return reporte

    def _revert_closing(self, session_id: int) -> None:
        try:
            if self.guard.transition(self.db, session_id, CashSessionState.CLOSING, CashSessionState.OPEN):
                logger.warning("Cierre revertido: la sesión vuelve a OPEN", extra={"context": {"session_id": session_id}})
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "No se pudo revertir la sesión a OPEN", extra={"context": {"session_id": session_id}}
            )

    def _replay_close(self, sesion: models.CashSession, declarado: Dict[PaymentMethod, object]) -> caja_schema.CloseSessionReport:
        """Reintento de un cierre ya hecho: mismo declarado -> mismo reporte; distinto -> error."""
        guardado = {linea.payment_method: linea.declared for linea in sesion.lines}
        if all(guardado.get(m) == declarado[m] for m in PaymentMethod):
            logger.info("Cierre repetido: se devuelve el arqueo guardado", extra={"context": {"session_id": sesion.id}})
            return self._build_report(sesion)
        raise SessionNotOpenException(sesion.id, sesion.state.value)

    def _build_report(self, sesion: models.CashSession) -> caja_schema.CloseSessionReport:
        declarado = {l.payment_method: l.declared for l in sesion.lines}
        calculado = {l.payment_method: l.calculated for l in sesion.lines}
        descuadre = {l.payment_method: l.discrepancy for l in sesion.lines}
        return caja_schema.CloseSessionReport(
            session_id=sesion.id,
            state=sesion.state.value,
            declared=caja_schema.AmountsByMethod.from_mapping(declarado),
            calculated=caja_schema.AmountsByMethod.from_mapping(calculado),
            discrepancy=caja_schema.AmountsByMethod.from_mapping(descuadre),
            balanced=all(v == CERO for v in descuadre.values()),
            notes=sesion.notes,
            closed_by=sesion.closed_by,
            closed_at=sesion.closed_at,
        )

    # =========================================================================
    # 3. LECTURAS
    # =========================================================================
    def _get_fresh(self, session_id: int) -> models.CashSession:
        sesion = self.db.get(models.CashSession, session_id, populate_existing=True)
        if sesion is None:
            raise SessionNotFoundException(session_id)
        return sesion

    def get_session(self, session_id: int) -> models.CashSession:
        return self._get_fresh(session_id)

    def get_active_session(self, operator_id: str, cash_point_id: int) -> Optional[models.CashSession]:
        """La sesión OPEN de ese operador en ese punto de caja, o None (no es un error)."""
        return self.db.execute(
            select(models.CashSession).where(
                models.CashSession.operator_id == str(operator_id),
                models.CashSession.cash_point_id == cash_point_id,
                models.CashSession.state == CashSessionState.OPEN,
            )
        ).scalars().first()

    def get_report(self, session_id: int) -> caja_schema.CloseSessionReport:
        sesion = self._get_fresh(session_id)
        if sesion.state is not CashSessionState.CLOSED:
            raise SessionNotClosedException(session_id, sesion.state.value)
        return self._build_report(sesion)

    def search_sessions(
        self,
        state: Optional[str] = None,
        operator_id: Optional[str] = None,
        cash_point_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> caja_schema.SessionSearchResult:
        filtros = []
        if state:
            try:
                filtros.append(models.CashSession.state == CashSessionState(state.strip().upper()))
            except ValueError:
                raise ValidationException(f"Estado de sesión no reconocido: '{state}'.") from None
        if operator_id:
            filtros.append(models.CashSession.operator_id == operator_id)
        if cash_point_id is not None:
            filtros.append(models.CashSession.cash_point_id == cash_point_id)

        total = self.db.execute(
            select(func.count()).select_from(models.CashSession).where(*filtros)
        ).scalar_one()
        sesiones = self.db.execute(
            select(models.CashSession)
            .where(*filtros)
            .order_by(models.CashSession.opened_at.desc(), models.CashSession.id.desc())
            .offset(skip)
            .limit(limit)
        ).scalars().all()

        return caja_schema.SessionSearchResult(total=total, items=[self.to_read(s) for s in sesiones])

    def to_read(self, sesion: models.CashSession) -> caja_schema.CashSessionRead:
        """Respuesta manual (para incluir el nombre de la caja y el arqueo)."""
        lectura = caja_schema.CashSessionRead(
            id=sesion.id,
            operator_id=sesion.operator_id,
            cash_point_id=sesion.cash_point_id,
            cash_point_name=sesion.cash_point.name if sesion.cash_point else None,
            state=sesion.state.value,
            opened_at=sesion.opened_at,
            opening_cash_amount=sesion.opening_cash_amount,
            opening_details=sesion.opening_details,
            movement_count=sesion.movement_count,
            closed_at=sesion.closed_at,
            closed_by=sesion.closed_by,
            notes=sesion.notes,
            closing_details=sesion.closing_details,
        )
        if sesion.state is CashSessionState.CLOSED and sesion.lines:
            reporte = self._build_report(sesion)
            lectura.declared = reporte.declared
            lectura.calculated = reporte.calculated
            lectura.discrepancy = reporte.discrepancy
        return lectura
