from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, UniqueConstraint, Index, JSON,
    Enum, event, inspect, text,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

# Importamos la Base del archivo de conexión
from .database import Base
from app.core.enums import CashSessionState, MovementDirection, PaymentMethod
from app.core.exceptions import ImmutableRecordException


def utcnow() -> datetime:
    """Hora UTC sin zona (así la guardan las columnas DateTime)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

# ==============================================================================
# 🏧 PUNTOS DE CAJA
# ==============================================================================

class CashPoint(Base):
    """
    Caja física o lógica donde se atiende (Recepción, Caja 2, Farmacia...).
    """
    __tablename__ = 'punto_caja'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    sesiones = relationship("CashSession", back_populates="cash_point")

# ==============================================================================
# 💰 SESIONES DE CAJA (TURNOS) Y LIBRO DE MOVIMIENTOS
# ==============================================================================

class CashSession(Base):
    """
    Un turno de caja: OPEN -> CLOSING -> CLOSED.
    Solo puede existir una sesión no cerrada por (operador, punto de caja).
    """
    __tablename__ = 'caja_sesion'
    __table_args__ = (
        # El guardián real: índice único parcial sobre las sesiones no cerradas.
        # Incluye CLOSING porque un cierre fallido vuelve la sesión a OPEN.
        Index(
            'uq_caja_sesion_activa', 'operator_id', 'cash_point_id',
            unique=True,
            sqlite_where=text("state != 'CLOSED'"),
            postgresql_where=text("state != 'CLOSED'"),
        ),
        Index('ix_caja_sesion_estado_apertura', 'state', 'opened_at'),
    )
    id = Column(Integer, primary_key=True, index=True)

    # El operador lo entrega el proveedor de identidad (claim 'sub' del token)
    operator_id = Column(String(50), nullable=False, index=True)
    cash_point_id = Column(Integer, ForeignKey('punto_caja.id'), nullable=False)

    state = Column(
        Enum(CashSessionState, native_enum=False, length=10, name="estado_sesion"),
        nullable=False,
        default=CashSessionState.OPEN,
    )

    # Apertura
    opened_at = Column(DateTime, nullable=False, default=utcnow)
    opening_cash_amount = Column(Numeric(12, 2), nullable=False)
    opening_details = Column(JSON, nullable=True)  # {denominación: cantidad}

    # Cierre (solo se llenan una vez)
    closed_at = Column(DateTime, nullable=True)
    closed_by = Column(String(50), nullable=True)
    notes = Column(String(500), nullable=True)
    closing_details = Column(JSON, nullable=True)

    # Contador de movimientos: se incrementa en el mismo UPDATE que valida state='OPEN'
    movement_count = Column(Integer, nullable=False, default=0)

    cash_point = relationship("CashPoint", back_populates="sesiones")
    movements = relationship(
        "CashMovement",
        back_populates="session",
        order_by=lambda: [CashMovement.recorded_at, CashMovement.sequence],
    )
    lines = relationship(
        "CashSessionLine",
        back_populates="session",
        order_by="CashSessionLine.payment_method",
    )

class CashMovement(Base):
    """
    Un ingreso o egreso de la sesión. Se crea una vez y jamás se edita ni se borra.
    El signo lo da 'direction'; 'amount' siempre es positivo.
    """
    __tablename__ = 'caja_movimiento'
    __table_args__ = (
        UniqueConstraint('session_id', 'sequence', name='uq_caja_movimiento_secuencia'),
        Index('ix_caja_movimiento_sesion_fecha', 'session_id', 'recorded_at'),
    )
    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey('caja_sesion.id'), nullable=False)
    sequence = Column(Integer, nullable=False)

    direction = Column(Enum(MovementDirection, native_enum=False, length=10, name="tipo_movimiento"), nullable=False)
    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=10, name="medio_pago"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(200), nullable=False)

    recorded_at = Column(DateTime, nullable=False, default=utcnow)
    recorded_by = Column(String(50), nullable=True)

    session = relationship("CashSession", back_populates="movements")

class CashSessionLine(Base):
    """
    Resultado del arqueo por medio de pago: declarado, calculado y descuadre.
    Se escribe en el cierre y queda congelado.
    """
    __tablename__ = 'caja_sesion_cierre'
    __table_args__ = (
        UniqueConstraint('session_id', 'payment_method', name='uq_caja_cierre_medio'),
    )
    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey('caja_sesion.id'), nullable=False, index=True)
    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=10, name="medio_pago_cierre"), nullable=False)

    declared = Column(Numeric(12, 2), nullable=False)
    calculated = Column(Numeric(12, 2), nullable=False)
    discrepancy = Column(Numeric(12, 2), nullable=False)  # declarado - calculado

    session = relationship("CashSession", back_populates="lines")

# ==============================================================================
# 🔒 INMUTABILIDAD (el libro solo crece)
# ==============================================================================

@event.listens_for(CashMovement, "before_update")
@event.listens_for(CashSessionLine, "before_update")
def _bloquear_edicion(mapper, connection, target):
    raise ImmutableRecordException(
        f"{type(target).__name__} #{target.id} es de solo lectura."
    )

@event.listens_for(CashMovement, "before_delete")
@event.listens_for(CashSessionLine, "before_delete")
@event.listens_for(CashSession, "before_delete")
def _bloquear_borrado(mapper, connection, target):
    raise ImmutableRecordException(
        f"{type(target).__name__} #{target.id} no se puede eliminar."
    )

@event.listens_for(CashSession, "before_update")
def _bloquear_sesion_cerrada(mapper, connection, target):
    historial = inspect(target).attrs.state.history
    estado_anterior = historial.deleted[0] if historial.deleted else target.state
    if estado_anterior == CashSessionState.CLOSED:
        raise ImmutableRecordException(
            f"La sesión de caja #{target.id} está cerrada y es de solo lectura."
        )
