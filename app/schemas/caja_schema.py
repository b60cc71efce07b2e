# Archivo: app/schemas/caja_schema.py
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Mapping, Optional

from app.core.enums import MovementDirection, PaymentMethod

# --- MONTOS POR MEDIO DE PAGO (declarado / calculado / descuadre) ---
class AmountsByMethod(BaseModel):
    cash: Decimal
    card: Decimal
    transfer: Decimal
    other: Decimal

    @classmethod
    def from_mapping(cls, montos: Mapping) -> "AmountsByMethod":
        """Acepta claves PaymentMethod o texto ('CASH', 'cash')."""
        normalizado = {getattr(k, "value", k).lower(): v for k, v in montos.items()}
        return cls(**normalizado)

# ==============================================================================
# SESIONES
# ==============================================================================

# --- INPUT: ABRIR CAJA ---
class CashSessionOpen(BaseModel):
    # Si no viene, se usa el operador del token
    operator_id: Optional[str] = Field(None, max_length=50)
    cash_point_id: int
    opening_cash_amount: Decimal = Field(..., description="Fondo inicial en efectivo (>= 0)")
    # Conteo de billetes/monedas: {"1000": 2, "50": 3}
    opening_details: Optional[Dict[str, int]] = None

# --- OUTPUT: CAJA ABIERTA ---
class CashSessionOpened(BaseModel):
    session_id: int
    state: str
    opened_at: datetime
    opening_cash_amount: Decimal

# --- INPUT: MONTOS DECLARADOS AL CIERRE ---
class DeclaredAmounts(BaseModel):
    # Opcionales aquí para que el servicio responda VALIDATION_ERROR con el detalle exacto
    cash: Optional[Decimal] = None
    card: Optional[Decimal] = None
    transfer: Optional[Decimal] = None
    other: Optional[Decimal] = None

    model_config = ConfigDict(extra="forbid")

# --- INPUT: CERRAR CAJA ---
class CashSessionClose(BaseModel):
    session_id: int
    declared: DeclaredAmounts
    notes: Optional[str] = Field(None, max_length=500)
    closing_details: Optional[Dict[str, int]] = None

# --- OUTPUT: REPORTE DE ARQUEO ---
class CloseSessionReport(BaseModel):
    session_id: int
    state: str
    declared: AmountsByMethod
    calculated: AmountsByMethod
    discrepancy: AmountsByMethod  # + sobrante / - faltante
    balanced: bool
    notes: Optional[str] = None
    closed_by: Optional[str] = None
    closed_at: datetime

# --- OUTPUT: DETALLE DE SESIÓN ---
class CashSessionRead(BaseModel):
    id: int
    operator_id: str
    cash_point_id: int
    cash_point_name: Optional[str] = None
    state: str
    opened_at: datetime
    opening_cash_amount: Decimal
    opening_details: Optional[Dict[str, int]] = None
    movement_count: int = 0

    # Datos de cierre
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    notes: Optional[str] = None
    closing_details: Optional[Dict[str, int]] = None
    declared: Optional[AmountsByMethod] = None
    calculated: Optional[AmountsByMethod] = None
    discrepancy: Optional[AmountsByMethod] = None

    model_config = ConfigDict(from_attributes=True)

# --- OUTPUT: SESIÓN ACTIVA (o ninguna) ---
class ActiveSessionFound(BaseModel):
    session: CashSessionRead

class NoActiveSession(BaseModel):
    none: Literal[True] = True

# --- OUTPUT: HISTORIAL PAGINADO ---
class SessionSearchResult(BaseModel):
    total: int
    items: List[CashSessionRead]

# ==============================================================================
# MOVIMIENTOS
# ==============================================================================

# --- INPUT: REGISTRAR MOVIMIENTO ---
class MovementCreate(BaseModel):
    session_id: int
    direction: str = Field(..., description="INCOME o EXPENSE")
    payment_method: str = Field(..., description="CASH, CARD, TRANSFER, OTHER (o código del panel)")
    amount: Decimal
    description: str

# --- OUTPUT: MOVIMIENTO REGISTRADO ---
class MovementRecorded(BaseModel):
    movement_id: int
    recorded_at: datetime

# --- OUTPUT: FILA DEL LIBRO ---
class MovementRead(BaseModel):
    id: int
    session_id: int
    sequence: int
    direction: MovementDirection
    payment_method: PaymentMethod
    amount: Decimal
    description: str
    recorded_at: datetime
    recorded_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

# --- OUTPUT: RESUMEN EN VIVO ---
class MethodTotals(BaseModel):
    payment_method: str
    incomes: Decimal
    expenses: Decimal
    calculated: Decimal

class SessionSummary(BaseModel):
    session_id: int
    state: str
    opening_cash_amount: Decimal
    movement_count: int
    total_income: Decimal
    total_expense: Decimal
    by_method: List[MethodTotals]
    generated_at: datetime
