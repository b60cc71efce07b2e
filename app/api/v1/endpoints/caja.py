from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional, Union

from app.db.database import get_db
from app.services.cash_session_service import CashSessionService
from app.services.movement_ledger_service import MovementLedgerService
from app.schemas import caja_schema

# SEGURIDAD
from app.core.deps import Operador, get_current_operator, require_roles
from app.core.config import ROLES_ADMIN, ROLES_ESCRITURA, ROLES_LECTURA

router = APIRouter(
    prefix="/caja/sesiones",
    tags=["Control de Caja (Sesiones y Arqueo)"]
)

def get_session_service(db: Session = Depends(get_db)) -> CashSessionService:
    return CashSessionService(db)

def get_ledger_service(db: Session = Depends(get_db)) -> MovementLedgerService:
    return MovementLedgerService(db)

def _exigir_titular(servicio: CashSessionService, session_id: int, current_user: Operador) -> None:
    """Solo el titular de la sesión (o un administrador) puede operarla."""
    sesion = servicio.get_session(session_id)
    if sesion.operator_id != current_user.id:
        require_roles(current_user, ROLES_ADMIN, "La sesión pertenece a otro operador.")

# --------------------------------------------------------------------
# 1. POST: ABRIR CAJA
# --------------------------------------------------------------------
@router.post("/open", response_model=caja_schema.CashSessionOpened, status_code=status.HTTP_201_CREATED)
def abrir_caja(
    datos: caja_schema.CashSessionOpen,
    servicio: CashSessionService = Depends(get_session_service),
    current_user: Operador = Depends(get_current_operator)
):
    """
    Abre un turno de caja con su fondo inicial.
    Requiere: Rol Operativo. Abrir a nombre de otro operador requiere nivel Administrativo.
    """
    require_roles(current_user, ROLES_ESCRITURA, "No tiene permisos para abrir caja.")

    operator_id = datos.operator_id or current_user.id
    if operator_id != current_user.id:
        require_roles(current_user, ROLES_ADMIN, "Solo un administrador puede abrir caja a nombre de otro operador.")

    sesion = servicio.open_session(
        operator_id=operator_id,
        cash_point_id=datos.cash_point_id,
        opening_cash_amount=datos.opening_cash_amount,
        opening_details=datos.opening_details,
    )
    return caja_schema.CashSessionOpened(
        session_id=sesion.id,
        state=sesion.state.value,
        opened_at=sesion.opened_at,
        opening_cash_amount=sesion.opening_cash_amount,
    )

# --------------------------------------------------------------------
# 2. POST: REGISTRAR MOVIMIENTO
# --------------------------------------------------------------------
@router.post("/movements", response_model=caja_schema.MovementRecorded, status_code=status.HTTP_201_CREATED)
def registrar_movimiento(
    datos: caja_schema.MovementCreate,
    servicio: CashSessionService = Depends(get_session_service),
    libro: MovementLedgerService = Depends(get_ledger_service),
    current_user: Operador = Depends(get_current_operator)
):
    """Agrega un ingreso o egreso a una sesión abierta."""
    require_roles(current_user, ROLES_ESCRITURA, "No tiene permisos para registrar movimientos.")
    _exigir_titular(servicio, datos.session_id, current_user)

    movimiento = libro.record_movement(
        session_id=datos.session_id,
        direction=datos.direction,
        payment_method=datos.payment_method,
        amount=datos.amount,
        description=datos.description,
        recorded_by=current_user.id,
    )
    return caja_schema.MovementRecorded(movement_id=movimiento.id, recorded_at=movimiento.recorded_at)

# --------------------------------------------------------------------
# 3. POST: CERRAR CAJA (ARQUEO)
# --------------------------------------------------------------------
@router.post("/close", response_model=caja_schema.CloseSessionReport)
def cerrar_caja(
    datos: caja_schema.CashSessionClose,
    servicio: CashSessionService = Depends(get_session_service),
    current_user: Operador = Depends(get_current_operator)
):
    """
    Cierra el turno: congela el libro, calcula lo esperado por medio de pago
    y lo compara contra lo declarado. Repetir el mismo cierre devuelve el mismo arqueo.
    """
    require_roles(current_user, ROLES_ESCRITURA, "No tiene permisos para cerrar caja.")
    _exigir_titular(servicio, datos.session_id, current_user)

    return servicio.close_session(
        session_id=datos.session_id,
        declared=datos.declared.model_dump(),
        notes=datos.notes,
        closing_details=datos.closing_details,
        closed_by=current_user.id,
    )

# --------------------------------------------------------------------
# 4. GET: SESIÓN ACTIVA
# --------------------------------------------------------------------
@router.get("/active", response_model=Union[caja_schema.ActiveSessionFound, caja_schema.NoActiveSession])
def ver_sesion_activa(
    cash_point_id: int,
    operator_id: Optional[str] = None,
    servicio: CashSessionService = Depends(get_session_service),
    current_user: Operador = Depends(get_current_operator)
):
    """
    ¿Hay caja abierta? No tener sesión activa no es un error: responde {"none": true}.
    """
    require_roles(current_user, ROLES_LECTURA)

    sesion = servicio.get_active_session(operator_id or current_user.id, cash_point_id)
    if sesion is None:
        return caja_schema.NoActiveSession()
    return caja_schema.ActiveSessionFound(session=servicio.to_read(sesion))

# --------------------------------------------------------------------
# 5. GET: HISTORIAL DE SESIONES
# --------------------------------------------------------------------
@router.get("/", response_model=caja_schema.SessionSearchResult)
def buscar_sesiones(
    state: Optional[str] = Query(None, description="OPEN, CLOSING o CLOSED"),
    operator_id: Optional[str] = None,
    cash_point_id: Optional[int] = None,
    skip: int = Query(0, ge=0, description="Número de registros a saltar para paginación"),
    limit: int = Query(100, ge=1, le=500, description="Número máximo de registros a devolver"),
    servicio: CashSessionService = Depends(get_session_service),
    current_user: Operador = Depends(get_current_operator)
):
    require_roles(current_user, ROLES_LECTURA)
    return servicio.search_sessions(
        state=state, operator_id=operator_id, cash_point_id=cash_point_id, skip=skip, limit=limit
    )

# --------------------------------------------------------------------
# 6. GET: DETALLE, LIBRO, RESUMEN Y ARQUEO DE UNA SESIÓN
# --------------------------------------------------------------------
@router.get("/{session_id}", response_model=caja_schema.CashSessionRead)
def ver_sesion(
    session_id: int,
    servicio: CashSessionService = Depends(get_session_service),
    current_user: Operador = Depends(get_current_operator)
):
    require_roles(current_user, ROLES_LECTURA)
    return servicio.to_read(servicio.get_session(session_id))

@router.get("/{session_id}/movements", response_model=List[caja_schema.MovementRead])
def ver_movimientos(
    session_id: int,
    libro: MovementLedgerService = Depends(get_ledger_service),
    current_user: Operador = Depends(get_current_operator)
):
    """Libro de la sesión en orden cronológico."""
    require_roles(current_user, ROLES_LECTURA)
    return libro.list_movements(session_id)

@router.get("/{session_id}/summary", response_model=caja_schema.SessionSummary)
def ver_resumen(
    session_id: int,
    libro: MovementLedgerService = Depends(get_ledger_service),
    current_user: Operador = Depends(get_current_operator)
):
    """Totales en vivo: ¿cuánto debería haber en el cajón ahora mismo?"""
    require_roles(current_user, ROLES_LECTURA)
    return libro.summarize(session_id)

@router.get("/{session_id}/report", response_model=caja_schema.CloseSessionReport)
def ver_arqueo(
    session_id: int,
    servicio: CashSessionService = Depends(get_session_service),
    current_user: Operador = Depends(get_current_operator)
):
    require_roles(current_user, ROLES_LECTURA)
    return servicio.get_report(session_id)
