from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from app.db.database import get_db
from app.schemas import punto_caja_schema as schemas
from app.services.cash_point_service import CashPointService
# SEGURIDAD
from app.core.deps import Operador, get_current_operator, require_roles
from app.core.config import ROLES_LECTURA, ROLES_ADMIN

router = APIRouter(
    prefix="/caja/puntos",
    tags=["Puntos de Caja"]
)

# Dependencia para inyectar el servicio
def get_service(db: Session = Depends(get_db)) -> CashPointService:
    return CashPointService(db)

# 1. CREAR (Solo Admin)
@router.post("/", response_model=schemas.CashPoint, status_code=status.HTTP_201_CREATED)
def create_cash_point(
    punto_in: schemas.CashPointCreate,
    service: CashPointService = Depends(get_service),
    current_user: Operador = Depends(get_current_operator)
):
    require_roles(current_user, ROLES_ADMIN, "Solo administradores pueden configurar puntos de caja.")
    return service.create(punto_in)

# 2. LISTAR (Todos)
@router.get("/", response_model=List[schemas.CashPoint])
def read_cash_points(
    skip: int = 0,
    limit: int = 100,
    only_active: bool = False,
    service: CashPointService = Depends(get_service),
    current_user: Operador = Depends(get_current_operator)
):
    require_roles(current_user, ROLES_LECTURA)
    return service.get_all(skip=skip, limit=limit, only_active=only_active)

# 3. ESTADO DE LAS CAJAS (Todos)
@router.get("/estado", response_model=List[schemas.CashPointStatus])
def read_cash_points_status(
    service: CashPointService = Depends(get_service),
    current_user: Operador = Depends(get_current_operator)
):
    """Cajas activas y quién tiene turno abierto en cada una."""
    require_roles(current_user, ROLES_LECTURA)
    return service.get_status()

# 4. LEER UNO (Todos)
@router.get("/{cash_point_id}", response_model=schemas.CashPoint)
def read_cash_point(
    cash_point_id: int,
    service: CashPointService = Depends(get_service),
    current_user: Operador = Depends(get_current_operator)
):
    require_roles(current_user, ROLES_LECTURA)
    return service.get_by_id(cash_point_id)

# 5. ACTUALIZAR / DESACTIVAR (Solo Admin)
@router.patch("/{cash_point_id}", response_model=schemas.CashPoint)
def update_cash_point(
    cash_point_id: int,
    punto_in: schemas.CashPointUpdate,
    service: CashPointService = Depends(get_service),
    current_user: Operador = Depends(get_current_operator)
):
    require_roles(current_user, ROLES_ADMIN, "No tiene permisos para modificar puntos de caja.")
    return service.update(cash_point_id, punto_in)
