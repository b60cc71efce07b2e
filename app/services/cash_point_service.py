# Archivo: app/services/cash_point_service.py
import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.enums import CashSessionState
from app.core.exceptions import CashPointNotFoundException, DuplicateEntryException, ValidationException
from app.db import models
from app.schemas import punto_caja_schema as schemas
from app.services.active_session_guard import ActiveSessionGuard, guard as default_guard

logger = logging.getLogger(__name__)

class CashPointService:
    def __init__(self, db: Session, guard: ActiveSessionGuard = default_guard):
        self.db = db
        self.guard = guard

    def get_all(self, skip: int = 0, limit: int = 100, only_active: bool = False) -> List[models.CashPoint]:
        query = self.db.query(models.CashPoint)
        if only_active:
            query = query.filter(models.CashPoint.is_active.is_(True))
        return query.order_by(models.CashPoint.name).offset(skip).limit(limit).all()

    def get_by_id(self, id: int) -> models.CashPoint:
        punto = self.db.query(models.CashPoint).filter(models.CashPoint.id == id).first()
        if not punto:
            raise CashPointNotFoundException(id)
        return punto

    def create(self, punto_in: schemas.CashPointCreate) -> models.CashPoint:
        nombre = punto_in.name.strip()
        if not nombre:
            raise ValidationException("El nombre del punto de caja es obligatorio.")

        # 1. Validar nombre único
        existe = self.db.query(models.CashPoint).filter(models.CashPoint.name == nombre).first()
        if existe:
            raise DuplicateEntryException(f"El punto de caja '{nombre}' ya existe.")

        # 2. Crear el objeto
        db_obj = models.CashPoint(name=nombre, is_active=punto_in.is_active)

        try:
            self.db.add(db_obj)
            self.db.commit()
            self.db.refresh(db_obj)
        except IntegrityError:
            self.db.rollback()
            # Otro administrador lo creó al mismo tiempo
            raise DuplicateEntryException(f"El punto de caja '{nombre}' ya existe.") from None

        logger.info("Punto de caja creado", extra={"context": {"cash_point_id": db_obj.id, "name": nombre}})
        return db_obj

    def update(self, id: int, punto_in: schemas.CashPointUpdate) -> models.CashPoint:
        db_obj = self.get_by_id(id) # Valida 404
        update_data = punto_in.model_dump(exclude_unset=True)

        # Validar nombre único si está cambiando
        if update_data.get("name") is not None:
            update_data["name"] = update_data["name"].strip()
            if not update_data["name"]:
                raise ValidationException("El nombre del punto de caja es obligatorio.")
            if update_data["name"] != db_obj.name:
                existe = self.db.query(models.CashPoint).filter(models.CashPoint.name == update_data["name"]).first()
                if existe:
                    raise DuplicateEntryException(f"El nombre '{update_data['name']}' ya está en uso.")

        # --- 🔒 Mismo candado que la apertura: chequeo y commit sin aperturas en el medio ---
        with self.guard.cash_point_lock(id):
            if update_data.get("is_active") is False and db_obj.is_active:
                abierta = self.db.query(models.CashSession).filter(
                    models.CashSession.cash_point_id == id,
                    models.CashSession.state != CashSessionState.CLOSED,
                ).first()
                if abierta:
                    raise ValidationException(
                        f"El punto de caja '{db_obj.name}' tiene la sesión #{abierta.id} sin cerrar."
                    )

            for key, value in update_data.items():
                if value is not None:
                    setattr(db_obj, key, value)

            try:
                self.db.commit()
                self.db.refresh(db_obj)
                return db_obj
            except IntegrityError:
                self.db.rollback()
                raise DuplicateEntryException("Error de integridad al actualizar el punto de caja.") from None

    def get_status(self) -> List[schemas.CashPointStatus]:
        """Cada punto de caja activo con sus sesiones no cerradas."""
        puntos = self.get_all(limit=1000, only_active=True)
        sesiones = self.db.query(models.CashSession).filter(
            models.CashSession.state != CashSessionState.CLOSED
        ).order_by(models.CashSession.opened_at).all()

        por_punto = {}
        for s in sesiones:
            por_punto.setdefault(s.cash_point_id, []).append(schemas.ActiveSessionInfo(
                session_id=s.id,
                operator_id=s.operator_id,
                state=s.state.value,
                opened_at=s.opened_at,
            ))

        return [
            schemas.CashPointStatus(
                id=p.id,
                name=p.name,
                is_active=p.is_active,
                active_sessions=por_punto.get(p.id, []),
            )
            for p in puntos
        ]
