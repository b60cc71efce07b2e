# Archivo: app/services/active_session_guard.py
import logging
import threading
from contextlib import contextmanager
from typing import Hashable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.enums import CashSessionState
from app.core.exceptions import ConcurrencyConflictException, SessionAlreadyOpenException
from app.db import models

logger = logging.getLogger(__name__)


class KeyedLocks:
    """
    Un candado por clave, creado a demanda y liberado cuando nadie lo usa.
    Serializa dentro del proceso; entre procesos manda la base de datos.
    """

    def __init__(self):
        self._registro = threading.Lock()
        self._locks = {}
        self._usuarios = {}

    @contextmanager
    def hold(self, key: Hashable):
        with self._registro:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
                self._usuarios[key] = 0
            self._usuarios[key] += 1
        try:
            with lock:
                yield
        finally:
            with self._registro:
                self._usuarios[key] -= 1
                if self._usuarios[key] == 0:
                    del self._locks[key]
                    del self._usuarios[key]

    def __len__(self):
        with self._registro:
            return len(self._locks)


class ActiveSessionGuard:
    """
    Guardián de la regla "una sola sesión abierta por (operador, punto de caja)"
    y punto de serialización por sesión para el libro de movimientos y el cierre.
    """

    def __init__(self):
        self._aperturas = KeyedLocks()
        self._sesiones = KeyedLocks()
        self._puntos = KeyedLocks()

    # -------------------------------------------------------------------------
    # 1. APERTURA ATÓMICA (CHEQUEO + CREACIÓN)
    # -------------------------------------------------------------------------
    def find_blocking(self, db: Session, operator_id: str, cash_point_id: int) -> Optional[models.CashSession]:
        """Sesión no cerrada (OPEN o CLOSING) que impide abrir otra con la misma clave."""
        return db.execute(
            select(models.CashSession).where(
                models.CashSession.operator_id == operator_id,
                models.CashSession.cash_point_id == cash_point_id,
                models.CashSession.state != CashSessionState.CLOSED,
            )
        ).scalars().first()

    @contextmanager
    def claim(self, db: Session, operator_id: str, cash_point_id: int):
        """
        Sección crítica de apertura. El llamador inserta y hace commit dentro del bloque.
        Si otro proceso ganó la carrera, el índice único parcial lo delata al hacer flush.
        """
        with self._aperturas.hold((operator_id, cash_point_id)):
            existente = self.find_blocking(db, operator_id, cash_point_id)
            if existente is not None:
                raise SessionAlreadyOpenException(operator_id, cash_point_id, session_id=existente.id)
            try:
                yield
            except IntegrityError:
                db.rollback()
                logger.warning(
                    "Apertura concurrente rechazada por el índice único",
                    extra={"context": {"operator_id": operator_id, "cash_point_id": cash_point_id}},
                )
                ganador = self.find_blocking(db, operator_id, cash_point_id)
                raise SessionAlreadyOpenException(
                    operator_id, cash_point_id, session_id=ganador.id if ganador else None
                ) from None
            except OperationalError as e:
                db.rollback()
                raise ConcurrencyConflictException(
                    f"No se pudo abrir la sesión por contención en la base de datos: {e.orig}"
                ) from e

    # -------------------------------------------------------------------------
    # 2. SERIALIZACIÓN POR SESIÓN
    # -------------------------------------------------------------------------
    def session_lock(self, session_id: int):
        return self._sesiones.hold(session_id)

    def cash_point_lock(self, cash_point_id: int):
        """Aperturas y desactivación del mismo punto de caja no se cruzan."""
        return self._puntos.hold(cash_point_id)

    def cash_point_is_active(self, db: Session, cash_point_id: int) -> bool:
        """Lectura directa de la base (no del mapa de identidad de la sesión)."""
        activo = db.execute(
            select(models.CashPoint.is_active).where(models.CashPoint.id == cash_point_id)
        ).scalar_one_or_none()
        return bool(activo)

    def reserve_sequence(self, db: Session, session_id: int) -> Optional[int]:
        """
        Incrementa movement_count solo si la sesión sigue OPEN.
        El UPDATE toma el candado de la fila (o de escritura en SQLite) hasta el commit,
        así ningún cierre puede colarse entre la validación y el insert.
        Devuelve la secuencia reservada o None si la sesión no está abierta.
        """
        resultado = db.execute(
            update(models.CashSession)
            .where(
                models.CashSession.id == session_id,
                models.CashSession.state == CashSessionState.OPEN,
            )
            .values(movement_count=models.CashSession.movement_count + 1)
            .execution_options(synchronize_session=False)
        )
        if resultado.rowcount != 1:
            return None
        return db.execute(
            select(models.CashSession.movement_count).where(models.CashSession.id == session_id)
        ).scalar_one()

    def transition(self, db: Session, session_id: int, desde: CashSessionState, hacia: CashSessionState) -> bool:
        """Compare-and-set del estado. True si esta llamada hizo la transición."""
        resultado = db.execute(
            update(models.CashSession)
            .where(
                models.CashSession.id == session_id,
                models.CashSession.state == desde,
            )
            .values(state=hacia)
            .execution_options(synchronize_session=False)
        )
        return resultado.rowcount == 1


# Instancia única del proceso: se crea al importar y vive hasta que el proceso termina
guard = ActiveSessionGuard()
