import os

# La app no debe tocar ./caja.db durante las pruebas
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db import models
from app.db.database import build_engine, get_db, init_db
from app.services.active_session_guard import ActiveSessionGuard
from app.services.cash_session_service import CashSessionService
from app.services.movement_ledger_service import MovementLedgerService
from main import app


@pytest.fixture()
def engine():
    # Una sola conexión compartida: la base en memoria vive mientras dure la prueba
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def file_engine(tmp_path):
    """SQLite en archivo: varios hilos con conexiones reales para las pruebas de concurrencia."""
    engine = build_engine(f"sqlite:///{tmp_path / 'caja_concurrencia.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def guard():
    return ActiveSessionGuard()


@pytest.fixture()
def cash_point(db_session):
    punto = models.CashPoint(name="Recepción", is_active=True)
    db_session.add(punto)
    db_session.commit()
    db_session.refresh(punto)
    return punto


@pytest.fixture()
def session_service(db_session, guard):
    return CashSessionService(db_session, guard=guard)


@pytest.fixture()
def ledger(db_session, guard):
    return MovementLedgerService(db_session, guard=guard)


@pytest.fixture()
def open_session(session_service, cash_point):
    """Sesión OPEN con fondo de 100.00 para el operador 'cajero-1'."""
    return session_service.open_session("cajero-1", cash_point.id, "100.00")


# --------------------------------------------------------------------
# HTTP
# --------------------------------------------------------------------
@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_headers():
    def _headers(operator_id: str = "cajero-1", rol: str = "Cajero") -> dict:
        token = create_access_token({"sub": operator_id, "rol": rol})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture()
def cajero_headers(make_headers):
    return make_headers("cajero-1", "Cajero")


@pytest.fixture()
def admin_headers(make_headers):
    return make_headers("supervisor-1", "Supervisor")
