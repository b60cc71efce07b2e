import logging

from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker, declarative_base
# IMPORTANTE: Aquí importamos la configuración central
from app.core.config import settings

def build_engine(database_url: str):
    """Crea el motor ajustando los parámetros que SQLite necesita."""
    if database_url.startswith("sqlite"):
        # check_same_thread=False: FastAPI atiende en varios hilos.
        # timeout: espera el candado de escritura en lugar de fallar enseguida.
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    # pool_pre_ping=True verifica que la conexión siga viva antes de usarla
    return create_engine(database_url, pool_pre_ping=True)

# 1. Crear el motor (Engine)
engine = build_engine(settings.DATABASE_URL)

# 2. Configurar la Sesión
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 3. Base Declarativa
Base = declarative_base()

logger = logging.getLogger(__name__)

# 4. Dependencia para obtener la DB
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db(bind=None) -> None:
    """Crea las tablas al arrancar el proceso (idempotente) y recupera cierres interrumpidos."""
    # Importar los modelos registra las tablas en Base.metadata
    from app.db import models  # noqa: F401
    motor = bind or engine
    Base.metadata.create_all(bind=motor)
    recover_interrupted_closings(motor)

def recover_interrupted_closings(bind) -> int:
    """
    CLOSING solo existe dentro de un cierre en curso. Al arrancar no hay ninguno,
    así que toda sesión en CLOSING quedó de un cierre que murió a mitad: vuelve a OPEN.
    """
    from app.core.enums import CashSessionState
    from app.db import models

    with bind.begin() as conn:
        resultado = conn.execute(
            update(models.CashSession)
            .where(models.CashSession.state == CashSessionState.CLOSING)
            .values(state=CashSessionState.OPEN)
        )
    if resultado.rowcount:
        logger.warning(
            "Cierres interrumpidos revertidos a OPEN",
            extra={"context": {"sessions": resultado.rowcount}},
        )
    return resultado.rowcount
