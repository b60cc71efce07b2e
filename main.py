# Archivo: main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.exceptions import AppBaseException
from app.core.logging_config import setup_logging
from app.db.database import init_db

# Importaciones de Endpoints
from app.api.v1.endpoints import (
    caja,
    puntos_caja
)

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Arranque: logging y tablas. No hay tareas en segundo plano.
    setup_logging(log_level=settings.LOG_LEVEL, use_json_format=settings.LOG_JSON)
    init_db()
    logger.info("Servicio de caja iniciado", extra={"context": {"project": settings.PROJECT_NAME}})
    yield

# 1. Instancia principal
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="API de sesiones de caja: apertura, libro de movimientos, cierre y arqueo por medio de pago.",
    lifespan=lifespan
)

# 2. CONFIGURACIÓN DE CORS 🛡️
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3. ERRORES: un solo formato {"code", "detail"} para todo el flujo de caja
@app.exception_handler(AppBaseException)
async def app_exception_handler(request: Request, exc: AppBaseException):
    if exc.status_code >= 500:
        logger.error(
            "Error interno",
            extra={"context": {"path": request.url.path, "code": exc.code, "detail": exc.detail}},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "detail": exc.detail},
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"code": "VALIDATION_ERROR", "detail": jsonable_encoder(exc.errors())},
    )

# 4. INCLUSIÓN DE RUTAS 🛣️
app.include_router(caja.router, prefix=settings.API_V1_STR)
app.include_router(puntos_caja.router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"message": f"Bienvenido al {settings.PROJECT_NAME} (FastAPI)"}
