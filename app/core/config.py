# Archivo: app/core/config.py
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Conexión PostgreSQL (opcional: sin servidor se usa SQLite local)
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_DB: str = "caja"
    POSTGRES_PORT: int = 5432

    # Permite forzar una URL completa (tests, despliegues con otro motor)
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # El proveedor de identidad firma los tokens con esta misma clave
    SECRET_KEY: str = "CAMBIAME_CLAVE_COMPARTIDA_CON_EL_PROVEEDOR_DE_IDENTIDAD"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    API_V1_STR: str = "/v1"
    PROJECT_NAME: str = "Sistema de Caja - Sesiones y Arqueo"
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:9002",
        "http://127.0.0.1:3000",
    ]

    # --- LOGGING ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # --- REGLAS DE NEGOCIO ---
    # Los egresos solo salen del cajón físico. Habilitar solo si el negocio lo aprueba.
    ALLOW_NON_CASH_EXPENSES: bool = False

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        if self.POSTGRES_SERVER:
            return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        return "sqlite:///./caja.db"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        extra='ignore'
    )

settings = Settings()

# --- CONSTANTES DE SEGURIDAD Y ROLES ---
# Estas no van dentro de Settings porque no se cargan desde el .env,
# son reglas fijas del negocio.

# Nivel 1: Ver sesiones, movimientos y arqueos (Lectura)
ROLES_LECTURA = ["SuperAdmin", "Supervisor", "Cajero", "Visual"]

# Nivel 2: Operar la caja (Abrir, registrar movimientos, cerrar)
ROLES_ESCRITURA = ["SuperAdmin", "Supervisor", "Cajero"]

# Nivel 3: Administrar puntos de caja y operar a nombre de otro cajero
ROLES_ADMIN = ["SuperAdmin", "Supervisor"]
