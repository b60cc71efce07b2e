from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt # Librería python-jose

from app.core.config import settings

# --- CONFIGURACIÓN DE SEGURIDAD ---
# La clave se comparte con el proveedor de identidad que emite los tokens
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """Genera un Token JWT (lo usa el proveedor de identidad y las pruebas)."""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    # Agregamos la fecha de expiración al token
    to_encode.update({"exp": expire})

    # Firmamos digitalmente
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt

def decode_access_token(token: str) -> dict:
    """Valida firma y expiración. Lanza JWTError si el token no sirve."""
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
