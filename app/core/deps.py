from typing import List

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import BaseModel

from app.core import security

# El token lo emite el proveedor de identidad externo; aquí solo se valida
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/v1/login")

class Operador(BaseModel):
    """Identidad mínima que la caja necesita del proveedor de identidad."""
    id: str
    rol: str

def get_current_operator(token: str = Depends(oauth2_scheme)) -> Operador:
    """
    Dependencia que valida el token y devuelve el operador actual.
    Si el token es falso o expiró, lanza error 401.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No se pudieron validar las credenciales",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = security.decode_access_token(token)

        # El ID del operador viaja como 'sub'
        operator_id = payload.get("sub")
        rol = payload.get("rol")
        if operator_id is None or rol is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    return Operador(id=str(operator_id), rol=rol)

def require_roles(operator: Operador, roles: List[str], detail: str = "Acceso denegado.") -> None:
    """Corta con 403 si el rol del operador no está en la lista."""
    if operator.rol not in roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
