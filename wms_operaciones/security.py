# wms_operaciones/security.py
from typing import Optional, List
from jose import JWTError, jwt
from pydantic import BaseModel
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from wms_operaciones import config
from wms_operaciones.exceptions import PermissionDeniedError, ErrorCodes

# Los tokens los emite el servicio de identidad; aquí solo se verifican
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

# --- Permisos del módulo ---
PERM_VIEW = "operaciones.can_view"
PERM_EDIT = "operaciones.can_edit"
PERM_ASSIGN = "operaciones.can_assign"
PERM_PROCESS = "operaciones.can_process"


# Modelo Pydantic para los datos del token
class TokenData(BaseModel):
    username: Optional[str] = None
    user_id: Optional[int] = None
    permissions: List[str] = []


def create_access_token(data: dict) -> str:
    """Firma un token con las claims dadas (usado por herramientas internas y tests)."""
    return jwt.encode(data.copy(), config.SECRET_KEY, algorithm=config.JWT_ALGORITHM)


async def get_current_user_data(token: str = Depends(oauth2_scheme)) -> TokenData:
    """
    Dependencia de FastAPI: Valida el token y devuelve los datos del usuario.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No se pudieron validar las credenciales",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = TokenData(
            username=username,
            user_id=payload.get("user_id"),
            permissions=payload.get("permissions", []),
        )
    except JWTError:
        raise credentials_exception
    return token_data


def require_permission(auth: TokenData, permission: str) -> None:
    if permission not in auth.permissions:
        raise PermissionDeniedError(
            "No autorizado",
            ErrorCodes.PERMISSION_DENIED,
            {"permiso": permission, "usuario": auth.username}
        )
