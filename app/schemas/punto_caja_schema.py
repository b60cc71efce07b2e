from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import List, Optional

# ----------------------------------------------------
# Base Schema
# ----------------------------------------------------
class CashPointBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    is_active: bool = Field(True)

# ----------------------------------------------------
# Create Schema
# ----------------------------------------------------
class CashPointCreate(CashPointBase):
    pass

# ----------------------------------------------------
# Update Schema
# ----------------------------------------------------
class CashPointUpdate(BaseModel):
    # Todos opcionales para PATCH
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None

# ----------------------------------------------------
# Main Schema (Response)
# ----------------------------------------------------
class CashPoint(CashPointBase):
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

# ----------------------------------------------------
# Estado de las cajas (tablero del cajero)
# ----------------------------------------------------
class ActiveSessionInfo(BaseModel):
    session_id: int
    operator_id: str
    state: str
    opened_at: datetime

class CashPointStatus(BaseModel):
    id: int
    name: str
    is_active: bool
    active_sessions: List[ActiveSessionInfo] = []
