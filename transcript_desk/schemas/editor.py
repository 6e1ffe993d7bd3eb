"""
Editor Schemas
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EditorLogin(BaseModel):
    # Plain strings: format checks happen in the service so they surface as InvalidFormat
    email: str = Field(max_length=255)
    name: str = Field(max_length=100)


class EditorIdentity(BaseModel):
    """The acting editor, threaded explicitly into every mutating call"""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    login_time: datetime


class EditorResponse(BaseModel):
    id: str
    email: str
    name: str
    is_active: bool
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    success: bool = True
    editor: EditorIdentity
    access_token: str
    token_type: str = "bearer"


class LogoutResponse(BaseModel):
    success: bool = True
