"""
Pydantic schemas for the workspace registry API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from registry.store import UserRecord


class UserRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=320)
    workspaceName: Optional[str] = Field(default=None, max_length=256)


class UserResponse(BaseModel):
    email: str
    workspaceName: str
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserResponse":
        return cls(**record.as_dict())


class LoginRequest(BaseModel):
    password: str = ""


class LoginResponse(BaseModel):
    success: Literal[True]


class LogoutResponse(BaseModel):
    message: str
