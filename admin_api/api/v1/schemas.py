# admin_api/api/v1/schemas.py
from typing import Any, Dict, Literal

from pydantic import BaseModel, Field


class LoginIn(BaseModel):
    username: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=1, max_length=300)


class AdminUser(BaseModel):
    username: str
    role: Literal["admin"] = "admin"


class TokenOut(BaseModel):
    accessToken: str
    expiresIn: int
    user: AdminUser


class LogoutOut(BaseModel):
    ok: bool = True


class AssetUploadIn(BaseModel):
    filename: str = Field(min_length=1, max_length=180)
    dataUrl: str = Field(min_length=30, max_length=10_000_000)


class AssetUploadOut(BaseModel):
    url: str
    size: int
    storage: str
    type: str


class DeleteOut(BaseModel):
    ok: bool = True
    removed: Dict[str, Any]
