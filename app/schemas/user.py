# app/schemas/user.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserResponse(BaseModel):
    id: str
    email: Optional[str]
    name: Optional[str]
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProviderUser(BaseModel):
    """An account as reported by the identity provider."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None


class ReconcileRequest(BaseModel):
    email: str = Field(..., min_length=3, description="Email whose enrollments to fix")


class ReconcileResponse(BaseModel):
    email: str
    canonical_user_id: str
    alias_ids: List[str] = []
    fixed_enrollments: int = 0
    errors: List[str] = []


class UserSyncResponse(BaseModel):
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    reconciled_enrollments: int = 0
    errors: List[str] = []


class RoleSyncResponse(BaseModel):
    total: int = 0
    updated: int = 0
    errors: List[str] = []
    details: List[str] = []
