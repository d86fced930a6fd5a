from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IdentityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    tenant_id: str
    role: str = Field(validation_alias="role_name")
    email: str | None = None
    reporting_to: str | None = None


class RecordPermissions(BaseModel):
    resource: str
    record_id: str
    can_view: bool
    can_edit: bool
    can_soft_delete: bool
    can_hard_delete: bool


class CreatePermission(BaseModel):
    resource: str
    can_create: bool


class SearchResult(BaseModel):
    resource: str
    term: str
    count: int
    items: list[dict[str, Any]]
