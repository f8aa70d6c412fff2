"""
Role schemas

Role definitions and the permission grants attached to them.
"""
from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from hr_access.schemas.base import ApiModel


class RoleCreate(ApiModel):
    """Schema for creating a custom role"""

    role: str = Field(
        ...,
        min_length=3,
        max_length=50,
        pattern=r"^[a-z][a-z0-9_]*$",
        description="Unique role key: lowercase letters, digits and underscores, starting with a letter",
    )
    name: str = Field(..., min_length=2, max_length=100, description="Display name")
    description: str = Field(..., min_length=10, max_length=500)


class RoleUpdate(ApiModel):
    """Schema for updating a custom role"""

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=500)
    is_active: Optional[bool] = Field(default=None, description="Updated active flag")

    @field_validator("name", "description", "is_active")
    @classmethod
    def not_null(cls, v):
        # Omit a field to leave it unchanged; null is not a value
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    @model_validator(mode="after")
    def at_least_one_field(self) -> "RoleUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class PermissionEntry(ApiModel):
    resource: str
    resource_name: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)


class RoleOut(ApiModel):
    """Role output schema"""

    id: str
    role: str
    name: str
    description: Optional[str] = None
    is_system_role: bool = False
    is_active: bool = True
    permissions: Dict[str, PermissionEntry] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class RolePermissionUpsert(ApiModel):
    """Grant written for one (role, resource) pair"""

    resource_name: Optional[str] = Field(default=None, max_length=100)
    permissions: List[str] = Field(
        ...,
        description="Tokens such as 'create', 'read:own', 'read:all'",
    )
    is_active: bool = True


class RolePermissionOut(ApiModel):
    id: str
    role_id: str
    role: str
    resource: str
    resource_name: Optional[str] = None
    permissions: List[str]
    is_active: bool
