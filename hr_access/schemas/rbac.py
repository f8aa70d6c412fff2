"""
RBAC request/response schemas
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from hr_access.schemas.base import ApiModel


class CheckPermissionRequest(ApiModel):
    resource: str = Field(..., min_length=1)
    permission: str = Field(..., min_length=1)
    target_user_id: Optional[str] = Field(
        default=None,
        description="Owner of the record being accessed; defaults to the caller",
    )


class CheckPermissionResponse(ApiModel):
    has_permission: bool
    scope: Optional[str] = None
    message: Optional[str] = None


class UserPermissionsResponse(ApiModel):
    user_id: str
    role: Optional[str] = None
    permissions: Dict[str, List[str]]


class AssignRoleRequest(ApiModel):
    user_id: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    expires_at: Optional[datetime] = None
    reason: Optional[str] = Field(default=None, max_length=500)


class RevokeRoleRequest(ApiModel):
    user_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)


class RoleChangeResponse(ApiModel):
    success: bool = True
    message: str
    user_id: str
    role: str
    previous_role: Optional[str] = None
    assignment_id: Optional[str] = None


class CollectionStatsOut(ApiModel):
    processed: int
    updated: int
    skipped: int
    errors: int


class BackfillRequest(ApiModel):
    dry_run: bool = False
    page_size: Optional[int] = Field(default=None, ge=1, le=5000)


class BackfillResponse(ApiModel):
    dry_run: bool
    collections: Dict[str, CollectionStatsOut]
    totals: CollectionStatsOut
