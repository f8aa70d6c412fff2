"""
RBAC endpoints: permission checks and role assignment
"""
from fastapi import APIRouter, Depends

from hr_access.core.deps import get_current_actor, get_store
from hr_access.schemas.rbac import (
    AssignRoleRequest,
    CheckPermissionRequest,
    CheckPermissionResponse,
    RevokeRoleRequest,
    RoleChangeResponse,
    UserPermissionsResponse,
)
from hr_access.services.assignment_service import assign_role, revoke_role
from hr_access.services.permission_service import (
    Actor,
    check_permission,
    get_user,
    get_user_permissions,
)
from hr_access.store import DocumentStore

router = APIRouter()


@router.post("/check-permission", response_model=CheckPermissionResponse)
async def check_permission_endpoint(
    request: CheckPermissionRequest,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    Check whether the caller holds a permission on a resource.

    The role checked is always the caller's own. ``targetUserId`` does not
    select another user to check; it names the owner of the record being
    accessed and only matters for ``:own`` permissions.
    """
    decision = check_permission(
        store,
        actor.id,
        request.resource,
        request.permission,
        target_user_id=request.target_user_id,
    )
    return decision.to_response()


@router.get("/me/permissions", response_model=UserPermissionsResponse)
async def my_permissions_endpoint(
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """List every grant of the caller's role, keyed by resource."""
    user = get_user(store, actor.id)
    return {
        "userId": actor.id,
        "role": user.get("role"),
        "permissions": get_user_permissions(store, actor.id),
    }


@router.post("/assign-role", response_model=RoleChangeResponse)
async def assign_role_endpoint(
    request: AssignRoleRequest,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    Assign a role to a user (requires users:update).
    """
    result = assign_role(
        store,
        actor,
        request.user_id,
        request.role,
        expires_at=request.expires_at,
        reason=request.reason,
    )
    return {**result, "message": f"Role '{request.role}' assigned successfully"}


@router.post("/revoke-role", response_model=RoleChangeResponse)
async def revoke_role_endpoint(
    request: RevokeRoleRequest,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    Revoke a user's role (requires roles:delete).
    """
    result = revoke_role(store, actor, request.user_id, reason=request.reason)
    return {**result, "message": "Role revoked successfully"}
