"""
Role definition and permission grant endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from hr_access.core.deps import get_current_actor, get_store
from hr_access.schemas.role import RoleCreate, RoleOut, RolePermissionOut, RolePermissionUpsert, RoleUpdate
from hr_access.services.permission_service import Actor
from hr_access.services.role_service import (
    create_role,
    delete_role,
    delete_role_permission,
    get_role,
    list_roles,
    update_role,
    upsert_role_permission,
)
from hr_access.store import DocumentStore


router = APIRouter()


@router.post("", response_model=RoleOut, status_code=201)
async def create_role_endpoint(
    role_data: RoleCreate,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    Create a custom role (requires roles:create).
    """
    return create_role(store, actor, role_data)


@router.get("", response_model=List[RoleOut])
async def list_roles_endpoint(
    active_only: Optional[bool] = Query(
        True,
        description="If true, return only active roles",
    ),
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    List roles (requires roles:read).
    """
    return list_roles(store, actor, active_only=active_only)


@router.get("/{role_id}", response_model=RoleOut)
async def get_role_endpoint(
    role_id: str,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    Get a role by ID (requires roles:read).
    """
    return get_role(store, actor, role_id)


@router.patch("/{role_id}", response_model=RoleOut)
async def update_role_endpoint(
    role_id: str,
    role_data: RoleUpdate,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    Update a custom role (requires roles:update). System roles are rejected.
    """
    return update_role(store, actor, role_id, role_data)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role_endpoint(
    role_id: str,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    Delete a custom role and its grants (requires roles:delete).
    """
    delete_role(store, actor, role_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{role_id}/permissions/{resource}", response_model=RolePermissionOut)
async def upsert_role_permission_endpoint(
    role_id: str,
    resource: str,
    grant_data: RolePermissionUpsert,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    Create or replace the role's grant on a resource (requires roles:update).
    """
    return upsert_role_permission(store, actor, role_id, resource, grant_data)


@router.delete("/{role_id}/permissions/{resource}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role_permission_endpoint(
    role_id: str,
    resource: str,
    store: DocumentStore = Depends(get_store),
    actor: Actor = Depends(get_current_actor),
):
    """
    Remove the role's grant on a resource (requires roles:update).
    """
    delete_role_permission(store, actor, role_id, resource)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
