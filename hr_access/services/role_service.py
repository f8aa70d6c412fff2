"""
Role service - business logic for role definitions and permission grants

Renames reach users' cached roleName and grant changes reach the role's
permissions map through triggers, after these calls return.
"""
import logging
from typing import Any, Dict, List, Optional

from hr_access.constants import (
    COLLECTION_ROLE_DEFINITIONS,
    COLLECTION_ROLE_PERMISSIONS,
    COLLECTION_USERS,
    RESOURCE_ROLES,
)
from hr_access.core.errors import AlreadyExistsError, FailedPreconditionError, NotFoundError
from hr_access.schemas.role import RoleCreate, RolePermissionUpsert, RoleUpdate
from hr_access.services.denormalization_service import chunked
from hr_access.services.permission_service import (
    Actor,
    find_role,
    parse_permissions,
    require_permission,
    validate_resource,
)
from hr_access.store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, where

logger = logging.getLogger(__name__)


def _role_dict(doc: DocumentSnapshot) -> Dict[str, Any]:
    return {"id": doc.id, **doc.data}


def get_role_document(store: DocumentStore, role_id: str) -> DocumentSnapshot:
    role = store.get(COLLECTION_ROLE_DEFINITIONS, role_id)
    if role is None:
        raise NotFoundError(f"Role with ID '{role_id}' not found")
    return role


def create_role(store: DocumentStore, actor: Actor, role_data: RoleCreate) -> Dict[str, Any]:
    """
    Create a custom role.

    Custom roles are never system roles; the role key must be unique.
    """
    require_permission(store, actor.id, RESOURCE_ROLES, "create")

    if find_role(store, role_data.role) is not None:
        raise AlreadyExistsError(f"Role with key '{role_data.role}' already exists")

    role_id = store.new_id()
    store.set(COLLECTION_ROLE_DEFINITIONS, role_id, {
        "id": role_id,
        "role": role_data.role,
        "name": role_data.name,
        "description": role_data.description,
        "isSystemRole": False,
        "isActive": True,
        "permissions": {},
        "createdAt": SERVER_TIMESTAMP,
        "updatedAt": SERVER_TIMESTAMP,
        "createdBy": actor.id,
        "updatedBy": actor.id,
    })
    logger.info("Role created: id=%s role=%s by=%s", role_id, role_data.role, actor.id)
    return _role_dict(get_role_document(store, role_id))


def list_roles(store: DocumentStore, actor: Actor, active_only: Optional[bool] = True) -> List[Dict[str, Any]]:
    """List roles, optionally filtered by active flag."""
    require_permission(store, actor.id, RESOURCE_ROLES, "read")
    filters = [where("isActive", "==", active_only)] if active_only is not None else []
    roles = [_role_dict(doc) for doc in store.iter_query(COLLECTION_ROLE_DEFINITIONS, filters)]
    return sorted(roles, key=lambda role: role.get("role") or "")


def get_role(store: DocumentStore, actor: Actor, role_id: str) -> Dict[str, Any]:
    require_permission(store, actor.id, RESOURCE_ROLES, "read")
    return _role_dict(get_role_document(store, role_id))


def update_role(store: DocumentStore, actor: Actor, role_id: str, role_data: RoleUpdate) -> Dict[str, Any]:
    """
    Update a custom role.

    System roles cannot be modified.
    """
    require_permission(store, actor.id, RESOURCE_ROLES, "update")

    role = get_role_document(store, role_id)
    if role.get("isSystemRole") is True:
        raise FailedPreconditionError("System roles cannot be modified. Only custom roles can be updated.")

    changes = role_data.model_dump(exclude_unset=True, by_alias=True)
    store.update(COLLECTION_ROLE_DEFINITIONS, role_id, {
        **changes,
        "updatedAt": SERVER_TIMESTAMP,
        "updatedBy": actor.id,
    })
    logger.info("Role updated: id=%s fields=%s by=%s", role_id, sorted(changes), actor.id)
    return _role_dict(get_role_document(store, role_id))


def _users_with_role(store: DocumentStore, role: DocumentSnapshot) -> int:
    by_id = {doc.id for doc in store.iter_query(COLLECTION_USERS, [where("roleId", "==", role.id)])}
    by_key = {doc.id for doc in store.iter_query(COLLECTION_USERS, [where("role", "==", role.get("role"))])}
    return len(by_id | by_key)


def delete_role(store: DocumentStore, actor: Actor, role_id: str) -> None:
    """
    Delete a custom role and its permission grants.

    Refused for system roles and for roles still assigned to users.
    """
    require_permission(store, actor.id, RESOURCE_ROLES, "delete")

    role = get_role_document(store, role_id)
    if role.get("isSystemRole") is True:
        raise FailedPreconditionError("System roles cannot be deleted. Only custom roles can be removed.")

    assigned = _users_with_role(store, role)
    if assigned:
        raise FailedPreconditionError(
            f"Cannot delete role '{role.get('name')}' because {assigned} user(s) are assigned to it. "
            "Please reassign these users to another role first."
        )

    grants = list(store.iter_query(COLLECTION_ROLE_PERMISSIONS, [where("roleId", "==", role_id)]))
    for chunk in chunked(grants, 500):
        batch = store.batch()
        for grant in chunk:
            batch.delete(COLLECTION_ROLE_PERMISSIONS, grant.id)
        batch.commit()
    store.delete(COLLECTION_ROLE_DEFINITIONS, role_id)
    logger.info("Role deleted: id=%s role=%s grants=%d by=%s", role_id, role.get("role"), len(grants), actor.id)


def grant_id(role_key: str, resource: str) -> str:
    """Grant documents are keyed by (role, resource) so there is one per pair"""
    return f"{role_key}__{resource}"


def upsert_role_permission(
    store: DocumentStore,
    actor: Actor,
    role_id: str,
    resource: str,
    grant_data: RolePermissionUpsert,
) -> Dict[str, Any]:
    """Create or replace the grant of a role on ``resource``"""
    require_permission(store, actor.id, RESOURCE_ROLES, "update")
    validate_resource(resource)
    tokens = []
    for token in parse_permissions(grant_data.permissions):
        if str(token) not in tokens:
            tokens.append(str(token))

    role = get_role_document(store, role_id)
    doc_id = grant_id(role.get("role"), resource)
    existing = store.get(COLLECTION_ROLE_PERMISSIONS, doc_id)
    data = {
        "id": doc_id,
        "roleId": role_id,
        "role": role.get("role"),
        "resource": resource,
        "resourceName": grant_data.resource_name or resource,
        "permissions": tokens,
        "isActive": grant_data.is_active,
        "updatedAt": SERVER_TIMESTAMP,
        "updatedBy": actor.id,
    }
    if existing is None:
        data.update({"createdAt": SERVER_TIMESTAMP, "createdBy": actor.id})
    store.set(COLLECTION_ROLE_PERMISSIONS, doc_id, data, merge=True)
    logger.info("Grant written: role=%s resource=%s permissions=%s by=%s", role.get("role"), resource, tokens, actor.id)
    return store.get(COLLECTION_ROLE_PERMISSIONS, doc_id).data


def delete_role_permission(store: DocumentStore, actor: Actor, role_id: str, resource: str) -> None:
    require_permission(store, actor.id, RESOURCE_ROLES, "update")
    validate_resource(resource)
    role = get_role_document(store, role_id)
    doc_id = grant_id(role.get("role"), resource)
    if store.get(COLLECTION_ROLE_PERMISSIONS, doc_id) is None:
        raise NotFoundError(f"Role '{role.get('role')}' has no grant on '{resource}'")
    store.delete(COLLECTION_ROLE_PERMISSIONS, doc_id)
    logger.info("Grant removed: role=%s resource=%s by=%s", role.get("role"), resource, actor.id)
