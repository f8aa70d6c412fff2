"""
Role assignment service - change and revoke a user's role

Each operation is a saga of named steps staged into one write batch. The
batch is best effort rather than a transaction across documents: if it
fails part-way the audit trail shows the inconsistency and the backfill job
repairs the cached role name.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from hr_access.constants import (
    COLLECTION_USER_ROLE_ASSIGNMENTS,
    COLLECTION_USERS,
    RESOURCE_ROLES,
    RESOURCE_USERS,
)
from hr_access.core.config import settings
from hr_access.core.errors import FailedPreconditionError, InternalError, NotFoundError
from hr_access.services.audit_service import add_audit_entry, lookup_email
from hr_access.services.permission_service import Actor, find_role, get_user, require_permission
from hr_access.store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, WriteBatch, where
from hr_access.utils.json_serializer import sanitize_for_json

logger = logging.getLogger(__name__)

# Required grants for callers of each operation
ASSIGN_PERMISSION = (RESOURCE_USERS, "update")
REVOKE_PERMISSION = (RESOURCE_ROLES, "delete")


@dataclass
class Saga:
    """Ordered, individually idempotent steps flushed through one batch"""

    name: str
    steps: List[str] = field(default_factory=list)
    _actions: List[Callable[[WriteBatch], None]] = field(default_factory=list)

    def step(self, label: str, action: Callable[[WriteBatch], None]) -> None:
        self.steps.append(label)
        self._actions.append(action)

    def run(self, store: DocumentStore) -> None:
        batch = store.batch()
        for action in self._actions:
            action(batch)
        try:
            batch.commit()
        except Exception as exc:
            logger.error("Saga %s failed with steps %s: %s", self.name, self.steps, exc)
            raise InternalError(f"Failed to {self.name.replace('_', ' ')}")
        logger.info("Saga %s committed: %s", self.name, self.steps)


def active_assignments(store: DocumentStore, user_id: str) -> List[DocumentSnapshot]:
    return list(store.iter_query(
        COLLECTION_USER_ROLE_ASSIGNMENTS,
        [where("userId", "==", user_id), where("isActive", "==", True)],
    ))


def _performer_email(store: DocumentStore, actor: Actor) -> str:
    return actor.email or lookup_email(store, actor.id)


def _deactivate(assignments: List[DocumentSnapshot], actor: Actor, extra: Dict[str, Any]):
    def action(batch: WriteBatch) -> None:
        for doc in assignments:
            batch.update(COLLECTION_USER_ROLE_ASSIGNMENTS, doc.id, {
                "isActive": False,
                "updatedAt": SERVER_TIMESTAMP,
                "updatedBy": actor.id,
                **extra,
            })
    return action


def assign_role(
    store: DocumentStore,
    actor: Actor,
    user_id: str,
    role_key: str,
    expires_at: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Make ``role_key`` the user's single active role

    Raises:
        PermissionDeniedError: Caller lacks users:update
        NotFoundError: Target user or role does not exist
        FailedPreconditionError: Role is inactive
    """
    require_permission(store, actor.id, *ASSIGN_PERMISSION)

    target = get_user(store, user_id)
    role = find_role(store, role_key)
    if role is None:
        raise NotFoundError(f"Role '{role_key}' not found")
    if not role.get("isActive", False):
        raise FailedPreconditionError(f"Role '{role_key}' is inactive")

    previous = active_assignments(store, user_id)
    assignment_id = store.new_id()
    expires = sanitize_for_json(expires_at)

    saga = Saga("assign_role")
    saga.step("deactivate_previous_assignments", _deactivate(previous, actor, {}))
    saga.step("insert_assignment", lambda batch: batch.set(
        COLLECTION_USER_ROLE_ASSIGNMENTS, assignment_id, {
            "id": assignment_id,
            "userId": user_id,
            "userEmail": target.get("email") or "unknown",
            "userDisplayName": target.get("displayName") or "Unknown",
            "role": role_key,
            "assignedBy": actor.id,
            "isActive": True,
            "expiresAt": expires,
            "reason": reason or "Role assigned",
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
            "createdBy": actor.id,
            "updatedBy": actor.id,
        },
    ))
    saga.step("update_user_role", lambda batch: batch.update(COLLECTION_USERS, user_id, {
        "role": role_key,
        "roleId": role.id,
        "roleName": role.get("name"),
        "updatedAt": SERVER_TIMESTAMP,
        "updatedBy": actor.id,
    }))
    saga.step("append_audit_entry", lambda batch: add_audit_entry(
        store,
        batch,
        action="ROLE_ASSIGNED",
        performed_by=actor.id,
        performed_by_email=_performer_email(store, actor),
        target_user_id=user_id,
        target_user_email=target.get("email") or "unknown",
        role=role_key,
        metadata={
            "reason": reason,
            "expiresAt": expires,
            "previousRole": target.get("role"),
            "deactivatedAssignments": [doc.id for doc in previous],
        },
    ))
    saga.run(store)

    logger.info("Role assigned: caller=%s user=%s role=%s", actor.id, user_id, role_key)
    return {"userId": user_id, "role": role_key, "assignmentId": assignment_id}


def revoke_role(
    store: DocumentStore,
    actor: Actor,
    user_id: str,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Deactivate the user's active assignments and fall back to the default role

    Raises:
        PermissionDeniedError: Caller lacks roles:delete
        NotFoundError: Target user missing or no active assignment
    """
    require_permission(store, actor.id, *REVOKE_PERMISSION)

    target = get_user(store, user_id)
    previous = active_assignments(store, user_id)
    if not previous:
        raise NotFoundError("No active role assignment found for user")

    previous_role = previous[0].get("role")
    default_role = find_role(store, settings.DEFAULT_ROLE)

    saga = Saga("revoke_role")
    saga.step("deactivate_assignments", _deactivate(previous, actor, {"reason": reason or "Role revoked"}))
    saga.step("reset_user_role", lambda batch: batch.update(COLLECTION_USERS, user_id, {
        "role": settings.DEFAULT_ROLE,
        "roleId": default_role.id if default_role else None,
        "roleName": default_role.get("name") if default_role else None,
        "updatedAt": SERVER_TIMESTAMP,
        "updatedBy": actor.id,
    }))
    saga.step("append_audit_entry", lambda batch: add_audit_entry(
        store,
        batch,
        action="ROLE_REVOKED",
        performed_by=actor.id,
        performed_by_email=_performer_email(store, actor),
        target_user_id=user_id,
        target_user_email=target.get("email") or "unknown",
        role=previous_role,
        metadata={"reason": reason, "revokedAssignments": [doc.id for doc in previous]},
    ))
    saga.run(store)

    logger.info("Role revoked: caller=%s user=%s previous=%s", actor.id, user_id, previous_role)
    return {"userId": user_id, "role": settings.DEFAULT_ROLE, "previousRole": previous_role}
