"""
Permission service - role-scoped permission evaluation

Permission tokens are either a bare action (``update``) or an action with a
scope (``read:own``, ``read:all``). They are parsed once into
PermissionToken and evaluated against the active grant of a role for a
resource. Nothing here is cached; every check reads current state.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Union

from hr_access.constants import (
    COLLECTION_ROLE_DEFINITIONS,
    COLLECTION_ROLE_PERMISSIONS,
    COLLECTION_USERS,
)
from hr_access.core.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from hr_access.store import DocumentSnapshot, DocumentStore, where

logger = logging.getLogger(__name__)

RESOURCE_PATTERN = re.compile(r"^[a-z][a-z0-9_-]{0,63}$")

REASON_NOT_GRANTED = "permission not granted"
REASON_SCOPE_VIOLATION = "scope violation"
REASON_NO_GRANT = "no active grant"
REASON_ROLE_INACTIVE = "role not found or inactive"
REASON_USER_INACTIVE = "user is inactive"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class Scope(str, Enum):
    OWN = "own"
    ALL = "all"


@dataclass
class Actor:
    """Authenticated caller as supplied by the identity provider"""

    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class PermissionToken:
    action: Action
    scope: Optional[Scope] = None

    @classmethod
    def parse(cls, raw: str) -> "PermissionToken":
        """Parse ``action`` or ``action:scope``; raises InvalidArgumentError"""
        if not isinstance(raw, str) or not raw.strip():
            raise InvalidArgumentError("Permission is required")
        action_part, sep, scope_part = raw.strip().partition(":")
        try:
            action = Action(action_part)
        except ValueError:
            raise InvalidArgumentError(f"Unknown permission action '{action_part}'")
        if not sep:
            return cls(action)
        try:
            return cls(action, Scope(scope_part))
        except ValueError:
            raise InvalidArgumentError(f"Unknown permission scope '{scope_part}'")

    @property
    def bare(self) -> "PermissionToken":
        return PermissionToken(self.action)

    def with_scope(self, scope: Scope) -> "PermissionToken":
        return PermissionToken(self.action, scope)

    def __str__(self) -> str:
        if self.scope is None:
            return self.action.value
        return f"{self.action.value}:{self.scope.value}"


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    scope: Optional[Scope] = None
    reason: Optional[str] = None

    def to_response(self) -> Dict[str, object]:
        return {
            "hasPermission": self.allowed,
            "scope": self.scope.value if self.scope else None,
            "message": self.reason,
        }


def validate_resource(resource: str) -> str:
    if not isinstance(resource, str) or not RESOURCE_PATTERN.match(resource):
        raise InvalidArgumentError(f"Invalid resource '{resource}'")
    return resource


def parse_permissions(raw_tokens: Iterable[str]) -> List[PermissionToken]:
    """Parse caller-supplied tokens, rejecting malformed ones"""
    return [PermissionToken.parse(raw) for raw in raw_tokens]


def _stored_tokens(raw_tokens: Iterable[str]) -> List[PermissionToken]:
    tokens = []
    for raw in raw_tokens or []:
        try:
            tokens.append(PermissionToken.parse(raw))
        except InvalidArgumentError:
            logger.warning("Ignoring malformed stored permission token %r", raw)
    return tokens


def _owns(actor_id: Optional[str], target_owner_id: Optional[str]) -> bool:
    # Without a target the actor is checking its own records
    return target_owner_id is None or actor_id == target_owner_id


def evaluate(
    granted: Sequence[Union[PermissionToken, str]],
    requested: Union[PermissionToken, str],
    actor_id: Optional[str] = None,
    target_owner_id: Optional[str] = None,
) -> PermissionDecision:
    """
    Decide whether ``granted`` covers ``requested``

    First match wins: exact token, bare action (scope all), ``action:all``,
    then ``action:own`` when ``own`` was requested. Any allowed ``:own``
    request whose target is not the actor is denied as a scope violation.
    """
    if isinstance(requested, str):
        requested = PermissionToken.parse(requested)
    grant_set = {
        token if isinstance(token, PermissionToken) else PermissionToken.parse(token)
        for token in granted
    }

    if requested in grant_set:
        decision = PermissionDecision(True, requested.scope or Scope.ALL)
    elif requested.bare in grant_set:
        decision = PermissionDecision(True, Scope.ALL)
    elif requested.with_scope(Scope.ALL) in grant_set:
        decision = PermissionDecision(True, Scope.ALL)
    elif requested.scope is Scope.OWN and requested.with_scope(Scope.OWN) in grant_set:
        decision = PermissionDecision(True, Scope.OWN)
    else:
        return PermissionDecision(False, reason=REASON_NOT_GRANTED)

    if requested.scope is Scope.OWN and not _owns(actor_id, target_owner_id):
        return PermissionDecision(False, scope=decision.scope, reason=REASON_SCOPE_VIOLATION)
    return decision


def find_role(store: DocumentStore, role_key: str) -> Optional[DocumentSnapshot]:
    """Role definition by its unique key"""
    return store.first(COLLECTION_ROLE_DEFINITIONS, [where("role", "==", role_key)])


def get_active_grant(store: DocumentStore, role_key: str, resource: str) -> Optional[DocumentSnapshot]:
    return store.first(
        COLLECTION_ROLE_PERMISSIONS,
        [
            where("role", "==", role_key),
            where("resource", "==", resource),
            where("isActive", "==", True),
        ],
    )


def evaluate_role_permission(
    store: DocumentStore,
    role_key: str,
    resource: str,
    permission: Union[PermissionToken, str],
    actor_id: Optional[str] = None,
    target_owner_id: Optional[str] = None,
) -> PermissionDecision:
    """Load the role's active grant for ``resource`` and evaluate ``permission`` against it"""
    validate_resource(resource)
    requested = permission if isinstance(permission, PermissionToken) else PermissionToken.parse(permission)

    role = find_role(store, role_key)
    if role is None or not role.get("isActive", False):
        return PermissionDecision(False, reason=REASON_ROLE_INACTIVE)

    grant = get_active_grant(store, role_key, resource)
    if grant is None:
        return PermissionDecision(False, reason=REASON_NO_GRANT)

    return evaluate(_stored_tokens(grant.get("permissions")), requested, actor_id, target_owner_id)


def get_user(store: DocumentStore, user_id: str) -> DocumentSnapshot:
    user = store.get(COLLECTION_USERS, user_id)
    if user is None:
        raise NotFoundError(f"User '{user_id}' not found")
    return user


def _user_role(user: DocumentSnapshot) -> str:
    role = user.get("role")
    if not role:
        raise FailedPreconditionError("User has no role assigned")
    return role


def check_permission(
    store: DocumentStore,
    actor_id: str,
    resource: str,
    permission: str,
    target_user_id: Optional[str] = None,
) -> PermissionDecision:
    """
    Check whether ``actor_id`` holds ``permission`` on ``resource``

    Args:
        store: Document store handle
        actor_id: Authenticated actor
        resource: Resource name (e.g. 'employees', 'leave-requests')
        permission: Requested token (e.g. 'update', 'read:own')
        target_user_id: Owner of the record being accessed, for ``:own`` checks

    Returns:
        PermissionDecision

    Raises:
        InvalidArgumentError: Malformed resource or permission
        NotFoundError: Actor has no user document
        FailedPreconditionError: Actor has no role
    """
    validate_resource(resource)
    requested = PermissionToken.parse(permission)

    user = get_user(store, actor_id)
    if not user.get("isActive", True):
        decision = PermissionDecision(False, reason=REASON_USER_INACTIVE)
    else:
        decision = evaluate_role_permission(
            store,
            _user_role(user),
            resource,
            requested,
            actor_id=actor_id,
            target_owner_id=target_user_id,
        )

    logger.info(
        "Permission checked: user=%s role=%s resource=%s permission=%s allowed=%s reason=%s",
        actor_id, user.get("role"), resource, requested, decision.allowed, decision.reason,
    )
    return decision


def require_permission(
    store: DocumentStore,
    actor_id: str,
    resource: str,
    permission: str,
    target_user_id: Optional[str] = None,
) -> PermissionDecision:
    """Like check_permission but raises PermissionDeniedError on deny"""
    decision = check_permission(store, actor_id, resource, permission, target_user_id)
    if not decision.allowed:
        raise PermissionDeniedError(
            f"Permission '{permission}' on '{resource}' denied: {decision.reason}"
        )
    return decision


def get_permission_scope(
    store: DocumentStore,
    actor_id: str,
    resource: str,
    action: str,
) -> Optional[Scope]:
    """Widest scope the actor holds for ``action`` on ``resource``, or None"""
    base = PermissionToken.parse(action).bare
    for candidate in (base.with_scope(Scope.ALL), base.with_scope(Scope.OWN), base):
        decision = check_permission(store, actor_id, resource, str(candidate))
        if decision.allowed:
            return decision.scope
    return None


def has_any_permission(store: DocumentStore, actor_id: str, resource: str, permissions: Iterable[str]) -> bool:
    return any(check_permission(store, actor_id, resource, p).allowed for p in permissions)


def has_all_permissions(store: DocumentStore, actor_id: str, resource: str, permissions: Iterable[str]) -> bool:
    return all(check_permission(store, actor_id, resource, p).allowed for p in permissions)


def get_user_permissions(store: DocumentStore, actor_id: str) -> Dict[str, List[str]]:
    """
    All grants of the actor's role, keyed by resource

    Read from the permissions map denormalized onto the role definition.
    """
    user = get_user(store, actor_id)
    role_key = user.get("role")
    if not role_key:
        return {}
    role = find_role(store, role_key)
    if role is None or not role.get("isActive", False):
        return {}
    permissions = role.get("permissions") or {}
    return {
        resource: list(entry.get("permissions") or [])
        for resource, entry in sorted(permissions.items())
        if isinstance(entry, dict)
    }
