"""
Dependencies and guards for FastAPI endpoints
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hr_access.core.errors import UnauthenticatedError
from hr_access.core.security import decode_token
from hr_access.services.permission_service import Actor, require_permission as check_required
from hr_access.store import DocumentStore

security = HTTPBearer(auto_error=False)

_store: Optional[DocumentStore] = None


def get_store() -> DocumentStore:
    """Dependency for getting the shared document store"""
    global _store
    if _store is None:
        from hr_access.db.session import build_store
        _store = build_store()
    return _store


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """
    Get the authenticated caller from the bearer token

    The ``sub`` claim is the actor id; ``email`` is optional.
    """
    if credentials is None:
        raise UnauthenticatedError("User must be authenticated")

    try:
        payload = decode_token(credentials.credentials)
    except ValueError:
        raise UnauthenticatedError("Invalid authentication credentials")

    sub_value = payload.get("sub")
    if not sub_value:
        raise UnauthenticatedError("Invalid authentication credentials")

    return Actor(id=str(sub_value), email=payload.get("email"))


def require_permission(resource: str, permission: str):
    """
    Dependency factory for permission-based access control

    Usage:
        @router.post("/backfill")
        async def backfill(actor: Actor = Depends(require_permission("settings", "update"))):
            ...
    """
    def permission_checker(
        actor: Actor = Depends(get_current_actor),
        store: DocumentStore = Depends(get_store),
    ) -> Actor:
        check_required(store, actor.id, resource, permission)
        return actor
    return permission_checker


def shutdown_store() -> None:
    global _store
    if _store is not None and _store.dispatcher is not None:
        _store.dispatcher.shutdown()
    _store = None
