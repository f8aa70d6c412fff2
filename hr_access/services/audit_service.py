"""
Audit logging service

Builds append-only entries for the ``rbacAuditLogs`` collection and records
writes to role definitions and users as CREATED / UPDATED / DELETED events.
Recording is best effort: failures are logged and dropped.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from hr_access.constants import (
    COLLECTION_AUDIT_LOGS,
    COLLECTION_ROLE_DEFINITIONS,
    COLLECTION_USERS,
    SYSTEM_ACTOR_ID,
)
from hr_access.core.config import settings
from hr_access.store import SERVER_TIMESTAMP, DocumentStore, WriteBatch
from hr_access.utils.json_serializer import sanitize_for_json

logger = logging.getLogger(__name__)

CREATED = "CREATED"
UPDATED = "UPDATED"
DELETED = "DELETED"


@dataclass(frozen=True)
class AuditedCollection:
    entity: str  # prefix of the action name, e.g. ROLE -> ROLE_UPDATED
    tracked_fields: Tuple[str, ...]
    snapshot_fields: Tuple[str, ...]


AUDITED_COLLECTIONS: Dict[str, AuditedCollection] = {
    COLLECTION_ROLE_DEFINITIONS: AuditedCollection(
        entity="ROLE",
        tracked_fields=("name", "description", "isActive", "role"),
        snapshot_fields=("role", "name", "description", "isSystemRole", "isActive"),
    ),
    COLLECTION_USERS: AuditedCollection(
        entity="USER",
        tracked_fields=("displayName", "email", "role", "isActive", "phoneNumber"),
        snapshot_fields=("email", "displayName", "role", "isActive"),
    ),
}


@dataclass
class AuditClassification:
    kind: str
    changes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    permanent: bool = False
    soft_delete: bool = False


def diff_fields(
    before: Dict[str, Any],
    after: Dict[str, Any],
    tracked_fields: Tuple[str, ...],
) -> Dict[str, Dict[str, Any]]:
    """``{field: {"from": old, "to": new}}`` for every tracked field that differs"""
    return {
        name: {"from": before.get(name), "to": after.get(name)}
        for name in tracked_fields
        if before.get(name) != after.get(name)
    }


def is_soft_delete(changes: Dict[str, Dict[str, Any]]) -> bool:
    """
    Deactivation rule: an update whose only tracked change is
    ``isActive: True -> False`` is recorded as a deletion.
    """
    if set(changes) != {"isActive"}:
        return False
    return changes["isActive"]["from"] is True and changes["isActive"]["to"] is False


def classify_change(
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
    tracked_fields: Tuple[str, ...],
) -> Optional[AuditClassification]:
    """Classify a write from its snapshots; None when both are missing"""
    if before is None and after is not None:
        return AuditClassification(CREATED)
    if before is not None and after is not None:
        changes = diff_fields(before, after, tracked_fields)
        if is_soft_delete(changes):
            return AuditClassification(DELETED, changes, soft_delete=True)
        return AuditClassification(UPDATED, changes)
    if before is not None:
        return AuditClassification(DELETED, permanent=True)
    return None


def resolve_performer(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> str:
    after = after or {}
    before = before or {}
    return (
        after.get("updatedBy")
        or after.get("createdBy")
        or before.get("updatedBy")
        or before.get("createdBy")
        or SYSTEM_ACTOR_ID
    )


def lookup_email(store: DocumentStore, user_id: str) -> str:
    """Email of ``user_id`` for human-readable logs, with sentinel fallbacks"""
    if user_id == SYSTEM_ACTOR_ID:
        return settings.system_actor_email
    try:
        user = store.get(COLLECTION_USERS, user_id)
    except Exception as exc:
        logger.warning("Error fetching performer email for %s: %s", user_id, exc)
        return settings.unknown_actor_email
    if user is None:
        return settings.unknown_actor_email
    return user.get("email") or settings.unknown_actor_email


def build_audit_entry(
    action: str,
    performed_by: str,
    performed_by_email: str,
    target_user_id: Optional[str] = None,
    target_user_email: Optional[str] = None,
    role: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    entry = {
        "action": action,
        "performedBy": performed_by,
        "performedByEmail": performed_by_email,
        "metadata": sanitize_for_json(metadata or {}),
        "timestamp": SERVER_TIMESTAMP,
    }
    if target_user_id is not None:
        entry["targetUserId"] = target_user_id
        entry["targetUserEmail"] = target_user_email
    if role is not None:
        entry["role"] = role
    return entry


def add_audit_entry(store: DocumentStore, batch: WriteBatch, **kwargs) -> str:
    """Stage an audit entry in ``batch``; returns the new entry id"""
    entry_id = store.new_id()
    batch.set(COLLECTION_AUDIT_LOGS, entry_id, {"id": entry_id, **build_audit_entry(**kwargs)})
    return entry_id


def log_audit(store: DocumentStore, **kwargs) -> str:
    """Append a single audit entry on its own"""
    batch = store.batch()
    entry_id = add_audit_entry(store, batch, **kwargs)
    batch.commit()
    return entry_id


def _snapshot(data: Dict[str, Any], names: Tuple[str, ...]) -> Dict[str, Any]:
    return {name: data.get(name) for name in names}


def record_write(
    store: DocumentStore,
    collection: str,
    doc_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
) -> Optional[str]:
    """
    Append an audit entry describing a write to an audited collection

    Updates that touch no tracked field are not recorded. Returns the entry
    id, or None if nothing was recorded (including on failure).
    """
    audited = AUDITED_COLLECTIONS.get(collection)
    if audited is None:
        return None
    classification = classify_change(before, after, audited.tracked_fields)
    if classification is None:
        logger.error("Invalid document state for %s/%s", collection, doc_id)
        return None
    if classification.kind == UPDATED and not classification.changes:
        return None

    current = after if after is not None else before
    metadata: Dict[str, Any] = {"id": doc_id}
    if classification.kind == CREATED:
        metadata.update(_snapshot(current, audited.snapshot_fields))
    elif classification.permanent:
        metadata.update(_snapshot(current, audited.snapshot_fields))
        metadata["permanent"] = True
    else:
        metadata["changes"] = classification.changes
        if classification.soft_delete:
            metadata["softDelete"] = True

    performed_by = resolve_performer(before, after)
    target: Dict[str, Any] = {}
    if collection == COLLECTION_USERS:
        target = {"target_user_id": doc_id, "target_user_email": current.get("email")}

    try:
        entry_id = log_audit(
            store,
            action=f"{audited.entity}_{classification.kind}",
            performed_by=performed_by,
            performed_by_email=lookup_email(store, performed_by),
            role=current.get("role"),
            metadata=metadata,
            **target,
        )
    except Exception as exc:
        logger.error("Error creating audit log for %s/%s: %s", collection, doc_id, exc)
        return None

    logger.info(
        "Audit log created for %s_%s on %s/%s", audited.entity, classification.kind, collection, doc_id,
    )
    return entry_id
