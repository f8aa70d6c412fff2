"""
Trigger wiring

Connects committed change events to the services that react to them:
reference updates fan out to cached copies, permission grants are mirrored
onto their role, and writes to roles and users are audited.
"""
import logging

from hr_access.constants import (
    COLLECTION_ROLE_DEFINITIONS,
    COLLECTION_ROLE_PERMISSIONS,
    COLLECTION_USERS,
)
from hr_access.services import audit_service
from hr_access.services.denormalization_service import (
    PROPAGATION_RULES,
    propagate_reference_update,
    sync_role_permissions,
)
from hr_access.store import ChangeEvent, DocumentStore, TriggerDispatcher
from hr_access.store.dispatcher import WRITE_KINDS

logger = logging.getLogger(__name__)

AUDITED = (COLLECTION_ROLE_DEFINITIONS, COLLECTION_USERS)


def on_reference_updated(store: DocumentStore, event: ChangeEvent) -> None:
    propagate_reference_update(store, event.collection, event.doc_id, event.before, event.after)


def on_grant_written(store: DocumentStore, event: ChangeEvent) -> None:
    sync_role_permissions(store, event.before, event.after)


def on_audited_write(store: DocumentStore, event: ChangeEvent) -> None:
    audit_service.record_write(store, event.collection, event.doc_id, event.before, event.after)


def register_triggers(dispatcher: TriggerDispatcher) -> TriggerDispatcher:
    """Register every handler on ``dispatcher`` and return it"""
    for collection in PROPAGATION_RULES:
        dispatcher.register(collection, on_reference_updated, ("update",), name=f"sync_{collection}")
    dispatcher.register(COLLECTION_ROLE_PERMISSIONS, on_grant_written, WRITE_KINDS, name="sync_role_permissions")
    for collection in AUDITED:
        dispatcher.register(collection, on_audited_write, WRITE_KINDS, name=f"audit_{collection}")
    logger.debug("Triggers registered (mode=%s)", dispatcher.mode)
    return dispatcher
