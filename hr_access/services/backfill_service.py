"""
Backfill service - re-derive every denormalized field from its source

A complete, stateless sweep that is safe to run at any time, including
alongside live traffic. Collections are processed in dependency order so
employees are repaired before the documents that copy from them. Only
fields whose value differs are written, so a second run over consistent
data performs no writes.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from hr_access.constants import (
    COLLECTION_ATTENDANCE,
    COLLECTION_EMPLOYEES,
    COLLECTION_LEAVE_ENTITLEMENTS,
    COLLECTION_LEAVE_REQUESTS,
    COLLECTION_PAYROLL_RECORDS,
    COLLECTION_ROLE_DEFINITIONS,
    COLLECTION_ROLE_PERMISSIONS,
    COLLECTION_USERS,
)
from hr_access.core.config import settings
from hr_access.services.denormalization_service import (
    PROPAGATION_RULES,
    DependentRule,
    permission_entry,
)
from hr_access.store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, where

logger = logging.getLogger(__name__)

# Reference entities are read before the documents that cache them
DEPENDENT_ORDER = (
    COLLECTION_EMPLOYEES,
    COLLECTION_ATTENDANCE,
    COLLECTION_LEAVE_REQUESTS,
    COLLECTION_LEAVE_ENTITLEMENTS,
    COLLECTION_PAYROLL_RECORDS,
    COLLECTION_USERS,
)


@dataclass
class CollectionStats:
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


@dataclass
class BackfillSummary:
    dry_run: bool = False
    collections: Dict[str, CollectionStats] = field(default_factory=dict)

    def _total(self, name: str) -> int:
        return sum(getattr(stats, name) for stats in self.collections.values())

    @property
    def processed(self) -> int:
        return self._total("processed")

    @property
    def updated(self) -> int:
        return self._total("updated")

    @property
    def skipped(self) -> int:
        return self._total("skipped")

    @property
    def errors(self) -> int:
        return self._total("errors")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dryRun": self.dry_run,
            "collections": {name: stats.to_dict() for name, stats in self.collections.items()},
            "totals": {
                "processed": self.processed,
                "updated": self.updated,
                "skipped": self.skipped,
                "errors": self.errors,
            },
        }


class ReferenceCache:
    """Per-run memo of reference lookups; discarded when the run ends"""

    def __init__(self, store: DocumentStore):
        self._store = store
        self._docs: Dict[Tuple[str, str], Optional[Dict[str, Any]]] = {}

    def get(self, collection: str, doc_id: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(doc_id, str) or not doc_id:
            return None
        key = (collection, doc_id)
        if key not in self._docs:
            snapshot = self._store.get(collection, doc_id)
            self._docs[key] = snapshot.data if snapshot is not None else None
        return self._docs[key]

    def refresh(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        if (collection, doc_id) in self._docs:
            self._docs[(collection, doc_id)] = data


def rules_for(collection: str) -> List[Tuple[str, DependentRule]]:
    """
    (reference collection, rule) pairs that feed ``collection``

    Rules sourced from employees come first so that a direct reference
    (e.g. departmentId on a leave request) has the final say.
    """
    pairs = [
        (reference, rule)
        for reference, rules in PROPAGATION_RULES.items()
        for rule in rules
        if rule.collection == collection
    ]
    return sorted(pairs, key=lambda pair: pair[0] != COLLECTION_EMPLOYEES)


def expected_display_name(data: Dict[str, Any]) -> Optional[str]:
    if "firstName" not in data and "lastName" not in data:
        return None
    return f"{data.get('firstName') or ''} {data.get('lastName') or ''}".strip()


def derive_updates(
    collection: str,
    doc: DocumentSnapshot,
    refs: ReferenceCache,
) -> Dict[str, Any]:
    """Fields of ``doc`` whose cached value differs from the source of truth"""
    expected: Dict[str, Any] = {}
    if collection == COLLECTION_EMPLOYEES:
        display_name = expected_display_name(doc.data)
        if display_name is not None:
            expected["displayName"] = display_name

    for reference, rule in rules_for(collection):
        source = refs.get(reference, doc.get(rule.foreign_key))
        if source is None:
            continue
        if reference == COLLECTION_EMPLOYEES:
            # The employee's own displayName may have just been derived above
            source = {**source}
            display_name = expected_display_name(source)
            if display_name is not None:
                source["displayName"] = display_name
        values = {
            cached: source.get(source_field)
            for cached, source_field in rule.fields
            if source.get(source_field) is not None
        }
        expected.update(rule.values_for(doc.data, source, values))

    return {name: value for name, value in expected.items() if doc.get(name) != value}


def _sweep_collection(
    store: DocumentStore,
    collection: str,
    refs: ReferenceCache,
    page_size: int,
    dry_run: bool,
) -> CollectionStats:
    stats = CollectionStats()
    logger.info("Backfill: syncing %s", collection)
    for doc in store.iter_query(collection, page_size=page_size):
        stats.processed += 1
        try:
            updates = derive_updates(collection, doc, refs)
            if not updates:
                stats.skipped += 1
                continue
            if not dry_run:
                store.update(collection, doc.id, {
                    **updates,
                    "lastSyncedAt": SERVER_TIMESTAMP,
                    "updatedAt": SERVER_TIMESTAMP,
                })
                refs.refresh(collection, doc.id, {**doc.data, **updates})
            stats.updated += 1
            logger.debug("Backfill: updated %s/%s %s", collection, doc.id, sorted(updates))
        except Exception as exc:
            stats.errors += 1
            logger.error("Backfill: error syncing %s/%s: %s", collection, doc.id, exc)
    logger.info(
        "Backfill: %s processed=%d updated=%d skipped=%d errors=%d",
        collection, stats.processed, stats.updated, stats.skipped, stats.errors,
    )
    return stats


def _sweep_role_permissions(store: DocumentStore, page_size: int, dry_run: bool) -> CollectionStats:
    """Rebuild each role definition's permissions map from its active grants"""
    grants: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for grant in store.iter_query(
        COLLECTION_ROLE_PERMISSIONS, [where("isActive", "==", True)], page_size=page_size
    ):
        role_id = grant.get("roleId")
        if role_id and grant.get("resource"):
            grants.setdefault(role_id, {})[grant.get("resource")] = permission_entry(grant.data)

    stats = CollectionStats()
    for role in store.iter_query(COLLECTION_ROLE_DEFINITIONS, page_size=page_size):
        stats.processed += 1
        try:
            expected = grants.get(role.id, {})
            if (role.get("permissions") or {}) == expected:
                stats.skipped += 1
                continue
            if not dry_run:
                store.update(COLLECTION_ROLE_DEFINITIONS, role.id, {
                    "permissions": expected,
                    "updatedAt": SERVER_TIMESTAMP,
                })
            stats.updated += 1
        except Exception as exc:
            stats.errors += 1
            logger.error("Backfill: error syncing permissions of role %s: %s", role.id, exc)
    return stats


def run_backfill(
    store: DocumentStore,
    page_size: Optional[int] = None,
    dry_run: bool = False,
) -> BackfillSummary:
    """
    Repair every denormalized field in the store

    Args:
        store: Document store handle
        page_size: Documents fetched per query (defaults to settings.BACKFILL_PAGE_SIZE)
        dry_run: Count what would change without writing

    Returns:
        BackfillSummary with processed/updated/skipped/errors per collection
    """
    size = page_size or settings.BACKFILL_PAGE_SIZE
    refs = ReferenceCache(store)
    summary = BackfillSummary(dry_run=dry_run)
    logger.info("Backfill started (page_size=%d, dry_run=%s)", size, dry_run)

    for collection in DEPENDENT_ORDER:
        try:
            summary.collections[collection] = _sweep_collection(store, collection, refs, size, dry_run)
        except Exception as exc:
            logger.error("Backfill: could not sweep %s: %s", collection, exc)
            summary.collections[collection] = CollectionStats(errors=1)

    role_key = f"{COLLECTION_ROLE_DEFINITIONS}.permissions"
    try:
        summary.collections[role_key] = _sweep_role_permissions(store, size, dry_run)
    except Exception as exc:
        logger.error("Backfill: could not sweep role permissions: %s", exc)
        summary.collections[role_key] = CollectionStats(errors=1)

    logger.info(
        "Backfill completed: processed=%d updated=%d skipped=%d errors=%d",
        summary.processed, summary.updated, summary.skipped, summary.errors,
    )
    return summary
