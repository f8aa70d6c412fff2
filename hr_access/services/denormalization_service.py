"""
Denormalization service - fan out reference-entity changes to cached copies

Which documents cache which reference attributes is described by
PROPAGATION_RULES. On an update of a reference entity every dependent
document whose foreign key points at it gets the new value written as an
absolute overwrite, one write batch per page of matches. Batches commit
independently; the backfill job repairs whatever a partial fan-out leaves.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from hr_access.constants import (
    COLLECTION_ATTENDANCE,
    COLLECTION_DEPARTMENTS,
    COLLECTION_EMPLOYEES,
    COLLECTION_LEAVE_ENTITLEMENTS,
    COLLECTION_LEAVE_REQUESTS,
    COLLECTION_LEAVE_TYPES,
    COLLECTION_PAYROLL_RECORDS,
    COLLECTION_POSITIONS,
    COLLECTION_ROLE_DEFINITIONS,
    COLLECTION_USERS,
)
from hr_access.core.config import settings
from hr_access.store import DELETE_FIELD, SERVER_TIMESTAMP, DocumentStore, where
from hr_access.store.base import get_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependentRule:
    """Documents in ``collection`` whose ``foreign_key`` holds a reference id cache ``fields``"""

    collection: str
    foreign_key: str
    # (cached field on the dependent, source field on the reference entity)
    fields: Tuple[Tuple[str, str], ...]
    # (cached field, key field): the cached field follows the reference only
    # while the dependent's own key field is unset or agrees with the reference's
    own_keys: Tuple[Tuple[str, str], ...] = ()

    def values_for(
        self,
        dependent: Dict[str, Any],
        reference: Dict[str, Any],
        values: Dict[str, Any],
    ) -> Dict[str, Any]:
        """The subset of ``values`` this dependent document takes from the reference"""
        keys = dict(self.own_keys)
        return {
            cached: value
            for cached, value in values.items()
            if cached not in keys
            or get_field(dependent, keys[cached]) in (None, get_field(reference, keys[cached]))
        }

    @property
    def source_fields(self) -> Tuple[str, ...]:
        return tuple(source for _, source in self.fields)


_DEPARTMENT_NAME = (("departmentName", "name"),)
_POSITION_NAME = (("positionName", "name"),)
_LEAVE_TYPE = (("leaveTypeName", "name"), ("leaveTypeCode", "code"))
_EMPLOYEE = (
    ("employeeName", "displayName"),
    ("departmentName", "departmentName"),
    ("positionName", "positionName"),
)
_EMPLOYEE_KEYS = (("departmentName", "departmentId"), ("positionName", "positionId"))

PROPAGATION_RULES: Dict[str, Tuple[DependentRule, ...]] = {
    COLLECTION_DEPARTMENTS: (
        DependentRule(COLLECTION_EMPLOYEES, "departmentId", _DEPARTMENT_NAME),
        DependentRule(COLLECTION_PAYROLL_RECORDS, "departmentId", _DEPARTMENT_NAME),
        DependentRule(COLLECTION_LEAVE_REQUESTS, "departmentId", _DEPARTMENT_NAME),
    ),
    COLLECTION_POSITIONS: (
        DependentRule(COLLECTION_EMPLOYEES, "positionId", _POSITION_NAME),
        DependentRule(COLLECTION_PAYROLL_RECORDS, "positionId", _POSITION_NAME),
        DependentRule(COLLECTION_LEAVE_REQUESTS, "positionId", _POSITION_NAME),
    ),
    COLLECTION_LEAVE_TYPES: (
        DependentRule(COLLECTION_LEAVE_REQUESTS, "leaveTypeId", _LEAVE_TYPE),
        DependentRule(COLLECTION_LEAVE_ENTITLEMENTS, "leaveTypeId", _LEAVE_TYPE),
    ),
    # Employees cache department/position names themselves, so a department
    # rename reaches attendance through the employee update it causes.
    # Payroll records and leave requests carry their own departmentId and
    # positionId; those win over the employee's copy.
    COLLECTION_EMPLOYEES: (
        DependentRule(COLLECTION_ATTENDANCE, "employeeId", _EMPLOYEE, _EMPLOYEE_KEYS),
        DependentRule(COLLECTION_PAYROLL_RECORDS, "employeeId", _EMPLOYEE, _EMPLOYEE_KEYS),
        DependentRule(COLLECTION_LEAVE_REQUESTS, "employeeId", _EMPLOYEE, _EMPLOYEE_KEYS),
    ),
    COLLECTION_ROLE_DEFINITIONS: (
        DependentRule(COLLECTION_USERS, "roleId", (("roleName", "name"),)),
    ),
}


@dataclass
class PropagationReport:
    reference: str
    doc_id: str
    updated: Dict[str, int] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)
    batches: int = 0

    @property
    def total_updated(self) -> int:
        return sum(self.updated.values())

    @property
    def skipped(self) -> bool:
        return not self.updated and not self.failed


def chunked(items: Sequence[Any], size: int) -> Iterator[List[Any]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def changed_values(
    rule: DependentRule,
    before: Optional[Dict[str, Any]],
    after: Dict[str, Any],
) -> Dict[str, Any]:
    """Cached fields of ``rule`` whose source value differs between the snapshots"""
    return {
        cached: get_field(after, source)
        for cached, source in rule.fields
        if get_field(before, source) != get_field(after, source)
    }


def _fan_out(
    store: DocumentStore,
    rule: DependentRule,
    reference_id: str,
    reference: Dict[str, Any],
    values: Dict[str, Any],
    batch_size: int,
    report: PropagationReport,
) -> int:
    updated = 0
    cursor: Optional[str] = None
    while True:
        page = store.query(
            rule.collection,
            [where(rule.foreign_key, "==", reference_id)],
            limit=batch_size,
            start_after=cursor,
        )
        stale = []
        for doc in page:
            doc_values = rule.values_for(doc.data, reference, values)
            if any(doc.get(name) != value for name, value in doc_values.items()):
                stale.append((doc, doc_values))
        for chunk in chunked(stale, batch_size):
            batch = store.batch(max_size=batch_size)
            for doc, doc_values in chunk:
                batch.update(rule.collection, doc.id, {
                    **doc_values,
                    "lastSyncedAt": SERVER_TIMESTAMP,
                    "updatedAt": SERVER_TIMESTAMP,
                })
            batch.commit()
            report.batches += 1
            updated += len(chunk)
        if len(page) < batch_size:
            return updated
        cursor = page[-1].id


def propagate_reference_update(
    store: DocumentStore,
    collection: str,
    doc_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
    batch_size: Optional[int] = None,
) -> PropagationReport:
    """
    Push changed reference attributes of ``collection/doc_id`` to its dependents

    Args:
        store: Document store handle
        collection: Reference collection (a key of PROPAGATION_RULES)
        doc_id: Reference entity id
        before: Snapshot before the update
        after: Snapshot after the update
        batch_size: Writes per batch (defaults to settings.WRITE_BATCH_SIZE)

    Returns:
        PropagationReport with per-collection update counts and failures.
        A failing dependent collection does not stop the others.
    """
    report = PropagationReport(collection, doc_id)
    rules = PROPAGATION_RULES.get(collection, ())
    if before is None or after is None or not rules:
        return report

    pending = [(rule, changed_values(rule, before, after)) for rule in rules]
    pending = [(rule, values) for rule, values in pending if values]
    if not pending:
        logger.debug("No cached attribute changed for %s/%s, skipping sync", collection, doc_id)
        return report

    size = batch_size or settings.WRITE_BATCH_SIZE
    logger.info(
        "Syncing %s/%s to %d dependent collection(s): %s",
        collection, doc_id, len(pending), sorted({k for _, v in pending for k in v}),
    )
    for rule, values in pending:
        try:
            report.updated[rule.collection] = (
                report.updated.get(rule.collection, 0)
                + _fan_out(store, rule, doc_id, after, values, size, report)
            )
        except Exception as exc:
            report.failed[rule.collection] = str(exc)
            logger.error(
                "Error syncing %s from %s/%s: %s", rule.collection, collection, doc_id, exc,
                exc_info=True,
            )

    logger.info(
        "Sync of %s/%s completed: %d document(s) updated in %d batch(es) %s%s",
        collection, doc_id, report.total_updated, report.batches, report.updated,
        f", failed: {sorted(report.failed)}" if report.failed else "",
    )
    return report


def permission_entry(grant: Dict[str, Any]) -> Dict[str, Any]:
    """Shape of one entry in a role definition's denormalized permissions map"""
    return {
        "resource": grant.get("resource"),
        "resourceName": grant.get("resourceName") or grant.get("resource"),
        "permissions": list(grant.get("permissions") or []),
    }


def sync_role_permissions(
    store: DocumentStore,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
) -> bool:
    """
    Mirror a permission grant write into ``roleDefinitions/{roleId}.permissions``

    Active grants are upserted under their resource key; deleted or
    deactivated grants are removed. Returns False if the write failed.
    """
    updates: Dict[str, Any] = {}
    role_id = (after or before or {}).get("roleId")
    if not role_id:
        logger.warning("Permission grant without roleId, nothing to sync")
        return False

    if before and (after is None or before.get("resource") != after.get("resource")):
        updates[f"permissions.{before.get('resource')}"] = DELETE_FIELD
    if after is not None:
        key = f"permissions.{after.get('resource')}"
        updates[key] = permission_entry(after) if after.get("isActive", True) else DELETE_FIELD

    updates["updatedAt"] = SERVER_TIMESTAMP
    try:
        store.update(COLLECTION_ROLE_DEFINITIONS, role_id, updates)
    except Exception as exc:
        logger.error("Failed to sync permissions to role %s: %s", role_id, exc)
        return False

    logger.info("Synced permission grant to role %s: %s", role_id, sorted(k for k in updates if k != "updatedAt"))
    return True
