"""
Tests for propagation of reference names into dependent documents
"""
import pytest

from hr_access.constants import (
    COLLECTION_ATTENDANCE,
    COLLECTION_DEPARTMENTS,
    COLLECTION_EMPLOYEES,
    COLLECTION_LEAVE_ENTITLEMENTS,
    COLLECTION_LEAVE_REQUESTS,
    COLLECTION_LEAVE_TYPES,
    COLLECTION_PAYROLL_RECORDS,
    COLLECTION_ROLE_DEFINITIONS,
    COLLECTION_ROLE_PERMISSIONS,
    COLLECTION_USERS,
)
from hr_access.services.backfill_service import ReferenceCache, derive_updates
from hr_access.services.denormalization_service import (
    PROPAGATION_RULES,
    propagate_reference_update,
    sync_role_permissions,
)
from hr_access.store import InMemoryDocumentStore


@pytest.fixture
def org(memory_store):
    """Two departments; employee e1 in D1 with attendance, payroll and leave, e2 in D2"""
    s = memory_store
    s.set(COLLECTION_DEPARTMENTS, "D1", {"name": "Engineering"})
    s.set(COLLECTION_DEPARTMENTS, "D2", {"name": "Sales"})
    s.set(COLLECTION_EMPLOYEES, "e1", {
        "displayName": "Ada Lovelace", "departmentId": "D1", "departmentName": "Engineering",
    })
    s.set(COLLECTION_EMPLOYEES, "e2", {
        "displayName": "Grace Hopper", "departmentId": "D2", "departmentName": "Sales",
    })
    s.set(COLLECTION_ATTENDANCE, "a1", {
        "employeeId": "e1", "employeeName": "Ada Lovelace", "departmentName": "Engineering",
    })
    s.set(COLLECTION_PAYROLL_RECORDS, "pr1", {
        "employeeId": "e1", "departmentId": "D1", "departmentName": "Engineering",
    })
    s.set(COLLECTION_LEAVE_REQUESTS, "lr1", {
        "employeeId": "e1", "departmentId": "D1", "departmentName": "Engineering",
    })
    s.set(COLLECTION_LEAVE_REQUESTS, "lr2", {
        "employeeId": "e2", "departmentId": "D2", "departmentName": "Sales",
    })
    return s


def test_rule_table_enumerates_department_dependents():
    dependents = {rule.collection for rule in PROPAGATION_RULES[COLLECTION_DEPARTMENTS]}
    assert dependents == {COLLECTION_EMPLOYEES, COLLECTION_PAYROLL_RECORDS, COLLECTION_LEAVE_REQUESTS}
    assert all(rule.foreign_key == "departmentId" for rule in PROPAGATION_RULES[COLLECTION_DEPARTMENTS])


def test_department_rename_reaches_every_dependent(org):
    org.update(COLLECTION_DEPARTMENTS, "D1", {"name": "Platform Engineering"})

    for collection, doc_id in [
        (COLLECTION_EMPLOYEES, "e1"),
        (COLLECTION_PAYROLL_RECORDS, "pr1"),
        (COLLECTION_LEAVE_REQUESTS, "lr1"),
        (COLLECTION_ATTENDANCE, "a1"),
    ]:
        doc = org.get(collection, doc_id)
        assert doc.get("departmentName") == "Platform Engineering", collection
        assert doc.get("lastSyncedAt") is not None


def test_department_rename_leaves_unrelated_documents_alone(org):
    before = org.get(COLLECTION_LEAVE_REQUESTS, "lr2").data
    org.update(COLLECTION_DEPARTMENTS, "D1", {"name": "Platform Engineering"})

    assert org.get(COLLECTION_LEAVE_REQUESTS, "lr2").data == before
    assert org.get(COLLECTION_EMPLOYEES, "e2").get("departmentName") == "Sales"


def test_update_without_cached_field_change_is_skipped():
    store = InMemoryDocumentStore()
    report = propagate_reference_update(
        store, COLLECTION_DEPARTMENTS, "D1",
        {"name": "Engineering", "description": "old"},
        {"name": "Engineering", "description": "new"},
    )
    assert report.skipped is True
    assert report.batches == 0


def test_creates_and_deletes_are_not_propagated():
    store = InMemoryDocumentStore()
    assert propagate_reference_update(store, COLLECTION_DEPARTMENTS, "D1", None, {"name": "x"}).skipped
    assert propagate_reference_update(store, COLLECTION_DEPARTMENTS, "D1", {"name": "x"}, None).skipped


def test_fan_out_is_split_into_batches():
    store = InMemoryDocumentStore()
    for i in range(7):
        store.set(COLLECTION_EMPLOYEES, f"e{i}", {"departmentId": "D1", "departmentName": "Old"})

    report = propagate_reference_update(
        store, COLLECTION_DEPARTMENTS, "D1", {"name": "Old"}, {"name": "New"}, batch_size=3,
    )

    assert report.updated[COLLECTION_EMPLOYEES] == 7
    assert report.batches == 3
    assert all(doc.get("departmentName") == "New" for doc in store.query(COLLECTION_EMPLOYEES))


def test_documents_already_holding_new_value_are_not_rewritten():
    store = InMemoryDocumentStore()
    store.set(COLLECTION_EMPLOYEES, "e1", {"departmentId": "D1", "departmentName": "New"})

    report = propagate_reference_update(store, COLLECTION_DEPARTMENTS, "D1", {"name": "Old"}, {"name": "New"})

    assert report.total_updated == 0
    assert store.get(COLLECTION_EMPLOYEES, "e1").get("lastSyncedAt") is None


class FailingPayrollStore(InMemoryDocumentStore):
    def query(self, collection, filters=(), limit=None, start_after=None):
        if collection == COLLECTION_PAYROLL_RECORDS:
            raise RuntimeError("payroll unavailable")
        return super().query(collection, filters, limit, start_after)


def test_failure_in_one_collection_does_not_stop_the_others():
    store = FailingPayrollStore()
    store.set(COLLECTION_EMPLOYEES, "e1", {"departmentId": "D1", "departmentName": "Old"})
    store.set(COLLECTION_LEAVE_REQUESTS, "lr1", {"departmentId": "D1", "departmentName": "Old"})

    report = propagate_reference_update(store, COLLECTION_DEPARTMENTS, "D1", {"name": "Old"}, {"name": "New"})

    assert COLLECTION_PAYROLL_RECORDS in report.failed
    assert report.updated == {COLLECTION_EMPLOYEES: 1, COLLECTION_LEAVE_REQUESTS: 1}
    assert store.get(COLLECTION_LEAVE_REQUESTS, "lr1").get("departmentName") == "New"


def test_leave_type_name_and_code_propagate(memory_store):
    memory_store.set(COLLECTION_LEAVE_TYPES, "lt1", {"name": "Annual", "code": "AL"})
    memory_store.set(COLLECTION_LEAVE_REQUESTS, "lr1", {"leaveTypeId": "lt1", "leaveTypeName": "Annual", "leaveTypeCode": "AL"})
    memory_store.set(COLLECTION_LEAVE_ENTITLEMENTS, "le1", {"leaveTypeId": "lt1", "leaveTypeName": "Annual", "leaveTypeCode": "AL"})

    memory_store.update(COLLECTION_LEAVE_TYPES, "lt1", {"name": "Vacation", "code": "VL"})

    for collection, doc_id in [(COLLECTION_LEAVE_REQUESTS, "lr1"), (COLLECTION_LEAVE_ENTITLEMENTS, "le1")]:
        doc = memory_store.get(collection, doc_id)
        assert (doc.get("leaveTypeName"), doc.get("leaveTypeCode")) == ("Vacation", "VL")


def test_employee_rename_reaches_attendance(org):
    org.update(COLLECTION_EMPLOYEES, "e1", {"displayName": "Ada King"})
    assert org.get(COLLECTION_ATTENDANCE, "a1").get("employeeName") == "Ada King"
    assert org.get(COLLECTION_PAYROLL_RECORDS, "pr1").get("employeeName") == "Ada King"


def test_role_rename_reaches_users(memory_store):
    memory_store.set(COLLECTION_ROLE_DEFINITIONS, "r1", {"role": "payroll_clerk", "name": "Payroll Clerk"})
    memory_store.set(COLLECTION_USERS, "u1", {"role": "payroll_clerk", "roleId": "r1", "roleName": "Payroll Clerk"})
    memory_store.set(COLLECTION_USERS, "u2", {"role": "employee", "roleId": "employee", "roleName": "Employee"})

    memory_store.update(COLLECTION_ROLE_DEFINITIONS, "r1", {"name": "Payroll Officer"})

    assert memory_store.get(COLLECTION_USERS, "u1").get("roleName") == "Payroll Officer"
    assert memory_store.get(COLLECTION_USERS, "u2").get("roleName") == "Employee"


def test_grant_writes_are_mirrored_on_role(memory_store):
    memory_store.set(COLLECTION_ROLE_DEFINITIONS, "r1", {"role": "clerk", "name": "Clerk", "permissions": {}})
    grant = {"roleId": "r1", "role": "clerk", "resource": "payroll", "permissions": ["read:all"], "isActive": True}

    memory_store.set(COLLECTION_ROLE_PERMISSIONS, "clerk__payroll", grant)
    assert memory_store.get(COLLECTION_ROLE_DEFINITIONS, "r1").get("permissions") == {
        "payroll": {"resource": "payroll", "resourceName": "payroll", "permissions": ["read:all"]},
    }

    memory_store.update(COLLECTION_ROLE_PERMISSIONS, "clerk__payroll", {"isActive": False})
    assert memory_store.get(COLLECTION_ROLE_DEFINITIONS, "r1").get("permissions") == {}

    memory_store.update(COLLECTION_ROLE_PERMISSIONS, "clerk__payroll", {"isActive": True})
    memory_store.delete(COLLECTION_ROLE_PERMISSIONS, "clerk__payroll")
    assert memory_store.get(COLLECTION_ROLE_DEFINITIONS, "r1").get("permissions") == {}


def test_grant_sync_failures_are_reported_not_raised():
    store = InMemoryDocumentStore()
    assert sync_role_permissions(store, None, {"resource": "payroll"}) is False
    assert sync_role_permissions(store, None, {"roleId": "missing", "resource": "payroll"}) is False


def test_sql_store_department_rename(seeded_store):
    seeded_store.set(COLLECTION_DEPARTMENTS, "D1", {"name": "Engineering"})
    seeded_store.set(COLLECTION_EMPLOYEES, "e1", {"departmentId": "D1", "departmentName": "Engineering"})
    seeded_store.set(COLLECTION_ATTENDANCE, "a1", {"employeeId": "e1", "departmentName": "Engineering"})

    seeded_store.update(COLLECTION_DEPARTMENTS, "D1", {"name": "Platform Engineering"})

    assert seeded_store.get(COLLECTION_EMPLOYEES, "e1").get("departmentName") == "Platform Engineering"
    assert seeded_store.get(COLLECTION_ATTENDANCE, "a1").get("departmentName") == "Platform Engineering"


def test_employee_department_change_keeps_documents_with_their_own_department(org):
    org.set(COLLECTION_LEAVE_REQUESTS, "lr3", {
        "employeeId": "e2", "departmentId": "D1", "departmentName": "Engineering",
    })
    org.set(COLLECTION_LEAVE_REQUESTS, "lr4", {"employeeId": "e2", "departmentName": "Sales"})

    org.update(COLLECTION_DEPARTMENTS, "D2", {"name": "Field Sales"})

    assert org.get(COLLECTION_EMPLOYEES, "e2").get("departmentName") == "Field Sales"
    assert org.get(COLLECTION_LEAVE_REQUESTS, "lr2").get("departmentName") == "Field Sales"
    assert org.get(COLLECTION_LEAVE_REQUESTS, "lr3").get("departmentName") == "Engineering"
    # No department of its own: follows the employee
    assert org.get(COLLECTION_LEAVE_REQUESTS, "lr4").get("departmentName") == "Field Sales"


def test_propagated_names_agree_with_backfill(org):
    org.set(COLLECTION_LEAVE_REQUESTS, "lr3", {
        "employeeId": "e2", "employeeName": "Grace Hopper",
        "departmentId": "D1", "departmentName": "Engineering",
    })
    org.update(COLLECTION_DEPARTMENTS, "D2", {"name": "Field Sales"})

    lr3 = org.get(COLLECTION_LEAVE_REQUESTS, "lr3")
    assert derive_updates(COLLECTION_LEAVE_REQUESTS, lr3, ReferenceCache(org)) == {}
