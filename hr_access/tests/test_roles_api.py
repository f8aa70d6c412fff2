"""
Tests for role definition and permission grant endpoints
"""
import pytest
from fastapi import status

from hr_access.constants import COLLECTION_AUDIT_LOGS
from hr_access.store import where

from conftest import auth_headers, make_user

CUSTOM_ROLE = {
    "role": "payroll_clerk",
    "name": "Payroll Clerk",
    "description": "Prepares monthly payroll records",
}


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user.id, email="admin@example.com")


@pytest.fixture
def custom_role(client, admin_headers):
    response = client.post("/api/v1/roles", json=CUSTOM_ROLE, headers=admin_headers)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


def test_create_role(custom_role, seeded_store):
    assert custom_role["role"] == "payroll_clerk"
    assert custom_role["isSystemRole"] is False
    assert custom_role["isActive"] is True
    assert custom_role["permissions"] == {}

    created = seeded_store.query(COLLECTION_AUDIT_LOGS, [where("action", "==", "ROLE_CREATED")])
    assert any(doc.get("role") == "payroll_clerk" for doc in created)


def test_create_role_duplicate_key(client, admin_headers, custom_role):
    response = client.post("/api/v1/roles", json=CUSTOM_ROLE, headers=admin_headers)
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["code"] == "already-exists"


def test_create_role_validation(client, admin_headers):
    response = client.post(
        "/api/v1/roles",
        json={"role": "Bad Key", "name": "X", "description": "short"},
        headers=admin_headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_create_role_requires_roles_create(client, hr_user):
    response = client.post("/api/v1/roles", json=CUSTOM_ROLE, headers=auth_headers(hr_user.id))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_list_and_get_roles(client, hr_user):
    headers = auth_headers(hr_user.id)
    response = client.get("/api/v1/roles", headers=headers)

    assert response.status_code == status.HTTP_200_OK
    keys = [role["role"] for role in response.json()]
    assert keys == sorted(["admin", "auditor", "employee", "hr", "manager"])

    role = client.get("/api/v1/roles/hr", headers=headers).json()
    assert role["isSystemRole"] is True
    assert role["permissions"]["employees"]["permissions"] == ["read:all", "create", "update"]

    missing = client.get("/api/v1/roles/nope", headers=headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_update_custom_role_renames_users(client, admin_headers, custom_role, seeded_store):
    make_user(seeded_store, "clerk-1", "payroll_clerk", roleId=custom_role["id"], roleName="Payroll Clerk")

    response = client.patch(
        f"/api/v1/roles/{custom_role['id']}",
        json={"name": "Payroll Officer"},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["name"] == "Payroll Officer"
    assert seeded_store.get("users", "clerk-1").get("roleName") == "Payroll Officer"


def test_update_requires_a_field(client, admin_headers, custom_role):
    response = client.patch(f"/api/v1/roles/{custom_role['id']}", json={}, headers=admin_headers)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.parametrize("field", ["name", "description", "isActive"])
def test_update_rejects_null_fields(client, admin_headers, custom_role, seeded_store, field):
    make_user(seeded_store, "clerk-1", "payroll_clerk", roleId=custom_role["id"], roleName="Payroll Clerk")

    response = client.patch(f"/api/v1/roles/{custom_role['id']}", json={field: None}, headers=admin_headers)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    stored = seeded_store.get("roleDefinitions", custom_role["id"])
    assert stored.get("name") == "Payroll Clerk"
    assert stored.get("isActive") is True
    assert seeded_store.get("users", "clerk-1").get("roleName") == "Payroll Clerk"


def test_system_roles_cannot_be_modified_or_deleted(client, admin_headers):
    updated = client.patch("/api/v1/roles/hr", json={"name": "People Ops"}, headers=admin_headers)
    deleted = client.delete("/api/v1/roles/hr", headers=admin_headers)

    assert updated.status_code == status.HTTP_409_CONFLICT
    assert updated.json()["code"] == "failed-precondition"
    assert deleted.status_code == status.HTTP_409_CONFLICT


def test_role_in_use_cannot_be_deleted(client, admin_headers, custom_role, seeded_store):
    make_user(seeded_store, "clerk-1", "payroll_clerk", roleId=custom_role["id"])

    response = client.delete(f"/api/v1/roles/{custom_role['id']}", headers=admin_headers)

    assert response.status_code == status.HTTP_409_CONFLICT
    assert "1 user(s)" in response.json()["detail"]


def test_grant_lifecycle(client, admin_headers, custom_role, seeded_store):
    role_id = custom_role["id"]

    granted = client.put(
        f"/api/v1/roles/{role_id}/permissions/payroll",
        json={"resourceName": "Payroll", "permissions": ["read:all", "create", "create"]},
        headers=admin_headers,
    )
    assert granted.status_code == status.HTTP_200_OK
    assert granted.json()["permissions"] == ["read:all", "create"]

    role = client.get(f"/api/v1/roles/{role_id}", headers=admin_headers).json()
    assert role["permissions"]["payroll"] == {
        "resource": "payroll", "resourceName": "Payroll", "permissions": ["read:all", "create"],
    }

    make_user(seeded_store, "clerk-1", "payroll_clerk", roleId=role_id)
    check = client.post(
        "/api/v1/rbac/check-permission",
        json={"resource": "payroll", "permission": "create"},
        headers=auth_headers("clerk-1"),
    )
    assert check.json()["hasPermission"] is True

    removed = client.delete(f"/api/v1/roles/{role_id}/permissions/payroll", headers=admin_headers)
    assert removed.status_code == status.HTTP_204_NO_CONTENT
    role = client.get(f"/api/v1/roles/{role_id}", headers=admin_headers).json()
    assert role["permissions"] == {}

    again = client.delete(f"/api/v1/roles/{role_id}/permissions/payroll", headers=admin_headers)
    assert again.status_code == status.HTTP_404_NOT_FOUND


def test_grant_with_malformed_token_is_rejected(client, admin_headers, custom_role):
    response = client.put(
        f"/api/v1/roles/{custom_role['id']}/permissions/payroll",
        json={"permissions": ["approve"]},
        headers=admin_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_delete_custom_role_removes_grants(client, admin_headers, custom_role, seeded_store):
    role_id = custom_role["id"]
    client.put(f"/api/v1/roles/{role_id}/permissions/payroll", json={"permissions": ["read"]}, headers=admin_headers)

    response = client.delete(f"/api/v1/roles/{role_id}", headers=admin_headers)

    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert seeded_store.get("roleDefinitions", role_id) is None
    assert seeded_store.get("rolePermissions", "payroll_clerk__payroll") is None
