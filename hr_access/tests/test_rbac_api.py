"""
Tests for the RBAC endpoints
"""
import asyncio

from fastapi import status

from hr_access.api.v1 import maintenance

from conftest import auth_headers


def test_check_permission_requires_authentication(client):
    response = client.post("/api/v1/rbac/check-permission", json={"resource": "employees", "permission": "read"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["code"] == "unauthenticated"


def test_check_permission_rejects_invalid_token(client):
    response = client.post(
        "/api/v1/rbac/check-permission",
        json={"resource": "employees", "permission": "read"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_check_permission_allowed_with_scope(client, hr_user):
    response = client.post(
        "/api/v1/rbac/check-permission",
        json={"resource": "employees", "permission": "read:own"},
        headers=auth_headers(hr_user.id),
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"hasPermission": True, "scope": "all", "message": None}


def test_check_permission_denied(client, hr_user):
    response = client.post(
        "/api/v1/rbac/check-permission",
        json={"resource": "employees", "permission": "delete"},
        headers=auth_headers(hr_user.id),
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["hasPermission"] is False
    assert response.json()["message"] == "permission not granted"


def test_check_own_scope_for_another_user(client, employee_user):
    headers = auth_headers(employee_user.id)
    own = client.post(
        "/api/v1/rbac/check-permission",
        json={"resource": "leave-requests", "permission": "read:own"},
        headers=headers,
    )
    other = client.post(
        "/api/v1/rbac/check-permission",
        json={"resource": "leave-requests", "permission": "read:own", "targetUserId": "someone-else"},
        headers=headers,
    )

    assert own.json() == {"hasPermission": True, "scope": "own", "message": None}
    assert other.json()["hasPermission"] is False
    assert other.json()["message"] == "scope violation"


def test_check_permission_malformed_token(client, hr_user):
    response = client.post(
        "/api/v1/rbac/check-permission",
        json={"resource": "employees", "permission": "approve"},
        headers=auth_headers(hr_user.id),
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "invalid-argument"


def test_check_permission_unknown_caller(client):
    response = client.post(
        "/api/v1/rbac/check-permission",
        json={"resource": "employees", "permission": "read"},
        headers=auth_headers("ghost"),
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["code"] == "not-found"


def test_my_permissions(client, employee_user):
    response = client.get("/api/v1/rbac/me/permissions", headers=auth_headers(employee_user.id))

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["userId"] == employee_user.id
    assert data["role"] == "employee"
    assert data["permissions"]["leave-requests"] == ["read:own", "create"]
    assert "roles" not in data["permissions"]


def test_assign_and_revoke_role(client, admin_user, employee_user):
    headers = auth_headers(admin_user.id, email="admin@example.com")

    assigned = client.post(
        "/api/v1/rbac/assign-role",
        json={"userId": employee_user.id, "role": "manager", "reason": "Team lead"},
        headers=headers,
    )
    assert assigned.status_code == status.HTTP_200_OK
    assert assigned.json()["role"] == "manager"
    assert assigned.json()["assignmentId"]

    revoked = client.post("/api/v1/rbac/revoke-role", json={"userId": employee_user.id}, headers=headers)
    assert revoked.status_code == status.HTTP_200_OK
    assert revoked.json()["role"] == "employee"
    assert revoked.json()["previousRole"] == "manager"


def test_revoke_role_without_assignment(client, admin_user, employee_user):
    response = client.post(
        "/api/v1/rbac/revoke-role",
        json={"userId": employee_user.id},
        headers=auth_headers(admin_user.id),
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["code"] == "not-found"


def test_assign_role_forbidden_for_employee(client, employee_user, hr_user):
    response = client.post(
        "/api/v1/rbac/assign-role",
        json={"userId": hr_user.id, "role": "admin"},
        headers=auth_headers(employee_user.id),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["code"] == "permission-denied"


def test_backfill_endpoint(client, admin_user, employee_user):
    response = client.post(
        "/api/v1/maintenance/backfill",
        json={"dryRun": True},
        headers=auth_headers(admin_user.id),
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["dryRun"] is True
    assert data["totals"]["errors"] == 0
    assert "users" in data["collections"]


def test_backfill_requires_settings_update(client, hr_user):
    response = client.post("/api/v1/maintenance/backfill", json={}, headers=auth_headers(hr_user.id))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_backfill_runs_off_the_event_loop(client, admin_user, monkeypatch):
    loops = []
    real_run_backfill = maintenance.run_backfill

    def recording_run_backfill(store, **kwargs):
        try:
            loops.append(asyncio.get_running_loop())
        except RuntimeError:
            loops.append(None)
        return real_run_backfill(store, **kwargs)

    monkeypatch.setattr(maintenance, "run_backfill", recording_run_backfill)
    response = client.post("/api/v1/maintenance/backfill", json={"dryRun": True}, headers=auth_headers(admin_user.id))

    assert response.status_code == status.HTTP_200_OK
    assert loops == [None]


def test_check_permission_uses_callers_role_not_targets(client, hr_user, employee_user):
    response = client.post(
        "/api/v1/rbac/check-permission",
        json={"resource": "employees", "permission": "create", "targetUserId": employee_user.id},
        headers=auth_headers(hr_user.id),
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["hasPermission"] is True
