"""
RBAC seed

Creates the system roles and their permission grants when they are missing.
Existing roles and grants are left untouched, so this is safe to run on
every startup.
"""
import logging
from typing import Dict, List

from hr_access.constants import (
    COLLECTION_ROLE_DEFINITIONS,
    COLLECTION_ROLE_PERMISSIONS,
    RESOURCE_ATTENDANCE,
    RESOURCE_AUDIT_LOGS,
    RESOURCE_DEPARTMENTS,
    RESOURCE_EMPLOYEES,
    RESOURCE_LEAVE_REQUESTS,
    RESOURCE_PAYROLL,
    RESOURCE_POSITIONS,
    RESOURCE_ROLES,
    RESOURCE_SETTINGS,
    RESOURCE_USERS,
    ROLE_ADMIN,
    ROLE_AUDITOR,
    ROLE_EMPLOYEE,
    ROLE_HR,
    ROLE_MANAGER,
    SYSTEM_ACTOR_ID,
)
from hr_access.services.denormalization_service import permission_entry
from hr_access.services.role_service import grant_id
from hr_access.store import SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)

CRUD = ["create", "read", "update", "delete"]

SYSTEM_ROLE_DEFINITIONS: Dict[str, Dict[str, str]] = {
    ROLE_ADMIN: {"name": "Administrator", "description": "Full access to every HR resource and to RBAC administration"},
    ROLE_HR: {"name": "HR Manager", "description": "Manages employees, payroll, attendance and leave for the organization"},
    ROLE_MANAGER: {"name": "Manager", "description": "Reviews attendance and leave requests of the team"},
    ROLE_EMPLOYEE: {"name": "Employee", "description": "Self-service access to own records and requests"},
    ROLE_AUDITOR: {"name": "Auditor", "description": "Read-only access to records and the RBAC audit trail"},
}

DEFAULT_GRANTS: Dict[str, Dict[str, List[str]]] = {
    ROLE_ADMIN: {
        RESOURCE_EMPLOYEES: CRUD,
        RESOURCE_ATTENDANCE: CRUD,
        RESOURCE_LEAVE_REQUESTS: CRUD,
        RESOURCE_PAYROLL: CRUD,
        RESOURCE_DEPARTMENTS: CRUD,
        RESOURCE_POSITIONS: CRUD,
        RESOURCE_SETTINGS: CRUD,
        RESOURCE_USERS: CRUD,
        RESOURCE_ROLES: CRUD,
        RESOURCE_AUDIT_LOGS: ["read"],
    },
    ROLE_HR: {
        RESOURCE_EMPLOYEES: ["read:all", "create", "update"],
        RESOURCE_ATTENDANCE: ["read:all", "update"],
        RESOURCE_LEAVE_REQUESTS: ["read:all", "update"],
        RESOURCE_PAYROLL: ["read:all", "create", "update"],
        RESOURCE_DEPARTMENTS: ["read", "create", "update"],
        RESOURCE_POSITIONS: ["read", "create", "update"],
        RESOURCE_SETTINGS: ["read"],
        RESOURCE_USERS: ["read", "update"],
        RESOURCE_ROLES: ["read"],
        RESOURCE_AUDIT_LOGS: ["read"],
    },
    ROLE_MANAGER: {
        RESOURCE_EMPLOYEES: ["read:all"],
        RESOURCE_ATTENDANCE: ["read:all", "update"],
        RESOURCE_LEAVE_REQUESTS: ["read:all", "update"],
        RESOURCE_SETTINGS: ["read"],
    },
    ROLE_EMPLOYEE: {
        RESOURCE_EMPLOYEES: ["read:own"],
        RESOURCE_ATTENDANCE: ["read:own", "create"],
        RESOURCE_LEAVE_REQUESTS: ["read:own", "create"],
        RESOURCE_PAYROLL: ["read:own"],
    },
    ROLE_AUDITOR: {
        RESOURCE_EMPLOYEES: ["read:all"],
        RESOURCE_ATTENDANCE: ["read:all"],
        RESOURCE_LEAVE_REQUESTS: ["read:all"],
        RESOURCE_PAYROLL: ["read:all"],
        RESOURCE_AUDIT_LOGS: ["read"],
    },
}


def _grant_document(role_key: str, resource: str, tokens: List[str]) -> Dict:
    return {
        "id": grant_id(role_key, resource),
        "roleId": role_key,
        "role": role_key,
        "resource": resource,
        "resourceName": resource.replace("-", " ").title(),
        "permissions": list(tokens),
        "isActive": True,
        "createdAt": SERVER_TIMESTAMP,
        "updatedAt": SERVER_TIMESTAMP,
        "createdBy": SYSTEM_ACTOR_ID,
        "updatedBy": SYSTEM_ACTOR_ID,
    }


def seed_rbac(store: DocumentStore) -> Dict[str, int]:
    """
    Create missing system roles and grants

    System roles use their key as document id. Returns counts of what was
    created.
    """
    created = {"roles": 0, "grants": 0}
    batch = store.batch()
    for role_key, definition in SYSTEM_ROLE_DEFINITIONS.items():
        grants = {
            resource: _grant_document(role_key, resource, tokens)
            for resource, tokens in DEFAULT_GRANTS.get(role_key, {}).items()
        }
        if store.get(COLLECTION_ROLE_DEFINITIONS, role_key) is None:
            batch.set(COLLECTION_ROLE_DEFINITIONS, role_key, {
                "id": role_key,
                "role": role_key,
                "name": definition["name"],
                "description": definition["description"],
                "isSystemRole": True,
                "isActive": True,
                "permissions": {resource: permission_entry(grant) for resource, grant in grants.items()},
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "createdBy": SYSTEM_ACTOR_ID,
                "updatedBy": SYSTEM_ACTOR_ID,
            })
            created["roles"] += 1
        for resource, grant in grants.items():
            if store.get(COLLECTION_ROLE_PERMISSIONS, grant["id"]) is None:
                batch.set(COLLECTION_ROLE_PERMISSIONS, grant["id"], grant)
                created["grants"] += 1
    batch.commit()

    if created["roles"] or created["grants"]:
        logger.info("RBAC seed: created %d role(s) and %d grant(s)", created["roles"], created["grants"])
    else:
        logger.info("RBAC seed: system roles already present, skipping")
    return created
