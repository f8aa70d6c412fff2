"""
Constants for collection names, system roles and RBAC resources

The document store has no DDL; these names are the single source of truth
for where each kind of document lives.
"""

# RBAC collections
COLLECTION_USERS = "users"
COLLECTION_ROLE_DEFINITIONS = "roleDefinitions"
COLLECTION_ROLE_PERMISSIONS = "rolePermissions"
COLLECTION_USER_ROLE_ASSIGNMENTS = "userRoleAssignments"
COLLECTION_AUDIT_LOGS = "rbacAuditLogs"

# Reference entities
COLLECTION_DEPARTMENTS = "departments"
COLLECTION_POSITIONS = "positions"
COLLECTION_LEAVE_TYPES = "leaveTypes"
COLLECTION_EMPLOYEES = "employees"

# Documents that embed reference names
COLLECTION_ATTENDANCE = "attendance"
COLLECTION_LEAVE_REQUESTS = "leaveRequests"
COLLECTION_LEAVE_ENTITLEMENTS = "leaveEntitlements"
COLLECTION_PAYROLL_RECORDS = "payrollRecords"

# System role keys
ROLE_ADMIN = "admin"
ROLE_HR = "hr"
ROLE_MANAGER = "manager"
ROLE_EMPLOYEE = "employee"
ROLE_AUDITOR = "auditor"

SYSTEM_ROLES = (ROLE_ADMIN, ROLE_HR, ROLE_MANAGER, ROLE_EMPLOYEE, ROLE_AUDITOR)

# Protected resources
RESOURCE_EMPLOYEES = "employees"
RESOURCE_ATTENDANCE = "attendance"
RESOURCE_LEAVE_REQUESTS = "leave-requests"
RESOURCE_PAYROLL = "payroll"
RESOURCE_DEPARTMENTS = "departments"
RESOURCE_POSITIONS = "positions"
RESOURCE_SETTINGS = "settings"
RESOURCE_USERS = "users"
RESOURCE_ROLES = "roles"
RESOURCE_AUDIT_LOGS = "audit-logs"

# Performer sentinel when a write carries no createdBy/updatedBy
SYSTEM_ACTOR_ID = "system"
