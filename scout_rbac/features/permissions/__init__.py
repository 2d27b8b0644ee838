"""
Permission management feature module.

Implements organization-scoped Role-Based Access Control (RBAC): a permission
catalog, roles with a data scope, role grants, member role assignments and the
evaluator that turns a member's roles into permissions.
"""
