"""
Role names and permission keys referenced directly by code.

Everything else about roles is data; only the seed role names used by the
bootstrap matrices and the few keys guarding administrative routes live here.
"""

# Seed role names
DISTRICT = "district"  # Highest-privilege role
UNIT_ADMIN = "unitadmin"  # Organization administrator
LEADER = "leader"
PARENT = "parent"
FINANCE = "finance"
EQUIPMENT = "equipment"
ADMINISTRATION = "administration"
DEMO_ADMIN = "demoadmin"
DEMO_PARENT = "demoparent"

HIGHEST_PRIVILEGE_ROLE = DISTRICT
ORG_ADMIN_ROLE = UNIT_ADMIN

# Permission keys guarding administrative operations
ROLES_VIEW = "roles.view"
ROLES_MANAGE = "roles.manage"
USERS_ASSIGN_ROLES = "users.assign_roles"
USERS_ASSIGN_DISTRICT = "users.assign_district"
FORMS_VIEW = "forms.view"
FORMS_CREATE = "forms.create"
FORMS_MANAGE = "forms.manage"
