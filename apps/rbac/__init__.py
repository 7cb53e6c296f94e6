"""
RBAC (Role-Based Access Control) application.

Provides organization-scoped access control with:
- Fixed role hierarchy with default permission sets
- Per-organization role assignments and permission overrides
- Cached permission resolution with demo and mimic overrides
- Hierarchy-checked single and bulk role assignment
"""
