"""
Static role catalog.

Defines the closed role hierarchy, each role's default permission set, the
legacy permission alias table, and the route access rules used for
navigation gating. Everything here is immutable after import.
"""
import re
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from apps.core.exceptions import UnknownRole


class Role(str, Enum):
    """Role hierarchy. Higher level = more privileged."""

    ADMIN = 'admin'
    DIRECTOR = 'director'
    MANAGER = 'manager'
    SUPERVISOR = 'supervisor'
    EMPLOYEE = 'employee'

    def __str__(self):
        return self.value


class Permission(str):
    """
    Validated permission identifier.

    Any backend string that is a lowercase identifier is accepted, so new
    permissions can be introduced server-side without a release.
    """

    PATTERN = re.compile(r'^[a-z][a-z0-9_:.-]*$')

    def __new__(cls, value):
        if isinstance(value, Permission):
            return value
        if not isinstance(value, str) or not cls.PATTERN.match(value):
            raise ValueError(f"Invalid permission identifier: {value!r}")
        return super().__new__(cls, value)


# Canonical permission names
MANAGE_EMPLOYEES = Permission('manage_employees')
VIEW_REPORTS = Permission('view_reports')
CREATE_APPRAISALS = Permission('create_appraisals')
MANAGE_APPRAISALS = Permission('manage_appraisals')
MANAGE_GOALS = Permission('manage_goals')
MANAGE_ROLES = Permission('manage_roles')
VIEW_AUDIT = Permission('view_audit')
MANAGE_SETTINGS = Permission('manage_settings')
MANAGE_ORGANIZATION = Permission('manage_organization')
MANAGE_APPRAISAL_CYCLES = Permission('manage_appraisal_cycles')
MANAGE_SECURITY = Permission('manage_security')
VIEW_ANALYTICS = Permission('view_analytics')


ROLE_LEVELS: Dict[Role, int] = {
    Role.ADMIN: 5,
    Role.DIRECTOR: 4,
    Role.MANAGER: 3,
    Role.SUPERVISOR: 2,
    Role.EMPLOYEE: 1,
}

_SUPERVISOR_PERMISSIONS = frozenset({VIEW_REPORTS, CREATE_APPRAISALS})
_MANAGER_PERMISSIONS = _SUPERVISOR_PERMISSIONS | {MANAGE_GOALS}
_DIRECTOR_PERMISSIONS = _MANAGER_PERMISSIONS | {MANAGE_EMPLOYEES, MANAGE_APPRAISALS}
_ADMIN_PERMISSIONS = _DIRECTOR_PERMISSIONS | {
    MANAGE_ROLES,
    VIEW_AUDIT,
    MANAGE_SETTINGS,
    MANAGE_ORGANIZATION,
    MANAGE_APPRAISAL_CYCLES,
    MANAGE_SECURITY,
    VIEW_ANALYTICS,
}

DEFAULT_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.ADMIN: frozenset(_ADMIN_PERMISSIONS),
    Role.DIRECTOR: frozenset(_DIRECTOR_PERMISSIONS),
    Role.MANAGER: frozenset(_MANAGER_PERMISSIONS),
    Role.SUPERVISOR: frozenset(_SUPERVISOR_PERMISSIONS),
    Role.EMPLOYEE: frozenset(),
}

# Legacy names still sent by older clients and stored in old grants
LEGACY_PERMISSION_ALIASES: Dict[str, Permission] = {
    'canManageEmployees': MANAGE_EMPLOYEES,
    'canViewReports': VIEW_REPORTS,
    'canCreateAppraisals': CREATE_APPRAISALS,
    'canManageGoals': MANAGE_GOALS,
    'canManageRoles': MANAGE_ROLES,
    'canViewAudit': VIEW_AUDIT,
    'canManageSettings': MANAGE_SETTINGS,
    'canManageOrganization': MANAGE_ORGANIZATION,
    'canManageAppraisalCycles': MANAGE_APPRAISAL_CYCLES,
    'manage_users': MANAGE_EMPLOYEES,
    'view_audit_log': VIEW_AUDIT,
    'view_audit_logs': VIEW_AUDIT,
    'manage_cycles': MANAGE_APPRAISAL_CYCLES,
}


class RouteRule:
    """Access requirements for a route prefix. All given requirements must hold."""

    __slots__ = ('path', 'min_role', 'roles', 'permissions')

    def __init__(
        self,
        path: str,
        min_role: Optional[Role] = None,
        roles: Tuple[Role, ...] = (),
        permissions: Tuple[Permission, ...] = (),
    ):
        self.path = path
        self.min_role = min_role
        self.roles = tuple(roles)
        self.permissions = tuple(permissions)

    def matches(self, path: str) -> bool:
        return path == self.path or path.startswith(self.path.rstrip('/') + '/')

    def __repr__(self):
        return f"RouteRule({self.path!r})"


ROUTE_ACCESS_RULES: Tuple[RouteRule, ...] = (
    RouteRule('/admin', min_role=Role.ADMIN),
    RouteRule('/admin/employees', permissions=(MANAGE_EMPLOYEES,)),
    RouteRule('/admin/roles', permissions=(MANAGE_ROLES,)),
    RouteRule('/admin/security', permissions=(MANAGE_SECURITY,)),
    RouteRule('/admin/analytics', permissions=(VIEW_ANALYTICS,)),
    RouteRule('/admin/settings', permissions=(MANAGE_SETTINGS,)),
    RouteRule('/admin/audit', permissions=(VIEW_AUDIT,)),
    RouteRule('/admin/cycles', permissions=(MANAGE_APPRAISAL_CYCLES,)),
    RouteRule('/director', min_role=Role.DIRECTOR),
    RouteRule('/director/reports', permissions=(VIEW_REPORTS,)),
    RouteRule('/director/appraisals', permissions=(MANAGE_APPRAISALS,)),
    RouteRule('/manager', min_role=Role.MANAGER),
    RouteRule('/manager/team', min_role=Role.MANAGER),
    RouteRule('/manager/goals', permissions=(MANAGE_GOALS,)),
    RouteRule('/supervisor', min_role=Role.SUPERVISOR),
    RouteRule('/supervisor/team', min_role=Role.SUPERVISOR),
    RouteRule('/employee', min_role=Role.EMPLOYEE),
)


class RoleCatalog:
    """Pure lookups over the fixed role table."""

    @classmethod
    def parse(cls, value) -> Role:
        """
        Convert a role name into a Role.

        Raises:
            UnknownRole: value is not one of the fixed roles
        """
        if isinstance(value, Role):
            return value
        try:
            return Role(str(value).strip().lower())
        except ValueError:
            raise UnknownRole(f"Unknown role: {value!r}")

    @classmethod
    def level_of(cls, role) -> int:
        return ROLE_LEVELS[cls.parse(role)]

    @classmethod
    def default_permissions(cls, role) -> FrozenSet[Permission]:
        return DEFAULT_PERMISSIONS[cls.parse(role)]

    @classmethod
    def all_roles(cls) -> List[Role]:
        """All roles, highest level first."""
        return sorted(ROLE_LEVELS, key=ROLE_LEVELS.get, reverse=True)

    @classmethod
    def top_role(cls) -> Role:
        return cls.all_roles()[0]

    @classmethod
    def sensitive_roles(cls) -> FrozenSet[Role]:
        """The top two hierarchy levels. Granting these needs explicit confirmation."""
        return frozenset(cls.all_roles()[:2])

    @classmethod
    def is_sensitive(cls, role) -> bool:
        return cls.parse(role) in cls.sensitive_roles()

    @classmethod
    def highest_role(cls, roles: Iterable[Role]) -> Optional[Role]:
        roles = [cls.parse(r) for r in roles]
        if not roles:
            return None
        return max(roles, key=ROLE_LEVELS.get)

    @classmethod
    def max_level(cls, roles: Iterable[Role]) -> int:
        """Highest level among roles, 0 when there are none."""
        return max((cls.level_of(r) for r in roles), default=0)

    @classmethod
    def normalize_permission(cls, name) -> Permission:
        """
        Map a legacy permission name to its canonical form.

        Raises:
            ValueError: name is neither a legacy alias nor a valid identifier
        """
        if name in LEGACY_PERMISSION_ALIASES:
            return LEGACY_PERMISSION_ALIASES[name]
        return Permission(name)

    @classmethod
    def route_rules_for(cls, path: str) -> List[RouteRule]:
        """Every rule whose prefix covers path, least specific first."""
        return sorted(
            (rule for rule in ROUTE_ACCESS_RULES if rule.matches(path)),
            key=lambda rule: len(rule.path),
        )

    @classmethod
    def has_route_access(
        cls,
        path: str,
        roles: Iterable[Role],
        permissions: Iterable[Permission],
    ) -> bool:
        """
        Check route access for a role and permission set.

        A nested route must satisfy its own rule and every enclosing rule
        ('/admin/roles' also requires what '/admin' requires). Routes without
        a rule are open.
        """
        roles = {cls.parse(r) for r in roles}
        permissions = set(permissions)

        for rule in cls.route_rules_for(path):
            if rule.min_role and cls.max_level(roles) < cls.level_of(rule.min_role):
                return False

            if rule.roles and not roles.intersection(rule.roles):
                return False

            if rule.permissions and not set(rule.permissions).issubset(permissions):
                return False

        return True
