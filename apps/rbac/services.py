"""
Access control services.

Implements:
- PermissionResolver: effective roles and permissions for a principal,
  honoring override modes and the onboarding gate
- RoleAssignmentAuthority: hierarchy-checked single and bulk role grants
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from django.conf import settings

from apps.core.exceptions import (
    AccessControlError,
    AssignmentRejected,
    FetchError,
    InsufficientPermissions,
    MissingJustification,
    TargetNotFound,
    UnknownRole,
)
from apps.rbac.catalog import Permission, Role, RoleCatalog
from apps.rbac.principal import OverrideMode, Principal

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('security')


class AccessState(str, Enum):
    """Observable access state of a principal."""

    LOADING = 'loading'         # onboarding state not known yet
    ONBOARDING = 'onboarding'   # onboarding incomplete, all roles suppressed
    FORBIDDEN = 'forbidden'     # no effective roles
    GRANTED = 'granted'


@dataclass(frozen=True)
class FetchResult:
    """
    Outcome of a role or permission lookup.

    values holds what the caller may use even when error is set (an empty
    set, or the role-default fallback for permissions).
    """

    values: FrozenSet = frozenset()
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class AccessSnapshot:
    state: AccessState
    roles: FrozenSet[Role]
    permissions: FrozenSet[Permission]
    highest_role: Optional[Role]

    def to_dict(self) -> dict:
        return {
            'state': self.state.value,
            'roles': sorted(r.value for r in self.roles),
            'permissions': sorted(self.permissions),
            'highest_role': self.highest_role.value if self.highest_role else None,
        }


class PermissionResolver:
    """
    Computes roles and effective permissions for principals.

    Results are cached per Principal.cache_key, so a change of organization,
    override mode, override role or onboarding state never reuses an old result.
    Failed lookups are not cached. Role writes must call invalidate().

    Args:
        backend: RoleBackend
        event_log: SecurityEventLog for override denials (optional)
        cache_ttl_seconds: Lifetime of cached results
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        backend,
        event_log=None,
        cache_ttl_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.event_log = event_log
        self.cache_ttl_seconds = cache_ttl_seconds
        self.clock = clock
        self._roles_cache: Dict[tuple, Tuple[float, FrozenSet[Role], bool]] = {}
        self._permissions_cache: Dict[tuple, Tuple[float, FrozenSet[Permission]]] = {}
        self._lock = threading.Lock()

    # Cache helpers

    def _cached(self, cache, key):
        with self._lock:
            entry = cache.get(key)
            if entry is None:
                return None
            if entry[0] <= self.clock():
                cache.pop(key, None)
                return None
            return entry[1:]

    def _store(self, cache, key, *values):
        if self.cache_ttl_seconds <= 0:
            return
        with self._lock:
            cache[key] = (self.clock() + self.cache_ttl_seconds,) + values

    def invalidate(self, identity_id) -> None:
        """Drop every cached result for an identity."""
        identity_id = str(identity_id)
        with self._lock:
            for cache in (self._roles_cache, self._permissions_cache):
                for key in [k for k in cache if k[0] == identity_id]:
                    del cache[key]

    def clear(self) -> None:
        with self._lock:
            self._roles_cache.clear()
            self._permissions_cache.clear()

    # Lookups

    def _backend_roles(self, principal: Principal) -> FrozenSet[Role]:
        try:
            names = self.backend.fetch_roles_for_principal(
                principal.identity_id, principal.organization_id
            )
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"Role lookup failed for {principal.identity_id}: {e}") from e

        roles = set()
        for name in names or ():
            try:
                roles.add(RoleCatalog.parse(name))
            except UnknownRole:
                logger.warning(
                    f"Ignoring unknown role from backend: {name!r}",
                    extra={'user_id': principal.identity_id}
                )
        return frozenset(roles)

    def _resolve_roles(self, principal: Principal) -> Tuple[FetchResult, bool]:
        """Returns (result, override_applied)."""
        if not principal.onboarding_gate_open:
            return FetchResult(frozenset()), False

        override = principal.override
        if override is not None and override.mode == OverrideMode.DEMO:
            return FetchResult(frozenset({override.role})), True

        key = principal.cache_key
        cached = self._cached(self._roles_cache, key)
        if cached is not None:
            roles, override_applied = cached
            return FetchResult(roles), override_applied

        try:
            backend_roles = self._backend_roles(principal)
        except FetchError as e:
            return FetchResult(frozenset(), error=e), False

        roles, override_applied = backend_roles, False
        if override is not None and override.mode == OverrideMode.MIMIC:
            if RoleCatalog.top_role() in backend_roles:
                roles, override_applied = frozenset({override.role}), True
            else:
                logger.warning(
                    f"Ignoring role mimic override for non-admin {principal.identity_id}",
                    extra={'user_id': principal.identity_id, 'role': override.role.value}
                )
                if self.event_log is not None:
                    self.event_log.record(
                        'role_mimic_denied',
                        {'requested_role': override.role.value},
                        success=False,
                        user_id=principal.identity_id,
                        organization_id=principal.organization_id,
                    )

        self._store(self._roles_cache, key, roles, override_applied)
        return FetchResult(roles), override_applied

    def fetch_roles(self, principal: Principal) -> FetchResult:
        """Effective roles as a FetchResult. Never raises for backend failures."""
        return self._resolve_roles(principal)[0]

    def fetch_permissions(self, principal: Principal) -> FetchResult:
        """
        Effective permissions as a FetchResult.

        With an active override the override role's defaults apply. Otherwise
        backend-reported permissions win when non-empty; the role defaults
        are the fallback, including when the permission lookup fails.
        """
        roles_result, override_applied = self._resolve_roles(principal)
        roles = roles_result.values
        if not roles:
            return FetchResult(frozenset(), error=roles_result.error)

        defaults = frozenset().union(*(RoleCatalog.default_permissions(r) for r in roles))
        if override_applied:
            return FetchResult(defaults)

        key = principal.cache_key
        cached = self._cached(self._permissions_cache, key)
        if cached is not None:
            return FetchResult(cached[0])

        try:
            reported = self.backend.fetch_effective_permissions(
                principal.identity_id, principal.organization_id
            )
        except Exception as e:
            error = e if isinstance(e, FetchError) else FetchError(
                f"Permission lookup failed for {principal.identity_id}: {e}"
            )
            return FetchResult(defaults, error=error)

        permissions = self._validate_permissions(principal, reported)
        result = permissions or defaults
        self._store(self._permissions_cache, key, result)
        return FetchResult(result)

    def _validate_permissions(self, principal, names) -> FrozenSet[Permission]:
        permissions = set()
        for name in names or ():
            try:
                permissions.add(RoleCatalog.normalize_permission(name))
            except ValueError:
                logger.warning(
                    f"Dropping invalid permission from backend: {name!r}",
                    extra={'user_id': principal.identity_id}
                )
        return frozenset(permissions)

    # Degrade-to-empty composition points

    def effective_roles(self, principal: Principal) -> FrozenSet[Role]:
        result = self.fetch_roles(principal)
        if not result.ok:
            logger.error(
                f"Role fetch failed, treating as no roles: {result.error}",
                extra={'user_id': principal.identity_id}
            )
        return result.values

    def effective_permissions(self, principal: Principal) -> FrozenSet[Permission]:
        result = self.fetch_permissions(principal)
        if not result.ok:
            logger.error(
                f"Permission fetch failed, using role defaults: {result.error}",
                extra={'user_id': principal.identity_id}
            )
        return result.values

    # Checks

    def has(self, principal: Principal, permission) -> bool:
        """Permission check. Legacy names are normalized first; invalid names never match."""
        try:
            permission = RoleCatalog.normalize_permission(permission)
        except ValueError:
            return False
        return permission in self.effective_permissions(principal)

    def at_least_role(self, principal: Principal, min_role) -> bool:
        min_level = RoleCatalog.level_of(min_role)
        roles = self.effective_roles(principal)
        if not roles:
            return False
        return RoleCatalog.max_level(roles) >= min_level

    def highest_role(self, principal: Principal) -> Optional[Role]:
        return RoleCatalog.highest_role(self.effective_roles(principal))

    def has_role(self, principal: Principal, role) -> bool:
        return RoleCatalog.parse(role) in self.effective_roles(principal)

    def has_any_role(self, principal: Principal, roles: Iterable) -> bool:
        wanted = {RoleCatalog.parse(r) for r in roles}
        return bool(wanted & self.effective_roles(principal))

    def can_access_route(self, principal: Principal, path: str) -> bool:
        return RoleCatalog.has_route_access(
            path,
            self.effective_roles(principal),
            self.effective_permissions(principal),
        )

    def access_state(self, principal: Principal) -> AccessState:
        if principal.onboarding_complete is None:
            return AccessState.LOADING
        if principal.onboarding_complete is False:
            return AccessState.ONBOARDING
        if not self.effective_roles(principal):
            return AccessState.FORBIDDEN
        return AccessState.GRANTED

    def snapshot(self, principal: Principal) -> AccessSnapshot:
        roles = self.effective_roles(principal)
        return AccessSnapshot(
            state=self.access_state(principal),
            roles=roles,
            permissions=self.effective_permissions(principal),
            highest_role=RoleCatalog.highest_role(roles),
        )


class AssignmentState(str, Enum):
    REQUESTED = 'requested'
    VALIDATED = 'validated'
    SUBMITTED = 'submitted'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


@dataclass(frozen=True)
class RoleAssignmentRequest:
    """
    A single role grant.

    confirmed records that the caller already obtained the explicit
    confirmation required for sensitive roles.
    """

    target: str
    role: Role
    justification: str = ''
    confirmed: bool = False


@dataclass
class AssignmentResult:
    request: RoleAssignmentRequest
    state: AssignmentState
    error: Optional[Exception] = None
    states: List[AssignmentState] = field(default_factory=list)
    target_identity_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == AssignmentState.SUCCEEDED

    def to_dict(self) -> dict:
        payload = {
            'target': self.request.target,
            'role': RoleCatalog.parse(self.request.role).value,
            'status': self.state.value,
            'target_user_id': self.target_identity_id,
        }
        if self.error is not None:
            if isinstance(self.error, AccessControlError):
                payload.update(self.error.to_dict())
            else:
                payload['error'] = 'An unexpected error occurred'
                payload['code'] = 'GENERIC_ERROR'
        return payload


@dataclass
class BulkAssignmentResult:
    success: bool
    succeeded: int
    failed: int
    results: List[AssignmentResult] = field(default_factory=list)
    error: Optional[Exception] = None

    def to_dict(self) -> dict:
        payload = {
            'success': self.success,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'results': [r.to_dict() for r in self.results],
        }
        if isinstance(self.error, AccessControlError):
            payload.update(self.error.to_dict())
        return payload


class RoleAssignmentAuthority:
    """
    Validates and performs role grants.

    Every backend write passes through the tenant isolation guard, which
    records exactly one role_assignment_success / role_assignment_error
    event per submitted grant. Local validation failures never reach the
    backend and are only written to the 'security' logger.

    Args:
        resolver: PermissionResolver used for the actor's roles
        backend: RoleBackend for identity resolution and writes
        guard: TenantIsolationGuard for the actor's session
    """

    # Lowest level allowed to grant any role
    MIN_ASSIGNER_ROLE = Role.MANAGER

    def __init__(self, resolver: PermissionResolver, backend, guard):
        self.resolver = resolver
        self.backend = backend
        self.guard = guard

    def can_assign(self, actor: Principal, role) -> bool:
        """
        Whether actor may grant role.

        Decided on the actor's stored roles; a demo or mimic override never
        widens or narrows what the actor may grant.
        """
        try:
            target_level = RoleCatalog.level_of(role)
        except UnknownRole:
            return False

        roles = self.resolver.effective_roles(actor.with_override(None))
        if RoleCatalog.top_role() in roles:
            return True

        actor_level = RoleCatalog.max_level(roles)
        return (
            actor_level >= RoleCatalog.level_of(self.MIN_ASSIGNER_ROLE)
            and actor_level >= target_level
        )

    def requires_confirmation(self, role) -> bool:
        return RoleCatalog.is_sensitive(role)

    def _deny(self, actor: Principal, request: RoleAssignmentRequest, error: AccessControlError):
        security_logger.warning(
            f"Role assignment denied: {error.code}",
            extra={
                'event_type': 'role_assignment_denied',
                'user_id': actor.identity_id,
                'organization_id': actor.organization_id,
                'target': request.target,
                'role': str(request.role),
                'error_code': error.code,
            }
        )

    def _validate(self, actor: Principal, request: RoleAssignmentRequest) -> Role:
        if not self.can_assign(actor, request.role):
            raise InsufficientPermissions(
                f"Insufficient permissions to assign the {request.role} role"
            )
        if not (request.justification or '').strip():
            raise MissingJustification()
        return RoleCatalog.parse(request.role)

    def assign(self, actor: Principal, request: RoleAssignmentRequest) -> AssignmentResult:
        """
        Grant a role.

        Returns:
            AssignmentResult in state SUCCEEDED, or FAILED with one of
            InsufficientPermissions, MissingJustification, TargetNotFound,
            AssignmentRejected, or the guard's error
        """
        result = AssignmentResult(
            request=request,
            state=AssignmentState.REQUESTED,
            states=[AssignmentState.REQUESTED],
        )

        def advance(state):
            result.state = state
            result.states.append(state)

        try:
            try:
                role = self._validate(actor, request)
            except (InsufficientPermissions, MissingJustification) as e:
                self._deny(actor, request, e)
                raise
            advance(AssignmentState.VALIDATED)

            target_id = self.backend.resolve_backend_identity(
                request.target, organization_id=actor.organization_id
            )
            if not target_id:
                raise TargetNotFound(f"Target {request.target!r} not found")
            result.target_identity_id = str(target_id)
            advance(AssignmentState.SUBMITTED)

            justification = request.justification.strip()

            def submit():
                outcome = self.backend.submit_role_assignment(
                    target_id,
                    role,
                    justification,
                    organization_id=actor.organization_id,
                    assigned_by=actor.identity_id,
                )
                if not outcome.success:
                    raise AssignmentRejected(outcome.error or 'Rejected by backend')
                return outcome

            self.guard.run(
                'role_assignment',
                submit,
                event_type='role_assignment',
                event_details={
                    'target_user_id': str(target_id),
                    'role': role.value,
                    'justification': justification,
                },
            )
        except Exception as e:
            if not isinstance(e, AccessControlError):
                logger.error(
                    f"Role assignment failed unexpectedly: {e}",
                    extra={'user_id': actor.identity_id, 'target': request.target},
                    exc_info=True
                )
            result.error = e
            advance(AssignmentState.FAILED)
            return result

        self.resolver.invalidate(target_id)
        advance(AssignmentState.SUCCEEDED)
        logger.info(
            f"Role {role.value} assigned",
            extra={'user_id': actor.identity_id, 'target_user_id': str(target_id)}
        )
        return result

    def bulk_assign(
        self,
        actor: Principal,
        requests: Iterable[RoleAssignmentRequest],
        justification: str,
        max_workers: int = 1,
    ) -> BulkAssignmentResult:
        """
        Grant several roles with one shared justification.

        The justification and every request's permission are validated
        before any write; a single permission failure aborts the whole batch.
        Remaining items run independently, sequentially by default or on a
        bounded thread pool when max_workers > 1. Results keep input order.
        """
        requests = list(requests)

        if not (justification or '').strip():
            error = MissingJustification()
            for request in requests[:1]:
                self._deny(actor, request, error)
            return BulkAssignmentResult(success=False, succeeded=0, failed=0, error=error)

        for request in requests:
            if not self.can_assign(actor, request.role):
                error = InsufficientPermissions(
                    f"Insufficient permissions to assign the {request.role} role"
                )
                self._deny(actor, request, error)
                return BulkAssignmentResult(success=False, succeeded=0, failed=0, error=error)

        items = [replace(request, justification=justification) for request in requests]

        if max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                results = list(executor.map(lambda item: self.assign(actor, item), items))
        else:
            results = [self.assign(actor, item) for item in items]

        succeeded = sum(1 for r in results if r.succeeded)
        failed = len(results) - succeeded
        logger.info(
            f"Bulk role assignment finished: {succeeded} succeeded, {failed} failed",
            extra={'user_id': actor.identity_id}
        )
        return BulkAssignmentResult(
            success=failed == 0,
            succeeded=succeeded,
            failed=failed,
            results=results,
        )


def get_permission_resolver() -> PermissionResolver:
    """Process-wide resolver over the database backend."""
    from apps.core.services import get_security_event_log, get_service
    from apps.rbac.backends import DatabaseRoleBackend

    return get_service(
        'permission_resolver',
        lambda: PermissionResolver(
            DatabaseRoleBackend(),
            event_log=get_security_event_log(),
            cache_ttl_seconds=getattr(settings, 'PERMISSION_CACHE_TTL_SECONDS', 300),
        ),
    )


def authority_for_request(request) -> RoleAssignmentAuthority:
    from apps.rbac.backends import DatabaseRoleBackend
    from apps.tenants.guard import guard_for_request

    return RoleAssignmentAuthority(
        resolver=get_permission_resolver(),
        backend=DatabaseRoleBackend(),
        guard=guard_for_request(request),
    )
