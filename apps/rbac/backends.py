"""
Role and permission backends.

RoleBackend is the narrow contract the access-control services use to talk
to the data store:
- fetch_roles_for_principal(identity_id, organization_id)
- fetch_effective_permissions(identity_id, organization_id)
- resolve_backend_identity(target_ref)
- submit_role_assignment(identity_id, role, justification)

Role and permission lookups are scoped to one organization. DatabaseRoleBackend
implements the contract over the Django ORM. Lookups raise FetchError on
failure; callers decide how to degrade.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from django.db import DatabaseError, IntegrityError, transaction

from apps.core.exceptions import FetchError
from apps.rbac.catalog import Role, RoleCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitResult:
    """Backend answer to a role write."""

    success: bool
    error: Optional[str] = None


class RoleBackend(ABC):
    """Data store contract for role and permission lookups and writes."""

    @abstractmethod
    def fetch_roles_for_principal(self, identity_id, organization_id=None) -> List[str]:
        """Role names held by identity_id in organization_id. Raises FetchError."""

    @abstractmethod
    def fetch_effective_permissions(self, identity_id, organization_id=None) -> List[str]:
        """Permission names granted to identity_id in organization_id. Raises FetchError."""

    @abstractmethod
    def resolve_backend_identity(self, target_ref, organization_id=None) -> Optional[str]:
        """Identity id for a target reference, or None when it does not resolve."""

    @abstractmethod
    def submit_role_assignment(
        self,
        identity_id,
        role: Role,
        justification: str,
        organization_id=None,
        assigned_by=None,
    ) -> SubmitResult:
        """Write a role grant. Business rejections come back as SubmitResult(False, reason)."""


class DatabaseRoleBackend(RoleBackend):
    """
    RoleBackend over RoleAssignment, PermissionOverride and OrganizationMembership.

    Roles and permissions are read for one active organization membership.
    Without an explicit organization the identity's only active membership
    is used; an identity with several memberships and no organization gets
    nothing.
    """

    def _organization_ids(self, identity_id):
        from apps.tenants.models import OrganizationMembership

        return list(
            OrganizationMembership.objects.for_user(identity_id)
            .values_list('organization_id', flat=True)
        )

    def _scope(self, identity_id, organization_id) -> Optional[str]:
        """The membership organization lookups are restricted to, or None."""
        organization_ids = [str(org_id) for org_id in self._organization_ids(identity_id)]
        if organization_id is None:
            return organization_ids[0] if len(organization_ids) == 1 else None
        return str(organization_id) if str(organization_id) in organization_ids else None

    def fetch_roles_for_principal(self, identity_id, organization_id=None) -> List[str]:
        from apps.rbac.models import RoleAssignment

        try:
            scope = self._scope(identity_id, organization_id)
            if scope is None:
                return []
            return sorted(set(
                RoleAssignment.objects.for_user(identity_id)
                .filter(organization_id=scope)
                .values_list('role', flat=True)
            ))
        except DatabaseError as e:
            raise FetchError(f"Role lookup failed for {identity_id}: {e}") from e

    def fetch_effective_permissions(self, identity_id, organization_id=None) -> List[str]:
        """
        Union of role defaults and explicit grants, minus explicit denies.
        """
        from apps.rbac.models import PermissionOverride

        roles = self.fetch_roles_for_principal(identity_id, organization_id)
        if not roles:
            return []

        permissions = set()
        for name in roles:
            try:
                permissions |= RoleCatalog.default_permissions(name)
            except ValueError:
                logger.warning(
                    f"Ignoring unknown stored role '{name}'",
                    extra={'user_id': str(identity_id)}
                )

        try:
            scope = self._scope(identity_id, organization_id)
            overrides = list(
                PermissionOverride.objects
                .filter(user_id=identity_id, organization_id=scope)
                .values_list('permission', 'granted')
            )
        except DatabaseError as e:
            raise FetchError(f"Permission lookup failed for {identity_id}: {e}") from e

        permissions |= {name for name, granted in overrides if granted}
        permissions -= {name for name, granted in overrides if not granted}
        return sorted(permissions)

    def resolve_backend_identity(self, target_ref, organization_id=None) -> Optional[str]:
        """
        Resolve a user id or email address to a user id.

        When organization_id is given, only members of that organization
        resolve.
        """
        from apps.rbac.models import User

        if target_ref is None or str(target_ref).strip() == '':
            return None

        ref = str(target_ref).strip()
        users = User.objects.active()
        if organization_id:
            users = users.filter(
                memberships__organization_id=organization_id,
                memberships__is_active=True,
            )

        if '@' in ref:
            user = users.filter(email__iexact=ref).first()
        else:
            try:
                user = users.filter(id=uuid.UUID(ref)).first()
            except ValueError:
                return None

        return str(user.id) if user else None

    def submit_role_assignment(
        self,
        identity_id,
        role: Role,
        justification: str,
        organization_id=None,
        assigned_by=None,
    ) -> SubmitResult:
        from apps.rbac.models import RoleAssignment
        from apps.tenants.models import OrganizationMembership

        role = RoleCatalog.parse(role)

        if organization_id is None:
            organization_ids = self._organization_ids(identity_id)
            if len(organization_ids) != 1:
                return SubmitResult(False, 'User is not a member of exactly one organization')
            organization_id = organization_ids[0]
        elif OrganizationMembership.objects.get_membership(organization_id, identity_id) is None:
            return SubmitResult(False, 'User is not a member of this organization')

        if RoleAssignment.objects.for_user(identity_id).filter(
            organization_id=organization_id, role=role.value
        ).exists():
            return SubmitResult(False, f"User already has the {role.value} role")

        try:
            with transaction.atomic():
                RoleAssignment.objects.create(
                    user_id=identity_id,
                    organization_id=organization_id,
                    role=role.value,
                    assigned_by_id=assigned_by,
                    justification=justification,
                )
        except IntegrityError:
            return SubmitResult(False, f"User already has the {role.value} role")

        logger.info(
            f"Role {role.value} assigned to {identity_id}",
            extra={
                'user_id': str(identity_id),
                'organization_id': str(organization_id),
                'assigned_by': str(assigned_by) if assigned_by else None,
            }
        )
        return SubmitResult(True)
