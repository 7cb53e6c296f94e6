"""
Organization context for the current principal.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from django.db import DatabaseError

from apps.core.exceptions import FetchError

logger = logging.getLogger(__name__)


class OrganizationContext(ABC):
    """What the isolation guard needs to know about the principal's tenancy."""

    @abstractmethod
    def get_current_organization_id(self) -> Optional[str]:
        """Bound organization id, None when unbound. Raises FetchError on lookup failure."""

    @abstractmethod
    def count_memberships(self) -> int:
        """Number of organizations the principal actively belongs to."""

    @abstractmethod
    def has_pending_invitation(self) -> bool:
        """Whether the principal holds an unexpired pending invitation."""

    @abstractmethod
    def record_cross_org_attempt(self, target_org_id, operation: str, details=None) -> None:
        """Write the server-side audit record for a blocked cross-organization access."""


class DatabaseOrganizationContext(OrganizationContext):
    """
    OrganizationContext over OrganizationMembership and OrganizationInvitation.

    A session may carry an organization hint (the org_id claim); it is
    honored only when the user is an active member of that organization.
    """

    def __init__(self, user_id, email: Optional[str] = None, organization_hint=None):
        self.user_id = user_id
        self.email = email
        self.organization_hint = organization_hint

    def _memberships(self):
        from apps.tenants.models import OrganizationMembership
        return OrganizationMembership.objects.for_user(self.user_id)

    def get_current_organization_id(self) -> Optional[str]:
        try:
            memberships = list(self._memberships().values_list('organization_id', flat=True))
        except DatabaseError as e:
            raise FetchError(f"Organization lookup failed for {self.user_id}: {e}") from e

        organization_ids = [str(org_id) for org_id in memberships]
        if self.organization_hint and str(self.organization_hint) in organization_ids:
            return str(self.organization_hint)
        if len(organization_ids) == 1:
            return organization_ids[0]
        return None

    def count_memberships(self) -> int:
        try:
            return self._memberships().count()
        except DatabaseError as e:
            raise FetchError(f"Membership count failed for {self.user_id}: {e}") from e

    def get_membership(self):
        """Membership for the current organization, if any."""
        organization_id = self.get_current_organization_id()
        if organization_id is None:
            return None
        return self._memberships().filter(organization_id=organization_id).first()

    def has_pending_invitation(self) -> bool:
        from apps.tenants.models import OrganizationInvitation

        if not self.email:
            return False
        try:
            return OrganizationInvitation.objects.pending_for_email(self.email).exists()
        except DatabaseError as e:
            raise FetchError(f"Invitation lookup failed for {self.user_id}: {e}") from e

    def record_cross_org_attempt(self, target_org_id, operation: str, details=None) -> None:
        from apps.tenants.models import CrossOrgAccessAttempt

        CrossOrgAccessAttempt.objects.create(
            user_id=self.user_id,
            user_organization_id=str(self.get_current_organization_id() or ''),
            target_organization_id=str(target_org_id),
            operation=operation,
            details=details or {},
        )
