"""
Signals for organization membership lifecycle events.
"""
import logging

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from apps.tenants.models import OrganizationMembership

logger = logging.getLogger(__name__)


@receiver(post_save, sender=OrganizationMembership)
@receiver(post_delete, sender=OrganizationMembership)
def invalidate_access_on_membership_change(sender, instance, **kwargs):
    """
    Drop cached roles and permissions for the member.

    Roles are only read within active memberships, and the onboarding
    state lives on the membership.
    """
    from apps.rbac.services import get_permission_resolver

    get_permission_resolver().invalidate(instance.user_id)
    logger.info(
        f"Membership changed for user {instance.user_id} in organization {instance.organization_id}",
        extra={
            'user_id': str(instance.user_id),
            'organization_id': str(instance.organization_id),
            'is_active': instance.is_active,
        }
    )
