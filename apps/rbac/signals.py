"""
RBAC signals for resolver cache invalidation.

Any change to a user's role assignments or permission overrides drops the
cached roles and permissions for that user, so results are never reused
across a role change.
"""
import logging

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


def _invalidate(user_id):
    from apps.rbac.services import get_permission_resolver

    get_permission_resolver().invalidate(user_id)
    logger.debug(f"Invalidated access cache for user {user_id}")


@receiver(post_save, sender='rbac.RoleAssignment')
@receiver(post_delete, sender='rbac.RoleAssignment')
def invalidate_on_role_change(sender, instance, **kwargs):
    _invalidate(instance.user_id)


@receiver(post_save, sender='rbac.PermissionOverride')
@receiver(post_delete, sender='rbac.PermissionOverride')
def invalidate_on_permission_override_change(sender, instance, **kwargs):
    _invalidate(instance.user_id)

