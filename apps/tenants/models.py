"""
Organization models for multi-tenant isolation.

Every piece of HR data belongs to exactly one Organization. A user is bound
to an organization through OrganizationMembership; users who have not
joined yet may hold a pending OrganizationInvitation.
"""
from django.conf import settings
from django.db import models
from django.utils import timezone

from apps.core.models import BaseModel
from apps.rbac.catalog import Role


class OrganizationManager(models.Manager):
    """Manager for organization queries."""

    def active(self):
        return self.filter(is_active=True)

    def by_slug(self, slug):
        return self.filter(slug=slug).first()


class Organization(BaseModel):
    """
    Tenant: the isolation boundary for all HR data.
    """

    name = models.CharField(max_length=255, help_text="Organization name")
    slug = models.SlugField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="URL-safe identifier"
    )
    is_active = models.BooleanField(default=True, db_index=True)

    objects = OrganizationManager()

    class Meta:
        db_table = 'organizations'
        ordering = ['name']

    def __str__(self):
        return self.name


class OrganizationMembershipManager(models.Manager):
    """Manager for membership queries."""

    def active(self):
        return self.filter(is_active=True, organization__is_active=True)

    def for_user(self, user_id):
        return self.active().filter(user_id=user_id)

    def get_membership(self, organization_id, user_id):
        return self.active().filter(organization_id=organization_id, user_id=user_id).first()


class OrganizationMembership(BaseModel):
    """
    Binds a user to an organization.

    onboarding_completed is null until the onboarding flow has reported
    a state for this membership.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='memberships',
    )
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name='memberships',
    )
    is_active = models.BooleanField(default=True, db_index=True)
    onboarding_completed = models.BooleanField(
        null=True,
        blank=True,
        help_text="Null while unknown; roles are suppressed until True"
    )
    joined_at = models.DateTimeField(default=timezone.now)

    objects = OrganizationMembershipManager()

    class Meta:
        db_table = 'organization_memberships'
        unique_together = [('user', 'organization')]
        indexes = [
            models.Index(fields=['user', 'is_active'], name='organizatio_user_id_5d7c2b_idx'),
        ]

    def __str__(self):
        return f"{self.user_id} @ {self.organization_id}"

    def complete_onboarding(self):
        self.onboarding_completed = True
        self.save(update_fields=['onboarding_completed', 'updated_at'])


class OrganizationInvitationManager(models.Manager):
    """Manager for invitation queries."""

    def pending(self):
        return self.filter(status='pending', expires_at__gt=timezone.now())

    def pending_for_email(self, email):
        return self.pending().filter(email__iexact=(email or '').strip())


class OrganizationInvitation(BaseModel):
    """Invitation for a not-yet-member to join an organization."""

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('revoked', 'Revoked'),
        ('expired', 'Expired'),
    ]

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name='invitations',
    )
    email = models.EmailField(db_index=True)
    role = models.CharField(
        max_length=20,
        choices=[(role.value, role.value.title()) for role in Role],
        default=Role.EMPLOYEE.value,
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default='pending',
        db_index=True,
    )
    expires_at = models.DateTimeField()
    invited_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='invitations_sent',
    )

    objects = OrganizationInvitationManager()

    class Meta:
        db_table = 'organization_invitations'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email', 'status'], name='organizatio_email_8a1e4f_idx'),
        ]

    def __str__(self):
        return f"{self.email} -> {self.organization_id} ({self.status})"

    @property
    def is_pending(self):
        return self.status == 'pending' and self.expires_at > timezone.now()


class CrossOrgAccessAttempt(BaseModel):
    """
    Server-side audit record of a blocked cross-organization access.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cross_org_attempts',
    )
    user_organization_id = models.CharField(max_length=64, blank=True)
    target_organization_id = models.CharField(max_length=64, db_index=True)
    operation = models.CharField(max_length=255)
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'cross_org_access_attempts'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user_id}: {self.user_organization_id} -> {self.target_organization_id} ({self.operation})"
