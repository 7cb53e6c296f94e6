"""
RBAC models.

Implements:
- User: global identity (AUTH_USER_MODEL)
- RoleAssignment: a role held by a user inside an organization
- PermissionOverride: per-user grant or deny on top of role defaults
"""
import logging

from django.contrib.auth.hashers import check_password, make_password
from django.db import models
from django.utils import timezone

from apps.core.models import BaseModel
from apps.rbac.catalog import Role

logger = logging.getLogger(__name__)

ROLE_CHOICES = [(role.value, role.value.title()) for role in Role]


class UserManager(models.Manager):
    """
    Manager for User queries.

    Compatible with Django's authentication system.
    """

    def active(self):
        return self.filter(is_active=True)

    def by_email(self, email):
        return self.filter(email__iexact=(email or '').strip()).first()

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email address is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('is_superuser', False)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        user.save(using=self._db)
        return user

    @classmethod
    def normalize_email(cls, email):
        """Lowercase the domain part of the email address."""
        email = (email or '').strip()
        try:
            email_name, domain_part = email.rsplit('@', 1)
        except ValueError:
            return email
        return email_name + '@' + domain_part.lower()

    def get_by_natural_key(self, email):
        return self.get(**{self.model.USERNAME_FIELD: email})


class User(BaseModel):
    """
    Global user identity.

    Authentication happens at the User level; roles are held per
    organization through RoleAssignment.
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text="User email address (unique globally)"
    )
    password_hash = models.CharField(
        max_length=255,
        blank=True,
        help_text="Hashed password",
        db_column='password_hash'
    )
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether user account is active"
    )
    is_superuser = models.BooleanField(
        default=False,
        help_text="Platform administrator"
    )
    last_login_at = models.DateTimeField(null=True, blank=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['-created_at']

    def __str__(self):
        return self.email

    @property
    def password(self):
        return self.password_hash

    @password.setter
    def password(self, value):
        self.password_hash = value

    def check_password(self, raw_password):
        return check_password(raw_password, self.password_hash)

    def set_password(self, raw_password):
        self.password_hash = make_password(raw_password)

    def get_full_name(self):
        if self.first_name or self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.email

    def update_last_login(self):
        self.last_login_at = timezone.now()
        self.save(update_fields=['last_login_at'])

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False


class RoleAssignmentManager(models.Manager):
    """Manager for RoleAssignment queries."""

    def active(self):
        return self.filter(is_active=True)

    def for_user(self, user_id):
        return self.active().filter(user_id=user_id)

    def for_organization(self, organization_id):
        return self.active().filter(organization_id=organization_id)

    def roles_for(self, user_id, organization_id):
        return list(
            self.for_user(user_id)
            .filter(organization_id=organization_id)
            .values_list('role', flat=True)
        )


class RoleAssignment(BaseModel):
    """
    A role held by a user inside one organization.

    Revoked assignments are kept with is_active=False for the audit trail.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='role_assignments',
        help_text="User holding the role"
    )
    organization = models.ForeignKey(
        'tenants.Organization',
        on_delete=models.CASCADE,
        related_name='role_assignments',
        help_text="Organization the role applies to"
    )
    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        db_index=True,
    )
    is_active = models.BooleanField(default=True, db_index=True)

    # Audit fields
    assigned_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='role_assignments_made',
        help_text="User who assigned this role"
    )
    justification = models.TextField(
        blank=True,
        help_text="Reason given for the assignment"
    )
    revoked_at = models.DateTimeField(null=True, blank=True)

    objects = RoleAssignmentManager()

    class Meta:
        db_table = 'role_assignments'
        ordering = ['organization', 'user', 'role']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'organization', 'role'],
                condition=models.Q(is_active=True),
                name='unique_active_role_assignment',
            ),
        ]
        indexes = [
            models.Index(fields=['user', 'is_active'], name='role_assign_user_id_2f8c1d_idx'),
            models.Index(fields=['organization', 'role'], name='role_assign_organiz_7b3e5a_idx'),
        ]

    def __str__(self):
        return f"{self.user_id} -> {self.role} @ {self.organization_id}"

    def revoke(self):
        self.is_active = False
        self.revoked_at = timezone.now()
        self.save(update_fields=['is_active', 'revoked_at', 'updated_at'])


class PermissionOverrideManager(models.Manager):
    """Manager for PermissionOverride queries."""

    def for_user(self, user_id, organization_id):
        return self.filter(user_id=user_id, organization_id=organization_id)

    def grants(self, user_id, organization_id):
        return self.for_user(user_id, organization_id).filter(granted=True)

    def denies(self, user_id, organization_id):
        return self.for_user(user_id, organization_id).filter(granted=False)


class PermissionOverride(BaseModel):
    """
    Per-user permission grant or deny inside an organization.

    Deny overrides always win over role defaults and grants.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='permission_overrides',
    )
    organization = models.ForeignKey(
        'tenants.Organization',
        on_delete=models.CASCADE,
        related_name='permission_overrides',
    )
    permission = models.CharField(
        max_length=100,
        help_text="Permission identifier (e.g. 'view_reports')"
    )
    granted = models.BooleanField(
        help_text="True = grant, False = deny (deny wins over role grants)"
    )
    reason = models.TextField(blank=True)
    granted_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='permission_overrides_made',
    )

    objects = PermissionOverrideManager()

    class Meta:
        db_table = 'permission_overrides'
        unique_together = [('user', 'organization', 'permission')]
        ordering = ['user', 'permission']

    def __str__(self):
        action = "GRANT" if self.granted else "DENY"
        return f"{action} {self.permission} to {self.user_id}"
