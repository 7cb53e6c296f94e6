"""
RBAC serializers for REST API endpoints.

Provides serialization for:
- Access snapshots (effective roles and permissions)
- Route access checks
- Single and bulk role assignments
"""
from rest_framework import serializers

from apps.rbac.catalog import RoleCatalog

ROLE_CHOICES = [role.value for role in RoleCatalog.all_roles()]


class AccessSnapshotSerializer(serializers.Serializer):
    """Effective access of the authenticated user in the current organization."""

    user_id = serializers.CharField()
    organization_id = serializers.CharField(allow_null=True)
    onboarding_complete = serializers.BooleanField(allow_null=True)
    state = serializers.CharField()
    roles = serializers.ListField(child=serializers.CharField())
    permissions = serializers.ListField(child=serializers.CharField())
    highest_role = serializers.CharField(allow_null=True)
    assignable_roles = serializers.ListField(child=serializers.CharField())
    override = serializers.DictField(allow_null=True)


class RouteAccessQuerySerializer(serializers.Serializer):
    path = serializers.CharField(max_length=512)

    def validate_path(self, value):
        if not value.startswith('/'):
            raise serializers.ValidationError("Path must start with '/'")
        return value


class PermissionCheckQuerySerializer(serializers.Serializer):
    permission = serializers.CharField(max_length=128)


class RoleAssignmentSerializer(serializers.Serializer):
    """Serializer for a single role grant."""

    target = serializers.CharField(
        max_length=255,
        help_text='User ID or email address of the member receiving the role'
    )
    role = serializers.ChoiceField(choices=ROLE_CHOICES)
    justification = serializers.CharField(
        required=False,
        allow_blank=True,
        default='',
        max_length=1000,
    )
    confirmed = serializers.BooleanField(
        required=False,
        default=False,
        help_text='Required for admin and director grants'
    )

    def validate_target(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Target is required")
        return value


class BulkAssignmentItemSerializer(serializers.Serializer):
    target = serializers.CharField(max_length=255)
    role = serializers.ChoiceField(choices=ROLE_CHOICES)


class BulkRoleAssignmentSerializer(serializers.Serializer):
    """Serializer for several role grants sharing one justification."""

    assignments = BulkAssignmentItemSerializer(many=True, allow_empty=False)
    justification = serializers.CharField(
        required=False,
        allow_blank=True,
        default='',
        max_length=1000,
    )
    confirmed = serializers.BooleanField(required=False, default=False)

    def validate_assignments(self, value):
        if len(value) > 100:
            raise serializers.ValidationError("At most 100 assignments per request")
        return value


class AssignmentResultSerializer(serializers.Serializer):
    target = serializers.CharField()
    role = serializers.CharField()
    status = serializers.CharField()
    target_user_id = serializers.CharField(allow_null=True)
    error = serializers.CharField(required=False)
    code = serializers.CharField(required=False)


class BulkAssignmentResultSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    succeeded = serializers.IntegerField()
    failed = serializers.IntegerField()
    results = AssignmentResultSerializer(many=True)
