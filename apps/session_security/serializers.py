"""
Session security serializers.
"""
from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    """Serializer for user login."""

    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )

    def validate_email(self, value):
        """Normalize email to lowercase."""
        return value.strip().lower()


class SessionValidationSerializer(serializers.Serializer):
    valid = serializers.BooleanField()
    issues = serializers.ListField(child=serializers.CharField())
    should_refresh = serializers.BooleanField()


class SessionTokenSerializer(serializers.Serializer):
    token = serializers.CharField()
    expires_at = serializers.FloatField()
