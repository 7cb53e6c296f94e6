"""
Log sanitization to prevent credential leakage.

Redacts bearer tokens, JWTs, session fingerprints, passwords, secrets and
database URL passwords from human-readable log output.
"""
import re
import logging


class SanitizingFormatter(logging.Formatter):
    """
    Log formatter that redacts sensitive data after formatting.
    """

    PATTERNS = [
        # Bearer tokens
        (re.compile(r'Bearer\s+([a-zA-Z0-9_\-\.]{20,})', re.IGNORECASE), r'Bearer [REDACTED]'),

        # JWT tokens (header.payload.signature format)
        (re.compile(r'eyJ[a-zA-Z0-9_\-]+\.eyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+'), r'[REDACTED_JWT]'),

        # Access / refresh tokens
        (re.compile(r'access[_-]?token["\s:=]+([a-zA-Z0-9_\-\.]{20,})', re.IGNORECASE), r'access_token=[REDACTED]'),
        (re.compile(r'refresh[_-]?token["\s:=]+([a-zA-Z0-9_\-\.]{20,})', re.IGNORECASE), r'refresh_token=[REDACTED]'),

        # Session fingerprints (sha256 hex)
        (re.compile(r'fingerprint["\s:=]+([a-f0-9]{16,})', re.IGNORECASE), r'fingerprint=[REDACTED]'),

        # Passwords and secrets
        (re.compile(r'password["\s:=]+([^\s,\]}"\']+)', re.IGNORECASE), r'password=[REDACTED]'),
        (re.compile(r'secret["\s:=]+([a-zA-Z0-9_\-]{20,})', re.IGNORECASE), r'secret=[REDACTED]'),

        # Database/Redis URLs with passwords
        (re.compile(r'://([^:/\s]+):([^@\s]+)@'), r'://\1:[REDACTED]@'),

        # Authorization headers
        (re.compile(r'Authorization["\s:]+([^\s,\]}"\']+)', re.IGNORECASE), r'Authorization: [REDACTED]'),
    ]

    @classmethod
    def sanitize(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def format(self, record):
        return self.sanitize(super().format(record))


class SanitizingFilter(logging.Filter):
    """
    Logging filter that sanitizes the message and string args before
    formatting, so every handler sees redacted output.
    """

    def filter(self, record):
        if isinstance(getattr(record, 'msg', None), str):
            record.msg = SanitizingFormatter.sanitize(record.msg)

        if getattr(record, 'args', None) and isinstance(record.args, tuple):
            record.args = tuple(
                SanitizingFormatter.sanitize(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True
