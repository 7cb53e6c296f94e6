"""
The authenticated actor on whose behalf operations run.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from apps.rbac.catalog import Role


class OverrideMode(str, Enum):
    """Ways the backend role set can be replaced for a principal."""

    DEMO = 'demo'       # sandbox: role supplied locally, backend not consulted
    MIMIC = 'mimic'     # admin previewing the app as a lower role


@dataclass(frozen=True)
class RoleOverride:
    mode: OverrideMode
    role: Role


@dataclass(frozen=True)
class Principal:
    """
    Authenticated actor.

    onboarding_complete is None while the onboarding state is unknown; that
    is treated the same as False for permission purposes.
    """

    identity_id: str
    organization_id: Optional[str] = None
    onboarding_complete: Optional[bool] = None
    override: Optional[RoleOverride] = None
    email: Optional[str] = None

    @property
    def onboarding_gate_open(self) -> bool:
        return self.onboarding_complete is True

    @property
    def cache_key(self):
        """Identity of the role/permission computation for this principal."""
        return (
            str(self.identity_id),
            str(self.organization_id) if self.organization_id else None,
            self.override.mode.value if self.override else None,
            self.override.role.value if self.override else None,
            self.onboarding_complete,
        )

    def with_override(self, override: Optional[RoleOverride]) -> 'Principal':
        return Principal(
            identity_id=self.identity_id,
            organization_id=self.organization_id,
            onboarding_complete=self.onboarding_complete,
            override=override,
            email=self.email,
        )
