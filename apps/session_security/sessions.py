"""
Session provider contract and the JWT-backed implementation.
"""
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import jwt
from django.conf import settings

from apps.core.exceptions import SessionExpired

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """A live or recently expired authentication session."""

    user_id: str
    expires_at: float
    org_id: Optional[str] = None
    session_id: Optional[str] = None
    email: Optional[str] = None
    token: Optional[str] = None

    def expires_in(self, now: float) -> float:
        return self.expires_at - now

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class SessionProvider(ABC):
    """Source of the current session."""

    @abstractmethod
    def get_session(self) -> Optional[Session]:
        """Current session, or None when there is none. May raise on provider failure."""

    @abstractmethod
    def refresh_session(self) -> Session:
        """Issue a fresh session. Raises on failure."""


class JWTSessionProvider(SessionProvider):
    """
    SessionProvider over a signed JWT bearer token.

    get_session() does not reject expired tokens: expiry is reported through
    Session.expires_at so validation can decide to refresh. Tokens with a bad
    signature or malformed claims yield no session.
    """

    def __init__(
        self,
        token: Optional[str],
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        lifetime_seconds: Optional[int] = None,
        refresh_grace_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.token = token
        self.secret = secret or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or getattr(settings, 'JWT_ALGORITHM', 'HS256')
        self.lifetime_seconds = lifetime_seconds or int(
            getattr(settings, 'JWT_EXPIRATION_HOURS', 24) * 3600
        )
        self.refresh_grace_seconds = (
            refresh_grace_seconds if refresh_grace_seconds is not None
            else int(getattr(settings, 'JWT_REFRESH_GRACE_HOURS', 24) * 3600)
        )
        self.clock = clock

    @classmethod
    def issue_token(
        cls,
        user_id,
        email: Optional[str] = None,
        org_id=None,
        session_id: Optional[str] = None,
        lifetime_seconds: Optional[int] = None,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        now: Optional[float] = None,
    ) -> str:
        """
        Generate a signed session token.

        Args:
            user_id: Identity id
            email: Identity email, used for invitation lookups
            org_id: Organization the session is bound to, if any
            session_id: Stable session id; a new one is generated when omitted
            lifetime_seconds: Token lifetime (defaults to JWT_EXPIRATION_HOURS)

        Returns:
            JWT token string
        """
        now = int(now if now is not None else time.time())
        lifetime = lifetime_seconds or int(getattr(settings, 'JWT_EXPIRATION_HOURS', 24) * 3600)
        payload = {
            'user_id': str(user_id),
            'sid': session_id or uuid.uuid4().hex,
            'iat': now,
            'exp': now + lifetime,
        }
        if email:
            payload['email'] = email
        if org_id:
            payload['org_id'] = str(org_id)

        return jwt.encode(
            payload,
            secret or settings.JWT_SECRET_KEY,
            algorithm=algorithm or getattr(settings, 'JWT_ALGORITHM', 'HS256'),
        )

    def _decode(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={'verify_exp': False, 'require': ['exp', 'user_id']},
            )
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected session token: {e}")
            return None

    def _to_session(self, payload: dict, token: str) -> Session:
        return Session(
            user_id=str(payload['user_id']),
            expires_at=float(payload['exp']),
            org_id=payload.get('org_id'),
            session_id=payload.get('sid'),
            email=payload.get('email'),
            token=token,
        )

    def get_session(self) -> Optional[Session]:
        if not self.token:
            return None
        payload = self._decode(self.token)
        if payload is None:
            return None
        return self._to_session(payload, self.token)

    def refresh_session(self) -> Session:
        """
        Re-issue the token with a new expiry and the same session id.

        Raises:
            SessionExpired: no valid token, or it expired beyond the grace period
        """
        session = self.get_session()
        if session is None:
            raise SessionExpired('No session to refresh')

        now = self.clock()
        if now - session.expires_at > self.refresh_grace_seconds:
            raise SessionExpired('Session expired beyond the refresh window')

        self.token = self.issue_token(
            session.user_id,
            email=session.email,
            org_id=session.org_id,
            session_id=session.session_id,
            lifetime_seconds=self.lifetime_seconds,
            secret=self.secret,
            algorithm=self.algorithm,
            now=now,
        )
        return self.get_session()
