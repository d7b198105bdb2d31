"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: short-lived (15min), carries sub + roles, never stored
- Refresh token: longer-lived (7 days), carries only sub; the orchestrator
  also keeps its digest in the credentials table so it can be revoked

Both are HS256-signed with one process-wide secret. Every token gets a
random `jti`, so two tokens minted in the same second for the same
account still differ (rotation depends on that).

Expiry is checked against the injected Clock rather than PyJWT's own
wall-clock check, so tests can move time forward.
"""

import uuid
from datetime import timedelta
from functools import lru_cache
from typing import Optional

import jwt
import structlog

from wayfarer.auth.clock import Clock, SystemClock
from wayfarer.auth.principal import Principal
from wayfarer.config import settings

logger = structlog.get_logger()

ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Raised when a token cannot be decoded or has expired."""


class TokenIssuer:
    """Mints and validates access and refresh tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        issuer: str = "wayfarer",
        audience: str = "wayfarer",
        access_ttl_minutes: int = 15,
        refresh_ttl_days: int = 7,
        clock: Optional[Clock] = None,
    ):
        if not secret:
            raise ValueError("A signing secret is required")
        self._secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.access_ttl_minutes = access_ttl_minutes
        self.refresh_ttl_days = refresh_ttl_days
        self.clock = clock or SystemClock()

    # ─── TTLs surfaced to clients ───────────────────────

    @property
    def access_token_expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return self.access_ttl_minutes * 60

    @property
    def refresh_token_expires_in_days(self) -> int:
        return self.refresh_ttl_days

    # ─── Issue ──────────────────────────────────────────

    def issue_access_token(self, principal: Principal) -> str:
        now = self.clock.now()
        payload = {
            "sub": str(principal.account_id),
            "roles": list(principal.roles),
            "type": ACCESS,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=self.access_ttl_minutes)).timestamp()),
            "jti": uuid.uuid4().hex,
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def issue_refresh_token(self, account_id: uuid.UUID) -> str:
        now = self.clock.now()
        payload = {
            "sub": str(account_id),
            "type": REFRESH,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(days=self.refresh_ttl_days)).timestamp()),
            "jti": uuid.uuid4().hex,
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    # ─── Verify ─────────────────────────────────────────

    def verify(self, token: str, expected_type: str) -> dict:
        """Verify signature, issuer, audience, type and expiry.

        Returns the payload dict on success.
        Raises TokenError on failure.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "require": ["sub", "exp", "iat", "type"],
                    # exp/iat are checked against self.clock below
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            raise TokenError(f"Invalid token: {e}")

        if payload.get("type") != expected_type:
            raise TokenError(f"Not a {expected_type} token")
        if payload["exp"] <= self.clock.now().timestamp():
            raise TokenError("Token has expired")
        return payload

    def decode_access_token(self, token: str) -> Optional[Principal]:
        """Verified access token → Principal, or None if anything is off."""
        try:
            payload = self.verify(token, ACCESS)
            roles = payload.get("roles") or []
            if not isinstance(roles, list):
                return None
            return Principal(
                account_id=uuid.UUID(payload["sub"]),
                roles=tuple(str(r) for r in roles),
            )
        except (TokenError, ValueError) as e:
            logger.debug("auth.access_token_rejected", reason=str(e))
            return None

    def validate_refresh_token(self, token: str) -> Optional[uuid.UUID]:
        """Signature + expiry check only; the credential store is not consulted."""
        try:
            payload = self.verify(token, REFRESH)
            return uuid.UUID(payload["sub"])
        except (TokenError, ValueError) as e:
            logger.info("auth.refresh_token_rejected", reason=str(e))
            return None


@lru_cache
def get_token_issuer() -> TokenIssuer:
    """Process-wide issuer built from settings (FastAPI dependency)."""
    return TokenIssuer(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        access_ttl_minutes=settings.access_token_expire_minutes,
        refresh_ttl_days=settings.refresh_token_expire_days,
    )
