# =============================================================================
# JWT Token Manager
# =============================================================================
#
# This module issues and verifies bearer tokens:
#   - Access + refresh tokens for every principal kind
#   - Bot tokens (service credentials acting for a student)
#   - Refresh rotation
#
# Only the configured HMAC algorithm is ever accepted. The token header is
# checked before decoding so a token that names a different algorithm is
# rejected outright.
#
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

import jwt

from warden.auth.principal import (
    CLAIM_BOT,
    BotPrincipal,
    Principal,
    bot_from_claims,
    from_claims,
    to_claims,
)
from warden.config import HMAC_ALGORITHMS, Settings
from warden.core.errors import InvalidToken, Unauthorized
from warden.core.models import TokenPair
from warden.core.utils import utc_now

logger = logging.getLogger(__name__)

CLAIM_EXP = "exp"
CLAIM_IAT = "iat"
CLAIM_TYPE = "type"

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

GENERIC_TOKEN_ERROR = "Invalid or expired token"


class TokenManager:
    """
    Signs and verifies bearer tokens.

    Lifetimes are independent per token type and come from configuration;
    no principal kind gets a hardcoded lifetime.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=30),
        refresh_ttl: timedelta = timedelta(days=7),
        bot_ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ):
        if algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"Unsupported signing algorithm: {algorithm}")
        if not secret_key:
            raise ValueError("A signing secret is required")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.bot_ttl = bot_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenManager:
        return cls(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            access_ttl=timedelta(minutes=settings.jwt_access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.jwt_refresh_token_expire_days),
            bot_ttl=timedelta(hours=settings.jwt_bot_token_expire_hours),
        )

    # =========================================================================
    # Token Creation
    # =========================================================================

    def _sign(self, claims: dict[str, Any], ttl: timedelta) -> str:
        now = self._clock()
        payload = {
            **claims,
            CLAIM_IAT: int(now.timestamp()),
            CLAIM_EXP: int((now + ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def issue_access(self, principal: Principal) -> tuple[str, int]:
        """
        Create an access token.

        Returns:
            (token, expires_in_seconds)
        """
        claims = to_claims(principal)
        claims[CLAIM_TYPE] = TOKEN_TYPE_ACCESS
        token = self._sign(claims, self.access_ttl)
        return token, int(self.access_ttl.total_seconds())

    def issue_refresh(self, principal: Principal) -> str:
        """Create a refresh token (longer-lived, no display claims)."""
        claims = to_claims(principal, include_display=False)
        claims[CLAIM_TYPE] = TOKEN_TYPE_REFRESH
        return self._sign(claims, self.refresh_ttl)

    def issue_pair(self, principal: Principal) -> TokenPair:
        """Create both access and refresh tokens."""
        access_token, expires_in = self.issue_access(principal)
        return TokenPair(
            access_token=access_token,
            refresh_token=self.issue_refresh(principal),
            expires_in=expires_in,
        )

    def issue_bot_token(self, bot: BotPrincipal) -> str:
        """Create a bot token: subject, pinfl and the bot flag only."""
        return self._sign(to_claims(bot), self.bot_ttl)

    # =========================================================================
    # Token Validation
    # =========================================================================

    def _decode(self, token: str) -> dict[str, Any]:
        """
        Check the header algorithm, signature and expiry.

        Raises:
            Unauthorized: Any failure; the reason is only logged
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected token with unreadable header: {e}")
            raise Unauthorized(GENERIC_TOKEN_ERROR) from e

        if header.get("alg") != self.algorithm:
            logger.warning(f"Rejected token signed with unexpected algorithm {header.get('alg')!r}")
            raise Unauthorized(GENERIC_TOKEN_ERROR)

        try:
            return jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"require": [CLAIM_EXP, CLAIM_IAT, "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.debug("Rejected expired token")
            raise Unauthorized(GENERIC_TOKEN_ERROR) from e
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected invalid token: {e}")
            raise Unauthorized(GENERIC_TOKEN_ERROR) from e

    def verify(self, token: str, expected_type: str = TOKEN_TYPE_ACCESS) -> Principal:
        """
        Decode and validate a token into a principal.

        Args:
            token: The JWT string
            expected_type: "access" or "refresh"

        Raises:
            Unauthorized: Bad signature/algorithm, expired, wrong type,
                or claims that do not describe a principal
        """
        claims = self._decode(token)

        if claims.get(CLAIM_BOT) is True:
            # Bot tokens authenticate requests but can never be refreshed
            if expected_type != TOKEN_TYPE_ACCESS:
                raise Unauthorized(GENERIC_TOKEN_ERROR)
            return bot_from_claims(claims)

        if claims.get(CLAIM_TYPE) != expected_type:
            logger.debug(f"Expected {expected_type} token, got {claims.get(CLAIM_TYPE)!r}")
            raise Unauthorized(GENERIC_TOKEN_ERROR)

        return from_claims(claims)

    def parse_bot_token(self, token: str) -> BotPrincipal:
        """
        Validate a bot token.

        Raises:
            Unauthorized: Signature, algorithm or expiry failure
            InvalidToken: Not a bot token, subject not a UUID, pinfl missing
        """
        claims = self._decode(token)
        if claims.get(CLAIM_BOT) is not True:
            raise InvalidToken("Not a bot token")
        return bot_from_claims(claims)

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Use a refresh token to get a new access/refresh pair.

        Refresh tokens carry no display claims, so the new access token
        carries none either until the next login.
        """
        principal = self.verify(refresh_token, expected_type=TOKEN_TYPE_REFRESH)
        return self.issue_pair(principal)