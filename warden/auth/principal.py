"""
Principals - who a verified token says the caller is.

A principal is one of four kinds, each with its own payload. The kinds
share a single wire boundary: to_claims() turns a principal into the JWT
claim map and from_claims() turns a claim map back into a principal.
Nothing else in the codebase reads raw claim keys.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union

from warden.core.errors import InvalidToken
from warden.core.utils import parse_uuid


# =============================================================================
# Claim names
# =============================================================================

CLAIM_SUB = "sub"
CLAIM_KIND = "kind"
CLAIM_EMAIL = "email"
CLAIM_FIRST_NAME = "first_name"
CLAIM_LAST_NAME = "last_name"
CLAIM_COMPANY_ID = "company_id"
CLAIM_USER_TYPE = "user_type"
CLAIM_PINFL = "pinfl"
CLAIM_BOT = "bot"


class PrincipalKind(str, Enum):
    """The kinds of identity a token can assert."""

    USER = "user"
    COMPANY_USER = "company_user"
    STUDENT = "student"
    BOT = "bot"


# =============================================================================
# Payloads
# =============================================================================


@dataclass(frozen=True)
class PlainUser:
    id: uuid.UUID
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    kind: ClassVar[PrincipalKind] = PrincipalKind.USER

    @property
    def subject_id(self) -> uuid.UUID:
        return self.id


@dataclass(frozen=True)
class CompanyUser:
    """A user acting inside one company (membership type in user_type)."""

    id: uuid.UUID
    company_id: uuid.UUID
    user_type: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    kind: ClassVar[PrincipalKind] = PrincipalKind.COMPANY_USER

    @property
    def subject_id(self) -> uuid.UUID:
        return self.id


@dataclass(frozen=True)
class StudentPrincipal:
    id: uuid.UUID
    pinfl: str | None = None
    email: str | None = None

    kind: ClassVar[PrincipalKind] = PrincipalKind.STUDENT

    @property
    def subject_id(self) -> uuid.UUID:
        return self.id


@dataclass(frozen=True)
class BotPrincipal:
    """A service (bot) acting on behalf of a student."""

    student_id: uuid.UUID
    pinfl: str

    kind: ClassVar[PrincipalKind] = PrincipalKind.BOT

    @property
    def subject_id(self) -> uuid.UUID:
        return self.student_id


Principal = Union[PlainUser, CompanyUser, StudentPrincipal, BotPrincipal]


# =============================================================================
# Encode
# =============================================================================


def _put(claims: dict[str, Any], key: str, value: Any) -> None:
    """Set a claim only when it carries a value (absent, never null)."""
    if value is None or value == "":
        return
    claims[key] = str(value) if isinstance(value, uuid.UUID) else value


def to_claims(principal: Principal, include_display: bool = True) -> dict[str, Any]:
    """
    Build the identity part of a claim set.

    Args:
        principal: Who the token is for
        include_display: False for refresh tokens (drops names)

    Returns:
        Claims without exp/iat/type, which the token manager adds
    """
    claims: dict[str, Any] = {CLAIM_SUB: str(principal.subject_id)}

    if isinstance(principal, BotPrincipal):
        claims[CLAIM_PINFL] = principal.pinfl
        claims[CLAIM_BOT] = True
        return claims

    claims[CLAIM_KIND] = principal.kind.value

    if isinstance(principal, CompanyUser):
        _put(claims, CLAIM_COMPANY_ID, principal.company_id)
        _put(claims, CLAIM_USER_TYPE, principal.user_type)

    if isinstance(principal, StudentPrincipal):
        _put(claims, CLAIM_PINFL, principal.pinfl)
        _put(claims, CLAIM_EMAIL, principal.email)
        return claims

    _put(claims, CLAIM_EMAIL, principal.email)
    if include_display:
        _put(claims, CLAIM_FIRST_NAME, principal.first_name)
        _put(claims, CLAIM_LAST_NAME, principal.last_name)
    return claims


# =============================================================================
# Decode
# =============================================================================


def _text(claims: dict[str, Any], key: str) -> str | None:
    value = claims.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def bot_from_claims(claims: dict[str, Any]) -> BotPrincipal:
    """Decode a bot claim set; the subject must be a UUID and pinfl present."""
    student_id = parse_uuid(claims.get(CLAIM_SUB))
    if student_id is None:
        raise InvalidToken("Invalid user_id in token")
    pinfl = _text(claims, CLAIM_PINFL)
    if pinfl is None:
        raise InvalidToken("Missing pinfl in token")
    return BotPrincipal(student_id=student_id, pinfl=pinfl)


def from_claims(claims: dict[str, Any]) -> Principal:
    """
    Decode a verified claim set into a principal.

    Raises:
        InvalidToken: Subject is not a UUID, kind is unknown, or a
            company-scoped token has no usable company_id
    """
    if claims.get(CLAIM_BOT) is True:
        return bot_from_claims(claims)

    subject = parse_uuid(claims.get(CLAIM_SUB))
    if subject is None:
        raise InvalidToken("Invalid subject in token")

    try:
        kind = PrincipalKind(claims.get(CLAIM_KIND, PrincipalKind.USER.value))
    except ValueError as e:
        raise InvalidToken("Unknown principal kind") from e

    email = _text(claims, CLAIM_EMAIL)

    if kind == PrincipalKind.STUDENT:
        return StudentPrincipal(id=subject, pinfl=_text(claims, CLAIM_PINFL), email=email)

    first_name = _text(claims, CLAIM_FIRST_NAME)
    last_name = _text(claims, CLAIM_LAST_NAME)

    if kind == PrincipalKind.COMPANY_USER:
        company_id = parse_uuid(claims.get(CLAIM_COMPANY_ID))
        if company_id is None:
            raise InvalidToken("Invalid company_id in token")
        return CompanyUser(
            id=subject,
            company_id=company_id,
            user_type=_text(claims, CLAIM_USER_TYPE),
            email=email,
            first_name=first_name,
            last_name=last_name,
        )

    if kind == PrincipalKind.BOT:
        # Bot tokens are recognised by the bot flag, never by kind
        raise InvalidToken("Unknown principal kind")

    return PlainUser(id=subject, email=email, first_name=first_name, last_name=last_name)
