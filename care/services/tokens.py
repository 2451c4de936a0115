"""
JWT issuance and verification.

Three kinds of token, each signed with its own secret:

* ``access``  short-lived, authorises API calls, carries the role;
* ``refresh`` long-lived, can only mint a new token pair;
* ``purpose`` single-purpose handoff tokens (password reset, 2FA login,
  2FA setup) tagged with a ``purpose`` claim that must match on verify.

Every token has a ``jti`` so it can be revoked (see
:mod:`care.services.revocation`).
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import jwt
from django.conf import settings

from care.exceptions import TokenExpired, TokenInvalid


class TokenKind(str, enum.Enum):
    ACCESS = 'access'
    REFRESH = 'refresh'
    PURPOSE = 'purpose'


class Purpose:
    PASSWORD_RESET = 'password_reset'
    TWO_FACTOR_LOGIN = '2fa_login'
    TWO_FACTOR_SETUP = '2fa_setup'


_RESERVED = {'sub', 'type', 'jti', 'iat', 'exp', 'role', 'purpose'}


@dataclass(frozen=True)
class Claims:
    subject_id: int
    kind: TokenKind
    jti: str
    issued_at: datetime
    expires_at: datetime
    role: str | None = None
    purpose: str | None = None
    extra: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TokenPair:
    access: str
    refresh: str
    access_claims: Claims
    refresh_claims: Claims


def _secret(kind: TokenKind) -> str:
    return {
        TokenKind.ACCESS: settings.JWT_ACCESS_SECRET,
        TokenKind.REFRESH: settings.JWT_REFRESH_SECRET,
        TokenKind.PURPOSE: settings.JWT_PURPOSE_SECRET,
    }[kind]


def _sign(kind: TokenKind, subject_id, ttl: timedelta, **claims) -> tuple[str, Claims]:
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(subject_id),
        'type': kind.value,
        'jti': uuid.uuid4().hex,
        'iat': now,
        'exp': now + ttl,
    }
    payload.update(claims)
    token = jwt.encode(payload, _secret(kind), algorithm=settings.JWT_ALGORITHM)
    # encoded timestamps are whole seconds
    payload.update(iat=int(now.timestamp()), exp=int((now + ttl).timestamp()))
    return token, _to_claims(payload)


def _to_claims(payload: dict) -> Claims:
    try:
        return Claims(
            subject_id=int(payload['sub']),
            kind=TokenKind(payload['type']),
            jti=str(payload['jti']),
            issued_at=datetime.fromtimestamp(payload['iat'], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload['exp'], tz=timezone.utc),
            role=payload.get('role'),
            purpose=payload.get('purpose'),
            extra={k: v for k, v in payload.items() if k not in _RESERVED},
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenInvalid("Invalid token payload") from exc


def issue_access_token(user) -> str:
    return _sign(TokenKind.ACCESS, user.pk, settings.JWT_ACCESS_TTL, role=user.role)[0]


def issue_refresh_token(user) -> str:
    return _sign(TokenKind.REFRESH, user.pk, settings.JWT_REFRESH_TTL)[0]


def issue_token_pair(user) -> TokenPair:
    access, access_claims = _sign(TokenKind.ACCESS, user.pk, settings.JWT_ACCESS_TTL, role=user.role)
    refresh, refresh_claims = _sign(TokenKind.REFRESH, user.pk, settings.JWT_REFRESH_TTL)
    return TokenPair(access=access, refresh=refresh, access_claims=access_claims, refresh_claims=refresh_claims)


def verify(token: str, kind: TokenKind) -> Claims:
    """Decode ``token`` as ``kind``.

    Raises :class:`TokenExpired` past ``exp`` and :class:`TokenInvalid` for
    anything else: bad signature, another kind's secret, wrong ``type``
    claim or a malformed payload.
    """
    if not token or not isinstance(token, str):
        raise TokenInvalid()
    try:
        payload = jwt.decode(
            token,
            _secret(kind),
            algorithms=[settings.JWT_ALGORITHM],
            options={'require': ['sub', 'exp', 'iat', 'jti', 'type']},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except jwt.InvalidTokenError as exc:
        raise TokenInvalid() from exc
    if payload.get('type') != kind.value:
        raise TokenInvalid()
    return _to_claims(payload)


def issue_purpose_token(subject_id, purpose: str, ttl: timedelta, **claims) -> str:
    return _sign(TokenKind.PURPOSE, subject_id, ttl, purpose=purpose, **claims)[0]


def verify_purpose_token(token: str, expected_purpose: str) -> Claims:
    claims = verify(token, TokenKind.PURPOSE)
    if claims.purpose != expected_purpose:
        raise TokenInvalid()
    return claims
