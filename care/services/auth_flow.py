"""
Authentication flows: registration, login, 2FA, refresh, logout and
password reset.

Login state machine::

    START --password ok, 2FA off--> AUTHENTICATED (token pair)
    START --password ok, 2FA on---> PENDING_2FA (2fa_login token only)
    PENDING_2FA --code ok---------> AUTHENTICATED (token pair)
    PENDING_2FA --code wrong------> PENDING_2FA (audited, nothing issued)
    START --bad credentials-------> REJECTED (audited)

Unknown e-mail and wrong password take the same path through the hasher
and produce the same error, so responses do not reveal which accounts
exist. Every rejected transition and every AUTHENTICATED one is written to
the access log.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from functools import lru_cache

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.crypto import constant_time_compare, salted_hmac

from care.exceptions import (
    AccountInactive,
    IdentityAlreadyExists,
    InvalidCredentials,
    InvalidTwoFactorCode,
    TokenExpired,
    TokenInvalid,
    TokenRevoked,
    ValidationFailed,
)
from care.models import AccessLog
from care.services import cipher, credentials, mailer, revocation, tokens, two_factor
from care.services.audit import RequestContext, log_action, record_access
from care.services.field_encryption import seal
from care.services.tokens import Claims, Purpose, TokenKind, TokenPair

logger = logging.getLogger(__name__)

User = get_user_model()

FAILURE = AccessLog.STATUS_FAILURE
UNAUTHORIZED = AccessLog.STATUS_UNAUTHORIZED


@dataclass(frozen=True)
class LoginResult:
    user: User
    tokens: TokenPair | None = None
    temp_token: str | None = None

    @property
    def requires_two_factor(self) -> bool:
        return self.tokens is None


@lru_cache(maxsize=1)
def _dummy_credential() -> str:
    return credentials.hash_password(secrets.token_urlsafe(24))


def _normalize_email(email: str) -> str:
    return User.objects.normalize_email((email or '').strip()).lower()


def _issue_session(user) -> TokenPair:
    pair = tokens.issue_token_pair(user)
    revocation.record_outstanding(pair.refresh, pair.refresh_claims, user)
    return pair


def _complete_login(user, context: RequestContext, method: str) -> LoginResult:
    user.last_login = timezone.now()
    user.save(update_fields=['last_login'])
    pair = _issue_session(user)
    record_access(user=user, action='login', resource_type='user', resource_id=user.pk,
                  context=context, details={'method': method})
    logger.info("User logged in user_id=%s method=%s", user.pk, method)
    return LoginResult(user=user, tokens=pair)


# ---------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------
def register(*, email: str, password: str, first_name: str, last_name: str, role: str,
             context: RequestContext, phone_number: str = '') -> LoginResult:
    email = _normalize_email(email)
    if User.objects.filter(email__iexact=email).exists():
        raise IdentityAlreadyExists()

    key_pair = cipher.generate_key_pair()
    try:
        with transaction.atomic():
            user = User(
                email=email,
                first_name=first_name,
                last_name=last_name,
                role=role,
                phone_number=phone_number,
                public_key=key_pair.public_key,
                private_key_encrypted=seal(key_pair.private_key),
            )
            user.password = credentials.hash_password(password)
            user.save()
            log_action(user=user, action='create', resource_type='user', resource_id=user.pk,
                       context=context, details={'event': 'registration', 'role': role})
    except IntegrityError as exc:
        # lost a race with a concurrent registration for the same address
        raise IdentityAlreadyExists() from exc

    logger.info("Registered user_id=%s role=%s", user.pk, user.role)
    return LoginResult(user=user, tokens=_issue_session(user))


# ---------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------
def login(email: str, password: str, context: RequestContext) -> LoginResult:
    email = _normalize_email(email)
    user = User.objects.filter(email__iexact=email).first()

    if user is None or not user.has_usable_password():
        credentials.verify_password(password, _dummy_credential())
        record_access(user=None, action='failed_login', resource_type='user', status=FAILURE,
                      context=context, details={'email': email, 'reason': 'unknown_account'})
        raise InvalidCredentials()

    if not credentials.verify_password(password, user.password):
        record_access(user=user, action='failed_login', resource_type='user', resource_id=user.pk,
                      status=FAILURE, context=context, details={'reason': 'bad_password'})
        raise InvalidCredentials()

    if not user.is_account_active:
        record_access(user=user, action='failed_login', resource_type='user', resource_id=user.pk,
                      status=UNAUTHORIZED, context=context, details={'reason': 'inactive', 'status': user.status})
        raise AccountInactive()

    if user.two_factor_enabled:
        temp_token = tokens.issue_purpose_token(user.pk, Purpose.TWO_FACTOR_LOGIN, settings.TWO_FACTOR_LOGIN_TTL)
        return LoginResult(user=user, temp_token=temp_token)

    return _complete_login(user, context, method='password')


def complete_two_factor_login(temp_token: str, code: str, context: RequestContext) -> LoginResult:
    def reject(reason, user=None, subject_id=None):
        record_access(user=user, action='failed_2fa', resource_type='user', resource_id=subject_id,
                      status=UNAUTHORIZED, context=context, details={'stage': 'login', 'reason': reason})

    try:
        claims = tokens.verify_purpose_token(temp_token, Purpose.TWO_FACTOR_LOGIN)
    except TokenExpired:
        reject('expired')
        raise TokenExpired('Two-factor session expired, please log in again.') from None
    except TokenInvalid:
        reject('invalid')
        raise

    user = User.objects.filter(pk=claims.subject_id).first()
    if revocation.is_revoked(claims.jti):
        reject('revoked', user, claims.subject_id)
        raise TokenRevoked()
    if user is None or not user.is_account_active:
        reject('inactive', user, claims.subject_id)
        raise TokenInvalid()

    if not two_factor.verify_user_code(user, code):
        record_access(user=user, action='failed_2fa', resource_type='user', resource_id=user.pk,
                      status=FAILURE, context=context, details={'stage': 'login'})
        raise InvalidTwoFactorCode()

    if not revocation.consume(temp_token, claims, user):
        reject('revoked', user, claims.subject_id)
        raise TokenRevoked()
    return _complete_login(user, context, method='password+totp')


# ---------------------------------------------------------------------
# Two-factor enrolment
# ---------------------------------------------------------------------
def setup_two_factor(user) -> two_factor.SetupChallenge:
    return two_factor.begin_setup(user)


def confirm_two_factor(user, setup_token: str, code: str, context: RequestContext) -> None:
    try:
        two_factor.confirm_setup(user, setup_token, code)
    except InvalidTwoFactorCode:
        record_access(user=user, action='failed_2fa', resource_type='user', resource_id=user.pk,
                      status=FAILURE, context=context, details={'stage': 'setup'})
        raise
    record_access(user=user, action='update', resource_type='user', resource_id=user.pk,
                  context=context, details={'event': '2fa_enabled'})


def disable_two_factor(user, code: str, context: RequestContext) -> None:
    try:
        two_factor.disable(user, code)
    except InvalidTwoFactorCode:
        record_access(user=user, action='failed_2fa', resource_type='user', resource_id=user.pk,
                      status=FAILURE, context=context, details={'stage': 'disable'})
        raise
    record_access(user=user, action='update', resource_type='user', resource_id=user.pk,
                  context=context, details={'event': '2fa_disabled'})


# ---------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------
def refresh(refresh_token: str, context: RequestContext) -> TokenPair:
    """Rotate a refresh token into a new pair; the old one is revoked."""
    try:
        claims = tokens.verify(refresh_token, TokenKind.REFRESH)
    except TokenExpired:
        record_access(user=None, action='token_refresh', resource_type='user', status=UNAUTHORIZED,
                      context=context, details={'reason': 'expired'})
        raise TokenExpired('Refresh token expired') from None
    except TokenInvalid:
        record_access(user=None, action='token_refresh', resource_type='user', status=UNAUTHORIZED,
                      context=context, details={'reason': 'invalid'})
        raise TokenInvalid('Invalid refresh token') from None

    user = User.objects.filter(pk=claims.subject_id).first()

    def rejected_as_revoked():
        record_access(user=user, action='token_refresh', resource_type='user', resource_id=claims.subject_id,
                      status=UNAUTHORIZED, context=context, details={'reason': 'revoked'})
        return TokenRevoked('Refresh token has been revoked')

    if revocation.is_revoked(claims.jti):
        raise rejected_as_revoked()
    if user is None or not user.is_account_active:
        record_access(user=user, action='token_refresh', resource_type='user', resource_id=claims.subject_id,
                      status=UNAUTHORIZED, context=context, details={'reason': 'inactive'})
        raise TokenInvalid('Invalid refresh token')

    # a concurrent refresh with the same token may have won since the check above
    if not revocation.consume(refresh_token, claims, user):
        raise rejected_as_revoked()
    return _issue_session(user)


def logout(user, access_token: str, access_claims: Claims | None, context: RequestContext,
           refresh_token: str | None = None) -> int:
    """Revoke the calling access token plus one or all refresh tokens.

    Returns the number of refresh tokens revoked.
    """
    if refresh_token:
        try:
            claims = tokens.verify(refresh_token, TokenKind.REFRESH)
        except (TokenExpired, TokenInvalid):
            claims = None
        count = 0
        if claims is not None and claims.subject_id == user.pk:
            revocation.revoke(refresh_token, claims, user)
            count = 1
    else:
        count = revocation.revoke_user_tokens(user)

    if access_claims is not None:
        revocation.revoke(access_token, access_claims, user)

    record_access(user=user, action='logout', resource_type='user', resource_id=user.pk,
                  context=context, details={'revokedRefreshTokens': count})
    return count


# ---------------------------------------------------------------------
# Password reset and change
# ---------------------------------------------------------------------
def _password_fingerprint(user) -> str:
    return salted_hmac('care.password_reset', user.password).hexdigest()[:20]


def issue_reset_token(user) -> str:
    return tokens.issue_purpose_token(
        user.pk, Purpose.PASSWORD_RESET, settings.PASSWORD_RESET_TTL,
        pwd=_password_fingerprint(user),
    )


def request_password_reset(email: str, context: RequestContext) -> None:
    """Send a reset link if the account exists; callers always answer the same."""
    email = _normalize_email(email)
    user = User.objects.filter(email__iexact=email).first()
    if user is None or not user.is_account_active:
        record_access(user=None, action='password_reset_request', resource_type='user',
                      status=FAILURE, context=context, details={'email': email})
        return

    sent = mailer.send_password_reset_email(user, issue_reset_token(user))
    record_access(user=user, action='password_reset_request', resource_type='user', resource_id=user.pk,
                  status=AccessLog.STATUS_SUCCESS if sent else FAILURE, context=context,
                  details={'delivered': sent})


def _resolve_reset_token(token: str) -> tuple[Claims, User]:
    try:
        claims = tokens.verify_purpose_token(token, Purpose.PASSWORD_RESET)
    except TokenExpired:
        raise TokenExpired('Reset token expired') from None
    except TokenInvalid:
        raise TokenInvalid('Invalid reset token') from None
    if revocation.is_revoked(claims.jti):
        raise TokenRevoked('Reset token has already been used')
    user = User.objects.filter(pk=claims.subject_id).first()
    if user is None or not constant_time_compare(str(claims.extra.get('pwd', '')), _password_fingerprint(user)):
        raise TokenInvalid('Invalid reset token')
    return claims, user


def inspect_reset_token(token: str) -> User:
    return _resolve_reset_token(token)[1]


def reset_password(token: str, new_password: str, context: RequestContext) -> User:
    claims, user = _resolve_reset_token(token)
    with transaction.atomic():
        user = User.objects.select_for_update().get(pk=user.pk)
        if not revocation.consume(token, claims, user):
            raise TokenRevoked('Reset token has already been used')
        user.password = credentials.hash_password(new_password)
        user.save(update_fields=['password', 'updated_at'])
        revocation.revoke_user_tokens(user)
        log_action(user=user, action='password_reset', resource_type='user', resource_id=user.pk,
                   context=context)
    logger.info("Password reset completed user_id=%s", user.pk)
    return user


def change_password(user, current_password: str, new_password: str, context: RequestContext) -> None:
    if not credentials.verify_password(current_password, user.password):
        record_access(user=user, action='update', resource_type='user', resource_id=user.pk,
                      status=FAILURE, context=context, details={'event': 'password_change'})
        raise ValidationFailed('Current password is incorrect.', code='INVALID_PASSWORD')
    with transaction.atomic():
        user.password = credentials.hash_password(new_password)
        user.save(update_fields=['password', 'updated_at'])
        revocation.revoke_user_tokens(user)
    record_access(user=user, action='update', resource_type='user', resource_id=user.pk,
                  context=context, details={'event': 'password_change'})
