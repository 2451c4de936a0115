"""
TOTP two-factor authentication.

Lifecycle per user::

    DISABLED --begin_setup--> PENDING --confirm_setup(ok)--> ENABLED
    PENDING  --confirm_setup(wrong code) or expiry--> DISABLED
    ENABLED  --disable(ok)--> DISABLED

PENDING has no server-side state: the freshly generated secret travels,
sealed, inside a short-lived ``2fa_setup`` token handed to the client. The
token is single-use, so a failed confirmation sends the user back to
DISABLED and the secret is never stored unless a code verified against it.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass
from io import BytesIO

import pyotp
import qrcode
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction

from care.exceptions import ConflictError, InvalidTwoFactorCode, TokenInvalid, TokenRevoked, ValidationFailed
from care.services import revocation, tokens
from care.services.field_encryption import seal, unseal
from care.services.tokens import Purpose

User = get_user_model()

CODE_LENGTH = 6


@dataclass(frozen=True)
class TwoFactorSecret:
    secret: str
    provisioning_uri: str


@dataclass(frozen=True)
class SetupChallenge:
    secret: str
    provisioning_uri: str
    qr_code: str
    setup_token: str


def generate_secret(account_label: str) -> TwoFactorSecret:
    secret = pyotp.random_base32()
    uri = pyotp.TOTP(secret).provisioning_uri(name=account_label, issuer_name=settings.TOTP_ISSUER)
    return TwoFactorSecret(secret=secret, provisioning_uri=uri)


def render_qr_code(uri: str) -> str:
    """Render ``uri`` as a PNG data URL for the authenticator app."""
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return f"data:image/png;base64,{base64.b64encode(buffer.getvalue()).decode()}"


def verify_code(secret: str | None, code) -> bool:
    """True if ``code`` is the current TOTP for ``secret`` (one step either side).

    Anything that is not exactly six ASCII digits is simply rejected.
    """
    if not secret or not isinstance(code, str):
        return False
    if len(code) != CODE_LENGTH or not (code.isascii() and code.isdigit()):
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=1)


def begin_setup(user) -> SetupChallenge:
    if user.two_factor_enabled:
        raise ConflictError('Two-factor authentication is already enabled.', code='2FA_ALREADY_ENABLED')
    generated = generate_secret(user.email)
    setup_token = tokens.issue_purpose_token(
        user.pk, Purpose.TWO_FACTOR_SETUP, settings.TWO_FACTOR_SETUP_TTL,
        pending=seal(generated.secret),
    )
    return SetupChallenge(
        secret=generated.secret,
        provisioning_uri=generated.provisioning_uri,
        qr_code=render_qr_code(generated.provisioning_uri),
        setup_token=setup_token,
    )


def confirm_setup(user, setup_token: str, code: str) -> None:
    """Enable 2FA if ``code`` matches the pending secret in ``setup_token``.

    Raises :class:`InvalidTwoFactorCode` (and burns the setup token) on a
    wrong code.
    """
    claims = tokens.verify_purpose_token(setup_token, Purpose.TWO_FACTOR_SETUP)
    if claims.subject_id != user.pk:
        raise TokenInvalid()
    if revocation.is_revoked(claims.jti):
        raise TokenRevoked()
    pending = unseal(claims.extra.get('pending'))
    if not pending:
        raise TokenInvalid()

    if not verify_code(pending, code):
        revocation.revoke(setup_token, claims, user)
        raise InvalidTwoFactorCode()

    with transaction.atomic():
        locked = User.objects.select_for_update().get(pk=user.pk)
        if locked.two_factor_enabled:
            raise ConflictError('Two-factor authentication is already enabled.', code='2FA_ALREADY_ENABLED')
        locked.two_factor_secret = seal(pending)
        locked.two_factor_enabled = True
        locked.save(update_fields=['two_factor_secret', 'two_factor_enabled', 'updated_at'])
        revocation.revoke(setup_token, claims, user)

    user.two_factor_secret = locked.two_factor_secret
    user.two_factor_enabled = True


def verify_user_code(user, code: str) -> bool:
    if not user.two_factor_enabled:
        return False
    return verify_code(unseal(user.two_factor_secret), code)


def disable(user, code: str) -> None:
    if not user.two_factor_enabled:
        raise ValidationFailed('Two-factor authentication is not enabled.', code='2FA_NOT_ENABLED')
    if not verify_user_code(user, code):
        raise InvalidTwoFactorCode()
    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.save(update_fields=['two_factor_secret', 'two_factor_enabled', 'updated_at'])
