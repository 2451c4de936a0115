"""
JWT deny-list backed by simplejwt's ``token_blacklist`` tables.

Refresh tokens are recorded as outstanding when issued so a logout can
revoke all of them; access and single-purpose tokens are only recorded at
the moment they are revoked.
"""
from __future__ import annotations

from django.db import transaction
from django.utils import timezone
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken

from care.services.tokens import Claims


def record_outstanding(token: str, claims: Claims, user=None) -> OutstandingToken:
    outstanding, _ = OutstandingToken.objects.get_or_create(
        jti=claims.jti,
        defaults={
            'user': user,
            'token': token,
            'created_at': claims.issued_at,
            'expires_at': claims.expires_at,
        },
    )
    return outstanding


def revoke(token: str, claims: Claims, user=None) -> None:
    outstanding = record_outstanding(token, claims, user)
    BlacklistedToken.objects.get_or_create(token=outstanding)


def consume(token: str, claims: Claims, user=None) -> bool:
    """Revoke a single-use token; True only for the call that revoked it.

    The outstanding row is locked and the blacklist row is unique, so of
    two concurrent callers presenting the same token exactly one wins.
    """
    with transaction.atomic():
        outstanding = record_outstanding(token, claims, user)
        outstanding = OutstandingToken.objects.select_for_update().get(pk=outstanding.pk)
        _, created = BlacklistedToken.objects.get_or_create(token=outstanding)
    return created


def is_revoked(jti: str) -> bool:
    return BlacklistedToken.objects.filter(token__jti=jti).exists()


def revoke_user_tokens(user) -> int:
    """Revoke every unexpired outstanding token of ``user``."""
    pending = OutstandingToken.objects.filter(
        user=user,
        blacklistedtoken__isnull=True,
        expires_at__gt=timezone.now(),
    )
    count = 0
    for outstanding in pending:
        BlacklistedToken.objects.get_or_create(token=outstanding)
        count += 1
    return count
