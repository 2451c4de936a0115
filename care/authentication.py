"""
Bearer JWT authentication for Django REST framework.

Reads ``Authorization: Bearer <access token>``, verifies it with the
access secret, rejects revoked tokens and inactive accounts. On success
``request.user`` is the account and ``request.auth`` the verified
:class:`~care.services.tokens.Claims`.
"""
from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import authentication

from care.exceptions import AccountInactive, TokenInvalid, TokenRevoked
from care.services import revocation, tokens
from care.services.tokens import TokenKind

User = get_user_model()


class BearerTokenAuthentication(authentication.BaseAuthentication):
    keyword = 'Bearer'

    def authenticate(self, request):
        auth = authentication.get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None
        if len(auth) != 2:
            raise TokenInvalid('Invalid Authorization header.')
        try:
            raw = auth[1].decode()
        except UnicodeError:
            raise TokenInvalid('Invalid Authorization header.') from None

        claims = tokens.verify(raw, TokenKind.ACCESS)
        if revocation.is_revoked(claims.jti):
            raise TokenRevoked()
        user = User.objects.filter(pk=claims.subject_id).first()
        if user is None:
            raise TokenInvalid('User not found.')
        if not user.is_account_active:
            raise AccountInactive()
        request.access_token = raw
        return user, claims

    def authenticate_header(self, request):
        return self.keyword
