"""
Password hashing and verification.

Credentials use Django's ``bcrypt_sha256`` format
(``bcrypt_sha256$$2b$12$<salt><hash>``), so the salt and cost travel
inside the stored string and verification needs nothing else.
"""
from __future__ import annotations

from django.contrib.auth.hashers import BCryptSHA256PasswordHasher, identify_hasher, make_password

from care.exceptions import InvalidCredentialFormat

BCRYPT_ROUNDS = 12


class BCryptPasswordHasher(BCryptSHA256PasswordHasher):
    """bcrypt over a SHA-256 pre-hash with a fixed cost factor."""
    rounds = BCRYPT_ROUNDS


def hash_password(password: str) -> str:
    if password is None:
        raise ValueError("password must be a string")
    return make_password(password, hasher=BCryptPasswordHasher())


def verify_password(password: str, encoded: str) -> bool:
    """Check ``password`` against a stored credential in constant time.

    Returns False on mismatch. Raises :class:`InvalidCredentialFormat` if
    ``encoded`` is not a credential this system can read.
    """
    if not encoded:
        raise InvalidCredentialFormat("Stored credential is empty")
    try:
        hasher = identify_hasher(encoded)
    except ValueError as exc:
        raise InvalidCredentialFormat("Stored credential has an unknown format") from exc
    try:
        return hasher.verify(password or '', encoded)
    except (TypeError, ValueError) as exc:
        raise InvalidCredentialFormat("Stored credential is malformed") from exc
