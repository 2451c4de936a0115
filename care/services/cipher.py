"""
Authenticated symmetric encryption for data at rest.

AES-256 in GCM mode with a fresh random nonce per call, so encrypting the
same plaintext twice yields different blobs. Decryption fails closed: any
tag mismatch, wrong key or malformed field raises :class:`DecryptionError`.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache

from Crypto.Cipher import AES
from Crypto.PublicKey import RSA
from Crypto.Random import get_random_bytes
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from care.exceptions import DecryptionError

KEY_BYTES = 32
IV_BYTES = 12
TAG_BYTES = 16


@dataclass(frozen=True)
class EncryptedBlob:
    """Hex encoded ciphertext, GCM tag and nonce."""
    ciphertext: str
    auth_tag: str
    iv: str

    def to_dict(self) -> dict:
        return {'encrypted': self.ciphertext, 'authTag': self.auth_tag, 'iv': self.iv}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data) -> "EncryptedBlob":
        if not isinstance(data, dict):
            raise DecryptionError("Encrypted blob must be an object")
        fields = (data.get('encrypted'), data.get('authTag'), data.get('iv'))
        if not all(isinstance(f, str) for f in fields):
            raise DecryptionError("Encrypted blob is missing fields")
        return cls(*fields)

    @classmethod
    def from_json(cls, text: str) -> "EncryptedBlob":
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise DecryptionError("Encrypted blob is not valid JSON") from exc
        return cls.from_dict(data)


@dataclass(frozen=True)
class KeyPair:
    public_key: str
    private_key: str


class Cipher:
    def __init__(self, key: bytes):
        if len(key) != KEY_BYTES:
            raise ImproperlyConfigured(f"Encryption key must be {KEY_BYTES} bytes")
        self._key = key

    def encrypt(self, plaintext: str) -> EncryptedBlob:
        iv = get_random_bytes(IV_BYTES)
        cipher = AES.new(self._key, AES.MODE_GCM, nonce=iv, mac_len=TAG_BYTES)
        ciphertext, tag = cipher.encrypt_and_digest(plaintext.encode('utf-8'))
        return EncryptedBlob(ciphertext=ciphertext.hex(), auth_tag=tag.hex(), iv=iv.hex())

    def decrypt(self, blob: EncryptedBlob) -> str:
        try:
            ciphertext = bytes.fromhex(blob.ciphertext)
            tag = bytes.fromhex(blob.auth_tag)
            iv = bytes.fromhex(blob.iv)
        except (TypeError, ValueError) as exc:
            raise DecryptionError("Encrypted blob is not valid hex") from exc
        if len(tag) != TAG_BYTES or not iv:
            raise DecryptionError("Encrypted blob has a malformed tag or iv")

        cipher = AES.new(self._key, AES.MODE_GCM, nonce=iv, mac_len=TAG_BYTES)
        try:
            data = cipher.decrypt_and_verify(ciphertext, tag)
        except ValueError as exc:
            raise DecryptionError("Authentication tag mismatch") from exc
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise DecryptionError("Decrypted data is not UTF-8") from exc


@lru_cache(maxsize=4)
def _cipher_for(key_hex: str) -> Cipher:
    try:
        key = bytes.fromhex(key_hex)
    except ValueError as exc:
        raise ImproperlyConfigured("FIELD_ENCRYPTION_KEY must be hex encoded") from exc
    return Cipher(key)


def get_cipher() -> Cipher:
    """Return the cipher for the configured process-wide key."""
    return _cipher_for(settings.FIELD_ENCRYPTION_KEY)


def encrypt(plaintext: str) -> EncryptedBlob:
    return get_cipher().encrypt(plaintext)


def decrypt(blob: EncryptedBlob) -> str:
    return get_cipher().decrypt(blob)


def generate_key_pair(bits: int | None = None) -> KeyPair:
    """Generate an RSA key pair as PEM text (SPKI public, PKCS#8 private).

    The private half must be sealed before it is stored anywhere.
    """
    key = RSA.generate(bits or settings.USER_KEYPAIR_BITS)
    return KeyPair(
        public_key=key.publickey().export_key(format='PEM').decode('ascii'),
        private_key=key.export_key(format='PEM', pkcs=8).decode('ascii'),
    )
