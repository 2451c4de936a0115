"""
Sealing of sensitive model fields at the repository boundary.

A sealed value is ``json.dumps(value)`` encrypted with the process cipher
and stored as the blob JSON ``{"encrypted", "authTag", "iv"}``. Services
call :func:`seal` before writing and :func:`unseal` after reading; the
models never do it implicitly.

Reading is strict: an undecryptable value raises
:class:`~care.exceptions.DecryptionError`. Callers that must tolerate
legacy corruption pass ``fail_soft=True`` and get ``default`` back, with a
warning in the log.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from care.exceptions import DecryptionError
from care.models import ENCRYPTION_VERSION
from care.services.cipher import EncryptedBlob, get_cipher

logger = logging.getLogger(__name__)


def seal(value: Any) -> str | None:
    if value is None:
        return None
    payload = json.dumps(value, ensure_ascii=False)
    return get_cipher().encrypt(payload).to_json()


def unseal(stored: str | None, *, fail_soft: bool = False, default: Any = None) -> Any:
    if stored is None:
        return None
    try:
        plaintext = get_cipher().decrypt(EncryptedBlob.from_json(stored))
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise DecryptionError("Decrypted field is not valid JSON") from exc
    except DecryptionError:
        if not fail_soft:
            raise
        logger.warning("Substituting default for undecryptable field value")
        return default


class FieldEncryptionAdapter:
    """Seal and unseal a fixed set of columns on a model instance."""

    def __init__(self, fields: Iterable[str]):
        self.fields = tuple(fields)

    def write(self, instance, **values) -> list[str]:
        """Seal ``values`` onto ``instance``; return the touched column names."""
        unknown = set(values) - set(self.fields)
        if unknown:
            raise ValueError(f"Not an encrypted field: {', '.join(sorted(unknown))}")
        for name, value in values.items():
            setattr(instance, name, seal(value))
        instance.encryption_version = ENCRYPTION_VERSION
        return [*values, 'encryption_version']

    def read(self, instance, *, fail_soft: bool = False) -> dict:
        pk = getattr(instance, 'pk', None)
        result = {}
        for name in self.fields:
            try:
                result[name] = unseal(getattr(instance, name), fail_soft=fail_soft)
            except DecryptionError:
                logger.error("Cannot decrypt %s.%s pk=%s", type(instance).__name__, name, pk)
                raise
        return result
