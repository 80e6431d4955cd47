"""Key derivation and authenticated encryption of the stored configuration.

The configuration is kept as a single AES-256-GCM blob serialized as
``base64(iv):base64(tag):base64(ciphertext)``.

Known weakness: the default salt and passphrase below are fixed values shipped
with the program. Anyone holding the program and an env file can decrypt it.
Callers should pass a passphrase from the environment or the settings file
(see :py:meth:`voice_config.config.StoreSettings.resolve_passphrase`).
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

LOGGER = logging.getLogger(__name__)

KEY_SIZE = 32
IV_SIZE = 16
TAG_SIZE = 16
DELIMITER = ":"

DEFAULT_SALT = b"local_salt_v1"
DEFAULT_PASSPHRASE = "voice-agent-local"

# scrypt cost parameters (N=2**14, r=8, p=1)
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1


def derive_key(passphrase: str, salt: Union[bytes, str] = DEFAULT_SALT) -> bytes:
    """Derive a 32 byte key from *passphrase* and *salt* with scrypt."""

    if isinstance(salt, str):
        salt = salt.encode("utf-8")
    kdf = Scrypt(salt=salt, length=KEY_SIZE, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(passphrase.encode("utf-8"))


@dataclass(frozen=True)
class EncryptedBlob:
    iv: bytes
    tag: bytes
    ciphertext: bytes

    def serialize(self) -> str:
        return DELIMITER.join(
            base64.b64encode(part).decode("ascii") for part in (self.iv, self.tag, self.ciphertext)
        )

    @classmethod
    def parse(cls, text: str) -> Optional["EncryptedBlob"]:
        """Parse a serialized blob, returning ``None`` when it is malformed."""

        parts = (text or "").split(DELIMITER, 2)
        if len(parts) < 3 or not all(parts):
            LOGGER.warning("Encrypted config is malformed: expected iv:tag:ciphertext.")
            return None
        try:
            iv, tag, ciphertext = (base64.b64decode(part, validate=True) for part in parts)
        except (binascii.Error, ValueError) as exc:
            LOGGER.warning("Encrypted config is not valid base64: %s", exc)
            return None
        if len(iv) != IV_SIZE or len(tag) != TAG_SIZE:
            LOGGER.warning("Encrypted config has an invalid iv or tag length.")
            return None
        return cls(iv=iv, tag=tag, ciphertext=ciphertext)


def encrypt(key: bytes, plaintext: bytes) -> EncryptedBlob:
    iv = os.urandom(IV_SIZE)
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    # AESGCM appends the tag to the ciphertext
    return EncryptedBlob(iv=iv, tag=sealed[-TAG_SIZE:], ciphertext=sealed[:-TAG_SIZE])


def decrypt(key: bytes, blob: Union[EncryptedBlob, str, None]) -> Optional[bytes]:
    """Return the plaintext, or ``None`` if *blob* is malformed or was tampered with."""

    if blob is None:
        return None
    if isinstance(blob, str):
        blob = EncryptedBlob.parse(blob)
        if blob is None:
            return None
    try:
        return AESGCM(key).decrypt(blob.iv, blob.ciphertext + blob.tag, None)
    except InvalidTag:
        LOGGER.warning("Failed to decrypt config: authentication tag mismatch.")
    except ValueError as exc:
        LOGGER.warning("Failed to decrypt config: %s", exc)
    return None


def encrypt_config(key: bytes, data: Mapping[str, Any]) -> str:
    payload = json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return encrypt(key, payload).serialize()


def decrypt_config(key: bytes, text: Optional[str]) -> Optional[Dict[str, Any]]:
    plaintext = decrypt(key, text)
    if plaintext is None:
        return None
    try:
        data = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        LOGGER.warning("Decrypted config is not valid JSON: %s", exc)
        return None
    if not isinstance(data, dict):
        LOGGER.warning("Decrypted config is not an object.")
        return None
    return data


__all__ = [
    "DEFAULT_PASSPHRASE",
    "DEFAULT_SALT",
    "EncryptedBlob",
    "decrypt",
    "decrypt_config",
    "derive_key",
    "encrypt",
    "encrypt_config",
]
