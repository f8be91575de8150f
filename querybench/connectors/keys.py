"""
Credential resolution and private key handling.

Profiles carry either a password or a PKCS#8 PEM private key. Encrypted keys
are unlocked with the profile password. Which combinations a backend accepts
is decided in ``client.py``; this module only parses and converts.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from querybench.errors import UnsupportedKeyFormat


class KeyFormat(str, Enum):
    """PEM private key forms."""

    ENCRYPTED = "encrypted"
    UNENCRYPTED = "unencrypted"
    INVALID = "invalid"


class AuthMethod(str, Enum):
    PASSWORD = "password"
    KEY_PAIR = "key_pair"


@dataclass(frozen=True)
class Credentials:
    """Authentication material chosen for one backend."""

    method: AuthMethod
    password: Optional[str] = None
    private_key_pem: Optional[str] = None
    key_format: Optional[KeyFormat] = None

    @property
    def key_passphrase(self) -> Optional[str]:
        # The profile password doubles as the unlock secret of an encrypted key.
        if self.key_format is KeyFormat.ENCRYPTED:
            return self.password
        return None


def classify_private_key(pem: str) -> KeyFormat:
    text = pem.strip()
    if "ENCRYPTED PRIVATE KEY" in text:
        return KeyFormat.ENCRYPTED
    if "PRIVATE KEY" in text:
        return KeyFormat.UNENCRYPTED
    return KeyFormat.INVALID


def load_private_key(pem: str, passphrase: Optional[str] = None) -> PrivateKeyTypes:
    """
    Parse a PEM private key, unlocking it when encrypted.

    Raises:
        UnsupportedKeyFormat: If the PEM cannot be parsed or unlocked
    """
    secret = passphrase.encode("utf-8") if passphrase is not None else None
    try:
        return serialization.load_pem_private_key(
            pem.strip().encode("utf-8"), password=secret
        )
    except (ValueError, TypeError) as e:
        raise UnsupportedKeyFormat(f"Unable to load private key: {e}") from e


def private_key_der(key: PrivateKeyTypes) -> bytes:
    """Unencrypted PKCS#8 DER bytes (the form snowflake-connector expects)."""
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key_fingerprint(key: PrivateKeyTypes) -> str:
    """``SHA256:<base64>`` fingerprint of the public key, as Snowflake stores it."""
    public_der = key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    digest = hashlib.sha256(public_der).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii")
