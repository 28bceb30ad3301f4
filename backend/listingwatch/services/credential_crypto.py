"""Encryption for stored forum passwords (AES-256-GCM).

Ciphertexts are stored as ``iv:tag:ciphertext``, each part hex-encoded.
"""

import os
from functools import lru_cache
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from listingwatch.config import settings

KEY_SALT = b"listingwatch-credential-salt"
KEY_ITERATIONS = 100_000
IV_LENGTH = 12
TAG_LENGTH = 16


@lru_cache(maxsize=4)
def derive_key(secret: str) -> bytes:
    """Stable 256-bit key derived from the configured secret with PBKDF2."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=KEY_SALT, iterations=KEY_ITERATIONS)
    return kdf.derive(secret.encode("utf-8"))


def encrypt_password(plain: str, secret: Optional[str] = None) -> str:
    """Encrypt a plaintext password for storage."""
    key = derive_key(secret or settings.CREDENTIAL_SECRET_KEY)
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plain.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt_password(stored: str, secret: Optional[str] = None) -> str:
    """Decrypt a value produced by encrypt_password.

    Raises:
        ValueError: If the value is malformed, tampered with or was
            encrypted under another key
    """
    parts = stored.split(":")
    if len(parts) != 3 or not all(parts):
        raise ValueError("Invalid encrypted password format")

    try:
        iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
    except ValueError:
        raise ValueError("Invalid encrypted password encoding")

    key = derive_key(secret or settings.CREDENTIAL_SECRET_KEY)
    try:
        plain = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag:
        raise ValueError("Encrypted password failed authentication")
    return plain.decode("utf-8")
