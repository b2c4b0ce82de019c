"""Encrypted channel credentials (AES-256-GCM).

Stored format: base64(salt[64] | iv[16] | tag[16] | ciphertext). The salt is
random filler kept for compatibility with tokens already in the database.
"""

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from orderdesk.config import settings
from orderdesk.logging_config import get_logger

logger = get_logger("credential_store")

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
TAG_POSITION = SALT_LENGTH + IV_LENGTH
ENCRYPTED_POSITION = TAG_POSITION + TAG_LENGTH

# Meta long-lived access tokens are stored unencrypted by older setups.
PLAINTEXT_TOKEN_PREFIXES = ("EAA",)


class CredentialError(Exception):
    """Credential missing or undecryptable. Never retried."""

    code = "credential_error"


def derive_key(secret: str) -> bytes:
    if not secret:
        raise CredentialError("Encryption key is not configured")
    if len(secret) == 64:
        try:
            return bytes.fromhex(secret)
        except ValueError:
            pass
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=b"salt", iterations=100000)
    return kdf.derive(secret.encode("utf-8"))


class CredentialStore:
    def __init__(self, secret: Optional[str] = None):
        self._secret = secret if secret is not None else settings.encryption_key
        self._key: Optional[bytes] = None

    def _get_key(self) -> bytes:
        if self._key is None:
            self._key = derive_key(self._secret)
        return self._key

    def encrypt(self, token: str) -> str:
        iv = os.urandom(IV_LENGTH)
        salt = os.urandom(SALT_LENGTH)
        sealed = AESGCM(self._get_key()).encrypt(iv, token.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")

    def decrypt(self, encrypted_token: str) -> str:
        if not encrypted_token:
            raise CredentialError("No credential stored")
        try:
            combined = base64.b64decode(encrypted_token, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CredentialError("Credential is not valid base64") from exc
        if len(combined) < ENCRYPTED_POSITION:
            raise CredentialError("Credential ciphertext is truncated")

        iv = combined[SALT_LENGTH:TAG_POSITION]
        tag = combined[TAG_POSITION:ENCRYPTED_POSITION]
        ciphertext = combined[ENCRYPTED_POSITION:]
        try:
            plaintext = AESGCM(self._get_key()).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise CredentialError("Credential failed authentication") from exc
        return plaintext.decode("utf-8")

    def reveal(self, stored: Optional[str]) -> str:
        """Return a usable token from a stored value that may predate encryption."""
        if not stored:
            raise CredentialError("No credential stored")
        if stored.startswith(PLAINTEXT_TOKEN_PREFIXES):
            return stored
        return self.decrypt(stored)
