# backend/app/security/vault.py
"""
CryptoVault - reversible encryption of single secret values.

- AES-256-GCM (cryptography's AESGCM)
- fresh random 96-bit IV per seal, never reused
- ciphertext (with GCM tag) and IV hex-encoded for storage

The key is supplied through an explicit VaultConfig built once at boot and
injected into the vault. There is no rotation while the process runs: a
different key makes every previously sealed value unrecoverable.

Security Note:
    Never log plaintext, ciphertext or key material.
"""
import base64
import binascii
import logging
import os
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel

from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.errors import CryptoError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32  # AES-256
IV_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16


def generate_encryption_key() -> str:
    """Generate a random 32-byte key as a base64 string (for ENCRYPTION_KEY)."""
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


class SealedValue(BaseModel):
    """Ciphertext + IV pair produced by CryptoVault.seal."""

    ciphertext: str
    iv: str


class VaultConfig(BaseModel):
    """Holds the process-wide encryption key."""

    key: bytes

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "VaultConfig":
        """Decode ENCRYPTION_KEY (base64).

        Outside production a missing key falls back to a random per-process
        key, so data sealed by one run cannot be opened by the next.
        """
        config = config or default_settings
        raw = config.ENCRYPTION_KEY
        if not raw:
            if config.is_production:
                raise CryptoError("ENCRYPTION_KEY must be set in production")
            logger.warning(
                "ENCRYPTION_KEY is not set; using an ephemeral key. "
                "Stored credentials will not survive a restart."
            )
            return cls(key=secrets.token_bytes(KEY_LENGTH))
        try:
            key = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as err:
            raise CryptoError("ENCRYPTION_KEY is not valid base64") from err
        return cls(key=key)


class CryptoVault:
    def __init__(self, config: VaultConfig):
        self._config = config

    def _cipher(self) -> AESGCM:
        key = self._config.key
        if not isinstance(key, bytes) or len(key) != KEY_LENGTH:
            raise CryptoError(
                f"Encryption key must be exactly {KEY_LENGTH} bytes"
            )
        return AESGCM(key)

    def seal(self, plaintext: str) -> SealedValue:
        """Encrypt ``plaintext`` under a fresh IV."""
        if not isinstance(plaintext, str):
            raise CryptoError("Only string values can be encrypted")
        cipher = self._cipher()
        iv = os.urandom(IV_SIZE)
        try:
            ct = cipher.encrypt(iv, plaintext.encode("utf-8"), None)
        except Exception as err:
            raise CryptoError(f"Encryption failed: {err}") from err
        return SealedValue(ciphertext=ct.hex(), iv=iv.hex())

    def open(self, sealed: SealedValue) -> str:
        """Decrypt a value produced by :meth:`seal`.

        Raises:
            CryptoError: malformed IV, truncated or tampered ciphertext, or a
                key different from the one used to seal.
        """
        cipher = self._cipher()
        try:
            iv = bytes.fromhex(sealed.iv)
            ct = bytes.fromhex(sealed.ciphertext)
        except (TypeError, ValueError) as err:
            raise CryptoError("Sealed value is not valid hex") from err
        if len(iv) != IV_SIZE:
            raise CryptoError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")
        if len(ct) < TAG_SIZE:
            raise CryptoError("Ciphertext is truncated")
        try:
            plaintext = cipher.decrypt(iv, ct, None)
        except InvalidTag as err:
            raise CryptoError("Decryption failed: data corrupted or key changed") from err
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as err:
            raise CryptoError("Decrypted value is not valid UTF-8") from err
