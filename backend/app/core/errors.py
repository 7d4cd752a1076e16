# backend/app/core/errors.py
"""
Domain error taxonomy.

Services raise these; the API layer maps them to HTTP responses through a
single exception handler using ``status_code``. Messages are safe to show to
the client: they never contain secrets, hashes or ciphertext.
"""
from typing import Optional


class SecurePassError(Exception):
    """Base class for every error the core raises on purpose."""

    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(SecurePassError):
    """Missing or malformed input. The client must fix and resend."""

    status_code = 400
    default_message = "Validation failed"


class NotFoundError(SecurePassError):
    """Entity absent or not owned by the caller (deliberately indistinguishable)."""

    status_code = 404
    default_message = "Not found"


class InvalidCredentials(SecurePassError):
    """Generic, non-enumerating authentication failure."""

    status_code = 401
    default_message = "Invalid credentials"


class DuplicateAccount(SecurePassError):
    status_code = 400
    default_message = "User already exists with this email"


class DeliveryFailed(SecurePassError):
    """The verification code could not be delivered; the user must retry."""

    status_code = 502
    default_message = "Failed to send verification code"


# ─────────────────────────────────────────────────────────────────────────────
# One-time code state machine violations
# ─────────────────────────────────────────────────────────────────────────────
class OneTimeCodeError(SecurePassError):
    status_code = 400
    default_message = "Invalid verification code"


class CodeInvalid(OneTimeCodeError):
    default_message = "Invalid OTP"


class CodeExpired(OneTimeCodeError):
    default_message = "OTP has expired"


class AttemptsExhausted(OneTimeCodeError):
    default_message = "Maximum OTP attempts exceeded"


class CodeAlreadyUsed(OneTimeCodeError):
    default_message = "OTP has already been used"


class ActionAlreadyCompleted(OneTimeCodeError):
    default_message = "This verification code has already been used to complete the action"


# ─────────────────────────────────────────────────────────────────────────────
# Master password gate
# ─────────────────────────────────────────────────────────────────────────────
class MasterSecretInvalid(SecurePassError):
    status_code = 401
    default_message = "Invalid master password"


class MasterSecretLocked(MasterSecretInvalid):
    status_code = 423
    default_message = "Master password locked after too many failed attempts"


# ─────────────────────────────────────────────────────────────────────────────
# Cryptography
# ─────────────────────────────────────────────────────────────────────────────
class CryptoError(SecurePassError):
    """Unrecoverable encrypt/decrypt failure. Implies misconfiguration or corruption."""

    status_code = 500
    default_message = "Encryption failure"


class DecryptionError(CryptoError):
    """A stored credential could not be decrypted during export."""

    default_message = "Failed to decrypt password"

    def __init__(self, title: str, reason: Optional[str] = None):
        self.title = title
        message = f'Failed to decrypt password "{title}"'
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
