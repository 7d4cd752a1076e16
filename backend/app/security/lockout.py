# backend/app/security/lockout.py
"""
Time and comparison helpers shared by the one-time code ledger and the
master password gate.

- constant-time code comparison
- timezone normalisation (SQLite hands back naive datetimes)
- failed-attempt lockout arithmetic
"""
import math
import secrets
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes from the database as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.

    Returns:
        True if strings match, False otherwise
    """
    if a is None or b is None:
        return False
    # Bytes, so non-ASCII input is a mismatch rather than a TypeError
    return secrets.compare_digest(str(a).encode("utf-8"), str(b).encode("utf-8"))


def is_locked(
    failed_attempts: int,
    last_attempt_at: Optional[datetime],
    max_attempts: int,
    lockout_minutes: int,
) -> bool:
    """
    Check whether too many consecutive failures lock the secret right now.

    The lock lifts by itself ``lockout_minutes`` after the last failure.
    """
    if failed_attempts < max_attempts:
        return False

    if last_attempt_at is None:
        return False

    elapsed_minutes = (utcnow() - ensure_aware(last_attempt_at)).total_seconds() / 60
    return elapsed_minutes < lockout_minutes


def lockout_remaining_minutes(last_attempt_at: Optional[datetime], lockout_minutes: int) -> int:
    """
    Remaining lockout time in whole minutes (rounded up), 0 if not locked.
    """
    if last_attempt_at is None:
        return 0

    elapsed_minutes = (utcnow() - ensure_aware(last_attempt_at)).total_seconds() / 60
    remaining = lockout_minutes - elapsed_minutes
    return max(0, math.ceil(remaining))
