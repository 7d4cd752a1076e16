"""Tests for the master password gate and its server-side lockout."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from backend.app.core.errors import MasterSecretInvalid, MasterSecretLocked, NotFoundError
from backend.app.models.account import Account
from backend.app.security.lockout import (
    constant_time_compare,
    is_locked,
    lockout_remaining_minutes,
    utcnow,
)
from backend.app.services.gate import MasterKeyGate

LOGIN_SECRET = "Abc12345!"
MASTER_SECRET = "Mas12345!"


# ── Lockout arithmetic ──────────────────────────────────────────────


class TestLockoutHelpers:

    def test_below_threshold_is_never_locked(self):
        assert is_locked(2, utcnow(), 3, 15) is False

    def test_at_threshold_locks_until_window_passes(self):
        assert is_locked(3, utcnow(), 3, 15) is True
        assert is_locked(3, utcnow() - timedelta(minutes=16), 3, 15) is False

    def test_remaining_minutes_rounds_up(self):
        assert lockout_remaining_minutes(utcnow() - timedelta(minutes=1, seconds=30), 15) == 14
        assert lockout_remaining_minutes(utcnow() - timedelta(minutes=20), 15) == 0
        assert lockout_remaining_minutes(None, 15) == 0

    def test_constant_time_compare(self):
        assert constant_time_compare("123456", "123456")
        assert not constant_time_compare("123456", "123457")
        assert not constant_time_compare("123456", "12345")
        assert not constant_time_compare(None, "123456")
        assert not constant_time_compare("１２３４５６", "123456")


# ── Verification ────────────────────────────────────────────────────


class TestVerify:

    @pytest.mark.asyncio
    async def test_correct_master_password_marks_account_verified(self, gate, account):
        assert gate.is_verified(account.id) is False
        assert await gate.verify(account.id, MASTER_SECRET) is True
        assert gate.is_verified(account.id) is True
        gate.ensure_verified(account.id)

    @pytest.mark.asyncio
    async def test_login_password_does_not_open_the_gate(self, gate, account):
        assert await gate.verify(account.id, LOGIN_SECRET) is False
        assert gate.is_verified(account.id) is False

    @pytest.mark.asyncio
    async def test_require_or_fail(self, gate, account):
        with pytest.raises(MasterSecretInvalid):
            await gate.require_or_fail(account.id, "wrong")
        with pytest.raises(MasterSecretInvalid):
            await gate.require_or_fail(account.id, "")
        await gate.require_or_fail(account.id, MASTER_SECRET)

    @pytest.mark.asyncio
    async def test_ensure_verified_without_verification(self, gate, account):
        with pytest.raises(MasterSecretInvalid):
            gate.ensure_verified(account.id)

    @pytest.mark.asyncio
    async def test_verification_is_per_gate_instance(self, db, gate, account):
        await gate.verify(account.id, MASTER_SECRET)
        next_request = MasterKeyGate(db)
        assert next_request.is_verified(account.id) is False

    @pytest.mark.asyncio
    async def test_verification_does_not_cover_other_accounts(self, gate, account, make_account):
        other = await make_account("other@example.com")
        await gate.verify(account.id, MASTER_SECRET)
        with pytest.raises(MasterSecretInvalid):
            gate.ensure_verified(other.id)

    @pytest.mark.asyncio
    async def test_unknown_account(self, gate):
        with pytest.raises(NotFoundError):
            await gate.verify(9999, MASTER_SECRET)


# ── Server-side lockout ─────────────────────────────────────────────


class TestLockout:

    @pytest.mark.asyncio
    async def test_failures_are_counted_and_reset_on_success(self, db, gate, account):
        await gate.verify(account.id, "wrong")
        await gate.verify(account.id, "wrong")
        await db.refresh(account)
        assert account.master_password_attempts == 2

        await gate.verify(account.id, MASTER_SECRET)
        await db.refresh(account)
        assert account.master_password_attempts == 0
        assert account.last_master_password_attempt is None

    @pytest.mark.asyncio
    async def test_third_failure_locks_even_the_correct_password(self, gate, account):
        for _ in range(3):
            assert await gate.verify(account.id, "wrong") is False

        with pytest.raises(MasterSecretLocked):
            await gate.verify(account.id, MASTER_SECRET)
        assert gate.is_verified(account.id) is False

    @pytest.mark.asyncio
    async def test_locked_is_a_master_secret_failure(self, gate, account):
        for _ in range(3):
            await gate.verify(account.id, "wrong")
        with pytest.raises(MasterSecretInvalid) as excinfo:
            await gate.require_or_fail(account.id, MASTER_SECRET)
        assert excinfo.value.status_code == 423

    @pytest.mark.asyncio
    async def test_lock_lifts_after_lockout_window(self, db, gate, account):
        for _ in range(3):
            await gate.verify(account.id, "wrong")

        await db.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(last_master_password_attempt=utcnow() - timedelta(minutes=16))
        )
        await db.commit()

        assert await gate.verify(account.id, MASTER_SECRET) is True
        await db.refresh(account)
        assert account.master_password_attempts == 0

    @pytest.mark.asyncio
    async def test_failure_after_expired_lock_starts_a_new_count(self, db, gate, account):
        for _ in range(3):
            await gate.verify(account.id, "wrong")
        await db.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(last_master_password_attempt=utcnow() - timedelta(minutes=16))
        )
        await db.commit()

        assert await gate.verify(account.id, "wrong") is False
        await db.refresh(account)
        assert account.master_password_attempts == 1
