"""Tests for the one-time code ledger state machine."""

import re
from datetime import timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import update

from backend.app.core.errors import (
    ActionAlreadyCompleted,
    AttemptsExhausted,
    CodeAlreadyUsed,
    CodeExpired,
    CodeInvalid,
)
from backend.app.models.one_time_code import CodePurpose, CodeState, OneTimeCode
from backend.app.security.lockout import utcnow
from backend.app.services.ledger import OneTimeCodeLedger, code_ttl_minutes, generate_code

EMAIL = "a@x.com"
REG = CodePurpose.REGISTRATION
RESET = CodePurpose.PASSWORD_RESET


async def _age(db, **values):
    await db.execute(update(OneTimeCode).values(**values))
    await db.commit()


# ââ Issuance ââââââââââââââââââââââââââââââââââââââââââââââââââââââââ


class TestIssue:

    def test_generated_codes_are_six_digits(self):
        for _ in range(200):
            assert re.fullmatch(r"\d{6}", generate_code())

    def test_ttl_per_purpose(self):
        assert code_ttl_minutes(CodePurpose.REGISTRATION) == 10
        assert code_ttl_minutes(CodePurpose.PASSWORD_RESET) == 10
        assert code_ttl_minutes(CodePurpose.TWO_FACTOR) == 5

    @pytest.mark.asyncio
    async def test_default_factory_issues_six_digits(self, db):
        code = await OneTimeCodeLedger(db).issue(EMAIL, REG)
        assert re.fullmatch(r"\d{6}", code)

    @pytest.mark.asyncio
    async def test_issue_starts_pending(self, ledger):
        assert await ledger.status(EMAIL, REG) is None
        await ledger.issue(EMAIL, REG)
        assert await ledger.status(EMAIL, REG) is CodeState.PENDING

    @pytest.mark.asyncio
    async def test_purposes_are_independent(self, ledger):
        await ledger.issue(EMAIL, REG)
        await ledger.issue(EMAIL, RESET)
        await ledger.verify(EMAIL, RESET, "123456")
        assert await ledger.status(EMAIL, REG) is CodeState.PENDING
        assert await ledger.status(EMAIL, RESET) is CodeState.VERIFIED

    @pytest.mark.asyncio
    async def test_second_issue_supersedes_first(self, make_ledger):
        ledger = make_ledger("111111", "222222")
        first = await ledger.issue(EMAIL, REG)
        second = await ledger.issue(EMAIL, REG)
        assert (first, second) == ("111111", "222222")

        with pytest.raises(CodeInvalid):
            await ledger.verify(EMAIL, REG, first)
        await ledger.verify(EMAIL, REG, second)

    @pytest.mark.asyncio
    async def test_reissue_keeps_payload(self, make_ledger):
        ledger = make_ledger("111111", "222222")
        await ledger.issue(EMAIL, REG, payload={"first_name": "Ada"})
        code = await ledger.reissue(EMAIL, REG)
        assert await ledger.verify(EMAIL, REG, code) == {"first_name": "Ada"}

    @pytest.mark.asyncio
    async def test_reissue_without_code_fails(self, ledger):
        with pytest.raises(CodeInvalid):
            await ledger.reissue(EMAIL, REG)

    @pytest.mark.asyncio
    async def test_reissue_resets_attempts(self, ledger):
        await ledger.issue(EMAIL, REG)
        for _ in range(3):
            with pytest.raises(CodeInvalid):
                await ledger.verify(EMAIL, REG, "000000")
        await ledger.reissue(EMAIL, REG)
        assert await ledger.status(EMAIL, REG) is CodeState.PENDING


# ââ Verification ââââââââââââââââââââââââââââââââââââââââââââââââââââ


class TestVerify:

    @pytest.mark.asyncio
    async def test_three_wrong_guesses_exhaust_the_code(self, ledger):
        await ledger.issue(EMAIL, REG)
        for _ in range(3):
            with pytest.raises(CodeInvalid):
                await ledger.verify(EMAIL, REG, "000000")

        with pytest.raises(AttemptsExhausted):
            await ledger.verify(EMAIL, REG, "123456")
        assert await ledger.status(EMAIL, REG) is CodeState.EXHAUSTED

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, ledger):
        await ledger.issue(EMAIL, REG)
        await ledger.verify(EMAIL, REG, "123456")
        with pytest.raises(CodeAlreadyUsed):
            await ledger.verify(EMAIL, REG, "123456")

    @pytest.mark.asyncio
    async def test_correct_code_after_wrong_guess(self, ledger):
        await ledger.issue(EMAIL, REG, payload={"k": "v"})
        with pytest.raises(CodeInvalid):
            await ledger.verify(EMAIL, REG, "999999")
        assert await ledger.verify(EMAIL, REG, " 123456 ") == {"k": "v"}

    @pytest.mark.asyncio
    async def test_non_ascii_code_is_a_wrong_guess(self, ledger):
        await ledger.issue(EMAIL, RESET)
        with pytest.raises(CodeInvalid):
            await ledger.verify(EMAIL, RESET, "１２３４５６")
        assert (await ledger._fetch(EMAIL, RESET)).attempts == 1
        assert await ledger.status(EMAIL, RESET) is CodeState.PENDING

    @pytest.mark.asyncio
    async def test_missing_code(self, ledger):
        with pytest.raises(CodeInvalid):
            await ledger.verify(EMAIL, REG, "123456")

    @pytest.mark.asyncio
    async def test_expired_code(self, ledger, db):
        await ledger.issue(EMAIL, REG)
        await _age(db, expires_at=utcnow() - timedelta(seconds=1))

        assert await ledger.status(EMAIL, REG) is CodeState.EXPIRED
        with pytest.raises(CodeExpired):
            await ledger.verify(EMAIL, REG, "123456")

    @pytest.mark.asyncio
    async def test_stale_read_cannot_grant_extra_attempt(self, ledger, monkeypatch):
        """A request that read attempts=2 before another request used the
        third attempt must not get a fourth guess."""
        await ledger.issue(EMAIL, REG)
        for _ in range(2):
            with pytest.raises(CodeInvalid):
                await ledger.verify(EMAIL, REG, "000000")

        stale = await ledger._fetch(EMAIL, REG)
        snapshot = SimpleNamespace(
            id=stale.id,
            code=stale.code,
            state=CodeState.PENDING.value,
            attempts=2,
            expires_at=stale.expires_at,
            payload=None,
        )

        # The competing request burns the last attempt
        with pytest.raises(CodeInvalid):
            await ledger.verify(EMAIL, REG, "000000")

        async def stale_fetch(email, purpose):
            return snapshot

        monkeypatch.setattr(ledger, "_fetch", stale_fetch)
        with pytest.raises(AttemptsExhausted):
            await ledger.verify(EMAIL, REG, "123456")
        with pytest.raises(AttemptsExhausted):
            await ledger.verify(EMAIL, REG, "000000")

        monkeypatch.undo()
        row = await ledger._reload(snapshot.id)
        assert row.attempts == 3
        assert row.state == CodeState.PENDING.value


# ââ Follow-up action ââââââââââââââââââââââââââââââââââââââââââââââââ


class TestCompleteAction:

    @pytest.mark.asyncio
    async def test_verified_then_consumed_once(self, ledger):
        await ledger.issue(EMAIL, RESET)
        await ledger.verify(EMAIL, RESET, "123456")
        await ledger.complete_action(EMAIL, RESET, code="123456")
        assert await ledger.status(EMAIL, RESET) is CodeState.CONSUMED

        with pytest.raises(ActionAlreadyCompleted):
            await ledger.complete_action(EMAIL, RESET, code="123456")

    @pytest.mark.asyncio
    async def test_requires_prior_verification(self, ledger):
        await ledger.issue(EMAIL, RESET)
        with pytest.raises(CodeInvalid):
            await ledger.complete_action(EMAIL, RESET, code="123456")

    @pytest.mark.asyncio
    async def test_code_must_match(self, ledger):
        await ledger.issue(EMAIL, RESET)
        await ledger.verify(EMAIL, RESET, "123456")
        with pytest.raises(CodeInvalid):
            await ledger.complete_action(EMAIL, RESET, code="654321")
        assert await ledger.status(EMAIL, RESET) is CodeState.VERIFIED
        with pytest.raises(CodeInvalid):
            await ledger.complete_action(EMAIL, RESET, code="١٢٣٤٥٦")

    @pytest.mark.asyncio
    async def test_window_after_verification(self, ledger, db):
        await ledger.issue(EMAIL, RESET)
        await ledger.verify(EMAIL, RESET, "123456")
        await _age(db, verified_at=utcnow() - timedelta(minutes=11))

        with pytest.raises(CodeExpired):
            await ledger.complete_action(
                EMAIL, RESET, code="123456", window=timedelta(minutes=10)
            )

    @pytest.mark.asyncio
    async def test_within_window(self, ledger):
        await ledger.issue(EMAIL, RESET)
        await ledger.verify(EMAIL, RESET, "123456")
        await ledger.complete_action(
            EMAIL, RESET, code="123456", window=timedelta(minutes=10)
        )
        assert await ledger.status(EMAIL, RESET) is CodeState.CONSUMED

    @pytest.mark.asyncio
    async def test_discard_removes_every_purpose(self, ledger, db):
        await ledger.issue(EMAIL, REG)
        await ledger.issue(EMAIL, RESET)
        await ledger.discard(EMAIL)
        await db.commit()
        assert await ledger.status(EMAIL, REG) is None
        assert await ledger.status(EMAIL, RESET) is None
