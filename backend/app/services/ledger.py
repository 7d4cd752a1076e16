# backend/app/services/ledger.py
"""
OneTimeCodeLedger - issuance and verification of 6-digit codes.

States per (email, purpose):

    absent -> pending -> verified -> consumed
                 |
                 +-> expired / exhausted   (derived, terminal until re-issued)

Every transition that depends on the current state is a single conditional
UPDATE whose rowcount decides the outcome, so two concurrent guesses can
never both read attempts=2 and grant a fourth try.

Codes are compared in constant time and never logged.
"""
import logging
import secrets
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.errors import (
    ActionAlreadyCompleted,
    AttemptsExhausted,
    CodeAlreadyUsed,
    CodeExpired,
    CodeInvalid,
)
from backend.app.models.one_time_code import CodePurpose, CodeState, OneTimeCode
from backend.app.security.lockout import constant_time_compare, ensure_aware, utcnow

logger = logging.getLogger(__name__)

CODE_LENGTH = 6


def generate_code() -> str:
    """Uniformly random 6-digit code (leading zeros allowed)."""
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def code_ttl_minutes(purpose: CodePurpose, config: Optional[Settings] = None) -> int:
    config = config or default_settings
    return {
        CodePurpose.REGISTRATION: config.REGISTRATION_CODE_TTL_MINUTES,
        CodePurpose.PASSWORD_RESET: config.RESET_CODE_TTL_MINUTES,
        CodePurpose.TWO_FACTOR: config.TWO_FACTOR_CODE_TTL_MINUTES,
    }[CodePurpose(purpose)]


class OneTimeCodeLedger:
    def __init__(
        self,
        db: AsyncSession,
        config: Optional[Settings] = None,
        code_factory: Callable[[], str] = generate_code,
    ):
        self.db = db
        self.config = config or default_settings
        self.code_factory = code_factory

    @property
    def max_attempts(self) -> int:
        return self.config.OTP_MAX_ATTEMPTS

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _fetch(self, email: str, purpose: CodePurpose) -> Optional[OneTimeCode]:
        result = await self.db.execute(
            select(OneTimeCode)
            .where(
                OneTimeCode.email == email,
                OneTimeCode.purpose == CodePurpose(purpose).value,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _reload(self, record_id: int) -> Optional[OneTimeCode]:
        return await self.db.get(OneTimeCode, record_id, populate_existing=True)

    def _derive_state(self, record: OneTimeCode) -> CodeState:
        state = CodeState(record.state)
        if state is not CodeState.PENDING:
            return state
        if ensure_aware(record.expires_at) <= utcnow():
            return CodeState.EXPIRED
        if record.attempts >= self.max_attempts:
            return CodeState.EXHAUSTED
        return CodeState.PENDING

    async def status(self, email: str, purpose: CodePurpose) -> Optional[CodeState]:
        """Current derived state, or None when no code exists."""
        record = await self._fetch(email, purpose)
        return self._derive_state(record) if record else None

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def issue(
        self,
        email: str,
        purpose: CodePurpose,
        payload: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Issue a fresh code for (email, purpose), replacing any previous one.

        ``payload`` stages data released by a successful verify (registration).
        Commits.
        """
        purpose = CodePurpose(purpose)
        code = self.code_factory()
        await self.db.execute(
            delete(OneTimeCode).where(
                OneTimeCode.email == email,
                OneTimeCode.purpose == purpose.value,
            )
        )
        self.db.add(
            OneTimeCode(
                email=email,
                purpose=purpose.value,
                code=code,
                state=CodeState.PENDING.value,
                attempts=0,
                expires_at=utcnow() + timedelta(minutes=code_ttl_minutes(purpose, self.config)),
                payload=payload,
            )
        )
        await self.db.commit()
        logger.info("Issued %s code for %s", purpose.value, email)
        return code

    async def reissue(self, email: str, purpose: CodePurpose) -> str:
        """Issue a new code carrying the staged payload of the previous one."""
        record = await self._fetch(email, purpose)
        if record is None:
            raise CodeInvalid("No pending verification found for this email")
        return await self.issue(email, purpose, payload=record.payload)

    async def discard(self, email: str, purpose: Optional[CodePurpose] = None) -> None:
        """Remove codes for ``email`` (all purposes by default). Does not commit."""
        stmt = delete(OneTimeCode).where(OneTimeCode.email == email)
        if purpose is not None:
            stmt = stmt.where(OneTimeCode.purpose == CodePurpose(purpose).value)
        await self.db.execute(stmt)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def _raise_terminal(self, state: CodeState) -> None:
        if state in (CodeState.VERIFIED, CodeState.CONSUMED):
            raise CodeAlreadyUsed()
        if state is CodeState.EXPIRED:
            raise CodeExpired()
        if state is CodeState.EXHAUSTED:
            raise AttemptsExhausted()

    async def verify(
        self,
        email: str,
        purpose: CodePurpose,
        supplied_code: str,
    ) -> Optional[Dict[str, Any]]:
        """
        Check ``supplied_code`` and move the record pending -> verified.

        Returns the staged payload (registration) or None.

        Raises:
            CodeInvalid: no code issued, or wrong code (one attempt burned).
            CodeAlreadyUsed: the code was already verified.
            CodeExpired: past its expiry.
            AttemptsExhausted: the attempt budget is spent.
        """
        purpose = CodePurpose(purpose)
        record = await self._fetch(email, purpose)
        if record is None:
            raise CodeInvalid("No pending verification found for this email")

        self._raise_terminal(self._derive_state(record))

        guarded = (
            (OneTimeCode.id == record.id)
            & (OneTimeCode.state == CodeState.PENDING.value)
            & (OneTimeCode.attempts < self.max_attempts)
        )

        if not constant_time_compare(record.code, str(supplied_code).strip()):
            result = await self.db.execute(
                update(OneTimeCode)
                .where(guarded)
                .values(attempts=OneTimeCode.attempts + 1)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            if result.rowcount != 1:
                # A concurrent request changed the record first
                await self._raise_current(record.id)
            fresh = await self._reload(record.id)
            remaining = self.max_attempts - fresh.attempts if fresh else 0
            logger.info(
                "Wrong %s code for %s (%d attempt(s) left)", purpose.value, email, remaining,
            )
            raise CodeInvalid()

        result = await self.db.execute(
            update(OneTimeCode)
            .where(guarded)
            .values(state=CodeState.VERIFIED.value, verified_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount != 1:
            await self._raise_current(record.id)

        logger.info("Verified %s code for %s", purpose.value, email)
        return record.payload

    async def _raise_current(self, record_id: int) -> None:
        fresh = await self._reload(record_id)
        if fresh is None:
            raise CodeInvalid("Verification code was replaced, request a new one")
        self._raise_terminal(self._derive_state(fresh))
        # Still pending: the only guard left is the attempt cap
        raise AttemptsExhausted()

    # ------------------------------------------------------------------
    # Follow-up action
    # ------------------------------------------------------------------

    async def complete_action(
        self,
        email: str,
        purpose: CodePurpose,
        code: Optional[str] = None,
        window: Optional[timedelta] = None,
        commit: bool = True,
    ) -> None:
        """
        Close the verified window: verified -> consumed.

        ``code`` must match the verified code when given. ``window`` bounds
        how long after verification the action may still be completed.

        Raises:
            ActionAlreadyCompleted: the action was already completed.
            CodeInvalid: nothing verified, or ``code`` does not match.
            CodeExpired: the post-verification window has passed.
        """
        purpose = CodePurpose(purpose)
        record = await self._fetch(email, purpose)
        if record is None:
            raise CodeInvalid("No verified code found. Please verify the code first.")

        state = CodeState(record.state)
        if state is CodeState.CONSUMED:
            raise ActionAlreadyCompleted()
        if state is not CodeState.VERIFIED:
            raise CodeInvalid("Code has not been verified yet")
        if code is not None and not constant_time_compare(record.code, str(code).strip()):
            raise CodeInvalid()
        if window is not None:
            verified_at = ensure_aware(record.verified_at)
            if verified_at is None or utcnow() - verified_at > window:
                raise CodeExpired("Code verification has expired. Please request a new code.")

        result = await self.db.execute(
            update(OneTimeCode)
            .where(
                OneTimeCode.id == record.id,
                OneTimeCode.state == CodeState.VERIFIED.value,
            )
            .values(state=CodeState.CONSUMED.value, consumed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ActionAlreadyCompleted()
        if commit:
            await self.db.commit()
        logger.info("Completed %s action for %s", purpose.value, email)
