# backend/app/services/gate.py
"""
MasterKeyGate - per-request re-authentication with the master password.

A valid session token is not enough to read or change stored credentials:
the caller must also present the master password, checked against its own
bcrypt hash, in the same request. One gate instance lives for one request.

Failed checks are counted on the account. After MASTER_PASSWORD_MAX_ATTEMPTS
consecutive failures the gate refuses every attempt, correct or not, until
MASTER_PASSWORD_LOCKOUT_MINUTES have passed since the last failure.
"""
import logging
from typing import Optional, Set

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.errors import MasterSecretInvalid, MasterSecretLocked, NotFoundError
from backend.app.models.account import Account
from backend.app.security import hashing
from backend.app.security.lockout import is_locked, lockout_remaining_minutes, utcnow

logger = logging.getLogger(__name__)


class MasterKeyGate:
    def __init__(self, db: AsyncSession, config: Optional[Settings] = None):
        self.db = db
        self.config = config or default_settings
        self._verified: Set[int] = set()

    async def _account(self, account_id: int) -> Account:
        account = await self.db.get(Account, account_id, populate_existing=True)
        if account is None:
            raise NotFoundError("User not found")
        return account

    def _locked(self, account: Account) -> bool:
        return is_locked(
            account.master_password_attempts,
            account.last_master_password_attempt,
            self.config.MASTER_PASSWORD_MAX_ATTEMPTS,
            self.config.MASTER_PASSWORD_LOCKOUT_MINUTES,
        )

    async def _record_failure(self, account: Account) -> None:
        # Reset the counter if the previous lockout window already elapsed
        stale = (
            account.master_password_attempts >= self.config.MASTER_PASSWORD_MAX_ATTEMPTS
            and not self._locked(account)
        )
        attempts = 1 if stale else Account.master_password_attempts + 1
        await self.db.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(master_password_attempts=attempts, last_master_password_attempt=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def _record_success(self, account: Account) -> None:
        if account.master_password_attempts:
            await self.db.execute(
                update(Account)
                .where(Account.id == account.id)
                .values(master_password_attempts=0, last_master_password_attempt=None)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()

    async def verify(self, account_id: int, supplied: Optional[str]) -> bool:
        """
        Compare ``supplied`` with the stored master password hash.

        A match marks the account as verified for this request.

        Raises:
            MasterSecretLocked: too many consecutive failures.
        """
        account = await self._account(account_id)
        if self._locked(account):
            remaining = lockout_remaining_minutes(
                account.last_master_password_attempt,
                self.config.MASTER_PASSWORD_LOCKOUT_MINUTES,
            )
            raise MasterSecretLocked(
                f"Master password locked after too many failed attempts. "
                f"Try again in {remaining} minutes."
            )

        if not supplied:
            return False

        matched = await hashing.averify(supplied, account.hashed_master_password)
        if matched:
            await self._record_success(account)
            self._verified.add(account_id)
        else:
            await self._record_failure(account)
            logger.warning("Master password check failed for account %s", account_id)
        return matched

    async def require_or_fail(self, account_id: int, supplied: Optional[str]) -> None:
        if not supplied:
            raise MasterSecretInvalid("Master password is required for this operation")
        if not await self.verify(account_id, supplied):
            raise MasterSecretInvalid()

    def is_verified(self, account_id: int) -> bool:
        return account_id in self._verified

    def ensure_verified(self, account_id: int) -> None:
        """Precondition for decrypting or mutating ``account_id``'s credentials."""
        if account_id not in self._verified:
            raise MasterSecretInvalid("Master password is required for this operation")
