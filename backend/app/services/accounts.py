# backend/app/services/accounts.py
"""Self-service account management: profile, preferences, secrets, 2FA, deletion."""
import logging

from sqlalchemy import delete

from backend.app.core.errors import DeliveryFailed, InvalidCredentials, ValidationError
from backend.app.models.account import Account
from backend.app.models.credential import CredentialRecord
from backend.app.models.one_time_code import CodePurpose
from backend.app.schemas.account import (
    AccountResponse,
    AccountSettings,
    Acknowledgment,
    ProfileUpdate,
    SettingsUpdate,
    normalize_email,
)
from backend.app.security import hashing
from backend.app.services.credentials import CredentialStore
from backend.app.services.email import EmailDispatcher
from backend.app.services.gate import MasterKeyGate
from backend.app.services.ledger import OneTimeCodeLedger

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(
        self,
        ledger: OneTimeCodeLedger,
        dispatcher: EmailDispatcher,
        gate: MasterKeyGate,
        store: CredentialStore,
    ):
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.gate = gate
        self.store = store

    @property
    def db(self):
        return self.store.db

    async def _save(self, account: Account) -> Account:
        await self.db.commit()
        await self.db.refresh(account)
        return account

    async def _check_password(self, account: Account, password: str) -> None:
        if not await hashing.averify(password, account.hashed_password):
            raise InvalidCredentials("Invalid password")

    # ------------------------------------------------------------------
    # Profile and preferences
    # ------------------------------------------------------------------

    def profile(self, account: Account) -> AccountResponse:
        return AccountResponse.model_validate(account)

    async def update_profile(self, account: Account, changes: ProfileUpdate) -> AccountResponse:
        if changes.email is not None and normalize_email(changes.email) != account.email:
            raise ValidationError("Email cannot be changed")

        for name in ("first_name", "last_name"):
            value = getattr(changes, name)
            if value is None:
                continue
            value = value.strip()
            if len(value) < 2:
                raise ValidationError("Name must be at least 2 characters long")
            setattr(account, name, value)

        return AccountResponse.model_validate(await self._save(account))

    async def settings(self, account: Account) -> AccountSettings:
        stats = await self.store.stats(account.id)
        tags = await self.store.tags(account.id)
        return AccountSettings(
            two_factor_enabled=account.two_factor_enabled,
            email_notifications=account.email_notifications,
            security_alerts=account.security_alerts,
            auto_logout=account.auto_logout,
            total_passwords=stats.total,
            favorite_passwords=stats.favorites,
            total_categories=len(stats.categories),
            total_tags=len(tags),
        )

    async def update_settings(self, account: Account, changes: SettingsUpdate) -> AccountSettings:
        for name, value in changes.model_dump(exclude_none=True).items():
            setattr(account, name, value)
        await self._save(account)
        return await self.settings(account)

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    async def change_password(self, account: Account, current: str, new: str) -> Acknowledgment:
        if not await hashing.averify(current, account.hashed_password):
            raise InvalidCredentials("Current password is incorrect")
        account.hashed_password = await hashing.ahash(new)
        await self._save(account)
        logger.info("Login password changed for account %s", account.id)
        return Acknowledgment(message="Password updated successfully")

    async def change_master_password(self, account: Account, current: str, new: str) -> Acknowledgment:
        """Stored credentials are sealed with the server key, so nothing is re-encrypted."""
        await self.gate.require_or_fail(account.id, current)
        account.hashed_master_password = await hashing.ahash(new)
        await self._save(account)
        logger.info("Master password changed for account %s", account.id)
        return Acknowledgment(message="Master password updated successfully")

    # ------------------------------------------------------------------
    # Two-factor authentication
    # ------------------------------------------------------------------

    async def begin_two_factor_setup(self, account: Account, password: str) -> Acknowledgment:
        await self._check_password(account, password)
        if account.two_factor_enabled:
            raise ValidationError("Two-factor authentication is already enabled")

        code = await self.ledger.issue(account.email, CodePurpose.TWO_FACTOR)
        outcome = await self.dispatcher.send(account.email, code, CodePurpose.TWO_FACTOR)
        if not outcome.success:
            await self.ledger.discard(account.email, CodePurpose.TWO_FACTOR)
            await self.db.commit()
            raise DeliveryFailed("Failed to send test code. Please check your email settings.")
        return Acknowledgment(
            message="Test code sent to your email. Please verify to enable 2FA.",
            email=account.email,
        )

    async def confirm_two_factor_setup(self, account: Account, code: str) -> Acknowledgment:
        await self.ledger.verify(account.email, CodePurpose.TWO_FACTOR, code)
        await self.ledger.complete_action(account.email, CodePurpose.TWO_FACTOR, commit=False)
        account.two_factor_enabled = True
        await self._save(account)
        logger.info("Two-factor authentication enabled for account %s", account.id)
        return Acknowledgment(message="Two-factor authentication enabled successfully")

    async def disable_two_factor(self, account: Account, password: str) -> Acknowledgment:
        await self._check_password(account, password)
        if not account.two_factor_enabled:
            raise ValidationError("Two-factor authentication is not enabled")
        account.two_factor_enabled = False
        await self.ledger.discard(account.email, CodePurpose.TWO_FACTOR)
        await self._save(account)
        logger.info("Two-factor authentication disabled for account %s", account.id)
        return Acknowledgment(message="Two-factor authentication disabled successfully")

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_account(self, account: Account, password: str, master_password: str) -> Acknowledgment:
        """Remove the account, every credential it owns and its outstanding codes."""
        if not await hashing.averify(password, account.hashed_password):
            raise InvalidCredentials()
        if not await self.gate.verify(account.id, master_password):
            raise InvalidCredentials()

        account_id, email = account.id, account.email
        await self.db.execute(delete(CredentialRecord).where(CredentialRecord.owner_id == account_id))
        await self.ledger.discard(email)
        await self.db.execute(delete(Account).where(Account.id == account_id))
        await self.db.commit()
        logger.info("Account %s deleted", account_id)
        return Acknowledgment(message="Account deleted successfully")
