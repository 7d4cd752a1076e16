# backend/app/services/identity.py
"""
IdentityGuard - registration, login (with optional email 2FA) and password
reset, composed from the OneTimeCodeLedger and the Account table.

Registration stages the profile and both password hashes on the code record;
the Account only exists once the emailed code is verified.
"""
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.errors import (
    CodeInvalid,
    DeliveryFailed,
    DuplicateAccount,
    InvalidCredentials,
)
from backend.app.models.account import Account
from backend.app.models.one_time_code import CodePurpose
from backend.app.schemas.account import (
    AccountResponse,
    Acknowledgment,
    AuthResult,
    RegistrationRequest,
)
from backend.app.security import hashing
from backend.app.security.jwt import create_access_token
from backend.app.security.lockout import utcnow
from backend.app.services.email import EmailDispatcher
from backend.app.services.ledger import OneTimeCodeLedger

logger = logging.getLogger(__name__)

RESET_ACKNOWLEDGMENT = "If an account exists for this email, a password reset code has been sent"


class IdentityGuard:
    def __init__(
        self,
        db: AsyncSession,
        ledger: OneTimeCodeLedger,
        dispatcher: EmailDispatcher,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.config = config or default_settings

    async def find_account(self, email: str) -> Optional[Account]:
        result = await self.db.execute(select(Account).where(Account.email == email))
        return result.scalars().first()

    async def issue_session(self, account: Account, message: str) -> AuthResult:
        await self.db.refresh(account)
        token = create_access_token(
            data={"sub": str(account.id)},
            expires_delta=timedelta(minutes=self.config.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
        return AuthResult(
            message=message,
            access_token=token,
            account=AccountResponse.model_validate(account),
        )

    async def _deliver(self, email: str, code: str, purpose: CodePurpose, failure: str) -> None:
        outcome = await self.dispatcher.send(email, code, purpose)
        if not outcome.success:
            await self.ledger.discard(email, purpose)
            await self.db.commit()
            raise DeliveryFailed(failure)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def initiate_registration(self, request: RegistrationRequest) -> Acknowledgment:
        if await self.find_account(request.email):
            raise DuplicateAccount()

        # Separate calls, separate salts
        payload = {
            "first_name": request.first_name,
            "last_name": request.last_name,
            "hashed_password": await hashing.ahash(request.password),
            "hashed_master_password": await hashing.ahash(request.master_password),
        }
        code = await self.ledger.issue(request.email, CodePurpose.REGISTRATION, payload)
        await self._deliver(
            request.email, code, CodePurpose.REGISTRATION,
            "Failed to send verification email. Please try again.",
        )
        logger.info("Registration initiated for %s", request.email)
        return Acknowledgment(
            message="Registration initiated. Please check your email for OTP verification.",
            email=request.email,
        )

    async def resend_registration_code(self, email: str) -> Acknowledgment:
        if await self.find_account(email):
            raise DuplicateAccount("Registration already completed. Please login instead.")
        code = await self.ledger.reissue(email, CodePurpose.REGISTRATION)
        await self._deliver(
            email, code, CodePurpose.REGISTRATION,
            "Failed to send verification email. Please try again.",
        )
        return Acknowledgment(message="New verification code sent to your email", email=email)

    async def complete_registration(self, email: str, code: str) -> AuthResult:
        """Verify the emailed code and create the Account from the staged profile."""
        payload = await self.ledger.verify(email, CodePurpose.REGISTRATION, code)
        if not payload:
            raise CodeInvalid("No pending registration found for this email")

        # Time has passed since initiation
        if await self.find_account(email):
            raise DuplicateAccount()

        account = Account(
            email=email,
            first_name=payload["first_name"],
            last_name=payload["last_name"],
            hashed_password=payload["hashed_password"],
            hashed_master_password=payload["hashed_master_password"],
            is_email_verified=True,
            last_login=utcnow(),
        )
        await self.ledger.complete_action(email, CodePurpose.REGISTRATION, commit=False)
        self.db.add(account)
        try:
            await self.db.commit()
        except IntegrityError as err:
            await self.db.rollback()
            raise DuplicateAccount() from err

        logger.info("Account %s registered for %s", account.id, email)

        welcome = await self.dispatcher.send_welcome(email, account.first_name)
        if not welcome.success:
            logger.warning("Welcome email to %s was not delivered", email)

        return await self.issue_session(account, "Registration completed successfully")

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def authenticate(
        self,
        email: str,
        password: str,
        otp: Optional[str] = None,
    ) -> AuthResult:
        """
        Check the login secret; with 2FA enabled, challenge or verify a code.

        Unknown email and wrong password fail identically.
        """
        account = await self.find_account(email)
        if account is None or not await hashing.averify(password, account.hashed_password):
            logger.info("Failed login for %s", email)
            raise InvalidCredentials()

        if account.two_factor_enabled:
            if not otp:
                code = await self.ledger.issue(email, CodePurpose.TWO_FACTOR)
                await self._deliver(email, code, CodePurpose.TWO_FACTOR, "Failed to send 2FA code")
                return AuthResult(
                    message="Two-factor authentication code sent to your email",
                    requires_two_factor=True,
                )
            await self.ledger.verify(email, CodePurpose.TWO_FACTOR, otp)
            await self.ledger.complete_action(email, CodePurpose.TWO_FACTOR)

        account.last_login = utcnow()
        await self.db.commit()
        logger.info("Account %s logged in", account.id)
        return await self.issue_session(account, "Login successful")

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def request_reset(self, email: str) -> Acknowledgment:
        """Issue a reset code. Unknown emails get the same answer and no code."""
        account = await self.find_account(email)
        if account is None:
            logger.info("Password reset requested for unknown email")
            return Acknowledgment(message=RESET_ACKNOWLEDGMENT, email=email)

        code = await self.ledger.issue(email, CodePurpose.PASSWORD_RESET)
        await self._deliver(
            email, code, CodePurpose.PASSWORD_RESET,
            "Failed to send reset email. Please try again.",
        )
        return Acknowledgment(message=RESET_ACKNOWLEDGMENT, email=email)

    async def confirm_reset_code(self, email: str, code: str) -> Acknowledgment:
        await self.ledger.verify(email, CodePurpose.PASSWORD_RESET, code)
        return Acknowledgment(message="OTP verified successfully", email=email)

    async def apply_new_secret(self, email: str, code: str, new_password: str) -> AuthResult:
        """
        Store a new login secret after a verified reset code.

        The code must be verified, not yet consumed, and verified no longer
        than RESET_VERIFICATION_WINDOW_MINUTES ago.
        """
        account = await self.find_account(email)
        if account is None:
            raise CodeInvalid("Invalid OTP or password already reset. Please verify OTP first.")

        hashed = await hashing.ahash(new_password)
        await self.ledger.complete_action(
            email,
            CodePurpose.PASSWORD_RESET,
            code=code,
            window=timedelta(minutes=self.config.RESET_VERIFICATION_WINDOW_MINUTES),
            commit=False,
        )
        account.hashed_password = hashed
        account.last_login = utcnow()
        await self.db.commit()
        logger.info("Password reset completed for account %s", account.id)
        return await self.issue_session(account, "Password reset successful")
