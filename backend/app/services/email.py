# backend/app/services/email.py
"""SMTP delivery of verification codes and account notices."""
import logging
import smtplib
from contextlib import contextmanager
from email.message import EmailMessage
from typing import Optional

from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from backend.app.core.config import Settings, settings as default_settings
from backend.app.models.one_time_code import CodePurpose
from backend.app.services.ledger import code_ttl_minutes

logger = logging.getLogger(__name__)

_SUBJECTS = {
    CodePurpose.REGISTRATION: "Email Verification",
    CodePurpose.PASSWORD_RESET: "Password Reset",
    CodePurpose.TWO_FACTOR: "Your Login Code",
}

_ACTIONS = {
    CodePurpose.REGISTRATION: "complete your registration",
    CodePurpose.PASSWORD_RESET: "reset your password",
    CodePurpose.TWO_FACTOR: "finish signing in",
}


class DispatchResult(BaseModel):
    success: bool
    error: Optional[str] = None


class EmailDispatcher:
    """
    Sends one message per call over SMTP and reports the outcome.

    ``send`` never raises for transport problems; callers decide how to
    surface a failed delivery.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    @contextmanager
    def _smtp_connection(self):
        cfg = self.config
        server = smtplib.SMTP(cfg.SMTP_HOST, cfg.SMTP_PORT, timeout=15)
        try:
            if cfg.SMTP_USE_TLS:
                server.starttls()
            if cfg.SMTP_USER and cfg.SMTP_PASSWORD:
                server.login(cfg.SMTP_USER, cfg.SMTP_PASSWORD)
            yield server
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                logger.debug("SMTP quit failed", exc_info=True)

    def _deliver(self, message: EmailMessage) -> None:
        with self._smtp_connection() as server:
            server.send_message(message)

    def _build(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = f"{self.config.PROJECT_NAME} - {subject}"
        message["From"] = self.config.EMAIL_FROM
        message["To"] = to
        message.set_content(body)
        return message

    async def _send(self, message: EmailMessage) -> DispatchResult:
        try:
            await run_in_threadpool(self._deliver, message)
        except (smtplib.SMTPException, OSError) as err:
            logger.error("Email delivery to %s failed: %s", message["To"], err)
            return DispatchResult(success=False, error=str(err))
        return DispatchResult(success=True)

    async def send(self, email: str, code: str, purpose: CodePurpose) -> DispatchResult:
        purpose = CodePurpose(purpose)
        if self.config.MAIL_SUPPRESS_SEND:
            if not self.config.is_production:
                logger.info("Mail suppressed: %s code for %s is %s", purpose.value, email, code)
            else:
                logger.info("Mail suppressed: %s code for %s", purpose.value, email)
            return DispatchResult(success=True)

        minutes = code_ttl_minutes(purpose, self.config)
        body = (
            f"Your verification code is {code}\n\n"
            f"Enter this code to {_ACTIONS[purpose]}. "
            f"It expires in {minutes} minutes.\n\n"
            "If you didn't request this, please ignore this email."
        )
        result = await self._send(self._build(email, _SUBJECTS[purpose], body))
        if result.success:
            logger.info("Sent %s code to %s", purpose.value, email)
        return result

    async def send_welcome(self, email: str, first_name: str) -> DispatchResult:
        if self.config.MAIL_SUPPRESS_SEND:
            return DispatchResult(success=True)
        body = (
            f"Hi {first_name},\n\n"
            f"Your {self.config.PROJECT_NAME} account is ready. Your credentials are "
            "encrypted and unlocked only with your master password."
        )
        return await self._send(self._build(email, "Welcome", body))
