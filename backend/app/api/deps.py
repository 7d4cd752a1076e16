# backend/app/api/deps.py
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.db.base import get_db
from backend.app.models.account import Account
from backend.app.schemas.account import TokenPayload
from backend.app.security.jwt import JWTError, decode_access_token
from backend.app.security.vault import CryptoVault, VaultConfig
from backend.app.services.accounts import AccountService
from backend.app.services.credentials import CredentialStore
from backend.app.services.email import EmailDispatcher
from backend.app.services.gate import MasterKeyGate
from backend.app.services.identity import IdentityGuard
from backend.app.services.ledger import OneTimeCodeLedger
from backend.app.services.transfer import BulkTransferEngine

reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login"
)


@lru_cache
def get_vault() -> CryptoVault:
    """One vault per process, keyed from ENCRYPTION_KEY."""
    return CryptoVault(VaultConfig.from_settings(settings))


@lru_cache
def get_email_dispatcher() -> EmailDispatcher:
    return EmailDispatcher(settings)


async def get_current_account(
        db: AsyncSession = Depends(get_db),
        token: str = Depends(reusable_oauth2)
) -> Account:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        token_data = TokenPayload(**decode_access_token(token))
        account_id = int(token_data.sub)
    except (JWTError, ValidationError, TypeError, ValueError):
        raise credentials_exception

    account = await db.get(Account, account_id)
    if account is None:
        raise credentials_exception
    return account


# Request-scoped services. FastAPI caches each dependency per request, so the
# store, transfer engine and account service of one request share one gate.

def get_ledger(db: AsyncSession = Depends(get_db)) -> OneTimeCodeLedger:
    return OneTimeCodeLedger(db, settings)


def get_gate(db: AsyncSession = Depends(get_db)) -> MasterKeyGate:
    return MasterKeyGate(db, settings)


def get_credential_store(
        db: AsyncSession = Depends(get_db),
        vault: CryptoVault = Depends(get_vault),
        gate: MasterKeyGate = Depends(get_gate),
) -> CredentialStore:
    return CredentialStore(db, vault, gate)


def get_transfer_engine(
        vault: CryptoVault = Depends(get_vault),
        gate: MasterKeyGate = Depends(get_gate),
        store: CredentialStore = Depends(get_credential_store),
) -> BulkTransferEngine:
    return BulkTransferEngine(vault, gate, store)


def get_identity_guard(
        db: AsyncSession = Depends(get_db),
        ledger: OneTimeCodeLedger = Depends(get_ledger),
        dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
) -> IdentityGuard:
    return IdentityGuard(db, ledger, dispatcher, settings)


def get_account_service(
        ledger: OneTimeCodeLedger = Depends(get_ledger),
        dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
        gate: MasterKeyGate = Depends(get_gate),
        store: CredentialStore = Depends(get_credential_store),
) -> AccountService:
    return AccountService(ledger, dispatcher, gate, store)
