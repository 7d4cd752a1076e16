"""
Shared pytest fixtures for the SecurePass test suite.

Every test gets its own in-memory SQLite database (aiosqlite, StaticPool),
a vault with a fixed key and a dispatcher that records outgoing codes
instead of talking to SMTP.
"""

import pytest

from backend.app.core.config import settings
from backend.app.db import init_models
from backend.app.db.session import build_engine, build_session_factory
from backend.app.models.account import Account
from backend.app.models.one_time_code import CodePurpose
from backend.app.security import hashing
from backend.app.security.vault import CryptoVault, VaultConfig
from backend.app.services.credentials import CredentialStore
from backend.app.services.email import DispatchResult
from backend.app.services.gate import MasterKeyGate
from backend.app.services.identity import IdentityGuard
from backend.app.services.ledger import OneTimeCodeLedger
from backend.app.services.transfer import BulkTransferEngine

# bcrypt's minimum work factor keeps the suite fast
settings.BCRYPT_ROUNDS = 4

TEST_KEY = bytes(range(32))
LOGIN_SECRET = "Abc12345!"
MASTER_SECRET = "Mas12345!"


class CapturingDispatcher:
    """Stands in for EmailDispatcher; remembers every code it was asked to send."""

    def __init__(self):
        self.sent = []
        self.welcomed = []
        self.fail = False

    async def send(self, email, code, purpose):
        if self.fail:
            return DispatchResult(success=False, error="SMTP unavailable")
        self.sent.append((email, code, CodePurpose(purpose)))
        return DispatchResult(success=True)

    async def send_welcome(self, email, first_name):
        self.welcomed.append(email)
        return DispatchResult(success=True)

    def last_code(self, email=None, purpose=None):
        for to, code, sent_purpose in reversed(self.sent):
            if email not in (None, to):
                continue
            if purpose is not None and sent_purpose is not CodePurpose(purpose):
                continue
            return code
        return None


def fixed_codes(*codes):
    """Code factory handing out ``codes`` in order, then repeating the last one."""
    remaining = list(codes)

    def factory():
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return factory


@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def vault():
    return CryptoVault(VaultConfig(key=TEST_KEY))


@pytest.fixture
def dispatcher():
    return CapturingDispatcher()


@pytest.fixture
def ledger(db):
    return OneTimeCodeLedger(db, settings, code_factory=fixed_codes("123456"))


@pytest.fixture
def make_ledger(db):
    def _make(*codes):
        return OneTimeCodeLedger(db, settings, code_factory=fixed_codes(*codes))

    return _make


@pytest.fixture
def gate(db):
    return MasterKeyGate(db, settings)


@pytest.fixture
def store(db, vault, gate):
    return CredentialStore(db, vault, gate)


@pytest.fixture
def transfer(vault, gate, store):
    return BulkTransferEngine(vault, gate, store)


@pytest.fixture
def guard(db, dispatcher):
    ledger = OneTimeCodeLedger(db, settings, code_factory=fixed_codes("482913"))
    return IdentityGuard(db, ledger, dispatcher, settings)


@pytest.fixture
def make_account(db):
    async def _make(email="owner@example.com", two_factor=False):
        account = Account(
            email=email,
            first_name="Ada",
            last_name="Lovelace",
            hashed_password=hashing.get_password_hash(LOGIN_SECRET),
            hashed_master_password=hashing.get_password_hash(MASTER_SECRET),
            is_email_verified=True,
            two_factor_enabled=two_factor,
        )
        db.add(account)
        await db.commit()
        await db.refresh(account)
        return account

    return _make


@pytest.fixture
async def account(make_account):
    return await make_account()
