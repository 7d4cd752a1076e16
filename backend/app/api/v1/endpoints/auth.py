# backend/app/api/v1/endpoints/auth.py
from fastapi import APIRouter, Depends

from backend.app.api.deps import (
    get_account_service,
    get_current_account,
    get_gate,
    get_identity_guard,
)
from backend.app.models.account import Account
from backend.app.schemas.account import (
    AccountResponse,
    Acknowledgment,
    AuthResult,
    CodeSubmission,
    EmailOnly,
    LoginRequest,
    MasterPasswordRequest,
    OtpOnly,
    PasswordConfirmation,
    RegistrationRequest,
    ResetPasswordRequest,
)
from backend.app.services.accounts import AccountService
from backend.app.services.gate import MasterKeyGate
from backend.app.services.identity import IdentityGuard

router = APIRouter()


# --- Registration ---

@router.post("/register", response_model=Acknowledgment, status_code=201)
async def register(body: RegistrationRequest, guard: IdentityGuard = Depends(get_identity_guard)):
    return await guard.initiate_registration(body)


@router.post("/resend-registration-otp", response_model=Acknowledgment)
async def resend_registration_otp(body: EmailOnly, guard: IdentityGuard = Depends(get_identity_guard)):
    return await guard.resend_registration_code(body.email)


@router.post("/verify-registration-otp", response_model=AuthResult, status_code=201)
async def verify_registration_otp(body: CodeSubmission, guard: IdentityGuard = Depends(get_identity_guard)):
    return await guard.complete_registration(body.email, body.otp)


# --- Login ---

@router.post("/login", response_model=AuthResult)
async def login(body: LoginRequest, guard: IdentityGuard = Depends(get_identity_guard)):
    return await guard.authenticate(body.email, body.password, body.two_factor_otp)


@router.get("/me", response_model=AccountResponse)
async def me(account: Account = Depends(get_current_account)):
    return account


@router.post("/verify-master", response_model=Acknowledgment)
async def verify_master(
        body: MasterPasswordRequest,
        account: Account = Depends(get_current_account),
        gate: MasterKeyGate = Depends(get_gate),
):
    await gate.require_or_fail(account.id, body.master_password)
    return Acknowledgment(message="Master password verified")


# --- Forgot password ---

@router.post("/forgot-password", response_model=Acknowledgment)
async def forgot_password(body: EmailOnly, guard: IdentityGuard = Depends(get_identity_guard)):
    return await guard.request_reset(body.email)


@router.post("/verify-otp", response_model=Acknowledgment)
async def verify_reset_otp(body: CodeSubmission, guard: IdentityGuard = Depends(get_identity_guard)):
    return await guard.confirm_reset_code(body.email, body.otp)


@router.post("/reset-password", response_model=AuthResult)
async def reset_password(body: ResetPasswordRequest, guard: IdentityGuard = Depends(get_identity_guard)):
    return await guard.apply_new_secret(body.email, body.otp, body.password)


# --- Two-factor setup ---

@router.post("/enable-2fa", response_model=Acknowledgment)
async def enable_two_factor(
        body: PasswordConfirmation,
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return await service.begin_two_factor_setup(account, body.password)


@router.post("/verify-2fa-setup", response_model=Acknowledgment)
async def verify_two_factor_setup(
        body: OtpOnly,
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return await service.confirm_two_factor_setup(account, body.otp)


@router.post("/disable-2fa", response_model=Acknowledgment)
async def disable_two_factor(
        body: PasswordConfirmation,
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return await service.disable_two_factor(account, body.password)
