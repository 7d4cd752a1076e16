# backend/app/api/v1/endpoints/user.py
from fastapi import APIRouter, Depends

from backend.app.api.deps import get_account_service, get_current_account
from backend.app.models.account import Account
from backend.app.schemas.account import (
    AccountDeletion,
    AccountResponse,
    AccountSettings,
    Acknowledgment,
    MasterPasswordChange,
    PasswordChange,
    ProfileUpdate,
    SettingsUpdate,
)
from backend.app.services.accounts import AccountService

router = APIRouter()


@router.get("/profile", response_model=AccountResponse)
async def get_profile(
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return service.profile(account)


@router.put("/profile", response_model=AccountResponse)
async def update_profile(
        body: ProfileUpdate,
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return await service.update_profile(account, body)


@router.put("/password", response_model=Acknowledgment)
async def change_password(
        body: PasswordChange,
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return await service.change_password(account, body.current_password, body.new_password)


@router.put("/master-password", response_model=Acknowledgment)
async def change_master_password(
        body: MasterPasswordChange,
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return await service.change_master_password(
        account, body.current_master_password, body.new_master_password
    )


@router.get("/settings", response_model=AccountSettings)
async def get_settings(
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return await service.settings(account)


@router.put("/settings", response_model=AccountSettings)
async def update_settings(
        body: SettingsUpdate,
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return await service.update_settings(account, body)


@router.delete("/account", response_model=Acknowledgment)
async def delete_account(
        body: AccountDeletion,
        account: Account = Depends(get_current_account),
        service: AccountService = Depends(get_account_service),
):
    return await service.delete_account(account, body.password, body.master_password)
