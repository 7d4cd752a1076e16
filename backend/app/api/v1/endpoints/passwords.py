# backend/app/api/v1/endpoints/passwords.py
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from backend.app.api.deps import get_credential_store, get_current_account
from backend.app.models.account import Account
from backend.app.schemas.credential import (
    BulkDeleteRequest,
    BulkResult,
    BulkUpdateRequest,
    CredentialCreate,
    CredentialFilter,
    CredentialPage,
    CredentialResponse,
    CredentialStats,
    CredentialCreateRequest,
    CredentialUpdateRequest,
    DecryptedCredential,
    MasterProtected,
    SortKey,
)
from backend.app.schemas.account import Acknowledgment
from backend.app.services.credentials import CredentialStore

router = APIRouter()


def credential_filter(
        search: Optional[str] = None,
        category: Optional[str] = None,
        favorite: Optional[bool] = None,
        tags: Optional[List[str]] = Query(default=None),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        sort_by: SortKey = "updated_at",
        sort_order: Literal["asc", "desc"] = "desc",
) -> CredentialFilter:
    return CredentialFilter(
        search=search,
        category=category,
        favorite=favorite,
        tags=tags,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


# --- Metadata (no master password) ---

@router.get("", response_model=CredentialPage)
async def list_passwords(
        query: CredentialFilter = Depends(credential_filter),
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    return await store.list(account.id, query)


@router.get("/stats", response_model=CredentialStats)
async def password_stats(
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    return await store.stats(account.id)


@router.get("/tags", response_model=List[str])
async def password_tags(
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    return await store.tags(account.id)


@router.get("/categories", response_model=Dict[str, int])
async def password_categories(
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    return await store.categories(account.id)


@router.patch("/{record_id}/favorite", response_model=CredentialResponse)
async def toggle_favorite(
        record_id: int,
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    return await store.toggle_favorite(account.id, record_id)


# --- Master password required ---

@router.post("", response_model=CredentialResponse, status_code=201)
async def create_password(
        body: CredentialCreateRequest,
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    await store.gate.require_or_fail(account.id, body.master_password)
    fields = CredentialCreate(**body.model_dump(exclude={"master_password"}))
    return await store.create(account.id, fields)


@router.post("/{record_id}/view", response_model=DecryptedCredential)
async def view_password(
        record_id: int,
        body: MasterProtected,
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    await store.gate.require_or_fail(account.id, body.master_password)
    return await store.get_decrypted(account.id, record_id)


@router.put("/{record_id}", response_model=CredentialResponse)
async def update_password(
        record_id: int,
        body: CredentialUpdateRequest,
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    await store.gate.require_or_fail(account.id, body.master_password)
    return await store.update(account.id, record_id, body.changes)


@router.delete("/{record_id}", response_model=Acknowledgment)
async def delete_password(
        record_id: int,
        body: MasterProtected,
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    await store.gate.require_or_fail(account.id, body.master_password)
    await store.delete(account.id, record_id)
    return Acknowledgment(message="Password deleted successfully")


@router.post("/bulk-update", response_model=BulkResult)
async def bulk_update(
        body: BulkUpdateRequest,
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    await store.gate.require_or_fail(account.id, body.master_password)
    return await store.bulk_update(account.id, body.ids, body.updates)


@router.post("/bulk-delete", response_model=BulkResult)
async def bulk_delete(
        body: BulkDeleteRequest,
        account: Account = Depends(get_current_account),
        store: CredentialStore = Depends(get_credential_store),
):
    await store.gate.require_or_fail(account.id, body.master_password)
    return await store.bulk_delete(account.id, body.ids)
