# backend/app/api/v1/endpoints/utility.py
from datetime import date

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from backend.app.api.deps import get_current_account, get_transfer_engine
from backend.app.models.account import Account
from backend.app.schemas.transfer import ExportRequest, ImportRequest, ImportResult
from backend.app.schemas.utility import (
    GeneratedPassphrase,
    GeneratedPassword,
    GeneratorOptions,
    PassphraseOptions,
    StrengthReport,
    StrengthRequest,
)
from backend.app.services import generator
from backend.app.services.transfer import BulkTransferEngine

router = APIRouter()


# --- Generator (stateless, still requires a session) ---

@router.post("/generate-password", response_model=GeneratedPassword)
async def generate_password(
        options: GeneratorOptions,
        account: Account = Depends(get_current_account),
):
    password = generator.generate_password(options)
    return GeneratedPassword(password=password, strength=generator.check_strength(password))


@router.post("/generate-passphrase", response_model=GeneratedPassphrase)
async def generate_passphrase(
        options: PassphraseOptions,
        account: Account = Depends(get_current_account),
):
    passphrase = generator.generate_passphrase(options)
    return GeneratedPassphrase(passphrase=passphrase, strength=generator.check_strength(passphrase))


@router.post("/check-strength", response_model=StrengthReport)
async def check_strength(
        body: StrengthRequest,
        account: Account = Depends(get_current_account),
):
    return generator.check_strength(body.password)


# --- Export / import ---

@router.post("/export")
async def export_passwords(
        body: ExportRequest,
        account: Account = Depends(get_current_account),
        engine: BulkTransferEngine = Depends(get_transfer_engine),
):
    blob = await engine.export_all(account.id, body.master_password, body.format)
    if body.format == "csv":
        filename = f"securepass-export-{date.today().isoformat()}.csv"
        return PlainTextResponse(
            blob,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return blob


@router.post("/import", response_model=ImportResult)
async def import_passwords(
        body: ImportRequest,
        account: Account = Depends(get_current_account),
        engine: BulkTransferEngine = Depends(get_transfer_engine),
):
    return await engine.import_all(
        account.id, body.master_password, body.data, body.format, body.options
    )
