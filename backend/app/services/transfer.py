# backend/app/services/transfer.py
"""
BulkTransferEngine - export and import of a user's whole credential set.

Export is all-or-nothing: one undecryptable record aborts it, naming the
record. Import is per-record: each candidate succeeds or fails on its own
and failures are reported in ``errors``.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from backend.app.core.errors import CryptoError, DecryptionError, SecurePassError, ValidationError
from backend.app.schemas.credential import CredentialCreate, CredentialPatch
from backend.app.schemas.transfer import (
    ImportErrorItem,
    ImportPolicy,
    ImportResult,
    TransferFormat,
)
from backend.app.security.lockout import utcnow
from backend.app.security.vault import CryptoVault
from backend.app.services import csv_codec
from backend.app.services.credentials import CredentialStore, sealed_of
from backend.app.services.gate import MasterKeyGate

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

# Portable (camelCase) keys -> candidate fields
_PORTABLE_KEYS = {
    "isFavorite": "is_favorite",
    "favorite": "is_favorite",
    "name": "title",
    "url": "website",
}


def _iso(value: Union[datetime, None]) -> str:
    return value.isoformat() if value else ""


def _describe(err: Exception) -> str:
    if isinstance(err, SecurePassError):
        return err.message
    if isinstance(err, PydanticValidationError):
        first = err.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        return f"{field}: {first.get('msg')}" if field else first.get("msg", str(err))
    return str(err)


def normalize_candidate(raw: Any) -> Dict[str, Any]:
    """Map a portable record onto CredentialCreate field names."""
    if not isinstance(raw, dict):
        raise ValidationError("Each imported record must be an object")
    candidate = {}
    for key, value in raw.items():
        candidate[_PORTABLE_KEYS.get(key, key)] = value
    if isinstance(candidate.get("tags"), str):
        candidate["tags"] = [t.strip() for t in candidate["tags"].split(";") if t.strip()]
    return candidate


def _title_of(raw: Any) -> str:
    try:
        title = normalize_candidate(raw).get("title")
    except ValidationError:
        title = None
    return str(title or "Unknown")


class BulkTransferEngine:
    def __init__(
        self,
        vault: CryptoVault,
        gate: MasterKeyGate,
        store: CredentialStore,
    ):
        self.vault = vault
        self.gate = gate
        self.store = store

    @property
    def db(self):
        return self.store.db

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_all(
        self,
        owner_id: int,
        master_password: str,
        fmt: TransferFormat = "json",
    ) -> Union[Dict[str, Any], str]:
        """
        Decrypt every credential of ``owner_id`` into a portable blob.

        Returns the JSON document as a dict, or CSV text.

        Raises:
            MasterSecretInvalid: the master password did not verify.
            DecryptionError: a record could not be decrypted; nothing is returned.
        """
        await self.gate.require_or_fail(owner_id, master_password)
        if fmt not in ("json", "csv"):
            raise ValidationError(f"Unsupported export format: {fmt}")

        entries = []
        for record in await self.store.all_records(owner_id):
            try:
                secret = self.vault.open(sealed_of(record))
            except CryptoError as err:
                logger.error("Export for account %s aborted at %r", owner_id, record.title)
                raise DecryptionError(record.title, err.message) from err
            entries.append({
                "title": record.title,
                "website": record.website or "",
                "username": record.username or "",
                "email": record.email or "",
                "password": secret,
                "category": record.category,
                "notes": record.notes or "",
                "tags": list(record.tags or []),
                "isFavorite": bool(record.is_favorite),
                "createdAt": _iso(record.created_at),
                "updatedAt": _iso(record.updated_at),
            })

        logger.info("Exported %d credential(s) for account %s as %s", len(entries), owner_id, fmt)

        if fmt == "csv":
            rows = [csv_codec.CSV_HEADER]
            for entry in entries:
                rows.append([
                    entry["title"],
                    entry["website"],
                    entry["username"],
                    entry["email"],
                    entry["password"],
                    entry["category"],
                    entry["notes"],
                    csv_codec.TAG_SEPARATOR.join(entry["tags"]),
                    "Yes" if entry["isFavorite"] else "No",
                    entry["createdAt"],
                    entry["updatedAt"],
                ])
            return csv_codec.render(rows)

        return {
            "exportDate": utcnow().isoformat(),
            "version": EXPORT_VERSION,
            "passwords": entries,
        }

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def parse(self, blob: Any, fmt: TransferFormat) -> List[Any]:
        if fmt == "csv":
            if not isinstance(blob, str):
                raise ValidationError("CSV import data must be text")
            return csv_codec.parse_credentials(blob)

        if fmt != "json":
            raise ValidationError(f"Unsupported import format: {fmt}")

        if isinstance(blob, (str, bytes)):
            try:
                blob = json.loads(blob)
            except ValueError as err:
                raise ValidationError("Import data is not valid JSON") from err
        if isinstance(blob, list):
            return blob
        if isinstance(blob, dict) and isinstance(blob.get("passwords"), list):
            return blob["passwords"]
        raise ValidationError("Invalid import format")

    async def _import_one(
        self,
        owner_id: int,
        raw: Any,
        policy: ImportPolicy,
        result: ImportResult,
    ) -> None:
        candidate = normalize_candidate(raw)
        if not candidate.get("title") or not candidate.get("password"):
            raise ValidationError("Title and password are required")

        fields = CredentialCreate(**candidate)
        existing = await self.store.find_match(owner_id, fields.title, fields.website)

        if existing is not None and policy.update_existing:
            # Blank portable values keep what is stored
            patch = CredentialPatch(
                username=fields.username or None,
                email=fields.email or None,
                notes=fields.notes or None,
                category=fields.category if candidate.get("category") else None,
                tags=fields.tags if candidate.get("tags") is not None else None,
                is_favorite=fields.is_favorite if "is_favorite" in candidate else None,
                password=fields.password,
            )
            self.store.apply(existing, patch)
            await self.db.commit()
            result.updated += 1
            return

        if existing is not None and policy.skip_duplicates:
            result.skipped += 1
            return

        await self.store.add(owner_id, fields)
        result.imported += 1

    async def import_all(
        self,
        owner_id: int,
        master_password: str,
        blob: Any,
        fmt: TransferFormat = "json",
        policy: Optional[ImportPolicy] = None,
    ) -> ImportResult:
        """
        Seal and store every candidate in ``blob``.

        Duplicates are matched on (title, website) within the owner's records:
        update_existing overwrites the match, skip_duplicates skips it, and with
        neither flag an additional record is created.
        """
        await self.gate.require_or_fail(owner_id, master_password)
        policy = policy or ImportPolicy()
        candidates = self.parse(blob, fmt)

        result = ImportResult()
        for raw in candidates:
            try:
                await self._import_one(owner_id, raw, policy, result)
            except Exception as err:
                # Each record commits on its own; only the failing one is lost
                await self.db.rollback()
                title = _title_of(raw)
                logger.warning(
                    "Import of %r for account %s failed: %s", title, owner_id, _describe(err),
                )
                result.errors.append(ImportErrorItem(title=title, error=_describe(err)))

        logger.info(
            "Import for account %s: %d imported, %d updated, %d skipped, %d failed",
            owner_id, result.imported, result.updated, result.skipped, len(result.errors),
        )
        return result
