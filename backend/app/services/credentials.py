# backend/app/services/credentials.py
"""
CredentialStore - owner-scoped CRUD and queries over stored credentials.

- secrets are sealed by CryptoVault before they reach the database and only
  opened by ``get_decrypted``
- decrypting and mutating calls require the request's MasterKeyGate to have
  verified the owner; listing, stats and favorite toggling do not
- a record owned by someone else is reported exactly like a missing one
"""
import logging
import math
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import String, cast, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.models.credential import Category, CredentialRecord
from backend.app.schemas.credential import (
    BULK_MUTABLE_FIELDS,
    MUTABLE_FIELDS,
    BulkResult,
    CredentialCreate,
    CredentialFilter,
    CredentialPage,
    CredentialPatch,
    CredentialResponse,
    CredentialStats,
    DecryptedCredential,
    apply_patch,
)
from backend.app.security.lockout import utcnow
from backend.app.security.vault import CryptoVault, SealedValue
from backend.app.services.gate import MasterKeyGate

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "title": CredentialRecord.title,
    "website": CredentialRecord.website,
    "category": CredentialRecord.category,
    "created_at": CredentialRecord.created_at,
    "updated_at": CredentialRecord.updated_at,
    "last_accessed": CredentialRecord.last_accessed,
    "is_favorite": CredentialRecord.is_favorite,
}


def sealed_of(record: CredentialRecord) -> SealedValue:
    return SealedValue(ciphertext=record.encrypted_password, iv=record.iv)


def snapshot(record: CredentialRecord) -> Dict:
    return {name: getattr(record, name) for name in MUTABLE_FIELDS}


class CredentialStore:
    def __init__(self, db: AsyncSession, vault: CryptoVault, gate: MasterKeyGate):
        self.db = db
        self.vault = vault
        self.gate = gate

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _owned(self, owner_id: int, record_id: int) -> CredentialRecord:
        result = await self.db.execute(
            select(CredentialRecord).where(
                CredentialRecord.id == record_id,
                CredentialRecord.owner_id == owner_id,
            )
        )
        record = result.scalars().first()
        if record is None:
            raise NotFoundError("Password not found")
        return record

    def _seal_into(self, record: CredentialRecord, secret: str) -> None:
        sealed = self.vault.seal(secret)
        record.encrypted_password = sealed.ciphertext
        record.iv = sealed.iv

    async def _refresh(self, record: CredentialRecord) -> CredentialRecord:
        await self.db.refresh(record)
        return record

    # ------------------------------------------------------------------
    # Queries (metadata only)
    # ------------------------------------------------------------------

    def _filtered(self, owner_id: int, query: CredentialFilter):
        stmt = select(CredentialRecord).where(CredentialRecord.owner_id == owner_id)

        if query.search:
            pattern = f"%{query.search.strip()}%"
            stmt = stmt.where(
                or_(
                    CredentialRecord.title.ilike(pattern),
                    CredentialRecord.website.ilike(pattern),
                    CredentialRecord.username.ilike(pattern),
                    CredentialRecord.email.ilike(pattern),
                    CredentialRecord.notes.ilike(pattern),
                    cast(CredentialRecord.tags, String).ilike(pattern),
                )
            )

        if query.category and query.category != "all":
            stmt = stmt.where(CredentialRecord.category == query.category)

        if query.favorite:
            stmt = stmt.where(CredentialRecord.is_favorite.is_(True))

        return stmt

    async def list(self, owner_id: int, query: Optional[CredentialFilter] = None) -> CredentialPage:
        """Page through the owner's credentials. Never returns secrets."""
        query = query or CredentialFilter()
        stmt = self._filtered(owner_id, query)

        column = _SORT_COLUMNS[query.sort_by]
        order = column.desc() if query.sort_order == "desc" else column.asc()
        stmt = stmt.order_by(order, CredentialRecord.id.desc())

        if query.tags:
            # Tag membership is filtered in Python: JSON containment is not
            # portable between SQLite and PostgreSQL
            wanted = set(query.tags)
            rows = (await self.db.execute(stmt)).scalars().all()
            rows = [row for row in rows if wanted.intersection(row.tags or [])]
            total = len(rows)
            start = (query.page - 1) * query.limit
            records = rows[start:start + query.limit]
        else:
            total = await self.db.scalar(
                select(func.count()).select_from(stmt.order_by(None).subquery())
            )
            stmt = stmt.offset((query.page - 1) * query.limit).limit(query.limit)
            records = (await self.db.execute(stmt)).scalars().all()

        return CredentialPage(
            items=[CredentialResponse.model_validate(record) for record in records],
            page=query.page,
            limit=query.limit,
            total=total,
            pages=math.ceil(total / query.limit) if total else 0,
        )

    async def all_records(self, owner_id: int) -> List[CredentialRecord]:
        """Every record of the owner sorted by title (export order)."""
        result = await self.db.execute(
            select(CredentialRecord)
            .where(CredentialRecord.owner_id == owner_id)
            .order_by(CredentialRecord.title.asc(), CredentialRecord.id.asc())
        )
        return list(result.scalars().all())

    async def find_match(self, owner_id: int, title: str, website: str) -> Optional[CredentialRecord]:
        """Existing record with the same (title, website) pair, if any."""
        result = await self.db.execute(
            select(CredentialRecord)
            .where(
                CredentialRecord.owner_id == owner_id,
                CredentialRecord.title == title,
                CredentialRecord.website == (website or ""),
            )
            .order_by(CredentialRecord.id.asc())
        )
        return result.scalars().first()

    async def stats(self, owner_id: int) -> CredentialStats:
        owned = CredentialRecord.owner_id == owner_id
        total = await self.db.scalar(select(func.count(CredentialRecord.id)).where(owned))
        favorites = await self.db.scalar(
            select(func.count(CredentialRecord.id)).where(
                owned, CredentialRecord.is_favorite.is_(True)
            )
        )
        return CredentialStats(
            total=total or 0,
            favorites=favorites or 0,
            categories=await self.categories(owner_id),
        )

    async def categories(self, owner_id: int) -> Dict[str, int]:
        """Category -> count, most populated first."""
        count = func.count(CredentialRecord.id)
        result = await self.db.execute(
            select(CredentialRecord.category, count)
            .where(CredentialRecord.owner_id == owner_id)
            .group_by(CredentialRecord.category)
            .order_by(count.desc())
        )
        return {category: n for category, n in result.all()}

    async def tags(self, owner_id: int) -> List[str]:
        result = await self.db.execute(
            select(CredentialRecord.tags).where(CredentialRecord.owner_id == owner_id)
        )
        distinct = set()
        for (tags,) in result.all():
            distinct.update(tag.strip() for tag in tags or [] if tag and tag.strip())
        return sorted(distinct)

    # ------------------------------------------------------------------
    # Gated operations
    # ------------------------------------------------------------------

    async def get_decrypted(self, owner_id: int, record_id: int) -> DecryptedCredential:
        self.gate.ensure_verified(owner_id)
        record = await self._owned(owner_id, record_id)
        secret = self.vault.open(sealed_of(record))

        record.last_accessed = utcnow()
        await self.db.commit()
        await self._refresh(record)

        return DecryptedCredential(
            **CredentialResponse.model_validate(record).model_dump(),
            password=secret,
        )

    async def add(self, owner_id: int, fields: CredentialCreate, commit: bool = True) -> CredentialRecord:
        """Seal and persist a new record. Caller is responsible for gating."""
        record = CredentialRecord(
            owner_id=owner_id,
            title=fields.title,
            website=fields.website,
            username=fields.username,
            email=fields.email,
            notes=fields.notes,
            category=Category(fields.category).value,
            tags=list(fields.tags),
            is_favorite=fields.is_favorite,
            last_accessed=utcnow(),
        )
        self._seal_into(record, fields.password)
        self.db.add(record)
        if commit:
            await self.db.commit()
            await self._refresh(record)
        else:
            await self.db.flush()
        return record

    async def create(self, owner_id: int, fields: CredentialCreate) -> CredentialResponse:
        self.gate.ensure_verified(owner_id)
        record = await self.add(owner_id, fields)
        logger.info("Created credential %s for account %s", record.id, owner_id)
        return CredentialResponse.model_validate(record)

    def apply(self, record: CredentialRecord, patch: CredentialPatch) -> None:
        """Write the merged fields of ``patch`` onto ``record``; re-seal only for a new secret."""
        for name, value in apply_patch(snapshot(record), patch).items():
            if getattr(record, name) != value:
                setattr(record, name, value)
        if patch.password is not None:
            self._seal_into(record, patch.password)

    async def update(self, owner_id: int, record_id: int, patch: CredentialPatch) -> CredentialResponse:
        self.gate.ensure_verified(owner_id)
        record = await self._owned(owner_id, record_id)
        self.apply(record, patch)
        await self.db.commit()
        await self._refresh(record)
        logger.info("Updated credential %s for account %s", record_id, owner_id)
        return CredentialResponse.model_validate(record)

    async def delete(self, owner_id: int, record_id: int) -> None:
        self.gate.ensure_verified(owner_id)
        record = await self._owned(owner_id, record_id)
        await self.db.delete(record)
        await self.db.commit()
        logger.info("Deleted credential %s for account %s", record_id, owner_id)

    async def toggle_favorite(self, owner_id: int, record_id: int) -> CredentialResponse:
        """Flip the favorite flag. Favorite status is not confidential: no gate."""
        record = await self._owned(owner_id, record_id)
        record.is_favorite = not record.is_favorite
        await self.db.commit()
        await self._refresh(record)
        return CredentialResponse.model_validate(record)

    async def bulk_update(self, owner_id: int, ids: Iterable[int], updates: Dict) -> BulkResult:
        """Set category, tags or is_favorite on several of the owner's records."""
        self.gate.ensure_verified(owner_id)
        allowed = {key: value for key, value in updates.items() if key in BULK_MUTABLE_FIELDS}
        if not allowed:
            raise ValidationError("No valid update fields provided")
        try:
            values = CredentialPatch(**allowed).changes()
        except PydanticValidationError as err:
            raise ValidationError(err.errors()[0].get("msg", "Invalid update")) from err

        ids = list(ids)
        matched = await self.db.scalar(
            select(func.count(CredentialRecord.id)).where(
                CredentialRecord.owner_id == owner_id,
                CredentialRecord.id.in_(ids),
            )
        )
        result = await self.db.execute(
            update(CredentialRecord)
            .where(CredentialRecord.owner_id == owner_id, CredentialRecord.id.in_(ids))
            .values(**values, updated_at=utcnow())
        )
        await self.db.commit()
        return BulkResult(matched_count=matched or 0, modified_count=result.rowcount)

    async def bulk_delete(self, owner_id: int, ids: Iterable[int]) -> BulkResult:
        self.gate.ensure_verified(owner_id)
        result = await self.db.execute(
            delete(CredentialRecord)
            .where(CredentialRecord.owner_id == owner_id, CredentialRecord.id.in_(list(ids)))
        )
        await self.db.commit()
        logger.info("Bulk deleted %d credential(s) for account %s", result.rowcount, owner_id)
        return BulkResult(deleted_count=result.rowcount)
