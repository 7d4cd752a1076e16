"""Tests for whole-vault export and import."""

import json

import pytest
from sqlalchemy import select, update

from backend.app.core.errors import DecryptionError, MasterSecretInvalid, ValidationError
from backend.app.models.credential import CredentialRecord
from backend.app.schemas.credential import CredentialCreate
from backend.app.schemas.transfer import ImportPolicy
from backend.app.services import csv_codec
from backend.app.services.transfer import normalize_candidate

MASTER_SECRET = "Mas12345!"


async def _seed(store, gate, owner_id, *specs):
    await gate.verify(owner_id, MASTER_SECRET)
    created = []
    for spec in specs:
        created.append(await store.create(owner_id, CredentialCreate(**spec)))
    return created


async def _records(db, owner_id):
    result = await db.execute(
        select(CredentialRecord)
        .where(CredentialRecord.owner_id == owner_id)
        .order_by(CredentialRecord.id)
    )
    return result.scalars().all()


# ── Export ──────────────────────────────────────────────────────────


class TestExport:

    @pytest.mark.asyncio
    async def test_json_document_contains_plaintext(self, transfer, store, gate, account):
        await _seed(store, gate, account.id, {
            "title": "GitHub", "website": "github.com", "password": "gh-pass",
            "category": "work", "tags": ["dev", "code"], "is_favorite": True,
        })

        document = await transfer.export_all(account.id, MASTER_SECRET, "json")
        assert document["version"] == "1.0"
        assert document["exportDate"]
        (entry,) = document["passwords"]
        assert entry["title"] == "GitHub"
        assert entry["password"] == "gh-pass"
        assert entry["tags"] == ["dev", "code"]
        assert entry["isFavorite"] is True
        assert entry["category"] == "work"
        assert set(entry) == {
            "title", "website", "username", "email", "password", "category",
            "notes", "tags", "isFavorite", "createdAt", "updatedAt",
        }
        json.dumps(document)

    @pytest.mark.asyncio
    async def test_csv_text(self, transfer, store, gate, account):
        await _seed(store, gate, account.id, {
            "title": "Mail", "password": 'pa,ss"word', "notes": "line one\nline two",
            "tags": ["a", "b"],
        })

        text = await transfer.export_all(account.id, MASTER_SECRET, "csv")
        rows = csv_codec.tokenize(text)
        assert rows[0] == csv_codec.CSV_HEADER
        assert rows[1][:5] == ["Mail", "", "", "", 'pa,ss"word']
        assert rows[1][6] == "line one\nline two"
        assert rows[1][7:9] == ["a;b", "No"]

    @pytest.mark.asyncio
    async def test_requires_master_password(self, transfer, account):
        with pytest.raises(MasterSecretInvalid):
            await transfer.export_all(account.id, "wrong", "json")

    @pytest.mark.asyncio
    async def test_unknown_format(self, transfer, account):
        with pytest.raises(ValidationError):
            await transfer.export_all(account.id, MASTER_SECRET, "xml")

    @pytest.mark.asyncio
    async def test_corrupted_record_aborts_export(self, transfer, store, gate, db, account):
        owner_id = account.id
        created = await _seed(store, gate, owner_id, *[
            {"title": title, "password": f"{title}-secret"}
            for title in ("Alpha", "Bravo", "Charlie", "Delta", "Echo")
        ])
        charlie = next(item for item in created if item.title == "Charlie")
        await db.execute(
            update(CredentialRecord)
            .where(CredentialRecord.id == charlie.id)
            .values(encrypted_password="00" * 24)
        )
        await db.commit()

        with pytest.raises(DecryptionError) as excinfo:
            await transfer.export_all(owner_id, MASTER_SECRET, "json")
        assert excinfo.value.title == "Charlie"
        assert "Charlie" in excinfo.value.message
        assert "Alpha-secret" not in excinfo.value.message


# ── Import ──────────────────────────────────────────────────────────


class TestImport:

    @pytest.mark.asyncio
    async def test_reimporting_an_export_is_idempotent(self, transfer, store, gate, db, account):
        owner_id = account.id
        await _seed(store, gate, owner_id,
                    {"title": "GitHub", "website": "github.com", "password": "one"},
                    {"title": "Mail", "password": "two"},
                    {"title": "Bank", "website": "bank.com", "password": "three"})
        document = await transfer.export_all(owner_id, MASTER_SECRET, "json")

        result = await transfer.import_all(owner_id, MASTER_SECRET, document, "json")
        assert (result.imported, result.updated, result.skipped) == (0, 0, 3)
        assert result.errors == []
        assert len(await _records(db, owner_id)) == 3

    @pytest.mark.asyncio
    async def test_update_existing_overwrites_the_match(self, transfer, store, gate, db, account):
        owner_id = account.id
        (created,) = await _seed(store, gate, owner_id, {
            "title": "Mail", "website": "mail.com", "password": "old", "notes": "keep me",
        })

        result = await transfer.import_all(
            owner_id, MASTER_SECRET,
            [{"title": "Mail", "website": "mail.com", "password": "new", "notes": ""}],
            "json",
            ImportPolicy(update_existing=True),
        )
        assert (result.imported, result.updated) == (0, 1)

        (record,) = await _records(db, owner_id)
        assert record.id == created.id
        assert record.notes == "keep me"
        assert (await store.get_decrypted(owner_id, created.id)).password == "new"

    @pytest.mark.asyncio
    async def test_without_flags_duplicates_are_added(self, transfer, store, gate, db, account):
        owner_id = account.id
        await _seed(store, gate, owner_id, {"title": "Mail", "password": "old"})

        result = await transfer.import_all(
            owner_id, MASTER_SECRET,
            {"passwords": [{"title": "Mail", "password": "new"}]},
            "json",
            ImportPolicy(skip_duplicates=False, update_existing=False),
        )
        assert result.imported == 1
        assert len(await _records(db, owner_id)) == 2

    @pytest.mark.asyncio
    async def test_failures_do_not_abort_the_batch(self, transfer, db, account):
        owner_id = account.id
        candidates = [
            {"title": "Good", "password": "x", "tags": "a;b", "isFavorite": True},
            {"title": "", "password": "y"},
            {"title": "NoSecret"},
            "not a record",
            {"title": "BadCategory", "password": "z", "category": "bogus"},
            {"title": "AlsoGood", "password": "w"},
        ]

        result = await transfer.import_all(owner_id, MASTER_SECRET, json.dumps(candidates), "json")
        assert result.imported == 2
        assert [item.title for item in result.errors] == [
            "Unknown", "NoSecret", "Unknown", "BadCategory",
        ]
        assert result.errors[1].error == "Title and password are required"

        records = await _records(db, owner_id)
        assert [record.title for record in records] == ["Good", "AlsoGood"]
        assert records[0].tags == ["a", "b"]
        assert records[0].is_favorite is True

    @pytest.mark.asyncio
    async def test_failed_record_is_reported_by_its_aliased_name(self, transfer, account):
        owner_id = account.id
        result = await transfer.import_all(
            owner_id, MASTER_SECRET,
            [{"name": "Aliased", "password": "x", "category": "bogus"}],
            "json",
        )
        assert result.imported == 0
        assert [item.title for item in result.errors] == ["Aliased"]

    @pytest.mark.asyncio
    async def test_requires_master_password(self, transfer, db, account):
        owner_id = account.id
        with pytest.raises(MasterSecretInvalid):
            await transfer.import_all(owner_id, "wrong", [{"title": "A", "password": "b"}])
        assert await _records(db, owner_id) == []

    @pytest.mark.asyncio
    async def test_invalid_documents(self, transfer, account):
        with pytest.raises(ValidationError):
            await transfer.import_all(account.id, MASTER_SECRET, "{not json", "json")
        with pytest.raises(ValidationError):
            await transfer.import_all(account.id, MASTER_SECRET, {"items": []}, "json")

    @pytest.mark.asyncio
    async def test_csv_export_imports_into_another_account(
        self, transfer, store, gate, db, account, make_account
    ):
        owner_id = account.id
        await _seed(store, gate, owner_id,
                    {"title": "Mail", "password": 'pa,ss"word', "notes": "a\nb", "tags": ["x"]},
                    {"title": "Shop", "website": "shop.com", "password": "plain",
                     "category": "shopping", "is_favorite": True})
        text = await transfer.export_all(owner_id, MASTER_SECRET, "csv")

        other = await make_account("other@example.com")
        other_id = other.id
        result = await transfer.import_all(other_id, MASTER_SECRET, text, "csv")
        assert result.imported == 2

        imported = {record.title: record for record in await _records(db, other_id)}
        assert imported["Mail"].notes == "a\nb"
        assert imported["Mail"].tags == ["x"]
        assert imported["Shop"].category == "shopping"
        assert imported["Shop"].is_favorite is True
        secret = await store.get_decrypted(other_id, imported["Mail"].id)
        assert secret.password == 'pa,ss"word'


class TestNormalizeCandidate:

    def test_portable_keys_are_mapped(self):
        candidate = normalize_candidate(
            {"name": "A", "url": "a.com", "favorite": True, "tags": " x ; ;y"}
        )
        assert candidate == {"title": "A", "website": "a.com", "is_favorite": True, "tags": ["x", "y"]}

    def test_non_objects_are_rejected(self):
        with pytest.raises(ValidationError):
            normalize_candidate(["title", "password"])
