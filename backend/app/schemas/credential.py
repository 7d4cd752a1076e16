# backend/app/schemas/credential.py
"""
Credential request/response models and the explicit partial-update struct.

A CredentialPatch is immutable. ``apply_patch`` computes the new field
values from the current ones and the patch without touching any ORM object,
so partial-update semantics can be tested on plain dicts.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.models.credential import Category

# Fields a patch may change besides the secret
MUTABLE_FIELDS = (
    "title", "website", "username", "email", "notes", "category", "tags", "is_favorite",
)

# Fields a bulk update may change
BULK_MUTABLE_FIELDS = ("category", "tags", "is_favorite")

SortKey = Literal[
    "title", "website", "category", "created_at", "updated_at", "last_accessed", "is_favorite",
]


def clean_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    return [tag.strip() for tag in tags if tag and tag.strip()]


class CredentialCreate(BaseModel):
    title: str
    password: str = Field(..., min_length=1)
    website: str = ""
    username: str = ""
    email: str = ""
    notes: str = ""
    category: Category = Category.OTHER
    tags: List[str] = Field(default_factory=list)
    is_favorite: bool = False

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @field_validator("website", "username", "notes", mode="before")
    @classmethod
    def _text(cls, v) -> str:
        return (v or "").strip()

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, v) -> str:
        return (v or "").strip().lower()

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        return v or Category.OTHER

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return clean_tags(v or [])


class CredentialPatch(BaseModel):
    """Partial update. ``None`` means "leave unchanged".

    ``password`` carries a new plaintext secret; the store re-seals only when
    it is supplied.
    """
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    website: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None
    category: Optional[Category] = None
    tags: Optional[List[str]] = None
    is_favorite: Optional[bool] = None
    password: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v

    @field_validator("website", "username", "notes")
    @classmethod
    def _text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v

    @field_validator("email")
    @classmethod
    def _email(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v is not None else v

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return clean_tags(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v: Optional[str]) -> Optional[str]:
        # An empty secret is treated as "not supplied"
        return v or None

    def changes(self) -> Dict[str, Any]:
        """Metadata fields this patch sets, secret excluded."""
        values = {}
        for name in MUTABLE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                values[name] = value.value if isinstance(value, Category) else value
        return values

    @property
    def is_empty(self) -> bool:
        return not self.changes() and self.password is None


def apply_patch(current: Dict[str, Any], patch: CredentialPatch) -> Dict[str, Any]:
    """Return ``current`` with every field set by ``patch`` replaced.

    ``current`` is not modified.
    """
    merged = dict(current)
    merged.update(patch.changes())
    return merged


class CredentialResponse(BaseModel):
    """Credential metadata. The secret is never part of this model."""
    id: int
    title: str
    website: str = ""
    username: str = ""
    email: str = ""
    notes: str = ""
    category: str
    tags: List[str] = Field(default_factory=list)
    is_favorite: bool = False
    last_accessed: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DecryptedCredential(CredentialResponse):
    password: str


class CredentialFilter(BaseModel):
    search: Optional[str] = None
    category: Optional[str] = None
    favorite: Optional[bool] = None
    tags: Optional[List[str]] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    sort_by: SortKey = "updated_at"
    sort_order: Literal["asc", "desc"] = "desc"


class CredentialPage(BaseModel):
    items: List[CredentialResponse]
    page: int
    limit: int
    total: int
    pages: int


class CredentialStats(BaseModel):
    total: int
    favorites: int
    categories: Dict[str, int]


class MasterProtected(BaseModel):
    """Any body carrying the master password for the gate."""
    master_password: str = Field(..., min_length=1)


class CredentialCreateRequest(CredentialCreate, MasterProtected):
    pass


class CredentialUpdateRequest(MasterProtected):
    changes: CredentialPatch


class BulkUpdateRequest(MasterProtected):
    ids: List[int] = Field(..., min_length=1)
    updates: Dict[str, Any]


class BulkDeleteRequest(MasterProtected):
    ids: List[int] = Field(..., min_length=1)


class BulkResult(BaseModel):
    matched_count: int = 0
    modified_count: int = 0
    deleted_count: int = 0
