# backend/app/schemas/utility.py
from typing import List

from pydantic import BaseModel, Field


class GeneratorOptions(BaseModel):
    length: int = Field(default=16, ge=4, le=128)
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = True
    exclude_similar: bool = False
    exclude_ambiguous: bool = False
    custom_characters: str = ""
    min_uppercase: int = Field(default=0, ge=0)
    min_lowercase: int = Field(default=0, ge=0)
    min_numbers: int = Field(default=0, ge=0)
    min_symbols: int = Field(default=0, ge=0)


class PassphraseOptions(BaseModel):
    word_count: int = Field(default=4, ge=1, le=20)
    separator: str = Field(default="-", max_length=5)
    include_numbers: bool = False
    capitalize: bool = False


class StrengthReport(BaseModel):
    score: int
    strength: str
    feedback: List[str]


class GeneratedPassword(BaseModel):
    password: str
    strength: StrengthReport


class GeneratedPassphrase(BaseModel):
    passphrase: str
    strength: StrengthReport


class StrengthRequest(BaseModel):
    password: str = Field(..., min_length=1)
