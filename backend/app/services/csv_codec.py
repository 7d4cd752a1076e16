# backend/app/services/csv_codec.py
"""
Delimited-text encoding for credential export/import.

The tokenizer is a small state machine (field accumulator plus an in-quotes
flag) run over the whole text, so quoted fields may contain commas, doubled
quotes and line breaks.
"""
from typing import Any, Dict, Iterable, List, Optional

from backend.app.core.errors import ValidationError

CSV_HEADER = [
    "Title", "Website", "Username", "Email", "Password", "Category",
    "Notes", "Tags", "Favorite", "Created", "Updated",
]

TAG_SEPARATOR = ";"

# Accepted header spellings -> candidate field
HEADER_ALIASES = {
    "title": "title",
    "name": "title",
    "website": "website",
    "url": "website",
    "site": "website",
    "username": "username",
    "user": "username",
    "email": "email",
    "password": "password",
    "category": "category",
    "notes": "notes",
    "note": "notes",
    "tags": "tags",
    "favorite": "is_favorite",
    "favourite": "is_favorite",
}

_TRUTHY = {"yes", "true"}


def escape_field(value: Any) -> str:
    if value is None or value == "":
        return ""
    text = str(value)
    if "," in text or '"' in text or "\n" in text or "\r" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def render(rows: Iterable[Iterable[Any]]) -> str:
    return "\n".join(",".join(escape_field(value) for value in row) for row in rows)


def tokenize(text: str) -> List[List[str]]:
    """Split delimited text into rows of fields. Blank lines are dropped."""
    rows: List[List[str]] = []
    row: List[str] = []
    field: List[str] = []
    in_quotes = False
    i = 0
    n = len(text)

    def end_row():
        row.append("".join(field))
        field.clear()
        if any(value.strip() for value in row):
            rows.append(list(row))
        row.clear()

    while i < n:
        char = text[i]
        if in_quotes:
            if char == '"':
                if i + 1 < n and text[i + 1] == '"':
                    field.append('"')
                    i += 2
                    continue
                in_quotes = False
            else:
                field.append(char)
        elif char == '"':
            in_quotes = True
        elif char == ",":
            row.append("".join(field))
            field.clear()
        elif char == "\r":
            if i + 1 < n and text[i + 1] == "\n":
                i += 1
            end_row()
        elif char == "\n":
            end_row()
        else:
            field.append(char)
        i += 1

    if field or row:
        end_row()

    if in_quotes:
        raise ValidationError("CSV data ends inside a quoted field")
    return rows


def _to_candidate(headers: List[Optional[str]], values: List[str]) -> Dict[str, Any]:
    candidate: Dict[str, Any] = {}
    for field, value in zip(headers, values):
        if field is None:
            continue
        if field == "tags":
            candidate["tags"] = [tag.strip() for tag in value.split(TAG_SEPARATOR) if tag.strip()]
        elif field == "is_favorite":
            candidate["is_favorite"] = value.strip().lower() in _TRUTHY
        else:
            candidate[field] = value
    return candidate


def parse_credentials(text: str) -> List[Dict[str, Any]]:
    """
    Parse CSV text into candidate credential dicts.

    Rows whose field count differs from the header are skipped. Rows missing
    a title or password are returned as-is so the importer can report them.
    """
    rows = tokenize(text or "")
    if len(rows) < 2:
        raise ValidationError("CSV must contain at least a header and one data row")

    headers = [HEADER_ALIASES.get(name.strip().lower()) for name in rows[0]]
    if "title" not in headers or "password" not in headers:
        raise ValidationError("CSV header must include title and password columns")

    return [
        _to_candidate(headers, values)
        for values in rows[1:]
        if len(values) == len(headers)
    ]
