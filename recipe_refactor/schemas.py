from __future__ import annotations

LEDGER_SET_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Ledger set",
    "description": "Sorted list of unit identifiers or file paths.",
    "type": "array",
    "items": {"type": "string", "minLength": 1},
    "uniqueItems": True,
}
