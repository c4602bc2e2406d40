"""
Allow-listed partial updates.

Each updatable entity declares its fields as FieldSpec entries. Only those keys
are ever read from a request payload, so request strings never become column
identifiers.

Rules (same for every entity):
- key absent -> untouched
- None or "" -> cleared when the field is nullable, otherwise treated as absent
- anything else -> passed through the field's coercer (which raises InvalidArgument)
- nothing qualifies -> InvalidArgument("No fields to update")
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from app.crm.errors import InvalidArgument


@dataclass(frozen=True)
class FieldSpec:
    name: str
    coerce: Callable[[Any], Any]
    nullable: bool = False


def field_map(specs: Iterable[FieldSpec]) -> dict[str, FieldSpec]:
    return {spec.name: spec for spec in specs}


def _is_empty(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def build_partial_update(payload: Mapping[str, Any], fields: Mapping[str, FieldSpec]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for key, spec in fields.items():
        if key not in payload:
            continue
        raw = payload[key]
        if _is_empty(raw):
            if spec.nullable:
                changes[key] = None
            continue
        changes[key] = spec.coerce(raw)
    if not changes:
        raise InvalidArgument("No fields to update")
    return changes
