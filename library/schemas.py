"""
Marginalia - Collection Export Schema

Self-describing, versioned wire format for sharing collections:

    {
        "schemaVersion": 2,
        "id": "...",
        "title": "...",
        "description": "...",
        "cards": [{"id": "...", "title": "...", "description": "...", "references": ["Heb 11:1"]}]
    }

References travel as human-readable strings and are re-parsed on import,
so they survive changes to the internal address form.

Version history:
    1: cards had no ids; references were a single ';'-separated string
    2: card ids; references as a list of strings
"""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import SchemaInvalidError

SCHEMA_VERSION = 2


class SerializedCard(BaseModel):
    """A verse card as exported. Every field may be omitted on import."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(default=None, description="Stable card id")
    title: Optional[str] = None
    description: Optional[str] = None
    references: Optional[List[str]] = Field(
        default=None,
        description="Human-readable references, e.g. 'John 3:16-18'",
    )

    @field_validator("id")
    @classmethod
    def blank_id_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class SerializedCollection(BaseModel):
    """A whole collection as exported."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    schema_version: int = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    id: str = Field(..., min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    cards: List[SerializedCard] = Field(default_factory=list)

    @field_validator("schema_version")
    @classmethod
    def current_version_only(cls, v: int) -> int:
        if v != SCHEMA_VERSION:
            raise ValueError(f"expected schema version {SCHEMA_VERSION} after migration, got {v}")
        return v

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire form (camelCase version tag)."""
        return self.model_dump(by_alias=True)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


# =============================================================================
# MIGRATION
# =============================================================================


def _v1_to_v2(data: Dict[str, Any]) -> Dict[str, Any]:
    cards = []
    for card in data.get("cards") or []:
        if not isinstance(card, dict):
            cards.append(card)
            continue
        migrated = {key: value for key, value in card.items() if key != "references"}
        references = card.get("references")
        if isinstance(references, str):
            migrated["references"] = [part.strip() for part in references.split(";") if part.strip()]
        elif references is not None:
            migrated["references"] = references
        cards.append(migrated)
    return {**data, "schemaVersion": 2, "cards": cards}


MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _v1_to_v2,
}


def _read_version(data: Mapping[str, Any]) -> int:
    version = data.get("schemaVersion", data.get("schema_version"))
    if version is None:
        raise SchemaInvalidError(
            "Collection export has no schema version",
            problems=["schemaVersion: field required"],
        )
    if isinstance(version, bool) or not isinstance(version, int):
        raise SchemaInvalidError(
            "Collection export has an invalid schema version",
            problems=[f"schemaVersion: expected an integer, got {version!r}"],
        )
    if version > SCHEMA_VERSION:
        raise SchemaInvalidError(
            f"Collection export uses schema version {version}, newer than supported version {SCHEMA_VERSION}",
            problems=[f"schemaVersion: {version} > {SCHEMA_VERSION}"],
            suggestions=["update Marginalia to import this collection"],
        )
    if version < 1:
        raise SchemaInvalidError(
            "Collection export has an invalid schema version",
            problems=[f"schemaVersion: {version} < 1"],
        )
    return version


def migrate(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Bring a raw export of any supported version up to SCHEMA_VERSION."""
    version = _read_version(data)
    current = {key: value for key, value in data.items() if key != "schema_version"}
    current["schemaVersion"] = version
    while version < SCHEMA_VERSION:
        current = MIGRATIONS[version](current)
        version = current["schemaVersion"]
    return current


def _problems(error: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(part) for part in item['loc']) or '<root>'}: {item['msg']}"
        for item in error.errors()
    ]


def parse_serialized_collection(data: Any) -> SerializedCollection:
    """
    Validate and migrate raw import data.

    Accepts a mapping, a JSON string, or an already built
    SerializedCollection.

    Raises:
        SchemaInvalidError: the data is not a collection export
    """
    if isinstance(data, SerializedCollection):
        return data
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise SchemaInvalidError(
                "Collection export is not valid JSON",
                problems=[f"line {e.lineno} column {e.colno}: {e.msg}"],
                cause=e,
            ) from e
    if not isinstance(data, Mapping):
        raise SchemaInvalidError(
            "Collection export must be an object",
            problems=[f"<root>: expected an object, got {type(data).__name__}"],
        )

    migrated = migrate(data)
    try:
        return SerializedCollection.model_validate(migrated)
    except ValidationError as e:
        raise SchemaInvalidError(
            "Collection export does not match the schema",
            problems=_problems(e),
            cause=e,
        ) from e
