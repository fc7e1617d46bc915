# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Persist and load rename mappings."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Protocol

from deceiver.identity import legacy_original_name

logger = logging.getLogger(__name__)

MappingSchema = Literal["current", "legacy"]

_FIELD_ORIGINAL_NAME = "OriginalName"
_FIELD_ORIGINAL_KEY = "OriginalKey"
_FIELD_OBFUSCATED_KEY = "ObfuscatedKey"


class MappingStoreError(RuntimeError):
    """Represent a fatal mapping write failure."""


@dataclass(frozen=True)
class SymbolMapping:
    """Record one applied rename.

    Attributes:
        original_name: Name before the rename.
        original_key: Symbol key before the rename.
        obfuscated_key: Symbol key after the rename. Legacy records carry the
            obfuscated name here instead.
    """

    original_name: str
    original_key: str
    obfuscated_key: str


@dataclass(frozen=True)
class MappingDocument:
    """Represent a decoded mapping file.

    Attributes:
        schema: ``current`` for the record list, ``legacy`` for the flat
            key-to-name table.
        records: Mapping records in file order.
    """

    schema: MappingSchema
    records: tuple[SymbolMapping, ...]


class MappingStore(Protocol):
    """Define the contract for durable mapping storage."""

    def save(self, records: list[SymbolMapping]) -> None:
        """Persist the full ordered record list."""

    def load(self) -> MappingDocument | None:
        """Load records; ``None`` when nothing usable could be read."""


class JsonMappingStore:
    """Store mappings as a JSON document."""

    def __init__(self, map_path: Path) -> None:
        """Initialize store.

        Args:
            map_path: Mapping file path.
        """
        self._map_path = map_path

    @property
    def map_path(self) -> Path:
        return self._map_path

    def save(self, records: list[SymbolMapping]) -> None:
        """Write records as an indented JSON array.

        Args:
            records: Ordered mapping records.

        Raises:
            MappingStoreError: If the file cannot be written.
        """
        payload = [
            {
                _FIELD_ORIGINAL_NAME: record.original_name,
                _FIELD_ORIGINAL_KEY: record.original_key,
                _FIELD_OBFUSCATED_KEY: record.obfuscated_key,
            }
            for record in records
        ]
        text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
        tmp_path = self._map_path.with_suffix(f"{self._map_path.suffix}.tmp")
        try:
            self._map_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(text, encoding="utf-8")
            tmp_path.replace(self._map_path)
        except OSError as exc:
            logger.warning(
                f"Failed writing mapping file (path={self._map_path} error={exc})"
            )
            raise MappingStoreError(str(exc)) from exc
        logger.info(
            "Saved mapping file",
            extra={"path": str(self._map_path), "records": len(records)},
        )

    def load(self) -> MappingDocument | None:
        """Load the mapping file, falling back to the legacy table format.

        Returns:
            Decoded document tagged with the schema that produced records, or
            ``None`` when the file is missing, unreadable, not JSON, or empty
            under both schemas.
        """
        try:
            text = self._map_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(
                f"Failed reading mapping file (path={self._map_path} error={exc})"
            )
            return None
        if not text.strip():
            logger.warning(f"Mapping file is empty (path={self._map_path})")
            return None
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning(
                f"Mapping file is not valid JSON (path={self._map_path} error={exc})"
            )
            return None

        records = _decode_current(document)
        if records:
            return MappingDocument(schema="current", records=records)
        records = _decode_legacy(document)
        if records:
            logger.info(
                "Loaded legacy mapping file",
                extra={"path": str(self._map_path), "records": len(records)},
            )
            return MappingDocument(schema="legacy", records=records)
        logger.warning(f"Mapping file contains no records (path={self._map_path})")
        return None


def _decode_current(document: Any) -> tuple[SymbolMapping, ...]:
    """Decode the record-list schema.

    Args:
        document: Parsed JSON value.

    Returns:
        Decoded records; entries missing a field are skipped.
    """
    if not isinstance(document, list):
        return ()
    records: list[SymbolMapping] = []
    for index, entry in enumerate(document):
        if not isinstance(entry, dict):
            logger.warning(f"Skipping malformed mapping entry (index={index})")
            continue
        fields = {str(key).casefold(): value for key, value in entry.items()}
        original_name = fields.get(_FIELD_ORIGINAL_NAME.casefold())
        original_key = fields.get(_FIELD_ORIGINAL_KEY.casefold())
        obfuscated_key = fields.get(_FIELD_OBFUSCATED_KEY.casefold())
        if not all(
            isinstance(value, str) and value
            for value in (original_name, original_key, obfuscated_key)
        ):
            logger.warning(f"Skipping malformed mapping entry (index={index})")
            continue
        records.append(
            SymbolMapping(
                original_name=original_name,
                original_key=original_key,
                obfuscated_key=obfuscated_key,
            )
        )
    return tuple(records)


def _decode_legacy(document: Any) -> tuple[SymbolMapping, ...]:
    """Decode the legacy ``{original_key: obfuscated_name}`` table.

    Args:
        document: Parsed JSON value.

    Returns:
        Records with the original name taken from each key.
    """
    if not isinstance(document, dict):
        return ()
    records: list[SymbolMapping] = []
    for original_key, obfuscated_name in document.items():
        if not isinstance(obfuscated_name, str) or not obfuscated_name:
            logger.warning(f"Skipping malformed legacy entry (key={original_key})")
            continue
        original_name = legacy_original_name(original_key)
        if not original_name:
            logger.warning(
                f"Legacy key yields no original name (key={original_key})"
            )
            continue
        records.append(
            SymbolMapping(
                original_name=original_name,
                original_key=original_key,
                obfuscated_key=obfuscated_name,
            )
        )
    return tuple(records)
