# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Stable symbol keys shared by the obfuscate and restore paths."""

import logging

from deceiver.workspace import Symbol, WorkspaceSnapshot

logger = logging.getLogger(__name__)

KEY_CONTAINER_SEPARATOR: str = "::"
KEY_KIND_SEPARATOR: str = ":"


def symbol_key(snapshot: WorkspaceSnapshot, symbol: Symbol) -> str:
    """Build the stable key of a symbol.

    The workspace's documentation id is preferred since it encodes the
    containing type, member name and parameter types. Without one the key
    degrades to ``{container}::{metadata_name}:{kind}``, which cannot tell
    overloads apart.

    Args:
        snapshot: Snapshot the symbol was resolved in.
        symbol: Symbol to identify.

    Returns:
        Opaque key string.
    """
    documentation_id = snapshot.documentation_id(symbol)
    if documentation_id:
        return documentation_id
    return fallback_key(symbol)


def fallback_key(symbol: Symbol) -> str:
    """Build the structural key used when no documentation id exists.

    Args:
        symbol: Symbol to identify.

    Returns:
        Key in ``{container}::{metadata_name}:{kind}`` form.
    """
    return (
        f"{symbol.container}{KEY_CONTAINER_SEPARATOR}"
        f"{symbol.metadata_name}{KEY_KIND_SEPARATOR}{symbol.kind.value}"
    )


def legacy_original_name(key: str) -> str:
    """Extract the original symbol name from a legacy mapping key.

    Legacy keys follow ``{container}::{name}:{kind}``. The name is the text
    after the first ``::`` up to the next ``:``. Keys of any other shape are
    reported and run through the same split, which may yield a partial name.

    Args:
        key: Legacy mapping key.

    Returns:
        Best-effort original name; empty when nothing could be extracted.
    """
    _, separator, remainder = key.partition(KEY_CONTAINER_SEPARATOR)
    if not separator:
        logger.warning(f"Legacy mapping key has unexpected shape (key={key})")
        remainder = key
    name, _, _ = remainder.partition(KEY_KIND_SEPARATOR)
    return name
