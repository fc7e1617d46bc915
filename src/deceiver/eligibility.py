# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Decide which symbols may be renamed."""

import logging

from deceiver.workspace import Symbol, SymbolKind, WorkspaceSnapshot

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_POINT: str = "Main"

_INTERFACE_BOUND_KINDS: frozenset[SymbolKind] = frozenset(
    {SymbolKind.METHOD, SymbolKind.PROPERTY}
)


class EligibilityClassifier:
    """Apply the rename policy to resolved symbols."""

    def __init__(self, entry_point: str = DEFAULT_ENTRY_POINT) -> None:
        """Initialize classifier.

        Args:
            entry_point: Name of the program entry point, never renamed.
        """
        self._entry_point = entry_point

    def is_eligible(self, snapshot: WorkspaceSnapshot, symbol: Symbol) -> bool:
        """Check whether a symbol may be renamed.

        Args:
            snapshot: Snapshot the symbol was resolved in.
            symbol: Candidate symbol.

        Returns:
            False for the entry point, overrides, symbols outside the
            workspace's own source and interface implementations.
        """
        if symbol.name == self._entry_point:
            return False
        if symbol.is_override:
            return False
        if symbol.assembly is None:
            return False
        if symbol.kind in _INTERFACE_BOUND_KINDS:
            if symbol.explicit_interface_implementations:
                return False
            if self._implements_interface_member(snapshot=snapshot, symbol=symbol):
                return False
        return True

    def _implements_interface_member(
        self, snapshot: WorkspaceSnapshot, symbol: Symbol
    ) -> bool:
        """Check whether the symbol implements a member of any interface.

        Implementations matched by signature carry no explicit marker, so each
        interface member is resolved to its implementation on the containing
        type and compared with the candidate.

        Args:
            snapshot: Snapshot the symbol was resolved in.
            symbol: Candidate method or property.

        Returns:
            True when the candidate is an interface implementation.
        """
        containing_type = snapshot.containing_type(symbol)
        if containing_type is None:
            return False
        for interface in snapshot.all_interfaces(containing_type):
            for member in snapshot.members(interface):
                if member.kind != symbol.kind:
                    continue
                implementation = snapshot.find_implementation(
                    type_symbol=containing_type, interface_member=member
                )
                if implementation is not None and implementation.handle == symbol.handle:
                    logger.debug(
                        f"Skipping interface implementation (symbol={symbol.name} "
                        f"interface={interface.name})"
                    )
                    return True
        return False
