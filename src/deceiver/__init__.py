# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Public import surface for the reversible renaming engine."""

from deceiver.dictionary import Dictionary, DictionaryFormatError, load_dictionary
from deceiver.eligibility import EligibilityClassifier
from deceiver.identity import legacy_original_name, symbol_key
from deceiver.mapping import (
    JsonMappingStore,
    MappingDocument,
    MappingStoreError,
    SymbolMapping,
)
from deceiver.names import GenerationSession, NameGenerator
from deceiver.orchestrator import RenameOrchestrator, RunError, RunState, RunSummary
from deceiver.workspace import (
    Project,
    RenameError,
    Symbol,
    SymbolKind,
    Workspace,
    WorkspaceError,
    WorkspaceSnapshot,
)

__all__ = [
    "Dictionary",
    "DictionaryFormatError",
    "EligibilityClassifier",
    "GenerationSession",
    "JsonMappingStore",
    "MappingDocument",
    "MappingStoreError",
    "NameGenerator",
    "Project",
    "RenameError",
    "RenameOrchestrator",
    "RunError",
    "RunState",
    "RunSummary",
    "Symbol",
    "SymbolKind",
    "SymbolMapping",
    "Workspace",
    "WorkspaceError",
    "WorkspaceSnapshot",
    "legacy_original_name",
    "load_dictionary",
    "symbol_key",
]
