# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Workspace backends for the renaming engine."""

from deceiver.workspaces.memory import MemoryWorkspace, SymbolGraph
from deceiver.workspaces.python import PythonWorkspace

__all__ = ["MemoryWorkspace", "PythonWorkspace", "SymbolGraph"]
