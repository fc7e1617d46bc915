# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Workspace service contracts consumed by the rename engine."""

import graphlib
import logging
from collections.abc import Hashable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class SymbolKind(str, Enum):
    """Symbol categories the engine can rename."""

    TYPE = "Type"
    METHOD = "Method"
    PROPERTY = "Property"
    FIELD = "Field"
    PARAMETER = "Parameter"


class WorkspaceError(RuntimeError):
    """Represent a fatal workspace load or access failure."""


class RenameError(RuntimeError):
    """Represent a failure renaming one symbol."""


@dataclass(frozen=True)
class SourceLocation:
    """Declaration position of a symbol.

    Attributes:
        path: Workspace-relative file path.
        line: 1-based line number.
        column: 0-based character column.
    """

    path: str
    line: int
    column: int


@dataclass(frozen=True)
class Project:
    """Represent one project of a workspace.

    Attributes:
        name: Project name used for exclusion lists.
        references: Names of projects this project depends on.
    """

    name: str
    references: tuple[str, ...] = ()


@dataclass(frozen=True)
class Symbol:
    """Read-only view of a declared symbol in one workspace snapshot.

    Attributes:
        handle: Opaque identity assigned by the workspace service. Stays the
            same for one declaration across all snapshots of a run.
        kind: Symbol category.
        name: Simple name.
        metadata_name: Name as recorded in metadata (includes generic arity
            markers where the language has them).
        container: Display name of the containing type or namespace. For
            parameters this is the containing member.
        assembly: Owning project name; ``None`` when the symbol is only
            visible through external metadata.
        is_override: Whether the symbol overrides an inherited member.
        explicit_interface_implementations: Handles of interface members this
            symbol explicitly implements.
        parameter_types: Display names of parameter types (methods only).
        type_parameter_count: Generic arity (methods and types).
        location: Declaration location when known.
    """

    handle: Hashable
    kind: SymbolKind
    name: str
    metadata_name: str
    container: str
    assembly: str | None
    is_override: bool = False
    explicit_interface_implementations: tuple[Hashable, ...] = ()
    parameter_types: tuple[str, ...] = ()
    type_parameter_count: int = 0
    location: SourceLocation | None = None


class WorkspaceSnapshot(Protocol):
    """Immutable view of a workspace at one point of a run."""

    @property
    def supports_overloading(self) -> bool:
        """Whether methods may share a name when signatures differ."""

    def projects(self) -> list[Project]:
        """Return projects ordered so dependencies precede dependents."""

    def declarations(self, project: Project) -> Iterator[Symbol]:
        """Yield symbols declared in the project's source, in source order."""

    def resolve(self, symbol: Symbol) -> Symbol | None:
        """Return the view of ``symbol`` in this snapshot, if it still exists."""

    def containing_type(self, symbol: Symbol) -> Symbol | None:
        """Return the type declaring ``symbol``."""

    def members(self, type_symbol: Symbol) -> list[Symbol]:
        """Return members declared directly by ``type_symbol``."""

    def siblings(self, symbol: Symbol) -> list[Symbol]:
        """Return symbols sharing a naming scope with ``symbol``, itself excluded."""

    def all_interfaces(self, type_symbol: Symbol) -> list[Symbol]:
        """Return every interface the type implements, directly or inherited."""

    def find_implementation(
        self, type_symbol: Symbol, interface_member: Symbol
    ) -> Symbol | None:
        """Return the member of ``type_symbol`` implementing ``interface_member``."""

    def documentation_id(self, symbol: Symbol) -> str | None:
        """Return a canonical cross-reference id, or ``None`` if unavailable."""

    def is_valid_identifier(self, name: str) -> bool:
        """Check whether ``name`` is a legal identifier for the language."""

    def rename(self, symbol: Symbol, new_name: str) -> "WorkspaceSnapshot":
        """Rename a symbol everywhere it is referenced.

        Raises:
            RenameError: If the rename cannot be performed.
        """


class Workspace(Protocol):
    """Load workspace snapshots and persist their edits."""

    def open(self) -> WorkspaceSnapshot:
        """Load the workspace.

        Raises:
            WorkspaceError: If the workspace cannot be loaded.
        """

    def apply(self, snapshot: WorkspaceSnapshot) -> bool:
        """Write snapshot edits to storage; return ``False`` on partial failure."""


def dependency_order(projects: list[Project]) -> list[Project]:
    """Order projects so that each follows the projects it references.

    Ties keep the input order. References to unknown projects are ignored.
    A reference cycle is reported and the input order is kept.

    Args:
        projects: Projects in discovery order.

    Returns:
        Projects with dependencies first.
    """
    positions = {project.name: index for index, project in enumerate(projects)}
    by_name = {project.name: project for project in projects}
    sorter: graphlib.TopologicalSorter[str] = graphlib.TopologicalSorter()
    for project in projects:
        sorter.add(
            project.name,
            *(
                name
                for name in project.references
                if name in by_name and name != project.name
            ),
        )
    try:
        sorter.prepare()
    except graphlib.CycleError as exc:
        logger.warning(f"Project references form a cycle (cycle={exc.args[1]})")
        return list(projects)

    ordered: list[Project] = []
    while sorter.is_active():
        ready = sorted(sorter.get_ready(), key=lambda name: positions[name])
        ordered.extend(by_name[name] for name in ready)
        sorter.done(*ready)
    return ordered
