# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""In-memory symbol graph workspace.

The graph describes declarations directly, without source text: types with
their bases and interfaces, members, and parameters. Renames replace names in
a copy of the graph, so every rename yields a new immutable snapshot. Graphs
can be built in code or loaded from a JSON document exported by an external
analyzer.
"""

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from deceiver.workspace import (
    Project,
    RenameError,
    SourceLocation,
    Symbol,
    SymbolKind,
    WorkspaceError,
    dependency_order,
)

logger = logging.getLogger(__name__)

_DOCUMENTATION_ID_PREFIXES: dict[SymbolKind, str] = {
    SymbolKind.TYPE: "T",
    SymbolKind.METHOD: "M",
    SymbolKind.PROPERTY: "P",
    SymbolKind.FIELD: "F",
}


@dataclass(frozen=True)
class GraphSymbol:
    """Describe one declaration of the graph.

    Attributes:
        id: Unique, stable identifier within the graph.
        kind: Symbol category.
        name: Current name.
        project: Owning project name.
        namespace: Namespace of top-level types.
        container: Id of the containing type (members, nested types) or
            method (parameters).
        base: Id of the base type (types only).
        interfaces: Ids of directly implemented interfaces (types only).
        is_interface: Whether the type is an interface.
        overrides: Id of the member this member overrides.
        explicit_implementations: Ids of interface members implemented
            explicitly.
        type: Parameter type, either a type id of the graph or a display name.
        type_parameters: Generic arity.
        external: Whether the symbol is only known through metadata.
        path: Declaring file.
        line: Declaring line.
    """

    id: str
    kind: SymbolKind
    name: str
    project: str
    namespace: str = ""
    container: str | None = None
    base: str | None = None
    interfaces: tuple[str, ...] = ()
    is_interface: bool = False
    overrides: str | None = None
    explicit_implementations: tuple[str, ...] = ()
    type: str | None = None
    type_parameters: int = 0
    external: bool = False
    path: str | None = None
    line: int = 0


@dataclass(frozen=True)
class SymbolGraph:
    """Represent a complete workspace graph.

    Attributes:
        projects: Projects with their references.
        symbols: Declarations in source order.
        documentation_ids: Whether canonical ids are exposed for symbols.
    """

    projects: tuple[Project, ...]
    symbols: tuple[GraphSymbol, ...]
    documentation_ids: bool = True

    @classmethod
    def from_dict(cls, document: dict[str, Any]) -> "SymbolGraph":
        """Build a graph from its JSON document form.

        Args:
            document: Parsed JSON object.

        Returns:
            Symbol graph.

        Raises:
            ValueError: If required fields are missing or malformed.
        """
        try:
            projects = tuple(
                Project(
                    name=str(item["name"]),
                    references=tuple(str(ref) for ref in item.get("references", [])),
                )
                for item in document["projects"]
            )
            symbols = tuple(
                GraphSymbol(
                    id=str(item["id"]),
                    kind=SymbolKind(item["kind"]),
                    name=str(item["name"]),
                    project=str(item["project"]),
                    namespace=str(item.get("namespace", "")),
                    container=item.get("container"),
                    base=item.get("base"),
                    interfaces=tuple(item.get("interfaces", [])),
                    is_interface=bool(item.get("is_interface", False)),
                    overrides=item.get("overrides"),
                    explicit_implementations=tuple(
                        item.get("explicit_implementations", [])
                    ),
                    type=item.get("type"),
                    type_parameters=int(item.get("type_parameters", 0)),
                    external=bool(item.get("external", False)),
                    path=item.get("path"),
                    line=int(item.get("line", 0)),
                )
                for item in document["symbols"]
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid symbol graph document: {exc}") from exc
        return cls(
            projects=projects,
            symbols=symbols,
            documentation_ids=bool(document.get("documentation_ids", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the graph to its JSON document form.

        Returns:
            JSON-compatible dictionary.
        """
        return {
            "documentation_ids": self.documentation_ids,
            "projects": [
                {"name": project.name, "references": list(project.references)}
                for project in self.projects
            ],
            "symbols": [_symbol_to_dict(symbol) for symbol in self.symbols],
        }


class MemorySnapshot:
    """Immutable snapshot over a symbol graph."""

    def __init__(self, graph: SymbolGraph) -> None:
        """Initialize snapshot.

        Args:
            graph: Graph state of this snapshot.

        Raises:
            WorkspaceError: If symbol ids are not unique.
        """
        self.graph = graph
        self._symbols: dict[str, GraphSymbol] = {}
        for symbol in graph.symbols:
            if symbol.id in self._symbols:
                raise WorkspaceError(f"Duplicate symbol id in graph: {symbol.id}")
            self._symbols[symbol.id] = symbol
        self._children: dict[str | None, list[GraphSymbol]] = {}
        for symbol in graph.symbols:
            self._children.setdefault(symbol.container, []).append(symbol)

    @property
    def supports_overloading(self) -> bool:
        return True

    def names(self) -> dict[str, str]:
        """Return current names by symbol id."""
        return {symbol.id: symbol.name for symbol in self.graph.symbols}

    def projects(self) -> list[Project]:
        return dependency_order(list(self.graph.projects))

    def declarations(self, project: Project) -> Iterator[Symbol]:
        for symbol in self.graph.symbols:
            if symbol.project == project.name:
                yield self._view(symbol)

    def resolve(self, symbol: Symbol) -> Symbol | None:
        graph_symbol = self._symbols.get(str(symbol.handle))
        if graph_symbol is None:
            return None
        return self._view(graph_symbol)

    def containing_type(self, symbol: Symbol) -> Symbol | None:
        graph_symbol = self._symbols.get(str(symbol.handle))
        if graph_symbol is None:
            return None
        owner = self._owner_type(graph_symbol)
        return self._view(owner) if owner is not None else None

    def members(self, type_symbol: Symbol) -> list[Symbol]:
        return [
            self._view(child)
            for child in self._children.get(str(type_symbol.handle), [])
        ]

    def siblings(self, symbol: Symbol) -> list[Symbol]:
        graph_symbol = self._symbols.get(str(symbol.handle))
        if graph_symbol is None:
            return []
        if graph_symbol.container is not None:
            peers = self._children.get(graph_symbol.container, [])
        else:
            peers = [
                peer
                for peer in self._children.get(None, [])
                if peer.namespace == graph_symbol.namespace
            ]
        return [self._view(peer) for peer in peers if peer.id != graph_symbol.id]

    def all_interfaces(self, type_symbol: Symbol) -> list[Symbol]:
        graph_symbol = self._symbols.get(str(type_symbol.handle))
        if graph_symbol is None:
            return []
        return [self._view(item) for item in self._interfaces_of(graph_symbol)]

    def find_implementation(
        self, type_symbol: Symbol, interface_member: Symbol
    ) -> Symbol | None:
        graph_type = self._symbols.get(str(type_symbol.handle))
        member = self._symbols.get(str(interface_member.handle))
        if graph_type is None or member is None:
            return None
        implementation = self._implementation(graph_type, member)
        return self._view(implementation) if implementation is not None else None

    def documentation_id(self, symbol: Symbol) -> str | None:
        if not self.graph.documentation_ids:
            return None
        graph_symbol = self._symbols.get(str(symbol.handle))
        if graph_symbol is None:
            return None
        prefix = _DOCUMENTATION_ID_PREFIXES.get(graph_symbol.kind)
        if prefix is None:
            return None
        if graph_symbol.kind is SymbolKind.TYPE:
            return f"{prefix}:{self._display(graph_symbol)}"
        owner = self._owner_type(graph_symbol)
        owner_display = self._display(owner) if owner is not None else ""
        documentation_id = f"{prefix}:{owner_display}.{graph_symbol.name}"
        if graph_symbol.kind is SymbolKind.METHOD:
            if graph_symbol.type_parameters:
                documentation_id += f"``{graph_symbol.type_parameters}"
            parameter_types = self._parameter_types(graph_symbol)
            if parameter_types:
                documentation_id += f"({','.join(parameter_types)})"
        return documentation_id

    def is_valid_identifier(self, name: str) -> bool:
        return name.isidentifier()

    def rename(self, symbol: Symbol, new_name: str) -> "MemorySnapshot":
        graph_symbol = self._symbols.get(str(symbol.handle))
        if graph_symbol is None:
            raise RenameError(f"Unknown symbol: {symbol.handle}")
        if graph_symbol.external:
            raise RenameError(f"Cannot rename metadata symbol: {graph_symbol.name}")
        related = self._related_ids(graph_symbol)
        symbols = tuple(
            replace(item, name=new_name) if item.id in related else item
            for item in self.graph.symbols
        )
        return MemorySnapshot(replace(self.graph, symbols=symbols))

    def _view(self, symbol: GraphSymbol) -> Symbol:
        """Build the public symbol view.

        Args:
            symbol: Graph declaration.

        Returns:
            Symbol view with display names computed from current names.
        """
        metadata_name = symbol.name
        if symbol.kind is SymbolKind.TYPE and symbol.type_parameters:
            metadata_name = f"{symbol.name}`{symbol.type_parameters}"
        location = None
        if symbol.path is not None:
            location = SourceLocation(path=symbol.path, line=symbol.line, column=0)
        return Symbol(
            handle=symbol.id,
            kind=symbol.kind,
            name=symbol.name,
            metadata_name=metadata_name,
            container=self._container_display(symbol),
            assembly=None if symbol.external else symbol.project,
            is_override=symbol.overrides is not None,
            explicit_interface_implementations=symbol.explicit_implementations,
            parameter_types=(
                self._parameter_types(symbol)
                if symbol.kind is SymbolKind.METHOD
                else ()
            ),
            type_parameter_count=symbol.type_parameters,
            location=location,
        )

    def _display(self, symbol: GraphSymbol) -> str:
        """Return the qualified display name of a type or member."""
        if symbol.container is not None and symbol.container in self._symbols:
            return f"{self._display(self._symbols[symbol.container])}.{symbol.name}"
        if symbol.namespace:
            return f"{symbol.namespace}.{symbol.name}"
        return symbol.name

    def _container_display(self, symbol: GraphSymbol) -> str:
        if symbol.container is None:
            return symbol.namespace
        container = self._symbols.get(symbol.container)
        if container is None:
            return symbol.container
        display = self._display(container)
        if container.kind is SymbolKind.METHOD:
            display += f"({', '.join(self._parameter_types(container))})"
        return display

    def _parameter_types(self, method: GraphSymbol) -> tuple[str, ...]:
        types: list[str] = []
        for child in self._children.get(method.id, []):
            if child.kind is not SymbolKind.PARAMETER:
                continue
            referenced = self._symbols.get(child.type) if child.type else None
            if referenced is not None:
                types.append(self._display(referenced))
            else:
                types.append(child.type or "object")
        return tuple(types)

    def _owner_type(self, symbol: GraphSymbol) -> GraphSymbol | None:
        current = symbol
        while current.container is not None:
            container = self._symbols.get(current.container)
            if container is None:
                return None
            if container.kind is SymbolKind.TYPE:
                return container
            current = container
        return None

    def _interfaces_of(self, graph_type: GraphSymbol) -> list[GraphSymbol]:
        found: dict[str, GraphSymbol] = {}
        pending: list[GraphSymbol] = [graph_type]
        visited: set[str] = set()
        while pending:
            current = pending.pop(0)
            if current.id in visited:
                continue
            visited.add(current.id)
            for interface_id in current.interfaces:
                interface = self._symbols.get(interface_id)
                if interface is None:
                    continue
                found.setdefault(interface.id, interface)
                pending.append(interface)
            if current.base is not None and current.base in self._symbols:
                pending.append(self._symbols[current.base])
        return list(found.values())

    def _base_chain(self, graph_type: GraphSymbol) -> Iterator[GraphSymbol]:
        visited: set[str] = set()
        current: GraphSymbol | None = graph_type
        while current is not None and current.id not in visited:
            visited.add(current.id)
            yield current
            current = self._symbols.get(current.base) if current.base else None

    def _implementation(
        self, graph_type: GraphSymbol, member: GraphSymbol
    ) -> GraphSymbol | None:
        """Find the member of a type implementing an interface member.

        Explicit implementations win over members matched by name and
        signature. Base types are searched after the type itself.

        Args:
            graph_type: Implementing type.
            member: Interface member.

        Returns:
            Implementing member, or ``None``.
        """
        member_types = self._parameter_types(member)
        for current in self._base_chain(graph_type):
            children = self._children.get(current.id, [])
            for child in children:
                if member.id in child.explicit_implementations:
                    return child
            for child in children:
                if (
                    child.kind is member.kind
                    and child.name == member.name
                    and not child.explicit_implementations
                    and self._parameter_types(child) == member_types
                ):
                    return child
        return None

    def _related_ids(self, symbol: GraphSymbol) -> set[str]:
        """Collect ids renamed together with a symbol.

        Overrides up and down the chain and implementations of interface
        members follow the renamed symbol, as a reference-aware rename would.

        Args:
            symbol: Symbol being renamed.

        Returns:
            Ids of all symbols taking the new name.
        """
        related: set[str] = {symbol.id}
        if symbol.kind not in (SymbolKind.METHOD, SymbolKind.PROPERTY):
            return related
        pending = [symbol]
        while pending:
            current = pending.pop()
            linked: list[GraphSymbol] = []
            if current.overrides is not None and current.overrides in self._symbols:
                linked.append(self._symbols[current.overrides])
            linked.extend(
                item for item in self.graph.symbols if item.overrides == current.id
            )
            owner = self._owner_type(current)
            if owner is not None and owner.is_interface:
                for graph_type in self.graph.symbols:
                    if graph_type.kind is not SymbolKind.TYPE or graph_type.is_interface:
                        continue
                    interface_ids = {item.id for item in self._interfaces_of(graph_type)}
                    if owner.id not in interface_ids:
                        continue
                    implementation = self._implementation(graph_type, current)
                    if implementation is not None and not implementation.external:
                        if current.id not in implementation.explicit_implementations:
                            linked.append(implementation)
            for item in linked:
                if item.id not in related and not item.external:
                    related.add(item.id)
                    pending.append(item)
        return related


class MemoryWorkspace:
    """Workspace backed by a symbol graph, optionally stored as JSON."""

    def __init__(
        self, graph: SymbolGraph | None = None, path: Path | None = None
    ) -> None:
        """Initialize workspace.

        Args:
            graph: Graph to open; read from ``path`` when omitted.
            path: JSON graph document, rewritten on apply.

        Raises:
            ValueError: If neither a graph nor a path is provided.
        """
        if graph is None and path is None:
            raise ValueError("Either graph or path is required")
        self._graph = graph
        self._path = path
        self.applied: MemorySnapshot | None = None

    def open(self) -> MemorySnapshot:
        if self._graph is not None:
            return MemorySnapshot(self._graph)
        assert self._path is not None
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
            graph = SymbolGraph.from_dict(document)
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            logger.warning(f"Failed loading symbol graph (path={self._path} error={exc})")
            raise WorkspaceError(f"Failed loading symbol graph: {exc}") from exc
        logger.info(
            "Loaded symbol graph",
            extra={"path": str(self._path), "symbols": len(graph.symbols)},
        )
        return MemorySnapshot(graph)

    def apply(self, snapshot: MemorySnapshot) -> bool:
        self.applied = snapshot
        if self._path is None:
            self._graph = snapshot.graph
            return True
        text = json.dumps(snapshot.graph.to_dict(), indent=2) + "\n"
        tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
        try:
            tmp_path.write_text(text, encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.warning(f"Failed writing symbol graph (path={self._path} error={exc})")
            return False
        return True


def _symbol_to_dict(symbol: GraphSymbol) -> dict[str, Any]:
    document: dict[str, Any] = {
        "id": symbol.id,
        "kind": symbol.kind.value,
        "name": symbol.name,
        "project": symbol.project,
    }
    defaults = GraphSymbol(id="", kind=symbol.kind, name="", project="")
    for field_name in (
        "namespace",
        "container",
        "base",
        "interfaces",
        "is_interface",
        "overrides",
        "explicit_implementations",
        "type",
        "type_parameters",
        "external",
        "path",
        "line",
    ):
        value = getattr(symbol, field_name)
        if value == getattr(defaults, field_name):
            continue
        document[field_name] = list(value) if isinstance(value, tuple) else value
    return document
