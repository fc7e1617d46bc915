# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Workspace backend that renames symbols in Python source trees.

Declarations are discovered with ``ast`` and renamed with location-precise
text edits, so formatting and comments survive untouched. Name resolution is
shallow:

* module-level classes and functions are renamed in their module, at project
  ``from ... import`` sites (following re-exports) and at ``module.name``
  attribute access; function scopes and comprehensions rebinding the name
  keep their own binding;
* class members share one attribute namespace across the project, so a
  member rename touches every project class declaring that name and every
  attribute access whose receiver is not external (an import, or a local
  bound from one);
* parameters are renamed inside their function and at keyword arguments of
  calls that can be attributed to the function. Parameters of a method name
  declared by several project classes are pinned.
"""

import ast
import builtins
import keyword
import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from deceiver.workspace import (
    Project,
    RenameError,
    SourceLocation,
    Symbol,
    SymbolKind,
    WorkspaceError,
    dependency_order,
)
from deceiver.workspaces.ignore import IgnoreMatcher, discover_source_files

logger = logging.getLogger(__name__)

Handle = tuple[str, int]
_Position = tuple[int, int]
_FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef
_FUNCTION_TYPES = (ast.FunctionDef, ast.AsyncFunctionDef)
_DEFINITION_TYPES = (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)
_COMPREHENSION_TYPES = (ast.ListComp, ast.SetComp, ast.GeneratorExp, ast.DictComp)

_BUILTIN_NAMES = frozenset(dir(builtins))
_EXTERNAL_ATTRIBUTE_NAMES = frozenset(
    name
    for builtin_type in (
        object,
        str,
        bytes,
        int,
        float,
        bool,
        list,
        tuple,
        dict,
        set,
        frozenset,
        BaseException,
    )
    for name in dir(builtin_type)
)
_INTERFACE_BASES = frozenset({"Protocol", "ABC"})
_NEUTRAL_BASES = frozenset({"object", "Generic"})
_PROPERTY_DECORATORS = frozenset({"property", "cached_property"})
_DYNAMIC_ATTRIBUTE_CALLS = frozenset({"getattr", "setattr", "hasattr", "delattr"})
_FORWARDING_CALLS = frozenset(
    {"enumerate", "iter", "list", "next", "reversed", "set", "sorted", "tuple"}
)
_OWNER_RANK = {None: 0, "external": 1, "project": 2}
_DEF_PREFIX = re.compile(r"(?:async\s+)?(?:def|class)\s+")
_LINE_BREAK = re.compile(r"(?<=\n)")


@dataclass(frozen=True)
class _ImportBinding:
    local: str
    source: str
    name: str
    node: ast.alias


@dataclass
class _Module:
    path: str
    name: str
    project: str
    is_package: bool
    tree: ast.Module
    lines: list[str]
    import_bindings: list[_ImportBinding] = field(default_factory=list)
    module_aliases: dict[str, str] = field(default_factory=dict)
    external_names: set[str] = field(default_factory=set)
    classes: dict[str, "_ClassInfo"] = field(default_factory=dict)
    functions: dict[str, "_Declaration"] = field(default_factory=dict)
    external_receivers: set[int] | None = None


@dataclass
class _Declaration:
    handle: Handle
    kind: SymbolKind
    name: str
    module: _Module
    node: ast.AST
    line: int
    column: int
    qualname: str
    owner: "_ClassInfo | None" = None
    function: _FunctionNode | None = None


@dataclass
class _ClassInfo:
    declaration: _Declaration
    node: ast.ClassDef
    qualname: str
    members: dict[str, _Declaration] = field(default_factory=dict)
    bases: list["_ClassInfo"] = field(default_factory=list)
    has_external_base: bool = False
    is_interface: bool = False
    is_dataclass: bool = False


class PythonWorkspace:
    """Load a directory of Python sources and write renamed files back."""

    def __init__(self, root: Path) -> None:
        """Initialize workspace.

        Args:
            root: Directory holding the sources.
        """
        self._root = root
        self._original: dict[str, str] = {}

    def open(self) -> "PythonSnapshot":
        """Read every non-ignored ``.py`` file under the root.

        Returns:
            Snapshot of the sources.

        Raises:
            WorkspaceError: If the root is not a readable directory.
        """
        root = self._root.resolve()
        if not root.is_dir():
            raise WorkspaceError(f"Workspace root is not a directory: {root}")
        try:
            matcher = IgnoreMatcher.from_project_root(root)
            files = discover_source_files(root, matcher)
        except (OSError, UnicodeDecodeError) as exc:
            raise WorkspaceError(f"Failed scanning workspace {root}: {exc}") from exc

        sources: dict[str, str] = {}
        for file_path in files:
            relative = file_path.relative_to(root).as_posix()
            try:
                with file_path.open(encoding="utf-8", newline="") as handle:
                    sources[relative] = handle.read()
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning(
                    f"Skipping unreadable source file (path={relative} error={exc})"
                )
        self._original = dict(sources)
        logger.info(
            "Loaded Python workspace",
            extra={"root": str(root), "files": len(sources)},
        )
        return PythonSnapshot(sources=sources)

    def apply(self, snapshot: "PythonSnapshot") -> bool:
        """Write files whose text differs from what was loaded.

        Args:
            snapshot: Final snapshot of the run.

        Returns:
            False when any file could not be written.
        """
        root = self._root.resolve()
        applied = True
        written = 0
        for relative, text in snapshot.sources.items():
            if self._original.get(relative) == text:
                continue
            target = root / relative
            tmp_path = target.with_suffix(f"{target.suffix}.tmp")
            try:
                tmp_path.write_text(text, encoding="utf-8", newline="")
                tmp_path.replace(target)
            except OSError as exc:
                applied = False
                logger.warning(
                    f"Failed writing source file (path={relative} error={exc})"
                )
                continue
            self._original[relative] = text
            written += 1
        logger.info(f"Applied source changes (files={written})")
        return applied


class PythonSnapshot:
    """Immutable view of Python sources at one point of a run."""

    def __init__(
        self,
        sources: dict[str, str],
        parse_cache: dict[str, tuple[str, ast.Module | None]] | None = None,
    ) -> None:
        """Initialize snapshot.

        Args:
            sources: File text keyed by workspace-relative POSIX path.
            parse_cache: Parsed trees shared with sibling snapshots, keyed by
                path and validated against the file text.
        """
        self._sources = dict(sources)
        self._parse_cache = parse_cache if parse_cache is not None else {}
        self._index: _Index | None = None

    @property
    def supports_overloading(self) -> bool:
        return False

    @property
    def sources(self) -> dict[str, str]:
        return dict(self._sources)

    def projects(self) -> list[Project]:
        return self._built().projects

    def declarations(self, project: Project) -> Iterator[Symbol]:
        index = self._built()
        for declaration in index.declarations:
            if declaration.module.project == project.name:
                yield index.view(declaration)

    def resolve(self, symbol: Symbol) -> Symbol | None:
        index = self._built()
        declaration = index.by_handle.get(symbol.handle)
        if declaration is None or declaration.kind is not symbol.kind:
            return None
        return index.view(declaration)

    def containing_type(self, symbol: Symbol) -> Symbol | None:
        index = self._built()
        declaration = index.by_handle.get(symbol.handle)
        if declaration is None or declaration.owner is None:
            return None
        return index.view(declaration.owner.declaration)

    def members(self, type_symbol: Symbol) -> list[Symbol]:
        index = self._built()
        info = index.class_of(type_symbol.handle)
        if info is None:
            return []
        return [index.view(member) for member in info.members.values()]

    def siblings(self, symbol: Symbol) -> list[Symbol]:
        """Return declarations sharing a naming scope with ``symbol``.

        Module-level names share their module; members share their class and
        its project ancestors; parameters share their function.
        """
        index = self._built()
        declaration = index.by_handle.get(symbol.handle)
        if declaration is None:
            return []
        if declaration.kind is SymbolKind.PARAMETER:
            scope = [
                item
                for item in index.declarations
                if item.kind is SymbolKind.PARAMETER
                and item.function is declaration.function
            ]
        elif declaration.owner is not None:
            scope = []
            for info in [declaration.owner, *index.ancestors(declaration.owner)]:
                scope.extend(info.members.values())
                scope.extend(
                    nested.declaration
                    for nested in index.classes
                    if nested.declaration.owner is info
                )
        else:
            module = declaration.module
            scope = [*module.functions.values()]
            scope.extend(
                info.declaration
                for info in module.classes.values()
                if info.declaration.owner is None
            )
        return [index.view(item) for item in scope if item.handle != symbol.handle]

    def all_interfaces(self, type_symbol: Symbol) -> list[Symbol]:
        index = self._built()
        info = index.class_of(type_symbol.handle)
        if info is None:
            return []
        return [
            index.view(ancestor.declaration)
            for ancestor in index.ancestors(info)
            if ancestor.is_interface
        ]

    def find_implementation(
        self, type_symbol: Symbol, interface_member: Symbol
    ) -> Symbol | None:
        """Return the first concrete class member answering an interface member.

        The class itself is searched first, then its non-interface ancestors
        in breadth-first order.
        """
        index = self._built()
        info = index.class_of(type_symbol.handle)
        if info is None:
            return None
        for candidate in [info, *index.ancestors(info)]:
            if candidate.is_interface:
                continue
            member = candidate.members.get(interface_member.name)
            if member is not None:
                return index.view(member)
        return None

    def documentation_id(self, symbol: Symbol) -> str | None:
        """Return ``T:``/``M:``/``P:``/``F:`` plus the dotted path.

        Parameters have no documentation id.
        """
        index = self._built()
        declaration = index.by_handle.get(symbol.handle)
        if declaration is None or declaration.kind is SymbolKind.PARAMETER:
            return None
        prefix = {
            SymbolKind.TYPE: "T",
            SymbolKind.METHOD: "M",
            SymbolKind.PROPERTY: "P",
            SymbolKind.FIELD: "F",
        }[declaration.kind]
        return f"{prefix}:{declaration.module.name}.{declaration.qualname}"

    def is_valid_identifier(self, name: str) -> bool:
        """Accept legal names that no source file uses yet.

        Args:
            name: Proposed identifier.

        Returns:
            True when ``name`` is a non-keyword identifier, not a builtin and
            not already used anywhere in the workspace.
        """
        if not _is_legal_name(name) or name in _BUILTIN_NAMES:
            return False
        return name not in self._built().identifiers

    def rename(self, symbol: Symbol, new_name: str) -> "PythonSnapshot":
        """Rewrite every reference to ``symbol`` with ``new_name``.

        Args:
            symbol: Symbol to rename.
            new_name: Replacement name.

        Returns:
            Snapshot with the edited sources.

        Raises:
            RenameError: If the symbol is unknown, the name is illegal, the
                declaration could not be edited or an edited file no longer
                parses.
        """
        index = self._built()
        declaration = index.by_handle.get(symbol.handle)
        if declaration is None:
            raise RenameError(f"Unknown symbol: {symbol.name}")
        if not _is_legal_name(new_name):
            raise RenameError(f"Illegal identifier: {new_name}")
        old_name = declaration.name
        if new_name == old_name:
            return self

        edits = _ReferenceCollector(index, declaration).collect()
        anchor = declaration.module.path, (declaration.line, declaration.column)
        sources = dict(self._sources)
        anchored = False
        for path, positions in edits.items():
            text, applied = _replace_at(
                self._sources[path], sorted(positions), old_name, new_name
            )
            if anchor[0] == path and anchor[1] in applied:
                anchored = True
            sources[path] = text
        if not anchored:
            raise RenameError(
                f"Declaration of {old_name} not found at "
                f"{declaration.module.path}:{declaration.line}"
            )

        for path in edits:
            try:
                ast.parse(sources[path], filename=path)
            except SyntaxError as exc:
                raise RenameError(
                    f"Renaming {old_name} to {new_name} breaks {path}: {exc}"
                ) from exc
        logger.debug(
            f"Renamed symbol (name={old_name} new_name={new_name} "
            f"files={len(edits)})"
        )
        return PythonSnapshot(sources=sources, parse_cache=self._parse_cache)

    def _built(self) -> "_Index":
        if self._index is None:
            self._index = _Index(self._sources, self._parse_cache)
        return self._index


class _Index:
    """Declarations, classes and projects derived from one set of sources."""

    def __init__(
        self,
        sources: dict[str, str],
        parse_cache: dict[str, tuple[str, ast.Module | None]],
    ) -> None:
        self.modules: dict[str, _Module] = {}
        self.declarations: list[_Declaration] = []
        self.by_handle: dict[Handle, _Declaration] = {}
        self.classes: list[_ClassInfo] = []
        self.identifiers: set[str] = set()
        self._class_by_handle: dict[Handle, _ClassInfo] = {}

        for path in sorted(sources):
            module = _parse_module(path, sources[path], parse_cache)
            if module is None:
                continue
            if module.name in self.modules:
                logger.warning(
                    f"Skipping duplicate module (path={path} module={module.name})"
                )
                continue
            self.modules[module.name] = module
        project_names = {module.project for module in self.modules.values()}

        for module in self.modules.values():
            self._collect_imports(module, project_names)
            collector = _DeclarationCollector(module)
            collector.collect()
            self.declarations.extend(collector.declarations)
            self.classes.extend(collector.classes)
            self.identifiers.update(_identifiers(module.tree))
        for declaration in self.declarations:
            self.by_handle[declaration.handle] = declaration
        for info in self.classes:
            self._class_by_handle[info.declaration.handle] = info
            self._classify_bases(info)
        self.class_names = {info.declaration.name for info in self.classes}
        self._pinned_members = self._pin_members()
        self.projects = self._build_projects(project_names)

    def view(self, declaration: _Declaration) -> Symbol:
        """Build the public symbol view of a declaration."""
        node = declaration.node
        parameter_types: tuple[str, ...] = ()
        if declaration.kind is SymbolKind.METHOD and declaration.function is not None:
            parameter_types = tuple(
                ast.unparse(arg.annotation) if arg.annotation else ""
                for arg in _parameters(
                    declaration.function, skip_receiver=declaration.owner is not None
                )
            )
        return Symbol(
            handle=declaration.handle,
            kind=declaration.kind,
            name=declaration.name,
            metadata_name=declaration.name,
            container=self._container(declaration),
            assembly=declaration.module.project,
            is_override=self._is_override(declaration),
            parameter_types=parameter_types,
            type_parameter_count=len(getattr(node, "type_params", None) or ()),
            location=SourceLocation(
                path=declaration.module.path,
                line=declaration.line,
                column=declaration.column,
            ),
        )

    def class_of(self, handle: Handle) -> _ClassInfo | None:
        return self._class_by_handle.get(handle)

    def ancestors(self, info: _ClassInfo) -> list[_ClassInfo]:
        """Return project ancestors in breadth-first order."""
        ordered: list[_ClassInfo] = []
        seen = {id(info)}
        queue = list(info.bases)
        while queue:
            current = queue.pop(0)
            if id(current) in seen:
                continue
            seen.add(id(current))
            ordered.append(current)
            queue.extend(current.bases)
        return ordered

    def declares_member(self, name: str) -> list[_ClassInfo]:
        return [info for info in self.classes if name in info.members]

    def is_external_receiver(self, module: _Module, node: ast.expr) -> bool:
        """Report attribute receivers rooted at an external object.

        Args:
            module: Module the expression appears in.
            node: Receiver expression.

        Returns:
            True when the root name is an external import or a local bound
            from one.
        """
        root = _root_node(node)
        if root is None:
            return False
        if module.external_receivers is None:
            module.external_receivers = _ReceiverOwnership(
                module, self.class_names
            ).collect()
        return root.id in module.external_names or id(root) in module.external_receivers

    def _container(self, declaration: _Declaration) -> str:
        module_name = declaration.module.name
        if declaration.kind is SymbolKind.PARAMETER:
            return f"{module_name}.{declaration.qualname}"
        if declaration.owner is None:
            return module_name
        return f"{module_name}.{declaration.owner.qualname}"

    def _is_override(self, declaration: _Declaration) -> bool:
        """Report members whose name is bound outside the project's control.

        Dunder names and pinned member names count as overrides, as do
        members redefining a concrete project ancestor's member. Parameters
        of a method name declared by several project classes are pinned,
        since their keyword call sites cannot be attributed.
        """
        name = declaration.name
        if declaration.kind is SymbolKind.PARAMETER:
            function = declaration.function
            if declaration.owner is None or function is None:
                return False
            if function.name == "__init__":
                return False
            return len(self.declares_member(function.name)) > 1
        if _is_dunder(name):
            return True
        owner = declaration.owner
        if owner is None or declaration.kind is SymbolKind.TYPE:
            return False
        if name in self._pinned_members:
            return True
        return any(
            name in ancestor.members
            for ancestor in self.ancestors(owner)
            if not ancestor.is_interface
        )

    def _pin_members(self) -> set[str]:
        """Collect member names that must keep their spelling.

        Members share one attribute namespace, so a name declared by any class
        with an external ancestor, or spelled like a builtin type attribute,
        is pinned for every class.
        """
        pinned = set(_EXTERNAL_ATTRIBUTE_NAMES)
        for info in self.classes:
            if info.has_external_base or any(
                ancestor.has_external_base for ancestor in self.ancestors(info)
            ):
                pinned.update(info.members)
        return pinned

    def _collect_imports(self, module: _Module, project_names: set[str]) -> None:
        for node in ast.walk(module.tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    root = alias.name.split(".")[0]
                    if root not in project_names:
                        module.external_names.add(alias.asname or root)
                    elif alias.asname:
                        module.module_aliases[alias.asname] = alias.name
                    else:
                        module.module_aliases[root] = root
            elif isinstance(node, ast.ImportFrom):
                source = _import_source(module, node)
                if source is None:
                    continue
                is_project = source.split(".")[0] in project_names
                for alias in node.names:
                    if alias.name == "*":
                        continue
                    local = alias.asname or alias.name
                    if not is_project:
                        module.external_names.add(local)
                    elif f"{source}.{alias.name}" in self.modules:
                        module.module_aliases[local] = f"{source}.{alias.name}"
                    else:
                        module.import_bindings.append(
                            _ImportBinding(
                                local=local, source=source, name=alias.name, node=alias
                            )
                        )

    def _classify_bases(self, info: _ClassInfo) -> None:
        module = info.declaration.module
        for base in info.node.bases:
            target = base.value if isinstance(base, ast.Subscript) else base
            dotted = _dotted_name(target)
            if dotted is None:
                info.has_external_base = True
                continue
            short_name = dotted.rsplit(".", 1)[-1]
            if short_name in _INTERFACE_BASES:
                info.is_interface = True
                continue
            if short_name in _NEUTRAL_BASES:
                continue
            resolved = self._resolve_class(module, dotted, set())
            if resolved is None:
                info.has_external_base = True
            else:
                info.bases.append(resolved)
        for item in info.node.keywords:
            dotted = _dotted_name(item.value)
            if item.arg == "metaclass" and dotted and dotted.endswith("ABCMeta"):
                info.is_interface = True
        for statement in info.node.body:
            if isinstance(statement, _FUNCTION_TYPES) and _has_decorator(
                statement, "abstractmethod"
            ):
                info.is_interface = True
        info.is_dataclass = _has_decorator(info.node, "dataclass")

    def _resolve_class(
        self, module: _Module, dotted: str, visited: set[tuple[str, str]]
    ) -> _ClassInfo | None:
        """Resolve a dotted base-class expression to a project class.

        Args:
            module: Module the expression appears in.
            dotted: Dotted name text.
            visited: Already followed ``(module, name)`` pairs.

        Returns:
            Project class, or ``None`` for anything outside the project.
        """
        if (module.name, dotted) in visited:
            return None
        visited.add((module.name, dotted))
        if dotted in module.classes:
            return module.classes[dotted]
        head, _, rest = dotted.partition(".")
        if head in module.module_aliases and rest:
            qualified = f"{module.module_aliases[head]}.{rest}"
            module_path, _, class_name = qualified.rpartition(".")
            target = self.modules.get(module_path)
            if target is None:
                return None
            return self._resolve_class(target, class_name, visited)
        for binding in module.import_bindings:
            if binding.local != head:
                continue
            target = self.modules.get(binding.source)
            if target is None:
                return None
            name = f"{binding.name}.{rest}" if rest else binding.name
            return self._resolve_class(target, name, visited)
        return None

    def _build_projects(self, project_names: set[str]) -> list[Project]:
        references: dict[str, set[str]] = {name: set() for name in project_names}
        for module in self.modules.values():
            sources = [binding.source for binding in module.import_bindings]
            sources.extend(module.module_aliases.values())
            for source in sources:
                root = source.split(".")[0]
                if root in project_names and root != module.project:
                    references[module.project].add(root)
        projects = [
            Project(name=name, references=tuple(sorted(references[name])))
            for name in sorted(project_names)
        ]
        return dependency_order(projects)


class _DeclarationCollector:
    """Enumerate renameable declarations of one module in source order."""

    def __init__(self, module: _Module) -> None:
        self.module = module
        self.declarations: list[_Declaration] = []
        self.classes: list[_ClassInfo] = []

    def collect(self) -> None:
        for statement in _block_statements(self.module.tree.body):
            if isinstance(statement, ast.ClassDef):
                self._collect_class(statement, outer=None)
            elif isinstance(statement, _FUNCTION_TYPES):
                if statement.name in self.module.functions:
                    continue
                declaration = self._add(
                    SymbolKind.METHOD, statement.name, statement, statement.name
                )
                if declaration is None:
                    continue
                declaration.function = statement
                self.module.functions[statement.name] = declaration
                self._collect_parameters(statement, owner=None, qualname=statement.name)

    def _collect_class(self, node: ast.ClassDef, outer: _ClassInfo | None) -> None:
        qualname = f"{outer.qualname}.{node.name}" if outer else node.name
        declaration = self._add(SymbolKind.TYPE, node.name, node, qualname, owner=outer)
        if declaration is None:
            return
        info = _ClassInfo(declaration=declaration, node=node, qualname=qualname)
        self.classes.append(info)
        self.module.classes[qualname] = info

        methods: list[_FunctionNode] = []
        for statement in _block_statements(node.body):
            if isinstance(statement, ast.ClassDef):
                self._collect_class(statement, outer=info)
            elif isinstance(statement, _FUNCTION_TYPES):
                if statement.name in info.members:
                    continue
                kind = (
                    SymbolKind.PROPERTY
                    if any(_has_decorator(statement, name) for name in _PROPERTY_DECORATORS)
                    else SymbolKind.METHOD
                )
                member = self._add(
                    kind, statement.name, statement, f"{qualname}.{statement.name}", owner=info
                )
                if member is None:
                    continue
                member.function = statement
                info.members[statement.name] = member
                methods.append(statement)
                self._collect_parameters(
                    statement,
                    owner=info,
                    qualname=member.qualname,
                    skip_receiver=not _has_decorator(statement, "staticmethod"),
                )
            elif isinstance(statement, ast.Assign):
                for target in statement.targets:
                    for name_node in _target_names(target):
                        self._add_field(info, name_node, name_node.id)
            elif isinstance(statement, ast.AnnAssign) and isinstance(
                statement.target, ast.Name
            ):
                self._add_field(info, statement.target, statement.target.id)

        for method in methods:
            receiver = _receiver_name(method)
            if receiver is None:
                continue
            for sub in ast.walk(method):
                if (
                    isinstance(sub, ast.Attribute)
                    and isinstance(sub.ctx, ast.Store)
                    and isinstance(sub.value, ast.Name)
                    and sub.value.id == receiver
                ):
                    self._add_field(info, sub, sub.attr)

    def _add_field(self, info: _ClassInfo, node: ast.AST, name: str) -> None:
        if name in info.members or _is_dunder(name):
            return
        member = self._add(
            SymbolKind.FIELD, name, node, f"{info.qualname}.{name}", owner=info
        )
        if member is not None:
            info.members[name] = member

    def _collect_parameters(
        self,
        function: _FunctionNode,
        owner: _ClassInfo | None,
        qualname: str,
        skip_receiver: bool = False,
    ) -> None:
        for arg in _parameters(function, skip_receiver=skip_receiver):
            declaration = self._add(
                SymbolKind.PARAMETER, arg.arg, arg, qualname, owner=owner
            )
            if declaration is not None:
                declaration.function = function

    def _add(
        self,
        kind: SymbolKind,
        name: str,
        node: ast.AST,
        qualname: str,
        owner: _ClassInfo | None = None,
    ) -> _Declaration | None:
        position = _name_position(self.module, node, name)
        if position is None:
            logger.debug(
                f"Declaration position not found (path={self.module.path} name={name})"
            )
            return None
        declaration = _Declaration(
            handle=(self.module.path, len(self.declarations)),
            kind=kind,
            name=name,
            module=self.module,
            node=node,
            line=position[0],
            column=position[1],
            qualname=qualname,
            owner=owner,
        )
        self.declarations.append(declaration)
        return declaration


class _ReferenceCollector:
    """Find every source position naming one declaration."""

    def __init__(self, index: _Index, declaration: _Declaration) -> None:
        self._index = index
        self._declaration = declaration
        self._name = declaration.name
        self._edits: dict[str, set[_Position]] = {}
        self._imports: set[int] = set()

    def collect(self) -> dict[str, set[_Position]]:
        """Return positions keyed by file path."""
        declaration = self._declaration
        self._add(declaration.module, (declaration.line, declaration.column))
        if declaration.kind is SymbolKind.PARAMETER:
            self._collect_parameter()
        elif declaration.owner is None:
            for module in self._bound_modules(declaration.module):
                self._collect_module_names(module)
        else:
            self._collect_member()
        return self._edits

    def _collect_module_names(self, module: _Module) -> None:
        self._collect_scope_names(module, module.tree)
        if module is self._declaration.module:
            for statement in _block_statements(module.tree.body):
                if (
                    isinstance(statement, _DEFINITION_TYPES)
                    and statement.name == self._name
                ):
                    self._add_node(module, statement, self._name)
        self._collect_exported_strings(module, "__all__", module.tree.body)

    def _bound_modules(self, defining: _Module) -> list[_Module]:
        """Collect modules where the name is bound, following re-exports.

        Import sites and ``module.name`` attribute accesses are recorded as
        edits on the way.
        """
        bound = [defining]
        bound_names = {defining.name}
        changed = True
        while changed:
            changed = False
            for module in self._index.modules.values():
                for binding in module.import_bindings:
                    if binding.source not in bound_names or binding.name != self._name:
                        continue
                    self._add_node(module, binding.node, self._name)
                    self._imports.add(id(binding.node))
                    if binding.local == self._name and module.name not in bound_names:
                        bound.append(module)
                        bound_names.add(module.name)
                        changed = True
        for module in self._index.modules.values():
            for node in ast.walk(module.tree):
                if (
                    isinstance(node, ast.Attribute)
                    and node.attr == self._name
                    and _aliased_module(module, node.value) in bound_names
                ):
                    self._add_node(module, node, self._name)
        return bound

    def _collect_member(self) -> None:
        name = self._name
        if self._declaration.kind is SymbolKind.TYPE:
            owners = [self._declaration.owner]
        else:
            owners = [
                info
                for info in self._index.declares_member(name)
                if not isinstance(info.members[name].node, ast.Attribute)
            ]
        for info in owners:
            module = info.declaration.module
            self._collect_class_scope(module, info.node)
            self._collect_exported_strings(module, "__slots__", info.node.body)
        for module in self._index.modules.values():
            for node in ast.walk(module.tree):
                if isinstance(node, ast.Attribute) and node.attr == name:
                    if self._index.is_external_receiver(module, node.value):
                        continue
                    if _aliased_module(module, node.value) is not None:
                        continue
                    self._add_node(module, node, name)
                elif (
                    isinstance(node, ast.Call)
                    and _is_dynamic_access(node, name)
                    and not self._index.is_external_receiver(module, node.args[0])
                ):
                    self._add_string(module, node.args[1])
        if self._declaration.kind is not SymbolKind.FIELD:
            return
        dataclass_names = {
            info.declaration.name for info in owners if info.is_dataclass
        }
        if dataclass_names:
            self._collect_keywords(
                lambda module, call: _callee_name(call) in dataclass_names, name
            )

    def _collect_class_scope(self, module: _Module, node: ast.ClassDef) -> None:
        """Record member definitions and class-scope name uses."""
        for statement in node.body:
            if isinstance(statement, _DEFINITION_TYPES):
                if statement.name == self._name:
                    self._add_node(module, statement, self._name)
                for decorator in statement.decorator_list:
                    self._collect_names(module, decorator)
                if isinstance(statement, _FUNCTION_TYPES):
                    for default in [
                        *statement.args.defaults,
                        *(item for item in statement.args.kw_defaults if item),
                    ]:
                        self._collect_names(module, default)
                continue
            self._collect_names(module, statement)

    def _collect_parameter(self) -> None:
        declaration = self._declaration
        function = declaration.function
        if function is None:
            return
        defining = declaration.module
        for statement in function.body:
            self._collect_scope_names(defining, statement)

        if declaration.owner is None:
            local_names = {defining.name: {function.name}}
            for other in self._index.modules.values():
                for binding in other.import_bindings:
                    if binding.source == defining.name and binding.name == function.name:
                        local_names.setdefault(other.name, set()).add(binding.local)

            def calls_function(module: _Module, call: ast.Call) -> bool:
                if isinstance(call.func, ast.Name):
                    return call.func.id in local_names.get(module.name, ())
                return (
                    isinstance(call.func, ast.Attribute)
                    and call.func.attr == function.name
                    and _aliased_module(module, call.func.value) == defining.name
                )

            self._collect_keywords(calls_function, declaration.name)
            return
        if function.name == "__init__":
            class_name = declaration.owner.declaration.name
            self._collect_keywords(
                lambda module, call: _callee_name(call) == class_name,
                declaration.name,
            )
            return
        if len(self._index.declares_member(function.name)) == 1:
            self._collect_keywords(
                lambda module, call: isinstance(call.func, ast.Attribute)
                and call.func.attr == function.name
                and not self._index.is_external_receiver(module, call.func.value),
                declaration.name,
            )

    def _collect_scope_names(self, module: _Module, root: ast.AST) -> None:
        """Record name uses in a scope, skipping nested scopes rebinding the name."""
        stack = [root]
        while stack:
            node = stack.pop()
            if isinstance(node, (ast.Lambda, *_FUNCTION_TYPES)) and (
                self._name in _local_bindings(node, ignored=self._imports)
            ):
                stack.extend(_enclosing_expressions(node))
                continue
            if isinstance(node, _COMPREHENSION_TYPES) and any(
                self._name in {name.id for name in _target_names(generator.target)}
                for generator in node.generators
            ):
                stack.append(node.generators[0].iter)
                continue
            if isinstance(node, ast.Name) and node.id == self._name:
                self._add_node(module, node, self._name)
            elif isinstance(node, ast.Global) and self._name in node.names:
                self._add_word(module, node, self._name)
            stack.extend(ast.iter_child_nodes(node))

    def _collect_keywords(
        self, matches: Callable[[_Module, ast.Call], bool], keyword_name: str
    ) -> None:
        for module in self._index.modules.values():
            for node in ast.walk(module.tree):
                if not isinstance(node, ast.Call) or not matches(module, node):
                    continue
                for item in node.keywords:
                    if item.arg == keyword_name:
                        self._add_node(module, item, keyword_name)

    def _collect_names(self, module: _Module, root: ast.AST) -> None:
        for node in ast.walk(root):
            if isinstance(node, ast.Name) and node.id == self._name:
                self._add_node(module, node, self._name)

    def _collect_exported_strings(
        self, module: _Module, target_name: str, body: list[ast.stmt]
    ) -> None:
        """Record string entries of ``__all__`` or ``__slots__`` assignments."""
        for statement in body:
            if isinstance(statement, ast.Assign):
                targets = statement.targets
            elif isinstance(statement, (ast.AnnAssign, ast.AugAssign)):
                targets = [statement.target]
            else:
                continue
            if statement.value is None or not any(
                isinstance(target, ast.Name) and target.id == target_name
                for target in targets
            ):
                continue
            for node in ast.walk(statement.value):
                if isinstance(node, ast.Constant) and node.value == self._name:
                    self._add_string(module, node)

    def _add_node(self, module: _Module, node: ast.AST, name: str) -> None:
        position = _name_position(module, node, name)
        if position is not None:
            self._add(module, position)

    def _add_word(self, module: _Module, node: ast.AST, name: str) -> None:
        line = node.lineno
        text = module.lines[line - 1]
        match = re.search(rf"\b{re.escape(name)}\b", text)
        if match:
            self._add(module, (line, match.start()))

    def _add_string(self, module: _Module, node: ast.AST) -> None:
        if node.lineno != node.end_lineno:
            return
        column = _char_column(module.lines, node.lineno, node.col_offset)
        self._add(module, (node.lineno, column + 1))

    def _add(self, module: _Module, position: _Position) -> None:
        self._edits.setdefault(module.path, set()).add(position)


class _ReceiverOwnership:
    """Find name loads that hold objects created outside the project.

    Bindings are tracked per function scope. A local is external when one of
    its bindings derives from an external import, a builtin call or another
    external local, and none of them instantiates a project class.
    Parameters and unknown values stay unclassified.
    """

    def __init__(self, module: _Module, class_names: set[str]) -> None:
        self._module = module
        self._class_names = class_names
        self._external: set[int] = set()

    def collect(self) -> set[int]:
        """Return ids of external ``ast.Name`` loads in the module."""
        self._visit_scope(list(self._module.tree.body), parameters=[], enclosing=[])
        return self._external

    def _visit_scope(
        self,
        body: list[ast.AST],
        parameters: list[str],
        enclosing: list[dict[str, str | None]],
    ) -> None:
        owners: dict[str, str | None] = {name: None for name in parameters}
        bindings: list[tuple[list[str], ast.expr]] = []
        loads: list[ast.Name] = []
        nested: list[ast.Lambda | _FunctionNode] = []
        stack = list(body)
        while stack:
            node = stack.pop()
            if isinstance(node, (ast.Lambda, *_FUNCTION_TYPES)):
                nested.append(node)
                stack.extend(_enclosing_expressions(node))
                if not isinstance(node, ast.Lambda):
                    owners.setdefault(node.name, None)
                continue
            if isinstance(node, ast.Name):
                if isinstance(node.ctx, ast.Load):
                    loads.append(node)
                else:
                    owners.setdefault(node.id, None)
            bindings.extend(_bound_values(node))
            stack.extend(ast.iter_child_nodes(node))

        scopes = [*enclosing, owners]
        for _ in range(len(bindings) + 1):
            changed = False
            for names, value in bindings:
                owner = self._owner(value, scopes)
                for name in names:
                    if _OWNER_RANK[owner] > _OWNER_RANK[owners.get(name)]:
                        owners[name] = owner
                        changed = True
            if not changed:
                break

        for node in loads:
            if self._name_owner(node.id, scopes) == "external":
                self._external.add(id(node))
        for function in nested:
            inner = [function.body] if isinstance(function, ast.Lambda) else function.body
            self._visit_scope(
                inner,
                parameters=[arg.arg for arg in _all_args(function.args)],
                enclosing=scopes,
            )

    def _owner(
        self, node: ast.expr, scopes: list[dict[str, str | None]]
    ) -> str | None:
        """Classify the object an expression evaluates to."""
        while isinstance(
            node, (ast.Attribute, ast.Subscript, ast.Starred, ast.Await, ast.Call)
        ):
            if not isinstance(node, ast.Call):
                node = node.value
                continue
            func = node.func
            if isinstance(func, ast.Name) and not any(
                func.id in scope for scope in scopes
            ):
                if func.id in self._class_names:
                    return "project"
                if func.id in _FORWARDING_CALLS:
                    if not node.args:
                        return None
                    node = node.args[0]
                    continue
                if func.id in _BUILTIN_NAMES:
                    return "external"
            node = func
        if isinstance(node, ast.Name):
            return self._name_owner(node.id, scopes)
        return None

    def _name_owner(
        self, name: str, scopes: list[dict[str, str | None]]
    ) -> str | None:
        for scope in reversed(scopes):
            if name in scope:
                return scope[name]
        if name in self._module.external_names:
            return "external"
        if name in self._class_names:
            return "project"
        return None


def _parse_module(
    path: str,
    source: str,
    parse_cache: dict[str, tuple[str, ast.Module | None]],
) -> _Module | None:
    """Parse one file, reusing a cached tree when the text is unchanged.

    Args:
        path: Workspace-relative path.
        source: File text.
        parse_cache: Shared parse cache, updated in place.

    Returns:
        Module record, or ``None`` for unparsable or unnamed files.
    """
    cached = parse_cache.get(path)
    if cached is not None and cached[0] == source:
        tree = cached[1]
    else:
        try:
            tree = ast.parse(source, filename=path)
        except (SyntaxError, ValueError) as exc:
            logger.warning(f"Skipping unparsable source file (path={path} error={exc})")
            tree = None
        parse_cache[path] = (source, tree)
    if tree is None:
        return None

    parts = list(PurePosixPath(path).with_suffix("").parts)
    if len(parts) > 1 and parts[0] == "src":
        parts = parts[1:]
    is_package = parts[-1] == "__init__"
    if is_package:
        parts = parts[:-1]
    if not parts:
        logger.debug(f"Skipping source file without module name (path={path})")
        return None
    return _Module(
        path=path,
        name=".".join(parts),
        project=parts[0],
        is_package=is_package,
        tree=tree,
        lines=_LINE_BREAK.split(source),
    )


def _import_source(module: _Module, node: ast.ImportFrom) -> str | None:
    """Resolve the absolute module name of a ``from ... import``."""
    if node.level == 0:
        return node.module
    package = module.name.split(".")
    if not module.is_package:
        package = package[:-1]
    drop = node.level - 1
    if drop > len(package):
        return None
    if drop:
        package = package[:-drop]
    if node.module:
        package.append(node.module)
    return ".".join(package) or None


def _name_position(module: _Module, node: ast.AST, name: str) -> _Position | None:
    """Locate the identifier token of a node as (line, character column)."""
    lines = module.lines
    if isinstance(node, _DEFINITION_TYPES):
        line = node.lineno
        start = _char_column(lines, line, node.col_offset)
        match = _DEF_PREFIX.match(lines[line - 1], start)
        if match is None:
            return None
        return line, match.end()
    if isinstance(node, ast.Attribute):
        line = node.end_lineno
        end = _char_column(lines, line, node.end_col_offset)
        return line, end - len(name)
    if isinstance(node, (ast.Name, ast.arg, ast.keyword, ast.alias)):
        return node.lineno, _char_column(lines, node.lineno, node.col_offset)
    return None


def _char_column(lines: list[str], line: int, byte_offset: int) -> int:
    """Convert an ast UTF-8 byte offset into a character column."""
    encoded = lines[line - 1].encode("utf-8")
    return len(encoded[:byte_offset].decode("utf-8", errors="ignore"))


def _replace_at(
    source: str, positions: list[_Position], old_name: str, new_name: str
) -> tuple[str, set[_Position]]:
    """Replace ``old_name`` at each position, right to left per line.

    Positions whose text does not read ``old_name`` are skipped.

    Returns:
        Edited text and the positions actually replaced.
    """
    lines = _LINE_BREAK.split(source)
    applied: set[_Position] = set()
    for line, column in sorted(positions, reverse=True):
        text = lines[line - 1]
        if text[column : column + len(old_name)] != old_name:
            logger.debug(f"Skipping stale edit (line={line} column={column})")
            continue
        lines[line - 1] = text[:column] + new_name + text[column + len(old_name) :]
        applied.add((line, column))
    return "".join(lines), applied


def _block_statements(body: list[ast.stmt]) -> Iterator[ast.stmt]:
    """Yield statements of a block, descending into if/try/with blocks."""
    for statement in body:
        if isinstance(statement, ast.If):
            yield from _block_statements(statement.body)
            yield from _block_statements(statement.orelse)
        elif isinstance(statement, ast.Try):
            yield from _block_statements(statement.body)
            for handler in statement.handlers:
                yield from _block_statements(handler.body)
            yield from _block_statements(statement.orelse)
            yield from _block_statements(statement.finalbody)
        elif isinstance(statement, ast.With):
            yield from _block_statements(statement.body)
        else:
            yield statement


def _parameters(function: _FunctionNode, skip_receiver: bool) -> list[ast.arg]:
    args = function.args
    positional = [*args.posonlyargs, *args.args]
    if skip_receiver and positional:
        positional = positional[1:]
    ordered = [*positional]
    if args.vararg:
        ordered.append(args.vararg)
    ordered.extend(args.kwonlyargs)
    if args.kwarg:
        ordered.append(args.kwarg)
    return ordered


def _all_args(args: ast.arguments) -> list[ast.arg]:
    found = [*args.posonlyargs, *args.args, *args.kwonlyargs]
    if args.vararg:
        found.append(args.vararg)
    if args.kwarg:
        found.append(args.kwarg)
    return found


def _receiver_name(function: _FunctionNode) -> str | None:
    if _has_decorator(function, "staticmethod"):
        return None
    positional = [*function.args.posonlyargs, *function.args.args]
    return positional[0].arg if positional else None


def _has_decorator(node: ast.ClassDef | _FunctionNode, name: str) -> bool:
    for decorator in node.decorator_list:
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        dotted = _dotted_name(target)
        if dotted is not None and dotted.rsplit(".", 1)[-1] == name:
            return True
    return False


def _target_names(target: ast.expr) -> list[ast.Name]:
    if isinstance(target, ast.Name):
        return [target]
    if isinstance(target, (ast.Tuple, ast.List)):
        return [name for item in target.elts for name in _target_names(item)]
    if isinstance(target, ast.Starred):
        return _target_names(target.value)
    return []


def _dotted_name(node: ast.expr) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        base = _dotted_name(node.value)
        return f"{base}.{node.attr}" if base else None
    return None


def _root_node(node: ast.expr) -> ast.Name | None:
    while isinstance(node, (ast.Attribute, ast.Subscript, ast.Call)):
        node = node.func if isinstance(node, ast.Call) else node.value
    return node if isinstance(node, ast.Name) else None


def _local_bindings(
    function: ast.Lambda | _FunctionNode, ignored: set[int]
) -> set[str]:
    """Collect names bound in a function's own scope.

    Nested functions, lambdas and comprehensions are not entered. Names
    declared ``global`` or ``nonlocal`` are not local, and neither are the
    import aliases listed in ``ignored``.
    """
    bound = {arg.arg for arg in _all_args(function.args)}
    if isinstance(function, ast.Lambda):
        return bound
    declared: set[str] = set()
    stack: list[ast.AST] = list(function.body)
    while stack:
        node = stack.pop()
        if isinstance(node, (ast.Global, ast.Nonlocal)):
            declared.update(node.names)
            continue
        if isinstance(node, _DEFINITION_TYPES):
            bound.add(node.name)
            stack.extend(node.decorator_list)
            continue
        if isinstance(node, (ast.Lambda, *_COMPREHENSION_TYPES)):
            continue
        if isinstance(node, ast.Name) and not isinstance(node.ctx, ast.Load):
            bound.add(node.id)
        elif isinstance(node, ast.alias) and id(node) not in ignored:
            bound.add(node.asname or node.name.split(".")[0])
        elif isinstance(node, ast.ExceptHandler) and node.name:
            bound.add(node.name)
        stack.extend(ast.iter_child_nodes(node))
    return bound - declared


def _enclosing_expressions(function: ast.Lambda | _FunctionNode) -> list[ast.AST]:
    """Return the parts of a function evaluated in its enclosing scope."""
    args = function.args
    found: list[ast.AST] = [*args.defaults, *(item for item in args.kw_defaults if item)]
    if isinstance(function, ast.Lambda):
        return found
    found.extend(function.decorator_list)
    found.extend(arg.annotation for arg in _all_args(args) if arg.annotation)
    if function.returns is not None:
        found.append(function.returns)
    return found


def _bound_values(node: ast.AST) -> list[tuple[list[str], ast.expr]]:
    """Pair the names a statement or clause binds with the value they take."""
    if isinstance(node, ast.Assign):
        names = [name.id for target in node.targets for name in _target_names(target)]
        return [(names, node.value)]
    if isinstance(node, (ast.AnnAssign, ast.NamedExpr)) and node.value is not None:
        return [([name.id for name in _target_names(node.target)], node.value)]
    if isinstance(node, (ast.For, ast.AsyncFor, ast.comprehension)):
        return [([name.id for name in _target_names(node.target)], node.iter)]
    if isinstance(node, (ast.With, ast.AsyncWith)):
        return [
            ([name.id for name in _target_names(item.optional_vars)], item.context_expr)
            for item in node.items
            if item.optional_vars is not None
        ]
    return []


def _aliased_module(module: _Module, node: ast.expr) -> str | None:
    """Return the project module a receiver expression names, if any."""
    dotted = _dotted_name(node)
    if dotted is None:
        return None
    head, _, rest = dotted.partition(".")
    if head not in module.module_aliases:
        return None
    target = module.module_aliases[head]
    return f"{target}.{rest}" if rest else target


def _callee_name(call: ast.Call) -> str | None:
    dotted = _dotted_name(call.func)
    return dotted.rsplit(".", 1)[-1] if dotted else None


def _is_dynamic_access(call: ast.Call, name: str) -> bool:
    return (
        isinstance(call.func, ast.Name)
        and call.func.id in _DYNAMIC_ATTRIBUTE_CALLS
        and len(call.args) >= 2
        and isinstance(call.args[1], ast.Constant)
        and call.args[1].value == name
    )


def _identifiers(tree: ast.Module) -> set[str]:
    """Collect every identifier spelled in a module."""
    found: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name):
            found.add(node.id)
        elif isinstance(node, ast.Attribute):
            found.add(node.attr)
        elif isinstance(node, ast.arg):
            found.add(node.arg)
        elif isinstance(node, _DEFINITION_TYPES):
            found.add(node.name)
        elif isinstance(node, ast.alias):
            found.update(node.name.split("."))
            if node.asname:
                found.add(node.asname)
        elif isinstance(node, ast.keyword) and node.arg:
            found.add(node.arg)
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            found.update(node.names)
    return found


def _is_legal_name(name: str) -> bool:
    return (
        name.isidentifier()
        and not keyword.iskeyword(name)
        and not keyword.issoftkeyword(name)
    )


def _is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")
