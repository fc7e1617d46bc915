# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for the Python source workspace."""

import ast
from pathlib import Path

import pytest

from deceiver.eligibility import EligibilityClassifier
from deceiver.mapping import JsonMappingStore
from deceiver.names import GenerationSession, NameGenerator
from deceiver.orchestrator import RenameOrchestrator
from deceiver.workspace import Project, RenameError, Symbol, SymbolKind, WorkspaceError
from deceiver.workspaces.python import PythonSnapshot, PythonWorkspace

SHOP_MODELS = (
    "class Basket:\n"
    '    """A shopping basket."""\n'
    "\n"
    "    def __init__(self, owner):\n"
    "        self.owner = owner\n"
    "        self.entries = []\n"
    "\n"
    "    def add_item(self, item, quantity=1):\n"
    "        self.entries.append((item, quantity))\n"
    "        return self\n"
    "\n"
    "    @property\n"
    "    def size(self):\n"
    "        return sum(quantity for _, quantity in self.entries)\n"
    "\n"
    "\n"
    "def total(basket):\n"
    "    return basket.size\n"
)
SHOP_CLI = (
    "from shop.models import Basket, total\n"
    "\n"
    "\n"
    "def main():\n"
    '    basket = Basket(owner="me")\n'
    '    basket.add_item("apple", quantity=2)\n'
    "    return total(basket)\n"
)


def _write(root: Path, files: dict[str, str]) -> None:
    for relative, text in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")


def _find(snapshot: PythonSnapshot, name: str, kind: SymbolKind) -> Symbol:
    for project in snapshot.projects():
        for symbol in snapshot.declarations(project):
            if symbol.name == name and symbol.kind is kind:
                return symbol
    raise AssertionError(f"symbol not found: {name}")


def _shop(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            "shop/__init__.py": "",
            "shop/models.py": SHOP_MODELS,
            "shop/cli.py": SHOP_CLI,
        },
    )
    return root


def test_py_001_obfuscate_and_restore_round_trip(tmp_path: Path) -> None:
    root = _shop(tmp_path)
    map_path = tmp_path / "map.json"

    def orchestrator() -> RenameOrchestrator:
        return RenameOrchestrator(
            workspace=PythonWorkspace(root=root),
            store=JsonMappingStore(map_path),
            generator=NameGenerator(session=GenerationSession(seed=21)),
            classifier=EligibilityClassifier(entry_point="main"),
        )

    summary = orchestrator().obfuscate()

    models = (root / "shop" / "models.py").read_text(encoding="utf-8")
    cli = (root / "shop" / "cli.py").read_text(encoding="utf-8")
    ast.parse(models)
    ast.parse(cli)
    assert summary.symbols_renamed == 10
    assert summary.symbols_failed == 0
    assert summary.changes_applied is True
    assert "class Basket" not in models
    assert "def __init__(self, " in models
    assert "def main():" in cli
    assert "add_item" not in cli
    assert "quantity=" not in cli
    assert '"apple"' in cli

    restored = orchestrator().restore()

    assert restored.symbols_renamed == 10
    assert restored.symbols_skipped == 0
    assert (root / "shop" / "models.py").read_text(encoding="utf-8") == SHOP_MODELS
    assert (root / "shop" / "cli.py").read_text(encoding="utf-8") == SHOP_CLI


def test_py_002_declarations_cover_every_symbol_kind(tmp_path: Path) -> None:
    snapshot = PythonWorkspace(root=_shop(tmp_path)).open()

    found = {
        (symbol.name, symbol.kind)
        for project in snapshot.projects()
        for symbol in snapshot.declarations(project)
    }

    assert found == {
        ("Basket", SymbolKind.TYPE),
        ("__init__", SymbolKind.METHOD),
        ("owner", SymbolKind.PARAMETER),
        ("add_item", SymbolKind.METHOD),
        ("item", SymbolKind.PARAMETER),
        ("quantity", SymbolKind.PARAMETER),
        ("size", SymbolKind.PROPERTY),
        ("owner", SymbolKind.FIELD),
        ("entries", SymbolKind.FIELD),
        ("total", SymbolKind.METHOD),
        ("basket", SymbolKind.PARAMETER),
        ("main", SymbolKind.METHOD),
    }
    assert snapshot.projects() == [Project(name="shop")]


def test_py_003_documentation_ids_use_dotted_paths(tmp_path: Path) -> None:
    snapshot = PythonWorkspace(root=_shop(tmp_path)).open()

    assert snapshot.documentation_id(
        _find(snapshot, "Basket", SymbolKind.TYPE)
    ) == "T:shop.models.Basket"
    assert snapshot.documentation_id(
        _find(snapshot, "add_item", SymbolKind.METHOD)
    ) == "M:shop.models.Basket.add_item"
    assert snapshot.documentation_id(
        _find(snapshot, "size", SymbolKind.PROPERTY)
    ) == "P:shop.models.Basket.size"
    assert snapshot.documentation_id(
        _find(snapshot, "entries", SymbolKind.FIELD)
    ) == "F:shop.models.Basket.entries"
    assert snapshot.documentation_id(
        _find(snapshot, "quantity", SymbolKind.PARAMETER)
    ) is None


def test_py_004_interface_and_external_base_members_are_not_eligible(
    tmp_path: Path,
) -> None:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            "store/base.py": (
                "import json\n"
                "from abc import ABC, abstractmethod\n"
                "\n"
                "\n"
                "class Store(ABC):\n"
                "    @abstractmethod\n"
                "    def fetch(self, key):\n"
                "        raise NotImplementedError\n"
                "\n"
                "\n"
                "class MemoryStore(Store):\n"
                "    def fetch(self, key):\n"
                "        return key\n"
                "\n"
                "\n"
                "class Encoder(json.JSONEncoder):\n"
                "    def default(self, o):\n"
                "        return str(o)\n"
                "\n"
                "    def helper(self):\n"
                "        return 1\n"
            ),
        },
    )
    snapshot = PythonWorkspace(root=root).open()
    classifier = EligibilityClassifier(entry_point="main")
    members = {
        (symbol.container, symbol.name): symbol
        for project in snapshot.projects()
        for symbol in snapshot.declarations(project)
        if symbol.kind is SymbolKind.METHOD
    }

    interface_fetch = members[("store.base.Store", "fetch")]
    concrete_fetch = members[("store.base.MemoryStore", "fetch")]
    helper = members[("store.base.Encoder", "helper")]

    assert classifier.is_eligible(snapshot, interface_fetch) is True
    assert classifier.is_eligible(snapshot, concrete_fetch) is False
    assert helper.is_override is True
    assert classifier.is_eligible(snapshot, helper) is False
    assert [item.name for item in snapshot.all_interfaces(
        _find(snapshot, "MemoryStore", SymbolKind.TYPE)
    )] == ["Store"]


def test_py_005_ignored_and_unparsable_files_are_skipped(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            ".gitignore": "build/\n",
            "build/generated.py": "class Generated:\n    pass\n",
            "app/broken.py": "def broken(:\n",
            "app/good.py": "class Good:\n    pass\n",
            "app/notes.txt": "class Text:\n",
        },
    )

    snapshot = PythonWorkspace(root=root).open()

    assert sorted(snapshot.sources) == ["app/broken.py", "app/good.py"]
    names = [
        symbol.name
        for project in snapshot.projects()
        for symbol in snapshot.declarations(project)
    ]
    assert names == ["Good"]


def test_py_006_missing_root_fails_to_open(tmp_path: Path) -> None:
    with pytest.raises(WorkspaceError):
        PythonWorkspace(root=tmp_path / "missing").open()


def test_py_007_valid_identifiers_are_legal_and_unused(tmp_path: Path) -> None:
    snapshot = PythonWorkspace(root=_shop(tmp_path)).open()

    assert snapshot.is_valid_identifier("fresh_buffer") is True
    assert snapshot.is_valid_identifier("class") is False
    assert snapshot.is_valid_identifier("match") is False
    assert snapshot.is_valid_identifier("print") is False
    assert snapshot.is_valid_identifier("1buffer") is False
    assert snapshot.is_valid_identifier("Basket") is False
    assert snapshot.is_valid_identifier("entries") is False


def test_py_008_illegal_new_name_is_rejected(tmp_path: Path) -> None:
    snapshot = PythonWorkspace(root=_shop(tmp_path)).open()
    basket = _find(snapshot, "Basket", SymbolKind.TYPE)

    with pytest.raises(RenameError):
        snapshot.rename(basket, "class")

    assert snapshot.rename(basket, "Basket") is snapshot


def test_py_009_module_function_rename_follows_imports_and_exports(
    tmp_path: Path,
) -> None:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            "pkg/util.py": (
                '__all__ = ["helper"]\n'
                "\n"
                "\n"
                "def helper(value):\n"
                "    return value * 2\n"
            ),
            "pkg/app.py": (
                "import pkg.util\n"
                "from pkg.util import helper\n"
                "\n"
                "\n"
                "def run():\n"
                "    return helper(1), pkg.util.helper(value=2)\n"
            ),
        },
    )
    snapshot = PythonWorkspace(root=root).open()

    renamed = snapshot.rename(_find(snapshot, "helper", SymbolKind.METHOD), "render_frame")

    assert renamed.sources["pkg/util.py"] == (
        '__all__ = ["render_frame"]\n'
        "\n"
        "\n"
        "def render_frame(value):\n"
        "    return value * 2\n"
    )
    assert renamed.sources["pkg/app.py"] == (
        "import pkg.util\n"
        "from pkg.util import render_frame\n"
        "\n"
        "\n"
        "def run():\n"
        "    return render_frame(1), pkg.util.render_frame(value=2)\n"
    )
    assert snapshot.sources["pkg/util.py"].startswith('__all__ = ["helper"]')


def test_py_010_parameter_rename_updates_body_and_keywords(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            "pkg/util.py": "def helper(value):\n    return value * 2\n",
            "pkg/app.py": (
                "import pkg.util\n"
                "\n"
                "\n"
                "def run(value):\n"
                "    return pkg.util.helper(value=value)\n"
            ),
        },
    )
    snapshot = PythonWorkspace(root=root).open()
    parameter = next(
        symbol
        for symbol in snapshot.declarations(Project(name="pkg"))
        if symbol.kind is SymbolKind.PARAMETER and symbol.container == "pkg.util.helper"
    )

    renamed = snapshot.rename(parameter, "payload")

    assert renamed.sources["pkg/util.py"] == (
        "def helper(payload):\n    return payload * 2\n"
    )
    assert renamed.sources["pkg/app.py"].endswith(
        "def run(value):\n    return pkg.util.helper(payload=value)\n"
    )


def test_py_011_field_rename_skips_external_receivers(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            "conf/settings.py": (
                "import socket\n"
                "\n"
                "\n"
                "class Config:\n"
                "    def __init__(self):\n"
                "        self.timeout = 5\n"
                "\n"
                "    def describe(self):\n"
                '        return getattr(self, "timeout"), socket.timeout\n'
            ),
        },
    )
    snapshot = PythonWorkspace(root=root).open()

    renamed = snapshot.rename(_find(snapshot, "timeout", SymbolKind.FIELD), "grace")

    text = renamed.sources["conf/settings.py"]
    assert "self.grace = 5" in text
    assert 'getattr(self, "grace")' in text
    assert "socket.timeout" in text


def test_py_012_projects_follow_import_dependencies(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            "app/main.py": "from core.models import Item\n\n\ndef main():\n    return Item\n",
            "core/models.py": "class Item:\n    pass\n",
        },
    )

    snapshot = PythonWorkspace(root=root).open()

    assert snapshot.projects() == [
        Project(name="core"),
        Project(name="app", references=("core",)),
    ]


def test_py_013_shadowing_scopes_keep_their_own_binding(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            "calc/core.py": (
                "def data():\n"
                "    return 1\n"
                "\n"
                "\n"
                "def use(data):\n"
                "    return data + 1\n"
                "\n"
                "\n"
                "def local():\n"
                "    data = 2\n"
                "    return data\n"
                "\n"
                "\n"
                "def total():\n"
                "    values = [data for data in range(3)]\n"
                "    pick = lambda data: data\n"
                "    return data() + len(values) + pick(0)\n"
            ),
        },
    )
    snapshot = PythonWorkspace(root=root).open()

    renamed = snapshot.rename(_find(snapshot, "data", SymbolKind.METHOD), "fetch_value")

    assert renamed.sources["calc/core.py"] == (
        "def fetch_value():\n"
        "    return 1\n"
        "\n"
        "\n"
        "def use(data):\n"
        "    return data + 1\n"
        "\n"
        "\n"
        "def local():\n"
        "    data = 2\n"
        "    return data\n"
        "\n"
        "\n"
        "def total():\n"
        "    values = [data for data in range(3)]\n"
        "    pick = lambda data: data\n"
        "    return fetch_value() + len(values) + pick(0)\n"
    )


def test_py_014_locals_bound_from_external_objects_keep_attributes(
    tmp_path: Path,
) -> None:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            "app/settings.py": (
                "import argparse\n"
                "\n"
                "\n"
                "class Settings:\n"
                "    def __init__(self):\n"
                "        self.verbose = False\n"
                "\n"
                "\n"
                "def parse(argv):\n"
                "    parser = argparse.ArgumentParser()\n"
                '    parser.add_argument("--verbose", action="store_true")\n'
                "    args = parser.parse_args(argv)\n"
                "    settings = Settings()\n"
                "    settings.verbose = args.verbose\n"
                '    return settings, getattr(args, "verbose")\n'
            ),
        },
    )
    snapshot = PythonWorkspace(root=root).open()

    renamed = snapshot.rename(_find(snapshot, "verbose", SymbolKind.FIELD), "cached_flag")

    assert renamed.sources["app/settings.py"] == (
        "import argparse\n"
        "\n"
        "\n"
        "class Settings:\n"
        "    def __init__(self):\n"
        "        self.cached_flag = False\n"
        "\n"
        "\n"
        "def parse(argv):\n"
        "    parser = argparse.ArgumentParser()\n"
        '    parser.add_argument("--verbose", action="store_true")\n'
        "    args = parser.parse_args(argv)\n"
        "    settings = Settings()\n"
        "    settings.cached_flag = args.verbose\n"
        '    return settings, getattr(args, "verbose")\n'
    )


def test_py_015_parameters_of_shared_method_names_are_pinned(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    _write(
        root,
        {
            "jobs/tasks.py": (
                "class Fetch:\n"
                "    def run(self, limit):\n"
                "        return limit\n"
                "\n"
                "\n"
                "class Store:\n"
                "    def run(self, limit):\n"
                "        return limit * 2\n"
                "\n"
                "\n"
                "def go(task):\n"
                "    return task.run(limit=3)\n"
            ),
        },
    )
    snapshot = PythonWorkspace(root=root).open()
    classifier = EligibilityClassifier(entry_point="main")
    limits = [
        symbol
        for project in snapshot.projects()
        for symbol in snapshot.declarations(project)
        if symbol.kind is SymbolKind.PARAMETER and symbol.name == "limit"
    ]

    assert len(limits) == 2
    assert all(symbol.is_override for symbol in limits)
    assert not any(classifier.is_eligible(snapshot, symbol) for symbol in limits)

    summary = RenameOrchestrator(
        workspace=PythonWorkspace(root=root),
        store=JsonMappingStore(tmp_path / "map.json"),
        generator=NameGenerator(session=GenerationSession(seed=5)),
        classifier=classifier,
    ).obfuscate()

    text = (root / "jobs" / "tasks.py").read_text(encoding="utf-8")
    tree = ast.parse(text)
    parameters = {
        arg.arg
        for node in ast.walk(tree)
        if isinstance(node, ast.FunctionDef)
        for arg in node.args.args
    }
    keywords = {
        item.arg
        for node in ast.walk(tree)
        if isinstance(node, ast.Call)
        for item in node.keywords
    }
    assert summary.symbols_failed == 0
    assert "def run" not in text
    assert keywords == {"limit"}
    assert "limit" in parameters


def test_py_016_line_endings_survive_rename(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    path = root / "crates" / "models.py"
    path.parent.mkdir(parents=True)
    path.write_bytes(
        b"class Crate:\r\n    pass\r\n\r\n\r\ndef build():\r\n    return Crate()\r\n"
    )
    workspace = PythonWorkspace(root=root)
    snapshot = workspace.open()

    renamed = snapshot.rename(_find(snapshot, "Crate", SymbolKind.TYPE), "NodePool")

    assert workspace.apply(renamed) is True
    assert path.read_bytes() == (
        b"class NodePool:\r\n    pass\r\n\r\n\r\ndef build():\r\n    return NodePool()\r\n"
    )
