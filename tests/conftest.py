import sys
from pathlib import Path

import pytest


def _add_src_to_path() -> None:
    root = Path(__file__).resolve().parents[1]
    src_path = root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


_add_src_to_path()

from deceiver.workspace import Project, SymbolKind  # noqa: E402
from deceiver.workspaces.memory import GraphSymbol, SymbolGraph  # noqa: E402


def graph_symbol(
    symbol_id: str, kind: SymbolKind, name: str, project: str = "Core", **fields
) -> GraphSymbol:
    return GraphSymbol(id=symbol_id, kind=kind, name=name, project=project, **fields)


def build_shop_graph(documentation_ids: bool = True) -> SymbolGraph:
    """Two projects: an interface with an implementation, and an entry point."""
    return SymbolGraph(
        projects=(Project(name="App", references=("Core",)), Project(name="Core")),
        symbols=(
            graph_symbol(
                "repo", SymbolKind.TYPE, "IRepository", namespace="Shop",
                is_interface=True,
            ),
            graph_symbol("repo.load", SymbolKind.METHOD, "Load", container="repo"),
            graph_symbol(
                "repo.load.id", SymbolKind.PARAMETER, "id", container="repo.load",
                type="int",
            ),
            graph_symbol(
                "store", SymbolKind.TYPE, "SqlRepository", namespace="Shop",
                interfaces=("repo",),
            ),
            graph_symbol("store.load", SymbolKind.METHOD, "Load", container="store"),
            graph_symbol(
                "store.load.id", SymbolKind.PARAMETER, "id", container="store.load",
                type="int",
            ),
            graph_symbol("store.cache", SymbolKind.FIELD, "cache", container="store"),
            graph_symbol(
                "store.helper", SymbolKind.METHOD, "Helper", container="store"
            ),
            graph_symbol(
                "store.helper.key", SymbolKind.PARAMETER, "key",
                container="store.helper", type="string",
            ),
            graph_symbol(
                "program", SymbolKind.TYPE, "Program", project="App", namespace="Shop"
            ),
            graph_symbol(
                "program.main", SymbolKind.METHOD, "Main", project="App",
                container="program",
            ),
            graph_symbol(
                "program.text", SymbolKind.METHOD, "ToString", project="App",
                container="program", overrides="object.text",
            ),
            graph_symbol(
                "object", SymbolKind.TYPE, "Object", project="System",
                namespace="System", external=True,
            ),
            graph_symbol(
                "object.text", SymbolKind.METHOD, "ToString", project="System",
                container="object", external=True,
            ),
        ),
        documentation_ids=documentation_ids,
    )


@pytest.fixture
def shop_graph() -> SymbolGraph:
    return build_shop_graph()
