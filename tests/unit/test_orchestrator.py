# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for obfuscation and restoration runs."""

import json
from dataclasses import replace
from pathlib import Path

import pytest

from deceiver.dictionary import Dictionary
from deceiver.mapping import JsonMappingStore
from deceiver.names import GenerationSession, NameGenerator
from deceiver.orchestrator import RenameOrchestrator, RunError, RunState, has_name_conflict
from deceiver.workspace import Project, RenameError, Symbol, SymbolKind
from deceiver.workspaces.memory import (
    GraphSymbol,
    MemorySnapshot,
    MemoryWorkspace,
    SymbolGraph,
)

TINY = Dictionary(
    prefixes=("Core",),
    nouns=("Node",),
    suffixes=("Pool",),
    verbs=("sync",),
    adjectives=("cached",),
    technical_nouns=("buffer",),
)


def _orchestrator(
    workspace: MemoryWorkspace,
    map_path: Path,
    seed: int = 11,
    **options,
) -> RenameOrchestrator:
    return RenameOrchestrator(
        workspace=workspace,
        store=JsonMappingStore(map_path),
        generator=NameGenerator(session=GenerationSession(seed=seed)),
        **options,
    )


def _method(name: str, parameter_types: tuple[str, ...] = (), handle: str = "m") -> Symbol:
    return Symbol(
        handle=handle,
        kind=SymbolKind.METHOD,
        name=name,
        metadata_name=name,
        container="Shop.Cart",
        assembly="Core",
        parameter_types=parameter_types,
    )


def test_orch_001_obfuscate_then_restore_recovers_every_name(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    map_path = tmp_path / "map.json"
    original = MemorySnapshot(shop_graph).names()
    workspace = MemoryWorkspace(graph=shop_graph)

    summary = _orchestrator(workspace, map_path).obfuscate()

    assert workspace.applied is not None
    obfuscated = workspace.applied.graph
    renamed = workspace.applied.names()
    assert renamed["program.main"] == "Main"
    assert renamed["program.text"] == "ToString"
    assert renamed["repo.load"] == renamed["store.load"] != "Load"
    assert renamed["store.helper"] != "Helper"
    assert summary.changes_applied is True

    restore_workspace = MemoryWorkspace(graph=obfuscated)
    restored = _orchestrator(restore_workspace, map_path).restore()

    assert restore_workspace.applied is not None
    assert restore_workspace.applied.names() == original
    assert restored.mapping_schema == "current"
    assert restored.symbols_renamed == summary.symbols_renamed
    assert restored.symbols_skipped == 0


def test_orch_002_summary_counts_scanned_and_renamed_symbols(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    orchestrator = _orchestrator(MemoryWorkspace(graph=shop_graph), tmp_path / "m.json")

    summary = orchestrator.obfuscate()

    assert summary.state is RunState.DONE
    assert orchestrator.state is RunState.DONE
    assert summary.mode == "obfuscate"
    assert summary.projects_processed == 2
    assert summary.symbols_discovered == 12
    assert summary.symbols_eligible == 9
    assert summary.symbols_renamed == 9
    assert summary.symbols_failed == 0
    assert summary.duplicate_names_accepted == 0
    assert len(orchestrator.records) == 9
    assert orchestrator.records[0].original_name == "IRepository"
    assert orchestrator.records[0].original_key == "T:Shop.IRepository"


def test_orch_003_mapping_file_lists_records_in_rename_order(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    map_path = tmp_path / "m.json"
    orchestrator = _orchestrator(MemoryWorkspace(graph=shop_graph), map_path)

    orchestrator.obfuscate()

    raw = json.loads(map_path.read_text(encoding="utf-8"))
    assert [item["OriginalName"] for item in raw] == [
        record.original_name for record in orchestrator.records
    ]
    assert all(set(item) == {"OriginalName", "OriginalKey", "ObfuscatedKey"} for item in raw)


def test_orch_004_same_seed_gives_same_mapping(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    first = _orchestrator(MemoryWorkspace(graph=shop_graph), tmp_path / "a.json", seed=3)
    second = _orchestrator(MemoryWorkspace(graph=shop_graph), tmp_path / "b.json", seed=3)

    first.obfuscate()
    second.obfuscate()

    assert first.records == second.records


def test_orch_005_failed_rename_is_skipped_and_not_recorded(
    tmp_path: Path, shop_graph: SymbolGraph, monkeypatch: pytest.MonkeyPatch
) -> None:
    original_rename = MemorySnapshot.rename

    def locked_rename(
        self: MemorySnapshot, symbol: Symbol, new_name: str
    ) -> MemorySnapshot:
        if symbol.name == "Helper":
            raise RenameError("locked")
        return original_rename(self, symbol, new_name)

    monkeypatch.setattr(MemorySnapshot, "rename", locked_rename)
    workspace = MemoryWorkspace(graph=shop_graph)
    orchestrator = _orchestrator(workspace, tmp_path / "m.json")

    summary = orchestrator.obfuscate()

    assert summary.symbols_failed == 1
    assert summary.symbols_renamed == 8
    assert "Helper" not in {record.original_name for record in orchestrator.records}
    assert workspace.applied is not None
    assert workspace.applied.names()["store.helper"] == "Helper"


def test_orch_006_exhausted_names_are_accepted_and_counted(tmp_path: Path) -> None:
    graph = SymbolGraph(
        projects=(Project(name="Core"),),
        symbols=(
            GraphSymbol(id="t", kind=SymbolKind.TYPE, name="Cart", project="Core"),
            *(
                GraphSymbol(
                    id=f"t.{name}",
                    kind=SymbolKind.FIELD,
                    name=name,
                    project="Core",
                    container="t",
                )
                for name in ("owner", "total", "discount", "currency")
            ),
        ),
    )
    orchestrator = RenameOrchestrator(
        workspace=MemoryWorkspace(graph=graph),
        store=JsonMappingStore(tmp_path / "m.json"),
        generator=NameGenerator(dictionary=TINY, session=GenerationSession(seed=9)),
    )

    summary = orchestrator.obfuscate()

    assert summary.symbols_renamed == 5
    assert summary.duplicate_names_accepted > 0


def test_orch_007_excluded_projects_are_left_untouched(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    workspace = MemoryWorkspace(graph=shop_graph)
    orchestrator = _orchestrator(
        workspace, tmp_path / "m.json", excluded_projects=[" Core ", ""]
    )

    summary = orchestrator.obfuscate()

    assert summary.projects_processed == 1
    assert summary.symbols_renamed == 1
    assert workspace.applied is not None
    names = workspace.applied.names()
    assert names["repo"] == "IRepository"
    assert names["program"] != "Program"


def test_orch_008_restore_without_mapping_fails(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    workspace = MemoryWorkspace(graph=shop_graph)
    orchestrator = _orchestrator(workspace, tmp_path / "missing.json")

    with pytest.raises(RunError):
        orchestrator.restore()

    assert orchestrator.state is RunState.FAILED
    assert workspace.applied is None


def test_orch_009_mapping_write_failure_aborts_before_apply(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    map_path = tmp_path / "m.json"
    map_path.mkdir()
    workspace = MemoryWorkspace(graph=shop_graph)
    orchestrator = _orchestrator(workspace, map_path)

    with pytest.raises(RunError):
        orchestrator.obfuscate()

    assert orchestrator.state is RunState.FAILED
    assert workspace.applied is None


def test_orch_010_partial_apply_is_reported(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    class ReadOnlyWorkspace(MemoryWorkspace):
        def apply(self, snapshot: MemorySnapshot) -> bool:
            super().apply(snapshot)
            return False

    summary = _orchestrator(ReadOnlyWorkspace(graph=shop_graph), tmp_path / "m.json").obfuscate()

    assert summary.changes_applied is False
    assert summary.state is RunState.DONE


def test_orch_011_legacy_mapping_restores_by_name(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    symbols = tuple(
        replace(item, name="fetch_buffer")
        if item.id == "store.helper"
        else item
        for item in shop_graph.symbols
    )
    map_path = tmp_path / "legacy.json"
    map_path.write_text(
        json.dumps(
            {
                "Shop.SqlRepository::Helper:Method": "fetch_buffer",
                "Shop.SqlRepository::Missing:Method": "sync_index",
            }
        ),
        encoding="utf-8",
    )
    workspace = MemoryWorkspace(graph=SymbolGraph(projects=shop_graph.projects, symbols=symbols))

    summary = _orchestrator(workspace, map_path).restore()

    assert summary.mapping_schema == "legacy"
    assert summary.symbols_eligible == 2
    assert summary.symbols_renamed == 1
    assert summary.symbols_skipped == 1
    assert workspace.applied is not None
    assert workspace.applied.names()["store.helper"] == "Helper"


def test_orch_012_unmatched_records_are_skipped(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    map_path = tmp_path / "m.json"
    map_path.write_text(
        json.dumps(
            [
                {
                    "OriginalName": "Cart",
                    "OriginalKey": "T:Shop.Cart",
                    "ObfuscatedKey": "T:Shop.CoreNode",
                }
            ]
        ),
        encoding="utf-8",
    )
    workspace = MemoryWorkspace(graph=shop_graph)

    summary = _orchestrator(workspace, map_path).restore()

    assert summary.symbols_renamed == 0
    assert summary.symbols_skipped == 1
    assert workspace.applied is not None
    assert workspace.applied.names() == MemorySnapshot(shop_graph).names()


def test_orch_013_overloads_do_not_conflict_when_signatures_differ() -> None:
    symbol = _method("Load", ("int",), handle="a")
    sibling = _method("sync_buffer", ("string",), handle="b")

    assert has_name_conflict("sync_buffer", symbol, [sibling]) is False
    assert has_name_conflict(
        "sync_buffer", symbol, [sibling], supports_overloading=False
    ) is True
    assert has_name_conflict(
        "sync_buffer", symbol, [_method("sync_buffer", ("int",), handle="c")]
    ) is True


def test_orch_014_fields_conflict_with_any_same_named_sibling() -> None:
    field = Symbol(
        handle="f",
        kind=SymbolKind.FIELD,
        name="total",
        metadata_name="total",
        container="Shop.Cart",
        assembly="Core",
    )

    assert has_name_conflict("cached_buffer", field, [_method("cached_buffer")]) is True
    assert has_name_conflict("cached_buffer", field, [field]) is False
    assert has_name_conflict("temp_buffer", field, [_method("cached_buffer")]) is False


def test_orch_015_structural_keys_round_trip_without_documentation_ids(
    tmp_path: Path, shop_graph: SymbolGraph
) -> None:
    graph = replace(shop_graph, documentation_ids=False)
    map_path = tmp_path / "map.json"
    workspace = MemoryWorkspace(graph=graph)
    orchestrator = _orchestrator(workspace, map_path)

    summary = orchestrator.obfuscate()

    assert summary.symbols_renamed > 0
    assert all("::" in record.original_key for record in orchestrator.records)
    assert workspace.applied is not None
    assert workspace.applied.names() != MemorySnapshot(graph).names()

    restore_workspace = MemoryWorkspace(graph=workspace.applied.graph)
    restored = _orchestrator(restore_workspace, map_path).restore()

    assert restore_workspace.applied is not None
    assert restore_workspace.applied.names() == MemorySnapshot(graph).names()
    assert restored.symbols_renamed == summary.symbols_renamed
    assert restored.symbols_skipped == 0


def test_orch_016_unexpected_service_error_fails_only_that_symbol(
    tmp_path: Path, shop_graph: SymbolGraph, monkeypatch: pytest.MonkeyPatch
) -> None:
    original_rename = MemorySnapshot.rename

    def broken_rename(
        self: MemorySnapshot, symbol: Symbol, new_name: str
    ) -> MemorySnapshot:
        if symbol.name == "cache":
            raise ValueError("service crashed")
        return original_rename(self, symbol, new_name)

    monkeypatch.setattr(MemorySnapshot, "rename", broken_rename)
    workspace = MemoryWorkspace(graph=shop_graph)
    orchestrator = _orchestrator(workspace, tmp_path / "m.json")

    summary = orchestrator.obfuscate()

    assert summary.state is RunState.DONE
    assert summary.symbols_failed == 1
    assert summary.symbols_renamed == 8
    assert workspace.applied is not None
    assert workspace.applied.names()["store.cache"] == "cache"
