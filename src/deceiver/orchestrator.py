# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Drive obfuscation and restoration runs over a workspace."""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Literal, NoReturn

from deceiver.eligibility import EligibilityClassifier
from deceiver.identity import symbol_key
from deceiver.mapping import (
    MappingSchema,
    MappingStore,
    MappingStoreError,
    SymbolMapping,
)
from deceiver.names import NameGenerator
from deceiver.workspace import (
    Project,
    RenameError,
    Symbol,
    SymbolKind,
    Workspace,
    WorkspaceError,
    WorkspaceSnapshot,
)

logger = logging.getLogger(__name__)

MAX_CONFLICT_ATTEMPTS: int = 200

RunMode = Literal["obfuscate", "restore"]
_IndexKey = Callable[[WorkspaceSnapshot, Symbol], str]


class RunState(str, Enum):
    """Lifecycle states of one run."""

    IDLE = "idle"
    LOADING_MAP = "loading_map"
    SCANNING = "scanning"
    RENAMING = "renaming"
    RESTORING = "restoring"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class RunError(RuntimeError):
    """Represent an unrecoverable run failure."""


@dataclass(frozen=True)
class RunSummary:
    """Represent run counters.

    Attributes:
        mode: Run direction.
        state: Final run state.
        projects_processed: Projects scanned, exclusions left out.
        symbols_discovered: Distinct declarations seen while scanning.
        symbols_eligible: Declarations queued for renaming (obfuscate) or
            mapping records available (restore).
        symbols_renamed: Renames applied.
        symbols_skipped: Candidates or records left untouched.
        symbols_failed: Renames that raised and were skipped.
        duplicate_names_accepted: Names accepted after exhausting retries.
        mapping_schema: Mapping schema used by a restore run.
        changes_applied: Whether every edit reached storage.
        elapsed_ms: Wall-clock run time.
    """

    mode: RunMode
    state: RunState
    projects_processed: int
    symbols_discovered: int
    symbols_eligible: int
    symbols_renamed: int
    symbols_skipped: int
    symbols_failed: int
    duplicate_names_accepted: int
    mapping_schema: MappingSchema | None
    changes_applied: bool
    elapsed_ms: int


@dataclass(frozen=True)
class _Candidate:
    symbol: Symbol
    key: str


@dataclass
class _Counters:
    projects: int = 0
    discovered: int = 0
    eligible: int = 0
    renamed: int = 0
    skipped: int = 0
    failed: int = 0
    duplicates: int = 0


class RenameOrchestrator:
    """Rename eligible symbols and restore them from a mapping file."""

    def __init__(
        self,
        workspace: Workspace,
        store: MappingStore,
        generator: NameGenerator | None = None,
        classifier: EligibilityClassifier | None = None,
        excluded_projects: Iterable[str] = (),
    ) -> None:
        """Initialize orchestrator.

        Args:
            workspace: Workspace service to load and apply snapshots.
            store: Durable mapping storage.
            generator: Name generator carrying the run's session.
            classifier: Rename policy.
            excluded_projects: Project names left untouched.
        """
        self._workspace = workspace
        self._store = store
        self._generator = generator or NameGenerator()
        self._classifier = classifier or EligibilityClassifier()
        self._excluded_projects = frozenset(
            name.strip() for name in excluded_projects if name.strip()
        )
        self.state = RunState.IDLE
        self.records: list[SymbolMapping] = []
        self._assigned_names: set[str] = set()

    def obfuscate(self) -> RunSummary:
        """Rename every eligible symbol and persist the mapping.

        Returns:
            Run summary.

        Raises:
            RunError: If the workspace cannot be loaded or the mapping cannot
                be written.
        """
        started = time.monotonic()
        self.state = RunState.IDLE
        self.records = []
        self._assigned_names = set()
        self._generator.reset()
        counters = _Counters()

        try:
            snapshot = self._workspace.open()
            seen_keys: set[str] = set()
            for project in self._included_projects(snapshot):
                counters.projects += 1
                self.state = RunState.SCANNING
                candidates = self._scan_candidates(
                    snapshot=snapshot,
                    project=project,
                    seen_keys=seen_keys,
                    counters=counters,
                )
                self.state = RunState.RENAMING
                logger.info(
                    f"Renaming project symbols (project={project.name} "
                    f"candidates={len(candidates)})"
                )
                for candidate in candidates:
                    snapshot = self._rename_candidate(
                        snapshot=snapshot, candidate=candidate, counters=counters
                    )

            self.state = RunState.PERSISTING
            self._store.save(self.records)
            applied = self._apply(snapshot)
        except (WorkspaceError, MappingStoreError) as exc:
            self._fail(str(exc), exc)

        counters.duplicates = self._generator.session.duplicates_accepted
        self.state = RunState.DONE
        return self._summary(
            mode="obfuscate",
            counters=counters,
            mapping_schema=None,
            applied=applied,
            started=started,
        )

    def restore(self) -> RunSummary:
        """Rename symbols back to the names recorded in the mapping.

        Returns:
            Run summary.

        Raises:
            RunError: If the mapping or the workspace cannot be loaded.
        """
        started = time.monotonic()
        self.state = RunState.LOADING_MAP
        counters = _Counters()
        document = self._store.load()
        if document is None:
            self._fail("Could not load mapping file")
        counters.eligible = len(document.records)
        logger.info(
            f"Loaded symbol mappings (records={len(document.records)} "
            f"schema={document.schema})"
        )

        try:
            self.state = RunState.SCANNING
            snapshot = self._workspace.open()
            projects = self._included_projects(snapshot)
            counters.projects = len(projects)
            self.state = RunState.RESTORING
            if document.schema == "current":
                snapshot = self._restore_records(
                    snapshot=snapshot,
                    projects=projects,
                    records=list(reversed(document.records)),
                    index_key=symbol_key,
                    counters=counters,
                )
            else:
                logger.warning(
                    "Restoring from legacy mapping; symbols are matched by name"
                )
                snapshot = self._restore_records(
                    snapshot=snapshot,
                    projects=projects,
                    records=list(document.records),
                    index_key=_symbol_name,
                    counters=counters,
                )
            self.state = RunState.PERSISTING
            applied = self._apply(snapshot)
        except WorkspaceError as exc:
            self._fail(str(exc), exc)

        self.state = RunState.DONE
        return self._summary(
            mode="restore",
            counters=counters,
            mapping_schema=document.schema,
            applied=applied,
            started=started,
        )

    def _included_projects(self, snapshot: WorkspaceSnapshot) -> list[Project]:
        """Return projects in dependency order, exclusions removed.

        Args:
            snapshot: Current snapshot.

        Returns:
            Projects to process.
        """
        projects: list[Project] = []
        for project in snapshot.projects():
            if project.name in self._excluded_projects:
                logger.info(f"Skipping excluded project (project={project.name})")
                continue
            projects.append(project)
        return projects

    def _scan_candidates(
        self,
        snapshot: WorkspaceSnapshot,
        project: Project,
        seen_keys: set[str],
        counters: _Counters,
    ) -> list[_Candidate]:
        """Collect eligible declarations of one project.

        Args:
            snapshot: Snapshot to scan.
            project: Project to scan.
            seen_keys: Keys already queued in this run; updated in place.
            counters: Run counters.

        Returns:
            Eligible candidates in discovery order.
        """
        candidates: list[_Candidate] = []
        for symbol in snapshot.declarations(project):
            key = symbol_key(snapshot, symbol)
            if key in seen_keys:
                continue
            seen_keys.add(key)
            counters.discovered += 1
            if not self._classifier.is_eligible(snapshot, symbol):
                continue
            counters.eligible += 1
            candidates.append(_Candidate(symbol=symbol, key=key))
        return candidates

    def _rename_candidate(
        self,
        snapshot: WorkspaceSnapshot,
        candidate: _Candidate,
        counters: _Counters,
    ) -> WorkspaceSnapshot:
        """Rename one candidate and record the mapping.

        Failures are logged and leave the snapshot unchanged.

        Args:
            snapshot: Snapshot produced by the previous rename.
            candidate: Candidate to rename.
            counters: Run counters.

        Returns:
            Snapshot after the rename, or the input snapshot when skipped.
        """
        current = snapshot.resolve(candidate.symbol)
        if current is None:
            counters.failed += 1
            logger.warning(
                f"Candidate no longer resolves (key={candidate.key})"
            )
            return snapshot
        if current.name != candidate.symbol.name:
            counters.skipped += 1
            logger.debug(
                f"Candidate already renamed by a related rename "
                f"(key={candidate.key} name={current.name})"
            )
            return snapshot

        try:
            new_name = self._choose_name(snapshot=snapshot, symbol=current)
            updated = snapshot.rename(current, new_name)
            renamed = updated.resolve(current)
            if renamed is None:
                raise RenameError(f"Renamed symbol does not resolve: {new_name}")
            obfuscated_key = symbol_key(updated, renamed)
        except RenameError as exc:
            counters.failed += 1
            logger.warning(
                f"Failed renaming symbol (key={candidate.key} error={exc})"
            )
            return snapshot
        except Exception:
            counters.failed += 1
            logger.exception(
                f"Workspace service raised while renaming (key={candidate.key})"
            )
            return snapshot

        logger.info(f"Renamed {current.kind.value}: {current.name} -> {new_name}")
        self.records.append(
            SymbolMapping(
                original_name=current.name,
                original_key=candidate.key,
                obfuscated_key=obfuscated_key,
            )
        )
        counters.renamed += 1
        return updated

    def _choose_name(self, snapshot: WorkspaceSnapshot, symbol: Symbol) -> str:
        """Pick a legal, conflict-free name for a symbol.

        Args:
            snapshot: Snapshot the symbol was resolved in.
            symbol: Symbol about to be renamed.

        Returns:
            Chosen name. After ``MAX_CONFLICT_ATTEMPTS`` the last legal
            candidate is accepted even when it conflicts.

        Raises:
            RenameError: If no legal identifier was generated at all.
        """
        siblings = snapshot.siblings(symbol)
        last_legal: str | None = None
        for _ in range(MAX_CONFLICT_ATTEMPTS):
            candidate = self._generator.generate_name(symbol.kind)
            if not snapshot.is_valid_identifier(candidate):
                continue
            last_legal = candidate
            if candidate == symbol.name or candidate in self._assigned_names:
                continue
            if has_name_conflict(
                name=candidate,
                symbol=symbol,
                siblings=siblings,
                supports_overloading=snapshot.supports_overloading,
            ):
                continue
            break
        else:
            if last_legal is None:
                raise RenameError(
                    f"No legal identifier generated for {symbol.name}"
                )
            logger.warning(
                f"Accepting possibly conflicting name after {MAX_CONFLICT_ATTEMPTS} "
                f"attempts (symbol={symbol.name} name={last_legal})"
            )
            candidate = last_legal
        self._assigned_names.add(candidate)
        return candidate

    def _restore_records(
        self,
        snapshot: WorkspaceSnapshot,
        projects: list[Project],
        records: list[SymbolMapping],
        index_key: _IndexKey,
        counters: _Counters,
    ) -> WorkspaceSnapshot:
        """Rename matched symbols back to their original names.

        The lookup index is rebuilt lazily after renames, since restoring one
        symbol can change the key of another (for example a member whose
        containing type was restored).

        Args:
            snapshot: Current snapshot.
            projects: Projects to search.
            records: Records in processing order.
            index_key: Lookup key of a current symbol; compared with each
                record's ``obfuscated_key``.
            counters: Run counters.

        Returns:
            Snapshot after all restorations.
        """
        index = self._build_index(snapshot, projects, index_key)
        counters.discovered = len(index)
        stale = False
        for record in records:
            match = _lookup(snapshot, index, record.obfuscated_key, index_key)
            if match is None and stale:
                index = self._build_index(snapshot, projects, index_key)
                stale = False
                match = _lookup(snapshot, index, record.obfuscated_key, index_key)
            if match is None:
                counters.skipped += 1
                logger.debug(
                    f"No symbol matches mapping (key={record.obfuscated_key})"
                )
                continue
            try:
                snapshot = snapshot.rename(match, record.original_name)
            except RenameError as exc:
                counters.failed += 1
                logger.warning(
                    f"Failed restoring symbol (key={record.obfuscated_key} error={exc})"
                )
                continue
            except Exception:
                counters.failed += 1
                logger.exception(
                    f"Workspace service raised while restoring "
                    f"(key={record.obfuscated_key})"
                )
                continue
            stale = True
            counters.renamed += 1
            logger.info(
                f"Restored {match.kind.value}: {match.name} -> {record.original_name}"
            )
        return snapshot

    def _build_index(
        self,
        snapshot: WorkspaceSnapshot,
        projects: list[Project],
        index_key: _IndexKey,
    ) -> dict[str, Symbol]:
        index: dict[str, Symbol] = {}
        for project in projects:
            for symbol in snapshot.declarations(project):
                index.setdefault(index_key(snapshot, symbol), symbol)
        return index

    def _apply(self, snapshot: WorkspaceSnapshot) -> bool:
        applied = self._workspace.apply(snapshot)
        if not applied:
            logger.warning("Some changes could not be applied")
        return applied

    def _fail(self, message: str, exc: Exception | None = None) -> NoReturn:
        self.state = RunState.FAILED
        logger.warning(f"Run failed (error={message})")
        raise RunError(message) from exc

    def _summary(
        self,
        mode: RunMode,
        counters: _Counters,
        mapping_schema: MappingSchema | None,
        applied: bool,
        started: float,
    ) -> RunSummary:
        return RunSummary(
            mode=mode,
            state=self.state,
            projects_processed=counters.projects,
            symbols_discovered=counters.discovered,
            symbols_eligible=counters.eligible,
            symbols_renamed=counters.renamed,
            symbols_skipped=counters.skipped,
            symbols_failed=counters.failed,
            duplicate_names_accepted=counters.duplicates,
            mapping_schema=mapping_schema,
            changes_applied=applied,
            elapsed_ms=int(round((time.monotonic() - started) * 1000)),
        )


def has_name_conflict(
    name: str,
    symbol: Symbol,
    siblings: Iterable[Symbol],
    supports_overloading: bool = True,
) -> bool:
    """Check whether renaming ``symbol`` to ``name`` clashes with a sibling.

    Two methods sharing a name only clash when their parameter types and
    type-parameter arity also match, provided the language allows overloads.

    Args:
        name: Proposed name.
        symbol: Symbol about to be renamed.
        siblings: Symbols sharing the naming scope.
        supports_overloading: Whether the language allows method overloads.

    Returns:
        True when the name is taken.
    """
    for sibling in siblings:
        if sibling.handle == symbol.handle or sibling.name != name:
            continue
        if (
            supports_overloading
            and symbol.kind is SymbolKind.METHOD
            and sibling.kind is SymbolKind.METHOD
            and (
                sibling.parameter_types != symbol.parameter_types
                or sibling.type_parameter_count != symbol.type_parameter_count
            )
        ):
            continue
        return True
    return False


def _lookup(
    snapshot: WorkspaceSnapshot,
    index: dict[str, Symbol],
    key: str,
    index_key: _IndexKey,
) -> Symbol | None:
    """Find the current symbol for a key, ignoring stale index entries.

    Args:
        snapshot: Current snapshot.
        index: Key index, possibly built from an older snapshot.
        key: Key to look up.
        index_key: Key function the index was built with.

    Returns:
        Symbol resolved in ``snapshot`` whose key still matches, else ``None``.
    """
    symbol = index.get(key)
    if symbol is None:
        return None
    current = snapshot.resolve(symbol)
    if current is None or index_key(snapshot, current) != key:
        return None
    return current


def _symbol_name(snapshot: WorkspaceSnapshot, symbol: Symbol) -> str:
    return symbol.name
