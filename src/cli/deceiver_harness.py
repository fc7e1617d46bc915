# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Run reversible identifier obfuscation and restoration over a workspace."""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, TextIO

from deceiver import (
    EligibilityClassifier,
    GenerationSession,
    JsonMappingStore,
    NameGenerator,
    RenameOrchestrator,
    RunError,
    RunSummary,
    Workspace,
)
from deceiver.workspaces import MemoryWorkspace, PythonWorkspace
from rich.console import Console
from rich.logging import RichHandler

logger = logging.getLogger(__name__)

DEFAULT_MAP_PATH = "./deceiver_map.json"
_MODES = ("obfuscate", "restore")
_DEFAULT_ENTRY_POINTS = {"python": "main", "graph": "Main"}

Backend = Literal["python", "graph"]


@dataclass(frozen=True)
class RunOptions:
    """Represent validated run options.

    Attributes:
        mode: ``obfuscate`` or ``restore``.
        path: Workspace directory or symbol graph document.
        backend: Workspace backend selected from ``path``.
        exclude: Project names left untouched.
        map_path: Mapping file path.
        dictionary: Optional custom dictionary file.
        seed: Optional generator seed.
        entry_point: Method name never renamed.
    """

    mode: Literal["obfuscate", "restore"]
    path: Path
    backend: Backend
    exclude: tuple[str, ...]
    map_path: Path
    dictionary: Path | None
    seed: int | None
    entry_point: str


class ValidationError(RuntimeError):
    """Represent user input validation failure."""


def configure_logging(level: int = logging.INFO) -> None:
    """Configure application logging with Rich handler.

    Args:
        level: Logging severity threshold.
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        prog="deceiver",
        description="Rename identifiers to plausible decoys and restore them.",
    )
    parser.add_argument(
        "-m", "--mode", required=True, help="Run mode: obfuscate or restore."
    )
    parser.add_argument(
        "-p",
        "--path",
        required=True,
        help="Python source directory or .json symbol graph.",
    )
    parser.add_argument(
        "-e",
        "--exclude",
        default="",
        help="Comma separated project names to leave untouched.",
    )
    parser.add_argument(
        "-s", "--map", default=DEFAULT_MAP_PATH, help="Mapping file path."
    )
    parser.add_argument("-d", "--dictionary", help="Custom dictionary file.")
    parser.add_argument("--seed", type=int, help="Seed for reproducible names.")
    parser.add_argument(
        "--entry-point", help="Method name that is never renamed."
    )
    return parser


def run(argv: list[str], stdout: TextIO, stderr: TextIO) -> int:
    """Run deceiver command.

    Args:
        argv: CLI arguments.
        stdout: Standard output stream.
        stderr: Standard error stream.

    Returns:
        Exit code: 0 on success, 2 on invalid input, 1 on a failed run.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code == 0:
            return 0
        logger.warning(f"Argument parsing failed (argv={argv})")
        return 2

    console = Console(file=stdout, force_terminal=False, color_system="truecolor")
    _emit_marker(console=console, phase="validation", state="start")
    try:
        options = _validate_options(args)
    except ValidationError as exc:
        logger.warning(f"Validation failed (error={exc})")
        stderr.write(f"{exc}\n")
        return 2
    _emit_marker(console=console, phase="validation", state="done")

    generator = NameGenerator(session=GenerationSession(seed=options.seed))
    if options.dictionary is not None and not generator.load_custom_dictionary(
        options.dictionary
    ):
        stderr.write(f"Failed to load dictionary: {options.dictionary}\n")
        return 2

    orchestrator = RenameOrchestrator(
        workspace=_build_workspace(options),
        store=JsonMappingStore(options.map_path),
        generator=generator,
        classifier=EligibilityClassifier(entry_point=options.entry_point),
        excluded_projects=options.exclude,
    )
    _emit_marker(console=console, phase=options.mode, state="start")
    try:
        if options.mode == "obfuscate":
            summary = orchestrator.obfuscate()
        else:
            summary = orchestrator.restore()
    except RunError as exc:
        logger.warning(f"Run failed (mode={options.mode} error={exc})")
        stderr.write(f"{options.mode.capitalize()} failed: {exc}\n")
        return 1
    _emit_marker(console=console, phase=options.mode, state="done")
    _emit_summary(console=console, summary=_summary_fields(summary))
    console.print("status=success" if summary.changes_applied else "status=partial")
    return 0


def _emit_marker(console: Console, phase: str, state: str) -> None:
    console.print(f"{phase}:{state}")


def _emit_summary(console: Console, summary: dict[str, object]) -> None:
    fields = " ".join(f"{key}={value}" for key, value in summary.items())
    console.print(fields)


def _summary_fields(summary: RunSummary) -> dict[str, object]:
    fields: dict[str, object] = {
        "projects_processed": summary.projects_processed,
        "symbols_discovered": summary.symbols_discovered,
        "symbols_eligible": summary.symbols_eligible,
        "symbols_renamed": summary.symbols_renamed,
        "symbols_skipped": summary.symbols_skipped,
        "symbols_failed": summary.symbols_failed,
    }
    if summary.mode == "obfuscate":
        fields["duplicate_names_accepted"] = summary.duplicate_names_accepted
    else:
        fields["mapping_schema"] = summary.mapping_schema
    fields["changes_applied"] = str(summary.changes_applied).lower()
    fields["elapsed_ms"] = summary.elapsed_ms
    return fields


def _validate_options(args: argparse.Namespace) -> RunOptions:
    """Validate parsed arguments.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Normalized run options.

    Raises:
        ValidationError: If arguments are inconsistent or paths are missing.
    """
    mode = str(args.mode).strip().lower()
    if mode not in _MODES:
        raise ValidationError(
            f"Invalid mode: {args.mode} (expected obfuscate or restore)"
        )

    path = Path(args.path).resolve()
    if not path.exists():
        raise ValidationError(f"Path does not exist: {path}")
    backend: Backend
    if path.is_dir():
        backend = "python"
    elif path.suffix.lower() == ".json":
        backend = "graph"
    else:
        raise ValidationError(
            f"Path must be a directory or a .json symbol graph: {path}"
        )

    map_path = Path(args.map).resolve()
    if mode == "restore" and not map_path.is_file():
        raise ValidationError(f"Mapping file does not exist: {map_path}")
    if map_path == path:
        raise ValidationError("Mapping file must differ from the workspace path")

    dictionary = None
    if args.dictionary:
        dictionary = Path(args.dictionary).resolve()
        if not dictionary.is_file():
            raise ValidationError(f"Dictionary file does not exist: {dictionary}")

    exclude = tuple(
        name.strip() for name in str(args.exclude).split(",") if name.strip()
    )
    entry_point = args.entry_point or _DEFAULT_ENTRY_POINTS[backend]
    return RunOptions(
        mode=mode,
        path=path,
        backend=backend,
        exclude=exclude,
        map_path=map_path,
        dictionary=dictionary,
        seed=args.seed,
        entry_point=entry_point,
    )


def _build_workspace(options: RunOptions) -> Workspace:
    if options.backend == "graph":
        return MemoryWorkspace(path=options.path)
    return PythonWorkspace(root=options.path)


def main() -> None:
    """Run deceiver CLI."""
    configure_logging()
    exit_code = run(sys.argv[1:], stdout=sys.stdout, stderr=sys.stderr)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
