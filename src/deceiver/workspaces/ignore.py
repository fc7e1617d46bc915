# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Discover workspace source files while honouring .gitignore rules."""

import logging
from collections import deque
from pathlib import Path

import pathspec

logger = logging.getLogger(__name__)

_GIT_DIR = ".git"


class IgnoreMatcher:
    """Answer whether a workspace path is excluded by any .gitignore file."""

    def __init__(self, spec: pathspec.GitIgnoreSpec) -> None:
        self._spec = spec

    @classmethod
    def from_project_root(cls, input_root: Path) -> "IgnoreMatcher":
        """Merge every .gitignore below the root into one root-level spec.

        Patterns of nested files are rewritten relative to the root so that a
        single matcher can answer for the whole tree.

        Args:
            input_root: Workspace root.

        Returns:
            Ignore matcher for the workspace.

        Raises:
            OSError: If a .gitignore file cannot be read.
            UnicodeDecodeError: If a .gitignore file is not valid UTF-8.
        """
        patterns: list[str] = []
        for ignore_file in sorted(input_root.rglob(".gitignore")):
            scope = ignore_file.parent.relative_to(input_root)
            if _GIT_DIR in scope.parts:
                continue
            prefix = "" if scope == Path(".") else scope.as_posix()
            text = ignore_file.read_text(encoding="utf-8")
            patterns.extend(
                _scoped_pattern(line=line, prefix=prefix) for line in text.splitlines()
            )
        logger.debug(
            f"Compiled ignore patterns (root={input_root} patterns={len(patterns)})"
        )
        return cls(spec=pathspec.GitIgnoreSpec.from_lines(patterns))

    def matches(self, relative_path: str, is_dir: bool) -> bool:
        """Check a workspace-relative POSIX path.

        Args:
            relative_path: Path relative to the workspace root.
            is_dir: Whether the path names a directory; directory-only
                patterns such as ``build/`` then apply.

        Returns:
            True when the path is ignored.
        """
        normalized = relative_path.strip("/")
        if not normalized:
            return False
        candidates = [normalized, f"{normalized}/"] if is_dir else [normalized]
        return any(self._spec.match_file(candidate) for candidate in candidates)


def discover_source_files(
    input_root: Path, matcher: IgnoreMatcher, suffix: str = ".py"
) -> list[Path]:
    """List source files below a root, skipping ignored paths and .git.

    Ignored directories are not descended into.

    Args:
        input_root: Workspace root.
        matcher: Ignore matcher for the root.
        suffix: Source file suffix.

    Returns:
        Sorted source file paths.
    """
    found: list[Path] = []
    skipped = 0
    pending: deque[Path] = deque([input_root])
    while pending:
        directory = pending.popleft()
        for child in sorted(directory.iterdir(), key=lambda item: item.name):
            is_dir = child.is_dir() and not child.is_symlink()
            if is_dir and child.name == _GIT_DIR:
                continue
            if matcher.matches(child.relative_to(input_root).as_posix(), is_dir):
                skipped += 1
            elif is_dir:
                pending.append(child)
            elif child.suffix == suffix and child.is_file():
                found.append(child)
    if skipped:
        logger.debug(f"Skipped ignored paths (root={input_root} count={skipped})")
    return sorted(found)


def _scoped_pattern(line: str, prefix: str) -> str:
    """Rewrite one nested .gitignore line relative to the workspace root.

    Comments, blank lines and escaped leading characters pass through. A
    negation keeps its ``!``. Patterns containing a slash are relative to the
    nested directory; slash-free patterns match at any depth below it.

    Args:
        line: Line as written in the nested file.
        prefix: Directory of the nested file, relative to the root.

    Returns:
        Equivalent root-level pattern line.
    """
    stripped = line.lstrip()
    if not prefix or not stripped or stripped.startswith("#"):
        return line
    if line.startswith(("\\!", "\\#")):
        return line
    negation = "!" if line.startswith("!") else ""
    body = line[len(negation) :]
    trailing = "/" if body.endswith("/") else ""
    core = body.strip("/")
    if not core:
        return f"{negation}/{prefix}{trailing}"
    if "/" in body.rstrip("/"):
        return f"{negation}/{prefix}/{core}{trailing}"
    return f"{negation}/{prefix}/**/{core}{trailing}"
