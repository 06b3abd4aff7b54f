"""Project-root path resolution and glob helpers."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

from stepwright.errors import PathOutsideProjectError


def normalize_root(project_root: str | Path) -> Path:
    return Path(os.path.abspath(os.fspath(project_root)))


def resolve_path(project_root: Path, path: str) -> Path:
    """Resolve a model-supplied path against the project root.

    Absolute paths pass through unchanged. Relative paths are joined to the
    root and normalized lexically, and must stay at or below the root.
    """
    cleaned = path.replace("\x00", "").strip() or "."
    candidate = Path(cleaned)
    if candidate.is_absolute():
        return candidate

    resolved = Path(os.path.normpath(project_root / candidate))
    if resolved != project_root and project_root not in resolved.parents:
        msg = f"Path '{path}' resolves outside the project root '{project_root}'"
        raise PathOutsideProjectError(msg)
    return resolved


def display_path(project_root: Path, path: Path) -> str:
    """Render ``path`` relative to the root with forward slashes when possible."""
    try:
        relative = path.relative_to(project_root)
    except ValueError:
        return path.as_posix()
    text = relative.as_posix()
    return text or "."


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` groups the way shell globbing does; nesting is supported."""
    start = pattern.find("{")
    if start == -1:
        return [pattern]

    depth = 0
    options: list[str] = []
    current = start + 1
    for index in range(start, len(pattern)):
        char = pattern[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                options.append(pattern[current:index])
                prefix, suffix = pattern[:start], pattern[index + 1 :]
                expanded: list[str] = []
                for option in options:
                    expanded.extend(expand_braces(f"{prefix}{option}{suffix}"))
                return expanded
        elif char == "," and depth == 1:
            options.append(pattern[current:index])
            current = index + 1

    # unbalanced brace: treat literally
    return [pattern]


def is_excluded(relative: str, excluded_names: frozenset[str], excluded_subtrees: tuple[str, ...]) -> bool:
    parts = PurePosixPath(relative).parts
    if any(part in excluded_names for part in parts):
        return True
    return any(relative == subtree or relative.startswith(f"{subtree}/") for subtree in excluded_subtrees)
