"""Context scanner — L1 source file discovery.

L1 constraint: Only imports from stdlib, ctxgraph.context.models.
Discovers component source files under a project root and returns their
entry ids. No parsing at this level.
"""

import fnmatch
import os
import subprocess
from pathlib import Path

from ctxgraph.context.models import normalize_entry_id

# Directories never scanned in non-git projects
IGNORE_DIRS = {
    "node_modules",
    ".git",
    "dist",
    "build",
    ".next",
    "coverage",
    ".ctxgraph",
    ".turbo",
    ".cache",
}

SOURCE_EXTENSIONS = (".tsx", ".ts", ".jsx", ".js")

# Test files and declaration files carry no component interface
EXCLUDED_SUFFIXES = (
    ".d.ts",
    ".test.ts",
    ".test.tsx",
    ".spec.ts",
    ".spec.tsx",
    ".test.js",
    ".test.jsx",
)

STYLE_EXTENSIONS = (".css", ".scss")


def is_source_file(path: str) -> bool:
    """Check whether a path names a component source file.

    Args:
        path: File path (absolute or relative)

    Returns:
        True for .ts/.tsx/.js/.jsx files that are not tests or declarations
    """
    lowered = path.lower()
    if not lowered.endswith(SOURCE_EXTENSIONS):
        return False
    return not lowered.endswith(EXCLUDED_SUFFIXES)


def is_ignored(entry_id: str, patterns: list[str]) -> bool:
    """Check an entry id against fnmatch-style ignore patterns.

    A pattern matches the whole entry id or any single path segment.
    """
    if not patterns:
        return False
    parts = entry_id.split("/")
    for pattern in patterns:
        if fnmatch.fnmatch(entry_id, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


def to_entry_id(path: Path | str, root: Path) -> str:
    """Turn an absolute or root-relative path into an entry id."""
    candidate = Path(path)
    if candidate.is_absolute():
        try:
            candidate = candidate.resolve().relative_to(root.resolve())
        except ValueError:
            return normalize_entry_id(str(path))
    return normalize_entry_id(candidate.as_posix())


def is_tracked_path(entry_id: str, ignore: list[str] | None = None) -> bool:
    """Path-only part of the discovery rule: source file, no ignored directory
    on the way, no ignore pattern match. `.gitignore` is checked separately.
    """
    if not is_source_file(entry_id):
        return False
    parts = entry_id.split("/")
    if parts[0] in ("", "..") or any(part in IGNORE_DIRS for part in parts[:-1]):
        return False
    return not is_ignored(entry_id, ignore or [])


def _in_git(root: Path) -> bool:
    try:
        git_check = subprocess.run(
            ["git", "rev-parse", "--git-dir"],
            cwd=root,
            capture_output=True,
            check=False,
        )
    except (subprocess.SubprocessError, FileNotFoundError):  # pragma: no cover
        return False
    return git_check.returncode == 0


def git_ignored(root: Path, entry_ids: list[str]) -> set[str]:
    """Subset of entry_ids that .gitignore excludes from discovery.

    Tracked files are never reported, matching `git ls-files --cached`.
    Outside a git repository nothing is ignored.

    Args:
        root: Project root directory
        entry_ids: Root-relative ids to check

    Returns:
        The ignored ids
    """
    if not entry_ids or not _in_git(root):
        return set()

    result = subprocess.run(
        ["git", "check-ignore", "-z", "--stdin"],
        cwd=root,
        input="\0".join(entry_ids) + "\0",
        capture_output=True,
        text=True,
        check=False,
    )
    # 0 = some ignored, 1 = none ignored
    if result.returncode not in (0, 1):
        raise subprocess.CalledProcessError(result.returncode, result.args, result.stdout, result.stderr)
    ignored = {normalize_entry_id(path) for path in result.stdout.split("\0") if path}
    return {entry_id for entry_id in entry_ids if normalize_entry_id(entry_id) in ignored}


def _git_files(root: Path) -> list[str] | None:
    """List tracked and untracked-but-not-ignored files, or None outside git."""
    if not _in_git(root):
        return None

    result = subprocess.run(
        ["git", "ls-files", "--cached", "--others", "--exclude-standard"],
        cwd=root,
        capture_output=True,
        text=True,
        check=True,
    )
    return [line for line in result.stdout.splitlines() if line]


def _walk_files(root: Path) -> list[str]:
    """Walk the tree with the hardcoded ignore list."""
    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in IGNORE_DIRS]
        for filename in filenames:
            files.append((Path(dirpath) / filename).relative_to(root).as_posix())
    return files


def discover_files(root: Path, ignore: list[str] | None = None) -> list[str]:
    """Discover component source files in a project.

    Uses `git ls-files` if in a git repo (honoring .gitignore), falls back to
    os.walk with a hardcoded ignore list for non-git directories.

    Args:
        root: Project root directory
        ignore: Extra fnmatch patterns to exclude

    Returns:
        Sorted, de-duplicated entry ids of all discovered source files
    """
    patterns = ignore or []
    candidates = _git_files(root)
    if candidates is None:
        candidates = _walk_files(root)

    entry_ids: set[str] = set()
    for relative in candidates:
        entry_id = normalize_entry_id(relative)
        if not is_tracked_path(entry_id, patterns):
            continue
        if not (root / entry_id).is_file():
            continue
        entry_ids.add(entry_id)

    return sorted(entry_ids)
