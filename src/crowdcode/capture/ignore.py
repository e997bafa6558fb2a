"""Compiled exclusion rules gating every tracker's view of the workspace.

Tiered Architecture:
- Tier 0 (HARDCODED_DIRS): VCS metadata and .crowdcode, never tracked
- Tier 1 (DEFAULT_PRUNABLE_DIRS): Excluded by default, opt in via !pattern
- Tier 2 (.gitignore + configured patterns): gitignore-style, negation supported
"""

from __future__ import annotations

import fnmatch
from pathlib import Path, PurePosixPath

import structlog

from crowdcode.core.excludes import (
    DEFAULT_PRUNABLE_DIRS,
    PRUNABLE_DIRS,
    is_hardcoded_dir,
)

logger = structlog.get_logger()

__all__ = ["IgnoreFilter"]


class IgnoreFilter:
    """Checks if workspace paths should be excluded from tracking.

    Pattern syntax:
    - Standard glob patterns (fnmatch)
    - Patterns without a slash match a path component at any depth
    - A leading / anchors the pattern at the directory of its ignore file
    - Directory patterns ending in / match contents
    - Negation with ! prefix (e.g., !dist/ to opt in to a pruned directory)
    """

    def __init__(
        self,
        root: Path,
        extra_patterns: list[str] | None = None,
        *,
        respect_gitignore: bool = True,
    ) -> None:
        self._root = root
        self._patterns: list[str] = []
        self._negated_dirs: set[str] = set()
        self._gitignore_paths: list[Path] = []
        if respect_gitignore:
            self._load_gitignore_recursive(root)
        for line in extra_patterns or []:
            self.add_pattern(line)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def gitignore_paths(self) -> list[Path]:
        return self._gitignore_paths.copy()

    def should_prune_dir(self, dirname: str) -> bool:
        """Check if a directory should be skipped during traversal.

        Args:
            dirname: Directory name (not path), e.g., "node_modules", ".git"
        """
        if is_hardcoded_dir(dirname):
            return True
        if dirname in DEFAULT_PRUNABLE_DIRS:
            return dirname not in self._negated_dirs
        return False

    def _load_gitignore_recursive(self, root: Path) -> None:
        """Load .gitignore from root and all subdirectories.

        Nested patterns are prefixed with their relative directory path.
        """
        root_gitignore = root / ".gitignore"
        if root_gitignore.is_file():
            self._load_ignore_file(root_gitignore)

        for dirpath, dirnames, filenames in root.walk():
            dirnames[:] = [d for d in dirnames if d not in PRUNABLE_DIRS]
            if dirpath == root:
                continue
            if ".gitignore" in filenames:
                rel_dir = dirpath.relative_to(root).as_posix()
                self._load_ignore_file(dirpath / ".gitignore", prefix=rel_dir)

    def _load_ignore_file(self, path: Path, prefix: str = "") -> None:
        try:
            content = path.read_text()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("ignore_file_unreadable", path=str(path), error=str(e))
            return
        self._gitignore_paths.append(path)
        for line in content.splitlines():
            self.add_pattern(line, prefix)

    def add_pattern(self, line: str, prefix: str = "") -> None:
        line = line.strip()
        if not line or line.startswith("#"):
            return

        is_negation = line.startswith("!")
        if is_negation:
            line = line[1:]

        # Root-level "!name" or "!name/" opts a default-pruned directory back in
        if is_negation and not prefix:
            dir_name = line.strip("/")
            if dir_name and "/" not in dir_name and "*" not in dir_name:
                self._negated_dirs.add(dir_name)

        anchored = line.startswith("/") or "/" in line.rstrip("/")
        line = line.lstrip("/")
        pattern = f"{line}**" if line.endswith("/") else line

        if prefix:
            pattern = f"{prefix}/{pattern}"
        elif not anchored:
            # Slash-less patterns match at any depth
            pattern = f"**/{pattern}"

        if is_negation:
            pattern = f"!{pattern}"
        self._patterns.append(pattern)

    def should_ignore(self, path: Path) -> bool:
        """Check an absolute path. Paths outside the workspace are ignored."""
        try:
            rel_path = path.relative_to(self._root)
        except ValueError:
            return True
        return self.is_excluded_rel(rel_path.as_posix())

    def is_excluded_rel(self, rel_path: str) -> bool:
        """Check a workspace-relative POSIX path."""
        rel_path = rel_path.replace("\\", "/")
        path_obj = PurePosixPath(rel_path)
        dir_parts = path_obj.parts[:-1]

        if any(self.should_prune_dir(part) for part in dir_parts):
            return True
        if is_hardcoded_dir(path_obj.name):
            return True

        candidates = [rel_path, *(p.as_posix() for p in path_obj.parents if p.as_posix() != ".")]
        excluded = False
        # Last matching pattern wins, as in .gitignore
        for pattern in self._patterns:
            negated = pattern.startswith("!")
            raw = pattern[1:] if negated else pattern
            if any(_match(candidate, raw) for candidate in candidates):
                excluded = not negated
        return excluded


def _match(rel_path: str, pattern: str) -> bool:
    if fnmatch.fnmatchcase(rel_path, pattern):
        return True
    # "**/x" also matches "x" at the root
    if pattern.startswith("**/"):
        return fnmatch.fnmatchcase(rel_path, pattern[3:])
    return False
