"""Canonical exclude patterns with tiered architecture.

Tier 0 (HARDCODED_DIRS): Never tracked, not user-configurable.
    - VCS internals and our own export/config directory
    - The Git Operation Detector watches .git separately

Tier 1 (DEFAULT_PRUNABLE_DIRS): Excluded by default, user can override with !pattern.
    - Dependencies, caches, build outputs whose churn is tooling, not editing
"""

from __future__ import annotations

# =============================================================================
# Tier 0: HARDCODED - Never tracked
# =============================================================================

VCS_DIRS: frozenset[str] = frozenset((".git", ".svn", ".hg", ".bzr"))

HARDCODED_DIRS: frozenset[str] = VCS_DIRS | frozenset((".crowdcode",))

# =============================================================================
# Tier 1: DEFAULT_PRUNABLE - Excluded by default, user can override
# =============================================================================

DEFAULT_PRUNABLE_DIRS: frozenset[str] = frozenset(
    (
        # JavaScript
        "node_modules",
        ".next",
        ".turbo",
        ".yarn",
        # Python
        "venv",
        ".venv",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".ruff_cache",
        ".tox",
        ".nox",
        # JVM / Rust / Go
        "target",
        ".gradle",
        # Generic build output
        "dist",
        "build",
        "coverage",
        ".cache",
        # Editors
        ".idea",
    )
)

PRUNABLE_DIRS: frozenset[str] = HARDCODED_DIRS | DEFAULT_PRUNABLE_DIRS


def is_hardcoded_dir(name: str) -> bool:
    """Check if directory is in the never-tracked tier."""
    return name in HARDCODED_DIRS
