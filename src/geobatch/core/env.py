"""
Environment + project-root helpers.

Problems this module solves:
- Operators often keep tuning knobs (worker counts, log level) in a repo-local `.env` file.
- The CLI can be launched from any working directory, so relative input/output paths
  (e.g., `data/points.csv`) need a stable anchor.

This module provides:
- `load_dotenv_if_present()`: best-effort `.env` loading (does not override existing env vars)
- `get_project_root()`: find the repo root (prefers `.env` / `.git`, falls back to marker dirs)
- `resolve_project_path()`: resolve relative paths against the project root
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path


def _iter_parents(start: Path) -> list[Path]:
    start = start.resolve()
    return [start, *list(start.parents)]


def _looks_like_project_root(path: Path) -> bool:
    # Explicit markers win: a local `.env` or a git checkout.
    if (path / ".env").is_file():
        return True
    if (path / ".git").exists():
        return True
    # Otherwise accept the src-layout shape this package ships with.
    return (path / "pyproject.toml").is_file() and (path / "src").is_dir()


@lru_cache
def get_project_root() -> Path:
    """Return the best-guess project root directory (cached)."""
    # An explicit root (CI, or scripts run from elsewhere) skips all discovery.
    override = os.getenv("GEOBATCH_PROJECT_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    # When an env file is named directly, the directory holding it is the root.
    env_file = os.getenv("GEOBATCH_ENV_FILE")
    if env_file:
        return Path(env_file).expanduser().resolve().parent

    # Usual case: the CLI runs somewhere inside the repo, so walk up from CWD.
    for candidate in _iter_parents(Path.cwd()):
        if _looks_like_project_root(candidate):
            return candidate

    # Running from outside the repo: search upwards from this module instead.
    for candidate in _iter_parents(Path(__file__).parent):
        if _looks_like_project_root(candidate):
            return candidate

    # Nothing matched; relative paths then resolve against CWD.
    return Path.cwd().resolve()


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load `.env` once if present; returns the loaded env path (or None).

    Never overrides variables already set in the process environment.
    """
    from dotenv import load_dotenv

    # An explicit env file path is used as-is; a missing file means "load nothing".
    explicit = os.getenv("GEOBATCH_ENV_FILE")
    if explicit:
        env_path = Path(explicit).expanduser().resolve()
        if env_path.is_file():
            load_dotenv(dotenv_path=env_path, override=False)
            return env_path
        return None

    # Default location: `.env` next to the discovered project root.
    env_path = get_project_root() / ".env"
    if env_path.is_file():
        load_dotenv(dotenv_path=env_path, override=False)
        return env_path
    return None


def resolve_project_path(path: str | Path) -> Path:
    """Resolve a possibly-relative path against the project root."""
    p = Path(path).expanduser()
    if p.is_absolute():
        return p
    return (get_project_root() / p).resolve()
