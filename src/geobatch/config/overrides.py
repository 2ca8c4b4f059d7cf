from __future__ import annotations

# Overrides arrive as plain dicts (CLI `--set` pairs or caller payloads), so typing stays
# flexible and shape errors are reported with the dotted key path.
from typing import Any, Mapping

from geobatch.config.settings import Settings

"""
Per-run settings overrides (safe subset).

The CLI and library callers can tune certain knobs for a single run. This module:
- parses `key.path=value` pairs into a nested mapping,
- validates the override payload against a whitelist,
- deep-merges the safe subset onto current settings,
- re-validates with Pydantic so types and ranges remain correct.

`app` and `ingestion` are not overridable per run; they are fixed by the config file.
"""

# Which parts of Settings a single run may change.
#
# How to read this structure:
# - True allows any key under that subtree.
# - A nested dict allows only the listed keys, recursively.
#
# `app` (name, timezone, log level) and `ingestion` (field names and aliases) are left out:
# they describe the deployment and the input format, not a run.
ALLOWED_SETTINGS_OVERRIDES_TREE: dict[str, Any] = {
    # Chunking and worker knobs are plain numbers.
    "processing": True,
    # Grid size and padding only change how the index is laid out.
    "grid": True,
    # Search limits, plus the brute-force/grid switch.
    "search": True,
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    # Build a new dict so the caller's `base` (often a cached model dump) is never mutated.
    merged: dict[str, Any] = dict(base)
    # Apply each override key on top of the base payload.
    for key, override_value in override.items():
        # Two mappings merge recursively, so `search.max_neighbors` leaves the other search keys alone.
        if isinstance(override_value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), override_value)
            continue
        # Anything else replaces the base value outright.
        merged[key] = override_value
    return merged


def _filter_overrides(
    overrides: Mapping[str, Any],
    *,
    allowed_tree: Mapping[str, Any],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    # Only whitelisted keys are copied; the first unknown key aborts the whole payload.
    filtered: dict[str, Any] = {}
    for key, value in overrides.items():
        # Report the dotted path of the rejected key, not just its last segment.
        if key not in allowed_tree:
            dotted_path = ".".join((*path, key))
            raise ValueError(f"settings_overrides contains a disallowed key: '{dotted_path}'")

        # True opens the subtree; a dict narrows it further.
        allowed = allowed_tree[key]
        if allowed is True:
            filtered[key] = value
            continue

        # A restricted subtree needs a mapping to recurse into.
        if not isinstance(value, Mapping):
            dotted_path = ".".join((*path, key))
            raise ValueError(f"settings_overrides key '{dotted_path}' must be a mapping")

        filtered[key] = _filter_overrides(value, allowed_tree=allowed, path=(*path, key))
    return filtered


def parse_override_pairs(pairs: list[str]) -> dict[str, Any]:
    """Parse `section.key=VALUE` strings into a nested dict.

    Values stay strings; Pydantic coerces them during re-validation ("500" -> 500,
    "true" -> True). A literal `null` becomes None.
    """
    out: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid override '{pair}', expected KEY=VALUE")
        dotted, raw = pair.split("=", 1)
        parts = [p.strip() for p in dotted.split(".") if p.strip()]
        if not parts:
            raise ValueError(f"Invalid override '{pair}', empty key")
        # `null` is the only way to reset an optional knob such as `processing.worker_count`.
        value: Any = None if raw.strip().lower() == "null" else raw.strip()
        # Walk or create intermediate sections; `a.b=1` followed by `a.b.c=2` is a conflict.
        node = out
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise ValueError(f"Override '{pair}' conflicts with an earlier scalar value")
            node = child
        node[parts[-1]] = value
    return out


def apply_settings_overrides(settings: Settings, overrides: Mapping[str, Any] | None) -> Settings:
    """Return a new Settings with whitelisted overrides applied (or `settings` itself if none)."""
    # Nothing to apply: hand back the same (possibly cached) object.
    if not overrides:
        return settings

    # Reject non-whitelisted keys before anything is merged.
    safe_overrides = _filter_overrides(overrides, allowed_tree=ALLOWED_SETTINGS_OVERRIDES_TREE)
    # Overrides win over the current values, section by section.
    merged_payload = _deep_merge(settings.model_dump(mode="python"), safe_overrides)
    # Re-validate so ranges and types hold for the merged result.
    return Settings.model_validate(merged_payload)
