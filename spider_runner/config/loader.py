"""Configuration merging and file loading helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
# Replaced wholesale on merge, never combined with the parent's value.
MERGE_EXCLUDE = ("headers",)


def deep_merge(
    base: Mapping[str, Any] | None,
    override: Mapping[str, Any] | None,
    exclude: Iterable[str] = MERGE_EXCLUDE,
) -> dict[str, Any]:
    """Return ``base`` recursively updated with ``override``.

    Nested mappings are merged key by key; any key listed in ``exclude`` is
    taken from ``override`` as is. Inputs are never mutated.
    """

    excluded = set(exclude)
    merged: dict[str, Any] = {key: _copy(value) for key, value in (base or {}).items()}
    for key, value in (override or {}).items():
        current = merged.get(key)
        if key not in excluded and isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value, excluded)
        else:
            merged[key] = _copy(value)
    return merged


def _copy(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _copy(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy(item) for item in value]
    return value


def load_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON mapping from ``path``."""

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    if path.suffix not in CONFIG_EXTENSIONS:
        raise ValueError(f"Unsupported configuration format: {path.suffix}")
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


__all__ = ["CONFIG_EXTENSIONS", "MERGE_EXCLUDE", "deep_merge", "load_config_file"]
