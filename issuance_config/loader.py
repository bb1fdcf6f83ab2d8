"""
Configuration Loader (``issuance_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``IssuanceConfig``.  Runtime callers go through
``issuance_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``api_base_url`` or out-of-range values -> ``ValueError``.
* Unknown keys -> ``ValueError`` (typos must not silently fall back to
  defaults).
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from issuance_config.schema import IssuanceConfig

_KNOWN_KEYS = frozenset(f.name for f in fields(IssuanceConfig))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top-level document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def parse_config(data: dict[str, Any]) -> IssuanceConfig:
    """Parse an ``IssuanceConfig`` from a dict (the ``issuance`` section)."""
    section = data.get("issuance", data)
    if not isinstance(section, dict):
        raise ValueError("'issuance' section must be a mapping")

    unknown = set(section) - _KNOWN_KEYS
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
    if "api_base_url" not in section:
        raise ValueError("api_base_url is required")

    kwargs: dict[str, Any] = {"api_base_url": str(section["api_base_url"]).rstrip("/")}
    if "request_timeout_seconds" in section:
        kwargs["request_timeout_seconds"] = float(section["request_timeout_seconds"])
    for key in ("overdue_after_days", "recent_within_days"):
        if key in section:
            kwargs[key] = int(section[key])
    for key in ("audit_storage_key", "default_return_note", "default_issue_note", "unknown_label"):
        if key in section:
            kwargs[key] = str(section[key])
    return IssuanceConfig(**kwargs)


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the parsed YAML, for change detection."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
