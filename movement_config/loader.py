"""
Configuration Loader (``movement_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``movement_config.schema`` dataclasses.  Runtime callers go through
``movement_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  source for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown role, bad prefix, duplicate binding  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import re
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from movement_config.schema import KNOWN_ROLES, MovementConfig, RoleBindingDef
from movement_kernel.domain.values import RequestKind

_PREFIX_RE = re.compile(r"^[A-Z0-9]{2,10}$")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_code_prefixes(data: dict[str, Any]) -> dict[RequestKind, str]:
    """Parse ``codes:`` into a prefix per request kind."""
    prefixes: dict[RequestKind, str] = {}
    for kind in RequestKind:
        prefix = data[kind.value]
        if not isinstance(prefix, str) or not _PREFIX_RE.match(prefix):
            raise ValueError(
                f"Code prefix for {kind.value} must be 2-10 uppercase letters or digits, "
                f"got {prefix!r}"
            )
        prefixes[kind] = prefix
    if len(set(prefixes.values())) != len(prefixes):
        raise ValueError("Procurement and transfer code prefixes must differ")
    return prefixes


def parse_role_binding(data: dict[str, Any]) -> RoleBindingDef:
    """Parse one ``role_bindings`` entry."""
    role = data["role"]
    if role not in KNOWN_ROLES:
        raise ValueError(f"Unknown role {role!r}; expected one of {sorted(KNOWN_ROLES)}")
    try:
        actor_id = UUID(str(data["actor_id"]))
    except ValueError:
        raise ValueError(f"Invalid actor_id {data['actor_id']!r} in role binding") from None
    scope = data.get("scope")
    return RoleBindingDef(actor_id=actor_id, role=role, scope=str(scope) if scope else None)


def parse_config(data: dict[str, Any], checksum: str = "") -> MovementConfig:
    """
    Build a ``MovementConfig`` from a parsed YAML mapping.

    Raises:
        KeyError: a required key is missing.
        ValueError: a value is invalid.
    """
    version = data["version"]
    if not isinstance(version, int) or version < 1:
        raise ValueError(f"version must be a positive integer, got {version!r}")

    stock = data.get("stock") or {}
    allow_negative = stock.get("allow_negative", False)
    if not isinstance(allow_negative, bool):
        raise ValueError(f"stock.allow_negative must be a boolean, got {allow_negative!r}")

    warehouses = tuple(str(w) for w in data.get("warehouses") or ())
    if len(set(warehouses)) != len(warehouses):
        raise ValueError("warehouses contains duplicates")

    bindings = tuple(parse_role_binding(b) for b in data.get("role_bindings") or ())
    seen: set[tuple[UUID, str, str | None]] = set()
    for b in bindings:
        key = (b.actor_id, b.role, b.scope)
        if key in seen:
            raise ValueError(f"Duplicate role binding: {b.role} for {b.actor_id} at {b.scope}")
        seen.add(key)

    return MovementConfig(
        config_id=str(data["config_id"]),
        version=version,
        code_prefixes=parse_code_prefixes(data["codes"]),
        allow_negative_stock=allow_negative,
        warehouses=warehouses,
        role_bindings=bindings,
        database_url=(data.get("database") or {}).get("url"),
        checksum=checksum,
    )


def load_config_file(path: Path) -> MovementConfig:
    """Load, checksum and parse one configuration file."""
    data = load_yaml_file(path)
    return parse_config(data, checksum=compute_checksum(data))
