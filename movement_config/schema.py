"""
MovementConfig schema.

Typed, frozen form of a configuration set.  YAML is parsed into these
types by the loader; services receive them through
``movement_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from movement_kernel.domain.values import RequestKind

# Roles referenced by the procurement and transfer workflows.
KNOWN_ROLES = frozenset({
    "requester",
    "procurement_approver",
    "accountant",
    "receiver",
    "branch_reviewer",
    "warehouse_reviewer",
    "shipper",
})


# ---------------------------------------------------------------------------
# Role bindings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RoleBindingDef:
    """Grants ``role`` to ``actor_id``; ``scope`` is a branch or warehouse id, or None for all."""

    actor_id: UUID
    role: str
    scope: str | None = None


# ---------------------------------------------------------------------------
# Configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MovementConfig:
    """A validated configuration set."""

    config_id: str
    version: int
    code_prefixes: dict[RequestKind, str]
    allow_negative_stock: bool = False
    warehouses: tuple[str, ...] = ()
    role_bindings: tuple[RoleBindingDef, ...] = ()
    database_url: str | None = None
    checksum: str = field(default="", compare=False)
