"""
Transition authorizer (``movement_kernel.domain.authorization``).

Responsibility
--------------
Resolves {current state x actor role x action} to the single allowed edge
of a workflow, or fails.  The role provider is treated as a yes/no oracle
and consulted on every call; nothing here caches its answers.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over ``Workflow`` tables and an
injected ``RoleProvider``.

Failure modes
-------------
- ``IllegalTransitionError`` when no edge leaves the current status via the
  action.  Checked first: the edge determines which roles apply.
- ``AuthorizationError`` when the actor holds none of the edge's roles and
  is not an allowed requester.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from uuid import UUID

from movement_kernel.domain.values import MovementRequest
from movement_kernel.domain.workflow import (
    RoleRequirement,
    Transition,
    Workflow,
    find_transition,
)
from movement_kernel.exceptions import AuthorizationError, IllegalTransitionError


@runtime_checkable
class RoleProvider(Protocol):
    """Answers whether an actor holds a role, optionally at a branch."""

    def has_role(self, actor_id: UUID, role: str, scope: str | None = None) -> bool:
        ...


@dataclass(frozen=True)
class RoleGrant:
    """A role held by an actor.  ``scope=None`` grants it everywhere."""
    role: str
    scope: str | None = None


class StaticRoleProvider:
    """Default RoleProvider backed by a simple dict.

    Can be replaced with a database-backed or directory-backed implementation.
    """

    def __init__(self, role_map: dict[UUID, tuple[RoleGrant, ...]] | None = None) -> None:
        self._role_map: dict[UUID, tuple[RoleGrant, ...]] = dict(role_map or {})

    def grant(self, actor_id: UUID, role: str, scope: str | None = None) -> None:
        self._role_map[actor_id] = self._role_map.get(actor_id, ()) + (RoleGrant(role, scope),)

    def get_actor_roles(self, actor_id: UUID) -> tuple[RoleGrant, ...]:
        return self._role_map.get(actor_id, ())

    def has_role(self, actor_id: UUID, role: str, scope: str | None = None) -> bool:
        for g in self._role_map.get(actor_id, ()):
            if g.role != role:
                continue
            if g.scope is None or scope is None or g.scope == scope:
                return True
        return False


def _satisfies(
    requirement: RoleRequirement,
    actor_id: UUID,
    subject: object,
    role_provider: RoleProvider,
) -> bool:
    scope = None
    if requirement.scope_field is not None:
        scope = getattr(subject, requirement.scope_field, None)
        if scope is None:
            return False
    return role_provider.has_role(actor_id, requirement.role, scope)


def check_roles(
    roles: tuple[RoleRequirement, ...],
    actor_id: UUID,
    subject: object,
    role_provider: RoleProvider,
    action: str,
) -> None:
    """Raise ``AuthorizationError`` unless the actor meets one requirement."""
    if any(_satisfies(r, actor_id, subject, role_provider) for r in roles):
        return
    raise AuthorizationError(str(actor_id), action, tuple(r.role for r in roles))


def authorize_transition(
    workflow: Workflow,
    request: MovementRequest,
    action: str,
    actor_id: UUID,
    role_provider: RoleProvider,
) -> Transition:
    """Return the edge ``action`` fires from ``request.status`` for this actor."""
    transition = find_transition(workflow, request.status, action)
    if transition is None:
        raise IllegalTransitionError(
            str(request.id), action, request.status, request=request,
        )
    if transition.allow_requester and request.requested_by == actor_id:
        return transition
    check_roles(transition.roles, actor_id, request, role_provider, action)
    return transition
