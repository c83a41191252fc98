"""
distribution_services.authorization -- department/role access policy.

Responsibility:
    Implements the kernel's ``AccessPolicy`` protocol on top of an
    ``IdentityProvider``: an actor may act for a department when it belongs
    to that department or holds a bypass role; an actor may force-complete
    when it holds one of the configured elevated roles.

Architecture position:
    Services layer.  Consumes ``AuthorizationConfig`` from
    distribution_config.  The kernel only sees the ``(allowed, reason)``
    answers.
"""

from __future__ import annotations

from uuid import UUID

from distribution_config.schema import AuthorizationConfig
from distribution_kernel.domain.ports import IdentityProvider


class RoleBasedAccessPolicy:
    """Department membership plus configured roles.

    Returns:
        (allowed, reason). reason is empty when allowed, or a short message
        when denied.
    """

    def __init__(self, identities: IdentityProvider, config: AuthorizationConfig | None = None):
        self._identities = identities
        self._config = config or AuthorizationConfig()

    def can_act_for_department(
        self, actor_id: UUID, department_id: UUID, operation: str,
    ) -> tuple[bool, str]:
        actor = self._identities.get_actor(actor_id)
        if actor is None:
            return (False, f"unknown actor {actor_id}")

        if any(actor.has_role(role) for role in self._config.bypass_department_roles):
            return (True, "")

        if actor.department_id != department_id:
            return (
                False,
                f"actor does not belong to department {department_id} required for {operation}",
            )
        return (True, "")

    def can_force_complete(self, actor_id: UUID) -> tuple[bool, str]:
        actor = self._identities.get_actor(actor_id)
        if actor is None:
            return (False, f"unknown actor {actor_id}")

        if any(actor.has_role(role) for role in self._config.elevated_roles):
            return (True, "")
        return (
            False,
            f"force completion requires one of roles {sorted(self._config.elevated_roles)}",
        )
