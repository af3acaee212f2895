"""
AccessGuard -- role and membership checks for engine operations.

Responsibility:
    Decides whether an already-authenticated ``Actor`` may perform an
    operation on a project.  Authentication itself belongs to the identity
    collaborator; this module only consumes ``IdentityProvider.is_member``.

Architecture position:
    Kernel > Services.  Called by ``SettlementEngine`` before any mutation.

Invariants enforced:
    - Every operation has an explicit role set in ``OPERATION_ROLES``; an
      unknown operation is refused rather than allowed.
    - The actor must belong to the project's organization.
    - Contractor operations additionally require the contractor to be
      assigned to the project.

Failure modes:
    - ForbiddenError on wrong role, missing membership or missing
      contractor assignment.  Never retried automatically.
"""

from types import MappingProxyType

from settlement_kernel.domain.identity import Actor, IdentityProvider, Role
from settlement_kernel.exceptions import ForbiddenError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.project import ProjectModel

logger = get_logger("services.access_guard")

_CONTRACTOR = frozenset({Role.CONTRACTOR})
_REVIEWERS = frozenset({Role.REVIEWER, Role.DIRECTOR})
_DIRECTOR = frozenset({Role.DIRECTOR})
_ANYONE = frozenset(Role)

OPERATION_ROLES: MappingProxyType = MappingProxyType({
    # Project setup
    "create_project": _DIRECTOR,
    "add_reviewer": _DIRECTOR,
    "assign_contractor": _DIRECTOR,
    "create_line_item": frozenset({Role.CONTRACTOR, Role.DIRECTOR}),
    # Schedule of values
    "set_materials_stored": _CONTRACTOR,
    "recompute": _REVIEWERS,
    "roll_forward": _DIRECTOR,
    # Expenses
    "add_expense": _CONTRACTOR,
    "attach_receipt": _CONTRACTOR,
    "reverse_expense": _CONTRACTOR,
    "approve_expense": _REVIEWERS,
    "remove_expense": _ANYONE,
    # Review workflow
    "create_draft": _CONTRACTOR,
    "submit": _CONTRACTOR,
    "approve": _REVIEWERS,
    "request_changes": _REVIEWERS,
    "finalize": _DIRECTOR,
    # Settlement
    "export": _ANYONE,
})


class AccessGuard:
    """Role, membership and assignment checks."""

    def __init__(self, identity: IdentityProvider):
        self._identity = identity

    def require(self, actor: Actor, operation: str, project: ProjectModel) -> None:
        """
        Raise ForbiddenError unless ``actor`` may run ``operation`` on ``project``.
        """
        allowed = OPERATION_ROLES.get(operation)
        if allowed is None:
            self._deny(actor, operation, "unknown operation")
        if actor.role not in allowed:
            self._deny(actor, operation, f"role '{actor.role.value}' not permitted")
        if not self._identity.is_member(actor.id, project.organization_id):
            self._deny(actor, operation, "not a member of the project's organization")
        if actor.role is Role.CONTRACTOR and not any(
            c.contractor_id == actor.id for c in project.contractors
        ):
            self._deny(actor, operation, "contractor not assigned to project")

    def require_role(self, actor: Actor, operation: str) -> None:
        """Role-only check, for operations that create the project itself."""
        allowed = OPERATION_ROLES.get(operation)
        if allowed is None or actor.role not in allowed:
            self._deny(actor, operation, f"role '{actor.role.value}' not permitted")
        if not self._identity.is_member(actor.id, actor.organization_id):
            self._deny(actor, operation, "not a member of the organization")

    @staticmethod
    def _deny(actor: Actor, operation: str, reason: str) -> None:
        logger.warning(
            "access_denied",
            extra={
                "actor_id": str(actor.id),
                "role": actor.role.value,
                "action": operation,
                "reason": reason,
            },
        )
        raise ForbiddenError(str(actor.id), operation, reason)
