"""
Identity collaborator boundary (``settlement_kernel.domain.identity``).

The engine never authenticates anyone.  Callers hand every operation an
already-authenticated ``Actor``; the engine only checks role and
organization membership through the ``IdentityProvider`` protocol that
the surrounding application implements.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from uuid import UUID


class Role(str, Enum):
    """Roles the engine distinguishes."""

    CONTRACTOR = "contractor"
    REVIEWER = "reviewer"
    DIRECTOR = "director"


@dataclass(frozen=True)
class Actor:
    """An authenticated user as reported by the identity collaborator."""

    id: UUID
    role: Role
    organization_id: UUID


class IdentityProvider(Protocol):
    """What the engine consumes from the identity/organization service."""

    def current_user(self) -> Actor:
        ...

    def is_member(self, user_id: UUID, organization_id: UUID) -> bool:
        ...
