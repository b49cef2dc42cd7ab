#studex/policies/rbac.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Set

from studex.core.errors import Forbidden
from studex.models.enums import ActorRole, Party


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: ActorRole
    display_name: str

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def allowed_parties(role: ActorRole) -> Set[Party]:
    """
    Pure RBAC: which contract seats a role may occupy.
    """

    if role == ActorRole.CLIENT:
        return {Party.CLIENT}

    if role == ActorRole.FREELANCER:
        return {Party.FREELANCER}

    if role == ActorRole.HYBRID:
        return {Party.CLIENT, Party.FREELANCER}

    if role == ActorRole.ADMIN:
        return {Party.ADMIN}

    return set()


def require_party_capability(principal: Principal, party: Party) -> None:
    if party not in allowed_parties(principal.role):
        raise Forbidden(
            f"Role {principal.role.value} may not act as {party.value}."
        )


def require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise Forbidden("Only an admin may perform this action.")


def seat_on_contract(principal: Principal, *, client_id: str, freelancer_id: str) -> Optional[Party]:
    """
    Resolves the seat the principal holds on a contract, or None for outsiders.
    Hybrid users get whichever seat their id occupies.
    """
    if principal.is_admin:
        return Party.ADMIN
    if principal.user_id == client_id:
        return Party.CLIENT
    if principal.user_id == freelancer_id:
        return Party.FREELANCER
    return None
