from studex.core.security import create_access_token
from studex.db.unit_of_work import run_in_transaction
from studex.models.enums import ActorRole
from studex.policies.rbac import Principal
from studex.services.ledger_service import LedgerService


def principal(user_id: str, role: str) -> Principal:
    return Principal(user_id=user_id, role=ActorRole(role), display_name=user_id)


def auth_headers(user_id: str, role: str) -> dict:
    token = create_access_token(subject=user_id, claims={"role": role, "display_name": user_id})
    return {"Authorization": f"Bearer {token}"}


def fund(db, user_id: str, amount: int) -> None:
    ledger = LedgerService()
    run_in_transaction(db, lambda: ledger.deposit(db, user_id=user_id, amount=amount))
