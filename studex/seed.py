"""
Dev seed: funds a few wallets and prints bearer tokens for them.

    DATABASE_URL=... JWT_SECRET_KEY=... python -m studex.seed
"""
from sqlalchemy.orm import Session

from studex.core.security import create_access_token
from studex.db.session import SessionLocal
from studex.db.unit_of_work import run_in_transaction
from studex.services.ledger_service import LedgerService

DEV_USERS = {
    "client-1": {"role": "client", "display_name": "Asha (client)", "balance": 500_000},
    "freelancer-1": {"role": "freelancer", "display_name": "Ravi (freelancer)", "balance": 0},
    "hybrid-1": {"role": "hybrid", "display_name": "Meera (hybrid)", "balance": 200_000},
    "admin-1": {"role": "admin", "display_name": "Ops admin", "balance": 0},
}


def seed():
    db: Session = SessionLocal()
    ledger = LedgerService()

    try:
        for user_id, info in DEV_USERS.items():
            if info["balance"] and ledger.balance_of(db, user_id) == 0:
                run_in_transaction(
                    db,
                    lambda: ledger.deposit(db, user_id=user_id, amount=info["balance"]),
                    label="seed",
                )

            token = create_access_token(
                subject=user_id,
                claims={"role": info["role"], "display_name": info["display_name"]},
            )
            print(f"{user_id:<14} balance={ledger.balance_of(db, user_id):>8}  token={token}")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
