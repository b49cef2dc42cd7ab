import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from studex.core.errors import ConcurrencyConflict
from studex.db.unit_of_work import is_race, run_in_transaction


def _integrity(message):
    return IntegrityError("INSERT ...", {}, Exception(message))


class PgError(Exception):
    def __init__(self, pgcode):
        super().__init__("duplicate key value violates unique constraint")
        self.pgcode = pgcode


def test_unique_violation_is_retried_until_it_succeeds(db):
    calls = []

    def work():
        calls.append(1)
        if len(calls) < 3:
            raise _integrity("UNIQUE constraint failed: ledger_accounts.user_id")
        return "done"

    assert run_in_transaction(db, work, retries=5) == "done"
    assert len(calls) == 3


def test_check_violation_is_not_retried(db):
    calls = []

    def work():
        calls.append(1)
        raise _integrity("CHECK constraint failed: ck_escrow_contract_distinct_parties")

    with pytest.raises(IntegrityError):
        run_in_transaction(db, work, retries=5)
    assert len(calls) == 1


def test_persistent_races_become_concurrency_conflict(db):
    calls = []

    def work():
        calls.append(1)
        raise StaleDataError("version mismatch")

    with pytest.raises(ConcurrencyConflict):
        run_in_transaction(db, work, retries=3)
    assert len(calls) == 3


@pytest.mark.parametrize(
    "exc, expected",
    [
        (StaleDataError("version mismatch"), True),
        (_integrity("UNIQUE constraint failed: disputes.contract_id"), True),
        (IntegrityError("INSERT ...", {}, PgError("23505")), True),
        (IntegrityError("INSERT ...", {}, PgError("23514")), False),
        (_integrity("NOT NULL constraint failed: escrow_contracts.job_title"), False),
        (ValueError("nope"), False),
    ],
)
def test_is_race(exc, expected):
    assert is_race(exc) is expected
