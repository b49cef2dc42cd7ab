import threading
import uuid

import pytest
from sqlalchemy import func, select

from studex.core.errors import (
    ContractClosed,
    DisputeAlreadyResolved,
    DisputeNotFound,
    Forbidden,
    IllegalTransition,
    InvalidResolution,
)
from studex.models.dispute import Dispute
from studex.models.enums import ContractStatus, DisputeResolution, DisputeStatus, MovementReason
from studex.models.escrow_contract import EscrowContract
from studex.services.dispute_service import DisputeService, compute_payout
from studex.services.escrow_state_machine import EscrowStateMachine
from studex.services.ledger_service import LedgerService
from studex.services.notification_service import LoggingSink, NotificationEmitter
from studex.tests.helpers import fund, principal


def _contract_in_progress(db, client_p, freelancer_p, amount=25_000):
    fund(db, "client-1", 50_000)
    machine = EscrowStateMachine()
    contract = machine.create_contract(
        db, principal=client_p, freelancer_id="freelancer-1", amount=amount, job_title="Essay proofreading"
    )
    machine.start_work(db, contract_id=contract.id, principal=freelancer_p)
    return contract


def test_raise_dispute_freezes_contract(db, client_p, freelancer_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)

    contract, dispute = DisputeService().raise_dispute(
        db, contract_id=contract.id, principal=freelancer_p, reason="Client changed the brief"
    )

    assert contract.status == ContractStatus.disputed.value
    assert contract.dispute_id == dispute.id
    assert dispute.status == DisputeStatus.open.value
    assert dispute.raised_by_party == "freelancer"

    with pytest.raises(IllegalTransition):
        EscrowStateMachine().submit_work(db, contract_id=contract.id, principal=freelancer_p)


def test_cannot_dispute_secured_contract(db, client_p):
    fund(db, "client-1", 50_000)
    contract = EscrowStateMachine().create_contract(
        db, principal=client_p, freelancer_id="freelancer-1", amount=1_000, job_title="Tutoring"
    )
    with pytest.raises(IllegalTransition):
        DisputeService().raise_dispute(db, contract_id=contract.id, principal=client_p, reason="No show")


def test_second_dispute_on_same_contract_is_illegal(db, client_p, freelancer_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)
    svc = DisputeService()
    svc.raise_dispute(db, contract_id=contract.id, principal=client_p, reason="Late")

    with pytest.raises(IllegalTransition):
        svc.raise_dispute(db, contract_id=contract.id, principal=freelancer_p, reason="Also late")


def test_blank_reason_rejected(db, client_p, freelancer_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)
    with pytest.raises(InvalidResolution):
        DisputeService().raise_dispute(db, contract_id=contract.id, principal=client_p, reason="   ")


def test_resolve_favor_client_refunds_and_is_final(db, client_p, freelancer_p, admin_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)
    svc = DisputeService()
    _, dispute = svc.raise_dispute(db, contract_id=contract.id, principal=freelancer_p, reason="Scope creep")

    contract, dispute = svc.resolve(
        db, dispute_id=dispute.id, principal=admin_p, resolution=DisputeResolution.favor_client
    )

    assert contract.status == ContractStatus.resolved.value
    assert dispute.status == DisputeStatus.resolved.value
    assert dispute.resolved_by == "admin-1"
    assert LedgerService().balance_of(db, "client-1") == 50_000
    assert LedgerService().balance_of(db, "freelancer-1") == 0

    with pytest.raises(DisputeAlreadyResolved):
        svc.resolve(db, dispute_id=dispute.id, principal=admin_p, resolution=DisputeResolution.favor_client)
    assert LedgerService().balance_of(db, "client-1") == 50_000

    with pytest.raises(ContractClosed):
        svc.raise_dispute(db, contract_id=contract.id, principal=client_p, reason="Again")


def test_resolve_favor_freelancer_releases(db, client_p, freelancer_p, admin_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)
    svc = DisputeService()
    _, dispute = svc.raise_dispute(db, contract_id=contract.id, principal=client_p, reason="Quality")

    svc.resolve(db, dispute_id=dispute.id, principal=admin_p, resolution=DisputeResolution.favor_freelancer)

    assert LedgerService().balance_of(db, "freelancer-1") == 25_000
    assert LedgerService().balance_of(db, "client-1") == 25_000


def test_resolve_split_divides_held_amount(db, client_p, freelancer_p, admin_p):
    contract = _contract_in_progress(db, client_p, freelancer_p, amount=10_001)
    svc = DisputeService()
    _, dispute = svc.raise_dispute(db, contract_id=contract.id, principal=client_p, reason="Half done")

    _, dispute = svc.resolve(
        db,
        dispute_id=dispute.id,
        principal=admin_p,
        resolution=DisputeResolution.split,
        client_share_percent=30,
    )

    assert dispute.client_share_percent == 30
    # floor(10001 * 30 / 100) = 3000 back to the client, remainder to the freelancer
    assert LedgerService().balance_of(db, "client-1") == 50_000 - 10_001 + 3_000
    assert LedgerService().balance_of(db, "freelancer-1") == 7_001


def test_only_admin_resolves(db, client_p, freelancer_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)
    svc = DisputeService()
    _, dispute = svc.raise_dispute(db, contract_id=contract.id, principal=freelancer_p, reason="Unpaid extras")

    with pytest.raises(Forbidden):
        svc.resolve(db, dispute_id=dispute.id, principal=client_p, resolution=DisputeResolution.favor_client)


def test_share_percent_only_for_split(db, admin_p):
    with pytest.raises(InvalidResolution):
        DisputeService().resolve(
            db,
            dispute_id=uuid.uuid4(),
            principal=admin_p,
            resolution=DisputeResolution.favor_client,
            client_share_percent=40,
        )


def test_resolve_unknown_dispute(db, admin_p):
    with pytest.raises(DisputeNotFound):
        DisputeService().resolve(
            db, dispute_id=uuid.uuid4(), principal=admin_p, resolution=DisputeResolution.favor_client
        )


def test_get_dispute_visibility(db, client_p, freelancer_p, admin_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)
    svc = DisputeService()
    _, dispute = svc.raise_dispute(db, contract_id=contract.id, principal=client_p, reason="Missed deadline")

    assert svc.get(db, dispute_id=dispute.id, principal=freelancer_p).id == dispute.id
    assert svc.get(db, dispute_id=dispute.id, principal=admin_p).id == dispute.id
    with pytest.raises(Forbidden):
        svc.get(db, dispute_id=dispute.id, principal=principal("stranger", "client"))


def test_list_open_is_admin_only(db, client_p, freelancer_p, admin_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)
    svc = DisputeService()
    svc.raise_dispute(db, contract_id=contract.id, principal=client_p, reason="Wrong files")

    rows, total = svc.list_open(db, principal=admin_p, offset=0, limit=10)
    assert total == 1
    assert rows[0].contract_id == contract.id

    with pytest.raises(Forbidden):
        svc.list_open(db, principal=client_p, offset=0, limit=10)


class _Contract:
    def __init__(self, amount):
        self.amount = amount
        self.client_id = "c"
        self.freelancer_id = "f"


def test_compute_payout_legs_sum_to_amount():
    legs = compute_payout(_Contract(101), DisputeResolution.split)
    assert [(leg.user_id, leg.amount, leg.reason) for leg in legs] == [
        ("c", 50, MovementReason.ESCROW_REFUND),
        ("f", 51, MovementReason.ESCROW_RELEASE),
    ]


def test_compute_payout_drops_zero_legs():
    legs = compute_payout(_Contract(1), DisputeResolution.split, 50)
    assert [(leg.user_id, leg.amount) for leg in legs] == [("f", 1)]


@pytest.mark.parametrize("pct", [0, 100])
def test_compute_payout_rejects_out_of_range_share(pct):
    with pytest.raises(InvalidResolution):
        compute_payout(_Contract(100), DisputeResolution.split, pct)


def test_raise_dispute_from_completed(db, client_p, freelancer_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)
    EscrowStateMachine().submit_work(db, contract_id=contract.id, principal=freelancer_p)

    contract, dispute = DisputeService().raise_dispute(
        db, contract_id=contract.id, principal=client_p, reason="Deliverable is missing two chapters"
    )

    assert contract.status == ContractStatus.disputed.value
    assert dispute.raised_by_party == "client"
    # funds stay held until an admin resolves
    assert LedgerService().balance_of(db, "freelancer-1") == 0
    with pytest.raises(IllegalTransition):
        EscrowStateMachine().confirm_completion(db, contract_id=contract.id, principal=client_p)


def test_cannot_dispute_released_contract(db, client_p, freelancer_p):
    contract = _contract_in_progress(db, client_p, freelancer_p)
    machine = EscrowStateMachine()
    machine.submit_work(db, contract_id=contract.id, principal=freelancer_p)
    machine.confirm_completion(db, contract_id=contract.id, principal=client_p)

    with pytest.raises(ContractClosed):
        DisputeService().raise_dispute(db, contract_id=contract.id, principal=client_p, reason="Changed my mind")

    assert db.execute(select(func.count(Dispute.id))).scalar_one() == 0
    assert LedgerService().balance_of(db, "freelancer-1") == 25_000


def test_confirm_and_dispute_race_has_one_winner(session_factory, client_p, freelancer_p):
    setup = session_factory()
    contract = _contract_in_progress(setup, client_p, freelancer_p)
    EscrowStateMachine().submit_work(setup, contract_id=contract.id, principal=freelancer_p)
    contract_id = contract.id
    setup.close()

    machine = EscrowStateMachine(emitter=NotificationEmitter([LoggingSink()]))
    disputes = DisputeService(machine)
    results = {}
    lock = threading.Lock()
    barrier = threading.Barrier(2)

    def confirm(session):
        machine.confirm_completion(session, contract_id=contract_id, principal=client_p)

    def dispute(session):
        disputes.raise_dispute(session, contract_id=contract_id, principal=freelancer_p, reason="Client went silent")

    def attempt(name, action):
        session = session_factory()
        barrier.wait()
        try:
            action(session)
            outcome = "ok"
        except (IllegalTransition, ContractClosed) as exc:
            outcome = exc.code
        finally:
            session.close()
        with lock:
            results[name] = outcome

    threads = [
        threading.Thread(target=attempt, args=("confirm", confirm)),
        threading.Thread(target=attempt, args=("dispute", dispute)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    check = session_factory()
    try:
        assert list(results.values()).count("ok") == 1
        final = check.get(EscrowContract, contract_id)
        ledger = LedgerService()
        if results["confirm"] == "ok":
            assert results["dispute"] == "ContractClosed"
            assert final.status == ContractStatus.released.value
            assert ledger.balance_of(check, "freelancer-1") == 25_000
            assert check.execute(select(func.count(Dispute.id))).scalar_one() == 0
        else:
            assert results["confirm"] == "IllegalTransition"
            assert final.status == ContractStatus.disputed.value
            assert ledger.balance_of(check, "freelancer-1") == 0
        assert ledger.balance_of(check, "client-1") == 25_000
    finally:
        check.close()
