import threading
import uuid

import pytest
from sqlalchemy import func, select

from studex.core.errors import (
    ContractClosed,
    ContractNotFound,
    Forbidden,
    IllegalTransition,
    InsufficientFunds,
    InvalidContract,
)
from studex.core.escrow_graph import ALLOWED_TRANSITIONS, next_status
from studex.models.contract_event import ContractEvent
from studex.models.enums import ContractEventType, ContractStatus
from studex.models.escrow_contract import EscrowContract
from studex.models.notification import Notification
from studex.services.contract_registry import ContractRegistry
from studex.services.escrow_state_machine import EscrowStateMachine
from studex.services.idempotency_service import IdempotencyClaim, IdempotencyScope, IdempotentReplay
from studex.services.ledger_service import LedgerService
from studex.services.notification_service import LoggingSink, NotificationEmitter
from studex.tests.helpers import fund, principal


def _create(db, client_p, amount=25_000, freelancer_id="freelancer-1"):
    return EscrowStateMachine().create_contract(
        db,
        principal=client_p,
        freelancer_id=freelancer_id,
        amount=amount,
        job_title="Logo design",
    )


def test_create_contract_secures_funds(db, client_p):
    fund(db, "client-1", 50_000)

    contract = _create(db, client_p)

    assert contract.status == ContractStatus.secured.value
    assert contract.client_id == "client-1"
    assert LedgerService().balance_of(db, "client-1") == 25_000

    events = ContractRegistry().list_events(db, contract.id)
    assert [(e.from_status, e.to_status, e.event_type) for e in events] == [
        ("created", "secured", "createContract")
    ]

    inbox = db.execute(select(Notification).where(Notification.recipient_id == "freelancer-1")).scalars().all()
    assert [n.event_type for n in inbox] == ["ContractSecured"]


def test_create_contract_insufficient_funds_creates_nothing(db, client_p):
    fund(db, "client-1", 10_000)

    with pytest.raises(InsufficientFunds):
        _create(db, client_p)

    assert db.execute(select(func.count(EscrowContract.id))).scalar_one() == 0
    assert LedgerService().balance_of(db, "client-1") == 10_000


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"amount": 0}, "amount"),
        ({"amount": -10}, "amount"),
        ({"freelancer_id": "client-1"}, "freelancerId"),
        ({"freelancer_id": "  "}, "freelancerId"),
        ({"freelancer_id": " client-1"}, "freelancerId"),
        ({"amount": 2**63}, "amount"),
    ],
)
def test_create_contract_validation(db, client_p, kwargs, field):
    fund(db, "client-1", 50_000)
    with pytest.raises(InvalidContract) as exc:
        _create(db, client_p, **kwargs)
    assert field in exc.value.errors
    assert LedgerService().balance_of(db, "client-1") == 50_000


def test_freelancer_cannot_create_contract(db, freelancer_p):
    with pytest.raises(Forbidden):
        _create(db, freelancer_p, freelancer_id="someone-else")


def test_hybrid_user_can_hire(db):
    hybrid = principal("hybrid-1", "hybrid")
    fund(db, "hybrid-1", 5_000)
    contract = _create(db, hybrid, amount=5_000)
    assert contract.client_id == "hybrid-1"


def test_happy_path_releases_to_freelancer(db, client_p, freelancer_p):
    fund(db, "client-1", 50_000)
    machine = EscrowStateMachine()
    contract = _create(db, client_p)

    machine.start_work(db, contract_id=contract.id, principal=freelancer_p)
    machine.submit_work(db, contract_id=contract.id, principal=freelancer_p)
    released = machine.confirm_completion(db, contract_id=contract.id, principal=client_p)

    assert released.status == ContractStatus.released.value
    assert LedgerService().balance_of(db, "freelancer-1") == 25_000
    assert LedgerService().balance_of(db, "client-1") == 25_000

    with pytest.raises(ContractClosed):
        machine.confirm_completion(db, contract_id=contract.id, principal=client_p)
    assert LedgerService().balance_of(db, "freelancer-1") == 25_000

    statuses = [e.to_status for e in ContractRegistry().list_events(db, contract.id)]
    assert statuses == ["secured", "work_in_progress", "completed", "released"]


def test_confirm_on_secured_is_illegal(db, client_p):
    fund(db, "client-1", 50_000)
    contract = _create(db, client_p)

    with pytest.raises(IllegalTransition):
        EscrowStateMachine().confirm_completion(db, contract_id=contract.id, principal=client_p)

    assert LedgerService().balance_of(db, "client-1") == 25_000
    assert LedgerService().balance_of(db, "freelancer-1") == 0
    db.refresh(contract)
    assert contract.status == ContractStatus.secured.value


def test_wrong_actor_is_forbidden(db, client_p, freelancer_p):
    fund(db, "client-1", 50_000)
    machine = EscrowStateMachine()
    contract = _create(db, client_p)

    with pytest.raises(Forbidden):
        machine.start_work(db, contract_id=contract.id, principal=client_p)

    machine.start_work(db, contract_id=contract.id, principal=freelancer_p)
    machine.submit_work(db, contract_id=contract.id, principal=freelancer_p)
    with pytest.raises(Forbidden):
        machine.confirm_completion(db, contract_id=contract.id, principal=freelancer_p)


def test_outsider_is_forbidden(db, client_p):
    fund(db, "client-1", 50_000)
    contract = _create(db, client_p)
    with pytest.raises(Forbidden):
        EscrowStateMachine().start_work(
            db, contract_id=contract.id, principal=principal("stranger", "freelancer")
        )


def test_admin_cannot_drive_work_events(db, client_p, admin_p):
    fund(db, "client-1", 50_000)
    contract = _create(db, client_p)
    with pytest.raises(Forbidden):
        EscrowStateMachine().start_work(db, contract_id=contract.id, principal=admin_p)


def test_unknown_contract(db, freelancer_p):
    with pytest.raises(ContractNotFound):
        EscrowStateMachine().start_work(db, contract_id=uuid.uuid4(), principal=freelancer_p)


def test_failed_transition_writes_no_event(db, client_p):
    fund(db, "client-1", 50_000)
    contract = _create(db, client_p)

    with pytest.raises(IllegalTransition):
        EscrowStateMachine().confirm_completion(db, contract_id=contract.id, principal=client_p)

    count = db.execute(
        select(func.count(ContractEvent.id)).where(ContractEvent.contract_id == contract.id)
    ).scalar_one()
    assert count == 1


def test_graph_declares_only_the_documented_pairs():
    declared = {
        (src, event)
        for event, rule in ALLOWED_TRANSITIONS.items()
        for src in rule.sources
    }
    assert declared == {
        (None, ContractEventType.CREATE_CONTRACT),
        (ContractStatus.secured, ContractEventType.START_WORK),
        (ContractStatus.work_in_progress, ContractEventType.SUBMIT_WORK),
        (ContractStatus.completed, ContractEventType.CONFIRM_COMPLETION),
        (ContractStatus.work_in_progress, ContractEventType.RAISE_DISPUTE),
        (ContractStatus.completed, ContractEventType.RAISE_DISPUTE),
        (ContractStatus.disputed, ContractEventType.RESOLVE_DISPUTE),
    }

    for terminal in (ContractStatus.released, ContractStatus.resolved):
        for event in ContractEventType:
            assert next_status(terminal, event) is None


def test_concurrent_retries_with_one_key_hold_once(session_factory, client_p):
    setup = session_factory()
    fund(setup, "client-1", 100_000)
    setup.close()

    scope = IdempotencyScope(participant_id="client-1", endpoint_key="POST:/api/v1/contracts", idem_key="hire-1")
    body = {"freelancerId": "freelancer-1", "amount": 25_000, "jobTitle": "Logo design"}
    machine = EscrowStateMachine(emitter=NotificationEmitter([LoggingSink()]))
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(4)

    def attempt():
        session = session_factory()
        claim = IdempotencyClaim(scope, body, lambda c: {"contractId": str(c.id)}, 201)
        barrier.wait()
        try:
            contract = machine.create_contract(
                session,
                principal=client_p,
                freelancer_id="freelancer-1",
                amount=25_000,
                job_title="Logo design",
                idempotency=claim,
            )
            outcome = ("created", str(contract.id))
        except IdempotentReplay as exc:
            outcome = ("replayed", exc.replay.body["contractId"])
        finally:
            session.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    check = session_factory()
    try:
        kinds = [kind for kind, _ in results]
        assert len(results) == 4
        assert kinds.count("created") == 1
        assert kinds.count("replayed") == 3
        assert len({contract_id for _, contract_id in results}) == 1
        assert check.execute(select(func.count(EscrowContract.id))).scalar_one() == 1
        assert LedgerService().balance_of(check, "client-1") == 75_000
        assert LedgerService().verify_chain(check, "client-1") is True
    finally:
        check.close()


def test_idempotency_key_is_not_kept_when_hold_fails(db, client_p):
    fund(db, "client-1", 10_000)
    scope = IdempotencyScope(participant_id="client-1", endpoint_key="POST:/api/v1/contracts", idem_key="hire-2")
    body = {"freelancerId": "freelancer-1", "amount": 25_000, "jobTitle": "Logo design"}

    def create():
        return EscrowStateMachine().create_contract(
            db,
            principal=client_p,
            freelancer_id="freelancer-1",
            amount=25_000,
            job_title="Logo design",
            idempotency=IdempotencyClaim(scope, body, lambda c: {"contractId": str(c.id)}, 201),
        )

    with pytest.raises(InsufficientFunds):
        create()

    # the key was rolled back with the hold, so the same request may run again
    fund(db, "client-1", 20_000)
    contract = create()
    assert contract.status == ContractStatus.secured.value
    assert LedgerService().balance_of(db, "client-1") == 5_000
