# studex/core/escrow_graph.py
from dataclasses import dataclass
from typing import FrozenSet, Optional

from studex.models.enums import ContractEventType, ContractStatus, Party


@dataclass(frozen=True)
class TransitionRule:
    sources: FrozenSet[Optional[ContractStatus]]
    actors: FrozenSet[Party]
    target: ContractStatus


ALLOWED_TRANSITIONS = {
    ContractEventType.CREATE_CONTRACT: TransitionRule(
        sources=frozenset({None}),
        actors=frozenset({Party.CLIENT}),
        target=ContractStatus.secured,
    ),

    ContractEventType.START_WORK: TransitionRule(
        sources=frozenset({ContractStatus.secured}),
        actors=frozenset({Party.FREELANCER}),
        target=ContractStatus.work_in_progress,
    ),

    ContractEventType.SUBMIT_WORK: TransitionRule(
        sources=frozenset({ContractStatus.work_in_progress}),
        actors=frozenset({Party.FREELANCER}),
        target=ContractStatus.completed,
    ),

    ContractEventType.CONFIRM_COMPLETION: TransitionRule(
        sources=frozenset({ContractStatus.completed}),
        actors=frozenset({Party.CLIENT}),
        target=ContractStatus.released,
    ),

    ContractEventType.RAISE_DISPUTE: TransitionRule(
        sources=frozenset({ContractStatus.work_in_progress, ContractStatus.completed}),
        actors=frozenset({Party.CLIENT, Party.FREELANCER}),
        target=ContractStatus.disputed,
    ),

    ContractEventType.RESOLVE_DISPUTE: TransitionRule(
        sources=frozenset({ContractStatus.disputed}),
        actors=frozenset({Party.ADMIN}),
        target=ContractStatus.resolved,
    ),
}


def rule_for(event: ContractEventType) -> TransitionRule:
    return ALLOWED_TRANSITIONS[event]


def next_status(current: Optional[ContractStatus], event: ContractEventType) -> Optional[ContractStatus]:
    """
    Pure lookup: the status an event leads to from `current`, or None if the
    (current, event) pair is not declared.
    """
    rule = ALLOWED_TRANSITIONS.get(event)
    if rule is None or current not in rule.sources:
        return None
    return rule.target
