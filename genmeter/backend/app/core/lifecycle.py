"""Generation lifecycle: the transition table and its checks."""
from typing import Dict, FrozenSet

from app.core.constants import GenerationStatus
from app.core.exceptions import InvalidStatusTransitionError

S = GenerationStatus

ALLOWED_TRANSITIONS: Dict[GenerationStatus, FrozenSet[GenerationStatus]] = {
    S.PENDING: frozenset({S.PROCESSING, S.COMPLETED, S.CANCELLED, S.FAILED}),
    S.PROCESSING: frozenset({S.COMPLETED, S.CANCELLED, S.FAILED}),
    # Only reachable through retry
    S.FAILED: frozenset({S.PENDING}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})
SETTLED_STATUSES = frozenset({S.COMPLETED, S.FAILED, S.CANCELLED})

# How far along the lifecycle a status is; used to drop stale provider events
_PROGRESS = {
    S.PENDING: 0,
    S.PROCESSING: 1,
    S.COMPLETED: 2,
    S.FAILED: 2,
    S.CANCELLED: 2,
}


def can_transition(current: GenerationStatus, target: GenerationStatus) -> bool:
    return GenerationStatus(target) in ALLOWED_TRANSITIONS[GenerationStatus(current)]


def ensure_transition(current: GenerationStatus, target: GenerationStatus) -> None:
    """Raise InvalidStatusTransitionError unless ``current -> target`` is allowed."""
    current = GenerationStatus(current)
    target = GenerationStatus(target)
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(current.value, target.value)


def is_stale(current: GenerationStatus, target: GenerationStatus) -> bool:
    """
    True when a record has already reached or passed ``target``.

    A failed record re-entering pending through retry is the only backwards
    move, and it never arrives from the provider.
    """
    return _PROGRESS[GenerationStatus(target)] <= _PROGRESS[GenerationStatus(current)]
