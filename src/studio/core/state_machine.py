from __future__ import annotations

from enum import Enum
from typing import Dict, List


class ExchangeState(str, Enum):
    IDLE = "idle"
    AWAITING_PROVIDER = "awaiting-provider"
    STREAMING = "streaming"
    SETTLED = "settled"
    FAILED = "failed"


# Allowed per-exchange transitions; settled and failed accept a fresh submission.
STATE_TRANSITIONS: Dict[ExchangeState, List[ExchangeState]] = {
    ExchangeState.IDLE: [ExchangeState.AWAITING_PROVIDER],
    ExchangeState.AWAITING_PROVIDER: [ExchangeState.STREAMING, ExchangeState.SETTLED, ExchangeState.FAILED],
    ExchangeState.STREAMING: [ExchangeState.SETTLED, ExchangeState.FAILED],
    ExchangeState.SETTLED: [ExchangeState.AWAITING_PROVIDER],
    ExchangeState.FAILED: [ExchangeState.AWAITING_PROVIDER],
}


class InvalidTransition(RuntimeError):
    def __init__(self, current: ExchangeState, target: ExchangeState) -> None:
        super().__init__(f"cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


def next_states(current: ExchangeState) -> List[ExchangeState]:
    return list(STATE_TRANSITIONS.get(current, []))


def is_valid_transition(current: ExchangeState, target: ExchangeState) -> bool:
    return target in STATE_TRANSITIONS.get(current, [])


def accepts_submission(current: ExchangeState) -> bool:
    return is_valid_transition(current, ExchangeState.AWAITING_PROVIDER)
