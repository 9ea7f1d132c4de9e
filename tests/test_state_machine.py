import pytest

from src.studio.core.state_machine import (
    ExchangeState,
    InvalidTransition,
    accepts_submission,
    is_valid_transition,
    next_states,
)


def test_streamed_path_is_valid():
    path = [
        ExchangeState.IDLE,
        ExchangeState.AWAITING_PROVIDER,
        ExchangeState.STREAMING,
        ExchangeState.SETTLED,
        ExchangeState.AWAITING_PROVIDER,
    ]
    for current, target in zip(path, path[1:]):
        assert is_valid_transition(current, target)


def test_non_streamed_reply_skips_streaming():
    assert is_valid_transition(ExchangeState.AWAITING_PROVIDER, ExchangeState.SETTLED)


@pytest.mark.parametrize(
    "current,target",
    [
        (ExchangeState.IDLE, ExchangeState.STREAMING),
        (ExchangeState.STREAMING, ExchangeState.AWAITING_PROVIDER),
        (ExchangeState.SETTLED, ExchangeState.STREAMING),
        (ExchangeState.FAILED, ExchangeState.SETTLED),
    ],
)
def test_invalid_transitions(current, target):
    assert not is_valid_transition(current, target)


def test_only_rest_states_accept_submission():
    assert accepts_submission(ExchangeState.IDLE)
    assert accepts_submission(ExchangeState.SETTLED)
    assert accepts_submission(ExchangeState.FAILED)
    assert not accepts_submission(ExchangeState.AWAITING_PROVIDER)
    assert not accepts_submission(ExchangeState.STREAMING)


def test_next_states_returns_copy():
    states = next_states(ExchangeState.IDLE)
    states.append(ExchangeState.FAILED)
    assert next_states(ExchangeState.IDLE) == [ExchangeState.AWAITING_PROVIDER]


def test_invalid_transition_message():
    err = InvalidTransition(ExchangeState.IDLE, ExchangeState.SETTLED)
    assert "idle" in str(err) and "settled" in str(err)
