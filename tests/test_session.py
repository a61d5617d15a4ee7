from __future__ import annotations

import pytest

from relay.session import AgentPhase, CallSession


def test_initiation_is_claimed_once_after_start_and_open():
    session = CallSession()
    assert session.claim_initiation() is False

    session.transition(AgentPhase.ACQUIRING_ENDPOINT)
    session.transition(AgentPhase.CONNECTING)
    session.transition(AgentPhase.OPEN)
    assert session.claim_initiation() is False

    session.record_start(stream_sid="S1", call_sid="C1", custom_parameters=None)
    assert session.claim_initiation() is True
    assert session.claim_initiation() is False


def test_acquisition_may_fail_straight_to_closed():
    session = CallSession()
    session.transition(AgentPhase.ACQUIRING_ENDPOINT)
    session.transition(AgentPhase.CLOSED)
    assert session.phase is AgentPhase.CLOSED


def test_closed_session_cannot_reopen():
    session = CallSession(phase=AgentPhase.CLOSED)
    with pytest.raises(ValueError, match="closed -> open"):
        session.transition(AgentPhase.OPEN)


def test_agent_not_ready_without_connection():
    session = CallSession(phase=AgentPhase.OPEN, initiation_sent=True)
    assert session.agent_ready is False
