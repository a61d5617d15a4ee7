"""Per-call session state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from relay.base import BaseAgentConnection

LOGGER = logging.getLogger(__name__)


class AgentPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACQUIRING_ENDPOINT = "acquiring_endpoint"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


_ALLOWED_TRANSITIONS: dict[AgentPhase, frozenset[AgentPhase]] = {
    AgentPhase.UNINITIALIZED: frozenset({AgentPhase.ACQUIRING_ENDPOINT, AgentPhase.CLOSED}),
    AgentPhase.ACQUIRING_ENDPOINT: frozenset({AgentPhase.CONNECTING, AgentPhase.CLOSED}),
    AgentPhase.CONNECTING: frozenset({AgentPhase.OPEN, AgentPhase.CLOSED}),
    AgentPhase.OPEN: frozenset({AgentPhase.CLOSED}),
    AgentPhase.CLOSED: frozenset(),
}


@dataclass
class CallSession:
    """Mutable state of one relayed call.

    `initiation_sent` is a one-shot cell: it flips exactly once, when the agent
    connection is open and the telephony `start` event has been seen, whichever
    of the two happens last.
    """

    stream_sid: str | None = None
    call_sid: str | None = None
    custom_parameters: dict[str, str] = field(default_factory=dict)
    agent: BaseAgentConnection | None = None
    phase: AgentPhase = AgentPhase.UNINITIALIZED
    started: bool = False
    stopped: bool = False
    initiation_sent: bool = False
    agent_close_requested: bool = False

    def transition(self, phase: AgentPhase) -> None:
        if phase is self.phase:
            return
        if phase not in _ALLOWED_TRANSITIONS[self.phase]:
            raise ValueError(f"Invalid agent phase transition {self.phase.value} -> {phase.value}")
        LOGGER.debug("Call %s agent phase %s -> %s", self.call_sid, self.phase.value, phase.value)
        self.phase = phase

    def record_start(
        self,
        *,
        stream_sid: str,
        call_sid: str | None,
        custom_parameters: dict[str, str] | None,
    ) -> None:
        self.stream_sid = stream_sid
        self.call_sid = call_sid
        self.custom_parameters = dict(custom_parameters or {})
        self.started = True

    @property
    def agent_ready(self) -> bool:
        """True when caller audio may be forwarded to the agent."""

        return self.phase is AgentPhase.OPEN and self.initiation_sent and self.agent is not None

    def claim_initiation(self) -> bool:
        """Return True exactly once, when both preconditions for initiation hold."""

        if self.initiation_sent or not self.started or self.phase is not AgentPhase.OPEN:
            return False
        self.initiation_sent = True
        return True
