"""Shared abstractions for conversational agent connections."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any


class BaseAgentConnection(ABC):
    """A single open, bidirectional connection to a voice agent."""

    @abstractmethod
    async def send_json(self, payload: dict[str, Any]) -> None:
        """Serialize and send one frame. Raises AgentTransportError."""

    @abstractmethod
    def messages(self) -> AsyncIterator[str]:
        """Yield raw inbound frames in arrival order until the connection closes.

        A normal close ends the iteration; an abnormal one raises
        AgentTransportError.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Calling it again is a no-op."""


class BaseAgentConnector(ABC):
    """Abstract factory for agent connections."""

    @abstractmethod
    async def acquire_endpoint(self) -> str:
        """Return a fresh single-use connection URL. Raises EndpointAcquisitionError."""

    @abstractmethod
    async def connect(self, endpoint_url: str) -> BaseAgentConnection:
        """Open a connection to the given URL. Raises AgentTransportError."""
