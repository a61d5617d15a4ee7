"""Domain-specific exceptions for the call relay.

None of these ever reach the caller as call content; they are logged and the
affected leg degrades.
"""

from __future__ import annotations


class RelayError(Exception):
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class MalformedMessageError(RelayError):
    default_detail = "Malformed stream message."


class EndpointAcquisitionError(RelayError):
    default_detail = "Failed to get signed URL."


class AgentTransportError(RelayError):
    default_detail = "Agent connection failed."


class TelephonyTransportError(RelayError):
    default_detail = "Telephony stream send failed."
