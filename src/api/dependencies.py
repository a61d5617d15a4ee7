"""Shared FastAPI dependencies.

Separated so tests can override collaborators through `app.dependency_overrides`.
"""

from __future__ import annotations

import logging

from fastapi import Depends

from integrations.elevenlabs_agent import ElevenLabsConnector
from integrations.twilio_client import TwilioConfig, build_twilio_client, get_twilio_config
from relay.base import BaseAgentConnector

LOGGER = logging.getLogger(__name__)


def get_agent_connector() -> BaseAgentConnector:
    # Credentials are resolved lazily so a misconfigured agent only breaks the agent leg.
    return ElevenLabsConnector()


def get_twilio_cfg() -> TwilioConfig | None:
    # None lets the route validate the request before reporting misconfiguration.
    try:
        return get_twilio_config()
    except ValueError as exc:
        LOGGER.error("Twilio is not configured: %s", exc)
        return None


def get_twilio_client(cfg: TwilioConfig | None = Depends(get_twilio_cfg)):
    if cfg is None:
        return None
    return build_twilio_client(cfg)
