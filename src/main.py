"""Entry point for the Twilio to ElevenLabs voice relay service."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from api.routes import router as api_router
from api.twilio_routes import router as twilio_router
from config.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Outbound Voice Agent Relay",
    description="Relays Twilio call audio to an ElevenLabs conversational agent.",
)
app.include_router(api_router)
app.include_router(twilio_router)
