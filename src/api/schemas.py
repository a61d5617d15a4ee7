"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OutboundCallRequest(BaseModel):
    number: str | None = Field(default=None, description="E.164 phone number to call.")
    prompt: str | None = Field(default=None, description="Agent prompt override for this call.")
    first_message: str | None = Field(default=None, description="Greeting the agent opens with.")


class OutboundCallResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Call initiated"
    call_sid: str = Field(alias="callSid")


class HealthResponse(BaseModel):
    message: str = "Server is running"
