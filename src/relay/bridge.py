"""Relay between one Twilio media stream and one ElevenLabs conversation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from integrations.elevenlabs_agent import (
    InitiationDefaults,
    build_initiation_message,
    build_pong,
    build_user_audio_message,
    extract_audio_payload,
    extract_ping_event_id,
    get_initiation_defaults,
    parse_agent_message,
)
from integrations.twilio_streaming import (
    build_media_frame,
    parse_media_payload,
    parse_start,
    parse_twilio_ws_message,
)
from relay.base import BaseAgentConnector
from relay.errors import (
    AgentTransportError,
    EndpointAcquisitionError,
    MalformedMessageError,
    TelephonyTransportError,
)
from relay.session import AgentPhase, CallSession

LOGGER = logging.getLogger(__name__)

CallerSink = Callable[[str], Awaitable[None]]


class CallSessionHandler:
    """Owns one CallSession and relays audio in both directions.

    Telephony frames arrive through `handle_telephony_message`, called by the
    websocket route in arrival order. Agent frames are consumed by the agent
    leg task started with `start()`. The two may interleave freely; the only
    coupling is the one-shot initiation cell on the session.
    """

    def __init__(
        self,
        send_to_caller: CallerSink,
        connector: BaseAgentConnector,
        *,
        defaults: InitiationDefaults | None = None,
    ) -> None:
        self.session = CallSession()
        self._send_to_caller = send_to_caller
        self._connector = connector
        self._defaults = defaults or get_initiation_defaults()
        self._agent_task: asyncio.Task | None = None

    def start(self) -> asyncio.Task:
        if self._agent_task is None:
            self._agent_task = asyncio.create_task(self.run_agent_leg())
        return self._agent_task

    async def run_agent_leg(self) -> None:
        try:
            await self._run_agent_leg()
        except Exception:
            LOGGER.exception("Agent leg for call %s failed", self.session.call_sid)
            await self._abort_agent()

    async def _abort_agent(self) -> None:
        session = self.session
        if session.agent is not None and not session.agent_close_requested:
            session.agent_close_requested = True
            with contextlib.suppress(AgentTransportError):
                await session.agent.close()
        session.transition(AgentPhase.CLOSED)

    async def _run_agent_leg(self) -> None:
        session = self.session
        if session.stopped:
            session.transition(AgentPhase.CLOSED)
            return

        session.transition(AgentPhase.ACQUIRING_ENDPOINT)
        try:
            endpoint_url = await self._connector.acquire_endpoint()
        except EndpointAcquisitionError as exc:
            LOGGER.error("ElevenLabs setup failed for call %s: %s", session.call_sid, exc.detail)
            session.transition(AgentPhase.CLOSED)
            return

        if session.stopped:
            session.transition(AgentPhase.CLOSED)
            return

        session.transition(AgentPhase.CONNECTING)
        try:
            connection = await self._connector.connect(endpoint_url)
        except AgentTransportError as exc:
            LOGGER.error("ElevenLabs connection failed for call %s: %s", session.call_sid, exc.detail)
            session.transition(AgentPhase.CLOSED)
            return

        session.agent = connection
        if session.stopped:
            await self.close_agent()
            return

        session.transition(AgentPhase.OPEN)
        LOGGER.info("Connected to ElevenLabs Conversational AI (call %s)", session.call_sid)

        try:
            await self._maybe_initiate_conversation()
            async for raw in connection.messages():
                await self.handle_agent_message(raw)
        except AgentTransportError as exc:
            LOGGER.error("ElevenLabs transport error for call %s: %s", session.call_sid, exc.detail)
        finally:
            session.transition(AgentPhase.CLOSED)
            LOGGER.info("ElevenLabs disconnected (call %s)", session.call_sid)

    async def _maybe_initiate_conversation(self) -> None:
        session = self.session
        if not session.claim_initiation():
            return

        message = build_initiation_message(session.custom_parameters, self._defaults)
        LOGGER.info("Sending conversation initiation for call %s", session.call_sid)
        LOGGER.debug("Initiation payload: %s", message)
        await session.agent.send_json(message)

    async def handle_telephony_message(self, raw: str | bytes) -> None:
        try:
            message = parse_twilio_ws_message(raw)
            event = str(message.get("event") or "")
            if event == "start":
                await self._on_start(message)
            elif event == "media":
                await self._on_media(message)
            elif event == "stop":
                LOGGER.info("Twilio stream %s ended", self.session.stream_sid)
                await self.close_agent()
            else:
                LOGGER.debug("Ignoring Twilio event %r", event)
        except MalformedMessageError as exc:
            LOGGER.warning("Skipping Twilio frame for call %s: %s", self.session.call_sid, exc.detail)
        except AgentTransportError as exc:
            LOGGER.error("Forwarding to ElevenLabs failed for call %s: %s", self.session.call_sid, exc.detail)

    async def _on_start(self, message: dict[str, Any]) -> None:
        session = self.session
        start = parse_start(message)
        if session.started:
            LOGGER.warning("Duplicate start for stream %s ignored", session.stream_sid)
            return

        session.record_start(
            stream_sid=start.stream_sid,
            call_sid=start.call_sid,
            custom_parameters=start.custom_parameters,
        )
        LOGGER.info("Twilio stream started - StreamSid: %s, CallSid: %s", start.stream_sid, start.call_sid)
        await self._maybe_initiate_conversation()

    async def _on_media(self, message: dict[str, Any]) -> None:
        payload = parse_media_payload(message)
        if payload is None or not self.session.agent_ready:
            return
        await self.session.agent.send_json(build_user_audio_message(payload))

    async def handle_agent_message(self, raw: str | bytes) -> None:
        session = self.session
        try:
            message = parse_agent_message(raw)
        except MalformedMessageError as exc:
            LOGGER.warning("Skipping ElevenLabs frame for call %s: %s", session.call_sid, exc.detail)
            return

        message_type = message.get("type")
        if message_type == "audio":
            await self._on_agent_audio(message)
        elif message_type == "ping":
            event_id = extract_ping_event_id(message)
            if event_id is not None:
                await session.agent.send_json(build_pong(event_id))
        elif message_type == "conversation_initiation_metadata":
            metadata = message.get("conversation_initiation_metadata_event") or {}
            LOGGER.info(
                "ElevenLabs conversation %s started for call %s",
                metadata.get("conversation_id"),
                session.call_sid,
            )
        elif message_type == "agent_response":
            event = message.get("agent_response_event") or {}
            LOGGER.info("AI response: %s", event.get("agent_response"))
        elif message_type == "user_transcript":
            event = message.get("user_transcription_event") or {}
            LOGGER.info("User said: %s", event.get("user_transcript"))
        elif message_type == "interruption":
            LOGGER.info("Caller interrupted the agent (call %s)", session.call_sid)
        else:
            LOGGER.info("Unhandled ElevenLabs message type: %s", message_type)

    async def _on_agent_audio(self, message: dict[str, Any]) -> None:
        session = self.session
        if not session.stream_sid:
            LOGGER.warning("Received agent audio before StreamSid was known; dropping")
            return

        payload = extract_audio_payload(message)
        if payload is None:
            LOGGER.warning("Agent audio frame without payload for stream %s", session.stream_sid)
            return

        try:
            await self._send_to_caller(build_media_frame(session.stream_sid, payload))
        except TelephonyTransportError as exc:
            LOGGER.error("Sending agent audio to stream %s failed: %s", session.stream_sid, exc.detail)

    async def close_agent(self) -> None:
        session = self.session
        session.stopped = True
        if session.agent is None or session.agent_close_requested:
            return

        session.agent_close_requested = True
        await session.agent.close()
        session.transition(AgentPhase.CLOSED)

    async def shutdown(self) -> None:
        """Tear down the agent leg after the telephony stream is gone."""

        await self.close_agent()
        task = self._agent_task
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
