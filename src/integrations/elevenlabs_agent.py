"""ElevenLabs Conversational AI connection manager.

Protocol:
- A signed, single-use websocket URL is requested over HTTPS with the
  server-held API key (`xi-api-key` header).
- After the socket opens the client sends one
  `conversation_initiation_client_data` frame with prompt and greeting
  overrides, then streams caller audio as `user_audio_chunk` frames.
- The agent answers with `audio`, `ping`, transcript and response frames.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any

import httpx
import websockets
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from config.settings import get_settings
from relay.base import BaseAgentConnection, BaseAgentConnector
from relay.errors import AgentTransportError, EndpointAcquisitionError, MalformedMessageError

LOGGER = logging.getLogger(__name__)

SIGNED_URL_PATH = "/v1/convai/conversation/get_signed_url"


@dataclass(frozen=True)
class ElevenLabsConfig:
    api_key: str
    agent_id: str
    api_base_url: str
    timeout_seconds: float


@dataclass(frozen=True)
class InitiationDefaults:
    prompt: str
    first_message: str


def get_elevenlabs_config() -> ElevenLabsConfig:
    settings = get_settings()
    if not settings.elevenlabs_api_key:
        raise ValueError("ELEVENLABS_API_KEY is not configured")
    if not settings.elevenlabs_agent_id:
        raise ValueError("ELEVENLABS_AGENT_ID is not configured")

    return ElevenLabsConfig(
        api_key=settings.elevenlabs_api_key,
        agent_id=settings.elevenlabs_agent_id,
        api_base_url=settings.elevenlabs_api_base_url.rstrip("/"),
        timeout_seconds=settings.elevenlabs_request_timeout_seconds,
    )


def get_initiation_defaults() -> InitiationDefaults:
    settings = get_settings()
    return InitiationDefaults(
        prompt=settings.default_agent_prompt,
        first_message=settings.default_first_message,
    )


def build_initiation_message(
    custom_parameters: Mapping[str, str] | None,
    defaults: InitiationDefaults,
) -> dict[str, Any]:
    params = custom_parameters or {}
    return {
        "type": "conversation_initiation_client_data",
        "conversation_config_override": {
            "agent": {
                "prompt": {"prompt": params.get("prompt") or defaults.prompt},
                "first_message": params.get("first_message") or defaults.first_message,
            },
        },
    }


def build_user_audio_message(payload: str) -> dict[str, Any]:
    return {"user_audio_chunk": payload}


def build_pong(event_id: Any) -> dict[str, Any]:
    return {"type": "pong", "event_id": event_id}


def parse_agent_message(text: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedMessageError(f"Invalid ElevenLabs frame: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedMessageError("ElevenLabs frame is not a JSON object")
    return message


def extract_audio_payload(message: Mapping[str, Any]) -> str | None:
    # Two schema variants are seen in the wild: audio.chunk and audio_event.audio_base_64.
    audio = message.get("audio")
    if isinstance(audio, dict) and audio.get("chunk"):
        return str(audio["chunk"])
    audio_event = message.get("audio_event")
    if isinstance(audio_event, dict) and audio_event.get("audio_base_64"):
        return str(audio_event["audio_base_64"])
    return None


def extract_ping_event_id(message: Mapping[str, Any]) -> Any | None:
    ping_event = message.get("ping_event")
    if not isinstance(ping_event, dict):
        return None
    return ping_event.get("event_id")


class ElevenLabsAgentConnection(BaseAgentConnection):
    """Websocket connection to one ElevenLabs conversation."""

    def __init__(self, ws: Any) -> None:
        self._ws = ws
        self._closed = False

    async def send_json(self, payload: dict[str, Any]) -> None:
        try:
            await self._ws.send(json.dumps(payload))
        except WebSocketException as exc:
            raise AgentTransportError(f"ElevenLabs send failed: {exc}") from exc

    async def messages(self) -> AsyncIterator[str]:
        while True:
            try:
                message = await self._ws.recv()
            except ConnectionClosedOK:
                return
            except WebSocketException as exc:
                raise AgentTransportError(f"ElevenLabs connection lost: {exc}") from exc
            yield message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._ws.close()


class ElevenLabsConnector(BaseAgentConnector):
    """Acquires signed URLs and opens ElevenLabs conversation sockets."""

    def __init__(
        self,
        config: ElevenLabsConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    def _resolve_config(self) -> ElevenLabsConfig:
        if self._config is None:
            try:
                self._config = get_elevenlabs_config()
            except ValueError as exc:
                raise EndpointAcquisitionError(str(exc)) from exc
        return self._config

    async def acquire_endpoint(self) -> str:
        cfg = self._resolve_config()
        url = f"{cfg.api_base_url}{SIGNED_URL_PATH}"

        try:
            async with httpx.AsyncClient(timeout=cfg.timeout_seconds, transport=self._transport) as client:
                response = await client.get(
                    url,
                    params={"agent_id": cfg.agent_id},
                    headers={"xi-api-key": cfg.api_key},
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise EndpointAcquisitionError(
                f"Failed to get signed URL: {exc.response.status_code} {exc.response.reason_phrase}"
            ) from exc
        except httpx.HTTPError as exc:
            raise EndpointAcquisitionError(f"Failed to get signed URL: {exc}") from exc
        except ValueError as exc:
            raise EndpointAcquisitionError("Signed URL response is not valid JSON") from exc

        signed_url = data.get("signed_url") if isinstance(data, dict) else None
        if not signed_url:
            raise EndpointAcquisitionError("No signed_url in response")
        return str(signed_url)

    async def connect(self, endpoint_url: str) -> ElevenLabsAgentConnection:
        try:
            ws = await websockets.connect(endpoint_url, max_size=16 * 1024 * 1024)
        except (OSError, WebSocketException) as exc:
            raise AgentTransportError(f"ElevenLabs connect failed: {exc}") from exc
        return ElevenLabsAgentConnection(ws)
