"""Twilio Media Streams wire format."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from relay.errors import MalformedMessageError


@dataclass(frozen=True)
class StreamStart:
    stream_sid: str
    call_sid: str | None
    custom_parameters: dict[str, str] = field(default_factory=dict)


def parse_twilio_ws_message(text: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedMessageError(f"Invalid Twilio frame: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedMessageError("Twilio frame is not a JSON object")
    return message


def parse_start(message: dict[str, Any]) -> StreamStart:
    start = message.get("start")
    if not isinstance(start, dict):
        raise MalformedMessageError("Twilio start event without start object")

    stream_sid = start.get("streamSid") or message.get("streamSid")
    if not isinstance(stream_sid, str) or not stream_sid:
        raise MalformedMessageError("Twilio start event without streamSid")

    params = start.get("customParameters") or {}
    if not isinstance(params, dict):
        raise MalformedMessageError("Twilio customParameters is not an object")

    call_sid = start.get("callSid")
    return StreamStart(
        stream_sid=stream_sid,
        call_sid=str(call_sid) if call_sid else None,
        custom_parameters={str(k): str(v) for k, v in params.items() if v is not None},
    )


def parse_media_payload(message: dict[str, Any]) -> str | None:
    """Return the inbound audio payload, or None for frames from other tracks."""

    media = message.get("media")
    if not isinstance(media, dict):
        raise MalformedMessageError("Twilio media event without media object")
    if media.get("track") and media.get("track") != "inbound":
        return None
    payload = media.get("payload")
    if not isinstance(payload, str):
        raise MalformedMessageError("Twilio media event without payload")
    return payload


def build_media_frame(stream_sid: str, payload: str) -> str:
    return json.dumps({"event": "media", "streamSid": stream_sid, "media": {"payload": payload}})
