"""Twilio Voice integration.

This module provides:
- Outbound call endpoint that places a call through the Twilio REST API.
- TwiML webhook that connects the answered call to a Media Stream.
- The Media Stream websocket, relayed to an ElevenLabs agent per call.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from api.dependencies import get_agent_connector, get_twilio_cfg, get_twilio_client
from api.schemas import OutboundCallRequest, OutboundCallResponse
from config.settings import get_settings
from integrations.twilio_client import TwilioConfig
from relay.base import BaseAgentConnector
from relay.bridge import CallerSink, CallSessionHandler
from relay.errors import TelephonyTransportError

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["twilio"])

_ATTR_ENTITIES = {'"': "&quot;"}


def _public_base_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return str(request.base_url).rstrip("/")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _twiml_connect_stream(*, stream_url: str, parameters: dict[str, str]) -> str:
    stream = escape(stream_url, _ATTR_ENTITIES)
    params = "".join(
        f"<Parameter name=\"{escape(name, _ATTR_ENTITIES)}\" value=\"{escape(value, _ATTR_ENTITIES)}\" />"
        for name, value in parameters.items()
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{stream}\">"
        f"{params}"
        "</Stream>"
        "</Connect>"
        "</Response>"
    )


@router.post("/outbound-call", response_model=OutboundCallResponse)
async def create_outbound_call(
    payload: OutboundCallRequest,
    request: Request,
    twilio_client=Depends(get_twilio_client),
    cfg: TwilioConfig | None = Depends(get_twilio_cfg),
):
    if not payload.number:
        return JSONResponse(status_code=400, content={"error": "Phone number is required"})
    if cfg is None or twilio_client is None:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Twilio is not configured"},
        )

    query = {
        key: value
        for key, value in (("prompt", payload.prompt), ("first_message", payload.first_message))
        if value
    }
    twiml_url = f"{_public_base_url(request)}/outbound-call-twiml"
    if query:
        twiml_url += "?" + urlencode(query)

    try:
        # The Twilio SDK is blocking.
        call = await run_in_threadpool(
            twilio_client.calls.create,
            to=payload.number,
            from_=cfg.from_number,
            url=twiml_url,
            method="POST",
        )
    except Exception as exc:
        LOGGER.exception("Error initiating outbound call to %s: %s", payload.number, exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to initiate call"},
        )

    LOGGER.info("Call initiated to %s, Call SID: %s", payload.number, call.sid)
    return OutboundCallResponse(call_sid=str(call.sid))


@router.api_route("/outbound-call-twiml", methods=["GET", "POST"])
async def outbound_call_twiml(request: Request) -> Response:
    prompt = request.query_params.get("prompt") or ""
    first_message = request.query_params.get("first_message") or ""

    stream_url = _to_ws_url(f"{_public_base_url(request)}/outbound-media-stream")
    return _twiml_response(
        _twiml_connect_stream(
            stream_url=stream_url,
            parameters={"prompt": prompt, "first_message": first_message},
        )
    )


def _caller_sink(websocket: WebSocket) -> CallerSink:
    async def send(frame: str) -> None:
        try:
            await websocket.send_text(frame)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise TelephonyTransportError(str(exc) or type(exc).__name__) from exc

    return send


@router.websocket("/outbound-media-stream")
async def outbound_media_stream(
    websocket: WebSocket,
    connector: BaseAgentConnector = Depends(get_agent_connector),
) -> None:
    await websocket.accept()
    LOGGER.info("Twilio connected to outbound media stream")

    handler = CallSessionHandler(_caller_sink(websocket), connector)
    handler.start()
    try:
        while True:
            message = await websocket.receive_text()
            await handler.handle_telephony_message(message)
    except WebSocketDisconnect:
        LOGGER.info("Twilio media stream closed (stream %s)", handler.session.stream_sid)
    finally:
        await handler.shutdown()
