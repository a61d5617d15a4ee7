from __future__ import annotations

import json

import pytest

from integrations.twilio_streaming import (
    build_media_frame,
    parse_media_payload,
    parse_start,
    parse_twilio_ws_message,
)
from relay.errors import MalformedMessageError


def test_parse_start_extracts_session_parameters():
    message = parse_twilio_ws_message(
        json.dumps(
            {
                "event": "start",
                "sequenceNumber": "1",
                "start": {
                    "streamSid": "MZ1",
                    "callSid": "CA1",
                    "tracks": ["inbound"],
                    "customParameters": {"prompt": "Be brief", "first_message": "Hi"},
                },
                "streamSid": "MZ1",
            }
        )
    )

    start = parse_start(message)
    assert start.stream_sid == "MZ1"
    assert start.call_sid == "CA1"
    assert start.custom_parameters == {"prompt": "Be brief", "first_message": "Hi"}


def test_parse_start_without_custom_parameters():
    start = parse_start({"event": "start", "start": {"streamSid": "MZ1"}})
    assert start.call_sid is None
    assert start.custom_parameters == {}


def test_parse_start_requires_stream_sid():
    with pytest.raises(MalformedMessageError):
        parse_start({"event": "start", "start": {"callSid": "CA1"}})


def test_parse_media_payload_only_accepts_inbound_track():
    assert parse_media_payload({"media": {"track": "inbound", "payload": "AAAA"}}) == "AAAA"
    assert parse_media_payload({"media": {"payload": "AAAA"}}) == "AAAA"
    assert parse_media_payload({"media": {"track": "outbound", "payload": "AAAA"}}) is None


def test_parse_twilio_message_rejects_invalid_json():
    with pytest.raises(MalformedMessageError):
        parse_twilio_ws_message("{nope")


def test_build_media_frame_passes_payload_through():
    assert json.loads(build_media_frame("S1", "AAAA")) == {
        "event": "media",
        "streamSid": "S1",
        "media": {"payload": "AAAA"},
    }
