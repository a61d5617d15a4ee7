from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeAgentConnection:
    """In-memory agent connection; inbound frames are fed by the test."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.close_calls = 0
        self.initiated = asyncio.Event()
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._script: list[str] = []

    def script_after_initiation(self, *frames: str) -> None:
        self._script.extend(frames)

    def feed(self, raw: str) -> None:
        self._inbound.put_nowait(raw)

    def disconnect(self) -> None:
        self._inbound.put_nowait(None)

    async def send_json(self, payload: dict) -> None:
        self.sent.append(payload)
        if payload.get("type") == "conversation_initiation_client_data":
            self.initiated.set()
            for frame in self._script:
                self._inbound.put_nowait(frame)

    async def messages(self):
        while True:
            raw = await self._inbound.get()
            if raw is None:
                return
            yield raw

    async def close(self) -> None:
        self.close_calls += 1
        self._inbound.put_nowait(None)


class FakeConnector:
    def __init__(
        self,
        connection: FakeAgentConnection | None = None,
        *,
        acquire_error: Exception | None = None,
        connect_error: Exception | None = None,
        connect_gate: asyncio.Event | None = None,
    ) -> None:
        self.connection = connection or FakeAgentConnection()
        self.acquire_error = acquire_error
        self.connect_error = connect_error
        self.connect_gate = connect_gate
        self.connected_urls: list[str] = []

    async def acquire_endpoint(self) -> str:
        if self.acquire_error is not None:
            raise self.acquire_error
        return "wss://agent.example/convai?token=signed"

    async def connect(self, endpoint_url: str):
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_urls.append(endpoint_url)
        return self.connection


@pytest.fixture(scope="session")
def app():
    os.environ["ELEVENLABS_API_KEY"] = "test-key"
    os.environ["ELEVENLABS_AGENT_ID"] = "agent-123"
    # Twilio stays unconfigured unless a test overrides its dependencies.
    for name in [
        "PUBLIC_BASE_URL",
        "TWILIO_ACCOUNT_SID",
        "TWILIO_AUTH_TOKEN",
        "TWILIO_FROM_NUMBER",
        "TWILIO_PHONE_NUMBER",
    ]:
        os.environ.pop(name, None)

    import importlib

    # Ensure clean import with the test settings.
    for module_name in [
        "config.settings",
        "api.dependencies",
        "api.routes",
        "api.twilio_routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
