import asyncio

import pytest

from sosrelay.backend.store import EventStore


class FakeWebSocket:
    """Stand-in for a Starlette WebSocket on the send side."""

    def __init__(self, fail_send: bool = False):
        self.sent = []
        self.fail_send = fail_send
        self.closed_with = None

    async def send_json(self, message):
        if self.fail_send:
            raise ConnectionResetError("peer went away")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str | None = None):
        self.closed_with = code

    def types(self):
        return [message["type"] for message in self.sent]


class ScriptedWebSocket(FakeWebSocket):
    """FakeWebSocket whose receive() replays a script of ASGI messages.

    Exceptions in the script are raised instead of returned.
    """

    def __init__(self, script):
        super().__init__()
        self._script = list(script)

    async def receive(self):
        await asyncio.sleep(0.01)
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def text_frame(text: str) -> dict:
    return {"type": "websocket.receive", "text": text}


def disconnect_frame(code: int = 1000) -> dict:
    return {"type": "websocket.disconnect", "code": code}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Config overrides from the developer's shell must not leak into tests."""
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("SOSRELAY_DATA_DIR", raising=False)


@pytest.fixture
def run_with_store(tmp_path):
    """Run ``scenario(store)`` inside one event loop with a fresh EventStore."""

    def runner(scenario):
        async def main():
            store = EventStore.from_data_dir(tmp_path / "data")
            await store.initialize()
            try:
                return await scenario(store)
            finally:
                await store.close()

        return asyncio.run(main())

    return runner


@pytest.fixture
def instance_path(tmp_path):
    return tmp_path / "instance"


@pytest.fixture
def app_factory(instance_path):
    from sosrelay.backend.app import create_app

    def factory(**server):
        config = {"logging": {"console_level": "WARNING"}}
        if server:
            config["server"] = server
        return create_app(instance_path, config)

    return factory


@pytest.fixture
def client(app_factory):
    from fastapi.testclient import TestClient

    with TestClient(app_factory()) as test_client:
        yield test_client
