from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Sequence, Tuple

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from config.settings import Settings
from relay.core.session_store import InMemorySessionStore
from relay.errors import UpstreamError
from relay.models import Turn


def turn_text(turn: Turn) -> str:
    return "\n".join(p.text for p in turn.parts if p.text is not None)


class FakeGateway:
    """Stands in for GeminiGateway; records every call and answers ``reply <n>``."""

    def __init__(
        self,
        fail_if: Optional[Callable[[str, Sequence[Turn]], bool]] = None,
        delay: float = 0.0,
    ) -> None:
        self.calls: List[Tuple[str, List[Turn]]] = []
        self.fail_if = fail_if
        self.delay = delay

    async def generate(self, model_id: str, contents: Sequence[Turn]) -> str:
        index = len(self.calls)
        self.calls.append((model_id, list(contents)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_if is not None and self.fail_if(model_id, contents):
            raise UpstreamError(f"upstream exploded on call {index}")
        return f"reply {index}"


@pytest.fixture
def settings() -> Settings:
    s = Settings()
    s.gemini_api_key = "test-key"
    s.default_model = "gemini-2.5-flash"
    s.video_model = "gemini-2.0-flash"
    s.max_history_turns = 40
    s.session_backend = "memory"
    return s


@pytest.fixture
def store(settings: Settings) -> InMemorySessionStore:
    return InMemorySessionStore(max_turns=settings.max_history_turns)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def app(settings, store, gateway):
    return create_app(settings=settings, store=store, gateway=gateway)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
