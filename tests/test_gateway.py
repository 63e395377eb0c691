from __future__ import annotations

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from config.settings import Settings
from relay.errors import UpstreamError
from relay.gateway import GeminiGateway, extract_text, to_lc_messages
from relay.models import Part, Turn


class FakeLLM:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.received = None

    async def ainvoke(self, messages):
        self.received = messages
        if self.error is not None:
            raise self.error
        return self.response


def make_gateway(llm):
    built = []

    def factory(model_id):
        built.append(model_id)
        return llm

    gateway = GeminiGateway(Settings(), llm_factory=factory)
    return gateway, built


def test_turns_map_to_langchain_messages():
    contents = [
        Turn.user_text("Hello"),
        Turn.model_text("Hi"),
        Turn(role="user", parts=(Part.from_media("image/png", b"\x89PNG"), Part.from_text("Describe"))),
    ]
    messages = to_lc_messages(contents)
    assert isinstance(messages[0], HumanMessage)
    assert messages[0].content == [{"type": "text", "text": "Hello"}]
    assert isinstance(messages[1], AIMessage)
    assert messages[1].content == "Hi"
    assert messages[2].content == [
        {"type": "media", "mime_type": "image/png", "data": b"\x89PNG"},
        {"type": "text", "text": "Describe"},
    ]


@pytest.mark.parametrize(
    "response,expected",
    [
        (AIMessage(content="plain"), "plain"),
        (AIMessage(content=[{"type": "text", "text": "from block"}]), "from block"),
        (AIMessage(content=["bare string"]), "bare string"),
        (AIMessage(content=[{"type": "thinking", "thinking": "..."}, {"type": "text", "text": "late"}]), "late"),
        (AIMessage(content=""), "[No response]"),
        (None, "[No response]"),
    ],
)
def test_extract_text_falls_back_through_shapes(response, expected):
    assert extract_text(response) == expected


async def test_generate_returns_text_and_caches_model():
    llm = FakeLLM(response=AIMessage(content="generated"))
    gateway, built = make_gateway(llm)

    assert await gateway.generate("gemini-2.5-flash", [Turn.user_text("Hi")]) == "generated"
    assert await gateway.generate("gemini-2.5-flash", [Turn.user_text("Again")]) == "generated"
    await gateway.generate("gemini-2.0-flash", [Turn.user_text("Video?")])

    assert built == ["gemini-2.5-flash", "gemini-2.0-flash"]
    assert llm.received[0].content == [{"type": "text", "text": "Video?"}]


async def test_upstream_failure_keeps_message_verbatim():
    gateway, _ = make_gateway(FakeLLM(error=RuntimeError("429 Resource has been exhausted")))
    with pytest.raises(UpstreamError) as info:
        await gateway.generate("gemini-2.5-flash", [Turn.user_text("Hi")])
    assert info.value.message == "429 Resource has been exhausted"
    assert info.value.status_code == 500


async def test_missing_api_key_is_an_upstream_error():
    settings = Settings()
    settings.gemini_api_key = None
    gateway = GeminiGateway(settings)
    with pytest.raises(UpstreamError, match="GEMINI_API_KEY"):
        await gateway.generate("gemini-2.5-flash", [Turn.user_text("Hi")])


async def test_failure_building_the_model_is_an_upstream_error():
    def factory(model_id):
        raise ValueError(f"unsupported model {model_id}")

    gateway = GeminiGateway(Settings(), llm_factory=factory)
    with pytest.raises(UpstreamError) as info:
        await gateway.generate("gemini-0-nope", [Turn.user_text("Hi")])
    assert info.value.message == "unsupported model gemini-0-nope"
