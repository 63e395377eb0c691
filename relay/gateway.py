from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from relay.core.prompt import NO_RESPONSE
from relay.errors import UpstreamError
from relay.models import Part, Turn


logger = logging.getLogger(__name__)

LLMFactory = Callable[[str], Any]


def _part_block(part: Part) -> Dict[str, Any]:
    if part.inline_data is not None:
        return {
            "type": "media",
            "mime_type": part.inline_data.mime_type,
            "data": part.inline_data.raw_bytes(),
        }
    return {"type": "text", "text": part.text}


def to_lc_messages(contents: Sequence[Turn]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for turn in contents:
        if turn.role == "model":
            text = "".join(p.text for p in turn.parts if p.text is not None)
            messages.append(AIMessage(content=text))
        else:
            messages.append(HumanMessage(content=[_part_block(p) for p in turn.parts]))
    return messages


def extract_text(response: Any) -> str:
    """Pull the first text out of a model response, whatever its shape."""
    content = getattr(response, "content", response)
    if isinstance(content, str):
        if content:
            return content
    elif isinstance(content, list):
        for block in content:
            if isinstance(block, str) and block:
                return block
            if isinstance(block, dict) and block.get("text"):
                return block["text"]
    return NO_RESPONSE


class GeminiGateway:
    """Calls the Gemini API through langchain-google-genai.

    One chat model per model id, built on first use. Failures surface as
    UpstreamError with the upstream message unchanged; nothing is retried.
    """

    def __init__(self, settings: Any, llm_factory: Optional[LLMFactory] = None) -> None:
        self.settings = settings
        self._llm_factory = llm_factory or self._build_llm
        self._llms: Dict[str, Any] = {}

    def _build_llm(self, model_id: str) -> ChatGoogleGenerativeAI:
        if not self.settings.gemini_api_key:
            raise UpstreamError(
                "GEMINI_API_KEY not set. Please configure it in environment or .env"
            )
        kwargs: Dict[str, Any] = {
            "model": model_id,
            "google_api_key": self.settings.gemini_api_key,
            "max_retries": 0,
        }
        if self.settings.temperature is not None:
            kwargs["temperature"] = self.settings.temperature
        if self.settings.top_p is not None:
            kwargs["top_p"] = self.settings.top_p
        if self.settings.model_timeout is not None:
            kwargs["timeout"] = self.settings.model_timeout
        return ChatGoogleGenerativeAI(**kwargs)

    def llm_for(self, model_id: str) -> Any:
        llm = self._llms.get(model_id)
        if llm is None:
            llm = self._llm_factory(model_id)
            self._llms[model_id] = llm
        return llm

    async def generate(self, model_id: str, contents: Sequence[Turn]) -> str:
        try:
            llm = self.llm_for(model_id)
            messages = to_lc_messages(contents)
            logger.info("Calling model=%s messages=%s", model_id, len(messages))
            response = await llm.ainvoke(messages)
        except UpstreamError:
            raise
        except Exception as exc:
            logger.warning("Model call failed: model=%s error=%s", model_id, exc)
            raise UpstreamError(str(exc)) from exc
        return extract_text(response)
