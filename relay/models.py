from __future__ import annotations

import base64
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


Role = Literal["user", "model"]


class InlineData(BaseModel):
    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: str = Field(..., description="Base64-encoded file bytes")

    @classmethod
    def from_bytes(cls, mime_type: str, raw: bytes) -> "InlineData":
        return cls(mime_type=mime_type, data=base64.b64encode(raw).decode("ascii"))

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.data)


class Part(BaseModel):
    """Either a piece of text or an inline media blob, never both."""

    model_config = ConfigDict(frozen=True)

    text: Optional[str] = None
    inline_data: Optional[InlineData] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "Part":
        if (self.text is None) == (self.inline_data is None):
            raise ValueError("a part carries exactly one of text or inline_data")
        return self

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def from_media(cls, mime_type: str, raw: bytes) -> "Part":
        return cls(inline_data=InlineData.from_bytes(mime_type, raw))


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    parts: Tuple[Part, ...] = Field(..., min_length=1)

    @classmethod
    def user_text(cls, text: str) -> "Turn":
        return cls(role="user", parts=(Part.from_text(text),))

    @classmethod
    def model_text(cls, text: str) -> "Turn":
        return cls(role="model", parts=(Part.from_text(text),))


class Session(BaseModel):
    """A snapshot of one conversation; mutating it does not touch the store."""

    session_id: str
    turns: List[Turn] = Field(default_factory=list)


class Attachment(BaseModel):
    filename: str
    content: bytes
    content_type: Optional[str] = None


class ComposedRequest(BaseModel):
    model_id: str
    contents: List[Turn]
    user_turn: Turn
