from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from relay.core.prompt import TEXT_FILE_INSTRUCTION, TEXT_FILE_TEMPLATE, media_instruction
from relay.errors import ValidationError
from relay.media import attachment_kind, file_extension, is_video, resolve_mime_type
from relay.models import Attachment, ComposedRequest, Part, Turn


logger = logging.getLogger(__name__)


class RequestComposer:
    """Shape a new user message and/or attachments into a model request.

    The prior turns of the session come first, followed by one new user turn.
    Media attachments travel inline as base64 with their MIME type; anything
    without a known media extension is decoded and inlined as text.
    """

    def __init__(self, default_model: str, video_model: str) -> None:
        self.default_model = default_model
        self.video_model = video_model

    def select_model(self, attachments: Sequence[Attachment]) -> str:
        if any(is_video(a.filename) for a in attachments):
            return self.video_model
        return self.default_model

    def compose(
        self,
        history: Sequence[Turn],
        message: Optional[str] = None,
        attachments: Sequence[Attachment] = (),
        instruction: Optional[str] = None,
    ) -> ComposedRequest:
        if not message and not attachments:
            raise ValidationError("Message or at least one file is required")

        parts: List[Part] = []
        if attachments:
            custom = instruction or message or None
            for attachment in attachments:
                parts.extend(self._attachment_parts(attachment, custom))
        else:
            parts.append(Part.from_text(message))

        user_turn = Turn(role="user", parts=tuple(parts))
        model_id = self.select_model(attachments)
        logger.debug(
            "Composed request: model=%s prior_turns=%s parts=%s",
            model_id,
            len(history),
            len(parts),
        )
        return ComposedRequest(
            model_id=model_id,
            contents=[*history, user_turn],
            user_turn=user_turn,
        )

    def _attachment_parts(self, attachment: Attachment, instruction: Optional[str]) -> List[Part]:
        mime_type = resolve_mime_type(attachment.filename)
        if mime_type is None:
            # Unknown extensions are read as text whatever the bytes are.
            text = attachment.content.decode("utf-8", errors="replace")
            return [
                Part.from_text(
                    TEXT_FILE_TEMPLATE.format(
                        filename=attachment.filename,
                        text=text,
                        instruction=instruction or TEXT_FILE_INSTRUCTION,
                    )
                )
            ]

        ext = file_extension(attachment.filename)
        return [
            Part.from_media(mime_type, attachment.content),
            Part.from_text(instruction or media_instruction(attachment_kind(attachment.filename), ext)),
        ]
