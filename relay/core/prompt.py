from __future__ import annotations

NO_RESPONSE = "[No response]"

TEXT_FILE_TEMPLATE = "Here is the content of {filename}:\n{text}\n{instruction}"
TEXT_FILE_INSTRUCTION = "Describe it."

MEDIA_INSTRUCTIONS = {
    "image": "Describe the content of this {ext} image.",
    "audio": "Describe the content of this {ext} audio file, including any speech.",
    "video": "Describe the content of this {ext} video.",
}
MEDIA_FALLBACK_INSTRUCTION = "Describe the content of this {ext} file."


def media_instruction(kind: str, ext: str) -> str:
    return MEDIA_INSTRUCTIONS.get(kind, MEDIA_FALLBACK_INSTRUCTION).format(ext=ext)
