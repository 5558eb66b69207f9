"""Rendering of processed artifacts and messages for model backends.

These helpers are shared by the enrichers and the execution handlers so
that every stage describes documents and transcripts the same way.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from unichat.models.chat import ImageUrlContent, Message, TextContent
from unichat.models.context import (
    FileSummary,
    InlineFile,
    ProcessedContent,
    ProcessedImage,
    Transcript,
)

UNPROCESSABLE_PLACEHOLDER = "[File content could not be processed]"
CITATION_STYLE_NOTE = (
    "When citing information, use source numbers in SEPARATE brackets like "
    "[1][2][3] - never group them like [1,2,3]."
)


def render_summaries(summaries: Sequence[FileSummary]) -> str:
    return "\n\n".join(f"[Document summary: {s.filename}]\n{s.summary}" for s in summaries)


def render_inline_files(files: Sequence[InlineFile]) -> str:
    return "\n\n".join(f"```{f.filename}\n{f.content}\n```" for f in files)


def render_transcripts(transcripts: Sequence[Transcript]) -> str:
    return "\n\n".join(f"[Audio/Video: {t.filename}]\n{t.transcript}" for t in transcripts)


def document_context_parts(processed: ProcessedContent) -> list[str]:
    """Rendered summaries, inline files and transcripts, skipping empty groups."""
    parts = [
        render_summaries(processed.file_summaries),
        render_inline_files(processed.inline_files),
        render_transcripts(processed.transcripts),
    ]
    return [p for p in parts if p]


def system_message(text: str) -> Message:
    return Message.model_construct(role="system", content=text)


def fold_into_message(
    message: Message,
    processed: ProcessedContent,
    *,
    include_documents: bool = True,
) -> Message:
    """Merge processed attachments into *message*.

    All text (the user's own plus rendered documents and transcripts) is
    joined into one leading text block; ``file_url`` blocks are removed and
    image URLs are replaced by the processed images.  Pass
    ``include_documents=False`` when the documents already travel in
    separate system messages.
    """
    extra = document_context_parts(processed) if include_documents else []
    if isinstance(message.content, str):
        if not extra:
            return message
        return message.model_copy(update={"content": "\n\n".join([message.content, *extra])})

    text_parts = [b.text for b in message.content if isinstance(b, TextContent) and b.text]
    text_parts.extend(extra)

    images: list[ImageUrlContent] = [b for b in message.content if isinstance(b, ImageUrlContent)]
    if processed.images:
        images = [_image_block(img) for img in processed.images]

    blocks: list[Any] = []
    if text_parts:
        blocks.append(TextContent.model_construct(text="\n\n".join(text_parts)))
    blocks.extend(images)
    return message.model_copy(update={"content": blocks})


def _image_block(image: ProcessedImage) -> ImageUrlContent:
    return ImageUrlContent.model_validate({"image_url": {"url": image.url, "detail": image.detail}})


def to_provider_message(message: Message) -> dict[str, Any]:
    """Convert a :class:`Message` into a plain ``{"role", "content"}`` dict.

    Only ``text`` and ``image_url`` blocks survive.  A lone text block
    collapses to a string and a message left with nothing gets a
    placeholder.
    """
    if isinstance(message.content, str):
        return {"role": message.role, "content": message.content}

    blocks: list[dict[str, Any]] = []
    for block in message.content:
        if isinstance(block, TextContent):
            blocks.append({"type": "text", "text": block.text})
        elif isinstance(block, ImageUrlContent):
            blocks.append({
                "type": "image_url",
                "image_url": {"url": block.image_url.url, "detail": block.image_url.detail},
            })

    if not blocks:
        return {"role": message.role, "content": UNPROCESSABLE_PLACEHOLDER}
    if len(blocks) == 1 and blocks[0]["type"] == "text":
        return {"role": message.role, "content": blocks[0]["text"]}
    return {"role": message.role, "content": blocks}


def to_provider_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    return [to_provider_message(m) for m in messages]
