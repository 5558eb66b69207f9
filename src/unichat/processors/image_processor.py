"""Validates image attachments for vision-capable models."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from unichat.exceptions import ErrorCode, PipelineError
from unichat.logsafe import sanitize_for_log
from unichat.models.chat import ImageUrlContent
from unichat.models.context import ChatContext, ProcessedImage
from unichat.pipeline.stage import BaseStage

logger = logging.getLogger(__name__)


def is_supported_image_url(url: str) -> bool:
    """Accept http(s) URLs, ``data:image/`` URLs and same-origin ``/api/`` paths."""
    if url.startswith("data:"):
        return url.startswith("data:image/") and ";base64," in url
    if url.startswith("/api/"):
        return True
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class ImageProcessor(BaseStage):
    """Collects the ``image_url`` blocks of the last message.

    Valid images are attached to ``processed_content.images``; the
    standard handler substitutes them back into the outbound message.
    Invalid ones are dropped with a ``RECOVERABLE`` error each.
    """

    name = "ImageProcessor"

    def should_run(self, context: ChatContext) -> bool:
        return context.has_images

    async def _execute(self, context: ChatContext) -> ChatContext:
        content = context.last_message.content
        if isinstance(content, str):
            return context

        for block in content:
            if not isinstance(block, ImageUrlContent):
                continue
            url = block.image_url.url
            if not is_supported_image_url(url):
                logger.warning("Dropping unsupported image URL: %s", sanitize_for_log(url[:100]))
                context.add_error(
                    PipelineError.recoverable(
                        ErrorCode.IMAGE_PROCESSING_FAILED,
                        "Unsupported image URL",
                        {"url": url[:100]},
                    ),
                )
                continue
            context.processed_content.images.append(
                ProcessedImage(url=url, detail=block.image_url.detail),
            )

        logger.info("Processed %d image(s)", len(context.processed_content.images))
        return context
