"""The general-purpose execution handler."""

from __future__ import annotations

import logging
import re
import time

from unichat.enrichers.rag import DOCUMENTS_INJECTED_KEY
from unichat.exceptions import ErrorCode, PipelineError
from unichat.formatting import fold_into_message, to_provider_messages
from unichat.logsafe import sanitize_for_log
from unichat.models.backends import CompletionRequest
from unichat.models.chat import Message
from unichat.models.context import ChatContext, ExecutionStrategy
from unichat.models.response import (
    ChatResponse,
    JSONChatResponse,
    StreamingChatResponse,
    StreamMetadata,
    TranscriptInfo,
)
from unichat.models.streaming import StreamResult
from unichat.pipeline.stage import BaseStage
from unichat.services import ServiceContext
from unichat.tokens.history import count_message_tokens, trim_history

from .streaming import encode_stream, prime_stream, static_stream

logger = logging.getLogger(__name__)

# Empty, or nothing but a bracketed file label the client inserts for uploads
_FILENAME_ONLY = re.compile(r"^(?:\[Audio/Video:\s*[^\]]+\]|\[[^\]]+\])?$", re.IGNORECASE)

FILE_PROCESSING_FAILED_MESSAGE = (
    "We were unable to process the uploaded file. You can try uploading the file "
    "again or using a different file format."
)


class StandardChatHandler(BaseStage):
    """Calls the completion backend with the fully prepared conversation.

    The fallback handler: it runs whenever no enricher chose agent
    execution.  Before calling the model it

    * answers transcript-only requests (an upload with no question)
      directly with the transcript,
    * answers with a friendly message when every attachment failed to
      process and nothing else is left to discuss,
    * folds processed documents, transcripts and images into the last
      message and trims the history to the model's token limit.
    """

    name = "StandardChatHandler"

    def __init__(self, services: ServiceContext) -> None:
        self._services = services

    def should_run(self, context: ChatContext) -> bool:
        return context.execution_strategy is not ExecutionStrategy.AGENT

    # -- Short paths --

    @staticmethod
    def _is_transcript_only(context: ChatContext) -> bool:
        if not context.processed_content.transcripts:
            return False
        return bool(_FILENAME_ONLY.match(context.last_message.text.strip()))

    @staticmethod
    def _transcript_metadata(context: ChatContext) -> StreamMetadata:
        processed = context.processed_content
        pending = processed.pending_transcriptions
        first = processed.transcripts[0]
        return StreamMetadata(
            transcript=TranscriptInfo(
                filename=first.filename,
                transcript=first.transcript,
                job_id=pending[0].job_id if pending else None,
            ),
            pending_transcriptions=list(pending),
        )

    @staticmethod
    def _all_files_failed(context: ChatContext) -> bool:
        processed = context.processed_content
        return bool(processed.metadata.get("file_processing_failed")) and not (
            processed.has_document_context() or processed.images or context.last_message.text.strip()
        )

    @staticmethod
    def _static_response(context: ChatContext, text: str, metadata: StreamMetadata | None = None) -> ChatResponse:
        if context.stream:
            return StreamingChatResponse(chunks=static_stream(text, metadata))
        return JSONChatResponse(text=text)

    # -- Message preparation --

    def build_messages(self, context: ChatContext) -> list[Message]:
        """The outbound conversation: enriched history with attachments folded in."""
        messages = context.current_messages()
        processed = context.processed_content
        include_documents = not processed.metadata.get(DOCUMENTS_INJECTED_KEY, False)
        messages[-1] = fold_into_message(
            messages[-1], processed, include_documents=include_documents,
        )

        token_limit = context.model.token_limit
        if token_limit is None:
            return messages

        tokenizer = self._services.get_tokenizer()
        system = [m for m in messages if m.role == "system"]
        conversation = [m for m in messages if m.role != "system"]
        reserved = tokenizer.count_tokens(context.system_prompt) + sum(
            count_message_tokens(m, tokenizer) for m in system
        )
        kept = {
            id(m)
            for m in trim_history(
                conversation, tokenizer, token_limit=token_limit, reserved_tokens=reserved,
            )
        }
        # System turns stay where enrichers placed them
        return [m for m in messages if m.role == "system" or id(m) in kept]

    def _request(self, context: ChatContext, messages: list[Message]) -> CompletionRequest:
        return CompletionRequest(
            model=context.model,
            model_id=context.model_id,
            messages=to_provider_messages(messages),
            system_prompt=context.system_prompt,
            temperature=context.temperature,
            reasoning_effort=context.reasoning_effort,
            verbosity=context.verbosity,
            user_id=context.user_id,
        )

    def _metadata(self, context: ChatContext, final: StreamResult | None, thinking: str) -> StreamMetadata:
        processed = context.processed_content
        transcript = None
        if processed.transcripts:
            first = processed.transcripts[0]
            transcript = TranscriptInfo(filename=first.filename, transcript=first.transcript)
        if final is not None and final.usage.output_tokens:
            logger.debug(
                "Completion usage: %d in / %d out",
                final.usage.input_tokens, final.usage.output_tokens,
            )
        return StreamMetadata(
            citations=processed.citations,
            thinking=thinking or None,
            transcript=transcript,
            pending_transcriptions=list(processed.pending_transcriptions),
        )

    # -- Execution --

    async def _execute(self, context: ChatContext) -> ChatContext:
        if self._is_transcript_only(context):
            logger.info("No user message with the upload, returning transcription only")
            first = context.processed_content.transcripts[0]
            context.set_response(
                self._static_response(context, first.transcript, self._transcript_metadata(context)),
            )
            return context

        if self._all_files_failed(context):
            logger.info("File processing failed, returning error message")
            context.set_response(self._static_response(context, FILE_PROCESSING_FAILED_MESSAGE))
            return context

        messages = self.build_messages(context)
        request = self._request(context, messages)
        client = self._services.get_completion_client()
        started = time.monotonic()
        logger.info(
            "Executing chat: model=%s messages=%d stream=%s citations=%d",
            sanitize_for_log(context.model_id),
            len(messages),
            context.stream,
            len(context.processed_content.citations),
        )

        try:
            if context.stream:
                events = await prime_stream(client.stream(request))
            else:
                result = await client.complete(request)
        except Exception as exc:
            logger.error("Chat completion failed: %s", sanitize_for_log(exc))
            msg = f"Chat completion failed: {exc}"
            raise PipelineError.recoverable(
                ErrorCode.CHAT_COMPLETION_FAILED, msg, {"model": context.model_id},
            ) from exc

        if context.stream:
            chunks = encode_stream(
                events,
                cancellation=context.cancellation,
                finalize=lambda final, thinking: self._metadata(context, final, thinking),
            )
            context.set_response(StreamingChatResponse(chunks=chunks))
        else:
            context.set_response(JSONChatResponse(text=result.text))
        logger.info("Chat response ready in %.0fms", (time.monotonic() - started) * 1000)
        return context
