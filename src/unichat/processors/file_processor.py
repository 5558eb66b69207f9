"""Turns ``file_url`` attachments into text the model can read.

Documents become inline text or summaries, audio/video becomes a
transcript (or a pending asynchronous job when the file is too large to
transcribe synchronously).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from unichat.documents import extract_text
from unichat.exceptions import ErrorCode, PipelineError
from unichat.logsafe import sanitize_for_log
from unichat.models.backends import CompletionRequest
from unichat.models.chat import FileUrlContent, TextContent
from unichat.models.context import (
    ChatContext,
    FileSummary,
    InlineFile,
    ProcessedContent,
    Transcript,
)
from unichat.models.response import PendingTranscription
from unichat.pipeline.stage import BaseStage
from unichat.services import ServiceContext

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_PROMPT = "Summarize this document"
_SUMMARY_SYSTEM_PROMPT = (
    "You summarise documents for a downstream assistant. Preserve facts, "
    "figures, names and section structure that are relevant to the user's request."
)
_ORIGINAL_PREVIEW_CHARS = 1000


@dataclass(slots=True)
class _Download:
    block: FileUrlContent
    data: bytes


def pending_placeholder(filename: str) -> str:
    return f"[Transcription in progress: {filename}]"


class FileProcessor(BaseStage):
    """Validates, downloads and converts every file in the last message.

    Steps:
        1. Every URL must point at an allowed host and fit the download
           ceiling (``CRITICAL`` ``VALIDATION_FAILED`` otherwise).
        2. All files are downloaded concurrently.
        3. Files are processed one at a time.  Audio/video up to
           ``sync_transcription_max_bytes`` is transcribed directly; larger
           files are submitted as jobs and leave a placeholder transcript.
           Documents at or below ``inline_file_max_tokens`` are attached
           verbatim, larger ones are summarised by the completion client.
        4. A file that fails in step 2 or 3 is dropped with a ``RECOVERABLE``
           ``FILE_PROCESSING_FAILED`` error; the others are still used.

    The original message is never modified.
    """

    name = "FileProcessor"

    def __init__(self, services: ServiceContext) -> None:
        self._services = services

    def should_run(self, context: ChatContext) -> bool:
        return context.has_files

    @staticmethod
    def _collect(context: ChatContext) -> tuple[list[FileUrlContent], str]:
        content = context.last_message.content
        if isinstance(content, str):
            return [], content
        files = [b for b in content if isinstance(b, FileUrlContent)]
        prompt = next((b.text for b in reversed(content) if isinstance(b, TextContent)), "")
        return files, prompt

    async def _validate(self, files: list[FileUrlContent]) -> None:
        validator = self._services.get_validator()
        storage = self._services.get_blob_storage()
        for block in files:
            if not block.url.startswith("/api/") and not validator.is_valid_file_url(block.url):
                msg = f"File URL is not from an allowed storage host: {block.filename}"
                raise PipelineError.critical(
                    ErrorCode.VALIDATION_FAILED, msg, {"filename": block.filename},
                )
        await asyncio.gather(
            *(validator.validate_file_size(b.url, storage.get_size) for b in files),
        )

    async def _download(self, block: FileUrlContent) -> _Download:
        data = await self._services.get_blob_storage().download(block.url)
        logger.debug("Downloaded %s (%d bytes)", sanitize_for_log(block.filename), len(data))
        return _Download(block=block, data=data)

    async def _transcribe(self, item: _Download, processed: ProcessedContent) -> None:
        transcriber = self._services.get_transcriber()
        if transcriber is None:
            msg = "No transcription service is configured"
            raise RuntimeError(msg)
        filename = item.block.filename
        limit = self._services.settings.sync_transcription_max_bytes
        if len(item.data) <= limit:
            text = await transcriber.transcribe(item.data, filename)
            processed.transcripts.append(Transcript(filename=filename, transcript=text))
            logger.info(
                "Transcribed %s: %d chars", sanitize_for_log(filename), len(text),
            )
            return

        job = await transcriber.submit_job(item.block.url, filename)
        processed.pending_transcriptions.append(
            PendingTranscription(
                filename=filename, job_id=job.job_id, job_type=job.job_type,
                blob_path=job.blob_path,
            ),
        )
        processed.transcripts.append(
            Transcript(filename=filename, transcript=pending_placeholder(filename)),
        )
        logger.info(
            "Queued %s transcription job %s for %s",
            job.job_type, sanitize_for_log(job.job_id), sanitize_for_log(filename),
        )

    async def _summarise(self, context: ChatContext, filename: str, text: str, prompt: str) -> str:
        request = CompletionRequest(
            model=context.model,
            model_id=context.model_id,
            system_prompt=_SUMMARY_SYSTEM_PROMPT,
            messages=[{
                "role": "user",
                "content": f"{prompt or DEFAULT_SUMMARY_PROMPT}\n\n[Document: {filename}]\n{text}",
            }],
            user_id=context.user_id,
        )
        result = await self._services.get_completion_client().complete(request)
        return result.text

    async def _read_document(
        self, context: ChatContext, item: _Download, prompt: str, processed: ProcessedContent,
    ) -> None:
        filename = item.block.filename
        text = extract_text(item.data, filename)
        tokens = self._services.get_tokenizer().count_tokens(text)
        threshold = self._services.settings.inline_file_max_tokens
        if tokens <= threshold:
            logger.info(
                "Small file (%d tokens <= %d), inlining: %s",
                tokens, threshold, sanitize_for_log(filename),
            )
            processed.inline_files.append(InlineFile(filename=filename, content=text))
            return

        logger.info(
            "Large file (%d tokens > %d), summarising: %s",
            tokens, threshold, sanitize_for_log(filename),
        )
        summary = await self._summarise(context, filename, text, prompt)
        processed.file_summaries.append(
            FileSummary(
                filename=filename,
                summary=summary,
                original_content=text[:_ORIGINAL_PREVIEW_CHARS],
            ),
        )

    @staticmethod
    def _record_failure(
        context: ChatContext, failed: list[str], filename: str, exc: BaseException,
    ) -> None:
        logger.error(
            "Error processing %s: %s", sanitize_for_log(filename), sanitize_for_log(exc),
        )
        failed.append(filename)
        context.add_error(
            PipelineError.recoverable(
                ErrorCode.FILE_PROCESSING_FAILED,
                f"Failed to process file {filename}: {exc}",
                {"filename": filename, "file_processing_failed": True},
            ),
        )

    async def _execute(self, context: ChatContext) -> ChatContext:
        files, prompt = self._collect(context)
        if not files:
            return context
        logger.info("Processing %d file(s)", len(files))

        await self._validate(files)
        results = await asyncio.gather(
            *(self._download(b) for b in files), return_exceptions=True,
        )

        processed = context.processed_content
        failed: list[str] = []
        for block, item in zip(files, results, strict=True):
            if isinstance(item, BaseException):
                if not isinstance(item, Exception):
                    raise item
                self._record_failure(context, failed, block.filename, item)
                continue
            try:
                if block.is_audio_video:
                    await self._transcribe(item, processed)
                else:
                    await self._read_document(context, item, prompt, processed)
            except PipelineError:
                raise
            except Exception as exc:
                self._record_failure(context, failed, block.filename, exc)

        if failed:
            processed.merge_metadata(file_processing_failed=failed)
        return context
