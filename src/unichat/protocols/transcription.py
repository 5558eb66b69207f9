"""Audio/video transcription protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from unichat.models.backends import TranscriptionJob


@runtime_checkable
class Transcriber(Protocol):
    """Speech-to-text backend with a synchronous and an asynchronous path."""

    async def transcribe(self, data: bytes, filename: str, *, language: str | None = None) -> str:
        """Transcribe a small file and return the transcript."""
        ...

    async def submit_job(self, url: str, filename: str, *, language: str | None = None) -> TranscriptionJob:
        """Queue a large file for asynchronous transcription."""
        ...
