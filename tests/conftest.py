"""Shared fixtures and fake backends for unichat tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest

from unichat.config import Settings
from unichat.models.backends import (
    AgentRunRequest,
    CompletionRequest,
    KnowledgeAgent,
    SearchDocument,
    SearchResults,
    ToolDecision,
    TranscriptionJob,
    WebSearchCitation,
    WebSearchResult,
)
from unichat.models.chat import Message, ModelDescriptor, detect_content_types
from unichat.models.context import ChatContext, Session
from unichat.models.streaming import StreamDelta, StreamEvent, StreamResult, StreamUsage
from unichat.pipeline.pipeline import DEFAULT_STAGE_TIMEOUTS
from unichat.services import ServiceContext


class FakeTokenizer:
    """A simple tokenizer that splits on whitespace for testing.

    Satisfies the Tokenizer protocol without requiring tiktoken's
    network-downloaded encoding data.
    """

    def count_tokens(self, text: str) -> int:
        if not text or not text.strip():
            return 0
        return len(text.split())


class FakeCompletionClient:
    """Completion backend that replays a canned answer and records requests."""

    def __init__(
        self,
        text: str = "Hello from the model",
        *,
        thinking: str = "",
        error: Exception | None = None,
        stream_chunks: list[str] | None = None,
    ) -> None:
        self.text = text
        self.thinking = thinking
        self.error = error
        self.stream_chunks = stream_chunks
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> StreamResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return StreamResult(text=self.text, thinking=self.thinking, model=request.model_id)

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.thinking:
            yield StreamDelta(text=self.thinking, kind="thinking")
        for chunk in self.stream_chunks or [self.text]:
            yield StreamDelta(text=chunk)
        yield StreamResult(
            usage=StreamUsage(input_tokens=10, output_tokens=5),
            model=request.model_id,
            stop_reason="end_turn",
        )


class FakeAgentClient:
    """Hosted-agent backend returning a fixed thread id and citations."""

    def __init__(
        self,
        text: str = "Agent answer",
        *,
        thread_id: str = "thread-1",
        citations: list[dict[str, object]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.text = text
        self.thread_id = thread_id
        self.citations = citations if citations is not None else [
            {"title": "Doc", "url": "https://example.com/doc"},
        ]
        self.error = error
        self.requests: list[AgentRunRequest] = []

    async def run(self, request: AgentRunRequest) -> StreamResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return StreamResult(text=self.text, thread_id=self.thread_id, citations=self.citations)

    async def stream(self, request: AgentRunRequest) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        yield StreamDelta(text=self.text)
        yield StreamResult(thread_id=self.thread_id, citations=self.citations)


class FakeRetrievalClient:
    """Knowledge base with one agent and a fixed list of documents."""

    def __init__(
        self,
        agent: KnowledgeAgent | None = None,
        documents: list[SearchDocument] | None = None,
        *,
        error: Exception | None = None,
        lookup_error: Exception | None = None,
    ) -> None:
        self.agent = agent or KnowledgeAgent(id="kb-1", name="Handbook", sources=["intranet"])
        self.documents = documents if documents is not None else [
            SearchDocument(
                title="Leave policy", url="https://kb.example.com/leave",
                date="2024-03-01T10:00:00Z", chunk="Employees get 25 days.",
            ),
        ]
        self.error = error
        self.lookup_error = lookup_error
        self.searches: list[list[Message]] = []

    def get_agent(self, bot_id: str) -> KnowledgeAgent | None:
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.agent if bot_id == self.agent.id else None

    async def search(
        self, messages: list[Message], agent: KnowledgeAgent, *, user_id: str | None = None,
    ) -> SearchResults:
        self.searches.append(messages)
        if self.error is not None:
            raise self.error
        return SearchResults(documents=self.documents, metadata={"took_ms": 3})


class FakeToolRouter:
    """Router that always (or never) picks web search."""

    def __init__(
        self,
        *,
        search: bool = True,
        query: str | None = "latest news",
        citations: list[WebSearchCitation] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.search = search
        self.query = query
        self.citations = citations if citations is not None else [
            WebSearchCitation(title="News", url="https://news.example.com/1"),
        ]
        self.error = error
        self.decisions: list[tuple[str, bool]] = []
        self.queries: list[str] = []

    async def determine_tool(
        self, messages: list[Message], current_message: str, *, force_web_search: bool = False,
    ) -> ToolDecision:
        self.decisions.append((current_message, force_web_search))
        if self.error is not None:
            raise self.error
        tools = ["web_search"] if self.search or force_web_search else []
        return ToolDecision(tools=tools, search_query=self.query)

    async def web_search(
        self, query: str, *, model: ModelDescriptor, user_id: str | None = None,
    ) -> WebSearchResult:
        self.queries.append(query)
        return WebSearchResult(text="Search says hello.", citations=self.citations)


class FakeBlobStorage:
    """In-memory blob store keyed by URL."""

    def __init__(
        self,
        blobs: dict[str, bytes] | None = None,
        *,
        download_errors: dict[str, Exception] | None = None,
    ) -> None:
        self.blobs = dict(blobs or {})
        self.download_errors = dict(download_errors or {})
        self.downloads: list[str] = []

    async def get_size(self, url: str) -> int:
        if url not in self.blobs:
            msg = f"Blob not found: {url}"
            raise FileNotFoundError(msg)
        return len(self.blobs[url])

    async def download(self, url: str) -> bytes:
        self.downloads.append(url)
        if url in self.download_errors:
            raise self.download_errors[url]
        return self.blobs[url]


class FakeTranscriber:
    def __init__(self, transcript: str = "Hello from the recording") -> None:
        self.transcript = transcript
        self.jobs: list[str] = []

    async def transcribe(self, data: bytes, filename: str, *, language: str | None = None) -> str:
        return self.transcript

    async def submit_job(self, url: str, filename: str, *, language: str | None = None) -> TranscriptionJob:
        self.jobs.append(url)
        return TranscriptionJob(job_id=f"job-{len(self.jobs)}", blob_path=url)


class StaticAuthenticator:
    """Authenticator that returns a fixed session (or none)."""

    def __init__(self, session: Session | None = None) -> None:
        self.session = session

    async def authenticate(self, request: Any) -> Session | None:
        return self.session


class HangingStage:
    """A stage that never finishes on its own."""

    def __init__(self, name: str = "StandardChatHandler") -> None:
        self.name = name

    async def process(self, context: ChatContext) -> ChatContext:
        await asyncio.Event().wait()
        return context


BLOB_HOST = "https://files.blob.core.windows.net"


def fast_timeout_settings(handler_timeout: float = 0.1, request_timeout: float = 2.0) -> Settings:
    """Settings where every stage fits a short request timeout."""
    stage_timeout = min(0.5, request_timeout / 2)
    timeouts = {name: stage_timeout for name in DEFAULT_STAGE_TIMEOUTS}
    timeouts["StandardChatHandler"] = handler_timeout
    return Settings(
        request_timeout=request_timeout,
        default_stage_timeout=stage_timeout,
        stage_timeouts=timeouts,
    )


def make_services(**overrides: Any) -> ServiceContext:
    """A ServiceContext wired entirely with fakes."""
    kwargs: dict[str, Any] = {
        "settings": overrides.pop("settings", None) or Settings(),
        "completion": FakeCompletionClient(),
        "tokenizer": FakeTokenizer(),
        "blob_storage": FakeBlobStorage(),
    }
    kwargs.update(overrides)
    return ServiceContext(**kwargs)


def user_message(content: Any = "Hello") -> dict[str, Any]:
    return {"role": "user", "content": content}


def valid_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": {"id": "claude-sonnet-4-5", "name": "Claude Sonnet"},
        "messages": [user_message()],
        "stream": False,
    }
    body.update(overrides)
    return body


def make_context(
    content: Any = "Hello",
    *,
    history: list[Message] | None = None,
    session: Session | None = None,
    model: ModelDescriptor | None = None,
    **fields: Any,
) -> ChatContext:
    """Build a ChatContext directly, with content types detected from *content*."""
    last = Message.model_validate(user_message(content))
    context = ChatContext(
        model=model or ModelDescriptor(id="claude-sonnet-4-5", name="Claude Sonnet"),
        messages=[*(history or []), last],
        session=session or Session(user_id="user-1", display_name="Ada"),
        **fields,
    )
    context.add_content_types(*detect_content_types(last.content))
    return context


async def collect(chunks: AsyncIterator[bytes]) -> str:
    return b"".join([chunk async for chunk in chunks]).decode("utf-8")


@pytest.fixture()
def session() -> Session:
    return Session(user_id="user-1", display_name="Ada", email="ada@example.com")


@pytest.fixture()
def services() -> ServiceContext:
    return make_services()

