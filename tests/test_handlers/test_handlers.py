"""Tests for the execution handlers and stream encoding."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from unichat.enrichers.rag import DOCUMENTS_INJECTED_KEY
from unichat.exceptions import ErrorCode, PipelineError
from unichat.handlers import (
    AgentChatHandler,
    StandardChatHandler,
    coerce_citations,
    encode_stream,
    prime_stream,
    static_stream,
)
from unichat.handlers.standard_handler import FILE_PROCESSING_FAILED_MESSAGE
from unichat.models.chat import Message, ModelDescriptor
from unichat.models.context import (
    CancellationToken,
    ExecutionStrategy,
    InlineFile,
    ProcessedImage,
    Transcript,
)
from unichat.models.response import (
    Citation,
    JSONChatResponse,
    PendingTranscription,
    StreamingChatResponse,
    StreamMetadata,
    parse_metadata,
)
from unichat.models.streaming import StreamDelta, StreamEvent, StreamResult
from tests.conftest import (
    FakeAgentClient,
    FakeCompletionClient,
    collect,
    make_context,
    make_services,
)

AGENT_MODEL = ModelDescriptor(id="gpt-agent", name="Agent", agent_id="asst_123")


async def _events(*items: StreamEvent) -> AsyncIterator[StreamEvent]:
    for item in items:
        yield item


def _empty_metadata(final: StreamResult | None, thinking: str) -> StreamMetadata:
    return StreamMetadata(thinking=thinking or None)


class TestStreamHelpers:
    @pytest.mark.asyncio
    async def test_encode_forwards_text_and_appends_trailer(self) -> None:
        events = _events(
            StreamDelta(text="Let me think", kind="thinking"),
            StreamDelta(text="Hello "),
            StreamDelta(text="world"),
            StreamResult(thread_id="t-1"),
        )

        def finalize(final: StreamResult | None, thinking: str) -> StreamMetadata:
            return StreamMetadata(thread_id=final.thread_id if final else None, thinking=thinking)

        body = await collect(encode_stream(events, cancellation=CancellationToken(), finalize=finalize))
        text, metadata = parse_metadata(body)
        assert text == "Hello world"
        assert metadata is not None
        assert metadata.thread_id == "t-1"
        assert metadata.thinking == "Let me think"

    @pytest.mark.asyncio
    async def test_encode_without_metadata_has_no_trailer(self) -> None:
        body = await collect(encode_stream(
            _events(StreamDelta(text="plain")),
            cancellation=CancellationToken(),
            finalize=_empty_metadata,
        ))
        assert body == "plain"

    @pytest.mark.asyncio
    async def test_cancelled_stream_stops_without_trailer(self) -> None:
        token = CancellationToken()

        async def events() -> AsyncIterator[StreamEvent]:
            yield StreamDelta(text="first")
            token.cancel("stage timed out")
            yield StreamDelta(text="second")

        def finalize(final: StreamResult | None, thinking: str) -> StreamMetadata:
            return StreamMetadata(thread_id="never")

        body = await collect(encode_stream(events(), cancellation=token, finalize=finalize))
        assert body == "first"

    @pytest.mark.asyncio
    async def test_mid_stream_failure_ends_body(self) -> None:
        async def events() -> AsyncIterator[StreamEvent]:
            yield StreamDelta(text="partial")
            raise ConnectionError("reset by peer")

        body = await collect(encode_stream(
            events(), cancellation=CancellationToken(), finalize=_empty_metadata,
        ))
        assert body == "partial"

    @pytest.mark.asyncio
    async def test_client_disconnect_trips_token(self) -> None:
        token = CancellationToken()
        chunks = encode_stream(
            _events(StreamDelta(text="a"), StreamDelta(text="b")),
            cancellation=token,
            finalize=_empty_metadata,
        )
        assert await anext(chunks) == b"a"
        await chunks.aclose()
        assert token.reason == "client disconnected"

    @pytest.mark.asyncio
    async def test_prime_raises_connection_errors_eagerly(self) -> None:
        async def failing() -> AsyncIterator[StreamEvent]:
            raise ConnectionError("refused")
            yield StreamDelta(text="unreachable")

        with pytest.raises(ConnectionError):
            await prime_stream(failing())

    @pytest.mark.asyncio
    async def test_prime_replays_first_event(self) -> None:
        primed = await prime_stream(_events(StreamDelta(text="1"), StreamDelta(text="2")))
        assert [e.text async for e in primed] == ["1", "2"]  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_prime_empty_stream(self) -> None:
        primed = await prime_stream(_events())
        assert [e async for e in primed] == []

    @pytest.mark.asyncio
    async def test_static_stream(self) -> None:
        body = await collect(static_stream("done", StreamMetadata(action="retry")))
        text, metadata = parse_metadata(body)
        assert text == "done"
        assert metadata.action == "retry"  # type: ignore[union-attr]

    def test_coerce_citations_numbers_missing(self) -> None:
        citations = coerce_citations([{"title": "A"}, {"title": "B", "number": 9}], start=4)
        assert [(c.number, c.title) for c in citations] == [(4, "A"), (9, "B")]


class TestStandardChatHandler:
    @pytest.mark.asyncio
    async def test_buffered_response(self) -> None:
        completion = FakeCompletionClient("The answer")
        ctx = make_context("Question?", stream=False, system_prompt="SYS", temperature=0.3)

        await StandardChatHandler(make_services(completion=completion)).process(ctx)

        assert isinstance(ctx.response, JSONChatResponse)
        assert ctx.response.body() == {"text": "The answer"}
        assert ctx.response.media_type == "application/json"
        request = completion.requests[0]
        assert request.system_prompt == "SYS"
        assert request.temperature == 0.3
        assert request.user_id == "user-1"
        assert request.messages == [{"role": "user", "content": "Question?"}]

    @pytest.mark.asyncio
    async def test_streaming_response_with_citations(self) -> None:
        completion = FakeCompletionClient(stream_chunks=["An", "swer"], thinking="pondering")
        ctx = make_context("Question?")
        ctx.processed_content.merge_metadata(citations=[Citation(number=1, title="KB")])

        await StandardChatHandler(make_services(completion=completion)).process(ctx)

        assert isinstance(ctx.response, StreamingChatResponse)
        assert ctx.response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert ctx.response.headers["Cache-Control"] == "no-cache"
        text, metadata = parse_metadata(await collect(ctx.response.chunks))  # type: ignore[arg-type]
        assert text == "Answer"
        assert metadata is not None
        assert [c.title for c in metadata.citations] == ["KB"]
        assert metadata.thinking == "pondering"

    @pytest.mark.asyncio
    async def test_backend_failure_is_recoverable(self) -> None:
        completion = FakeCompletionClient(error=ConnectionError("refused"))
        ctx = make_context("Question?")
        with pytest.raises(PipelineError) as exc_info:
            await StandardChatHandler(make_services(completion=completion)).process(ctx)
        assert exc_info.value.code is ErrorCode.CHAT_COMPLETION_FAILED
        assert not exc_info.value.is_critical
        assert ctx.response is None

    @pytest.mark.asyncio
    async def test_skipped_for_agent_strategy(self) -> None:
        completion = FakeCompletionClient()
        ctx = make_context(execution_strategy=ExecutionStrategy.AGENT)
        await StandardChatHandler(make_services(completion=completion)).process(ctx)
        assert completion.requests == []

    @pytest.mark.asyncio
    async def test_enriched_messages_and_attachments_folded(self) -> None:
        completion = FakeCompletionClient()
        ctx = make_context(
            [
                {"type": "text", "text": "Summarise"},
                {"type": "image_url", "image_url": {"url": "https://img.example.com/a.png"}},
            ],
            stream=False,
        )
        ctx.annotate("enriched_messages", [Message(role="system", content="ctx"), *ctx.messages])
        ctx.processed_content.inline_files.append(InlineFile(filename="a.txt", content="A"))
        ctx.processed_content.images.append(ProcessedImage(url="https://img.example.com/a.png"))

        await StandardChatHandler(make_services(completion=completion)).process(ctx)

        system, user = completion.requests[0].messages
        assert system == {"role": "system", "content": "ctx"}
        assert user["content"][0] == {"type": "text", "text": "Summarise\n\n```a.txt\nA\n```"}
        assert user["content"][1]["image_url"]["url"] == "https://img.example.com/a.png"

    @pytest.mark.asyncio
    async def test_documents_not_duplicated_after_rag_injection(self) -> None:
        completion = FakeCompletionClient()
        ctx = make_context("Summarise", stream=False)
        ctx.processed_content.inline_files.append(InlineFile(filename="a.txt", content="A"))
        ctx.processed_content.merge_metadata(**{DOCUMENTS_INJECTED_KEY: True})
        await StandardChatHandler(make_services(completion=completion)).process(ctx)
        assert completion.requests[0].messages[-1]["content"] == "Summarise"

    @pytest.mark.asyncio
    async def test_history_trimmed_to_token_limit(self) -> None:
        completion = FakeCompletionClient()
        history = [
            Message(role="system", content="keep me"),
            Message(role="user", content="old " * 50),
            Message(role="assistant", content="older reply " * 20),
            Message(role="user", content="recent question"),
            Message(role="assistant", content="recent answer"),
        ]
        ctx = make_context(
            "latest",
            history=history,
            model=ModelDescriptor(id="m", name="M", token_limit=30),
            stream=False,
        )
        await StandardChatHandler(make_services(completion=completion)).process(ctx)
        sent = [m["content"] for m in completion.requests[0].messages]
        assert sent == ["keep me", "recent question", "recent answer", "latest"]

    def test_trimming_keeps_system_turns_in_place(self) -> None:
        ctx = make_context("latest", model=ModelDescriptor(id="m", name="M", token_limit=30))
        ctx.annotate("enriched_messages", [
            Message(role="user", content="old " * 50),
            Message(role="assistant", content="recent answer"),
            Message(role="system", content="Web Search results: fresh"),
            ctx.messages[-1],
        ])
        messages = StandardChatHandler(make_services()).build_messages(ctx)
        assert [(m.role, m.text) for m in messages] == [
            ("assistant", "recent answer"),
            ("system", "Web Search results: fresh"),
            ("user", "latest"),
        ]

    @pytest.mark.asyncio
    async def test_transcript_only_request_returns_transcript(self) -> None:
        completion = FakeCompletionClient()
        ctx = make_context(
            [{"type": "file_url", "url": "https://a.blob.core.windows.net/call.mp3"}],
        )
        processed = ctx.processed_content
        processed.transcripts.append(Transcript(filename="call.mp3", transcript="Minutes..."))
        processed.pending_transcriptions.append(
            PendingTranscription(filename="call.mp3", job_id="job-7"),
        )

        await StandardChatHandler(make_services(completion=completion)).process(ctx)

        assert completion.requests == []
        text, metadata = parse_metadata(await collect(ctx.response.chunks))  # type: ignore[union-attr,arg-type]
        assert text == "Minutes..."
        assert metadata.transcript.filename == "call.mp3"  # type: ignore[union-attr]
        assert metadata.transcript.job_id == "job-7"  # type: ignore[union-attr]
        assert metadata.pending_transcriptions[0].job_id == "job-7"  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_filename_label_counts_as_no_question(self) -> None:
        ctx = make_context(
            [
                {"type": "text", "text": "[Audio/Video: call.mp3]"},
                {"type": "file_url", "url": "https://a.blob.core.windows.net/call.mp3"},
            ],
            stream=False,
        )
        ctx.processed_content.transcripts.append(Transcript(filename="call.mp3", transcript="Hi"))
        await StandardChatHandler(make_services()).process(ctx)
        assert ctx.response.body() == {"text": "Hi"}  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_all_files_failed_message(self) -> None:
        completion = FakeCompletionClient()
        ctx = make_context(
            [{"type": "file_url", "url": "https://a.blob.core.windows.net/broken.bin"}],
            stream=False,
        )
        ctx.processed_content.merge_metadata(file_processing_failed=["broken.bin"])
        await StandardChatHandler(make_services(completion=completion)).process(ctx)
        assert ctx.response.body() == {"text": FILE_PROCESSING_FAILED_MESSAGE}  # type: ignore[union-attr]
        assert completion.requests == []


class TestAgentChatHandler:
    @pytest.mark.asyncio
    async def test_streaming_with_thread_and_citations(self) -> None:
        agent = FakeAgentClient("Agent says hi", thread_id="thread-42")
        ctx = make_context(
            "Research this", model=AGENT_MODEL, execution_strategy=ExecutionStrategy.AGENT,
            agent_capabilities={"web_grounding": True},
        )

        await AgentChatHandler(make_services(agent=agent)).process(ctx)

        text, metadata = parse_metadata(await collect(ctx.response.chunks))  # type: ignore[union-attr,arg-type]
        assert text == "Agent says hi"
        assert metadata.thread_id == "thread-42"  # type: ignore[union-attr]
        assert metadata.citations[0].number == 1  # type: ignore[union-attr]
        request = agent.requests[0]
        assert request.temperature == 0.7
        assert request.capabilities == {"web_grounding": True}

    @pytest.mark.asyncio
    async def test_buffered_run_keeps_explicit_temperature(self) -> None:
        agent = FakeAgentClient("Done")
        ctx = make_context(
            model=AGENT_MODEL, execution_strategy=ExecutionStrategy.AGENT,
            stream=False, temperature=0.0, thread_id="t-1",
        )
        await AgentChatHandler(make_services(agent=agent)).process(ctx)
        assert ctx.response.body() == {"text": "Done"}  # type: ignore[union-attr]
        assert agent.requests[0].temperature == 0.0
        assert agent.requests[0].thread_id == "t-1"

    @pytest.mark.asyncio
    async def test_failures_are_recoverable(self) -> None:
        ctx = make_context(model=AGENT_MODEL, execution_strategy=ExecutionStrategy.AGENT)
        with pytest.raises(PipelineError) as exc_info:
            await AgentChatHandler(make_services()).process(ctx)
        assert exc_info.value.code is ErrorCode.AGENT_EXECUTION_FAILED

        agent = FakeAgentClient(error=ConnectionError("agent offline"))
        with pytest.raises(PipelineError) as exc_info:
            await AgentChatHandler(make_services(agent=agent)).process(ctx)
        assert not exc_info.value.is_critical
        assert ctx.response is None

    def test_only_runs_for_agent_strategy(self) -> None:
        handler = AgentChatHandler(make_services(agent=FakeAgentClient()))
        assert not handler.should_run(make_context())
