"""Value types exchanged with backend collaborators."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from unichat.models.chat import Message, ModelDescriptor


class KnowledgeAgent(BaseModel):
    """A knowledge-base agent resolved from a ``bot_id``."""

    id: str
    name: str
    system_prompt: str | None = None
    allow_web_search: bool = False
    sources: list[str] = Field(default_factory=list)


class SearchDocument(BaseModel):
    title: str = ""
    url: str = ""
    date: str | None = None
    chunk: str = ""


class SearchResults(BaseModel):
    documents: list[SearchDocument] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ToolDecision(BaseModel):
    """Which tools the router decided the request needs."""

    tools: list[str] = Field(default_factory=list)
    search_query: str | None = None
    reasoning: str | None = None

    @property
    def wants_web_search(self) -> bool:
        return "web_search" in self.tools


class WebSearchCitation(BaseModel):
    title: str = ""
    url: str = ""
    date: str | None = None


class WebSearchResult(BaseModel):
    text: str
    citations: list[WebSearchCitation] = Field(default_factory=list)


class CompletionRequest(BaseModel):
    """Everything a completion backend needs for one call."""

    model: ModelDescriptor
    model_id: str
    messages: list[dict[str, Any]]
    system_prompt: str = ""
    temperature: float | None = None
    reasoning_effort: str | None = None
    verbosity: str | None = None
    user_id: str | None = None


class AgentRunRequest(BaseModel):
    """Everything a hosted-agent backend needs for one run."""

    model: ModelDescriptor
    model_id: str
    messages: list[Message]
    temperature: float = 0.7
    bot_id: str | None = None
    thread_id: str | None = None
    capabilities: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None


class TranscriptionJob(BaseModel):
    job_id: str
    job_type: Literal["batch", "chunked"] = "batch"
    blob_path: str | None = None
