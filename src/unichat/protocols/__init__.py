"""Protocol definitions for unichat's pluggable backends."""

from .agent import AgentClient
from .auth import Authenticator
from .completion import CompletionClient
from .retrieval import RetrievalClient
from .storage import BlobStorage
from .tokenizer import Tokenizer
from .tools import ToolRouterClient
from .transcription import Transcriber

__all__ = [
    "AgentClient",
    "Authenticator",
    "BlobStorage",
    "CompletionClient",
    "RetrievalClient",
    "Tokenizer",
    "ToolRouterClient",
    "Transcriber",
]
