"""Concrete backend clients.

``AnthropicCompletionClient`` requires the ``anthropic`` extra.
"""

from .anthropic import AnthropicCompletionClient, to_anthropic_messages
from .blob import HttpBlobStorage

__all__ = ["AnthropicCompletionClient", "HttpBlobStorage", "to_anthropic_messages"]
