"""Local RAG and tool-calling assistant engine."""

from .assistant import Assistant
from .config import AssistantSettings, ChunkingConfig, RetrievalConfig
from .types import AgentResult, ConversationTurn

__all__ = [
    "AgentResult",
    "Assistant",
    "AssistantSettings",
    "ChunkingConfig",
    "ConversationTurn",
    "RetrievalConfig",
]
