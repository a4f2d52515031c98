"""Configuration models for the assistant engine."""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator

_DEFAULT_EXCLUDED_DIRS = [
    ".git",
    ".gradle",
    ".idea",
    ".venv",
    "__pycache__",
    "build",
    "dist",
    "node_modules",
    "out",
    "target",
]


class ChunkingConfig(BaseModel):
    """Configures fixed-size character windows with overlap."""

    chunk_size: int = Field(default=500, ge=1)
    overlap: int = Field(default=50, ge=0)

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap >= self.chunk_size:
            raise ValueError("overlap must be less than chunk_size")
        return self


class IndexConfig(BaseModel):
    """Configures which files are indexed and where the cache lives."""

    included_extensions: list[str] = Field(default_factory=lambda: [".md", ".txt"])
    excluded_dirs: list[str] = Field(default_factory=lambda: list(_DEFAULT_EXCLUDED_DIRS))
    cache_dir: Path = Field(default_factory=lambda: Path.home() / ".cache" / "rag-assistant")


class RetrievalConfig(BaseModel):
    """Configures ranking and the raw-context fallback."""

    top_n: int = Field(default=3, ge=1)
    threshold: float = Field(default=0.5, ge=-1.0, le=1.0)
    fallback_chars_per_file: int = Field(default=2000, ge=1)
    fallback_max_files: int = Field(default=10, ge=0)


class AgentConfig(BaseModel):
    """Configures the tool-calling loop."""

    max_iterations: int = Field(default=8, ge=1)
    history_window: int = Field(default=5, ge=0)


class ToolConfig(BaseModel):
    """Output budgets for the built-in tools."""

    max_read_chars: int = Field(default=20_000, ge=1)
    max_grep_matches: int = Field(default=50, ge=1)
    max_grep_line_chars: int = Field(default=300, ge=20)
    git_log_count: int = Field(default=10, ge=1)
    git_timeout_seconds: float = Field(default=10.0, gt=0.0)
    search_preview_chars: int = Field(default=400, ge=20)


class SidecarConfig(BaseModel):
    """A tool-server process launched at startup."""

    name: str
    command: list[str] = Field(min_length=1)


class ChatConfig(BaseModel):
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    api_key: str | None = None
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    timeout_seconds: float = Field(default=120.0, gt=0.0)


class EmbeddingConfig(BaseModel):
    provider: Literal["ollama", "hashing"] = "ollama"
    dimension: int = Field(default=256, ge=1)
    base_url: str = "http://localhost:11434"
    model: str = "nomic-embed-text"
    timeout_seconds: float = Field(default=60.0, gt=0.0)


class AssistantSettings(BaseModel):
    """Top-level settings for one assistant session."""

    project_root: Path = Field(default_factory=Path.cwd)
    index_root: Path | None = None
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    tools: ToolConfig = Field(default_factory=ToolConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    sidecars: list[SidecarConfig] = Field(default_factory=list)

    @property
    def resolved_index_root(self) -> Path:
        return (self.index_root or self.project_root).resolve()

    @classmethod
    def from_env(cls) -> "AssistantSettings":
        """Build settings from `RAG_ASSISTANT_*` / `OPENAI_*` environment variables.

        Sidecars are read from `RAG_ASSISTANT_SIDECARS` as `name=command;name=command`,
        where each command is split with shell quoting rules.
        """

        project_root = Path(os.getenv("RAG_ASSISTANT_PROJECT_ROOT", os.getcwd()))
        index_root = os.getenv("RAG_ASSISTANT_INDEX_ROOT")
        chat = ChatConfig(
            model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            api_key=os.getenv("OPENAI_API_KEY") or None,
        )
        embedding = EmbeddingConfig(
            provider=os.getenv("RAG_ASSISTANT_EMBEDDER", "ollama"),
            base_url=os.getenv("OLLAMA_URL", "http://localhost:11434"),
            model=os.getenv("RAG_ASSISTANT_EMBED_MODEL", "nomic-embed-text"),
        )
        return cls(
            project_root=project_root,
            index_root=Path(index_root) if index_root else None,
            chat=chat,
            embedding=embedding,
            sidecars=_parse_sidecars(os.getenv("RAG_ASSISTANT_SIDECARS", "")),
        )


def _parse_sidecars(raw: str) -> list[SidecarConfig]:
    sidecars: list[SidecarConfig] = []
    for item in raw.split(";"):
        if not item.strip():
            continue
        name, _, command = item.partition("=")
        if not command.strip():
            raise ValueError(f"Sidecar entry has no command: {item!r}")
        sidecars.append(SidecarConfig(name=name.strip(), command=shlex.split(command)))
    return sidecars
