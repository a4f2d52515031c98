"""Assistant session: sidecars, index, retrieval context and the agent loop."""

from __future__ import annotations

import logging
from contextlib import ExitStack

from rag_assistant.agent.executor import ToolExecutor
from rag_assistant.agent.gateway import ChatGateway
from rag_assistant.agent.orchestrator import AgentOrchestrator, build_system_prompt
from rag_assistant.agent.registry import ToolRegistry
from rag_assistant.agent.remote import register_remote_tools
from rag_assistant.agent.tools import register_builtin_tools
from rag_assistant.config import AssistantSettings
from rag_assistant.ingest.chunker import SlidingWindowChunker
from rag_assistant.ingest.embedder import Embedder
from rag_assistant.ingest.index_store import IndexStore
from rag_assistant.obs.tracing import Timer, TraceRecord, TraceStore
from rag_assistant.protocol.client import ProtocolClient
from rag_assistant.retrieval.retriever import ContextBuilder, Retriever
from rag_assistant.types import AgentResult, ConversationTurn, Index

logger = logging.getLogger(__name__)


class Assistant:
    """One interactive session over a project.

    Holds the sidecar sessions, the active index and the conversation
    history. Use `Assistant.start` to build one from settings; `close`
    releases every sidecar and the embedder.
    """

    def __init__(
        self,
        settings: AssistantSettings,
        *,
        orchestrator: AgentOrchestrator,
        registry: ToolRegistry,
        retriever: Retriever,
        index_store: IndexStore,
        embedder: Embedder,
        clients: list[ProtocolClient] | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.settings = settings
        self.orchestrator = orchestrator
        self.registry = registry
        self.retriever = retriever
        self.index_store = index_store
        self.embedder = embedder
        self.clients = list(clients or [])
        self.trace_store = trace_store or TraceStore()
        self.context_builder = ContextBuilder(retriever, settings.index)
        self._history: list[ConversationTurn] = []
        self._closed = False

    @classmethod
    def start(
        cls,
        settings: AssistantSettings,
        chat_gateway: ChatGateway,
        embedder: Embedder,
    ) -> "Assistant":
        registry = ToolRegistry()
        with ExitStack() as stack:
            stack.callback(embedder.close)
            clients: list[ProtocolClient] = []
            for sidecar in settings.sidecars:
                client = ProtocolClient.open(sidecar.command, name=sidecar.name)
                stack.callback(client.close)
                clients.append(client)

            index_store = IndexStore(SlidingWindowChunker(settings.chunking), embedder, settings.index)
            index = index_store.load(settings.resolved_index_root)
            retriever = Retriever(index, embedder, settings.retrieval)

            register_builtin_tools(
                registry,
                retriever,
                settings.project_root,
                config=settings.tools,
                index_config=settings.index,
            )
            for client in clients:
                register_remote_tools(registry, client)

            assistant = cls(
                settings,
                orchestrator=AgentOrchestrator(chat_gateway, ToolExecutor(registry), settings.agent),
                registry=registry,
                retriever=retriever,
                index_store=index_store,
                embedder=embedder,
                clients=clients,
            )
            stack.pop_all()

        logger.info(
            "Assistant ready: %d chunk(s), %d tool(s), %d sidecar(s)",
            len(index),
            len(registry.specs()),
            len(clients),
        )
        return assistant

    def __enter__(self) -> "Assistant":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    @property
    def history(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._history)

    @property
    def index(self) -> Index:
        return self.retriever.index

    def ask(self, question: str) -> AgentResult:
        return self.ask_traced(question)[0]

    def ask_traced(self, question: str) -> tuple[AgentResult, TraceRecord]:
        """Answer `question` and return the stored trace record with it."""

        if not question.strip():
            raise ValueError("question must not be empty")

        with Timer() as timer:
            context = self.context_builder.build(question)
            result = self.orchestrator.run(
                question,
                system_prompt=build_system_prompt(context.text),
                history=self._history,
            )

        self._history.append(ConversationTurn(question=question, answer=result.answer))
        record = self.trace_store.create_record(
            question=question,
            result=result,
            context_mode=context.mode,
            sources=[f"{hit.entry.source}#{hit.entry.chunk_index}" for hit in context.hits],
            latency_ms=timer.elapsed_ms,
        )
        return result, record

    def reindex(self) -> Index:
        """Rebuild the index from scratch and make it the active one."""

        index = self.index_store.build(self.settings.resolved_index_root)
        self.retriever.swap_index(index)
        return index

    def clear_history(self) -> None:
        self._history.clear()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for client in self.clients:
            client.close()
        self.embedder.close()
        logger.info("Assistant closed")
