"""FastAPI entrypoint for query/index/tool/trace endpoints.

Serve a session for the current environment with
`uvicorn rag_assistant.api.main:create_default_app --factory`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from rag_assistant.agent.gateway import LangChainChatGateway, create_chat_model
from rag_assistant.assistant import Assistant
from rag_assistant.config import AssistantSettings
from rag_assistant.errors import AssistantError, ProtocolDisconnection, RetrievalDegradation
from rag_assistant.ingest.embedder import create_embedder


class QueryRequest(BaseModel):
    question: str = Field(min_length=1)


class SourceSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top_n: int = Field(default=5, ge=1, le=20)
    threshold: float | None = Field(default=None, ge=-1.0, le=1.0)


def create_app(assistant: Assistant) -> FastAPI:
    """Expose one local assistant session over HTTP; the app closes it on shutdown."""

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        assistant.close()

    app = FastAPI(title="RAG Assistant", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "index_root": assistant.index.root,
            "chunks": len(assistant.index),
            "tools": len(assistant.registry.specs()),
            "sidecars": [client.name for client in assistant.clients],
            "history_turns": len(assistant.history),
        }

    @app.get("/tools")
    def tools() -> dict[str, Any]:
        return {"items": assistant.registry.catalog()}

    @app.post("/query")
    def query(request: QueryRequest) -> dict[str, Any]:
        try:
            result, record = assistant.ask_traced(request.question)
        except ProtocolDisconnection as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except AssistantError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        return {
            "answer": result.answer,
            "iterations": result.iterations,
            "forced_final": result.forced_final,
            "context_mode": record.context_mode,
            "sources": record.sources,
            "tool_traces": [asdict(trace) for trace in result.tool_traces],
            "trace_id": record.trace_id,
        }

    @app.post("/index")
    def reindex() -> dict[str, Any]:
        try:
            index = assistant.reindex()
        except Exception as exc:
            raise HTTPException(status_code=500, detail=f"Indexing failed: {exc}") from exc
        return {
            "root": index.root,
            "chunks": len(index),
            "sources": sorted({entry.source for entry in index}),
        }

    @app.post("/sources/search")
    def source_search(request: SourceSearchRequest) -> dict[str, Any]:
        try:
            hits = assistant.retriever.search(
                request.query,
                top_n=request.top_n,
                threshold=request.threshold,
            )
        except RetrievalDegradation as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {
            "items": [
                {
                    "source": hit.entry.source,
                    "chunk_index": hit.entry.chunk_index,
                    "score": hit.score,
                    "text": hit.entry.text,
                }
                for hit in hits
            ]
        }

    @app.delete("/history")
    def clear_history() -> dict[str, Any]:
        cleared = len(assistant.history)
        assistant.clear_history()
        return {"cleared": cleared}

    @app.get("/traces")
    def traces(limit: int = Query(default=20, ge=1, le=500)) -> dict[str, Any]:
        records = [asdict(record) for record in assistant.trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = assistant.trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return assistant.trace_store.summary()

    return app


def create_default_app() -> FastAPI:
    settings = AssistantSettings.from_env()
    gateway = LangChainChatGateway(create_chat_model(settings.chat))
    assistant = Assistant.start(settings, gateway, create_embedder(settings.embedding))
    return create_app(assistant)
