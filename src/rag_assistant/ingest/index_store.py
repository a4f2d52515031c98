"""Build, persist and load fragment indexes: walk -> chunk -> embed -> save."""

from __future__ import annotations

import logging
from hashlib import sha256
from pathlib import Path

from pydantic import TypeAdapter

from rag_assistant.config import IndexConfig
from rag_assistant.ingest.chunker import SlidingWindowChunker
from rag_assistant.ingest.embedder import Embedder
from rag_assistant.ingest.files import iter_source_files, read_text_file, relative_source
from rag_assistant.types import Index, IndexEntry

logger = logging.getLogger(__name__)

_ENTRIES_ADAPTER = TypeAdapter(list[IndexEntry])


class IndexStore:
    """Coordinates chunker/embedder stages and the on-disk cache.

    Each indexed root maps to its own cache file whose name derives from the
    root's canonical path. Rebuilds are always full; the previous `Index`
    object is never mutated.
    """

    def __init__(
        self,
        chunker: SlidingWindowChunker,
        embedder: Embedder,
        config: IndexConfig | None = None,
    ) -> None:
        self._chunker = chunker
        self._embedder = embedder
        self.config = config or IndexConfig()

    def cache_path(self, root: str | Path) -> Path:
        canonical = str(Path(root).resolve())
        digest = sha256(canonical.encode("utf-8")).hexdigest()[:16]
        return Path(self.config.cache_dir) / f"index-{digest}.json"

    def build(self, root: str | Path) -> Index:
        """Index every matching file under `root` and persist the result.

        Unreadable or binary files are skipped with a warning. Embedding errors
        propagate, so a failed build never overwrites the existing cache.
        """

        root_path = Path(root).resolve()
        entries: list[IndexEntry] = []
        file_count = 0

        for path in iter_source_files(
            root_path, self.config.included_extensions, self.config.excluded_dirs
        ):
            try:
                text = read_text_file(path)
            except OSError as exc:
                logger.warning("Skipping unreadable file %s: %s", path, exc)
                continue
            if text is None:
                logger.warning("Skipping binary or non-UTF-8 file %s", path)
                continue
            if not text.strip():
                continue

            chunks = self._chunker.chunk(text)
            embeddings = self._embedder.embed_documents(chunks)
            source = relative_source(path, root_path)
            for chunk_index, (chunk, embedding) in enumerate(
                zip(chunks, embeddings, strict=True)
            ):
                entries.append(
                    IndexEntry(
                        source=source,
                        chunk_index=chunk_index,
                        text=chunk,
                        embedding=tuple(embedding),
                    )
                )
            file_count += 1
            logger.debug("Indexed %s: %d chunk(s)", source, len(chunks))

        index = Index(root=str(root_path), entries=tuple(entries))
        self.save(index)
        logger.info(
            "Built index for %s: %d file(s), %d chunk(s)", root_path, file_count, len(index)
        )
        return index

    def load(self, root: str | Path) -> Index:
        """Return the cached index for `root`, building it when absent or corrupt."""

        root_path = Path(root).resolve()
        path = self.cache_path(root_path)
        if not path.exists():
            logger.info("No cached index for %s, building", root_path)
            return self.build(root_path)

        try:
            entries = _ENTRIES_ADAPTER.validate_json(path.read_bytes())
            index = Index(root=str(root_path), entries=tuple(entries))
        except ValueError as exc:
            logger.warning("Cached index %s is unusable, rebuilding: %s", path, exc)
            return self.build(root_path)
        logger.info("Loaded index for %s: %d chunk(s)", root_path, len(index))
        return index

    def save(self, index: Index) -> Path:
        path = self.cache_path(index.root)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(_ENTRIES_ADAPTER.dump_json(list(index.entries), indent=2))
        tmp_path.replace(path)
        return path
