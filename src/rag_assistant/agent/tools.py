"""Built-in tool implementations for the assistant agent."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from pydantic import Field

from rag_assistant.agent.registry import ToolArgs, ToolRegistry, ToolSpec
from rag_assistant.config import IndexConfig, ToolConfig
from rag_assistant.errors import ToolExecutionError
from rag_assistant.ingest.files import iter_source_files, read_text_file, relative_source
from rag_assistant.retrieval.retriever import Retriever

logger = logging.getLogger(__name__)

NO_RESULTS = "NO_RESULTS"


class SearchToolInput(ToolArgs):
    query: str = Field(min_length=1, description="What to look for in the indexed documentation.")


class ReadFileToolInput(ToolArgs):
    path: str = Field(min_length=1, description="File path relative to the project root.")


class ListDirectoryToolInput(ToolArgs):
    path: str = Field(default=".", description="Directory path relative to the project root.")


class GitInfoToolInput(ToolArgs):
    pass


class GrepToolInput(ToolArgs):
    pattern: str = Field(min_length=1, description="Case-insensitive substring to search for.")
    path: str = Field(default=".", description="Subdirectory to search, relative to the project root.")


class ProjectSandbox:
    """Resolves user-supplied paths and refuses anything outside the root.

    Paths are canonicalized with `Path.resolve`, so `..` segments, absolute
    paths and symlinks pointing elsewhere are all caught by the same check.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def resolve(self, relative: str) -> Path:
        try:
            candidate = (self.root / relative).resolve()
        except (OSError, ValueError) as exc:
            raise ToolExecutionError(f"Invalid path {relative!r}: {exc}") from exc
        if candidate != self.root and not candidate.is_relative_to(self.root):
            raise ToolExecutionError(f"Access denied: {relative} is outside the project root")
        return candidate

    def contains(self, path: Path) -> bool:
        try:
            resolved = path.resolve()
        except (OSError, ValueError):
            return False
        return resolved == self.root or resolved.is_relative_to(self.root)

    def display(self, path: Path) -> str:
        if path == self.root:
            return "."
        return relative_source(path, self.root)


def register_builtin_tools(
    registry: ToolRegistry,
    retriever: Retriever,
    project_root: str | Path,
    *,
    config: ToolConfig | None = None,
    index_config: IndexConfig | None = None,
) -> None:
    """Register the default tool set offered to the model.

    Tools:
    - `search`: ranked retrieval over the active index.
    - `read_file` / `list_directory`: sandboxed project file access.
    - `git_info`: branch, recent commits and working tree status.
    - `grep`: case-insensitive substring search across indexed file types.
    """

    tool_config = config or ToolConfig()
    files_config = index_config or IndexConfig()
    sandbox = ProjectSandbox(project_root)

    def _search(input_data: SearchToolInput) -> str:
        hits = retriever.search(input_data.query)
        if not hits:
            return NO_RESULTS
        lines = []
        for hit in hits:
            snippet = _truncate(hit.entry.text, tool_config.search_preview_chars)
            lines.append(
                f"[{hit.entry.source}#{hit.entry.chunk_index}] score={hit.score:.4f}\n{snippet}"
            )
        return "\n\n".join(lines)

    def _read_file(input_data: ReadFileToolInput) -> str:
        path = sandbox.resolve(input_data.path)
        limit = tool_config.max_read_chars
        try:
            if not path.exists():
                raise ToolExecutionError(f"File not found: {input_data.path}")
            if not path.is_file():
                raise ToolExecutionError(f"Not a file: {input_data.path}")
            # One extra character tells a full read from a truncated one.
            with path.open(encoding="utf-8", errors="replace") as handle:
                text = handle.read(limit + 1)
        except OSError as exc:
            raise ToolExecutionError(f"Cannot read {input_data.path}: {exc}") from exc

        if len(text) <= limit:
            return text
        return f"{text[:limit]}\n... [truncated after {limit} characters]"

    def _list_directory(input_data: ListDirectoryToolInput) -> str:
        path = sandbox.resolve(input_data.path)
        try:
            if not path.exists():
                raise ToolExecutionError(f"Directory not found: {input_data.path}")
            if not path.is_dir():
                raise ToolExecutionError(f"Not a directory: {input_data.path}")
            children = sorted(path.iterdir(), key=lambda child: (not child.is_dir(), child.name))
        except OSError as exc:
            raise ToolExecutionError(f"Cannot list {input_data.path}: {exc}") from exc

        lines = [f"{sandbox.display(path)}/"]
        for child in children:
            if child.is_dir():
                lines.append(f"  {child.name}/")
            else:
                try:
                    size = _format_size(child.stat().st_size)
                except OSError:
                    size = "unreadable"
                lines.append(f"  {child.name} ({size})")
        if not children:
            lines.append("  (empty)")
        return "\n".join(lines)

    def _git_info(input_data: GitInfoToolInput) -> str:
        del input_data
        sections = [
            ("Branch", ["git", "rev-parse", "--abbrev-ref", "HEAD"]),
            ("Recent commits", ["git", "log", "--oneline", f"-n{tool_config.git_log_count}"]),
            ("Status", ["git", "status", "--short"]),
        ]
        output = []
        for title, command in sections:
            body = _run_git(command, sandbox.root, tool_config.git_timeout_seconds)
            output.append(f"{title}:\n{body or '(clean)'}")
        return "\n\n".join(output)

    def _grep(input_data: GrepToolInput) -> str:
        base = sandbox.resolve(input_data.path)
        try:
            is_dir = base.is_dir()
        except OSError as exc:
            raise ToolExecutionError(f"Cannot search {input_data.path}: {exc}") from exc
        if not is_dir:
            raise ToolExecutionError(f"Directory not found: {input_data.path}")

        needle = input_data.pattern.lower()
        matches: list[str] = []
        for file_path in iter_source_files(
            base, files_config.included_extensions, files_config.excluded_dirs
        ):
            if not sandbox.contains(file_path):
                continue
            try:
                text = read_text_file(file_path)
            except OSError:
                continue
            if text is None:
                continue
            for line_number, line in enumerate(text.splitlines(), start=1):
                if needle not in line.lower():
                    continue
                if len(matches) >= tool_config.max_grep_matches:
                    matches.append(f"... (stopped after {tool_config.max_grep_matches} matches)")
                    return "\n".join(matches)
                content = _truncate(line.strip(), tool_config.max_grep_line_chars)
                matches.append(f"{sandbox.display(file_path)}:{line_number}:{content}")
        return "\n".join(matches) if matches else f"No matches for {input_data.pattern!r}"

    registry.register(
        ToolSpec(
            name="search",
            description="Search the indexed project documentation and return relevant fragments with scores.",
            args_schema=SearchToolInput,
            handler=_search,
        )
    )
    registry.register(
        ToolSpec(
            name="read_file",
            description="Read a text file from the project (path relative to the project root).",
            args_schema=ReadFileToolInput,
            handler=_read_file,
        )
    )
    registry.register(
        ToolSpec(
            name="list_directory",
            description="List a project directory: directories first, files with sizes.",
            args_schema=ListDirectoryToolInput,
            handler=_list_directory,
        )
    )
    registry.register(
        ToolSpec(
            name="git_info",
            description="Show the current git branch, recent commits and working tree status.",
            args_schema=GitInfoToolInput,
            handler=_git_info,
        )
    )
    registry.register(
        ToolSpec(
            name="grep",
            description="Case-insensitive substring search over project text files; returns path:line:content.",
            args_schema=GrepToolInput,
            handler=_grep,
        )
    )


def _run_git(command: list[str], cwd: Path, timeout: float) -> str:
    try:
        completed = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.warning("git command %s failed: %s", command[1], exc)
        return f"error: {exc}"
    if completed.returncode != 0:
        stderr = completed.stderr.strip() or f"exit status {completed.returncode}"
        return f"error: {stderr}"
    return completed.stdout.strip()


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
