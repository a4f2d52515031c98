import os
from pathlib import Path

import pytest
from stubs import TableEmbedder

from rag_assistant.agent.executor import ToolExecutor
from rag_assistant.agent.registry import ToolRegistry
from rag_assistant.agent.tools import NO_RESULTS, ProjectSandbox, register_builtin_tools
from rag_assistant.config import ToolConfig
from rag_assistant.errors import ToolExecutionError
from rag_assistant.retrieval.retriever import Retriever
from rag_assistant.types import Index, IndexEntry


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "README.md").write_text("# Demo\nRun `make serve` to start.\n", encoding="utf-8")
    (root / "docs" / "setup.md").write_text("Install deps.\nThen MAKE build.\n", encoding="utf-8")
    (root / "docs" / "usage.md").write_text("make test\n", encoding="utf-8")
    (root / "src" / "app.py").write_text("print('make')\n", encoding="utf-8")
    (root / "big.txt").write_text("x" * 120, encoding="utf-8")
    (tmp_path / "secret.txt").write_text("top secret", encoding="utf-8")
    return root


@pytest.fixture
def executor(project: Path) -> ToolExecutor:
    index = Index(
        root=str(project),
        entries=(IndexEntry("README.md", 0, "Run make serve to start.", (1.0, 0.0)),),
    )
    retriever = Retriever(index, TableEmbedder({"serve": (1.0, 0.0)}))
    registry = ToolRegistry()
    register_builtin_tools(
        registry,
        retriever,
        project,
        config=ToolConfig(max_read_chars=100, max_grep_matches=2),
    )
    return ToolExecutor(registry)


def test_builtin_catalog(executor: ToolExecutor) -> None:
    assert [spec.name for spec in executor.registry.specs()] == [
        "search",
        "read_file",
        "list_directory",
        "git_info",
        "grep",
    ]


def test_search_formats_hits_and_reports_no_results(executor: ToolExecutor) -> None:
    assert executor.execute("search", {"query": "serve"}) == (
        "[README.md#0] score=1.0000\nRun make serve to start."
    )
    assert executor.execute("search", {"query": "nothing similar"}) == NO_RESULTS


def test_read_file_inside_root(executor: ToolExecutor) -> None:
    assert executor.execute("read_file", {"path": "docs/setup.md"}) == "Install deps.\nThen MAKE build.\n"


def test_read_file_truncates_with_marker(executor: ToolExecutor) -> None:
    output = executor.execute("read_file", {"path": "big.txt"})

    assert output == "x" * 100 + "\n... [truncated after 100 characters]"


@pytest.mark.parametrize("path", ["../secret.txt", "docs/../../secret.txt"])
def test_read_file_rejects_parent_traversal(executor: ToolExecutor, path: str) -> None:
    output = executor.execute("read_file", {"path": path})

    assert output.startswith("Error: Access denied")
    assert "top secret" not in output


def test_read_file_rejects_absolute_path_outside_root(executor: ToolExecutor, project: Path) -> None:
    output = executor.execute("read_file", {"path": str(project.parent / "secret.txt")})

    assert output.startswith("Error: Access denied")


def test_read_file_rejects_symlink_escape(executor: ToolExecutor, project: Path) -> None:
    os.symlink(project.parent / "secret.txt", project / "link.txt")

    output = executor.execute("read_file", {"path": "link.txt"})

    assert output.startswith("Error: Access denied")


def test_read_file_missing_and_directory(executor: ToolExecutor) -> None:
    assert executor.execute("read_file", {"path": "nope.md"}) == "Error: File not found: nope.md"
    assert executor.execute("read_file", {"path": "docs"}) == "Error: Not a file: docs"


@pytest.mark.parametrize(
    "name, args",
    [
        ("read_file", {"path": "a\x00b"}),
        ("list_directory", {"path": "docs\x00"}),
        ("grep", {"pattern": "make", "path": "\x00"}),
    ],
)
def test_embedded_nul_in_path_is_reported_as_text(executor: ToolExecutor, name: str, args: dict) -> None:
    output = executor.execute(name, args)

    assert output.startswith("Error: ")


def test_read_file_at_exact_limit_is_not_truncated(executor: ToolExecutor, project: Path) -> None:
    (project / "exact.txt").write_text("y" * 100, encoding="utf-8")

    assert executor.execute("read_file", {"path": "exact.txt"}) == "y" * 100


def test_list_directory_orders_directories_first(executor: ToolExecutor) -> None:
    output = executor.execute("list_directory", {})

    assert output.splitlines() == [
        "./",
        "  docs/",
        "  src/",
        "  README.md (34 B)",
        "  big.txt (120 B)",
    ]


def test_list_directory_is_sandboxed(executor: ToolExecutor) -> None:
    assert executor.execute("list_directory", {"path": ".."}).startswith("Error: Access denied")


def test_grep_is_case_insensitive_and_capped(executor: ToolExecutor) -> None:
    output = executor.execute("grep", {"pattern": "make"})

    assert output.splitlines() == [
        "README.md:2:Run `make serve` to start.",
        "docs/setup.md:2:Then MAKE build.",
        "... (stopped after 2 matches)",
    ]


def test_grep_scoped_to_subpath_and_no_matches(executor: ToolExecutor) -> None:
    assert executor.execute("grep", {"pattern": "install", "path": "docs"}) == (
        "docs/setup.md:1:Install deps."
    )
    assert executor.execute("grep", {"pattern": "zebra"}) == "No matches for 'zebra'"
    assert executor.execute("grep", {"pattern": "x", "path": "../"}).startswith("Error: Access denied")


def test_git_info_reports_failures_inline(
    executor: ToolExecutor, project: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(project.parent))

    output = executor.execute("git_info", {})

    assert output.startswith("Branch:\n")
    assert "Recent commits:\n" in output
    assert "Status:\n" in output
    assert "error:" in output


def test_sandbox_resolves_root_itself(project: Path) -> None:
    sandbox = ProjectSandbox(project)

    assert sandbox.resolve(".") == project.resolve()
    assert sandbox.resolve("docs/setup.md") == (project / "docs" / "setup.md").resolve()
    with pytest.raises(ToolExecutionError):
        sandbox.resolve("/etc/passwd")
