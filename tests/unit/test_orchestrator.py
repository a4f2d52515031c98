from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.messages.tool import invalid_tool_call
from stubs import ScriptedChatGateway, ToolHungryChatGateway, ai, tool_call

from rag_assistant.agent.executor import ToolExecutor
from rag_assistant.agent.orchestrator import SUMMARY_INSTRUCTION, AgentOrchestrator
from rag_assistant.agent.registry import ToolArgs, ToolRegistry, ToolSpec
from rag_assistant.config import AgentConfig
from rag_assistant.types import ConversationTurn


class LookupInput(ToolArgs):
    key: str


def _executor() -> ToolExecutor:
    registry = ToolRegistry()
    registry.register(
        ToolSpec(
            name="lookup",
            description="look a key up",
            args_schema=LookupInput,
            handler=lambda data: f"value of {data.key}",
        )
    )
    registry.register(
        ToolSpec(
            name="search",
            description="search docs",
            args_schema=LookupInput,
            handler=lambda data: f"docs about {data.key}",
        )
    )
    return ToolExecutor(registry)


def test_final_answer_without_tools_ends_after_one_round() -> None:
    gateway = ScriptedChatGateway([ai("Direct answer.")])

    result = AgentOrchestrator(gateway, _executor()).run("What is it?", system_prompt="sys")

    assert result.answer == "Direct answer."
    assert result.iterations == 1
    assert result.forced_final is False
    assert result.tool_traces == []
    messages, tools = gateway.calls[0]
    assert [tool.name for tool in tools] == ["lookup", "search"]
    assert isinstance(messages[0], SystemMessage)
    assert messages[-1].content == "What is it?"


def test_tool_rounds_execute_in_order_before_next_call() -> None:
    gateway = ScriptedChatGateway(
        [
            ai("", tool_call("lookup", {"key": "a"}, "c1"), tool_call("search", {"key": "b"}, "c2")),
            ai("", tool_call("unknown_tool", {}, "c3")),
            ai("", tool_call("lookup", {"wrong": 1}, "c4")),
            ai("Done after three rounds."),
        ]
    )

    result = AgentOrchestrator(gateway, _executor(), AgentConfig(max_iterations=5)).run("q")

    assert result.answer == "Done after three rounds."
    assert result.iterations == 4
    assert result.forced_final is False
    assert [(trace.name, trace.failed) for trace in result.tool_traces] == [
        ("lookup", False),
        ("search", False),
        ("lookup", True),
    ]

    second_request, _ = gateway.calls[1]
    first_results = second_request[-2:]
    assert isinstance(second_request[-3], AIMessage)
    assert [(m.tool_call_id, m.content) for m in first_results] == [
        ("c1", "value of a"),
        ("c2", "docs about b"),
    ]

    final_request, _ = gateway.calls[3]
    assert final_request[-3].content == "Error: unknown tool 'unknown_tool'"
    assert final_request[-1].content.startswith("Error: invalid arguments for lookup")
    assert sum(isinstance(m, ToolMessage) for m in final_request) == 4


def test_iteration_cap_forces_one_final_call_without_tools() -> None:
    gateway = ToolHungryChatGateway("lookup", {"key": "again"})

    result = AgentOrchestrator(gateway, _executor(), AgentConfig(max_iterations=3)).run("q")

    assert result.answer == "Best effort summary."
    assert result.forced_final is True
    assert result.iterations == 3
    assert len(gateway.calls) == 4
    assert all(tools is not None for _, tools in gateway.calls[:3])
    final_messages, final_tools = gateway.calls[3]
    assert final_tools is None
    assert isinstance(final_messages[-1], HumanMessage)
    assert final_messages[-1].content == SUMMARY_INSTRUCTION
    assert len(result.tool_traces) == 3


def test_history_window_keeps_only_recent_turns() -> None:
    gateway = ScriptedChatGateway([ai("ok")])
    history = [ConversationTurn(f"q{i}", f"a{i}") for i in range(8)]

    AgentOrchestrator(gateway, _executor(), AgentConfig(history_window=2)).run(
        "now", system_prompt="sys", history=history
    )

    messages, _ = gateway.calls[0]
    assert [m.content for m in messages] == ["sys", "q6", "a6", "q7", "a7", "now"]


def test_missing_call_ids_still_pair_results() -> None:
    gateway = ScriptedChatGateway(
        [ai("", tool_call("lookup", {"key": "k"}, call_id=None)), ai("answer")]
    )

    AgentOrchestrator(gateway, _executor()).run("q")

    second_request, _ = gateway.calls[1]
    assert second_request[-2].tool_calls[0]["id"] == "call_1_1"
    assert second_request[-1].tool_call_id == "call_1_1"


def test_observer_is_detached_after_run() -> None:
    executor = _executor()
    gateway = ScriptedChatGateway([ai("", tool_call("lookup", {"key": "x"})), ai("done")])

    AgentOrchestrator(gateway, executor).run("q")

    assert executor.registry._observer is None


def test_repeated_call_ids_each_get_a_result() -> None:
    gateway = ScriptedChatGateway(
        [
            ai("", tool_call("lookup", {"key": "a"}, "dup"), tool_call("lookup", {"key": "b"}, "dup")),
            ai("both looked up"),
        ]
    )

    result = AgentOrchestrator(gateway, _executor()).run("q")

    assert result.answer == "both looked up"
    second_request, _ = gateway.calls[1]
    assert [(m.tool_call_id, m.content) for m in second_request[-2:]] == [
        ("dup", "value of a"),
        ("call_1_2", "value of b"),
    ]


def test_malformed_arguments_are_answered_and_the_loop_continues() -> None:
    gateway = ScriptedChatGateway(
        [
            AIMessage(
                content="",
                invalid_tool_calls=[
                    invalid_tool_call(name="lookup", args="{not json", id="c1", error=None)
                ],
            ),
            ai("done"),
        ]
    )

    result = AgentOrchestrator(gateway, _executor()).run("q")

    assert result.answer == "done"
    assert result.iterations == 2
    assert result.tool_traces == []
    second_request, second_tools = gateway.calls[1]
    assert second_tools is not None
    assert second_request[-1].tool_call_id == "c1"
    assert second_request[-1].content == "Error: malformed arguments for lookup: could not parse '{not json'"
