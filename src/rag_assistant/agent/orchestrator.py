"""Bounded ReAct loop between the chat gateway and the tool executor."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from rag_assistant.agent.executor import ToolExecutor
from rag_assistant.agent.gateway import ChatGateway, message_text
from rag_assistant.agent.transcript import Transcript
from rag_assistant.config import AgentConfig
from rag_assistant.types import AgentResult, ConversationTurn, ToolTrace

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """
You are a project assistant answering questions about a code base and its documentation.

Rules:
1) Ground answers in the documentation fragments below and in tool outputs.
2) Use tools when the fragments are not enough: `search` for documentation,
   `read_file`, `list_directory` and `grep` for project files, `git_info` for
   repository state, plus any task or ticket tools that are available.
3) Name the sources (file and chunk) that support your answer.
4) If evidence is missing, say that you cannot verify it.
5) Answer in Markdown and stop calling tools once you have enough information.
""".strip()

SUMMARY_INSTRUCTION = (
    "The tool budget for this question is exhausted. Do not request more tools. "
    "Summarize what you have found so far and give the best final answer you can."
)


def build_system_prompt(context: str, *, extra_sections: Sequence[str] = ()) -> str:
    """Compose the system prompt with documentation context appended."""

    parts = [_SYSTEM_PROMPT, *[section for section in extra_sections if section.strip()]]
    if context.strip():
        parts.append(f"Documentation (relevant fragments):\n{context}")
    return "\n\n".join(parts)


class AgentOrchestrator:
    """Drives one question through at most `max_iterations` tool rounds.

    Each round is one model call; if it carries tool calls, every call is
    executed in the order issued, one result message per call, before the
    next model call. When the budget runs out, a summary instruction is added
    and exactly one more call is made without offering tools.
    """

    def __init__(
        self,
        gateway: ChatGateway,
        executor: ToolExecutor,
        config: AgentConfig | None = None,
    ) -> None:
        self.gateway = gateway
        self.executor = executor
        self.config = config or AgentConfig()

    def run(
        self,
        question: str,
        *,
        system_prompt: str | None = None,
        history: Sequence[ConversationTurn] = (),
    ) -> AgentResult:
        window = self.config.history_window
        recent = list(history)[-window:] if window else []
        transcript = Transcript.seed(system_prompt or _SYSTEM_PROMPT, recent, question)
        tools = self.executor.tools()

        observed: list[ToolTrace] = []
        self.executor.registry.set_observer(observed.append)
        try:
            for round_number in range(1, self.config.max_iterations + 1):
                response = self.gateway.complete(transcript.messages, tools)
                if not response.tool_calls and not response.invalid_tool_calls:
                    logger.info("Answered after %d model call(s)", round_number)
                    return AgentResult(
                        answer=message_text(response),
                        iterations=round_number,
                        forced_final=False,
                        tool_traces=observed,
                    )

                stored = transcript.add_assistant(response, round_number)
                logger.info(
                    "Round %d: %s",
                    round_number,
                    ", ".join(
                        str(call.get("name"))
                        for call in [*stored.tool_calls, *stored.invalid_tool_calls]
                    ),
                )
                for call in stored.tool_calls:
                    result = self.executor.execute(call["name"], call.get("args"))
                    transcript.add_tool_result(call["id"], result)
                for call in stored.invalid_tool_calls:
                    logger.warning("Model sent malformed arguments for %s", call.get("name"))
                    transcript.add_tool_result(call["id"], _malformed_call_error(call))
        finally:
            self.executor.registry.set_observer(None)

        logger.warning(
            "Iteration cap of %d reached, requesting a final answer", self.config.max_iterations
        )
        transcript.add_user(SUMMARY_INSTRUCTION)
        final = self.gateway.complete(transcript.messages, None)
        return AgentResult(
            answer=message_text(final),
            iterations=self.config.max_iterations,
            forced_final=True,
            tool_traces=observed,
        )


def _malformed_call_error(call: dict) -> str:
    detail = call.get("error") or f"could not parse {call.get('args')!r}"
    return f"Error: malformed arguments for {call.get('name')}: {detail}"
