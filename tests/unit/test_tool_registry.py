import pytest
from pydantic import Field, ValidationError

from rag_assistant.agent.registry import ToolArgs, ToolRegistry, ToolSpec


class EchoInput(ToolArgs):
    value: int = Field(ge=1, description="A positive integer.")


def _echo_spec() -> ToolSpec:
    def _handler(data: EchoInput) -> str:
        return str(data.value)

    return ToolSpec(
        name="echo",
        description="echo positive int",
        args_schema=EchoInput,
        handler=_handler,
    )


def test_tool_registry_validation() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    assert registry.execute("echo", {"value": 3}) == "3"

    with pytest.raises(ValidationError):
        registry.execute("echo", {"value": 0})

    with pytest.raises(ValidationError):
        registry.execute("echo", {"value": 3, "extra": True})


def test_duplicate_tool_registration_rejected() -> None:
    registry = ToolRegistry()
    spec = _echo_spec()

    registry.register(spec)
    with pytest.raises(ValueError):
        registry.register(spec)


def test_unknown_tool_raises_key_error() -> None:
    registry = ToolRegistry()

    assert "echo" not in registry
    with pytest.raises(KeyError):
        registry.execute("echo", {"value": 1})


def test_catalog_exports_name_description_and_parameters() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    [declaration] = registry.catalog()

    assert declaration["name"] == "echo"
    assert declaration["description"] == "echo positive int"
    assert declaration["parameters"]["properties"]["value"]["type"] == "integer"
    assert declaration["parameters"]["required"] == ["value"]


def test_langchain_tools_route_through_registry() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    [tool] = registry.as_langchain_tools()

    assert tool.name == "echo"
    assert tool.invoke({"value": 7}) == "7"
