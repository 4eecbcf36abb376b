"""Tests for the tool registry."""

import pytest
from pydantic import Field

from src.errors import ToolExecutionError, ValidationError
from src.tools import registry as global_registry
from src.tools.base import ToolParams, ToolResult, TurnContext
from src.tools.registry import ToolRegistry

# -- Fixtures ----------------------------------------------------------------


class EchoParams(ToolParams):
    text: str = Field(min_length=1)
    times: int = 1


@pytest.fixture
def reg() -> ToolRegistry:
    """Fresh registry for each test."""
    r = ToolRegistry()

    @r.tool(name="echo", description="Echo text", params_model=EchoParams)
    async def echo(text: str, times: int) -> ToolResult:
        return ToolResult(data={"text": text * times})

    @r.tool(name="whoami", description="Who is calling", requires_user=True)
    async def whoami(turn: TurnContext) -> ToolResult:
        return ToolResult(data={"user": turn.user_id})

    @r.tool(name="explode", description="Always fails")
    async def explode() -> ToolResult:
        raise RuntimeError("kaboom")

    return r


@pytest.fixture
def turn(memory_store, embeddings) -> TurnContext:
    return TurnContext(user_id="u1", memory_store=memory_store, embeddings=embeddings)


# -- Registration ------------------------------------------------------------


def test_register_via_decorator(reg: ToolRegistry) -> None:
    assert reg.tool_names == ["echo", "whoami", "explode"]
    assert reg.get("echo").params_model is EchoParams
    assert reg.get("missing") is None


def test_decorator_rejects_sync_function(reg: ToolRegistry) -> None:
    with pytest.raises(TypeError, match="needs an async handler"):

        @reg.tool(name="bad", description="Bad")
        def bad() -> ToolResult:
            return ToolResult()


def test_schemas_use_anthropic_format(reg: ToolRegistry) -> None:
    schemas = {s["name"]: s for s in reg.get_schemas()}
    assert schemas["echo"]["description"] == "Echo text"
    assert schemas["echo"]["input_schema"]["properties"]["text"]["type"] == "string"
    assert schemas["echo"]["input_schema"]["required"] == ["text"]
    assert schemas["whoami"]["input_schema"] == {"type": "object", "properties": {}}


def test_global_registry_has_memory_tools() -> None:
    assert {"save_memory", "search_memory"} <= set(global_registry.tool_names)


# -- Validation --------------------------------------------------------------


def test_validate_returns_typed_params(reg: ToolRegistry) -> None:
    params = reg.validate("echo", {"text": "hi", "times": 2})
    assert params == EchoParams(text="hi", times=2)


def test_validate_unknown_tool(reg: ToolRegistry) -> None:
    with pytest.raises(ValidationError, match="Unknown tool"):
        reg.validate("nope", {})


def test_validate_reports_field(reg: ToolRegistry) -> None:
    with pytest.raises(ValidationError, match="text"):
        reg.validate("echo", {"text": ""})


# -- Execution ---------------------------------------------------------------


async def test_execute_success(reg: ToolRegistry) -> None:
    result = await reg.execute("echo", {"text": "ab", "times": 3})
    assert result.success
    assert result.to_response() == {"result": {"text": "ababab"}}


async def test_execute_unknown_tool_returns_error(reg: ToolRegistry) -> None:
    result = await reg.execute("nope", {})
    assert result.error == "Unknown tool: nope"


async def test_execute_bad_arguments_returns_error(reg: ToolRegistry) -> None:
    result = await reg.execute("echo", {"times": "many"})
    assert not result.success
    assert "Invalid arguments for echo" in result.error


async def test_execute_handler_exception_is_captured(reg: ToolRegistry) -> None:
    result = await reg.execute("explode", {})
    assert result.error == "kaboom"
    assert result.to_response() == {"result": {"error": "kaboom"}}


async def test_execute_passes_turn(reg: ToolRegistry, turn: TurnContext) -> None:
    result = await reg.execute("whoami", {}, turn)
    assert result.data == {"user": "u1"}


async def test_requires_user_without_turn(reg: ToolRegistry) -> None:
    result = await reg.execute("whoami", {})
    assert result.error == "Authentication required to use this tool."


async def test_requires_user_with_anonymous_turn(
    reg: ToolRegistry, memory_store, embeddings
) -> None:
    turn = TurnContext(user_id=None, memory_store=memory_store, embeddings=embeddings)
    result = await reg.execute("whoami", {}, turn)
    assert not result.success


async def test_tool_execution_error_is_returned(reg: ToolRegistry) -> None:
    @reg.tool(name="flaky", description="Fails cleanly")
    async def flaky() -> ToolResult:
        raise ToolExecutionError("backend unavailable")

    result = await reg.execute("flaky", {})
    assert result.error == "backend unavailable"
