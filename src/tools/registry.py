"""Tool registry — central catalog for the assistant's tools."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pydantic

from src.errors import AuthenticationRequired, ToolExecutionError, ValidationError
from src.tools.base import ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.tools.base import TurnContext

logger = logging.getLogger(__name__)


@dataclass
class ToolDef:
    """A tool the model can call, plus how to invoke it."""

    name: str
    description: str
    handler: Callable[..., Awaitable[ToolResult]]
    params_model: type[ToolParams] | None = None
    requires_user: bool = False
    wants_turn: bool = False

    def schema(self) -> dict[str, Any]:
        """Declaration in the Anthropic ``tools`` format."""
        if self.params_model is None:
            input_schema: dict[str, Any] = {"type": "object", "properties": {}}
        else:
            input_schema = self.params_model.model_json_schema()
        return {"name": self.name, "description": self.description, "input_schema": input_schema}


def _format_validation_error(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "arguments"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class ToolRegistry:
    """Registry of tools the model may call.

    Register with the decorator::

        @registry.tool(
            name="my_tool",
            description="Does a thing",
            params_model=MyToolParams,
        )
        async def my_tool(value: str, turn: TurnContext) -> ToolResult:
            return ToolResult(data={"ok": True})

    Handlers that declare a ``turn`` parameter receive the TurnContext.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def tool(
        self,
        *,
        name: str,
        description: str,
        params_model: type[ToolParams] | None = None,
        requires_user: bool = False,
    ) -> Callable:
        """Decorator to register an async function as a tool."""

        def register(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool '{name}' needs an async handler, got {fn!r}"
                raise TypeError(msg)
            if name in self._tools:
                logger.warning("Tool '%s' registered twice; keeping the latest", name)
            self._tools[name] = ToolDef(
                name=name,
                description=description,
                handler=fn,
                params_model=params_model,
                requires_user=requires_user,
                wants_turn="turn" in inspect.signature(fn).parameters,
            )
            return fn

        return register

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def get_schemas(self) -> list[dict[str, Any]]:
        """Declarations for every registered tool, in registration order."""
        return [tool_def.schema() for tool_def in self._tools.values()]

    def validate(self, name: str, arguments: dict[str, Any]) -> ToolParams | None:
        """Check *arguments* against the tool's parameter model.

        Returns the typed params (None for tools without a model).

        Raises:
            ValidationError: unknown tool or malformed arguments.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            msg = f"Unknown tool: {name}"
            raise ValidationError(msg)
        if tool_def.params_model is None:
            return None
        try:
            return tool_def.params_model.model_validate(arguments or {})
        except pydantic.ValidationError as exc:
            msg = f"Invalid arguments for {name}: {_format_validation_error(exc)}"
            raise ValidationError(msg) from exc

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        turn: TurnContext | None = None,
    ) -> ToolResult:
        """Validate and run a tool. Never raises: failures become ``ToolResult.error``."""
        tool_def = self._tools.get(name)
        if tool_def is None:
            return ToolResult(error=f"Unknown tool: {name}")

        logger.info("Tool '%s' called with %s", name, _preview(arguments))
        started = time.monotonic()

        try:
            params = self.validate(name, arguments)
        except ValidationError as exc:
            logger.warning("Tool '%s' rejected: %s", name, exc)
            return ToolResult(error=str(exc))

        if tool_def.requires_user and (turn is None or not turn.user_id):
            logger.warning("Tool '%s' refused: no authenticated user", name)
            return ToolResult(error="Authentication required to use this tool.")

        kwargs = dict(arguments) if params is None else params.model_dump()
        if tool_def.wants_turn and turn is not None:
            kwargs["turn"] = turn

        try:
            result = await tool_def.handler(**kwargs)
        except AuthenticationRequired as exc:
            logger.warning("Tool '%s' refused: %s", name, exc)
            return ToolResult(error=str(exc))
        except ToolExecutionError as exc:
            logger.warning("Tool '%s' failed: %s", name, exc)
            return ToolResult(error=str(exc))
        except Exception as exc:
            logger.exception("Tool '%s' crashed after %.2fs", name, time.monotonic() - started)
            return ToolResult(error=str(exc) or f"Tool '{name}' failed.")

        took = time.monotonic() - started
        if result.success:
            logger.info("Tool '%s' done in %.2fs", name, took)
        else:
            logger.warning("Tool '%s' reported an error after %.2fs: %s", name, took, result.error)
        return result


def _preview(arguments: dict[str, Any], limit: int = 200) -> str:
    text = repr(arguments)
    return text if len(text) <= limit else text[:limit] + "..."


# Process-wide registry; tool modules register into it on import.
registry = ToolRegistry()
