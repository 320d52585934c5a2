"""Tools registry for the assistant's tools."""

import asyncio
import json
from collections.abc import Iterable
from typing import Any

from langchain_core.tools import BaseTool
from pydantic import ValidationError

from assistant.services.workspace import Workspace, workspace
from assistant.tools.base import ToolOutcome, ToolSchema
from assistant.tools.contacts import (
    create_create_contact_tool,
    create_edit_contact_tool,
    create_get_contacts_tool,
)
from assistant.tools.notes import create_create_note_tool, create_get_notes_tool
from assistant.tools.tasks import create_create_task_tool, create_edit_task_tool, create_get_tasks_tool
from assistant.tools.utility import create_get_joke_tool, create_get_weather_tool
from assistant.utils.errors import MalformedArguments, ToolError, ToolExecutionError, UnknownTool
from assistant.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Static mapping from tool name to schema and callable.

    The registry holds no per-conversation state, so one instance can serve
    any number of concurrent conversations.
    """

    def __init__(self, tools: Iterable[BaseTool] = (), timeout: float = 30.0):
        """Initialize tools registry.

        Args:
            tools: Tools to register
            timeout: Seconds a single invocation may take before it fails
        """
        self.timeout = timeout
        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: BaseTool) -> None:
        """Register a tool, replacing any tool with the same name."""
        self._tools[tool.name] = tool

    def describe(self) -> list[ToolSchema]:
        """Schemas of all registered tools, in registration order."""
        return [
            ToolSchema(
                name=tool.name,
                description=tool.description,
                input_schema=tool.args_schema.model_json_schema(),
            )
            for tool in self._tools.values()
        ]

    def get(self, name: str) -> BaseTool:
        """Look up a tool by name.

        Raises:
            UnknownTool: If no tool has that name
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownTool(f"Unknown tool {name}", name)
        return tool

    async def invoke(self, name: str, args: dict[str, Any]) -> ToolOutcome:
        """Invoke a tool with parsed arguments.

        Never raises for tool-level failures: unknown names, invalid
        arguments, collaborator errors, timeouts and non-JSON results all come
        back as a failed outcome.
        """
        try:
            tool = self.get(name)
            result = await asyncio.wait_for(tool.ainvoke(args), timeout=self.timeout)
            self._ensure_json(name, result)
        except ValidationError as e:
            return self._failed(name, MalformedArguments(f"Invalid arguments for {name}: {e}", name))
        except TimeoutError:
            return self._failed(name, ToolExecutionError(f"Tool {name} timed out after {self.timeout}s", name))
        except ToolError as e:
            return self._failed(name, e)
        except Exception as e:
            return self._failed(name, ToolExecutionError(str(e) or type(e).__name__, name), exc_info=True)

        logger.debug(f"Tool {name} succeeded: {str(result)[:100]}")
        return ToolOutcome(tool_name=name, result=result)

    def _failed(self, name: str, error: ToolError, exc_info: bool = False) -> ToolOutcome:
        logger.error(f"Tool {name} failed: {error.message}", exc_info=exc_info)
        if error.tool_name is None:
            error.tool_name = name
        return ToolOutcome.failure(name, error)

    def _ensure_json(self, name: str, result: Any) -> None:
        try:
            json.dumps(result)
        except (TypeError, ValueError) as e:
            raise ToolExecutionError(f"Tool {name} returned data that is not JSON-serializable", name) from e

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools


def create_default_registry(services: Workspace, timeout: float = 30.0) -> ToolsRegistry:
    """Build a registry with the personal-assistant tool set bound to ``services``."""
    return ToolsRegistry(
        [
            create_get_weather_tool(),
            create_get_joke_tool(),
            create_create_task_tool(services.tasks),
            create_edit_task_tool(services.tasks),
            create_get_tasks_tool(services.tasks),
            create_create_contact_tool(services.contacts),
            create_edit_contact_tool(services.contacts),
            create_get_contacts_tool(services.contacts),
            create_create_note_tool(services.notes),
            create_get_notes_tool(services.notes),
        ],
        timeout=timeout,
    )


_tools_registries: dict[float, ToolsRegistry] = {}


def get_tools_registry(timeout: float = 30.0) -> ToolsRegistry:
    """Get or create the shared tools registry for ``timeout``, bound to the default workspace."""
    if timeout not in _tools_registries:
        _tools_registries[timeout] = create_default_registry(workspace, timeout=timeout)
    return _tools_registries[timeout]
