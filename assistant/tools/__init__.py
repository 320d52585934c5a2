"""Tools for the personal assistant."""

from assistant.tools.registry import ToolsRegistry, create_default_registry, get_tools_registry

__all__ = ["ToolsRegistry", "create_default_registry", "get_tools_registry"]
