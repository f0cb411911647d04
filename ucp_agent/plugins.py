"""
Plugin registry: caller-supplied tools merged into the built-in catalog.

A plugin is a name, a description, JSON-Schema parameters and a handler that
receives the tool arguments dict. Handlers may be plain functions or
coroutines; the agent awaits either uniformly.

Registration happens once, at agent construction, and fails fast on a name
that collides with a built-in tool or with another plugin.
"""

import inspect
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Union

from pydantic import BaseModel, ConfigDict, Field

from ucp_agent.llm_types import ToolDefinition

PluginHandler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class PluginRegistrationError(ValueError):
    """Invalid plugin set (name collision)."""


class AgentPlugin(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1)
    description: str
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: PluginHandler

    def to_tool(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, parameters=self.parameters)


async def invoke_plugin(plugin: AgentPlugin, args: Dict[str, Any]) -> Any:
    """Call a plugin handler and await the result if it is awaitable."""
    result = plugin.handler(args)
    if inspect.isawaitable(result):
        result = await result
    return result


class PluginRegistry:
    """Ordered, validated set of plugins layered on top of the built-in tools."""

    def __init__(self, builtin_tools: Iterable[ToolDefinition], plugins: Iterable[AgentPlugin] = ()):
        self._builtin: List[ToolDefinition] = list(builtin_tools)
        builtin_names = {tool.name for tool in self._builtin}
        self._plugins: Dict[str, AgentPlugin] = {}

        for plugin in plugins:
            if plugin.name in builtin_names:
                raise PluginRegistrationError(
                    f'Plugin "{plugin.name}" conflicts with a built-in tool'
                )
            if plugin.name in self._plugins:
                raise PluginRegistrationError(f'Duplicate plugin name: "{plugin.name}"')
            self._plugins[plugin.name] = plugin

    def names(self) -> List[str]:
        """Plugin names in registration order."""
        return list(self._plugins)

    def get(self, name: str) -> AgentPlugin:
        return self._plugins[name]

    def __contains__(self, name: str) -> bool:
        return name in self._plugins

    def merged_tools(self) -> List[ToolDefinition]:
        """Built-in tools followed by plugin tools."""
        return self._builtin + [plugin.to_tool() for plugin in self._plugins.values()]
