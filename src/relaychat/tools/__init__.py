"""Tool registry and the built-in weather tools."""

from relaychat.tools.base import Tool, ToolRegistry
from relaychat.tools.weather import build_weather_registry

__all__ = ["Tool", "ToolRegistry", "build_weather_registry"]
