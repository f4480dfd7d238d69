"""Tool base class and registry: what the tool gateway can serve."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import structlog
from pydantic import BaseModel

logger = structlog.get_logger()


class Tool(ABC):
    """Base class for all gateway tools.

    ``execute`` reports bad input by returning an ``"Error: ..."`` string.
    It only raises for internal faults.
    """

    enabled: bool = True

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for the LLM."""
        ...

    @property
    @abstractmethod
    def args_model(self) -> type[BaseModel]:
        """Pydantic model describing the argument shape."""
        ...

    @abstractmethod
    async def execute(self, arguments: dict[str, Any], context: dict[str, Any] | None = None) -> str:
        """Execute the tool and return a string result."""
        ...

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema for tool arguments."""
        return self.args_model.model_json_schema()


class ToolRegistry:
    """Static table of tools, built once at startup and read-only afterwards."""

    def __init__(self) -> None:
        self.tools: dict[str, Tool] = {}
        self._frozen = False

    def register(self, tool: Tool) -> None:
        """Register a tool. Names are unique."""
        if self._frozen:
            raise RuntimeError(f"Cannot register '{tool.name}': registry is frozen")
        if tool.name in self.tools:
            raise ValueError(f"Duplicate tool name '{tool.name}'")
        self.tools[tool.name] = tool
        logger.info("tool.registered", name=tool.name, enabled=tool.enabled)

    def freeze(self) -> ToolRegistry:
        self._frozen = True
        return self

    def supported(self) -> list[Tool]:
        """Enabled tools, in registration order."""
        return [tool for tool in self.tools.values() if tool.enabled]

    def describe(self) -> list[dict[str, Any]]:
        """Enabled tools with their argument schemas."""
        return [{"name": t.name, "input_schema": t.input_schema} for t in self.supported()]
