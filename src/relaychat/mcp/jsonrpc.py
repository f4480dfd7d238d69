"""JSON-RPC 2.0 envelopes."""

from __future__ import annotations

from typing import Any, Literal

from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR
from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION = "2.0"

RequestId = str | int

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "JSONRPC_VERSION",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "JsonRpcError",
    "JsonRpcErrorResponse",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "RpcMethodError",
    "error_envelope",
]


class JsonRpcRequest(BaseModel):
    """A request or, when ``id`` is absent, a notification."""

    jsonrpc: Literal["2.0"]
    method: str
    params: dict[str, Any] | None = None
    id: RequestId | None = None

    model_config = ConfigDict(extra="allow")

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class JsonRpcResponse(BaseModel):
    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: RequestId | None
    result: dict[str, Any] = Field(default_factory=dict)


class JsonRpcError(BaseModel):
    code: int
    message: str
    data: Any | None = None


class JsonRpcErrorResponse(BaseModel):
    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: RequestId | None = None
    error: JsonRpcError


class RpcMethodError(Exception):
    """Raised by method handlers; becomes a JSON-RPC error response."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def error_envelope(code: int, message: str, request_id: RequestId | None = None) -> dict[str, Any]:
    """Render an error response. ``id`` is kept even when null."""
    body = JsonRpcErrorResponse(
        id=request_id,
        error=JsonRpcError(code=code, message=message),
    ).model_dump(mode="json")
    if body["error"]["data"] is None:
        del body["error"]["data"]
    return body
