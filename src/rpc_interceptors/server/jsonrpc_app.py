"""JSON-RPC 2.0 over HTTP (Starlette) in front of an :class:`RpcDispatcher`."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from rpc_interceptors.server.dispatcher import RpcDispatcher
from rpc_interceptors.server.status import (
    JSONRPC_INTERNAL_ERROR,
    JSONRPC_INVALID_REQUEST,
    JSONRPC_PARSE_ERROR,
    failure_to_jsonrpc_error,
)
from rpc_interceptors.types import Failure

__all__ = [
    "DEFAULT_RPC_PATH",
    "TIMEOUT_HEADER",
    "JsonRpcApp",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
]

logger = logging.getLogger(__name__)

DEFAULT_RPC_PATH = "/rpc"
TIMEOUT_HEADER = "x-timeout-ms"


class JsonRpcRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    jsonrpc: Literal["2.0"]
    method: str
    params: Any = None
    id: str | int | None = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class JsonRpcError(BaseModel):
    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    id: str | int | None = None
    result: Any | None = None
    error: JsonRpcError | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", exclude={"result", "error"})
        if self.error is not None:
            payload["error"] = self.error.model_dump(mode="json", exclude_none=True)
        else:
            payload["result"] = _jsonable(self.result)
        return payload


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


class JsonRpcApp:
    """Starlette application exposing a dispatcher over JSON-RPC 2.0.

    Each POST body (single request or batch) is translated into dispatcher
    calls. HTTP headers become call metadata; ``x-timeout-ms`` sets the call
    deadline. A ``Failure`` outcome becomes a JSON-RPC error object whose
    message is the handler's original message and whose ``data.kind`` is the
    original error kind.

    The dispatcher is started and closed with the application lifespan.

    Args:
        dispatcher: Integration point holding the chain and handlers.
        path: URL path of the RPC endpoint.
    """

    def __init__(self, dispatcher: RpcDispatcher, *, path: str = DEFAULT_RPC_PATH) -> None:
        self.dispatcher = dispatcher
        self.path = path

    def build(self, **kwargs: Any) -> Starlette:
        @contextlib.asynccontextmanager
        async def lifespan(app: Starlette) -> AsyncIterator[None]:
            await self.dispatcher.start()
            try:
                yield
            finally:
                await self.dispatcher.aclose()

        return Starlette(
            routes=[Route(self.path, self._handle_requests, methods=["POST"])],
            lifespan=lifespan,
            **kwargs,
        )

    async def _handle_requests(self, request: Request) -> Response:
        try:
            body = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError):
            return self._error_response(None, JSONRPC_PARSE_ERROR, "Parse error")

        metadata = dict(request.headers)
        timeout = _parse_timeout(request.headers.get(TIMEOUT_HEADER))

        if isinstance(body, list):
            if not body:
                return self._error_response(None, JSONRPC_INVALID_REQUEST, "Invalid Request")
            results = await asyncio.gather(*(self._handle_one(item, metadata, timeout) for item in body))
            payloads = [result for result in results if result is not None]
            if not payloads:
                return Response(status_code=204)
            return JSONResponse(payloads)

        payload = await self._handle_one(body, metadata, timeout)
        if payload is None:
            return Response(status_code=204)
        return JSONResponse(payload)

    async def _handle_one(
        self,
        body: Any,
        metadata: dict[str, str],
        timeout: float | None,
    ) -> dict[str, Any] | None:
        try:
            rpc_request = JsonRpcRequest.model_validate(body)
        except ValidationError as exc:
            request_id = body.get("id") if isinstance(body, dict) else None
            logger.debug("Invalid JSON-RPC request: %s", exc)
            return _error_payload(request_id, JSONRPC_INVALID_REQUEST, "Invalid Request")

        try:
            outcome = await self.dispatcher.dispatch(
                rpc_request.method,
                rpc_request.params,
                metadata=metadata,
                timeout=timeout,
            )
        except Exception:
            logger.exception("Error processing JSON-RPC request %s", rpc_request.method)
            return _error_payload(rpc_request.id, JSONRPC_INTERNAL_ERROR, "Internal error")

        if rpc_request.is_notification:
            return None
        if isinstance(outcome, Failure):
            error = JsonRpcError.model_validate(failure_to_jsonrpc_error(outcome))
            return JsonRpcResponse(id=rpc_request.id, error=error).to_payload()
        return JsonRpcResponse(id=rpc_request.id, result=outcome.response).to_payload()

    @staticmethod
    def _error_response(request_id: str | int | None, code: int, message: str) -> JSONResponse:
        return JSONResponse(_error_payload(request_id, code, message))


def _error_payload(request_id: Any, code: int, message: str) -> dict[str, Any]:
    if not isinstance(request_id, (str, int)) or isinstance(request_id, bool):
        request_id = None
    return JsonRpcResponse(id=request_id, error=JsonRpcError(code=code, message=message)).to_payload()


def _parse_timeout(value: str | None) -> float | None:
    if not value:
        return None
    try:
        timeout_ms = float(value)
    except ValueError:
        logger.debug("Ignoring invalid %s header: %r", TIMEOUT_HEADER, value)
        return None
    return max(timeout_ms, 0.0) / 1000.0
