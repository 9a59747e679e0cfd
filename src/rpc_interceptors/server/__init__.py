from rpc_interceptors.server.builder import (
    build_chain,
    build_collector,
    build_reporter,
    register_interceptor,
)
from rpc_interceptors.server.chain import InterceptorChain
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.dispatcher import RpcDispatcher
from rpc_interceptors.server.grpc_adapter import GrpcChainInterceptor
from rpc_interceptors.server.invoker import HandlerInvoker
from rpc_interceptors.server.jsonrpc_app import JsonRpcApp

__all__ = [
    "build_chain",
    "build_collector",
    "build_reporter",
    "register_interceptor",
    "InterceptorChain",
    "CallContext",
    "RpcDispatcher",
    "GrpcChainInterceptor",
    "HandlerInvoker",
    "JsonRpcApp",
]
