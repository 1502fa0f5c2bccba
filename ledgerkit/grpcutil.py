"""gRPC helpers: TLS credentials, a hardened server and client channels."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from concurrent import futures
from pathlib import Path
from typing import Any

import grpc

__all__ = [
    "MAX_CALL_RECV_MSG_SIZE",
    "tls_credentials",
    "new_server",
    "connect",
]

log = logging.getLogger(__name__)

MAX_CALL_RECV_MSG_SIZE = 15 * 1024 * 1024


def _read(path: str, what: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as err:
        raise OSError(f"{what}: {err}") from err


def tls_credentials(ca_cert: str, cert_file: str, key_file: str) -> grpc.ServerCredentials | None:
    """Build server TLS credentials; None when no certificate is configured.

    With a CA certificate, clients must present a certificate it signed.
    """
    if not ca_cert:
        if not cert_file and not key_file:
            return None
        cert = _read(cert_file, "load peer cert/key error")
        key = _read(key_file, "load peer cert/key error")
        return grpc.ssl_server_credentials([(key, cert)])
    cert = _read(cert_file, "load peer cert/key error")
    key = _read(key_file, "load peer cert/key error")
    ca = _read(ca_cert, "read ca cert file error")
    return grpc.ssl_server_credentials(
        [(key, cert)], root_certificates=ca, require_client_auth=True
    )


def _already_aborted(context: grpc.ServicerContext) -> bool:
    code = getattr(context, "code", None)
    return callable(code) and code() is not None


def _recover(fn: Callable[[Any, grpc.ServicerContext], Any]) -> Callable[[Any, grpc.ServicerContext], Any]:
    def wrapper(request: Any, context: grpc.ServicerContext) -> Any:
        try:
            return fn(request, context)
        except Exception as err:
            if _already_aborted(context):
                raise
            log.exception("recovered from handler failure")
            context.abort(grpc.StatusCode.INTERNAL, str(err))

    return wrapper


def _recover_stream(fn: Callable[[Any, grpc.ServicerContext], Iterator[Any]]) -> Callable[[Any, grpc.ServicerContext], Iterator[Any]]:
    def wrapper(request: Any, context: grpc.ServicerContext) -> Iterator[Any]:
        try:
            yield from fn(request, context)
        except Exception as err:
            if _already_aborted(context):
                raise
            log.exception("recovered from handler failure")
            context.abort(grpc.StatusCode.INTERNAL, str(err))

    return wrapper


class _RecoveryInterceptor(grpc.ServerInterceptor):
    """Turns unexpected handler exceptions into INTERNAL status errors."""

    def intercept_service(self, continuation, handler_call_details):
        handler = continuation(handler_call_details)
        if handler is None:
            return None
        kwargs = {
            "request_deserializer": handler.request_deserializer,
            "response_serializer": handler.response_serializer,
        }
        if handler.unary_unary:
            return grpc.unary_unary_rpc_method_handler(_recover(handler.unary_unary), **kwargs)
        if handler.unary_stream:
            return grpc.unary_stream_rpc_method_handler(_recover_stream(handler.unary_stream), **kwargs)
        if handler.stream_unary:
            return grpc.stream_unary_rpc_method_handler(_recover(handler.stream_unary), **kwargs)
        if handler.stream_stream:
            return grpc.stream_stream_rpc_method_handler(_recover_stream(handler.stream_stream), **kwargs)
        return handler


class _Server:
    """A grpc.Server that remembers its transport credentials for binding."""

    def __init__(self, server: grpc.Server, credentials: grpc.ServerCredentials | None) -> None:
        self._server = server
        self.credentials = credentials

    def add_port(self, address: str) -> int:
        """Bind address with the server's credentials; returns the bound port."""
        if self.credentials is None:
            return self._server.add_insecure_port(address)
        return self._server.add_secure_port(address, self.credentials)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._server, name)


def new_server(rate_limit: int, credentials: grpc.ServerCredentials | None) -> _Server:
    """Create a server limiting concurrent streams and tolerating idle keepalives."""
    options = [
        ("grpc.max_concurrent_streams", int(rate_limit)),
        ("grpc.http2.min_ping_interval_without_data_ms", 10_000),
        ("grpc.keepalive_permit_without_calls", 1),
    ]
    server = grpc.server(
        futures.ThreadPoolExecutor(),
        interceptors=[_RecoveryInterceptor()],
        options=options,
    )
    return _Server(server, credentials)


def connect(credentials: grpc.ChannelCredentials | None, dial_address: str) -> grpc.Channel:
    """Open a client channel with reconnect backoff and a 15 MiB receive limit."""
    options = [
        ("grpc.max_receive_message_length", MAX_CALL_RECV_MSG_SIZE),
        ("grpc.initial_reconnect_backoff_ms", 500),
        ("grpc.max_reconnect_backoff_ms", 10_000),
        ("grpc.min_reconnect_backoff_ms", 10 * 60 * 1000),
    ]
    if credentials is None:
        return grpc.insecure_channel(dial_address, options=options)
    return grpc.secure_channel(dial_address, credentials, options=options)