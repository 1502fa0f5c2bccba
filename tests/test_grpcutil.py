import grpc
import pytest

from ledgerkit.grpcutil import MAX_CALL_RECV_MSG_SIZE, connect, new_server, tls_credentials


def test_tls_credentials_none_without_files():
    assert tls_credentials("", "", "") is None


def test_tls_credentials_missing_cert_raises(tmp_path):
    with pytest.raises(OSError, match="load peer cert/key error"):
        tls_credentials(str(tmp_path / "ca.pem"), str(tmp_path / "cert.pem"), str(tmp_path / "key.pem"))


def test_tls_credentials_missing_ca_raises(tmp_path):
    cert = tmp_path / "cert.pem"
    key = tmp_path / "key.pem"
    cert.write_bytes(b"cert")
    key.write_bytes(b"key")
    with pytest.raises(OSError, match="read ca cert file error"):
        tls_credentials(str(tmp_path / "missing.pem"), str(cert), str(key))


def _echo(request, context):
    return request


def _boom(request, context):
    raise RuntimeError("boom")


def _denied(request, context):
    context.abort(grpc.StatusCode.PERMISSION_DENIED, "no")


@pytest.fixture
def running_server():
    server = new_server(16, None)
    handler = grpc.method_handlers_generic_handler(
        "test.Svc",
        {
            "Echo": grpc.unary_unary_rpc_method_handler(_echo),
            "Boom": grpc.unary_unary_rpc_method_handler(_boom),
            "Denied": grpc.unary_unary_rpc_method_handler(_denied),
        },
    )
    server.add_generic_rpc_handlers((handler,))
    port = server.add_port("127.0.0.1:0")
    server.start()
    channel = connect(None, f"127.0.0.1:{port}")
    try:
        yield port, channel
    finally:
        channel.close()
        server.stop(None)


def test_server_binds_and_echoes(running_server):
    port, channel = running_server
    assert port > 0
    assert MAX_CALL_RECV_MSG_SIZE == 15 * 1024 * 1024
    assert channel.unary_unary("/test.Svc/Echo")(b"hello", timeout=10) == b"hello"


def test_server_recovers_handler_failure_as_internal(running_server):
    _, channel = running_server
    with pytest.raises(grpc.RpcError) as info:
        channel.unary_unary("/test.Svc/Boom")(b"x", timeout=10)
    assert info.value.code() == grpc.StatusCode.INTERNAL


def test_server_keeps_explicit_abort_code(running_server):
    _, channel = running_server
    with pytest.raises(grpc.RpcError) as info:
        channel.unary_unary("/test.Svc/Denied")(b"x", timeout=10)
    assert info.value.code() == grpc.StatusCode.PERMISSION_DENIED


def test_server_without_credentials_has_none():
    server = new_server(1, None)
    try:
        assert server.credentials is None
    finally:
        server.stop(None)