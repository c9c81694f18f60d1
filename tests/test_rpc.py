import socket
import threading

import pytest

from labrpc.rpc import RpcClient, RpcError, RpcServer
from labrpc.xdr import Packer, Unpacker, XdrError

PROGRAM = 0x20000001
VERSION = 1

ECHO_REVERSED = 1
BAD_ARGS = 2
SILENT = 3
CRASH = 4
WAIT = 5
RELEASE = 6


def _bad_args(payload):
    raise XdrError("bad arguments")


def _crash(payload):
    raise RuntimeError("boom")


@pytest.fixture
def served():
    server = RpcServer(PROGRAM, VERSION)
    event = threading.Event()

    def wait(payload):
        return b"released" if event.wait(5) else b"stuck"

    def release(payload):
        event.set()
        return b"ok"

    server.register(ECHO_REVERSED, lambda payload: payload[::-1])
    server.register(BAD_ARGS, _bad_args)
    server.register(SILENT, lambda payload: None)
    server.register(CRASH, _crash)
    server.register(WAIT, wait)
    server.register(RELEASE, release)
    address = server.start("127.0.0.1", 0)
    yield server, address
    server.shutdown()


def _client(address, program=PROGRAM, version=VERSION, timeout=5.0):
    host, port = address
    return RpcClient(host, port, program, version, timeout=timeout)


def test_call_returns_handler_result(served):
    _, address = served
    with _client(address) as client:
        assert client.call(ECHO_REVERSED, b"abc") == b"cba"
        assert client.call(ECHO_REVERSED, b"hello") == b"olleh"


def test_null_procedure(served):
    _, address = served
    with _client(address) as client:
        assert client.call(0, b"") == b""


def test_unknown_procedure(served):
    _, address = served
    with _client(address) as client:
        with pytest.raises(RpcError) as info:
            client.call(99, b"")
    assert info.value.status.name == "PROC_UNAVAIL"


def test_decode_failure_reports_garbage_args(served):
    _, address = served
    with _client(address) as client:
        with pytest.raises(RpcError) as info:
            client.call(BAD_ARGS, b"x")
    assert info.value.status.name == "GARBAGE_ARGS"


def test_handler_crash_reports_system_error(served):
    _, address = served
    with _client(address) as client:
        with pytest.raises(RpcError) as info:
            client.call(CRASH, b"")
        assert info.value.status.name == "SYSTEM_ERR"
        assert client.call(ECHO_REVERSED, b"ab") == b"ba"


def test_wrong_program(served):
    _, address = served
    with _client(address, program=PROGRAM + 1) as client:
        with pytest.raises(RpcError) as info:
            client.call(ECHO_REVERSED, b"")
    assert info.value.status.name == "PROG_UNAVAIL"


def test_wrong_version(served):
    _, address = served
    with _client(address, version=VERSION + 1) as client:
        with pytest.raises(RpcError) as info:
            client.call(ECHO_REVERSED, b"")
    assert info.value.status.name == "PROG_MISMATCH"


def test_no_reply_times_out(served):
    _, address = served
    with _client(address, timeout=0.3) as client:
        with pytest.raises(RpcError) as info:
            client.call(SILENT, b"")
    assert info.value.status is None


def test_requests_run_concurrently(served):
    _, address = served
    results = {}

    def waiter():
        with _client(address) as client:
            results["wait"] = client.call(WAIT, b"")

    thread = threading.Thread(target=waiter)
    thread.start()
    with _client(address) as client:
        assert client.call(RELEASE, b"") == b"ok"
    thread.join(10)
    assert results["wait"] == b"released"


def test_dispatch_encodes_reply():
    server = RpcServer(PROGRAM, VERSION)
    server.register(ECHO_REVERSED, lambda payload: payload[::-1])
    packer = Packer()
    packer.pack_uint(7)
    packer.pack_uint(PROGRAM)
    packer.pack_uint(VERSION)
    packer.pack_uint(ECHO_REVERSED)
    packer.pack_opaque(b"xy")
    reply = Unpacker(server.dispatch(packer.get_buffer()))
    assert reply.unpack_uint() == 7
    assert reply.unpack_uint() == 0
    assert reply.unpack_opaque() == b"yx"
    reply.done()


def test_dispatch_silent_handler_returns_none():
    server = RpcServer(PROGRAM, VERSION)
    server.register(SILENT, lambda payload: None)
    packer = Packer()
    packer.pack_uint(1)
    packer.pack_uint(PROGRAM)
    packer.pack_uint(VERSION)
    packer.pack_uint(SILENT)
    packer.pack_opaque(b"")
    assert server.dispatch(packer.get_buffer()) is None


def test_dispatch_rejects_malformed_header():
    server = RpcServer(PROGRAM, VERSION)
    with pytest.raises(RpcError):
        server.dispatch(b"\x00\x01")


@pytest.mark.parametrize("procedure", [0, -1])
def test_register_rejects_reserved_numbers(procedure):
    server = RpcServer(PROGRAM, VERSION)
    with pytest.raises(ValueError):
        server.register(procedure, lambda payload: payload)


def test_start_twice_fails(served):
    server, _ = served
    with pytest.raises(RuntimeError):
        server.start("127.0.0.1", 0)


def test_closed_client_refuses_calls(served):
    _, address = served
    client = _client(address)
    client.close()
    with pytest.raises(RpcError):
        client.call(ECHO_REVERSED, b"a")


def test_connect_failure():
    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    with pytest.raises(RpcError):
        RpcClient("127.0.0.1", port, PROGRAM, VERSION, timeout=1.0)


def test_context_manager_shuts_down():
    with RpcServer(PROGRAM, VERSION) as server:
        server.register(ECHO_REVERSED, lambda payload: payload[::-1])
        address = server.start("127.0.0.1", 0)
        with _client(address) as client:
            assert client.call(ECHO_REVERSED, b"ok") == b"ko"
    with pytest.raises(RpcError):
        _client(address, timeout=1.0)