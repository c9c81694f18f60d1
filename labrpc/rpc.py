"""A small remote procedure call layer over TCP.

Calls and replies are XDR-encoded and framed with record marking.
A call names a program, a version and a procedure; procedure 0 is the
null procedure, answered with an empty reply. The server runs every
request in its own thread, so a blocking procedure does not hold up others.
"""

from __future__ import annotations

import itertools
import logging
import socket
import socketserver
import struct
import threading
from enum import IntEnum
from typing import Callable, Optional

from .xdr import Packer, Unpacker, XdrError

NULL_PROCEDURE = 0
DEFAULT_TIMEOUT = 25.0

_LAST_FRAGMENT = 0x80000000
_MAX_RECORD = 1 << 24
_HEADER = struct.Struct(">I")

_log = logging.getLogger(__name__)

Handler = Callable[[bytes], Optional[bytes]]


class _AcceptStatus(IntEnum):
    SUCCESS = 0
    PROG_UNAVAIL = 1
    PROG_MISMATCH = 2
    PROC_UNAVAIL = 3
    GARBAGE_ARGS = 4
    SYSTEM_ERR = 5


class RpcError(Exception):
    """A remote call failed; ``status`` holds the server's verdict, if any."""

    def __init__(self, message: str, status: Optional[_AcceptStatus] = None) -> None:
        super().__init__(message)
        self.status = status


def _send_record(sock: socket.socket, data: bytes) -> None:
    sock.sendall(_HEADER.pack(_LAST_FRAGMENT | len(data)) + data)


def _recv_exact(sock: socket.socket, count: int) -> bytes:
    chunks = []
    while count:
        chunk = sock.recv(count)
        if not chunk:
            raise EOFError("connection closed")
        chunks.append(chunk)
        count -= len(chunk)
    return b"".join(chunks)


def _recv_record(sock: socket.socket) -> bytes:
    fragments = []
    total = 0
    while True:
        (word,) = _HEADER.unpack(_recv_exact(sock, 4))
        length = word & ~_LAST_FRAGMENT
        total += length
        if total > _MAX_RECORD:
            raise RpcError(f"record of more than {_MAX_RECORD} bytes")
        fragments.append(_recv_exact(sock, length))
        if word & _LAST_FRAGMENT:
            return b"".join(fragments)


def _reply(xid: int, status: _AcceptStatus, body: bytes = b"") -> bytes:
    packer = Packer()
    packer.pack_uint(xid)
    packer.pack_uint(status)
    packer.pack_opaque(body)
    return packer.get_buffer()


class _ThreadingServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True
    block_on_close = False


class RpcServer:
    """Serves the registered procedures of one program version."""

    def __init__(self, program: int, version: int) -> None:
        self.program = program
        self.version = version
        self._handlers: dict[int, Handler] = {}
        self._server: Optional[_ThreadingServer] = None
        self._thread: Optional[threading.Thread] = None

    def register(self, procedure: int, handler: Handler) -> None:
        """Bind a procedure number to a handler taking and returning payload bytes.

        A handler that returns None sends no reply.
        """
        if procedure <= NULL_PROCEDURE:
            raise ValueError(f"procedure number must be positive, got {procedure}")
        self._handlers[procedure] = handler

    def dispatch(self, message: bytes) -> Optional[bytes]:
        """Handle one encoded call and return the encoded reply, or None."""
        unpacker = Unpacker(message)
        try:
            xid = unpacker.unpack_uint()
        except XdrError as exc:
            raise RpcError("malformed call header") from exc
        try:
            program = unpacker.unpack_uint()
            version = unpacker.unpack_uint()
            procedure = unpacker.unpack_uint()
            payload = unpacker.unpack_opaque()
            unpacker.done()
        except XdrError:
            return _reply(xid, _AcceptStatus.GARBAGE_ARGS)
        if program != self.program:
            return _reply(xid, _AcceptStatus.PROG_UNAVAIL)
        if version != self.version:
            return _reply(xid, _AcceptStatus.PROG_MISMATCH)
        if procedure == NULL_PROCEDURE:
            return _reply(xid, _AcceptStatus.SUCCESS)
        handler = self._handlers.get(procedure)
        if handler is None:
            return _reply(xid, _AcceptStatus.PROC_UNAVAIL)
        try:
            result = handler(payload)
        except XdrError:
            return _reply(xid, _AcceptStatus.GARBAGE_ARGS)
        except Exception:
            _log.exception("procedure %d failed", procedure)
            return _reply(xid, _AcceptStatus.SYSTEM_ERR)
        if result is None:
            return None
        return _reply(xid, _AcceptStatus.SUCCESS, result)

    def _answer(self, sock: socket.socket, write_lock: threading.Lock, message: bytes) -> None:
        try:
            reply = self.dispatch(message)
        except RpcError as exc:
            _log.warning("dropping request: %s", exc)
            return
        if reply is None:
            return
        with write_lock:
            try:
                _send_record(sock, reply)
            except OSError:
                pass

    def _make_server(self, host: str, port: int) -> _ThreadingServer:
        rpc = self

        class _Connection(socketserver.BaseRequestHandler):
            def handle(self) -> None:
                write_lock = threading.Lock()
                while True:
                    try:
                        message = _recv_record(self.request)
                    except (EOFError, OSError, RpcError):
                        return
                    threading.Thread(
                        target=rpc._answer,
                        args=(self.request, write_lock, message),
                        daemon=True,
                    ).start()

        return _ThreadingServer((host, port), _Connection)

    def start(self, host: str = "127.0.0.1", port: int = 0) -> tuple[str, int]:
        """Start serving in a background thread; return the bound address."""
        if self._server is not None:
            raise RuntimeError("server is already running")
        self._server = self._make_server(host, port)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        bound_host, bound_port = self._server.server_address[:2]
        return bound_host, bound_port

    def serve_forever(self, host: str = "0.0.0.0", port: int = 0) -> None:
        """Serve in the calling thread until shut down from another thread."""
        if self._server is not None:
            raise RuntimeError("server is already running")
        server = self._make_server(host, port)
        self._server = server
        try:
            server.serve_forever()
        finally:
            server.server_close()
            if self._server is server:
                self._server = None

    def shutdown(self) -> None:
        server, thread = self._server, self._thread
        if server is None:
            return
        self._server = None
        self._thread = None
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join()

    def __enter__(self) -> "RpcServer":
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()


class RpcClient:
    """A connection to one program version on a server."""

    def __init__(
        self,
        host: str,
        port: int,
        program: int,
        version: int,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.program = program
        self.version = version
        try:
            self._sock: Optional[socket.socket] = socket.create_connection(
                (host, port), timeout=timeout
            )
        except OSError as exc:
            raise RpcError(f"{host}: cannot connect: {exc}") from exc
        self._xids = itertools.count(1)
        self._lock = threading.Lock()

    def call(self, procedure: int, payload: bytes = b"") -> bytes:
        """Call a procedure and return the reply payload."""
        with self._lock:
            if self._sock is None:
                raise RpcError("client is closed")
            xid = next(self._xids) & 0xFFFFFFFF
            packer = Packer()
            packer.pack_uint(xid)
            packer.pack_uint(self.program)
            packer.pack_uint(self.version)
            packer.pack_uint(procedure)
            packer.pack_opaque(payload)
            try:
                _send_record(self._sock, packer.get_buffer())
                while True:
                    unpacker = Unpacker(_recv_record(self._sock))
                    if unpacker.unpack_uint() == xid:
                        break
                raw_status = unpacker.unpack_uint()
                body = unpacker.unpack_opaque()
                unpacker.done()
            except TimeoutError as exc:
                raise RpcError("call failed: timed out") from exc
            except (OSError, EOFError) as exc:
                raise RpcError(f"call failed: {exc}") from exc
            except XdrError as exc:
                raise RpcError(f"call failed: malformed reply: {exc}") from exc
        try:
            status = _AcceptStatus(raw_status)
        except ValueError as exc:
            raise RpcError(f"call failed: unknown status {raw_status}") from exc
        if status is not _AcceptStatus.SUCCESS:
            raise RpcError(f"call failed: {status.name}", status)
        return body

    def close(self) -> None:
        with self._lock:
            if self._sock is not None:
                self._sock.close()
                self._sock = None

    def __enter__(self) -> "RpcClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()