"""Producers and consumers sharing a remote letter buffer.

The server holds a ring buffer of SIZE_BUF cells. A producer request
blocks while the buffer is full, then writes the next letter of the
alphabet (wrapping from 'z' back to 'a') and returns it. A consumer
request blocks while the buffer is empty, then takes the oldest letter,
marks its cell empty and returns it. One procedure serves both roles;
the argument says which. A request with any other role gets no reply.
"""

from __future__ import annotations

import argparse
import random
import sys
import threading
import time
from enum import IntEnum
from typing import Optional

from .rpc import DEFAULT_TIMEOUT, RpcClient, RpcError, RpcServer
from .xdr import Packer, Unpacker

PC_PROG = 0x20000001
PC_VER = 1
SERVICE = 1

SIZE_BUF = 4096
EMPTY_CELL = "-"
FIRST_LETTER = "a"
LAST_LETTER = "z"

DEFAULT_PORT = 20004


class Role(IntEnum):
    PRODUCER = 0
    CONSUMER = 1


class LetterBuffer:
    """A bounded, thread-safe ring buffer of letters."""

    def __init__(self, size: int = SIZE_BUF) -> None:
        if size <= 0:
            raise ValueError(f"buffer size must be positive, got {size}")
        self.size = size
        self._cells = [EMPTY_CELL] * size
        self._produce_at = 0
        self._consume_at = 0
        self._count = 0
        self._letter = FIRST_LETTER
        self._changed = threading.Condition()

    def produce(self, timeout: Optional[float] = None) -> str:
        """Put the next letter into the buffer and return it.

        Waits while the buffer is full; raises TimeoutError if it stays
        full for ``timeout`` seconds.
        """
        with self._changed:
            if not self._changed.wait_for(lambda: self._count < self.size, timeout):
                raise TimeoutError("buffer is full")
            letter = self._letter
            self._cells[self._produce_at] = letter
            self._produce_at = (self._produce_at + 1) % self.size
            self._count += 1
            self._letter = FIRST_LETTER if letter == LAST_LETTER else chr(ord(letter) + 1)
            self._changed.notify_all()
            return letter

    def consume(self, timeout: Optional[float] = None) -> str:
        """Take the oldest letter from the buffer and return it.

        Waits while the buffer is empty; raises TimeoutError if it stays
        empty for ``timeout`` seconds.
        """
        with self._changed:
            if not self._changed.wait_for(lambda: self._count > 0, timeout):
                raise TimeoutError("buffer is empty")
            letter = self._cells[self._consume_at]
            self._cells[self._consume_at] = EMPTY_CELL
            self._consume_at = (self._consume_at + 1) % self.size
            self._count -= 1
            self._changed.notify_all()
            return letter

    def snapshot(self) -> str:
        """Return the cells of the buffer, with EMPTY_CELL for empty ones."""
        with self._changed:
            return "".join(self._cells)

    def __len__(self) -> int:
        with self._changed:
            return self._count


def _encode_role(role: int) -> bytes:
    packer = Packer()
    packer.pack_int(int(role))
    return packer.get_buffer()


def _decode_role(data: bytes) -> int:
    unpacker = Unpacker(data)
    value = unpacker.unpack_int()
    unpacker.done()
    return value


def _encode_letter(letter: str) -> bytes:
    packer = Packer()
    packer.pack_char(letter)
    return packer.get_buffer()


def _decode_letter(data: bytes) -> str:
    unpacker = Unpacker(data)
    letter = unpacker.unpack_char()
    unpacker.done()
    return letter


def create_server(buffer: Optional[LetterBuffer] = None) -> RpcServer:
    """Build a server for the producer-consumer program around ``buffer``."""
    letters = buffer if buffer is not None else LetterBuffer()
    server = RpcServer(PC_PROG, PC_VER)

    def handle(payload: bytes) -> Optional[bytes]:
        role = _decode_role(payload)
        if role == Role.PRODUCER:
            return _encode_letter(letters.produce())
        if role == Role.CONSUMER:
            return _encode_letter(letters.consume())
        return None

    server.register(SERVICE, handle)
    return server


class ProdConsClient:
    """A connection to a producer-consumer server."""

    def __init__(self, host: str, port: int = DEFAULT_PORT, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = RpcClient(host, port, PC_PROG, PC_VER, timeout)

    def request(self, role) -> str:
        """Produce or consume one letter, as ``role`` says, and return it."""
        return _decode_letter(self._client.call(SERVICE, _encode_role(role)))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ProdConsClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()


_ROLES = {"p": Role.PRODUCER, "c": Role.CONSUMER}


def main(argv=None) -> int:
    """Produce or consume letters at random intervals until a call fails."""
    parser = argparse.ArgumentParser(prog="prodcons", description="Producer-consumer client.")
    parser.add_argument("host", help="server host")
    parser.add_argument("role", help="p for a producer, c for a consumer")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("-n", "--count", type=int, default=None, help="stop after this many requests")
    args = parser.parse_args(argv)

    role = _ROLES.get(args.role[:1])
    if role is None:
        print("role must be p or c")
        return 1

    try:
        client = ProdConsClient(args.host, args.port)
    except RpcError as exc:
        print(exc, file=sys.stderr)
        return 1

    max_sleep = 3 if role is Role.PRODUCER else 4
    done = 0
    with client:
        while args.count is None or done < args.count:
            time.sleep(random.randrange(max_sleep) + 1)
            try:
                letter = client.request(role)
            except RpcError as exc:
                print(f"call failed: {exc}", file=sys.stderr)
                return 1
            if role is Role.PRODUCER:
                print(f"Producer put {letter}", flush=True)
            else:
                print(f"Consumer get {letter}", flush=True)
            done += 1
    return 0


def serve(argv=None) -> int:
    """Run the producer-consumer server until interrupted."""
    parser = argparse.ArgumentParser(prog="prodcons-server", description="Producer-consumer server.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("-s", "--size", type=int, default=SIZE_BUF)
    args = parser.parse_args(argv)

    try:
        buffer = LetterBuffer(args.size)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    server = create_server(buffer)
    try:
        server.serve_forever(args.host, args.port)
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"cannot create service: {exc}", file=sys.stderr)
        return 1
    print("server stopped", file=sys.stderr)
    return 1