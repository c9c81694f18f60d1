"""A remote calculator guarded by Lamport's bakery algorithm.

A client first takes a number, one more than the largest number held,
and stores it in its slot. It is then served only once every client
holding a smaller number, or the same number and a smaller process id,
has been served. Serving computes one arithmetic operation, truncates
the result to an integer and clears the client's slot.
"""

from __future__ import annotations

import argparse
import math
import os
import sys
import threading
import time
from dataclasses import dataclass, replace
from typing import Optional

from .calculator import Operation, calculate
from .rpc import DEFAULT_TIMEOUT, RpcClient, RpcError, RpcServer
from .xdr import Packer, Unpacker

COUNT_CLIENTS = 5

BAKERY_PROG = 0x20000001
BAKERY_VER = 1
GET_NUMBER = 1
SERVE = 2

DEFAULT_PORT = 20003

_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


@dataclass(frozen=True)
class Ticket:
    """The record exchanged with the server."""

    num: int = 0
    pid: int = 0
    ind: int = 0
    op: int = 0
    arg1: float = 0.0
    arg2: float = 0.0
    result: int = 0

    def encode(self) -> bytes:
        packer = Packer()
        packer.pack_int(self.num)
        packer.pack_int(self.pid)
        packer.pack_int(self.ind)
        packer.pack_int(int(self.op))
        packer.pack_float(self.arg1)
        packer.pack_float(self.arg2)
        packer.pack_int(self.result)
        return packer.get_buffer()

    @classmethod
    def decode(cls, data: bytes) -> "Ticket":
        unpacker = Unpacker(data)
        num = unpacker.unpack_int()
        pid = unpacker.unpack_int()
        ind = unpacker.unpack_int()
        op = unpacker.unpack_int()
        arg1 = unpacker.unpack_float()
        arg2 = unpacker.unpack_float()
        result = unpacker.unpack_int()
        unpacker.done()
        return cls(num, pid, ind, op, arg1, arg2, result)


def _compute(ticket: Ticket) -> int:
    if ticket.op not in Operation._value2member_map_:
        return 0
    value = calculate(ticket.op, ticket.arg1, ticket.arg2)
    if not math.isfinite(value):
        raise ValueError(f"result {value} is not an integer")
    number = math.trunc(value)
    if not _INT_MIN <= number <= _INT_MAX:
        raise ValueError(f"result {number} out of 32-bit range")
    return number


class Bakery:
    """The numbers and process ids held by each client slot."""

    def __init__(self, size: int = COUNT_CLIENTS) -> None:
        self.size = size
        self._numbers = [0] * size
        self._pids = [0] * size
        self._changed = threading.Condition()

    def _check(self, ind: int) -> None:
        if not 0 <= ind < self.size:
            raise ValueError(f"client index {ind} outside 0..{self.size - 1}")

    def get_number(self, ticket: Ticket) -> Ticket:
        """Give the ticket's slot a number one above the largest held."""
        self._check(ticket.ind)
        with self._changed:
            num = max(self._numbers) + 1
            self._numbers[ticket.ind] = num
            self._pids[ticket.ind] = ticket.pid
            self._changed.notify_all()
        return replace(ticket, num=num)

    def _must_wait(self, ind: int) -> bool:
        mine = self._numbers[ind]
        my_pid = self._pids[ind]
        return any(
            num != 0 and (num < mine or (num == mine and pid < my_pid))
            for num, pid in zip(self._numbers, self._pids)
        )

    def serve(self, ticket: Ticket) -> Ticket:
        """Wait for the ticket's turn, compute its result and free its slot.

        Raises ValueError for a bad index or a result that is not a
        32-bit integer; the slot is freed either way.
        """
        self._check(ticket.ind)
        with self._changed:
            self._changed.wait_for(lambda: not self._must_wait(ticket.ind))
        try:
            result = _compute(ticket)
        finally:
            with self._changed:
                self._numbers[ticket.ind] = 0
                self._pids[ticket.ind] = 0
                self._changed.notify_all()
        return replace(ticket, result=result)

    def numbers(self) -> tuple[int, ...]:
        with self._changed:
            return tuple(self._numbers)


def create_server(bakery: Optional[Bakery] = None) -> RpcServer:
    """Build a server for the bakery program around ``bakery``."""
    shop = bakery if bakery is not None else Bakery()
    server = RpcServer(BAKERY_PROG, BAKERY_VER)

    def handle_get_number(payload: bytes) -> bytes:
        request = Ticket.decode(payload)
        reply = shop.get_number(request)
        numbers = " ".join(str(n) for n in shop.numbers())
        print(f"get PID={request.pid} num={reply.num} ind={request.ind}", flush=True)
        print(f"numbers: {numbers}", flush=True)
        return reply.encode()

    def handle_serve(payload: bytes) -> bytes:
        request = Ticket.decode(payload)
        reply = shop.serve(request)
        print(
            f"PID = {request.pid}, num = {request.num}, ind = {request.ind}, "
            f"op = {request.op}, arg1 = {request.arg1:f}, arg2 = {request.arg2:f}, "
            f"res = {reply.result}",
            flush=True,
        )
        return reply.encode()

    server.register(GET_NUMBER, handle_get_number)
    server.register(SERVE, handle_serve)
    return server


class BakeryClient:
    """A connection to a bakery server."""

    def __init__(self, host: str, port: int = DEFAULT_PORT, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = RpcClient(host, port, BAKERY_PROG, BAKERY_VER, timeout)

    def get_number(self, ticket: Ticket) -> Ticket:
        return Ticket.decode(self._client.call(GET_NUMBER, ticket.encode()))

    def serve(self, ticket: Ticket) -> Ticket:
        return Ticket.decode(self._client.call(SERVE, ticket.encode()))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "BakeryClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def _visit(host: str, port: int, ind: int, op: int, arg1: float, arg2: float) -> tuple[int, int]:
    """Take a number and get served; return the worker id and exit status."""
    worker = threading.get_native_id()
    try:
        with BakeryClient(host, port) as client:
            request = Ticket(pid=worker, ind=ind, op=op, arg1=arg1, arg2=arg2)
            request = replace(request, num=client.get_number(request).num)
            print(f"PID={request.pid} num={request.num} ind={request.ind}", flush=True)
            time.sleep(350e-6 * ind)
            client.serve(request)
    except RpcError as exc:
        print(f"call failed: {exc}", file=sys.stderr)
        return worker, 1
    return worker, 0


def main(argv=None) -> int:
    """Send COUNT_CLIENTS concurrent clients to the bakery and report how they ended."""
    parser = argparse.ArgumentParser(prog="bakery", description="Bakery algorithm client.")
    parser.add_argument("host", help="server host")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--op", type=int, default=int(Operation.ADD))
    parser.add_argument("--arg1", type=float, default=2.0)
    parser.add_argument("--arg2", type=float, default=3.0)
    args = parser.parse_args(argv)

    try:
        BakeryClient(args.host, args.port).close()
    except RpcError as exc:
        print(exc, file=sys.stderr)
        return 1

    outcomes: list[tuple[int, int]] = []
    lock = threading.Lock()

    def run(ind: int) -> None:
        outcome = _visit(args.host, args.port, ind, args.op, args.arg1, args.arg2)
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=run, args=(ind,)) for ind in range(COUNT_CLIENTS)]
    for thread in threads:
        thread.start()
    print("created: " + " ".join(str(thread.native_id) for thread in threads) + " ")
    for thread in threads:
        thread.join()
    for worker, status in outcomes:
        print(f"PID={worker} exited, status = {status} ")
    print("Parent client exited")
    return 0 if all(status == 0 for _, status in outcomes) else 1


def serve(argv=None) -> int:
    """Run the bakery server until interrupted."""
    parser = argparse.ArgumentParser(prog="bakery-server", description="Bakery algorithm server.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    server = create_server(Bakery())
    try:
        server.serve_forever(args.host, args.port)
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"cannot create service: {exc}", file=sys.stderr)
        return 1
    print("server stopped", file=sys.stderr)
    return 1