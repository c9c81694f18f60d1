"""A remote four-function calculator.

The server applies one arithmetic operation to two single-precision
numbers. Its reply carries only the result; an unknown operation leaves
the result of the previous call in place.
"""

from __future__ import annotations

import argparse
import math
import struct
import sys
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, TextIO

from .rpc import DEFAULT_TIMEOUT, RpcClient, RpcError, RpcServer
from .xdr import Packer, Unpacker

CALCULATOR_PROG = 0x20000001
CALCULATOR_VER = 1
CALCULATOR_PROC = 1
DEFAULT_PORT = 20001

_FLOAT32 = struct.Struct(">f")


class Operation(IntEnum):
    ADD = 0
    SUB = 1
    MUL = 2
    DIV = 3


@dataclass(frozen=True)
class Calculation:
    """The record exchanged with the server: an operation, its arguments and result."""

    op: int
    arg1: float
    arg2: float
    result: float = 0.0

    def encode(self) -> bytes:
        packer = Packer()
        packer.pack_int(int(self.op))
        packer.pack_float(self.arg1)
        packer.pack_float(self.arg2)
        packer.pack_float(self.result)
        return packer.get_buffer()

    @classmethod
    def decode(cls, data: bytes) -> "Calculation":
        unpacker = Unpacker(data)
        op = unpacker.unpack_int()
        arg1 = unpacker.unpack_float()
        arg2 = unpacker.unpack_float()
        result = unpacker.unpack_float()
        unpacker.done()
        return cls(op, arg1, arg2, result)


def _to_float32(value: float) -> float:
    try:
        return _FLOAT32.unpack(_FLOAT32.pack(value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _divide(a: float, b: float) -> float:
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def calculate(op, arg1, arg2) -> float:
    """Apply ``op`` to the arguments in single precision.

    Division by zero gives an infinity or NaN as IEEE arithmetic does.
    Raises ValueError for an unknown operation.
    """
    operation = Operation(op)
    a = _to_float32(float(arg1))
    b = _to_float32(float(arg2))
    if operation is Operation.ADD:
        value = a + b
    elif operation is Operation.SUB:
        value = a - b
    elif operation is Operation.MUL:
        value = a * b
    else:
        value = _divide(a, b)
    return _to_float32(value)


def create_server() -> RpcServer:
    """Build a server for the calculator program."""
    server = RpcServer(CALCULATOR_PROG, CALCULATOR_VER)
    lock = threading.Lock()
    last = 0.0

    def handle(payload: bytes) -> bytes:
        nonlocal last
        request = Calculation.decode(payload)
        with lock:
            try:
                last = calculate(request.op, request.arg1, request.arg2)
            except ValueError:
                pass
            return Calculation(Operation.ADD, 0.0, 0.0, last).encode()

    server.register(CALCULATOR_PROC, handle)
    return server


class CalculatorClient:
    """A connection to a calculator server."""

    def __init__(self, host: str, port: int = DEFAULT_PORT, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = RpcClient(host, port, CALCULATOR_PROG, CALCULATOR_VER, timeout)

    def compute(self, op, arg1, arg2) -> float:
        request = Calculation(int(op), float(arg1), float(arg2))
        reply = self._client.call(CALCULATOR_PROC, request.encode())
        return Calculation.decode(reply).result

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CalculatorClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def _read_token(stream: TextIO) -> str:
    ch = stream.read(1)
    while ch and ch.isspace():
        ch = stream.read(1)
    chars = []
    while ch and not ch.isspace():
        chars.append(ch)
        ch = stream.read(1)
    return "".join(chars)


def _read_number(stream: TextIO) -> Optional[float]:
    try:
        return float(_read_token(stream))
    except ValueError:
        return None


def main(argv=None) -> int:
    """Ask for an operation and two numbers, and print the server's result."""
    parser = argparse.ArgumentParser(prog="calculator", description="Remote calculator client.")
    parser.add_argument("host", help="server host")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    try:
        client = CalculatorClient(args.host, args.port)
    except RpcError as exc:
        print(exc, file=sys.stderr)
        return 1

    with client:
        print("choose the operation:\n\t0---ADD\n\t1---SUB\n\t2---MUL\n\t3---DIV")
        choice = sys.stdin.read(1)
        if not choice or not "0" <= choice <= "3":
            print("error:operate")
            return 1
        op = Operation(int(choice))

        print("input the first number: ", end="", flush=True)
        arg1 = _read_number(sys.stdin)
        print("input the second number:", end="", flush=True)
        arg2 = _read_number(sys.stdin)
        if arg1 is None or arg2 is None:
            print("error: expected a number", file=sys.stderr)
            return 1

        try:
            result = client.compute(op, arg1, arg2)
        except RpcError as exc:
            print(exc, file=sys.stderr)
            return 1
        print(f"The Result is {result:.3f}")
    return 0


def serve(argv=None) -> int:
    """Run the calculator server until interrupted."""
    parser = argparse.ArgumentParser(prog="calculator-server", description="Remote calculator server.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    server = create_server()
    try:
        server.serve_forever(args.host, args.port)
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"cannot create service: {exc}", file=sys.stderr)
        return 1
    print("server stopped", file=sys.stderr)
    return 1