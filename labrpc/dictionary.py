"""A remote word dictionary.

The server keeps a list of at most DICTSIZ words of at most MAXWORD
characters and answers initialise, insert, delete and lookup requests.
Deleting a word moves the last word into its place.
"""

from __future__ import annotations

import argparse
import sys
import threading
from typing import Optional, TextIO

from .rpc import DEFAULT_TIMEOUT, RpcClient, RpcError, RpcServer
from .xdr import Packer, Unpacker

MAXWORD = 50
DICTSIZ = 100

RDICTPROG = 0x30090949
RDICTVERS = 1
INITW = 1
INSERTW = 2
DELETEW = 3
LOOKUPW = 4

DEFAULT_PORT = 20002

_WORD_COMMANDS = ("i", "l", "d")


class DictionaryFull(Exception):
    """Raised when a word is inserted into a full dictionary."""


class WordDictionary:
    """A bounded, thread-safe list of words."""

    def __init__(self, capacity: int = DICTSIZ) -> None:
        self.capacity = capacity
        self._words: list[str] = []
        self._lock = threading.Lock()

    def init(self) -> bool:
        """Empty the dictionary."""
        with self._lock:
            self._words.clear()
        return True

    def insert(self, word: str) -> int:
        """Append a word and return the number of words held."""
        if len(word) > MAXWORD:
            raise ValueError(f"word longer than {MAXWORD} characters")
        with self._lock:
            if len(self._words) >= self.capacity:
                raise DictionaryFull(f"dictionary holds {self.capacity} words")
            self._words.append(word)
            return len(self._words)

    def delete(self, word: str) -> bool:
        """Remove the first occurrence of a word, moving the last word into its place."""
        with self._lock:
            try:
                index = self._words.index(word)
            except ValueError:
                return False
            last = self._words.pop()
            if index < len(self._words):
                self._words[index] = last
            return True

    def lookup(self, word: str) -> bool:
        with self._lock:
            return word in self._words

    def __len__(self) -> int:
        with self._lock:
            return len(self._words)


def _encode_int(value: int) -> bytes:
    packer = Packer()
    packer.pack_int(int(value))
    return packer.get_buffer()


def _decode_int(data: bytes) -> int:
    unpacker = Unpacker(data)
    value = unpacker.unpack_int()
    unpacker.done()
    return value


def _encode_word(word: str) -> bytes:
    packer = Packer()
    packer.pack_string(word)
    return packer.get_buffer()


def _decode_word(data: bytes) -> str:
    unpacker = Unpacker(data)
    word = unpacker.unpack_string()
    unpacker.done()
    return word


def create_server(dictionary: Optional[WordDictionary] = None) -> RpcServer:
    """Build a server for the dictionary program around ``dictionary``."""
    words = dictionary if dictionary is not None else WordDictionary()
    server = RpcServer(RDICTPROG, RDICTVERS)

    def handle_init(payload: bytes) -> bytes:
        Unpacker(payload).done()
        return _encode_int(words.init())

    def handle_insert(payload: bytes) -> bytes:
        word = _decode_word(payload)
        try:
            count = words.insert(word)
        except (DictionaryFull, ValueError):
            count = 0
        return _encode_int(count)

    def handle_delete(payload: bytes) -> bytes:
        return _encode_int(words.delete(_decode_word(payload)))

    def handle_lookup(payload: bytes) -> bytes:
        return _encode_int(words.lookup(_decode_word(payload)))

    server.register(INITW, handle_init)
    server.register(INSERTW, handle_insert)
    server.register(DELETEW, handle_delete)
    server.register(LOOKUPW, handle_lookup)
    return server


class DictionaryClient:
    """A connection to a dictionary server."""

    def __init__(self, host: str, port: int = DEFAULT_PORT, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = RpcClient(host, port, RDICTPROG, RDICTVERS, timeout)

    def init(self) -> bool:
        return _decode_int(self._client.call(INITW, b"")) == 1

    def insert(self, word: str) -> int:
        """Insert a word; return the word count, or 0 if the server refused it."""
        return _decode_int(self._client.call(INSERTW, _encode_word(word)))

    def delete(self, word: str) -> bool:
        return _decode_int(self._client.call(DELETEW, _encode_word(word))) == 1

    def lookup(self, word: str) -> bool:
        return _decode_int(self._client.call(LOOKUPW, _encode_word(word))) == 1

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "DictionaryClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def _skip_space(stream: TextIO) -> str:
    ch = stream.read(1)
    while ch and ch.isspace():
        ch = stream.read(1)
    return ch


def read_command(stream):
    """Prompt for and read one command and its word.

    Returns ``(command, word)``, with an empty word for commands that take
    none, or None at end of input. Raises ValueError for a word longer
    than MAXWORD characters.
    """
    print()
    print("***** Make a choice ******")
    print("1. I(initialize dictionary)")
    print("2. i(inserting word) ")
    print("3. l(looking for word)")
    print("4. d(deleting word)")
    print("5. q(quit)")
    print("***************************")
    print("Command prompt =>\t", end="", flush=True)

    command = _skip_space(stream)
    if not command:
        return None
    if command in ("q", "I"):
        return command, ""

    print("*****************")
    print("Analysing Command")
    print("*****************")
    if command not in _WORD_COMMANDS:
        return command, ""
    print("Input word  =>\t", end="", flush=True)

    ch = _skip_space(stream)
    if not ch:
        return None
    chars = []
    while ch and not ch.isspace():
        chars.append(ch)
        if len(chars) > MAXWORD:
            raise ValueError("word too long")
        ch = stream.read(1)
    return command, "".join(chars)


def _run(client: DictionaryClient, command: str, word: str) -> bool:
    """Carry out one command; return False when the session should end."""
    if command == "I":
        if client.init():
            print("Dictionary was initialized ")
        else:
            print("Dictionary failed to initialize ")
    elif command == "i":
        print("Insert was done" if client.insert(word) > 0 else "Insert failed")
    elif command == "d":
        print("Delete was done" if client.delete(word) else "Delete failed")
    elif command == "l":
        if client.lookup(word):
            print(f"Word '{word}' was found")
        else:
            print(f"Word '{word}' was not found")
    elif command == "q":
        print("Programm quits ")
        return False
    else:
        print("Command invalid")
    return True


def main(argv=None) -> int:
    """Read dictionary commands from standard input and run them on the server."""
    parser = argparse.ArgumentParser(prog="dictionary", description="Remote dictionary client.")
    parser.add_argument("host", help="server host")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    try:
        client = DictionaryClient(args.host, args.port)
    except RpcError as exc:
        print(exc, file=sys.stderr)
        return 1

    with client:
        while True:
            try:
                entry = read_command(sys.stdin)
            except ValueError:
                print("Error word too long.")
                return 1
            if entry is None:
                return 0
            command, word = entry
            try:
                if not _run(client, command, word):
                    return 0
            except RpcError as exc:
                print(exc, file=sys.stderr)


def serve(argv=None) -> int:
    """Run the dictionary server until interrupted."""
    parser = argparse.ArgumentParser(prog="dictionary-server", description="Remote dictionary server.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    server = create_server(WordDictionary())
    try:
        server.serve_forever(args.host, args.port)
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"cannot create service: {exc}", file=sys.stderr)
        return 1
    print("server stopped", file=sys.stderr)
    return 1