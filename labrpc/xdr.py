"""XDR (External Data Representation) encoding of the primitive types.

Every item occupies a multiple of four bytes, in big-endian order.
Variable-length data is preceded by its length and padded with zero bytes.
"""

from __future__ import annotations

import operator
import struct

_INT = struct.Struct(">i")
_UINT = struct.Struct(">I")
_FLOAT = struct.Struct(">f")

_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1
_UINT_MAX = 2**32 - 1


class XdrError(ValueError):
    """Raised when a value cannot be encoded or the data cannot be decoded."""


def _as_int(value) -> int:
    try:
        return operator.index(value)
    except TypeError as exc:
        raise XdrError(f"expected an integer, got {type(value).__name__}") from exc


def _padding(length: int) -> int:
    return (-length) % 4


class Packer:
    """Accumulates XDR-encoded items."""

    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def pack_int(self, value) -> None:
        number = _as_int(value)
        if not _INT_MIN <= number <= _INT_MAX:
            raise XdrError(f"integer {number} out of 32-bit signed range")
        self._parts.append(_INT.pack(number))

    def pack_uint(self, value) -> None:
        number = _as_int(value)
        if not 0 <= number <= _UINT_MAX:
            raise XdrError(f"integer {number} out of 32-bit unsigned range")
        self._parts.append(_UINT.pack(number))

    def pack_bool(self, value) -> None:
        self.pack_int(1 if value else 0)

    def pack_float(self, value) -> None:
        try:
            self._parts.append(_FLOAT.pack(float(value)))
        except (OverflowError, TypeError, ValueError, struct.error) as exc:
            raise XdrError(f"cannot encode {value!r} as a single-precision float") from exc

    def pack_char(self, value) -> None:
        """Encode one character as a signed char widened to an int."""
        if not isinstance(value, str) or len(value) != 1:
            raise XdrError(f"expected a single character, got {value!r}")
        code = ord(value)
        if code > 0xFF:
            raise XdrError(f"character {value!r} does not fit in one byte")
        self.pack_int(code - 0x100 if code >= 0x80 else code)

    def pack_opaque(self, data) -> None:
        raw = bytes(data)
        self.pack_uint(len(raw))
        self._parts.append(raw + b"\x00" * _padding(len(raw)))

    def pack_string(self, text) -> None:
        if not isinstance(text, str):
            raise XdrError(f"expected a string, got {type(text).__name__}")
        self.pack_opaque(text.encode("utf-8"))

    def get_buffer(self) -> bytes:
        return b"".join(self._parts)


class Unpacker:
    """Reads XDR-encoded items from a byte string in order."""

    def __init__(self, data) -> None:
        self._data = bytes(data)
        self._pos = 0

    def _take(self, count: int) -> bytes:
        end = self._pos + count
        if end > len(self._data):
            raise XdrError("unexpected end of data")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def unpack_int(self) -> int:
        return _INT.unpack(self._take(4))[0]

    def unpack_uint(self) -> int:
        return _UINT.unpack(self._take(4))[0]

    def unpack_bool(self) -> bool:
        value = self.unpack_int()
        if value not in (0, 1):
            raise XdrError(f"invalid boolean value {value}")
        return bool(value)

    def unpack_float(self) -> float:
        return _FLOAT.unpack(self._take(4))[0]

    def unpack_char(self) -> str:
        value = self.unpack_int()
        if not -0x80 <= value <= 0xFF:
            raise XdrError(f"value {value} is not a character")
        return chr(value & 0xFF)

    def unpack_opaque(self) -> bytes:
        length = self.unpack_uint()
        data = self._take(length)
        self._take(_padding(length))
        return data

    def unpack_string(self) -> str:
        raw = self.unpack_opaque()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise XdrError("string is not valid UTF-8") from exc

    def done(self) -> None:
        """Raise XdrError if any data is left unread."""
        left = len(self._data) - self._pos
        if left:
            raise XdrError(f"{left} unread bytes left")