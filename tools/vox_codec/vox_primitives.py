"""Readers and writers for the .vox micro-types.

STRING:
  - u32 byte length
  - UTF-8 bytes (no terminator)

DICT:
  - u32 pair count
  - (STRING key, STRING value) x count

ROTATION (one byte):
  - bits 0-1: column of the nonzero entry in row 1
  - bits 2-3: column of the nonzero entry in row 2 (row 3 takes the rest)
  - bits 4/5/6: sign of rows 1/2/3 (set means -1)
"""
import struct
from typing import Dict, Optional

from vox_errors import ErrorKind, VoxError
from vox_types import Rotation, RowOrder


class ByteReader:
    """Little-endian cursor over a byte buffer."""

    def __init__(self, data: bytes, offset: int = 0, end: Optional[int] = None):
        """Initialize reader.

        Args:
            data: Buffer to read from
            offset: Starting offset
            end: Offset one past the last readable byte (default: len(data))
        """
        self.data = data
        self.offset = offset
        self.end = len(data) if end is None else end

    @property
    def remaining(self) -> int:
        return self.end - self.offset

    def take(self, count: int) -> bytes:
        """Read exactly count raw bytes."""
        if count > self.remaining:
            raise VoxError(
                ErrorKind.UNEXPECTED_EOF,
                detail=f"need {count} bytes at offset {self.offset}, have {self.remaining}",
            )
        start = self.offset
        self.offset += count
        return bytes(self.data[start:self.offset])

    def _unpack(self, fmt: str, size: int):
        if size > self.remaining:
            raise VoxError(
                ErrorKind.UNEXPECTED_EOF,
                detail=f"need {size} bytes at offset {self.offset}, have {self.remaining}",
            )
        value = struct.unpack_from(fmt, self.data, self.offset)[0]
        self.offset += size
        return value

    def u8(self) -> int:
        return self._unpack("<B", 1)

    def u32(self) -> int:
        return self._unpack("<I", 4)

    def i32(self) -> int:
        return self._unpack("<i", 4)

    def f32(self) -> float:
        return self._unpack("<f", 4)

    def expect_end(self):
        """Fail unless every byte has been consumed."""
        if self.remaining != 0:
            raise VoxError(
                ErrorKind.TRAILING_BYTES,
                detail=f"{self.remaining} unread bytes at offset {self.offset}",
            )


class ByteWriter:
    """Accumulates little-endian values into a byte buffer."""

    def __init__(self):
        self._buffer = bytearray()

    def raw(self, data: bytes) -> "ByteWriter":
        self._buffer += data
        return self

    def u8(self, value: int) -> "ByteWriter":
        self._buffer += struct.pack("<B", value)
        return self

    def u32(self, value: int) -> "ByteWriter":
        self._buffer += struct.pack("<I", value)
        return self

    def i32(self, value: int) -> "ByteWriter":
        self._buffer += struct.pack("<i", value)
        return self

    def f32(self, value: float) -> "ByteWriter":
        self._buffer += struct.pack("<f", value)
        return self

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


def read_string(reader: ByteReader) -> str:
    """Read a STRING.

    Raises:
        VoxError: INVALID_UTF8_STRING if the bytes are not UTF-8
    """
    length = reader.u32()
    raw = reader.take(length)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise VoxError(ErrorKind.INVALID_UTF8_STRING, detail=repr(raw[:32])) from None


def write_string(writer: ByteWriter, value: str):
    encoded = value.encode("utf-8")
    writer.u32(len(encoded))
    writer.raw(encoded)


def read_dict(reader: ByteReader) -> Dict[str, str]:
    """Read a DICT. On duplicate keys the last pair wins."""
    count = reader.u32()
    result = {}
    for _ in range(count):
        key = read_string(reader)
        result[key] = read_string(reader)
    return result


def write_dict(writer: ByteWriter, values: Dict[str, str]):
    writer.u32(len(values))
    for key, value in values.items():
        write_string(writer, key)
        write_string(writer, value)


_ORDER_BY_COLUMNS = {order.value[:2]: order for order in RowOrder}


def rotation_from_byte(value: int) -> Optional[Rotation]:
    """Decode a ROTATION byte.

    Returns:
        The Rotation, or None if rows 1 and 2 claim the same column
        (or a column index of 3)
    """
    row1 = value & 0x03
    row2 = (value >> 2) & 0x03
    order = _ORDER_BY_COLUMNS.get((row1, row2))
    if order is None:
        return None
    return Rotation(
        order,
        bool(value & 0x10),
        bool(value & 0x20),
        bool(value & 0x40),
    )


def rotation_to_byte(rotation: Rotation) -> int:
    """Encode a Rotation as a ROTATION byte. Bit 7 is never set."""
    row1, row2, _ = rotation.order.value
    value = row1 | (row2 << 2)
    if rotation.neg_row1:
        value |= 0x10
    if rotation.neg_row2:
        value |= 0x20
    if rotation.neg_row3:
        value |= 0x40
    return value
