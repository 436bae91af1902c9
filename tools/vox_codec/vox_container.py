"""Container framing for MagicaVoxel .vox files.

File layout:
- Magic: "VOX " (4 bytes)
- Version: u32, must be 150
- One MAIN container with an empty payload; its children are the chunks

Container layout:
- Tag (4 bytes)
- u32 payload length (N)
- u32 children length (M)
- N payload bytes
- M bytes of back-to-back child containers
"""
from typing import Iterable, List, Optional, Tuple

from vox_chunks import encode_chunk
from vox_errors import ErrorKind, VoxError
from vox_primitives import ByteReader, ByteWriter
from vox_types import Chunk, RawContainer

MAGIC = b"VOX "
VERSION = 150
MAIN_TAG = b"MAIN"
HEADER_SIZE = 12  # tag + payload length + children length

# Real files nest two levels (MAIN and its children)
MAX_CONTAINER_DEPTH = 64


def _read_container(reader: ByteReader, expected_tag: Optional[bytes], depth: int) -> RawContainer:
    if depth > MAX_CONTAINER_DEPTH:
        raise VoxError(ErrorKind.CONTAINER_TOO_DEEP, depth)

    tag_offset = reader.offset
    tag = reader.take(4)
    if expected_tag is not None and tag != expected_tag:
        raise VoxError(
            ErrorKind.INVALID_TAG,
            tag,
            detail=f"expected {expected_tag!r} at offset {tag_offset}",
        )

    payload_length = reader.u32()
    children_length = reader.u32()
    payload = reader.take(payload_length)

    if children_length > reader.remaining:
        raise VoxError(
            ErrorKind.UNEXPECTED_EOF,
            detail=f"{tag!r} children need {children_length} bytes, have {reader.remaining}",
        )

    children_end = reader.offset + children_length
    children_reader = ByteReader(reader.data, reader.offset, children_end)
    children = []
    while children_reader.remaining > 0:
        children.append(_read_container(children_reader, None, depth + 1))

    reader.offset = children_end
    return RawContainer(tag=tag, payload=payload, children=children)


def read_container(data: bytes, expected_tag: Optional[bytes] = None) -> Tuple[RawContainer, bytes]:
    """Read one container (with all its nested children) from the front of data.

    Args:
        data: Bytes starting with a container header
        expected_tag: If given, the container's tag must equal it

    Returns:
        Tuple of (container, bytes remaining after the container)

    Raises:
        VoxError: On a tag mismatch or when lengths do not match the data
    """
    reader = ByteReader(data)
    container = _read_container(reader, expected_tag, 0)
    return container, bytes(data[reader.offset:])


def read_file_raw(data: bytes) -> List[RawContainer]:
    """Read the top-level containers (children of MAIN) from a .vox file.

    Args:
        data: Complete file contents

    Returns:
        List of RawContainer, in file order

    Raises:
        VoxError: If magic, version, MAIN chunk or framing is invalid
    """
    reader = ByteReader(data)

    if len(data) < 4 or data[:4] != MAGIC:
        raise VoxError(ErrorKind.INVALID_MAGIC, bytes(data[:4]))
    reader.take(4)

    version = reader.u32()
    if version != VERSION:
        raise VoxError(ErrorKind.FILE_VERSION_UNKNOWN, version)

    main = _read_container(reader, MAIN_TAG, 0)
    if main.payload:
        raise VoxError(ErrorKind.INVALID_MAIN_CHUNK, detail=f"{len(main.payload)} payload bytes")

    reader.expect_end()
    return main.children


def write_container(tag: bytes, payload: bytes = b"", children: bytes = b"") -> bytes:
    """Frame a payload and pre-serialized children as one container."""
    if len(tag) != 4:
        raise ValueError(f"Chunk tag must be 4 bytes: {tag!r}")
    return (
        ByteWriter()
        .raw(tag)
        .u32(len(payload))
        .u32(len(children))
        .raw(payload)
        .raw(children)
        .getvalue()
    )


def write_raw_container(container: RawContainer) -> bytes:
    """Serialize a RawContainer tree."""
    children = b"".join(write_raw_container(c) for c in container.children)
    return write_container(container.tag, container.payload, children)


def _write_file(children: bytes) -> bytes:
    writer = ByteWriter().raw(MAGIC).u32(VERSION)
    writer.raw(write_container(MAIN_TAG, b"", children))
    return writer.getvalue()


def write_file_containers(containers: Iterable[RawContainer]) -> bytes:
    """Write a .vox file whose MAIN children are the given raw containers."""
    return _write_file(b"".join(write_raw_container(c) for c in containers))


def write_file_raw(chunks: Iterable[Chunk]) -> bytes:
    """Write a .vox file from typed chunks.

    No validation of chunk order is performed; the caller is responsible for
    emitting chunks in an order readers accept (see vox_flatten).
    """
    return _write_file(b"".join(write_container(c.TAG, encode_chunk(c)) for c in chunks))
