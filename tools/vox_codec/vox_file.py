"""Read and write MagicaVoxel .vox files.

Usage:
    from vox_file import parse, serialize

    scene = parse(data)
    for model in scene.models:
        print(model.size, len(model.voxels))
    data = serialize(scene)
"""
from pathlib import Path
from typing import List, Union

from vox_chunks import decode_chunk
from vox_container import read_file_raw, write_file_raw
from vox_flatten import flatten_scene
from vox_scene import assemble_scene
from vox_types import Chunk, VoxScene


def parse(data: bytes) -> VoxScene:
    """Parse .vox file contents into a scene.

    Args:
        data: Complete file contents

    Returns:
        The assembled VoxScene

    Raises:
        VoxError: On the first fatal problem, in file order
    """
    return assemble_scene(read_file_raw(data))


def serialize(scene: VoxScene) -> bytes:
    """Serialize a scene to .vox file contents.

    Properties equal to their defaults are omitted, so the output need not
    be byte-identical to a file the scene was parsed from.
    """
    return write_file_raw(flatten_scene(scene))


def read_chunks(data: bytes) -> List[Chunk]:
    """Decode every top-level chunk of a file.

    Unlike parse(), unknown chunks are not skipped: any chunk that fails to
    decode raises.
    """
    return [decode_chunk(c.tag, c.payload) for c in read_file_raw(data)]


def load(path: Union[str, Path]) -> VoxScene:
    """Parse the .vox file at path."""
    with open(path, "rb") as f:
        return parse(f.read())


def save(scene: VoxScene, path: Union[str, Path]):
    """Write scene to path as a .vox file."""
    with open(path, "wb") as f:
        f.write(serialize(scene))
