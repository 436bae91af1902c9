"""Tests for reading and writing complete .vox files."""
import os
import struct
import sys
import tempfile
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from vox_errors import ErrorKind, VoxError
from vox_file import load, parse, read_chunks, save, serialize
from vox_types import (
    BlendMaterial,
    EmitMaterial,
    Group,
    Layer,
    Layr,
    MetalMaterial,
    Model,
    Pack,
    Rotation,
    RowOrder,
    SceneNode,
    Shape,
    Size,
)


def pack_string(value):
    encoded = value.encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


def pack_dict(values):
    data = struct.pack("<I", len(values))
    for key, value in values.items():
        data += pack_string(key) + pack_string(value)
    return data


def container(tag, payload=b"", children=b""):
    return tag + struct.pack("<II", len(payload), len(children)) + payload + children


def vox_file(*chunks):
    return b"VOX " + struct.pack("<I", 150) + container(b"MAIN", b"", b"".join(chunks))


def ntrn(node_id, child_id, layer_id=-1, frame=None, attributes=None):
    payload = struct.pack("<I", node_id) + pack_dict(attributes or {})
    payload += struct.pack("<Iiii", child_id, -1, layer_id, 1) + pack_dict(frame or {})
    return container(b"nTRN", payload)


def ngrp(node_id, children):
    payload = struct.pack("<I", node_id) + pack_dict({})
    payload += struct.pack("<I", len(children)) + b"".join(struct.pack("<I", c) for c in children)
    return container(b"nGRP", payload)


def nshp(node_id, model_id):
    payload = struct.pack("<I", node_id) + pack_dict({})
    payload += struct.pack("<II", 1, model_id) + pack_dict({})
    return container(b"nSHP", payload)


def layr(layer_id, attributes):
    return container(b"LAYR", struct.pack("<I", layer_id) + pack_dict(attributes) + struct.pack("<i", -1))


def matl(matl_id, properties):
    return container(b"MATL", struct.pack("<i", matl_id) + pack_dict(properties))


def create_test_vox_file():
    """Create a synthetic file in the shape MagicaVoxel writes."""
    voxels_a = [(0, 0, 0, 1), (1, 0, 0, 2), (0, 1, 2, 3)]
    voxels_b = [(4, 4, 4, 9)]
    palette = b"".join(bytes([i, 255 - i, i // 2, 255]) for i in range(256))

    return vox_file(
        container(b"PACK", struct.pack("<I", 2)),
        container(b"SIZE", struct.pack("<III", 2, 2, 3)),
        container(b"XYZI", struct.pack("<I", 3) + b"".join(bytes(v) for v in voxels_a)),
        container(b"SIZE", struct.pack("<III", 5, 5, 5)),
        container(b"XYZI", struct.pack("<I", 1) + b"".join(bytes(v) for v in voxels_b)),
        ntrn(0, 1),
        ngrp(1, [2, 4]),
        ntrn(2, 3, layer_id=0, frame={"_r": "17", "_t": "10 -20 30"}, attributes={"_name": "a"}),
        nshp(3, 0),
        ntrn(4, 5, layer_id=1, frame={"_t": "0 0 5"}),
        nshp(5, 1),
        container(b"RGBA", palette),
        matl(0, {"_type": "_metal"}),
        matl(1, {"_type": "_metal", "_rough": "0.25", "_metal": "0.5", "_ior": "0.3"}),
        matl(2, {"_type": "_emit", "_emit": "0.8", "_flux": "2", "_ldr": "0.1"}),
        matl(3, {"_type": "_blend", "_alpha": "0.5", "_spec": "0.4"}),
        matl(256, {"_type": "_diffuse"}),
        layr(0, {"_name": "ground"}),
        layr(1, {"_name": "props", "_hidden": "1"}),
        container(b"rOBJ", pack_dict({"_type": "_setting"})),
    )


def test_parse():
    """Should assemble models, graph, palette, materials and layers."""
    scene = parse(create_test_vox_file())

    assert scene.models == [
        Model(size=(2, 2, 3), voxels=[(0, 0, 0, 1), (1, 0, 0, 2), (0, 1, 2, 3)]),
        Model(size=(5, 5, 5), voxels=[(4, 4, 4, 9)]),
    ]

    # 17 = 0b00010001: rows 1 and 2 swapped, row 1 negated
    rotation = Rotation(RowOrder.TWO_ONE_THREE, True, False, False)
    assert scene.graph == SceneNode(Group([
        SceneNode(Shape(0), rotation=rotation, translation=(10, -20, 30), layer_id=0),
        SceneNode(Shape(1), translation=(0, 0, 5), layer_id=1),
    ]))

    assert scene.palette[0].rgba == (0, 255, 0, 255)
    assert scene.palette[254].rgba == (254, 1, 127, 255)
    assert scene.palette[0].mat_type == MetalMaterial(rough=0.25, ior=0.3, metal=0.5)
    assert scene.palette[1].mat_type == EmitMaterial(emit=0.8, flux=2, ldr=0.1)
    assert scene.palette[2].mat_type == BlendMaterial(alpha=0.5)

    assert scene.layers == [Layer(name="ground"), Layer(name="props", is_hidden=True)]


def test_serialize_then_parse():
    """A serialized scene should parse back to an equal scene."""
    scene = parse(create_test_vox_file())
    assert parse(serialize(scene)) == scene


def test_serialize_is_stable():
    data = serialize(parse(create_test_vox_file()))
    assert serialize(parse(data)) == data


def test_serialize_default_scene():
    """A file with a single model and no scene graph gains a transform root."""
    data = vox_file(
        container(b"SIZE", struct.pack("<III", 1, 1, 1)),
        container(b"XYZI", struct.pack("<I", 1) + bytes([0, 0, 0, 1])),
    )
    scene = parse(data)

    assert scene.graph == SceneNode(Shape(0), layer_id=0)
    assert parse(serialize(scene)) == scene


def test_parse_error_propagates():
    data = vox_file(container(b"SIZE", struct.pack("<III", 1, 1, 1)), container(b"SIZE", struct.pack("<III", 1, 1, 1)))
    with pytest.raises(VoxError) as exc:
        parse(data)
    assert exc.value.kind is ErrorKind.NON_ALTERNATING_MODEL


def test_read_chunks_is_strict():
    """read_chunks does not skip unknown chunks."""
    data = vox_file(container(b"PACK", struct.pack("<I", 1)), container(b"rOBJ"))
    with pytest.raises(VoxError) as exc:
        read_chunks(data)
    assert exc.value.kind is ErrorKind.UNKNOWN_CHUNK


def test_read_chunks():
    data = vox_file(
        container(b"PACK", struct.pack("<I", 1)),
        container(b"SIZE", struct.pack("<III", 3, 4, 5)),
        layr(0, {"_is_hidden": "1"}),
    )
    assert read_chunks(data) == [Pack(1), Size(3, 4, 5), Layr(id=0, is_hidden=True)]


def test_save_and_load():
    scene = parse(create_test_vox_file())

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "scene.vox")
        save(scene, path)
        assert load(path) == scene
