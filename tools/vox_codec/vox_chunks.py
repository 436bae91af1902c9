"""Payload codecs for the known .vox chunk tags.

Every decoder takes the payload bytes of one chunk and must consume them
completely. Every encoder returns the payload bytes for one chunk; framing
(tag and lengths) is handled by vox_container.

Layouts (all integers little-endian):

  PACK  u32 num_models
  SIZE  u32 x, u32 y, u32 z
  XYZI  u32 count, (u8 x, u8 y, u8 z, u8 color_index) x count
  RGBA  (u8 r, u8 g, u8 b, u8 a) x 256, the last entry is unused
  MATT  u32 id, u32 type, f32 weight, u32 property bits, f32 x popcount
  MATL  i32 id, DICT properties
  nTRN  u32 node id, DICT attrs, u32 child id, i32 reserved (-1),
        i32 layer id, i32 num frames (1), DICT frame attrs
  nGRP  u32 node id, DICT attrs, u32 count, u32 child id x count
  nSHP  u32 node id, DICT attrs, u32 num models (1), u32 model id, DICT attrs
  LAYR  u32 layer id, DICT attrs, i32 reserved (-1)
"""
import math
import re
from typing import Callable, Dict, Optional, Tuple

from vox_errors import ErrorKind, VoxError
from vox_primitives import (
    ByteReader,
    ByteWriter,
    read_dict,
    rotation_from_byte,
    rotation_to_byte,
    write_dict,
)
from vox_types import (
    Chunk,
    GroupNode,
    Layr,
    Matl,
    MatlType,
    Matt,
    MattType,
    Pack,
    Rgba,
    Rotation,
    ShapeNode,
    Size,
    TransformNode,
    Xyzi,
)

PALETTE_SIZE = 255

# MATT property bits, in storage order
MATT_PROPERTY_BITS = (
    (0x01, "plastic"),
    (0x02, "roughness"),
    (0x04, "specular"),
    (0x08, "ior"),
    (0x10, "attenuation"),
    (0x20, "power"),
    (0x40, "glow"),
)
MATT_TOTAL_POWER_BIT = 0x80

# MATL float properties: (Matl attribute, dictionary key)
MATL_FLOAT_KEYS = (
    ("weight", "_weight"),
    ("rough", "_rough"),
    ("spec", "_spec"),
    ("ior", "_ior"),
    ("att", "_att"),
    ("density", "_d"),
    ("alpha", "_alpha"),
    ("emit", "_emit"),
    ("ldr", "_ldr"),
    ("metal", "_metal"),
)

_UINT_RE = re.compile(r"\+?[0-9]+")
_TRANSLATION_RE = re.compile(r"(-?[0-9]+) (-?[0-9]+) (-?[0-9]+)")
_I32_MIN = -(2 ** 31)
_I32_MAX = 2 ** 31 - 1


def _parse_flag(value: Optional[str], kind: ErrorKind) -> bool:
    """Parse a "0"/"1" attribute; absent means False."""
    if value is None or value == "0":
        return False
    if value == "1":
        return True
    raise VoxError(kind, value)


def format_float(value: float) -> str:
    """Format a float for a DICT value so that float() reads it back exactly."""
    value = float(value)
    if math.isfinite(value) and value.is_integer():
        return str(int(value))
    return repr(value)


# ------
#  PACK
# ------

def decode_pack(payload: bytes) -> Pack:
    reader = ByteReader(payload)
    num_models = reader.u32()
    reader.expect_end()
    return Pack(num_models)


def encode_pack(chunk: Pack) -> bytes:
    return ByteWriter().u32(chunk.num_models).getvalue()


# ------
#  SIZE
# ------

def decode_size(payload: bytes) -> Size:
    reader = ByteReader(payload)
    x, y, z = reader.u32(), reader.u32(), reader.u32()
    reader.expect_end()
    return Size(x, y, z)


def encode_size(chunk: Size) -> bytes:
    return ByteWriter().u32(chunk.x).u32(chunk.y).u32(chunk.z).getvalue()


# ------
#  XYZI
# ------

def decode_xyzi(payload: bytes) -> Xyzi:
    reader = ByteReader(payload)
    count = reader.u32()
    raw = reader.take(count * 4)
    reader.expect_end()
    voxels = [tuple(raw[i:i + 4]) for i in range(0, len(raw), 4)]
    return Xyzi(voxels)


def encode_xyzi(chunk: Xyzi) -> bytes:
    writer = ByteWriter().u32(len(chunk.voxels))
    for voxel in chunk.voxels:
        writer.raw(bytes(voxel))
    return writer.getvalue()


# ------
#  RGBA
# ------

def decode_rgba(payload: bytes) -> Rgba:
    reader = ByteReader(payload)
    raw = reader.take(PALETTE_SIZE * 4)
    # Slot 0 is the empty voxel, so only 255 colors are meaningful.
    reader.take(4)
    reader.expect_end()
    colors = [tuple(raw[i:i + 4]) for i in range(0, len(raw), 4)]
    return Rgba(colors)


def encode_rgba(chunk: Rgba) -> bytes:
    if len(chunk.colors) != PALETTE_SIZE:
        raise ValueError(f"RGBA chunk needs {PALETTE_SIZE} colors, got {len(chunk.colors)}")
    writer = ByteWriter()
    for color in chunk.colors:
        writer.raw(bytes(color))
    writer.raw(b"\x00\x00\x00\x00")
    return writer.getvalue()


# ------
#  MATT
# ------

def _matt_property_valid(name: str, value: float) -> bool:
    if name == "plastic":
        return value == 0.0 or value == 1.0
    return 0.0 < value <= 1.0


def decode_matt(payload: bytes) -> Matt:
    reader = ByteReader(payload)

    matt_id = reader.u32()
    if not 1 <= matt_id <= 255:
        raise VoxError(ErrorKind.INVALID_MATT_ID, matt_id)

    type_id = reader.u32()
    weight = reader.f32()

    if type_id == MattType.DIFFUSE:
        if weight != 1.0:
            raise VoxError(ErrorKind.INVALID_MATT_TYPE, detail=f"diffuse weight {weight}")
    elif type_id in (MattType.METAL, MattType.GLASS, MattType.EMISSIVE):
        if not 0.0 < weight <= 1.0:
            raise VoxError(ErrorKind.INVALID_MATT_TYPE, detail=f"weight {weight}")
    else:
        raise VoxError(ErrorKind.INVALID_MATT_TYPE, detail=f"type {type_id}")

    bits = reader.u32()
    properties = {}
    for bit, name in MATT_PROPERTY_BITS:
        if bits & bit:
            value = reader.f32()
            if not _matt_property_valid(name, value):
                raise VoxError(ErrorKind.INVALID_MATT_PROPERTY, detail=f"{name}={value}")
            properties[name] = value

    reader.expect_end()
    return Matt(
        id=matt_id,
        matt_type=MattType(type_id),
        weight=weight,
        is_total_power=bool(bits & MATT_TOTAL_POWER_BIT),
        **properties,
    )


def encode_matt(chunk: Matt) -> bytes:
    writer = ByteWriter().u32(chunk.id).u32(int(chunk.matt_type))
    writer.f32(1.0 if chunk.matt_type == MattType.DIFFUSE else chunk.weight)

    bits = MATT_TOTAL_POWER_BIT if chunk.is_total_power else 0
    values = []
    for bit, name in MATT_PROPERTY_BITS:
        value = getattr(chunk, name)
        if value is not None:
            bits |= bit
            values.append(value)

    writer.u32(bits)
    for value in values:
        writer.f32(value)
    return writer.getvalue()


# ------
#  MATL
# ------

def _parse_matl_float(key: str, text: str) -> float:
    # float() also tolerates padding and digit separators; the format does not
    if text != text.strip() or "_" in text:
        raise VoxError(ErrorKind.INVALID_MATL_PROPERTY, detail=f"{key}={text!r}")
    try:
        return float(text)
    except ValueError:
        raise VoxError(ErrorKind.INVALID_MATL_PROPERTY, detail=f"{key}={text!r}") from None


def decode_matl(payload: bytes) -> Matl:
    reader = ByteReader(payload)
    matl_id = reader.i32()
    properties = read_dict(reader)

    # MagicaVoxel writes a material for slot 256, which does not exist.
    if not 0 <= matl_id <= 255:
        raise VoxError(ErrorKind.INVALID_MATL_ID, matl_id)

    try:
        mat_type = MatlType(properties["_type"])
    except (KeyError, ValueError):
        raise VoxError(ErrorKind.INVALID_MATL_TYPE, properties.get("_type")) from None

    values = {}
    for attr, key in MATL_FLOAT_KEYS:
        if key in properties:
            values[attr] = _parse_matl_float(key, properties[key])

    weight = values.get("weight")
    if weight is not None and not 0.0 <= weight <= 1.0:
        raise VoxError(ErrorKind.INVALID_MATL_PROPERTY, detail=f"_weight={weight}")

    flux = properties.get("_flux")
    if flux is not None:
        if not _UINT_RE.fullmatch(flux) or int(flux) > 0xFFFFFFFF:
            raise VoxError(ErrorKind.INVALID_MATL_PROPERTY, detail=f"_flux={flux!r}")
        values["flux"] = int(flux)

    plastic = _parse_flag(properties.get("_plastic"), ErrorKind.INVALID_MATL_PROPERTY)
    reader.expect_end()

    return Matl(id=matl_id, mat_type=mat_type, plastic=plastic, **values)


def encode_matl(chunk: Matl) -> bytes:
    properties = {"_type": chunk.mat_type.value}
    for attr, key in MATL_FLOAT_KEYS:
        value = getattr(chunk, attr)
        if value is not None:
            properties[key] = format_float(value)
    if chunk.flux is not None:
        properties["_flux"] = str(chunk.flux)
    if chunk.plastic:
        properties["_plastic"] = "1"

    writer = ByteWriter().i32(chunk.id)
    write_dict(writer, properties)
    return writer.getvalue()


# ------
#  nTRN
# ------

def _parse_translation(text: str) -> Tuple[int, int, int]:
    match = _TRANSLATION_RE.fullmatch(text)
    if match is None:
        raise VoxError(ErrorKind.INVALID_TRN_PROPERTY, detail=f"_t={text!r}")
    values = tuple(int(v) for v in match.groups())
    if any(not _I32_MIN <= v <= _I32_MAX for v in values):
        raise VoxError(ErrorKind.INVALID_TRN_PROPERTY, detail=f"_t={text!r}")
    return values


def _parse_rotation(text: str) -> Rotation:
    if not _UINT_RE.fullmatch(text) or int(text) > 0xFF:
        raise VoxError(ErrorKind.INVALID_TRN_PROPERTY, detail=f"_r={text!r}")
    rotation = rotation_from_byte(int(text))
    if rotation is None:
        raise VoxError(ErrorKind.INVALID_TRN_PROPERTY, detail=f"_r={text!r}")
    return rotation


def decode_ntrn(payload: bytes) -> TransformNode:
    reader = ByteReader(payload)
    node_id = reader.u32()
    attributes = read_dict(reader)

    name = attributes.get("_name")
    is_hidden = _parse_flag(attributes.get("_hidden"), ErrorKind.INVALID_TRN_HIDDEN)

    child_node_id = reader.u32()

    reserved = reader.i32()
    if reserved != -1:
        raise VoxError(ErrorKind.INVALID_TRN_RESERVED, reserved)

    layer_id = reader.i32()
    if layer_id < -1:
        raise VoxError(ErrorKind.INVALID_LAYR_ID, layer_id)

    num_frames = reader.i32()
    if num_frames != 1:
        raise VoxError(ErrorKind.INVALID_TRN_FRAMES, num_frames)

    frame = read_dict(reader)
    reader.expect_end()

    translation = (0, 0, 0)
    if "_t" in frame:
        translation = _parse_translation(frame["_t"])

    rotation = Rotation.identity()
    if "_r" in frame:
        rotation = _parse_rotation(frame["_r"])

    return TransformNode(
        node_id=node_id,
        child_node_id=child_node_id,
        name=name,
        is_hidden=is_hidden,
        layer_id=None if layer_id == -1 else layer_id,
        rotation=rotation,
        translation=translation,
    )


def encode_ntrn(chunk: TransformNode) -> bytes:
    attributes = {}
    if chunk.name is not None:
        attributes["_name"] = chunk.name
    if chunk.is_hidden:
        attributes["_hidden"] = "1"

    frame = {}
    if not chunk.rotation.is_identity():
        frame["_r"] = str(rotation_to_byte(chunk.rotation))
    if tuple(chunk.translation) != (0, 0, 0):
        frame["_t"] = "{} {} {}".format(*chunk.translation)

    writer = ByteWriter().u32(chunk.node_id)
    write_dict(writer, attributes)
    writer.u32(chunk.child_node_id)
    writer.i32(-1)  # reserved
    writer.i32(-1 if chunk.layer_id is None else chunk.layer_id)
    writer.i32(1)  # num frames
    write_dict(writer, frame)
    return writer.getvalue()


# ------
#  nGRP
# ------

def decode_ngrp(payload: bytes) -> GroupNode:
    reader = ByteReader(payload)
    node_id = reader.u32()
    attributes = read_dict(reader)
    count = reader.u32()
    child_nodes = [reader.u32() for _ in range(count)]
    reader.expect_end()
    return GroupNode(node_id=node_id, child_nodes=child_nodes, attributes=attributes)


def encode_ngrp(chunk: GroupNode) -> bytes:
    writer = ByteWriter().u32(chunk.node_id)
    write_dict(writer, chunk.attributes)
    writer.u32(len(chunk.child_nodes))
    for child_id in chunk.child_nodes:
        writer.u32(child_id)
    return writer.getvalue()


# ------
#  nSHP
# ------

def decode_nshp(payload: bytes) -> ShapeNode:
    reader = ByteReader(payload)
    node_id = reader.u32()
    attributes = read_dict(reader)

    num_models = reader.u32()
    if num_models != 1:
        raise VoxError(ErrorKind.INVALID_SHP_MODEL_COUNT, num_models)

    model_id = reader.u32()
    model_attributes = read_dict(reader)
    reader.expect_end()
    return ShapeNode(
        node_id=node_id,
        model_id=model_id,
        attributes=attributes,
        model_attributes=model_attributes,
    )


def encode_nshp(chunk: ShapeNode) -> bytes:
    writer = ByteWriter().u32(chunk.node_id)
    write_dict(writer, chunk.attributes)
    writer.u32(1)  # num models
    writer.u32(chunk.model_id)
    write_dict(writer, chunk.model_attributes)
    return writer.getvalue()


# ------
#  LAYR
# ------

def decode_layr(payload: bytes) -> Layr:
    reader = ByteReader(payload)
    layer_id = reader.u32()
    attributes = read_dict(reader)

    reserved = reader.i32()
    if reserved != -1:
        raise VoxError(ErrorKind.INVALID_LAYR_RESERVED, reserved)
    reader.expect_end()

    # MagicaVoxel writes "_hidden"; the published format notes say "_is_hidden".
    hidden = attributes.get("_hidden", attributes.get("_is_hidden"))
    return Layr(
        id=layer_id,
        name=attributes.get("_name"),
        is_hidden=_parse_flag(hidden, ErrorKind.INVALID_LAYR_PROPERTY),
    )


def encode_layr(chunk: Layr) -> bytes:
    attributes = {}
    if chunk.name is not None:
        attributes["_name"] = chunk.name
    if chunk.is_hidden:
        attributes["_hidden"] = "1"

    writer = ByteWriter().u32(chunk.id)
    write_dict(writer, attributes)
    writer.i32(-1)  # reserved
    return writer.getvalue()


# ----------
#  Dispatch
# ----------

CHUNK_CODECS: Dict[bytes, Tuple[Callable[[bytes], Chunk], Callable]] = {
    Pack.TAG: (decode_pack, encode_pack),
    Size.TAG: (decode_size, encode_size),
    Xyzi.TAG: (decode_xyzi, encode_xyzi),
    Rgba.TAG: (decode_rgba, encode_rgba),
    Matt.TAG: (decode_matt, encode_matt),
    TransformNode.TAG: (decode_ntrn, encode_ntrn),
    GroupNode.TAG: (decode_ngrp, encode_ngrp),
    ShapeNode.TAG: (decode_nshp, encode_nshp),
    Matl.TAG: (decode_matl, encode_matl),
    Layr.TAG: (decode_layr, encode_layr),
}


def decode_chunk(tag: bytes, payload: bytes) -> Chunk:
    """Decode the payload of a chunk with the given tag.

    Args:
        tag: 4-byte chunk tag
        payload: Chunk payload bytes

    Returns:
        The typed chunk

    Raises:
        VoxError: UNKNOWN_CHUNK for tags outside the known set, or the
            validation error of the tag's decoder
    """
    codec = CHUNK_CODECS.get(bytes(tag))
    if codec is None:
        raise VoxError(ErrorKind.UNKNOWN_CHUNK, bytes(tag))
    return codec[0](payload)


def encode_chunk(chunk: Chunk) -> bytes:
    """Encode the payload of a typed chunk."""
    codec = CHUNK_CODECS.get(getattr(chunk, "TAG", None))
    if codec is None:
        raise TypeError(f"Not a chunk: {chunk!r}")
    return codec[1](chunk)
