"""Type definitions for the MagicaVoxel .vox format.

Two representations live here:

- Chunk types (Pack, Size, Xyzi, ...) mirror the on-disk chunks one-to-one.
- Scene types (VoxScene, Model, SceneNode, Material, Layer) describe the
  assembled scene, which is what most callers want to work with.

Note that z is the gravity direction throughout.
"""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Tuple, Union

Color = Tuple[int, int, int, int]
Voxel = Tuple[int, int, int, int]


@dataclass
class RawContainer:
    """Generic tag + payload + children container. Payload is not decoded."""

    tag: bytes
    payload: bytes = b""
    children: List["RawContainer"] = field(default_factory=list)


# ----------
#  ROTATION
# ----------

class RowOrder(Enum):
    """Column holding the nonzero entry of each matrix row."""

    ONE_TWO_THREE = (0, 1, 2)
    ONE_THREE_TWO = (0, 2, 1)
    TWO_ONE_THREE = (1, 0, 2)
    TWO_THREE_ONE = (1, 2, 0)
    THREE_ONE_TWO = (2, 0, 1)
    THREE_TWO_ONE = (2, 1, 0)


@dataclass(frozen=True)
class Rotation:
    """Signed 3x3 permutation matrix (rotation and/or mirror).

    Stored as a row order plus one negation flag per row, so no
    non-permutation matrix can be represented. For example
    Rotation(RowOrder.TWO_THREE_ONE, False, True, False) is:

         0  1  0
         0  0 -1
         1  0  0
    """

    order: RowOrder = RowOrder.ONE_TWO_THREE
    neg_row1: bool = False
    neg_row2: bool = False
    neg_row3: bool = False

    @classmethod
    def identity(cls) -> "Rotation":
        return cls()

    @classmethod
    def from_matrix(cls, rows) -> "Rotation":
        """Build a rotation from a 3x3 row-major matrix.

        Args:
            rows: Three rows of three integers

        Returns:
            Rotation equal to the matrix

        Raises:
            ValueError: If the matrix is not a signed permutation matrix
        """
        rows = [list(r) for r in rows]
        if len(rows) != 3 or any(len(r) != 3 for r in rows):
            raise ValueError("Rotation matrix must be 3x3")

        columns = []
        negated = []
        for row in rows:
            nonzero = [i for i, v in enumerate(row) if v != 0]
            if len(nonzero) != 1 or row[nonzero[0]] not in (1, -1):
                raise ValueError(f"Not a signed permutation row: {row}")
            columns.append(nonzero[0])
            negated.append(row[nonzero[0]] == -1)

        try:
            order = RowOrder(tuple(columns))
        except ValueError:
            raise ValueError(f"Rows share a column: {rows}") from None

        return cls(order, negated[0], negated[1], negated[2])

    def matrix(self) -> Tuple[int, ...]:
        """Return the matrix as a flat row-major 9-tuple."""
        signs = (
            -1 if self.neg_row1 else 1,
            -1 if self.neg_row2 else 1,
            -1 if self.neg_row3 else 1,
        )
        values = [0] * 9
        for row, column in enumerate(self.order.value):
            values[row * 3 + column] = signs[row]
        return tuple(values)

    def apply_to(self, vector: Tuple[int, int, int]) -> Tuple[int, int, int]:
        """Multiply the matrix with a column vector."""
        m = self.matrix()
        x, y, z = vector
        return (
            m[0] * x + m[1] * y + m[2] * z,
            m[3] * x + m[4] * y + m[5] * z,
            m[6] * x + m[7] * y + m[8] * z,
        )

    def is_identity(self) -> bool:
        return (
            self.order is RowOrder.ONE_TWO_THREE
            and not (self.neg_row1 or self.neg_row2 or self.neg_row3)
        )


# --------
#  Chunks
# --------

class MattType(IntEnum):
    """Material type stored in the legacy MATT chunk."""
    DIFFUSE = 0
    METAL = 1
    GLASS = 2
    EMISSIVE = 3


class MatlType(Enum):
    """Material type stored in the `_type` key of a MATL chunk."""
    DIFFUSE = "_diffuse"
    METAL = "_metal"
    GLASS = "_glass"
    EMIT = "_emit"
    BLEND = "_blend"
    MEDIA = "_media"


@dataclass
class Pack:
    """PACK chunk: number of models (deprecated, informational only)."""
    TAG = b"PACK"

    num_models: int


@dataclass
class Size:
    """SIZE chunk: dimensions of the model given by the next XYZI chunk."""
    TAG = b"SIZE"

    x: int
    y: int
    z: int


@dataclass
class Xyzi:
    """XYZI chunk: the voxels of one model as (x, y, z, color_index)."""
    TAG = b"XYZI"

    voxels: List[Voxel] = field(default_factory=list)


@dataclass
class Rgba:
    """RGBA chunk: the 255 palette colors (slot 0 is never stored)."""
    TAG = b"RGBA"

    colors: List[Color] = field(default_factory=list)


@dataclass
class Matt:
    """MATT chunk: legacy palette material, superseded by MATL."""
    TAG = b"MATT"

    id: int
    matt_type: MattType
    weight: float = 1.0
    plastic: Optional[float] = None
    roughness: Optional[float] = None
    specular: Optional[float] = None
    ior: Optional[float] = None
    attenuation: Optional[float] = None
    power: Optional[float] = None
    glow: Optional[float] = None
    is_total_power: bool = False


@dataclass
class Matl:
    """MATL chunk: palette material. Absent properties are None."""
    TAG = b"MATL"

    id: int
    mat_type: MatlType
    weight: Optional[float] = None
    rough: Optional[float] = None
    spec: Optional[float] = None
    ior: Optional[float] = None
    att: Optional[float] = None
    flux: Optional[int] = None
    density: Optional[float] = None
    alpha: Optional[float] = None
    emit: Optional[float] = None
    ldr: Optional[float] = None
    metal: Optional[float] = None
    plastic: bool = False


@dataclass
class TransformNode:
    """nTRN chunk: transform node with a single frame."""
    TAG = b"nTRN"

    node_id: int
    child_node_id: int
    name: Optional[str] = None
    is_hidden: bool = False
    layer_id: Optional[int] = None
    rotation: Rotation = field(default_factory=Rotation)
    translation: Tuple[int, int, int] = (0, 0, 0)


@dataclass
class GroupNode:
    """nGRP chunk: group node listing its child transform node ids."""
    TAG = b"nGRP"

    node_id: int
    child_nodes: List[int] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass
class ShapeNode:
    """nSHP chunk: shape node referencing exactly one model."""
    TAG = b"nSHP"

    node_id: int
    model_id: int
    attributes: Dict[str, str] = field(default_factory=dict)
    model_attributes: Dict[str, str] = field(default_factory=dict)


@dataclass
class Layr:
    """LAYR chunk: an editing layer."""
    TAG = b"LAYR"

    id: int
    name: Optional[str] = None
    is_hidden: bool = False


Chunk = Union[Pack, Size, Xyzi, Rgba, Matt, Matl, TransformNode, GroupNode, ShapeNode, Layr]


# -----------
#  Materials
# -----------

# Field defaults are the values absent MATL keys resolve to (see vox_materials).

@dataclass(frozen=True)
class DiffuseMaterial:
    pass


@dataclass(frozen=True)
class MetalMaterial:
    rough: float = 0.0
    # Offset from 1.0: 0.14 means an actual IOR of 1.14
    ior: float = 0.0
    metal: float = 0.0


@dataclass(frozen=True)
class GlassMaterial:
    rough: float = 0.0
    ior: float = 0.0
    weight: float = 0.0


@dataclass(frozen=True)
class EmitMaterial:
    emit: float = 0.0
    flux: int = 1
    ldr: float = 0.0


@dataclass(frozen=True)
class BlendMaterial:
    """Blends between metal and glass."""
    rough: float = 0.0
    metal: float = 0.0
    ior: float = 0.0
    alpha: float = 0.0


@dataclass(frozen=True)
class MediaMaterial:
    """Participating media (clouds, fog)."""
    rough: float = 0.0
    ior: float = 0.0
    density: float = 0.0


MaterialType = Union[
    DiffuseMaterial, MetalMaterial, GlassMaterial, EmitMaterial, BlendMaterial, MediaMaterial
]


@dataclass
class Material:
    """One palette entry: a color plus a material type."""

    rgba: Color
    mat_type: MaterialType = field(default_factory=DiffuseMaterial)


# -------
#  Scene
# -------

@dataclass
class Model:
    """A voxel model.

    Color indices reference the palette with an offset of one:
    voxel (x, y, z, i) uses scene.palette[i - 1]. Index 0 is invalid.
    """

    size: Tuple[int, int, int]
    voxels: List[Voxel] = field(default_factory=list)


@dataclass
class Layer:
    name: str = ""
    is_hidden: bool = False


@dataclass
class Group:
    """Scene node type holding child nodes."""
    children: List["SceneNode"] = field(default_factory=list)


@dataclass
class Shape:
    """Scene node type placing the model at scene.models[model_id]."""
    model_id: int


@dataclass
class SceneNode:
    """A node in the scene tree (an nTRN merged with its nGRP or nSHP)."""

    node_type: Union[Group, Shape]
    rotation: Rotation = field(default_factory=Rotation)
    translation: Tuple[int, int, int] = (0, 0, 0)
    layer_id: Optional[int] = None


@dataclass
class VoxScene:
    """The scene described by a .vox file.

    Palette slot 0 (the empty voxel) is not stored, so palette[0] is
    on-disk slot 1 and the palette always holds 255 entries.
    """

    palette: List[Material]
    models: List[Model] = field(default_factory=list)
    graph: SceneNode = field(default_factory=lambda: SceneNode(Group()))
    layers: List[Layer] = field(default_factory=list)
