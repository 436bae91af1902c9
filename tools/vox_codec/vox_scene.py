"""Assembly of a VoxScene from the top-level chunks of a .vox file.

The chunk stream is folded in a single forward pass:

- SIZE and XYZI strictly alternate; each pair becomes one Model.
- RGBA replaces the palette colors, MATT/MATL replace palette materials.
- LAYR fills the layer table.
- nTRN/nGRP/nSHP are collected by node id and resolved into a tree from
  node 0 once the stream ends.

Chunks that real-world producers emit but that carry nothing we can use
(unknown tags, MATL for palette slot 0 or 256) are skipped and recorded in
SceneAssembler.skipped. Every other failure aborts assembly.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Union

from vox_chunks import decode_chunk
from vox_errors import ErrorKind, VoxError
from vox_materials import matl_to_material, matt_to_material
from vox_palette import DEFAULT_PALETTE
from vox_types import (
    Chunk,
    Group,
    GroupNode,
    Layer,
    Layr,
    Material,
    Matl,
    Matt,
    Model,
    Pack,
    RawContainer,
    Rgba,
    SceneNode,
    Shape,
    ShapeNode,
    Size,
    TransformNode,
    VoxScene,
    Xyzi,
)

SceneGraphChunk = Union[TransformNode, GroupNode, ShapeNode]


@dataclass
class SkippedChunk:
    """A chunk that was ignored during assembly."""

    index: int
    tag: bytes
    reason: str


def is_tolerated(error: VoxError) -> bool:
    """Return True if a chunk failing with this error may be skipped."""
    return (
        error.matches(ErrorKind.UNKNOWN_CHUNK)
        or error.matches(ErrorKind.INVALID_MATL_ID, 0)
        or error.matches(ErrorKind.INVALID_MATL_ID, 256)
    )


class SceneAssembler:
    """Builds a VoxScene from a stream of chunks."""

    # Bounds recursion when resolving the scene tree
    MAX_SCENE_DEPTH = 256
    # MagicaVoxel uses a handful of layers; this only guards the layer table
    MAX_LAYER_ID = 0xFFFF

    def __init__(self):
        self.palette: List[Material] = [Material(rgba=color) for color in DEFAULT_PALETTE]
        self.models: List[Model] = []
        self.layers: List[Layer] = []
        self.nodes: Dict[int, SceneGraphChunk] = {}
        self.skipped: List[SkippedChunk] = []
        self._pending_size: Optional[Size] = None
        self._index = 0
        self._visited: Set[int] = set()

    def feed(self, container: RawContainer):
        """Decode one top-level container and apply it.

        Raises:
            VoxError: If the chunk fails to decode with a non-tolerated error
        """
        index = self._index
        self._index += 1

        try:
            chunk = decode_chunk(container.tag, container.payload)
        except VoxError as e:
            if not is_tolerated(e):
                raise
            self.skipped.append(SkippedChunk(index=index, tag=container.tag, reason=str(e)))
            return

        self.add_chunk(chunk)

    def add_chunk(self, chunk: Chunk):
        """Apply one decoded chunk to the assembly state."""
        if isinstance(chunk, Size):
            if self._pending_size is not None:
                raise VoxError(ErrorKind.NON_ALTERNATING_MODEL, detail="SIZE follows SIZE")
            self._pending_size = chunk

        elif isinstance(chunk, Xyzi):
            size = self._pending_size
            if size is None:
                raise VoxError(ErrorKind.NON_ALTERNATING_MODEL, detail="XYZI without SIZE")
            self.models.append(Model(size=(size.x, size.y, size.z), voxels=list(chunk.voxels)))
            self._pending_size = None

        elif isinstance(chunk, Rgba):
            for material, color in zip(self.palette, chunk.colors):
                material.rgba = color

        elif isinstance(chunk, (Matt, Matl)):
            # Older MagicaVoxel versions write a material for the empty slot 0
            if chunk.id == 0:
                return
            convert = matt_to_material if isinstance(chunk, Matt) else matl_to_material
            self.palette[chunk.id - 1].mat_type = convert(chunk)

        elif isinstance(chunk, Layr):
            self._set_layer(chunk)

        elif isinstance(chunk, (TransformNode, GroupNode, ShapeNode)):
            # Duplicate ids: the later chunk replaces the earlier one
            self.nodes[chunk.node_id] = chunk

        elif isinstance(chunk, Pack):
            pass

        else:
            raise TypeError(f"Not a chunk: {chunk!r}")

    def _set_layer(self, layr: Layr):
        if layr.id > self.MAX_LAYER_ID:
            raise VoxError(ErrorKind.INVALID_LAYR_ID, layr.id)
        while len(self.layers) <= layr.id:
            self.layers.append(Layer())
        layer = self.layers[layr.id]
        layer.name = layr.name or ""
        layer.is_hidden = layr.is_hidden

    def finish(self) -> VoxScene:
        """Resolve the scene graph and return the assembled scene.

        Raises:
            VoxError: INVALID_SCENE if the graph references missing nodes or
                models, reaches a transform node twice (cycles, shared
                subtrees), or its root is not a transform node
        """
        if not self.nodes:
            # Files from before scene graph support hold at most one model
            node_type = Shape(0) if self.models else Group()
            graph = SceneNode(node_type=node_type, layer_id=0)
        else:
            self._visited = set()
            graph = self._resolve(0, 0)

        return VoxScene(
            palette=self.palette,
            models=self.models,
            graph=graph,
            layers=self.layers,
        )

    def _resolve(self, node_id: int, depth: int) -> SceneNode:
        if depth > self.MAX_SCENE_DEPTH:
            raise VoxError(ErrorKind.INVALID_SCENE, detail=f"nesting deeper than {self.MAX_SCENE_DEPTH}")

        transform = self.nodes.get(node_id)
        if not isinstance(transform, TransformNode):
            raise VoxError(ErrorKind.INVALID_SCENE, detail=f"node {node_id} is not a transform node")

        # Each transform has exactly one owner
        if node_id in self._visited:
            raise VoxError(ErrorKind.INVALID_SCENE, detail=f"transform {node_id} is referenced more than once")
        self._visited.add(node_id)

        child = self.nodes.get(transform.child_node_id)
        if isinstance(child, GroupNode):
            children = []
            for child_id in child.child_nodes:
                children.append(self._resolve(child_id, depth + 1))
            node_type = Group(children)
        elif isinstance(child, ShapeNode):
            if child.model_id >= len(self.models):
                raise VoxError(
                    ErrorKind.INVALID_SCENE,
                    detail=f"shape {child.node_id} references model {child.model_id} of {len(self.models)}",
                )
            node_type = Shape(child.model_id)
        else:
            raise VoxError(
                ErrorKind.INVALID_SCENE,
                detail=f"transform {node_id} references missing node {transform.child_node_id}",
            )

        return SceneNode(
            node_type=node_type,
            rotation=transform.rotation,
            translation=tuple(transform.translation),
            layer_id=transform.layer_id,
        )

    def assemble(self, containers: Iterable[RawContainer]) -> VoxScene:
        """Feed every container and return the finished scene."""
        for container in containers:
            self.feed(container)
        return self.finish()


def assemble_scene(containers: Iterable[RawContainer]) -> VoxScene:
    """Assemble a VoxScene from the top-level containers of a file."""
    return SceneAssembler().assemble(containers)
