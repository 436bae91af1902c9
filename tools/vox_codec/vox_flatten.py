"""Conversion of a VoxScene back into an ordered list of chunks.

Chunk order follows what MagicaVoxel writes:
  1. SIZE + XYZI per model
  2. RGBA
  3. Scene graph (nTRN, then nGRP or nSHP), depth-first pre-order
  4. LAYR per layer
  5. MATL per palette slot 1-255

No PACK chunk is written; current readers do not need it.
"""
from typing import List

from vox_materials import material_to_matl
from vox_types import (
    Chunk,
    Group,
    GroupNode,
    Layr,
    Rgba,
    SceneNode,
    ShapeNode,
    Size,
    TransformNode,
    VoxScene,
    Xyzi,
)


class SceneFlattener:
    """Flattens a VoxScene into chunks. Node ids are assigned from 0."""

    def __init__(self):
        self._chunks: List[Chunk] = []
        self._next_id = 0

    def flatten(self, scene: VoxScene) -> List[Chunk]:
        """Return the chunks describing the scene.

        Args:
            scene: Scene to flatten; it is not modified

        Returns:
            List of typed chunks, ready for vox_container.write_file_raw
        """
        self._chunks = []
        self._next_id = 0

        for model in scene.models:
            self._chunks.append(Size(*model.size))
            self._chunks.append(Xyzi(list(model.voxels)))

        self._chunks.append(Rgba([material.rgba for material in scene.palette]))

        self._export_node(scene.graph)

        for layer_id, layer in enumerate(scene.layers):
            self._chunks.append(Layr(id=layer_id, name=layer.name, is_hidden=layer.is_hidden))

        for slot, material in enumerate(scene.palette, start=1):
            self._chunks.append(material_to_matl(slot, material.mat_type))

        return self._chunks

    def _take_id(self) -> int:
        node_id = self._next_id
        self._next_id += 1
        return node_id

    def _export_node(self, node: SceneNode) -> int:
        """Write the chunks for node and its subtree; return its transform id."""
        node_id = self._take_id()
        self._chunks.append(
            TransformNode(
                node_id=node_id,
                child_node_id=node_id + 1,
                layer_id=node.layer_id,
                rotation=node.rotation,
                translation=tuple(node.translation),
            )
        )

        if isinstance(node.node_type, Group):
            # Placeholder until the child ids are known
            group = GroupNode(node_id=self._take_id())
            slot = len(self._chunks)
            self._chunks.append(group)

            child_ids = []
            for child in node.node_type.children:
                child_ids.append(self._export_node(child))
            self._chunks[slot] = GroupNode(node_id=group.node_id, child_nodes=child_ids)
        else:
            self._chunks.append(ShapeNode(node_id=self._take_id(), model_id=node.node_type.model_id))

        return node_id


def flatten_scene(scene: VoxScene) -> List[Chunk]:
    """Flatten a scene into chunks (see SceneFlattener)."""
    return SceneFlattener().flatten(scene)
