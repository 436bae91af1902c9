"""Tests for assembling a VoxScene from chunks."""
import struct
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from vox_chunks import encode_chunk
from vox_errors import ErrorKind, VoxError
from vox_palette import DEFAULT_PALETTE
from vox_scene import SceneAssembler, assemble_scene, is_tolerated
from vox_types import (
    DiffuseMaterial,
    EmitMaterial,
    Group,
    GroupNode,
    Layer,
    Layr,
    Matl,
    MatlType,
    Matt,
    MattType,
    MetalMaterial,
    Model,
    Pack,
    RawContainer,
    Rgba,
    Rotation,
    RowOrder,
    SceneNode,
    Shape,
    ShapeNode,
    Size,
    TransformNode,
    Xyzi,
)


def raw(chunk):
    return RawContainer(chunk.TAG, encode_chunk(chunk))


def assemble(*chunks):
    return assemble_scene([raw(c) for c in chunks])


def matl_container(matl_id, properties):
    payload = struct.pack("<iI", matl_id, len(properties))
    for key, value in properties.items():
        for text in (key, value):
            encoded = text.encode("utf-8")
            payload += struct.pack("<I", len(encoded)) + encoded
    return RawContainer(b"MATL", payload)


def single_model_graph(model_id=0):
    return [
        TransformNode(node_id=0, child_node_id=1),
        GroupNode(node_id=1, child_nodes=[2]),
        TransformNode(node_id=2, child_node_id=3, layer_id=0, translation=(1, 2, 3)),
        ShapeNode(node_id=3, model_id=model_id),
    ]


class TestModels:
    """SIZE/XYZI pairing."""

    def test_pairs_become_models(self):
        scene = assemble(
            Size(1, 2, 3), Xyzi([(0, 0, 0, 1)]),
            Size(4, 5, 6), Xyzi([(1, 1, 1, 2), (2, 2, 2, 3)]),
        )

        assert scene.models == [
            Model(size=(1, 2, 3), voxels=[(0, 0, 0, 1)]),
            Model(size=(4, 5, 6), voxels=[(1, 1, 1, 2), (2, 2, 2, 3)]),
        ]

    def test_size_size_xyzi(self):
        with pytest.raises(VoxError) as exc:
            assemble(Size(1, 1, 1), Size(1, 1, 1), Xyzi([]))
        assert exc.value.kind is ErrorKind.NON_ALTERNATING_MODEL

    def test_size_xyzi_xyzi(self):
        with pytest.raises(VoxError) as exc:
            assemble(Size(1, 1, 1), Xyzi([]), Xyzi([]))
        assert exc.value.kind is ErrorKind.NON_ALTERNATING_MODEL

    def test_xyzi_first(self):
        with pytest.raises(VoxError) as exc:
            assemble(Xyzi([]))
        assert exc.value.kind is ErrorKind.NON_ALTERNATING_MODEL

    def test_chunks_between_pair(self):
        """Other chunks may sit between SIZE and XYZI."""
        scene = assemble(Size(1, 1, 1), Pack(1), Xyzi([(0, 0, 0, 1)]))
        assert len(scene.models) == 1


class TestPalette:
    """RGBA and material chunks."""

    def test_default_palette(self):
        scene = assemble()

        assert len(scene.palette) == 255
        assert [m.rgba for m in scene.palette] == list(DEFAULT_PALETTE)
        assert all(m.mat_type == DiffuseMaterial() for m in scene.palette)

    def test_rgba_replaces_colors(self):
        colors = [(i, 0, 0, 255) for i in range(255)]
        scene = assemble(Rgba(colors))
        assert [m.rgba for m in scene.palette] == colors

    def test_matl_sets_slot(self):
        scene = assemble(Matl(id=3, mat_type=MatlType.METAL, metal=0.5))
        assert scene.palette[2].mat_type == MetalMaterial(metal=0.5)

    def test_matt_sets_slot(self):
        scene = assemble(Matt(id=10, matt_type=MattType.EMISSIVE, weight=0.5))
        assert scene.palette[9].mat_type == EmitMaterial(emit=0.5)

    def test_later_material_wins(self):
        scene = assemble(
            Matt(id=1, matt_type=MattType.METAL, weight=0.5),
            Matl(id=1, mat_type=MatlType.DIFFUSE),
        )
        assert scene.palette[0].mat_type == DiffuseMaterial()

    def test_material_zero_ignored(self):
        scene = assemble(Matl(id=0, mat_type=MatlType.METAL))
        assert all(m.mat_type == DiffuseMaterial() for m in scene.palette)

    def test_matl_256_skipped(self):
        assembler = SceneAssembler()
        scene = assembler.assemble([matl_container(256, {"_type": "_metal"})])

        assert all(m.mat_type == DiffuseMaterial() for m in scene.palette)
        assert len(assembler.skipped) == 1
        assert assembler.skipped[0].tag == b"MATL"
        assert assembler.skipped[0].index == 0

    def test_other_matl_id_fatal(self):
        with pytest.raises(VoxError) as exc:
            assemble_scene([matl_container(300, {"_type": "_metal"})])
        assert exc.value.matches(ErrorKind.INVALID_MATL_ID, 300)


class TestSkipping:
    """Tolerated chunk failures."""

    def test_unknown_chunk_skipped(self):
        assembler = SceneAssembler()
        scene = assembler.assemble([
            RawContainer(b"rOBJ", b"anything"),
            raw(Size(1, 1, 1)),
            raw(Xyzi([])),
        ])

        assert len(scene.models) == 1
        assert [s.tag for s in assembler.skipped] == [b"rOBJ"]

    def test_is_tolerated(self):
        assert is_tolerated(VoxError(ErrorKind.UNKNOWN_CHUNK, b"IMAP"))
        assert is_tolerated(VoxError(ErrorKind.INVALID_MATL_ID, 0))
        assert is_tolerated(VoxError(ErrorKind.INVALID_MATL_ID, 256))
        assert not is_tolerated(VoxError(ErrorKind.INVALID_MATL_ID, 257))
        assert not is_tolerated(VoxError(ErrorKind.INVALID_MATT_ID, 256))

    def test_decode_failure_fatal(self):
        with pytest.raises(VoxError) as exc:
            assemble_scene([RawContainer(b"SIZE", b"\x01")])
        assert exc.value.kind is ErrorKind.UNEXPECTED_EOF


class TestLayers:
    """LAYR chunks."""

    def test_layers_grow_to_id(self):
        scene = assemble(Layr(id=2, name="top", is_hidden=True))

        assert scene.layers == [Layer(), Layer(), Layer(name="top", is_hidden=True)]

    def test_layers_in_order(self):
        scene = assemble(Layr(id=0, name="a"), Layr(id=1, name="b"))
        assert [layer.name for layer in scene.layers] == ["a", "b"]

    def test_layer_id_limit(self):
        with pytest.raises(VoxError) as exc:
            assemble(Layr(id=SceneAssembler.MAX_LAYER_ID + 1))
        assert exc.value.kind is ErrorKind.INVALID_LAYR_ID


class TestSceneGraph:
    """Scene graph resolution."""

    def test_no_graph_single_model(self):
        scene = assemble(Size(1, 1, 1), Xyzi([(0, 0, 0, 1)]))
        assert scene.graph == SceneNode(Shape(0), layer_id=0)

    def test_no_graph_no_models(self):
        scene = assemble()
        assert scene.graph == SceneNode(Group(), layer_id=0)

    def test_resolves_tree(self):
        rotation = Rotation(RowOrder.ONE_THREE_TWO, False, False, True)
        scene = assemble(
            Size(1, 1, 1), Xyzi([]),
            Size(2, 2, 2), Xyzi([]),
            TransformNode(node_id=0, child_node_id=1),
            GroupNode(node_id=1, child_nodes=[2, 4]),
            TransformNode(node_id=2, child_node_id=3, layer_id=0, rotation=rotation),
            ShapeNode(node_id=3, model_id=1),
            TransformNode(node_id=4, child_node_id=5, translation=(0, 0, 9)),
            ShapeNode(node_id=5, model_id=0),
        )

        assert scene.graph == SceneNode(Group([
            SceneNode(Shape(1), rotation=rotation, layer_id=0),
            SceneNode(Shape(0), translation=(0, 0, 9)),
        ]))

    def test_node_chunks_in_any_order(self):
        graph = single_model_graph()
        scene = assemble(Size(1, 1, 1), Xyzi([]), *reversed(graph))

        child = scene.graph.node_type.children[0]
        assert child == SceneNode(Shape(0), translation=(1, 2, 3), layer_id=0)

    def test_shape_references_missing_model(self):
        with pytest.raises(VoxError) as exc:
            assemble(
                Size(1, 1, 1), Xyzi([]),
                Size(1, 1, 1), Xyzi([]),
                Size(1, 1, 1), Xyzi([]),
                *single_model_graph(model_id=5)
            )
        assert exc.value.kind is ErrorKind.INVALID_SCENE

    def test_root_must_be_transform(self):
        with pytest.raises(VoxError) as exc:
            assemble(GroupNode(node_id=0, child_nodes=[]))
        assert exc.value.kind is ErrorKind.INVALID_SCENE

    def test_missing_root(self):
        with pytest.raises(VoxError) as exc:
            assemble(TransformNode(node_id=1, child_node_id=2), GroupNode(node_id=2))
        assert exc.value.kind is ErrorKind.INVALID_SCENE

    def test_missing_child(self):
        with pytest.raises(VoxError) as exc:
            assemble(TransformNode(node_id=0, child_node_id=7))
        assert exc.value.kind is ErrorKind.INVALID_SCENE

    def test_group_child_must_be_transform(self):
        with pytest.raises(VoxError) as exc:
            assemble(
                Size(1, 1, 1), Xyzi([]),
                TransformNode(node_id=0, child_node_id=1),
                GroupNode(node_id=1, child_nodes=[2]),
                ShapeNode(node_id=2, model_id=0),
            )
        assert exc.value.kind is ErrorKind.INVALID_SCENE

    def test_cycle(self):
        with pytest.raises(VoxError) as exc:
            assemble(
                TransformNode(node_id=0, child_node_id=1),
                GroupNode(node_id=1, child_nodes=[0]),
            )
        assert exc.value.kind is ErrorKind.INVALID_SCENE

    def test_group_lists_child_twice(self):
        with pytest.raises(VoxError) as exc:
            assemble(
                Size(1, 1, 1), Xyzi([]),
                TransformNode(node_id=0, child_node_id=1),
                GroupNode(node_id=1, child_nodes=[2, 2]),
                TransformNode(node_id=2, child_node_id=3),
                ShapeNode(node_id=3, model_id=0),
            )
        assert exc.value.kind is ErrorKind.INVALID_SCENE

    def test_shared_subtrees_fail_fast(self):
        """Groups that each list the same child twice must not expand exponentially."""
        chunks = [Size(1, 1, 1), Xyzi([])]
        levels = 40
        for i in range(levels):
            chunks.append(TransformNode(node_id=2 * i, child_node_id=2 * i + 1))
            chunks.append(GroupNode(node_id=2 * i + 1, child_nodes=[2 * i + 2, 2 * i + 2]))
        chunks.append(TransformNode(node_id=2 * levels, child_node_id=2 * levels + 1))
        chunks.append(ShapeNode(node_id=2 * levels + 1, model_id=0))

        with pytest.raises(VoxError) as exc:
            assemble(*chunks)
        assert exc.value.kind is ErrorKind.INVALID_SCENE

    def test_two_transforms_share_group(self):
        with pytest.raises(VoxError) as exc:
            assemble(
                Size(1, 1, 1), Xyzi([]),
                TransformNode(node_id=0, child_node_id=1),
                GroupNode(node_id=1, child_nodes=[2, 3]),
                TransformNode(node_id=2, child_node_id=4),
                TransformNode(node_id=3, child_node_id=4),
                GroupNode(node_id=4, child_nodes=[5]),
                TransformNode(node_id=5, child_node_id=6),
                ShapeNode(node_id=6, model_id=0),
            )
        assert exc.value.kind is ErrorKind.INVALID_SCENE

    def test_assembler_finish_twice(self):
        assembler = SceneAssembler()
        for chunk in [Size(1, 1, 1), Xyzi([]), *single_model_graph()]:
            assembler.add_chunk(chunk)
        assert assembler.finish().graph == assembler.finish().graph

    def test_duplicate_node_id_last_wins(self):
        scene = assemble(
            Size(1, 1, 1), Xyzi([]),
            *single_model_graph(),
            TransformNode(node_id=2, child_node_id=3, translation=(7, 7, 7)),
        )

        assert scene.graph.node_type.children[0].translation == (7, 7, 7)
        assert scene.graph.node_type.children[0].layer_id is None
