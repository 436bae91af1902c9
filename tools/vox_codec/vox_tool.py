#!/usr/bin/env python3
"""Inspect and rewrite MagicaVoxel .vox files.

Usage:
    python vox_tool.py info <input> [-v]
    python vox_tool.py chunks <input>
    python vox_tool.py roundtrip <input> [-o <output>] [--check]

Examples:
    # Summarize a single file, listing skipped chunks
    python vox_tool.py info castle.vox -v

    # Rewrite every .vox file under a directory and verify the result
    python vox_tool.py roundtrip ./scenes/ -o ./output --check
"""
import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from vox_chunks import decode_chunk
from vox_container import read_file_raw
from vox_errors import VoxError
from vox_file import parse, serialize
from vox_scene import SceneAssembler
from vox_types import DiffuseMaterial, Group, SceneNode


def collect_files(input_arg: str) -> Optional[List[Path]]:
    """Return the .vox files named by input_arg, or None if it does not exist."""
    input_path = Path(input_arg)
    if input_path.is_file():
        return [input_path]
    if input_path.is_dir():
        return sorted(input_path.glob("**/*.vox"))
    return None


def count_nodes(node: SceneNode) -> int:
    if isinstance(node.node_type, Group):
        return 1 + sum(count_nodes(child) for child in node.node_type.children)
    return 1


def cmd_info(args) -> int:
    files = collect_files(args.input)
    if not files:
        print(f"No .vox files found: {args.input}", file=sys.stderr)
        return 1

    fail_count = 0
    for path in files:
        try:
            assembler = SceneAssembler()
            scene = assembler.assemble(read_file_raw(path.read_bytes()))
        except (OSError, VoxError) as e:
            print(f"Failed: {path} - {e}", file=sys.stderr)
            fail_count += 1
            continue

        voxel_count = sum(len(m.voxels) for m in scene.models)
        materials = sum(1 for m in scene.palette if not isinstance(m.mat_type, DiffuseMaterial))

        print(f"{path}:")
        print(f"  Models: {len(scene.models)} ({voxel_count} voxels)")
        print(f"  Scene nodes: {count_nodes(scene.graph)}")
        print(f"  Layers: {len(scene.layers)}")
        print(f"  Non-diffuse materials: {materials}")
        if assembler.skipped:
            print(f"  Skipped chunks: {len(assembler.skipped)}")
            if args.verbose:
                for skipped in assembler.skipped:
                    tag = skipped.tag.decode("ascii", errors="replace")
                    print(f"    #{skipped.index} {tag}: {skipped.reason}")

    return 0 if fail_count == 0 else 1


def cmd_chunks(args) -> int:
    try:
        containers = read_file_raw(Path(args.input).read_bytes())
    except (OSError, VoxError) as e:
        print(f"Failed: {args.input} - {e}", file=sys.stderr)
        return 1

    for index, container in enumerate(containers):
        tag = container.tag.decode("ascii", errors="replace")
        try:
            chunk = decode_chunk(container.tag, container.payload)
            status = type(chunk).__name__
        except VoxError as e:
            status = f"not decoded ({e})"
        print(f"{index:5d}  {tag}  {len(container.payload):8d} bytes  {status}")

    return 0


def cmd_roundtrip(args) -> int:
    files = collect_files(args.input)
    if not files:
        print(f"No .vox files found: {args.input}", file=sys.stderr)
        return 1

    os.makedirs(args.output, exist_ok=True)

    success_count = 0
    fail_count = 0

    for path in files:
        output_file = Path(args.output) / path.name
        try:
            scene = parse(path.read_bytes())
            data = serialize(scene)
            if args.check and parse(data) != scene:
                raise ValueError("rewritten scene differs from the input")
            output_file.write_bytes(data)
            if args.verbose:
                print(f"Rewrote: {path} -> {output_file}")
            success_count += 1
        except (OSError, ValueError) as e:
            print(f"Failed: {path} - {e}", file=sys.stderr)
            fail_count += 1

    total = success_count + fail_count
    print(f"\nRewrote {success_count}/{total} files to {args.output}")

    return 0 if fail_count == 0 else 1


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Inspect and rewrite MagicaVoxel .vox files"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    info = subparsers.add_parser("info", help="Summarize scenes")
    info.add_argument("input", help="Input .vox file or directory")
    info.add_argument("-v", "--verbose", action="store_true", help="List skipped chunks")
    info.set_defaults(func=cmd_info)

    chunks = subparsers.add_parser("chunks", help="List top-level chunks")
    chunks.add_argument("input", help="Input .vox file")
    chunks.set_defaults(func=cmd_chunks)

    roundtrip = subparsers.add_parser("roundtrip", help="Parse and re-serialize files")
    roundtrip.add_argument("input", help="Input .vox file or directory")
    roundtrip.add_argument(
        "-o", "--output",
        default="./output",
        help="Output directory (default: ./output)",
    )
    roundtrip.add_argument(
        "--check",
        action="store_true",
        help="Re-parse the output and compare it with the input scene",
    )
    roundtrip.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    roundtrip.set_defaults(func=cmd_roundtrip)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
