"""
Command-Line Interface

CLI for growing or deriving plants and exporting their meshes.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from plant_policies import GrowthPolicy, MeshSynthesisPolicy, OutputPolicy
from .api import grow_plant, derive_plant, synthesize_mesh, export_mesh, make_run_dir, write_json, save_plant


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plantgen",
        description="Procedural plant generator - grow plants and export their meshes",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Grow command
    grow_parser = subparsers.add_parser("grow", help="Grow a plant toward the light")
    grow_parser.add_argument(
        "--cycles", "-c",
        type=int,
        default=5,
        help="Number of growth cycles (default: 5)",
    )
    grow_parser.add_argument(
        "--nodes", "-n",
        type=int,
        default=4,
        help="Maximum nodes per stem per cycle (default: 4)",
    )
    grow_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Root seed for reproducibility",
    )
    grow_parser.add_argument(
        "--policy",
        type=str,
        default=None,
        help="JSON file with growth policy fields (overridden by flags)",
    )
    grow_parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar",
    )

    # Derive command
    derive_parser = subparsers.add_parser("derive", help="Build a plant from a derivation tree")
    derive_parser.add_argument(
        "--derivation", "-d",
        type=str,
        required=True,
        help="Path to a derivation tree JSON file",
    )

    # Common arguments for all commands
    for p in [grow_parser, derive_parser]:
        p.add_argument(
            "--output", "-O",
            type=str,
            default="./output",
            help="Output directory (default: ./output)",
        )
        p.add_argument(
            "--format", "-f",
            type=str,
            choices=["obj", "ply", "glb", "stl"],
            default="obj",
            help="Mesh file format (default: obj)",
        )
        p.add_argument(
            "--no-leaves",
            action="store_true",
            help="Leave leaves out of the mesh",
        )
        p.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Enable verbose output",
        )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "grow":
        plant, report = run_grow(args)
    else:
        plant, report = run_derive(args)

    output_policy = OutputPolicy(output_dir=args.output, file_format=args.format)
    run_dir = make_run_dir(output_policy)

    mesh, mesh_report = synthesize_mesh(plant, MeshSynthesisPolicy(include_leaves=not args.no_leaves))
    paths, export_report = export_mesh(mesh, output_policy, run_dir)
    report.merge(mesh_report)
    report.merge(export_report)
    report.metadata["mesh"] = mesh_report.metadata
    report.metadata["files"] = export_report.metadata["files"]
    if not paths:
        report.add_error(f"No mesh written to {run_dir}")

    save_plant(plant, "plant.json", output_policy, run_dir)
    write_json(report, "report.json", output_policy, run_dir)

    print(f"Stems: {plant.stem_count()}  Vertices: {mesh.get_vertex_count()}  "
          f"Triangles: {mesh.get_index_count() // 3}")
    for warning in report.warnings:
        print(f"Warning: {warning}")
    for error in report.errors:
        print(f"Error: {error}")
    print(f"Output: {run_dir}")
    return 0 if report.success else 1


def run_grow(args):
    """Run the grow command."""
    policy_fields = {}
    if args.policy:
        with open(args.policy) as f:
            policy_fields = json.load(f)
    policy = GrowthPolicy.from_dict(policy_fields)
    policy.cycles = args.cycles
    policy.nodes_per_cycle = args.nodes
    policy.show_progress = args.progress
    if args.seed is not None:
        policy.seed = args.seed

    print(f"Growing plant for {policy.cycles} cycles...")
    return grow_plant(growth_policy=policy)


def run_derive(args):
    """Run the derive command."""
    with open(args.derivation) as f:
        derivation = json.load(f)
    print(f"Deriving plant from {args.derivation}...")
    return derive_plant(derivation)


if __name__ == "__main__":
    sys.exit(main())
