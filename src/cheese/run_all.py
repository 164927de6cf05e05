#!/usr/bin/env python3
"""
Cheese - Orchestrator

Run the full pipeline for one configuration:
grid -> mesh -> connectivity/normals -> mesh slices -> grid rasters.

Usage:
    cheese-run --slices 20 --axis z --output outputs
    cheese-run --config my_cheese.json --variant approximate --policy deduplicated -v
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from cheese.common.config import (
    Axis, Config, MeshMetadata, NormalizationMode, SurfaceVariant, VertexPolicy,
)
from cheese.common.errors import CheeseError
from cheese.common.io import render_slice_png, save_mesh, save_raster_png, save_slices_csv
from cheese.common.mesh_ops import (
    IdAllocator, Mesh, build_connectivity, calculate_bbox, calculate_vertex_normals, compute_mesh_stats,
)
from cheese.common.voxel import ScalarField, create_sdf_grid
from cheese.marching import marching_cubes
from cheese.slicing import slice_grid, slice_mesh
from cheese.surfaces import make_cheese

logger = logging.getLogger(__name__)


def raster_indices(n_planes: int, count: int) -> List[int]:
    """Up to `count` evenly spread plane indices in 0..n_planes-1."""
    count = max(1, min(count, n_planes))
    return sorted(set(np.linspace(0, n_planes - 1, count).round().astype(int).tolist()))


def build_metadata(mesh: Mesh, config: Config) -> MeshMetadata:
    box = calculate_bbox(mesh)
    valid = box.is_valid()
    return MeshMetadata(
        mesh_id=mesh.id,
        name=mesh.name,
        n_vertices=mesh.n_vertices,
        n_triangles=mesh.n_faces,
        vertex_policy=config.vertex_policy.value,
        surface_variant=config.surface_variant.value,
        surface_area=mesh.surface_area(),
        bbox_min=tuple(box.min.tolist()) if valid else (0.0, 0.0, 0.0),
        bbox_max=tuple(box.max.tolist()) if valid else (0.0, 0.0, 0.0),
        generation_params={
            "pores_count": config.pores_count,
            "pores_radius": config.pores_radius,
            "cylinder_height": config.cylinder_height,
            "cylinder_radius": config.cylinder_radius,
            "seed": config.seed,
            "spacing": list(config.spacing),
        }
    )


def run_grid(config: Config) -> ScalarField:
    surface = make_cheese(
        config.surface_variant,
        config.pores_count,
        config.pores_radius,
        config.cylinder_height,
        config.cylinder_radius,
        seed=config.seed,
    )
    return create_sdf_grid(surface, config.domain_min, config.domain_max, config.spacing, workers=config.workers)


def run_mesh(field: ScalarField, config: Config, output_dir: Path,
             allocator: IdAllocator, mesh_format: str) -> Dict[str, Any]:
    mesh = marching_cubes(field, vertex_policy=config.vertex_policy, id_allocator=allocator)
    connectivity = build_connectivity(mesh)
    normals = calculate_vertex_normals(mesh, connectivity)

    stats = compute_mesh_stats(mesh)
    stats["mean_faces_per_vertex"] = float(connectivity.counts().mean()) if mesh.n_vertices else 0.0
    stats["n_zero_normals"] = int(np.count_nonzero(~normals.any(axis=1)))

    if mesh.n_faces:
        metadata = build_metadata(mesh, config)
        save_mesh(mesh, output_dir / "meshes" / f"cheese_{mesh.id}.{mesh_format}", metadata)
    else:
        logger.warning("Mesh is empty, nothing exported")
    return {"mesh": mesh, "stats": stats}


def run_mesh_slices(mesh: Mesh, config: Config, output_dir: Path, plots: bool) -> Dict[str, Any]:
    slices = slice_mesh(mesh, config.slices_count, config.slice_axis, workers=config.workers)
    n_rows = save_slices_csv(slices, output_dir / "slices" / "mesh_slices.csv")
    if plots:
        for s in slices:
            render_slice_png(s, output_dir / "slices" / f"slice_{s.index:03d}.png")
    return {
        "n_slices": len(slices),
        "n_segments": n_rows,
        "positions": [s.position for s in slices],
    }


def run_rasters(field: ScalarField, config: Config, output_dir: Path) -> Dict[str, Any]:
    axis = config.slice_axis
    indices = raster_indices(field.size[axis.value], config.slices_count)
    for index in indices:
        image = slice_grid(field, axis, index, config.normalization)
        save_raster_png(image, output_dir / "rasters" / f"{axis.name.lower()}_{index:04d}.png")
    return {"n_rasters": len(indices), "indices": indices, "normalization": config.normalization.value}


def run_all(config: Config, output_dir: Path, mesh_format: str = "glb", plots: bool = False) -> dict:
    """
    Run every stage, recording per-stage status.

    A failing stage is reported and the stages that need its output are
    skipped; independent stages still run.

    Returns:
        Summary dictionary
    """
    summary = {
        "timestamp": datetime.now().isoformat(),
        "config": config.to_dict(),
        "stages": {},
        "errors": []
    }
    allocator = IdAllocator()

    def stage(name: str, fn, *args):
        logger.info(f"\n--- Stage: {name} ---")
        try:
            result = fn(*args)
        except (CheeseError, ImportError, OSError, ValueError) as e:
            logger.error(f"Stage {name} failed: {e}")
            summary["stages"][name] = {"status": "error", "error": str(e)}
            summary["errors"].append({"stage": name, "error": str(e)})
            return None
        return result

    field = stage("grid", run_grid, config)
    if field is None:
        return summary
    summary["stages"]["grid"] = {
        "status": "success",
        "size": list(field.size),
        "min": field.min,
        "max": field.max,
    }

    mesh_result = stage("mesh", run_mesh, field, config, output_dir, allocator, mesh_format)
    if mesh_result is not None:
        summary["stages"]["mesh"] = {"status": "success", "stats": mesh_result["stats"]}
        slices = stage("mesh_slices", run_mesh_slices, mesh_result["mesh"], config, output_dir, plots)
        if slices is not None:
            summary["stages"]["mesh_slices"] = {"status": "success", **slices}

    rasters = stage("rasters", run_rasters, field, config, output_dir)
    if rasters is not None:
        summary["stages"]["rasters"] = {"status": "success", **rasters}

    return summary


def build_config(args: argparse.Namespace) -> Config:
    config = Config.from_json(args.config) if args.config else Config()
    if args.variant:
        config.surface_variant = SurfaceVariant(args.variant)
    if args.policy:
        config.vertex_policy = VertexPolicy(args.policy)
    if args.normalization:
        config.normalization = NormalizationMode(args.normalization)
    if args.axis:
        config.slice_axis = Axis.parse(args.axis)
    if args.slices is not None:
        config.slices_count = args.slices
    if args.pores is not None:
        config.pores_count = args.pores
    if args.seed is not None:
        config.seed = args.seed
    if args.spacing is not None:
        config.x_range = (config.x_range[0], config.x_range[1], args.spacing)
        config.y_range = (config.y_range[0], config.y_range[1], args.spacing)
        config.z_range = (config.z_range[0], config.z_range[1], args.spacing)
    if args.workers is not None:
        config.workers = args.workers
    if args.output is not None:
        config.output_dir = args.output
    config.validate()
    return config


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Cheese - generate, mesh and slice a porous cheese"
    )
    parser.add_argument("--config", "-c", type=Path, help="JSON config file")
    parser.add_argument("--variant", choices=[v.value for v in SurfaceVariant],
                        help="Cheese evaluation strategy")
    parser.add_argument("--policy", choices=[p.value for p in VertexPolicy],
                        help="Marching cubes vertex policy")
    parser.add_argument("--normalization", choices=[m.value for m in NormalizationMode],
                        help="Raster gray-level normalization")
    parser.add_argument("--axis", "-a", choices=["x", "y", "z"], help="Slicing axis")
    parser.add_argument("--slices", "-n", type=int, help="Number of slices")
    parser.add_argument("--pores", type=int, help="Number of pores")
    parser.add_argument("--seed", type=int, help="Random seed for pore placement")
    parser.add_argument("--spacing", type=float, help="Grid spacing on every axis")
    parser.add_argument("--workers", "-w", type=int, help="Thread pool size")
    parser.add_argument("--output", "-o", type=Path, help="Output directory")
    parser.add_argument("--format", "-f", default="glb", choices=["glb", "stl", "ply", "obj"],
                        help="Mesh export format")
    parser.add_argument("--plots", action="store_true", help="Render a PNG plot per mesh slice")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    args = parser.parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        config = build_config(args)
    except (CheeseError, ValueError, OSError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    output_dir = Path(config.output_dir)
    logger.info(f"Variant: {config.surface_variant.value}, policy: {config.vertex_policy.value}")
    logger.info(f"Slicing {config.slices_count} planes along {config.slice_axis.name}")
    logger.info(f"Output: {output_dir}")

    summary = run_all(config, output_dir, mesh_format=args.format, plots=args.plots)

    # Save summary
    summary_path = output_dir / "run_summary.json"
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    with open(summary_path, 'w') as f:
        json.dump(summary, f, indent=2)

    logger.info(f"\nSummary saved to: {summary_path}")

    n_success = sum(1 for s in summary["stages"].values() if s.get("status") == "success")
    n_errors = len(summary["errors"])

    logger.info(f"\n{'='*60}")
    logger.info(f"COMPLETE: {n_success} stages successful, {n_errors} errors")
    logger.info(f"{'='*60}")

    if n_errors > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
