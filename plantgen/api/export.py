"""
Export utilities for synthesized plant meshes.

This module converts the per-material buffers into trimesh objects and
saves meshes, plant trees and reports with consistent naming conventions.
"""

from typing import Optional, Dict, Any, Union, Tuple, List
from pathlib import Path
import json
import time
import logging
import numpy as np
import trimesh

from plant_policies import OutputPolicy, OperationReport
from ..core.plant import Plant
from ..ops.mesh import Mesh

logger = logging.getLogger(__name__)


def to_trimesh(mesh: Mesh, buffer: Optional[int] = None) -> trimesh.Trimesh:
    """
    Convert synthesized buffers to a ``trimesh.Trimesh``.

    Parameters
    ----------
    mesh : Mesh
        Generated mesh (``generate`` must have run)
    buffer : int, optional
        Single material buffer to convert; all buffers by default

    Returns
    -------
    trimesh.Trimesh
        Unprocessed mesh keeping the synthesized vertex order
    """
    vertices = mesh.get_vertices(buffer)
    indices = mesh.get_indices(buffer).astype(np.int64)
    if buffer is not None and buffer > 0:
        # Indices of later buffers already point into the concatenated array
        indices = indices - sum(len(mesh.vertices[m]) for m in range(buffer))

    result = trimesh.Trimesh(
        vertices=vertices["position"].astype(np.float64),
        faces=indices.reshape(-1, 3),
        vertex_normals=vertices["normal"].astype(np.float64),
        process=False,
    )
    result.metadata["material_ids"] = list(mesh.material_ids)
    return result


def split_by_material(mesh: Mesh) -> Dict[int, trimesh.Trimesh]:
    """One trimesh per non-empty material buffer, keyed by material id."""
    return {
        mesh.get_material_id(m): to_trimesh(mesh, m)
        for m in range(mesh.get_mesh_count())
        if len(mesh.vertices[m]) > 0
    }


def make_run_dir(
    output_policy: Optional[OutputPolicy] = None,
    run_name: Optional[str] = None,
) -> Path:
    """
    Create a run directory for output artifacts.

    Parameters
    ----------
    output_policy : OutputPolicy, optional
        Policy controlling output location and naming
    run_name : str, optional
        Custom run name (overrides naming convention)

    Returns
    -------
    Path
        Path to the created run directory
    """
    if output_policy is None:
        output_policy = OutputPolicy()

    base_dir = Path(output_policy.output_dir)

    if run_name:
        run_dir = base_dir / run_name
    elif output_policy.naming_convention == "timestamped":
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        run_dir = base_dir / f"run_{timestamp}"
    else:
        run_dir = base_dir / "run"

    run_dir.mkdir(parents=True, exist_ok=True)

    return run_dir


def save_mesh(
    mesh: Union[Mesh, trimesh.Trimesh],
    name: str = "plant",
    output_policy: Optional[OutputPolicy] = None,
    run_dir: Optional[Path] = None,
) -> Path:
    """
    Save a mesh in the policy's file format.

    Parameters
    ----------
    mesh : Mesh or trimesh.Trimesh
        Mesh to save (plant meshes are converted with ``to_trimesh``)
    name : str
        File stem within the run directory
    output_policy : OutputPolicy, optional
        Policy controlling format and location
    run_dir : Path, optional
        Run directory (created if not provided)

    Returns
    -------
    Path
        Path to the saved file
    """
    if output_policy is None:
        output_policy = OutputPolicy()

    if run_dir is None:
        run_dir = make_run_dir(output_policy)

    if isinstance(mesh, Mesh):
        mesh = to_trimesh(mesh)

    output_path = run_dir / f"{name}.{output_policy.file_format}"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    mesh.export(str(output_path))
    logger.info(f"Saved mesh to {output_path}")

    return output_path


def write_json(
    data: Union[Dict[str, Any], OperationReport],
    rel_path: str,
    output_policy: Optional[OutputPolicy] = None,
    run_dir: Optional[Path] = None,
) -> Path:
    """
    Write JSON data to file.

    Parameters
    ----------
    data : dict or OperationReport
        Data to write (converted to dict if OperationReport)
    rel_path : str
        Relative path within run directory (e.g., "report.json")
    output_policy : OutputPolicy, optional
        Policy controlling output location
    run_dir : Path, optional
        Run directory (created if not provided)

    Returns
    -------
    Path
        Path to the saved file
    """
    if output_policy is None:
        output_policy = OutputPolicy()

    if run_dir is None:
        run_dir = make_run_dir(output_policy)

    output_path = run_dir / rel_path
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if hasattr(data, 'to_dict'):
        data = data.to_dict()

    with open(output_path, 'w') as f:
        json.dump(data, f, indent=2, default=str)

    logger.info(f"Saved JSON to {output_path}")

    return output_path


def save_plant(
    plant: Plant,
    rel_path: str = "plant.json",
    output_policy: Optional[OutputPolicy] = None,
    run_dir: Optional[Path] = None,
) -> Path:
    """Save the stem tree and registries as JSON."""
    data = {
        "stems": plant.to_dict(),
        "materials": [m.to_dict() for m in plant.materials.values()],
        "leaf_meshes": {str(k): g.to_dict() for k, g in plant.leaf_meshes.items()},
    }
    return write_json(data, rel_path, output_policy, run_dir)


def export_mesh(
    mesh: Mesh,
    output_policy: Optional[OutputPolicy] = None,
    run_dir: Optional[Path] = None,
    name: str = "plant",
) -> Tuple[List[Path], OperationReport]:
    """
    Save the combined mesh and one file per material.

    Returns
    -------
    paths : list of Path
        Written files, combined mesh first
    report : OperationReport
        Report listing the written files
    """
    if output_policy is None:
        output_policy = OutputPolicy()
    errors = output_policy.validate()
    if errors:
        raise ValueError(f"Invalid OutputPolicy: {'; '.join(errors)}")
    if run_dir is None:
        run_dir = make_run_dir(output_policy)

    report = OperationReport(
        operation="export_mesh",
        success=True,
        requested_policy=output_policy.to_dict(),
        effective_policy=output_policy.to_dict(),
        metadata={"run_dir": str(run_dir)},
    )

    paths = []
    if mesh.get_index_count() == 0:
        report.add_warning("Mesh has no triangles; nothing was exported")
    else:
        paths.append(save_mesh(mesh, name, output_policy, run_dir))
        parts = split_by_material(mesh)
        if len(parts) > 1:
            for material_id, part in parts.items():
                paths.append(save_mesh(part, f"{name}_material_{material_id}", output_policy, run_dir))

    report.metadata["files"] = [str(p) for p in paths]
    return paths, report


__all__ = [
    "to_trimesh",
    "split_by_material",
    "make_run_dir",
    "save_mesh",
    "write_json",
    "save_plant",
    "export_mesh",
]
