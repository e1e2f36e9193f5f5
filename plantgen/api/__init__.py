"""High-level API for growing plants and exporting their meshes."""

from .generate import grow_plant, derive_plant, synthesize_mesh
from .export import (
    to_trimesh,
    split_by_material,
    make_run_dir,
    save_mesh,
    write_json,
    save_plant,
    export_mesh,
)

__all__ = [
    "grow_plant",
    "derive_plant",
    "synthesize_mesh",
    "to_trimesh",
    "split_by_material",
    "make_run_dir",
    "save_mesh",
    "write_json",
    "save_plant",
    "export_mesh",
]
