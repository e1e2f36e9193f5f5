"""
High-level entry points: grow or derive a plant and synthesize its mesh.

Every function returns its result together with an ``OperationReport``
carrying the requested and effective policies, warnings and metadata.
"""

from typing import Optional, Tuple, Union, Dict, Any
import logging

from plant_policies import GrowthPolicy, VolumePolicy, MeshSynthesisPolicy, OperationReport
from ..core.plant import Plant
from ..ops.generator import Generator
from ..ops.pseudo_generator import DerivationTree, PseudoGenerator
from ..ops.mesh import Mesh

logger = logging.getLogger(__name__)


def _check(policy: Any) -> None:
    errors = policy.validate()
    if errors:
        raise ValueError(f"Invalid {type(policy).__name__}: {'; '.join(errors)}")


def grow_plant(
    plant: Optional[Plant] = None,
    growth_policy: Optional[GrowthPolicy] = None,
    volume_policy: Optional[VolumePolicy] = None,
    seed: Optional[int] = None,
) -> Tuple[Plant, OperationReport]:
    """
    Grow a plant with the light-driven generator.

    Parameters
    ----------
    plant : Plant, optional
        Plant to grow (a new plant with a fresh root by default)
    growth_policy : GrowthPolicy, optional
        Growth parameters
    volume_policy : VolumePolicy, optional
        Light volume parameters
    seed : int, optional
        Root seed; overrides ``growth_policy.seed`` when given

    Returns
    -------
    plant : Plant
        The grown plant
    report : OperationReport
        Report with requested/effective policy and growth statistics
    """
    if growth_policy is None:
        growth_policy = GrowthPolicy()
    if volume_policy is None:
        volume_policy = VolumePolicy()
    _check(growth_policy)
    _check(volume_policy)

    requested = growth_policy.to_dict()
    if plant is None:
        plant = Plant()

    generator = Generator(plant, growth_policy, volume_policy)
    if seed is not None:
        generator.policy.seed = seed
    nodes = generator.grow()

    metadata: Dict[str, Any] = dict(generator.stats)
    metadata.update({
        "seed": plant.get(plant.root).seed,
        "stem_count": plant.stem_count(),
        "nodes_added": nodes,
        "volume_policy": volume_policy.to_dict(),
    })

    report = OperationReport(
        operation="grow_plant",
        success=True,
        requested_policy=requested,
        effective_policy=generator.policy.to_dict(),
        metadata=metadata,
    )
    if generator.stopped_early:
        report.add_warning(
            f"Growth stopped after {generator.stats['cycles_run']} of "
            f"{growth_policy.cycles} cycles because no stem could grow"
        )
    logger.info(f"Grew plant: {plant.stem_count()} stems, {nodes} nodes")
    return plant, report


def derive_plant(
    derivation: Union[DerivationTree, Dict[str, Any]],
    plant: Optional[Plant] = None,
) -> Tuple[Plant, OperationReport]:
    """
    Build a plant from a derivation tree with the rule-based generator.

    ``derivation`` may be a ``DerivationTree`` or its dictionary form.
    """
    if isinstance(derivation, dict):
        derivation = DerivationTree.from_dict(derivation)
    _check(derivation)
    if plant is None:
        plant = Plant()

    generator = PseudoGenerator(plant, derivation)
    generator.grow()
    leaf_count = sum(len(plant.get(h).leaves) for h in plant.iter_stems())

    report = OperationReport(
        operation="derive_plant",
        success=True,
        requested_policy=derivation.to_dict(),
        effective_policy=derivation.to_dict(),
        metadata={
            "seed": derivation.seed,
            "stem_count": plant.stem_count(),
            "leaf_count": leaf_count,
            "rule_depth": derivation.root.depth(),
        },
    )
    return plant, report


def synthesize_mesh(
    plant: Plant,
    policy: Optional[MeshSynthesisPolicy] = None,
) -> Tuple[Mesh, OperationReport]:
    """
    Generate the per-material buffers of ``plant``.

    Returns
    -------
    mesh : Mesh
        Generated buffers and segment lookup
    report : OperationReport
        Report with buffer sizes and the number of collar fallbacks
    """
    if policy is None:
        policy = MeshSynthesisPolicy()

    mesh = Mesh(plant, policy)
    mesh.generate()

    report = OperationReport(
        operation="synthesize_mesh",
        success=True,
        requested_policy=policy.to_dict(),
        effective_policy=policy.to_dict(),
        metadata={
            "mesh_count": mesh.get_mesh_count(),
            "vertex_count": mesh.get_vertex_count(),
            "index_count": mesh.get_index_count(),
            "triangle_count": mesh.get_index_count() // 3,
            "material_ids": list(mesh.material_ids),
            "collar_fallbacks": mesh.collar_fallbacks,
            "hidden_stems": mesh.hidden_stems,
        },
    )
    if mesh.collar_fallbacks:
        report.add_warning(f"{mesh.collar_fallbacks} branch collar(s) could not reach their parent surface")
    return mesh, report


__all__ = ["grow_plant", "derive_plant", "synthesize_mesh"]
