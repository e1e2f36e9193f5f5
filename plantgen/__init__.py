"""
Procedural plant generator.

Grows a branching stem graph (light-driven or rule-based) and turns it into
per-material vertex/index buffers with branch collars and skinning data.
"""

from .core import Plant, StemHandle, StemNode, Leaf, Path, Spline, Curve
from .ops import Generator, PseudoGenerator, DerivationTree, DerivationNode, Derivation
from .ops.mesh import Mesh
from .spatial import Volume

__version__ = "0.1.0"

__all__ = [
    "Plant",
    "StemHandle",
    "StemNode",
    "Leaf",
    "Path",
    "Spline",
    "Curve",
    "Generator",
    "PseudoGenerator",
    "DerivationTree",
    "DerivationNode",
    "Derivation",
    "Mesh",
    "Volume",
]
