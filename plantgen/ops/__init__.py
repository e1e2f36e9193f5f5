"""Operations that populate a plant or turn it into geometry."""

from .generator import Generator
from .pseudo_generator import PseudoGenerator, DerivationTree, DerivationNode, Derivation

__all__ = [
    "Generator",
    "PseudoGenerator",
    "DerivationTree",
    "DerivationNode",
    "Derivation",
]
