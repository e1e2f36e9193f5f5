"""Mesh synthesis from stem graphs."""

from .synthesis import Mesh, SynthesisState, LeafID
from .buffers import VertexBuffer, IndexBuffer
from .cross_section import CrossSection

__all__ = [
    "Mesh",
    "SynthesisState",
    "LeafID",
    "VertexBuffer",
    "IndexBuffer",
    "CrossSection",
]
