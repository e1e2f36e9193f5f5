"""Spatial structures for light estimation."""

from .volume import Volume

__all__ = ["Volume"]
