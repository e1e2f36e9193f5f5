"""
Unit cross-section used for stem rings.
"""

import math
import numpy as np


class CrossSection:
    """
    Unit circle in the XZ plane, sampled at ``resolution + 1`` points.

    The last point repeats the first so the texture seam gets its own
    ``u = 1`` vertex. Rings are oriented so the stem direction is +Y.
    """

    def __init__(self, resolution: int = 8):
        self.resolution = 0
        self.positions = np.zeros((0, 3))
        self.normals = np.zeros((0, 3))
        self.u = np.zeros(0)
        self.generate(resolution)

    def generate(self, resolution: int) -> None:
        if resolution < 3:
            raise ValueError(f"cross-section resolution must be >= 3, got {resolution}")
        angles = np.arange(resolution + 1) * (2.0 * math.pi / resolution)
        self.resolution = resolution
        self.positions = np.stack([np.cos(angles), np.zeros_like(angles), np.sin(angles)], axis=1)
        self.positions[-1] = self.positions[0]
        self.normals = self.positions.copy()
        self.u = np.arange(resolution + 1) / resolution

    def __len__(self) -> int:
        return len(self.positions)
