"""
Volumetric light estimator.

The volume is a cube split into a pyramid of levels: level ``l`` has
``2**l`` cells per axis and the finest level equals ``depth``. Wood density
and light flux are accumulated at the finest level and then averaged into
coarser levels with ``generalize_density`` and ``generalize_flux``, so thin
stem tips can be answered from a coarse level in constant time.
"""

from typing import List, Optional, Tuple
import logging
import numpy as np

from plant_policies import VolumePolicy

logger = logging.getLogger(__name__)


def _reduce(grid: np.ndarray) -> np.ndarray:
    """Average 2x2x2 blocks of a cubic grid."""
    n = grid.shape[0] // 2
    return grid.reshape(n, 2, n, 2, n, 2).mean(axis=(1, 3, 5))


class Volume:
    """
    Octree-style density and flux grid.

    Parameters
    ----------
    center : array-like
        Center of the cube
    size : float
        Edge length of the cube
    depth : int
        Finest level (``2**depth`` cells per axis)

    Notes
    -----
    Points outside the cube have zero density and full flux (1.0).
    """

    def __init__(self, center, size: float, depth: int):
        if size <= 0:
            raise ValueError(f"Volume size must be > 0, got {size}")
        if depth < 0:
            raise ValueError(f"Volume depth must be >= 0, got {depth}")
        self.center = np.asarray(center, dtype=float).reshape(3)
        self.size = float(size)
        self.depth = int(depth)
        self.min_corner = self.center - self.size / 2.0
        self.max_corner = self.center + self.size / 2.0
        self.density: List[np.ndarray] = []
        self.flux: List[np.ndarray] = []
        self._flux_sum = np.zeros(0)
        self._flux_count = np.zeros(0)
        self.clear()

    @classmethod
    def from_bounds(cls, box_min, box_max, policy: Optional[VolumePolicy] = None) -> "Volume":
        """Cube enclosing a padded bounding box."""
        policy = policy or VolumePolicy()
        box_min = np.asarray(box_min, dtype=float)
        box_max = np.asarray(box_max, dtype=float)
        extent = float(np.max(box_max - box_min))
        size = max(extent * (1.0 + 2.0 * policy.padding), policy.min_size)
        return cls((box_min + box_max) / 2.0, size, policy.depth)

    def clear(self) -> None:
        """Reset density to 0 and flux to 1 on every level."""
        self.density = [np.zeros((2 ** l,) * 3) for l in range(self.depth + 1)]
        self.flux = [np.ones((2 ** l,) * 3) for l in range(self.depth + 1)]
        self._flux_sum = np.zeros((2 ** self.depth,) * 3)
        self._flux_count = np.zeros((2 ** self.depth,) * 3)

    def cell_size(self, level: Optional[int] = None) -> float:
        level = self.depth if level is None else level
        return self.size / (2 ** level)

    def cell_volume(self, level: Optional[int] = None) -> float:
        return self.cell_size(level) ** 3

    def level_for_size(self, size: float) -> int:
        """Finest level whose cells are at least ``size`` wide."""
        for level in range(self.depth, -1, -1):
            if self.cell_size(level) >= size:
                return level
        return 0

    def contains(self, point) -> bool:
        point = np.asarray(point, dtype=float)
        return bool(np.all(point >= self.min_corner) and np.all(point <= self.max_corner))

    def point_to_cell(self, point, level: Optional[int] = None) -> Optional[Tuple[int, int, int]]:
        """Cell coordinates of ``point`` at ``level``, or None outside the volume."""
        level = self.depth if level is None else level
        point = np.asarray(point, dtype=float)
        if not np.all(np.isfinite(point)) or not self.contains(point):
            return None
        n = 2 ** level
        cell = np.floor((point - self.min_corner) / self.cell_size(level)).astype(int)
        cell = np.clip(cell, 0, n - 1)
        return int(cell[0]), int(cell[1]), int(cell[2])

    def points_to_cells(self, points: np.ndarray, level: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorized ``point_to_cell``; returns (cells, inside mask)."""
        level = self.depth if level is None else level
        points = np.atleast_2d(np.asarray(points, dtype=float))
        inside = np.all(np.isfinite(points), axis=1)
        inside &= np.all(points >= self.min_corner, axis=1) & np.all(points <= self.max_corner, axis=1)
        with np.errstate(invalid="ignore"):
            cells = np.floor((points - self.min_corner) / self.cell_size(level))
        cells = np.where(np.isfinite(cells), cells, 0).astype(int)
        return np.clip(cells, 0, 2 ** level - 1), inside

    def add_density(self, point, amount: float) -> bool:
        """Add ``amount`` to the finest cell holding ``point``; False outside."""
        cell = self.point_to_cell(point)
        if cell is None:
            return False
        self.density[self.depth][cell] += amount
        return True

    def density_at(self, point, level: Optional[int] = None) -> float:
        level = self.depth if level is None else level
        cell = self.point_to_cell(point, level)
        if cell is None:
            return 0.0
        return float(self.density[level][cell])

    def flux_at(self, point, level: Optional[int] = None) -> float:
        level = self.depth if level is None else level
        cell = self.point_to_cell(point, level)
        if cell is None:
            return 1.0
        return float(self.flux[level][cell])

    def deposit_flux(self, cells: np.ndarray, energy: np.ndarray) -> None:
        """Record ray energy arriving at finest-level ``cells``."""
        if len(cells) == 0:
            return
        index = (cells[:, 0], cells[:, 1], cells[:, 2])
        np.add.at(self._flux_sum, index, energy)
        np.add.at(self._flux_count, index, 1.0)

    def resolve_flux(self) -> None:
        """Average deposited energy per finest cell; unsampled cells keep full flux."""
        finest = np.ones_like(self._flux_sum)
        sampled = self._flux_count > 0
        finest[sampled] = self._flux_sum[sampled] / self._flux_count[sampled]
        self.flux[self.depth] = finest

    def generalize_density(self) -> None:
        """Average finest-level density into every coarser level."""
        for level in range(self.depth - 1, -1, -1):
            self.density[level] = _reduce(self.density[level + 1])

    def generalize_flux(self) -> None:
        """Average finest-level flux into every coarser level."""
        for level in range(self.depth - 1, -1, -1):
            self.flux[level] = _reduce(self.flux[level + 1])

    def total_density(self) -> float:
        return float(self.density[self.depth].sum())


__all__ = ["Volume"]
