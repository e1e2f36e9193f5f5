"""
Growable vertex and index buffers.

Synthesis only ever appends, except for branch collars, which reserve a
block of vertices up front and fill it once the surrounding rings exist.
Reservation and truncation are explicit so the fixed-offset layout of a
collar is easy to follow:

    start = buffer.reserve(n)   # slots start .. start + n - 1 now exist
    buffer.array[start + k] = ...
    buffer.truncate(size)       # roll back to an earlier size
"""

import numpy as np

from ...core.types import VERTEX_DTYPE, INDEX_DTYPE

INITIAL_CAPACITY = 256


class _GrowableBuffer:
    """Contiguous numpy storage with amortized appends."""

    dtype = None

    def __init__(self):
        self._data = np.zeros(INITIAL_CAPACITY, dtype=self.dtype)
        self._size = 0

    def __len__(self) -> int:
        return self._size

    @property
    def array(self) -> np.ndarray:
        """View of the used part of the buffer (writes go to the buffer)."""
        return self._data[:self._size]

    def _ensure(self, capacity: int) -> None:
        if capacity <= len(self._data):
            return
        new_capacity = max(capacity, 2 * len(self._data))
        data = np.zeros(new_capacity, dtype=self.dtype)
        data[:self._size] = self._data[:self._size]
        self._data = data

    def reserve(self, count: int) -> int:
        """Append ``count`` zeroed slots and return the first slot's offset."""
        if count < 0:
            raise ValueError(f"cannot reserve a negative count ({count})")
        start = self._size
        self._ensure(start + count)
        self._data[start:start + count] = np.zeros(count, dtype=self.dtype)
        self._size += count
        return start

    def extend(self, values: np.ndarray) -> int:
        """Append ``values`` and return the offset of the first one."""
        values = np.asarray(values, dtype=self.dtype).reshape(-1)
        start = self.reserve(len(values))
        self._data[start:start + len(values)] = values
        return start

    def truncate(self, size: int) -> None:
        """Drop everything at or after offset ``size``."""
        if size < 0 or size > self._size:
            raise ValueError(f"cannot truncate buffer of size {self._size} to {size}")
        self._size = size

    def clear(self) -> None:
        self._size = 0

    def copy(self) -> np.ndarray:
        return self.array.copy()


class VertexBuffer(_GrowableBuffer):
    """Buffer of ``VERTEX_DTYPE`` records."""

    dtype = VERTEX_DTYPE

    def append_vertices(self, positions, normals, uvs, indices, weights) -> int:
        """Append vertices from per-field arrays; returns the first offset."""
        positions = np.asarray(positions).reshape(-1, 3)
        count = len(positions)
        start = self.reserve(count)
        block = self._data[start:start + count]
        block["position"] = positions
        block["normal"] = np.asarray(normals).reshape(-1, 3)
        block["uv"] = np.asarray(uvs).reshape(-1, 2)
        block["indices"] = np.broadcast_to(np.asarray(indices, dtype=np.float32), (count, 2))
        block["weights"] = np.broadcast_to(np.asarray(weights, dtype=np.float32), (count, 2))
        return start


class IndexBuffer(_GrowableBuffer):
    """Buffer of triangle-list indices."""

    dtype = INDEX_DTYPE

    def add_triangle(self, a: int, b: int, c: int) -> None:
        self.extend([a, b, c])

    def triangles(self, start: int = 0, count: int = None) -> np.ndarray:
        """Indices in ``[start, start + count)`` reshaped to (N, 3)."""
        end = self._size if count is None else start + count
        return self._data[start:end].reshape(-1, 3)


__all__ = ["VertexBuffer", "IndexBuffer"]
