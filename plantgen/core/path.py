"""
Curve and path primitives.

A ``Spline`` is a control polygon interpreted either as a polyline
(degree 1) or as chained cubic Bezier curves (degree 3). A ``Path`` samples
a spline into a fixed list of points and answers arc-length queries over
those samples. A ``Curve`` is a named one-dimensional profile used to
shape stem radii along a path.
"""

from typing import Dict, List, Optional, Tuple, Any
import numpy as np

from ..utils.geometry import normalize


class Spline:
    """
    Control polygon evaluated as a polyline or as chained cubic Beziers.

    For degree 3 the control count must be ``3k + 1``; curve ``c`` uses
    controls ``3c .. 3c + 3`` so neighbouring curves share an end point.
    """

    SUPPORTED_DEGREES = (1, 3)

    def __init__(self, degree: int = 1, controls: Optional[List[Any]] = None):
        if degree not in self.SUPPORTED_DEGREES:
            raise ValueError(f"Unsupported spline degree {degree}, expected one of {self.SUPPORTED_DEGREES}")
        self.degree = degree
        self.controls: List[np.ndarray] = []
        for control in controls or []:
            self.add_control(control)

    def add_control(self, control) -> None:
        self.controls.append(np.asarray(control, dtype=float).reshape(3))

    def set_control(self, index: int, control) -> None:
        self.controls[index] = np.asarray(control, dtype=float).reshape(3)

    def clear(self) -> None:
        self.controls = []

    @property
    def curve_count(self) -> int:
        if len(self.controls) < 2:
            return 0
        return (len(self.controls) - 1) // self.degree

    def point(self, curve: int, t: float) -> np.ndarray:
        """Evaluate curve ``curve`` at parameter ``t`` in [0, 1]."""
        if curve < 0 or curve >= self.curve_count:
            raise IndexError(f"Curve {curve} out of range (curve_count={self.curve_count})")
        i = curve * self.degree
        if self.degree == 1:
            return (1.0 - t) * self.controls[i] + t * self.controls[i + 1]
        return cubic_bezier(
            self.controls[i], self.controls[i + 1], self.controls[i + 2], self.controls[i + 3], t
        )

    def copy(self) -> "Spline":
        return Spline(self.degree, [c.copy() for c in self.controls])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "degree": self.degree,
            "controls": [c.tolist() for c in self.controls],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Spline":
        return cls(d.get("degree", 1), d.get("controls", []))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Spline):
            return NotImplemented
        return (
            self.degree == other.degree
            and len(self.controls) == len(other.controls)
            and all(np.array_equal(a, b) for a, b in zip(self.controls, other.controls))
        )


def cubic_bezier(p0, p1, p2, p3, t: float) -> np.ndarray:
    """Evaluate a cubic Bezier curve at ``t``."""
    s = 1.0 - t
    return s * s * s * p0 + 3.0 * s * s * t * p1 + 3.0 * s * t * t * p2 + t * t * t * p3


class Curve:
    """
    Named piecewise-linear profile ``f(t)`` for t in [0, 1].

    Parameters
    ----------
    name : str
        Display name of the profile
    points : list of (t, value)
        Breakpoints, sorted by ``t`` on construction
    """

    def __init__(self, name: str = "", points: Optional[List[Tuple[float, float]]] = None):
        self.name = name
        if points is None:
            points = [(0.0, 1.0), (1.0, 0.0)]
        self.points = sorted((float(t), float(v)) for t, v in points)

    def __call__(self, t: float) -> float:
        ts = [p[0] for p in self.points]
        vs = [p[1] for p in self.points]
        return float(np.interp(t, ts, vs))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "points": [list(p) for p in self.points]}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Curve":
        return cls(d.get("name", ""), [tuple(p) for p in d.get("points", [])] or None)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Curve):
            return NotImplemented
        return self.name == other.name and self.points == other.points


class Path:
    """
    Sampled stem path.

    Each spline curve is sampled at ``divisions + 1`` uniform parameters;
    adjacent curves share their end sample, so a spline with ``c`` curves
    yields ``c * divisions + 1`` points. Points are local to the stem's
    location.
    """

    def __init__(self, spline: Optional[Spline] = None, divisions: int = 1):
        if divisions < 1:
            raise ValueError(f"divisions must be >= 1, got {divisions}")
        self.spline = spline if spline is not None else Spline(1)
        self.divisions = divisions
        self.points = np.zeros((0, 3))
        self._distances = np.zeros(0)
        self.generate()

    def generate(self) -> None:
        """Resample the spline. Call after editing the spline's controls."""
        samples = []
        count = self.spline.curve_count
        if count == 0 and self.spline.controls:
            samples.append(self.spline.controls[0])
        for c in range(count):
            start = 0 if c == 0 else 1
            for j in range(start, self.divisions + 1):
                samples.append(self.spline.point(c, j / self.divisions))

        self.points = np.array(samples, dtype=float).reshape(-1, 3)
        if len(self.points) > 1:
            steps = np.linalg.norm(np.diff(self.points, axis=0), axis=1)
            self._distances = np.concatenate([[0.0], np.cumsum(steps)])
        else:
            self._distances = np.zeros(len(self.points))

    def set_spline(self, spline: Spline) -> None:
        self.spline = spline
        self.generate()

    def set_divisions(self, divisions: int) -> None:
        if divisions < 1:
            raise ValueError(f"divisions must be >= 1, got {divisions}")
        self.divisions = divisions
        self.generate()

    def __len__(self) -> int:
        return len(self.points)

    def length(self) -> float:
        return float(self._distances[-1]) if len(self._distances) else 0.0

    def point(self, index: int) -> np.ndarray:
        return self.points[index]

    def segment_length(self, index: int) -> float:
        """Distance between sample ``index - 1`` and ``index`` (0 for the first)."""
        if index <= 0:
            return 0.0
        return float(self._distances[index] - self._distances[index - 1])

    def distance(self, index: int) -> float:
        """Arc length from the first sample to sample ``index``."""
        return float(self._distances[index])

    def distance_between(self, a: int, b: int) -> float:
        return abs(float(self._distances[b] - self._distances[a]))

    def index_at(self, distance: float) -> int:
        """Index of the last sample at or before ``distance``."""
        if len(self.points) == 0:
            raise IndexError("Path has no points")
        index = int(np.searchsorted(self._distances, distance, side="right")) - 1
        return int(np.clip(index, 0, len(self.points) - 1))

    def point_at(self, distance: float) -> np.ndarray:
        """
        Interpolated point at arc length ``distance``.

        Returns a non-finite vector when ``distance`` lies outside the path.
        """
        if len(self.points) == 0 or distance < 0.0 or distance > self.length() + 1e-9:
            return np.full(3, np.inf)
        index = self.index_at(distance)
        if index >= len(self.points) - 1:
            return self.points[-1].copy()
        span = self.segment_length(index + 1)
        if span <= 0.0:
            return self.points[index].copy()
        t = (distance - self._distances[index]) / span
        return (1.0 - t) * self.points[index] + t * self.points[index + 1]

    def direction(self, index: int) -> np.ndarray:
        """Direction of the edge leaving ``index`` (entering it for the last sample)."""
        n = len(self.points)
        if n < 2:
            return np.array([0.0, 1.0, 0.0])
        if index >= n - 1:
            return normalize(self.points[n - 1] - self.points[n - 2])
        return normalize(self.points[index + 1] - self.points[index])

    def average_direction(self, index: int) -> np.ndarray:
        """Mean of the incoming and outgoing edge directions at ``index``."""
        if index <= 0 or index >= len(self.points) - 1:
            return self.direction(index)
        incoming = self.direction(index - 1)
        outgoing = self.direction(index)
        mean = normalize(incoming + outgoing)
        if np.linalg.norm(mean) < 0.5:
            return outgoing
        return mean

    def direction_at(self, distance: float) -> np.ndarray:
        if len(self.points) < 2:
            return self.direction(0)
        return self.direction(min(self.index_at(distance), len(self.points) - 2))

    def copy(self) -> "Path":
        return Path(self.spline.copy(), self.divisions)

    def to_dict(self) -> Dict[str, Any]:
        return {"spline": self.spline.to_dict(), "divisions": self.divisions}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Path":
        return cls(Spline.from_dict(d["spline"]), d.get("divisions", 1))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Path):
            return NotImplemented
        return self.divisions == other.divisions and self.spline == other.spline


__all__ = ["Spline", "Curve", "Path", "cubic_bezier"]
