"""
Arclength-parameterized road splines.

Smooth splines are Kochanek-Bartels (TCB) cubic Hermite curves through the
control points; tension, continuity and bias 0 give Catmull-Rom. Linear
splines connect the control points with straight segments for exact
adherence to the source geometry. Both are queried by distance along the
curve through an arclength lookup table.
"""

import logging
import math
from typing import Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from roadgrade.core.errors import GeometryError
from roadgrade.models.parameters import SplineInterpolationType

logger = logging.getLogger(__name__)

# Splines shorter than this (meters) are degenerate
MIN_SPLINE_LENGTH = 0.001
# Tangents shorter than this are replaced by a fallback direction
MIN_TANGENT_LENGTH = 1e-3
# Target spacing of arclength table samples (meters)
LUT_RESOLUTION = 0.25
_MAX_SAMPLES_PER_SEGMENT = 512


def _hermite(
    p0: NDArray[np.float64],
    m0: NDArray[np.float64],
    p1: NDArray[np.float64],
    m1: NDArray[np.float64],
    s: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Evaluate cubic Hermite positions and derivatives for parameters s in [0, 1]."""
    s = s[:, None]
    s2 = s * s
    s3 = s2 * s
    h00 = 2 * s3 - 3 * s2 + 1
    h10 = s3 - 2 * s2 + s
    h01 = -2 * s3 + 3 * s2
    h11 = s3 - s2
    position = h00 * p0 + h10 * m0 + h01 * p1 + h11 * m1

    d00 = 6 * s2 - 6 * s
    d10 = 3 * s2 - 4 * s + 1
    d01 = -6 * s2 + 6 * s
    d11 = 3 * s2 - 2 * s
    derivative = d00 * p0 + d10 * m0 + d01 * p1 + d11 * m1
    return position, derivative


def _remove_duplicates(points: NDArray[np.float64], tolerance: float = 1e-6) -> NDArray[np.float64]:
    if len(points) < 2:
        return points
    steps = np.linalg.norm(np.diff(points, axis=0), axis=1)
    keep = np.concatenate([[True], steps > tolerance])
    return points[keep]


class RoadSpline:
    """
    Interpolating curve through road control points, queried by arclength.

    Args:
        points: (N, 2) control points in world meters
        interpolation_type: Smooth (TCB) or linear
        tension: Curve tightness in [0, 1]
        continuity: Corner sharpness in [-1, 1]
        bias: Directional skew in [-1, 1]
        closed: Treat the points as a closed loop (roundabout rings)

    Raises:
        GeometryError: Fewer than two distinct points or near-zero length
    """

    def __init__(
        self,
        points: NDArray[np.float64],
        interpolation_type: SplineInterpolationType = SplineInterpolationType.SMOOTH_INTERPOLATED,
        tension: float = 0.0,
        continuity: float = 0.0,
        bias: float = 0.0,
        closed: bool = False,
    ) -> None:
        points = _remove_duplicates(np.asarray(points, dtype=np.float64))
        if closed and len(points) > 2 and np.linalg.norm(points[0] - points[-1]) <= 1e-6:
            points = points[:-1]
        if len(points) < 2:
            raise GeometryError(f"Spline needs at least 2 distinct points, got {len(points)}")

        self.interpolation_type = interpolation_type
        self.tension = tension
        self.continuity = continuity
        self.bias = bias
        self.closed = closed and len(points) > 2

        # Closed splines repeat the first point as the final knot
        self.control_points = np.vstack([points, points[:1]]) if self.closed else points
        self._out_tangents, self._in_tangents = self._compute_tangents(points)
        self._build_lut()

        if self.total_length < MIN_SPLINE_LENGTH:
            raise GeometryError(
                f"Spline length {self.total_length:.6f}m is below {MIN_SPLINE_LENGTH}m"
            )

    @property
    def segment_count(self) -> int:
        return len(self.control_points) - 1

    @property
    def is_linear(self) -> bool:
        return self.interpolation_type == SplineInterpolationType.LINEAR_CONTROL_POINTS

    def _compute_tangents(
        self, points: NDArray[np.float64]
    ) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        """
        Kochanek-Bartels outgoing and incoming tangents per knot.

        Open curves mirror the neighbor at each end so end tangents are one-sided.
        """
        if self.closed:
            prev_pts = np.roll(points, 1, axis=0)
            next_pts = np.roll(points, -1, axis=0)
        else:
            prev_pts = np.vstack([2 * points[0] - points[1], points[:-1]])
            next_pts = np.vstack([points[1:], 2 * points[-1] - points[-2]])

        incoming = points - prev_pts
        outgoing = next_pts - points
        t, c, b = self.tension, self.continuity, self.bias

        out_tangent = (
            ((1 - t) * (1 + b) * (1 + c) / 2) * incoming
            + ((1 - t) * (1 - b) * (1 - c) / 2) * outgoing
        )
        in_tangent = (
            ((1 - t) * (1 + b) * (1 - c) / 2) * incoming
            + ((1 - t) * (1 - b) * (1 + c) / 2) * outgoing
        )

        if self.closed:
            # Final knot is the first point again
            out_tangent = np.vstack([out_tangent, out_tangent[:1]])
            in_tangent = np.vstack([in_tangent, in_tangent[:1]])
        return out_tangent, in_tangent

    def _evaluate(self, u: NDArray[np.float64]) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Positions and derivatives at global parameters u in [0, segment_count]."""
        u = np.clip(np.asarray(u, dtype=np.float64), 0.0, float(self.segment_count))
        seg = np.minimum(np.floor(u).astype(np.int64), self.segment_count - 1)
        s = u - seg
        p0 = self.control_points[seg]
        p1 = self.control_points[seg + 1]

        if self.is_linear:
            position = p0 + (p1 - p0) * s[:, None]
            derivative = p1 - p0
            return position, derivative

        m0 = self._out_tangents[seg]
        m1 = self._in_tangents[seg + 1]
        return _hermite(p0, m0, p1, m1, s)

    def _build_lut(self) -> None:
        """Cumulative arclength table over densely sampled parameters."""
        chords = np.linalg.norm(np.diff(self.control_points, axis=0), axis=1)
        if self.is_linear:
            self._lut_u = np.arange(self.segment_count + 1, dtype=np.float64)
            self._lut_length = np.concatenate([[0.0], np.cumsum(chords)])
        else:
            counts = np.clip(
                np.ceil(chords / LUT_RESOLUTION).astype(np.int64), 4, _MAX_SAMPLES_PER_SEGMENT
            )
            params = [np.linspace(k, k + 1, int(count), endpoint=False) for k, count in enumerate(counts)]
            params.append(np.array([float(self.segment_count)]))
            self._lut_u = np.concatenate(params)
            positions, _ = self._evaluate(self._lut_u)
            steps = np.linalg.norm(np.diff(positions, axis=0), axis=1)
            self._lut_length = np.concatenate([[0.0], np.cumsum(steps)])
        self.total_length = float(self._lut_length[-1])

    def _parameter_at(self, distance: NDArray[np.float64]) -> NDArray[np.float64]:
        """Map distances along the curve to global parameters (binary search)."""
        d = np.clip(distance, 0.0, self.total_length)
        idx = np.clip(np.searchsorted(self._lut_length, d, side="right"), 1, len(self._lut_length) - 1)
        d0 = self._lut_length[idx - 1]
        d1 = self._lut_length[idx]
        span = np.where(d1 - d0 > 0, d1 - d0, 1.0)
        frac = np.clip((d - d0) / span, 0.0, 1.0)
        return self._lut_u[idx - 1] + (self._lut_u[idx] - self._lut_u[idx - 1]) * frac

    def points_at(self, distances: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Positions at distances along the curve (clamped to [0, total_length]).

        Args:
            distances: (N,) distances in meters

        Returns:
            (N, 2) world positions
        """
        positions, _ = self._evaluate(self._parameter_at(np.atleast_1d(distances).astype(np.float64)))
        return positions

    def tangents_at(self, distances: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Unit tangents at distances along the curve.

        Degenerate derivatives fall back to the direction toward the next
        non-coincident sample, then away from the previous one, then (1, 0).

        Args:
            distances: (N,) distances in meters

        Returns:
            (N, 2) unit tangents
        """
        distances = np.atleast_1d(distances).astype(np.float64)
        _, derivatives = self._evaluate(self._parameter_at(distances))
        norms = np.linalg.norm(derivatives, axis=1)
        tangents = np.zeros_like(derivatives)
        good = norms >= MIN_TANGENT_LENGTH
        tangents[good] = derivatives[good] / norms[good, None]
        for i in np.nonzero(~good)[0]:
            tangents[i] = self._fallback_tangent(float(distances[i]))
        return tangents

    def _fallback_tangent(self, distance: float) -> NDArray[np.float64]:
        here = self.points_at(np.array([distance]))[0]
        step = max(LUT_RESOLUTION, self.total_length / 1000.0)
        lookahead = distance + step
        while lookahead <= self.total_length + step:
            ahead = self.points_at(np.array([lookahead]))[0]
            vec = ahead - here
            norm = float(np.linalg.norm(vec))
            if norm >= MIN_TANGENT_LENGTH:
                return vec / norm
            lookahead += step
        behind = self.points_at(np.array([max(0.0, distance - step)]))[0]
        vec = here - behind
        norm = float(np.linalg.norm(vec))
        if norm >= MIN_TANGENT_LENGTH:
            return vec / norm
        logger.debug(f"No usable tangent at {distance:.3f}m, using (1, 0)")
        return np.array([1.0, 0.0])

    def normals_at(self, distances: NDArray[np.float64]) -> NDArray[np.float64]:
        """Unit normals (ty, -tx) at distances along the curve."""
        tangents = self.tangents_at(distances)
        return np.column_stack([tangents[:, 1], -tangents[:, 0]])

    def point_at(self, distance: float) -> NDArray[np.float64]:
        """Position at a distance along the curve."""
        return self.points_at(np.array([distance]))[0]

    def tangent_at(self, distance: float) -> NDArray[np.float64]:
        """Unit tangent at a distance along the curve."""
        return self.tangents_at(np.array([distance]))[0]

    def normal_at(self, distance: float) -> NDArray[np.float64]:
        """Unit normal at a distance along the curve."""
        return self.normals_at(np.array([distance]))[0]

    def sample_distances(self, interval: float) -> NDArray[np.float64]:
        """
        Distances at a fixed interval, always including the final point.

        Args:
            interval: Spacing in meters (> 0)

        Returns:
            Increasing distances from 0 to total_length
        """
        if interval <= 0:
            raise ValueError(f"Sampling interval must be positive, got {interval}")
        count = int(math.floor(self.total_length / interval))
        distances = np.arange(count + 1, dtype=np.float64) * interval
        if self.total_length - distances[-1] > 1e-6:
            distances = np.append(distances, self.total_length)
        return distances

    def sample_by_distance(
        self, interval: float
    ) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        """
        Sample distances, positions, tangents and normals at a fixed interval.

        Returns:
            (distances, points, tangents, normals)
        """
        distances = self.sample_distances(interval)
        tangents = self.tangents_at(distances)
        normals = np.column_stack([tangents[:, 1], -tangents[:, 0]])
        return distances, self.points_at(distances), tangents, normals

    @classmethod
    def from_pixels(
        cls,
        pixel_points: NDArray[np.float64],
        meters_per_pixel: float,
        interpolation_type: SplineInterpolationType,
        tension: float = 0.0,
        continuity: float = 0.0,
        bias: float = 0.0,
        closed: bool = False,
        path_id: Optional[int] = None,
    ) -> "RoadSpline":
        """
        Fit a spline to pixel-space points.

        Raises:
            GeometryError: When the path is degenerate (path_id is attached)
        """
        try:
            return cls(
                np.asarray(pixel_points, dtype=np.float64) * meters_per_pixel,
                interpolation_type=interpolation_type,
                tension=tension,
                continuity=continuity,
                bias=bias,
                closed=closed,
            )
        except GeometryError as e:
            raise GeometryError(e.message, path_id=path_id, details=e.details) from e

    def __repr__(self) -> str:
        return (
            f"RoadSpline(points={len(self.control_points)}, "
            f"length={self.total_length:.2f}m, "
            f"type={self.interpolation_type.value}, closed={self.closed})"
        )
