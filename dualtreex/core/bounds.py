"""Euclidean bounding regions used by the spatial trees.

Every bound answers four questions: the smallest and largest distance that
any point inside it can have to a point, and the smallest and largest
distance between any two points drawn from two bounds. Mixed bound types
are compared through the enclosing ball of the rectangle, which is looser
but still valid.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Union

import numpy as np


@dataclass(frozen=True)
class HRectBound:
    """Axis-aligned hyper-rectangle ``[lo, hi]``."""

    lo: np.ndarray
    hi: np.ndarray

    @classmethod
    def from_points(cls, points: np.ndarray) -> "HRectBound":
        return cls(lo=points.min(axis=0), hi=points.max(axis=0))

    @property
    def dimension(self) -> int:
        return int(self.lo.shape[0])

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.lo + self.hi)

    @property
    def widths(self) -> np.ndarray:
        return self.hi - self.lo

    @property
    def diameter(self) -> float:
        widths = self.widths
        return float(math.sqrt(float(np.dot(widths, widths))))

    def to_ball(self) -> "BallBound":
        return BallBound(center=self.center, radius=0.5 * self.diameter)

    def min_point_distance(self, point: np.ndarray) -> float:
        gap = np.maximum(np.maximum(self.lo - point, point - self.hi), 0.0)
        return float(math.sqrt(float(np.dot(gap, gap))))

    def max_point_distance(self, point: np.ndarray) -> float:
        far = np.maximum(np.abs(point - self.lo), np.abs(point - self.hi))
        return float(math.sqrt(float(np.dot(far, far))))

    def min_distance(self, other: "Bound") -> float:
        if isinstance(other, HRectBound):
            gap = np.maximum(np.maximum(other.lo - self.hi, self.lo - other.hi), 0.0)
            return float(math.sqrt(float(np.dot(gap, gap))))
        return self.to_ball().min_distance(other)

    def max_distance(self, other: "Bound") -> float:
        if isinstance(other, HRectBound):
            far = np.maximum(np.abs(other.hi - self.lo), np.abs(self.hi - other.lo))
            return float(math.sqrt(float(np.dot(far, far))))
        return self.to_ball().max_distance(other)


@dataclass(frozen=True)
class BallBound:
    """Closed ball around ``center``."""

    center: np.ndarray
    radius: float

    @classmethod
    def from_points(cls, points: np.ndarray) -> "BallBound":
        center = 0.5 * (points.min(axis=0) + points.max(axis=0))
        diff = points - center[None, :]
        radius = float(np.sqrt(np.max(np.sum(diff * diff, axis=1))))
        return cls(center=center, radius=radius)

    @classmethod
    def around(cls, center: np.ndarray, points: np.ndarray) -> "BallBound":
        diff = points - center[None, :]
        radius = float(np.sqrt(np.max(np.sum(diff * diff, axis=1)))) if points.size else 0.0
        return cls(center=np.asarray(center, dtype=np.float64), radius=radius)

    @property
    def dimension(self) -> int:
        return int(self.center.shape[0])

    @property
    def diameter(self) -> float:
        return 2.0 * self.radius

    def _center_gap(self, center: np.ndarray) -> float:
        diff = self.center - center
        return float(math.sqrt(float(np.dot(diff, diff))))

    def min_point_distance(self, point: np.ndarray) -> float:
        return max(self._center_gap(point) - self.radius, 0.0)

    def max_point_distance(self, point: np.ndarray) -> float:
        return self._center_gap(point) + self.radius

    def min_distance(self, other: "Bound") -> float:
        ball = other.to_ball() if isinstance(other, HRectBound) else other
        return max(self._center_gap(ball.center) - self.radius - ball.radius, 0.0)

    def max_distance(self, other: "Bound") -> float:
        ball = other.to_ball() if isinstance(other, HRectBound) else other
        return self._center_gap(ball.center) + self.radius + ball.radius


Bound = Union[HRectBound, BallBound]


__all__ = ["Bound", "BallBound", "HRectBound"]
