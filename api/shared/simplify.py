"""
Stroke simplification utilities for freehand canvas paths.

Provides Ramer-Douglas-Peucker (RDP) simplification that drops points lying
within a tolerance of the line through their neighbours, plus helpers to
convert between SVG-style ``M x y L x y ...`` strings and point lists.

Distances are measured to the *infinite* line through the anchor points,
not to the segment between them. Pass ``clamp=True`` to measure to the
segment instead; that keeps more points near the ends of hooked strokes.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass
from typing import Sequence

import numpy as np

Point = tuple[float, float]

_COMMAND_RE = re.compile(r"[ML]\s*([\d.]+)\s+([\d.]+)")
_NUMBER_PREFIX_RE = re.compile(r"\d*\.?\d*")

DEFAULT_EPSILON = 2.0


@dataclass
class PathStats:
    """Before/after sizes of a simplified path."""

    originalPoints: int
    simplifiedPoints: int
    reduction: int
    originalChars: int
    simplifiedChars: int
    charReduction: int

    def to_dict(self) -> dict:
        return asdict(self)


def perpendicular_distance(
    point: Point,
    line_start: Point,
    line_end: Point,
    clamp: bool = False,
) -> float:
    """Distance from ``point`` to the line through ``line_start`` and ``line_end``.

    A zero-length line degenerates to the distance to ``line_start``.
    """
    dx = line_end[0] - line_start[0]
    dy = line_end[1] - line_start[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(point[0] - line_start[0], point[1] - line_start[1])

    t = ((point[0] - line_start[0]) * dx + (point[1] - line_start[1]) * dy) / length_sq
    if clamp:
        t = min(1.0, max(0.0, t))
    nearest_x = line_start[0] + t * dx
    nearest_y = line_start[1] + t * dy
    return math.hypot(point[0] - nearest_x, point[1] - nearest_y)


def _distances(xy: np.ndarray, start: int, end: int, clamp: bool) -> np.ndarray:
    """Vectorized perpendicular distances of xy[start+1:end] to the anchor line."""
    a = xy[start]
    b = xy[end]
    interior = xy[start + 1:end]
    ab = b - a
    length_sq = float(ab @ ab)
    if length_sq == 0:
        return np.hypot(interior[:, 0] - a[0], interior[:, 1] - a[1])

    t = ((interior - a) @ ab) / length_sq
    if clamp:
        t = np.clip(t, 0.0, 1.0)
    nearest = a + t[:, None] * ab
    diff = interior - nearest
    return np.hypot(diff[:, 0], diff[:, 1])


def rdp_indices(points: Sequence[Point], epsilon: float, clamp: bool = False) -> np.ndarray:
    """Indices of the points kept by Ramer-Douglas-Peucker simplification.

    Args:
        points: Ordered (x, y) pairs of the stroke.
        epsilon: Tolerance in coordinate units. Larger values drop more points.
        clamp: Measure distance to the anchor segment instead of the line.

    Returns:
        Sorted array of kept indices. The first and last index are always kept.
    """
    if epsilon < 0:
        raise ValueError(f"epsilon must be non-negative, got {epsilon}")

    n = len(points)
    if n < 3:
        return np.arange(n)

    xy = np.asarray(points, dtype=np.float64).reshape(n, 2)
    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True

    # Each range is simplified independently, so a stack gives the same
    # result as recursing into [start..max] and [max..end].
    stack = [(0, n - 1)]
    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue
        dists = _distances(xy, start, end, clamp)
        offset = int(np.argmax(dists))
        if dists[offset] > epsilon:
            split = start + 1 + offset
            keep[split] = True
            stack.append((split, end))
            stack.append((start, split))

    return np.flatnonzero(keep)


def rdp_simplify(points: Sequence[Point], epsilon: float, clamp: bool = False) -> list[Point]:
    """Simplify a stroke, preserving its first and last point."""
    if len(points) < 3:
        if epsilon < 0:
            raise ValueError(f"epsilon must be non-negative, got {epsilon}")
        return list(points)
    return [points[i] for i in rdp_indices(points, epsilon, clamp)]


def _parse_number(token: str) -> float | None:
    # "1.2.3" reads as 1.2, matching how browsers parse path coordinates
    prefix = _NUMBER_PREFIX_RE.match(token).group(0)
    if not prefix or prefix == ".":
        return None
    value = float(prefix)
    # very long digit runs overflow to inf
    if not math.isfinite(value):
        return None
    return value


def path_to_points(d: str) -> list[Point]:
    """Parse the ``M``/``L`` commands of a path string into points."""
    points = []
    for raw_x, raw_y in _COMMAND_RE.findall(d):
        x = _parse_number(raw_x)
        y = _parse_number(raw_y)
        if x is None or y is None:
            continue
        points.append((x, y))
    return points


def _format_coord(value: float) -> str:
    scaled = value * 10 + 0.5
    rounded = math.floor(scaled) / 10 if math.isfinite(scaled) else value
    if math.isfinite(rounded) and rounded == int(rounded):
        return str(int(rounded))
    return str(rounded)


def points_to_path(points: Sequence[Point]) -> str:
    """Serialize points as ``M x y L x y ...`` with one decimal of precision."""
    commands = []
    for i, (x, y) in enumerate(points):
        cmd = "M" if i == 0 else "L"
        commands.append(f"{cmd} {_format_coord(x)} {_format_coord(y)}")
    return " ".join(commands)


def simplify_path(d: str, epsilon: float = DEFAULT_EPSILON) -> str:
    """Simplify an SVG path string.

    Paths with fewer than 3 parseable points are returned unchanged.
    Recommended epsilon is 2-3 pixels for a good size/quality balance.
    """
    points = path_to_points(d)
    if len(points) < 3:
        return d
    return points_to_path(rdp_simplify(points, epsilon))


def _percent_saved(before: int, after: int) -> int:
    if before == 0:
        return 0
    return math.floor((1 - after / before) * 100 + 0.5)


def get_path_stats(original: str, simplified: str) -> PathStats:
    """Compare point and character counts of a path before and after simplification."""
    original_points = len(path_to_points(original))
    simplified_points = len(path_to_points(simplified))

    return PathStats(
        originalPoints=original_points,
        simplifiedPoints=simplified_points,
        reduction=_percent_saved(original_points, simplified_points),
        originalChars=len(original),
        simplifiedChars=len(simplified),
        charReduction=_percent_saved(len(original), len(simplified)),
    )
