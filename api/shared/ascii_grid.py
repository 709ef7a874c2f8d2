"""
ASCII rendering of the canvas for text-only prompts.

Strokes and shapes are sampled into points, the points are densified so
that no grid cell is skipped, and each point marks the cell it falls in.
Human strokes use upper-case colour letters (``#`` for black), Claude's
shapes use lower case, empty cells are ``.``.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

import numpy as np

Point = tuple[float, float]

DEFAULT_CELL_SIZE = 20
CURVE_STEPS = 16
CIRCLE_STEPS = 32
CLAUDE_DEFAULT_COLOR = "#3b82f6"

MAX_GRID_CELLS = 250_000

# points added per segment, bounded for far-off coordinates
_MAX_SEGMENT_STEPS = 10_000

_SEGMENT_RE = re.compile(r"([MLHVCSQTAZmlhvcsqtaz])([^MLHVCSQTAZmlhvcsqtaz]*)")
_ARG_SPLIT_RE = re.compile(r"[\s,]+")
_NUMERIC_FIELDS = ("cx", "cy", "r", "rx", "ry", "x", "y", "x1", "y1", "x2", "y2", "width", "height")

_COLOR_CHARS = (
    ("R", "red", ("#ef4444", "#ff0000")),
    ("B", "blue", ("#3b82f6", "#0000ff")),
    ("G", "green", ("#22c55e", "#00ff00")),
    ("Y", "yellow", ("#eab308",)),
    ("O", "orange", ("#f97316",)),
    ("P", "purple", ("#8b5cf6",)),
)


@dataclass
class AsciiGrid:
    """Rendered grid plus the parameters needed to read it back."""

    grid: str
    cellSize: int
    gridWidth: int
    gridHeight: int
    legend: str

    def to_dict(self) -> dict:
        return asdict(self)


# ============= Point Sampling =============


def _args(raw: str) -> list[float]:
    values = []
    for token in _ARG_SPLIT_RE.split(raw.strip()):
        if not token:
            continue
        try:
            values.append(float(token))
        except ValueError:
            values.append(math.nan)
    return values


def _quadratic(p0: Point, p1: Point, p2: Point, t: float) -> Point:
    mt = 1 - t
    return (
        mt * mt * p0[0] + 2 * mt * t * p1[0] + t * t * p2[0],
        mt * mt * p0[1] + 2 * mt * t * p1[1] + t * t * p2[1],
    )


def _cubic(p0: Point, p1: Point, p2: Point, p3: Point, t: float) -> Point:
    mt = 1 - t
    return (
        mt ** 3 * p0[0] + 3 * mt * mt * t * p1[0] + 3 * mt * t * t * p2[0] + t ** 3 * p3[0],
        mt ** 3 * p0[1] + 3 * mt * mt * t * p1[1] + 3 * mt * t * t * p2[1] + t ** 3 * p3[1],
    )


def parse_path_points(d: str) -> list[Point]:
    """Sample an SVG path into points.

    Handles absolute and relative ``M``/``L``/``H``/``V``, absolute ``Q`` and
    ``C`` curves (sampled at ``CURVE_STEPS``) and ``Z``. Any other command
    contributes its arguments as absolute coordinate pairs. Commands with too
    few arguments are skipped.
    """
    points: list[Point] = []
    x = y = start_x = start_y = 0.0

    for command, raw in _SEGMENT_RE.findall(d):
        args = _args(raw)

        if command in "MmLl":
            if len(args) < 2:
                continue
            if command in "ml":
                x, y = x + args[0], y + args[1]
            else:
                x, y = args[0], args[1]
            if command in "Mm":
                start_x, start_y = x, y
            points.append((x, y))
        elif command in "Hh":
            if not args:
                continue
            x = x + args[0] if command == "h" else args[0]
            points.append((x, y))
        elif command in "Vv":
            if not args:
                continue
            y = y + args[0] if command == "v" else args[0]
            points.append((x, y))
        elif command == "Q":
            if len(args) < 4:
                continue
            p0, p1, p2 = (x, y), (args[0], args[1]), (args[2], args[3])
            points.extend(_quadratic(p0, p1, p2, i / CURVE_STEPS) for i in range(1, CURVE_STEPS + 1))
            x, y = p2
        elif command == "C":
            if len(args) < 6:
                continue
            p0, p1, p2, p3 = (x, y), (args[0], args[1]), (args[2], args[3]), (args[4], args[5])
            points.extend(_cubic(p0, p1, p2, p3, i / CURVE_STEPS) for i in range(1, CURVE_STEPS + 1))
            x, y = p3
        elif command in "Zz":
            if (x, y) != (start_x, start_y):
                points.append((start_x, start_y))
                x, y = start_x, start_y
        else:
            points.extend((args[i], args[i + 1]) for i in range(0, len(args) - 1, 2))

    return points


def _ellipse(cx: float, cy: float, rx: float, ry: float) -> list[Point]:
    return [
        (cx + math.cos(a) * rx, cy + math.sin(a) * ry)
        for a in (i / CIRCLE_STEPS * 2 * math.pi for i in range(CIRCLE_STEPS + 1))
    ]


def _num(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return float(value)
    except OverflowError:
        return None


def _point_list(raw: Any) -> list[Point]:
    if not isinstance(raw, (list, tuple)):
        return []
    points = []
    for p in raw:
        if isinstance(p, (list, tuple)) and len(p) >= 2:
            x, y = _num(p[0]), _num(p[1])
            if x is not None and y is not None:
                points.append((x, y))
    return points


def shape_points(shape: Mapping[str, Any]) -> list[Point]:
    """Outline points of a shape dict as drawn by Claude (``type`` is the kind).

    Shapes missing the fields their kind needs, or carrying non-numeric
    geometry, have no points.
    """
    kind = shape.get("type")
    n = {key: _num(shape.get(key)) for key in _NUMERIC_FIELDS}

    if kind in ("path", "erase"):
        d = shape.get("d")
        return parse_path_points(d) if isinstance(d, str) else []
    if kind == "line" and None not in (n["x1"], n["y1"], n["x2"], n["y2"]):
        return [(n["x1"], n["y1"]), (n["x2"], n["y2"])]
    if kind == "circle" and None not in (n["cx"], n["cy"], n["r"]):
        return _ellipse(n["cx"], n["cy"], n["r"], n["r"])
    if kind == "ellipse" and None not in (n["cx"], n["cy"]):
        return _ellipse(n["cx"], n["cy"], n["rx"] or 10, n["ry"] or 10)
    if kind == "rect" and None not in (n["x"], n["y"]):
        x, y = n["x"], n["y"]
        w, h = n["width"] or 0, n["height"] or 0
        return [(x, y), (x + w, y), (x + w, y + h), (x, y + h), (x, y)]
    if kind == "polygon":
        pts = _point_list(shape.get("points"))
        return pts + pts[:1]
    if kind == "curve":
        pts = _point_list(shape.get("points"))
        return pts if len(pts) >= 2 else []
    return []


def interpolate_points(points: Sequence[Point], step: float) -> list[Point]:
    """Insert points along each segment so consecutive points are at most ``step`` apart."""
    points = [p for p in points if math.isfinite(p[0]) and math.isfinite(p[1])]
    if len(points) < 2:
        return list(points)

    result = [points[0]]
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        dx, dy = x1 - x0, y1 - y0
        dist = math.hypot(dx, dy)
        if not math.isfinite(dist):
            result.append((x1, y1))
            continue
        steps = min(math.ceil(dist / step), _MAX_SEGMENT_STEPS)
        result.extend((x0 + dx * j / steps, y0 + dy * j / steps) for j in range(1, steps + 1))
    return result


# ============= Grid Rendering =============


def color_to_char(color: Optional[str]) -> str:
    if not color or not isinstance(color, str):
        return "#"
    lower = color.lower()
    for char, name, hexes in _COLOR_CHARS:
        if name in lower or lower in hexes:
            return char
    if lower in ("#ffffff", "white"):
        # eraser strokes clear cells
        return "."
    return "#"


def _plot(grid: np.ndarray, points: Sequence[Point], cell_size: int, char: str) -> None:
    if not points:
        return
    xy = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    cols = np.floor(xy[:, 0] / cell_size)
    rows = np.floor(xy[:, 1] / cell_size)
    height, width = grid.shape
    inside = (cols >= 0) & (cols < width) & (rows >= 0) & (rows < height)
    grid[rows[inside].astype(int), cols[inside].astype(int)] = char


def _header(grid_width: int) -> list[str]:
    padding = " " * max(grid_width - 6, 0)
    return [
        f"     {'0':>3}{padding}{grid_width - 1}",
        f"     {'|':>3}{padding}|",
    ]


def strokes_to_ascii_grid(
    strokes: Iterable[Mapping[str, Any]],
    shapes: Iterable[Mapping[str, Any]],
    canvas_width: float,
    canvas_height: float,
    cell_size: int = DEFAULT_CELL_SIZE,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> AsciiGrid:
    """Render human strokes (``{d, color}``) and Claude shapes onto a character grid.

    The grid is ``ceil(canvas / cell_size)`` cells in each direction unless
    ``width``/``height`` are given. Row labels are the pixel y of each row.
    """
    if cell_size <= 0:
        raise ValueError(f"cell_size must be positive, got {cell_size}")

    grid_width = width or math.ceil(canvas_width / cell_size)
    grid_height = height or math.ceil(canvas_height / cell_size)
    if grid_width * grid_height > MAX_GRID_CELLS:
        raise ValueError(
            f"grid of {grid_width}x{grid_height} cells exceeds the {MAX_GRID_CELLS} cell limit"
        )
    grid = np.full((grid_height, grid_width), ".", dtype="<U1")
    step = cell_size / 2
    marked = False

    for stroke in strokes:
        points = interpolate_points(parse_path_points(stroke.get("d") or ""), step)
        _plot(grid, points, cell_size, color_to_char(stroke.get("color")))
        marked = True

    for shape in shapes:
        points = interpolate_points(shape_points(shape), step)
        color = shape.get("color") or CLAUDE_DEFAULT_COLOR
        _plot(grid, points, cell_size, color_to_char(color).lower())
        marked = True

    lines = _header(grid_width)
    lines.extend(f"{i * cell_size:>3}: {''.join(row)}" for i, row in enumerate(grid))

    legend = ["Legend: . = empty"]
    if marked:
        legend.append("Human strokes: # (black), R (red), B (blue), G (green), Y (yellow), O (orange), P (purple)")
        legend.append("Claude's shapes: lowercase letters (r, b, g, etc.)")

    return AsciiGrid(
        grid="\n".join(lines),
        cellSize=cell_size,
        gridWidth=grid_width,
        gridHeight=grid_height,
        legend="\n".join(legend),
    )
