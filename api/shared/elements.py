"""
Tracked canvas elements and their text rendering for draw prompts.

Every stroke, shape and text block on the shared canvas carries a stable id
(``h-N`` for the human, ``c-N`` for Claude) so the model can refer to it and
so turns can be described as diffs. This module holds:

- the element / diff / operation models exchanged with the frontend
- region and bounds helpers used to describe where an element sits
- the four prompt formats (full, compact-summary, compact-bounds, diff-only)
- ``CanvasState``, which assigns ids, applies operations and computes diffs
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .logger import get_logger

logger = get_logger(__name__)

ElementSource = Literal["human", "claude"]
ElementType = Literal["stroke", "shape", "block"]
ShapeType = Literal["circle", "line", "rect", "path", "ellipse", "polygon"]
FormatMode = Literal["full", "compact-summary", "compact-bounds", "diff-only"]
OperationType = Literal["create", "update", "delete"]

FORMAT_MODES: tuple[str, ...] = ("full", "compact-summary", "compact-bounds", "diff-only")

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?|\.\d+")

# Fields a shape or operation may set on an element
_GEOMETRY_FIELDS = (
    "d", "color", "fill", "strokeWidth",
    "cx", "cy", "r", "rx", "ry",
    "x", "y", "x1", "y1", "x2", "y2",
    "width", "height", "points",
)


class ElementNotFoundError(KeyError):
    """Raised when an operation references an element id that does not exist."""


# ============= Pydantic Models =============


class TrackedElement(BaseModel):
    """An element on the canvas with a stable id."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Stable id such as 'h-1' or 'c-3'")
    source: ElementSource
    type: ElementType
    d: str | None = None
    shapeType: ShapeType | None = None
    color: str | None = None
    fill: str | None = None
    strokeWidth: float | None = None
    cx: float | None = None
    cy: float | None = None
    r: float | None = None
    rx: float | None = None
    ry: float | None = None
    x: float | None = None
    y: float | None = None
    x1: float | None = None
    y1: float | None = None
    x2: float | None = None
    y2: float | None = None
    width: float | None = None
    height: float | None = None
    points: list[list[float]] | None = None
    block: str | None = None
    turnCreated: int = 0
    turnModified: int | None = None


class ElementChange(BaseModel):
    id: str
    changes: dict[str, Any] = Field(default_factory=dict)


class ElementDiff(BaseModel):
    """What changed on the canvas since the previous turn."""

    created: list[TrackedElement] = Field(default_factory=list)
    modified: list[ElementChange] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.created or self.modified or self.deleted)


class ElementOperation(BaseModel):
    """A create/update/delete instruction emitted by the model."""

    op: OperationType
    id: str | None = Field(None, description="Target id, required for update and delete")
    element: dict[str, Any] | None = Field(None, description="Element fields for create/update")


# ============= Geometry Helpers =============


def _fmt(value: Any) -> str:
    """Render a value the way the prompts expect: ``10`` not ``10.0``, empty for missing."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _round(value: float) -> int:
    return math.floor(value + 0.5)


def _path_numbers(d: str) -> list[float]:
    return [float(n) for n in _NUMBER_RE.findall(d)]


def get_bounds(el: TrackedElement) -> str:
    """Bounding box of an element as ``"x,y,width,height"``."""
    if el.d:
        coords = _path_numbers(el.d)
        if len(coords) >= 4:
            xs = coords[0::2]
            ys = coords[1::2]
            min_x, min_y = _round(min(xs)), _round(min(ys))
            max_x, max_y = _round(max(xs)), _round(max(ys))
            return f"{min_x},{min_y},{max_x - min_x},{max_y - min_y}"
    if el.cx is not None and el.cy is not None:
        r = el.r or el.rx or 10
        return f"{_round(el.cx - r)},{_round(el.cy - r)},{_round(r * 2)},{_round(r * 2)}"
    if el.x is not None and el.y is not None:
        return f"{_round(el.x)},{_round(el.y)},{_round(el.width or 0)},{_round(el.height or 0)}"
    return "0,0,0,0"


def _center(el: TrackedElement) -> tuple[float, float]:
    if el.cx is not None and el.cy is not None:
        return el.cx, el.cy
    if el.x is not None and el.y is not None:
        return el.x + (el.width or 0) / 2, el.y + (el.height or 0) / 2
    if el.d:
        coords = _path_numbers(el.d)
        if len(coords) >= 2:
            # start of the path stands in for its centre
            return coords[0], coords[1]
    return 0.0, 0.0


def get_region(el: TrackedElement, canvas_width: float, canvas_height: float) -> str:
    """Name the cell of a 3x3 grid that holds the element's centre."""
    center_x, center_y = _center(el)

    if center_x < canvas_width / 3:
        horizontal = "left"
    elif center_x > canvas_width * 2 / 3:
        horizontal = "right"
    else:
        horizontal = "center"

    if center_y < canvas_height / 3:
        vertical = "top"
    elif center_y > canvas_height * 2 / 3:
        vertical = "bottom"
    else:
        vertical = "middle"

    if horizontal == "center" and vertical == "middle":
        return "center"
    if horizontal == "center":
        return vertical
    if vertical == "middle":
        return horizontal
    return f"{vertical}-{horizontal}"


# ============= Prompt Formats =============


def format_element(el: TrackedElement, canvas_width: float, canvas_height: float) -> str:
    region = get_region(el, canvas_width, canvas_height)

    if el.type == "stroke" and el.d:
        return (
            f'  <element id="{el.id}" type="stroke" color="{_fmt(el.color)}" '
            f'width="{_fmt(el.strokeWidth)}" region="{region}" turn="{el.turnCreated}">\n'
            f'    <path d="{el.d}"/>\n'
            f"  </element>\n"
        )
    if el.type == "shape":
        props = []
        for attr, name in (
            ("shapeType", "shape"), ("color", "color"), ("fill", "fill"),
            ("cx", "cx"), ("cy", "cy"), ("r", "r"), ("x", "x"), ("y", "y"),
            ("width", "width"), ("height", "height"), ("d", "d"),
        ):
            value = getattr(el, attr)
            # empty strings are skipped like unset values
            if value is not None and value != "":
                props.append(f'{name}="{_fmt(value)}"')
        return (
            f'  <element id="{el.id}" type="shape" {" ".join(props)} '
            f'region="{region}" turn="{el.turnCreated}"/>\n'
        )
    if el.type == "block" and el.block:
        preview = el.block.split("\n")[0][:20]
        return (
            f'  <element id="{el.id}" type="block" x="{_fmt(el.x)}" y="{_fmt(el.y)}" '
            f'preview="{preview}..." region="{region}" turn="{el.turnCreated}"/>\n'
        )
    return ""


def format_elements_full(
    elements: list[TrackedElement], canvas_width: float, canvas_height: float
) -> str:
    if not elements:
        return "<elements>\nCanvas is empty.\n</elements>"

    human = [e for e in elements if e.source == "human"]
    claude = [e for e in elements if e.source == "claude"]

    output = "<elements>\n"
    if human:
        output += "<human-elements>\n"
        output += "".join(format_element(e, canvas_width, canvas_height) for e in human)
        output += "</human-elements>\n"
    if claude:
        output += "<your-elements>\n"
        output += "".join(format_element(e, canvas_width, canvas_height) for e in claude)
        output += "</your-elements>\n"
    output += "</elements>"
    return output


def format_diff_only(
    diff: ElementDiff | None, canvas_width: float, canvas_height: float
) -> str:
    """Only what is new this turn; the model is trusted to remember the rest."""
    if diff is None or (not diff.created and not diff.deleted):
        return "No changes since last turn."

    output = "<new-this-turn>\n"
    for el in diff.created:
        region = get_region(el, canvas_width, canvas_height)
        bounds = get_bounds(el)
        if el.type == "stroke":
            output += f'  {el.id}:stroke@{region}({bounds}) d="{_fmt(el.d)}"\n'
        elif el.type == "shape":
            output += f"  {el.id}:{_fmt(el.shapeType)}@{region}({bounds})\n"
    output += "</new-this-turn>"

    if diff.deleted:
        output += f"\n<deleted>{','.join(diff.deleted)}</deleted>"
    return output


def _existing_human(elements: list[TrackedElement], diff: ElementDiff | None) -> list[TrackedElement]:
    new_ids = {e.id for e in diff.created} if diff else set()
    return [e for e in elements if e.source == "human" and e.id not in new_ids]


def format_compact_summary(
    elements: list[TrackedElement],
    diff: ElementDiff | None,
    canvas_width: float,
    canvas_height: float,
) -> str:
    """Ids and types for existing elements, full path data for new strokes."""
    existing_human = _existing_human(elements, diff)
    claude = [e for e in elements if e.source == "claude"]

    output = "<existing>\n"
    if existing_human:
        output += "  Human: " + " ".join(f"{e.id}:{e.type}" for e in existing_human) + "\n"
    if claude:
        output += "  You: " + " ".join(f"{e.id}:{e.shapeType or e.type}" for e in claude) + "\n"
    output += "</existing>\n"

    if diff and diff.created:
        output += "<new-this-turn>\n"
        for el in diff.created:
            if el.type == "stroke" and el.d:
                region = get_region(el, canvas_width, canvas_height)
                output += f'  {el.id}:stroke@{region} d="{el.d}"\n'
        output += "</new-this-turn>"
    return output


def format_compact_bounds(
    elements: list[TrackedElement],
    diff: ElementDiff | None,
    canvas_width: float,
    canvas_height: float,
) -> str:
    """Ids and bounds for existing elements, full path data for new strokes."""
    existing_human = _existing_human(elements, diff)
    claude = [e for e in elements if e.source == "claude"]

    output = "<existing>\n"
    if existing_human:
        output += "  Human: " + " ".join(
            f"{e.id}@{get_region(e, canvas_width, canvas_height)}({get_bounds(e)})"
            for e in existing_human
        ) + "\n"
    if claude:
        output += "  You: " + " ".join(
            f"{e.id}:{e.shapeType or 'shape'}@{get_region(e, canvas_width, canvas_height)}({get_bounds(e)})"
            for e in claude
        ) + "\n"
    output += "</existing>\n"

    if diff and diff.created:
        output += "<new-this-turn>\n"
        for el in diff.created:
            if el.type == "stroke" and el.d:
                region = get_region(el, canvas_width, canvas_height)
                output += f'  {el.id}:stroke@{region} color="{_fmt(el.color)}" d="{el.d}"\n'
        output += "</new-this-turn>"
    return output


def format_elements(
    elements: list[TrackedElement],
    diff: ElementDiff | None,
    canvas_width: float,
    canvas_height: float,
    mode: str = "full",
) -> str:
    """Render the canvas state for the prompt in the requested format."""
    if mode == "diff-only":
        return format_diff_only(diff, canvas_width, canvas_height)
    if mode == "compact-summary":
        return format_compact_summary(elements, diff, canvas_width, canvas_height)
    if mode == "compact-bounds":
        return format_compact_bounds(elements, diff, canvas_width, canvas_height)
    return format_elements_full(elements, canvas_width, canvas_height)


def format_diff(diff: ElementDiff) -> str:
    """Render a diff as the ``<changes-since-last-turn>`` section."""
    if diff.is_empty():
        return "<changes>No changes since last turn.</changes>"

    output = "<changes-since-last-turn>\n"
    if diff.created:
        output += "  <created>\n"
        for el in diff.created:
            if el.type == "stroke":
                output += (
                    f'    <element id="{el.id}" type="stroke" color="{_fmt(el.color)}">'
                    f'<path d="{_fmt(el.d)}"/></element>\n'
                )
            elif el.type == "shape":
                output += f'    <element id="{el.id}" type="shape" shape="{_fmt(el.shapeType)}"/>\n'
        output += "  </created>\n"

    if diff.modified:
        output += "  <modified>\n"
        for change in diff.modified:
            changes = json.dumps(change.changes, separators=(",", ":"))
            output += f'    <element id="{change.id}" changes="{changes}"/>\n'
        output += "  </modified>\n"

    if diff.deleted:
        output += f'  <deleted ids="{",".join(diff.deleted)}"/>\n'

    output += "</changes-since-last-turn>"
    return output


def compute_diff(previous: list[TrackedElement], current: list[TrackedElement]) -> ElementDiff:
    """Human elements added or removed between two snapshots of the canvas."""
    previous_ids = {e.id for e in previous}
    current_human = [e for e in current if e.source == "human"]
    current_human_ids = {e.id for e in current_human}

    created = [e for e in current_human if e.id not in previous_ids]
    deleted = [
        e.id for e in previous
        if e.source == "human" and e.id not in current_human_ids
    ]
    return ElementDiff(created=created, modified=[], deleted=deleted)


# ============= Canvas State =============


class CanvasState:
    """Element list for one canvas, with id assignment and turn tracking."""

    def __init__(self):
        self.elements: list[TrackedElement] = []
        self.turn = 0
        self._human_counter = 0
        self._claude_counter = 0
        self._last_turn: list[TrackedElement] = []

    def _next_id(self, source: str) -> str:
        if source == "human":
            self._human_counter += 1
            return f"h-{self._human_counter}"
        self._claude_counter += 1
        return f"c-{self._claude_counter}"

    def get(self, element_id: str) -> TrackedElement:
        for el in self.elements:
            if el.id == element_id:
                return el
        raise ElementNotFoundError(element_id)

    def add_stroke(
        self,
        d: str,
        color: str | None = None,
        stroke_width: float | None = None,
    ) -> TrackedElement | None:
        """Record a finished human stroke. A bare ``M`` with no ``L`` is ignored."""
        if "L" not in d:
            return None
        el = TrackedElement(
            id=self._next_id("human"),
            source="human",
            type="stroke",
            d=d,
            color=color,
            strokeWidth=stroke_width,
            turnCreated=self.turn,
        )
        self.elements.append(el)
        return el

    def add_shape(self, shape: dict[str, Any]) -> TrackedElement:
        """Record a shape streamed by the model (``type`` is the shape kind)."""
        fields = {k: shape[k] for k in _GEOMETRY_FIELDS if shape.get(k) is not None}
        el = TrackedElement(
            id=self._next_id("claude"),
            source="claude",
            type="shape",
            shapeType=shape.get("type"),
            turnCreated=self.turn,
            **fields,
        )
        self.elements.append(el)
        return el

    def add_block(self, block: dict[str, Any]) -> TrackedElement:
        el = TrackedElement(
            id=self._next_id("claude"),
            source="claude",
            type="block",
            block=block.get("block"),
            x=block.get("x"),
            y=block.get("y"),
            color=block.get("color"),
            turnCreated=self.turn,
        )
        self.elements.append(el)
        return el

    def apply_operation(self, operation: ElementOperation | dict[str, Any]) -> TrackedElement | None:
        """Apply a create/update/delete operation from the model.

        Returns the created, updated or removed element.
        """
        if isinstance(operation, dict):
            operation = ElementOperation.model_validate(operation)

        changes = dict(operation.element or {})
        for key in ("id", "source", "turnCreated", "turnModified"):
            changes.pop(key, None)

        if operation.op == "create":
            changes.setdefault("type", "shape")
            el = TrackedElement.model_validate({
                **changes,
                "id": self._next_id("claude"),
                "source": "claude",
                "turnCreated": self.turn,
            })
            self.elements.append(el)
            return el

        if operation.id is None:
            raise ValueError(f"'{operation.op}' operation requires an element id")
        current = self.get(operation.id)

        if operation.op == "delete":
            self.elements.remove(current)
            logger.debug("Deleted element %s", current.id)
            return current

        merged = current.model_dump()
        merged.update(changes)
        merged["turnModified"] = self.turn
        updated = TrackedElement.model_validate(merged)
        self.elements[self.elements.index(current)] = updated
        return updated

    def apply_event(self, event: dict[str, Any]) -> TrackedElement | None:
        """Apply one streamed draw event; non-element events are ignored."""
        kind = event.get("type")
        data = event.get("data")
        if kind == "shape" and isinstance(data, dict):
            return self.add_shape(data)
        if kind == "block" and isinstance(data, dict):
            return self.add_block(data)
        if kind == "operation" and isinstance(data, dict):
            return self.apply_operation(data)
        return None

    def diff_since_last_turn(self) -> ElementDiff:
        return compute_diff(self._last_turn, self.elements)

    def end_turn(self) -> None:
        """Snapshot the canvas as the baseline for the next diff."""
        self._last_turn = list(self.elements)
        self.turn += 1

    def clear(self) -> None:
        self.elements = []
        self._last_turn = []
        self.turn = 0
        self._human_counter = 0
        self._claude_counter = 0
