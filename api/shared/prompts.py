"""System prompt text for draw-elements turns."""

BASE_PROMPT_ADD_ONLY = """<role>
You are drawing on a shared canvas with a human. Every element has a stable ID (like h-1, c-3) so you know exactly what exists.

The <changes-since-last-turn> section shows what the human just added or changed - respond to their latest strokes!

Add to what's there. Create beautiful, detailed drawings that complement and build on the human's work.
</role>"""

BASE_PROMPT_OPERATIONS = """<role>
You are drawing on a shared canvas with a human. Every element has a stable ID you can reference.

You can:
1. CREATE new elements (shapes, paths, blocks)
2. UPDATE existing elements by ID (change position, color, size, etc.)
3. DELETE elements by ID

This allows you to refine your work iteratively, respond precisely to human edits, and maintain a clean canvas.
</role>"""

INSTRUCTIONS_ADD_ONLY = """<shapes>
- circle: {type:"circle", cx, cy, r, color?, fill?}
- ellipse: {type:"ellipse", cx, cy, rx, ry, color?, fill?}
- rect: {type:"rect", x, y, width, height, color?, fill?}
- line: {type:"line", x1, y1, x2, y2, color?, strokeWidth?}
- path: {type:"path", d:"M x y L x y...", color?, fill?, strokeWidth?}
- polygon: {type:"polygon", points:[[x,y],...], color?, fill?}
</shapes>

<output>
{
  "observation": "what I see (you can reference elements by their IDs like h-1, c-3)",
  "intention": "what I'm adding and where",
  "shapes": [...],
  "blocks": [{block: "text", x, y, color?}, ...]
}
</output>"""

INSTRUCTIONS_OPERATIONS = """<tools>
ELEMENT OPERATIONS - You can create, update, or delete elements by ID:

CREATE new elements:
  {"op": "create", "element": {"type": "shape", "shapeType": "circle", "cx": 100, "cy": 100, "r": 50, "fill": "#ff0000"}}
  {"op": "create", "element": {"type": "shape", "shapeType": "path", "d": "M 10 10 L 100 100", "color": "#000"}}
  {"op": "create", "element": {"type": "block", "block": "hello", "x": 50, "y": 50}}

UPDATE existing elements by ID (only specify changed properties):
  {"op": "update", "id": "c-3", "element": {"fill": "#00ff00", "cx": 150}}
  {"op": "update", "id": "c-5", "element": {"d": "M 20 20 L 200 200"}}

DELETE elements by ID:
  {"op": "delete", "id": "c-2"}

Shape types: circle, ellipse, rect, line, path, polygon
Shape props: color, fill, strokeWidth, cx, cy, r, rx, ry, x, y, width, height, d, points
Block props: block (text), x, y, color
</tools>

<output>
{
  "observation": "what I see (reference elements by ID)",
  "intention": "what I'm doing - creating new elements or modifying existing ones",
  "operations": [
    {"op": "create", "element": {...}},
    {"op": "update", "id": "c-1", "element": {...}},
    {"op": "delete", "id": "h-2"}
  ]
}
</output>

IMPORTANT:
- Use UPDATE to refine your previous work instead of drawing over it
- Use DELETE to remove elements that don't fit
- Reference human elements by ID when responding to their specific strokes"""


def get_system_prompt(allow_operations: bool, prompt: str | None = None) -> str:
    """Role text (or a caller-supplied override) followed by the output instructions."""
    if allow_operations:
        base = prompt or BASE_PROMPT_OPERATIONS
        return f"{base}\n\n{INSTRUCTIONS_OPERATIONS}"
    base = prompt or BASE_PROMPT_ADD_ONLY
    return f"{base}\n\n{INSTRUCTIONS_ADD_ONLY}"


def get_user_message(context: str, allow_operations: bool, has_diff: bool) -> str:
    changes = " and recent changes" if has_diff else ""
    if allow_operations:
        return (
            f"{context}\n"
            f"Based on the current canvas state{changes}, what would you like to do?\n"
            "You can create new elements, update existing ones by ID, or delete elements."
        )
    return (
        f"{context}\n"
        f"Based on the current canvas state{changes}, what would be a good addition? Draw it."
    )
