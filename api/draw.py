"""
Draw API routes for the codraw backend.

This module provides FastAPI routes for the shared canvas:
- Stroke simplification (path strings and raw point lists)
- Prompt context rendering for a canvas state, optionally with an ASCII grid
- Draw-elements turns, answered by Claude either as one JSON reply or as an
  SSE stream that emits each shape, block or operation as soon as it is complete
- Rolling summaries of past turns
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Optional

import anthropic
from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .app_config import get_app_config
from .shared.ascii_grid import DEFAULT_CELL_SIZE, strokes_to_ascii_grid
from .shared.elements import (
    ElementDiff,
    FormatMode,
    TrackedElement,
    format_diff,
    format_elements,
)
from .shared.llm import (
    build_message_content,
    build_message_params,
    extract_json_object,
    get_client,
    response_text,
    usage_to_dict,
)
from .shared.logger import get_logger
from .shared.prompts import get_system_prompt, get_user_message
from .shared.simplify import get_path_stats, rdp_indices, simplify_path
from .shared.sse import SSE_HEADERS, SSE_MEDIA_TYPE, format_sse
from .shared.stream_extract import StreamExtractor
from .shared.summary import (
    SUMMARY_MAX_TOKENS,
    SUMMARY_MODEL,
    SessionTurn,
    describe_turns,
    get_summary_prompt,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/draw", tags=["draw"])


# ============= Pydantic Models =============


class CamelModel(BaseModel):
    """Accepts the frontend's camelCase keys as well as snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SimplifyRequest(BaseModel):
    d: str = Field(..., description="Path string made of M/L commands")
    epsilon: Optional[float] = Field(None, ge=0, description="Tolerance in pixels")


class PointModel(BaseModel):
    x: float
    y: float


class SimplifyPointsRequest(BaseModel):
    points: list[PointModel] = Field(default_factory=list)
    epsilon: Optional[float] = Field(None, ge=0, description="Tolerance in pixels")
    clamp: bool = Field(False, description="Measure distance to the anchor segment instead of the line")


class PathStatsRequest(BaseModel):
    original: str
    simplified: str


class SyncContext(BaseModel):
    turn: int
    observation: Optional[str] = None


class CanvasRequest(CamelModel):
    """Canvas state shared by the format and draw-elements endpoints."""

    elements: list[TrackedElement] = Field(default_factory=list)
    diff: Optional[ElementDiff] = None
    canvas_width: float = Field(..., gt=0)
    canvas_height: float = Field(..., gt=0)
    turn_count: int = 0
    format: FormatMode = "full"
    simplify_epsilon: Optional[float] = Field(
        None, ge=0, description="Simplify human strokes with this tolerance before prompting"
    )
    ascii_cell_size: Optional[int] = Field(
        None, gt=0, description="Append an ASCII grid of the canvas with cells of this many pixels"
    )


class GridStroke(BaseModel):
    d: str = ""
    color: Optional[str] = None


class AsciiGridRequest(CamelModel):
    strokes: list[GridStroke] = Field(default_factory=list)
    shapes: list[dict[str, Any]] = Field(default_factory=list)
    canvas_width: float = Field(..., gt=0)
    canvas_height: float = Field(..., gt=0)
    cell_size: int = Field(DEFAULT_CELL_SIZE, gt=0)
    width: Optional[int] = Field(None, gt=0, description="Grid width in cells")
    height: Optional[int] = Field(None, gt=0, description="Grid height in cells")


class SummarizeRequest(CamelModel):
    turns: list[SessionTurn] = Field(default_factory=list)
    existing_summary: Optional[str] = None
    user_api_key: Optional[str] = None


class DrawElementsRequest(CanvasRequest):
    temperature: Optional[float] = Field(None, ge=0, le=1)
    max_tokens: Optional[int] = Field(None, gt=0)
    prompt: Optional[str] = None
    streaming: bool = False
    model: Optional[str] = None
    user_api_key: Optional[str] = None
    image: Optional[str] = Field(None, description="Canvas snapshot as a data URL")
    last_sync_context: Optional[SyncContext] = None
    allow_operations: bool = False


# ============= Helpers =============


def _simplified(elements: list[TrackedElement], epsilon: Optional[float]) -> list[TrackedElement]:
    if epsilon is None:
        return elements
    result = []
    for el in elements:
        if el.source == "human" and el.type == "stroke" and el.d:
            el = el.model_copy(update={"d": simplify_path(el.d, epsilon)})
        result.append(el)
    return result


def _px(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _grid_inputs(elements: list[TrackedElement]) -> tuple[list[dict], list[dict]]:
    """Split tracked elements into grid strokes (human) and grid shapes (Claude)."""
    strokes, shapes = [], []
    for el in elements:
        if el.type == "block":
            continue
        if el.source == "human":
            if el.d:
                strokes.append({"d": el.d, "color": el.color or "#000000"})
        else:
            shape = el.model_dump(exclude_none=True)
            shape["type"] = el.shapeType or "path"
            shapes.append(shape)
    return strokes, shapes


def build_grid_section(
    elements: list[TrackedElement], canvas_width: float, canvas_height: float, cell_size: int
) -> str:
    strokes, shapes = _grid_inputs(elements)
    grid = strokes_to_ascii_grid(strokes, shapes, canvas_width, canvas_height, cell_size)
    return (
        f"Canvas: {_px(canvas_width)}x{_px(canvas_height)} pixels (grid cell = {cell_size}px)\n\n"
        f"<canvas-grid>\n{grid.grid}\n</canvas-grid>\n\n"
        "Legend:\n"
        "- . = empty\n"
        "- # = human's black stroke\n"
        "- R/G/B/Y/O/P = human's colored strokes (Red/Green/Blue/Yellow/Orange/Purple)\n"
        "- lowercase = your previous drawings\n"
    )


def build_canvas_context(request: CanvasRequest) -> str:
    """Header and formatted elements, followed by any diff or ASCII grid section."""
    elements = _simplified(request.elements, request.simplify_epsilon)
    diff = request.diff
    if diff is not None and request.simplify_epsilon is not None:
        diff = diff.model_copy(update={"created": _simplified(diff.created, request.simplify_epsilon)})

    context = f"Canvas: {_px(request.canvas_width)}x{_px(request.canvas_height)}px | Turn: {request.turn_count}\n\n"
    context += format_elements(elements, diff, request.canvas_width, request.canvas_height, request.format)
    context += "\n\n"

    # other formats already carry the diff inline
    if diff is not None and request.format == "full":
        context += format_diff(diff)
        context += "\n\n"

    if request.ascii_cell_size is not None:
        context += build_grid_section(
            elements, request.canvas_width, request.canvas_height, request.ascii_cell_size
        )
        context += "\n"
    return context


def build_turn_params(request: DrawElementsRequest) -> dict[str, Any]:
    context = build_canvas_context(request)

    sync = request.last_sync_context
    if sync is not None and not request.image:
        context += f"[Last visual sync - Turn {sync.turn}]\n"
        if sync.observation:
            context += f"Observed: {sync.observation}\n"
        context += "\n"

    user_message = get_user_message(context, request.allow_operations, request.diff is not None)
    return build_message_params(
        system_prompt=get_system_prompt(request.allow_operations, request.prompt),
        content=build_message_content(user_message, request.image),
        model=request.model,
        max_tokens=request.max_tokens,
        temperature=request.temperature,
    )


async def stream_draw_turn(
    client: anthropic.AsyncAnthropic,
    params: dict[str, Any],
    allow_operations: bool,
) -> AsyncIterator[str]:
    """Relay a streamed reply as SSE records, one per completed item.

    Always ends with a ``done`` or an ``error`` record.
    """
    array_keys = ("operations",) if allow_operations else ("shapes", "blocks")
    extractor = StreamExtractor(array_keys=array_keys)

    try:
        async with client.messages.stream(**params) as stream:
            async for event in stream:
                if event.type != "content_block_delta" or event.delta.type != "text_delta":
                    continue
                for item in extractor.feed(event.delta.text):
                    yield format_sse(item)
            final_message = await stream.get_final_message()

        for item in extractor.finish():
            yield format_sse(item)
        yield format_sse({"type": "done", "usage": usage_to_dict(final_message.usage)})
    except Exception as e:
        logger.error("Draw stream failed: %s", e)
        yield format_sse({"type": "error", "message": str(e)})


# ============= Simplification Endpoints =============


@router.post("/simplify")
async def simplify(request: SimplifyRequest):
    """Simplify a path string and report how much it shrank."""
    epsilon = request.epsilon if request.epsilon is not None else get_app_config().simplify_epsilon
    simplified = simplify_path(request.d, epsilon)
    return {
        "d": simplified,
        "epsilon": epsilon,
        "stats": get_path_stats(request.d, simplified).to_dict(),
    }


@router.post("/simplify-points")
async def simplify_points(request: SimplifyPointsRequest):
    """Simplify a raw point list, returning the kept points and their indices."""
    epsilon = request.epsilon if request.epsilon is not None else get_app_config().simplify_epsilon
    points = [(p.x, p.y) for p in request.points]
    kept = rdp_indices(points, epsilon, clamp=request.clamp)
    return {
        "points": [{"x": points[i][0], "y": points[i][1]} for i in kept],
        "kept_indices": [int(i) for i in kept],
        "original_count": len(points),
    }


@router.post("/stats")
async def path_stats(request: PathStatsRequest):
    return get_path_stats(request.original, request.simplified).to_dict()


# ============= Draw Turn Endpoints =============


@router.post("/ascii")
async def ascii_grid(request: AsciiGridRequest):
    """Render strokes and shapes as a character grid."""
    try:
        grid = strokes_to_ascii_grid(
            [s.model_dump() for s in request.strokes],
            request.shapes,
            request.canvas_width,
            request.canvas_height,
            cell_size=request.cell_size,
            width=request.width,
            height=request.height,
        )
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return grid.to_dict()


@router.post("/format")
async def format_canvas(request: CanvasRequest):
    """Render the prompt context for a canvas without calling the model."""
    try:
        context = build_canvas_context(request)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return {"context": context, "format": request.format}


@router.post("/elements")
async def draw_elements(request: DrawElementsRequest):
    """Ask Claude for its next move on the canvas.

    Failures before the reply arrives are reported as 500 ``{"error": ...}``.
    """
    try:
        client = get_client(request.user_api_key)
        params = build_turn_params(request)
    except Exception as e:
        logger.error("Draw elements setup failed: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})

    logger.info(
        "Draw turn %d: %d elements, format=%s, operations=%s, streaming=%s",
        request.turn_count, len(request.elements), request.format,
        request.allow_operations, request.streaming,
    )

    if request.streaming:
        return StreamingResponse(
            stream_draw_turn(client, params, request.allow_operations),
            media_type=SSE_MEDIA_TYPE,
            headers=SSE_HEADERS,
        )

    try:
        message = await client.messages.create(**params)
    except Exception as e:
        logger.error("Draw elements request failed: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})

    text = response_text(message)
    try:
        parsed = extract_json_object(text)
    except json.JSONDecodeError:
        return JSONResponse(status_code=500, content={"error": "Parse failed", "raw": text})
    if parsed is None:
        return JSONResponse(status_code=500, content={"error": "No response", "raw": text})

    return {**parsed, "usage": usage_to_dict(message.usage)}


@router.post("/summarize")
async def summarize(request: SummarizeRequest):
    """Condense past turns, folding in the previous summary when one is given."""
    if not request.turns:
        return JSONResponse(status_code=400, content={"error": "Turns array required"})

    prompt = get_summary_prompt(describe_turns(request.turns), request.existing_summary)
    try:
        client = get_client(request.user_api_key)
        message = await client.messages.create(
            model=SUMMARY_MODEL,
            max_tokens=SUMMARY_MAX_TOKENS,
            temperature=0,
            messages=[{"role": "user", "content": prompt}],
        )
    except Exception as e:
        logger.error("Summarize failed: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})

    return {"summary": response_text(message), "usage": usage_to_dict(message.usage)}
