"""
Shared utilities for the codraw API.

This module contains the stroke, element and streaming helpers used across
the draw endpoints.
"""
from .ascii_grid import AsciiGrid, strokes_to_ascii_grid
from .elements import CanvasState, ElementDiff, ElementOperation, TrackedElement, format_elements
from .simplify import path_to_points, points_to_path, rdp_simplify, simplify_path
from .sse import SSEDecoder, format_sse
from .stream_extract import StreamExtractor
from .summary import SessionTurn, describe_turns

__all__ = [
    "AsciiGrid",
    "strokes_to_ascii_grid",
    "CanvasState",
    "ElementDiff",
    "ElementOperation",
    "TrackedElement",
    "format_elements",
    "path_to_points",
    "points_to_path",
    "rdp_simplify",
    "simplify_path",
    "SSEDecoder",
    "format_sse",
    "StreamExtractor",
    "SessionTurn",
    "describe_turns",
]
