"""Turn descriptions and prompts for the rolling session summary."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SUMMARY_MODEL = "claude-haiku-4-5-20251001"
SUMMARY_MAX_TOKENS = 300

BLOCK_PREVIEW_CHARS = 30
DESCRIPTION_PREVIEW_CHARS = 100


class TurnBlock(BaseModel):
    block: str
    x: float = 0
    y: float = 0


class SessionTurn(BaseModel):
    """One past turn as the frontend records it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    turn_number: int
    who: Literal["human", "claude"]
    description: Optional[str] = None
    shapes: list[dict[str, Any]] = Field(default_factory=list)
    blocks: list[TurnBlock] = Field(default_factory=list)


def describe_turn(turn: SessionTurn) -> str:
    if turn.who == "human":
        return f"Turn {turn.turn_number}: Human drew on the canvas"

    parts = []
    if turn.shapes:
        parts.append(f"shapes ({', '.join(str(s.get('type', 'shape')) for s in turn.shapes)})")
    if turn.blocks:
        previews = "; ".join(b.block[:BLOCK_PREVIEW_CHARS].replace("\n", " ") for b in turn.blocks)
        parts.append(f'text: "{previews}"')
    if turn.description:
        parts.append(turn.description[:DESCRIPTION_PREVIEW_CHARS])
    return f"Turn {turn.turn_number}: Claude {', '.join(parts) or 'drew something'}"


def describe_turns(turns: list[SessionTurn]) -> str:
    return "\n".join(describe_turn(t) for t in turns)


def get_summary_prompt(turns_description: str, existing_summary: Optional[str] = None) -> str:
    """Prompt asking for a short summary, folding in the previous one when given."""
    if existing_summary:
        return (
            "You are summarizing a collaborative drawing session between a human and Claude.\n\n"
            f"Previous summary:\n{existing_summary}\n\n"
            f"New turns to incorporate:\n{turns_description}\n\n"
            "Write an updated summary (under 100 words) that incorporates the new turns. "
            "Focus on: what was drawn, spatial relationships, any themes or narrative emerging, "
            "the back-and-forth dynamic."
        )
    return (
        "Summarize this collaborative drawing session between a human and Claude:\n\n"
        f"{turns_description}\n\n"
        "Write a concise summary (under 100 words) capturing: what was drawn, spatial "
        "relationships, any themes emerging, and the collaborative dynamic."
    )
