from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Turn(BaseModel):
    """Immutable conversation turn."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


def estimate_tokens(text: Optional[str]) -> int:
    """Purpose: Approximate the model token count of a text.
    Inputs/Outputs: Input is a string (or None); output is ceil(len / 4).
    Side Effects / State: None; pure function.
    Dependencies: math.ceil.
    Failure Modes: None; None and "" both estimate to 0.
    If Removed: History trimming has no size measure and grows unbounded.
    Testing Notes: "" -> 0, "abcd" -> 1, "abcde" -> 2.
    """
    return math.ceil(len(text or "") / 4)


def trim_turns(turns: List[Turn], max_tokens: int) -> List[Turn]:
    """Purpose: Keep the newest turns that fit within an approximate token budget.
    Inputs/Outputs: Inputs are chronological turns and a budget; output is a suffix
        of the input in the same order.
    Side Effects / State: None; returns a new list.
    Dependencies: Uses estimate_tokens on each turn content.
    Failure Modes: None; the turn that overflows the budget is dropped together with
        everything older than it.
    If Removed: Prompts grow with every turn until the backend rejects them.
    Testing Notes: Budget never exceeded returns all turns; overflow returns a strict suffix.
    """
    # Walk newest to oldest and cut at the first overflow.
    total = 0
    for index in range(len(turns) - 1, -1, -1):
        total += estimate_tokens(turns[index].content)
        if total > max_tokens:
            return list(turns[index + 1 :])
    return list(turns)


class ConversationHistory:
    """Append-only turn log for one session, trimmed by token budget."""

    def __init__(self, turns: Optional[Iterable[Turn]] = None) -> None:
        self._turns: List[Turn] = list(turns or [])

    @property
    def turns(self) -> List[Turn]:
        return list(self._turns)

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def trim(self, max_tokens: int) -> List[Turn]:
        """Replace the stored turns with the trimmed suffix and return it."""
        self._turns = trim_turns(self._turns, max_tokens)
        return list(self._turns)

    def add(self, role: Role, content: str, max_tokens: int) -> Turn:
        """Purpose: Record a new turn and immediately enforce the token budget.
        Inputs/Outputs: Inputs are role, content, and budget; returns the new Turn.
        Side Effects / State: Mutates the stored turn list (append then trim).
        Dependencies: Uses Turn, append, and trim.
        Failure Modes: A single turn larger than the budget is dropped right away.
        If Removed: Pipeline steps would need to append and trim separately.
        Testing Notes: Add turns past the budget and verify the oldest are gone.
        """
        turn = Turn(role=role, content=str(content))
        self.append(turn)
        self.trim(max_tokens)
        return turn

    def clear(self) -> None:
        self._turns = []

    def __len__(self) -> int:
        return len(self._turns)
