from __future__ import annotations

"""Prompt assembly for catalog-grounded generation.

The final prompt is one linear text with four sections, always in this order:
system instruction, product context block, conversation transcript, and the
trailing ``Assistant:`` cue the model continues from.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence

from .history import Role, Turn

logger = logging.getLogger("catalog_chat.prompt")

SYSTEM_INSTRUCTION_FILE = "system_instruction.md"

DEFAULT_SYSTEM_INSTRUCTION = (
    'Anda adalah Customer Service AI untuk "Sinar Box", sebuah toko spesialis neon box di Pontianak.\n'
    'Tugas Anda adalah menjawab pertanyaan pelanggan HANYA berdasarkan informasi dalam "KONTEKS PRODUK" '
    "yang diberikan.\n"
    "- JANGAN mengarang harga, spesifikasi, atau informasi lain.\n"
    "- Jika informasi tidak ada di konteks, jawab dengan sopan bahwa Anda tidak memiliki informasi tersebut "
    "atau akan menanyakannya ke tim.\n"
    "- Jawab dengan ramah, profesional, dan to-the-point.\n"
    "- Gunakan bahasa Indonesia."
)

CONTEXT_HEADER = "--- KONTEKS PRODUK (HANYA GUNAKAN INFO INI) ---"
CONTEXT_FOOTER = "--- AKHIR KONTEKS ---"
NO_CONTEXT_SENTINEL = "Tidak ada produk atau informasi yang relevan ditemukan di database."
HISTORY_HEADER = "--- HISTORY PERCAKAPAN SEBELUMNYA ---"
USER_LABEL = "User"
ASSISTANT_LABEL = "Assistant"
ASSISTANT_CUE = f"{ASSISTANT_LABEL}:"


def load_system_instruction(prompts_dir: Optional[Path]) -> str:
    """Purpose: Load the persona/grounding instruction from the prompts directory.
    Inputs/Outputs: Input is the prompts directory; output is the instruction text.
    Side Effects / State: Reads system_instruction.md when present.
    Dependencies: Path.read_text/read_bytes; DEFAULT_SYSTEM_INSTRUCTION fallback.
    Failure Modes: Missing file falls back to the built-in instruction; invalid UTF-8
        bytes are dropped by a tolerant decode.
    If Removed: The builder cannot be configured with an edited persona.
    Testing Notes: Validate BOM stripping and the fallback on a missing file.
    """
    if prompts_dir is None:
        return DEFAULT_SYSTEM_INSTRUCTION
    prompt_path = Path(prompts_dir) / SYSTEM_INSTRUCTION_FILE
    if not prompt_path.exists():
        logger.warning("prompt=%s missing, using built-in instruction", prompt_path)
        return DEFAULT_SYSTEM_INSTRUCTION
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        text = prompt_path.read_bytes().decode("utf-8", errors="ignore")
    text = text.lstrip("\ufeff").strip()
    return text or DEFAULT_SYSTEM_INSTRUCTION


@dataclass
class PromptContext:
    """Per-request inputs to prompt assembly; never persisted."""
    system_instruction: str
    retrieved_payloads: List[Any] = field(default_factory=list)
    history: List[Turn] = field(default_factory=list)


@dataclass
class PromptSections:
    """Rendered prompt sections, kept separate so each boundary is testable."""
    instruction: str
    context: str
    history: str
    cue: str = ASSISTANT_CUE

    def render(self) -> str:
        history_block = f"{HISTORY_HEADER}\n{self.history}" if self.history else HISTORY_HEADER
        return "\n\n".join([self.instruction, self.context, history_block]) + "\n" + self.cue


class PromptBuilder:
    """Compose instruction, retrieved context, and transcript into one prompt."""

    def __init__(self, system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION) -> None:
        self._system_instruction = system_instruction.strip()

    @property
    def system_instruction(self) -> str:
        return self._system_instruction

    def render_context(self, payloads: Sequence[Any]) -> str:
        """Purpose: Render retrieved payloads as the delimited context block.
        Inputs/Outputs: Input is a payload list; output is header, body, and footer text.
        Side Effects / State: None.
        Dependencies: json.dumps with indent=2; NO_CONTEXT_SENTINEL for empty retrieval.
        Failure Modes: Non-JSON values are rendered through str().
        If Removed: The model receives no grounding data.
        Testing Notes: Empty payloads must produce the sentinel between the delimiters.
        """
        if payloads:
            body = json.dumps(list(payloads), indent=2, ensure_ascii=False, default=str)
        else:
            body = NO_CONTEXT_SENTINEL
        return f"{CONTEXT_HEADER}\n{body}\n{CONTEXT_FOOTER}"

    def render_history(self, turns: Sequence[Turn]) -> str:
        lines = []
        for turn in turns:
            label = ASSISTANT_LABEL if turn.role == Role.ASSISTANT else USER_LABEL
            lines.append(f"{label}: {turn.content}")
        return "\n".join(lines)

    def build_sections(self, context: PromptContext, current_message: Optional[str] = None) -> PromptSections:
        """Purpose: Build the discrete prompt sections for one request.
        Inputs/Outputs: Input is a PromptContext and optional current message; output
            is PromptSections.
        Side Effects / State: None.
        Dependencies: render_context and render_history.
        Failure Modes: None.
        If Removed: assemble() has no structured intermediate to render.
        Testing Notes: Check each section independently of the final string.
        """
        turns = list(context.history)
        if current_message is not None and not _is_last_user_turn(turns, current_message):
            turns.append(Turn(role=Role.USER, content=current_message))
        return PromptSections(
            instruction=(context.system_instruction or self._system_instruction).strip(),
            context=self.render_context(context.retrieved_payloads),
            history=self.render_history(turns),
        )

    def assemble(
        self,
        payloads: Sequence[Any],
        turns: Sequence[Turn],
        current_message: Optional[str] = None,
    ) -> str:
        context = PromptContext(
            system_instruction=self._system_instruction,
            retrieved_payloads=list(payloads),
            history=list(turns),
        )
        return self.build_sections(context, current_message=current_message).render()


def _is_last_user_turn(turns: List[Turn], message: str) -> bool:
    if not turns:
        return False
    last = turns[-1]
    return last.role == Role.USER and last.content == message
