"""Catalog chat pipeline orchestration.

Role:
    Turns one user message into a grounded reply: records the user turn, retrieves
    matching catalog payloads, assembles the prompt, calls the generation backend,
    and records the reply. It owns the ChatContext contract passed across steps.

Step contracts:
    record_user_turn:
        Appends the user turn to the session history and trims it to the budget.
    retrieval:
        Runs keyword retrieval on the raw message; fills context.retrieved.
    assemble_prompt:
        Builds context.prompt from instruction, retrieved payloads, and trimmed history.
    generation:
        Calls the backend; fills context.reply. BackendError propagates.
    record_reply:
        Appends the assistant turn and trims again with the same budget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, List, Optional

from .catalog import CatalogEntry
from .errors import InvalidRequestError
from .gemini_client import TextGenerator
from .history import Role, Turn
from .pipeline_runner import PipelineRunner, PipelineStep
from .prompt_builder import PromptBuilder
from .retriever import retrieve
from .session_store import Session, SessionStore

logger = logging.getLogger("catalog_chat.pipeline")

MESSAGE_REQUIRED = "Message is required"


@dataclass
class ChatContext:
    """Mutable context passed through each pipeline step."""
    session: Session
    message: str
    retrieved: List[Any] = field(default_factory=list)
    prompt: str = ""
    reply: str = ""
    reply_turn: Optional[Turn] = None

    @property
    def reply_timestamp(self) -> Optional[datetime]:
        return self.reply_turn.timestamp if self.reply_turn else None


class ChatPipeline:
    def __init__(
        self,
        catalog: Iterable[CatalogEntry],
        sessions: SessionStore,
        generator: TextGenerator,
        prompt_builder: PromptBuilder,
        max_history_tokens: int,
    ) -> None:
        """Purpose: Wire the pipeline collaborators and register the ordered steps.
        Inputs/Outputs: Inputs are the catalog, session store, generator, prompt builder,
            and history budget; no return value.
        Side Effects / State: Constructs a PipelineRunner with the chat steps.
        Dependencies: PipelineRunner/PipelineStep and the step methods on this class.
        Failure Modes: None at init; runtime errors surface from the steps.
        If Removed: The chat endpoint cannot run the retrieval-generation flow.
        Testing Notes: Build with a stub generator and check the recorded turns.
        """
        self._catalog = catalog
        self._sessions = sessions
        self._generator = generator
        self._prompt_builder = prompt_builder
        self._max_history_tokens = max_history_tokens
        self._runner = PipelineRunner(
            steps=[
                PipelineStep("record_user_turn", self._step_record_user_turn),
                PipelineStep("retrieval", self._step_retrieval),
                PipelineStep("assemble_prompt", self._step_assemble_prompt),
                PipelineStep("generation", self._step_generation),
                PipelineStep("record_reply", self._step_record_reply),
            ]
        )

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    def handle_message(self, session_id: Optional[str], message: Optional[str]) -> ChatContext:
        """Purpose: Run the full pipeline for one user message.
        Inputs/Outputs: Inputs are an optional session id and the raw message; output is
            the populated ChatContext (reply, timestamp, prompt, retrieved payloads).
        Side Effects / State: Mutates the session history under the per-session lock.
        Dependencies: SessionStore.lock/get and PipelineRunner.run.
        Failure Modes: Blank message raises InvalidRequestError before any state change;
            BackendError from generation propagates with the user turn already recorded.
        If Removed: The API has no way to produce replies.
        Testing Notes: Two sequential messages in one session must both reach the second prompt.
        """
        if message is None or not str(message).strip():
            raise InvalidRequestError(MESSAGE_REQUIRED)
        with self._sessions.lock(session_id):
            session = self._sessions.get(session_id)
            context = ChatContext(session=session, message=str(message))
            logger.info("session=%s question=%s", session.id, context.message)
            self._runner.run(context, label=session.id)
        return context

    def clear_session(self, session_id: Optional[str]) -> bool:
        with self._sessions.lock(session_id):
            return self._sessions.clear(session_id)

    def _step_record_user_turn(self, context: ChatContext) -> None:
        context.session.history.add(Role.USER, context.message, self._max_history_tokens)

    def _step_retrieval(self, context: ChatContext) -> None:
        context.retrieved = retrieve(context.message, self._catalog)
        logger.info("session=%s retrieved=%s", context.session.id, len(context.retrieved))

    def _step_assemble_prompt(self, context: ChatContext) -> None:
        context.prompt = self._prompt_builder.assemble(
            context.retrieved,
            context.session.history.turns,
            current_message=context.message,
        )
        logger.debug("session=%s prompt_chars=%s", context.session.id, len(context.prompt))

    def _step_generation(self, context: ChatContext) -> None:
        context.reply = self._generator.generate(context.prompt)

    def _step_record_reply(self, context: ChatContext) -> None:
        context.reply_turn = context.session.history.add(
            Role.ASSISTANT, context.reply, self._max_history_tokens
        )
        logger.info(
            "session=%s answer_chars=%s history_turns=%s",
            context.session.id,
            len(context.reply),
            len(context.session.history),
        )
