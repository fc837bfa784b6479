from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger("catalog_chat.pipeline")


@dataclass
class PipelineStep:
    """Named step for the chat pipeline runner."""
    name: str
    fn: Callable[[object], None]
    skip_if: Optional[Callable[[object], bool]] = None


class PipelineRunner:
    """Deterministic in-order step runner with per-step timing logs."""

    def __init__(self, steps: List[PipelineStep]) -> None:
        self._steps = steps

    def run(self, context: object, label: str = "-") -> None:
        """Purpose: Execute steps in order, honoring skip_if guards.
        Inputs/Outputs: Inputs are a mutable context and a log label; no return value.
        Side Effects / State: Invokes step functions that mutate context; logs each step.
        Dependencies: PipelineStep.fn and PipelineStep.skip_if.
        Failure Modes: Exceptions in a step are logged with the step name and re-raised;
            later steps do not run.
        If Removed: Chat requests cannot be processed.
        Testing Notes: Verify order, skip_if behavior, and that a failing step stops the run.
        """
        for step in self._steps:
            if step.skip_if and step.skip_if(context):
                logger.debug("session=%s step=%s status=skipped", label, step.name)
                continue
            started = time.perf_counter()
            try:
                step.fn(context)
            except Exception:
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.warning("session=%s step=%s status=failed elapsed_ms=%.1f", label, step.name, elapsed_ms)
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info("session=%s step=%s status=success elapsed_ms=%.1f", label, step.name, elapsed_ms)
