from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger("cartify.pipeline")

ContextT = TypeVar("ContextT")


@dataclass
class PipelineStep(Generic[ContextT]):
    """Step descriptor for the sequential pipeline runner."""
    name: str
    fn: Callable[[ContextT], None]
    skip_if: Optional[Callable[[ContextT], bool]] = None


class StepRunner(Generic[ContextT]):
    """Runs steps in order over a mutable per-request context."""

    def __init__(self, steps: List[PipelineStep[ContextT]]) -> None:
        self._steps = steps

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def run(self, context: ContextT) -> List[str]:
        """Purpose: Execute steps in order, honoring skip_if guards.
        Inputs/Outputs: Input is the context; output is the names of executed steps.
        Side Effects / State: Step functions mutate the context; timings are logged.
        Dependencies: Depends on PipelineStep.fn and PipelineStep.skip_if.
        Failure Modes: Exceptions in step functions propagate and stop the run, so
            later steps never execute.
        If Removed: The handler cannot sequence its stages.
        Testing Notes: A raising first step must leave later steps unexecuted.
        """
        # Stop at the first raising step; skipped steps are logged, not recorded.
        executed: List[str] = []
        for step in self._steps:
            if step.skip_if and step.skip_if(context):
                logger.debug("step=%s status=skipped", step.name)
                continue
            started = time.perf_counter()
            step.fn(context)
            executed.append(step.name)
            logger.debug("step=%s status=done elapsed_ms=%.1f", step.name, (time.perf_counter() - started) * 1000)
        return executed
