"""Derived-state models returned by the engine after every mutation.

These are what the presentation collaborator reads: the normalized answer
tree, its scores, the progressive-disclosure progress and a flat
visibility map.
"""

from __future__ import annotations

from pydantic import BaseModel

from imnci_checklist.models.answers import AnswerTree
from imnci_checklist.models.scores import ScoreTree


class ProgressReport(BaseModel):
    """Step completion for progressive disclosure.

    ``highest_complete_step`` is the last step of the unbroken run of
    complete steps starting at step 1 (0 when step 1 is incomplete).
    ``missing`` lists the incomplete sections in form order.
    """

    highest_complete_step: int
    visible_step: int
    final_step: int
    step_complete: dict[int, bool]
    missing: list[str] = []

    @property
    def is_complete(self) -> bool:
        return self.highest_complete_step == self.final_step


class EngineState(BaseModel):
    """Everything recomputed by one mutate -> normalize -> score pass."""

    tree: AnswerTree
    scores: ScoreTree
    progress: ProgressReport
    visibility: dict[str, bool]
    # Whether normalization had to reset anything after the mutation
    normalized: bool = False
