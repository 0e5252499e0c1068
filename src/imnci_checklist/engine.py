"""ChecklistEngine — the mutate -> normalize -> score -> progress pipeline.

Stateless engine pattern: every call takes the current answer tree,
applies exactly one single-field mutation to a copy, normalizes it,
recomputes scores and progress, and returns the whole derived state.
Nothing is kept between calls, so one engine can serve any number of
sessions.

Usage::

    store = ChecklistStore()
    store.load()
    engine = ChecklistEngine(store)

    state = engine.new_tree()
    state = engine.set_skill(state.tree, "skill_weight", "yes")
    state.scores["vitalSigns"]         # ScorePair(score=1, max_score=3, ...)
    state.progress.visible_step        # 1
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from imnci_checklist.classification import ClassificationTracker
from imnci_checklist.config import EngineSettings, load_settings
from imnci_checklist.consistency import ConsistencyEngine
from imnci_checklist.constants import (
    ANSWER_VALUES,
    ANSWERED_VALUES,
    DECISION_VALUES,
    NA,
    UNANSWERED,
)
from imnci_checklist.errors import InvalidAnswerError, UnknownFieldError
from imnci_checklist.lifecycle import SessionLifecycle
from imnci_checklist.models.answers import AnswerTree, new_answer_tree
from imnci_checklist.models.checklist import ChecklistDefinition
from imnci_checklist.models.state import EngineState
from imnci_checklist.progress import ProgressTracker
from imnci_checklist.relevance import RelevanceEvaluator
from imnci_checklist.ruleset import ChecklistStore
from imnci_checklist.scoring import ScoreAggregator

logger = logging.getLogger(__name__)

_CONFIRM_VALUES = ANSWERED_VALUES | {UNANSWERED}


class ChecklistEngine:
    """Single entry point for every answer-tree mutation.

    Args:
        store: a loaded :class:`ChecklistStore` (loaded here if it is not)
        settings: engine settings; read from the environment when omitted
    """

    def __init__(
        self,
        store: ChecklistStore,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        if settings is None:
            settings = load_settings()
        if not store.is_loaded:
            store.load()
        self._store = store
        self._settings = settings

        definition = store.definition
        self._tracker = ClassificationTracker(definition)
        self._evaluator = RelevanceEvaluator(definition, self._tracker)
        self._consistency = ConsistencyEngine(definition, self._evaluator)
        self._scorer = ScoreAggregator(definition, self._evaluator, strict=settings.strict_scores)
        self._progress = ProgressTracker(definition, self._evaluator)
        self._lifecycle = SessionLifecycle(definition, self._consistency, self._progress)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def definition(self) -> ChecklistDefinition:
        return self._store.definition

    @property
    def tracker(self) -> ClassificationTracker:
        return self._tracker

    @property
    def evaluator(self) -> RelevanceEvaluator:
        return self._evaluator

    @property
    def consistency(self) -> ConsistencyEngine:
        return self._consistency

    @property
    def scorer(self) -> ScoreAggregator:
        return self._scorer

    @property
    def progress(self) -> ProgressTracker:
        return self._progress

    @property
    def lifecycle(self) -> SessionLifecycle:
        return self._lifecycle

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def new_tree(self, *, session_date: Optional[str] = None) -> EngineState:
        """Start a blank checklist (dated today unless ``session_date`` is given)."""
        return self.evaluate(new_answer_tree(self.definition, session_date=session_date))

    def evaluate(self, tree: AnswerTree) -> EngineState:
        """Normalize ``tree`` and derive scores, progress and visibility."""
        result = self._consistency.normalize(tree)
        scores = self._scorer.compute_scores(result.tree)
        progress = self._progress.report(result.tree)
        visibility = self._progress.visibility(result.tree, progress.visible_step)
        return EngineState(
            tree=result.tree,
            scores=scores,
            progress=progress,
            visibility=visibility,
            normalized=result.changed,
        )

    # ------------------------------------------------------------------
    # Single-field mutations
    # ------------------------------------------------------------------

    def set_skill(self, tree: AnswerTree, key: str, value: str) -> EngineState:
        """Answer one skill with ``"yes"``, ``"no"``, ``"na"`` or ``""``.

        Raises:
            UnknownFieldError: ``key`` is not a skill.
            InvalidAnswerError: ``value`` is outside the skill's domain.
        """
        role, _ = self._evaluator.owner_of(key)
        if role == "confirm":
            raise UnknownFieldError(f"'{key}' is a confirmation flag; use set_confirmation")
        if value not in ANSWER_VALUES:
            raise InvalidAnswerError(f"'{value}' is not a valid answer for {key}")
        if value == NA and not self._evaluator.skill(key).allows_na:
            raise InvalidAnswerError(f"{key} does not offer 'na'")
        return self.evaluate(self._consistency.apply_answer(tree, key, value))

    def set_confirmation(self, tree: AnswerTree, prefix: str, value: str) -> EngineState:
        """Record whether the supervisor confirms symptom ``prefix``.

        Raises:
            UnknownFieldError: no symptom uses ``prefix``.
            InvalidAnswerError: ``value`` is not yes/no/unanswered.
        """
        entry = self._evaluator.entry_for_prefix(prefix)
        if entry is None:
            raise UnknownFieldError(f"unknown symptom '{prefix}'")
        if value not in _CONFIRM_VALUES:
            raise InvalidAnswerError(f"'{value}' is not a valid confirmation")
        return self.evaluate(self._consistency.apply_answer(tree, entry.confirm_key, value))

    def set_classification(
        self,
        tree: AnswerTree,
        field_key: str,
        label: str,
        selected: bool = True,
    ) -> EngineState:
        """(De)select ``label`` in a worker or correction classification field."""
        return self.evaluate(self._tracker.set_classification(tree, field_key, label, selected))

    def set_decision(
        self,
        tree: AnswerTree,
        *,
        final_decision: Optional[str] = None,
        decision_matches: Optional[str] = None,
    ) -> EngineState:
        """Set the final decision and/or the supervisor's agreement with it.

        Raises:
            InvalidAnswerError: a value is outside its vocabulary.
        """
        updates: dict[str, str] = {}
        if final_decision is not None:
            if final_decision not in DECISION_VALUES:
                raise InvalidAnswerError(f"'{final_decision}' is not a valid decision")
            updates["final_decision"] = final_decision
        if decision_matches is not None:
            if decision_matches not in _CONFIRM_VALUES:
                raise InvalidAnswerError(f"'{decision_matches}' is not a valid agreement answer")
            updates["decision_matches"] = decision_matches
        return self.evaluate(tree.model_copy(update=updates, deep=True))

    def set_session_date(self, tree: AnswerTree, value: str) -> EngineState:
        """Set the session date (ISO ``YYYY-MM-DD``, or ``""`` to clear it).

        Raises:
            InvalidAnswerError: ``value`` is not an ISO date.
        """
        if value:
            try:
                date.fromisoformat(value)
            except ValueError:
                raise InvalidAnswerError(f"'{value}' is not an ISO date") from None
        return self.evaluate(tree.model_copy(update={"session_date": value}, deep=True))

    def set_notes(self, tree: AnswerTree, value: str) -> EngineState:
        return self.evaluate(tree.model_copy(update={"notes": value}, deep=True))
