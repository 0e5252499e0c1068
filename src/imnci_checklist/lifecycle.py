"""SessionLifecycle — translates answer trees to and from persisted sessions.

Status transitions::

    new / draft    -> draft     to_draft, always allowed
    new / draft    -> complete  to_complete, only when every step is complete
    complete       -> complete  to_complete on an edited completed record
    complete       -> draft     refused (SessionStateError)

Classification fields travel inside ``assessment_skills``: single-select
domains as a label string, multi-select domains as a list of selected
labels.  ``rehydrate`` accepts older shapes too and always finishes with a
normalization pass.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from imnci_checklist.consistency import ConsistencyEngine
from imnci_checklist.constants import (
    ANSWER_VALUES,
    ANSWERED_VALUES,
    DECISION_VALUES,
    UNANSWERED,
)
from imnci_checklist.errors import IncompleteChecklistError, SessionStateError
from imnci_checklist.models.answers import AnswerTree, new_answer_tree
from imnci_checklist.models.checklist import ChecklistDefinition
from imnci_checklist.models.scores import ScoreTree
from imnci_checklist.models.session import (
    EvaluatorIdentity,
    Session,
    SessionStatus,
    SubjectIdentity,
)
from imnci_checklist.progress import ProgressTracker

logger = logging.getLogger(__name__)

# Reported when the session date is missing on completion.
SESSION_DATE_LABEL = "تاريخ الجلسة"


def next_visit_number(session_date: str, previous_dates: Iterable[str]) -> int:
    """1-based position of ``session_date`` among a worker's distinct visit dates.

    A date already visited keeps its number; a new date is placed in
    chronological (ISO string) order.
    """
    dates = sorted({d for d in previous_dates if d} | {session_date})
    return dates.index(session_date) + 1


class SessionLifecycle:
    """Builds draft/complete sessions and rehydrates stored ones.

    Args:
        definition: the loaded checklist definition
        consistency: consistency engine used by :meth:`rehydrate`
        progress: progress tracker used by :meth:`to_complete`
    """

    def __init__(
        self,
        definition: ChecklistDefinition,
        consistency: Optional[ConsistencyEngine] = None,
        progress: Optional[ProgressTracker] = None,
    ) -> None:
        self._definition = definition
        self._consistency = consistency or ConsistencyEngine(definition)
        evaluator = self._consistency.evaluator
        self._tracker = evaluator.tracker
        self._progress = progress or ProgressTracker(definition, evaluator)

    # ------------------------------------------------------------------
    # Outgoing
    # ------------------------------------------------------------------

    def to_draft(
        self,
        tree: AnswerTree,
        scores: ScoreTree,
        *,
        subject: SubjectIdentity,
        actor: Optional[EvaluatorIdentity] = None,
        previous: Optional[Session] = None,
        visit_number: Optional[int] = None,
    ) -> Session:
        """Package ``tree`` as a draft.  Completeness is never checked.

        Raises:
            SessionStateError: ``previous`` is already complete.
        """
        if previous is not None and previous.status == SessionStatus.COMPLETE:
            raise SessionStateError(
                f"session {previous.session_id} is complete and cannot go back to draft"
            )
        return self._build(tree, scores, SessionStatus.DRAFT, subject, actor, previous, visit_number)

    def to_complete(
        self,
        tree: AnswerTree,
        scores: ScoreTree,
        *,
        subject: SubjectIdentity,
        actor: Optional[EvaluatorIdentity] = None,
        previous: Optional[Session] = None,
        visit_number: Optional[int] = None,
    ) -> Session:
        """Package ``tree`` as a completed session.

        Raises:
            IncompleteChecklistError: a step is incomplete, the decision is
                unset or the session date is empty.
        """
        missing = self.missing_for_completion(tree)
        if missing:
            raise IncompleteChecklistError(missing)
        session = self._build(tree, scores, SessionStatus.COMPLETE, subject, actor, previous, visit_number)
        logger.info(
            "Session %s completed for %s (overall %d/%d)",
            session.session_id or "<new>",
            subject.health_worker_name,
            scores.overall.score,
            scores.overall.max_score,
        )
        return session

    def missing_for_completion(self, tree: AnswerTree) -> list[str]:
        """Everything that still blocks :meth:`to_complete` (empty when ready)."""
        missing: list[str] = []
        if self._progress.highest_complete_step(tree) != self._progress.final_step:
            missing.extend(self._progress.incomplete_sections(tree))
        if not tree.session_date:
            missing.append(SESSION_DATE_LABEL)
        return missing

    def flatten(self, tree: AnswerTree) -> tuple[dict[str, Any], dict[str, str]]:
        """Split ``tree`` into the stored ``assessment_skills`` / ``treatment_skills`` maps."""
        assessment: dict[str, Any] = dict(tree.assessment)
        for field_key, value in tree.classifications.items():
            assessment[field_key] = self._tracker.to_stored(field_key, value)
        return assessment, dict(tree.treatment)

    def _build(
        self,
        tree: AnswerTree,
        scores: ScoreTree,
        status: SessionStatus,
        subject: SubjectIdentity,
        actor: Optional[EvaluatorIdentity],
        previous: Optional[Session],
        visit_number: Optional[int],
    ) -> Session:
        assessment, treatment = self.flatten(tree)
        if previous is not None:
            session_id = previous.session_id
            mentor = previous.mentor
            edited_by = actor
            if visit_number is None:
                visit_number = previous.visit_number
        else:
            session_id = None
            mentor = actor or EvaluatorIdentity()
            edited_by = None

        return Session(
            session_id=session_id,
            status=status,
            session_date=tree.session_date,
            visit_number=visit_number or 1,
            subject=subject,
            assessment_skills=assessment,
            treatment_skills=treatment,
            final_decision=tree.final_decision,
            decision_matches=tree.decision_matches,
            notes=tree.notes,
            scores=scores.to_flat(),
            mentor=mentor,
            edited_by=edited_by,
            saved_at=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # Incoming
    # ------------------------------------------------------------------

    def rehydrate(self, session: Session) -> AnswerTree:
        """Rebuild a normalized answer tree from a stored session.

        Unknown keys are ignored, out-of-domain answers read as unanswered
        and unknown classification labels are dropped (all with a warning).
        The stored session date is kept as is, even when empty.
        """
        tree = new_answer_tree(self._definition, session_date=session.session_date)
        self._restore_section(tree.assessment, session.assessment_skills, "assessment")
        self._restore_section(tree.treatment, session.treatment_skills, "treatment")

        for field_key in list(tree.classifications):
            if field_key in session.assessment_skills:
                tree.classifications[field_key] = self._tracker.from_stored(
                    field_key, session.assessment_skills[field_key]
                )

        tree.final_decision = self._restore_value(
            session.final_decision, DECISION_VALUES, "finalDecision"
        )
        tree.decision_matches = self._restore_value(
            session.decision_matches, ANSWERED_VALUES | {UNANSWERED}, "decisionMatches"
        )
        tree.notes = session.notes

        result = self._consistency.normalize(tree)
        if result.changed:
            logger.info("Rehydrated session %s needed normalization", session.session_id)
        return result.tree

    def _restore_section(self, section: dict[str, str], stored: dict[str, Any], name: str) -> None:
        for key in section:
            if key in stored:
                section[key] = self._restore_value(stored[key], ANSWER_VALUES, key)
        unknown = [
            key for key in stored
            if key not in section and not self._tracker.is_classification_field(key)
        ]
        if unknown:
            logger.warning("Ignoring unknown %s keys in stored session: %s", name, unknown)

    @staticmethod
    def _restore_value(raw: Any, allowed: frozenset[str], key: str) -> str:
        if raw is None:
            return UNANSWERED
        if isinstance(raw, str) and raw in allowed:
            return raw
        logger.warning("%s: stored value %r is not a valid answer, reading as unanswered", key, raw)
        return UNANSWERED
