"""ConsistencyEngine — cascading resets that keep an answer tree coherent.

``normalize`` applies four rules, in this order, on every pass:

1. Skill relevance: an irrelevant flat-list skill is forced to ``"na"``;
   a relevant one still holding an engine-assigned ``"na"`` goes back to
   unanswered (never to a previous yes/no).
2. Symptom chains: ``ask != "yes"`` clears confirm/check/classify;
   ``ask == "yes"`` without a supervisor confirmation forces check and
   classify to ``"na"``; a confirmed chain turns ``"na"`` back into
   unanswered.  Classification fields outside their chain are cleared,
   and the worker's ``did_not_classify`` marker is dropped unless
   classify is ``"no"``.
3. Sequential gating: a symptom whose predecessor's ask is unanswered
   loses its own ask answer.
4. Standalone classifications (malnutrition, anemia): the correction is
   cleared unless the classify skill is ``"no"``, the worker field unless
   it is ``"yes"`` or ``"no"``; the marker follows the same rule as in 2.

Rules feed each other (rule 2 clears classifications that rule 1's
treatment relevance depends on), so passes repeat until one changes
nothing.  The result is a fixed point, which makes ``normalize``
idempotent and safe to run on any tree, including stale drafts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from imnci_checklist.constants import MAX_NORMALIZE_PASSES, NA, UNANSWERED, YES
from imnci_checklist.errors import NormalizationError, UnknownFieldError
from imnci_checklist.models.answers import AnswerTree
from imnci_checklist.models.checklist import ChecklistDefinition
from imnci_checklist.relevance import RelevanceEvaluator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizeResult:
    """Outcome of :meth:`ConsistencyEngine.normalize`."""

    tree: AnswerTree
    changed: bool
    passes: int


class ConsistencyEngine:
    """Applies the cascading-reset rules to answer trees.

    Args:
        definition: the loaded checklist definition
        evaluator: relevance evaluator; built from ``definition`` when omitted
        max_passes: passes allowed before the rules are declared cyclic
    """

    def __init__(
        self,
        definition: ChecklistDefinition,
        evaluator: Optional[RelevanceEvaluator] = None,
        *,
        max_passes: int = MAX_NORMALIZE_PASSES,
    ) -> None:
        self._definition = definition
        self._evaluator = evaluator or RelevanceEvaluator(definition)
        self._tracker = self._evaluator.tracker
        self._max_passes = max_passes
        self._entries = definition.symptom_entries()
        self._section_of: dict[str, str] = {}
        for section in ("assessment", "treatment"):
            for key in definition.section_keys(section):
                self._section_of[key] = section
        self._standalone = [
            self._tracker.domain(subgroup.classification)
            for _, subgroup in definition.iter_subgroups()
            if subgroup.classification
        ]

    @property
    def evaluator(self) -> RelevanceEvaluator:
        return self._evaluator

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def normalize(self, tree: AnswerTree) -> NormalizeResult:
        """Return a consistent copy of ``tree``.

        ``changed`` is True when any rule had to reset anything.

        Raises:
            NormalizationError: no fixed point within ``max_passes``.
        """
        working = tree.model_copy(deep=True)
        changed = False
        for passes in range(1, self._max_passes + 1):
            if not self._run_pass(working):
                logger.debug("Normalized in %d pass(es), changed=%s", passes, changed)
                return NormalizeResult(tree=working, changed=changed, passes=passes)
            changed = True
        raise NormalizationError(
            f"normalization did not converge within {self._max_passes} passes"
        )

    def apply_answer(self, tree: AnswerTree, key: str, value: str) -> AnswerTree:
        """Write one answer into a copy of ``tree`` (no validation, no normalization).

        Changing a symptom's ask answer from one non-empty value to
        another invalidates every later symptom: their ask answers are
        cleared, and the next normalization clears their chains.

        Raises:
            UnknownFieldError: ``key`` is not a skill or confirmation key.
        """
        try:
            section_name = self._section_of[key]
        except KeyError:
            raise UnknownFieldError(f"unknown answer key '{key}'") from None

        new_tree = tree.model_copy(deep=True)
        section = getattr(new_tree, section_name)
        previous = section.get(key, UNANSWERED)
        section[key] = value

        role, owner = self._evaluator.owner_of(key)
        if role == "ask" and previous not in (UNANSWERED, value):
            index = self._entries.index(owner)
            for later in self._entries[index + 1:]:
                if new_tree.assessment.get(later.ask.key, UNANSWERED) != UNANSWERED:
                    logger.debug("%s changed, clearing %s", key, later.ask.key)
                    new_tree.assessment[later.ask.key] = UNANSWERED
        return new_tree

    def section_name(self, key: str) -> str:
        """Return ``"assessment"`` or ``"treatment"`` for an answer key."""
        try:
            return self._section_of[key]
        except KeyError:
            raise UnknownFieldError(f"unknown answer key '{key}'") from None

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _run_pass(self, tree: AnswerTree) -> bool:
        changed = self._reset_irrelevant_skills(tree)
        changed |= self._reset_symptom_chains(tree)
        changed |= self._gate_symptom_sequence(tree)
        changed |= self._reset_standalone_classifications(tree)
        return changed

    @staticmethod
    def _write(section: dict[str, str], key: str, value: str) -> bool:
        if section.get(key, UNANSWERED) == value:
            return False
        section[key] = value
        return True

    def _reset_irrelevant_skills(self, tree: AnswerTree) -> bool:
        changed = False
        for group, subgroup, skill in self._definition.iter_skills():
            section = getattr(tree, group.section)
            value = section.get(skill.key, UNANSWERED)
            if not self._evaluator.is_skill_relevant(subgroup, skill, tree):
                changed |= self._write(section, skill.key, NA)
            elif value == NA and not skill.allows_na:
                changed |= self._write(section, skill.key, UNANSWERED)
        return changed

    def _reset_symptom_chains(self, tree: AnswerTree) -> bool:
        changed = False
        section = tree.assessment
        for entry in self._entries:
            # ask and confirm never offer "na"
            for key in (entry.ask.key, entry.confirm_key):
                if section.get(key) == NA:
                    changed |= self._write(section, key, UNANSWERED)

            if tree.answer(entry.ask.key) != YES:
                for key in entry.chain_keys:
                    changed |= self._write(section, key, UNANSWERED)
            elif tree.answer(entry.confirm_key) != YES:
                changed |= self._write(section, entry.check.key, NA)
                changed |= self._write(section, entry.classify.key, NA)
            else:
                for key in (entry.check.key, entry.classify.key):
                    if section.get(key) == NA:
                        changed |= self._write(section, key, UNANSWERED)

            domain = self._tracker.domain(entry.prefix)
            changed |= self._reset_classification_fields(tree, domain)
        return changed

    def _gate_symptom_sequence(self, tree: AnswerTree) -> bool:
        changed = False
        for entry in self._entries[1:]:
            if not self._evaluator.is_ask_relevant(entry, tree):
                changed |= self._write(tree.assessment, entry.ask.key, UNANSWERED)
        return changed

    def _reset_standalone_classifications(self, tree: AnswerTree) -> bool:
        changed = False
        for domain in self._standalone:
            changed |= self._reset_classification_fields(tree, domain)
        return changed

    def _reset_classification_fields(self, tree: AnswerTree, domain) -> bool:
        changed = False
        for field_key in (domain.worker_key, domain.correction_key):
            if not self._evaluator.is_classification_field_relevant(field_key, tree):
                changed |= self._tracker.reset_field(tree, field_key)
        changed |= self._tracker.drop_stale_marker(tree, domain)
        return changed
