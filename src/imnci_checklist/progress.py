"""Progressive disclosure — step completeness, visible step and visibility.

The checklist is revealed one step at a time: a step becomes visible once
every earlier step is complete.  Steps are declared in the definition on
subgroups (the assessment steps) or on whole groups (the decision and
treatment steps).
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from imnci_checklist.constants import NO, STEP_NAMES, UNANSWERED, YES
from imnci_checklist.models.answers import AnswerTree
from imnci_checklist.models.checklist import (
    ChecklistDefinition,
    ClassificationDomain,
    Group,
    Subgroup,
    SymptomEntry,
)
from imnci_checklist.models.state import ProgressReport
from imnci_checklist.relevance import RelevanceEvaluator

logger = logging.getLogger(__name__)

StepUnit = Union[Group, Subgroup]


class ProgressTracker:
    """Derives step completion and per-node visibility from an answer tree.

    Args:
        definition: the loaded checklist definition
        evaluator: relevance evaluator; built from ``definition`` when omitted
    """

    def __init__(
        self,
        definition: ChecklistDefinition,
        evaluator: Optional[RelevanceEvaluator] = None,
    ) -> None:
        self._definition = definition
        self._evaluator = evaluator or RelevanceEvaluator(definition)
        self._tracker = self._evaluator.tracker

        self._units: dict[int, list[StepUnit]] = {}
        self._subgroup_step: dict[str, int] = {}
        for group in definition.groups:
            if group.step is not None:
                self._units.setdefault(group.step, []).append(group)
            for subgroup in group.subgroups:
                step = subgroup.step if subgroup.step is not None else group.step
                if step is None:
                    continue
                self._subgroup_step[subgroup.score_key] = step
                if subgroup.step is not None:
                    self._units.setdefault(subgroup.step, []).append(subgroup)
        self._steps = sorted(self._units)

    @property
    def steps(self) -> list[int]:
        return list(self._steps)

    @property
    def final_step(self) -> int:
        return self._steps[-1]

    # ------------------------------------------------------------------
    # Completeness
    # ------------------------------------------------------------------

    def is_classification_complete(self, domain: ClassificationDomain, tree: AnswerTree) -> bool:
        """A classify answer needs the matching classification fields filled."""
        classify = tree.answer(domain.classify_skill)
        worker = tree.classifications.get(domain.worker_key)
        correction = tree.classifications.get(domain.correction_key)
        if classify == YES:
            return not self._tracker.is_empty(domain, worker)
        if classify == NO:
            return not (
                self._tracker.is_empty(domain, worker)
                or self._tracker.is_empty(domain, correction)
            )
        return True

    def is_symptom_complete(self, entry: SymptomEntry, tree: AnswerTree) -> bool:
        ask = tree.answer(entry.ask.key)
        if ask == UNANSWERED:
            return False
        if ask != YES:
            return True
        confirm = tree.answer(entry.confirm_key)
        if confirm == UNANSWERED:
            return False
        if confirm != YES:
            return True
        if UNANSWERED in (tree.answer(entry.check.key), tree.answer(entry.classify.key)):
            return False
        return self.is_classification_complete(self._tracker.domain(entry.prefix), tree)

    def is_subgroup_complete(self, subgroup: Subgroup, tree: AnswerTree) -> bool:
        if subgroup.is_symptom_container:
            return all(self.is_symptom_complete(e, tree) for e in subgroup.symptoms)
        if self.missing_skills(subgroup, tree):
            return False
        if subgroup.classification:
            domain = self._tracker.domain(subgroup.classification)
            return self.is_classification_complete(domain, tree)
        return True

    def is_group_complete(self, group: Group, tree: AnswerTree) -> bool:
        if group.is_decision:
            return UNANSWERED not in (tree.final_decision, tree.decision_matches)
        return all(self.is_subgroup_complete(s, tree) for s in group.subgroups)

    def is_step_complete(self, step: int, tree: AnswerTree) -> bool:
        for unit in self._units[step]:
            if isinstance(unit, Group):
                if not self.is_group_complete(unit, tree):
                    return False
            elif not self.is_subgroup_complete(unit, tree):
                return False
        return True

    def missing_skills(self, subgroup: Subgroup, tree: AnswerTree) -> list[str]:
        """Labels of relevant flat-list skills that are still unanswered."""
        return [
            skill.label
            for skill in subgroup.skills
            if self._evaluator.is_skill_relevant(subgroup, skill, tree)
            and tree.answer(skill.key) == UNANSWERED
        ]

    def missing_treatment_skills(self, tree: AnswerTree) -> list[str]:
        missing: list[str] = []
        for group, subgroup in self._definition.iter_subgroups():
            if group.section == "treatment":
                missing.extend(self.missing_skills(subgroup, tree))
        return missing

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def step_completion(self, tree: AnswerTree) -> dict[int, bool]:
        return {step: self.is_step_complete(step, tree) for step in self._steps}

    def highest_complete_step(self, tree: AnswerTree) -> int:
        """Last step of the unbroken run of complete steps (0 if none)."""
        highest = 0
        for step in self._steps:
            if not self.is_step_complete(step, tree):
                break
            highest = step
        return highest

    def visible_step(self, tree: AnswerTree) -> int:
        return self._next_step(self.highest_complete_step(tree))

    def _next_step(self, highest: int) -> int:
        for step in self._steps:
            if step > highest:
                return step
        return self.final_step

    def incomplete_sections(self, tree: AnswerTree) -> list[str]:
        """Human-readable list of incomplete steps, in form order."""
        sections: list[str] = []
        for step in self._steps:
            if self.is_step_complete(step, tree):
                continue
            name = STEP_NAMES.get(step) or self._units[step][0].title
            message = f"خطوة {step}: {name}"
            if any(isinstance(u, Group) and u.section == "treatment" for u in self._units[step]):
                missing = self.missing_treatment_skills(tree)
                if missing:
                    message += f" (ناقص: {missing[0]}...)"
            sections.append(message)
        return sections

    def report(self, tree: AnswerTree) -> ProgressReport:
        completion = self.step_completion(tree)
        highest = 0
        for step in self._steps:
            if not completion[step]:
                break
            highest = step
        return ProgressReport(
            highest_complete_step=highest,
            visible_step=self._next_step(highest),
            final_step=self.final_step,
            step_complete=completion,
            missing=self.incomplete_sections(tree) if highest != self.final_step else [],
        )

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def visibility(self, tree: AnswerTree, visible_step: Optional[int] = None) -> dict[str, bool]:
        """Flat ``{node key: visible}`` map for the presentation layer.

        Covers group and subgroup score keys, symptom score keys, every
        answer key and every classification field key.
        """
        if visible_step is None:
            visible_step = self.visible_step(tree)
        flags: dict[str, bool] = {}

        for group in self._definition.groups:
            group_steps = [group.step] if group.step is not None else [
                self._subgroup_step[s.score_key] for s in group.subgroups
                if s.score_key in self._subgroup_step
            ]
            flags[group.score_key] = bool(group_steps) and min(group_steps) <= visible_step

            for subgroup in group.subgroups:
                step = self._subgroup_step.get(subgroup.score_key)
                shown = (
                    step is not None
                    and step <= visible_step
                    and self._evaluator.is_subgroup_relevant(subgroup, tree)
                )
                flags[subgroup.score_key] = shown
                if subgroup.is_symptom_container:
                    self._symptom_visibility(subgroup, tree, shown, flags)
                else:
                    self._skill_visibility(subgroup, tree, shown, flags)
        return flags

    def _skill_visibility(
        self, subgroup: Subgroup, tree: AnswerTree, shown: bool, flags: dict[str, bool]
    ) -> None:
        # Each relevant skill waits for the previous relevant one.
        previous_answered = True
        for skill in subgroup.skills:
            relevant = self._evaluator.is_skill_relevant(subgroup, skill, tree)
            flags[skill.key] = shown and relevant and previous_answered
            if relevant:
                previous_answered = previous_answered and tree.answer(skill.key) != UNANSWERED

        if subgroup.classification:
            domain = self._tracker.domain(subgroup.classification)
            classify_shown = flags.get(domain.classify_skill, False)
            self._classification_visibility(domain, tree, classify_shown, flags)

    def _symptom_visibility(
        self, subgroup: Subgroup, tree: AnswerTree, shown: bool, flags: dict[str, bool]
    ) -> None:
        earlier_complete = True
        for entry in subgroup.symptoms:
            ask_shown = shown and earlier_complete
            confirm_shown = ask_shown and self._evaluator.is_confirm_relevant(entry, tree)
            check_shown = confirm_shown and self._evaluator.is_chain_open(entry, tree)
            classify_shown = check_shown and tree.answer(entry.check.key) != UNANSWERED

            flags[entry.score_key] = ask_shown
            flags[entry.ask.key] = ask_shown
            flags[entry.confirm_key] = confirm_shown
            flags[entry.check.key] = check_shown
            flags[entry.classify.key] = classify_shown
            self._classification_visibility(
                self._tracker.domain(entry.prefix), tree, classify_shown, flags
            )
            earlier_complete = earlier_complete and self.is_symptom_complete(entry, tree)

    def _classification_visibility(
        self,
        domain: ClassificationDomain,
        tree: AnswerTree,
        classify_shown: bool,
        flags: dict[str, bool],
    ) -> None:
        for field_key in (domain.worker_key, domain.correction_key):
            flags[field_key] = classify_shown and self._evaluator.is_classification_field_relevant(
                field_key, tree
            )
