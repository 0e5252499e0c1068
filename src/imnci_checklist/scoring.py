"""ScoreAggregator — computes the score tree of a normalized answer tree.

Scoring by node kind:

  plain skill     score 1 if "yes"; max 1 while relevant and not "na"
  symptom entry   ask: max 1 once answered, score 1 if "yes";
                  check + classify: max 1 each while the chain is open
  decision        score 1 if the supervisor agreed; max always 1
  subgroup        sum of its skills (irrelevant subgroups are 0/0)
  group, overall  exact integer sums of their children

A subgroup's static ``max_score`` from the definition is reported as
``fixed_max_score`` next to the dynamic maximum and never aggregated.

Indicators are computed alongside and kept out of every total.
"""

from __future__ import annotations

import logging
from typing import Optional

from imnci_checklist.constants import ANSWERED_VALUES, NA, YES
from imnci_checklist.errors import ScoreInvariantError
from imnci_checklist.models.answers import AnswerTree
from imnci_checklist.models.checklist import (
    CaseCountIndicator,
    ChainCheckIndicator,
    ChecklistDefinition,
    ClassificationAccuracyIndicator,
    HandsOnIndicator,
    Indicator,
    ManagementIndicator,
    Subgroup,
    SymptomEntry,
)
from imnci_checklist.models.scores import OVERALL_KEY, ZERO, ScorePair, ScoreTree
from imnci_checklist.relevance import RelevanceEvaluator

logger = logging.getLogger(__name__)


def _point(value: str) -> ScorePair:
    """One answered yes/no item: 1/1 for yes, 0/1 for no."""
    return ScorePair(score=1 if value == YES else 0, max_score=1)


class ScoreAggregator:
    """Computes :class:`ScoreTree` instances.

    Args:
        definition: the loaded checklist definition
        evaluator: relevance evaluator; built from ``definition`` when omitted
        strict: raise :class:`ScoreInvariantError` on a broken score bound
            instead of logging it
    """

    def __init__(
        self,
        definition: ChecklistDefinition,
        evaluator: Optional[RelevanceEvaluator] = None,
        *,
        strict: bool = True,
    ) -> None:
        self._definition = definition
        self._evaluator = evaluator or RelevanceEvaluator(definition)
        self._tracker = self._evaluator.tracker
        self._strict = strict

    def compute_scores(self, tree: AnswerTree) -> ScoreTree:
        """Score ``tree``.  Callers pass a normalized tree."""
        nodes: dict[str, ScorePair] = {}
        overall = ZERO

        for group in self._definition.groups:
            if group.is_decision:
                pair = ScorePair(score=1 if tree.decision_matches == YES else 0, max_score=1)
            else:
                pair = ZERO
                for subgroup in group.subgroups:
                    sub = self._score_subgroup(subgroup, tree, nodes)
                    nodes[subgroup.score_key] = sub
                    pair = pair + sub
            nodes[group.score_key] = pair
            overall = overall + pair

        nodes[OVERALL_KEY] = overall
        indicators = {
            indicator.key: self._score_indicator(indicator, tree, nodes)
            for indicator in self._definition.indicators
        }
        scores = ScoreTree(nodes=nodes, indicators=indicators)
        self.check_invariants(scores)
        return scores

    def check_invariants(self, scores: ScoreTree) -> None:
        """Enforce ``0 <= score <= max_score`` on every pair."""
        for key, pair in {**scores.nodes, **scores.indicators}.items():
            if 0 <= pair.score <= pair.max_score:
                continue
            message = f"score invariant broken for '{key}': {pair.score}/{pair.max_score}"
            if self._strict:
                raise ScoreInvariantError(message)
            logger.error(message)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _score_subgroup(
        self, subgroup: Subgroup, tree: AnswerTree, nodes: dict[str, ScorePair]
    ) -> ScorePair:
        total = ZERO
        if self._evaluator.is_subgroup_relevant(subgroup, tree):
            if subgroup.is_symptom_container:
                for entry in subgroup.symptoms:
                    pair = self._score_symptom(entry, tree)
                    nodes[entry.score_key] = pair
                    total = total + pair
            else:
                for skill in subgroup.skills:
                    value = tree.answer(skill.key)
                    if value == NA or not self._evaluator.is_skill_relevant(subgroup, skill, tree):
                        continue
                    total = total + _point(value)
        else:
            for entry in subgroup.symptoms:
                nodes[entry.score_key] = ZERO
        return ScorePair(
            score=total.score,
            max_score=total.max_score,
            fixed_max_score=subgroup.max_score,
        )

    def _score_symptom(self, entry: SymptomEntry, tree: AnswerTree) -> ScorePair:
        total = ZERO
        ask = tree.answer(entry.ask.key)
        if ask in ANSWERED_VALUES:
            total = total + _point(ask)
        if self._evaluator.is_chain_open(entry, tree):
            total = total + _point(tree.answer(entry.check.key))
            total = total + _point(tree.answer(entry.classify.key))
        return total

    # ------------------------------------------------------------------
    # Indicators
    # ------------------------------------------------------------------

    def _score_indicator(
        self, indicator: Indicator, tree: AnswerTree, nodes: dict[str, ScorePair]
    ) -> ScorePair:
        if isinstance(indicator, HandsOnIndicator):
            value = tree.answer(indicator.skill)
            if value in ANSWERED_VALUES and self._evaluator.is_key_relevant(indicator.skill, tree):
                return _point(value)
            return ZERO

        if isinstance(indicator, ManagementIndicator):
            pair = nodes.get(indicator.subgroup, ZERO)
            return ScorePair(score=pair.score, max_score=pair.max_score)

        if isinstance(indicator, ClassificationAccuracyIndicator):
            if not self._chain_open(indicator.prefix, tree):
                return ZERO
            if indicator.label not in self._tracker.get_effective(tree, indicator.prefix):
                return ZERO
            domain = self._tracker.domain(indicator.prefix)
            return _point(tree.answer(domain.classify_skill))

        if isinstance(indicator, CaseCountIndicator):
            is_case = self._tracker.effective_includes(tree, indicator.prefix, indicator.labels)
            return ScorePair(score=1 if is_case else 0, max_score=1)

        if isinstance(indicator, ChainCheckIndicator):
            entry = self._evaluator.entry_for_prefix(indicator.prefix)
            if entry is None or not self._evaluator.is_chain_open(entry, tree):
                return ZERO
            return _point(tree.answer(entry.check.key))

        raise TypeError(f"unsupported indicator: {indicator!r}")

    def _chain_open(self, prefix: str, tree: AnswerTree) -> bool:
        entry = self._evaluator.entry_for_prefix(prefix)
        return entry is None or self._evaluator.is_chain_open(entry, tree)
