"""RelevanceEvaluator — decides whether a checklist item currently counts.

Relevance drives both visibility and scoring.  Plain skills and
subgroups carry a :data:`~imnci_checklist.models.Relevance` variant from
the definition; symptom chains and classification fields derive theirs
from the answers upstream in the chain:

  ask        -> the previous symptom's ask has been answered
  confirm    -> ask == "yes"
  check      -> ask == "yes" and confirm == "yes"   ("chain open")
  classify   -> chain open
  worker     -> (chain open, for symptoms) and classify in {yes, no}
  correction -> (chain open, for symptoms) and classify == "no"
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from imnci_checklist.classification import ClassificationTracker
from imnci_checklist.constants import ANSWERED_VALUES, NO, UNANSWERED, YES
from imnci_checklist.errors import UnknownFieldError
from imnci_checklist.models.answers import AnswerTree
from imnci_checklist.models.checklist import (
    AlwaysRelevant,
    ChecklistDefinition,
    FieldEquals,
    Group,
    PredicateRelevance,
    Relevance,
    Skill,
    Subgroup,
    SymptomEntry,
    UnparsedRelevance,
    parse_relevance_expression,
)
from imnci_checklist.predicates import get_predicate

logger = logging.getLogger(__name__)

__all__ = ["RelevanceEvaluator", "parse_relevance_expression"]

Node = Union[Group, Subgroup, Skill, SymptomEntry, str]


class RelevanceEvaluator:
    """Evaluates relevance of definition nodes against an answer tree.

    Args:
        definition: the loaded checklist definition
        tracker: classification tracker used by predicates; one is built
            from ``definition`` when omitted
    """

    def __init__(
        self,
        definition: ChecklistDefinition,
        tracker: Optional[ClassificationTracker] = None,
    ) -> None:
        self._definition = definition
        self._tracker = tracker or ClassificationTracker(definition)
        self._entries = definition.symptom_entries()
        self._entry_by_prefix = {e.prefix: e for e in self._entries}

        # answer key -> (role, owner); role is "skill" or a chain link name
        self._index: dict[str, tuple[str, object]] = {}
        for _, subgroup, skill in definition.iter_skills():
            self._index[skill.key] = ("skill", subgroup)
        for entry in self._entries:
            self._index[entry.ask.key] = ("ask", entry)
            self._index[entry.confirm_key] = ("confirm", entry)
            self._index[entry.check.key] = ("check", entry)
            self._index[entry.classify.key] = ("classify", entry)

        self._skills = {skill.key: skill for _, _, skill in definition.iter_skills()}

    @property
    def tracker(self) -> ClassificationTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Relevance variants
    # ------------------------------------------------------------------

    def evaluate(self, relevance: Relevance, tree: AnswerTree) -> bool:
        """Evaluate one relevance variant."""
        if isinstance(relevance, AlwaysRelevant):
            return True
        if isinstance(relevance, FieldEquals):
            return tree.lookup(relevance.field) == relevance.value
        if isinstance(relevance, PredicateRelevance):
            try:
                fn = get_predicate(relevance.name)
            except KeyError:
                logger.warning("Unknown relevance predicate '%s', treating as relevant", relevance.name)
                return True
            return bool(fn(tree, self._tracker, **relevance.params))
        if isinstance(relevance, UnparsedRelevance):
            logger.warning("Unparsed relevance expression %r, treating as relevant", relevance.expression)
            return True
        raise TypeError(f"unsupported relevance variant: {relevance!r}")

    # ------------------------------------------------------------------
    # Definition nodes
    # ------------------------------------------------------------------

    def is_subgroup_relevant(self, subgroup: Subgroup, tree: AnswerTree) -> bool:
        return self.evaluate(subgroup.relevant, tree)

    def is_skill_relevant(self, subgroup: Subgroup, skill: Skill, tree: AnswerTree) -> bool:
        """A flat-list skill counts only inside a relevant subgroup."""
        return self.is_subgroup_relevant(subgroup, tree) and self.evaluate(skill.relevant, tree)

    def previous_entry(self, entry: SymptomEntry) -> Optional[SymptomEntry]:
        index = self._entries.index(entry)
        return self._entries[index - 1] if index > 0 else None

    def is_ask_relevant(self, entry: SymptomEntry, tree: AnswerTree) -> bool:
        """Symptoms are asked in order; the first one is always relevant."""
        previous = self.previous_entry(entry)
        return previous is None or tree.answer(previous.ask.key) != UNANSWERED

    def is_confirm_relevant(self, entry: SymptomEntry, tree: AnswerTree) -> bool:
        return tree.answer(entry.ask.key) == YES

    def is_chain_open(self, entry: SymptomEntry, tree: AnswerTree) -> bool:
        """Check and classify only exist once the supervisor confirmed the symptom."""
        return (
            tree.answer(entry.ask.key) == YES
            and tree.answer(entry.confirm_key) == YES
        )

    def is_classification_field_relevant(self, field_key: str, tree: AnswerTree) -> bool:
        domain = self._tracker.domain_for_field(field_key)
        entry = self._entry_by_prefix.get(domain.prefix)
        if entry is not None and not self.is_chain_open(entry, tree):
            return False
        classify = tree.answer(domain.classify_skill)
        if field_key == domain.worker_key:
            return classify in ANSWERED_VALUES
        return classify == NO

    def is_key_relevant(self, key: str, tree: AnswerTree) -> bool:
        """Relevance of any answer key or classification field key.

        Raises:
            UnknownFieldError: ``key`` is not part of the definition.
        """
        if self._tracker.is_classification_field(key):
            return self.is_classification_field_relevant(key, tree)
        try:
            role, owner = self._index[key]
        except KeyError:
            raise UnknownFieldError(f"unknown answer key '{key}'") from None

        if role == "skill":
            return self.is_skill_relevant(owner, self._skills[key], tree)  # type: ignore[arg-type]
        if role == "ask":
            return self.is_ask_relevant(owner, tree)  # type: ignore[arg-type]
        if role == "confirm":
            return self.is_confirm_relevant(owner, tree)  # type: ignore[arg-type]
        return self.is_chain_open(owner, tree)  # type: ignore[arg-type]

    def is_relevant(self, node: Node, tree: AnswerTree) -> bool:
        """Relevance of a definition node or an answer key."""
        if isinstance(node, str):
            return self.is_key_relevant(node, tree)
        if isinstance(node, Group):
            return True
        if isinstance(node, Subgroup):
            return self.is_subgroup_relevant(node, tree)
        if isinstance(node, SymptomEntry):
            return self.is_ask_relevant(node, tree)
        return self.is_key_relevant(node.key, tree)

    def entry_for_prefix(self, prefix: str) -> Optional[SymptomEntry]:
        return self._entry_by_prefix.get(prefix)

    def owner_of(self, key: str) -> tuple[str, object]:
        """Return ``(role, owner)`` for an answer key.

        Raises:
            UnknownFieldError: ``key`` is not part of the definition.
        """
        try:
            return self._index[key]
        except KeyError:
            raise UnknownFieldError(f"unknown answer key '{key}'") from None

    def skill(self, key: str) -> Skill:
        """Return the flat-list or chain Skill for ``key``."""
        if key in self._skills:
            return self._skills[key]
        role, owner = self.owner_of(key)
        if role == "confirm":
            raise UnknownFieldError(f"'{key}' is a confirmation flag, not a skill")
        return getattr(owner, role)
