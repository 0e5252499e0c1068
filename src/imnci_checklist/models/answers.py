"""AnswerTree — the mutable-by-copy answer state of one checklist session.

The tree mirrors the checklist definition:

  - ``assessment`` / ``treatment``: every skill key (and the supervisor
    confirmation flags) mapped to ``""``, ``"yes"``, ``"no"`` or ``"na"``
  - ``classifications``: worker / supervisor-correction fields, each either
    a single selected label (single-select domains) or a dict of booleans
    keyed by label (multi-select domains)
  - top-level ``final_decision``, ``decision_matches``, ``session_date``
    and ``notes``

Engine operations never mutate a tree in place; they work on a deep copy
and return it.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Union

from pydantic import BaseModel

from imnci_checklist.constants import UNANSWERED
from imnci_checklist.models.checklist import ChecklistDefinition, ClassificationDomain

# Single-select -> selected label ("" when unset); multi-select -> {label: bool}
ClassificationValue = Union[str, dict[str, bool]]

# Top-level fields a relevance expression may reference directly.
_TOP_LEVEL_FIELDS = ("final_decision", "decision_matches", "session_date", "notes")

# Legacy camelCase names used by relevance expressions and stored records.
_TOP_LEVEL_ALIASES = {
    "finalDecision": "final_decision",
    "decisionMatches": "decision_matches",
    "session_date": "session_date",
    "sessionDate": "session_date",
}


class AnswerTree(BaseModel):
    """All answers of one in-progress checklist."""

    session_date: str = ""
    notes: str = ""
    final_decision: str = UNANSWERED
    decision_matches: str = UNANSWERED
    assessment: dict[str, str] = {}
    treatment: dict[str, str] = {}
    classifications: dict[str, ClassificationValue] = {}

    def answer(self, key: str) -> str:
        """Return the stored answer for a skill/flag key ("" if absent)."""
        if key in self.assessment:
            return self.assessment[key]
        return self.treatment.get(key, UNANSWERED)

    def lookup(self, name: str) -> Any:
        """Resolve a variable name the way relevance expressions do.

        Searched in order: top-level fields, the assessment section, the
        treatment section.  ``as_`` / ``ts_`` prefixes address the
        assessment / treatment section explicitly.  Returns None when the
        name is unknown.
        """
        attr = _TOP_LEVEL_ALIASES.get(name, name)
        if attr in _TOP_LEVEL_FIELDS:
            return getattr(self, attr)
        if name in self.assessment:
            return self.assessment[name]
        if name in self.treatment:
            return self.treatment[name]
        if name.startswith("as_"):
            return self.assessment.get(name[3:])
        if name.startswith("ts_"):
            return self.treatment.get(name[3:])
        return None

    def section_for(self, key: str) -> dict[str, str] | None:
        """Return the section dict that stores ``key``, or None."""
        if key in self.assessment:
            return self.assessment
        if key in self.treatment:
            return self.treatment
        return None


def empty_classification(domain: ClassificationDomain) -> ClassificationValue:
    """The unset value for a classification field of ``domain``."""
    if domain.multi:
        return {label: False for label in domain.labels}
    return UNANSWERED


def new_answer_tree(
    definition: ChecklistDefinition, *, session_date: str | None = None
) -> AnswerTree:
    """Build a blank tree with every key of ``definition`` unanswered.

    ``session_date`` defaults to today's ISO date.
    """
    classifications: dict[str, ClassificationValue] = {}
    for domain in definition.classifications:
        classifications[domain.worker_key] = empty_classification(domain)
        classifications[domain.correction_key] = empty_classification(domain)

    return AnswerTree(
        session_date=session_date if session_date is not None else date.today().isoformat(),
        assessment={key: UNANSWERED for key in definition.section_keys("assessment")},
        treatment={key: UNANSWERED for key in definition.section_keys("treatment")},
        classifications=classifications,
    )
