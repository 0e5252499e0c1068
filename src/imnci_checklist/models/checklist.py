"""Checklist definition models — the static shape of the skills checklist.

These models mirror the YAML definition under ``imnci_checklist/rules/``:

  - ClassificationDomain: a diagnostic vocabulary (single- or multi-select)
    together with the skill that records whether the worker classified it
    correctly
  - Skill: one yes/no checklist item, optionally conditionally relevant
  - SymptomEntry: a main-symptom block (ask → confirm → check → classify →
    worker classification → supervisor correction)
  - Subgroup: a scored list of skills, or the symptom-group container
  - Group: a top-level section (assessment, decision, treatment)
  - Indicator: a reporting pair computed alongside the score tree
  - ChecklistDefinition: the ordered list of groups plus lookup helpers

Relevance is a closed discriminated union on ``kind``.  Legacy string
expressions such as ``${skill_pneu_abx}='yes'`` are accepted on input and
parsed once, when the definition is validated.
"""

from __future__ import annotations

import logging
import re
from typing import Annotated, Any, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Relevance variants
# ---------------------------------------------------------------------------

class AlwaysRelevant(BaseModel):
    """The item always counts toward visibility and scoring."""

    kind: Literal["always"] = "always"


class FieldEquals(BaseModel):
    """Relevant iff the named answer field equals ``value``.

    ``field`` is looked up in the top-level answer fields first, then the
    assessment section, then the treatment section.
    """

    kind: Literal["field_equals"] = "field_equals"
    field: str
    value: str


class PredicateRelevance(BaseModel):
    """Relevant iff the registered predicate ``name`` returns True.

    ``params`` are passed as keyword arguments to the predicate function.
    """

    kind: Literal["predicate"] = "predicate"
    name: str
    params: dict[str, Any] = {}


class UnparsedRelevance(BaseModel):
    """A legacy expression that could not be parsed.

    Evaluates as relevant (fail-open) and is reported every time it is
    evaluated, so a broken rule shows up as an extra item rather than a
    silently dropped denominator.
    """

    kind: Literal["unparsed"] = "unparsed"
    expression: str


Relevance = Annotated[
    Union[AlwaysRelevant, FieldEquals, PredicateRelevance, UnparsedRelevance],
    Field(discriminator="kind"),
]

# ${var}='value': the only legacy expression shape used by the form.
_EXPRESSION_PATTERN = re.compile(r"^\s*\$\{([A-Za-z0-9_]+)\}\s*=\s*'([^']*)'\s*$")


def parse_relevance_expression(expression: str) -> dict[str, Any]:
    """Translate a legacy ``${var}='value'`` string into a relevance dict.

    An empty expression means "always relevant".  Anything that does not
    match the pattern becomes an ``unparsed`` variant and is logged.
    """
    if not expression or not expression.strip():
        return {"kind": "always"}
    match = _EXPRESSION_PATTERN.match(expression)
    if match is None:
        logger.warning("Could not parse relevance expression: %r", expression)
        return {"kind": "unparsed", "expression": expression}
    field, value = match.groups()
    # yes/no/na literals are compared case-insensitively by the form
    if value.lower() in ("yes", "no", "na"):
        value = value.lower()
    return {"kind": "field_equals", "field": field, "value": value}


def _coerce_relevance(value: Any) -> Any:
    """Accept None, legacy strings, or already-structured relevance dicts."""
    if value is None:
        return {"kind": "always"}
    if isinstance(value, str):
        return parse_relevance_expression(value)
    return value


# ---------------------------------------------------------------------------
# Classification vocabularies
# ---------------------------------------------------------------------------

class ClassificationDomain(BaseModel):
    """A diagnostic classification vocabulary.

    ``multi`` domains store a boolean per label (a child may carry several
    diagnoses at once); single domains store one selected label.
    ``classify_skill`` is the skill recording whether the worker's own
    classification was correct.
    """

    prefix: str
    labels: List[str]
    multi: bool = False
    classify_skill: str

    @property
    def worker_key(self) -> str:
        """Answer key of the worker's classification field."""
        return f"worker_{self.prefix}_classification"

    @property
    def correction_key(self) -> str:
        """Answer key of the supervisor's corrected classification field."""
        return f"supervisor_correct_{self.prefix}_classification"

    @model_validator(mode="after")
    def _chk(self):
        if len(set(self.labels)) != len(self.labels):
            raise ValueError(f"duplicate labels in classification '{self.prefix}'")
        return self


# ---------------------------------------------------------------------------
# Checklist items
# ---------------------------------------------------------------------------

class Skill(BaseModel):
    """A single yes/no checklist item."""

    key: str
    label: str
    relevant: Relevance = AlwaysRelevant()
    # Only a handful of items (vital-sign measurements) offer "na" to the user
    allows_na: bool = False

    @field_validator("relevant", mode="before")
    @classmethod
    def _coerce_relevant(cls, value: Any) -> Any:
        return _coerce_relevance(value)

    @property
    def is_conditional(self) -> bool:
        return self.relevant.kind != "always"


class SymptomEntry(BaseModel):
    """One main-symptom block inside the symptom-group container.

    The chain is: ``ask`` → supervisor confirms → ``check`` → ``classify``
    → worker classification → supervisor correction.  Each link only
    matters while the previous links allow it.
    """

    prefix: str
    score_key: str
    ask: Skill
    confirm_label: str
    check: Skill
    classify: Skill

    @property
    def confirm_key(self) -> str:
        return f"supervisor_confirms_{self.prefix}"

    @property
    def chain_keys(self) -> list[str]:
        """Plain answer keys below ``ask`` in chain order."""
        return [self.confirm_key, self.check.key, self.classify.key]


class Subgroup(BaseModel):
    """A scored list of skills, or the symptom-group container.

    ``max_score`` is a fixed display cap.  When it is None the subgroup's
    maximum is purely dynamic (counted from currently relevant skills).
    ``classification`` names a standalone classification domain whose
    classify skill lives in this subgroup (malnutrition, anemia).
    """

    title: str
    score_key: str
    step: Optional[int] = None
    max_score: Optional[int] = None
    relevant: Relevance = AlwaysRelevant()
    skills: List[Skill] = []
    symptoms: List[SymptomEntry] = []
    classification: Optional[str] = None

    @field_validator("relevant", mode="before")
    @classmethod
    def _coerce_relevant(cls, value: Any) -> Any:
        return _coerce_relevance(value)

    @property
    def is_symptom_container(self) -> bool:
        return bool(self.symptoms)

    @property
    def is_conditional(self) -> bool:
        return self.relevant.kind != "always"

    @model_validator(mode="after")
    def _chk(self):
        if self.skills and self.symptoms:
            raise ValueError(
                f"subgroup '{self.score_key}' has both skills and symptoms"
            )
        return self


class Group(BaseModel):
    """A top-level section of the checklist.

    ``section`` names the answer section its skills are stored in.  The
    decision group has no section and no subgroups; it is scored from
    the ``decision_matches`` answer.
    """

    title: str
    score_key: str
    section: Optional[Literal["assessment", "treatment"]] = None
    step: Optional[int] = None
    is_decision: bool = False
    subgroups: List[Subgroup] = []

    @model_validator(mode="after")
    def _chk(self):
        if self.is_decision and self.subgroups:
            raise ValueError("the decision section cannot contain subgroups")
        if not self.is_decision and self.section is None:
            raise ValueError(f"group '{self.score_key}' needs a section")
        return self


# ---------------------------------------------------------------------------
# Indicators (reporting pairs outside the score tree)
# ---------------------------------------------------------------------------

class HandsOnIndicator(BaseModel):
    """Counts a single skill when it was actually performed (yes/no)."""

    kind: Literal["hands_on"] = "hands_on"
    key: str
    skill: str


class ManagementIndicator(BaseModel):
    """Mirrors the score pair of one treatment subgroup."""

    kind: Literal["management"] = "management"
    key: str
    subgroup: str


class ClassificationAccuracyIndicator(BaseModel):
    """Whether the worker classified correctly when the case carries ``label``."""

    kind: Literal["classification_accuracy"] = "classification_accuracy"
    key: str
    prefix: str
    label: str


class CaseCountIndicator(BaseModel):
    """1/1 when the effective classification falls in ``labels``, else 0/1."""

    kind: Literal["case_count"] = "case_count"
    key: str
    prefix: str
    labels: List[str]


class ChainCheckIndicator(BaseModel):
    """Objective-check accuracy over supervisor-confirmed cases."""

    kind: Literal["chain_check"] = "chain_check"
    key: str
    prefix: str


Indicator = Annotated[
    Union[
        HandsOnIndicator,
        ManagementIndicator,
        ClassificationAccuracyIndicator,
        CaseCountIndicator,
        ChainCheckIndicator,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Whole definition
# ---------------------------------------------------------------------------

class ChecklistDefinition(BaseModel):
    """The full, immutable checklist: groups, vocabularies and indicators."""

    name: str
    title: str
    classifications: List[ClassificationDomain]
    groups: List[Group]
    indicators: List[Indicator] = []

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def classification(self, prefix: str) -> ClassificationDomain:
        """Return the classification domain for ``prefix``.

        Raises:
            KeyError: if no domain uses that prefix.
        """
        for domain in self.classifications:
            if domain.prefix == prefix:
                return domain
        raise KeyError(prefix)

    def classification_for_field(self, field_key: str) -> ClassificationDomain:
        """Return the domain owning a worker/correction field key."""
        for domain in self.classifications:
            if field_key in (domain.worker_key, domain.correction_key):
                return domain
        raise KeyError(field_key)

    def iter_subgroups(self) -> Iterator[tuple[Group, Subgroup]]:
        for group in self.groups:
            for subgroup in group.subgroups:
                yield group, subgroup

    def iter_skills(self) -> Iterator[tuple[Group, Subgroup, Skill]]:
        """Yield every flat-list skill (symptom chain skills excluded)."""
        for group, subgroup in self.iter_subgroups():
            for skill in subgroup.skills:
                yield group, subgroup, skill

    def symptom_entries(self) -> list[SymptomEntry]:
        """All symptom entries, in the order they are asked."""
        return [
            entry
            for _, subgroup in self.iter_subgroups()
            for entry in subgroup.symptoms
        ]

    def section_keys(self, section: str) -> list[str]:
        """Every plain answer key stored in ``section``, in form order."""
        keys: list[str] = []
        for group, subgroup in self.iter_subgroups():
            if group.section != section:
                continue
            for skill in subgroup.skills:
                keys.append(skill.key)
            for entry in subgroup.symptoms:
                keys.append(entry.ask.key)
                keys.extend(entry.chain_keys)
        return keys

    @property
    def decision_group(self) -> Group:
        for group in self.groups:
            if group.is_decision:
                return group
        raise KeyError("decision")

    @property
    def steps(self) -> list[int]:
        """Every gating step declared on groups or subgroups, ascending."""
        found = {g.step for g in self.groups if g.step is not None}
        found |= {s.step for _, s in self.iter_subgroups() if s.step is not None}
        return sorted(found)

    @property
    def final_step(self) -> int:
        return self.steps[-1]

    @model_validator(mode="after")
    def _chk(self):
        seen: set[str] = set()
        for section in ("assessment", "treatment"):
            for key in self.section_keys(section):
                if key in seen:
                    raise ValueError(f"duplicate answer key '{key}'")
                seen.add(key)
        prefixes = {d.prefix for d in self.classifications}
        for _, subgroup in self.iter_subgroups():
            if subgroup.classification and subgroup.classification not in prefixes:
                raise ValueError(
                    f"subgroup '{subgroup.score_key}' references unknown "
                    f"classification '{subgroup.classification}'"
                )
            for entry in subgroup.symptoms:
                if entry.prefix not in prefixes:
                    raise ValueError(f"symptom '{entry.prefix}' has no classification domain")
        if sum(1 for g in self.groups if g.is_decision) != 1:
            raise ValueError("exactly one decision section is required")
        return self
