"""ChecklistStore — loads the YAML checklist definition into typed models.

This is the single source of truth for checklist structure at runtime.
The store is loaded once at startup and shared by every engine instance.

Usage::

    store = ChecklistStore()        # defaults to the bundled rules/imnci_skills.yaml
    store.load()                    # parse and validate the YAML

    definition = store.definition
    domain = store.definition.classification("fever")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from imnci_checklist.config import EngineSettings
from imnci_checklist.errors import ChecklistDefinitionError
from imnci_checklist.models.checklist import (
    ChecklistDefinition,
    PredicateRelevance,
    Relevance,
    UnparsedRelevance,
)
from imnci_checklist.predicates import registered_names

logger = logging.getLogger(__name__)

DEFAULT_CHECKLIST_PATH = Path(__file__).resolve().parent / "rules" / "imnci_skills.yaml"


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


class ChecklistStore:
    """Loads the checklist YAML and exposes the validated definition.

    Args:
        path: YAML file to load; defaults to ``settings.checklist_path``
            and then to the bundled definition
        settings: engine settings (only ``checklist_path`` is read here)
    """

    def __init__(
        self,
        path: str | Path | None = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        if path is None and settings is not None and settings.checklist_path:
            path = settings.checklist_path
        self._path = Path(path) if path is not None else DEFAULT_CHECKLIST_PATH
        self._definition: Optional[ChecklistDefinition] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def definition(self) -> ChecklistDefinition:
        """The loaded definition.

        Raises:
            RuntimeError: if :meth:`load` has not been called.
        """
        if self._definition is None:
            raise RuntimeError("ChecklistStore.load() has not been called")
        return self._definition

    @property
    def is_loaded(self) -> bool:
        return self._definition is not None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> ChecklistDefinition:
        """Parse and validate the YAML definition.

        Call this once at startup.

        Raises:
            FileNotFoundError: the YAML file does not exist.
            ChecklistDefinitionError: the YAML is not a valid checklist.
        """
        raw = load_yaml(self._path)
        self._definition = self.parse(raw, source=str(self._path))

        skills = sum(1 for _ in self._definition.iter_skills())
        subgroups = sum(1 for _ in self._definition.iter_subgroups())
        logger.info(
            "ChecklistStore loaded %s: %d groups, %d subgroups, %d skills, %d symptoms, %d indicators",
            self._definition.name,
            len(self._definition.groups),
            subgroups,
            skills,
            len(self._definition.symptom_entries()),
            len(self._definition.indicators),
        )
        return self._definition

    @staticmethod
    def parse(raw: Any, source: str = "<memory>") -> ChecklistDefinition:
        """Validate an already-parsed YAML mapping into a definition.

        Raises:
            ChecklistDefinitionError: the mapping is not a valid checklist.
        """
        if not isinstance(raw, dict):
            raise ChecklistDefinitionError(f"{source}: expected a mapping at the top level")
        try:
            definition = ChecklistDefinition.model_validate(raw)
        except ValidationError as exc:
            raise ChecklistDefinitionError(f"{source}: {exc}") from exc
        assessment_keys = set(definition.section_keys("assessment"))
        for domain in definition.classifications:
            if domain.classify_skill not in assessment_keys:
                raise ChecklistDefinitionError(
                    f"{source}: classification '{domain.prefix}' names unknown "
                    f"classify skill '{domain.classify_skill}'"
                )
        _check_relevance(definition, source)
        _check_indicators(definition, source)
        return definition


def _iter_relevance(definition: ChecklistDefinition):
    for _, subgroup in definition.iter_subgroups():
        yield subgroup.score_key, subgroup.relevant
        for skill in subgroup.skills:
            yield skill.key, skill.relevant


def _check_relevance(definition: ChecklistDefinition, source: str) -> None:
    known = set(registered_names())
    answer_keys = set(definition.section_keys("assessment")) | set(definition.section_keys("treatment"))
    relevance: Relevance
    for owner, relevance in _iter_relevance(definition):
        if isinstance(relevance, PredicateRelevance):
            if relevance.name not in known:
                logger.warning(
                    "%s: '%s' uses unknown predicate '%s', it will always be relevant",
                    source, owner, relevance.name,
                )
            prefix = relevance.params.get("prefix")
            if prefix is not None and prefix not in {d.prefix for d in definition.classifications}:
                raise ChecklistDefinitionError(
                    f"{source}: '{owner}' references unknown classification '{prefix}'"
                )
        elif isinstance(relevance, UnparsedRelevance):
            logger.warning("%s: '%s' has an unparsed relevance expression %r", source, owner, relevance.expression)
        elif relevance.kind == "field_equals":
            field = relevance.field
            bare = field[3:] if field.startswith(("as_", "ts_")) else field
            if field not in answer_keys and bare not in answer_keys and field not in (
                "final_decision", "decision_matches", "finalDecision", "decisionMatches",
            ):
                raise ChecklistDefinitionError(
                    f"{source}: '{owner}' compares unknown field '{field}'"
                )


def _check_indicators(definition: ChecklistDefinition, source: str) -> None:
    subgroup_keys = {s.score_key for _, s in definition.iter_subgroups()}
    answer_keys = set(definition.section_keys("assessment")) | set(definition.section_keys("treatment"))
    prefixes = {d.prefix for d in definition.classifications}
    seen: set[str] = set()
    for indicator in definition.indicators:
        if indicator.key in seen:
            raise ChecklistDefinitionError(f"{source}: duplicate indicator '{indicator.key}'")
        seen.add(indicator.key)
        if indicator.kind == "hands_on" and indicator.skill not in answer_keys:
            raise ChecklistDefinitionError(f"{source}: indicator '{indicator.key}' names unknown skill")
        if indicator.kind == "management" and indicator.subgroup not in subgroup_keys:
            raise ChecklistDefinitionError(f"{source}: indicator '{indicator.key}' names unknown subgroup")
        prefix = getattr(indicator, "prefix", None)
        if prefix is not None and prefix not in prefixes:
            raise ChecklistDefinitionError(f"{source}: indicator '{indicator.key}' names unknown classification")
