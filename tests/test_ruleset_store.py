"""ChecklistStore loading and validation tests.

Validates that the bundled YAML definition loads into typed models and
that malformed definitions are rejected at load time.

Expected counts (from rules/imnci_skills.yaml):
    3 groups (assessment, decision, treatment), 16 subgroups,
    38 flat-list skills, 4 symptom entries, 6 classification domains,
    16 indicators, steps 1-9
"""

import copy
import logging

import pytest
import yaml

from imnci_checklist.config import EngineSettings
from imnci_checklist.errors import ChecklistDefinitionError
from imnci_checklist.models import (
    FieldEquals,
    PredicateRelevance,
    UnparsedRelevance,
    new_answer_tree,
)
from imnci_checklist.relevance import RelevanceEvaluator
from imnci_checklist.ruleset import DEFAULT_CHECKLIST_PATH, ChecklistStore, load_yaml


@pytest.fixture
def raw():
    """A fresh, mutable copy of the bundled YAML mapping."""
    return copy.deepcopy(load_yaml(DEFAULT_CHECKLIST_PATH))


def _find_subgroup(raw, score_key):
    for group in raw["groups"]:
        for subgroup in group.get("subgroups", []):
            if subgroup["score_key"] == score_key:
                return subgroup
    raise KeyError(score_key)


# =====================================================================
# Loading
# =====================================================================


class TestLoading:
    def test_counts(self, definition):
        """The bundled definition has the expected shape."""
        assert len(definition.groups) == 3
        assert sum(1 for _ in definition.iter_subgroups()) == 16
        assert sum(1 for _ in definition.iter_skills()) == 38
        assert [e.prefix for e in definition.symptom_entries()] == [
            "cough", "diarrhea", "fever", "ear",
        ]
        assert len(definition.classifications) == 6
        assert len(definition.indicators) == 16
        assert definition.steps == list(range(1, 10))
        assert definition.final_step == 9

    def test_single_decision_group(self, definition):
        decision = definition.decision_group
        assert decision.score_key == "finalDecision"
        assert decision.step == 8

    def test_multi_select_domains(self, definition):
        """Only diarrhea and fever allow several diagnoses at once."""
        multi = {d.prefix for d in definition.classifications if d.multi}
        assert multi == {"diarrhea", "fever"}

    def test_only_vitals_offer_na(self, definition):
        na_skills = {skill.key for _, _, skill in definition.iter_skills() if skill.allows_na}
        assert na_skills == {"skill_weight", "skill_temp", "skill_height"}

    def test_legacy_expression_parsed(self, definition):
        """``${skill_pneu_abx}='yes'`` becomes a FieldEquals variant."""
        skills = {skill.key: skill for _, _, skill in definition.iter_skills()}
        relevant = skills["skill_pneu_dose"].relevant
        assert isinstance(relevant, FieldEquals)
        assert relevant.field == "skill_pneu_abx"
        assert relevant.value == "yes"

    def test_predicate_relevance(self, definition):
        subgroups = {s.score_key: s for _, s in definition.iter_subgroups()}
        relevant = subgroups["mal_treatment"].relevant
        assert isinstance(relevant, PredicateRelevance)
        assert relevant.name == "effective_classification_includes"
        assert relevant.params["prefix"] == "fever"

    def test_section_keys_include_chain(self, definition):
        keys = definition.section_keys("assessment")
        assert "skill_ask_cough" in keys
        assert "supervisor_confirms_cough" in keys
        assert keys.index("skill_ask_cough") < keys.index("skill_ask_diarrhea")

    def test_definition_before_load(self):
        with pytest.raises(RuntimeError):
            ChecklistStore().definition

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ChecklistStore(tmp_path / "missing.yaml").load()

    def test_settings_path(self, tmp_path, raw):
        """``checklist_path`` from settings is used when no path is given."""
        raw["name"] = "custom"
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump(raw, allow_unicode=True), encoding="utf-8")

        store = ChecklistStore(settings=EngineSettings(checklist_path=str(path)))
        assert store.load().name == "custom"
        assert store.path == path

    def test_load_logs_counts(self, caplog):
        with caplog.at_level(logging.INFO, logger="imnci_checklist.ruleset"):
            ChecklistStore().load()
        assert "16 subgroups" in caplog.text


# =====================================================================
# Validation
# =====================================================================


class TestValidation:
    def test_unknown_predicate_warns_and_fails_open(self, raw, caplog):
        _find_subgroup(raw, "pneu_treatment")["relevant"]["name"] = "no_such_predicate"
        with caplog.at_level(logging.WARNING):
            definition = ChecklistStore.parse(raw)
        assert "no_such_predicate" in caplog.text

        evaluator = RelevanceEvaluator(definition)
        subgroup = next(s for _, s in definition.iter_subgroups() if s.score_key == "pneu_treatment")
        assert evaluator.is_subgroup_relevant(subgroup, new_answer_tree(definition))

    def test_duplicate_skill_key(self, raw):
        subgroup = _find_subgroup(raw, "dangerSigns")
        subgroup["skills"].append({"key": "skill_weight", "label": "dup"})
        with pytest.raises(ChecklistDefinitionError, match="duplicate"):
            ChecklistStore.parse(raw)

    def test_unknown_classification_reference(self, raw):
        _find_subgroup(raw, "anemia")["classification"] = "rash"
        with pytest.raises(ChecklistDefinitionError):
            ChecklistStore.parse(raw)

    def test_unknown_predicate_prefix(self, raw):
        _find_subgroup(raw, "mal_treatment")["relevant"]["params"]["prefix"] = "rash"
        with pytest.raises(ChecklistDefinitionError, match="rash"):
            ChecklistStore.parse(raw)

    def test_unknown_field_in_expression(self, raw):
        subgroup = _find_subgroup(raw, "pneu_treatment")
        subgroup["skills"][1]["relevant"] = "${skill_nothing}='yes'"
        with pytest.raises(ChecklistDefinitionError, match="skill_nothing"):
            ChecklistStore.parse(raw)

    def test_two_decision_groups(self, raw):
        raw["groups"].append({"title": "again", "score_key": "again", "is_decision": True})
        with pytest.raises(ChecklistDefinitionError):
            ChecklistStore.parse(raw)

    def test_duplicate_indicator(self, raw):
        raw["indicators"].append(dict(raw["indicators"][0]))
        with pytest.raises(ChecklistDefinitionError, match="duplicate indicator"):
            ChecklistStore.parse(raw)

    def test_not_a_mapping(self):
        with pytest.raises(ChecklistDefinitionError):
            ChecklistStore.parse(["not", "a", "mapping"])

    def test_unparsed_expression_loads_with_warning(self, raw, caplog):
        """An expression outside the ``${var}='value'`` shape fails open."""
        subgroup = _find_subgroup(raw, "pneu_treatment")
        subgroup["skills"][1]["relevant"] = "${skill_pneu_abx} > 2"
        with caplog.at_level(logging.WARNING):
            definition = ChecklistStore.parse(raw)
        skills = {skill.key: skill for _, _, skill in definition.iter_skills()}
        assert isinstance(skills["skill_pneu_dose"].relevant, UnparsedRelevance)
        assert "skill_pneu_abx} > 2" in caplog.text
