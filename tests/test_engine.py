"""ChecklistEngine tests — input validation and the derived state returned
after every single-field mutation."""

import pytest

from imnci_checklist.config import EngineSettings, load_settings
from imnci_checklist.engine import ChecklistEngine
from imnci_checklist.errors import InvalidAnswerError, UnknownFieldError
from imnci_checklist.ruleset import ChecklistStore

from helpers.builders import ACUTE_EAR, SESSION_DATE


class TestValidation:
    def test_unknown_skill(self, engine, blank):
        with pytest.raises(UnknownFieldError):
            engine.set_skill(blank.tree, "skill_rash", "yes")

    def test_confirmation_key_is_not_a_skill(self, engine, blank):
        with pytest.raises(UnknownFieldError):
            engine.set_skill(blank.tree, "supervisor_confirms_cough", "yes")

    @pytest.mark.parametrize("value", ["YES", "maybe", "1"])
    def test_invalid_value(self, engine, blank, value):
        with pytest.raises(InvalidAnswerError):
            engine.set_skill(blank.tree, "skill_weight", value)

    def test_na_only_where_offered(self, engine, blank):
        with pytest.raises(InvalidAnswerError):
            engine.set_skill(blank.tree, "skill_ds_drink", "na")
        state = engine.set_skill(blank.tree, "skill_weight", "na")
        assert state.tree.assessment["skill_weight"] == "na"

    def test_confirmation(self, engine, blank):
        with pytest.raises(UnknownFieldError):
            engine.set_confirmation(blank.tree, "rash", "yes")
        with pytest.raises(InvalidAnswerError):
            engine.set_confirmation(blank.tree, "cough", "na")

    def test_decision_vocabulary(self, engine, blank):
        with pytest.raises(InvalidAnswerError):
            engine.set_decision(blank.tree, final_decision="admit")
        with pytest.raises(InvalidAnswerError):
            engine.set_decision(blank.tree, decision_matches="na")

    def test_session_date(self, engine, blank):
        with pytest.raises(InvalidAnswerError):
            engine.set_session_date(blank.tree, "01/03/2025")
        assert engine.set_session_date(blank.tree, "2025-04-02").tree.session_date == "2025-04-02"
        assert engine.set_session_date(blank.tree, "").tree.session_date == ""


class TestPipeline:
    def test_new_tree(self, engine):
        state = engine.new_tree(session_date=SESSION_DATE)
        assert state.tree.session_date == SESSION_DATE
        assert state.normalized is True
        assert state.progress.visible_step == 1

    def test_mutation_returns_copy(self, engine, blank):
        state = engine.set_skill(blank.tree, "skill_weight", "yes")
        assert blank.tree.assessment["skill_weight"] == ""
        assert state.tree.assessment["skill_weight"] == "yes"

    def test_normalized_flag(self, engine, blank):
        """A plain answer changes nothing downstream; a cascading one does."""
        state = engine.set_skill(blank.tree, "skill_weight", "yes")
        assert state.normalized is False

        # ask without a confirmation closes the chain
        state = engine.set_skill(state.tree, "skill_ask_cough", "yes")
        assert state.normalized is True
        assert state.tree.assessment["skill_check_rr"] == "na"

    def test_classification_outside_chain_is_reset(self, engine, blank):
        """Selecting a label on a field that is not relevant yet is undone."""
        state = engine.set_classification(blank.tree, "worker_ear_classification", ACUTE_EAR)
        assert state.tree.classifications["worker_ear_classification"] == ""
        assert state.normalized is True

    def test_notes(self, engine, blank):
        state = engine.set_notes(blank.tree, "زيارة أولى")
        assert state.tree.notes == "زيارة أولى"
        assert state.normalized is False

    def test_components_share_definition(self, engine, definition):
        assert engine.definition is definition
        assert engine.consistency.evaluator is engine.evaluator
        assert engine.evaluator.tracker is engine.tracker


class TestConstruction:
    def test_loads_store_on_demand(self):
        store = ChecklistStore()
        engine = ChecklistEngine(store, EngineSettings())
        assert store.is_loaded
        assert engine.definition.final_step == 9

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("IMNCI_STRICT_SCORES", "false")
        monkeypatch.setenv("IMNCI_LOG_LEVEL", "debug")
        monkeypatch.delenv("IMNCI_CHECKLIST_PATH", raising=False)
        settings = load_settings()
        assert settings.strict_scores is False
        assert settings.log_level == "DEBUG"
        assert settings.checklist_path is None
