"""ClassificationTracker tests — single/multi-select fields and the
effective classification."""

import logging

import pytest

from imnci_checklist.constants import DID_NOT_CLASSIFY
from imnci_checklist.errors import InvalidAnswerError, UnknownFieldError
from imnci_checklist.models import new_answer_tree

from helpers.builders import (
    ACUTE_EAR,
    COUGH_COLD,
    DYSENTERY,
    MALARIA,
    NO_EAR,
    PNEUMONIA,
    SESSION_DATE,
    SEVERE_FEBRILE,
    SOME_DEHYDRATION,
)


@pytest.fixture
def tracker(engine):
    return engine.tracker


@pytest.fixture
def tree(definition):
    return new_answer_tree(definition, session_date=SESSION_DATE)


class TestSetClassification:
    def test_single_select_replaces(self, tracker, tree):
        tree = tracker.set_classification(tree, "worker_ear_classification", ACUTE_EAR)
        tree = tracker.set_classification(tree, "worker_ear_classification", NO_EAR)
        assert tree.classifications["worker_ear_classification"] == NO_EAR

    def test_single_select_deselect(self, tracker, tree):
        tree = tracker.set_classification(tree, "worker_ear_classification", ACUTE_EAR)
        # Deselecting a label that is not selected keeps the current one
        kept = tracker.set_classification(tree, "worker_ear_classification", NO_EAR, False)
        assert kept.classifications["worker_ear_classification"] == ACUTE_EAR
        cleared = tracker.set_classification(tree, "worker_ear_classification", ACUTE_EAR, False)
        assert cleared.classifications["worker_ear_classification"] == ""

    def test_multi_select_toggles(self, tracker, tree):
        field = "worker_diarrhea_classification"
        tree = tracker.set_classification(tree, field, SOME_DEHYDRATION)
        tree = tracker.set_classification(tree, field, DYSENTERY)
        tree = tracker.set_classification(tree, field, SOME_DEHYDRATION, False)
        value = tree.classifications[field]
        assert value[DYSENTERY] is True
        assert value[SOME_DEHYDRATION] is False

    def test_returns_copy(self, tracker, tree):
        updated = tracker.set_classification(tree, "worker_ear_classification", ACUTE_EAR)
        assert tree.classifications["worker_ear_classification"] == ""
        assert updated is not tree

    def test_label_outside_vocabulary(self, tracker, tree):
        with pytest.raises(InvalidAnswerError):
            tracker.set_classification(tree, "worker_ear_classification", MALARIA)

    def test_unknown_field(self, tracker, tree):
        with pytest.raises(UnknownFieldError):
            tracker.set_classification(tree, "worker_rash_classification", MALARIA)

    def test_did_not_classify_on_worker_fields(self, tracker, tree):
        tree.assessment["skill_classify_fever"] = "no"
        tree.assessment["skill_classify_cough"] = "no"
        tree = tracker.set_classification(tree, "worker_fever_classification", DID_NOT_CLASSIFY)
        assert tree.classifications["worker_fever_classification"][DID_NOT_CLASSIFY] is True
        tree = tracker.set_classification(tree, "worker_cough_classification", DID_NOT_CLASSIFY)
        assert tree.classifications["worker_cough_classification"] == DID_NOT_CLASSIFY
        with pytest.raises(InvalidAnswerError):
            tracker.set_classification(tree, "supervisor_correct_fever_classification", DID_NOT_CLASSIFY)

    @pytest.mark.parametrize("classify", ["yes", "", "na"])
    @pytest.mark.parametrize("field", ["worker_fever_classification", "worker_cough_classification"])
    def test_did_not_classify_needs_classify_no(self, tracker, tree, classify, field):
        prefix = field.split("_")[1]
        tree.assessment[f"skill_classify_{prefix}"] = classify
        with pytest.raises(InvalidAnswerError, match="skill_classify"):
            tracker.set_classification(tree, field, DID_NOT_CLASSIFY)

    def test_did_not_classify_deselect_removes_marker(self, tracker, tree):
        field = "worker_fever_classification"
        tree.assessment["skill_classify_fever"] = "no"
        tree = tracker.set_classification(tree, field, DID_NOT_CLASSIFY)
        tree = tracker.set_classification(tree, field, DID_NOT_CLASSIFY, False)
        assert DID_NOT_CLASSIFY not in tree.classifications[field]


class TestStaleMarker:
    def test_dropped_from_multi_unless_classify_no(self, tracker, tree):
        domain = tracker.domain("fever")
        tree.classifications[domain.worker_key] = {MALARIA: True, DID_NOT_CLASSIFY: True}
        tree.assessment["skill_classify_fever"] = "no"
        assert tracker.drop_stale_marker(tree, domain) is False

        tree.assessment["skill_classify_fever"] = "yes"
        assert tracker.drop_stale_marker(tree, domain) is True
        assert tree.classifications[domain.worker_key] == {MALARIA: True}

    def test_deselected_key_always_removed(self, tracker, tree):
        domain = tracker.domain("fever")
        tree.assessment["skill_classify_fever"] = "no"
        tree.classifications[domain.worker_key] = {MALARIA: True, DID_NOT_CLASSIFY: False}
        assert tracker.drop_stale_marker(tree, domain) is True
        assert DID_NOT_CLASSIFY not in tree.classifications[domain.worker_key]

    def test_single_select_cleared(self, tracker, tree):
        domain = tracker.domain("cough")
        tree.classifications[domain.worker_key] = DID_NOT_CLASSIFY
        tree.assessment["skill_classify_cough"] = "no"
        assert tracker.drop_stale_marker(tree, domain) is False
        tree.assessment["skill_classify_cough"] = "yes"
        assert tracker.drop_stale_marker(tree, domain) is True
        assert tree.classifications[domain.worker_key] == ""


class TestEffective:
    def test_worker_when_correct(self, tracker, tree):
        tree.assessment["skill_classify_cough"] = "yes"
        tree.classifications["worker_cough_classification"] = PNEUMONIA
        tree.classifications["supervisor_correct_cough_classification"] = COUGH_COLD
        assert tracker.get_effective(tree, "cough") == frozenset({PNEUMONIA})

    def test_correction_otherwise(self, tracker, tree):
        tree.classifications["worker_cough_classification"] = PNEUMONIA
        tree.classifications["supervisor_correct_cough_classification"] = COUGH_COLD
        for classify in ("no", "", "na"):
            tree.assessment["skill_classify_cough"] = classify
            assert tracker.get_effective(tree, "cough") == frozenset({COUGH_COLD})

    def test_empty_when_unset(self, tracker, tree):
        assert tracker.get_effective(tree, "fever") == frozenset()

    def test_marker_never_effective(self, tracker, tree):
        tree.assessment["skill_classify_fever"] = "yes"
        tree.classifications["worker_fever_classification"] = {MALARIA: True, DID_NOT_CLASSIFY: True}
        assert tracker.get_effective(tree, "fever") == frozenset({MALARIA})

    def test_effective_includes(self, tracker, tree):
        tree.assessment["skill_classify_fever"] = "no"
        tree.classifications["supervisor_correct_fever_classification"] = {
            MALARIA: True, SEVERE_FEBRILE: False,
        }
        assert tracker.effective_includes(tree, "fever", [SEVERE_FEBRILE, MALARIA])
        assert not tracker.effective_includes(tree, "fever", [SEVERE_FEBRILE])

    def test_unknown_prefix(self, tracker, tree):
        with pytest.raises(UnknownFieldError):
            tracker.get_effective(tree, "rash")


class TestStoredShape:
    def test_multi_to_list_in_vocabulary_order(self, tracker):
        value = {DYSENTERY: True, SOME_DEHYDRATION: True, DID_NOT_CLASSIFY: True}
        assert tracker.to_stored("worker_diarrhea_classification", value) == [
            SOME_DEHYDRATION, DYSENTERY, DID_NOT_CLASSIFY,
        ]

    def test_single_to_string(self, tracker):
        assert tracker.to_stored("worker_ear_classification", ACUTE_EAR) == ACUTE_EAR

    @pytest.mark.parametrize(
        "raw",
        [
            [MALARIA],
            {MALARIA: True, SEVERE_FEBRILE: False},
            MALARIA,
        ],
    )
    def test_multi_from_any_shape(self, tracker, raw):
        value = tracker.from_stored("supervisor_correct_fever_classification", raw)
        assert value[MALARIA] is True
        assert sum(value.values()) == 1

    def test_unknown_labels_dropped(self, tracker, caplog):
        with caplog.at_level(logging.WARNING):
            value = tracker.from_stored("worker_fever_classification", [MALARIA, "old label"])
        assert "old label" not in value
        assert value[MALARIA] is True
        assert "old label" in caplog.text

    def test_single_from_empty(self, tracker):
        assert tracker.from_stored("worker_ear_classification", None) == ""
        assert tracker.from_stored("worker_ear_classification", []) == ""

    def test_single_select_marker_kept(self, tracker, caplog):
        assert tracker.to_stored("worker_ear_classification", DID_NOT_CLASSIFY) == DID_NOT_CLASSIFY
        assert tracker.from_stored("worker_ear_classification", DID_NOT_CLASSIFY) == DID_NOT_CLASSIFY
        with caplog.at_level(logging.WARNING):
            assert tracker.from_stored("supervisor_correct_ear_classification", DID_NOT_CLASSIFY) == ""
        assert DID_NOT_CLASSIFY in caplog.text
