"""Property-based tests over arbitrary (possibly inconsistent) answer trees.

Trees are drawn with every answer key set to any of "", yes, no, na and
every classification field set to any subset of its vocabulary (the
worker field may also carry the did_not_classify marker), so the
properties hold for stale or hand-edited records as well as live edits.
"""

from hypothesis import HealthCheck, given, settings, strategies as st

from imnci_checklist.constants import DECISION_VALUES, DID_NOT_CLASSIFY, UNANSWERED
from imnci_checklist.models import AnswerTree, SubjectIdentity
from imnci_checklist.ruleset import ChecklistStore

from helpers.builders import SESSION_DATE

_DEFINITION = ChecklistStore().load()
_ANSWERS = st.sampled_from(["", "yes", "no", "na"])
_SUBJECT = SubjectIdentity(health_worker_name="property")

PROPERTY_SETTINGS = settings(
    max_examples=60,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)


def _classification_value(domain, worker):
    if domain.multi:
        optional = {DID_NOT_CLASSIFY: st.booleans()} if worker else None
        return st.fixed_dictionaries(
            {label: st.booleans() for label in domain.labels}, optional=optional,
        )
    extra = [DID_NOT_CLASSIFY] if worker else []
    return st.sampled_from([UNANSWERED, *domain.labels, *extra])


@st.composite
def answer_trees(draw):
    assessment = {
        key: draw(_ANSWERS) for key in _DEFINITION.section_keys("assessment")
    }
    treatment = {
        key: draw(_ANSWERS) for key in _DEFINITION.section_keys("treatment")
    }
    classifications = {}
    for domain in _DEFINITION.classifications:
        classifications[domain.worker_key] = draw(_classification_value(domain, worker=True))
        classifications[domain.correction_key] = draw(_classification_value(domain, worker=False))
    return AnswerTree(
        session_date=draw(st.sampled_from(["", SESSION_DATE])),
        final_decision=draw(st.sampled_from(sorted(DECISION_VALUES))),
        decision_matches=draw(st.sampled_from(["", "yes", "no"])),
        assessment=assessment,
        treatment=treatment,
        classifications=classifications,
    )


class TestNormalizeProperties:
    @PROPERTY_SETTINGS
    @given(tree=answer_trees())
    def test_idempotent(self, engine, tree):
        once = engine.consistency.normalize(tree)
        twice = engine.consistency.normalize(once.tree)
        assert twice.changed is False
        assert twice.tree == once.tree

    @PROPERTY_SETTINGS
    @given(tree=answer_trees())
    def test_no_orphaned_answers(self, engine, tree):
        normalized = engine.consistency.normalize(tree).tree
        evaluator = engine.evaluator

        for section in (normalized.assessment, normalized.treatment):
            for key, value in section.items():
                if not evaluator.is_key_relevant(key, normalized):
                    assert value in ("", "na"), key
                elif value == "na":
                    assert evaluator.skill(key).allows_na, key

        for domain in _DEFINITION.classifications:
            for field_key in (domain.worker_key, domain.correction_key):
                if not evaluator.is_key_relevant(field_key, normalized):
                    value = normalized.classifications[field_key]
                    assert engine.tracker.is_empty(domain, value), field_key

            worker = normalized.classifications[domain.worker_key]
            has_marker = worker == DID_NOT_CLASSIFY or (
                isinstance(worker, dict) and DID_NOT_CLASSIFY in worker
            )
            if has_marker:
                assert normalized.answer(domain.classify_skill) == "no", domain.prefix


class TestScoreProperties:
    @PROPERTY_SETTINGS
    @given(tree=answer_trees())
    def test_bounds_and_exact_sums(self, engine, tree):
        scores = engine.evaluate(tree).scores
        for pair in [*scores.nodes.values(), *scores.indicators.values()]:
            assert 0 <= pair.score <= pair.max_score

        groups = [scores[group.score_key] for group in _DEFINITION.groups]
        assert scores.overall.score == sum(p.score for p in groups)
        assert scores.overall.max_score == sum(p.max_score for p in groups)


class TestPersistenceProperties:
    @PROPERTY_SETTINGS
    @given(tree=answer_trees())
    def test_draft_round_trip(self, engine, tree):
        state = engine.evaluate(tree)
        session = engine.lifecycle.to_draft(state.tree, state.scores, subject=_SUBJECT)
        assert engine.lifecycle.rehydrate(session) == state.tree
