import pytest

from imnci_checklist.config import EngineSettings
from imnci_checklist.engine import ChecklistEngine
from imnci_checklist.models.session import SubjectIdentity
from imnci_checklist.ruleset import ChecklistStore

from helpers.builders import SESSION_DATE


@pytest.fixture(scope="session")
def store():
    s = ChecklistStore()
    s.load()
    return s


@pytest.fixture(scope="session")
def definition(store):
    return store.definition


@pytest.fixture(scope="session")
def engine(store):
    # Explicit settings so IMNCI_* variables in the environment cannot leak in
    return ChecklistEngine(store, EngineSettings(strict_scores=True))


@pytest.fixture
def blank(engine):
    """A fresh, normalized EngineState dated SESSION_DATE."""
    return engine.new_tree(session_date=SESSION_DATE)


@pytest.fixture
def subject():
    return SubjectIdentity(
        health_worker_name="أحمد علي",
        job_title="مساعد طبي",
        facility_id="F-001",
        facility_name="مركز صحي الامتداد",
        state="الخرطوم",
        locality="أمبدة",
    )
