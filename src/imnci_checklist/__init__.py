"""imnci_checklist — IMNCI skills-observation checklist engine.

Public API:
    ChecklistEngine      — mutate -> normalize -> score -> progress pipeline
    ChecklistStore       — loads the YAML checklist definition into typed models
    EditingSession       — single owner of one in-progress checklist, with saves
    SessionLifecycle     — draft / complete packaging and rehydration
    EngineState          — derived state returned after every mutation

Engine components (usable on their own):
    ClassificationTracker — single/multi-select classifications, effective value
    RelevanceEvaluator    — whether an item currently counts
    ConsistencyEngine     — cascading resets (``normalize``)
    ScoreAggregator       — score tree and indicators
    ProgressTracker       — step completion, visible step, visibility map

Collaborator interfaces:
    SessionStore          — ABC for persistence
    IdentityProvider      — ABC for the current evaluator

Configuration:
    EngineSettings / load_settings / configure_logging
"""

from imnci_checklist.classification import ClassificationTracker
from imnci_checklist.config import EngineSettings, configure_logging, load_settings
from imnci_checklist.consistency import ConsistencyEngine, NormalizeResult
from imnci_checklist.editing import EditingSession
from imnci_checklist.engine import ChecklistEngine
from imnci_checklist.errors import (
    ChecklistDefinitionError,
    IncompleteChecklistError,
    InvalidAnswerError,
    NormalizationError,
    ScoreInvariantError,
    SessionStateError,
    UnknownFieldError,
)
from imnci_checklist.interfaces import IdentityProvider, SessionStore
from imnci_checklist.lifecycle import SessionLifecycle, next_visit_number
from imnci_checklist.models.state import EngineState, ProgressReport
from imnci_checklist.progress import ProgressTracker
from imnci_checklist.relevance import RelevanceEvaluator
from imnci_checklist.ruleset import ChecklistStore
from imnci_checklist.scoring import ScoreAggregator

__all__ = [
    # Engine & store
    "ChecklistEngine",
    "ChecklistStore",
    "EditingSession",
    "SessionLifecycle",
    "next_visit_number",
    # Components
    "ClassificationTracker",
    "ConsistencyEngine",
    "NormalizeResult",
    "ProgressTracker",
    "RelevanceEvaluator",
    "ScoreAggregator",
    # State
    "EngineState",
    "ProgressReport",
    # Interfaces
    "IdentityProvider",
    "SessionStore",
    # Config
    "EngineSettings",
    "configure_logging",
    "load_settings",
    # Errors
    "ChecklistDefinitionError",
    "IncompleteChecklistError",
    "InvalidAnswerError",
    "NormalizationError",
    "ScoreInvariantError",
    "SessionStateError",
    "UnknownFieldError",
]
