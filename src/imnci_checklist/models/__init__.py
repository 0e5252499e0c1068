"""Public model re-exports for imnci_checklist.

Consumers should import from ``imnci_checklist.models`` rather than
reaching into sub-modules directly.
"""

# --- Checklist definition ---
from imnci_checklist.models.checklist import (
    AlwaysRelevant,
    CaseCountIndicator,
    ChainCheckIndicator,
    ChecklistDefinition,
    ClassificationAccuracyIndicator,
    ClassificationDomain,
    FieldEquals,
    Group,
    HandsOnIndicator,
    Indicator,
    ManagementIndicator,
    PredicateRelevance,
    Relevance,
    Skill,
    Subgroup,
    SymptomEntry,
    UnparsedRelevance,
    parse_relevance_expression,
)

# --- Answers ---
from imnci_checklist.models.answers import (
    AnswerTree,
    ClassificationValue,
    empty_classification,
    new_answer_tree,
)

# --- Scores ---
from imnci_checklist.models.scores import (
    OVERALL_KEY,
    ScorePair,
    ScoreTree,
)

# --- Session record ---
from imnci_checklist.models.session import (
    EvaluatorIdentity,
    Session,
    SessionStatus,
    SubjectIdentity,
)

# --- Derived state ---
from imnci_checklist.models.state import (
    EngineState,
    ProgressReport,
)

__all__ = [
    # Checklist definition
    "AlwaysRelevant",
    "CaseCountIndicator",
    "ChainCheckIndicator",
    "ChecklistDefinition",
    "ClassificationAccuracyIndicator",
    "ClassificationDomain",
    "FieldEquals",
    "Group",
    "HandsOnIndicator",
    "Indicator",
    "ManagementIndicator",
    "PredicateRelevance",
    "Relevance",
    "Skill",
    "Subgroup",
    "SymptomEntry",
    "UnparsedRelevance",
    "parse_relevance_expression",
    # Answers
    "AnswerTree",
    "ClassificationValue",
    "empty_classification",
    "new_answer_tree",
    # Scores
    "OVERALL_KEY",
    "ScorePair",
    "ScoreTree",
    # Session
    "EvaluatorIdentity",
    "Session",
    "SessionStatus",
    "SubjectIdentity",
    # Derived state
    "EngineState",
    "ProgressReport",
]
