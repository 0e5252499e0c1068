"""Checklist constants shared across the engine.

These values are referenced by the relevance evaluator, the consistency
engine, the scorer and the session lifecycle.  They mirror conventions
encoded in the YAML definition under ``rules/``.

A few defaults can be overridden via environment variables so that
deployments can adjust record metadata without code changes.
"""

import os

# Answer sentinels for yes/no skills.
YES = "yes"
NO = "no"
NA = "na"
UNANSWERED = ""

ANSWER_VALUES: frozenset[str] = frozenset({YES, NO, NA, UNANSWERED})
# Values that count as "the item was performed and observed".
ANSWERED_VALUES: frozenset[str] = frozenset({YES, NO})

# Final-decision vocabulary (the decision section).
DECISION_REFERRAL = "referral"
DECISION_TREATMENT = "treatment"
DECISION_VALUES: frozenset[str] = frozenset(
    {DECISION_REFERRAL, DECISION_TREATMENT, UNANSWERED}
)

# Extra marker a worker's multi-select classification may carry when the
# worker did not classify at all.  Never part of a vocabulary.
DID_NOT_CLASSIFY = "did_not_classify"

# Record metadata defaults.
# Overridable via IMNCI_SERVICE_TYPE.
DEFAULT_SERVICE_TYPE = os.getenv("IMNCI_SERVICE_TYPE", "IMNCI")
SCHEMA_VERSION = 1

# Upper bound on normalization passes before the rules are considered cyclic.
MAX_NORMALIZE_PASSES = int(os.getenv("IMNCI_MAX_NORMALIZE_PASSES", "8"))

# Human-readable step names used in "incomplete" reports.
STEP_NAMES: dict[int, str] = {
    1: "القياسات الجسمانية والحيوية",
    2: "علامات الخطورة العامة",
    3: "الأعراض الأساسية",
    4: "سوء التغذية الحاد",
    5: "فقر الدم",
    6: "التطعيم وفيتامين أ",
    7: "الأمراض الأخرى",
    8: "القرار النهائي",
    9: "حقول العلاج والنصح",
}
