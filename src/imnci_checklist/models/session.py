"""Session models — the persisted record handed to the storage collaborator.

A ``Session`` is the flat, versionable shape the engine hands to (and
receives from) persistence.  It is intentionally decoupled from the
in-memory :class:`~imnci_checklist.models.answers.AnswerTree`:

  - multi-select classifications travel as arrays of selected labels
  - scores travel as ``<key>_score`` / ``<key>_maxScore`` integers
  - keys are camelCase on the wire (``to_record`` / ``from_record``)

Status transitions:
    new -> draft        (save draft, always allowed)
    new/draft -> draft  (re-save, overwrites the previous draft)
    new/draft -> complete (only when the checklist is fully complete)
    complete -> complete (re-validated edit of a completed record)
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from imnci_checklist.constants import DEFAULT_SERVICE_TYPE, SCHEMA_VERSION


class SessionStatus(str, enum.Enum):
    """Lifecycle state of a persisted checklist session."""

    DRAFT = "draft"
    COMPLETE = "complete"


class _RecordModel(BaseModel):
    """Base for wire models: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EvaluatorIdentity(_RecordModel):
    """The mentor filling the checklist (supplied by the identity collaborator)."""

    name: str = "Unknown Mentor"
    email: str = "unknown"


class SubjectIdentity(_RecordModel):
    """The health worker being observed and where the visit happened."""

    health_worker_name: str
    job_title: Optional[str] = None
    phone: Optional[str] = None
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    facility_type: Optional[str] = None
    state: Optional[str] = None
    locality: Optional[str] = None


class Session(_RecordModel):
    """A persisted checklist session (draft or complete).

    ``assessment_skills`` is kept loosely typed: besides yes/no strings it
    carries classification fields (a label string or a list of labels), and
    records written by older versions may use other shapes.  Translation
    back into an AnswerTree is the lifecycle manager's job.
    """

    session_id: Optional[str] = None
    service_type: str = DEFAULT_SERVICE_TYPE
    schema_version: int = SCHEMA_VERSION
    status: SessionStatus
    session_date: str
    visit_number: int = 1
    subject: SubjectIdentity
    assessment_skills: dict[str, Any] = {}
    treatment_skills: dict[str, str] = {}
    final_decision: str = ""
    decision_matches: str = ""
    notes: str = ""
    scores: dict[str, int] = {}
    mentor: EvaluatorIdentity = EvaluatorIdentity()
    edited_by: Optional[EvaluatorIdentity] = None
    saved_at: Optional[datetime] = None

    def to_record(self) -> dict[str, Any]:
        """Serialize to the flat camelCase map persistence stores."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Session":
        """Parse a stored record (camelCase or snake_case keys)."""
        return cls.model_validate(record)
