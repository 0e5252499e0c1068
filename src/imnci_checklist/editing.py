"""EditingSession — the single owner of one in-progress checklist.

The engine itself is synchronous and pure; persistence is the only
asynchronous boundary.  An editing session holds the current
:class:`EngineState`, routes each single-field edit through the engine and
writes drafts or the completed record through a :class:`SessionStore`.

At most one save per session is in flight: ``save_draft`` and
``complete`` wait for a running save, ``autosave`` skips instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from imnci_checklist.engine import ChecklistEngine
from imnci_checklist.interfaces import IdentityProvider, SessionStore
from imnci_checklist.models.answers import AnswerTree
from imnci_checklist.models.scores import ScoreTree
from imnci_checklist.models.session import (
    EvaluatorIdentity,
    Session,
    SessionStatus,
    SubjectIdentity,
)
from imnci_checklist.models.state import EngineState

logger = logging.getLogger(__name__)


class EditingSession:
    """Owns one answer tree for the duration of an editing session.

    Args:
        engine: the checklist engine
        store: persistence collaborator
        subject: the health worker being observed
        identity: supplies the evaluator attached to saved records
        record: a stored session to resume (rehydrated and normalized)
        visit_number: visit number for a new record
    """

    def __init__(
        self,
        engine: ChecklistEngine,
        store: SessionStore,
        *,
        subject: SubjectIdentity,
        identity: Optional[IdentityProvider] = None,
        record: Optional[Session] = None,
        visit_number: Optional[int] = None,
        session_date: Optional[str] = None,
    ) -> None:
        self._engine = engine
        self._store = store
        self._subject = subject
        self._identity = identity
        self._record = record
        self._visit_number = visit_number

        if record is not None:
            self._state = engine.evaluate(engine.lifecycle.rehydrate(record))
        else:
            self._state = engine.new_tree(session_date=session_date)

        self._save_lock = asyncio.Lock()
        # Bumped on every edit; lets a finished save tell whether it is stale.
        self._revision = 0
        self._saved_revision = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def tree(self) -> AnswerTree:
        return self._state.tree

    @property
    def scores(self) -> ScoreTree:
        return self._state.scores

    @property
    def record(self) -> Optional[Session]:
        """The last record written (or the one resumed from)."""
        return self._record

    @property
    def session_id(self) -> Optional[str]:
        return self._record.session_id if self._record is not None else None

    @property
    def is_dirty(self) -> bool:
        return self._revision != self._saved_revision

    @property
    def is_saving(self) -> bool:
        return self._save_lock.locked()

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def set_skill(self, key: str, value: str) -> EngineState:
        return self._apply(self._engine.set_skill(self.tree, key, value))

    def set_confirmation(self, prefix: str, value: str) -> EngineState:
        return self._apply(self._engine.set_confirmation(self.tree, prefix, value))

    def set_classification(self, field_key: str, label: str, selected: bool = True) -> EngineState:
        return self._apply(self._engine.set_classification(self.tree, field_key, label, selected))

    def set_decision(
        self,
        *,
        final_decision: Optional[str] = None,
        decision_matches: Optional[str] = None,
    ) -> EngineState:
        return self._apply(
            self._engine.set_decision(
                self.tree,
                final_decision=final_decision,
                decision_matches=decision_matches,
            )
        )

    def set_session_date(self, value: str) -> EngineState:
        return self._apply(self._engine.set_session_date(self.tree, value))

    def set_notes(self, value: str) -> EngineState:
        return self._apply(self._engine.set_notes(self.tree, value))

    def _apply(self, state: EngineState) -> EngineState:
        self._state = state
        self._revision += 1
        return state

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save_draft(self) -> str:
        """Write the current tree as a draft and return its id.

        Raises:
            SessionStateError: the record is already complete.
        """
        async with self._save_lock:
            return await self._save(self._engine.lifecycle.to_draft)

    async def complete(self) -> str:
        """Write the current tree as a completed record and return its id.

        Raises:
            IncompleteChecklistError: the checklist is not complete yet.
        """
        async with self._save_lock:
            return await self._save(self._engine.lifecycle.to_complete)

    async def autosave(self) -> Optional[str]:
        """Save a draft if there are unsaved edits and no save is running.

        Completed records are never autosaved; they are only re-saved
        through :meth:`complete`.
        """
        if self._save_lock.locked():
            logger.debug("Autosave skipped: a save is already in flight for %s", self.session_id)
            return None
        if not self.is_dirty:
            return None
        if self._record is not None and self._record.status == SessionStatus.COMPLETE:
            logger.debug("Autosave skipped: session %s is complete", self.session_id)
            return None
        return await self.save_draft()

    async def _save(self, build: Callable[..., Session]) -> str:
        revision = self._revision
        session = build(
            self.tree,
            self.scores,
            subject=self._subject,
            actor=self._actor(),
            previous=self._record,
            visit_number=self._visit_number,
        )
        session_id = await self._store.save(session)
        self._record = session.model_copy(update={"session_id": session_id})
        self._saved_revision = revision
        logger.debug("Saved %s session %s (revision %d)", session.status.value, session_id, revision)
        return session_id

    def _actor(self) -> Optional[EvaluatorIdentity]:
        return self._identity.current() if self._identity is not None else None
