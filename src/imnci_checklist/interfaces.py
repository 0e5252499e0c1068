"""Abstract interfaces for the collaborators around the checklist engine.

These ABCs define the contract that the embedding application must fulfil.
The SDK ships no concrete implementations: persistence and identity live in
the host application.

Typical integration flow::

    engine = ChecklistEngine(store)
    editing = EditingSession(
        engine,
        MySessionStore(...),
        subject=SubjectIdentity(health_worker_name="..."),
        identity=MyIdentityProvider(...),
    )
    editing.set_skill("skill_weight", "yes")
    await editing.autosave()
    ...
    session_id = await editing.complete()
"""

from abc import ABC, abstractmethod

from imnci_checklist.models.session import EvaluatorIdentity, Session


class SessionStore(ABC):
    """Interface for the persistence collaborator.

    The engine treats the stored shape as an opaque, versionable record
    (see :meth:`Session.to_record`).  Implementations decide where and how
    it is written.
    """

    @abstractmethod
    async def save(self, session: Session) -> str:
        """Persist ``session`` and return its identifier.

        A session carrying a ``session_id`` overwrites the stored record
        with that id; a session without one creates a new record.
        """
        ...

    @abstractmethod
    async def load(self, session_id: str) -> Session:
        """Return the stored session.

        Raises
        ------
        KeyError
            If no session with ``session_id`` exists.
        """
        ...


class IdentityProvider(ABC):
    """Interface for the identity/actor collaborator.

    Supplies the evaluator attached to saved sessions.  Scoring never
    consults it.
    """

    @abstractmethod
    def current(self) -> EvaluatorIdentity:
        """Return the evaluator currently editing."""
        ...
