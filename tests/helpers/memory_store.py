"""In-memory SessionStore used by the editing-session tests.

Records are kept in their flat ``to_record()`` shape so every save and
load goes through the same serialization a real store would use.
"""

import asyncio

from imnci_checklist.interfaces import IdentityProvider, SessionStore
from imnci_checklist.models.session import EvaluatorIdentity, Session


class MemorySessionStore(SessionStore):
    """Dict-backed store.

    When ``gate`` is given, every save blocks until the gate is set, which
    lets a test hold a save "in flight".
    """

    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.records: dict[str, dict] = {}
        self.saves = 0
        self.entered = asyncio.Event()
        self._gate = gate

    async def save(self, session: Session) -> str:
        self.saves += 1
        self.entered.set()
        if self._gate is not None:
            await self._gate.wait()
        session_id = session.session_id or f"sess-{len(self.records) + 1}"
        self.records[session_id] = session.model_copy(
            update={"session_id": session_id}
        ).to_record()
        return session_id

    async def load(self, session_id: str) -> Session:
        return Session.from_record(self.records[session_id])


class StaticIdentity(IdentityProvider):
    """Always returns the same evaluator."""

    def __init__(self, name: str, email: str) -> None:
        self._identity = EvaluatorIdentity(name=name, email=email)

    def current(self) -> EvaluatorIdentity:
        return self._identity
