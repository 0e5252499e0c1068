#!/usr/bin/env python3
"""Simulate one IMNCI mentorship visit end-to-end.

Fills the checklist the way a mentor would, always answering the first
visible unanswered item, then prints the score tree and indicators,
completes the session through an in-memory store and checks that the
stored record rehydrates to the same answers.

By default answers are **randomised** (``--random``, on by default) so each
run explores a different path through symptom chains and treatment
subgroups.  Use ``--no-random`` for a fixed fill (all skills "yes", every
symptom asked "no").

Usage::

    # Random visit
    python scripts/simulate_checklist.py

    # Reproducible random visit
    python scripts/simulate_checklist.py --seed 42

    # Deterministic visit, printing every answer
    python scripts/simulate_checklist.py --no-random -v
"""

from __future__ import annotations

import argparse
import asyncio
import random
import sys
from pathlib import Path

_SCRIPT_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _SCRIPT_DIR.parent
sys.path.insert(0, str(_REPO_ROOT / "src"))

from rich.console import Console  # noqa: E402
from rich.table import Table  # noqa: E402

from imnci_checklist import (  # noqa: E402
    ChecklistEngine,
    ChecklistStore,
    EditingSession,
    IdentityProvider,
    SessionStore,
    configure_logging,
    load_settings,
)
from imnci_checklist.constants import (  # noqa: E402
    DECISION_REFERRAL,
    DECISION_TREATMENT,
    NA,
    NO,
    UNANSWERED,
    YES,
)
from imnci_checklist.models import (  # noqa: E402
    EvaluatorIdentity,
    Session,
    SubjectIdentity,
)

console = Console()

SUBJECT = SubjectIdentity(
    health_worker_name="عامل صحي تجريبي",
    job_title="مساعد طبي",
    facility_name="مركز صحي تجريبي",
    state="الخرطوم",
)

# Upper bound on edits; a full visit needs well under a hundred.
_MAX_EDITS = 500


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class InMemorySessionStore(SessionStore):
    """Keeps flat records in a dict, the way a real store would persist them."""

    def __init__(self) -> None:
        self.records: dict[str, dict] = {}

    async def save(self, session: Session) -> str:
        session_id = session.session_id or f"sim-{len(self.records) + 1}"
        self.records[session_id] = session.model_copy(
            update={"session_id": session_id}
        ).to_record()
        return session_id

    async def load(self, session_id: str) -> Session:
        return Session.from_record(self.records[session_id])


class SimIdentity(IdentityProvider):
    def current(self) -> EvaluatorIdentity:
        return EvaluatorIdentity(name="مشرف تجريبي", email="mentor@example.org")


# ---------------------------------------------------------------------------
# Answer choice
# ---------------------------------------------------------------------------


class AnswerPicker:
    """Chooses answers, randomly or with the fixed strategy."""

    def __init__(self, randomise: bool, rng: random.Random) -> None:
        self._random = randomise
        self._rng = rng

    def skill(self, allows_na: bool) -> str:
        if not self._random:
            return YES
        choices = [YES, YES, YES, NO]
        if allows_na:
            choices.append(NA)
        return self._rng.choice(choices)

    def ask(self) -> str:
        if not self._random:
            return NO
        return YES if self._rng.random() < 0.4 else NO

    def confirm(self) -> str:
        if not self._random:
            return YES
        return YES if self._rng.random() < 0.8 else NO

    def labels(self, labels: list[str], multi: bool) -> list[str]:
        if not self._random:
            return [labels[0]]
        if multi:
            return self._rng.sample(labels, self._rng.randint(1, 2))
        return [self._rng.choice(labels)]

    def decision(self) -> tuple[str, str]:
        if not self._random:
            return DECISION_TREATMENT, YES
        decision = self._rng.choice([DECISION_TREATMENT, DECISION_TREATMENT, DECISION_REFERRAL])
        return decision, self._rng.choice([YES, YES, NO])


def next_edit(editing: EditingSession, engine: ChecklistEngine, picker: AnswerPicker) -> str | None:
    """Apply one edit to the first visible unanswered item.

    Returns a description of the edit, or None when nothing is left.
    """
    tree = editing.tree
    visibility = editing.state.visibility
    tracker = engine.tracker

    for key, visible in visibility.items():
        if not visible:
            continue

        if key == engine.definition.decision_group.score_key:
            if UNANSWERED in (tree.final_decision, tree.decision_matches):
                decision, matches = picker.decision()
                editing.set_decision(final_decision=decision, decision_matches=matches)
                return f"decision = {decision}, supervisor agrees = {matches}"
            continue

        if tracker.is_classification_field(key):
            domain = tracker.domain_for_field(key)
            if not tracker.is_empty(domain, tree.classifications.get(key)):
                continue
            chosen = picker.labels(list(domain.labels), domain.multi)
            for label in chosen:
                editing.set_classification(key, label)
            return f"{key} = {', '.join(chosen)}"

        if tree.section_for(key) is None or tree.answer(key) != UNANSWERED:
            continue

        role, owner = engine.evaluator.owner_of(key)
        if role == "confirm":
            value = picker.confirm()
            editing.set_confirmation(owner.prefix, value)
        elif role == "ask":
            value = picker.ask()
            editing.set_skill(key, value)
        else:
            value = picker.skill(engine.evaluator.skill(key).allows_na)
            editing.set_skill(key, value)
        return f"{key} = {value}"
    return None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _fraction(pair) -> str:
    return f"{pair.score}/{pair.max_score}"


def print_scores(engine: ChecklistEngine, editing: EditingSession) -> None:
    scores = editing.scores

    table = Table(title="Scores", show_lines=False)
    table.add_column("Key", style="dim")
    table.add_column("Title", min_width=30)
    table.add_column("Score", justify="right")
    table.add_column("%", justify="right")
    table.add_column("Fixed max", justify="right", style="dim")

    for group in engine.definition.groups:
        pair = scores[group.score_key]
        table.add_row(
            f"[bold]{group.score_key}[/]", f"[bold]{group.title}[/]",
            _fraction(pair), str(pair.percentage), "",
        )
        for subgroup in group.subgroups:
            pair = scores[subgroup.score_key]
            fixed = "" if pair.fixed_max_score is None else str(pair.fixed_max_score)
            table.add_row(
                subgroup.score_key, subgroup.title, _fraction(pair), str(pair.percentage), fixed,
            )
    overall = scores.overall
    table.add_row("[bold]overallScore[/]", "", f"[bold]{_fraction(overall)}[/]", str(overall.percentage), "")
    console.print(table)

    indicators = Table(title="Indicators")
    indicators.add_column("Indicator", style="dim")
    indicators.add_column("Score", justify="right")
    for key, pair in scores.indicators.items():
        indicators.add_row(key, _fraction(pair))
    console.print(indicators)


async def run_simulation(randomise: bool, seed: int, session_date: str, verbose: bool) -> bool:
    store = ChecklistStore()
    store.load()
    engine = ChecklistEngine(store)
    session_store = InMemorySessionStore()
    editing = EditingSession(
        engine, session_store, subject=SUBJECT, identity=SimIdentity(), session_date=session_date,
    )
    picker = AnswerPicker(randomise, random.Random(seed))

    console.rule("[bold]Filling checklist")
    edits = 0
    while not editing.state.progress.is_complete and edits < _MAX_EDITS:
        description = next_edit(editing, engine, picker)
        if description is None:
            break
        edits += 1
        if verbose:
            console.print(f"  [dim]{edits:3d}[/] {description}")
        if edits % 10 == 0:
            await editing.autosave()

    progress = editing.state.progress
    console.print(f"  {edits} edits, visible step {progress.visible_step}/{progress.final_step}")
    if not progress.is_complete:
        console.print("[red]Checklist did not complete:[/]")
        for line in progress.missing:
            console.print(f"  - {line}")
        return False

    console.rule("[bold]Results")
    print_scores(engine, editing)

    session_id = await editing.complete()
    console.print(f"  [green]✓[/] Completed session {session_id}")

    record = await session_store.load(session_id)
    restored = engine.lifecycle.rehydrate(record)
    if restored != editing.tree:
        console.print("[red]Rehydrated record does not match the edited answers[/]")
        return False
    console.print("  [green]✓[/] Stored record rehydrates to the same answers")
    return True


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Simulate one IMNCI mentorship visit end-to-end.",
    )
    parser.add_argument(
        "--random",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Randomise answers (default: on). Use --no-random for the fixed fill.",
    )
    parser.add_argument("--seed", type=int, default=None, help="RNG seed for --random")
    parser.add_argument("--date", default="2025-03-01", help="Session date (ISO, default: 2025-03-01)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print every edit")
    args = parser.parse_args()

    configure_logging(load_settings())
    seed = args.seed if args.seed is not None else random.randrange(1_000_000)
    if args.random:
        console.print(f"[dim]RNG seed: {seed}[/]")

    ok = asyncio.run(run_simulation(args.random, seed, args.date, args.verbose))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
