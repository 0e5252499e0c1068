"""Score models — exact integer score/max pairs and the derived score tree.

Percentages are a presentation concern: aggregation always works on the
integer pairs so parent sums stay exact, and rounding happens only in
:attr:`ScorePair.percentage`.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

# Key of the overall pair in ScoreTree.nodes.
OVERALL_KEY = "overallScore"


class ScorePair(BaseModel):
    """``score`` out of ``max_score`` for one scoreable node.

    ``fixed_max_score`` carries the static cap a subgroup declares in the
    definition.  It is reported alongside the dynamic ``max_score`` but
    never used in aggregation.
    """

    model_config = ConfigDict(frozen=True)

    score: int = 0
    max_score: int = 0
    fixed_max_score: Optional[int] = None

    @property
    def percentage(self) -> int:
        """Whole percent, rounded half up.  A zero maximum reads as 100%."""
        if self.max_score == 0:
            return 100
        return (200 * self.score + self.max_score) // (2 * self.max_score)

    @property
    def is_full(self) -> bool:
        return self.score == self.max_score

    def __add__(self, other: "ScorePair") -> "ScorePair":
        return ScorePair(
            score=self.score + other.score,
            max_score=self.max_score + other.max_score,
        )


ZERO = ScorePair()


class ScoreTree(BaseModel):
    """Every score pair computed for one answer tree.

    ``nodes`` holds the scoreable checklist nodes (symptom entries,
    subgroups, groups and ``overallScore``); ``indicators`` holds the
    reporting pairs that never roll into totals.
    """

    nodes: dict[str, ScorePair] = {}
    indicators: dict[str, ScorePair] = {}

    @property
    def overall(self) -> ScorePair:
        return self.nodes[OVERALL_KEY]

    def __getitem__(self, key: str) -> ScorePair:
        if key in self.nodes:
            return self.nodes[key]
        return self.indicators[key]

    def __contains__(self, key: object) -> bool:
        return key in self.nodes or key in self.indicators

    def to_flat(self) -> dict[str, int]:
        """Flatten to ``<key>_score`` / ``<key>_maxScore`` record fields."""
        flat: dict[str, int] = {}
        for key, pair in {**self.nodes, **self.indicators}.items():
            flat[f"{key}_score"] = pair.score
            flat[f"{key}_maxScore"] = pair.max_score
        return flat
