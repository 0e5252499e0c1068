"""Exceptions raised by the checklist engine.

Each exception derives from the builtin a caller would naturally catch
for the same situation (``ValueError`` for bad input, ``KeyError`` for
unknown keys), so code that already handles those keeps working.
"""

from __future__ import annotations


class ChecklistDefinitionError(ValueError):
    """The YAML checklist definition is malformed."""


class UnknownFieldError(KeyError):
    """A mutation targeted an answer key the definition does not know."""


class InvalidAnswerError(ValueError):
    """A mutation wrote a value outside the item's answer domain."""


class IncompleteChecklistError(ValueError):
    """The checklist cannot be completed yet.

    ``missing`` lists the incomplete sections in form order so the caller
    can show them or fall back to saving a draft.
    """

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            "checklist is incomplete: " + "; ".join(self.missing)
        )


class SessionStateError(ValueError):
    """An illegal lifecycle transition (e.g. complete -> draft)."""


class ScoreInvariantError(AssertionError):
    """A computed score broke ``0 <= score <= max_score``."""


class NormalizationError(RuntimeError):
    """Normalization did not reach a fixed point."""
