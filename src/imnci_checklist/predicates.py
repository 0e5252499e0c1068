"""Named relevance predicates referenced from the YAML definition.

A ``{kind: predicate, name: ..., params: {...}}`` relevance entry is
resolved against this registry when the definition is loaded, so a typo
in the YAML fails at startup instead of silently excluding items.

Every predicate is a pure function ``fn(tree, tracker, **params) -> bool``.
Anything that depends on a classification goes through
:meth:`ClassificationTracker.get_effective`, never through the raw worker
classification.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable, Optional

from imnci_checklist.models.answers import AnswerTree

if TYPE_CHECKING:
    from imnci_checklist.classification import ClassificationTracker

PredicateFn = Callable[..., bool]

_REGISTRY: dict[str, PredicateFn] = {}


def register(name: str) -> Callable[[PredicateFn], PredicateFn]:
    """Decorator: register ``fn`` under ``name``."""

    def decorator(fn: PredicateFn) -> PredicateFn:
        if name in _REGISTRY:
            raise ValueError(f"predicate '{name}' is already registered")
        _REGISTRY[name] = fn
        return fn

    return decorator


def get_predicate(name: str) -> PredicateFn:
    """Look up a registered predicate.

    Raises:
        KeyError: if ``name`` is not registered.
    """
    return _REGISTRY[name]


def registered_names() -> list[str]:
    return sorted(_REGISTRY)


# ---------------------------------------------------------------------------
# Built-in predicates
# ---------------------------------------------------------------------------

@register("decision_is")
def decision_is(
    tree: AnswerTree,
    tracker: "ClassificationTracker",
    *,
    decision: str,
    matches: Optional[str] = None,
) -> bool:
    """The final decision equals ``decision`` (and, if given, the
    supervisor's agreement answer equals ``matches``)."""
    if tree.final_decision != decision:
        return False
    return matches is None or tree.decision_matches == matches


@register("effective_classification_includes")
def effective_classification_includes(
    tree: AnswerTree,
    tracker: "ClassificationTracker",
    *,
    prefix: str,
    labels: Iterable[str],
    decision: Optional[str] = None,
) -> bool:
    """The effective classification of ``prefix`` contains any of ``labels``.

    When ``decision`` is given the final decision must also equal it.
    """
    if decision is not None and tree.final_decision != decision:
        return False
    return tracker.effective_includes(tree, prefix, labels)
