"""ClassificationTracker — single- and multi-select classification fields.

Every classification domain has two fields in the answer tree:

  - ``worker_<prefix>_classification``: what the health worker classified
  - ``supervisor_correct_<prefix>_classification``: the supervisor's
    correction, only meaningful when the worker classified incorrectly

The *effective* classification (:meth:`get_effective`) is the worker's own
when the classify skill is ``"yes"``, otherwise the supervisor's
correction.  It is the only classification value used for downstream
gating.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from imnci_checklist.constants import DID_NOT_CLASSIFY, NO, UNANSWERED, YES
from imnci_checklist.errors import InvalidAnswerError, UnknownFieldError
from imnci_checklist.models.answers import (
    AnswerTree,
    ClassificationValue,
    empty_classification,
)
from imnci_checklist.models.checklist import ChecklistDefinition, ClassificationDomain

logger = logging.getLogger(__name__)


class ClassificationTracker:
    """Reads, writes and translates classification fields.

    Args:
        definition: the loaded checklist definition
    """

    def __init__(self, definition: ChecklistDefinition) -> None:
        self._definition = definition
        self._by_prefix = {d.prefix: d for d in definition.classifications}
        self._by_field: dict[str, ClassificationDomain] = {}
        for domain in definition.classifications:
            self._by_field[domain.worker_key] = domain
            self._by_field[domain.correction_key] = domain

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def domain(self, prefix: str) -> ClassificationDomain:
        try:
            return self._by_prefix[prefix]
        except KeyError:
            raise UnknownFieldError(f"unknown classification prefix '{prefix}'") from None

    def domain_for_field(self, field_key: str) -> ClassificationDomain:
        try:
            return self._by_field[field_key]
        except KeyError:
            raise UnknownFieldError(f"unknown classification field '{field_key}'") from None

    def is_classification_field(self, key: str) -> bool:
        return key in self._by_field

    def allowed_labels(self, field_key: str) -> list[str]:
        """Labels a live edit may write into ``field_key``.

        The worker field additionally accepts the ``did_not_classify``
        marker; whether it may be selected right now is checked by
        :meth:`set_classification`.
        """
        domain = self.domain_for_field(field_key)
        labels = list(domain.labels)
        if field_key == domain.worker_key:
            labels.append(DID_NOT_CLASSIFY)
        return labels

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @staticmethod
    def selected_labels(domain: ClassificationDomain, value: Any) -> frozenset[str]:
        """Vocabulary labels selected in ``value`` (markers and unknowns ignored)."""
        if domain.multi:
            if not isinstance(value, dict):
                return frozenset()
            return frozenset(label for label in domain.labels if value.get(label))
        if isinstance(value, str) and value in domain.labels:
            return frozenset({value})
        return frozenset()

    @staticmethod
    def is_empty(domain: ClassificationDomain, value: Any) -> bool:
        """True when nothing at all is selected (markers count as a selection)."""
        if domain.multi:
            return not isinstance(value, dict) or not any(v is True for v in value.values())
        return not value

    def get_effective(self, tree: AnswerTree, prefix: str) -> frozenset[str]:
        """Return the effective classification for ``prefix``.

        The worker's classification if the worker classified correctly
        (``classify`` skill is ``"yes"``), otherwise the supervisor's
        correction.  An unset field yields an empty set.
        """
        domain = self.domain(prefix)
        if tree.answer(domain.classify_skill) == YES:
            value = tree.classifications.get(domain.worker_key)
        else:
            value = tree.classifications.get(domain.correction_key)
        return self.selected_labels(domain, value)

    def effective_includes(
        self, tree: AnswerTree, prefix: str, labels: Iterable[str]
    ) -> bool:
        effective = self.get_effective(tree, prefix)
        return any(label in effective for label in labels)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def set_classification(
        self,
        tree: AnswerTree,
        field_key: str,
        label: str,
        selected: bool = True,
    ) -> AnswerTree:
        """Return a copy of ``tree`` with ``label`` (de)selected in ``field_key``.

        Single-select fields hold one label: selecting replaces it,
        deselecting clears it only if it is the current value.  Multi-select
        fields toggle the label's boolean.

        The ``did_not_classify`` marker can only be selected while the
        classify skill is ``"no"``.

        Raises:
            UnknownFieldError: ``field_key`` is not a classification field.
            InvalidAnswerError: ``label`` is not in the field's vocabulary,
                or is the marker and the worker did not classify incorrectly.
        """
        domain = self.domain_for_field(field_key)
        if label not in self.allowed_labels(field_key):
            raise InvalidAnswerError(
                f"'{label}' is not a valid label for {field_key}"
            )
        if label == DID_NOT_CLASSIFY and selected and tree.answer(domain.classify_skill) != NO:
            raise InvalidAnswerError(
                f"'{DID_NOT_CLASSIFY}' needs {domain.classify_skill} = 'no'"
            )

        new_tree = tree.model_copy(deep=True)
        current = new_tree.classifications.get(field_key)
        if domain.multi:
            value = dict(current) if isinstance(current, dict) else empty_classification(domain)
            if label == DID_NOT_CLASSIFY and not selected:
                value.pop(label, None)
            else:
                value[label] = bool(selected)
        elif selected:
            value = label
        else:
            value = UNANSWERED if current == label else (current or UNANSWERED)
        new_tree.classifications[field_key] = value
        return new_tree

    def reset_field(self, tree: AnswerTree, field_key: str) -> bool:
        """Reset ``field_key`` in place to its empty value.

        Only used on working copies owned by the consistency engine.
        Returns True when the stored value changed.
        """
        domain = self.domain_for_field(field_key)
        empty = empty_classification(domain)
        if tree.classifications.get(field_key) == empty:
            return False
        tree.classifications[field_key] = empty
        return True

    def drop_stale_marker(self, tree: AnswerTree, domain: ClassificationDomain) -> bool:
        """Remove ``did_not_classify`` from the worker field in place.

        The marker survives only while the classify skill is ``"no"``; a
        deselected (False) marker key is always removed.  Returns True when
        the stored value changed.
        """
        value = tree.classifications.get(domain.worker_key)
        keep = tree.answer(domain.classify_skill) == NO
        if isinstance(value, dict) and DID_NOT_CLASSIFY in value:
            if keep and value[DID_NOT_CLASSIFY] is True:
                return False
            value = dict(value)
            value.pop(DID_NOT_CLASSIFY)
            tree.classifications[domain.worker_key] = value
            return True
        if value == DID_NOT_CLASSIFY and not keep:
            tree.classifications[domain.worker_key] = UNANSWERED
            return True
        return False

    # ------------------------------------------------------------------
    # Persistence translation
    # ------------------------------------------------------------------

    def to_stored(self, field_key: str, value: Any) -> str | list[str]:
        """Translate a tree value into its flat record shape.

        Multi-select: list of selected labels in vocabulary order (the
        ``did_not_classify`` marker last).  Single-select: the label string.
        """
        domain = self.domain_for_field(field_key)
        if not domain.multi:
            return value if isinstance(value, str) else UNANSWERED
        selected = [label for label in domain.labels if isinstance(value, dict) and value.get(label)]
        if isinstance(value, dict) and value.get(DID_NOT_CLASSIFY):
            selected.append(DID_NOT_CLASSIFY)
        return selected

    def from_stored(self, field_key: str, raw: Any) -> ClassificationValue:
        """Rebuild a tree value from whatever a stored record holds.

        Accepts a list of labels, a ``{label: bool}`` dict or a single label
        string.  Labels outside the vocabulary are dropped with a warning
        rather than failing the whole load.
        """
        domain = self.domain_for_field(field_key)
        allowed = set(self.allowed_labels(field_key))

        if raw is None or raw == "":
            candidates: list[str] = []
        elif isinstance(raw, str):
            candidates = [raw]
        elif isinstance(raw, dict):
            candidates = [k for k, v in raw.items() if v]
        elif isinstance(raw, (list, tuple)):
            candidates = [str(item) for item in raw]
        else:
            logger.warning("%s: unsupported stored value %r, treating as empty", field_key, raw)
            candidates = []

        known = [label for label in candidates if label in allowed]
        dropped = [label for label in candidates if label not in allowed]
        if dropped:
            logger.warning("%s: dropping unknown classification labels %s", field_key, dropped)

        if domain.multi:
            value = empty_classification(domain)
            for label in known:
                value[label] = True
            return value

        if len(known) > 1:
            logger.warning("%s: single-select field had %d labels, keeping the first", field_key, len(known))
        return known[0] if known else UNANSWERED
