"""Approximate-match indices over the read-only ERP datasets."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Any, Literal

from sap_assistant.types import Record, SearchHit

logger = logging.getLogger(__name__)

_SPLIT_PATTERN = re.compile(r"\s*(?:,|;|&|/|\+|\band\b|\bor\b)\s*", flags=re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[\W_]+", flags=re.UNICODE)
_LEADING_NUMBER = re.compile(r"^[-+]?\d+(?:\.\d+)?")

_LESS_WORDS = ("less", "below", "under", "fewer", "lower", "<")
_GREATER_WORDS = ("greater", "more", "above", "over", "higher", "exceed", ">")

Comparator = Literal["lt", "gt"]


def normalize(text: Any) -> str:
    """Case-fold and collapse whitespace."""
    return _WHITESPACE.sub(" ", str(text)).strip().casefold()


def compact(text: Any) -> str:
    """Strip whitespace and punctuation entirely, e.g. ``"FB 60."`` -> ``"fb60"``."""
    return _NON_WORD.sub("", str(text)).casefold()


def split_terms(query: str) -> list[str]:
    """Split a multi-item request such as ``"pumps, valves and bearings"``."""
    terms: list[str] = []
    for part in _SPLIT_PATTERN.split(query or ""):
        term = part.strip()
        if term and term.casefold() not in {t.casefold() for t in terms}:
            terms.append(term)
    return terms


def parse_number(value: Any) -> float | None:
    """Parse stock-like values such as ``1200``, ``"1,200"`` or ``"245 units"``."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).replace(",", "").replace("_", "").strip()
    match = _LEADING_NUMBER.match(text)
    if not match:
        return None
    return float(match.group(0))


def similarity_score(query: str, text: str) -> float:
    """Score how well ``query`` appears anywhere inside ``text``.

    Every window of ``text`` with the query's length is compared with
    ``SequenceMatcher``; the best window wins. A text shorter than the query
    is scored by matched characters over the query length, so it can never
    cover more of the query than it has characters. Returns ``0.0`` for an
    exact substring and ``1.0`` for no overlap at all.
    """

    if not query:
        return 1.0
    if not text:
        return 1.0
    if query in text:
        return 0.0

    matcher = SequenceMatcher(None, autojunk=False)
    matcher.set_seq2(query)
    width = len(query)
    if len(text) <= width:
        matcher.set_seq1(text)
        matched = sum(block.size for block in matcher.get_matching_blocks())
        return 1.0 - matched / width

    best = 0.0
    for start in range(len(text) - width + 1):
        matcher.set_seq1(text[start : start + width])
        if matcher.real_quick_ratio() <= best or matcher.quick_ratio() <= best:
            continue
        ratio = matcher.ratio()
        if ratio > best:
            best = ratio
            if best == 1.0:
                break
    return 1.0 - best


@dataclass(frozen=True, slots=True)
class NumericFilter:
    """Keeps records whose numeric ``field`` is strictly below/above ``threshold``."""

    comparator: Comparator
    threshold: float
    field: str

    @classmethod
    def parse(
        cls, comparison: Any, quantity: Any, *, field: str
    ) -> "NumericFilter | None":
        """Build a filter from loosely phrased model output, or ``None``."""
        if comparison is None or quantity is None:
            return None
        threshold = parse_number(quantity)
        if threshold is None:
            logger.warning("Ignoring numeric filter with invalid quantity: %r", quantity)
            return None

        phrase = str(comparison).casefold()
        comparator: Comparator
        if any(word in phrase for word in _LESS_WORDS):
            comparator = "lt"
        elif any(word in phrase for word in _GREATER_WORDS):
            comparator = "gt"
        else:
            logger.warning("Ignoring numeric filter with unknown comparison: %r", comparison)
            return None
        return cls(comparator=comparator, threshold=threshold, field=field)

    def matches(self, record: Record) -> bool:
        value = parse_number(record.get(self.field))
        if value is None:
            return False
        if self.comparator == "lt":
            return value < self.threshold
        return value > self.threshold

    def apply(self, records: Iterable[Record]) -> list[Record]:
        return [record for record in records if self.matches(record)]


class FuzzyIndex:
    """Read-only approximate-match index over one dataset.

    Match keys are normalized once at construction. The index never mutates
    after ``__init__`` so it can be shared by concurrent requests.
    """

    def __init__(
        self,
        records: Iterable[Record],
        keys: Sequence[str],
        *,
        threshold: float = 0.4,
        identity: str | None = None,
    ) -> None:
        if not keys:
            raise ValueError("FuzzyIndex needs at least one key to match against")
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [0, 1]")
        self._records: tuple[Record, ...] = tuple(records)
        self._keys: tuple[str, ...] = tuple(keys)
        self._threshold = threshold
        self._identity = identity
        self._match_keys: tuple[tuple[str, ...], ...] = tuple(
            tuple(normalize(record.get(key, "")) for key in self._keys)
            for record in self._records
        )
        self._by_identity: dict[str, Record] = {}
        if identity is not None:
            for record in self._records:
                value = record.get(identity)
                if value is not None:
                    self._by_identity.setdefault(normalize(value), record)

    @property
    def records(self) -> tuple[Record, ...]:
        return self._records

    @property
    def keys(self) -> tuple[str, ...]:
        return self._keys

    @property
    def threshold(self) -> float:
        return self._threshold

    def __len__(self) -> int:
        return len(self._records)

    def search(self, query: str) -> list[SearchHit]:
        """Rank records against one term, best (lowest score) first."""
        term = normalize(query or "")
        if not term:
            return []

        scored: list[tuple[float, int, int]] = []
        for position, fields in enumerate(self._match_keys):
            score, key_rank = min(
                (similarity_score(term, value), rank) for rank, value in enumerate(fields)
            )
            if score <= self._threshold:
                scored.append((score, key_rank, position))

        # equal scores prefer the earlier key, then dataset order
        scored.sort()
        return [SearchHit(record=self._records[pos], score=score) for score, _, pos in scored]

    def search_terms(self, query: str) -> list[Record]:
        """Search each term of a multi-item query and merge by identity."""
        merged: list[Record] = []
        seen: set[Any] = set()
        for term in split_terms(query):
            for hit in self.search(term):
                key = self._identity_of(hit.record)
                if key in seen:
                    continue
                seen.add(key)
                merged.append(hit.record)
        return merged

    def lookup(
        self,
        query: str | None,
        *,
        numeric_filter: NumericFilter | None = None,
    ) -> list[Record]:
        """Resolve a free-text fragment to records.

        An empty query selects the whole dataset; the numeric filter, when
        given, narrows whatever was selected.
        """

        text = str(query).strip() if query is not None else ""
        records = self.search_terms(text) if text else list(self._records)
        if numeric_filter is not None:
            records = numeric_filter.apply(records)
        return records

    def subset(
        self,
        records: Iterable[Record],
        *,
        keys: Sequence[str] | None = None,
        threshold: float | None = None,
    ) -> "FuzzyIndex":
        """Build an ad hoc index over already-filtered records."""
        return FuzzyIndex(
            records,
            keys or self._keys,
            threshold=self._threshold if threshold is None else threshold,
            identity=self._identity,
        )

    def get(self, key: Any) -> Record | None:
        """Exact, case-insensitive lookup by the identity field."""
        if key is None:
            return None
        return self._by_identity.get(normalize(key))

    def _identity_of(self, record: Record) -> Any:
        if self._identity is not None and record.get(self._identity) is not None:
            return normalize(record[self._identity])
        return id(record)
