"""
Fuzzy key-value search over the labels of targets.

Label names are arbitrary strings, so an index cannot list the fields it
searches in advance.  Instead an index is configured with indexed keys:

    - "labels"                the names of the labels in the labels map
    - ("labels", r".*")       every entry of the labels map whose name matches
                              the regex, searched as its own field by value

A target matches when the query fuzzy-matches any of its indexed fields.
Matching is case-insensitive: a contiguous substring scores best, otherwise
the query's characters must appear in order.  Scores grow with the square of
each consecutive run of matched characters plus a bonus for how much of the
text was matched, so an exact match ranks above everything else.
"""
from difflib import SequenceMatcher
import logging
import re
from typing import Any, Dict, Generic, Iterable, List, Mapping, Optional, Pattern, Sequence
from typing import Tuple, TypeVar, Union

import attr

from .targets import ActiveTarget, DroppedTarget

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

IndexedKey = Union[str, Tuple[str, Union[str, Pattern]]]
Interval = Tuple[int, int]


@attr.s(frozen=True, slots=True)
class FuzzyMatch:
    """How well a pattern matched a text

    intervals holds the [start, end) positions of the matched characters in
    the text
    """

    score: float = attr.ib()
    intervals: Tuple[Interval, ...] = attr.ib()


def fuzzy_match(pattern: str, text: str) -> Optional[FuzzyMatch]:
    """Match pattern against text ignoring case

    Returns None if the characters of pattern do not all appear in text in
    order
    """
    if not pattern or not text:
        return None

    lower_pattern = pattern.lower()
    lower_text = text.lower()

    start = lower_text.find(lower_pattern)
    if start >= 0:
        intervals: Optional[Tuple[Interval, ...]] = ((start, start + len(lower_pattern)),)
    else:
        intervals = subsequence_intervals(lower_pattern, lower_text)

    if intervals is None:
        return None

    return FuzzyMatch(score=match_score(intervals, len(lower_text)), intervals=intervals)


def subsequence_intervals(pattern: str, text: str) -> Optional[Tuple[Interval, ...]]:
    """Find the characters of pattern in text, in order, as runs of
    consecutive positions

    Of all the ways to place the characters, the one whose runs have the
    largest sum of squared lengths is returned, the earliest one on ties
    """
    best_runs: Dict[Tuple[int, int], Optional[Tuple[int, Tuple[Interval, ...]]]] = {}

    def best_from(
        pattern_index: int, text_index: int
    ) -> Optional[Tuple[int, Tuple[Interval, ...]]]:
        """Best (score, runs) for pattern[pattern_index:] in text[text_index:]"""
        if pattern_index == len(pattern):
            return 0, ()

        key = (pattern_index, text_index)
        if key in best_runs:
            return best_runs[key]

        best = None
        remaining = len(pattern) - pattern_index
        for start in range(text_index, len(text) - remaining + 1):
            length = 0
            while (
                pattern_index + length < len(pattern)
                and start + length < len(text)
                and text[start + length] == pattern[pattern_index + length]
            ):
                length += 1
                rest = best_from(pattern_index + length, start + length)
                if rest is None:
                    continue

                score = length ** 2 + rest[0]
                if best is None or score > best[0]:
                    best = (score, ((start, start + length),) + rest[1])

        best_runs[key] = best
        return best

    found = best_from(0, 0)
    if found is None:
        return None

    return found[1]


def match_score(intervals: Sequence[Interval], text_length: int) -> float:
    """Score for a match made of the given runs of matched characters

    The bonus for the share of the text matched is below 1 unless the whole
    text matched, so it only orders matches whose runs score the same
    """
    matched = sum(end - start for start, end in intervals)
    return sum((end - start) ** 2 for start, end in intervals) + matched / text_length


def compile_indexed_keys(indexed_keys: Iterable[IndexedKey]) -> Tuple[Any, ...]:
    """Compile the regex of every (field, regex) indexed key"""
    compiled = []
    for indexed_key in indexed_keys:
        if isinstance(indexed_key, str):
            compiled.append(indexed_key)
            continue

        field, entry_regex = indexed_key
        if not isinstance(field, str):
            raise TypeError(f"Invalid indexed key {indexed_key}")
        compiled.append((field, re.compile(entry_regex)))

    if not compiled:
        raise ValueError("At least one indexed key is required")

    return tuple(compiled)


@attr.s(frozen=True, slots=True)
class KVMatch:
    """One indexed field of a target that matched a query

    path is (field,) for a match on a label name and (field, label name) for a
    match on the value of a single label
    """

    path: Tuple[str, ...] = attr.ib()
    text: str = attr.ib()
    match: FuzzyMatch = attr.ib()


@attr.s(frozen=True, slots=True)
class KVSearchResult(Generic[T]):
    """A target that matched, with the score of its best matching field"""

    original: T = attr.ib()
    score: float = attr.ib()
    matched: Tuple[KVMatch, ...] = attr.ib()


@attr.s(frozen=True, slots=True, kw_only=True)
class KVSearch(Generic[T]):
    """Fuzzy search over the label maps of targets

    The indexed keys are set once, the targets to search are passed to every
    filter call so a search never depends on a previous one
    """

    indexed_keys: Tuple[Any, ...] = attr.ib(converter=compile_indexed_keys)
    should_sort: bool = attr.ib(default=True)

    def candidates(self, target: T) -> Iterable[Tuple[Tuple[str, ...], str]]:
        """Every (path, text) of the target searched by this index"""
        for indexed_key in self.indexed_keys:
            if isinstance(indexed_key, str):
                value = getattr(target, indexed_key, None)
                if isinstance(value, Mapping):
                    for label_name in value:
                        yield (indexed_key,), label_name
                elif isinstance(value, str):
                    yield (indexed_key,), value
                continue

            field, entry_regex = indexed_key
            value = getattr(target, field, None)
            if not isinstance(value, Mapping):
                continue

            for label_name, label_value in value.items():
                if entry_regex.search(label_name):
                    yield (field, label_name), label_value

    def match(self, pattern: str, target: T) -> Optional[KVSearchResult[T]]:
        """Match a single target, returning None if no indexed field matched"""
        matched = []
        for path, text in self.candidates(target):
            fuzzy = fuzzy_match(pattern, text)
            if fuzzy is not None:
                matched.append(KVMatch(path, text, fuzzy))

        if not matched:
            return None

        best_score = max(kv_match.match.score for kv_match in matched)
        return KVSearchResult(target, best_score, tuple(matched))

    def filter(self, pattern: str, targets: Iterable[T]) -> List[KVSearchResult[T]]:
        """Return the targets matching pattern, best match first

        Targets with the same score keep their input order.  Raises a
        ValueError for an empty pattern since that is not a search.
        """
        pattern = pattern.strip()
        if not pattern:
            raise ValueError("Cannot search with an empty pattern")

        results = []
        for target in targets:
            result = self.match(pattern, target)
            if result is not None:
                results.append(result)

        if self.should_sort:
            results.sort(
                key=lambda result: (result.score, similarity(pattern, result)), reverse=True
            )

        LOGGER.debug(f"{len(results)} targets matched {pattern!r}")
        return results


def similarity(pattern: str, result: KVSearchResult) -> float:
    """Closest overall similarity between pattern and a matched text, used to
    order results whose scores are equal"""
    lower_pattern = pattern.lower()
    return max(
        SequenceMatcher(None, lower_pattern, kv_match.text.lower()).ratio()
        for kv_match in result.matched
    )


ACTIVE_TARGET_SEARCH: KVSearch[ActiveTarget] = KVSearch(
    indexed_keys=[
        "labels",
        "discovered_labels",
        ("discovered_labels", r".*"),
        ("labels", r".*"),
    ],
    should_sort=True,
)

DROPPED_TARGET_SEARCH: KVSearch[DroppedTarget] = KVSearch(
    indexed_keys=["discovered_labels", ("discovered_labels", r".*")],
    should_sort=True,
)
