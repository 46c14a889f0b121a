"""Fuzzy multi-field filtering over local and workshop mod listings."""

import enum
from dataclasses import dataclass, field
from typing import Iterable

from .mods import CandidateRecord

# Scoring weights for the subsequence matcher
SCORE_MATCH = 16
BONUS_CONSECUTIVE = 8
BONUS_WORD_START = 8
PENALTY_GAP = 1


class FilterField(enum.Flag):
    """Fields a filter can match against."""

    ID = 0b00001
    TITLE = 0b00010
    DESCRIPTION = 0b00100
    AUTHOR = 0b01000
    NONE = 0b10000
    ALL = ID | TITLE | DESCRIPTION | AUTHOR


MATCHABLE_FIELDS = (FilterField.ID, FilterField.TITLE, FilterField.DESCRIPTION, FilterField.AUTHOR)


@dataclass(frozen=True)
class FilterSpec:
    """Set of enabled match fields, with title-only as the fallback."""

    fields: FilterField = FilterField.NONE

    @property
    def effective_fields(self) -> FilterField:
        if FilterField.ALL in self.fields:
            return FilterField.ALL

        resolved = self.fields & ~FilterField.NONE
        if not resolved:
            # An empty set would match everything; fall back to the title
            return FilterField.TITLE
        return resolved

    @classmethod
    def from_options(
        cls,
        title: bool = False,
        author: bool = False,
        description: bool = False,
        steam_id: bool = False,
        all_fields: bool = False,
    ) -> "FilterSpec":
        """Build a spec from command-line style booleans."""
        if all_fields:
            return cls(FilterField.ALL)

        fields = FilterField.NONE
        if title:
            fields |= FilterField.TITLE
        if author:
            fields |= FilterField.AUTHOR
        if description:
            fields |= FilterField.DESCRIPTION
        if steam_id:
            fields |= FilterField.ID
        return cls(fields)


@dataclass
class FilterResult:
    """Records kept by a filter, in input order."""

    records: list[CandidateRecord] = field(default_factory=list)
    title_width: int = 0

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def add(self, record: CandidateRecord) -> None:
        self.records.append(record)
        if len(record.title) > self.title_width:
            self.title_width = len(record.title)


def fuzzy_match(value: str, query: str) -> int | None:
    """
    Score `query` as an ordered, case-insensitive subsequence of `value`.

    Returns None when some character of the query cannot be found in order.
    Consecutive runs and hits at word starts score higher, skipped characters
    cost a little. Any match scores at least 1.
    """
    needle = query.strip().lower()
    haystack = value.lower()
    if not needle or not haystack:
        return None

    score = 0
    position = 0
    previous = -2
    for char in needle:
        index = haystack.find(char, position)
        if index < 0:
            return None

        score += SCORE_MATCH
        if index == previous + 1:
            score += BONUS_CONSECUTIVE
        if index == 0 or not haystack[index - 1].isalnum():
            score += BONUS_WORD_START
        if previous >= 0:
            score -= PENALTY_GAP * (index - previous - 1)

        previous = index
        position = index + 1

    return max(score, 1)


def field_value(record: CandidateRecord, field_flag: FilterField) -> str:
    """Text of a single match field of a record."""
    if field_flag is FilterField.ID:
        return str(record.id)
    if field_flag is FilterField.TITLE:
        return record.title
    if field_flag is FilterField.DESCRIPTION:
        return record.description
    if field_flag is FilterField.AUTHOR:
        return record.author
    raise ValueError(f"Not a single match field: {field_flag}")


def matches(record: CandidateRecord, spec: FilterSpec, query: str) -> bool:
    """True when any enabled field of the record fuzzy-matches the query."""
    enabled = spec.effective_fields
    return any(
        fuzzy_match(field_value(record, flag), query) is not None
        for flag in MATCHABLE_FIELDS
        if flag in enabled
    )


def filter_records(
    records: Iterable[CandidateRecord],
    spec: FilterSpec,
    query: str,
) -> FilterResult:
    """
    Keep the records matching `query` on any enabled field.

    Invalid records (no workshop ID or no title) are always dropped. Input
    order is preserved; an empty query yields an empty result.
    """
    result = FilterResult()
    if not query or not query.strip():
        return result

    for record in records:
        if not record.is_valid:
            continue
        if matches(record, spec, query):
            result.add(record)

    return result


def valid_records(records: Iterable[CandidateRecord]) -> list[CandidateRecord]:
    """Drop records without a workshop ID or a title."""
    return [record for record in records if record.is_valid]
