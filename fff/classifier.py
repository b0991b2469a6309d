"""
Keep/drop decision for a fetched response.

Predicates run in a fixed order and stop at the first one that drops the
response:

    html -> empty -> match_string -> match_code -> exclude_code
"""

import re
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Optional, Tuple

from .fetcher import ResponseRecord

# Content-Type is not trusted; servers routinely mislabel error pages.
HTML_PATTERN = re.compile(rb"<html", re.IGNORECASE)


@dataclass(frozen=True)
class FilterCriteria:
    match_string: Optional[bytes] = None
    match_codes: FrozenSet[int] = field(default_factory=frozenset)
    exclude_codes: FrozenSet[int] = field(default_factory=frozenset)
    ignore_html: bool = False
    ignore_empty: bool = False


def _drops_html(record: ResponseRecord, criteria: FilterCriteria) -> bool:
    return criteria.ignore_html and HTML_PATTERN.search(record.body) is not None


def _drops_empty(record: ResponseRecord, criteria: FilterCriteria) -> bool:
    return criteria.ignore_empty and not record.body.strip()


def _drops_unmatched_string(record: ResponseRecord, criteria: FilterCriteria) -> bool:
    return bool(criteria.match_string) and criteria.match_string not in record.body


def _drops_unmatched_code(record: ResponseRecord, criteria: FilterCriteria) -> bool:
    return bool(criteria.match_codes) and record.status_code not in criteria.match_codes


def _drops_excluded_code(record: ResponseRecord, criteria: FilterCriteria) -> bool:
    return bool(criteria.exclude_codes) and record.status_code in criteria.exclude_codes


PREDICATES: List[Tuple[str, Callable[[ResponseRecord, FilterCriteria], bool]]] = [
    ("html", _drops_html),
    ("empty", _drops_empty),
    ("match_string", _drops_unmatched_string),
    ("match_code", _drops_unmatched_code),
    ("exclude_code", _drops_excluded_code),
]


def first_failure(record: ResponseRecord, criteria: FilterCriteria) -> Optional[str]:
    """Name of the first predicate that drops the response, or None to keep it."""
    for name, drops in PREDICATES:
        if drops(record, criteria):
            return name
    return None


def is_kept(record: ResponseRecord, criteria: FilterCriteria) -> bool:
    return first_failure(record, criteria) is None
