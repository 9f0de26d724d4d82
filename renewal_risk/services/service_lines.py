"""Service-line grouping.

A service line is the recurring unit of business at one department + site
address for one account. Renewal chains are evaluated per line.

Only Won estimates that have a contract end date AND a non-empty
department AND a non-empty address are grouped. Everything else is
excluded outright (no singleton lines): ungroupable rows would otherwise
match each other on ("", "") and produce false renewals.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Union

from .estimate_classifier import ClassifiedEstimate

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True, order=True)
class ServiceLineKey:
    account_id: str
    department: str
    address: str


class _Ungroupable:
    """Tag for estimates that cannot be placed on any service line."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNGROUPABLE"

    def __bool__(self) -> bool:
        return False


UNGROUPABLE = _Ungroupable()

LineKey = Union[ServiceLineKey, _Ungroupable]


def normalize_label(value: str | None) -> str:
    """Trim, lower-case, collapse runs of whitespace to one space."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", str(value).strip().lower())


def line_key_for(item: ClassifiedEstimate) -> LineKey:
    """Service-line key for a classified estimate, or UNGROUPABLE."""
    est = item.estimate
    if not item.is_won or est.contract_end is None:
        return UNGROUPABLE
    department = normalize_label(est.division)
    address = normalize_label(est.address)
    if not department or not address:
        return UNGROUPABLE
    return ServiceLineKey(est.account_id, department, address)


def _line_order(item: ClassifiedEstimate):
    return (item.estimate.contract_end, item.id)


def group_service_lines(
    estimates: Iterable[ClassifiedEstimate],
) -> dict[ServiceLineKey, list[ClassifiedEstimate]]:
    """Group an account's estimates into service lines.

    Each line is sorted by contract end date ascending, ties by estimate id.
    Input is not mutated.
    """
    lines: dict[ServiceLineKey, list[ClassifiedEstimate]] = {}
    for item in estimates:
        key = line_key_for(item)
        if key is UNGROUPABLE:
            continue
        lines.setdefault(key, []).append(item)

    return {key: sorted(members, key=_line_order) for key, members in sorted(lines.items())}
