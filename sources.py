"""Which postings belong to which purpose.

Each purpose source type resolves to its own matcher. Coverage across all
purposes is computed as a union of posting ids so a contact that is both a
group member and budgeted on its own is counted once.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Union

from models import BudgetSourceType, DateBasis, PostingKind
from periods import Period
from snapshot import BudgetSnapshot, PostingRecord, PurposeRecord

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class ContactMatcher:
    contact_id: int

    def matches(self, posting: PostingRecord) -> bool:
        return (
            posting.kind == PostingKind.contact
            and posting.contact_id == self.contact_id
        )


@dataclass(frozen=True)
class ContactGroupMatcher:
    group_id: int
    contact_ids: frozenset[int]

    def matches(self, posting: PostingRecord) -> bool:
        return (
            posting.kind == PostingKind.contact
            and posting.contact_id in self.contact_ids
        )


@dataclass(frozen=True)
class SavingsPlanMatcher:
    savings_plan_id: int

    def matches(self, posting: PostingRecord) -> bool:
        return (
            posting.kind == PostingKind.savings_plan
            and posting.savings_plan_id == self.savings_plan_id
        )


PostingMatcher = Union[ContactMatcher, ContactGroupMatcher, SavingsPlanMatcher]


def _contact_matcher(
    purpose: PurposeRecord, snapshot: BudgetSnapshot
) -> PostingMatcher:
    return ContactMatcher(purpose.source_id)


def _group_matcher(purpose: PurposeRecord, snapshot: BudgetSnapshot) -> PostingMatcher:
    # Membership is whatever the group holds now, not at posting time.
    return ContactGroupMatcher(
        purpose.source_id, snapshot.contacts_in_group(purpose.source_id)
    )


def _savings_plan_matcher(
    purpose: PurposeRecord, snapshot: BudgetSnapshot
) -> PostingMatcher:
    return SavingsPlanMatcher(purpose.source_id)


_RESOLVERS: dict[
    BudgetSourceType, Callable[[PurposeRecord, BudgetSnapshot], PostingMatcher]
] = {
    BudgetSourceType.contact: _contact_matcher,
    BudgetSourceType.contact_group: _group_matcher,
    BudgetSourceType.savings_plan: _savings_plan_matcher,
}

# Claim order: a specific source beats a group that happens to contain it.
_CLAIM_PRIORITY = {
    BudgetSourceType.contact: 0,
    BudgetSourceType.savings_plan: 0,
    BudgetSourceType.contact_group: 1,
}


def resolve_source(purpose: PurposeRecord, snapshot: BudgetSnapshot) -> PostingMatcher:
    return _RESOLVERS[purpose.source_type](purpose, snapshot)


def matching_postings(
    purpose: PurposeRecord,
    snapshot: BudgetSnapshot,
    period: Period,
    basis: DateBasis,
) -> list[PostingRecord]:
    """All postings of ``purpose`` in the period, overlap with others included."""
    matcher = resolve_source(purpose, snapshot)
    return [p for p in snapshot.postings_in(period, basis) if matcher.matches(p)]


@dataclass(frozen=True)
class Coverage:
    covered_ids: frozenset[int]
    total: Decimal
    covered_total: Decimal

    @property
    def uncovered_total(self) -> Decimal:
        return self.total - self.covered_total


def compute_coverage(
    snapshot: BudgetSnapshot, period: Period, basis: DateBasis
) -> Coverage:
    postings = snapshot.postings_in(period, basis)
    matchers = [resolve_source(p, snapshot) for p in snapshot.purposes]
    covered_ids = frozenset(
        posting.id
        for posting in postings
        if any(matcher.matches(posting) for matcher in matchers)
    )
    total = sum((p.amount for p in postings), ZERO)
    covered_total = sum((p.amount for p in postings if p.id in covered_ids), ZERO)
    return Coverage(covered_ids=covered_ids, total=total, covered_total=covered_total)


def uncovered_postings(
    snapshot: BudgetSnapshot,
    period: Period,
    basis: DateBasis,
    coverage: Coverage | None = None,
) -> list[PostingRecord]:
    coverage = coverage or compute_coverage(snapshot, period, basis)
    return [
        p
        for p in snapshot.postings_in(period, basis)
        if p.id not in coverage.covered_ids
    ]


def claim_order(purposes: tuple[PurposeRecord, ...]) -> list[PurposeRecord]:
    return sorted(
        purposes, key=lambda p: (_CLAIM_PRIORITY[p.source_type], p.name, p.id)
    )


def assign_postings(
    snapshot: BudgetSnapshot, period: Period, basis: DateBasis
) -> dict[int, list[PostingRecord]]:
    """Give every covered posting to exactly one purpose.

    Overflow a claimant cannot absorb is offered to the other covering
    purposes later, during allocation. Returned lists keep the snapshot
    order (date per basis, then load order).
    Every purpose has an entry, possibly empty.
    """
    postings = snapshot.postings_in(period, basis)
    assigned: dict[int, list[PostingRecord]] = {p.id: [] for p in snapshot.purposes}
    taken: set[int] = set()
    for purpose in claim_order(snapshot.purposes):
        matcher = resolve_source(purpose, snapshot)
        for posting in postings:
            if posting.id in taken or not matcher.matches(posting):
                continue
            taken.add(posting.id)
            assigned[purpose.id].append(posting)
    return assigned
