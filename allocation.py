"""Allocate actual postings against expected budget pools.

Every purpose (or rule-carrying category) gets one income pool and one expense
pool per requested range. Claimed postings fill their pool in date order; the
posting that crosses the pool's boundary is split into an attributed fragment
and a residual, and everything after it is unbudgeted unless another purpose
covering the same posting still has room for it. Uncovered postings are
unbudgeted without a tag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from models import DateBasis
from periods import Period
from recurrence import ExpectedOccurrence, expand_rules
from snapshot import BudgetSnapshot, CategoryRecord, PostingRecord, PurposeRecord
from sources import (
    Coverage,
    assign_postings,
    claim_order,
    compute_coverage,
    resolve_source,
    uncovered_postings,
)

ZERO = Decimal("0.00")

INCOME = 1
EXPENSE = -1


@dataclass(frozen=True)
class AllocationTag:
    purpose_id: Optional[int] = None
    purpose_name: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None


@dataclass(frozen=True)
class Fragment:
    posting: PostingRecord
    amount: Decimal
    tag: Optional[AllocationTag] = None
    split: bool = False


@dataclass
class PoolResult:
    sign: int
    magnitude: Decimal
    used: Decimal = ZERO
    attributed: list[Fragment] = field(default_factory=list)
    residual: list[Fragment] = field(default_factory=list)

    @property
    def remaining(self) -> Decimal:
        return self.magnitude - self.used

    @property
    def candidate_total(self) -> Decimal:
        return sum(
            (abs(f.amount) for f in self.attributed + self.residual), ZERO
        )


@dataclass
class PurposeAllocation:
    purpose: PurposeRecord
    income_pool: PoolResult
    expense_pool: PoolResult
    postings: list[Fragment] = field(default_factory=list)
    # False when the purpose shares its category's pools.
    owns_pools: bool = True

    @property
    def budgeted_income(self) -> Decimal:
        return self.income_pool.magnitude

    @property
    def budgeted_expense(self) -> Decimal:
        return ZERO - self.expense_pool.magnitude

    @property
    def budgeted_target(self) -> Decimal:
        return self.budgeted_income + self.budgeted_expense

    @property
    def actual(self) -> Decimal:
        return sum((f.amount for f in self.postings), ZERO)


@dataclass
class CategoryAllocation:
    category: CategoryRecord
    income_pool: PoolResult
    expense_pool: PoolResult

    @property
    def budgeted_income(self) -> Decimal:
        return self.income_pool.magnitude

    @property
    def budgeted_expense(self) -> Decimal:
        return ZERO - self.expense_pool.magnitude

    @property
    def budgeted_target(self) -> Decimal:
        return self.budgeted_income + self.budgeted_expense


@dataclass
class AllocationResult:
    period: Period
    basis: DateBasis
    coverage: Coverage
    purposes: dict[int, PurposeAllocation]
    categories: dict[int, CategoryAllocation]
    unbudgeted: list[Fragment]
    occurrences: list[ExpectedOccurrence]

    def pools(self) -> list[PoolResult]:
        pools: list[PoolResult] = []
        for allocation in self.purposes.values():
            if allocation.owns_pools:
                pools.extend([allocation.income_pool, allocation.expense_pool])
        for allocation in self.categories.values():
            pools.extend([allocation.income_pool, allocation.expense_pool])
        return pools

    @property
    def tagged_residual_total(self) -> Decimal:
        return sum((f.amount for f in self.unbudgeted if f.tag is not None), ZERO)

    @property
    def unbudgeted_total(self) -> Decimal:
        return sum((f.amount for f in self.unbudgeted), ZERO)

    @property
    def attributed_total(self) -> Decimal:
        return sum((a.actual for a in self.purposes.values()), ZERO)


def build_pools(
    occurrences: Iterable[ExpectedOccurrence],
) -> tuple[PoolResult, PoolResult]:
    income = ZERO
    expense = ZERO
    for occurrence in occurrences:
        if occurrence.amount > 0:
            income += occurrence.amount
        elif occurrence.amount < 0:
            expense += -occurrence.amount
    return PoolResult(INCOME, income), PoolResult(EXPENSE, expense)


def offer_fragment(
    pool: PoolResult, fragment: Fragment, tag: AllocationTag
) -> tuple[Optional[Fragment], Optional[Fragment]]:
    """Attributed part and leftover of ``fragment`` against the pool.

    A full pool takes nothing and hands the fragment back unchanged.
    """
    posting = fragment.posting
    remaining = pool.remaining
    if remaining <= 0:
        return None, fragment
    magnitude = abs(fragment.amount)
    if magnitude <= remaining:
        taken = Fragment(posting, fragment.amount, tag, fragment.split)
        pool.attributed.append(taken)
        pool.used += magnitude
        return taken, None
    attributed = remaining if fragment.amount > 0 else -remaining
    taken = Fragment(posting, attributed, tag, split=True)
    pool.attributed.append(taken)
    pool.used = pool.magnitude
    return taken, Fragment(posting, fragment.amount - attributed, tag, split=True)


def fill_pool(
    pool: PoolResult,
    candidates: Iterable[PostingRecord],
    tag: AllocationTag,
) -> None:
    """Consume ``candidates`` in order until the pool's magnitude is reached."""
    for posting in candidates:
        _, leftover = offer_fragment(pool, Fragment(posting, posting.amount, tag), tag)
        if leftover is not None:
            pool.residual.append(leftover)


def split_by_sign(
    postings: Iterable[PostingRecord],
) -> tuple[list[PostingRecord], list[PostingRecord]]:
    """Income candidates (zero amounts included) and expense candidates."""
    income: list[PostingRecord] = []
    expense: list[PostingRecord] = []
    for posting in postings:
        if posting.amount < 0:
            expense.append(posting)
        else:
            income.append(posting)
    return income, expense


class PoolAllocator:
    def __init__(
        self, snapshot: BudgetSnapshot, period: Period, basis: DateBasis
    ) -> None:
        self.snapshot = snapshot
        self.period = period
        self.basis = basis

    def _sorted(self, postings: Iterable[PostingRecord]) -> list[PostingRecord]:
        return sorted(postings, key=lambda p: self.snapshot.sort_key(p, self.basis))

    def _tag(
        self, purpose: PurposeRecord, category: Optional[CategoryRecord]
    ) -> AllocationTag:
        return AllocationTag(
            purpose_id=purpose.id,
            purpose_name=purpose.name,
            category_id=category.id if category else None,
            category_name=category.name if category else None,
        )

    def allocate(self) -> AllocationResult:
        snapshot = self.snapshot
        coverage = compute_coverage(snapshot, self.period, self.basis)
        claims = assign_postings(snapshot, self.period, self.basis)
        occurrences = expand_rules(
            snapshot.active_rules, self.period, snapshot.override_amounts
        )

        purpose_occurrences: dict[int, list[ExpectedOccurrence]] = {}
        category_occurrences: dict[int, list[ExpectedOccurrence]] = {}
        for occurrence in occurrences:
            if occurrence.purpose_id is not None:
                purpose_occurrences.setdefault(occurrence.purpose_id, []).append(
                    occurrence
                )
            elif occurrence.category_id is not None:
                category_occurrences.setdefault(occurrence.category_id, []).append(
                    occurrence
                )

        purposes_with_rules = {
            r.purpose_id for r in snapshot.active_rules if r.purpose_id is not None
        }
        categories_with_rules = {
            r.category_id
            for r in snapshot.active_rules
            if r.category_id is not None
        }

        residuals: list[Fragment] = []
        purposes: dict[int, PurposeAllocation] = {}
        shared: dict[int, list[PurposeRecord]] = {}
        for purpose in snapshot.purposes:
            category = snapshot.categories_by_id.get(purpose.category_id)
            income_pool, expense_pool = build_pools(
                purpose_occurrences.get(purpose.id, [])
            )
            allocation = PurposeAllocation(purpose, income_pool, expense_pool)
            purposes[purpose.id] = allocation
            if (
                category is not None
                and category.id in categories_with_rules
                and purpose.id not in purposes_with_rules
            ):
                allocation.owns_pools = False
                shared.setdefault(category.id, []).append(purpose)
                continue

            income, expense = split_by_sign(claims[purpose.id])
            tag = self._tag(purpose, category)
            fill_pool(income_pool, income, tag)
            fill_pool(expense_pool, expense, tag)
            for pool in (income_pool, expense_pool):
                allocation.postings.extend(pool.attributed)
                residuals.extend(pool.residual)

        categories: dict[int, CategoryAllocation] = {}
        for category in snapshot.categories:
            if category.id not in categories_with_rules:
                continue
            income_pool, expense_pool = build_pools(
                category_occurrences.get(category.id, [])
            )
            categories[category.id] = CategoryAllocation(
                category, income_pool, expense_pool
            )
            members = shared.get(category.id, [])
            claimed_by = {
                posting.id: purpose
                for purpose in members
                for posting in claims[purpose.id]
            }
            candidates = self._sorted(
                posting for purpose in members for posting in claims[purpose.id]
            )
            income, expense = split_by_sign(candidates)
            for pool, pool_candidates in (
                (income_pool, income),
                (expense_pool, expense),
            ):
                for posting in pool_candidates:
                    purpose = claimed_by[posting.id]
                    fill_pool(pool, [posting], self._tag(purpose, category))
                for fragment in pool.attributed:
                    purposes[fragment.tag.purpose_id].postings.append(fragment)
                residuals.extend(pool.residual)

        residuals = self._fall_through(residuals, purposes, categories)

        for allocation in purposes.values():
            allocation.postings = self._sorted_fragments(allocation.postings)

        unbudgeted = residuals + [
            Fragment(posting, posting.amount)
            for posting in uncovered_postings(
                snapshot, self.period, self.basis, coverage
            )
        ]

        return AllocationResult(
            period=self.period,
            basis=self.basis,
            coverage=coverage,
            purposes=purposes,
            categories=categories,
            unbudgeted=self._sorted_fragments(unbudgeted),
            occurrences=occurrences,
        )

    def _fall_through(
        self,
        residuals: list[Fragment],
        purposes: dict[int, PurposeAllocation],
        categories: dict[int, CategoryAllocation],
    ) -> list[Fragment]:
        """Offer overflow to the other purposes covering the same posting.

        A posting is claimed by the first matching purpose only. Whatever that
        purpose cannot absorb goes to the next matching purpose in claim order
        that still has room, and a split there re-tags the leftover with the
        purpose that overran.
        """
        snapshot = self.snapshot
        pending = self._sorted_fragments(residuals)
        for purpose in claim_order(snapshot.purposes):
            if not pending:
                break
            allocation = purposes[purpose.id]
            category = snapshot.categories_by_id.get(purpose.category_id)
            owner = allocation if allocation.owns_pools else categories[category.id]
            matcher = resolve_source(purpose, snapshot)
            tag = self._tag(purpose, category)
            left: list[Fragment] = []
            for fragment in pending:
                pool = owner.expense_pool if fragment.amount < 0 else owner.income_pool
                if (
                    fragment.tag.purpose_id == purpose.id
                    or pool.remaining <= 0
                    or not matcher.matches(fragment.posting)
                ):
                    left.append(fragment)
                    continue
                taken, leftover = offer_fragment(pool, fragment, tag)
                allocation.postings.append(taken)
                if leftover is not None:
                    pool.residual.append(leftover)
                    left.append(leftover)
            pending = left
        return pending

    def _sorted_fragments(self, fragments: list[Fragment]) -> list[Fragment]:
        return sorted(
            fragments, key=lambda f: self.snapshot.sort_key(f.posting, self.basis)
        )


def allocate(
    snapshot: BudgetSnapshot, period: Period, basis: DateBasis
) -> AllocationResult:
    return PoolAllocator(snapshot, period, basis).allocate()
