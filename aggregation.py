from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from allocation import AllocationResult, Fragment, PurposeAllocation
from models import CategoryRowKind, DateBasis, ReportInterval
from periods import Period, iter_buckets
from recurrence import expand_rules
from schemas import PostingRow, ReportCategoryRow, ReportPeriodRow, ReportPurposeRow
from snapshot import BudgetSnapshot
from sources import compute_coverage

ZERO = Decimal("0.00")
PCT_QUANT = Decimal("0.0001")

UNASSIGNED_NAME = "(Unassigned)"
SUM_NAME = "Sum"
UNBUDGETED_NAME = "Unbudgeted"
RESULT_NAME = "Result"


def delta_pct(delta: Decimal, budget: Decimal) -> Decimal:
    if budget == 0:
        return Decimal("0.0000")
    return (delta / budget).quantize(PCT_QUANT, rounding=ROUND_HALF_UP)


def posting_row(fragment: Fragment) -> PostingRow:
    posting = fragment.posting
    tag = fragment.tag
    return PostingRow(
        posting_id=posting.id,
        booking_date=posting.booking_date,
        valuta_date=posting.valuta_date,
        amount=fragment.amount,
        kind=posting.kind,
        contact_name=posting.contact_name,
        savings_plan_name=posting.savings_plan_name,
        description=posting.description,
        budget_purpose_id=tag.purpose_id if tag else None,
        budget_purpose_name=tag.purpose_name if tag else None,
        budget_category_id=tag.category_id if tag else None,
        budget_category_name=tag.category_name if tag else None,
        is_split=fragment.split,
    )


def bucket_label(bucket: Period, interval: ReportInterval) -> str:
    if interval == ReportInterval.year:
        return f"{bucket.start.year}"
    if interval == ReportInterval.quarter:
        return f"{bucket.start.year}-Q{(bucket.start.month - 1) // 3 + 1}"
    return f"{bucket.start.year}-{bucket.start.month:02d}"


def _category_row(
    kind: CategoryRowKind,
    name: str,
    budget: Decimal,
    actual: Decimal,
    *,
    category_id: Optional[int] = None,
    purposes: Optional[list[ReportPurposeRow]] = None,
    postings: Optional[list[PostingRow]] = None,
) -> ReportCategoryRow:
    delta = actual - budget
    return ReportCategoryRow(
        kind=kind,
        category_id=category_id,
        name=name,
        budget=budget,
        actual=actual,
        delta=delta,
        delta_pct=delta_pct(delta, budget),
        purposes=purposes or [],
        postings=postings or [],
    )


def _purpose_row(allocation: PurposeAllocation) -> ReportPurposeRow:
    budget = allocation.budgeted_target
    actual = allocation.actual
    delta = actual - budget
    return ReportPurposeRow(
        id=allocation.purpose.id,
        name=allocation.purpose.name,
        budget=budget,
        actual=actual,
        delta=delta,
        delta_pct=delta_pct(delta, budget),
    )


class CategoryAggregator:
    def __init__(
        self,
        snapshot: BudgetSnapshot,
        basis: DateBasis,
        *,
        include_purpose_rows: bool = True,
    ) -> None:
        self.snapshot = snapshot
        self.basis = basis
        self.include_purpose_rows = include_purpose_rows

    def category_rows(self, result: AllocationResult) -> list[ReportCategoryRow]:
        """Data rows, then Sum, Unbudgeted (when non-empty) and Result."""
        snapshot = self.snapshot
        rows: list[ReportCategoryRow] = []

        grouped: dict[Optional[int], list[PurposeAllocation]] = {}
        for purpose in snapshot.purposes:
            key = (
                purpose.category_id
                if purpose.category_id in snapshot.categories_by_id
                else None
            )
            grouped.setdefault(key, []).append(result.purposes[purpose.id])

        for category in sorted(snapshot.categories, key=lambda c: (c.name, c.id)):
            members = grouped.get(category.id, [])
            budget = sum((a.budgeted_target for a in members), ZERO)
            if category.id in result.categories:
                budget += result.categories[category.id].budgeted_target
            actual = sum((a.actual for a in members), ZERO)
            rows.append(
                _category_row(
                    CategoryRowKind.data,
                    category.name,
                    budget,
                    actual,
                    category_id=category.id,
                    purposes=self._purpose_rows(members),
                )
            )

        unassigned = grouped.get(None, [])
        if unassigned:
            rows.append(
                _category_row(
                    CategoryRowKind.data,
                    UNASSIGNED_NAME,
                    sum((a.budgeted_target for a in unassigned), ZERO),
                    sum((a.actual for a in unassigned), ZERO),
                    purposes=self._purpose_rows(unassigned),
                )
            )

        sum_budget = sum((r.budget for r in rows), ZERO)
        sum_actual = sum((r.actual for r in rows), ZERO)
        rows.append(
            _category_row(CategoryRowKind.sum, SUM_NAME, sum_budget, sum_actual)
        )

        # Uncovered total is deduplicated; tagged residuals are overruns.
        unbudgeted_actual = (
            result.coverage.uncovered_total + result.tagged_residual_total
        )
        if unbudgeted_actual != 0 or result.unbudgeted:
            rows.append(
                _category_row(
                    CategoryRowKind.unbudgeted,
                    UNBUDGETED_NAME,
                    ZERO,
                    unbudgeted_actual,
                    postings=[posting_row(f) for f in result.unbudgeted],
                )
            )

        rows.append(
            _category_row(
                CategoryRowKind.result,
                RESULT_NAME,
                sum_budget,
                sum_actual + unbudgeted_actual,
            )
        )
        return rows

    def _purpose_rows(self, members: list[PurposeAllocation]) -> list[ReportPurposeRow]:
        if not self.include_purpose_rows:
            return []
        return [_purpose_row(a) for a in members]

    def period_rows(
        self, period: Period, interval: ReportInterval
    ) -> list[ReportPeriodRow]:
        rows: list[ReportPeriodRow] = []
        for bucket in iter_buckets(period, interval):
            occurrences = expand_rules(
                self.snapshot.active_rules, bucket, self.snapshot.override_amounts
            )
            budget = sum((o.amount for o in occurrences), ZERO)
            actual = compute_coverage(self.snapshot, bucket, self.basis).total
            delta = actual - budget
            rows.append(
                ReportPeriodRow(
                    start=bucket.start,
                    end=bucket.end,
                    label=bucket_label(bucket, interval),
                    budget=budget,
                    actual=actual,
                    delta=delta,
                    delta_pct=delta_pct(delta, budget),
                )
            )
        return rows
