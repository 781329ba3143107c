"""Report builders. Each takes a loaded snapshot and returns response models."""

from datetime import date
from decimal import Decimal

from aggregation import CategoryAggregator, posting_row
from allocation import AllocationResult, PurposeAllocation, allocate
from kpi import monthly_kpi
from models import DateBasis, ValueScope
from periods import Period, iter_buckets, month_period, report_range
from recurrence import expand_rules
from schemas import (
    BudgetReport,
    BudgetReportRawData,
    CategoryRawData,
    MonthlyBudgetKpi,
    PostingRow,
    PurposeOverview,
    PurposeRawData,
    ReportRequest,
)
from snapshot import BudgetSnapshot
from sources import uncovered_postings

ZERO = Decimal("0.00")


def build_report(snapshot: BudgetSnapshot, request: ReportRequest) -> BudgetReport:
    if request.as_of is None:
        raise ValueError("Report request needs an as-of date")
    period = report_range(request.as_of, request.months)
    aggregator = CategoryAggregator(
        snapshot,
        request.date_basis,
        include_purpose_rows=request.include_purpose_rows,
    )
    periods = aggregator.period_rows(period, request.interval)

    scope = period
    if request.value_scope == ValueScope.last_interval:
        scope = iter_buckets(period, request.interval)[-1]
    result = allocate(snapshot, scope, request.date_basis)

    return BudgetReport(
        start=period.start,
        end=period.end,
        interval=request.interval,
        value_scope=request.value_scope,
        date_basis=request.date_basis,
        periods=periods,
        categories=aggregator.category_rows(result),
    )


def _purpose_raw(allocation: PurposeAllocation) -> PurposeRawData:
    purpose = allocation.purpose
    return PurposeRawData(
        id=purpose.id,
        name=purpose.name,
        source_type=purpose.source_type,
        source_id=purpose.source_id,
        source_name=purpose.source_name,
        budgeted_income=allocation.budgeted_income,
        budgeted_expense=allocation.budgeted_expense,
        budgeted_target=allocation.budgeted_target,
        actual=allocation.actual,
        postings=[posting_row(f) for f in allocation.postings],
    )


def raw_data_from_allocation(
    snapshot: BudgetSnapshot, result: AllocationResult
) -> BudgetReportRawData:
    categories: list[CategoryRawData] = []
    for category in sorted(snapshot.categories, key=lambda c: (c.name, c.id)):
        members = [
            result.purposes[p.id]
            for p in snapshot.purposes
            if p.category_id == category.id
        ]
        income = sum((a.budgeted_income for a in members), ZERO)
        expense = sum((a.budgeted_expense for a in members), ZERO)
        category_allocation = result.categories.get(category.id)
        if category_allocation is not None:
            income += category_allocation.budgeted_income
            expense += category_allocation.budgeted_expense
        categories.append(
            CategoryRawData(
                id=category.id,
                name=category.name,
                budgeted_income=income,
                budgeted_expense=expense,
                budgeted_target=income + expense,
                actual=sum((a.actual for a in members), ZERO),
                purposes=[_purpose_raw(a) for a in members],
            )
        )

    uncategorized = [
        _purpose_raw(result.purposes[p.id])
        for p in snapshot.purposes
        if p.category_id not in snapshot.categories_by_id
    ]
    return BudgetReportRawData(
        start=result.period.start,
        end=result.period.end,
        date_basis=result.basis,
        categories=categories,
        uncategorized_purposes=uncategorized,
        unbudgeted_postings=[posting_row(f) for f in result.unbudgeted],
    )


def build_raw_data(
    snapshot: BudgetSnapshot, period: Period, basis: DateBasis
) -> BudgetReportRawData:
    return raw_data_from_allocation(snapshot, allocate(snapshot, period, basis))


def build_monthly_kpi(
    snapshot: BudgetSnapshot, as_of: date, basis: DateBasis
) -> MonthlyBudgetKpi:
    return monthly_kpi(allocate(snapshot, month_period(as_of), basis))


def build_unbudgeted_postings(
    snapshot: BudgetSnapshot, period: Period, basis: DateBasis
) -> list[PostingRow]:
    """Postings no purpose covers, newest first."""
    postings = uncovered_postings(snapshot, period, basis)
    postings.sort(key=lambda p: snapshot.sort_key(p, basis), reverse=True)
    return [
        PostingRow(
            posting_id=p.id,
            booking_date=p.booking_date,
            valuta_date=p.valuta_date,
            amount=p.amount,
            kind=p.kind,
            contact_name=p.contact_name,
            savings_plan_name=p.savings_plan_name,
            description=p.description,
        )
        for p in postings
    ]


def build_purpose_overviews(
    snapshot: BudgetSnapshot, period: Period
) -> list[PurposeOverview]:
    overviews: list[PurposeOverview] = []
    for purpose in snapshot.purposes:
        rules = snapshot.rules_for_purpose(purpose.id)
        occurrences = expand_rules(rules, period, snapshot.override_amounts)
        category = snapshot.categories_by_id.get(purpose.category_id)
        overviews.append(
            PurposeOverview(
                id=purpose.id,
                name=purpose.name,
                description=purpose.description,
                source_type=purpose.source_type,
                source_id=purpose.source_id,
                source_name=purpose.source_name,
                category_id=category.id if category else None,
                category_name=category.name if category else None,
                rule_count=len(rules),
                budget_sum=sum((o.amount for o in occurrences), ZERO),
            )
        )
    return overviews
