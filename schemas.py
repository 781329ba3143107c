from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import (
    BudgetSourceType,
    CategoryRowKind,
    DateBasis,
    PostingKind,
    ReportInterval,
    ValueScope,
)


class ReportRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    as_of: Optional[date] = None
    months: int = Field(default=12, ge=1)
    interval: ReportInterval = ReportInterval.month
    value_scope: ValueScope = ValueScope.total_range
    date_basis: DateBasis = DateBasis.booking
    include_purpose_rows: bool = True


class PostingRow(BaseModel):
    posting_id: int
    booking_date: date
    valuta_date: Optional[date] = None
    amount: Decimal
    kind: PostingKind
    contact_name: Optional[str] = None
    savings_plan_name: Optional[str] = None
    description: str = ""
    budget_purpose_id: Optional[int] = None
    budget_purpose_name: Optional[str] = None
    budget_category_id: Optional[int] = None
    budget_category_name: Optional[str] = None
    is_split: bool = False


class PurposeRawData(BaseModel):
    id: int
    name: str
    source_type: BudgetSourceType
    source_id: int
    source_name: str = ""
    budgeted_income: Decimal
    budgeted_expense: Decimal
    budgeted_target: Decimal
    actual: Decimal
    postings: list[PostingRow] = Field(default_factory=list)


class CategoryRawData(BaseModel):
    id: int
    name: str
    budgeted_income: Decimal
    budgeted_expense: Decimal
    budgeted_target: Decimal
    actual: Decimal
    purposes: list[PurposeRawData] = Field(default_factory=list)


class BudgetReportRawData(BaseModel):
    start: date
    end: date
    date_basis: DateBasis
    categories: list[CategoryRawData] = Field(default_factory=list)
    uncategorized_purposes: list[PurposeRawData] = Field(default_factory=list)
    unbudgeted_postings: list[PostingRow] = Field(default_factory=list)


class ReportPeriodRow(BaseModel):
    start: date
    end: date
    label: str
    budget: Decimal
    actual: Decimal
    delta: Decimal
    delta_pct: Decimal


class ReportPurposeRow(BaseModel):
    id: int
    name: str
    budget: Decimal
    actual: Decimal
    delta: Decimal
    delta_pct: Decimal


class ReportCategoryRow(BaseModel):
    kind: CategoryRowKind
    category_id: Optional[int] = None
    name: str
    budget: Decimal
    actual: Decimal
    delta: Decimal
    delta_pct: Decimal
    purposes: list[ReportPurposeRow] = Field(default_factory=list)
    postings: list[PostingRow] = Field(default_factory=list)


class BudgetReport(BaseModel):
    start: date
    end: date
    interval: ReportInterval
    value_scope: ValueScope
    date_basis: DateBasis
    periods: list[ReportPeriodRow] = Field(default_factory=list)
    categories: list[ReportCategoryRow] = Field(default_factory=list)


class MonthlyBudgetKpi(BaseModel):
    month_start: date
    month_end: date
    date_basis: DateBasis
    planned_income: Decimal
    planned_expense_abs: Decimal
    planned_result: Decimal
    budgeted_realized_income: Decimal
    budgeted_realized_expense_abs: Decimal
    unbudgeted_income: Decimal
    unbudgeted_expense_abs: Decimal
    actual_income: Decimal
    actual_expense_abs: Decimal
    actual_result: Decimal
    remaining_planned_income: Decimal
    remaining_planned_expense_abs: Decimal
    expected_income: Decimal
    expected_expense_abs: Decimal
    expected_target_result: Decimal


class PurposeOverview(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    source_type: BudgetSourceType
    source_id: int
    source_name: str = ""
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    rule_count: int
    budget_sum: Decimal
