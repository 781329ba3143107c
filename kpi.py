from dataclasses import dataclass
from decimal import Decimal

from allocation import EXPENSE, INCOME, AllocationResult
from schemas import MonthlyBudgetKpi

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class KpiInputs:
    planned_income: Decimal
    planned_expense_abs: Decimal
    realized_income: Decimal
    realized_expense_abs: Decimal
    unbudgeted_income: Decimal
    unbudgeted_expense_abs: Decimal


class KpiCalculator:
    """Monthly KPI vector derived from a single-month allocation."""

    def __init__(self, result: AllocationResult) -> None:
        self.result = result

    def inputs(self) -> KpiInputs:
        planned_income = ZERO
        planned_expense = ZERO
        realized_income = ZERO
        realized_expense = ZERO
        for pool in self.result.pools():
            if pool.sign == INCOME:
                planned_income += pool.magnitude
                realized_income += pool.used
            elif pool.sign == EXPENSE:
                planned_expense += pool.magnitude
                realized_expense += pool.used

        unbudgeted_income = ZERO
        unbudgeted_expense = ZERO
        for fragment in self.result.unbudgeted:
            if fragment.amount >= 0:
                unbudgeted_income += fragment.amount
            else:
                unbudgeted_expense += -fragment.amount

        return KpiInputs(
            planned_income=planned_income,
            planned_expense_abs=planned_expense,
            realized_income=realized_income,
            realized_expense_abs=realized_expense,
            unbudgeted_income=unbudgeted_income,
            unbudgeted_expense_abs=unbudgeted_expense,
        )

    def calculate(self) -> MonthlyBudgetKpi:
        i = self.inputs()
        actual_income = i.realized_income + i.unbudgeted_income
        actual_expense = i.realized_expense_abs + i.unbudgeted_expense_abs
        remaining_income = i.planned_income - i.realized_income
        remaining_expense = i.planned_expense_abs - i.realized_expense_abs
        expected_income = actual_income
        expected_expense = actual_expense + remaining_expense
        period = self.result.period
        return MonthlyBudgetKpi(
            month_start=period.start,
            month_end=period.end,
            date_basis=self.result.basis,
            planned_income=i.planned_income,
            planned_expense_abs=i.planned_expense_abs,
            planned_result=i.planned_income - i.planned_expense_abs,
            budgeted_realized_income=i.realized_income,
            budgeted_realized_expense_abs=i.realized_expense_abs,
            unbudgeted_income=i.unbudgeted_income,
            unbudgeted_expense_abs=i.unbudgeted_expense_abs,
            actual_income=actual_income,
            actual_expense_abs=actual_expense,
            actual_result=actual_income - actual_expense,
            remaining_planned_income=remaining_income,
            remaining_planned_expense_abs=remaining_expense,
            expected_income=expected_income,
            expected_expense_abs=expected_expense,
            expected_target_result=expected_income - expected_expense,
        )


def monthly_kpi(result: AllocationResult) -> MonthlyBudgetKpi:
    return KpiCalculator(result).calculate()
