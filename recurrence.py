import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from models import BudgetIntervalType
from periods import Period, add_months
from snapshot import RuleRecord

logger = logging.getLogger(__name__)

_STEP_MONTHS = {
    BudgetIntervalType.monthly: 1,
    BudgetIntervalType.quarterly: 3,
    BudgetIntervalType.yearly: 12,
}


@dataclass(frozen=True)
class ExpectedOccurrence:
    rule_id: int
    occurrence_date: date
    amount: Decimal
    purpose_id: Optional[int] = None
    category_id: Optional[int] = None
    overridden: bool = False


def interval_step_months(rule: RuleRecord) -> Optional[int]:
    """Months between two occurrences, or None when the rule is malformed."""
    if rule.interval == BudgetIntervalType.custom_months:
        if rule.custom_interval_months is None or rule.custom_interval_months < 1:
            return None
        return rule.custom_interval_months
    return _STEP_MONTHS.get(rule.interval)


def occurrence_dates(rule: RuleRecord, period: Period) -> list[date]:
    step = interval_step_months(rule)
    if step is None:
        logger.warning(
            f"rule_skipped: rule={rule.id} reason=invalid_interval "
            f"interval={rule.interval.value} custom={rule.custom_interval_months}"
        )
        return []
    if rule.end_date is not None and rule.start_date > rule.end_date:
        logger.warning(
            f"rule_skipped: rule={rule.id} reason=start_after_end "
            f"start={rule.start_date} end={rule.end_date}"
        )
        return []

    last = period.end if rule.end_date is None else min(period.end, rule.end_date)
    if rule.start_date > last:
        return []

    # Jump close to the period instead of walking from a start years back.
    months_before = (period.start.year - rule.start_date.year) * 12 + (
        period.start.month - rule.start_date.month
    )
    k = max(0, months_before // step)

    dates: list[date] = []
    anchor_day = rule.start_date.day
    while True:
        current = add_months(rule.start_date, k * step, desired_day=anchor_day)
        if current > last:
            break
        if current >= period.start:
            dates.append(current)
        k += 1
    return dates


def expand_rule(
    rule: RuleRecord,
    period: Period,
    overrides: Optional[Mapping[tuple[int, int, int], Decimal]] = None,
) -> list[ExpectedOccurrence]:
    """Expected occurrences of ``rule`` inside ``period``.

    Overrides are keyed ``(purpose_id, year, month)`` and only touch rules owned
    by a purpose. The overridden amount replaces the month's expectation once,
    so further occurrences of the same rule in that month are dropped.
    """
    overrides = overrides or {}
    occurrences: list[ExpectedOccurrence] = []
    seen_override_months: set[tuple[int, int]] = set()
    for occurrence_date in occurrence_dates(rule, period):
        amount = rule.amount
        overridden = False
        if rule.purpose_id is not None:
            key = (rule.purpose_id, occurrence_date.year, occurrence_date.month)
            if key in overrides:
                month_key = (occurrence_date.year, occurrence_date.month)
                if month_key in seen_override_months:
                    continue
                seen_override_months.add(month_key)
                amount = overrides[key]
                overridden = True
        occurrences.append(
            ExpectedOccurrence(
                rule_id=rule.id,
                occurrence_date=occurrence_date,
                amount=amount,
                purpose_id=rule.purpose_id,
                category_id=rule.category_id,
                overridden=overridden,
            )
        )
    return occurrences


def expand_rules(
    rules: Iterable[RuleRecord],
    period: Period,
    overrides: Optional[Mapping[tuple[int, int, int], Decimal]] = None,
) -> list[ExpectedOccurrence]:
    overrides = overrides or {}
    occurrences: list[ExpectedOccurrence] = []
    # A purpose's override stands for the whole month, across all its rules.
    claimed: set[tuple[int, int, int]] = set()
    for rule in rules:
        for occurrence in expand_rule(rule, period, overrides):
            if occurrence.overridden:
                key = (
                    occurrence.purpose_id,
                    occurrence.occurrence_date.year,
                    occurrence.occurrence_date.month,
                )
                if key in claimed:
                    continue
                claimed.add(key)
            occurrences.append(occurrence)
    occurrences.sort(key=lambda o: (o.occurrence_date, o.rule_id))
    return occurrences
