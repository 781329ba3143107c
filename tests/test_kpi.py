from datetime import date
from decimal import Decimal

from models import BudgetIntervalType, BudgetSourceType, DateBasis, PostingKind
from reports import build_monthly_kpi
from snapshot import (
    BudgetSnapshot,
    CategoryRecord,
    ContactRecord,
    PostingRecord,
    PurposeRecord,
    RuleRecord,
)


def _posting(pid, amount, contact_id, day, valuta=None) -> PostingRecord:
    booked = date(2024, 1, day)
    return PostingRecord(
        id=pid,
        booking_date=booked,
        valuta_date=valuta or booked,
        amount=Decimal(amount),
        kind=PostingKind.contact,
        contact_id=contact_id,
    )


def _monthly(rule_id, amount, *, purpose_id=None, category_id=None) -> RuleRecord:
    return RuleRecord(
        id=rule_id,
        amount=Decimal(amount),
        interval=BudgetIntervalType.monthly,
        start_date=date(2023, 12, 1),
        purpose_id=purpose_id,
        category_id=category_id,
    )


def _snapshot(postings) -> BudgetSnapshot:
    return BudgetSnapshot(
        owner_id=1,
        categories=(CategoryRecord(1, "Living"),),
        purposes=(
            PurposeRecord(1, "Salary", BudgetSourceType.contact, 1),
            PurposeRecord(2, "Rent", BudgetSourceType.contact, 2),
            PurposeRecord(3, "Food", BudgetSourceType.contact, 3, category_id=1),
        ),
        rules=(
            _monthly(1, "1000.00", purpose_id=1),
            _monthly(2, "-500.00", purpose_id=2),
            _monthly(3, "-100.00", category_id=1),
        ),
        contacts=(
            ContactRecord(1, "Employer"),
            ContactRecord(2, "Landlord"),
            ContactRecord(3, "Grocer"),
            ContactRecord(4, "Stranger"),
        ),
        postings=tuple(postings),
    )


def test_monthly_kpi_vector():
    snapshot = _snapshot(
        [
            _posting(1, "1200.00", 1, 1),
            _posting(2, "-300.00", 2, 3),
            _posting(3, "-30.00", 3, 4),
            _posting(4, "-50.00", 4, 5),
        ]
    )
    kpi = build_monthly_kpi(snapshot, date(2024, 1, 20), DateBasis.booking)

    assert (kpi.month_start, kpi.month_end) == (date(2024, 1, 1), date(2024, 1, 31))
    assert kpi.planned_income == Decimal("1000.00")
    assert kpi.planned_expense_abs == Decimal("600.00")
    assert kpi.planned_result == Decimal("400.00")
    assert kpi.budgeted_realized_income == Decimal("1000.00")
    assert kpi.budgeted_realized_expense_abs == Decimal("330.00")
    assert kpi.unbudgeted_income == Decimal("200.00")
    assert kpi.unbudgeted_expense_abs == Decimal("50.00")
    assert kpi.actual_income == Decimal("1200.00")
    assert kpi.actual_expense_abs == Decimal("380.00")
    assert kpi.actual_result == Decimal("820.00")
    assert kpi.remaining_planned_income == Decimal("0.00")
    assert kpi.remaining_planned_expense_abs == Decimal("270.00")
    assert kpi.expected_income == Decimal("1200.00")
    assert kpi.expected_expense_abs == Decimal("650.00")
    assert kpi.expected_target_result == Decimal("550.00")


def test_monthly_kpi_respects_valuta_basis():
    snapshot = _snapshot(
        [_posting(1, "1000.00", 1, 31, valuta=date(2024, 2, 1))]
    )
    booking = build_monthly_kpi(snapshot, date(2024, 1, 1), DateBasis.booking)
    valuta = build_monthly_kpi(snapshot, date(2024, 1, 1), DateBasis.valuta)
    assert booking.budgeted_realized_income == Decimal("1000.00")
    assert valuta.budgeted_realized_income == Decimal("0.00")
    assert valuta.remaining_planned_income == Decimal("1000.00")
    assert valuta.expected_expense_abs == Decimal("600.00")
