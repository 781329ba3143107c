from datetime import date
from decimal import Decimal

from sources import (
    ContactGroupMatcher,
    ContactMatcher,
    SavingsPlanMatcher,
    assign_postings,
    compute_coverage,
    resolve_source,
    uncovered_postings,
)
from models import BudgetSourceType, DateBasis, PostingKind
from periods import Period
from snapshot import BudgetSnapshot, ContactRecord, PostingRecord, PurposeRecord

JAN = Period("t", date(2024, 1, 1), date(2024, 1, 31))


def _posting(pid, amount, *, contact_id=None, plan_id=None, day=10, valuta=None):
    return PostingRecord(
        id=pid,
        booking_date=date(2024, 1, day),
        valuta_date=valuta,
        amount=Decimal(amount),
        kind=PostingKind.savings_plan if plan_id else PostingKind.contact,
        contact_id=contact_id,
        savings_plan_id=plan_id,
    )


def _snapshot(purposes, postings) -> BudgetSnapshot:
    return BudgetSnapshot(
        owner_id=1,
        purposes=tuple(purposes),
        contacts=(
            ContactRecord(1, "Alice", group_id=10),
            ContactRecord(2, "Bob", group_id=10),
            ContactRecord(3, "Carol", group_id=None),
        ),
        postings=tuple(postings),
    )


def test_resolver_dispatches_per_source_type():
    snapshot = _snapshot([], [])
    contact = PurposeRecord(1, "Alice", BudgetSourceType.contact, 1)
    group = PurposeRecord(2, "Family", BudgetSourceType.contact_group, 10)
    plan = PurposeRecord(3, "Holiday", BudgetSourceType.savings_plan, 7)
    assert resolve_source(contact, snapshot) == ContactMatcher(1)
    assert resolve_source(group, snapshot) == ContactGroupMatcher(
        10, frozenset({1, 2})
    )
    assert resolve_source(plan, snapshot) == SavingsPlanMatcher(7)


def test_savings_plan_matcher_requires_plan_kind():
    matcher = SavingsPlanMatcher(7)
    assert matcher.matches(_posting(1, "-50.00", plan_id=7))
    assert not matcher.matches(_posting(2, "-50.00", plan_id=8))
    assert not matcher.matches(_posting(3, "-50.00", contact_id=7))


def test_missing_group_resolves_to_empty_coverage():
    purpose = PurposeRecord(1, "Gone", BudgetSourceType.contact_group, 99)
    snapshot = _snapshot([purpose], [_posting(1, "-10.00", contact_id=1)])
    coverage = compute_coverage(snapshot, JAN, DateBasis.booking)
    assert coverage.covered_ids == frozenset()
    assert coverage.uncovered_total == Decimal("-10.00")


def test_group_and_contact_overlap_is_counted_once():
    purposes = [
        PurposeRecord(1, "Family", BudgetSourceType.contact_group, 10),
        PurposeRecord(2, "Alice", BudgetSourceType.contact, 1),
    ]
    postings = [
        _posting(1, "-30.00", contact_id=1),
        _posting(2, "-20.00", contact_id=2),
    ]
    snapshot = _snapshot(purposes, postings)
    coverage = compute_coverage(snapshot, JAN, DateBasis.booking)
    assert coverage.covered_ids == frozenset({1, 2})
    assert coverage.total == Decimal("-50.00")
    assert coverage.covered_total == Decimal("-50.00")
    assert coverage.uncovered_total == Decimal("0.00")
    assert uncovered_postings(snapshot, JAN, DateBasis.booking) == []


def test_specific_purpose_claims_before_group():
    purposes = [
        PurposeRecord(1, "Family", BudgetSourceType.contact_group, 10),
        PurposeRecord(2, "Alice", BudgetSourceType.contact, 1),
    ]
    postings = [
        _posting(1, "-30.00", contact_id=1),
        _posting(2, "-20.00", contact_id=2),
    ]
    claims = assign_postings(_snapshot(purposes, postings), JAN, DateBasis.booking)
    assert [p.id for p in claims[2]] == [1]
    assert [p.id for p in claims[1]] == [2]


def test_valuta_basis_excludes_postings_outside_range():
    purpose = PurposeRecord(1, "Alice", BudgetSourceType.contact, 1)
    postings = [
        _posting(1, "-10.00", contact_id=1, valuta=date(2024, 2, 2)),
        _posting(2, "-5.00", contact_id=1, valuta=None),
    ]
    snapshot = _snapshot([purpose], postings)
    booking = compute_coverage(snapshot, JAN, DateBasis.booking)
    valuta = compute_coverage(snapshot, JAN, DateBasis.valuta)
    assert booking.covered_ids == frozenset({1, 2})
    assert valuta.covered_ids == frozenset()
    assert valuta.total == Decimal("0.00")
