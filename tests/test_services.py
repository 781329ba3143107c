from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import Session, sessionmaker

from database import Base, init_db, read_session
from models import (
    BudgetCategory,
    BudgetIntervalType,
    BudgetOverride,
    BudgetPurpose,
    BudgetRule,
    BudgetSourceType,
    CategoryRowKind,
    Contact,
    ContactGroup,
    DateBasis,
    Posting,
    PostingKind,
    SavingsPlan,
)
from periods import Period
from schemas import ReportRequest
from services import BudgetReportService, InvalidReportRequest
from snapshot import load_snapshot

JAN = Period("custom", date(2024, 1, 1), date(2024, 1, 31))


def _seed(session: Session) -> dict[str, int]:
    family = ContactGroup(user_id=1, name="Family")
    session.add(family)
    session.flush()
    alice = Contact(user_id=1, name="Alice", group_id=family.id)
    bob = Contact(user_id=1, name="Bob", group_id=family.id)
    shop = Contact(user_id=1, name="Shop")
    plan = SavingsPlan(user_id=1, name="Holiday")
    housing = BudgetCategory(user_id=1, name="Housing")
    session.add_all([alice, bob, shop, plan, housing])
    session.flush()

    family_purpose = BudgetPurpose(
        user_id=1,
        name="Family",
        source_type=BudgetSourceType.contact_group,
        source_id=family.id,
        budget_category_id=housing.id,
    )
    holiday = BudgetPurpose(
        user_id=1,
        name="Holiday",
        source_type=BudgetSourceType.savings_plan,
        source_id=plan.id,
    )
    session.add_all([family_purpose, holiday])
    session.flush()
    session.add_all(
        [
            BudgetRule(
                user_id=1,
                budget_purpose_id=family_purpose.id,
                amount_cents=-1500,
                interval=BudgetIntervalType.monthly,
                start_date=date(2023, 1, 1),
            ),
            BudgetRule(
                user_id=1,
                budget_purpose_id=holiday.id,
                amount_cents=-10000,
                interval=BudgetIntervalType.monthly,
                start_date=date(2024, 1, 1),
            ),
            BudgetOverride(
                user_id=1,
                budget_purpose_id=holiday.id,
                year=2024,
                month=1,
                amount_cents=-5000,
            ),
            Posting(
                user_id=1,
                booking_date=date(2024, 1, 5),
                valuta_date=date(2024, 1, 5),
                amount_cents=-2550,
                kind=PostingKind.contact,
                contact_id=alice.id,
                description="Dinner",
            ),
            Posting(
                user_id=1,
                booking_date=date(2024, 1, 6),
                valuta_date=date(2024, 1, 6),
                amount_cents=-700,
                kind=PostingKind.contact,
                contact_id=shop.id,
            ),
            Posting(
                user_id=1,
                booking_date=date(2024, 1, 7),
                valuta_date=date(2024, 1, 7),
                amount_cents=-5000,
                kind=PostingKind.savings_plan,
                savings_plan_id=plan.id,
            ),
            # Account-side mirror of the savings transfer; never budgeted.
            Posting(
                user_id=1,
                booking_date=date(2024, 1, 7),
                amount_cents=-5000,
                kind=PostingKind.bank,
            ),
            Posting(
                user_id=2,
                booking_date=date(2024, 1, 8),
                amount_cents=-999,
                kind=PostingKind.contact,
                contact_id=shop.id,
            ),
        ]
    )
    session.commit()
    return {"alice": alice.id, "holiday": holiday.id, "family": family_purpose.id}


def test_load_snapshot_converts_cents_and_skips_mirror_postings() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ids = _seed(session)
        snapshot = load_snapshot(session, 1, JAN)

        assert [p.amount for p in snapshot.postings] == [
            Decimal("-25.50"),
            Decimal("-7.00"),
            Decimal("-50.00"),
        ]
        assert snapshot.postings[0].contact_name == "Alice"
        assert snapshot.postings[2].savings_plan_name == "Holiday"
        assert snapshot.override_amounts == {
            (ids["holiday"], 2024, 1): Decimal("-50.00")
        }
        family = next(p for p in snapshot.purposes if p.id == ids["family"])
        assert family.source_name == "Family"


def test_raw_data_from_database() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _seed(session)
        raw = BudgetReportService(session).get_raw_data(JAN, DateBasis.booking)

        housing = raw.categories[0]
        assert housing.name == "Housing"
        family = housing.purposes[0]
        assert family.budgeted_expense == Decimal("-15.00")
        assert [p.amount for p in family.postings] == [Decimal("-15.00")]

        holiday = raw.uncategorized_purposes[0]
        assert holiday.budgeted_expense == Decimal("-50.00")
        assert holiday.actual == Decimal("-50.00")

        assert [(p.amount, p.budget_purpose_name) for p in raw.unbudgeted_postings] == [
            (Decimal("-10.50"), "Family"),
            (Decimal("-7.00"), None),
        ]


def test_report_from_database_balances() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _seed(session)
        report = BudgetReportService(session).get_report(
            ReportRequest(as_of=date(2024, 1, 31), months=1)
        )
        rows = {r.kind: r for r in report.categories if r.kind != CategoryRowKind.data}
        assert rows[CategoryRowKind.sum].budget == Decimal("-65.00")
        assert rows[CategoryRowKind.sum].actual == Decimal("-65.00")
        assert rows[CategoryRowKind.unbudgeted].actual == Decimal("-17.50")
        assert rows[CategoryRowKind.result].actual == Decimal("-82.50")
        assert report.periods[0].actual == Decimal("-82.50")


def test_report_rejects_months_out_of_range() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = BudgetReportService(session)
        with pytest.raises(InvalidReportRequest):
            service.get_report(ReportRequest(as_of=date(2024, 1, 1), months=61))
        with pytest.raises(ValueError):
            service.get_raw_data(Period("custom", date(2024, 2, 1), date(2024, 1, 1)))


def test_monthly_kpi_and_overview_from_database() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _seed(session)
        service = BudgetReportService(session)
        kpi = service.get_monthly_kpi(date(2024, 1, 15), DateBasis.booking)
        assert kpi.planned_expense_abs == Decimal("65.00")
        assert kpi.budgeted_realized_expense_abs == Decimal("65.00")
        assert kpi.unbudgeted_expense_abs == Decimal("17.50")

        overviews = {o.name: o for o in service.list_purpose_overviews(JAN)}
        assert overviews["Holiday"].budget_sum == Decimal("-50.00")
        assert overviews["Family"].category_name == "Housing"

        unbudgeted = service.get_unbudgeted_postings(JAN)
        assert [p.amount for p in unbudgeted] == [Decimal("-7.00")]


def test_init_db_creates_tables_and_read_session_never_commits() -> None:
    engine = create_engine("sqlite:///:memory:")
    init_db(engine)
    assert "budget_purposes" in inspect(engine).get_table_names()

    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    sessions = read_session(factory)
    session = next(sessions)
    session.add(ContactGroup(user_id=1, name="Family"))
    session.flush()
    sessions.close()

    with Session(engine) as check:
        assert check.query(ContactGroup).count() == 0
