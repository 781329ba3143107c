"""Read-only, per-request view of one owner's budgeting data.

The reconciliation engine only ever sees a ``BudgetSnapshot``. Everything is
loaded up front by ``load_snapshot`` so no algorithm touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from functools import cached_property
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from models import (
    BUDGET_POSTING_KINDS,
    BudgetCategory,
    BudgetIntervalType,
    BudgetOverride,
    BudgetPurpose,
    BudgetRule,
    BudgetSourceType,
    Contact,
    ContactGroup,
    DateBasis,
    Posting,
    PostingKind,
    SavingsPlan,
    cents_to_amount,
)
from periods import Period


@dataclass(frozen=True)
class CategoryRecord:
    id: int
    name: str


@dataclass(frozen=True)
class PurposeRecord:
    id: int
    name: str
    source_type: BudgetSourceType
    source_id: int
    category_id: Optional[int] = None
    source_name: str = ""
    description: Optional[str] = None


@dataclass(frozen=True)
class RuleRecord:
    id: int
    amount: Decimal
    interval: BudgetIntervalType
    start_date: date
    end_date: Optional[date] = None
    custom_interval_months: Optional[int] = None
    purpose_id: Optional[int] = None
    category_id: Optional[int] = None


@dataclass(frozen=True)
class OverrideRecord:
    purpose_id: int
    year: int
    month: int
    amount: Decimal


@dataclass(frozen=True)
class ContactRecord:
    id: int
    name: str
    group_id: Optional[int] = None


@dataclass(frozen=True)
class PostingRecord:
    id: int
    booking_date: date
    amount: Decimal
    kind: PostingKind = PostingKind.contact
    valuta_date: Optional[date] = None
    contact_id: Optional[int] = None
    savings_plan_id: Optional[int] = None
    description: str = ""
    contact_name: Optional[str] = None
    savings_plan_name: Optional[str] = None

    def date_for(self, basis: DateBasis) -> Optional[date]:
        if basis == DateBasis.valuta:
            return self.valuta_date
        return self.booking_date


@dataclass(frozen=True)
class BudgetSnapshot:
    owner_id: int
    categories: tuple[CategoryRecord, ...] = ()
    purposes: tuple[PurposeRecord, ...] = ()
    rules: tuple[RuleRecord, ...] = ()
    overrides: tuple[OverrideRecord, ...] = ()
    contacts: tuple[ContactRecord, ...] = ()
    # Load order doubles as the tiebreak for postings sharing a date.
    postings: tuple[PostingRecord, ...] = ()

    @cached_property
    def load_order(self) -> dict[int, int]:
        return {posting.id: idx for idx, posting in enumerate(self.postings)}

    @cached_property
    def override_amounts(self) -> dict[tuple[int, int, int], Decimal]:
        return {(o.purpose_id, o.year, o.month): o.amount for o in self.overrides}

    @cached_property
    def categories_by_id(self) -> dict[int, CategoryRecord]:
        return {category.id: category for category in self.categories}

    @cached_property
    def active_rules(self) -> tuple[RuleRecord, ...]:
        """Rules whose owning purpose or category is in the snapshot."""
        purpose_ids = {purpose.id for purpose in self.purposes}
        return tuple(
            r
            for r in self.rules
            if r.purpose_id in purpose_ids or r.category_id in self.categories_by_id
        )

    def rules_for_purpose(self, purpose_id: int) -> list[RuleRecord]:
        return [r for r in self.rules if r.purpose_id == purpose_id]

    def rules_for_category(self, category_id: int) -> list[RuleRecord]:
        return [r for r in self.rules if r.category_id == category_id]

    def contacts_in_group(self, group_id: int) -> frozenset[int]:
        return frozenset(c.id for c in self.contacts if c.group_id == group_id)

    def sort_key(self, posting: PostingRecord, basis: DateBasis) -> tuple[date, int]:
        return (posting.date_for(basis) or date.min, self.load_order[posting.id])

    def postings_in(self, period: Period, basis: DateBasis) -> list[PostingRecord]:
        matched = [p for p in self.postings if period.contains(p.date_for(basis))]
        return sorted(matched, key=lambda p: self.sort_key(p, basis))


def _source_names(
    session: Session, user_id: int, purposes: list[BudgetPurpose]
) -> dict[tuple[BudgetSourceType, int], str]:
    tables = {
        BudgetSourceType.contact: Contact,
        BudgetSourceType.contact_group: ContactGroup,
        BudgetSourceType.savings_plan: SavingsPlan,
    }
    names: dict[tuple[BudgetSourceType, int], str] = {}
    for source_type, table in tables.items():
        ids = {p.source_id for p in purposes if p.source_type == source_type}
        if not ids:
            continue
        rows = session.execute(
            select(table.id, table.name).where(
                table.user_id == user_id, table.id.in_(ids)
            )
        )
        for row in rows:
            names[(source_type, row.id)] = row.name
    return names


def load_snapshot(session: Session, user_id: int, period: Period) -> BudgetSnapshot:
    categories = session.scalars(
        select(BudgetCategory)
        .where(BudgetCategory.user_id == user_id)
        .order_by(BudgetCategory.name, BudgetCategory.id)
    ).all()
    purposes = session.scalars(
        select(BudgetPurpose)
        .where(BudgetPurpose.user_id == user_id)
        .order_by(BudgetPurpose.name, BudgetPurpose.id)
    ).all()
    rules = session.scalars(
        select(BudgetRule)
        .where(
            BudgetRule.user_id == user_id,
            BudgetRule.start_date <= period.end,
            or_(BudgetRule.end_date.is_(None), BudgetRule.end_date >= period.start),
        )
        .order_by(BudgetRule.id)
    ).all()
    overrides = session.scalars(
        select(BudgetOverride)
        .where(
            BudgetOverride.user_id == user_id,
            BudgetOverride.year * 12 + BudgetOverride.month
            >= period.start.year * 12 + period.start.month,
            BudgetOverride.year * 12 + BudgetOverride.month
            <= period.end.year * 12 + period.end.month,
        )
        .order_by(BudgetOverride.id)
    ).all()
    contacts = session.scalars(
        select(Contact).where(Contact.user_id == user_id).order_by(Contact.id)
    ).all()
    plan_names = {
        row.id: row.name
        for row in session.execute(
            select(SavingsPlan.id, SavingsPlan.name).where(
                SavingsPlan.user_id == user_id
            )
        )
    }
    postings = session.scalars(
        select(Posting)
        .where(
            Posting.user_id == user_id,
            Posting.kind.in_(BUDGET_POSTING_KINDS),
            or_(
                Posting.booking_date.between(period.start, period.end),
                Posting.valuta_date.between(period.start, period.end),
            ),
        )
        .order_by(Posting.id)
    ).all()

    contact_names = {c.id: c.name for c in contacts}
    source_names = _source_names(session, user_id, list(purposes))

    return BudgetSnapshot(
        owner_id=user_id,
        categories=tuple(CategoryRecord(id=c.id, name=c.name) for c in categories),
        purposes=tuple(
            PurposeRecord(
                id=p.id,
                name=p.name,
                source_type=p.source_type,
                source_id=p.source_id,
                category_id=p.budget_category_id,
                source_name=source_names.get((p.source_type, p.source_id), ""),
                description=p.description,
            )
            for p in purposes
        ),
        rules=tuple(
            RuleRecord(
                id=r.id,
                amount=cents_to_amount(r.amount_cents),
                interval=r.interval,
                start_date=r.start_date,
                end_date=r.end_date,
                custom_interval_months=r.custom_interval_months,
                purpose_id=r.budget_purpose_id,
                category_id=r.budget_category_id,
            )
            for r in rules
        ),
        overrides=tuple(
            OverrideRecord(
                purpose_id=o.budget_purpose_id,
                year=o.year,
                month=o.month,
                amount=cents_to_amount(o.amount_cents),
            )
            for o in overrides
        ),
        contacts=tuple(
            ContactRecord(id=c.id, name=c.name, group_id=c.group_id) for c in contacts
        ),
        postings=tuple(
            PostingRecord(
                id=p.id,
                booking_date=p.booking_date,
                valuta_date=p.valuta_date,
                amount=cents_to_amount(p.amount_cents),
                kind=p.kind,
                contact_id=p.contact_id,
                savings_plan_id=p.savings_plan_id,
                description=p.description or p.subject or "",
                contact_name=contact_names.get(p.contact_id, p.recipient_name)
                if p.contact_id is not None
                else p.recipient_name,
                savings_plan_name=plan_names.get(p.savings_plan_id),
            )
            for p in postings
        ),
    )
