from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class BudgetSourceType(str, Enum):
    contact = "contact"
    contact_group = "contact_group"
    savings_plan = "savings_plan"


class BudgetIntervalType(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"
    custom_months = "custom_months"


class PostingKind(str, Enum):
    bank = "bank"
    contact = "contact"
    savings_plan = "savings_plan"
    security = "security"


# Bank and security postings mirror the contact/savings-plan side of the same
# money movement and are never part of budget reconciliation.
BUDGET_POSTING_KINDS = (PostingKind.contact, PostingKind.savings_plan)


class DateBasis(str, Enum):
    booking = "booking"
    valuta = "valuta"


class ReportInterval(str, Enum):
    month = "month"
    quarter = "quarter"
    year = "year"


class ValueScope(str, Enum):
    total_range = "total_range"
    last_interval = "last_interval"


class CategoryRowKind(str, Enum):
    data = "data"
    sum = "sum"
    unbudgeted = "unbudgeted"
    result = "result"


def cents_to_amount(cents: int) -> Decimal:
    return Decimal(cents).scaleb(-2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow, nullable=False
    )


class ContactGroup(Base, TimestampMixin):
    __tablename__ = "contact_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    contacts: Mapped[list["Contact"]] = relationship(
        "Contact", back_populates="group"
    )


class Contact(Base, TimestampMixin):
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    group_id: Mapped[Optional[int]] = mapped_column(ForeignKey("contact_groups.id"))

    group: Mapped[Optional["ContactGroup"]] = relationship(
        "ContactGroup", back_populates="contacts"
    )

    __table_args__ = (Index("ix_contacts_user_group", "user_id", "group_id"),)


class SavingsPlan(Base, TimestampMixin):
    __tablename__ = "savings_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Posting(Base, TimestampMixin):
    __tablename__ = "postings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    valuta_date: Mapped[Optional[date]] = mapped_column(Date)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[PostingKind] = mapped_column(SAEnum(PostingKind), nullable=False)
    contact_id: Mapped[Optional[int]] = mapped_column(ForeignKey("contacts.id"))
    savings_plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("savings_plans.id")
    )
    subject: Mapped[Optional[str]] = mapped_column(String(400))
    recipient_name: Mapped[Optional[str]] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text)

    contact: Mapped[Optional["Contact"]] = relationship("Contact")
    savings_plan: Mapped[Optional["SavingsPlan"]] = relationship("SavingsPlan")

    __table_args__ = (
        Index("ix_postings_user_booking", "user_id", "booking_date"),
        Index("ix_postings_user_valuta", "user_id", "valuta_date"),
        Index("ix_postings_user_kind_contact", "user_id", "kind", "contact_id"),
    )


class BudgetCategory(Base, TimestampMixin):
    __tablename__ = "budget_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    purposes: Mapped[list["BudgetPurpose"]] = relationship(
        "BudgetPurpose", back_populates="category"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_budget_category_user_name"),
    )


class BudgetPurpose(Base, TimestampMixin):
    __tablename__ = "budget_purposes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    source_type: Mapped[BudgetSourceType] = mapped_column(
        SAEnum(BudgetSourceType), nullable=False
    )
    # Polymorphic reference: contacts.id, contact_groups.id or savings_plans.id.
    source_id: Mapped[int] = mapped_column(Integer, nullable=False)
    budget_category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("budget_categories.id")
    )

    category: Mapped[Optional["BudgetCategory"]] = relationship(
        "BudgetCategory", back_populates="purposes"
    )

    __table_args__ = (
        Index("ix_budget_purpose_user_source", "user_id", "source_type", "source_id"),
    )


class BudgetRule(Base, TimestampMixin):
    __tablename__ = "budget_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    budget_purpose_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("budget_purposes.id")
    )
    budget_category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("budget_categories.id")
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    interval: Mapped[BudgetIntervalType] = mapped_column(
        SAEnum(BudgetIntervalType), nullable=False
    )
    custom_interval_months: Mapped[Optional[int]] = mapped_column(Integer)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        CheckConstraint(
            "(budget_purpose_id IS NULL) <> (budget_category_id IS NULL)",
            name="ck_budget_rule_single_owner",
        ),
        CheckConstraint(
            "custom_interval_months IS NULL OR custom_interval_months >= 1",
            name="ck_budget_rule_custom_interval_positive",
        ),
        Index("ix_budget_rule_user_purpose", "user_id", "budget_purpose_id"),
        Index("ix_budget_rule_user_category", "user_id", "budget_category_id"),
    )


class BudgetOverride(Base, TimestampMixin):
    __tablename__ = "budget_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    budget_purpose_id: Mapped[int] = mapped_column(
        ForeignKey("budget_purposes.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_budget_override_month"),
        UniqueConstraint(
            "user_id",
            "budget_purpose_id",
            "year",
            "month",
            name="uq_budget_override_user_purpose_month",
        ),
        Index("ix_budget_override_user_month", "user_id", "year", "month"),
    )
