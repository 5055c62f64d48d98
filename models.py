import json
from datetime import date, datetime
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
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class PaymentMethod(str, Enum):
    cash = "cash"
    credit_card = "credit_card"
    debit_card = "debit_card"
    bank_transfer = "bank_transfer"
    pix = "pix"
    other = "other"


class AppMode(str, Enum):
    personal = "personal"
    business = "business"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(150), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SAEnum(PaymentMethod)
    )
    source: Mapped[Optional[str]] = mapped_column(String(120))
    is_recurring_payment: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    is_goal_contribution: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    is_investment_contribution: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    recurring_expense_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_expenses.id")
    )
    # Goals and investments may be deleted while their contributions persist.
    goal_id: Mapped[Optional[int]] = mapped_column(Integer)
    investment_id: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_category", "user_id", "category"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        Index(
            "ix_transactions_recurring_date", "user_id", "recurring_expense_id", "date"
        ),
        Index("ix_transactions_user_goal", "user_id", "goal_id"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )

    @property
    def month(self) -> str:
        return f"{self.date.year:04d}-{self.date.month:02d}"


class RecurringExpense(Base, TimestampMixin):
    __tablename__ = "recurring_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(150), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    due_day: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SAEnum(PaymentMethod)
    )
    repeat_months: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    monthly_values_json: Mapped[str] = mapped_column(
        Text, nullable=False, default="{}"
    )
    paid_months_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    __table_args__ = (
        CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_recurring_due_day"),
        CheckConstraint("amount_cents >= 0", name="ck_recurring_amount_positive"),
        Index("ix_recurring_user", "user_id"),
    )

    @property
    def monthly_values(self) -> dict[str, int]:
        raw = json.loads(self.monthly_values_json or "{}")
        return {str(k): int(v) for k, v in raw.items()}

    @monthly_values.setter
    def monthly_values(self, values: dict[str, int]) -> None:
        self.monthly_values_json = json.dumps(dict(sorted(values.items())))

    @property
    def paid_months(self) -> list[str]:
        return list(json.loads(self.paid_months_json or "[]"))

    @paid_months.setter
    def paid_months(self, months: list[str]) -> None:
        self.paid_months_json = json.dumps(sorted(set(months)))


class Goal(Base, TimestampMixin):
    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    target_date: Mapped[date] = mapped_column(Date, nullable=False)
    saving_location: Mapped[Optional[str]] = mapped_column(String(120))

    __table_args__ = (
        CheckConstraint("target_amount_cents >= 0", name="ck_goal_target_positive"),
        CheckConstraint("current_amount_cents >= 0", name="ck_goal_current_positive"),
    )


class Investment(Base, TimestampMixin):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[str] = mapped_column(String(80), nullable=False)
    value_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    installments: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    installment_value_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_installments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("installments >= 1", name="ck_investment_installments"),
        CheckConstraint(
            "paid_installments >= 0 AND paid_installments <= installments",
            name="ck_investment_paid_installments",
        ),
    )


class MonthlyFinanceData(Base, TimestampMixin):
    __tablename__ = "monthly_finance_data"
    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_monthly_finance_user_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    income_total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expense_total_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )


class CustomCategory(Base, TimestampMixin):
    __tablename__ = "custom_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "type", "name", name="uq_custom_category_user_type_name"
        ),
    )


class Asset(Base, TimestampMixin):
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[str] = mapped_column(String(80), nullable=False)
    value_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    evaluation_date: Mapped[Optional[date]] = mapped_column(Date)
    acquisition_value_cents: Mapped[Optional[int]] = mapped_column(Integer)
    acquisition_date: Mapped[Optional[date]] = mapped_column(Date)
    insured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(120))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    symbol: Mapped[Optional[str]] = mapped_column(String(20))
    quantity: Mapped[Optional[str]] = mapped_column(String(40))
    wallet: Mapped[Optional[str]] = mapped_column(String(120))


class Liability(Base, TimestampMixin):
    __tablename__ = "liabilities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[str] = mapped_column(String(80), nullable=False)
    value_cents: Mapped[int] = mapped_column(Integer, nullable=False)


class Supplier(Base, TimestampMixin):
    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    document: Mapped[str] = mapped_column(String(20), nullable=False)
    is_company: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    state_registration: Mapped[Optional[str]] = mapped_column(String(40))
    street: Mapped[Optional[str]] = mapped_column(String(150))
    number: Mapped[Optional[str]] = mapped_column(String(20))
    complement: Mapped[Optional[str]] = mapped_column(String(80))
    district: Mapped[Optional[str]] = mapped_column(String(80))
    city: Mapped[Optional[str]] = mapped_column(String(80))
    state: Mapped[Optional[str]] = mapped_column(String(2))
    zip_code: Mapped[Optional[str]] = mapped_column(String(12))
    phone: Mapped[Optional[str]] = mapped_column(String(30))
    email: Mapped[Optional[str]] = mapped_column(String(120))
    contact_person: Mapped[Optional[str]] = mapped_column(String(120))
    product_type: Mapped[str] = mapped_column(String(80), nullable=False)
    payment_terms: Mapped[Optional[str]] = mapped_column(String(120))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("user_id", "document", name="uq_supplier_user_document"),
    )
