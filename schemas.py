import datetime as dt
from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import AppMode, PaymentMethod, TransactionType


class TransactionIn(BaseModel):
    date: date
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=150)
    amount_cents: int = Field(..., gt=0)
    type: TransactionType
    payment_method: Optional[PaymentMethod] = None
    source: Optional[str] = Field(default=None, max_length=120)
    is_recurring_payment: bool = False
    is_goal_contribution: bool = False
    is_investment_contribution: bool = False
    recurring_expense_id: Optional[int] = None
    goal_id: Optional[int] = None
    investment_id: Optional[int] = None


class RecurringExpenseIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=150)
    amount_cents: int = Field(default=0, ge=0)
    due_day: int = Field(..., ge=1, le=31)
    payment_method: Optional[PaymentMethod] = None
    repeat_months: int = Field(default=12, ge=1, le=120)


class MarkPaidIn(BaseModel):
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    paid: bool


class MonthlyValueIn(BaseModel):
    value_cents: Optional[int] = Field(default=None, ge=0)


class GoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., ge=0)
    current_amount_cents: int = Field(default=0, ge=0)
    target_date: date
    saving_location: Optional[str] = Field(default=None, max_length=120)


class ContributionIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    date: Optional[dt.date] = None
    payment_method: Optional[PaymentMethod] = None


class InvestmentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: str = Field(..., min_length=1, max_length=80)
    value_cents: int = Field(..., gt=0)
    installments: int = Field(default=1, ge=1)
    installment_value_cents: int = Field(..., gt=0)
    start_date: date
    paid_installments: int = Field(default=0, ge=0)
    description: Optional[str] = None


class PaidInstallmentsIn(BaseModel):
    paid_installments: int


class CustomCategoryIn(BaseModel):
    type: TransactionType
    name: str = Field(..., min_length=1, max_length=120)


class CustomCategoryRenameIn(BaseModel):
    type: TransactionType
    old_name: str = Field(..., min_length=1, max_length=150)
    new_name: str = Field(..., min_length=1, max_length=120)


class AssetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: str = Field(..., min_length=1, max_length=80)
    value_cents: int = Field(..., ge=0)
    evaluation_date: Optional[date] = None
    acquisition_value_cents: Optional[int] = Field(default=None, ge=0)
    acquisition_date: Optional[date] = None
    insured: bool = False
    location: Optional[str] = None
    notes: Optional[str] = None
    symbol: Optional[str] = None
    quantity: Optional[str] = None
    wallet: Optional[str] = None


class LiabilityIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: str = Field(..., min_length=1, max_length=80)
    value_cents: int = Field(..., ge=0)


class SupplierIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=150)
    document: str = Field(..., min_length=11, max_length=18)
    is_company: bool = True
    state_registration: Optional[str] = None
    street: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(default=None, max_length=2)
    zip_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    contact_person: Optional[str] = None
    product_type: str = Field(..., min_length=1, max_length=80)
    payment_terms: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("document")
    @classmethod
    def digits_only(cls, value: str) -> str:
        digits = "".join(ch for ch in value if ch.isdigit())
        if len(digits) not in (11, 14):
            raise ValueError("Document must be a CPF (11 digits) or CNPJ (14 digits)")
        return digits


class ModeSwitchIn(BaseModel):
    pin: str
    target: AppMode
    action: Literal["create", "validate"] = "validate"


class CSVRow(BaseModel):
    date: date
    type: TransactionType
    amount_cents: int
    category: str
    description: str
