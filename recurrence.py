import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from errors import NotFoundError, ValidationError
from models import RecurringExpense, Transaction, TransactionType
from periods import clamp_day, month_period
from saga import Saga, committed

logger = logging.getLogger(__name__)

PAYMENT_SUFFIX = " (Despesa Fixa)"

_inflight: set[tuple[int, int, str]] = set()
_inflight_lock = threading.Lock()


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def resolve_monthly_amount(expense: RecurringExpense, month: str) -> Optional[int]:
    """Amount due for ``month``: override, else a nonzero base, else None."""
    overrides = expense.monthly_values
    if month in overrides:
        return overrides[month]
    if expense.amount_cents:
        return expense.amount_cents
    return None


def due_date_for_month(expense: RecurringExpense, month: str) -> date:
    return clamp_day(month, expense.due_day)


def payment_description(expense: RecurringExpense) -> str:
    return f"{expense.description}{PAYMENT_SUFFIX}"


@dataclass
class PaymentToggleResult:
    expense_id: int
    month: str
    paid: bool
    changed: bool = False
    created_transaction_id: Optional[int] = None
    removed_transaction_ids: list[int] = field(default_factory=list)
    skipped: Optional[str] = None


class RecurringPaymentEngine:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get_expense(self, expense_id: int) -> Optional[RecurringExpense]:
        expense = self.session.get(RecurringExpense, expense_id)
        if not expense or expense.user_id != self.user_id:
            return None
        return expense

    def monthly_value(self, expense_id: int, month: str) -> Optional[int]:
        expense = self.get_expense(expense_id)
        if expense is None:
            return None
        return resolve_monthly_amount(expense, month)

    def find_payments(self, expense_id: int, month: str) -> list[Transaction]:
        period = month_period(month)
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.recurring_expense_id == expense_id,
                Transaction.is_recurring_payment.is_(True),
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.id)
        )
        return list(self.session.scalars(stmt).all())

    def is_paid(self, expense_id: int, month: str) -> bool:
        expense = self.get_expense(expense_id)
        return bool(expense) and month in expense.paid_months

    def mark_paid(self, expense_id: int, month: str, paid: bool) -> PaymentToggleResult:
        try:
            month_period(month)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        key = (self.user_id, expense_id, month)
        with _inflight_lock:
            if key in _inflight:
                logger.info(
                    "recurring_toggle_in_progress: expense_id=%s month=%s",
                    expense_id,
                    month,
                )
                return PaymentToggleResult(
                    expense_id, month, paid, skipped="in_progress"
                )
            _inflight.add(key)
        try:
            expense = self.get_expense(expense_id)
            if expense is None:
                raise NotFoundError("Recurring expense not found")
            if paid:
                return self._mark_paid(expense, month)
            return self._mark_unpaid(expense, month)
        finally:
            with _inflight_lock:
                _inflight.discard(key)

    def _mark_paid(self, expense: RecurringExpense, month: str) -> PaymentToggleResult:
        result = PaymentToggleResult(expense.id, month, True)
        amount = resolve_monthly_amount(expense, month)
        already_paid = month in expense.paid_months
        if amount is None:
            if already_paid:
                result.skipped = "already_paid"
                return result
            raise ValidationError("Cannot mark as paid without a defined amount")

        saga = Saga(f"mark_paid:{expense.id}:{month}")
        if not already_paid:
            saga.step(
                "add_paid_month",
                committed(self.session, lambda: self._set_month(expense, month, True)),
                committed(self.session, lambda: self._set_month(expense, month, False)),
            )
            result.changed = True

        if amount > 0:
            saga.step(
                "create_payment_transaction",
                committed(
                    self.session,
                    lambda: self._create_payment(expense, month, amount, result),
                ),
                committed(self.session, lambda: self._remove_created(result)),
            )
        else:
            result.skipped = "zero_amount"

        saga.run()
        if result.created_transaction_id is None and amount > 0:
            result.skipped = "already_recorded"
        logger.info(
            "recurring_paid: expense_id=%s month=%s amount_cents=%s created_txn=%s",
            expense.id,
            month,
            amount,
            result.created_transaction_id,
        )
        return result

    def _mark_unpaid(
        self, expense: RecurringExpense, month: str
    ) -> PaymentToggleResult:
        result = PaymentToggleResult(expense.id, month, False)
        if month not in expense.paid_months:
            result.skipped = "already_unpaid"
            return result

        result.changed = True
        saga = Saga(f"mark_unpaid:{expense.id}:{month}")
        saga.step(
            "remove_paid_month",
            committed(self.session, lambda: self._set_month(expense, month, False)),
            committed(self.session, lambda: self._set_month(expense, month, True)),
        )
        saga.step(
            "delete_payment_transactions",
            committed(self.session, lambda: self._delete_payments(expense, month)),
        )
        outcome = saga.run()
        result.removed_transaction_ids = list(
            outcome.get("delete_payment_transactions") or []
        )
        logger.info(
            "recurring_unpaid: expense_id=%s month=%s removed_txns=%s",
            expense.id,
            month,
            result.removed_transaction_ids,
        )
        return result

    def _set_month(self, expense: RecurringExpense, month: str, paid: bool) -> None:
        months = set(expense.paid_months)
        if paid:
            months.add(month)
        else:
            months.discard(month)
        expense.paid_months = sorted(months)
        self.session.flush()

    def _create_payment(
        self,
        expense: RecurringExpense,
        month: str,
        amount: int,
        result: PaymentToggleResult,
    ) -> None:
        from services import MonthlyAggregateService

        if self.find_payments(expense.id, month):
            return
        txn = Transaction(
            user_id=self.user_id,
            date=due_date_for_month(expense, month),
            description=payment_description(expense),
            category=expense.category,
            amount_cents=amount,
            type=TransactionType.expense,
            payment_method=expense.payment_method,
            is_recurring_payment=True,
            recurring_expense_id=expense.id,
        )
        self.session.add(txn)
        self.session.flush()
        MonthlyAggregateService(self.session, self.user_id).record_insert(txn)
        result.created_transaction_id = txn.id

    def _remove_created(self, result: PaymentToggleResult) -> None:
        from services import MonthlyAggregateService

        if result.created_transaction_id is None:
            return
        txn = self.session.get(Transaction, result.created_transaction_id)
        if txn is None:
            return
        MonthlyAggregateService(self.session, self.user_id).remove(txn)
        result.created_transaction_id = None

    def _delete_payments(self, expense: RecurringExpense, month: str) -> list[int]:
        from services import MonthlyAggregateService

        payments = self.find_payments(expense.id, month)
        if not payments:
            return []
        aggregates = MonthlyAggregateService(self.session, self.user_id)
        ids = [txn.id for txn in payments]
        for txn in payments:
            aggregates.remove(txn)
        return ids
