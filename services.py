from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import delete, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import get_settings
from csv_utils import parse_csv
from errors import NotFoundError, ValidationError
from models import (
    Asset,
    CustomCategory,
    Goal,
    Investment,
    Liability,
    MonthlyFinanceData,
    PaymentMethod,
    RecurringExpense,
    Supplier,
    Transaction,
    TransactionType,
)
from periods import Period, month_key, month_period, trailing_months
from recurrence import (
    PaymentToggleResult,
    RecurringPaymentEngine,
    due_date_for_month,
    local_today,
)
from saga import Saga, SagaStepFailed, committed
from schemas import (
    AssetIn,
    GoalIn,
    InvestmentIn,
    LiabilityIn,
    RecurringExpenseIn,
    SupplierIn,
    TransactionIn,
)

logger = logging.getLogger(__name__)

GOAL_CONTRIBUTION_CATEGORY = "Poupança para Metas"
GOAL_WITHDRAWAL_CATEGORY = "Resgate de Poupança"
INVESTMENT_CATEGORY = "Investimentos"
CUSTOM_PREFIX = "Crie sua categoria: "
LEGACY_PREFIX = "Outros: "


def get_current_user_id() -> Optional[int]:
    return get_settings().owner_id


def require_month(month: str) -> Period:
    try:
        return month_period(month)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def display_category_name(name: str) -> str:
    """Strip the custom and legacy prefixes; the stored value is unchanged."""
    for prefix in (CUSTOM_PREFIX, LEGACY_PREFIX):
        if name.startswith(prefix):
            return name[len(prefix) :]
    return name


@dataclass
class MonthTotals:
    month: str
    income_cents: int
    expense_cents: int

    @property
    def balance_cents(self) -> int:
        return self.income_cents - self.expense_cents

    @property
    def saving_rate(self) -> float:
        if self.income_cents <= 0:
            return 0.0
        return self.balance_cents / self.income_cents * 100

    def as_dict(self) -> dict[str, object]:
        return {
            "month": self.month,
            "income_cents": self.income_cents,
            "expense_cents": self.expense_cents,
            "balance_cents": self.balance_cents,
            "saving_rate": round(self.saving_rate, 2),
        }


class MonthlyAggregateService:
    """Keeps ``MonthlyFinanceData`` in step with the ledger.

    ``recompute`` re-sums every touched month from the ledger. ``incremental``
    adjusts the stored totals by the mutated amount. Callers commit.
    """

    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        strategy: Optional[str] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.strategy = strategy or get_settings().rollup_strategy

    def _row(self, month: str) -> Optional[MonthlyFinanceData]:
        return self.session.scalar(
            select(MonthlyFinanceData).where(
                MonthlyFinanceData.user_id == self.user_id,
                MonthlyFinanceData.month == month,
            )
        )

    def _upsert(self, month: str) -> MonthlyFinanceData:
        row = self._row(month)
        if not row:
            row = MonthlyFinanceData(
                user_id=self.user_id,
                month=month,
                income_total_cents=0,
                expense_total_cents=0,
            )
            self.session.add(row)
            self.session.flush()
        return row

    def ledger_totals(self, month: str) -> MonthTotals:
        period = month_period(month)
        stmt = (
            select(
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Transaction.type)
        )
        totals = {
            txn_type: int(total or 0) for txn_type, total in self.session.execute(stmt)
        }
        return MonthTotals(
            month,
            totals.get(TransactionType.income, 0),
            totals.get(TransactionType.expense, 0),
        )

    def recompute_month(self, month: str) -> MonthlyFinanceData:
        totals = self.ledger_totals(month)
        row = self._upsert(month)
        row.income_total_cents = totals.income_cents
        row.expense_total_cents = totals.expense_cents
        self.session.flush()
        return row

    def _apply(self, month: str, txn_type: TransactionType, delta: int) -> None:
        row = self._upsert(month)
        if txn_type == TransactionType.income:
            row.income_total_cents = max(0, row.income_total_cents + delta)
        else:
            row.expense_total_cents = max(0, row.expense_total_cents + delta)
        self.session.flush()

    def record_insert(self, txn: Transaction) -> None:
        if self.strategy == "recompute":
            self.recompute_month(txn.month)
        else:
            self._apply(txn.month, txn.type, txn.amount_cents)

    def record_delete(
        self, month: str, txn_type: TransactionType, amount_cents: int
    ) -> None:
        if self.strategy == "recompute":
            self.recompute_month(month)
        else:
            self._apply(month, txn_type, -amount_cents)

    def remove(self, txn: Transaction) -> None:
        """Delete ``txn`` and take it out of its month's totals."""
        month, txn_type, amount = txn.month, txn.type, txn.amount_cents
        self.session.delete(txn)
        self.session.flush()
        self.record_delete(month, txn_type, amount)

    def record_update(
        self,
        old_month: str,
        old_type: TransactionType,
        old_amount_cents: int,
        txn: Transaction,
    ) -> None:
        if self.strategy == "recompute":
            for month in sorted({old_month, txn.month}):
                self.recompute_month(month)
            return
        self._apply(old_month, old_type, -old_amount_cents)
        self._apply(txn.month, txn.type, txn.amount_cents)

    def month_totals(self, month: str) -> MonthTotals:
        require_month(month)
        row = self._row(month)
        if row is None:
            return self.ledger_totals(month)
        return MonthTotals(month, row.income_total_cents, row.expense_total_cents)

    def trailing_window(
        self, today: Optional[date] = None, months: Optional[int] = None
    ) -> list[MonthTotals]:
        today = today or local_today()
        count = months or get_settings().rollup_window_months
        return [self.ledger_totals(month) for month in trailing_months(today, count)]

    def persist_current_month(self, today: Optional[date] = None) -> MonthlyFinanceData:
        month = month_key(today or local_today())
        row = self.recompute_month(month)
        self.session.commit()
        logger.info(
            "rollup_persisted: user_id=%s month=%s income=%s expense=%s",
            self.user_id,
            month,
            row.income_total_cents,
            row.expense_total_cents,
        )
        return row

    def rebuild(self) -> int:
        self.session.execute(
            delete(MonthlyFinanceData).where(MonthlyFinanceData.user_id == self.user_id)
        )
        self.session.flush()
        dates = self.session.scalars(
            select(Transaction.date)
            .where(Transaction.user_id == self.user_id)
            .distinct()
        ).all()
        months = sorted({month_key(d) for d in dates})
        for month in months:
            self.recompute_month(month)
        self.session.commit()
        logger.info("rollup_rebuilt: user_id=%s months=%s", self.user_id, len(months))
        return len(months)


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    query: Optional[str] = None
    recurring_expense_id: Optional[int] = None
    goal_id: Optional[int] = None


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_links(self, data: TransactionIn) -> None:
        links = (
            (data.is_recurring_payment, data.recurring_expense_id, "recurring payment"),
            (data.is_goal_contribution, data.goal_id, "goal contribution"),
            (
                data.is_investment_contribution,
                data.investment_id,
                "investment contribution",
            ),
        )
        for flag, linked_id, label in links:
            if flag and linked_id is None:
                raise ValidationError(f"A {label} must reference its source")
            if linked_id is not None and not flag:
                raise ValidationError(f"Reference set without the {label} flag")
        if data.recurring_expense_id is not None:
            expense = self.session.get(RecurringExpense, data.recurring_expense_id)
            if not expense or expense.user_id != self.user_id:
                raise NotFoundError("Recurring expense not found")
        if data.goal_id is not None:
            goal = self.session.get(Goal, data.goal_id)
            if not goal or goal.user_id != self.user_id:
                raise NotFoundError("Goal not found")
        if data.investment_id is not None:
            investment = self.session.get(Investment, data.investment_id)
            if not investment or investment.user_id != self.user_id:
                raise NotFoundError("Investment not found")

    def create(self, data: TransactionIn) -> Transaction:
        self._check_links(data)
        txn = Transaction(user_id=self.user_id, **data.model_dump())
        self.session.add(txn)
        self.session.flush()
        MonthlyAggregateService(self.session, self.user_id).record_insert(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        if txn.is_recurring_payment:
            raise ValidationError(
                "Recurring payments are managed from their recurring expense"
            )
        self._check_links(data)
        old_month = txn.month
        old_type = txn.type
        old_amount = txn.amount_cents
        for name, value in data.model_dump().items():
            setattr(txn, name, value)
        self.session.flush()
        MonthlyAggregateService(self.session, self.user_id).record_update(
            old_month, old_type, old_amount, txn
        )
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        if txn.is_goal_contribution:
            goals = GoalService(self.session, self.user_id)
            goals.delete_goal_contribution_transaction(txn.id)
            return
        if txn.is_recurring_payment and txn.recurring_expense_id is not None:
            engine = RecurringPaymentEngine(self.session, self.user_id)
            if engine.is_paid(txn.recurring_expense_id, txn.month):
                result = engine.mark_paid(txn.recurring_expense_id, txn.month, False)
                if result.skipped == "in_progress":
                    raise ValidationError("Payment is being updated, try again")
                return
        MonthlyAggregateService(self.session, self.user_id).remove(txn)
        self.session.commit()

    def list(
        self,
        period: Optional[Period] = None,
        filters: Optional[TransactionFilters] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        stmt = select(Transaction).where(Transaction.user_id == self.user_id)
        if period:
            stmt = stmt.where(Transaction.date.between(period.start, period.end))
        if filters:
            if filters.type:
                stmt = stmt.where(Transaction.type == filters.type)
            if filters.category:
                stmt = stmt.where(Transaction.category == filters.category)
            if filters.recurring_expense_id is not None:
                stmt = stmt.where(
                    Transaction.recurring_expense_id == filters.recurring_expense_id
                )
            if filters.goal_id is not None:
                stmt = stmt.where(Transaction.goal_id == filters.goal_id)
            if filters.query:
                like = f"%{filters.query.lower()}%"
                stmt = stmt.where(
                    or_(
                        func.lower(Transaction.description).like(like),
                        func.lower(Transaction.category).like(like),
                    )
                )
        stmt = stmt.order_by(Transaction.date.desc(), Transaction.id.desc())
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt).all())


@dataclass
class DueReminder:
    expense_id: int
    description: str
    due_date: date
    amount_cents: Optional[int]
    urgency: str


class RecurringExpenseService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.engine = RecurringPaymentEngine(session, self.user_id)

    def get(self, expense_id: int) -> RecurringExpense:
        expense = self.engine.get_expense(expense_id)
        if expense is None:
            raise NotFoundError("Recurring expense not found")
        return expense

    def list(self) -> list[RecurringExpense]:
        stmt = (
            select(RecurringExpense)
            .where(RecurringExpense.user_id == self.user_id)
            .order_by(RecurringExpense.due_day, RecurringExpense.id)
        )
        return list(self.session.scalars(stmt).all())

    def create(self, data: RecurringExpenseIn) -> RecurringExpense:
        expense = RecurringExpense(user_id=self.user_id, **data.model_dump())
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: int, data: RecurringExpenseIn) -> RecurringExpense:
        expense = self.get(expense_id)
        for name, value in data.model_dump().items():
            setattr(expense, name, value)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def delete(self, expense_id: int) -> int:
        """Delete the expense together with every payment transaction it generated."""
        expense = self.get(expense_id)
        linked = list(
            self.session.scalars(
                select(Transaction).where(
                    Transaction.user_id == self.user_id,
                    Transaction.recurring_expense_id == expense.id,
                )
            ).all()
        )
        aggregates = MonthlyAggregateService(self.session, self.user_id)
        for txn in linked:
            aggregates.remove(txn)
        self.session.delete(expense)
        self.session.commit()
        logger.info(
            "recurring_deleted: expense_id=%s removed_txns=%s", expense_id, len(linked)
        )
        return len(linked)

    def get_monthly_expense_value(self, expense_id: int, month: str) -> Optional[int]:
        return self.engine.monthly_value(expense_id, month)

    def set_monthly_expense_value(
        self, expense_id: int, month: str, value_cents: Optional[int]
    ) -> RecurringExpense:
        require_month(month)
        if value_cents is not None and value_cents < 0:
            raise ValidationError("Monthly value cannot be negative")
        expense = self.get(expense_id)
        values = expense.monthly_values
        if value_cents is None:
            values.pop(month, None)
        else:
            values[month] = int(value_cents)
        expense.monthly_values = values
        self.session.commit()
        logger.info(
            "recurring_monthly_value: expense_id=%s month=%s value_cents=%s",
            expense_id,
            month,
            value_cents,
        )
        return expense

    def mark_recurring_expense_as_paid(
        self, expense_id: int, month: str, paid: bool
    ) -> PaymentToggleResult:
        return self.engine.mark_paid(expense_id, month, paid)

    def is_recurring_expense_paid(self, expense_id: int, month: str) -> bool:
        return self.engine.is_paid(expense_id, month)

    def due_status(self, today: Optional[date] = None) -> list[DueReminder]:
        today = today or local_today()
        month = month_key(today)
        soon = get_settings().due_soon_days
        reminders: list[DueReminder] = []
        for expense in self.list():
            if month in expense.paid_months:
                continue
            due = due_date_for_month(expense, month)
            days_left = (due - today).days
            if days_left < 0:
                urgency = "overdue"
            elif days_left == 0:
                urgency = "due_today"
            elif days_left <= soon:
                urgency = "due_soon"
            else:
                continue
            reminders.append(
                DueReminder(
                    expense_id=expense.id,
                    description=expense.description,
                    due_date=due,
                    amount_cents=self.engine.monthly_value(expense.id, month),
                    urgency=urgency,
                )
            )
        return reminders


class GoalService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, goal_id: int) -> Goal:
        goal = self.session.get(Goal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise NotFoundError("Goal not found")
        return goal

    def list(self) -> list[Goal]:
        stmt = (
            select(Goal)
            .where(Goal.user_id == self.user_id)
            .order_by(Goal.target_date, Goal.id)
        )
        return list(self.session.scalars(stmt).all())

    def create(self, data: GoalIn) -> Goal:
        goal = Goal(user_id=self.user_id, **data.model_dump())
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def edit(self, goal_id: int, data: GoalIn) -> Goal:
        goal = self.get(goal_id)
        for name, value in data.model_dump().items():
            setattr(goal, name, value)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()

    def _insert(self, txn: Transaction) -> Transaction:
        self.session.add(txn)
        self.session.flush()
        MonthlyAggregateService(self.session, self.user_id).record_insert(txn)
        return txn

    def _remove(self, txn: Transaction) -> None:
        MonthlyAggregateService(self.session, self.user_id).remove(txn)

    def _adjust(self, goal: Goal, delta: int) -> None:
        goal.current_amount_cents = max(0, goal.current_amount_cents + delta)
        self.session.flush()

    def submit_goal_contribution(
        self,
        goal_id: int,
        amount_cents: int,
        on_date: Optional[date] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> Transaction:
        if amount_cents <= 0:
            raise ValidationError("Contribution amount must be positive")
        goal = self.get(goal_id)
        txn = Transaction(
            user_id=self.user_id,
            date=on_date or local_today(),
            description=f"Contribuição para meta: {goal.name}",
            category=GOAL_CONTRIBUTION_CATEGORY,
            amount_cents=amount_cents,
            type=TransactionType.expense,
            payment_method=payment_method,
            is_goal_contribution=True,
            goal_id=goal.id,
        )
        saga = Saga(f"goal_contribution:{goal.id}")
        saga.step(
            "create_contribution_transaction",
            committed(self.session, lambda: self._insert(txn)),
            committed(self.session, lambda: self._remove(txn)),
        )
        saga.step(
            "increment_goal_amount",
            committed(self.session, lambda: self._adjust(goal, amount_cents)),
        )
        saga.run()
        logger.info(
            "goal_contribution: goal_id=%s amount_cents=%s txn_id=%s",
            goal.id,
            amount_cents,
            txn.id,
        )
        return txn

    def withdraw_goal_contribution(
        self,
        goal_id: int,
        amount_cents: int,
        on_date: Optional[date] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> Transaction:
        if amount_cents <= 0:
            raise ValidationError("Withdrawal amount must be positive")
        goal = self.get(goal_id)
        if amount_cents > goal.current_amount_cents:
            raise ValidationError("Withdrawal exceeds the amount saved for this goal")
        txn = Transaction(
            user_id=self.user_id,
            date=on_date or local_today(),
            description=f"Resgate da meta: {goal.name}",
            category=GOAL_WITHDRAWAL_CATEGORY,
            amount_cents=amount_cents,
            type=TransactionType.income,
            payment_method=payment_method,
        )
        saga = Saga(f"goal_withdrawal:{goal.id}")
        saga.step(
            "create_withdrawal_transaction",
            committed(self.session, lambda: self._insert(txn)),
            committed(self.session, lambda: self._remove(txn)),
        )
        saga.step(
            "decrement_goal_amount",
            committed(self.session, lambda: self._adjust(goal, -amount_cents)),
        )
        saga.run()
        logger.info(
            "goal_withdrawal: goal_id=%s amount_cents=%s txn_id=%s",
            goal.id,
            amount_cents,
            txn.id,
        )
        return txn

    def delete_goal_contribution_transaction(self, transaction_id: int) -> None:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id or not txn.is_goal_contribution:
            raise NotFoundError("Goal contribution not found")
        goal = self.session.get(Goal, txn.goal_id) if txn.goal_id else None
        if goal is not None and goal.user_id != self.user_id:
            goal = None
        amount = txn.amount_cents
        goal_id = txn.goal_id

        saga = Saga(f"goal_contribution_delete:{transaction_id}")
        if goal is not None:
            before = goal.current_amount_cents
            saga.step(
                "decrement_goal_amount",
                committed(self.session, lambda: self._adjust(goal, -amount)),
                committed(
                    self.session,
                    lambda: self._adjust(goal, before - goal.current_amount_cents),
                ),
            )
        saga.step(
            "delete_contribution_transaction",
            committed(self.session, lambda: self._remove(txn)),
        )
        saga.run()
        logger.info(
            "goal_contribution_deleted: txn_id=%s goal_id=%s amount_cents=%s",
            transaction_id,
            goal_id,
            amount,
        )


class InvestmentService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, investment_id: int) -> Investment:
        investment = self.session.get(Investment, investment_id)
        if not investment or investment.user_id != self.user_id:
            raise NotFoundError("Investment not found")
        return investment

    def list(self) -> list[Investment]:
        stmt = (
            select(Investment)
            .where(Investment.user_id == self.user_id)
            .order_by(Investment.start_date, Investment.id)
        )
        return list(self.session.scalars(stmt).all())

    def _validate(self, data: InvestmentIn) -> None:
        if data.paid_installments > data.installments:
            raise ValidationError("Paid installments cannot exceed installments")

    def create(self, data: InvestmentIn) -> Investment:
        self._validate(data)
        investment = Investment(user_id=self.user_id, **data.model_dump())
        self.session.add(investment)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def update(self, investment_id: int, data: InvestmentIn) -> Investment:
        self._validate(data)
        investment = self.get(investment_id)
        for name, value in data.model_dump().items():
            setattr(investment, name, value)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def delete(self, investment_id: int) -> None:
        investment = self.get(investment_id)
        self.session.delete(investment)
        self.session.commit()

    def submit_investment_contribution(
        self,
        investment_id: int,
        amount_cents: int,
        on_date: Optional[date] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> Transaction:
        if amount_cents <= 0:
            raise ValidationError("Contribution amount must be positive")
        investment = self.get(investment_id)
        txn = Transaction(
            user_id=self.user_id,
            date=on_date or local_today(),
            description=f"Aporte em investimento: {investment.name}",
            category=INVESTMENT_CATEGORY,
            amount_cents=amount_cents,
            type=TransactionType.expense,
            payment_method=payment_method,
            is_investment_contribution=True,
            investment_id=investment.id,
        )
        self.session.add(txn)
        self.session.flush()
        MonthlyAggregateService(self.session, self.user_id).record_insert(txn)
        self.session.commit()
        logger.info(
            "investment_contribution: investment_id=%s amount_cents=%s txn_id=%s",
            investment.id,
            amount_cents,
            txn.id,
        )
        return txn

    def update_paid_installments(self, investment_id: int, count: int) -> Investment:
        investment = self.get(investment_id)
        investment.paid_installments = min(max(count, 0), investment.installments)
        self.session.commit()
        return investment


class CustomCategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    @staticmethod
    def with_prefix(name: str) -> str:
        name = name.strip()
        if not name or name.startswith(CUSTOM_PREFIX):
            return name
        return f"{CUSTOM_PREFIX}{name}"

    def list(self, txn_type: Optional[TransactionType] = None) -> list[CustomCategory]:
        if self.user_id is None:
            return []
        stmt = select(CustomCategory).where(CustomCategory.user_id == self.user_id)
        if txn_type:
            stmt = stmt.where(CustomCategory.type == txn_type)
        return list(self.session.scalars(stmt.order_by(CustomCategory.name)).all())

    def _find(self, txn_type: TransactionType, name: str) -> Optional[CustomCategory]:
        return self.session.scalar(
            select(CustomCategory).where(
                CustomCategory.user_id == self.user_id,
                CustomCategory.type == txn_type,
                CustomCategory.name == name,
            )
        )

    def _name_taken(
        self, txn_type: TransactionType, name: str, exclude_id: Optional[int] = None
    ) -> bool:
        stmt = select(CustomCategory.id).where(
            CustomCategory.user_id == self.user_id,
            CustomCategory.type == txn_type,
            func.lower(CustomCategory.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(CustomCategory.id != exclude_id)
        return self.session.scalar(stmt) is not None

    def in_use(self, name: str) -> bool:
        used_by_txn = exists().where(
            Transaction.user_id == self.user_id, Transaction.category == name
        )
        used_by_recurring = exists().where(
            RecurringExpense.user_id == self.user_id, RecurringExpense.category == name
        )
        return bool(self.session.scalar(select(or_(used_by_txn, used_by_recurring))))

    def add_custom_category(self, txn_type: TransactionType, name: str) -> bool:
        if self.user_id is None:
            logger.warning("category_add_rejected: reason=unauthenticated")
            return False
        full_name = self.with_prefix(name or "")
        if not full_name or full_name == CUSTOM_PREFIX.strip():
            logger.info("category_add_rejected: reason=empty_name")
            return False
        if self._name_taken(txn_type, full_name):
            logger.info(
                "category_add_rejected: reason=duplicate type=%s name=%s",
                txn_type.value,
                full_name,
            )
            return False
        self.session.add(
            CustomCategory(user_id=self.user_id, type=txn_type, name=full_name)
        )
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info(
                "category_add_rejected: reason=constraint type=%s name=%s",
                txn_type.value,
                full_name,
            )
            return False
        logger.info("category_added: type=%s name=%s", txn_type.value, full_name)
        return True

    def delete_custom_category(self, txn_type: TransactionType, name: str) -> bool:
        if self.user_id is None:
            return False
        full_name = self.with_prefix(name or "")
        category = self._find(txn_type, full_name)
        if category is None:
            return False
        if self.in_use(full_name):
            logger.info("category_delete_rejected: reason=in_use name=%s", full_name)
            return False
        self.session.delete(category)
        self.session.commit()
        logger.info("category_deleted: type=%s name=%s", txn_type.value, full_name)
        return True

    def edit_custom_category(
        self, txn_type: TransactionType, old_name: str, new_name: str
    ) -> bool:
        if self.user_id is None:
            return False
        old_full = self.with_prefix(old_name or "")
        new_full = self.with_prefix(new_name or "")
        if not new_full or new_full == CUSTOM_PREFIX.strip():
            return False
        category = self._find(txn_type, old_full)
        if category is None:
            return False
        if old_full == new_full:
            return True
        if self._name_taken(txn_type, new_full, exclude_id=category.id):
            logger.info("category_edit_rejected: reason=duplicate name=%s", new_full)
            return False

        def rename_registry() -> None:
            category.name = new_full
            self.session.flush()

        def rename_transactions() -> int:
            result = self.session.execute(
                update(Transaction)
                .where(
                    Transaction.user_id == self.user_id,
                    Transaction.type == txn_type,
                    Transaction.category == old_full,
                )
                .values(category=new_full)
            )
            return result.rowcount

        def rename_recurring() -> int:
            result = self.session.execute(
                update(RecurringExpense)
                .where(
                    RecurringExpense.user_id == self.user_id,
                    RecurringExpense.category == old_full,
                )
                .values(category=new_full)
            )
            return result.rowcount

        saga = Saga(f"category_rename:{category.id}")
        saga.step("rename_category", committed(self.session, rename_registry))
        saga.step("rename_transactions", committed(self.session, rename_transactions))
        if txn_type == TransactionType.expense:
            saga.step(
                "rename_recurring_expenses", committed(self.session, rename_recurring)
            )
        try:
            outcome = saga.run()
        except SagaStepFailed:
            logger.exception("category_edit_failed: name=%s", old_full)
            return False
        logger.info(
            "category_renamed: type=%s old=%s new=%s txns=%s recurring=%s",
            txn_type.value,
            old_full,
            new_full,
            outcome.get("rename_transactions", 0),
            outcome.get("rename_recurring_expenses", 0),
        )
        return True


class AssetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, asset_id: int) -> Asset:
        asset = self.session.get(Asset, asset_id)
        if not asset or asset.user_id != self.user_id:
            raise NotFoundError("Asset not found")
        return asset

    def list(self) -> list[Asset]:
        stmt = select(Asset).where(Asset.user_id == self.user_id).order_by(Asset.name)
        return list(self.session.scalars(stmt).all())

    def create(self, data: AssetIn) -> Asset:
        asset = Asset(user_id=self.user_id, **data.model_dump())
        self.session.add(asset)
        self.session.commit()
        self.session.refresh(asset)
        return asset

    def update(self, asset_id: int, data: AssetIn) -> Asset:
        asset = self.get(asset_id)
        for name, value in data.model_dump().items():
            setattr(asset, name, value)
        self.session.commit()
        self.session.refresh(asset)
        return asset

    def delete(self, asset_id: int) -> None:
        self.session.delete(self.get(asset_id))
        self.session.commit()

    def total_cents(self) -> int:
        stmt = select(func.coalesce(func.sum(Asset.value_cents), 0)).where(
            Asset.user_id == self.user_id
        )
        return int(self.session.execute(stmt).scalar_one() or 0)


class LiabilityService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, liability_id: int) -> Liability:
        liability = self.session.get(Liability, liability_id)
        if not liability or liability.user_id != self.user_id:
            raise NotFoundError("Liability not found")
        return liability

    def list(self) -> list[Liability]:
        stmt = (
            select(Liability)
            .where(Liability.user_id == self.user_id)
            .order_by(Liability.name)
        )
        return list(self.session.scalars(stmt).all())

    def create(self, data: LiabilityIn) -> Liability:
        liability = Liability(user_id=self.user_id, **data.model_dump())
        self.session.add(liability)
        self.session.commit()
        self.session.refresh(liability)
        return liability

    def update(self, liability_id: int, data: LiabilityIn) -> Liability:
        liability = self.get(liability_id)
        for name, value in data.model_dump().items():
            setattr(liability, name, value)
        self.session.commit()
        self.session.refresh(liability)
        return liability

    def delete(self, liability_id: int) -> None:
        self.session.delete(self.get(liability_id))
        self.session.commit()

    def total_cents(self) -> int:
        stmt = select(func.coalesce(func.sum(Liability.value_cents), 0)).where(
            Liability.user_id == self.user_id
        )
        return int(self.session.execute(stmt).scalar_one() or 0)


class SupplierService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, supplier_id: int) -> Supplier:
        supplier = self.session.get(Supplier, supplier_id)
        if not supplier or supplier.user_id != self.user_id:
            raise NotFoundError("Supplier not found")
        return supplier

    def get_by_document(self, document: str) -> Optional[Supplier]:
        digits = "".join(ch for ch in document if ch.isdigit())
        return self.session.scalar(
            select(Supplier).where(
                Supplier.user_id == self.user_id, Supplier.document == digits
            )
        )

    def list(self) -> list[Supplier]:
        stmt = (
            select(Supplier)
            .where(Supplier.user_id == self.user_id)
            .order_by(Supplier.name)
        )
        return list(self.session.scalars(stmt).all())

    def create(self, data: SupplierIn) -> Supplier:
        if self.get_by_document(data.document):
            raise ValidationError("A supplier with this document already exists")
        supplier = Supplier(user_id=self.user_id, **data.model_dump())
        self.session.add(supplier)
        self.session.commit()
        self.session.refresh(supplier)
        return supplier

    def update(self, supplier_id: int, data: SupplierIn) -> Supplier:
        supplier = self.get(supplier_id)
        other = self.get_by_document(data.document)
        if other is not None and other.id != supplier.id:
            raise ValidationError("A supplier with this document already exists")
        for name, value in data.model_dump().items():
            setattr(supplier, name, value)
        self.session.commit()
        self.session.refresh(supplier)
        return supplier

    def delete(self, supplier_id: int) -> None:
        self.session.delete(self.get(supplier_id))
        self.session.commit()


@dataclass
class CSVImportResult:
    imported: int = 0
    errors: list[str] = field(default_factory=list)


class CSVService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def import_csv(self, content: str) -> CSVImportResult:
        rows, errors = parse_csv(content)
        result = CSVImportResult(errors=errors)
        if not rows:
            return result
        months: set[str] = set()
        for row in rows:
            txn = Transaction(
                user_id=self.user_id,
                date=row.date,
                type=row.type,
                amount_cents=row.amount_cents,
                category=row.category,
                description=row.description,
                source="csv",
            )
            self.session.add(txn)
            months.add(month_key(row.date))
        self.session.flush()
        aggregates = MonthlyAggregateService(self.session, self.user_id, "recompute")
        for month in sorted(months):
            aggregates.recompute_month(month)
        self.session.commit()
        result.imported = len(rows)
        logger.info(
            "csv_import: imported=%s rejected=%s months=%s",
            result.imported,
            len(errors),
            ",".join(sorted(months)),
        )
        return result
