from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

import recurrence
from database import Base
from errors import NotFoundError, ValidationError
from models import PaymentMethod, RecurringExpense, Transaction, TransactionType
from recurrence import RecurringPaymentEngine
from saga import SagaStepFailed
from schemas import RecurringExpenseIn, TransactionIn
from services import RecurringExpenseService, TransactionService


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _expense(session: Session, **overrides) -> RecurringExpense:
    payload = {
        "description": "Aluguel",
        "category": "Moradia",
        "amount_cents": 150000,
        "due_day": 10,
        "payment_method": PaymentMethod.pix,
    }
    payload.update(overrides)
    return RecurringExpenseService(session, 1).create(RecurringExpenseIn(**payload))


def _payments(session: Session, expense_id: int) -> list[Transaction]:
    stmt = select(Transaction).where(Transaction.recurring_expense_id == expense_id)
    return list(session.scalars(stmt).all())


def test_mark_paid_creates_single_payment_transaction():
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)

        result = service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)

        assert result.changed is True
        payments = _payments(session, expense.id)
        assert len(payments) == 1
        txn = payments[0]
        assert txn.id == result.created_transaction_id
        assert txn.date == date(2025, 3, 10)
        assert txn.description == "Aluguel (Despesa Fixa)"
        assert txn.category == "Moradia"
        assert txn.payment_method == PaymentMethod.pix
        assert txn.amount_cents == 150000
        assert txn.is_recurring_payment is True
        assert service.is_recurring_expense_paid(expense.id, "2025-03") is True
        assert service.is_recurring_expense_paid(expense.id, "2025-04") is False


def test_mark_paid_twice_keeps_one_transaction():
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)

        service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)
        again = service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)

        assert again.changed is False
        assert again.skipped == "already_recorded"
        assert len(_payments(session, expense.id)) == 1
        assert service.get(expense.id).paid_months == ["2025-03"]


def test_paid_then_unpaid_restores_prior_state():
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)

        service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)
        result = service.mark_recurring_expense_as_paid(expense.id, "2025-03", False)

        assert result.changed is True
        assert len(result.removed_transaction_ids) == 1
        assert _payments(session, expense.id) == []
        assert service.get(expense.id).paid_months == []

        noop = service.mark_recurring_expense_as_paid(expense.id, "2025-03", False)
        assert noop.skipped == "already_unpaid"

        service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)
        service.mark_recurring_expense_as_paid(expense.id, "2025-03", False)
        assert _payments(session, expense.id) == []
        assert service.get(expense.id).paid_months == []
        assert session.scalars(select(Transaction)).all() == []


def test_paid_call_repairs_missing_transaction():
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)
        service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)
        for txn in _payments(session, expense.id):
            session.delete(txn)
        session.commit()

        result = service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)

        assert result.changed is False
        assert result.created_transaction_id is not None
        assert len(_payments(session, expense.id)) == 1


def test_deleting_payment_transaction_clears_paid_month():
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)
        created = service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)

        TransactionService(session, 1).delete(created.created_transaction_id)

        assert _payments(session, expense.id) == []
        assert service.get(expense.id).paid_months == []


def test_payment_transactions_cannot_be_edited():
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)
        created = service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)
        moved = TransactionIn(
            date=date(2025, 4, 10),
            description="Aluguel (Despesa Fixa)",
            category="Moradia",
            amount_cents=150000,
            type=TransactionType.expense,
            is_recurring_payment=True,
            recurring_expense_id=expense.id,
        )

        with pytest.raises(ValidationError):
            TransactionService(session, 1).update(created.created_transaction_id, moved)

        assert _payments(session, expense.id)[0].date == date(2025, 3, 10)
        assert service.get(expense.id).paid_months == ["2025-03"]


def test_monthly_override_takes_precedence():
    with _session() as session:
        expense = _expense(session, amount_cents=10000)
        service = RecurringExpenseService(session, 1)
        service.set_monthly_expense_value(expense.id, "2025-04", 12345)

        assert service.get_monthly_expense_value(expense.id, "2025-04") == 12345
        assert service.get_monthly_expense_value(expense.id, "2025-05") == 10000
        # Reading has no side effects.
        assert service.get_monthly_expense_value(expense.id, "2025-04") == 12345

        service.mark_recurring_expense_as_paid(expense.id, "2025-04", True)
        assert _payments(session, expense.id)[0].amount_cents == 12345


def test_zero_override_marks_paid_without_transaction():
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)
        service.set_monthly_expense_value(expense.id, "2025-06", 0)

        result = service.mark_recurring_expense_as_paid(expense.id, "2025-06", True)

        assert result.skipped == "zero_amount"
        assert service.is_recurring_expense_paid(expense.id, "2025-06") is True
        assert _payments(session, expense.id) == []

        unpaid = service.mark_recurring_expense_as_paid(expense.id, "2025-06", False)

        assert unpaid.changed is True
        assert unpaid.removed_transaction_ids == []
        assert service.is_recurring_expense_paid(expense.id, "2025-06") is False
        assert session.scalars(select(Transaction)).all() == []


def test_missing_amount_is_rejected_without_changes():
    with _session() as session:
        expense = _expense(session, amount_cents=0)
        service = RecurringExpenseService(session, 1)

        assert service.get_monthly_expense_value(expense.id, "2025-03") is None
        with pytest.raises(ValidationError, match="without a defined amount"):
            service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)

        assert service.get(expense.id).paid_months == []
        assert _payments(session, expense.id) == []


def test_unknown_expense():
    with _session() as session:
        service = RecurringExpenseService(session, 1)
        assert service.get_monthly_expense_value(999, "2025-03") is None
        assert service.is_recurring_expense_paid(999, "2025-03") is False
        with pytest.raises(NotFoundError):
            service.mark_recurring_expense_as_paid(999, "2025-03", True)


def test_invalid_month_is_rejected():
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)
        with pytest.raises(ValidationError):
            service.mark_recurring_expense_as_paid(expense.id, "2025-13", True)
        with pytest.raises(ValidationError):
            service.set_monthly_expense_value(expense.id, "03/2025", 100)


@pytest.mark.parametrize(
    "month,expected",
    [
        ("2025-02", date(2025, 2, 28)),
        ("2024-02", date(2024, 2, 29)),
        ("2025-04", date(2025, 4, 30)),
        ("2025-05", date(2025, 5, 31)),
    ],
)
def test_due_day_is_clamped_into_month(month: str, expected: date):
    with _session() as session:
        expense = _expense(session, due_day=31)
        RecurringExpenseService(session, 1).mark_recurring_expense_as_paid(
            expense.id, month, True
        )
        assert _payments(session, expense.id)[0].date == expected


def test_concurrent_toggle_is_debounced():
    with _session() as session:
        expense = _expense(session)
        key = (1, expense.id, "2025-03")
        recurrence._inflight.add(key)
        try:
            result = RecurringPaymentEngine(session, 1).mark_paid(
                expense.id, "2025-03", True
            )
        finally:
            recurrence._inflight.discard(key)

        assert result.skipped == "in_progress"
        assert _payments(session, expense.id) == []


def test_set_monthly_value_none_removes_override():
    with _session() as session:
        expense = _expense(session, amount_cents=5000)
        service = RecurringExpenseService(session, 1)
        service.set_monthly_expense_value(expense.id, "2025-03", 7000)
        service.set_monthly_expense_value(expense.id, "2025-03", None)

        assert service.get(expense.id).monthly_values == {}
        assert service.get_monthly_expense_value(expense.id, "2025-03") == 5000
        with pytest.raises(ValidationError):
            service.set_monthly_expense_value(expense.id, "2025-03", -1)


def test_override_after_payment_leaves_transaction_untouched():
    with _session() as session:
        expense = _expense(session, amount_cents=5000)
        service = RecurringExpenseService(session, 1)
        service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)
        service.set_monthly_expense_value(expense.id, "2025-03", 9000)

        assert _payments(session, expense.id)[0].amount_cents == 5000


def test_delete_expense_removes_generated_transactions():
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)
        service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)
        service.mark_recurring_expense_as_paid(expense.id, "2025-04", True)

        removed = service.delete(expense.id)

        assert removed == 2
        assert session.scalars(select(Transaction)).all() == []
        with pytest.raises(NotFoundError):
            service.get(expense.id)


def test_failed_payment_step_leaves_month_marked_by_default(monkeypatch):
    def boom(self, *args, **kwargs):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(RecurringPaymentEngine, "_create_payment", boom)
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)

        with pytest.raises(SagaStepFailed) as excinfo:
            service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)

        assert excinfo.value.step == "create_payment_transaction"
        assert excinfo.value.completed == ["add_paid_month"]
        assert service.get(expense.id).paid_months == ["2025-03"]


def test_failed_payment_step_is_compensated_when_enabled(
    monkeypatch, configure
):
    configure(saga_compensate="true")

    def boom(self, *args, **kwargs):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(RecurringPaymentEngine, "_create_payment", boom)
    with _session() as session:
        expense = _expense(session)
        service = RecurringExpenseService(session, 1)

        with pytest.raises(SagaStepFailed) as excinfo:
            service.mark_recurring_expense_as_paid(expense.id, "2025-03", True)

        assert excinfo.value.compensated == ["add_paid_month"]
        assert service.get(expense.id).paid_months == []


def test_due_status_classifies_unpaid_expenses():
    with _session() as session:
        overdue = _expense(session, description="Internet", due_day=5)
        today_item = _expense(session, description="Luz", due_day=8)
        soon = _expense(session, description="Água", due_day=10)
        _expense(session, description="Escola", due_day=25)
        paid = _expense(session, description="Condomínio", due_day=3)
        service = RecurringExpenseService(session, 1)
        service.mark_recurring_expense_as_paid(paid.id, "2025-03", True)

        reminders = service.due_status(date(2025, 3, 8))

        by_id = {item.expense_id: item.urgency for item in reminders}
        assert by_id == {
            overdue.id: "overdue",
            today_item.id: "due_today",
            soon.id: "due_soon",
        }
