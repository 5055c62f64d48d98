from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import MonthlyFinanceData, Transaction, TransactionType
from schemas import TransactionIn
from services import MonthlyAggregateService, TransactionService


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _txn(
    txn_type: TransactionType, amount: int, on: date, description: str = "Item"
) -> TransactionIn:
    return TransactionIn(
        date=on,
        description=description,
        category="Geral",
        amount_cents=amount,
        type=txn_type,
    )


def _row(session: Session, month: str) -> MonthlyFinanceData:
    return session.scalar(
        select(MonthlyFinanceData).where(MonthlyFinanceData.month == month)
    )


@pytest.mark.parametrize("strategy", ["recompute", "incremental"])
def test_ledger_mutations_keep_month_totals_current(strategy, configure):
    configure(rollup_strategy=strategy)
    with _session() as session:
        service = TransactionService(session, 1)
        service.create(_txn(TransactionType.income, 100000, date(2025, 3, 1)))
        expense = service.create(_txn(TransactionType.expense, 30000, date(2025, 3, 9)))

        row = _row(session, "2025-03")
        assert (row.income_total_cents, row.expense_total_cents) == (100000, 30000)

        moved = _txn(TransactionType.expense, 30000, date(2025, 4, 2))
        service.update(expense.id, moved)
        assert _row(session, "2025-03").expense_total_cents == 0
        assert _row(session, "2025-04").expense_total_cents == 30000

        service.delete(expense.id)
        april = _row(session, "2025-04")
        # Emptied months keep a zero row.
        assert (april.income_total_cents, april.expense_total_cents) == (0, 0)


def test_month_totals_report_balance_and_saving_rate():
    with _session() as session:
        service = TransactionService(session, 1)
        service.create(_txn(TransactionType.income, 100000, date(2025, 3, 1)))
        service.create(_txn(TransactionType.expense, 30000, date(2025, 3, 9)))

        totals = MonthlyAggregateService(session, 1).month_totals("2025-03")

        assert totals.balance_cents == 70000
        assert totals.saving_rate == pytest.approx(70.0)
        assert totals.as_dict()["saving_rate"] == 70.0


def test_saving_rate_is_zero_without_income():
    with _session() as session:
        TransactionService(session, 1).create(
            _txn(TransactionType.expense, 500, date(2025, 3, 9))
        )
        totals = MonthlyAggregateService(session, 1).month_totals("2025-03")
        assert totals.saving_rate == 0.0
        assert totals.balance_cents == -500


def test_incremental_delete_is_floored_at_zero(configure):
    configure(rollup_strategy="incremental")
    with _session() as session:
        service = TransactionService(session, 1)
        txn = service.create(_txn(TransactionType.expense, 500, date(2025, 3, 9)))
        _row(session, "2025-03").expense_total_cents = 100
        session.commit()

        service.delete(txn.id)

        assert _row(session, "2025-03").expense_total_cents == 0


def test_trailing_window_is_computed_without_persisting():
    with _session() as session:
        session.add_all(
            [
                Transaction(
                    user_id=1,
                    date=date(2025, 1, 15),
                    description="Salário",
                    category="Salário",
                    amount_cents=500000,
                    type=TransactionType.income,
                ),
                Transaction(
                    user_id=1,
                    date=date(2025, 3, 2),
                    description="Mercado",
                    category="Alimentação",
                    amount_cents=45000,
                    type=TransactionType.expense,
                ),
            ]
        )
        session.commit()

        window = MonthlyAggregateService(session, 1).trailing_window(
            date(2025, 3, 20), 3
        )

        assert [item.month for item in window] == ["2025-01", "2025-02", "2025-03"]
        assert window[0].income_cents == 500000
        assert window[1].income_cents == 0
        assert window[2].expense_cents == 45000
        assert session.scalars(select(MonthlyFinanceData)).all() == []


def test_rebuild_and_persist_current_month():
    with _session() as session:
        for day, amount in ((date(2024, 12, 3), 1000), (date(2025, 2, 3), 2000)):
            session.add(
                Transaction(
                    user_id=1,
                    date=day,
                    description="Conta",
                    category="Contas",
                    amount_cents=amount,
                    type=TransactionType.expense,
                )
            )
        session.commit()
        aggregates = MonthlyAggregateService(session, 1)

        assert aggregates.rebuild() == 2
        assert _row(session, "2024-12").expense_total_cents == 1000
        assert _row(session, "2025-02").expense_total_cents == 2000

        row = aggregates.persist_current_month(date(2025, 5, 10))
        assert row.month == "2025-05"
        assert (row.income_total_cents, row.expense_total_cents) == (0, 0)
        assert len(session.scalars(select(MonthlyFinanceData)).all()) == 3
