"""initial finances schema

Revision ID: 202501150900
Revises:
Create Date: 2025-01-15 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202501150900"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPE = sa.Enum("income", "expense", name="transactiontype")
PAYMENT_METHOD = sa.Enum(
    "cash",
    "credit_card",
    "debit_card",
    "bank_transfer",
    "pix",
    "other",
    name="paymentmethod",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "recurring_expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=150), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("due_day", sa.Integer(), nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD),
        sa.Column("repeat_months", sa.Integer(), nullable=False, server_default="12"),
        sa.Column(
            "monthly_values_json", sa.Text(), nullable=False, server_default="{}"
        ),
        sa.Column("paid_months_json", sa.Text(), nullable=False, server_default="[]"),
        *_timestamps(),
        sa.CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_recurring_due_day"),
        sa.CheckConstraint("amount_cents >= 0", name="ck_recurring_amount_positive"),
    )
    op.create_index("ix_recurring_user", "recurring_expenses", ["user_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=150), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD),
        sa.Column("source", sa.String(length=120)),
        sa.Column(
            "is_recurring_payment", sa.Boolean(), nullable=False, server_default="0"
        ),
        sa.Column(
            "is_goal_contribution", sa.Boolean(), nullable=False, server_default="0"
        ),
        sa.Column(
            "is_investment_contribution",
            sa.Boolean(),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "recurring_expense_id",
            sa.Integer(),
            sa.ForeignKey("recurring_expenses.id"),
        ),
        sa.Column("goal_id", sa.Integer()),
        sa.Column("investment_id", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_category", "transactions", ["user_id", "category"]
    )
    op.create_index(
        "ix_transactions_user_type_date", "transactions", ["user_id", "type", "date"]
    )
    op.create_index(
        "ix_transactions_recurring_date",
        "transactions",
        ["user_id", "recurring_expense_id", "date"],
    )
    op.create_index("ix_transactions_user_goal", "transactions", ["user_id", "goal_id"])

    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("target_amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "current_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column("saving_location", sa.String(length=120)),
        *_timestamps(),
        sa.CheckConstraint("target_amount_cents >= 0", name="ck_goal_target_positive"),
        sa.CheckConstraint(
            "current_amount_cents >= 0", name="ck_goal_current_positive"
        ),
    )

    op.create_table(
        "investments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("type", sa.String(length=80), nullable=False),
        sa.Column("value_cents", sa.Integer(), nullable=False),
        sa.Column("installments", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("installment_value_cents", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column(
            "paid_installments", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("description", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("installments >= 1", name="ck_investment_installments"),
        sa.CheckConstraint(
            "paid_installments >= 0 AND paid_installments <= installments",
            name="ck_investment_paid_installments",
        ),
    )

    op.create_table(
        "monthly_finance_data",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column(
            "income_total_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "expense_total_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "month", name="uq_monthly_finance_user_month"),
    )

    op.create_table(
        "custom_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_custom_category_user_type_name"
        ),
    )

    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("type", sa.String(length=80), nullable=False),
        sa.Column("value_cents", sa.Integer(), nullable=False),
        sa.Column("evaluation_date", sa.Date()),
        sa.Column("acquisition_value_cents", sa.Integer()),
        sa.Column("acquisition_date", sa.Date()),
        sa.Column("insured", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("location", sa.String(length=120)),
        sa.Column("notes", sa.Text()),
        sa.Column("symbol", sa.String(length=20)),
        sa.Column("quantity", sa.String(length=40)),
        sa.Column("wallet", sa.String(length=120)),
        *_timestamps(),
    )

    op.create_table(
        "liabilities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("type", sa.String(length=80), nullable=False),
        sa.Column("value_cents", sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("document", sa.String(length=20), nullable=False),
        sa.Column("is_company", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("state_registration", sa.String(length=40)),
        sa.Column("street", sa.String(length=150)),
        sa.Column("number", sa.String(length=20)),
        sa.Column("complement", sa.String(length=80)),
        sa.Column("district", sa.String(length=80)),
        sa.Column("city", sa.String(length=80)),
        sa.Column("state", sa.String(length=2)),
        sa.Column("zip_code", sa.String(length=12)),
        sa.Column("phone", sa.String(length=30)),
        sa.Column("email", sa.String(length=120)),
        sa.Column("contact_person", sa.String(length=120)),
        sa.Column("product_type", sa.String(length=80), nullable=False),
        sa.Column("payment_terms", sa.String(length=120)),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "document", name="uq_supplier_user_document"),
    )


def downgrade():
    op.drop_table("suppliers")
    op.drop_table("liabilities")
    op.drop_table("assets")
    op.drop_table("custom_categories")
    op.drop_table("monthly_finance_data")
    op.drop_table("investments")
    op.drop_table("goals")
    op.drop_index("ix_transactions_user_goal", table_name="transactions")
    op.drop_index("ix_transactions_recurring_date", table_name="transactions")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_index("ix_transactions_user_category", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_recurring_user", table_name="recurring_expenses")
    op.drop_table("recurring_expenses")
