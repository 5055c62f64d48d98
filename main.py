import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from csrf import CSRF_HEADER, generate_csrf_token, validate_csrf_token
from database import SessionLocal
from errors import NotFoundError, ValidationError
from mode_pin import ModeService, PinValidatorUnavailable
from models import (
    Asset,
    CustomCategory,
    Goal,
    Investment,
    Liability,
    RecurringExpense,
    Supplier,
    Transaction,
    TransactionType,
)
from periods import month_key, resolve_period
from recurrence import local_today, resolve_monthly_amount
from saga import SagaStepFailed
from scheduler import SchedulerManager
from schemas import (
    AssetIn,
    ContributionIn,
    CustomCategoryIn,
    CustomCategoryRenameIn,
    GoalIn,
    InvestmentIn,
    LiabilityIn,
    MarkPaidIn,
    ModeSwitchIn,
    MonthlyValueIn,
    PaidInstallmentsIn,
    RecurringExpenseIn,
    SupplierIn,
    TransactionIn,
)
from services import (
    AssetService,
    CSVService,
    CustomCategoryService,
    GoalService,
    InvestmentService,
    LiabilityService,
    MonthlyAggregateService,
    RecurringExpenseService,
    SupplierService,
    TransactionFilters,
    TransactionService,
    display_category_name,
    get_current_user_id,
    require_month,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Finances")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def require_owner() -> int:
    owner = get_current_user_id()
    if owner is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return owner


def require_csrf(
    x_csrf_token: Optional[str] = Header(default=None, alias=CSRF_HEADER),
) -> None:
    if not validate_csrf_token(x_csrf_token, get_current_user_id()):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def notice(message: str, **extra: object) -> dict[str, object]:
    payload: dict[str, object] = {"ok": True, "message": message}
    payload.update(extra)
    return payload


def failure(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"ok": False, "message": message}
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return failure(str(exc), 400)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return failure(str(exc), 404)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return failure(str(exc), 400)


@app.exception_handler(SagaStepFailed)
async def saga_failed_handler(request: Request, exc: SagaStepFailed):
    logger.error(
        "request_failed: path=%s saga=%s step=%s completed=%s",
        request.url.path,
        exc.saga,
        exc.step,
        ",".join(exc.completed) or "-",
    )
    return failure("Operation failed", 500)


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("request_failed: path=%s store error", request.url.path)
    return failure("Operation failed", 500)


@app.exception_handler(PinValidatorUnavailable)
async def pin_unavailable_handler(request: Request, exc: PinValidatorUnavailable):
    logger.warning("pin_validator_unavailable: %s", exc)
    return failure("Operation failed", 500)


def transaction_out(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "description": txn.description,
        "category": txn.category,
        "category_display": display_category_name(txn.category),
        "amount_cents": txn.amount_cents,
        "type": txn.type.value,
        "payment_method": txn.payment_method.value if txn.payment_method else None,
        "source": txn.source,
        "is_recurring_payment": txn.is_recurring_payment,
        "is_goal_contribution": txn.is_goal_contribution,
        "is_investment_contribution": txn.is_investment_contribution,
        "recurring_expense_id": txn.recurring_expense_id,
        "goal_id": txn.goal_id,
        "investment_id": txn.investment_id,
    }


def expense_out(
    expense: RecurringExpense, month: Optional[str] = None
) -> dict[str, object]:
    data: dict[str, object] = {
        "id": expense.id,
        "description": expense.description,
        "category": expense.category,
        "category_display": display_category_name(expense.category),
        "amount_cents": expense.amount_cents,
        "due_day": expense.due_day,
        "payment_method": (
            expense.payment_method.value if expense.payment_method else None
        ),
        "repeat_months": expense.repeat_months,
        "monthly_values": expense.monthly_values,
        "paid_months": expense.paid_months,
    }
    if month:
        data["month"] = month
        data["amount_due_cents"] = resolve_monthly_amount(expense, month)
        data["paid"] = month in expense.paid_months
    return data


def goal_out(goal: Goal) -> dict[str, object]:
    progress = 0.0
    if goal.target_amount_cents > 0:
        progress = goal.current_amount_cents / goal.target_amount_cents * 100
    return {
        "id": goal.id,
        "name": goal.name,
        "target_amount_cents": goal.target_amount_cents,
        "current_amount_cents": goal.current_amount_cents,
        "target_date": goal.target_date.isoformat(),
        "saving_location": goal.saving_location,
        "progress": round(min(progress, 100.0), 2),
    }


def investment_out(investment: Investment) -> dict[str, object]:
    return {
        "id": investment.id,
        "name": investment.name,
        "type": investment.type,
        "value_cents": investment.value_cents,
        "installments": investment.installments,
        "installment_value_cents": investment.installment_value_cents,
        "start_date": investment.start_date.isoformat(),
        "paid_installments": investment.paid_installments,
        "description": investment.description,
    }


def category_out(category: CustomCategory) -> dict[str, object]:
    return {
        "id": category.id,
        "type": category.type.value,
        "name": category.name,
        "display_name": display_category_name(category.name),
    }


def asset_out(asset: Asset) -> dict[str, object]:
    return {
        "id": asset.id,
        "name": asset.name,
        "type": asset.type,
        "value_cents": asset.value_cents,
        "evaluation_date": (
            asset.evaluation_date.isoformat() if asset.evaluation_date else None
        ),
        "acquisition_value_cents": asset.acquisition_value_cents,
        "acquisition_date": (
            asset.acquisition_date.isoformat() if asset.acquisition_date else None
        ),
        "insured": asset.insured,
        "location": asset.location,
        "notes": asset.notes,
        "symbol": asset.symbol,
        "quantity": asset.quantity,
        "wallet": asset.wallet,
    }


def liability_out(liability: Liability) -> dict[str, object]:
    return {
        "id": liability.id,
        "name": liability.name,
        "type": liability.type,
        "value_cents": liability.value_cents,
    }


SUPPLIER_FIELDS = tuple(SupplierIn.model_fields)


def supplier_out(supplier: Supplier) -> dict[str, object]:
    data: dict[str, object] = {"id": supplier.id}
    for name in SUPPLIER_FIELDS:
        data[name] = getattr(supplier, name)
    return data


@app.get("/csrf-token")
def csrf_token():
    return {"token": generate_csrf_token(get_current_user_id())}


# Transactions


@app.get("/transactions")
def list_transactions(
    month: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    type: Optional[TransactionType] = None,
    category: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 200,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    period = resolve_period(month, start, end, today=local_today())
    filters = TransactionFilters(type=type, category=category, query=q)
    limit = min(max(limit, 1), 500)
    items = TransactionService(db, owner).list(period, filters, limit=limit)
    return {
        "period": {"start": period.start.isoformat(), "end": period.end.isoformat()},
        "items": [transaction_out(txn) for txn in items],
    }


@app.post("/transactions", dependencies=[Depends(require_csrf)])
def create_transaction(
    data: TransactionIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, owner).create(data)
    return notice("Transaction added", transaction=transaction_out(txn))


@app.post("/transactions/import", dependencies=[Depends(require_csrf)])
async def import_transactions(
    request: Request,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    content = (await request.body()).decode("utf-8-sig")
    result = CSVService(db, owner).import_csv(content)
    if not result.imported and result.errors:
        raise ValidationError("; ".join(result.errors))
    return notice(
        f"{result.imported} transactions imported",
        imported=result.imported,
        errors=result.errors,
    )


@app.get("/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    return transaction_out(TransactionService(db, owner).get(transaction_id))


@app.put("/transactions/{transaction_id}", dependencies=[Depends(require_csrf)])
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, owner).update(transaction_id, data)
    return notice("Transaction updated", transaction=transaction_out(txn))


@app.delete("/transactions/{transaction_id}", dependencies=[Depends(require_csrf)])
def delete_transaction(
    transaction_id: int,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    TransactionService(db, owner).delete(transaction_id)
    return notice("Transaction deleted")


# Recurring expenses


@app.get("/recurring")
def list_recurring(
    month: Optional[str] = None,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    if month:
        require_month(month)
    else:
        month = month_key(local_today())
    expenses = RecurringExpenseService(db, owner).list()
    return {"month": month, "items": [expense_out(e, month) for e in expenses]}


@app.get("/recurring/due")
def recurring_due(owner: int = Depends(require_owner), db: Session = Depends(get_db)):
    reminders = RecurringExpenseService(db, owner).due_status()
    return {
        "items": [
            {
                "expense_id": item.expense_id,
                "description": item.description,
                "due_date": item.due_date.isoformat(),
                "amount_cents": item.amount_cents,
                "urgency": item.urgency,
            }
            for item in reminders
        ]
    }


@app.post("/recurring", dependencies=[Depends(require_csrf)])
def create_recurring(
    data: RecurringExpenseIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    expense = RecurringExpenseService(db, owner).create(data)
    return notice("Recurring expense added", expense=expense_out(expense))


@app.get("/recurring/{expense_id}")
def get_recurring(
    expense_id: int,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    return expense_out(RecurringExpenseService(db, owner).get(expense_id))


@app.put("/recurring/{expense_id}", dependencies=[Depends(require_csrf)])
def update_recurring(
    expense_id: int,
    data: RecurringExpenseIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    expense = RecurringExpenseService(db, owner).update(expense_id, data)
    return notice("Recurring expense updated", expense=expense_out(expense))


@app.delete("/recurring/{expense_id}", dependencies=[Depends(require_csrf)])
def delete_recurring(
    expense_id: int,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    removed = RecurringExpenseService(db, owner).delete(expense_id)
    return notice("Recurring expense deleted", removed_transactions=removed)


@app.post("/recurring/{expense_id}/paid", dependencies=[Depends(require_csrf)])
def mark_recurring_paid(
    expense_id: int,
    data: MarkPaidIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    result = RecurringExpenseService(db, owner).mark_recurring_expense_as_paid(
        expense_id, data.month, data.paid
    )
    if result.skipped == "in_progress":
        message = "Update already in progress"
    elif data.paid:
        message = "Expense marked as paid"
    else:
        message = "Expense marked as unpaid"
    return notice(
        message,
        paid=result.paid,
        changed=result.changed,
        created_transaction_id=result.created_transaction_id,
        removed_transaction_ids=result.removed_transaction_ids,
        skipped=result.skipped,
    )


@app.get("/recurring/{expense_id}/monthly-values/{month}")
def get_monthly_value(
    expense_id: int,
    month: str,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    require_month(month)
    service = RecurringExpenseService(db, owner)
    return {
        "expense_id": expense_id,
        "month": month,
        "value_cents": service.get_monthly_expense_value(expense_id, month),
        "paid": service.is_recurring_expense_paid(expense_id, month),
    }


@app.put(
    "/recurring/{expense_id}/monthly-values/{month}",
    dependencies=[Depends(require_csrf)],
)
def set_monthly_value(
    expense_id: int,
    month: str,
    data: MonthlyValueIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    expense = RecurringExpenseService(db, owner).set_monthly_expense_value(
        expense_id, month, data.value_cents
    )
    if data.value_cents is None:
        message = "Monthly value removed"
    else:
        message = "Monthly value saved"
    return notice(message, expense=expense_out(expense, month))


# Goals


@app.get("/goals")
def list_goals(owner: int = Depends(require_owner), db: Session = Depends(get_db)):
    return {"items": [goal_out(goal) for goal in GoalService(db, owner).list()]}


@app.post("/goals", dependencies=[Depends(require_csrf)])
def create_goal(
    data: GoalIn, owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    goal = GoalService(db, owner).create(data)
    return notice("Goal added", goal=goal_out(goal))


@app.delete(
    "/goals/contributions/{transaction_id}", dependencies=[Depends(require_csrf)]
)
def delete_goal_contribution(
    transaction_id: int,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    GoalService(db, owner).delete_goal_contribution_transaction(transaction_id)
    return notice("Contribution deleted")


@app.get("/goals/{goal_id}")
def get_goal(
    goal_id: int, owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    return goal_out(GoalService(db, owner).get(goal_id))


@app.put("/goals/{goal_id}", dependencies=[Depends(require_csrf)])
def edit_goal(
    goal_id: int,
    data: GoalIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    goal = GoalService(db, owner).edit(goal_id, data)
    return notice("Goal updated", goal=goal_out(goal))


@app.delete("/goals/{goal_id}", dependencies=[Depends(require_csrf)])
def delete_goal(
    goal_id: int, owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    GoalService(db, owner).delete(goal_id)
    return notice("Goal deleted")


@app.post("/goals/{goal_id}/contributions", dependencies=[Depends(require_csrf)])
def contribute_to_goal(
    goal_id: int,
    data: ContributionIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    service = GoalService(db, owner)
    txn = service.submit_goal_contribution(
        goal_id, data.amount_cents, data.date, data.payment_method
    )
    return notice(
        "Contribution registered",
        transaction=transaction_out(txn),
        goal=goal_out(service.get(goal_id)),
    )


@app.post("/goals/{goal_id}/withdrawals", dependencies=[Depends(require_csrf)])
def withdraw_from_goal(
    goal_id: int,
    data: ContributionIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    service = GoalService(db, owner)
    txn = service.withdraw_goal_contribution(
        goal_id, data.amount_cents, data.date, data.payment_method
    )
    return notice(
        "Withdrawal registered",
        transaction=transaction_out(txn),
        goal=goal_out(service.get(goal_id)),
    )


# Investments


@app.get("/investments")
def list_investments(
    owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    items = InvestmentService(db, owner).list()
    return {"items": [investment_out(item) for item in items]}


@app.post("/investments", dependencies=[Depends(require_csrf)])
def create_investment(
    data: InvestmentIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    investment = InvestmentService(db, owner).create(data)
    return notice("Investment added", investment=investment_out(investment))


@app.get("/investments/{investment_id}")
def get_investment(
    investment_id: int,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    return investment_out(InvestmentService(db, owner).get(investment_id))


@app.put("/investments/{investment_id}", dependencies=[Depends(require_csrf)])
def update_investment(
    investment_id: int,
    data: InvestmentIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    investment = InvestmentService(db, owner).update(investment_id, data)
    return notice("Investment updated", investment=investment_out(investment))


@app.delete("/investments/{investment_id}", dependencies=[Depends(require_csrf)])
def delete_investment(
    investment_id: int,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    InvestmentService(db, owner).delete(investment_id)
    return notice("Investment deleted")


@app.post(
    "/investments/{investment_id}/contributions",
    dependencies=[Depends(require_csrf)],
)
def contribute_to_investment(
    investment_id: int,
    data: ContributionIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    txn = InvestmentService(db, owner).submit_investment_contribution(
        investment_id, data.amount_cents, data.date, data.payment_method
    )
    return notice("Contribution registered", transaction=transaction_out(txn))


@app.put(
    "/investments/{investment_id}/paid-installments",
    dependencies=[Depends(require_csrf)],
)
def set_paid_installments(
    investment_id: int,
    data: PaidInstallmentsIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    investment = InvestmentService(db, owner).update_paid_installments(
        investment_id, data.paid_installments
    )
    return notice("Installments updated", investment=investment_out(investment))


# Custom categories


@app.get("/categories")
def list_categories(
    type: Optional[TransactionType] = None, db: Session = Depends(get_db)
):
    items = CustomCategoryService(db).list(type)
    return {"items": [category_out(item) for item in items]}


@app.post("/categories", dependencies=[Depends(require_csrf)])
def add_category(data: CustomCategoryIn, db: Session = Depends(get_db)):
    if not CustomCategoryService(db).add_custom_category(data.type, data.name):
        return failure("Category could not be added")
    return notice("Category added")


@app.put("/categories", dependencies=[Depends(require_csrf)])
def edit_category(data: CustomCategoryRenameIn, db: Session = Depends(get_db)):
    service = CustomCategoryService(db)
    if not service.edit_custom_category(data.type, data.old_name, data.new_name):
        return failure("Category could not be renamed")
    return notice("Category renamed")


@app.delete("/categories/{type}/{name}", dependencies=[Depends(require_csrf)])
def delete_category(type: TransactionType, name: str, db: Session = Depends(get_db)):
    if not CustomCategoryService(db).delete_custom_category(type, name):
        return failure("Category is in use or does not exist")
    return notice("Category deleted")


# Assets, liabilities and suppliers


@app.get("/assets")
def list_assets(owner: int = Depends(require_owner), db: Session = Depends(get_db)):
    service = AssetService(db, owner)
    return {
        "items": [asset_out(asset) for asset in service.list()],
        "total_cents": service.total_cents(),
    }


@app.post("/assets", dependencies=[Depends(require_csrf)])
def create_asset(
    data: AssetIn, owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    asset = AssetService(db, owner).create(data)
    return notice("Asset added", asset=asset_out(asset))


@app.put("/assets/{asset_id}", dependencies=[Depends(require_csrf)])
def update_asset(
    asset_id: int,
    data: AssetIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    asset = AssetService(db, owner).update(asset_id, data)
    return notice("Asset updated", asset=asset_out(asset))


@app.delete("/assets/{asset_id}", dependencies=[Depends(require_csrf)])
def delete_asset(
    asset_id: int, owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    AssetService(db, owner).delete(asset_id)
    return notice("Asset deleted")


@app.get("/liabilities")
def list_liabilities(
    owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    service = LiabilityService(db, owner)
    return {
        "items": [liability_out(item) for item in service.list()],
        "total_cents": service.total_cents(),
    }


@app.post("/liabilities", dependencies=[Depends(require_csrf)])
def create_liability(
    data: LiabilityIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    liability = LiabilityService(db, owner).create(data)
    return notice("Liability added", liability=liability_out(liability))


@app.put("/liabilities/{liability_id}", dependencies=[Depends(require_csrf)])
def update_liability(
    liability_id: int,
    data: LiabilityIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    liability = LiabilityService(db, owner).update(liability_id, data)
    return notice("Liability updated", liability=liability_out(liability))


@app.delete("/liabilities/{liability_id}", dependencies=[Depends(require_csrf)])
def delete_liability(
    liability_id: int,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    LiabilityService(db, owner).delete(liability_id)
    return notice("Liability deleted")


@app.get("/suppliers")
def list_suppliers(
    owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    return {"items": [supplier_out(s) for s in SupplierService(db, owner).list()]}


@app.get("/suppliers/by-document/{document}")
def supplier_by_document(
    document: str,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    supplier = SupplierService(db, owner).get_by_document(document)
    if supplier is None:
        raise NotFoundError("Supplier not found")
    return supplier_out(supplier)


@app.post("/suppliers", dependencies=[Depends(require_csrf)])
def create_supplier(
    data: SupplierIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    supplier = SupplierService(db, owner).create(data)
    return notice("Supplier added", supplier=supplier_out(supplier))


@app.put("/suppliers/{supplier_id}", dependencies=[Depends(require_csrf)])
def update_supplier(
    supplier_id: int,
    data: SupplierIn,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    supplier = SupplierService(db, owner).update(supplier_id, data)
    return notice("Supplier updated", supplier=supplier_out(supplier))


@app.delete("/suppliers/{supplier_id}", dependencies=[Depends(require_csrf)])
def delete_supplier(
    supplier_id: int,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    SupplierService(db, owner).delete(supplier_id)
    return notice("Supplier deleted")


# Monthly aggregates


@app.get("/months/trailing")
def trailing_months_totals(
    months: Optional[int] = None,
    owner: int = Depends(require_owner),
    db: Session = Depends(get_db),
):
    count = min(max(months or get_settings().rollup_window_months, 1), 60)
    window = MonthlyAggregateService(db, owner).trailing_window(local_today(), count)
    return {"items": [totals.as_dict() for totals in window]}


@app.get("/months/{month}/totals")
def month_totals(
    month: str, owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    return MonthlyAggregateService(db, owner).month_totals(month).as_dict()


@app.post("/admin/rebuild-rollups", dependencies=[Depends(require_csrf)])
def rebuild_rollups(
    owner: int = Depends(require_owner), db: Session = Depends(get_db)
):
    months = MonthlyAggregateService(db, owner).rebuild()
    return notice("Monthly totals rebuilt", months=months)


# Mode


@app.post("/mode/switch", dependencies=[Depends(require_csrf)])
def switch_mode(data: ModeSwitchIn, owner: int = Depends(require_owner)):
    result = ModeService().switch_mode(data.pin, data.target, data.action)
    if not result.valid:
        return failure("Invalid PIN", 403)
    return notice(f"Switched to {result.mode.value} mode", mode=result.mode.value)
