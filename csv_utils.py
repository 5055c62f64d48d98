import csv
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import StringIO

from models import TransactionType
from schemas import CSVRow

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y")

TYPE_ALIASES = {
    "income": TransactionType.income,
    "receita": TransactionType.income,
    "expense": TransactionType.expense,
    "despesa": TransactionType.expense,
}


def parse_date(value: str) -> date:
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid date '{value}'")


def parse_type(value: str) -> TransactionType:
    try:
        return TYPE_ALIASES[value.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown type '{value}'") from None


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    """Amount text to cents; accepts ``R$ 1.234,56`` as well as ``1234.56``."""
    clean = value.strip().replace("R$", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def parse_csv(content: str) -> tuple[list[CSVRow], list[str]]:
    """Parse ``Date,Type,Amount,Category,Description`` rows.

    Bad rows are reported by line number and skipped; the rest are returned.
    """
    reader = csv.DictReader(StringIO(content))
    rows: list[CSVRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            amount = parse_amount(raw.get("Amount") or "")
            if amount == 0:
                raise ValueError("Amount must be greater than zero")
            category = (raw.get("Category") or "").strip()
            if not category:
                raise ValueError("Missing category")
            description = (raw.get("Description") or "").strip() or category
            rows.append(
                CSVRow(
                    date=parse_date(raw.get("Date") or ""),
                    type=parse_type(raw.get("Type") or ""),
                    amount_cents=amount,
                    category=category,
                    description=description,
                )
            )
        except ValueError as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors
