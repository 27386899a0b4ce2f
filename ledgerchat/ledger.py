"""Per-user expense ledger and its aggregation."""
import logging
import math
from collections import namedtuple
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
UNKNOWN_MONTH = "unknown"

Aggregates = namedtuple("Aggregates", ["category_totals", "monthly_totals", "total"])


def coerce_amount(value) -> float:
    """Turn form input into an amount. Anything unusable counts as zero."""
    if value is None or value == "":
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Unparsable amount {value!r}, storing 0")
        return 0.0
    if not math.isfinite(amount):
        logger.warning(f"Non-finite amount {value!r}, storing 0")
        return 0.0
    return amount


def parse_date(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    value = str(value).strip()
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value}") from exc


def _clean(text) -> Optional[str]:
    text = (text or "").strip()
    return text or None


def _commit(db: Session, what: str):
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError(f"Could not {what}") from exc


def add_expense(db: Session, owner_id: int, title, amount, category, date=None) -> models.Expense:
    expense = models.Expense(
        user_id=owner_id,
        title=_clean(title),
        amount=coerce_amount(amount),
        category=_clean(category),
        date=parse_date(date) or models.utcnow(),
    )
    db.add(expense)
    _commit(db, "add expense")
    db.refresh(expense)
    return expense


def list_expenses(db: Session, owner_id: int) -> List[models.Expense]:
    return (
        db.query(models.Expense)
        .filter(models.Expense.user_id == owner_id)
        .order_by(models.Expense.date.desc(), models.Expense.id.desc())
        .all()
    )


def get_expense(db: Session, owner_id: int, expense_id: int) -> Optional[models.Expense]:
    # Scoped by owner: someone else's id looks exactly like a missing one
    return (
        db.query(models.Expense)
        .filter(models.Expense.id == expense_id, models.Expense.user_id == owner_id)
        .first()
    )


def edit_expense(db: Session, owner_id: int, expense_id: int, title, amount, category, date=None) -> Optional[models.Expense]:
    expense = get_expense(db, owner_id, expense_id)
    if expense is None:
        return None
    new_date = parse_date(date)
    expense.title = _clean(title)
    expense.amount = coerce_amount(amount)
    expense.category = _clean(category)
    if new_date is not None:
        expense.date = new_date
    _commit(db, "update expense")
    db.refresh(expense)
    return expense


def delete_expense(db: Session, owner_id: int, expense_id: int) -> bool:
    deleted = (
        db.query(models.Expense)
        .filter(models.Expense.id == expense_id, models.Expense.user_id == owner_id)
        .delete(synchronize_session=False)
    )
    _commit(db, "delete expense")
    return deleted > 0


def month_key(date: Optional[datetime]) -> str:
    if date is None:
        return UNKNOWN_MONTH
    return date.strftime("%Y-%m")


def aggregate(expenses: Iterable) -> Aggregates:
    """Sum amounts by category and by calendar month.

    Both mappings partition the same set of expenses, so their values add up
    to the same total.
    """
    category_totals = {}
    monthly_totals = {}
    total = 0.0
    for e in expenses:
        amount = e.amount or 0.0
        category = e.category or UNCATEGORIZED
        month = month_key(e.date)
        category_totals[category] = category_totals.get(category, 0.0) + amount
        monthly_totals[month] = monthly_totals.get(month, 0.0) + amount
        total += amount
    return Aggregates(category_totals, monthly_totals, total)
