from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from typing import List, Optional
from .. import auth, database, ledger, schemas
from ..errors import ValidationError
from ..protocols import mqtt_handler
from ..templating import templates

router = APIRouter()


def _to_dashboard():
    return RedirectResponse("/dashboard", status_code=status.HTTP_303_SEE_OTHER)


def _render_dashboard(request: Request, db: Session, user: dict, error: Optional[str] = None, status_code: int = 200):
    expenses = ledger.list_expenses(db, user["id"])
    totals = ledger.aggregate(expenses)
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "username": user["username"],
            "expenses": expenses,
            "category_totals": totals.category_totals,
            "monthly_totals": totals.monthly_totals,
            "total": totals.total,
            "error": error,
        },
        status_code=status_code,
    )


@router.get("/dashboard")
def dashboard(request: Request, db: Session = Depends(database.get_db), user: dict = Depends(auth.require_user)):
    return _render_dashboard(request, db, user)

@router.post("/expenses/add")
def add_expense(
    request: Request,
    title: Optional[str] = Form(None),
    amount: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    db: Session = Depends(database.get_db),
    user: dict = Depends(auth.require_user),
):
    try:
        expense = ledger.add_expense(db, user["id"], title, amount, category, date)
    except ValidationError as e:
        return _render_dashboard(request, db, user, error=str(e), status_code=status.HTTP_400_BAD_REQUEST)
    mqtt_handler.publish_expense_event("new_expense", expense.id, amount=expense.amount, title=expense.title, owner=user["username"])
    return _to_dashboard()

@router.get("/expenses/delete/{expense_id}")
def delete_expense(expense_id: int, db: Session = Depends(database.get_db), user: dict = Depends(auth.require_user)):
    if ledger.delete_expense(db, user["id"], expense_id):
        mqtt_handler.publish_expense_event("delete_expense", expense_id)
    return _to_dashboard()

@router.get("/expenses/edit/{expense_id}")
def edit_expense_form(expense_id: int, request: Request, db: Session = Depends(database.get_db), user: dict = Depends(auth.require_user)):
    expense = ledger.get_expense(db, user["id"], expense_id)
    if expense is None:
        return _to_dashboard()
    return templates.TemplateResponse(request, "edit_expense.html", {"expense": expense, "error": None})

@router.post("/expenses/edit/{expense_id}")
def edit_expense(
    expense_id: int,
    request: Request,
    title: Optional[str] = Form(None),
    amount: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    db: Session = Depends(database.get_db),
    user: dict = Depends(auth.require_user),
):
    try:
        expense = ledger.edit_expense(db, user["id"], expense_id, title, amount, category, date)
    except ValidationError as e:
        current = ledger.get_expense(db, user["id"], expense_id)
        if current is None:
            return _to_dashboard()
        return templates.TemplateResponse(
            request, "edit_expense.html", {"expense": current, "error": str(e)}, status_code=status.HTTP_400_BAD_REQUEST
        )
    if expense is not None:
        mqtt_handler.publish_expense_event("update_expense", expense.id)
    return _to_dashboard()

@router.get("/expenses/charts")
def charts(request: Request, db: Session = Depends(database.get_db), user: dict = Depends(auth.require_user)):
    totals = ledger.aggregate(ledger.list_expenses(db, user["id"]))
    return templates.TemplateResponse(
        request,
        "charts.html",
        {"category_totals": totals.category_totals, "monthly_totals": totals.monthly_totals},
    )

# ===== JSON =====

@router.get("/api/expenses", response_model=List[schemas.Expense])
def read_expenses(db: Session = Depends(database.get_db), user: dict = Depends(auth.require_user)):
    return ledger.list_expenses(db, user["id"])

@router.get("/api/expenses/summary", response_model=schemas.Aggregates)
def read_summary(db: Session = Depends(database.get_db), user: dict = Depends(auth.require_user)):
    totals = ledger.aggregate(ledger.list_expenses(db, user["id"]))
    return schemas.Aggregates(**totals._asdict())
