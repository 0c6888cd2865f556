import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import SessionLocal
from models import RecordKind
from periods import (
    InvalidDate,
    parse_datetime,
    parse_month_reference,
    resolve_summary_period,
)
from reports import ReportUnavailable, build_report
from schemas import (
    ExpenseIn,
    ExpenseOut,
    ExpenseUpdate,
    FinanceSummaryOut,
    IncomeIn,
    IncomeOut,
    IncomeUpdate,
    LoginIn,
    LoginOut,
    MonthlyBalanceOut,
    PageOut,
    SavingGoalIn,
    SavingGoalOut,
    SavingGoalUpdate,
    SignupIn,
    UserOut,
)
from security import TokenExpired, TokenInvalid, decode_access_token
from services import (
    ExpenseFilters,
    ExpenseService,
    FinanceService,
    IncomeFilters,
    IncomeService,
    InvalidCredentials,
    Page,
    RecordNotFound,
    SavingGoalFilters,
    SavingGoalService,
    Unauthorized,
    UserAlreadyExists,
    UserService,
    local_today,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Finance Tracker", version=APP_VERSION)
bearer_scheme = HTTPBearer(auto_error=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, RecordNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, UserAlreadyExists):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (Unauthorized, InvalidCredentials)):
        return HTTPException(status_code=401, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"storage_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access token is missing")
    try:
        user_id = decode_access_token(credentials.credentials)
    except (TokenExpired, TokenInvalid) as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    try:
        UserService(db).get(user_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=401, detail="Unauthorized: user not found in request"
        ) from exc
    return user_id


def page_from_request(
    page: Optional[str] = Query(None), limit: Optional[str] = Query(None)
) -> Page:
    return Page.from_params(page, limit)


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_datetime(value)
    except InvalidDate as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def expense_filters(
    min_amount: Optional[float] = Query(None, alias="minAmount"),
    max_amount: Optional[float] = Query(None, alias="maxAmount"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    q: Optional[str] = Query(None),
) -> ExpenseFilters:
    return ExpenseFilters(
        min_amount=min_amount,
        max_amount=max_amount,
        start_date=_optional_datetime(start_date),
        end_date=_optional_datetime(end_date),
        query=q,
    )


def income_filters(
    source: Optional[str] = Query(None),
    min_amount: Optional[float] = Query(None, alias="minAmount"),
    max_amount: Optional[float] = Query(None, alias="maxAmount"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
) -> IncomeFilters:
    return IncomeFilters(
        source=source,
        min_amount=min_amount,
        max_amount=max_amount,
        start_date=_optional_datetime(start_date),
        end_date=_optional_datetime(end_date),
    )


def saving_filters(
    title: Optional[str] = Query(None),
    min_target_amount: Optional[float] = Query(None, alias="minTargetAmount"),
    max_target_amount: Optional[float] = Query(None, alias="maxTargetAmount"),
    min_current_amount: Optional[float] = Query(None, alias="minCurrentAmount"),
    max_current_amount: Optional[float] = Query(None, alias="maxCurrentAmount"),
    start_deadline: Optional[str] = Query(None, alias="startDeadline"),
    end_deadline: Optional[str] = Query(None, alias="endDeadline"),
) -> SavingGoalFilters:
    return SavingGoalFilters(
        title=title,
        min_target_amount=min_target_amount,
        max_target_amount=max_target_amount,
        min_current_amount=min_current_amount,
        max_current_amount=max_current_amount,
        start_deadline=_optional_datetime(start_deadline),
        end_deadline=_optional_datetime(end_deadline),
    )


def _page_out(result: dict[str, object], schema) -> PageOut:
    return PageOut[schema](
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        data=[schema.model_validate(item) for item in result["data"]],
    )


def _pdf_response(kind: RecordKind, records) -> StreamingResponse:
    try:
        pdf_bytes = build_report(kind, records)
    except ReportUnavailable as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error generating {kind.value} PDF report")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    filename = f"{kind.value}_report_{local_today().isoformat()}.pdf"
    return StreamingResponse(
        iter([pdf_bytes]),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Length": str(len(pdf_bytes)),
        },
    )


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": APP_VERSION}


@app.post("/api/v1/auth/signup", response_model=UserOut, status_code=201)
def signup(data: SignupIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).signup(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return UserOut.model_validate(user)


@app.post("/api/v1/auth/login", response_model=LoginOut)
def login(data: LoginIn, db: Session = Depends(get_db)):
    try:
        user, token = UserService(db).login(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return LoginOut(token=token, user=UserOut.model_validate(user))


@app.post("/api/v1/expense/create", response_model=ExpenseOut, status_code=201)
def create_expense(
    data: ExpenseIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        expense = ExpenseService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return ExpenseOut.model_validate(expense)


@app.get("/api/v1/expense/find", response_model=PageOut[ExpenseOut])
def find_expenses(
    filters: ExpenseFilters = Depends(expense_filters),
    page: Page = Depends(page_from_request),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = ExpenseService(db, user_id).find(filters, page)
    except (ValueError, Unauthorized) as exc:
        raise http_error(exc) from exc
    return _page_out(result, ExpenseOut)


@app.put("/api/v1/expense/update/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: str,
    data: ExpenseUpdate,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        expense = ExpenseService(db, user_id).update(expense_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return ExpenseOut.model_validate(expense)


@app.delete("/api/v1/expense/remove/{expense_id}", response_model=ExpenseOut)
def remove_expense(
    expense_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, user_id).delete(expense_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/v1/expense/export")
def export_expenses(
    filters: ExpenseFilters = Depends(expense_filters),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        records = ExpenseService(db, user_id).export(filters)
    except (ValueError, Unauthorized) as exc:
        raise http_error(exc) from exc
    return _pdf_response(RecordKind.expense, records)


@app.post("/api/v1/income/create", response_model=IncomeOut, status_code=201)
def create_income(
    data: IncomeIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        income = IncomeService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return IncomeOut.model_validate(income)


@app.get("/api/v1/income/find", response_model=PageOut[IncomeOut])
def find_incomes(
    filters: IncomeFilters = Depends(income_filters),
    page: Page = Depends(page_from_request),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = IncomeService(db, user_id).find(filters, page)
    except (ValueError, Unauthorized) as exc:
        raise http_error(exc) from exc
    return _page_out(result, IncomeOut)


@app.put("/api/v1/income/update/{income_id}", response_model=IncomeOut)
def update_income(
    income_id: str,
    data: IncomeUpdate,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        income = IncomeService(db, user_id).update(income_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return IncomeOut.model_validate(income)


@app.delete("/api/v1/income/remove/{income_id}", response_model=IncomeOut)
def remove_income(
    income_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return IncomeService(db, user_id).delete(income_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/v1/income/export")
def export_incomes(
    filters: IncomeFilters = Depends(income_filters),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        records = IncomeService(db, user_id).export(filters)
    except (ValueError, Unauthorized) as exc:
        raise http_error(exc) from exc
    return _pdf_response(RecordKind.income, records)


@app.post("/api/v1/saving/create", response_model=SavingGoalOut, status_code=201)
def create_saving_goal(
    data: SavingGoalIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = SavingGoalService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return SavingGoalOut.model_validate(goal)


@app.get("/api/v1/saving/find", response_model=PageOut[SavingGoalOut])
def find_saving_goals(
    filters: SavingGoalFilters = Depends(saving_filters),
    page: Page = Depends(page_from_request),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = SavingGoalService(db, user_id).find(filters, page)
    except (ValueError, Unauthorized) as exc:
        raise http_error(exc) from exc
    return _page_out(result, SavingGoalOut)


@app.put("/api/v1/saving/update/{saving_id}", response_model=SavingGoalOut)
def update_saving_goal(
    saving_id: str,
    data: SavingGoalUpdate,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = SavingGoalService(db, user_id).update(saving_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return SavingGoalOut.model_validate(goal)


@app.delete("/api/v1/saving/remove/{saving_id}", response_model=SavingGoalOut)
def remove_saving_goal(
    saving_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return SavingGoalService(db, user_id).delete(saving_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/v1/saving/export")
def export_saving_goals(
    filters: SavingGoalFilters = Depends(saving_filters),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        records = SavingGoalService(db, user_id).export(filters)
    except (ValueError, Unauthorized) as exc:
        raise http_error(exc) from exc
    return _pdf_response(RecordKind.saving, records)


@app.get("/api/v1/finance/balance", response_model=MonthlyBalanceOut)
def monthly_balance(
    month: Optional[str] = Query(None),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        reference = parse_month_reference(month)
        return FinanceService(db, user_id).monthly_balance(reference)
    except (ValueError, Unauthorized) as exc:
        raise http_error(exc) from exc


@app.get("/api/v1/finance/summary", response_model=FinanceSummaryOut)
def financial_summary(
    month: Optional[str] = Query(None),
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        period = resolve_summary_period(month, from_, to, today=local_today())
        return FinanceService(db, user_id).summary(period)
    except (ValueError, Unauthorized) as exc:
        raise http_error(exc) from exc


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
