from __future__ import annotations

import logging
import sys
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from config import get_settings
from models import Expense, Income, RecordKind, SavingGoal, User, progress_percent
from periods import Period, month_bounds
from schemas import ExpenseOut, IncomeOut, LoginIn, SavingGoalOut, SignupIn
from security import generate_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10


class InvalidIdentifier(ValueError):
    pass


class RecordNotFound(ValueError):
    pass


class UserAlreadyExists(ValueError):
    pass


class InvalidCredentials(ValueError):
    pass


class Unauthorized(Exception):
    pass


def ensure_identifier(value: Any, label: str = "id") -> str:
    """Normalise ``value`` to the stored hex form or raise ``InvalidIdentifier``."""
    try:
        return uuid.UUID(str(value)).hex
    except (TypeError, ValueError) as exc:
        raise InvalidIdentifier(f"Invalid {label}") from exc


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def _as_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Page:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @classmethod
    def from_params(
        cls, page: Any = None, limit: Any = None, *, max_limit: Optional[int] = None
    ) -> "Page":
        max_limit = max_limit or get_settings().max_page_limit
        parsed_page = max(_as_int(page, DEFAULT_PAGE), 1)
        parsed_limit = min(max(_as_int(limit, DEFAULT_LIMIT), 1), max_limit)
        # Offset must fit a signed 64-bit integer.
        parsed_page = min(parsed_page, sys.maxsize // parsed_limit)
        return cls(parsed_page, parsed_limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class ExpenseFilters:
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    query: Optional[str] = None


@dataclass
class IncomeFilters:
    source: Optional[str] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@dataclass
class SavingGoalFilters:
    title: Optional[str] = None
    min_target_amount: Optional[float] = None
    max_target_amount: Optional[float] = None
    min_current_amount: Optional[float] = None
    max_current_amount: Optional[float] = None
    start_deadline: Optional[datetime] = None
    end_deadline: Optional[datetime] = None


def apply_range(stmt: Select, column, low: Any = None, high: Any = None) -> Select:
    # Each bound is independent and inclusive; an absent bound adds no clause.
    if low is not None:
        stmt = stmt.where(column >= low)
    if high is not None:
        stmt = stmt.where(column <= high)
    return stmt


def apply_contains(stmt: Select, column, text: Optional[str]) -> Select:
    if not text:
        return stmt
    like = f"%{text.lower()}%"
    return stmt.where(func.lower(func.coalesce(column, "")).like(like))


def paginate(session: Session, stmt: Select, page: Page) -> dict[str, object]:
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = int(session.execute(count_stmt).scalar_one() or 0)
    data = session.scalars(stmt.offset(page.offset).limit(page.limit)).all()
    return {"total": total, "page": page.page, "limit": page.limit, "data": data}


class RecordService:
    """Create/find/update/delete for one record kind, scoped to an owner."""

    model: type = None
    out_schema: type[BaseModel] = None
    label = "record"
    title = "Record"
    required_fields: tuple[str, ...] = ()

    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id

    def owner_id(self) -> str:
        if not self.user_id:
            raise Unauthorized("Unauthorized: user not found in request")
        return ensure_identifier(self.user_id, "user ID")

    def _ensure_user_exists(self, user_id: str) -> None:
        if self.session.get(User, user_id) is None:
            raise RecordNotFound("User ID does not exist")

    def _filtered(self, owner: str, filters: Any) -> Select:
        raise NotImplementedError

    def _ordering(self) -> tuple:
        return (self.model.date.asc(), self.model.created_at.asc(), self.model.id.asc())

    def _default_filters(self) -> Any:
        raise NotImplementedError

    def get(self, record_id: str):
        record_id = ensure_identifier(record_id, f"{self.title.lower()} id")
        record = self.session.get(self.model, record_id)
        if record is None:
            raise RecordNotFound(f"{self.title} not found")
        return record

    def create(self, data: BaseModel):
        values = data.model_dump()
        owner = values.pop("user_id", None) or self.user_id
        if not owner:
            raise InvalidIdentifier("Invalid user ID")
        owner = ensure_identifier(owner, "user ID")
        self._ensure_user_exists(owner)

        record = self.model(user_id=owner, **values)
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        logger.info(f"{self.label}_created: id={record.id} user={owner}")
        return record

    def update(self, record_id: str, data: BaseModel):
        record_id = ensure_identifier(record_id, f"{self.title.lower()} id")
        changes = data.model_dump(exclude_unset=True)

        if "user_id" in changes:
            new_owner = changes.pop("user_id")
            if new_owner is not None:
                changes["user_id"] = ensure_identifier(new_owner, "user ID in updates")

        record = self.session.get(self.model, record_id)
        if record is None:
            raise RecordNotFound(f"{self.title} not found")

        for field in self.required_fields:
            if field in changes and changes[field] is None:
                raise ValueError(f"{field} cannot be null")
        if "user_id" in changes:
            self._ensure_user_exists(changes["user_id"])

        for field, value in changes.items():
            setattr(record, field, value)
        self.session.commit()
        self.session.refresh(record)
        logger.info(
            f"{self.label}_updated: id={record.id} fields={','.join(sorted(changes))}"
        )
        return record

    def delete(self, record_id: str) -> BaseModel:
        record = self.get(record_id)
        snapshot = self.out_schema.model_validate(record)
        self.session.delete(record)
        self.session.commit()
        logger.info(f"{self.label}_deleted: id={snapshot.id}")
        return snapshot

    def find(self, filters: Any = None, page: Optional[Page] = None) -> dict[str, object]:
        owner = self.owner_id()
        stmt = self._filtered(owner, filters or self._default_filters())
        return paginate(
            self.session, stmt.order_by(*self._ordering()), page or Page()
        )

    def export(self, filters: Any = None) -> list:
        """Every matching record, unpaginated, in listing order."""
        owner = self.owner_id()
        stmt = self._filtered(owner, filters or self._default_filters())
        return self.session.scalars(stmt.order_by(*self._ordering())).all()


class ExpenseService(RecordService):
    model = Expense
    out_schema = ExpenseOut
    label = "expense"
    title = "Expense"
    required_fields = ("amount", "description", "date")

    def _default_filters(self) -> ExpenseFilters:
        return ExpenseFilters()

    def _filtered(self, owner: str, filters: ExpenseFilters) -> Select:
        stmt = select(Expense).where(Expense.user_id == owner)
        stmt = apply_range(stmt, Expense.amount, filters.min_amount, filters.max_amount)
        stmt = apply_range(stmt, Expense.date, filters.start_date, filters.end_date)
        return apply_contains(stmt, Expense.description, filters.query)


class IncomeService(RecordService):
    model = Income
    out_schema = IncomeOut
    label = "income"
    title = "Income"
    required_fields = ("amount", "date")

    def _default_filters(self) -> IncomeFilters:
        return IncomeFilters()

    def _filtered(self, owner: str, filters: IncomeFilters) -> Select:
        stmt = select(Income).where(Income.user_id == owner)
        if filters.source:
            stmt = stmt.where(Income.source == filters.source)
        stmt = apply_range(stmt, Income.amount, filters.min_amount, filters.max_amount)
        return apply_range(stmt, Income.date, filters.start_date, filters.end_date)


SAVING_GOAL_ORDERING = (
    SavingGoal.deadline.asc().nulls_first(),
    SavingGoal.created_at.asc(),
    SavingGoal.id.asc(),
)


class SavingGoalService(RecordService):
    model = SavingGoal
    out_schema = SavingGoalOut
    label = "saving_goal"
    title = "Saving goal"

    def _default_filters(self) -> SavingGoalFilters:
        return SavingGoalFilters()

    def _ordering(self) -> tuple:
        return SAVING_GOAL_ORDERING

    def _filtered(self, owner: str, filters: SavingGoalFilters) -> Select:
        stmt = select(SavingGoal).where(SavingGoal.user_id == owner)
        stmt = apply_contains(stmt, SavingGoal.title, filters.title)
        stmt = apply_range(
            stmt,
            SavingGoal.target_amount,
            filters.min_target_amount,
            filters.max_target_amount,
        )
        stmt = apply_range(
            stmt,
            SavingGoal.current_amount,
            filters.min_current_amount,
            filters.max_current_amount,
        )
        return apply_range(
            stmt, SavingGoal.deadline, filters.start_deadline, filters.end_deadline
        )


class FinanceService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id

    def _owner(self) -> str:
        if not self.user_id:
            raise Unauthorized("Unauthorized: user not found in request")
        return ensure_identifier(self.user_id, "user ID")

    @staticmethod
    def _model_for(kind: RecordKind):
        if kind == RecordKind.income:
            return Income
        if kind == RecordKind.expense:
            return Expense
        raise ValueError(f"Cannot sum amounts of {kind.value} records")

    def monthly_sum(self, kind: RecordKind, reference: datetime) -> float:
        """Sum of amounts within ``[first of month, first of next month)``."""
        owner = self._owner()
        model = self._model_for(kind)
        start, end = month_bounds(reference)
        stmt = select(func.coalesce(func.sum(model.amount), 0)).where(
            model.user_id == owner,
            model.date >= start,
            model.date < end,
        )
        return float(self.session.execute(stmt).scalar_one() or 0)

    def monthly_balance(self, reference: datetime) -> dict[str, object]:
        total_income = self.monthly_sum(RecordKind.income, reference)
        total_expense = self.monthly_sum(RecordKind.expense, reference)
        return {
            "month": f"{reference.year:04d}-{reference.month:02d}",
            "total_income": total_income,
            "total_expense": total_expense,
            "balance": total_income - total_expense,
        }

    def _sum_between(self, model, owner: str, period: Period) -> float:
        # Inclusive on both ends, unlike monthly_sum.
        stmt = select(func.coalesce(func.sum(model.amount), 0)).where(
            model.user_id == owner,
            model.date >= period.start,
            model.date <= period.end,
        )
        return float(self.session.execute(stmt).scalar_one() or 0)

    def savings_snapshot(self) -> dict[str, object]:
        owner = self._owner()
        goals = self.session.scalars(
            select(SavingGoal)
            .where(SavingGoal.user_id == owner)
            .order_by(*SAVING_GOAL_ORDERING)
        ).all()
        return {
            "total_contributed": float(sum(goal.current_amount or 0 for goal in goals)),
            "goals": [
                {
                    "id": goal.id,
                    "title": goal.title,
                    "target_amount": goal.target_amount,
                    "current_amount": goal.current_amount,
                    "progress_percent": progress_percent(
                        goal.current_amount, goal.target_amount
                    ),
                }
                for goal in goals
            ],
        }

    def summary(self, period: Period) -> dict[str, object]:
        owner = self._owner()
        total_income = self._sum_between(Income, owner, period)
        total_expenses = self._sum_between(Expense, owner, period)
        return {
            "period": {"from": period.start, "to": period.end},
            "total_income": total_income,
            "total_expenses": total_expenses,
            "net_balance": total_income - total_expenses,
            "savings": self.savings_snapshot(),
        }


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: str) -> User:
        user_id = ensure_identifier(user_id, "user ID")
        user = self.session.get(User, user_id)
        if user is None:
            raise RecordNotFound("User not found")
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(
            select(User).where(User.email == email.strip().lower())
        )

    def signup(self, data: SignupIn) -> User:
        email = data.email.strip().lower()
        if self.find_by_email(email) is not None:
            raise UserAlreadyExists("User already exists")
        user = User(
            email=email,
            username=data.username.strip(),
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_signup: id={user.id}")
        return user

    def login(self, data: LoginIn) -> tuple[User, str]:
        user = self.find_by_email(data.email)
        if user is None:
            raise RecordNotFound("User not found")
        if not verify_password(data.password, user.password_hash):
            logger.info(f"user_login_failed: id={user.id}")
            raise InvalidCredentials("Invalid email or password")
        token = generate_access_token(user.id, user.email)
        logger.info(f"user_login: id={user.id}")
        return user, token
