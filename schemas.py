from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")

# Record payloads name the owner ``user`` like the public API always has.
OWNER_ALIASES = AliasChoices("user", "userId", "user_id")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class SignupIn(CamelModel):
    email: str = Field(
        ..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
    )
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=200)


class LoginIn(CamelModel):
    email: str = Field(
        ..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
    )
    password: str = Field(..., min_length=1, max_length=200)


class UserOut(CamelModel):
    id: str
    email: str
    username: str


class LoginOut(CamelModel):
    message: str = "Login successful"
    token: str
    user: UserOut


class ExpenseIn(CamelModel):
    user_id: Optional[str] = Field(default=None, validation_alias=OWNER_ALIASES)
    amount: float
    description: str
    date: datetime
    note: Optional[str] = None


class ExpenseUpdate(CamelModel):
    user_id: Optional[str] = Field(default=None, validation_alias=OWNER_ALIASES)
    amount: Optional[float] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    note: Optional[str] = None


class ExpenseOut(CamelModel):
    id: str
    user_id: str
    amount: float
    description: str
    date: datetime
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class IncomeIn(CamelModel):
    user_id: Optional[str] = Field(default=None, validation_alias=OWNER_ALIASES)
    amount: float
    source: Optional[str] = Field(default=None, max_length=200)
    date: datetime
    note: Optional[str] = None


class IncomeUpdate(CamelModel):
    user_id: Optional[str] = Field(default=None, validation_alias=OWNER_ALIASES)
    amount: Optional[float] = None
    source: Optional[str] = Field(default=None, max_length=200)
    date: Optional[datetime] = None
    note: Optional[str] = None


class IncomeOut(CamelModel):
    id: str
    user_id: str
    amount: float
    source: Optional[str] = None
    date: datetime
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class SavingGoalIn(CamelModel):
    user_id: Optional[str] = Field(default=None, validation_alias=OWNER_ALIASES)
    title: Optional[str] = Field(default=None, max_length=200)
    target_amount: Optional[float] = None
    current_amount: Optional[float] = None
    deadline: Optional[datetime] = None
    note: Optional[str] = None


class SavingGoalUpdate(SavingGoalIn):
    pass


class SavingGoalOut(CamelModel):
    id: str
    user_id: str
    title: Optional[str] = None
    target_amount: Optional[float] = None
    current_amount: Optional[float] = None
    deadline: Optional[datetime] = None
    note: Optional[str] = None
    progress: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class PageOut(CamelModel, Generic[T]):
    total: int
    page: int
    limit: int
    data: list[T]


class MonthlyBalanceOut(CamelModel):
    month: str
    total_income: float
    total_expense: float
    balance: float


class PeriodOut(CamelModel):
    from_: datetime = Field(alias="from")
    to: datetime


class GoalProgressOut(CamelModel):
    id: str
    title: Optional[str] = None
    target_amount: Optional[float] = None
    current_amount: Optional[float] = None
    progress_percent: Optional[int] = None


class SavingsSnapshotOut(CamelModel):
    total_contributed: float
    goals: list[GoalProgressOut]


class FinanceSummaryOut(CamelModel):
    period: PeriodOut
    total_income: float
    total_expenses: float
    net_balance: float
    savings: SavingsSnapshotOut
