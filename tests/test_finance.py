from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Expense, Income, RecordKind, SavingGoal, User, progress_percent
from periods import Period, month_period
from services import (
    FinanceService,
    InvalidIdentifier,
    SavingGoalService,
    Unauthorized,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_user(session, email: str = "u1@example.com") -> User:
    user = User(email=email, username=email.split("@")[0], password_hash="x")
    session.add(user)
    session.commit()
    return user


def test_monthly_income_sum_scenario() -> None:
    session = make_session()
    user = make_user(session)
    session.add_all(
        [
            Income(user_id=user.id, amount=1000, date=datetime(2025, 6, 5)),
            Income(user_id=user.id, amount=2000, date=datetime(2025, 6, 20)),
        ]
    )
    session.commit()

    finance = FinanceService(session, user.id)
    assert finance.monthly_sum(RecordKind.income, datetime(2025, 6, 1)) == 3000
    assert finance.monthly_sum(RecordKind.income, datetime(2025, 7, 1)) == 0


def test_monthly_sum_is_zero_without_records() -> None:
    session = make_session()
    user = make_user(session)

    finance = FinanceService(session, user.id)
    assert finance.monthly_sum(RecordKind.expense, datetime(2025, 1, 15)) == 0
    assert finance.monthly_sum(RecordKind.income, datetime(2025, 1, 15)) == 0


def test_monthly_sum_excludes_first_instant_of_next_month() -> None:
    session = make_session()
    user = make_user(session)
    session.add_all(
        [
            Expense(
                user_id=user.id,
                amount=40.5,
                description="Groceries",
                date=datetime(2025, 6, 30, 23, 59),
            ),
            Expense(
                user_id=user.id,
                amount=99,
                description="Rent",
                date=datetime(2025, 7, 1, 0, 0),
            ),
        ]
    )
    session.commit()

    finance = FinanceService(session, user.id)
    assert finance.monthly_sum(RecordKind.expense, datetime(2025, 6, 12)) == 40.5


def test_monthly_sum_only_counts_owner_records() -> None:
    session = make_session()
    owner = make_user(session, "owner@example.com")
    other = make_user(session, "other@example.com")
    session.add_all(
        [
            Income(user_id=owner.id, amount=10, date=datetime(2025, 3, 1)),
            Income(user_id=other.id, amount=500, date=datetime(2025, 3, 2)),
        ]
    )
    session.commit()

    assert FinanceService(session, owner.id).monthly_sum(
        RecordKind.income, datetime(2025, 3, 1)
    ) == 10


def test_monthly_balance_shape() -> None:
    session = make_session()
    user = make_user(session)
    session.add_all(
        [
            Income(user_id=user.id, amount=5000, date=datetime(2025, 6, 1)),
            Expense(
                user_id=user.id,
                amount=2750,
                description="Various",
                date=datetime(2025, 6, 14),
            ),
        ]
    )
    session.commit()

    result = FinanceService(session, user.id).monthly_balance(datetime(2025, 6, 1))
    assert result == {
        "month": "2025-06",
        "total_income": 5000,
        "total_expense": 2750,
        "balance": 2250,
    }


def test_summary_bounds_are_inclusive_and_net_balance_matches() -> None:
    session = make_session()
    user = make_user(session)
    period = Period("custom", datetime(2025, 6, 1), datetime(2025, 6, 30))
    session.add_all(
        [
            Income(user_id=user.id, amount=8000, date=datetime(2025, 6, 1)),
            Income(user_id=user.id, amount=0.25, date=datetime(2025, 6, 30)),
            Income(user_id=user.id, amount=700, date=datetime(2025, 6, 30, 0, 0, 1)),
            Expense(
                user_id=user.id,
                amount=6200,
                description="Rent",
                date=datetime(2025, 6, 30),
            ),
            Expense(
                user_id=user.id,
                amount=-50,
                description="Refund",
                date=datetime(2025, 6, 15),
            ),
        ]
    )
    session.commit()

    summary = FinanceService(session, user.id).summary(period)
    assert summary["period"] == {"from": period.start, "to": period.end}
    assert summary["total_income"] == 8000.25
    assert summary["total_expenses"] == 6150
    assert summary["net_balance"] == summary["total_income"] - summary["total_expenses"]


def test_summary_savings_snapshot_ignores_period() -> None:
    session = make_session()
    user = make_user(session)
    session.add_all(
        [
            SavingGoal(
                user_id=user.id,
                title="Emergency Fund",
                target_amount=5000,
                current_amount=1250,
                deadline=datetime(2030, 1, 1),
            ),
            SavingGoal(
                user_id=user.id, title="Open ended", target_amount=0, current_amount=100
            ),
        ]
    )
    session.commit()

    summary = FinanceService(session, user.id).summary(month_period(2025, 6))
    savings = summary["savings"]
    assert savings["total_contributed"] == 1350
    by_title = {goal["title"]: goal for goal in savings["goals"]}
    assert by_title["Emergency Fund"]["progress_percent"] == 25
    assert by_title["Open ended"]["progress_percent"] is None


def test_summary_goals_follow_listing_order() -> None:
    session = make_session()
    user = make_user(session)
    created = datetime(2025, 1, 1)
    session.add_all(
        [
            SavingGoal(
                id="b" * 32,
                user_id=user.id,
                title="Bike",
                target_amount=800,
                deadline=datetime(2026, 3, 1),
                created_at=created,
            ),
            SavingGoal(
                id="a" * 32,
                user_id=user.id,
                title="Amp",
                target_amount=300,
                deadline=datetime(2026, 3, 1),
                created_at=created,
            ),
            SavingGoal(
                id="c" * 32,
                user_id=user.id,
                title="Someday",
                target_amount=100,
                created_at=created,
            ),
        ]
    )
    session.commit()

    summary = FinanceService(session, user.id).summary(month_period(2025, 6))
    listed = SavingGoalService(session, user.id).find()

    titles = [goal["title"] for goal in summary["savings"]["goals"]]
    assert titles == ["Someday", "Amp", "Bike"]
    assert titles == [goal.title for goal in listed["data"]]


def test_progress_percent_rules() -> None:
    assert progress_percent(1250, 5000) == 25
    assert progress_percent(100, 0) is None
    assert progress_percent(100, None) is None
    assert progress_percent(9000, 5000) == 100
    assert progress_percent(-10, 100) == 0
    assert progress_percent(None, 100) == 0
    assert progress_percent(1, 8) == 13
    assert progress_percent(1, 40) == 3


def test_finance_requires_owner() -> None:
    session = make_session()

    with pytest.raises(Unauthorized):
        FinanceService(session, None).monthly_sum(
            RecordKind.income, datetime(2025, 6, 1)
        )
    with pytest.raises(InvalidIdentifier):
        FinanceService(session, "not-an-id").summary(month_period(2025, 6))
