from datetime import date
from decimal import Decimal
from typing import Optional

import pandas as pd
from sqlalchemy import select, desc, func, case, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.config import settings
from fintrack.core.errors import ValidationError
from fintrack.models.account import Category
from fintrack.models.transaction import Transaction, TransactionType, TransactionStatus
from fintrack.models.user import User
from fintrack.schemas.analytics import SummaryResponse, CategoryBreakdownItem, MonthlyStatsResponse
from fintrack.services.balance import to_money


def counted_statuses(cleared_only: Optional[bool] = None) -> list[TransactionStatus]:
    """Statuses that count toward totals. Cancelled rows never count."""
    if cleared_only is None:
        cleared_only = settings.SUMMARY_STATUS_POLICY == "cleared"
    if cleared_only:
        return [TransactionStatus.CLEARED]
    return [TransactionStatus.CLEARED, TransactionStatus.PENDING]


def _ratio(part: Decimal, whole: Decimal) -> float:
    if whole <= 0:
        return 0.0
    return float(part / whole)


def _filters(user: User, start_date: Optional[date], end_date: Optional[date],
             cleared_only: Optional[bool]) -> list:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("startDate must not be after endDate")
    filters = [
        Transaction.user_id == user.id,
        Transaction.status.in_(counted_statuses(cleared_only)),
    ]
    if start_date:
        filters.append(Transaction.date >= start_date)
    if end_date:
        filters.append(Transaction.date <= end_date)
    return filters


class SummaryEngine:
    @staticmethod
    async def summarize(db: AsyncSession, user: User, start_date: Optional[date] = None,
                        end_date: Optional[date] = None, cleared_only: Optional[bool] = None) -> SummaryResponse:
        query = select(
            func.sum(case((Transaction.type == TransactionType.INCOME, Transaction.amount), else_=0)).label('income'),
            func.sum(case((Transaction.type == TransactionType.EXPENSE, Transaction.amount), else_=0)).label('expenses')
        ).where(and_(*_filters(user, start_date, end_date, cleared_only)))
        res = await db.execute(query)
        row = res.one()

        income = to_money(row.income)
        expenses = to_money(row.expenses)
        net = income - expenses

        return SummaryResponse(
            total_income=float(income),
            total_expenses=float(expenses),
            net_cashflow=float(net),
            savings_rate=_ratio(net, income),
            start_date=start_date,
            end_date=end_date,
        )

    @staticmethod
    async def category_breakdown(db: AsyncSession, user: User, start_date: Optional[date] = None,
                                 end_date: Optional[date] = None,
                                 cleared_only: Optional[bool] = None) -> list[CategoryBreakdownItem]:
        filters = _filters(user, start_date, end_date, cleared_only)
        filters.append(Transaction.type == TransactionType.EXPENSE)

        query = select(
            Category.id,
            Category.name,
            Category.icon,
            Category.color,
            func.sum(Transaction.amount).label('total')
        ).join(
            Category, Transaction.category_id == Category.id
        ).where(
            and_(*filters)
        ).group_by(
            Category.id, Category.name, Category.icon, Category.color
        ).order_by(desc('total'), Category.name)

        res = await db.execute(query)
        rows = [(r.id, r.name, r.icon, r.color, to_money(r.total)) for r in res.all()]
        total_expenses = sum((r[4] for r in rows), Decimal("0"))

        return [
            CategoryBreakdownItem(
                category_id=cat_id,
                category=name,
                icon=icon,
                color=color,
                total=float(total),
                percent_of_expense_total=_ratio(total, total_expenses),
            )
            for cat_id, name, icon, color, total in rows
        ]

    @staticmethod
    async def monthly_stats(db: AsyncSession, user: User, months: int = 6,
                            today: Optional[date] = None, cleared_only: Optional[bool] = None) -> MonthlyStatsResponse:
        if months < 1 or months > 36:
            raise ValidationError("months must be between 1 and 36")

        today = today or date.today()
        periods = pd.period_range(end=pd.Period(today, freq='M'), periods=months, freq='M')
        start_date = periods[0].start_time.date()
        end_date = periods[-1].end_time.date()

        query = select(
            Transaction.date, Transaction.type, Transaction.amount
        ).where(and_(*_filters(user, start_date, end_date, cleared_only)))
        res = await db.execute(query)
        rows = res.all()

        labels = [str(p) for p in periods]
        if rows:
            df = pd.DataFrame(
                [(r.date, r.type.value, float(r.amount)) for r in rows],
                columns=['date', 'type', 'amount']
            )
            df['month'] = pd.to_datetime(df['date']).dt.to_period('M').astype(str)
            table = df.pivot_table(index='month', columns='type', values='amount', aggfunc='sum', fill_value=0.0)
            table = table.reindex(index=labels, columns=[t.value for t in TransactionType], fill_value=0.0)
        else:
            table = pd.DataFrame(0.0, index=labels, columns=[t.value for t in TransactionType])

        incomes = [round(float(v), 2) for v in table[TransactionType.INCOME.value]]
        expenses = [round(float(v), 2) for v in table[TransactionType.EXPENSE.value]]
        avg_expense = sum(expenses) / len(expenses) if expenses else 0.0

        return MonthlyStatsResponse(
            labels=labels,
            incomes=incomes,
            expenses=expenses,
            avg_monthly_expense=round(avg_expense, 2)
        )
