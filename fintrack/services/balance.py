from datetime import date
from decimal import Decimal

import structlog
from sqlalchemy import select, func, update, case, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.models.account import Account
from fintrack.models.transaction import Transaction, TransactionType, TransactionStatus
from fintrack.models.user import User

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def signed_delta(amount: Decimal, trx_type: TransactionType) -> Decimal:
    """+amount for income, -amount for expense."""
    amount = Decimal(amount)
    return amount if TransactionType(trx_type) == TransactionType.INCOME else -amount


def balance_effect(amount: Decimal, trx_type: TransactionType, status: TransactionStatus) -> Decimal:
    """Contribution of a transaction to its account balance. Only cleared ones count."""
    if TransactionStatus(status) != TransactionStatus.CLEARED:
        return ZERO
    return signed_delta(amount, trx_type)


async def adjust_account_balance(db: AsyncSession, account_id: int, delta: Decimal) -> None:
    """
    Add `delta` to an account balance inside the caller's open transaction.

    The arithmetic happens in the store (`balance = balance + delta`) so that
    concurrent writers on the same row serialize instead of losing updates.
    """
    if not delta:
        return
    stmt = (
        update(Account)
        .where(Account.id == account_id)
        .values(balance=Account.balance + delta)
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)
    logger.debug("balance_adjusted", account_id=account_id, delta=str(delta))


class BalanceService:
    @staticmethod
    async def get_balances(db: AsyncSession, user: User, include_monthly: bool = False,
                           today: date | None = None) -> dict:
        query = (
            select(Account)
            .where(and_(Account.user_id == user.id, Account.is_active.is_(True)))
            .order_by(Account.id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        accounts = result.scalars().all()

        total = sum((to_money(a.balance) for a in accounts), ZERO)
        response = {
            "total_balance": total,
            "accounts": [
                {
                    "id": a.id,
                    "name": a.name,
                    "kind": a.kind,
                    "balance": a.balance,
                    "currency": a.currency,
                }
                for a in accounts
            ],
        }

        if include_monthly:
            today = today or date.today()
            response["monthly_expenditure"] = await BalanceService.get_monthly_expenditure(
                db, user, today.year, today.month
            )
        return response

    @staticmethod
    async def get_monthly_expenditure(db: AsyncSession, user: User, year: int, month: int) -> Decimal:
        start = date(year, month, 1)
        end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)

        query = select(func.sum(Transaction.amount)).where(
            and_(
                Transaction.user_id == user.id,
                Transaction.type == TransactionType.EXPENSE,
                Transaction.status != TransactionStatus.CANCELLED,
                Transaction.date >= start,
                Transaction.date < end,
            )
        )
        res = await db.execute(query)
        return to_money(res.scalar())

    @staticmethod
    async def recompute(db: AsyncSession, account_id: int) -> Decimal:
        """Balance derived from the ledger itself: sum of cleared signed amounts."""
        query = select(
            func.sum(
                case(
                    (Transaction.type == TransactionType.INCOME, Transaction.amount),
                    else_=-Transaction.amount,
                )
            )
        ).where(
            and_(
                Transaction.account_id == account_id,
                Transaction.status == TransactionStatus.CLEARED,
            )
        )
        res = await db.execute(query)
        return to_money(res.scalar())
