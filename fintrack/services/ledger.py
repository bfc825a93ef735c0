"""
Transaction repository.

Every write runs as one store transaction that covers both the transaction
row and the balance of the account(s) it touches, so an account balance is
always the sum of its cleared transactions:

    balance == sum(+amount for income, -amount for expense) over Cleared rows

Updates follow reverse-then-apply: the old contribution is removed from the
original account, the fields are changed, and the new contribution is added
to the (possibly different) new account.
"""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

import structlog
from sqlalchemy import select, desc, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.core.database import atomic
from fintrack.core.errors import NotFoundError, ValidationError
from fintrack.models.transaction import Transaction, TransactionType, TransactionStatus
from fintrack.models.user import User
from fintrack.services.accounts import AccountService, CategoryService, EntityRef
from fintrack.services.balance import adjust_account_balance, balance_effect, CENT

logger = structlog.get_logger(__name__)

MAX_AMOUNT = Decimal("999999999999.99")
MAX_DESCRIPTION_LENGTH = 200

CREATE_STATUSES = frozenset({TransactionStatus.CLEARED, TransactionStatus.PENDING})
UPDATE_STATUSES = CREATE_STATUSES | {TransactionStatus.CANCELLED}

UPDATABLE_FIELDS = frozenset({
    "account", "category", "amount", "type", "status", "date",
    "description", "notes", "receipt_url",
})


def parse_amount(value: Any) -> Decimal:
    if value is None:
        raise ValidationError("Amount is required")
    if isinstance(value, bool):
        raise ValidationError("Amount must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a number")
    if not amount.is_finite():
        raise ValidationError("Amount must be a number")

    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValidationError("Amount must be greater than 0")
    if amount > MAX_AMOUNT:
        raise ValidationError("Amount is too large")
    return amount


def parse_type(value: Any) -> TransactionType:
    if value is None:
        raise ValidationError("Type is required")
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError('Type must be either "Income" or "Expense"')


def parse_status(value: Any, allowed: frozenset = CREATE_STATUSES) -> TransactionStatus:
    if value is None:
        raise ValidationError("Status is required")
    try:
        status = TransactionStatus(value)
    except ValueError:
        status = None
    if status not in allowed:
        names = " or ".join(f'"{s.value}"' for s in sorted(allowed, key=lambda s: s.value))
        raise ValidationError(f"Status must be {names}")
    return status


def parse_date(value: Any) -> date:
    if value is None or value == "":
        raise ValidationError("Date is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError("Date must be in YYYY-MM-DD format")


def _clean_text(value: Any, field: str, max_length: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text")
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value or None


class TransactionRepository:
    @staticmethod
    async def create(
            db: AsyncSession,
            user: User,
            account: EntityRef,
            category: EntityRef,
            amount: Any,
            trx_type: Any,
            trx_date: Any,
            status: Any = TransactionStatus.CLEARED,
            description: Optional[str] = None,
            notes: Optional[str] = None,
            receipt_url: Optional[str] = None,
            receipt_data: Optional[dict] = None,
    ) -> Transaction:
        amount = parse_amount(amount)
        trx_type = parse_type(trx_type)
        status = parse_status(status)
        trx_date = parse_date(trx_date)
        description = _clean_text(description, "Description", MAX_DESCRIPTION_LENGTH)
        notes = _clean_text(notes, "Notes")

        async with atomic(db):
            acct = await AccountService.resolve_account(db, user, account, require_active=True)
            cat = await CategoryService.resolve_category(db, user, category)

            db_obj = Transaction(
                user_id=user.id,
                account=acct,
                category=cat,
                amount=amount,
                type=trx_type,
                status=status,
                date=trx_date,
                description=description,
                notes=notes,
                receipt_url=receipt_url,
                receipt_data=receipt_data,
            )
            db.add(db_obj)
            await db.flush()

            await adjust_account_balance(db, acct.id, balance_effect(amount, trx_type, status))

        logger.info(
            "transaction_created",
            user_id=user.id,
            transaction_id=db_obj.id,
            account_id=acct.id,
            type=trx_type.value,
            status=status.value,
            amount=str(amount),
        )
        return await TransactionRepository._reload(db, db_obj.id)

    @staticmethod
    async def update(db: AsyncSession, transaction_id: int, user: User,
                     updates: Mapping[str, Any]) -> Transaction:
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

        async with atomic(db):
            db_obj = await TransactionRepository._get_owned(db, transaction_id, user)
            original_account_id = db_obj.account_id

            # 1. Take the old contribution off the original account
            await adjust_account_balance(
                db, original_account_id, -balance_effect(db_obj.amount, db_obj.type, db_obj.status)
            )

            # 2. Apply the field changes, validated against the merged record
            if "amount" in updates:
                db_obj.amount = parse_amount(updates["amount"])
            if "type" in updates:
                db_obj.type = parse_type(updates["type"])
            if "status" in updates:
                db_obj.status = parse_status(updates["status"], UPDATE_STATUSES)
            if "date" in updates:
                db_obj.date = parse_date(updates["date"])
            if "description" in updates:
                db_obj.description = _clean_text(updates["description"], "Description", MAX_DESCRIPTION_LENGTH)
            if "notes" in updates:
                db_obj.notes = _clean_text(updates["notes"], "Notes")
            if "receipt_url" in updates:
                db_obj.receipt_url = _clean_text(updates["receipt_url"], "Receipt URL")
            if "account" in updates:
                acct = await AccountService.resolve_account(db, user, updates["account"])
                if acct.id != original_account_id and not acct.is_active:
                    raise ValidationError(f"Account '{acct.name}' is inactive")
                db_obj.account = acct
            if "category" in updates:
                db_obj.category = await CategoryService.resolve_category(db, user, updates["category"])

            await db.flush()

            # 3. Put the new contribution on the new account
            await adjust_account_balance(
                db, db_obj.account.id, balance_effect(db_obj.amount, db_obj.type, db_obj.status)
            )

        logger.info(
            "transaction_updated",
            user_id=user.id,
            transaction_id=transaction_id,
            fields=sorted(updates),
            account_changed=db_obj.account_id != original_account_id,
        )
        return await TransactionRepository._reload(db, transaction_id)

    @staticmethod
    async def delete(db: AsyncSession, transaction_id: int, user: User) -> None:
        async with atomic(db):
            db_obj = await TransactionRepository._get_owned(db, transaction_id, user)
            await adjust_account_balance(
                db, db_obj.account_id, -balance_effect(db_obj.amount, db_obj.type, db_obj.status)
            )
            await db.delete(db_obj)

        logger.info("transaction_deleted", user_id=user.id, transaction_id=transaction_id)

    @staticmethod
    async def get(db: AsyncSession, transaction_id: int, user: User) -> Transaction:
        return await TransactionRepository._get_owned(db, transaction_id, user)

    @staticmethod
    async def list(db: AsyncSession, user: User, limit: Optional[int] = None, offset: Optional[int] = None,
                   start_date: Optional[date] = None, end_date: Optional[date] = None) -> list[Transaction]:
        if limit is not None and limit < 0:
            raise ValidationError("limit must not be negative")
        if offset is not None and offset < 0:
            raise ValidationError("offset must not be negative")

        query = (
            select(Transaction)
            .where(and_(Transaction.user_id == user.id, *_date_filters(start_date, end_date)))
            # Newest economic date first; same-day rows newest insert first
            .order_by(desc(Transaction.date), desc(Transaction.id))
            .execution_options(populate_existing=True)
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def count(db: AsyncSession, user: User, start_date: Optional[date] = None,
                    end_date: Optional[date] = None) -> int:
        query = select(func.count(Transaction.id)).where(
            and_(Transaction.user_id == user.id, *_date_filters(start_date, end_date))
        )
        res = await db.execute(query)
        return res.scalar() or 0

    @staticmethod
    async def _get_owned(db: AsyncSession, transaction_id: int, user: User) -> Transaction:
        query = (
            select(Transaction)
            .where(and_(Transaction.id == transaction_id, Transaction.user_id == user.id))
            .execution_options(populate_existing=True)
        )
        res = await db.execute(query)
        db_obj = res.scalar_one_or_none()
        if db_obj is None:
            raise NotFoundError("Transaction", transaction_id)
        return db_obj

    @staticmethod
    async def _reload(db: AsyncSession, transaction_id: int) -> Transaction:
        # populate_existing refreshes the joined account, whose balance was
        # changed by a bulk UPDATE the identity map did not see
        query = (
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        res = await db.execute(query)
        return res.scalar_one()


def _date_filters(start_date: Optional[date], end_date: Optional[date]) -> list:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("startDate must not be after endDate")
    filters = []
    if start_date:
        filters.append(Transaction.date >= start_date)
    if end_date:
        filters.append(Transaction.date <= end_date)
    return filters
