from typing import Union

import structlog
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.config import settings
from fintrack.core.database import atomic
from fintrack.core.errors import ConflictError, NotFoundError, ValidationError
from fintrack.models.account import Account, Category
from fintrack.models.transaction import Transaction
from fintrack.models.user import User

logger = structlog.get_logger(__name__)

EntityRef = Union[int, str]


def _check_ref(ref: EntityRef, entity: str) -> EntityRef:
    if isinstance(ref, bool) or not isinstance(ref, (int, str)):
        raise ValidationError(f"{entity} must be referenced by id or name")
    if isinstance(ref, str):
        ref = ref.strip()
        if not ref:
            raise ValidationError(f"{entity} is required")
    return ref


def _clean_name(name: str | None, entity: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(f"{entity} name is required")
    if len(name) > 100:
        raise ValidationError(f"{entity} name must be at most 100 characters")
    return name


class AccountService:
    @staticmethod
    async def resolve_account(db: AsyncSession, user: User, ref: EntityRef,
                              require_active: bool = False) -> Account:
        """Find the caller's own account by id or by name. Never crosses users."""
        ref = _check_ref(ref, "Account")
        column = Account.id if isinstance(ref, int) else Account.name
        query = select(Account).where(and_(Account.user_id == user.id, column == ref))
        res = await db.execute(query)
        account = res.scalar_one_or_none()
        if account is None:
            raise NotFoundError("Account", ref)
        if require_active and not account.is_active:
            raise ValidationError(f"Account '{account.name}' is inactive")
        return account

    @staticmethod
    async def list_accounts(db: AsyncSession, user: User, include_inactive: bool = True) -> list[Account]:
        query = select(Account).where(Account.user_id == user.id)
        if not include_inactive:
            query = query.where(Account.is_active.is_(True))
        query = query.order_by(Account.id).execution_options(populate_existing=True)
        res = await db.execute(query)
        return list(res.scalars().all())

    @staticmethod
    async def create_account(db: AsyncSession, user: User, name: str, kind: str = "checking",
                             currency: str | None = None) -> Account:
        name = _clean_name(name, "Account")
        kind = (kind or "").strip().lower()
        if not kind:
            raise ValidationError("Account kind is required")

        async with atomic(db):
            existing = await db.execute(
                select(Account.id).where(and_(Account.user_id == user.id, Account.name == name))
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError(f"Account '{name}' already exists")

            account = Account(
                user_id=user.id,
                name=name,
                kind=kind,
                balance=0,
                currency=(currency or settings.DEFAULT_CURRENCY).upper(),
                is_active=True,
            )
            db.add(account)
            await db.flush()

        logger.info("account_created", user_id=user.id, account_id=account.id, kind=kind)
        return account

    @staticmethod
    async def deactivate_account(db: AsyncSession, user: User, ref: EntityRef) -> Account:
        async with atomic(db):
            account = await AccountService.resolve_account(db, user, ref)
            account.is_active = False

        logger.info("account_deactivated", user_id=user.id, account_id=account.id)
        return account

    @staticmethod
    async def delete_account(db: AsyncSession, user: User, ref: EntityRef) -> None:
        """Hard delete, refused while any transaction still references the account."""
        async with atomic(db):
            account = await AccountService.resolve_account(db, user, ref)
            used = await db.execute(
                select(func.count(Transaction.id)).where(Transaction.account_id == account.id)
            )
            count = used.scalar() or 0
            if count:
                raise ConflictError(
                    f"Account '{account.name}' has {count} transaction(s); deactivate it instead",
                    {"transactions": count},
                )
            await db.delete(account)

        logger.info("account_deleted", user_id=user.id, account_id=account.id)


class CategoryService:
    @staticmethod
    async def resolve_category(db: AsyncSession, user: User, ref: EntityRef) -> Category:
        ref = _check_ref(ref, "Category")
        column = Category.id if isinstance(ref, int) else Category.name
        query = select(Category).where(and_(Category.user_id == user.id, column == ref))
        res = await db.execute(query)
        category = res.scalar_one_or_none()
        if category is None:
            raise NotFoundError("Category", ref)
        return category

    @staticmethod
    async def find_by_name_insensitive(db: AsyncSession, user: User, name: str) -> Category | None:
        query = select(Category).where(
            and_(Category.user_id == user.id, func.lower(Category.name) == name.strip().lower())
        )
        res = await db.execute(query)
        return res.scalars().first()

    @staticmethod
    async def list_categories(db: AsyncSession, user: User) -> list[Category]:
        res = await db.execute(
            select(Category).where(Category.user_id == user.id).order_by(Category.id)
        )
        return list(res.scalars().all())

    @staticmethod
    async def create_category(db: AsyncSession, user: User, name: str, icon: str | None = None,
                              color: str | None = None) -> Category:
        name = _clean_name(name, "Category")

        async with atomic(db):
            existing = await db.execute(
                select(Category.id).where(and_(Category.user_id == user.id, Category.name == name))
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError(f"Category '{name}' already exists")

            category = Category(user_id=user.id, name=name, icon=icon, color=color)
            db.add(category)
            await db.flush()

        logger.info("category_created", user_id=user.id, category_id=category.id)
        return category

    @staticmethod
    async def delete_category(db: AsyncSession, user: User, ref: EntityRef) -> None:
        async with atomic(db):
            category = await CategoryService.resolve_category(db, user, ref)
            used = await db.execute(
                select(func.count(Transaction.id)).where(Transaction.category_id == category.id)
            )
            count = used.scalar() or 0
            if count:
                raise ConflictError(
                    f"Category '{category.name}' is used by {count} transaction(s)",
                    {"transactions": count},
                )
            await db.delete(category)

        logger.info("category_deleted", user_id=user.id, category_id=category.id)
