from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.config import settings
from fintrack.core.database import atomic
from fintrack.core.errors import AuthError, ConflictError, StorageError
from fintrack.core.seed import DEFAULT_ACCOUNTS, DEFAULT_CATEGORIES
from fintrack.models.account import Account, Category
from fintrack.models.user import User

logger = structlog.get_logger(__name__)


class UserProvisioner:
    @staticmethod
    async def find_user(db: AsyncSession, identity_ref: str) -> Optional[User]:
        query = (
            select(User)
            .where(User.identity_ref == identity_ref)
            .execution_options(populate_existing=True)
        )
        res = await db.execute(query)
        return res.scalar_one_or_none()

    @staticmethod
    async def ensure_user(db: AsyncSession, identity_ref: str, email: Optional[str] = None,
                          first_name: Optional[str] = None, last_name: Optional[str] = None) -> User:
        """
        Return the local user for an identity, creating it on first sight.

        A new user gets the starter accounts and categories in the same
        store transaction. Two concurrent first requests for one identity
        race on the unique identity_ref; the loser rolls back and re-reads.
        """
        identity_ref = (identity_ref or "").strip()
        if not identity_ref:
            raise AuthError("Missing caller identity")

        user = await UserProvisioner.find_user(db, identity_ref)
        if user is not None:
            return user

        try:
            async with atomic(db):
                user = User(
                    identity_ref=identity_ref,
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                )
                db.add(user)
                await db.flush()

                db.add_all([
                    Account(user_id=user.id, balance=0, currency=settings.DEFAULT_CURRENCY, is_active=True, **acct)
                    for acct in DEFAULT_ACCOUNTS
                ])
                db.add_all([Category(user_id=user.id, **cat) for cat in DEFAULT_CATEGORIES])
        except ConflictError:
            logger.info("user_provisioning_race", identity_ref=identity_ref)
        else:
            logger.info(
                "user_provisioned",
                identity_ref=identity_ref,
                user_id=user.id,
                accounts=len(DEFAULT_ACCOUNTS),
                categories=len(DEFAULT_CATEGORIES),
            )

        user = await UserProvisioner.find_user(db, identity_ref)
        if user is None:
            raise StorageError("User could not be provisioned")
        return user
