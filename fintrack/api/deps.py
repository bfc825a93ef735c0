from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.config import Settings, get_settings
from fintrack.core.database import get_db
from fintrack.core.errors import AuthError
from fintrack.models.user import User
from fintrack.services.provisioning import UserProvisioner


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db),
                           config: Settings = Depends(get_settings)) -> User:
    """Resolve the caller from the identity header, provisioning them on first sight."""
    identity = (request.headers.get(config.IDENTITY_HEADER) or "").strip()
    if not identity:
        raise AuthError("Unauthorized")

    email: Optional[str] = request.headers.get("X-User-Email")
    return await UserProvisioner.ensure_user(db, identity, email=email)
