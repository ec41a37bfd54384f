from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import models, schemas
from ..database import upsert_insert
from ..logging_config import get_logger

logger = get_logger(__name__)


def _full_name(user: schemas.UserStore) -> Optional[str]:
    parts = [p for p in (user.first_name, user.last_name) if p]
    return " ".join(parts) or None


async def store_user_on_login(
    db: AsyncSession,
    user_id: str,
    user: schemas.UserStore,
    fallback_email: Optional[str] = None
) -> models.User:
    """Create the user row on first login, refresh email/name afterwards"""
    table = models.User.__table__
    email = user.email or fallback_email
    name = _full_name(user)

    stmt = upsert_insert(db, table).values(user_id=user_id, email=email, name=name)
    update_values = {}
    if email:
        update_values["email"] = stmt.excluded.email
    if name:
        update_values["name"] = stmt.excluded.name

    if update_values:
        stmt = stmt.on_conflict_do_update(index_elements=[table.c.user_id], set_=update_values)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=[table.c.user_id])

    await db.execute(stmt)
    await db.commit()

    return await get_user_by_id(db, user_id)


async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[models.User]:
    result = await db.execute(select(models.User).where(models.User.user_id == user_id))
    return result.scalar_one_or_none()
