from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Annotated

from ..auth.dependencies import AuthUser, require_auth_user
from ..config import settings
from ..credits.service import CreditLedger
from ..database import get_async_db
from ..logging_config import get_logger
from . import schemas, service

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/store", response_model=schemas.UserOut)
async def store_user(
    user: schemas.UserStore,
    auth_user: Annotated[AuthUser, Depends(require_auth_user)],
    db: AsyncSession = Depends(get_async_db)
):
    """Store user on login and grant signup bonus (once per user)"""

    logger.info("Storing user on login", extra={"user_id": auth_user.id})

    db_user = await service.store_user_on_login(
        db,
        user_id=auth_user.id,
        user=user,
        fallback_email=auth_user.email
    )

    credits = await CreditLedger(db).grant_signup_bonus(
        auth_user.id,
        amount=settings.SIGNUP_BONUS_CREDITS
    )

    return schemas.UserOut(
        user_id=db_user.user_id,
        email=db_user.email,
        name=db_user.name,
        created_at=db_user.created_at,
        credits=credits,
    )
