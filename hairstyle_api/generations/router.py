# hairstyle_api/generations/router.py
"""
Generation API
Endpoints:
- POST /hairstyle/generate
- GET /generations/history
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import AuthUser, get_auth_user, require_auth_user
from ..config import settings
from ..credits.schemas import Pagination
from ..database import get_async_db
from ..providers import ProviderGateway
from . import schemas
from .orchestrator import GenerationOrchestrator
from .service import GenerationRecordStore

router = APIRouter(tags=["generations"])

MAX_HISTORY_PAGE_SIZE = 100


def get_provider_gateway(request: Request) -> ProviderGateway:
    return request.app.state.gateway


@router.post(
    "/hairstyle/generate",
    response_model=schemas.GenerateResponse,
    response_model_exclude_none=True
)
async def generate_hairstyle(
    body: schemas.GenerateRequest,
    user: Annotated[Optional[AuthUser], Depends(get_auth_user)],
    gateway: ProviderGateway = Depends(get_provider_gateway),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Apply a hairstyle to the uploaded photo.

    Anonymous callers are served without charge; signed-in callers pay
    GENERATION_COST credits, refunded if the generation fails.
    """
    orchestrator = GenerationOrchestrator(settings, gateway, db=db)
    result = await orchestrator.generate(body.image, body.prompt, user)
    return schemas.GenerateResponse(image=result.image, credits=result.credits)


@router.get("/generations/history", response_model=schemas.GenerationHistoryResponse)
async def get_generation_history(
    user: Annotated[AuthUser, Depends(require_auth_user)],
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_async_db),
):
    """Get user's past generations (newest first)"""
    limit = min(limit, MAX_HISTORY_PAGE_SIZE)
    records = GenerationRecordStore(db)

    generations = await records.list_for_user(user.id, limit=limit, offset=offset)
    total = await records.count_for_user(user.id)

    return schemas.GenerationHistoryResponse(
        generations=[schemas.GenerationRecordResponse.model_validate(g) for g in generations],
        pagination=Pagination(limit=limit, offset=offset, total=total),
    )
