from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from .models import GenerationStatus
from ..credits.schemas import Pagination


class GenerateRequest(BaseModel):
    image: str  # base64 data URL
    prompt: str


class GenerateResponse(BaseModel):
    success: bool = True
    image: str
    credits: Optional[int] = None  # Remaining balance, authenticated callers only


class GenerationRecordResponse(BaseModel):
    id: str
    prompt: str
    status: GenerationStatus
    provider: Optional[str] = None
    credit_cost: int
    processing_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GenerationHistoryResponse(BaseModel):
    success: bool = True
    generations: List[GenerationRecordResponse]
    pagination: Pagination
