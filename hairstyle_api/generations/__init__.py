from .models import GenerationRecord, GenerationStatus
from .service import GenerationRecordStore

__all__ = ["GenerationRecord", "GenerationStatus", "GenerationRecordStore"]
