from typing import Dict, List

from pydantic import BaseModel


class DeadLetterResponse(BaseModel):
    """One dead-lettered entry as stored in '<stream>:dlq'."""
    id: str
    original_id: str
    error_reason: str
    failed_at: str
    fields: Dict[str, str]


class DeadLetterListResponse(BaseModel):
    stream: str
    count: int
    entries: List[DeadLetterResponse]
