from fastapi import APIRouter, Query, Request
from shopflow.consumers.dead_letter import list_dead_letters
from shopflow.schemas.dead_letter import DeadLetterListResponse, DeadLetterResponse
from shopflow.schemas.response import SuccessResponse

router = APIRouter()

METADATA_FIELDS = ("error_reason", "failed_at", "original_id")


@router.get("/{stream}", response_model=SuccessResponse)
async def list_dead_letters_endpoint(request: Request, stream: str, count: int = Query(100, ge=1, le=1000)):
    """Lists entries dead-lettered from `stream` (e.g. 'stream:orders:created')."""
    entries = await list_dead_letters(request.app.state.store, stream, count)
    items = [
        DeadLetterResponse(
            id=entry.id,
            original_id=entry.fields.get("original_id", ""),
            error_reason=entry.fields.get("error_reason", ""),
            failed_at=entry.fields.get("failed_at", ""),
            fields={k: v for k, v in entry.fields.items() if k not in METADATA_FIELDS},
        )
        for entry in entries
    ]
    data = DeadLetterListResponse(stream=stream, count=len(items), entries=items).model_dump()
    return SuccessResponse(data=data)
