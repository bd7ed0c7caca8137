from fastapi import APIRouter, Request

from .utils import ApiSuccess

router = APIRouter()


@router.get('/health', response_model=ApiSuccess)
async def health(request: Request):
    """Liveness plus a summary of supervised streams when the supervisor is up."""
    service = getattr(request.app.state, 'stream_service', None)
    if service is None:
        return ApiSuccess(results="OK")

    sessions = service.registry.sessions()
    return ApiSuccess(
        results={
            'status': 'OK',
            'streams': len(sessions),
            'running': sum(1 for s in sessions if s.is_running),
            'observers': service.broadcaster.subscriber_count,
        }
    )
