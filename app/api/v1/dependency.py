from typing import Annotated

from fastapi import Depends, Request

from app.domain.live.stream.stream_domain import StreamService
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


def get_stream_service(request: Request) -> StreamService:
    """The supervisor created by the application lifespan."""
    service = getattr(request.app.state, "stream_service", None)
    if service is None:
        raise AppError(
            errcode=AppErrorCode.E_INTERNAL_ERROR,
            errmesg="Stream supervisor is not running",
            status_code=HttpStatusCode.INTERNAL_ERROR,
        )
    return service


StreamServiceDep = Annotated[StreamService, Depends(get_stream_service)]
