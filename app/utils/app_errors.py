"""Application error types raised by domain and API code.

`AppError` is rendered into an `ApiFailure` envelope by
`app.api.errors.app_error_handler`.
"""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    BAD_REQUEST = 400
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL_ERROR = 500
    BAD_GATEWAY = 502


class AppErrorCode(str, Enum):
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_STREAM_NOT_FOUND = "E_STREAM_NOT_FOUND"
    E_STREAM_URL_NOT_FOUND = "E_STREAM_URL_NOT_FOUND"
    E_PROCESS_UNRESPONSIVE = "E_PROCESS_UNRESPONSIVE"
    E_PROBE_FAILED = "E_PROBE_FAILED"
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"

    def __str__(self) -> str:
        return self.value


class AppError(Exception):
    """Error with an API error code, message and HTTP status.

    The call site that raised the error is captured so the handler can log
    where it came from, not where it was caught.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str,
        errmesg: str,
        status_code: int = HttpStatusCode.BAD_REQUEST,
    ):
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        caller_frame = inspect.stack()[1]
        module = inspect.getmodule(caller_frame.frame)
        module_name = (
            module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
        )
        self.caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    def __str__(self) -> str:
        return f"{self.errcode}: {self.errmesg}"


__all__ = ["AppError", "AppErrorCode", "HttpStatusCode"]
