"""
Tagged operation results.

Public operations never raise: ``run_operation`` turns the outcome of a
service call into an ``OperationResult`` carrying a status, payload and,
on failure, a client-safe message and error code.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Awaitable, Callable, Optional, Dict

from pydantic import BaseModel

from common.utils.exceptions import APIException
from common.utils.responses import success_response, error_response, paginated_response
from identity.models import UsersPage

logger = logging.getLogger(__name__)


class ResultStatus(IntEnum):
    OK = 200
    CREATED = 201
    NO_CONTENT = 204
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    SESSION_EXPIRED = 440
    INTERNAL_ERROR = 500


_FAILURE_CODES: Dict[ResultStatus, str] = {
    ResultStatus.BAD_REQUEST: "BAD_REQUEST",
    ResultStatus.UNAUTHORIZED: "UNAUTHORIZED",
    ResultStatus.FORBIDDEN: "FORBIDDEN",
    ResultStatus.NOT_FOUND: "NOT_FOUND",
    ResultStatus.CONFLICT: "CONFLICT",
    ResultStatus.SESSION_EXPIRED: "SESSION_EXPIRED",
    ResultStatus.INTERNAL_ERROR: "INTERNAL_ERROR",
}


@dataclass(frozen=True)
class OperationResult:
    status: ResultStatus
    data: Any = None
    message: Optional[str] = None
    code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status < 400

    @classmethod
    def success(cls, data: Any = None, status: ResultStatus = ResultStatus.OK) -> "OperationResult":
        if data is None and status == ResultStatus.OK:
            status = ResultStatus.NO_CONTENT
        return cls(status=status, data=data)

    @classmethod
    def failure(
        cls,
        status: ResultStatus,
        message: Optional[str] = None,
        code: Optional[str] = None,
    ) -> "OperationResult":
        return cls(
            status=status,
            message=message or status.name.replace("_", " ").capitalize(),
            code=code or _FAILURE_CODES.get(status),
        )

    def to_response(self) -> Dict[str, Any]:
        """Render the standard success/error envelope."""
        if self.ok:
            if isinstance(self.data, UsersPage):
                return paginated_response(
                    _dump(self.data.users),
                    total=self.data.total,
                    page=self.data.page,
                    limit=self.data.limit,
                )
            return success_response(_dump(self.data))
        return error_response(
            self.message or "Error",
            code=self.code,
            status=int(self.status),
        )


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [_dump(item) for item in data]
    if isinstance(data, dict):
        return {key: _dump(value) for key, value in data.items()}
    return data


def _status_for(exc: APIException) -> ResultStatus:
    try:
        return ResultStatus(exc.status_code)
    except ValueError:
        return ResultStatus.INTERNAL_ERROR


async def run_operation(
    name: str,
    operation: Callable[[], Awaitable[Any]],
    success_status: ResultStatus = ResultStatus.OK,
) -> OperationResult:
    """
    Execute ``operation`` and convert its outcome into an ``OperationResult``.

    ``APIException`` subclasses keep their status, code and message. Anything
    else is logged with its traceback and reported as a generic internal
    error, so driver messages and secrets stay server-side.
    """
    try:
        data = await operation()
    except APIException as e:
        status = _status_for(e)
        if status == ResultStatus.INTERNAL_ERROR:
            logger.error(f"{name} failed: {e.message}")
            return OperationResult.failure(status)
        logger.debug(f"{name} rejected: {status.name} ({e.code})")
        return OperationResult.failure(status, e.message, e.code)
    except Exception:
        logger.exception(f"{name} failed with an unexpected error")
        return OperationResult.failure(ResultStatus.INTERNAL_ERROR)

    return OperationResult.success(data, success_status)
