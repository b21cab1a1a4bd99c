"""
Admin operations over scheduled tasks.

Framework-neutral request handlers: each takes a plain dict payload,
validates it, calls the scheduler service and returns a
``(status_code, body)`` pair. An HTTP framework mounts these behind its own
authentication; only privileged callers should reach them.
"""

import logging
from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from taskscheduler.dto import (
    DisableTaskData,
    EnableTaskData,
    ListTaskParams,
    SuccessResponse,
    TaskListResponse,
)
from taskscheduler.errors import RequestValidationError, SchedulerError
from taskscheduler.validation import format_errors

logger = logging.getLogger(__name__)

DEFAULT_STATUS_CODE = 500
DEFAULT_MESSAGE = 'Internal server error'

Response = Tuple[int, Dict[str, Any]]


def parse_request(model: Type[BaseModel], data: Optional[Dict[str, Any]]) -> BaseModel:
    """
    Raises:
        RequestValidationError: If ``data`` does not match ``model``
    """
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise RequestValidationError(format_errors(e)) from e


def error_response(exc: Exception) -> Response:
    """Render an exception as an error payload."""
    if isinstance(exc, SchedulerError):
        if exc.status_code >= 500:
            logger.error(f"Admin operation failed: {exc}")
        else:
            logger.info(f"Admin operation rejected: {exc}")
        return exc.status_code, exc.to_payload()

    logger.error(f"Admin operation failed: {exc}", exc_info=exc)
    return DEFAULT_STATUS_CODE, {
        'statusCode': DEFAULT_STATUS_CODE,
        'message': DEFAULT_MESSAGE,
        'errorCode': None,
        'details': None,
    }


class AdminApi:
    """List, enable and disable tasks on behalf of an operator."""

    def __init__(self, service):
        self.service = service

    async def list_tasks(self, params: Optional[Dict[str, Any]] = None) -> Response:
        try:
            query = parse_request(ListTaskParams, params)
            result = await self.service.list_tasks(name=query.name, is_enabled=query.is_enabled)
            body = TaskListResponse.model_validate(result).model_dump(by_alias=True)
        except Exception as e:
            return error_response(e)
        return 200, body

    async def enable_task(self, data: Dict[str, Any]) -> Response:
        try:
            request = parse_request(EnableTaskData, data)
            result = await self.service.enable_task(request.name, cron=request.cron, config=request.config)
        except Exception as e:
            return error_response(e)
        return 200, SuccessResponse.model_validate(result).model_dump()

    async def disable_task(self, data: Dict[str, Any]) -> Response:
        try:
            request = parse_request(DisableTaskData, data)
            result = await self.service.disable_task(request.name)
        except Exception as e:
            return error_response(e)
        return 200, SuccessResponse.model_validate(result).model_dump()
