"""
Request and response models for the task admin operations.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RequestModel(BaseModel):
    """Admin request payloads reject unknown fields."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)


class EnableTaskData(RequestModel):
    name: str = Field(..., min_length=1, max_length=32, description="Name of the task")
    cron: Optional[str] = Field(
        None, min_length=1, max_length=32,
        description="Cron expression for the task", examples=["0 0 * * *"]
    )
    config: Optional[Dict[str, Any]] = Field(None, description="Configuration for the task")

    @field_validator('config')
    @classmethod
    def config_not_empty(cls, value):
        if value is not None and not value:
            raise ValueError("config must be a non-empty object")
        return value


class DisableTaskData(RequestModel):
    name: str = Field(..., min_length=1, max_length=32, description="Name of the task")


class ListTaskParams(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=32, description="Name of the task")
    is_enabled: Optional[bool] = Field(None, alias='isEnabled', description="Enabled status of the task")


class ResponseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class TaskResponse(ResponseModel):
    name: str
    is_enabled: bool = Field(..., alias='isEnabled')
    cron: Optional[str] = None
    config: Optional[Any] = None


class ListResponseMeta(BaseModel):
    total: int


class TaskListResponse(ResponseModel):
    data: List[TaskResponse]
    meta: ListResponseMeta


class SuccessResponse(ResponseModel):
    success: bool = True
