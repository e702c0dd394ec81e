"""Pydantic schemas for credit-metered jobs."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from creditflow.models.job import JobStatus


class JobCreate(BaseModel):
    """Schema for submitting a new job."""

    user_id: str = Field(..., min_length=1, description="User paying for the job")
    input_text: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("input_text", "payload"),
        description="Text to transform",
    )
    options: dict[str, Any] = Field(default_factory=dict, description="Transform options forwarded to the worker")


class Job(BaseModel):
    """Schema for returning job data."""

    id: UUID
    user_id: str
    input_ref: str | None
    output_ref: str | None
    cost: int
    tokens_used: int | None
    status: JobStatus
    error_message: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
