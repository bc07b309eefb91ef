"""
Pydantic schemas for precomputation endpoints.
"""
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PrecomputationScheduleResponse(BaseModel):
    """State of the precomputation run for one date."""

    id: UUID
    target_date: date
    status: str = Field(..., description="scheduled, running, completed, failed or cancelled")
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    patios_total: int
    patios_processed: int = Field(..., description="Checkpoint written after each batch")
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class DataIntegrityResponse(BaseModel):
    """Stored rows against the expected patio x slot count."""

    date: date
    expected_points: int
    actual_points: int
    completeness_percent: float
    is_valid: bool = Field(..., description="At least 95% of expected rows present")


class InvalidateRequest(BaseModel):
    """Request schema for invalidating precomputed data."""

    patio_ids: list[UUID] = Field(..., min_length=1, description="Patios whose geometry or surroundings changed")
    from_date: Optional[date] = Field(None, description="First affected date; defaults to today")


class InvalidateResponse(BaseModel):
    """Rows marked stale by an invalidation."""

    patio_ids: list[UUID]
    rows_invalidated: int
